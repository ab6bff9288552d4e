"""Caller identity forwarded by the API gateway."""
from __future__ import annotations

from typing import Optional, Tuple

from rest_framework import authentication, exceptions
from rest_framework.request import Request

USER_HEADER = "X-User-Id"


class ForwardedUser:
    """The authenticated caller. Only the identity is known to this service."""

    is_authenticated = True
    is_anonymous = False

    def __init__(self, user_id: int) -> None:
        self.id = user_id
        self.pk = user_id

    def __repr__(self) -> str:
        return f"ForwardedUser({self.id})"


class ForwardedUserAuthentication(authentication.BaseAuthentication):
    """Trust the ``X-User-Id`` header set by the gateway after it authenticated the caller."""

    def authenticate(self, request: Request) -> Optional[Tuple[ForwardedUser, None]]:
        raw = request.headers.get(USER_HEADER)
        if raw is None or raw == "":
            return None
        try:
            user_id = int(raw)
        except ValueError:
            raise exceptions.AuthenticationFailed(f"{USER_HEADER} must be an integer user id.") from None
        if user_id <= 0:
            raise exceptions.AuthenticationFailed(f"{USER_HEADER} must be a positive user id.")
        return ForwardedUser(user_id), None

    def authenticate_header(self, request: Request) -> str:
        return USER_HEADER
