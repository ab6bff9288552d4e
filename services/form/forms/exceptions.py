"""Domain errors raised by the form service and their HTTP mapping."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler


class FormServiceError(Exception):
    """Base class for errors surfaced to API callers."""

    code = "form_error"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(
        self,
        message: str,
        *,
        entity: Optional[str] = None,
        entity_id: Optional[Any] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.entity = entity
        self.entity_id = entity_id

    def as_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"code": self.code, "detail": self.message}
        if self.entity is not None:
            data["entity"] = self.entity
            data["entity_id"] = self.entity_id
        return data


class NotFoundOrUnauthorized(FormServiceError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class IntegrityViolation(FormServiceError):
    """A durable identity was foreign to its parent or referenced twice."""

    code = "integrity_violation"
    status_code = status.HTTP_409_CONFLICT


class TransientStoreFailure(FormServiceError):
    code = "transient_store_failure"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class ValidationFailure(FormServiceError):
    """A candidate answer set was rejected; nothing was written."""

    code = "validation_failure"

    def __init__(self, message: str, question_id: Any) -> None:
        super().__init__(message, entity="question", entity_id=question_id)
        self.question_id = question_id
        self.errors: List[ValidationFailure] = []

    def as_dict(self) -> Dict[str, Any]:
        data = super().as_dict()
        if len(self.errors) > 1:
            data["errors"] = [
                {"code": error.code, "detail": error.message, "question_id": error.question_id}
                for error in self.errors
            ]
        return data


class MissingRequired(ValidationFailure):
    code = "missing_required"


class TypeMismatch(ValidationFailure):
    code = "type_mismatch"


class UnknownQuestion(ValidationFailure):
    code = "unknown_question"


def api_exception_handler(exc: Exception, context: Dict[str, Any]) -> Optional[Response]:
    """DRF exception handler that also renders ``FormServiceError`` subclasses."""

    if isinstance(exc, FormServiceError):
        return Response(exc.as_dict(), status=exc.status_code)
    return exception_handler(exc, context)
