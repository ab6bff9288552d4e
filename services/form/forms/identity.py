"""Classification of identity tokens carried by submitted questions and options."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional


@dataclass(frozen=True)
class NodeIdentity:
    """Either a durable store key or a marker for a node that does not exist yet."""

    durable_id: Optional[int] = None

    @property
    def is_new(self) -> bool:
        return self.durable_id is None

    @property
    def is_durable(self) -> bool:
        return self.durable_id is not None


NEW = NodeIdentity()


def classify_token(token: Any) -> NodeIdentity:
    """Classify a submitted identity token.

    Store keys are positive integers, sent either as JSON numbers or as digit
    strings. Anything else (``"tmp-1"``, a UUID, a missing id) is a
    client-generated token for a node that still has to be created.
    """

    if isinstance(token, bool):
        return NEW
    if isinstance(token, int):
        return NodeIdentity(token) if token > 0 else NEW
    if isinstance(token, str):
        candidate = token.strip()
        if candidate.isascii() and candidate.isdigit():
            value = int(candidate)
            return NodeIdentity(value) if value > 0 else NEW
    return NEW
