"""Whole-transaction retries for transient database failures."""
from __future__ import annotations

import logging
from typing import Callable, Optional, TypeVar

from django.conf import settings
from django.db import OperationalError

from .exceptions import TransientStoreFailure

logger = logging.getLogger(__name__)

T = TypeVar("T")


def run_with_retry(operation: Callable[[], T], *, attempts: Optional[int] = None, label: str = "transaction") -> T:
    """Run ``operation`` and rerun it from scratch on transient store failures.

    ``operation`` must open its own ``transaction.atomic`` block so that each
    attempt starts from a clean snapshot. Lock timeouts, deadlocks and
    serialization failures surface from Django as ``OperationalError``.
    """

    limit = attempts if attempts is not None else settings.FORM_TRANSACTION_RETRIES
    limit = max(1, int(limit))
    attempt = 1
    while True:
        try:
            return operation()
        except OperationalError as exc:
            if attempt >= limit:
                logger.error("%s failed after %s attempts", label, attempt, exc_info=True)
                raise TransientStoreFailure(
                    f"{label} could not be completed, please retry"
                ) from exc
            logger.warning("%s hit a transient failure (attempt %s/%s): %s", label, attempt, limit, exc)
            attempt += 1
