"""Background tasks for the form service."""
from __future__ import annotations

import logging

from celery import shared_task
from django.db import transaction

from .exceptions import NotFoundOrUnauthorized, TransientStoreFailure, ValidationFailure
from .models import ResponseSubmission
from .submissions import submit_response
from .validation import CandidateAnswer

logger = logging.getLogger(__name__)


@shared_task(bind=True, max_retries=3, default_retry_delay=5)
def process_response_submission(self, submission_id: str) -> None:
    """Store a queued response; rejected answers fail the submission without retrying."""

    submission: ResponseSubmission | None = None
    try:
        with transaction.atomic():
            submission = ResponseSubmission.objects.select_for_update().get(id=submission_id)
            if submission.status == ResponseSubmission.COMPLETED:
                logger.info("Submission %s already completed", submission_id)
                return
            if submission.status == ResponseSubmission.PROCESSING:
                logger.info("Submission %s already processing", submission_id)
                return
            submission.mark_processing()

        answers = [CandidateAnswer.from_data(answer) for answer in submission.request_payload.get("answers", [])]
        response = submit_response(submission.form_id, submission.respondent_id, answers)
        submission.mark_completed(response)
        logger.info("Response %s stored from submission %s", response.pk, submission_id)
    except ResponseSubmission.DoesNotExist:
        logger.warning("Submission %s does not exist", submission_id)
    except (ValidationFailure, NotFoundOrUnauthorized) as exc:
        logger.info("Submission %s rejected: %s", submission_id, exc.message)
        if submission is not None:
            submission.mark_failed(exc.code, exc.message)
    except Exception as exc:  # pragma: no cover - retries exercised in production
        logger.exception("Processing submission %s failed", submission_id)
        if submission is not None:
            if self.request.retries >= self.max_retries:
                code = exc.code if isinstance(exc, TransientStoreFailure) else "server_error"
                submission.mark_failed(code, str(exc))
                return
            submission.status = ResponseSubmission.PENDING
            submission.save(update_fields=["status", "updated_at"])
        raise self.retry(exc=exc, countdown=min(60, 2 ** self.request.retries))
