"""Accepting responses to a form."""
from __future__ import annotations

import logging
from typing import Iterable, List

from django.db import DEFAULT_DB_ALIAS, transaction

from .exceptions import NotFoundOrUnauthorized
from .models import Form, FormResponse, ResponseAnswer
from .transactions import run_with_retry
from .trees import with_tree
from .validation import CandidateAnswer, LiveQuestion, validate_submission

logger = logging.getLogger(__name__)


def load_live_tree(form_id: int, using: str = DEFAULT_DB_ALIAS) -> List[LiveQuestion]:
    """Live questions of an active form, or ``NotFoundOrUnauthorized``."""

    form = with_tree(Form.objects.using(using).filter(pk=form_id, is_active=True)).first()
    if form is None:
        raise NotFoundOrUnauthorized("Form not found or inactive", entity="form", entity_id=form_id)
    return [LiveQuestion.from_model(question) for question in form.tree_questions]


def submit_response(
    form_id: int,
    respondent_id: int,
    answers: Iterable[CandidateAnswer],
    *,
    using: str = DEFAULT_DB_ALIAS,
) -> FormResponse:
    """Validate ``answers`` against the live tree and store them as one response.

    The tree is read inside the same transaction that writes the response, so
    a concurrent edit is seen either entirely or not at all.
    """

    answers = list(answers)

    def attempt() -> FormResponse:
        with transaction.atomic(using=using):
            validate_submission(load_live_tree(form_id, using), answers)
            response = FormResponse.objects.using(using).create(form_id=form_id, respondent_id=respondent_id)
            ResponseAnswer.objects.using(using).bulk_create(
                [
                    ResponseAnswer(
                        response=response,
                        question_id=answer.question_id,
                        option_id=answer.option_id,
                        text_value=answer.text_value,
                        file_path=answer.file_path,
                    )
                    for answer in answers
                ]
            )
            return response

    response = run_with_retry(attempt, label=f"Submitting response to form {form_id}")
    logger.info("Stored response %s to form %s with %s answers", response.pk, form_id, len(answers))
    return response
