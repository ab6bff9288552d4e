"""
Response aggregation for form dashboards.

Summaries are computed against the full historical tree: questions and
options removed from the live form still label the answers that reference
them, flagged with ``is_removed`` so dashboards can grey them out.
"""
from __future__ import annotations

from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from django.db import DEFAULT_DB_ALIAS

from .models import Question, ResponseAnswer
from .ordering import is_live
from .trees import load_form_tree


@dataclass
class OptionCount:
    option_id: int
    label: str
    count: int
    percent: float
    is_removed: bool = False


@dataclass
class AnswerEntry:
    response_id: int
    respondent_id: int
    submitted_at: datetime
    value: str


@dataclass
class QuestionSummary:
    question_id: int
    text: str
    kind: str
    is_required: bool
    order_key: int
    is_removed: bool
    answer_count: int = 0
    answers: List[AnswerEntry] = field(default_factory=list)
    # Choice questions only.
    options: Optional[List[OptionCount]] = None


@dataclass
class FormSummary:
    form_id: int
    total_responses: int
    questions: List[QuestionSummary] = field(default_factory=list)


def answer_label(answer: ResponseAnswer) -> str:
    """Human readable value of an answer, resolved through historical rows."""

    if answer.option_id is not None:
        return answer.option.text
    if answer.file_path is not None:
        return answer.file_path
    return answer.text_value or ""


def _option_counts(question: Question, answers: List[ResponseAnswer]) -> List[OptionCount]:
    counts = Counter(answer.option_id for answer in answers if answer.option_id is not None)
    total = sum(counts.values())
    result = []
    for option in question.tree_options:
        count = counts.get(option.pk, 0)
        removed = not is_live(option.order_key)
        if removed and not count:
            continue
        result.append(
            OptionCount(
                option_id=option.pk,
                label=option.text,
                count=count,
                percent=round(count * 100.0 / total, 1) if total else 0.0,
                is_removed=removed,
            )
        )
    return result


def summarize_responses(form_id: int, *, using: str = DEFAULT_DB_ALIAS) -> FormSummary:
    """Aggregate every response of a form per question, removed questions last."""

    form = load_form_tree(form_id, include_removed=True, using=using)
    answers_by_question: Dict[int, List[ResponseAnswer]] = defaultdict(list)
    answers = (
        ResponseAnswer.objects.using(using)
        .filter(response__form_id=form_id)
        .select_related("response", "option")
        .order_by("-response__submitted_at", "id")
    )
    for answer in answers:
        answers_by_question[answer.question_id].append(answer)

    summary = FormSummary(form_id=form.pk, total_responses=form.responses.using(using).count())
    for question in form.tree_questions:
        question_answers = answers_by_question.get(question.pk, [])
        summary.questions.append(
            QuestionSummary(
                question_id=question.pk,
                text=question.text,
                kind=question.kind,
                is_required=question.is_required,
                order_key=question.order_key,
                is_removed=not is_live(question.order_key),
                answer_count=len(question_answers),
                answers=[
                    AnswerEntry(
                        response_id=answer.response_id,
                        respondent_id=answer.response.respondent_id,
                        submitted_at=answer.response.submitted_at,
                        value=answer_label(answer),
                    )
                    for answer in question_answers
                ],
                options=(
                    _option_counts(question, question_answers) if question.kind == Question.CHOICE else None
                ),
            )
        )
    return summary
