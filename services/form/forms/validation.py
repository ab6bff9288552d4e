"""Checks a candidate answer set against the live tree of a form."""
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Any, FrozenSet, Iterable, List, Mapping, Optional, Sequence

from .exceptions import MissingRequired, TypeMismatch, UnknownQuestion, ValidationFailure
from .models import Question
from .ordering import is_live


@dataclass(frozen=True)
class LiveQuestion:
    id: int
    kind: str
    text: str
    is_required: bool
    option_ids: FrozenSet[int] = frozenset()

    @classmethod
    def from_model(cls, question: Question) -> "LiveQuestion":
        """Snapshot a question loaded with its live ``tree_options``."""

        return cls(
            id=question.pk,
            kind=question.kind,
            text=question.text,
            is_required=question.is_required,
            option_ids=frozenset(option.pk for option in question.tree_options if is_live(option.order_key)),
        )


@dataclass(frozen=True)
class CandidateAnswer:
    question_id: Any
    option_id: Optional[int] = None
    text_value: Optional[str] = None
    file_path: Optional[str] = None

    @classmethod
    def from_data(cls, data: Mapping[str, Any]) -> "CandidateAnswer":
        return cls(
            question_id=data["question_id"],
            option_id=data.get("option_id"),
            text_value=data.get("text_value"),
            file_path=data.get("file_path"),
        )

    @property
    def populated(self) -> FrozenSet[str]:
        fields = set()
        if self.option_id is not None:
            fields.add("option_id")
        if self.text_value is not None:
            fields.add("text_value")
        if self.file_path is not None:
            fields.add("file_path")
        return frozenset(fields)


_FIELD_FOR_KIND = {
    Question.TEXT: "text_value",
    Question.CHOICE: "option_id",
    Question.FILE: "file_path",
}


def _shape_error(question: LiveQuestion, answer: CandidateAnswer) -> Optional[ValidationFailure]:
    expected = _FIELD_FOR_KIND[question.kind]
    if answer.populated != {expected}:
        return TypeMismatch(
            f'Question "{question.text}" expects exactly one {expected} value',
            question.id,
        )
    if question.kind == Question.TEXT and not answer.text_value.strip():
        return TypeMismatch(f'Text answer required for question "{question.text}"', question.id)
    if question.kind == Question.FILE and not answer.file_path.strip():
        return TypeMismatch(f'File upload required for question "{question.text}"', question.id)
    if question.kind == Question.CHOICE and answer.option_id not in question.option_ids:
        return TypeMismatch(
            f'Option {answer.option_id} is not available for question "{question.text}"',
            question.id,
        )
    return None


def collect_submission_errors(
    live_tree: Sequence[LiveQuestion],
    answers: Iterable[CandidateAnswer],
) -> List[ValidationFailure]:
    """Return every failure, required questions first, then answers in order."""

    answers = list(answers)
    questions = {question.id: question for question in live_tree}
    answered = Counter(answer.question_id for answer in answers)
    errors: List[ValidationFailure] = [
        MissingRequired(f'Required question "{question.text}" is not answered', question.id)
        for question in live_tree
        if question.is_required and not answered[question.id]
    ]
    reported_duplicates = set()
    for answer in answers:
        question = questions.get(answer.question_id)
        if question is None:
            errors.append(UnknownQuestion(f"Question {answer.question_id} not found", answer.question_id))
            continue
        if answered[question.id] > 1:
            if question.id not in reported_duplicates:
                reported_duplicates.add(question.id)
                errors.append(TypeMismatch(f'Question "{question.text}" is answered more than once', question.id))
            continue
        error = _shape_error(question, answer)
        if error is not None:
            errors.append(error)
    return errors


def validate_submission(live_tree: Sequence[LiveQuestion], answers: Iterable[CandidateAnswer]) -> None:
    """Raise the first :class:`ValidationFailure`; the rest ride along on ``errors``."""

    errors = collect_submission_errors(live_tree, answers)
    if errors:
        first = errors[0]
        first.errors = errors
        raise first
