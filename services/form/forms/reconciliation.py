"""Merging a submitted form tree into the persisted one.

An edit carries the whole tree: every question (with its options) that should
exist afterwards, in display order. Nodes that carry a store key update the
row with that key, nodes with a client-generated token become new rows, and
persisted nodes the edit no longer mentions are removed by giving them the
sentinel order key. Rows are never deleted here, so answers collected
earlier keep resolving.

The diff is computed by :func:`plan_reconciliation` over plain identity sets
and then written by :func:`apply_plan`; :func:`reconcile_form` runs both in
one locked transaction.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Tuple

from django.db import DEFAULT_DB_ALIAS, transaction

from .exceptions import IntegrityViolation, NotFoundOrUnauthorized
from .identity import classify_token
from .models import Form, Question, QuestionOption
from .ordering import REMOVED_ORDER_KEY, assign_order_keys
from .transactions import run_with_retry
from .trees import load_form_tree

logger = logging.getLogger(__name__)


@dataclass
class SubmittedOption:
    token: Any
    text: str
    order_key: Optional[int] = None

    @property
    def removed(self) -> bool:
        return self.order_key is not None and self.order_key <= 0


@dataclass
class SubmittedQuestion:
    token: Any
    kind: str
    text: str
    is_required: bool = False
    order_key: Optional[int] = None
    options: List[SubmittedOption] = field(default_factory=list)

    @property
    def removed(self) -> bool:
        return self.order_key is not None and self.order_key <= 0

    @property
    def effective_options(self) -> List[SubmittedOption]:
        # Only choice questions own options.
        return self.options if self.kind == Question.CHOICE else []


@dataclass
class SubmittedForm:
    title: str
    description: str = ""
    is_active: bool = True
    questions: List[SubmittedQuestion] = field(default_factory=list)

    @classmethod
    def from_data(cls, data: Mapping[str, Any]) -> "SubmittedForm":
        """Build from serializer ``validated_data``."""

        return cls(
            title=data["title"],
            description=data.get("description", ""),
            is_active=data.get("is_active", True),
            questions=[
                SubmittedQuestion(
                    token=question.get("id"),
                    kind=question["kind"],
                    text=question["text"],
                    is_required=question.get("is_required", False),
                    order_key=question.get("order_key"),
                    options=[
                        SubmittedOption(
                            token=option.get("id"),
                            text=option["text"],
                            order_key=option.get("order_key"),
                        )
                        for option in question.get("options", [])
                    ],
                )
                for question in data.get("questions", [])
            ],
        )


@dataclass
class OptionChange:
    submitted: SubmittedOption
    order_key: int
    option_id: Optional[int] = None

    @property
    def is_create(self) -> bool:
        return self.option_id is None


@dataclass
class QuestionChange:
    submitted: SubmittedQuestion
    order_key: int
    question_id: Optional[int] = None
    options: List[OptionChange] = field(default_factory=list)
    removed_option_ids: List[int] = field(default_factory=list)

    @property
    def is_create(self) -> bool:
        return self.question_id is None


@dataclass
class ReconciliationPlan:
    questions: List[QuestionChange] = field(default_factory=list)
    removed_question_ids: List[int] = field(default_factory=list)

    @property
    def created(self) -> List[QuestionChange]:
        return [change for change in self.questions if change.is_create]

    @property
    def updated(self) -> List[QuestionChange]:
        return [change for change in self.questions if not change.is_create]

    def counts(self) -> Dict[str, int]:
        options = [option for change in self.questions for option in change.options]
        return {
            "questions_created": len(self.created),
            "questions_updated": len(self.updated),
            "questions_removed": len(self.removed_question_ids),
            "options_created": sum(1 for option in options if option.is_create),
            "options_updated": sum(1 for option in options if not option.is_create),
            "options_removed": sum(len(change.removed_option_ids) for change in self.questions),
        }


def _unclaimable(entity: str, durable_id: int, consumed: Set[int], parent: str) -> IntegrityViolation:
    if durable_id in consumed:
        message = f"{entity.capitalize()} {durable_id} is referenced more than once"
    else:
        message = f"{entity.capitalize()} {durable_id} does not belong to this {parent}"
    return IntegrityViolation(message, entity=entity, entity_id=durable_id)


def _plan_new_options(question: SubmittedQuestion) -> List[OptionChange]:
    # A new question cannot own durable options, so every option is created.
    return [
        OptionChange(option, order_key)
        for option, order_key in assign_order_keys(
            question.effective_options, is_removed=lambda option: option.removed
        )
        if not option.removed
    ]


def _plan_existing_options(
    question: SubmittedQuestion, persisted_option_ids: Iterable[int]
) -> Tuple[List[OptionChange], List[int]]:
    remaining = set(persisted_option_ids)
    consumed: Set[int] = set()
    changes: List[OptionChange] = []
    for option, order_key in assign_order_keys(
        question.effective_options, is_removed=lambda option: option.removed
    ):
        identity = classify_token(option.token)
        if identity.is_new:
            if not option.removed:
                changes.append(OptionChange(option, order_key))
            continue
        option_id = identity.durable_id
        if option_id not in remaining:
            raise _unclaimable("option", option_id, consumed, "question")
        remaining.discard(option_id)
        consumed.add(option_id)
        changes.append(OptionChange(option, order_key, option_id=option_id))
    return changes, sorted(remaining)


def plan_reconciliation(
    persisted: Mapping[int, Iterable[int]],
    submitted: Iterable[SubmittedQuestion],
) -> ReconciliationPlan:
    """Diff submitted questions against the persisted question -> option ids map.

    ``persisted`` must hold every question of the form, removed ones included,
    so that a removed question can be restored by re-submitting its id.
    Raises :class:`IntegrityViolation` when a durable id is not among the
    parent's remaining children, either because it belongs elsewhere or
    because an earlier node of the same submission already claimed it.
    """

    remaining: Dict[int, Iterable[int]] = dict(persisted)
    consumed: Set[int] = set()
    plan = ReconciliationPlan()
    for question, order_key in assign_order_keys(
        list(submitted), is_removed=lambda question: question.removed
    ):
        identity = classify_token(question.token)
        if identity.is_new:
            if not question.removed:
                plan.questions.append(
                    QuestionChange(question, order_key, options=_plan_new_options(question))
                )
            continue
        question_id = identity.durable_id
        if question_id not in remaining:
            raise _unclaimable("question", question_id, consumed, "form")
        option_changes, removed_option_ids = _plan_existing_options(question, remaining.pop(question_id))
        consumed.add(question_id)
        plan.questions.append(
            QuestionChange(
                question,
                order_key,
                question_id=question_id,
                options=option_changes,
                removed_option_ids=removed_option_ids,
            )
        )
    plan.removed_question_ids = sorted(remaining)
    return plan


def persisted_tree(form: Form, using: str = DEFAULT_DB_ALIAS) -> Dict[int, List[int]]:
    """Map every question id of the form to its option ids, removed nodes included."""

    tree: Dict[int, List[int]] = {
        question_id: []
        for question_id in Question.objects.using(using).filter(form=form).values_list("id", flat=True)
    }
    options = QuestionOption.objects.using(using).filter(question__form=form).values_list("question_id", "id")
    for question_id, option_id in options:
        tree[question_id].append(option_id)
    return tree


def apply_plan(form: Form, plan: ReconciliationPlan, using: str = DEFAULT_DB_ALIAS) -> None:
    """Write a plan to the store. Must run inside the caller's transaction.

    Siblings are parked at the sentinel before final positions are written,
    so the live-position unique constraints never see a transient duplicate.
    Anything not rewritten afterwards stays removed.
    """

    questions = Question.objects.using(using)
    options = QuestionOption.objects.using(using)
    questions.filter(form=form).update(order_key=REMOVED_ORDER_KEY)
    for change in plan.questions:
        submitted = change.submitted
        if change.is_create:
            question = questions.create(
                form=form,
                kind=submitted.kind,
                text=submitted.text,
                is_required=submitted.is_required,
                order_key=change.order_key,
            )
            options.bulk_create(
                [
                    QuestionOption(question=question, text=option.submitted.text, order_key=option.order_key)
                    for option in change.options
                ]
            )
            continue

        questions.filter(pk=change.question_id).update(
            kind=submitted.kind,
            text=submitted.text,
            is_required=submitted.is_required,
            order_key=change.order_key,
        )
        options.filter(question_id=change.question_id).update(order_key=REMOVED_ORDER_KEY)
        for option in change.options:
            if option.is_create:
                options.create(
                    question_id=change.question_id,
                    text=option.submitted.text,
                    order_key=option.order_key,
                )
            else:
                options.filter(pk=option.option_id).update(
                    text=option.submitted.text,
                    order_key=option.order_key,
                )


def _lock_owned_form(form_id: int, owner_id: int, using: str) -> Form:
    form = Form.objects.using(using).select_for_update().filter(pk=form_id, owner_id=owner_id).first()
    if form is None:
        raise NotFoundOrUnauthorized("Form not found or unauthorized", entity="form", entity_id=form_id)
    return form


def _apply_scalars(form: Form, submitted: SubmittedForm, using: str) -> None:
    form.title = submitted.title
    form.description = submitted.description
    form.is_active = submitted.is_active
    form.save(using=using, update_fields=["title", "description", "is_active", "updated_at"])


def reconcile_form(
    form_id: int,
    owner_id: int,
    submitted: SubmittedForm,
    *,
    using: str = DEFAULT_DB_ALIAS,
) -> Form:
    """Converge the persisted tree of ``form_id`` to ``submitted``.

    Runs as one transaction holding a row lock on the form, so edits of the
    same form never interleave. Transient failures rerun the whole
    transaction. Returns the reloaded form with the full tree (removed nodes
    included) attached as ``tree_questions``.
    """

    def attempt() -> Form:
        with transaction.atomic(using=using):
            form = _lock_owned_form(form_id, owner_id, using)
            _apply_scalars(form, submitted, using)
            plan = plan_reconciliation(persisted_tree(form, using), submitted.questions)
            apply_plan(form, plan, using)
            logger.info("Reconciled form %s: %s", form_id, plan.counts())
            return load_form_tree(form_id, include_removed=True, using=using)

    return run_with_retry(attempt, label=f"Reconciling form {form_id}")


def create_form(owner_id: int, submitted: SubmittedForm, *, using: str = DEFAULT_DB_ALIAS) -> Form:
    """Create a form and its initial tree.

    Reconciles against an empty tree, so any durable id in the submission is
    rejected as not belonging to the new form.
    """

    def attempt() -> Form:
        with transaction.atomic(using=using):
            form = Form.objects.using(using).create(
                title=submitted.title,
                description=submitted.description,
                is_active=submitted.is_active,
                owner_id=owner_id,
            )
            plan = plan_reconciliation({}, submitted.questions)
            apply_plan(form, plan, using)
            logger.info("Created form %s for owner %s: %s", form.pk, owner_id, plan.counts())
            return load_form_tree(form.pk, include_removed=True, using=using)

    return run_with_retry(attempt, label="Creating form")
