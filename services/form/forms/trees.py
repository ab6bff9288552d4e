"""Loading form trees for the live view and the full historical view."""
from __future__ import annotations

from django.db import DEFAULT_DB_ALIAS
from django.db.models import Prefetch, QuerySet

from .models import Form, Question, QuestionOption
from .ordering import live_only, sort_by_order


def _options_prefetch(include_removed: bool) -> Prefetch:
    options = QuestionOption.objects.order_by("order_key", "id")
    if not include_removed:
        options = options.filter(order_key__gt=0)
    return Prefetch("options", queryset=options, to_attr="tree_options")


def _questions_prefetch(include_removed: bool) -> Prefetch:
    questions = Question.objects.order_by("order_key", "id").prefetch_related(
        _options_prefetch(include_removed)
    )
    if not include_removed:
        questions = questions.filter(order_key__gt=0)
    return Prefetch("questions", queryset=questions, to_attr="tree_questions")


def with_tree(queryset: QuerySet, *, include_removed: bool = False) -> QuerySet:
    """Prefetch ``tree_questions`` and their ``tree_options`` onto each form."""

    return queryset.prefetch_related(_questions_prefetch(include_removed))


def load_form_tree(
    form_id: int,
    *,
    include_removed: bool = False,
    using: str = DEFAULT_DB_ALIAS,
) -> Form:
    """Return the form with its questions and options attached.

    The live view holds only nodes with a positive order key. The full view
    also holds removed nodes, listed after the live ones.
    """

    form = with_tree(Form.objects.using(using).filter(pk=form_id), include_removed=include_removed).get()
    if include_removed:
        form.tree_questions = sort_by_order(form.tree_questions)
        for question in form.tree_questions:
            question.tree_options = sort_by_order(question.tree_options)
    return form


def prune_removed(form: Form) -> Form:
    """Drop removed nodes from a tree loaded with ``include_removed=True``."""

    form.tree_questions = live_only(form.tree_questions)
    for question in form.tree_questions:
        question.tree_options = live_only(question.tree_options)
    return form
