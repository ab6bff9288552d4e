"""Payload builders shared by the form service tests."""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

from forms.models import Form, Question
from forms.reconciliation import SubmittedForm, create_form

OWNER_ID = 7
OTHER_OWNER_ID = 8
RESPONDENT_ID = 21


def option(text: str, id: Any = None, order_key: Optional[int] = None) -> Dict[str, Any]:
    data: Dict[str, Any] = {"text": text}
    if id is not None:
        data["id"] = id
    if order_key is not None:
        data["order_key"] = order_key
    return data


def question(
    text: str,
    kind: str = Question.TEXT,
    id: Any = None,
    required: bool = False,
    options: Iterable[Dict[str, Any]] = (),
    order_key: Optional[int] = None,
) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "kind": kind,
        "text": text,
        "is_required": required,
        "options": list(options),
    }
    if id is not None:
        data["id"] = id
    if order_key is not None:
        data["order_key"] = order_key
    return data


def tree(questions: Iterable[Dict[str, Any]] = (), title: str = "Onboarding", **extra: Any) -> Dict[str, Any]:
    data: Dict[str, Any] = {"title": title, "description": "", "is_active": True, "questions": list(questions)}
    data.update(extra)
    return data


def submitted(questions: Iterable[Dict[str, Any]] = (), **extra: Any) -> SubmittedForm:
    return SubmittedForm.from_data(tree(questions, **extra))


def build_form(questions: Iterable[Dict[str, Any]] = (), owner_id: int = OWNER_ID, **extra: Any) -> Form:
    return create_form(owner_id, submitted(questions, **extra))


def order_keys(form_id: int) -> Dict[int, int]:
    return dict(Question.objects.filter(form_id=form_id).values_list("id", "order_key"))


def live_texts(form: Form) -> List[str]:
    return [q.text for q in form.tree_questions if q.order_key > 0]
