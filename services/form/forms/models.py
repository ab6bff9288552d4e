"""Database models for the form service."""
from __future__ import annotations

import uuid

from django.db import models
from django.db.models import Q
from django.utils import timezone

from .ordering import REMOVED_ORDER_KEY, is_live


class Form(models.Model):
    """A form definition owned by a single user."""

    title = models.CharField(max_length=100)
    description = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)
    owner_id = models.IntegerField(db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-updated_at", "id"]

    def __str__(self) -> str:
        return self.title


class Question(models.Model):
    """A question on a form.

    ``order_key`` is both the position among live siblings (1..N) and the
    removal marker: rows at or below zero are removed from the live form but
    kept so that earlier answers still resolve.
    """

    TEXT = "text"
    CHOICE = "choice"
    FILE = "file"

    KIND_CHOICES = [
        (TEXT, "Text"),
        (CHOICE, "Choice"),
        (FILE, "File"),
    ]

    form = models.ForeignKey(Form, related_name="questions", on_delete=models.CASCADE)
    kind = models.CharField(max_length=16, choices=KIND_CHOICES)
    text = models.CharField(max_length=500)
    is_required = models.BooleanField(default=False)
    order_key = models.IntegerField(default=REMOVED_ORDER_KEY)

    class Meta:
        ordering = ["order_key", "id"]
        constraints = [
            models.UniqueConstraint(
                fields=["form", "order_key"],
                condition=Q(order_key__gt=0),
                name="question_live_order_unique",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.text} ({self.kind})"

    @property
    def is_live(self) -> bool:
        return is_live(self.order_key)


class QuestionOption(models.Model):
    """A selectable option of a choice question."""

    question = models.ForeignKey(Question, related_name="options", on_delete=models.CASCADE)
    text = models.CharField(max_length=500)
    order_key = models.IntegerField(default=REMOVED_ORDER_KEY)

    class Meta:
        ordering = ["order_key", "id"]
        constraints = [
            models.UniqueConstraint(
                fields=["question", "order_key"],
                condition=Q(order_key__gt=0),
                name="option_live_order_unique",
            ),
        ]

    def __str__(self) -> str:
        return self.text

    @property
    def is_live(self) -> bool:
        return is_live(self.order_key)


class FormResponse(models.Model):
    """One completed submission of a form. Never modified after creation."""

    form = models.ForeignKey(Form, related_name="responses", on_delete=models.CASCADE)
    respondent_id = models.IntegerField(db_index=True)
    submitted_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-submitted_at", "-id"]

    def __str__(self) -> str:
        return f"Response {self.pk} to form {self.form_id}"


class ResponseAnswer(models.Model):
    """An answer to one question, shaped by the question kind at submission time.

    Question and option references use RESTRICT: they can only disappear
    together with the whole form, which also cascades through the response.
    """

    response = models.ForeignKey(FormResponse, related_name="answers", on_delete=models.CASCADE)
    question = models.ForeignKey(Question, related_name="answers", on_delete=models.RESTRICT)
    option = models.ForeignKey(
        QuestionOption,
        related_name="answers",
        on_delete=models.RESTRICT,
        null=True,
        blank=True,
    )
    text_value = models.TextField(null=True, blank=True)
    file_path = models.CharField(max_length=1024, null=True, blank=True)

    class Meta:
        ordering = ["id"]
        constraints = [
            models.CheckConstraint(
                condition=(
                    Q(option__isnull=False, text_value__isnull=True, file_path__isnull=True)
                    | Q(option__isnull=True, text_value__isnull=False, file_path__isnull=True)
                    | Q(option__isnull=True, text_value__isnull=True, file_path__isnull=False)
                ),
                name="answer_single_value",
            ),
        ]

    def __str__(self) -> str:
        return f"Answer to question {self.question_id}"


class ResponseSubmission(models.Model):
    """Queue-backed submission used to absorb bursts of responses."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    STATUS_CHOICES = [
        (PENDING, "Pending"),
        (PROCESSING, "Processing"),
        (COMPLETED, "Completed"),
        (FAILED, "Failed"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    client_reference = models.UUIDField(default=uuid.uuid4, unique=True, editable=False)
    status = models.CharField(max_length=32, choices=STATUS_CHOICES, default=PENDING)
    form = models.ForeignKey(Form, related_name="submissions", on_delete=models.CASCADE)
    respondent_id = models.IntegerField()
    response = models.ForeignKey(
        FormResponse,
        on_delete=models.SET_NULL,
        related_name="submissions",
        null=True,
        blank=True,
    )
    request_payload = models.JSONField(default=dict)
    error_code = models.CharField(max_length=64, blank=True)
    error_message = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status"], name="submission_status_idx"),
        ]

    def mark_processing(self) -> None:
        self.status = self.PROCESSING
        self.save(update_fields=["status", "updated_at"])

    def mark_completed(self, response: FormResponse) -> None:
        self.response = response
        self.status = self.COMPLETED
        self.completed_at = timezone.now()
        self.error_code = ""
        self.error_message = ""
        self.save(
            update_fields=[
                "response",
                "status",
                "completed_at",
                "error_code",
                "error_message",
                "updated_at",
            ]
        )

    def mark_failed(self, code: str, message: str) -> None:
        self.status = self.FAILED
        self.error_code = code
        self.error_message = message
        self.completed_at = timezone.now()
        self.save(update_fields=["status", "error_code", "error_message", "completed_at", "updated_at"])
