# Generated manually for initial schema.
from __future__ import annotations

import uuid

from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Form",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("title", models.CharField(max_length=100)),
                ("description", models.TextField(blank=True)),
                ("is_active", models.BooleanField(default=True)),
                ("owner_id", models.IntegerField(db_index=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={"ordering": ["-updated_at", "id"]},
        ),
        migrations.CreateModel(
            name="Question",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "kind",
                    models.CharField(
                        choices=[("text", "Text"), ("choice", "Choice"), ("file", "File")],
                        max_length=16,
                    ),
                ),
                ("text", models.CharField(max_length=500)),
                ("is_required", models.BooleanField(default=False)),
                ("order_key", models.IntegerField(default=-1)),
                (
                    "form",
                    models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="questions", to="forms.form"),
                ),
            ],
            options={
                "ordering": ["order_key", "id"],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("order_key__gt", 0)),
                        fields=("form", "order_key"),
                        name="question_live_order_unique",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="QuestionOption",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("text", models.CharField(max_length=500)),
                ("order_key", models.IntegerField(default=-1)),
                (
                    "question",
                    models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="options", to="forms.question"),
                ),
            ],
            options={
                "ordering": ["order_key", "id"],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("order_key__gt", 0)),
                        fields=("question", "order_key"),
                        name="option_live_order_unique",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="FormResponse",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("respondent_id", models.IntegerField(db_index=True)),
                ("submitted_at", models.DateTimeField(auto_now_add=True)),
                (
                    "form",
                    models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="responses", to="forms.form"),
                ),
            ],
            options={"ordering": ["-submitted_at", "-id"]},
        ),
        migrations.CreateModel(
            name="ResponseAnswer",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("text_value", models.TextField(blank=True, null=True)),
                ("file_path", models.CharField(blank=True, max_length=1024, null=True)),
                (
                    "option",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.RESTRICT,
                        related_name="answers",
                        to="forms.questionoption",
                    ),
                ),
                (
                    "question",
                    models.ForeignKey(on_delete=django.db.models.deletion.RESTRICT, related_name="answers", to="forms.question"),
                ),
                (
                    "response",
                    models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="answers", to="forms.formresponse"),
                ),
            ],
            options={
                "ordering": ["id"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(
                            models.Q(("file_path__isnull", True), ("option__isnull", False), ("text_value__isnull", True)),
                            models.Q(("file_path__isnull", True), ("option__isnull", True), ("text_value__isnull", False)),
                            models.Q(("file_path__isnull", False), ("option__isnull", True), ("text_value__isnull", True)),
                            _connector="OR",
                        ),
                        name="answer_single_value",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="ResponseSubmission",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("client_reference", models.UUIDField(default=uuid.uuid4, editable=False, unique=True)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("processing", "Processing"),
                            ("completed", "Completed"),
                            ("failed", "Failed"),
                        ],
                        default="pending",
                        max_length=32,
                    ),
                ),
                ("respondent_id", models.IntegerField()),
                ("request_payload", models.JSONField(default=dict)),
                ("error_code", models.CharField(blank=True, max_length=64)),
                ("error_message", models.TextField(blank=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "form",
                    models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="submissions", to="forms.form"),
                ),
                (
                    "response",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="submissions",
                        to="forms.formresponse",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [models.Index(fields=["status"], name="submission_status_idx")],
            },
        ),
    ]
