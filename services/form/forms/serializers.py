"""Serializers for the form service."""
from __future__ import annotations

from typing import Any

from rest_framework import serializers

from .models import Form, FormResponse, Question, QuestionOption, ResponseAnswer, ResponseSubmission
from .ordering import is_live


class IdentityTokenField(serializers.Field):
    """A store key (integer) or a client-generated token (string)."""

    default_error_messages = {
        "invalid": "Must be an integer id or a string token.",
        "max_length": "Token is too long.",
    }

    def to_internal_value(self, data: Any) -> Any:
        if isinstance(data, bool) or not isinstance(data, (int, str)):
            self.fail("invalid")
        if isinstance(data, str) and len(data) > 64:
            self.fail("max_length")
        return data

    def to_representation(self, value: Any) -> Any:
        return value


class OptionInputSerializer(serializers.Serializer):
    id = IdentityTokenField(required=False, allow_null=True)
    text = serializers.CharField(max_length=500)
    order_key = serializers.IntegerField(required=False)


class QuestionInputSerializer(serializers.Serializer):
    id = IdentityTokenField(required=False, allow_null=True)
    kind = serializers.ChoiceField(choices=Question.KIND_CHOICES)
    text = serializers.CharField(max_length=500)
    is_required = serializers.BooleanField(default=False)
    order_key = serializers.IntegerField(required=False)
    options = OptionInputSerializer(many=True, default=list)


class FormTreeInputSerializer(serializers.Serializer):
    """A complete form definition as sent by the editor, questions in display order."""

    title = serializers.CharField(max_length=100)
    description = serializers.CharField(max_length=500, allow_blank=True, default="")
    is_active = serializers.BooleanField(default=True)
    questions = QuestionInputSerializer(many=True, default=list)


class QuestionOptionSerializer(serializers.ModelSerializer):
    is_live = serializers.BooleanField(read_only=True)

    class Meta:
        model = QuestionOption
        fields = ["id", "text", "order_key", "is_live"]


class QuestionSerializer(serializers.ModelSerializer):
    is_live = serializers.BooleanField(read_only=True)
    options = QuestionOptionSerializer(many=True, read_only=True, source="tree_options")

    class Meta:
        model = Question
        fields = ["id", "kind", "text", "is_required", "order_key", "is_live", "options"]


class FormSerializer(serializers.ModelSerializer):
    questions = QuestionSerializer(many=True, read_only=True, source="tree_questions")

    class Meta:
        model = Form
        fields = [
            "id",
            "title",
            "description",
            "is_active",
            "owner_id",
            "created_at",
            "updated_at",
            "questions",
        ]


class FormListSerializer(serializers.ModelSerializer):
    live_question_count = serializers.IntegerField(read_only=True)
    response_count = serializers.IntegerField(read_only=True)

    class Meta:
        model = Form
        fields = [
            "id",
            "title",
            "description",
            "is_active",
            "owner_id",
            "created_at",
            "updated_at",
            "live_question_count",
            "response_count",
        ]


class AnswerInputSerializer(serializers.Serializer):
    question_id = serializers.IntegerField()
    option_id = serializers.IntegerField(required=False, allow_null=True)
    text_value = serializers.CharField(required=False, allow_null=True, allow_blank=True, trim_whitespace=False)
    file_path = serializers.CharField(max_length=1024, required=False, allow_null=True, allow_blank=True)


class ResponseInputSerializer(serializers.Serializer):
    answers = AnswerInputSerializer(many=True)


class ResponseAnswerSerializer(serializers.ModelSerializer):
    question_text = serializers.CharField(source="question.text", read_only=True)
    question_kind = serializers.CharField(source="question.kind", read_only=True)
    question_is_removed = serializers.SerializerMethodField()
    option_text = serializers.SerializerMethodField()
    option_is_removed = serializers.SerializerMethodField()

    class Meta:
        model = ResponseAnswer
        fields = [
            "id",
            "question_id",
            "question_text",
            "question_kind",
            "question_is_removed",
            "option_id",
            "option_text",
            "option_is_removed",
            "text_value",
            "file_path",
        ]

    def get_question_is_removed(self, answer: ResponseAnswer) -> bool:
        return not is_live(answer.question.order_key)

    def get_option_text(self, answer: ResponseAnswer) -> str | None:
        return answer.option.text if answer.option_id is not None else None

    def get_option_is_removed(self, answer: ResponseAnswer) -> bool | None:
        if answer.option_id is None:
            return None
        return not is_live(answer.option.order_key)


class FormResponseSerializer(serializers.ModelSerializer):
    answers = ResponseAnswerSerializer(many=True, read_only=True)

    class Meta:
        model = FormResponse
        fields = ["id", "form_id", "respondent_id", "submitted_at", "answers"]


class ResponseSubmissionSerializer(serializers.ModelSerializer):
    response = FormResponseSerializer(read_only=True)

    class Meta:
        model = ResponseSubmission
        fields = [
            "id",
            "client_reference",
            "status",
            "form_id",
            "respondent_id",
            "response",
            "error_code",
            "error_message",
            "created_at",
            "updated_at",
            "completed_at",
        ]


class ResponseSubmissionRequestSerializer(serializers.Serializer):
    form_id = serializers.IntegerField()
    answers = AnswerInputSerializer(many=True)
    client_reference = serializers.UUIDField(required=False)
