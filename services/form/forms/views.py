"""API views for the form service."""
from __future__ import annotations

import uuid
from dataclasses import asdict
from typing import Dict

from django.db.models import Count, Q
from django.utils import timezone
from rest_framework import exceptions, mixins, status, viewsets
from rest_framework.decorators import action, api_view
from rest_framework.request import Request
from rest_framework.response import Response

from .exceptions import IntegrityViolation, NotFoundOrUnauthorized
from .models import Form, FormResponse, ResponseAnswer, ResponseSubmission
from .reconciliation import SubmittedForm, create_form, reconcile_form
from .reporting import summarize_responses
from .serializers import (
    FormListSerializer,
    FormResponseSerializer,
    FormSerializer,
    FormTreeInputSerializer,
    ResponseAnswerSerializer,
    ResponseInputSerializer,
    ResponseSubmissionRequestSerializer,
    ResponseSubmissionSerializer,
)
from .submissions import submit_response
from .tasks import process_response_submission
from .trees import load_form_tree, prune_removed
from .validation import CandidateAnswer

TRUTHY = {"1", "true", "yes"}


def _caller_id(request: Request) -> int:
    user = request.user
    if user is None or not user.is_authenticated:
        raise exceptions.NotAuthenticated()
    return user.id


def _flag(request: Request, name: str) -> bool:
    return request.query_params.get(name, "").lower() in TRUTHY


def _owned_form(form_id: int, owner_id: int) -> Form:
    form = Form.objects.filter(pk=form_id, owner_id=owner_id).first()
    if form is None:
        raise NotFoundOrUnauthorized("Form not found or unauthorized", entity="form", entity_id=form_id)
    return form


def _responses_queryset():
    return FormResponse.objects.prefetch_related("answers__question", "answers__option")


class FormViewSet(viewsets.GenericViewSet):
    queryset = Form.objects.all()
    serializer_class = FormSerializer
    lookup_value_regex = "[0-9]+"

    def list(self, request: Request) -> Response:
        forms = Form.objects.annotate(
            live_question_count=Count("questions", filter=Q(questions__order_key__gt=0), distinct=True),
            response_count=Count("responses", distinct=True),
        ).order_by("-updated_at", "id")
        if request.user is not None and request.user.is_authenticated and not _flag(request, "all"):
            forms = forms.filter(owner_id=request.user.id)
        return Response(FormListSerializer(forms, many=True).data)

    def create(self, request: Request) -> Response:
        owner_id = _caller_id(request)
        payload = FormTreeInputSerializer(data=request.data)
        payload.is_valid(raise_exception=True)
        form = create_form(owner_id, SubmittedForm.from_data(payload.validated_data))
        return Response(FormSerializer(prune_removed(form)).data, status=status.HTTP_201_CREATED)

    def retrieve(self, request: Request, pk: str) -> Response:
        include_removed = _flag(request, "include_removed")
        if include_removed:
            _owned_form(int(pk), _caller_id(request))
        try:
            form = load_form_tree(int(pk), include_removed=include_removed)
        except Form.DoesNotExist:
            raise NotFoundOrUnauthorized("Form not found", entity="form", entity_id=int(pk)) from None
        return Response(FormSerializer(form).data)

    def update(self, request: Request, pk: str) -> Response:
        owner_id = _caller_id(request)
        payload = FormTreeInputSerializer(data=request.data)
        payload.is_valid(raise_exception=True)
        form = reconcile_form(int(pk), owner_id, SubmittedForm.from_data(payload.validated_data))
        if not _flag(request, "include_removed"):
            prune_removed(form)
        return Response(FormSerializer(form).data)

    def destroy(self, request: Request, pk: str) -> Response:
        form = _owned_form(int(pk), _caller_id(request))
        form.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=["get", "post"], url_path="responses")
    def responses(self, request: Request, pk: str) -> Response:
        """List responses (owner) or submit a new one (any caller)."""

        caller_id = _caller_id(request)
        if request.method == "POST":
            payload = ResponseInputSerializer(data=request.data)
            payload.is_valid(raise_exception=True)
            answers = [CandidateAnswer.from_data(answer) for answer in payload.validated_data["answers"]]
            response = submit_response(int(pk), caller_id, answers)
            stored = _responses_queryset().get(pk=response.pk)
            return Response(FormResponseSerializer(stored).data, status=status.HTTP_201_CREATED)

        form = _owned_form(int(pk), caller_id)
        responses = _responses_queryset().filter(form=form)
        return Response(FormResponseSerializer(responses, many=True).data)

    @action(detail=True, methods=["get"], url_path=r"responses/(?P<response_id>[0-9]+)")
    def response_detail(self, request: Request, pk: str, response_id: str) -> Response:
        form = _owned_form(int(pk), _caller_id(request))
        response = _responses_queryset().filter(form=form, pk=int(response_id)).first()
        if response is None:
            raise NotFoundOrUnauthorized("Response not found", entity="response", entity_id=int(response_id))
        return Response(FormResponseSerializer(response).data)

    @action(detail=True, methods=["get"], url_path=r"responses/(?P<response_id>[0-9]+)/answers")
    def response_answers(self, request: Request, pk: str, response_id: str) -> Response:
        """Answers of one response in question order; removed questions come last."""

        form = _owned_form(int(pk), _caller_id(request))
        answers = sorted(
            ResponseAnswer.objects.filter(response_id=int(response_id), response__form=form).select_related(
                "question", "option"
            ),
            key=lambda answer: (answer.question.order_key <= 0, answer.question.order_key, answer.question_id),
        )
        return Response(ResponseAnswerSerializer(answers, many=True).data)

    @action(detail=True, methods=["get"], url_path="summary")
    def summary(self, request: Request, pk: str) -> Response:
        """Aggregated answers per question, removed questions included and flagged."""

        form = _owned_form(int(pk), _caller_id(request))
        return Response(asdict(summarize_responses(form.pk)))


class ResponseSubmissionViewSet(
    mixins.CreateModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    queryset = ResponseSubmission.objects.select_related("response").prefetch_related(
        "response__answers__question", "response__answers__option"
    )
    serializer_class = ResponseSubmissionSerializer
    lookup_field = "id"
    lookup_value_regex = r"[0-9a-f\-]+"

    def retrieve(self, request: Request, *args, **kwargs):  # type: ignore[override]
        """Visible to the respondent who queued it and to the owner of the form."""

        caller_id = _caller_id(request)
        try:
            submission_id = uuid.UUID(kwargs["id"])
        except ValueError:
            raise NotFoundOrUnauthorized("Submission not found", entity="submission", entity_id=kwargs["id"]) from None
        submission = self.get_queryset().filter(id=submission_id).select_related("form").first()
        if submission is None or caller_id not in {submission.respondent_id, submission.form.owner_id}:
            raise NotFoundOrUnauthorized("Submission not found", entity="submission", entity_id=kwargs["id"])
        return Response(self.get_serializer(submission).data)

    def create(self, request: Request, *args, **kwargs):  # type: ignore[override]
        respondent_id = _caller_id(request)
        payload_serializer = ResponseSubmissionRequestSerializer(data=request.data)
        payload_serializer.is_valid(raise_exception=True)
        data = payload_serializer.validated_data
        request_payload = {"answers": data["answers"]}

        client_reference = data.get("client_reference")
        if client_reference is not None:
            submission = ResponseSubmission.objects.filter(client_reference=client_reference).first()
            if submission is not None and submission.respondent_id != respondent_id:
                raise IntegrityViolation(
                    "Client reference is already used by another submission",
                    entity="submission",
                    entity_id=str(client_reference),
                )
            if submission:
                if submission.status == ResponseSubmission.FAILED:
                    submission.status = ResponseSubmission.PENDING
                    submission.error_code = ""
                    submission.error_message = ""
                    submission.response = None
                    submission.completed_at = None
                    submission.request_payload = request_payload
                    submission.save(
                        update_fields=[
                            "status",
                            "error_code",
                            "error_message",
                            "response",
                            "completed_at",
                            "request_payload",
                            "updated_at",
                        ]
                    )
                if submission.status in {ResponseSubmission.PENDING, ResponseSubmission.PROCESSING}:
                    process_response_submission.delay(str(submission.id))
                serializer = self.get_serializer(submission)
                status_code = (
                    status.HTTP_200_OK
                    if submission.status == ResponseSubmission.COMPLETED
                    else status.HTTP_202_ACCEPTED
                )
                return Response(serializer.data, status=status_code)

        if not Form.objects.filter(pk=data["form_id"]).exists():
            raise NotFoundOrUnauthorized("Form not found", entity="form", entity_id=data["form_id"])
        submission = ResponseSubmission.objects.create(
            client_reference=client_reference or uuid.uuid4(),
            form_id=data["form_id"],
            respondent_id=respondent_id,
            request_payload=request_payload,
        )
        process_response_submission.delay(str(submission.id))
        serializer = self.get_serializer(submission)
        return Response(serializer.data, status=status.HTTP_202_ACCEPTED)


@api_view(["GET"])
def health(request: Request):  # type: ignore[override]
    """Readiness endpoint for orchestration tooling."""

    return Response({"status": "ok"})


@api_view(["GET"])
def queue_metrics(request: Request) -> Response:
    """Submission queue depth, optionally for one form via ``?form_id=``.

    ``failed_by_code`` counts failed submissions per error code.
    """

    submissions = ResponseSubmission.objects.all()
    form_id = request.query_params.get("form_id")
    if form_id is not None:
        if not form_id.isdigit():
            raise exceptions.ValidationError({"form_id": "Must be a form id."})
        submissions = submissions.filter(form_id=int(form_id))

    totals: Dict[str, int] = {value: 0 for value, _ in ResponseSubmission.STATUS_CHOICES}
    for entry in submissions.values("status").order_by().annotate(total=Count("id")):
        if entry["status"] in totals:
            totals[entry["status"]] = entry["total"]

    failures = (
        submissions.filter(status=ResponseSubmission.FAILED)
        .values("error_code")
        .order_by("error_code")
        .annotate(total=Count("id"))
    )

    oldest_pending = (
        submissions.filter(status__in=[ResponseSubmission.PENDING, ResponseSubmission.PROCESSING])
        .order_by("created_at")
        .first()
    )
    wait_seconds = 0
    if oldest_pending is not None:
        wait_seconds = max(int((timezone.now() - oldest_pending.created_at).total_seconds()), 0)

    return Response(
        {
            "form_id": int(form_id) if form_id is not None else None,
            **totals,
            "failed_by_code": {entry["error_code"] or "unknown": entry["total"] for entry in failures},
            "oldest_pending_seconds": wait_seconds,
        }
    )
