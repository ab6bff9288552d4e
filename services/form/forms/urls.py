"""Route registration for the form service."""
from __future__ import annotations

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import FormViewSet, ResponseSubmissionViewSet, health, queue_metrics

router = DefaultRouter()
router.register("forms", FormViewSet, basename="form")
router.register("submissions", ResponseSubmissionViewSet, basename="response-submission")

urlpatterns = [
    path("healthz/", health, name="form-health"),
    path("submissions/queue-metrics/", queue_metrics, name="submission-queue-metrics"),
    path("", include(router.urls)),
]
