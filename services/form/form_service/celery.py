"""Celery application that drains the queued response submissions."""
from __future__ import annotations

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "form_service.settings")

app = Celery("form_service")
# Every CELERY_* Django setting configures the worker.
app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()
