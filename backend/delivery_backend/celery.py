"""Celery application for background dispatch work (offer expiry, async broadcasts)."""

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "delivery_backend.settings.settings")

app = Celery("delivery_backend")
app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()
