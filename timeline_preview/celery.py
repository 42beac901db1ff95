import os
from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "timeline_preview.settings")

# Owns the broker configuration (CELERY_* settings) and the producer pool
# shared by request handlers; the worker consumes through videos.queue.
celery_app = Celery("timeline_preview")
celery_app.config_from_object("django.conf:settings", namespace="CELERY")
