# bml_lims/celery.py
import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "bml_lims.settings")

app = Celery("bml_lims")
app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()
