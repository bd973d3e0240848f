# sample_core/apps.py

from django.apps import AppConfig
import logging

logger = logging.getLogger(__name__)


class SampleCoreConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "sample_core"
    verbose_name = "Sample lifecycle"

    def ready(self):
        logger.debug("Sample lifecycle engine loaded.")
