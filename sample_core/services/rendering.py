# sample_core/services/rendering.py
"""
Document rendering backend.

The ledger treats a renderer as a pure function (template + payload -> bytes)
and hashes whatever it returns. Swap the backend with settings.DOCUMENT_RENDERER.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Any, Mapping

from django.conf import settings
from django.template.loader import render_to_string
from django.utils.module_loading import import_string


class TemplateRenderer:
    """
    Renders Django templates to UTF-8 bytes.
    """

    content_type = "text/html; charset=utf-8"
    extension = "html"

    def render(self, template_name: str, context: Mapping[str, Any]) -> bytes:
        return render_to_string(template_name, dict(context)).encode("utf-8")


@lru_cache(maxsize=None)
def _renderer_class(path: str):
    return import_string(path)


def get_renderer():
    path = getattr(settings, "DOCUMENT_RENDERER", "sample_core.services.rendering.TemplateRenderer")
    return _renderer_class(path)()
