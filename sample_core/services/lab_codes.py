# sample_core/services/lab_codes.py
from __future__ import annotations

import re
from typing import Optional, Tuple

from django.conf import settings

from sample_core.models import Sample

from . import sequences

CODE_PATTERN = re.compile(r"^\s*([A-Za-z]+)[\s\-_]*0*(\d+)\s*$")

SEQUENCE_PREFIX = "lab_sample_code"


def default_prefix() -> str:
    return str(getattr(settings, "LAB_CODE_DEFAULT_PREFIX", "BML") or "BML").upper()


def prefix_for_group(workflow_group: Optional[str]) -> str:
    group = (workflow_group or "").strip().lower()
    prefixes = getattr(settings, "LAB_CODE_PREFIXES", {}) or {}
    return str(prefixes.get(group) or default_prefix()).upper()


def sequence_name(prefix: str) -> str:
    return f"{SEQUENCE_PREFIX}:{prefix.upper()}"


def format_code(prefix: str, ordinal: int, width: int = 3) -> str:
    """
    BML + 7 -> "BML-007"; ordinals past 999 widen ("BML-1000").
    """
    if ordinal < 1:
        raise ValueError("Ordinal must be positive.")
    return f"{prefix.upper()}-{ordinal:0{width}d}"


def parse_code(raw: str) -> Tuple[str, int]:
    """
    "bml 4", "BML-004", "BML004" -> ("BML", 4). Raises ValueError otherwise.
    """
    m = CODE_PATTERN.match(raw or "")
    if not m:
        raise ValueError(f"Not a lab sample code: {raw!r}")
    prefix, number = m.group(1).upper(), int(m.group(2))
    if number < 1:
        raise ValueError(f"Not a lab sample code: {raw!r}")
    return prefix, number


def normalize_code(raw: str) -> str:
    prefix, number = parse_code(raw)
    return format_code(prefix, number)


def code_in_use(code: str, *, exclude_sample_id: Optional[int] = None) -> bool:
    qs = Sample.objects.filter(lab_sample_code=code)
    if exclude_sample_id:
        qs = qs.exclude(pk=exclude_sample_id)
    return qs.exists()


def assign_lab_code(sample: Sample) -> Tuple[str, bool]:
    """
    Give a locked sample its lab code. First assignment wins: an existing code
    is returned unchanged. Ordinals already taken by a corrected code are skipped.

    Returns (code, newly_assigned).
    """
    if sample.lab_sample_code:
        return sample.lab_sample_code, False

    prefix = prefix_for_group(sample.workflow_group)
    name = sequence_name(prefix)

    while True:
        code = format_code(prefix, sequences.allocate(name))
        if not code_in_use(code):
            break

    Sample.objects.filter(pk=sample.pk).update(lab_sample_code=code)
    sample.lab_sample_code = code
    return code, True
