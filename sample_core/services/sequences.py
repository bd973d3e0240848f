# sample_core/services/sequences.py
"""
Named sequence allocator.

Counters live in SequenceCounter rows ({name, next_number}). Every allocation
reads and bumps the row under select_for_update, so concurrent callers queue on
the row lock instead of racing on a read-then-write.
"""
from __future__ import annotations

import logging

from django.db import transaction

from sample_core.models import SequenceCounter

logger = logging.getLogger(__name__)


def _locked_counter(name: str) -> SequenceCounter:
    # get_or_create retries the read when a concurrent insert wins the unique
    # constraint, so the row is initialized exactly once.
    counter, created = SequenceCounter.objects.get_or_create(name=name, defaults={"next_number": 1})
    if created:
        logger.info("Initialized sequence %s", name)
    return SequenceCounter.objects.select_for_update().get(pk=counter.pk)


def allocate(name: str) -> int:
    """
    Return the next ordinal of the named sequence.

    Runs inside the caller's transaction when one is open, so the row lock is
    held until the allocating transaction commits.
    """
    if not name:
        raise ValueError("Sequence name is required.")

    with transaction.atomic():
        counter = _locked_counter(name)
        ordinal = counter.next_number
        SequenceCounter.objects.filter(pk=counter.pk).update(next_number=ordinal + 1)

    return ordinal


def ensure_at_least(name: str, number: int) -> int:
    """
    Make sure the sequence never hands out `number` or anything below it.
    Returns the resulting next_number.
    """
    with transaction.atomic():
        counter = _locked_counter(name)
        if counter.next_number <= number:
            SequenceCounter.objects.filter(pk=counter.pk).update(next_number=number + 1)
            return number + 1
        return counter.next_number


def peek(name: str) -> int:
    """
    Next ordinal without allocating it (1 for an unknown sequence).
    """
    value = SequenceCounter.objects.filter(name=name).values_list("next_number", flat=True).first()
    return value or 1
