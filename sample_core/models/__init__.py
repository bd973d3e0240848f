from .core import (
    TimeStampedModel,
    Client,
    UserRole,
    SampleBatch,
    Sample,
    IntakeChecklist,
    SequenceCounter,
    AuditLog,
    WorkflowTransition,
)
from .approvals import ApprovalLedgerEntry, SampleIdChangeRequest
from .artifacts import ReagentCalculation, ReagentCalculationVersion
from .documents import LockedDocument, LetterOfOrder, Report, DocumentSignature

__all__ = [
    "TimeStampedModel",
    "Client",
    "UserRole",
    "SampleBatch",
    "Sample",
    "IntakeChecklist",
    "SequenceCounter",
    "AuditLog",
    "WorkflowTransition",
    "ApprovalLedgerEntry",
    "SampleIdChangeRequest",
    "ReagentCalculation",
    "ReagentCalculationVersion",
    "LockedDocument",
    "LetterOfOrder",
    "Report",
    "DocumentSignature",
]
