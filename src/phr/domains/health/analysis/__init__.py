"""Analysis submission: validate, score, encrypt, record on the ledger."""

from __future__ import annotations

from phr.domains.health.analysis.errors import (
    AlreadyInProgress,
    ConfirmationFailed,
    EncryptionFailed,
    InsufficientBalance,
    InvalidInput,
    ScoringIndeterminate,
    ScoringUnavailable,
    SessionNotReadyForSubmission,
    SubmissionError,
    SubmissionRejected,
)
from phr.domains.health.analysis.models import EncryptedRecord, SubmissionReceipt
from phr.domains.health.analysis.orchestrator import AnalysisOrchestrator

__all__ = [
    "AlreadyInProgress",
    "AnalysisOrchestrator",
    "ConfirmationFailed",
    "EncryptedRecord",
    "EncryptionFailed",
    "InsufficientBalance",
    "InvalidInput",
    "ScoringIndeterminate",
    "ScoringUnavailable",
    "SessionNotReadyForSubmission",
    "SubmissionError",
    "SubmissionReceipt",
    "SubmissionRejected",
]
