"""Typed failures of an analysis submission.

Every variant has a stable ``kind`` for programmatic handling and a
human-readable ``message`` for display.
"""

from __future__ import annotations

from typing import Any

PENDING_TX_WARNING = (
    "A transaction from this attempt may still be confirmed; check it before retrying."
)


class SubmissionError(Exception):
    """Base exception for AnalysisOrchestrator.submit failures."""

    kind = "submission_error"
    recoverable = True

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    @property
    def tx_hash(self) -> str | None:
        return self.details.get("tx_hash")

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "message": self.message,
            "recoverable": self.recoverable,
            **self.details,
        }


class InvalidInput(SubmissionError):
    """One or more vital signs are missing, non-numeric or out of range."""

    kind = "invalid_input"


class InsufficientBalance(SubmissionError):
    """Balance is below the analysis threshold."""

    kind = "insufficient_balance"


class SessionNotReadyForSubmission(SubmissionError):
    """No wallet connected on the target network."""

    kind = "session_not_ready"


class ScoringUnavailable(SubmissionError):
    """The scorer could not be reached or answered badly."""

    kind = "scoring_unavailable"


class ScoringIndeterminate(SubmissionError):
    """The scorer answered without a risk level."""

    kind = "scoring_indeterminate"


class EncryptionFailed(SubmissionError):
    """A value could not be encrypted; indicates bad data upstream."""

    kind = "encoding_error"
    recoverable = False


class SubmissionRejected(SubmissionError):
    """The ledger transaction was refused before broadcast."""

    kind = "submission_rejected"


class ConfirmationFailed(SubmissionError):
    """The transaction was sent but not confirmed (reverted or timed out)."""

    kind = "confirmation_failed"


class AlreadyInProgress(SubmissionError):
    """Another submission for this session has not finished yet."""

    kind = "already_in_progress"
