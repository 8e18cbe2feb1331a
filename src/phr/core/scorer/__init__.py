"""Remote risk scorer client."""

from __future__ import annotations

from phr.core.scorer.client import (
    RiskScorerClient,
    ScorerConnectionError,
    ScorerError,
    ScorerIndeterminateError,
    ScorerResponseError,
)
from phr.core.scorer.models import RiskAssessment

__all__ = [
    "RiskAssessment",
    "RiskScorerClient",
    "ScorerConnectionError",
    "ScorerError",
    "ScorerIndeterminateError",
    "ScorerResponseError",
]
