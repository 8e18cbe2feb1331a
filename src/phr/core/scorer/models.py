"""Response models for the remote risk scorer."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class RiskAssessment:
    """Risk level and category returned by the scorer."""

    risk_level: int
    risk_category: str

    @property
    def summary(self) -> str:
        return f"Risk Category: {self.risk_category} (Level {self.risk_level})"

    def to_dict(self) -> dict[str, Any]:
        return {"risk_level": self.risk_level, "risk_category": self.risk_category}
