"""Vital-sign input validation.

Turns raw form values (strings as typed, or numbers) into a ``VitalSigns``
value. A blank field is *incomplete*, not invalid: the caller can keep
waiting for input instead of showing an error.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

VITAL_MIN = 1
VITAL_MAX = 1000

VITAL_FIELDS = ("heart_rate", "blood_pressure", "oxygen_level")

# ASCII digits only: rejects "1_0" and non-Latin digit forms int() would accept.
_WHOLE_NUMBER = re.compile(r"[+-]?[0-9]+")

# Reference ranges shown next to each input; not enforced.
NORMAL_RANGES: dict[str, tuple[int, int, str]] = {
    "heart_rate": (60, 100, "BPM"),
    "blood_pressure": (90, 140, "mmHg"),
    "oxygen_level": (95, 100, "%"),
}


@dataclass(frozen=True)
class VitalSigns:
    """Three vital signs, each an integer in ``[1, 1000]``."""

    heart_rate: int
    blood_pressure: int
    oxygen_level: int

    def __post_init__(self) -> None:
        for name in VITAL_FIELDS:
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise TypeError(f"{name} must be an int")
            if not VITAL_MIN <= value <= VITAL_MAX:
                raise ValueError(f"{name} must be between {VITAL_MIN} and {VITAL_MAX}")


class ValidationStatus(str, Enum):
    COMPLETE = "complete"
    INCOMPLETE = "incomplete"
    INVALID = "invalid"


class IssueReason(str, Enum):
    MISSING = "missing"
    NON_NUMERIC = "non_numeric"
    OUT_OF_RANGE = "out_of_range"


@dataclass(frozen=True)
class FieldIssue:
    reason: IssueReason
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"reason": self.reason.value, "message": self.message}


@dataclass(frozen=True)
class ValidationResult:
    status: ValidationStatus
    vitals: VitalSigns | None = None
    issues: dict[str, FieldIssue] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status is ValidationStatus.COMPLETE

    def issues_dict(self) -> dict[str, dict[str, str]]:
        return {name: issue.to_dict() for name, issue in self.issues.items()}


def validate_vital_signs(
    heart_rate: Any, blood_pressure: Any, oxygen_level: Any
) -> ValidationResult:
    """Validate three raw inputs.

    Returns a COMPLETE result carrying ``VitalSigns`` only when every field is
    an integer within range. Any out-of-range or non-numeric field makes the
    result INVALID; otherwise a blank field makes it INCOMPLETE.
    """
    raw = dict(zip(VITAL_FIELDS, (heart_rate, blood_pressure, oxygen_level)))
    parsed: dict[str, int] = {}
    issues: dict[str, FieldIssue] = {}

    for name, value in raw.items():
        result = _parse_field(name, value)
        if isinstance(result, FieldIssue):
            issues[name] = result
        else:
            parsed[name] = result

    if any(issue.reason is not IssueReason.MISSING for issue in issues.values()):
        return ValidationResult(status=ValidationStatus.INVALID, issues=issues)
    if issues:
        return ValidationResult(status=ValidationStatus.INCOMPLETE, issues=issues)
    return ValidationResult(status=ValidationStatus.COMPLETE, vitals=VitalSigns(**parsed))


def _parse_field(name: str, value: Any) -> int | FieldIssue:
    label = name.replace("_", " ")

    if value is None or (isinstance(value, str) and not value.strip()):
        return FieldIssue(IssueReason.MISSING, f"Enter a {label}.")

    number: int | None = None
    if isinstance(value, bool):
        number = None
    elif isinstance(value, int):
        number = value
    elif isinstance(value, float):
        number = int(value) if value.is_integer() else None
    elif isinstance(value, str):
        text = value.strip()
        number = int(text) if _WHOLE_NUMBER.fullmatch(text) else None

    if number is None:
        return FieldIssue(IssueReason.NON_NUMERIC, f"{label.capitalize()} must be a whole number.")
    if not VITAL_MIN <= number <= VITAL_MAX:
        return FieldIssue(
            IssueReason.OUT_OF_RANGE,
            f"{label.capitalize()} must be between {VITAL_MIN} and {VITAL_MAX}.",
        )
    return number
