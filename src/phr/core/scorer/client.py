"""HTTP client for the remote risk scoring service.

The scorer receives three plaintext vital signs and answers with a risk level
and category::

    POST <scorer_url>
    {"heart_rate": 72, "blood_pressure": 118, "oxygen_level": 98}

    200 OK
    {"risk_level": 1, "risk_category": "Low"}
"""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from phr.core.scorer.models import RiskAssessment

logger = logging.getLogger(__name__)


class RiskScorerClient:
    """Async client for the risk scorer.

    Usage::

        scorer = RiskScorerClient(settings.scorer_url)
        assessment = await scorer.assess(72, 118, 98)
        assessment.risk_category  # "Low"

    Pass ``http_client`` to reuse a connection pool (or a mock transport in tests);
    otherwise a short-lived client is opened per call.
    """

    def __init__(
        self,
        url: str,
        *,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        self._url = url
        self._http = http_client
        self._timeout = timeout

    @property
    def url(self) -> str:
        return self._url

    async def assess(
        self, heart_rate: int, blood_pressure: int, oxygen_level: int
    ) -> RiskAssessment:
        """Score three vital signs.

        Raises:
            ScorerConnectionError: The request could not be completed.
            ScorerResponseError: Non-2xx status or a body that is not the expected JSON.
            ScorerIndeterminateError: Well-formed body without a risk level.
        """
        body = {
            "heart_rate": int(heart_rate),
            "blood_pressure": int(blood_pressure),
            "oxygen_level": int(oxygen_level),
        }
        response = await self._post(body)

        if not response.is_success:
            raise ScorerResponseError(
                f"Scorer returned HTTP {response.status_code}", status_code=response.status_code
            )

        try:
            data: Any = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise ScorerResponseError(f"Scorer returned invalid JSON: {exc}") from exc

        return _parse_assessment(data)

    async def _post(self, body: dict[str, int]) -> httpx.Response:
        logger.debug("Requesting risk score from %s", self._url)
        try:
            if self._http is not None:
                return await self._http.post(self._url, json=body, timeout=self._timeout)
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                return await client.post(self._url, json=body)
        except httpx.HTTPError as exc:
            logger.warning("Scorer request to %s failed: %s", self._url, exc)
            raise ScorerConnectionError(
                f"Could not reach the risk scorer: {exc.__class__.__name__}"
            ) from exc


def _parse_assessment(data: Any) -> RiskAssessment:
    if not isinstance(data, dict):
        raise ScorerResponseError(
            f"Expected JSON object from scorer, got {type(data).__name__}"
        )

    level = data.get("risk_level")
    if level is None:
        raise ScorerIndeterminateError("Risk level could not be determined.")
    if isinstance(level, float) and level.is_integer():
        level = int(level)
    if isinstance(level, bool) or not isinstance(level, int):
        raise ScorerResponseError(f"risk_level must be an integer, got {level!r}")

    category = data.get("risk_category")
    if category is None:
        category = "Unknown"
    return RiskAssessment(risk_level=level, risk_category=str(category))


# ------------------------------------------------------------------
# Exceptions
# ------------------------------------------------------------------

class ScorerError(Exception):
    """Base exception for RiskScorerClient errors."""


class ScorerConnectionError(ScorerError):
    """Could not reach the scorer."""


class ScorerResponseError(ScorerError):
    """Scorer answered with an error status or an unexpected body."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ScorerIndeterminateError(ScorerError):
    """Scorer answered, but without a risk level."""
