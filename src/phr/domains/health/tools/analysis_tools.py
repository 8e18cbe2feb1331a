"""MCP tools for vital-sign analysis and encrypted record lookup."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

if TYPE_CHECKING:
    from phr.core.ledger.contract import HealthRecordsLedger
    from phr.core.wallet.session import WalletSessionMachine
    from phr.domains.health.analysis.orchestrator import AnalysisOrchestrator

from phr.core.ledger.contract import LedgerError
from phr.domains.health.analysis.errors import SubmissionError
from phr.domains.health.domain_logic.vitals import NORMAL_RANGES, validate_vital_signs

logger = logging.getLogger(__name__)

ADVICE = (
    "Your health risk has been calculated. "
    "Please consult with a healthcare professional for interpretation."
)

VitalInput = str | int | float | None


def register_analysis_tools(
    mcp: FastMCP,
    orchestrator: AnalysisOrchestrator,
    ledger: HealthRecordsLedger,
    machine: WalletSessionMachine,
) -> None:
    """Register analysis tools on the MCP server."""

    @mcp.tool
    async def check_vitals(
        ctx: Context,
        heart_rate: VitalInput = None,
        blood_pressure: VitalInput = None,
        oxygen_level: VitalInput = None,
    ) -> str:
        """Check vital-sign inputs without submitting them.

        Args:
            heart_rate: Heart rate in BPM (normal 60-100).
            blood_pressure: Systolic blood pressure in mmHg (normal 90-140).
            oxygen_level: Blood oxygen saturation in % (normal 95-100).
        """
        result = validate_vital_signs(heart_rate, blood_pressure, oxygen_level)
        return json.dumps({
            "status": "ok",
            "validation": result.status.value,
            "issues": result.issues_dict(),
            "normal_ranges": {
                name: {"low": low, "high": high, "unit": unit}
                for name, (low, high, unit) in NORMAL_RANGES.items()
            },
        })

    @mcp.tool
    async def analyze_vitals(
        ctx: Context,
        heart_rate: VitalInput = None,
        blood_pressure: VitalInput = None,
        oxygen_level: VitalInput = None,
    ) -> str:
        """Score vital signs and record them, encrypted, on the ledger.

        The scorer sees the plaintext values; the ledger only receives
        Paillier ciphertexts of the three vitals and the risk level.

        Args:
            heart_rate: Heart rate in BPM.
            blood_pressure: Systolic blood pressure in mmHg.
            oxygen_level: Blood oxygen saturation in %.
        """
        await machine.process_events()
        try:
            receipt = await orchestrator.submit(heart_rate, blood_pressure, oxygen_level)
        except SubmissionError as exc:
            logger.info("analyze_vitals failed: %s", exc.kind)
            return json.dumps({"status": "error", **exc.to_dict()})

        return json.dumps({
            "status": "ok",
            "message": receipt.assessment.summary,
            "advice": ADVICE,
            "explorer_url": machine.network.tx_url(receipt.tx_hash),
            **receipt.to_dict(),
        })

    @mcp.tool
    async def get_health_record(ctx: Context, index: int, account: str = "") -> str:
        """Read a stored (encrypted) record from the ledger.

        Args:
            index: Record index for the account, starting at 0.
            account: Account address. Defaults to the connected account.
        """
        owner = account or machine.session.address
        if not owner:
            return json.dumps({
                "status": "error",
                "kind": "session_not_ready",
                "message": "Connect a wallet or pass an account address.",
            })
        try:
            record = await ledger.read_record(owner, index)
        except LedgerError as exc:
            return json.dumps({"status": "error", "kind": "ledger_error", "message": str(exc)})
        return json.dumps({"status": "ok", "index": index, "record": record.to_dict()})
