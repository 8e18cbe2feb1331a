"""Ledger access: the on-chain health records contract."""

from __future__ import annotations

from phr.core.ledger.abi import HEALTH_RECORDS_ABI
from phr.core.ledger.contract import (
    HealthRecordsLedger,
    LedgerError,
    LedgerReceipt,
    LedgerRecord,
    LedgerRejectedError,
    LedgerRevertedError,
    LedgerTimeoutError,
)

__all__ = [
    "HEALTH_RECORDS_ABI",
    "HealthRecordsLedger",
    "LedgerError",
    "LedgerReceipt",
    "LedgerRecord",
    "LedgerRejectedError",
    "LedgerRevertedError",
    "LedgerTimeoutError",
]
