"""Health records contract client (web3).

Writes go through the wallet capability (``eth_sendTransaction``) so the
connected account signs them; confirmation polling and reads use the node
connection directly.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.exceptions import TimeExhausted
from web3.logs import DISCARD

from phr.core.crypto.paillier import ciphertext_to_bytes
from phr.core.ledger.abi import HEALTH_RECORDS_ABI
from phr.core.wallet.provider import WalletProvider, WalletRpcError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LedgerReceipt:
    """A confirmed ``submitHealthMetrics`` transaction."""

    tx_hash: str
    block_number: int | None
    record_index: int | None


@dataclass(frozen=True)
class LedgerRecord:
    """One stored record as returned by ``userHealthRecords``; ciphertexts only."""

    heart_rate: str
    blood_pressure: str
    oxygen_level: str
    risk_level: str
    user: str

    def to_dict(self) -> dict[str, str]:
        return {
            "heart_rate": self.heart_rate,
            "blood_pressure": self.blood_pressure,
            "oxygen_level": self.oxygen_level,
            "risk_level": self.risk_level,
            "user": self.user,
        }


class HealthRecordsLedger:
    """Client for the health records contract.

    Usage::

        ledger = HealthRecordsLedger.connect(settings.rpc_url, settings.contract_address, wallet)
        tx_hash = await ledger.submit_metrics(sender, hr, bp, ox, risk)
        receipt = await ledger.wait_for_confirmation(tx_hash, timeout=120)
    """

    def __init__(self, w3: Any, contract: Any, wallet: WalletProvider | None) -> None:
        self._w3 = w3
        self._contract = contract
        self._wallet = wallet

    @classmethod
    def connect(
        cls, rpc_url: str, contract_address: str, wallet: WalletProvider | None
    ) -> HealthRecordsLedger:
        w3 = AsyncWeb3(AsyncHTTPProvider(rpc_url))
        contract = w3.eth.contract(
            address=Web3.to_checksum_address(contract_address), abi=HEALTH_RECORDS_ABI
        )
        return cls(w3, contract, wallet)

    async def submit_metrics(
        self,
        sender: str,
        heart_rate: str,
        blood_pressure: str,
        oxygen_level: str,
        risk_level: str,
    ) -> str:
        """Send the four ciphertexts and return the transaction hash.

        Raises:
            LedgerRejectedError: The transaction was refused before broadcast.
        """
        if self._wallet is None:
            raise LedgerRejectedError("No wallet is available to sign the transaction.")

        args = [
            ciphertext_to_bytes(value)
            for value in (heart_rate, blood_pressure, oxygen_level, risk_level)
        ]
        try:
            tx = await self._contract.functions.submitHealthMetrics(*args).build_transaction(
                {"from": sender}
            )
            tx_hash = await self._wallet.request("eth_sendTransaction", [tx])
        except WalletRpcError as exc:
            logger.warning("Wallet refused health metrics transaction: %s", exc)
            raise LedgerRejectedError(f"Transaction was rejected by the wallet: {exc.message or exc}") from exc
        except Exception as exc:
            logger.exception("Failed to build or send health metrics transaction")
            raise LedgerRejectedError(f"Transaction could not be sent: {exc}") from exc

        if isinstance(tx_hash, (bytes, bytearray)):
            tx_hash = Web3.to_hex(tx_hash)
        if not tx_hash:
            raise LedgerRejectedError("Wallet returned no transaction hash.")
        logger.info("Health metrics transaction sent: %s", tx_hash)
        return str(tx_hash)

    async def wait_for_confirmation(self, tx_hash: str, timeout: float) -> LedgerReceipt:
        """Wait (at most ``timeout`` seconds) for the transaction to be mined.

        Raises:
            LedgerTimeoutError: No receipt within ``timeout``.
            LedgerRevertedError: Mined with a failed status.
            LedgerError: The node could not be queried.
        """
        try:
            receipt = await self._w3.eth.wait_for_transaction_receipt(tx_hash, timeout=timeout)
        except TimeExhausted as exc:
            raise LedgerTimeoutError(
                f"Transaction not confirmed within {timeout:g}s", tx_hash=tx_hash
            ) from exc
        except Exception as exc:
            logger.exception("Failed to fetch receipt for %s", tx_hash)
            raise LedgerError(f"Could not confirm transaction: {exc}", tx_hash=tx_hash) from exc

        if receipt.get("status") != 1:
            raise LedgerRevertedError("Transaction reverted", tx_hash=tx_hash)

        return LedgerReceipt(
            tx_hash=tx_hash,
            block_number=receipt.get("blockNumber"),
            record_index=self._record_index(receipt),
        )

    async def read_record(self, account: str, index: int) -> LedgerRecord:
        """Read one stored record for ``account``.

        Raises:
            LedgerError: The call failed (e.g. index out of range).
        """
        try:
            result = await self._contract.functions.userHealthRecords(
                Web3.to_checksum_address(account), index
            ).call()
        except Exception as exc:
            logger.warning("userHealthRecords(%s, %d) failed: %s", account, index, exc)
            raise LedgerError(f"Could not read record {index}: {exc}") from exc

        heart_rate, blood_pressure, oxygen_level, risk_level, user = result
        return LedgerRecord(
            heart_rate=Web3.to_hex(heart_rate),
            blood_pressure=Web3.to_hex(blood_pressure),
            oxygen_level=Web3.to_hex(oxygen_level),
            risk_level=Web3.to_hex(risk_level),
            user=str(user),
        )

    def _record_index(self, receipt: Any) -> int | None:
        events = self._contract.events.MetricsSubmitted().process_receipt(receipt, errors=DISCARD)
        if not events:
            return None
        return int(events[0]["args"]["recordIndex"])


# ------------------------------------------------------------------
# Exceptions
# ------------------------------------------------------------------

class LedgerError(Exception):
    """Base exception for ledger failures."""

    def __init__(self, message: str, *, tx_hash: str | None = None) -> None:
        super().__init__(message)
        self.tx_hash = tx_hash


class LedgerRejectedError(LedgerError):
    """Transaction refused before broadcast."""


class LedgerRevertedError(LedgerError):
    """Transaction mined but reverted."""


class LedgerTimeoutError(LedgerError):
    """Transaction not confirmed in time; it may still be mined later."""
