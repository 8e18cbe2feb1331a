"""End-to-end analysis submission.

One ``submit`` call is one attempt:

1. validate the three vital signs (no external calls on failure)
2. snapshot the wallet session and check the balance gate
3. score the plaintext vitals with the remote scorer
4. encrypt the vitals and the risk level (four independent ciphertexts)
5. send the ciphertexts to the ledger and wait, bounded, for confirmation
6. return the receipt

Every failure is raised as a ``SubmissionError`` subclass; nothing is retried.
"""

from __future__ import annotations

import asyncio
import logging
from decimal import Decimal
from typing import Any, Protocol

from phr.core.crypto.paillier import EncodingError, PaillierPublicKey
from phr.core.ledger.contract import (
    LedgerError,
    LedgerReceipt,
    LedgerRevertedError,
    LedgerTimeoutError,
)
from phr.core.scorer.client import ScorerError, ScorerIndeterminateError
from phr.core.scorer.models import RiskAssessment
from phr.core.wallet.session import WalletSessionMachine
from phr.domains.health.analysis.errors import (
    PENDING_TX_WARNING,
    AlreadyInProgress,
    ConfirmationFailed,
    EncryptionFailed,
    InsufficientBalance,
    InvalidInput,
    ScoringIndeterminate,
    ScoringUnavailable,
    SessionNotReadyForSubmission,
    SubmissionRejected,
)
from phr.domains.health.analysis.models import EncryptedRecord, SubmissionReceipt
from phr.domains.health.domain_logic.vitals import (
    ValidationStatus,
    VitalSigns,
    validate_vital_signs,
)

logger = logging.getLogger(__name__)


class RiskScorer(Protocol):
    async def assess(
        self, heart_rate: int, blood_pressure: int, oxygen_level: int
    ) -> RiskAssessment: ...


class LedgerWriter(Protocol):
    async def submit_metrics(
        self,
        sender: str,
        heart_rate: str,
        blood_pressure: str,
        oxygen_level: str,
        risk_level: str,
    ) -> str: ...

    async def wait_for_confirmation(self, tx_hash: str, timeout: float) -> LedgerReceipt: ...


class AnalysisOrchestrator:
    """Runs analysis submissions for one wallet session, one at a time.

    The session machine is only read, never written; the address and balance
    used by an attempt are taken from a single snapshot so that wallet events
    arriving mid-attempt cannot change them.
    """

    def __init__(
        self,
        session: WalletSessionMachine,
        scorer: RiskScorer,
        ledger: LedgerWriter,
        public_key: PaillierPublicKey,
        *,
        min_balance: Decimal = Decimal("1"),
        faucet_url: str = "",
        currency_symbol: str = "OWN",
        confirmation_timeout: float = 120.0,
    ) -> None:
        self._session = session
        self._scorer = scorer
        self._ledger = ledger
        self._public_key = public_key
        self._min_balance = min_balance
        self._faucet_url = faucet_url
        self._currency_symbol = currency_symbol
        self._confirmation_timeout = confirmation_timeout
        self._in_flight = False

    @property
    def in_progress(self) -> bool:
        return self._in_flight

    async def submit(
        self, heart_rate: Any, blood_pressure: Any, oxygen_level: Any
    ) -> SubmissionReceipt:
        """Run one attempt and return its receipt.

        Raises:
            SubmissionError: One of its subclasses, naming the failed step.
        """
        if self._in_flight:
            raise AlreadyInProgress("An analysis is already being submitted. Please wait.")
        self._in_flight = True
        try:
            return await self._attempt(heart_rate, blood_pressure, oxygen_level)
        finally:
            self._in_flight = False

    async def _attempt(
        self, heart_rate: Any, blood_pressure: Any, oxygen_level: Any
    ) -> SubmissionReceipt:
        # 1. Validate
        validation = validate_vital_signs(heart_rate, blood_pressure, oxygen_level)
        if not validation.ok or validation.vitals is None:
            incomplete = validation.status is ValidationStatus.INCOMPLETE
            raise InvalidInput(
                "Please complete all vital signs." if incomplete
                else "Some vital signs are invalid.",
                fields=validation.issues_dict(),
                incomplete=incomplete,
            )
        vitals = validation.vitals

        # 2. Session snapshot and balance gate
        snapshot = self._session.snapshot()
        if not snapshot.ready or snapshot.session.address is None:
            raise SessionNotReadyForSubmission(
                "Connect your wallet on the correct network before analyzing.",
                state=snapshot.state.value,
            )
        sender = snapshot.session.address
        balance = snapshot.session.balance
        if balance < self._min_balance:
            raise InsufficientBalance(
                f"You need at least {self._min_balance} {self._currency_symbol} to perform "
                "analysis. Please get more tokens from the faucet.",
                balance=str(balance),
                required=str(self._min_balance),
                faucet_url=self._faucet_url,
            )

        # 3. Score
        assessment = await self._score(vitals)

        # 4. Encrypt
        try:
            record = EncryptedRecord.build(vitals, assessment.risk_level, self._public_key)
        except EncodingError as exc:
            logger.error("Encryption failed for a validated submission: %s", exc)
            raise EncryptionFailed(f"Could not encrypt health data: {exc}") from exc

        # 5. Write and confirm
        tx_hash = await self._send(sender, record)
        confirmed = await self._confirm(tx_hash)

        logger.info(
            "Health metrics recorded in %s (record %s)", confirmed.tx_hash, confirmed.record_index
        )
        return SubmissionReceipt(
            tx_hash=confirmed.tx_hash,
            assessment=assessment,
            record=record,
            record_index=confirmed.record_index,
            block_number=confirmed.block_number,
        )

    async def _score(self, vitals: VitalSigns) -> RiskAssessment:
        try:
            return await self._scorer.assess(
                vitals.heart_rate, vitals.blood_pressure, vitals.oxygen_level
            )
        except ScorerIndeterminateError as exc:
            raise ScoringIndeterminate("Risk level could not be determined.") from exc
        except ScorerError as exc:
            logger.warning("Risk scoring failed: %s", exc)
            raise ScoringUnavailable(
                "Failed to analyze your health data. Please try again."
            ) from exc
        except Exception as exc:
            logger.exception("Unexpected risk scorer failure")
            raise ScoringUnavailable(
                "Failed to analyze your health data. Please try again."
            ) from exc

    async def _send(self, sender: str, record: EncryptedRecord) -> str:
        try:
            return await self._ledger.submit_metrics(sender, *record.as_tuple())
        except LedgerError as exc:
            raise SubmissionRejected(
                f"The transaction was not sent: {exc}", tx_hash=exc.tx_hash
            ) from exc
        except Exception as exc:
            logger.exception("Unexpected ledger failure before broadcast")
            raise SubmissionRejected(f"The transaction was not sent: {exc}") from exc

    async def _confirm(self, tx_hash: str) -> LedgerReceipt:
        timeout = self._confirmation_timeout
        try:
            return await asyncio.wait_for(
                self._ledger.wait_for_confirmation(tx_hash, timeout), timeout=timeout
            )
        except (asyncio.TimeoutError, LedgerTimeoutError) as exc:
            reason = f"Transaction was not confirmed within {timeout:g} seconds."
            cause: BaseException = exc
        except LedgerRevertedError as exc:
            reason = "Transaction was reverted by the ledger."
            cause = exc
        except Exception as exc:
            logger.exception("Confirmation wait for %s failed", tx_hash)
            reason = f"Transaction confirmation failed: {exc}"
            cause = exc

        logger.warning("Submission %s not confirmed: %s", tx_hash, reason)
        raise ConfirmationFailed(
            f"{reason} {PENDING_TX_WARNING}", tx_hash=tx_hash
        ) from cause
