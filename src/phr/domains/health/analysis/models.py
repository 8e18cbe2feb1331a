"""Attempt-scoped values produced by one analysis submission."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from phr.core.crypto.paillier import PaillierPublicKey, encode_ciphertext
from phr.core.scorer.models import RiskAssessment
from phr.domains.health.domain_logic.vitals import VitalSigns


@dataclass(frozen=True)
class EncryptedRecord:
    """The four ciphertexts written to the ledger for one submission."""

    heart_rate: str
    blood_pressure: str
    oxygen_level: str
    risk_level: str

    @classmethod
    def build(
        cls, vitals: VitalSigns, risk_level: int, key: PaillierPublicKey
    ) -> EncryptedRecord:
        """Encrypt each value independently; raises EncodingError before returning anything."""
        return cls(
            heart_rate=encode_ciphertext(vitals.heart_rate, key),
            blood_pressure=encode_ciphertext(vitals.blood_pressure, key),
            oxygen_level=encode_ciphertext(vitals.oxygen_level, key),
            risk_level=encode_ciphertext(risk_level, key),
        )

    def as_tuple(self) -> tuple[str, str, str, str]:
        return (self.heart_rate, self.blood_pressure, self.oxygen_level, self.risk_level)

    def to_dict(self) -> dict[str, str]:
        return {
            "heart_rate": self.heart_rate,
            "blood_pressure": self.blood_pressure,
            "oxygen_level": self.oxygen_level,
            "risk_level": self.risk_level,
        }


@dataclass(frozen=True)
class SubmissionReceipt:
    """Proof of a confirmed submission."""

    tx_hash: str
    assessment: RiskAssessment
    record: EncryptedRecord
    record_index: int | None = None
    block_number: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "tx_hash": self.tx_hash,
            "record_index": self.record_index,
            "block_number": self.block_number,
            "assessment": self.assessment.to_dict(),
            "record": self.record.to_dict(),
        }
