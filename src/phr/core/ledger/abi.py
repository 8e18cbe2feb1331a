"""ABI of the health records contract."""

from __future__ import annotations

from typing import Any


def _bytes_param(name: str) -> dict[str, Any]:
    return {"internalType": "bytes", "name": name, "type": "bytes"}


_METRIC_FIELDS = ("heart_rate", "blood_pressure", "oxygen_level", "risk_level")

HEALTH_RECORDS_ABI: list[dict[str, Any]] = [
    {
        "anonymous": False,
        "inputs": [
            {"indexed": True, "internalType": "address", "name": "user", "type": "address"},
            *({**_bytes_param(name), "indexed": False} for name in _METRIC_FIELDS),
            {"indexed": False, "internalType": "uint256", "name": "recordIndex", "type": "uint256"},
        ],
        "name": "MetricsSubmitted",
        "type": "event",
    },
    {
        "inputs": [_bytes_param(name) for name in _METRIC_FIELDS],
        "name": "submitHealthMetrics",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [
            {"internalType": "address", "name": "", "type": "address"},
            {"internalType": "uint256", "name": "", "type": "uint256"},
        ],
        "name": "userHealthRecords",
        "outputs": [
            *(_bytes_param(name) for name in _METRIC_FIELDS),
            {"internalType": "address", "name": "user", "type": "address"},
        ],
        "stateMutability": "view",
        "type": "function",
    },
]
