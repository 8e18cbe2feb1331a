"""Shared test fixtures for Private Health Risk tests."""

from __future__ import annotations

import asyncio
import sys
from dataclasses import dataclass
from decimal import Decimal
from math import lcm
from pathlib import Path
from typing import Any, Callable

import pytest

# ---------------------------------------------------------------------------
# Test hermeticity
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _force_hermetic_test_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("WALLET_PRIVATE_KEY", "")
    monkeypatch.setenv("CONTRACT_ADDRESS", "")
    monkeypatch.setenv("PUBLIC_KEY_N", "")
    monkeypatch.setenv("PUBLIC_KEY_G", "")

# Allow running tests without `pip install -e .` by making `src/` importable.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_SRC_DIR = _PROJECT_ROOT / "src"
if str(_SRC_DIR) not in sys.path:
    sys.path.insert(0, str(_SRC_DIR))

from phr.core.crypto.paillier import PaillierPublicKey  # noqa: E402
from phr.core.ledger.contract import LedgerReceipt, LedgerRecord  # noqa: E402
from phr.core.scorer.models import RiskAssessment  # noqa: E402
from phr.core.wallet.provider import (  # noqa: E402
    UNRECOGNIZED_CHAIN,
    UNSUPPORTED_METHOD,
    NetworkDefinition,
    WalletRpcError,
)

TARGET_CHAIN_ID = "0xa5b5a"
OTHER_CHAIN_ID = "0x1"
ADDRESS = "0x5B38Da6a701c568545dCfcB03FcB875f56beddC4"
OTHER_ADDRESS = "0xAb8483F64d9C6d1EcF9b849Ae677dD3315835cb2"
TX_HASH = "0x" + "ab" * 32


# ---------------------------------------------------------------------------
# Paillier test key pair (private half exists only here)
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PaillierTestKeyPair:
    public: PaillierPublicKey
    lam: int
    mu: int

    def decrypt(self, ciphertext_hex: str) -> int:
        n = self.public.n
        c = int(ciphertext_hex, 16)
        x = pow(c, self.lam, n * n)
        return ((x - 1) // n) * self.mu % n


def make_test_keypair() -> PaillierTestKeyPair:
    p = 2**31 - 1
    q = 2**61 - 1
    n = p * q
    lam = lcm(p - 1, q - 1)
    return PaillierTestKeyPair(
        public=PaillierPublicKey(n=n, g=n + 1),
        lam=lam,
        mu=pow(lam, -1, n),
    )


@pytest.fixture
def keypair() -> PaillierTestKeyPair:
    return make_test_keypair()


@pytest.fixture
def public_key(keypair: PaillierTestKeyPair) -> PaillierPublicKey:
    return keypair.public


@pytest.fixture
def network() -> NetworkDefinition:
    return NetworkDefinition(
        chain_id=TARGET_CHAIN_ID,
        chain_name="Gateway Shield Testnet",
        currency_name="Gateway",
        currency_symbol="OWN",
        currency_decimals=18,
        rpc_url="https://rpc.example.test/http",
        explorer_url="https://explorer.example.test",
    )


# ---------------------------------------------------------------------------
# Mock wallet
# ---------------------------------------------------------------------------

class MockWallet:
    """Scriptable wallet provider.

    ``errors`` maps a method name to the exception its next calls raise.
    """

    def __init__(
        self,
        accounts: list[str] | None = None,
        chain_id: str = TARGET_CHAIN_ID,
        known_chains: set[str] | None = None,
    ) -> None:
        self.accounts = [ADDRESS] if accounts is None else accounts
        self.chain_id = chain_id
        self.known_chains = known_chains if known_chains is not None else {chain_id, TARGET_CHAIN_ID}
        self.errors: dict[str, Exception] = {}
        self.requests: list[tuple[str, Any]] = []
        self.sent_transactions: list[dict[str, Any]] = []
        self.tx_hash = TX_HASH
        self.listeners: dict[str, list[Callable[[Any], Any]]] = {}

    @property
    def methods(self) -> list[str]:
        return [method for method, _ in self.requests]

    async def request(self, method: str, params: list[Any] | None = None) -> Any:
        self.requests.append((method, params))
        if method in self.errors:
            raise self.errors[method]
        if method == "eth_requestAccounts":
            return list(self.accounts)
        if method == "eth_chainId":
            return self.chain_id
        if method == "wallet_switchEthereumChain":
            target = params[0]["chainId"]
            if target not in self.known_chains:
                raise WalletRpcError(UNRECOGNIZED_CHAIN, "Unrecognized chain ID")
            self.chain_id = target
            return None
        if method == "wallet_addEthereumChain":
            self.known_chains.add(params[0]["chainId"])
            return None
        if method == "wallet_revokePermissions":
            return None
        if method == "eth_sendTransaction":
            self.sent_transactions.append(params[0])
            return self.tx_hash
        raise WalletRpcError(UNSUPPORTED_METHOD, method)

    def on(self, event: str, listener: Callable[[Any], Any]) -> None:
        self.listeners.setdefault(event, []).append(listener)

    def remove_listener(self, event: str, listener: Callable[[Any], Any]) -> None:
        if listener in self.listeners.get(event, []):
            self.listeners[event].remove(listener)

    def emit(self, event: str, payload: Any) -> None:
        for listener in list(self.listeners.get(event, [])):
            listener(payload)


class MockBalanceSource:
    def __init__(self, balance: Decimal = Decimal("5")) -> None:
        self.balance = balance
        self.error: Exception | None = None
        self.calls: list[str] = []

    async def get_balance(self, address: str) -> Decimal:
        self.calls.append(address)
        if self.error is not None:
            raise self.error
        return self.balance


# ---------------------------------------------------------------------------
# Mock scorer and ledger
# ---------------------------------------------------------------------------

class MockScorer:
    def __init__(self, assessment: RiskAssessment | None = None) -> None:
        self.assessment = assessment or RiskAssessment(risk_level=1, risk_category="Low")
        self.error: Exception | None = None
        self.calls: list[tuple[int, int, int]] = []
        self.on_call: Callable[[], Any] | None = None

    async def assess(self, heart_rate: int, blood_pressure: int, oxygen_level: int) -> RiskAssessment:
        self.calls.append((heart_rate, blood_pressure, oxygen_level))
        await asyncio.sleep(0)
        if self.on_call is not None:
            result = self.on_call()
            if asyncio.iscoroutine(result):
                await result
        if self.error is not None:
            raise self.error
        return self.assessment


class MockLedger:
    def __init__(self) -> None:
        self.tx_hash = TX_HASH
        self.submit_error: Exception | None = None
        self.confirm_error: Exception | None = None
        self.confirm_delay: float = 0.0
        self.submissions: list[tuple[str, tuple[str, str, str, str]]] = []
        self.confirmations: list[tuple[str, float]] = []
        self.records: dict[tuple[str, int], LedgerRecord] = {}

    async def submit_metrics(
        self, sender: str, heart_rate: str, blood_pressure: str, oxygen_level: str, risk_level: str
    ) -> str:
        self.submissions.append((sender, (heart_rate, blood_pressure, oxygen_level, risk_level)))
        if self.submit_error is not None:
            raise self.submit_error
        return self.tx_hash

    async def wait_for_confirmation(self, tx_hash: str, timeout: float) -> LedgerReceipt:
        self.confirmations.append((tx_hash, timeout))
        if self.confirm_delay:
            await asyncio.sleep(self.confirm_delay)
        if self.confirm_error is not None:
            raise self.confirm_error
        return LedgerReceipt(tx_hash=tx_hash, block_number=42, record_index=len(self.submissions) - 1)

    async def read_record(self, account: str, index: int) -> LedgerRecord:
        from phr.core.ledger.contract import LedgerError

        try:
            return self.records[(account, index)]
        except KeyError:
            raise LedgerError(f"No record {index} for {account}") from None


@pytest.fixture
def mock_wallet() -> MockWallet:
    return MockWallet()


@pytest.fixture
def mock_balances() -> MockBalanceSource:
    return MockBalanceSource()


@pytest.fixture
def mock_scorer() -> MockScorer:
    return MockScorer()


@pytest.fixture
def mock_ledger() -> MockLedger:
    return MockLedger()


@pytest.fixture
def session_machine(mock_wallet, mock_balances, network):
    """A WalletSessionMachine wired to the mock wallet, not yet connected."""
    from phr.core.wallet.session import WalletSessionMachine

    machine = WalletSessionMachine(mock_wallet, mock_balances, network)
    machine.attach()
    return machine


@pytest.fixture
def test_settings():
    """Settings with a contract address, independent of the environment."""
    from phr.core.config.settings import Settings

    return Settings(
        _env_file=None,
        contract_address="0xd9145CCE52D386f254917e481eB44e9943F39138",
        scorer_url="https://scorer.example.test/",
        rpc_url="https://rpc.example.test/http",
        confirmation_timeout_seconds=5.0,
    )
