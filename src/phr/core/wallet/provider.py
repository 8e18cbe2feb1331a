"""Wallet capability: the interface the session machine drives.

Modelled on the EIP-1193 provider surface exposed by browser wallets: a single
``request(method, params)`` coroutine plus ``accountsChanged`` /
``chainChanged`` notifications.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Protocol, runtime_checkable

# EIP-1193 / wallet RPC error codes
USER_REJECTED_REQUEST = 4001
UNSUPPORTED_METHOD = 4200
UNRECOGNIZED_CHAIN = 4902

ACCOUNTS_CHANGED = "accountsChanged"
CHAIN_CHANGED = "chainChanged"

WalletListener = Callable[[Any], Any]


class WalletRpcError(Exception):
    """Error reported by a wallet provider in response to a request."""

    def __init__(self, code: int, message: str = "") -> None:
        super().__init__(f"[{code}] {message}" if message else f"[{code}]")
        self.code = code
        self.message = message


@runtime_checkable
class WalletProvider(Protocol):
    """Abstract interface for an account-holding wallet."""

    async def request(self, method: str, params: list[Any] | None = None) -> Any:
        """Send a JSON-RPC style request; raises WalletRpcError on refusal."""
        ...

    def on(self, event: str, listener: WalletListener) -> None:
        """Subscribe to ``accountsChanged`` or ``chainChanged``."""
        ...

    def remove_listener(self, event: str, listener: WalletListener) -> None:
        ...


@dataclass(frozen=True)
class NetworkDefinition:
    """Everything a wallet needs to register and switch to a chain."""

    chain_id: str
    chain_name: str
    currency_name: str
    currency_symbol: str
    currency_decimals: int
    rpc_url: str
    explorer_url: str

    @property
    def normalized_chain_id(self) -> str:
        return normalize_chain_id(self.chain_id)

    def to_wallet_params(self) -> dict[str, Any]:
        """Parameters for ``wallet_addEthereumChain``."""
        return {
            "chainId": self.normalized_chain_id,
            "chainName": self.chain_name,
            "nativeCurrency": {
                "name": self.currency_name,
                "symbol": self.currency_symbol,
                "decimals": self.currency_decimals,
            },
            "rpcUrls": [self.rpc_url],
            "blockExplorerUrls": [self.explorer_url],
        }

    def tx_url(self, tx_hash: str) -> str:
        return f"{self.explorer_url.rstrip('/')}/tx/{tx_hash}"


def normalize_chain_id(chain_id: int | str) -> str:
    """Return a chain id as lower-case ``0x`` hex, accepting ints or hex/decimal strings."""
    if isinstance(chain_id, bool):
        raise ValueError("chain id must be an int or string")
    if isinstance(chain_id, int):
        value = chain_id
    else:
        text = str(chain_id).strip().lower()
        if not text:
            raise ValueError("chain id must not be empty")
        value = int(text, 16) if text.startswith("0x") else int(text)
    if value < 0:
        raise ValueError("chain id must be non-negative")
    return hex(value)
