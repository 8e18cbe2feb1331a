"""Balance capability: native-token balance lookups over JSON-RPC."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Protocol, runtime_checkable

from web3 import AsyncHTTPProvider, AsyncWeb3, Web3

logger = logging.getLogger(__name__)


@runtime_checkable
class BalanceSource(Protocol):
    """Returns an account's balance in the chain's native unit."""

    async def get_balance(self, address: str) -> Decimal: ...


class Web3BalanceSource:
    """BalanceSource backed by ``eth_getBalance`` on an AsyncWeb3 connection."""

    def __init__(self, w3: Any, *, decimals: int = 18) -> None:
        self._w3 = w3
        self._scale = Decimal(10) ** decimals

    @classmethod
    def from_rpc_url(cls, rpc_url: str, *, decimals: int = 18) -> Web3BalanceSource:
        return cls(AsyncWeb3(AsyncHTTPProvider(rpc_url)), decimals=decimals)

    async def get_balance(self, address: str) -> Decimal:
        wei = await self._w3.eth.get_balance(Web3.to_checksum_address(address))
        balance = Decimal(int(wei)) / self._scale
        logger.debug("Balance for %s: %s", address, balance)
        return balance
