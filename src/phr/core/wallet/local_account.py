"""Key-backed wallet provider for server-side use.

Implements the subset of the wallet RPC surface the session machine and
ledger rely on, signing locally with an ``eth_account`` key and broadcasting
through web3 against the currently selected network's RPC endpoint.
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, Callable

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3

from phr.core.wallet.provider import (
    ACCOUNTS_CHANGED,
    CHAIN_CHANGED,
    UNRECOGNIZED_CHAIN,
    UNSUPPORTED_METHOD,
    USER_REJECTED_REQUEST,
    WalletListener,
    WalletRpcError,
    normalize_chain_id,
)

logger = logging.getLogger(__name__)


def _default_web3_factory(rpc_url: str) -> Any:
    return AsyncWeb3(AsyncHTTPProvider(rpc_url))


class LocalAccountWallet:
    """WalletProvider that holds one private key and a set of known networks.

    Usage::

        wallet = LocalAccountWallet.from_private_key(key, rpc_url, "0xa5b5a")
        accounts = await wallet.request("eth_requestAccounts")
    """

    def __init__(
        self,
        account: LocalAccount,
        networks: dict[str, str],
        active_chain_id: str,
        *,
        web3_factory: Callable[[str], Any] = _default_web3_factory,
    ) -> None:
        self._account = account
        self._networks = {normalize_chain_id(cid): url for cid, url in networks.items()}
        self._active = normalize_chain_id(active_chain_id)
        if self._active not in self._networks:
            raise ValueError(f"Active chain {self._active} has no RPC endpoint")
        self._web3_factory = web3_factory
        self._web3_cache: dict[str, Any] = {}
        self._authorized = False
        self._listeners: dict[str, list[WalletListener]] = {}

    @classmethod
    def from_private_key(
        cls,
        private_key: str,
        rpc_url: str,
        chain_id: str,
        **kwargs: Any,
    ) -> LocalAccountWallet:
        account = Account.from_key(private_key)
        return cls(account, {chain_id: rpc_url}, chain_id, **kwargs)

    @property
    def address(self) -> str:
        return self._account.address

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def on(self, event: str, listener: WalletListener) -> None:
        self._listeners.setdefault(event, []).append(listener)

    def remove_listener(self, event: str, listener: WalletListener) -> None:
        listeners = self._listeners.get(event, [])
        if listener in listeners:
            listeners.remove(listener)

    async def _emit(self, event: str, payload: Any) -> None:
        for listener in list(self._listeners.get(event, [])):
            result = listener(payload)
            if inspect.isawaitable(result):
                await result

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    async def request(self, method: str, params: list[Any] | None = None) -> Any:
        params = params or []
        logger.debug("Wallet request %s", method)

        if method == "eth_requestAccounts":
            self._authorized = True
            return [self._account.address]
        if method == "eth_accounts":
            return [self._account.address] if self._authorized else []
        if method == "eth_chainId":
            return self._active
        if method == "wallet_switchEthereumChain":
            return await self._switch_chain(params)
        if method == "wallet_addEthereumChain":
            return self._add_chain(params)
        if method == "wallet_revokePermissions":
            self._authorized = False
            await self._emit(ACCOUNTS_CHANGED, [])
            return None
        if method == "eth_sendTransaction":
            return await self._send_transaction(params)

        raise WalletRpcError(UNSUPPORTED_METHOD, f"Method {method} is not supported")

    async def _switch_chain(self, params: list[Any]) -> None:
        if not params or "chainId" not in params[0]:
            raise WalletRpcError(-32602, "wallet_switchEthereumChain requires chainId")
        target = normalize_chain_id(params[0]["chainId"])
        if target not in self._networks:
            raise WalletRpcError(UNRECOGNIZED_CHAIN, f"Unrecognized chain ID {target}")
        if target != self._active:
            self._active = target
            logger.info("Wallet switched to chain %s", target)
            await self._emit(CHAIN_CHANGED, target)
        return None

    def _add_chain(self, params: list[Any]) -> None:
        if not params:
            raise WalletRpcError(-32602, "wallet_addEthereumChain requires parameters")
        definition = params[0]
        rpc_urls = definition.get("rpcUrls") or []
        if "chainId" not in definition or not rpc_urls:
            raise WalletRpcError(-32602, "Network definition needs chainId and rpcUrls")
        chain_id = normalize_chain_id(definition["chainId"])
        self._networks[chain_id] = rpc_urls[0]
        logger.info("Wallet registered chain %s (%s)", chain_id, definition.get("chainName", ""))
        return None

    async def _send_transaction(self, params: list[Any]) -> str:
        if not self._authorized:
            raise WalletRpcError(USER_REJECTED_REQUEST, "Account is not authorized")
        if not params:
            raise WalletRpcError(-32602, "eth_sendTransaction requires a transaction")

        tx = dict(params[0])
        sender = tx.pop("from", self._account.address)
        if str(sender).lower() != self._account.address.lower():
            raise WalletRpcError(USER_REJECTED_REQUEST, f"Unknown sender {sender}")

        w3 = self._web3()
        tx.setdefault("chainId", int(self._active, 16))
        if "nonce" not in tx:
            tx["nonce"] = await w3.eth.get_transaction_count(self._account.address)
        if "gas" not in tx:
            tx["gas"] = await w3.eth.estimate_gas({**tx, "from": self._account.address})
        if "gasPrice" not in tx and "maxFeePerGas" not in tx:
            tx["gasPrice"] = await w3.eth.gas_price

        signed = self._account.sign_transaction(tx)
        tx_hash = await w3.eth.send_raw_transaction(signed.raw_transaction)
        return Web3.to_hex(tx_hash)

    def _web3(self) -> Any:
        if self._active not in self._web3_cache:
            self._web3_cache[self._active] = self._web3_factory(self._networks[self._active])
        return self._web3_cache[self._active]
