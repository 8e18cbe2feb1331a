"""Wallet session state machine.

Owns the single piece of shared mutable state in the system: which account is
connected, on which chain, with what balance. All mutation goes through the
transition coroutines below, serialized by one lock; readers only ever see a
committed, immutable ``WalletSession``.

Wallet push notifications (account or chain changes) are queued in a mailbox
and applied as ordinary transitions, so they never interleave with a
transition that is half way through.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, replace
from decimal import Decimal
from enum import Enum
from typing import Any

from phr.core.wallet.balance import BalanceSource
from phr.core.wallet.provider import (
    ACCOUNTS_CHANGED,
    CHAIN_CHANGED,
    UNRECOGNIZED_CHAIN,
    USER_REJECTED_REQUEST,
    NetworkDefinition,
    WalletProvider,
    WalletRpcError,
    normalize_chain_id,
)

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    WRONG_NETWORK = "connected_wrong_network"
    READY = "connected_ready"


@dataclass(frozen=True)
class WalletSession:
    """Committed view of the wallet connection."""

    address: str | None = None
    chain_id: str | None = None
    balance: Decimal = Decimal("0")
    connected: bool = False

    def __post_init__(self) -> None:
        if self.connected and not self.address:
            raise ValueError("A connected session must have an address")
        if self.balance < 0:
            raise ValueError("Balance must be non-negative")


EMPTY_SESSION = WalletSession()


@dataclass(frozen=True)
class SessionSnapshot:
    """State and session read together, as one consistent pair."""

    state: SessionState
    session: WalletSession

    @property
    def ready(self) -> bool:
        return self.state is SessionState.READY


@dataclass(frozen=True)
class SessionEvent:
    kind: str
    payload: Any = None


class WalletSessionMachine:
    """Drives a wallet capability through connect / network / disconnect.

    Usage::

        machine = WalletSessionMachine(wallet, balances, settings.network())
        machine.attach()
        await machine.connect()
        if machine.state is SessionState.WRONG_NETWORK:
            await machine.ensure_network()
    """

    def __init__(
        self,
        wallet: WalletProvider | None,
        balances: BalanceSource,
        network: NetworkDefinition,
        *,
        low_balance_threshold: Decimal = Decimal("0.1"),
    ) -> None:
        self._wallet = wallet
        self._balances = balances
        self._network = network
        self._target_chain = network.normalized_chain_id
        self._low_balance_threshold = low_balance_threshold

        self._state = SessionState.DISCONNECTED
        self._session = EMPTY_SESSION
        self._lock = asyncio.Lock()
        self._mailbox: deque[SessionEvent] = deque()
        self._dispatcher: asyncio.Task | None = None
        self._attached = False

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def session(self) -> WalletSession:
        return self._session

    @property
    def network(self) -> NetworkDefinition:
        return self._network

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(state=self._state, session=self._session)

    @property
    def needs_funding(self) -> bool:
        """Whether the connected balance is low enough to suggest the faucet."""
        return self._session.connected and self._session.balance < self._low_balance_threshold

    @property
    def pending_events(self) -> int:
        return len(self._mailbox)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def connect(self) -> WalletSession:
        """Request account access and evaluate the network.

        Raises:
            WalletUnavailable: No wallet, or the wallet failed the request.
            UserRejected: The user declined to authorize an account.
        """
        async with self._lock:
            return await self._connect_locked()

    async def ensure_network(self) -> WalletSession:
        """Switch the wallet to the target chain, registering it if unknown.

        Raises:
            SessionNotReady: No account is connected.
            NetworkSwitchFailed: The switch (or registration) did not succeed.
        """
        async with self._lock:
            if self._state is SessionState.READY:
                return self._session
            if self._state is not SessionState.WRONG_NETWORK or self._wallet is None:
                raise SessionNotReady("Connect a wallet before switching networks.")

            await self._switch_to_target()

            try:
                chain_id = await self._read_chain_id()
            except (WalletRpcError, ValueError) as exc:
                raise NetworkSwitchFailed(
                    f"Could not confirm the active network: {exc}"
                ) from exc

            balance = await self._query_balance(self._session.address, self._session.balance)
            self._commit(
                self._state_for(chain_id),
                replace(self._session, chain_id=chain_id, balance=balance),
            )
            if self._state is not SessionState.READY:
                raise NetworkSwitchFailed(
                    f"Wallet is still on chain {chain_id}, expected {self._target_chain}."
                )
            return self._session

    async def disconnect(self) -> WalletSession:
        """Drop authorization (best effort) and clear the session."""
        async with self._lock:
            if self._wallet is not None and self._session.connected:
                try:
                    await self._wallet.request(
                        "wallet_revokePermissions", [{"eth_accounts": {}}]
                    )
                except Exception:
                    logger.warning("Wallet did not revoke permissions", exc_info=True)
            self._commit(SessionState.DISCONNECTED, EMPTY_SESSION)
            return self._session

    async def refresh_balance(self, address: str | None = None) -> WalletSession:
        """Re-read the balance; on failure the previous balance is kept.

        Raises:
            SessionNotReady: No account is connected.
        """
        async with self._lock:
            if not self._session.connected:
                raise SessionNotReady("Connect a wallet before refreshing the balance.")
            target = address or self._session.address
            balance = await self._query_balance(target, self._session.balance)
            if target == self._session.address:
                self._commit(self._state, replace(self._session, balance=balance))
            return self._session

    # ------------------------------------------------------------------
    # Wallet notifications
    # ------------------------------------------------------------------

    def attach(self) -> None:
        """Subscribe to the wallet's account and chain notifications."""
        if self._wallet is None or self._attached:
            return
        self._wallet.on(ACCOUNTS_CHANGED, self._on_accounts_changed)
        self._wallet.on(CHAIN_CHANGED, self._on_chain_changed)
        self._attached = True

    def detach(self) -> None:
        if self._wallet is None or not self._attached:
            return
        self._wallet.remove_listener(ACCOUNTS_CHANGED, self._on_accounts_changed)
        self._wallet.remove_listener(CHAIN_CHANGED, self._on_chain_changed)
        self._attached = False

    def post(self, kind: str, payload: Any = None) -> None:
        """Queue a wallet notification and schedule it to be applied."""
        self._mailbox.append(SessionEvent(kind=kind, payload=payload))
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No running loop: the next process_events() call applies it.
            return
        if self._dispatcher is None or self._dispatcher.done():
            self._dispatcher = loop.create_task(self.process_events())

    async def process_events(self) -> int:
        """Apply every queued notification in arrival order."""
        processed = 0
        while self._mailbox:
            event = self._mailbox.popleft()
            try:
                await self._apply_event(event)
            except SessionError as exc:
                logger.warning(
                    "Wallet event %s left session %s: %s",
                    event.kind,
                    self._state.value,
                    exc.message,
                )
            except Exception:
                logger.exception("Failed to apply wallet event %s", event.kind)
            processed += 1
        return processed

    def _on_accounts_changed(self, accounts: Any) -> None:
        self.post(ACCOUNTS_CHANGED, accounts)

    def _on_chain_changed(self, chain_id: Any) -> None:
        self.post(CHAIN_CHANGED, chain_id)

    async def _apply_event(self, event: SessionEvent) -> None:
        async with self._lock:
            if event.kind == ACCOUNTS_CHANGED:
                if not event.payload:
                    logger.info("Wallet reported no accounts; clearing session")
                    self._commit(SessionState.DISCONNECTED, EMPTY_SESSION)
                    return
                await self._connect_locked()
            elif event.kind == CHAIN_CHANGED:
                await self._apply_chain_change(event.payload)
            else:
                logger.debug("Ignoring unknown wallet event %s", event.kind)

    async def _apply_chain_change(self, payload: Any) -> None:
        if not self._session.connected:
            return
        try:
            chain_id = normalize_chain_id(payload)
        except (TypeError, ValueError):
            try:
                chain_id = await self._read_chain_id()
            except Exception as exc:
                logger.warning("Wallet chain id request failed after chainChanged(%r)", payload)
                raise NetworkSwitchFailed(f"Could not read the active network: {exc}") from exc
        balance = await self._query_balance(self._session.address, self._session.balance)
        self._commit(
            self._state_for(chain_id),
            replace(self._session, chain_id=chain_id, balance=balance),
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _connect_locked(self) -> WalletSession:
        if self._wallet is None:
            self._commit(SessionState.DISCONNECTED, EMPTY_SESSION)
            raise WalletUnavailable("No wallet found. Please install or configure a wallet.")

        self._commit(SessionState.CONNECTING, self._session)
        try:
            accounts = await self._wallet.request("eth_requestAccounts")
        except WalletRpcError as exc:
            self._commit(SessionState.DISCONNECTED, EMPTY_SESSION)
            if exc.code == USER_REJECTED_REQUEST:
                raise UserRejected("The connection request was rejected in the wallet.") from exc
            raise WalletUnavailable(
                "Failed to connect your wallet. Please try again."
            ) from exc
        except Exception as exc:
            logger.exception("Wallet account request failed")
            self._commit(SessionState.DISCONNECTED, EMPTY_SESSION)
            raise WalletUnavailable("Failed to connect your wallet. Please try again.") from exc

        if not accounts:
            self._commit(SessionState.DISCONNECTED, EMPTY_SESSION)
            raise UserRejected("No account was authorized in the wallet.")
        address = str(accounts[0])

        try:
            chain_id = await self._read_chain_id()
        except Exception as exc:
            logger.exception("Wallet chain id request failed")
            self._commit(SessionState.DISCONNECTED, EMPTY_SESSION)
            raise WalletUnavailable("Could not read the wallet's active network.") from exc

        balance = await self._query_balance(address, Decimal("0"))
        self._commit(
            self._state_for(chain_id),
            WalletSession(address=address, chain_id=chain_id, balance=balance, connected=True),
        )
        return self._session

    async def _switch_to_target(self) -> None:
        assert self._wallet is not None
        switch_params = [{"chainId": self._target_chain}]
        try:
            await self._wallet.request("wallet_switchEthereumChain", switch_params)
            return
        except WalletRpcError as exc:
            if exc.code != UNRECOGNIZED_CHAIN:
                logger.warning("Network switch to %s failed: %s", self._target_chain, exc)
                raise NetworkSwitchFailed(
                    f"Failed to switch to {self._network.chain_name}. "
                    "Please try again or switch manually."
                ) from exc
        except Exception as exc:
            logger.exception("Network switch to %s failed", self._target_chain)
            raise NetworkSwitchFailed(
                f"Failed to switch to {self._network.chain_name}."
            ) from exc

        logger.info("Chain %s unknown to wallet; registering it", self._target_chain)
        try:
            await self._wallet.request(
                "wallet_addEthereumChain", [self._network.to_wallet_params()]
            )
            await self._wallet.request("wallet_switchEthereumChain", switch_params)
        except Exception as exc:
            logger.warning("Registering %s failed: %s", self._target_chain, exc)
            raise NetworkSwitchFailed(
                f"Failed to add {self._network.chain_name}. Please add it manually in your wallet."
            ) from exc

    async def _read_chain_id(self) -> str:
        assert self._wallet is not None
        return normalize_chain_id(await self._wallet.request("eth_chainId"))

    async def _query_balance(self, address: str | None, fallback: Decimal) -> Decimal:
        if not address:
            return fallback
        try:
            return await self._balances.get_balance(address)
        except Exception:
            logger.warning("Balance lookup failed for %s; keeping %s", address, fallback, exc_info=True)
            return fallback

    def _state_for(self, chain_id: str) -> SessionState:
        if chain_id == self._target_chain:
            return SessionState.READY
        return SessionState.WRONG_NETWORK

    def _commit(self, state: SessionState, session: WalletSession) -> None:
        if state is not self._state:
            logger.info("Wallet session %s -> %s", self._state.value, state.value)
        self._state = state
        self._session = session


# ------------------------------------------------------------------
# Exceptions
# ------------------------------------------------------------------

class SessionError(Exception):
    """Base exception for wallet session failures."""

    kind = "session_error"
    recoverable = True

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "message": self.message, "recoverable": self.recoverable}


class WalletUnavailable(SessionError):
    """No wallet is present, or it failed to answer."""

    kind = "wallet_unavailable"


class UserRejected(SessionError):
    """The user declined the wallet request."""

    kind = "user_rejected"


class NetworkSwitchFailed(SessionError):
    """The wallet could not be moved onto the target chain."""

    kind = "network_switch_failed"


class SessionNotReady(SessionError):
    """The action needs a connected session."""

    kind = "session_not_ready"
