"""Tests for the wallet session state machine."""

from __future__ import annotations

import asyncio
from decimal import Decimal

import pytest

from phr.core.wallet.provider import USER_REJECTED_REQUEST, WalletRpcError
from phr.core.wallet.session import (
    EMPTY_SESSION,
    NetworkSwitchFailed,
    SessionNotReady,
    SessionState,
    UserRejected,
    WalletSession,
    WalletSessionMachine,
    WalletUnavailable,
)

TARGET = "0xa5b5a"
OTHER = "0x1"
SECOND_ACCOUNT = "0xAb8483F64d9C6d1EcF9b849Ae677dD3315835cb2"


def _run(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


class TestWalletSession:
    def test_empty_session(self):
        assert EMPTY_SESSION.connected is False
        assert EMPTY_SESSION.address is None
        assert EMPTY_SESSION.balance == Decimal("0")

    def test_connected_requires_address(self):
        with pytest.raises(ValueError, match="address"):
            WalletSession(connected=True)

    def test_negative_balance_rejected(self):
        with pytest.raises(ValueError, match="non-negative"):
            WalletSession(address="0xabc", balance=Decimal("-1"), connected=True)


class TestConnect:
    def test_connect_on_target_chain_is_ready(self, session_machine, mock_wallet):
        session = _run(session_machine.connect())
        assert session_machine.state is SessionState.READY
        assert session.connected
        assert session.address == mock_wallet.accounts[0]
        assert session.chain_id == TARGET
        assert session.balance == Decimal("5")
        assert mock_wallet.methods[:2] == ["eth_requestAccounts", "eth_chainId"]

    def test_connect_on_other_chain_is_wrong_network(self, session_machine, mock_wallet):
        mock_wallet.chain_id = OTHER
        _run(session_machine.connect())
        assert session_machine.state is SessionState.WRONG_NETWORK
        assert session_machine.session.chain_id == OTHER
        assert "wallet_switchEthereumChain" not in mock_wallet.methods

    def test_decimal_chain_id_is_normalized(self, session_machine, mock_wallet):
        mock_wallet.chain_id = str(int(TARGET, 16))
        _run(session_machine.connect())
        assert session_machine.state is SessionState.READY
        assert session_machine.session.chain_id == TARGET

    def test_no_wallet_raises_unavailable(self, mock_balances, network):
        machine = WalletSessionMachine(None, mock_balances, network)
        with pytest.raises(WalletUnavailable) as excinfo:
            _run(machine.connect())
        assert excinfo.value.kind == "wallet_unavailable"
        assert machine.state is SessionState.DISCONNECTED
        assert machine.session == EMPTY_SESSION

    def test_user_rejection(self, session_machine, mock_wallet):
        mock_wallet.errors["eth_requestAccounts"] = WalletRpcError(USER_REJECTED_REQUEST, "denied")
        with pytest.raises(UserRejected) as excinfo:
            _run(session_machine.connect())
        assert excinfo.value.to_dict()["kind"] == "user_rejected"
        assert session_machine.state is SessionState.DISCONNECTED

    def test_other_wallet_error_is_unavailable(self, session_machine, mock_wallet):
        mock_wallet.errors["eth_requestAccounts"] = WalletRpcError(-32603, "internal")
        with pytest.raises(WalletUnavailable):
            _run(session_machine.connect())
        assert session_machine.state is SessionState.DISCONNECTED

    def test_empty_account_list_is_rejection(self, session_machine, mock_wallet):
        mock_wallet.accounts = []
        with pytest.raises(UserRejected):
            _run(session_machine.connect())
        assert session_machine.session == EMPTY_SESSION

    def test_balance_failure_does_not_block_connect(self, session_machine, mock_balances):
        mock_balances.error = ConnectionError("rpc down")
        session = _run(session_machine.connect())
        assert session_machine.state is SessionState.READY
        assert session.balance == Decimal("0")

    def test_failed_reconnect_clears_session(self, session_machine, mock_wallet):
        _run(session_machine.connect())
        mock_wallet.errors["eth_requestAccounts"] = WalletRpcError(USER_REJECTED_REQUEST)
        with pytest.raises(UserRejected):
            _run(session_machine.connect())
        assert session_machine.session == EMPTY_SESSION


class TestEnsureNetwork:
    def test_switch_to_known_chain(self, session_machine, mock_wallet):
        mock_wallet.chain_id = OTHER
        _run(session_machine.connect())
        session = _run(session_machine.ensure_network())
        assert session_machine.state is SessionState.READY
        assert session.chain_id == TARGET
        assert "wallet_addEthereumChain" not in mock_wallet.methods

    def test_unknown_chain_is_registered_then_switched(self, session_machine, mock_wallet, network):
        mock_wallet.chain_id = OTHER
        mock_wallet.known_chains = {OTHER}
        _run(session_machine.connect())
        _run(session_machine.ensure_network())

        assert session_machine.state is SessionState.READY
        switch_calls = [m for m in mock_wallet.methods if m == "wallet_switchEthereumChain"]
        assert len(switch_calls) == 2
        add_params = next(p for m, p in mock_wallet.requests if m == "wallet_addEthereumChain")
        assert add_params == [network.to_wallet_params()]
        assert add_params[0]["nativeCurrency"] == {"name": "Gateway", "symbol": "OWN", "decimals": 18}
        assert add_params[0]["rpcUrls"] == [network.rpc_url]
        assert add_params[0]["blockExplorerUrls"] == [network.explorer_url]

    def test_registration_failure(self, session_machine, mock_wallet):
        mock_wallet.chain_id = OTHER
        mock_wallet.known_chains = {OTHER}
        mock_wallet.errors["wallet_addEthereumChain"] = WalletRpcError(USER_REJECTED_REQUEST)
        _run(session_machine.connect())
        with pytest.raises(NetworkSwitchFailed):
            _run(session_machine.ensure_network())
        assert session_machine.state is SessionState.WRONG_NETWORK

    def test_retry_switch_happens_only_once(self, mock_wallet, mock_balances, network):
        class ForgetfulWallet(type(mock_wallet)):
            """Accepts registration but never learns the chain."""

            async def request(self, method, params=None):
                if method == "wallet_addEthereumChain":
                    self.requests.append((method, params))
                    return None
                return await super().request(method, params)

        wallet = ForgetfulWallet(chain_id=OTHER, known_chains={OTHER})
        machine = WalletSessionMachine(wallet, mock_balances, network)
        _run(machine.connect())

        with pytest.raises(NetworkSwitchFailed):
            _run(machine.ensure_network())
        assert wallet.methods.count("wallet_switchEthereumChain") == 2
        assert wallet.methods.count("wallet_addEthereumChain") == 1
        assert machine.state is SessionState.WRONG_NETWORK

    def test_other_switch_error_does_not_register(self, session_machine, mock_wallet):
        mock_wallet.chain_id = OTHER
        mock_wallet.errors["wallet_switchEthereumChain"] = WalletRpcError(USER_REJECTED_REQUEST)
        _run(session_machine.connect())
        with pytest.raises(NetworkSwitchFailed) as excinfo:
            _run(session_machine.ensure_network())
        assert excinfo.value.kind == "network_switch_failed"
        assert "wallet_addEthereumChain" not in mock_wallet.methods
        assert session_machine.state is SessionState.WRONG_NETWORK

    def test_already_ready_is_noop(self, session_machine, mock_wallet):
        _run(session_machine.connect())
        mock_wallet.requests.clear()
        _run(session_machine.ensure_network())
        assert mock_wallet.requests == []

    def test_requires_connection(self, session_machine):
        with pytest.raises(SessionNotReady):
            _run(session_machine.ensure_network())


class TestDisconnect:
    def test_disconnect_clears_session(self, session_machine, mock_wallet):
        _run(session_machine.connect())
        _run(session_machine.disconnect())
        assert session_machine.state is SessionState.DISCONNECTED
        assert session_machine.session == EMPTY_SESSION
        params = next(p for m, p in mock_wallet.requests if m == "wallet_revokePermissions")
        assert params == [{"eth_accounts": {}}]

    def test_disconnect_clears_even_if_revoke_fails(self, session_machine, mock_wallet):
        _run(session_machine.connect())
        mock_wallet.errors["wallet_revokePermissions"] = WalletRpcError(4200, "unsupported")
        _run(session_machine.disconnect())
        assert session_machine.session == EMPTY_SESSION

    def test_disconnect_when_disconnected_skips_wallet(self, session_machine, mock_wallet):
        _run(session_machine.disconnect())
        assert mock_wallet.requests == []


class TestRefreshBalance:
    def test_updates_balance(self, session_machine, mock_balances):
        _run(session_machine.connect())
        mock_balances.balance = Decimal("2.5")
        session = _run(session_machine.refresh_balance())
        assert session.balance == Decimal("2.5")

    def test_failure_keeps_previous_balance(self, session_machine, mock_balances):
        _run(session_machine.connect())
        mock_balances.error = TimeoutError("slow node")
        session = _run(session_machine.refresh_balance())
        assert session.balance == Decimal("5")
        assert session_machine.state is SessionState.READY

    def test_requires_connection(self, session_machine):
        with pytest.raises(SessionNotReady):
            _run(session_machine.refresh_balance())

    def test_needs_funding_uses_low_balance_threshold(self, mock_wallet, mock_balances, network):
        machine = WalletSessionMachine(
            mock_wallet, mock_balances, network, low_balance_threshold=Decimal("0.1")
        )
        mock_balances.balance = Decimal("0.5")
        _run(machine.connect())
        assert machine.needs_funding is False
        mock_balances.balance = Decimal("0.05")
        _run(machine.refresh_balance())
        assert machine.needs_funding is True


class TestWalletEvents:
    def test_attach_subscribes_once(self, session_machine, mock_wallet):
        session_machine.attach()
        assert len(mock_wallet.listeners["accountsChanged"]) == 1
        assert len(mock_wallet.listeners["chainChanged"]) == 1

    def test_detach_unsubscribes(self, session_machine, mock_wallet):
        session_machine.detach()
        assert mock_wallet.listeners["accountsChanged"] == []
        assert mock_wallet.listeners["chainChanged"] == []

    def test_events_queue_until_processed(self, session_machine, mock_wallet):
        _run(session_machine.connect())
        mock_wallet.emit("chainChanged", OTHER)
        assert session_machine.pending_events == 1
        assert session_machine.state is SessionState.READY
        assert _run(session_machine.process_events()) == 1
        assert session_machine.state is SessionState.WRONG_NETWORK
        assert session_machine.session.chain_id == OTHER

    def test_chain_change_back_to_target(self, session_machine, mock_wallet):
        mock_wallet.chain_id = OTHER
        _run(session_machine.connect())
        mock_wallet.emit("chainChanged", TARGET)
        _run(session_machine.process_events())
        assert session_machine.state is SessionState.READY

    def test_chain_change_while_disconnected_is_ignored(self, session_machine, mock_wallet):
        mock_wallet.emit("chainChanged", OTHER)
        _run(session_machine.process_events())
        assert session_machine.state is SessionState.DISCONNECTED

    def test_account_change_reconnects(self, session_machine, mock_wallet):
        _run(session_machine.connect())
        mock_wallet.accounts = [SECOND_ACCOUNT]
        mock_wallet.emit("accountsChanged", [SECOND_ACCOUNT])
        _run(session_machine.process_events())
        assert session_machine.session.address == SECOND_ACCOUNT
        assert session_machine.state is SessionState.READY

    def test_empty_account_change_disconnects(self, session_machine, mock_wallet):
        _run(session_machine.connect())
        mock_wallet.emit("accountsChanged", [])
        _run(session_machine.process_events())
        assert session_machine.state is SessionState.DISCONNECTED
        assert session_machine.session == EMPTY_SESSION

    def test_repeated_events_are_idempotent(self, session_machine, mock_wallet):
        _run(session_machine.connect())
        for _ in range(3):
            mock_wallet.emit("chainChanged", OTHER)
            mock_wallet.emit("accountsChanged", [mock_wallet.accounts[0]])
        _run(session_machine.process_events())
        first = (session_machine.state, session_machine.session)

        mock_wallet.emit("chainChanged", OTHER)
        mock_wallet.emit("accountsChanged", [mock_wallet.accounts[0]])
        _run(session_machine.process_events())
        assert (session_machine.state, session_machine.session) == first

    def test_failed_reconnect_from_event_is_not_raised(self, session_machine, mock_wallet):
        _run(session_machine.connect())
        mock_wallet.errors["eth_requestAccounts"] = WalletRpcError(USER_REJECTED_REQUEST)
        mock_wallet.emit("accountsChanged", [SECOND_ACCOUNT])
        assert _run(session_machine.process_events()) == 1
        assert session_machine.state is SessionState.DISCONNECTED

    def test_event_posted_inside_loop_is_dispatched(self, session_machine, mock_wallet):
        async def _scenario():
            await session_machine.connect()
            mock_wallet.emit("chainChanged", OTHER)
            for _ in range(5):
                await asyncio.sleep(0)
            return session_machine.state

        assert _run(_scenario()) is SessionState.WRONG_NETWORK

    def test_snapshot_is_stable_across_events(self, session_machine, mock_wallet):
        _run(session_machine.connect())
        snapshot = session_machine.snapshot()
        mock_wallet.emit("accountsChanged", [])
        _run(session_machine.process_events())
        assert snapshot.ready
        assert snapshot.session.connected
        assert session_machine.snapshot().ready is False

    def test_unreadable_chain_does_not_strand_later_events(self, session_machine, mock_wallet):
        _run(session_machine.connect())
        mock_wallet.errors["eth_chainId"] = ConnectionError("rpc down")
        mock_wallet.emit("chainChanged", "garbage")
        mock_wallet.emit("accountsChanged", [])

        assert _run(session_machine.process_events()) == 2
        assert session_machine.pending_events == 0
        assert session_machine.state is SessionState.DISCONNECTED

    def test_unexpected_event_failure_is_logged_and_drained(
        self, session_machine, mock_wallet, monkeypatch, caplog
    ):
        _run(session_machine.connect())

        async def _boom(payload):
            raise RuntimeError("listener bug")

        monkeypatch.setattr(session_machine, "_apply_chain_change", _boom)
        mock_wallet.emit("chainChanged", OTHER)
        mock_wallet.emit("accountsChanged", [])

        with caplog.at_level("ERROR", logger="phr.core.wallet.session"):
            assert _run(session_machine.process_events()) == 2
        assert "Failed to apply wallet event chainChanged" in caplog.text
        assert session_machine.state is SessionState.DISCONNECTED


class TestTransitionLogging:
    def test_connecting_transition_is_logged(self, session_machine, caplog):
        with caplog.at_level("INFO", logger="phr.core.wallet.session"):
            _run(session_machine.connect())
        assert "Wallet session disconnected -> connecting" in caplog.messages
        assert "Wallet session connecting -> connected_ready" in caplog.messages
