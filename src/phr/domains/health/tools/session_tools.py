"""MCP tools for the wallet session: connect, switch network, disconnect."""

from __future__ import annotations

import json
import logging
from typing import Any

from fastmcp import Context, FastMCP

from phr.core.wallet.session import SessionError, SessionState, WalletSessionMachine

logger = logging.getLogger(__name__)

FAUCET_NOTE = (
    "Your balance is low. Get test tokens from the faucet to continue. "
    "Note: it takes about 5-10 sec to get tokens."
)


def session_payload(machine: WalletSessionMachine, faucet_url: str) -> dict[str, Any]:
    """Serialize the committed session for tool responses."""
    session = machine.session
    network = machine.network
    payload: dict[str, Any] = {
        "state": machine.state.value,
        "connected": session.connected,
        "address": session.address,
        "chain_id": session.chain_id,
        "target_chain_id": network.normalized_chain_id,
        "network": network.chain_name,
        "balance": str(session.balance),
        "currency": network.currency_symbol,
        "needs_funding": machine.needs_funding,
    }
    if machine.needs_funding:
        payload["faucet_url"] = faucet_url
        payload["faucet_note"] = FAUCET_NOTE
    return payload


def _error(exc: SessionError, machine: WalletSessionMachine, faucet_url: str) -> str:
    return json.dumps({
        "status": "error",
        **exc.to_dict(),
        "session": session_payload(machine, faucet_url),
    })


def register_session_tools(
    mcp: FastMCP,
    machine: WalletSessionMachine,
    *,
    faucet_url: str,
) -> None:
    """Register wallet session tools on the MCP server."""

    @mcp.tool
    async def wallet_status(ctx: Context) -> str:
        """Show the connected account, network, balance and whether analysis is possible."""
        await machine.process_events()
        return json.dumps({"status": "ok", **session_payload(machine, faucet_url)})

    @mcp.tool
    async def connect_wallet(ctx: Context) -> str:
        """Connect the wallet and move it onto the target network if needed."""
        try:
            await machine.connect()
            if machine.state is SessionState.WRONG_NETWORK:
                await machine.ensure_network()
        except SessionError as exc:
            logger.info("connect_wallet failed: %s", exc.kind)
            return _error(exc, machine, faucet_url)
        return json.dumps({
            "status": "ok",
            "message": "Your wallet has been successfully connected.",
            **session_payload(machine, faucet_url),
        })

    @mcp.tool
    async def switch_network(ctx: Context) -> str:
        """Switch the wallet to the target network, adding it to the wallet if unknown."""
        try:
            await machine.ensure_network()
        except SessionError as exc:
            return _error(exc, machine, faucet_url)
        return json.dumps({
            "status": "ok",
            "message": f"Switched to {machine.network.chain_name}.",
            **session_payload(machine, faucet_url),
        })

    @mcp.tool
    async def disconnect_wallet(ctx: Context) -> str:
        """Disconnect the wallet and clear the session."""
        await machine.disconnect()
        return json.dumps({"status": "ok", **session_payload(machine, faucet_url)})

    @mcp.tool
    async def refresh_balance(ctx: Context) -> str:
        """Re-read the connected account's balance."""
        try:
            await machine.refresh_balance()
        except SessionError as exc:
            return _error(exc, machine, faucet_url)
        return json.dumps({"status": "ok", **session_payload(machine, faucet_url)})
