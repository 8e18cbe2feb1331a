"""Private Health Risk MCP Server: application factory.

This module provides:
- create_app() for testability (integration tests create fresh server instances)
- Module-level `mcp` variable for FastMCP discovery
"""

from __future__ import annotations

import logging

from fastmcp import FastMCP

from phr import __version__
from phr.core.config.settings import Settings, get_settings
from phr.core.crypto.paillier import EncodingError, PaillierPublicKey
from phr.core.ledger.contract import HealthRecordsLedger
from phr.core.scorer.client import RiskScorerClient
from phr.core.wallet.balance import BalanceSource, Web3BalanceSource
from phr.core.wallet.local_account import LocalAccountWallet
from phr.core.wallet.provider import WalletProvider
from phr.core.wallet.session import WalletSessionMachine
from phr.domains.health.analysis.orchestrator import AnalysisOrchestrator, RiskScorer
from phr.domains.health.tools.session_tools import register_session_tools

logger = logging.getLogger(__name__)


def create_app(
    *,
    settings_override: Settings | None = None,
    wallet_override: WalletProvider | None = None,
    balance_source_override: BalanceSource | None = None,
    scorer_override: RiskScorer | None = None,
    ledger_override: HealthRecordsLedger | None = None,
    public_key_override: PaillierPublicKey | None = None,
) -> FastMCP:
    """Create and configure the Private Health Risk MCP server.

    This is the main application factory. It:
    1. Creates the FastMCP server instance
    2. Builds the wallet capability (key-backed unless overridden)
    3. Creates the wallet session machine and subscribes it to wallet events
    4. Loads the Paillier public key and the ledger contract client
    5. Creates the risk scorer client and the analysis orchestrator
    6. Registers all tools
    """
    settings = settings_override or get_settings()
    network = settings.network()

    # --- Server instance ---
    server = FastMCP(
        "Private Health Risk",
        instructions=(
            "Private health risk calculator. Connect a wallet on "
            f"{network.chain_name}, submit vital signs for a risk score, and record "
            "the values on-chain as homomorphic ciphertexts."
        ),
    )

    # --- Wallet capability ---
    wallet: WalletProvider | None
    if wallet_override is not None:
        wallet = wallet_override
    elif settings.wallet_private_key:
        wallet = LocalAccountWallet.from_private_key(
            settings.wallet_private_key, settings.rpc_url, settings.target_chain_id
        )
        logger.info("Using key-backed wallet on %s", network.chain_name)
    else:
        wallet = None
        logger.warning("No WALLET_PRIVATE_KEY configured; wallet connection will be unavailable")

    # --- Session state machine ---
    balances = balance_source_override or Web3BalanceSource.from_rpc_url(
        settings.rpc_url, decimals=settings.native_currency_decimals
    )
    machine = WalletSessionMachine(
        wallet,
        balances,
        network,
        low_balance_threshold=settings.low_balance_threshold,
    )
    machine.attach()

    # --- Encryption key ---
    public_key: PaillierPublicKey | None = public_key_override
    if public_key is None and (settings.public_key_n or settings.public_key_g):
        try:
            public_key = settings.public_key()
        except EncodingError as exc:
            logger.error("Failed to load Paillier public key: %s", exc)

    # --- Ledger ---
    ledger: HealthRecordsLedger | None = ledger_override
    if ledger is None and settings.contract_address:
        ledger = HealthRecordsLedger.connect(settings.rpc_url, settings.contract_address, wallet)
        logger.info("Ledger contract configured at %s", settings.contract_address)

    analysis_enabled = public_key is not None and ledger is not None

    # --- Register tools ---
    @server.tool
    def health_check() -> dict:
        """Check server health and return basic status information."""
        return {
            "status": "ok",
            "server": "Private Health Risk",
            "version": __version__,
            "target_chain_id": network.normalized_chain_id,
            "network": network.chain_name,
            "contract_address": settings.contract_address,
            "scorer_url": settings.scorer_url,
            "wallet_available": wallet is not None,
            "analysis_enabled": analysis_enabled,
        }

    register_session_tools(server, machine, faucet_url=settings.faucet_url)
    logger.info("Wallet session tools registered")

    if analysis_enabled:
        from phr.domains.health.tools.analysis_tools import register_analysis_tools

        scorer = scorer_override or RiskScorerClient(
            settings.scorer_url, timeout=settings.scorer_timeout_seconds
        )
        orchestrator = AnalysisOrchestrator(
            machine,
            scorer,
            ledger,
            public_key,
            min_balance=settings.min_analysis_balance,
            faucet_url=settings.faucet_url,
            currency_symbol=settings.native_currency_symbol,
            confirmation_timeout=settings.confirmation_timeout_seconds,
        )
        register_analysis_tools(server, orchestrator, ledger, machine)
        logger.info("Analysis tools registered")
    else:
        logger.info(
            "Analysis disabled: set PUBLIC_KEY_N, PUBLIC_KEY_G and CONTRACT_ADDRESS to enable it."
        )

    return server


# Module-level instance for FastMCP discovery.
# Lazy: only created when this module is loaded directly (not when tests import create_app).
def __getattr__(name: str):
    if name == "mcp":
        global mcp  # noqa: PLW0603
        mcp = create_app()
        return mcp
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
