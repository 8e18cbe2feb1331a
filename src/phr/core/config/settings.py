"""Application settings loaded from environment variables."""

from __future__ import annotations

from decimal import Decimal

from pydantic_settings import BaseSettings

from phr.core.crypto.paillier import PaillierPublicKey
from phr.core.wallet.provider import NetworkDefinition


class Settings(BaseSettings):
    """Private Health Risk server configuration."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    # Server
    # Default to loopback: the server drives a wallet key and has no auth layer.
    phr_host: str = "127.0.0.1"
    phr_port: int = 8001
    phr_log_level: str = "info"
    phr_allow_insecure_bind: bool = False

    # Target network (the only chain submissions are accepted on)
    target_chain_id: str = "0xa5b5a"
    target_chain_name: str = "Gateway Shield Testnet"
    native_currency_name: str = "Gateway"
    native_currency_symbol: str = "OWN"
    native_currency_decimals: int = 18
    rpc_url: str = "https://gateway-shield-testnet.rpc.caldera.xyz/http"
    explorer_url: str = "https://gateway-shield-testnet.explorer.caldera.xyz"

    # Ledger contract
    contract_address: str = ""
    confirmation_timeout_seconds: float = 120.0

    # Paillier public key, hex encoded (private key never lives here)
    public_key_n: str = ""
    public_key_g: str = ""

    # Balance gates. Kept as two values: one blocks analysis, one only
    # suggests the faucet.
    min_analysis_balance: Decimal = Decimal("1")
    low_balance_threshold: Decimal = Decimal("0.1")
    faucet_url: str = "https://faucet.gateway.tech/"

    # Remote risk scorer
    scorer_url: str = "https://g74uycczphoqsuyfbw4lbfdg2e0kmrcp.lambda-url.ap-south-1.on.aws/"
    scorer_timeout_seconds: float = 30.0

    # Wallet signing key; empty means no wallet is available
    wallet_private_key: str = ""

    def network(self) -> NetworkDefinition:
        """Build the target network definition used for switch/registration."""
        return NetworkDefinition(
            chain_id=self.target_chain_id,
            chain_name=self.target_chain_name,
            currency_name=self.native_currency_name,
            currency_symbol=self.native_currency_symbol,
            currency_decimals=self.native_currency_decimals,
            rpc_url=self.rpc_url,
            explorer_url=self.explorer_url,
        )

    def public_key(self) -> PaillierPublicKey:
        """Parse the configured Paillier public key.

        Raises:
            EncodingError: If either component is missing or not valid hex.
        """
        return PaillierPublicKey.from_hex(self.public_key_n, self.public_key_g)


def get_settings() -> Settings:
    """Create and return a Settings instance."""
    return Settings()
