"""Server entry point: ``python -m phr.core.server.main`` or ``phr-server``."""

from __future__ import annotations

import logging
from ipaddress import ip_address

from phr.core.config.settings import Settings, get_settings
from phr.core.server.app import create_app

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _bind_is_local(host: str) -> bool:
    if host == "localhost":
        return True
    try:
        return ip_address(host).is_loopback
    except ValueError:
        return False


def _guard_bind(settings: Settings) -> None:
    """Refuse public binds: the process may hold a signing key and has no auth layer."""
    if settings.phr_allow_insecure_bind or _bind_is_local(settings.phr_host):
        return
    raise RuntimeError(
        f"Refusing to bind to {settings.phr_host}: the server can sign transactions "
        "and has no authentication. Set PHR_ALLOW_INSECURE_BIND=true to override (unsafe)."
    )


def run() -> None:
    """Start the MCP server over Streamable HTTP."""
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.phr_log_level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )
    _guard_bind(settings)

    logger.info(
        "Starting Private Health Risk on %s:%d (chain %s, contract %s)",
        settings.phr_host,
        settings.phr_port,
        settings.target_chain_id,
        settings.contract_address or "unset",
    )
    create_app(settings_override=settings).run(
        transport="streamable-http",
        host=settings.phr_host,
        port=settings.phr_port,
    )


if __name__ == "__main__":
    run()
