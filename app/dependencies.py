"""
Process-wide wiring of the reconciliation engine.

The gateway configuration is loaded and validated once, then injected into
the GatewayRefundClient. Rotate credentials with ``reload_gateway_config``.
"""
from typing import Optional

from app import config
from app.gateway.client import GatewayRefundClient
from app.services.reconciliation_service import ReconciliationEngine

_engine: Optional[ReconciliationEngine] = None


def build_engine(gateway_config: Optional[config.GatewayConfig] = None) -> ReconciliationEngine:
    gateway = GatewayRefundClient(gateway_config or config.load_gateway_config())
    return ReconciliationEngine(
        gateway=gateway,
        ledger_write_attempts=config.LEDGER_WRITE_RETRIES,
        ledger_write_backoff_seconds=config.LEDGER_WRITE_BACKOFF_SECONDS,
    )


def get_engine() -> ReconciliationEngine:
    """FastAPI dependency returning the shared engine, building it on first use."""
    global _engine
    if _engine is None:
        _engine = build_engine()
    return _engine


def reload_gateway_config() -> config.GatewayConfig:
    """Re-read gateway settings from the environment and hand them to the live client."""
    new_config = config.load_gateway_config()
    get_engine().gateway.reload(new_config)
    return new_config
