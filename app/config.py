import json
import os
from decimal import Decimal

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError
from pydantic.alias_generators import to_snake

load_dotenv()

# Required: fails fast if missing
API_KEY: str = os.environ["API_KEY"]

APP_ENV: str = os.getenv("APP_ENV", "development")
PORT: int = int(os.getenv("PORT", "8000"))
CORS_ORIGINS: str = os.getenv("CORS_ORIGINS", "")
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

LEDGER_WRITE_RETRIES: int = int(os.getenv("LEDGER_WRITE_RETRIES", "3"))
LEDGER_WRITE_BACKOFF_SECONDS: float = float(os.getenv("LEDGER_WRITE_BACKOFF_SECONDS", "0.2"))

HYBRID_ORDER_PREFIX = "HYB"


class ConfigError(Exception):
    """Raised at load time when configuration is missing or malformed."""


class GatewayConfig(BaseModel):
    """Payment provider credentials, validated once and handed to the gateway client."""

    model_config = {"extra": "forbid", "frozen": True}

    provider: str = Field("MERCADOPAGO", min_length=1, max_length=50)
    base_url: str = Field("https://api.mercadopago.com", pattern=r"^https?://")
    access_token: str = Field(..., min_length=1)
    timeout_seconds: Decimal = Field(Decimal("10"), gt=Decimal("0"), le=Decimal("120"))


def is_production() -> bool:
    return APP_ENV == "production"


def should_load_seed_data() -> bool:
    default = "false" if is_production() else "true"
    return os.getenv("LOAD_SEED_DATA", default).lower() in ("1", "true", "yes")


def get_cors_origins() -> list[str]:
    if not CORS_ORIGINS:
        return []
    return [origin.strip() for origin in CORS_ORIGINS.split(",") if origin.strip()]


def load_gateway_config() -> GatewayConfig:
    """
    Build the gateway configuration from the environment.

    GATEWAY_CONFIG holds a JSON object (camelCase or snake_case keys). When it is
    absent, the discrete GATEWAY_* variables are used instead.

    Raises:
        ConfigError: If the JSON is unparseable or a field fails validation.
    """
    raw = os.getenv("GATEWAY_CONFIG")
    if raw:
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ConfigError(f"GATEWAY_CONFIG is not valid JSON: {exc.msg}") from exc
        if not isinstance(data, dict):
            raise ConfigError("GATEWAY_CONFIG must be a JSON object")
        data = {to_snake(k): v for k, v in data.items()}
    else:
        data = {
            "provider": os.getenv("GATEWAY_PROVIDER", "MERCADOPAGO"),
            "base_url": os.getenv("GATEWAY_BASE_URL", "https://api.mercadopago.com"),
            "access_token": os.getenv("GATEWAY_ACCESS_TOKEN", ""),
            "timeout_seconds": os.getenv("GATEWAY_TIMEOUT_SECONDS", "10"),
        }

    try:
        return GatewayConfig(**data)
    except ValidationError as exc:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in exc.errors())
        raise ConfigError(f"Invalid gateway configuration: {fields}") from exc
