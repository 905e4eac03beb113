import hmac
from typing import Optional
from fastapi import Header, HTTPException, status
from app.config import API_KEY

_UNAUTHORIZED = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail={"error": "Invalid or missing API key"},
)


async def require_api_key(x_api_key: Optional[str] = Header(None, alias="X-API-Key")) -> str:
    """Verify API key using constant-time comparison to prevent timing attacks."""
    if not x_api_key:
        raise _UNAUTHORIZED
    if not hmac.compare_digest(x_api_key.encode(), API_KEY.encode()):
        raise _UNAUTHORIZED
    return x_api_key


async def get_operator(
    x_operator_id: Optional[str] = Header(None, alias="X-Operator-ID", max_length=100),
) -> str:
    """Identity recorded as ``processed_by`` on ledger rows."""
    return x_operator_id.strip() if x_operator_id and x_operator_id.strip() else "admin"
