import json
import logging
import time
from datetime import datetime, timezone
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("access")


class StructuredLoggingMiddleware(BaseHTTPMiddleware):
    """Emit one JSON access line per request. Never logs the API key value."""

    async def dispatch(self, request: Request, call_next) -> Response:
        start = time.monotonic()
        has_api_key = "X-API-Key" in request.headers

        response = await call_next(request)

        if response.status_code == 401:
            auth_outcome = "failed"
        elif has_api_key:
            auth_outcome = "ok"
        else:
            auth_outcome = "missing"

        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "request_id": getattr(request.state, "request_id", "unknown"),
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "operator": request.headers.get("X-Operator-ID", "admin"),
            "ip": request.client.host if request.client else "unknown",
            "duration_ms": round((time.monotonic() - start) * 1000),
            "auth": auth_outcome,
        }
        level = logging.WARNING if response.status_code >= 500 else logging.INFO
        logger.log(level, json.dumps(log_entry))

        return response
