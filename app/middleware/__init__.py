from .request_size import RequestSizeMiddleware
from .request_id import RequestIDMiddleware
from .logging import StructuredLoggingMiddleware

__all__ = [
    "RequestSizeMiddleware",
    "RequestIDMiddleware",
    "StructuredLoggingMiddleware",
]
