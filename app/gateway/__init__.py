from .client import (
    GatewayRefundClient,
    GatewayRefund,
    GatewayError,
    AlreadyRefunded,
    InsufficientGatewayBalance,
    PaymentNotFound,
    InvalidCredentials,
    PermissionDenied,
    UnknownGatewayError,
    map_gateway_error,
)

__all__ = [
    "GatewayRefundClient",
    "GatewayRefund",
    "GatewayError",
    "AlreadyRefunded",
    "InsufficientGatewayBalance",
    "PaymentNotFound",
    "InvalidCredentials",
    "PermissionDenied",
    "UnknownGatewayError",
    "map_gateway_error",
]
