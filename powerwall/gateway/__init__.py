from powerwall.gateway.auth import AuthCoordinator, Credentials
from powerwall.gateway.client import PowerwallClient
from powerwall.gateway.errors import (
    ApiError,
    AuthFailure,
    DecodeError,
    LoginError,
    PowerwallError,
    TransportError,
)

__all__ = [
    "ApiError",
    "AuthCoordinator",
    "AuthFailure",
    "Credentials",
    "DecodeError",
    "LoginError",
    "PowerwallClient",
    "PowerwallError",
    "TransportError",
]
