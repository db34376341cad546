"""
Request and response bodies for the ``login/Basic`` call.
"""

from __future__ import annotations

from pydantic import Field

from powerwall.models.base import GatewayModel


class LoginRequest(GatewayModel):
    username: str = "customer"
    email: str
    password: str = Field(repr=False)
    force_sm_off: bool = False


class LoginResponse(GatewayModel):
    email: str = ""
    firstname: str = ""
    lastname: str = ""
    roles: list[str] = Field(default_factory=list)
    token: str = ""
    provider: str = ""
    login_time: str = Field(default="", alias="loginTime")


class ErrorResponse(GatewayModel):
    """Best-effort shape of a 401/403 body."""
    code: int = 0
    error: str = ""
    message: str = ""
