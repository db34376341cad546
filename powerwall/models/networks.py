"""
Network interfaces reported by the ``networks`` call.
"""

from __future__ import annotations

from pydantic import Field

from powerwall.models.base import GatewayModel


class ExtraIP(GatewayModel):
    ip: str = ""
    netmask: int = 0


class IPNetwork(GatewayModel):
    ip: str = ""
    mask: str = ""


class InterfaceInfo(GatewayModel):
    network_name: str = ""
    ip_networks: list[IPNetwork] = Field(default_factory=list)
    gateway: str = ""
    interface: str = ""
    state: str = ""
    state_reason: str = ""
    signal_strength: int = 0
    hw_address: str = ""


class NetworkData(GatewayModel):
    """
    One network interface (ethernet, wifi or cellular) and its link state.

    ``last_tesla_connected`` / ``last_internet_connected`` report whether
    the most recent connectivity checks through this interface succeeded.
    """
    network_name: str = ""
    interface: str = ""
    dhcp: bool = False
    enabled: bool = False
    extra_ips: list[ExtraIP] | None = None
    active: bool = False
    primary: bool = False
    last_tesla_connected: bool = Field(default=False, alias="lastTeslaConnected")
    last_internet_connected: bool = Field(default=False, alias="lastInternetConnected")
    iface_network_info: InterfaceInfo = Field(default_factory=InterfaceInfo)
    security_type: str = ""
    username: str = ""
