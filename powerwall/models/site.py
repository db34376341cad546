"""
General gateway and site information: ``status``, ``site_info``, ``sitemaster``.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

from pydantic import Field

from powerwall.codec import Duration, NonIsoTime
from powerwall.models.base import GatewayModel

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

SITEMASTER_STATUS_UP = "StatusUp"
SITEMASTER_STATUS_DOWN = "StatusDown"

# Known values of SitemasterData.can_reboot; not exhaustive.
SITEMASTER_REBOOT_OK = "Yes"
SITEMASTER_REBOOT_POWER_TOO_HIGH = "Power flow is too high"


class StatusData(GatewayModel):
    """
    Device identity, firmware version and uptime from the ``status`` call.

    ``start_time`` arrives as ``"2023-01-02 03:04:05 -0700"`` and
    ``up_time_seconds`` as a compact duration such as ``"1h23m45.67s"``.
    """
    din: str = ""
    start_time: NonIsoTime = _EPOCH
    up_time_seconds: Duration = Field(default_factory=timedelta)
    is_new: bool = False
    version: str = ""
    git_hash: str = ""
    commission_count: int = 0
    device_type: str = ""
    sync_type: str = ""
    leader: str = ""
    followers: Any = None
    cellular_disabled: bool = False


class GridCodeData(GatewayModel):
    grid_code: str = ""
    grid_voltage_setting: int = 0
    grid_freq_setting: int = 0
    grid_phase_setting: str = ""
    country: str = ""
    state: str = ""
    distributor: str = ""
    utility: str = ""
    retailer: str = ""
    region: str = ""


class SiteInfoData(GatewayModel):
    site_name: str = ""
    timezone: str = ""
    max_site_meter_power_kw: int = Field(default=0, alias="max_site_meter_power_kW")
    min_site_meter_power_kw: int = Field(default=0, alias="min_site_meter_power_kW")
    measured_frequency: float = 0.0
    max_system_energy_kwh: float = Field(default=0.0, alias="max_system_energy_kWh")
    max_system_power_kw: float = Field(default=0.0, alias="max_system_power_kW")
    nominal_system_energy_kwh: float = Field(default=0.0, alias="nominal_system_energy_kWh")
    nominal_system_power_kw: float = Field(default=0.0, alias="nominal_system_power_kW")
    grid_code: GridCodeData = Field(default_factory=GridCodeData)


class SitemasterData(GatewayModel):
    status: str = ""
    running: bool = False
    connected_to_tesla: bool = False
    power_supply_mode: bool = False
    can_reboot: str = ""
