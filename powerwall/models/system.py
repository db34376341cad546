"""
System state: ``system_status`` and its sub-resources, plus ``operation``
and ``troubleshooting/problems``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import Field

from powerwall.codec import DecodedAlert
from powerwall.models.base import GatewayModel

GRID_STATUS_CONNECTED = "SystemGridConnected"
GRID_STATUS_ISLANDED = "SystemIslandedActive"
GRID_STATUS_TRANSITION = "SystemTransitionToGrid"

OPERATION_MODE_SELF = "self_consumption"
OPERATION_MODE_TIME_BASED = "autonomous"


class GridFaultData(GatewayModel):
    """
    One grid fault event. ``decoded_alert`` is flattened from its
    doubly-encoded wire form into ``{name: "value units"}``.
    """
    timestamp: int = 0
    alert_name: str = ""
    alert_is_fault: bool = False
    decoded_alert: DecodedAlert = Field(default_factory=dict)
    alert_raw: int = 0
    git_hash: str = ""
    site_uid: str = ""
    ecu_type: str = ""
    ecu_package_part_number: str = ""
    ecu_package_serial_number: str = ""


class BatteryBlockData(GatewayModel):
    type: str = Field(default="", alias="Type")
    package_part_number: str = Field(default="", alias="PackagePartNumber")
    package_serial_number: str = Field(default="", alias="PackageSerialNumber")
    disabled_reasons: list[Any] = Field(default_factory=list)
    pinv_state: str = ""
    pinv_grid_state: str = ""
    nominal_energy_remaining: float = 0.0
    nominal_full_pack_energy: float = 0.0
    p_out: float = 0.0
    q_out: float = 0.0
    v_out: float = 0.0
    f_out: float = 0.0
    i_out: float = 0.0
    energy_charged: float = 0.0
    energy_discharged: float = 0.0
    off_grid: bool = False
    vf_mode: bool = False
    wobble_detected: bool = False
    charge_power_clamped: bool = False
    backup_ready: bool = False
    op_seq_state: str = Field(default="", alias="OpSeqState")
    version: str = ""


class SystemStatusData(GatewayModel):
    command_source: str = ""
    battery_target_power: float = 0.0
    battery_target_reactive_power: float = 0.0
    nominal_full_pack_energy: float = 0.0
    nominal_energy_remaining: float = 0.0
    max_charge_power: float = 0.0
    max_discharge_power: float = 0.0
    max_apparent_power: float = 0.0
    system_island_state: str = ""
    available_blocks: int = 0
    battery_blocks: list[BatteryBlockData] = Field(default_factory=list)
    grid_faults: list[GridFaultData] = Field(default_factory=list)
    can_reboot: str = ""
    last_toggle_timestamp: datetime | None = None
    blocks_controlled: int = 0
    primary: bool = False
    expected_energy_remaining: float = 0.0


class GridStatusData(GatewayModel):
    grid_status: str = ""
    grid_services_active: bool = False


class SOEData(GatewayModel):
    """State of energy: total charge across all batteries, in percent."""
    percentage: float = 0.0


class OperationData(GatewayModel):
    real_mode: str = ""
    backup_reserve_percent: float = 0.0
    freq_shift_load_shed_soe: float = 0.0
    freq_shift_load_shed_delta_f: float = 0.0


class ProblemsData(GatewayModel):
    # Entry format is unknown; only emptiness is meaningful so far.
    problems: list[Any] = Field(default_factory=list)
