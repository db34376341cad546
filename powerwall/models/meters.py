"""
Power meter readings: ``meters/aggregates`` and ``meters/<category>``.

Categories seen in the wild are ``site``, ``solar``, ``battery`` and
``load``; only ``site`` and ``solar`` return per-meter detail.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import Field

from powerwall.models.base import GatewayModel

METER_SITE = "site"
METER_SOLAR = "solar"
METER_BATTERY = "battery"
METER_LOAD = "load"


class MeterAggregatesData(GatewayModel):
    """Totals across all meters of one category, as returned by ``meters/aggregates``."""
    last_communication_time: datetime | None = None
    instant_power: float = 0.0
    instant_reactive_power: float = 0.0
    instant_apparent_power: float = 0.0
    frequency: float = 0.0
    energy_exported: float = 0.0
    energy_imported: float = 0.0
    instant_average_voltage: float = 0.0
    instant_average_current: float = 0.0
    i_a_current: float = 0.0
    i_b_current: float = 0.0
    i_c_current: float = 0.0
    last_phase_voltage_communication_time: datetime | None = None
    last_phase_power_communication_time: datetime | None = None
    timeout: int = 0
    num_meters_aggregated: int = 0
    instant_total_current: float = 0.0


class MeterHTTPSConf(GatewayModel):
    client_cert: str = ""
    client_key: str = Field(default="", repr=False)
    server_ca_cert: str = ""
    max_idle_conns_per_host: int = 0


class MeterConnection(GatewayModel):
    short_id: str = ""
    device_serial: str = ""
    https_conf: MeterHTTPSConf = Field(default_factory=MeterHTTPSConf)


class MeterReadings(GatewayModel):
    last_communication_time: datetime | None = None
    instant_power: float = 0.0
    instant_reactive_power: float = 0.0
    instant_apparent_power: float = 0.0
    frequency: float = 0.0
    energy_exported: float = 0.0
    energy_imported: float = 0.0
    instant_average_voltage: float = 0.0
    instant_average_current: float = 0.0
    i_a_current: float = 0.0
    i_b_current: float = 0.0
    i_c_current: float = 0.0
    v_l1n: float = 0.0
    v_l2n: float = 0.0
    last_phase_voltage_communication_time: datetime | None = None
    real_power_a: float = 0.0
    real_power_b: float = 0.0
    reactive_power_a: float = 0.0
    reactive_power_b: float = 0.0
    last_phase_power_communication_time: datetime | None = None
    serial_number: str = ""
    timeout: int = 0
    instant_total_current: float = 0.0


class CTVoltageReferences(GatewayModel):
    ct1: str = ""
    ct2: str = ""
    ct3: str = ""


class MeterData(GatewayModel):
    """
    One physical meter within a category.

    The gateway spells the readings key ``Cached_readings``; it is exposed
    here as ``cached_readings``.
    """
    id: int = 0
    location: str = ""
    type: str = ""
    cts: list[bool] = Field(default_factory=list)
    inverted: list[bool] = Field(default_factory=list)
    connection: MeterConnection = Field(default_factory=MeterConnection)
    real_power_scale_factor: float = 0.0
    cached_readings: MeterReadings = Field(default_factory=MeterReadings, alias="Cached_readings")
    ct_voltage_references: CTVoltageReferences = Field(default_factory=CTVoltageReferences)
