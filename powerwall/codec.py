"""
Decoders for the gateway's nonstandard JSON value encodings.

Most of the API is plain JSON, but a few fields need special handling:

- **NonIsoTime**: ``start_time`` of the ``status`` call uses the literal
  layout ``"2023-01-02 03:04:05 -0700"`` instead of ISO 8601.
- **Duration**: uptimes are compact duration strings (``"1h23m45.67s"``).
- **DecodedAlert**: ``decoded_alert`` of grid faults is a JSON string which
  itself holds a JSON list of ``{"name", "value", "units"}`` entries,
  flattened here to ``{name: "value units"}``.

Each decoder is exposed both as a plain function and as a pydantic
``Annotated`` type for use in response models.
"""

from __future__ import annotations

import json
import re
from datetime import datetime, timedelta
from decimal import Decimal
from functools import singledispatch
from typing import Annotated, Any

from pydantic import BeforeValidator, PlainSerializer, ValidationInfo

NON_ISO_TIME_FORMAT = "%Y-%m-%d %H:%M:%S %z"

_NON_ISO_TIME_RE = re.compile(r"^\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2} [+-]\d{4}$")
_DURATION_PART_RE = re.compile(r"(\d+\.?\d*|\.\d+)(ns|us|µs|μs|ms|s|m|h)")

# Microseconds per unit; ns is kept fractional and rounded on conversion.
_DURATION_UNITS_US: dict[str, Decimal] = {
    "ns": Decimal("0.001"),
    "us": Decimal(1),
    "µs": Decimal(1),
    "μs": Decimal(1),
    "ms": Decimal(1_000),
    "s": Decimal(1_000_000),
    "m": Decimal(60_000_000),
    "h": Decimal(3_600_000_000),
}


class CodecError(ValueError):
    """Raised when a value does not match its expected wire format."""


def _unquote(raw: str | bytes) -> str:
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8")
    return raw.replace('"', "")


def parse_non_iso_time(raw: str | bytes) -> datetime:
    text = _unquote(raw)
    if not _NON_ISO_TIME_RE.match(text):
        raise CodecError(f"cannot parse {text!r} as non-ISO time (expected 'YYYY-MM-DD HH:MM:SS +ZZZZ')")
    try:
        return datetime.strptime(text, NON_ISO_TIME_FORMAT)
    except ValueError as exc:
        raise CodecError(f"cannot parse {text!r} as non-ISO time: {exc}") from exc


def format_non_iso_time(value: datetime) -> str:
    return value.strftime(NON_ISO_TIME_FORMAT)


def parse_duration(raw: str | bytes) -> timedelta:
    """
    Parse a compact duration string such as ``"1h23m45.67s"``.

    Accepts an optional sign, one or more ``<number><unit>`` parts with units
    ``h m s ms us µs ns``, or a bare ``"0"``. Precision finer than one
    microsecond is rounded away.

    Raises:
        CodecError: If the text is empty, lacks a unit, or uses an unknown unit.
    """
    text = _unquote(raw)
    original = text
    sign = 1
    if text[:1] in ("-", "+"):
        sign = -1 if text[0] == "-" else 1
        text = text[1:]
    if text == "0":
        return timedelta(0)
    if not text:
        raise CodecError(f"invalid duration {original!r}")

    total_us = Decimal(0)
    pos = 0
    while pos < len(text):
        match = _DURATION_PART_RE.match(text, pos)
        if match is None:
            raise CodecError(f"invalid duration {original!r}")
        number, unit = match.groups()
        total_us += Decimal(number) * _DURATION_UNITS_US[unit]
        pos = match.end()

    return timedelta(microseconds=sign * int(total_us.to_integral_value()))


def _trim_fraction(whole: int, frac: int, width: int) -> str:
    if not frac:
        return str(whole)
    digits = f"{frac:0{width}d}".rstrip("0")
    return f"{whole}.{digits}"


def format_duration(value: timedelta) -> str:
    """
    Render a timedelta in canonical compact form.

    ``1h0m5s``, ``1m30s``, ``45.67s``, ``1.5ms``, ``250µs``, ``0s``.
    """
    total_us = (value.days * 86_400 + value.seconds) * 1_000_000 + value.microseconds
    if total_us == 0:
        return "0s"
    sign = "-" if total_us < 0 else ""
    total_us = abs(total_us)

    if total_us < 1_000:
        return f"{sign}{total_us}µs"
    if total_us < 1_000_000:
        return f"{sign}{_trim_fraction(total_us // 1_000, total_us % 1_000, 3)}ms"

    hours, rem = divmod(total_us, 3_600_000_000)
    minutes, rem = divmod(rem, 60_000_000)
    seconds = _trim_fraction(rem // 1_000_000, rem % 1_000_000, 6)
    if hours:
        return f"{sign}{hours}h{minutes}m{seconds}s"
    if minutes:
        return f"{sign}{minutes}m{seconds}s"
    return f"{sign}{seconds}s"


@singledispatch
def _render_alert_value(value: Any, entry: dict[str, Any]) -> str:
    return f"unrecognized type {entry!r}"


@_render_alert_value.register
def _(value: bool, entry: dict[str, Any]) -> str:
    return f"unrecognized type {entry!r}"


@_render_alert_value.register
def _(value: int, entry: dict[str, Any]) -> str:
    return str(value)


@_render_alert_value.register
def _(value: float, entry: dict[str, Any]) -> str:
    text = format(Decimal(repr(value)), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


@_render_alert_value.register
def _(value: str, entry: dict[str, Any]) -> str:
    return value


@_render_alert_value.register
def _(value: bytes, entry: dict[str, Any]) -> str:
    return json.dumps(value.decode("utf-8", errors="backslashreplace"))


def _context_label(context: str | None) -> str:
    return f" from {context!r}" if context else ""


def decode_alert_value(value: Any, *, context: str | None = None) -> dict[str, str]:
    """
    Flatten an already-parsed ``decoded_alert`` field into ``{name: text}``.

    ``value`` must be the outer JSON string. An empty string decodes to an
    empty mapping. Later entries with the same name replace earlier ones.

    Raises:
        CodecError: If the outer value is not a string, or the inner text is
            not a JSON list of objects.
    """
    if not isinstance(value, str):
        raise CodecError(
            f"error decoding grid alert{_context_label(context)}: expected a JSON string, "
            f"got {type(value).__name__}"
        )
    if value == "":
        return {}

    try:
        entries = json.loads(value)
    except json.JSONDecodeError as exc:
        raise CodecError(f"error decoding grid alert{_context_label(context)} {value!r}: {exc}") from exc
    if not isinstance(entries, list):
        raise CodecError(f"error decoding grid alert{_context_label(context)} {value!r}: expected a list")

    decoded: dict[str, str] = {}
    for entry in entries:
        if not isinstance(entry, dict):
            raise CodecError(
                f"error decoding grid alert{_context_label(context)} {value!r}: entry {entry!r} is not an object"
            )
        name = entry.get("name", "")
        if not isinstance(name, str):
            raise CodecError(
                f"error decoding grid alert{_context_label(context)} {value!r}: entry name {name!r} is not a string"
            )
        text = _render_alert_value(entry.get("value"), entry)
        units = entry.get("units")
        if isinstance(units, str) and units and text:
            text = f"{text} {units}"
        decoded[name] = text
    return decoded


def decode_alert(raw: str | bytes, *, context: str | None = None) -> dict[str, str]:
    """Decode the raw JSON text of a ``decoded_alert`` field."""
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise CodecError(f"error decoding grid alert{_context_label(context)} into string: {exc}") from exc
    return decode_alert_value(value, context=context)


def _validate_non_iso_time(value: Any) -> Any:
    if isinstance(value, (str, bytes)):
        return parse_non_iso_time(value)
    if isinstance(value, datetime):
        return value
    raise CodecError(f"cannot parse {value!r} as non-ISO time: expected a string")


def _validate_duration(value: Any) -> Any:
    if isinstance(value, (str, bytes)):
        return parse_duration(value)
    if isinstance(value, timedelta):
        return value
    raise CodecError(f"invalid duration {value!r}: expected a string")


def _validate_alert(value: Any, info: ValidationInfo) -> Any:
    if value is None:
        return {}
    # An already-flattened mapping is only accepted from Python callers;
    # on the wire the field must be the doubly-encoded string.
    if isinstance(value, dict) and info.mode == "python":
        return value
    return decode_alert_value(value, context="decoded_alert")


NonIsoTime = Annotated[
    datetime,
    BeforeValidator(_validate_non_iso_time),
    PlainSerializer(format_non_iso_time, return_type=str),
]
Duration = Annotated[
    timedelta,
    BeforeValidator(_validate_duration),
    PlainSerializer(format_duration, return_type=str),
]
DecodedAlert = Annotated[dict[str, str], BeforeValidator(_validate_alert)]
