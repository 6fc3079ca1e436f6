# UniFi PoE RPC Gateway
# Created by Matthew Valancy, Valpatel Software LLC
# Copyright 2026 GPL-3.0 License
# https://github.com/mvalancy/CyberPower-PDU

"""Extract the target device and port from request headers.

Pure functions over a header mapping (aiohttp's CIMultiDictProxy or any
case-insensitive Mapping); no I/O. Ports are 1-based everywhere.
"""

from collections.abc import Mapping
from dataclasses import dataclass

from .errors import InvalidPort, MissingDevice, MissingPort, NonPositivePort

PORT_HEADER = "X-Port"
DEVICE_HEADER = "X-MAC-Address"


@dataclass(frozen=True)
class Target:
    port: int
    device: str | None = None


def parse_port(raw: str | None) -> int:
    """Validate a raw port value (header or path segment)."""
    if raw is None or not raw.strip():
        raise MissingPort(f"{PORT_HEADER} header is required")
    raw = raw.strip()
    try:
        port = int(raw, 10)
    except ValueError:
        raise InvalidPort(f"invalid port number {raw!r}") from None
    if port < 1:
        raise NonPositivePort(
            f"invalid port number: port must be positive, got {port}"
        )
    return port


def get_port(headers: Mapping[str, str]) -> int:
    return parse_port(headers.get(PORT_HEADER))


def get_device(headers: Mapping[str, str], default: str | None = None,
               required: bool = False) -> str | None:
    """Per-request device header, else the configured default."""
    device = (headers.get(DEVICE_HEADER) or "").strip() or default or None
    if device is None and required:
        raise MissingDevice(
            f"{DEVICE_HEADER} header is required (no default device configured)"
        )
    return device


def resolve_target(headers: Mapping[str, str], default_device: str | None = None,
                   require_device: bool = False) -> Target:
    port = get_port(headers)
    device = get_device(headers, default_device, required=require_device)
    return Target(port=port, device=device)
