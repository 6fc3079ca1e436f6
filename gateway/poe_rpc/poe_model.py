"""Power-state tables and data models for UniFi PoE switches."""

import copy
import enum
from dataclasses import dataclass, field
from typing import Any


class PowerState(enum.Enum):
    OFF = "off"
    ON = "on"
    POWERING_OFF = "powering off"
    POWERING_ON = "powering on"

    @property
    def enabled(self) -> bool:
        """True when the state resolves to the backend's enable mode."""
        return self in (PowerState.ON, PowerState.POWERING_ON)

    def collapse(self) -> str:
        """External on/off vocabulary exposed over RPC."""
        return "on" if self.enabled else "off"


# PoE power flag as printed by `swctrl poe show` (lower-cased)
CLI_POWER_STATE_MAP = {
    "on": PowerState.ON,
    "off": PowerState.OFF,
    "powering on": PowerState.POWERING_ON,
    "powering off": PowerState.POWERING_OFF,
}

# Controller port-override poe_mode values
POE_MODE_AUTO = "auto"
POE_MODE_OFF = "off"

# Anything other than "auto" reads as off
POE_MODE_STATE_MAP = {
    POE_MODE_AUTO: PowerState.ON,
    POE_MODE_OFF: PowerState.OFF,
}

# Switch shell commands
CMD_POE_SHOW = "swctrl poe show id {port}"
CMD_POE_AUTO = "swctrl poe set auto id {port}"
CMD_POE_OFF = "swctrl poe set off id {port}"
CMD_POE_RESTART = "swctrl poe restart id {port}"

# Controller devmgr command for a single-port power cycle
DEVMGR_POWER_CYCLE = "power-cycle"


@dataclass
class PoEPortStatus:
    port: int
    op_mode: str = ""
    hp_mode: str = ""
    power_limit_mw: int = 0
    poe_class: str = ""
    poe_power: str = ""
    power_good: str = ""
    power_w: float = 0.0  # watts
    voltage_v: float = 0.0  # volts
    current_ma: float = 0.0  # milliamps


@dataclass
class PoEStatus:
    total_power_limit_mw: int | None = None
    ports: list[PoEPortStatus] = field(default_factory=list)

    def find_port(self, port: int) -> PoEPortStatus | None:
        for status in self.ports:
            if status.port == port:
                return status
        return None


@dataclass
class PortOverride:
    port_idx: int = 0
    poe_mode: str = ""
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> "PortOverride":
        extra = {k: v for k, v in data.items() if k not in ("port_idx", "poe_mode")}
        return cls(
            port_idx=int(data.get("port_idx", 0) or 0),
            poe_mode=data.get("poe_mode", "") or "",
            extra=extra,
        )

    def to_dict(self) -> dict:
        data = dict(self.extra)
        data["port_idx"] = self.port_idx
        if self.poe_mode:
            data["poe_mode"] = self.poe_mode
        return data


@dataclass
class SwitchDevice:
    """A controller device object; `raw` keeps every field for write-back."""
    id: str
    mac: str
    name: str = ""
    port_overrides: list[PortOverride] = field(default_factory=list)
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> "SwitchDevice":
        return cls(
            id=data.get("_id", ""),
            mac=data.get("mac", ""),
            name=data.get("name", ""),
            port_overrides=[PortOverride.from_dict(p)
                            for p in data.get("port_overrides") or []],
            raw=copy.deepcopy(data),
        )

    def find_override(self, port: int) -> PortOverride | None:
        for override in self.port_overrides:
            if override.port_idx == port:
                return override
        return None

    def to_dict(self) -> dict:
        data = copy.deepcopy(self.raw)
        data["_id"] = self.id
        data["mac"] = self.mac
        data["port_overrides"] = [p.to_dict() for p in self.port_overrides]
        return data
