# UniFi PoE RPC Gateway
# Created by Matthew Valancy, Valpatel Software LLC
# Copyright 2026 GPL-3.0 License
# https://github.com/mvalancy/CyberPower-PDU

"""Abstract backend protocol for switch PoE power control.

Defines the PowerBackend interface that the SSH, controller and mock
backends all implement. The RPC dispatcher and web server only ever
talk to this protocol, so which backend is active is a startup choice.

Device-addressed backends (controller) take the switch MAC on every
call; backends bound to a single switch (SSH) ignore it.
"""

from typing import Protocol, runtime_checkable

from .poe_model import PoEStatus, PowerState


@runtime_checkable
class PowerBackend(Protocol):
    """Protocol for PoE power backends.

    Implementations: SSHTransport, ControllerTransport, MockSwitch.
    """

    name: str

    # Capability flags
    requires_device: bool
    """True if every call needs a device identifier (MAC)."""

    strict_port_lookup: bool
    """True if an unknown port raises PortNotFound rather than reading as off."""

    async def get_power_state(self, device: str | None, port: int) -> PowerState:
        """Current PoE power state of a port."""
        ...

    async def set_power_state(self, device: str | None, port: int,
                              state: PowerState) -> None:
        """Enable (ON/POWERING_ON) or disable (OFF/POWERING_OFF) PoE."""
        ...

    async def restart_power(self, device: str | None, port: int) -> None:
        """Power-cycle a port as a single backend operation."""
        ...

    async def get_detailed_status(self, device: str | None, port: int) -> PoEStatus:
        """Full PoE status snapshot (diagnostics)."""
        ...

    def get_health(self) -> dict:
        """Return backend health metrics."""
        ...

    async def close(self) -> None:
        """Release sessions and connections."""
        ...
