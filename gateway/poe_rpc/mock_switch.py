# UniFi PoE RPC Gateway
# Created by Matthew Valancy, Valpatel Software LLC
# Copyright 2026 GPL-3.0 License
# https://github.com/mvalancy/CyberPower-PDU

"""Simulated PoE switch for running without real hardware.

Keeps per-port PoE state in memory and answers the same shell commands
as a real UniFi switch, rendering `swctrl poe show` text that goes
through the real cli_parser. Port count is configurable.
"""

import collections
import logging
import random

from .cli_parser import parse_poe_status
from .errors import BackendError, InvalidPowerState, PortNotFound, UnknownPowerState
from .poe_model import (
    CLI_POWER_STATE_MAP,
    CMD_POE_AUTO,
    CMD_POE_OFF,
    CMD_POE_RESTART,
    CMD_POE_SHOW,
    PoEStatus,
    PowerState,
)

logger = logging.getLogger(__name__)

HEADER = (
    "Port  OpMode      HpMode    PwrLimit   Class   PoEPwr  PwrGood  "
    "Power(W)  Voltage(V)  Current(mA)\n"
    "                            (mW)\n"
    "----  ------  ------------  --------  -------  ------  -------  "
    "--------  ----------  -----------"
)


class MockSwitch:
    """PowerBackend that simulates a UniFi PoE switch."""

    name = "mock"
    requires_device = False
    strict_port_lookup = True

    def __init__(self, num_ports: int = 8, total_power_limit_mw: int = 150000,
                 seed: int | None = None, history: int = 200):
        self._num_ports = num_ports
        self._total_power_limit_mw = total_power_limit_mw
        self._enabled: dict[int, bool] = {n: True for n in range(1, num_ports + 1)}
        self._rng = random.Random(seed)
        self.commands: collections.deque[str] = collections.deque(maxlen=history)
        self._total_commands = 0
        self.restarts: dict[int, int] = {}

    def render_status(self, port: int | None = None) -> str:
        """Render `swctrl poe show` output; unknown ports list every port."""
        lines = [f"Total Power Limit(mW): {self._total_power_limit_mw}", "", HEADER]
        ports = [port] if port in self._enabled else sorted(self._enabled)
        for n in ports:
            on = self._enabled[n]
            watts = round(self._rng.uniform(2.5, 6.0), 2) if on else 0.0
            volts = round(self._rng.uniform(53.5, 54.1), 2) if on else 0.0
            milliamps = round(watts / volts * 1000, 2) if on else 0.0
            lines.append(
                f"{n:>4}  {'Auto' if on else 'Off':>6}  {'Dot3at':>12}  {32000:>8}  "
                f"{'Class 4' if on else 'Unknown':>7}  {'On' if on else 'Off':>6}  "
                f"{'Good' if on else 'Bad':>7}  {watts:>8.2f}  {volts:>10.2f}  "
                f"{milliamps:>11.2f}"
            )
        return "\n".join(lines) + "\n"

    def execute(self, command: str) -> str:
        """Answer a shell command the way the switch would."""
        self._total_commands += 1
        self.commands.append(command)
        parts = command.split()
        if parts[:2] != ["swctrl", "poe"] or len(parts) < 5:
            raise BackendError(f"command '{command}' exited with status 127")
        port = int(parts[-1])
        if command == CMD_POE_SHOW.format(port=port):
            return self.render_status(port)
        if port not in self._enabled:
            raise BackendError(f"command '{command}' exited with status 1: invalid port")
        if command == CMD_POE_AUTO.format(port=port):
            self._enabled[port] = True
        elif command == CMD_POE_OFF.format(port=port):
            self._enabled[port] = False
        elif command == CMD_POE_RESTART.format(port=port):
            self.restarts[port] = self.restarts.get(port, 0) + 1
        else:
            raise BackendError(f"command '{command}' exited with status 1")
        return ""

    # --- PowerBackend ----------------------------------------------------

    async def get_detailed_status(self, device: str | None, port: int) -> PoEStatus:
        return parse_poe_status(self.execute(CMD_POE_SHOW.format(port=port)))

    async def get_power_state(self, device: str | None, port: int) -> PowerState:
        record = (await self.get_detailed_status(device, port)).find_port(port)
        if record is None:
            raise PortNotFound(f"port {port} not found in status")
        state = CLI_POWER_STATE_MAP.get(record.poe_power.lower())
        if state is None:
            raise UnknownPowerState(f"unknown power state: {record.poe_power}")
        return state

    async def set_power_state(self, device: str | None, port: int,
                              state: PowerState) -> None:
        if not isinstance(state, PowerState):
            raise InvalidPowerState(f"unsupported power state: {state!r}")
        template = CMD_POE_AUTO if state.enabled else CMD_POE_OFF
        self.execute(template.format(port=port))
        logger.info("Mock: port %d -> %s", port, state.value)

    async def restart_power(self, device: str | None, port: int) -> None:
        self.execute(CMD_POE_RESTART.format(port=port))
        logger.info("Mock: port %d power-cycled", port)

    def get_health(self) -> dict:
        return {
            "backend": self.name,
            "ports": self._num_ports,
            "total_commands": self._total_commands,
            "reachable": True,
        }

    async def close(self) -> None:
        pass
