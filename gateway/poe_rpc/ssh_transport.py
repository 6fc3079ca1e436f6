# UniFi PoE RPC Gateway
# Created by Matthew Valancy, Valpatel Software LLC
# Copyright 2026 GPL-3.0 License
# https://github.com/mvalancy/CyberPower-PDU

"""SSH transport: wraps SSHClient + cli_parser into PowerBackend.

Maps the backend interface to switch shell commands:
  get_power_state()     -> swctrl poe show id N
  set_power_state()     -> swctrl poe set auto|off id N
  restart_power()       -> swctrl poe restart id N
  get_detailed_status() -> swctrl poe show id N (full snapshot)

The SSH backend is bound to one switch, so the device argument is
ignored.
"""

import logging

from .cli_parser import parse_poe_status
from .errors import InvalidPowerState, PortNotFound, UnknownPowerState
from .poe_model import (
    CLI_POWER_STATE_MAP,
    CMD_POE_AUTO,
    CMD_POE_OFF,
    CMD_POE_RESTART,
    CMD_POE_SHOW,
    PoEStatus,
    PowerState,
)
from .ssh_client import SSHClient

logger = logging.getLogger(__name__)


class SSHTransport:
    """PowerBackend implementation backed by the switch shell over SSH."""

    name = "ssh"
    requires_device = False
    strict_port_lookup = True

    def __init__(self, ssh_client: SSHClient, parser=parse_poe_status):
        self._ssh = ssh_client
        self._parse = parser

    @property
    def ssh_client(self) -> SSHClient:
        return self._ssh

    async def get_detailed_status(self, device: str | None, port: int) -> PoEStatus:
        text = await self._ssh.execute(CMD_POE_SHOW.format(port=port))
        return self._parse(text)

    async def get_power_state(self, device: str | None, port: int) -> PowerState:
        status = await self.get_detailed_status(device, port)
        record = status.find_port(port)
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
        command = template.format(port=port)
        await self._ssh.execute(command)
        logger.info("SSH: port %d -> %s (%s)", port, state.value, command)

    async def restart_power(self, device: str | None, port: int) -> None:
        await self._ssh.execute(CMD_POE_RESTART.format(port=port))
        logger.info("SSH: port %d power-cycled", port)

    def get_health(self) -> dict:
        health = self._ssh.get_health()
        health["backend"] = self.name
        return health

    async def close(self) -> None:
        """Nothing persistent to release; sessions close per command."""
