# UniFi PoE RPC Gateway
# Created by Matthew Valancy, Valpatel Software LLC
# Copyright 2026 GPL-3.0 License
# https://github.com/mvalancy/CyberPower-PDU

"""Controller transport: wraps ControllerClient into PowerBackend.

Power state lives in the device's port_overrides list:
  get_power_state()  -> GET device, read port_overrides[port].poe_mode
  set_power_state()  -> GET device, set poe_mode, PUT the whole device
  restart_power()    -> devmgr power-cycle command

A port with no override reads as off rather than raising; see
strict_port_lookup. Read-modify-write is serialized per device inside
this process only; another writer elsewhere can still race it.
"""

import asyncio
import logging
import weakref

from .controller_client import ControllerClient
from .errors import InvalidPowerState, MissingDevice, UnsupportedOperation
from .poe_model import (
    POE_MODE_AUTO,
    POE_MODE_OFF,
    POE_MODE_STATE_MAP,
    PoEStatus,
    PortOverride,
    PowerState,
)

logger = logging.getLogger(__name__)


class ControllerTransport:
    """PowerBackend implementation backed by the UniFi controller API."""

    name = "controller"
    requires_device = True
    strict_port_lookup = False

    def __init__(self, client: ControllerClient):
        self._client = client
        # entries vanish once no request holds or waits on the lock
        self._device_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    @property
    def client(self) -> ControllerClient:
        return self._client

    @staticmethod
    def _require(device: str | None) -> str:
        if not device:
            raise MissingDevice("device MAC address is required")
        return device

    def _lock_for(self, device: str) -> asyncio.Lock:
        key = device.strip().lower()
        lock = self._device_locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._device_locks[key] = lock
        return lock

    async def get_port_override(self, device: str, port: int) -> PortOverride:
        """Matching override, or an empty one if the port has none."""
        dev = await self._client.get_device_by_mac(self._require(device))
        override = dev.find_override(port)
        if override is None:
            logger.debug("Controller: %s has no override for port %d", device, port)
            return PortOverride()
        return override

    async def get_power_state(self, device: str | None, port: int) -> PowerState:
        override = await self.get_port_override(device, port)
        return POE_MODE_STATE_MAP.get(override.poe_mode, PowerState.OFF)

    async def set_power_state(self, device: str | None, port: int,
                              state: PowerState) -> None:
        if not isinstance(state, PowerState):
            raise InvalidPowerState(f"unsupported power state: {state!r}")
        device = self._require(device)
        mode = POE_MODE_AUTO if state.enabled else POE_MODE_OFF

        async with self._lock_for(device):
            dev = await self._client.get_device_by_mac(device)
            override = dev.find_override(port)
            if override is not None and override.poe_mode == mode:
                logger.debug("Controller: %s port %d already %s", device, port, mode)
                return
            if override is None:
                dev.port_overrides.append(PortOverride(port_idx=port, poe_mode=mode))
            else:
                override.poe_mode = mode
            await self._client.update_device(dev)

        logger.info("Controller: %s port %d poe_mode -> %s", device, port, mode)

    async def restart_power(self, device: str | None, port: int) -> None:
        device = self._require(device)
        await self._client.power_cycle(device, port)
        logger.info("Controller: %s port %d power-cycled", device, port)

    async def get_detailed_status(self, device: str | None, port: int) -> PoEStatus:
        raise UnsupportedOperation("detailed PoE status is only available over SSH")

    def get_health(self) -> dict:
        health = self._client.get_health()
        health["backend"] = self.name
        return health

    async def close(self) -> None:
        await self._client.close()
