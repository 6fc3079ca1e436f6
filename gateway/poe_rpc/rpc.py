# UniFi PoE RPC Gateway
# Created by Matthew Valancy, Valpatel Software LLC
# Copyright 2026 GPL-3.0 License
# https://github.com/mvalancy/CyberPower-PDU

"""JSON-RPC request decoding and method dispatch.

The body `{id, method, host, params}` decodes straight into one request
type per method, each with its own typed params, so there is no generic
params blob to re-parse later. RPCDispatcher maps a decoded request onto
the PowerBackend and always returns an RPCResponse; failures travel in
its error field, never as exceptions.

Method table:
  power.get    -> "on" | "off"
  power.set    -> null            state: on | off | soft | reset | cycle
  boot.device  -> acknowledgement (not applied to the hardware)
  ping         -> "pong"
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Union

from .addressing import Target
from .errors import (
    BackendError,
    GatewayError,
    InvalidParams,
    InvalidPowerState,
    UnknownMethod,
)
from .poe_model import PowerState
from .transport import PowerBackend

logger = logging.getLogger(__name__)

POWER_GET = "power.get"
POWER_SET = "power.set"
BOOT_DEVICE = "boot.device"
PING = "ping"

# power.set state -> backend action
STATE_ON = ("on",)
STATE_OFF = ("off", "soft")
STATE_RESTART = ("reset", "cycle")


@dataclass
class RPCBase:
    id: Any = None
    host: str = ""


@dataclass
class PowerGetRequest(RPCBase):
    pass


@dataclass
class PowerSetRequest(RPCBase):
    state: str = ""


@dataclass
class BootDeviceRequest(RPCBase):
    device: str = ""
    persistent: bool = False
    efi_boot: bool = False


@dataclass
class PingRequest(RPCBase):
    pass


@dataclass
class UnknownRequest(RPCBase):
    method: str = ""


RPCRequest = Union[PowerGetRequest, PowerSetRequest, BootDeviceRequest,
                   PingRequest, UnknownRequest]


@dataclass
class RPCResponse:
    id: Any = None
    host: str = ""
    result: Any = None
    error: dict | None = None

    @property
    def status(self) -> int:
        return self.error["code"] if self.error else 200

    def to_dict(self) -> dict:
        data = {"id": self.id, "host": self.host}
        if self.error:
            data["error"] = self.error
        else:
            data["result"] = self.result
        return data

    @classmethod
    def failure(cls, request: RPCBase, err: GatewayError) -> "RPCResponse":
        return cls(id=request.id, host=request.host,
                   error={"code": err.status, "message": err.message})


def _params(body: dict) -> dict:
    params = body.get("params")
    if params is None:
        return {}
    if not isinstance(params, dict):
        raise InvalidParams("params must be an object")
    return params


def _bool(params: dict, key: str) -> bool:
    value = params.get(key, False)
    if not isinstance(value, bool):
        raise InvalidParams(f"{key} must be a boolean")
    return value


def decode_request(body: Any) -> RPCRequest:
    """Decode a parsed JSON body into the request type for its method.

    Raises InvalidParams for a non-object body or malformed params; the
    error carries nothing about id/host since they may not be readable.
    """
    if not isinstance(body, dict):
        raise InvalidParams("request body must be a JSON object")

    base = {"id": body.get("id"), "host": body.get("host") or ""}
    method = body.get("method") or ""

    if method == POWER_GET:
        return PowerGetRequest(**base)
    if method == PING:
        return PingRequest(**base)
    if method == POWER_SET:
        params = _params(body)
        state = params.get("state", "")
        if not isinstance(state, str):
            raise InvalidParams("error parsing power.set params: state must be a string")
        return PowerSetRequest(state=state, **base)
    if method == BOOT_DEVICE:
        params = _params(body)
        device = params.get("device", "")
        if not isinstance(device, str):
            raise InvalidParams("error parsing boot.device params: device must be a string")
        return BootDeviceRequest(
            device=device,
            persistent=_bool(params, "persistent"),
            efi_boot=_bool(params, "efiBoot"),
            **base,
        )
    return UnknownRequest(method=method, **base)


def request_envelope(body: Any) -> RPCBase:
    """Best-effort id/host for error responses when decoding fails."""
    if isinstance(body, dict):
        return RPCBase(id=body.get("id"), host=body.get("host") or "")
    return RPCBase()


class RPCDispatcher:
    """Maps decoded RPC requests onto a PowerBackend."""

    def __init__(self, backend: PowerBackend):
        self._backend = backend

    @property
    def backend(self) -> PowerBackend:
        return self._backend

    async def dispatch(self, request: RPCRequest, target: Target) -> RPCResponse:
        handler = {
            PowerGetRequest: self._power_get,
            PowerSetRequest: self._power_set,
            BootDeviceRequest: self._boot_device,
            PingRequest: self._ping,
        }.get(type(request))

        if handler is None:
            method = getattr(request, "method", "")
            return RPCResponse.failure(request, UnknownMethod(f"unknown method: {method}"))

        try:
            result = await handler(request, target)
        except GatewayError as err:
            return RPCResponse.failure(request, err)
        except Exception as e:
            logger.exception("RPC %s failed for port %d", type(request).__name__,
                             target.port)
            return RPCResponse.failure(request, BackendError(str(e)))
        return RPCResponse(id=request.id, host=request.host, result=result)

    @staticmethod
    def _as_backend_error(action: str, err: GatewayError) -> GatewayError:
        """Inside RPC methods every backend failure is a 500."""
        if err.status == 400:
            return err
        return BackendError(f"error {action}: {err.message}")

    async def _power_get(self, request: PowerGetRequest, target: Target) -> str:
        try:
            state = await self._backend.get_power_state(target.device, target.port)
        except GatewayError as err:
            raise self._as_backend_error("getting power state", err) from err
        return state.collapse()

    async def _power_set(self, request: PowerSetRequest, target: Target) -> None:
        state = request.state
        if state in STATE_RESTART:
            action = "power cycling port"
            call = self._backend.restart_power(target.device, target.port)
        elif state in STATE_ON or state in STATE_OFF:
            action = "setting power state"
            power = PowerState.ON if state in STATE_ON else PowerState.OFF
            call = self._backend.set_power_state(target.device, target.port, power)
        else:
            raise InvalidPowerState(f"invalid power state: {state}")

        try:
            await call
        except GatewayError as err:
            raise self._as_backend_error(action, err) from err
        logger.info("RPC power.set %s on port %d (device %s)",
                    state, target.port, target.device or "-")
        return None

    async def _boot_device(self, request: BootDeviceRequest, target: Target) -> dict:
        logger.info("RPC boot.device %s for port %d acknowledged (not supported)",
                    request.device, target.port)
        return {
            "acknowledged": True,
            "device": request.device,
            "persistent": request.persistent,
            "efiBoot": request.efi_boot,
            "message": "boot device setting not supported for UniFi devices",
        }

    async def _ping(self, request: PingRequest, target: Target) -> str:
        return "pong"
