# UniFi PoE RPC Gateway
# Created by Matthew Valancy, Valpatel Software LLC
# Copyright 2026 GPL-3.0 License
# https://github.com/mvalancy/CyberPower-PDU

"""Tests for JSON-RPC decoding and dispatch."""

import os
import sys
from unittest.mock import AsyncMock, MagicMock

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "gateway"))

from poe_rpc.addressing import Target
from poe_rpc.errors import (
    BackendTimeout,
    DeviceNotFound,
    InvalidParams,
    MissingDevice,
    PortNotFound,
)
from poe_rpc.poe_model import PowerState
from poe_rpc.rpc import (
    BootDeviceRequest,
    PingRequest,
    PowerGetRequest,
    PowerSetRequest,
    RPCDispatcher,
    RPCResponse,
    UnknownRequest,
    decode_request,
    request_envelope,
)


TARGET = Target(port=3, device="aa:bb:cc:dd:ee:ff")


def make_backend(state=PowerState.ON):
    backend = MagicMock()
    backend.get_power_state = AsyncMock(return_value=state)
    backend.set_power_state = AsyncMock(return_value=None)
    backend.restart_power = AsyncMock(return_value=None)
    return backend


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------

class TestDecodeRequest:
    def test_power_get(self):
        req = decode_request({"id": 1, "method": "power.get", "host": "node-3"})
        assert req == PowerGetRequest(id=1, host="node-3")

    def test_power_set(self):
        req = decode_request({"id": "a", "method": "power.set", "params": {"state": "soft"}})
        assert isinstance(req, PowerSetRequest)
        assert req.state == "soft"
        assert req.host == ""

    def test_boot_device(self):
        req = decode_request({
            "id": 2, "method": "boot.device",
            "params": {"device": "pxe", "persistent": True, "efiBoot": True},
        })
        assert req == BootDeviceRequest(id=2, device="pxe", persistent=True, efi_boot=True)

    def test_boot_device_defaults(self):
        req = decode_request({"method": "boot.device"})
        assert req.device == ""
        assert req.persistent is False
        assert req.efi_boot is False

    def test_ping(self):
        assert isinstance(decode_request({"method": "ping"}), PingRequest)

    def test_unknown_method(self):
        req = decode_request({"id": 5, "method": "chassis.identify"})
        assert req == UnknownRequest(id=5, method="chassis.identify")

    def test_missing_method(self):
        assert isinstance(decode_request({"id": 5}), UnknownRequest)

    @pytest.mark.parametrize("body", [[], "power.get", 3, None])
    def test_body_not_object(self, body):
        with pytest.raises(InvalidParams):
            decode_request(body)

    def test_params_not_object(self):
        with pytest.raises(InvalidParams):
            decode_request({"method": "power.set", "params": ["on"]})

    def test_state_not_string(self):
        with pytest.raises(InvalidParams, match="power.set"):
            decode_request({"method": "power.set", "params": {"state": 1}})

    def test_persistent_not_bool(self):
        with pytest.raises(InvalidParams):
            decode_request({"method": "boot.device", "params": {"persistent": "yes"}})

    def test_envelope(self):
        assert request_envelope({"id": 9, "host": "h"}).id == 9
        assert request_envelope([1, 2]).id is None


class TestRPCResponse:
    def test_success_dict(self):
        resp = RPCResponse(id=1, host="h", result="on")
        assert resp.to_dict() == {"id": 1, "host": "h", "result": "on"}
        assert resp.status == 200

    def test_null_result_is_present(self):
        assert RPCResponse(id=1).to_dict() == {"id": 1, "host": "", "result": None}

    def test_error_dict_has_no_result(self):
        resp = RPCResponse.failure(PowerGetRequest(id=1), PortNotFound("port 9 not found"))
        data = resp.to_dict()
        assert "result" not in data
        assert data["error"] == {"code": 404, "message": "port 9 not found"}
        assert resp.status == 404


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------

class TestPowerGet:
    @pytest.mark.asyncio
    async def test_on(self):
        backend = make_backend(PowerState.ON)
        resp = await RPCDispatcher(backend).dispatch(PowerGetRequest(id=1), TARGET)
        assert resp.to_dict() == {"id": 1, "host": "", "result": "on"}
        backend.get_power_state.assert_awaited_once_with("aa:bb:cc:dd:ee:ff", 3)

    @pytest.mark.asyncio
    async def test_transitional_states_collapse(self):
        dispatcher = RPCDispatcher(make_backend(PowerState.POWERING_OFF))
        resp = await dispatcher.dispatch(PowerGetRequest(id=1), TARGET)
        assert resp.result == "off"

    @pytest.mark.asyncio
    async def test_not_found_becomes_500(self):
        backend = make_backend()
        backend.get_power_state.side_effect = PortNotFound("port 3 not found in status")
        resp = await RPCDispatcher(backend).dispatch(PowerGetRequest(id=1), TARGET)
        assert resp.status == 500
        assert resp.error["message"] == "error getting power state: port 3 not found in status"

    @pytest.mark.asyncio
    async def test_device_not_found_becomes_500(self):
        backend = make_backend()
        backend.get_power_state.side_effect = DeviceNotFound("gone")
        resp = await RPCDispatcher(backend).dispatch(PowerGetRequest(id=1), TARGET)
        assert resp.status == 500

    @pytest.mark.asyncio
    async def test_validation_error_stays_400(self):
        backend = make_backend()
        backend.get_power_state.side_effect = MissingDevice("device MAC address is required")
        resp = await RPCDispatcher(backend).dispatch(PowerGetRequest(id=1), TARGET)
        assert resp.status == 400

    @pytest.mark.asyncio
    async def test_unexpected_exception_becomes_500(self):
        backend = make_backend()
        backend.get_power_state.side_effect = RuntimeError("boom")
        resp = await RPCDispatcher(backend).dispatch(PowerGetRequest(id=7), TARGET)
        assert resp.status == 500
        assert resp.id == 7
        assert "boom" in resp.error["message"]


class TestPowerSet:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("state,expected", [
        ("on", PowerState.ON),
        ("off", PowerState.OFF),
        ("soft", PowerState.OFF),
    ])
    async def test_on_off(self, state, expected):
        backend = make_backend()
        resp = await RPCDispatcher(backend).dispatch(PowerSetRequest(id=1, state=state), TARGET)
        assert resp.status == 200
        assert resp.to_dict()["result"] is None
        backend.set_power_state.assert_awaited_once_with("aa:bb:cc:dd:ee:ff", 3, expected)
        backend.restart_power.assert_not_awaited()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("state", ["reset", "cycle"])
    async def test_restart(self, state):
        backend = make_backend()
        resp = await RPCDispatcher(backend).dispatch(PowerSetRequest(id=1, state=state), TARGET)
        assert resp.status == 200
        backend.restart_power.assert_awaited_once_with("aa:bb:cc:dd:ee:ff", 3)
        backend.set_power_state.assert_not_awaited()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("state", ["bogus", "", "ON"])
    async def test_invalid_state_touches_nothing(self, state):
        backend = make_backend()
        resp = await RPCDispatcher(backend).dispatch(PowerSetRequest(id=1, state=state), TARGET)
        assert resp.status == 400
        assert resp.error["message"] == f"invalid power state: {state}"
        backend.set_power_state.assert_not_awaited()
        backend.restart_power.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_backend_timeout(self):
        backend = make_backend()
        backend.restart_power.side_effect = BackendTimeout("timed out")
        resp = await RPCDispatcher(backend).dispatch(PowerSetRequest(id=1, state="cycle"), TARGET)
        assert resp.status == 500
        assert resp.error["message"].startswith("error power cycling port")


class TestOtherMethods:
    @pytest.mark.asyncio
    async def test_boot_device_acknowledged(self):
        backend = make_backend()
        req = BootDeviceRequest(id=4, host="node", device="pxe", persistent=True)
        resp = await RPCDispatcher(backend).dispatch(req, TARGET)
        assert resp.result == {
            "acknowledged": True,
            "device": "pxe",
            "persistent": True,
            "efiBoot": False,
            "message": "boot device setting not supported for UniFi devices",
        }
        assert backend.method_calls == []

    @pytest.mark.asyncio
    async def test_ping(self):
        resp = await RPCDispatcher(make_backend()).dispatch(PingRequest(id=1), TARGET)
        assert resp.result == "pong"

    @pytest.mark.asyncio
    async def test_unknown_method(self):
        resp = await RPCDispatcher(make_backend()).dispatch(
            UnknownRequest(id=1, method="chassis.identify"), TARGET)
        data = resp.to_dict()
        assert resp.status == 404
        assert data["error"]["message"] == "unknown method: chassis.identify"
        assert "result" not in data
