# UniFi PoE RPC Gateway
# Created by Matthew Valancy, Valpatel Software LLC
# Copyright 2026 GPL-3.0 License
# https://github.com/mvalancy/CyberPower-PDU

"""HTTP server: JSON-RPC endpoint, path-addressed REST routes, diagnostics."""

import collections
import dataclasses
import json
import logging
import time
from datetime import datetime, timezone

from aiohttp import web

from .addressing import parse_port, resolve_target
from .errors import GatewayError, InvalidParams, ValidationError
from .poe_model import PowerState
from .rpc import RPCDispatcher, RPCResponse, decode_request, request_envelope
from .transport import PowerBackend

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# RingBufferHandler: in-memory log capture for /api/system/logs
# ---------------------------------------------------------------------------

class RingBufferHandler(logging.Handler):
    """Keeps the most recent log records in memory for the logs endpoint."""

    def __init__(self, capacity: int = 1000):
        super().__init__()
        self._buffer: collections.deque[dict] = collections.deque(maxlen=capacity)

    def emit(self, record):
        try:
            entry = {
                "time": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
                "level": record.levelname,
                "levelno": record.levelno,
                "logger": record.name,
                "message": self.format(record),
            }
        except Exception:
            self.handleError(record)
            return
        self._buffer.append(entry)

    def get_records(self, level: str | None = None, limit: int = 200,
                    search: str | None = None,
                    source: str | None = None) -> list[dict]:
        """Newest-first records at or above `level`.

        `search` is a case-insensitive substring of the message and
        `source` a logger-name prefix (e.g. "poe_rpc.ssh_client").
        """
        min_level = logging.getLevelName(level.upper()) if level else 0
        if not isinstance(min_level, int):
            min_level = 0
        needle = search.lower() if search else None

        matched = []
        for entry in reversed(self._buffer):
            if len(matched) >= limit:
                break
            if entry["levelno"] < min_level:
                continue
            if source and not entry["logger"].startswith(source):
                continue
            if needle and needle not in entry["message"].lower():
                continue
            matched.append(entry)
        return matched


@web.middleware
async def error_middleware(request, handler):
    """Turn anything a handler failed to catch into a JSON 500."""
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except Exception as e:
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        return web.Response(
            text=json.dumps({"error": str(e) or e.__class__.__name__}),
            content_type="application/json",
            status=500,
        )


class WebServer:
    def __init__(self, backend: PowerBackend, port: int = 5000,
                 address: str = "0.0.0.0", default_device: str | None = None,
                 version: str = "0.0.0"):
        self._backend = backend
        self._dispatcher = RPCDispatcher(backend)
        self._port = port
        self._address = address
        self._default_device = default_device or None
        self._version = version
        self._start_time = time.time()
        self._log_buffer: RingBufferHandler | None = None

        self._app = web.Application(middlewares=[error_middleware])
        self._runner: web.AppRunner | None = None
        self._setup_routes()

    @property
    def app(self) -> web.Application:
        return self._app

    def set_log_buffer(self, handler: RingBufferHandler):
        self._log_buffer = handler

    def _setup_routes(self):
        # JSON-RPC (header-addressed)
        self._app.router.add_post("/", self._handle_rpc)
        self._app.router.add_post("/rpc", self._handle_rpc)

        # Path-addressed REST routes
        base = "/device/{mac}/port/{port}"
        self._app.router.add_get(f"{base}/status", self._handle_port_status)
        self._app.router.add_post(f"{base}/poweron", self._handle_power_on)
        self._app.router.add_post(f"{base}/poweroff", self._handle_power_off)
        self._app.router.add_post(f"{base}/reboot", self._handle_reboot)
        self._app.router.add_post(f"{base}/pxeboot", self._handle_pxe_boot)

        # Diagnostics
        self._app.router.add_get("/api/health", self._handle_health)
        self._app.router.add_get("/api/poe/status", self._handle_poe_status)
        self._app.router.add_get("/api/system/logs", self._handle_system_logs)

    # --- Utility ---

    def _json(self, data, status=200):
        return web.Response(
            text=json.dumps(data),
            content_type="application/json",
            status=status,
        )

    def _error(self, err: GatewayError):
        return self._json({"error": err.message}, err.status)

    def _path_target(self, request) -> tuple[str | None, int]:
        port = parse_port(request.match_info["port"])
        mac = request.match_info["mac"].strip().lower() or self._default_device
        return mac, port

    # --- JSON-RPC ---

    async def _handle_rpc(self, request):
        try:
            target = resolve_target(request.headers, self._default_device,
                                    require_device=self._backend.requires_device)
        except ValidationError as e:
            return self._error(e)

        try:
            body = await request.json()
        except ValueError:
            return self._json({"error": "invalid JSON payload"}, 400)

        try:
            rpc_request = decode_request(body)
        except InvalidParams as e:
            response = RPCResponse.failure(request_envelope(body), e)
            return self._json(response.to_dict(), response.status)

        response = await self._dispatcher.dispatch(rpc_request, target)
        if response.error:
            logger.warning("RPC %s port %d -> %d %s", type(rpc_request).__name__,
                           target.port, response.status, response.error["message"])
        return self._json(response.to_dict(), response.status)

    # --- Path-addressed REST ---

    async def _handle_port_status(self, request):
        try:
            device, port = self._path_target(request)
            state = await self._backend.get_power_state(device, port)
        except GatewayError as e:
            return self._error(e)
        return self._json({"port": port, "state": state.collapse()})

    async def _set_power(self, request, enable: bool):
        try:
            device, port = self._path_target(request)
            state = PowerState.ON if enable else PowerState.OFF
            await self._backend.set_power_state(device, port, state)
        except GatewayError as e:
            return self._error(e)
        return self._json({"port": port, "state": state.value, "ok": True})

    async def _handle_power_on(self, request):
        return await self._set_power(request, True)

    async def _handle_power_off(self, request):
        return await self._set_power(request, False)

    async def _handle_reboot(self, request):
        try:
            device, port = self._path_target(request)
            await self._backend.restart_power(device, port)
        except GatewayError as e:
            return self._error(e)
        return self._json({"port": port, "action": "reboot", "ok": True})

    async def _handle_pxe_boot(self, request):
        try:
            _device, port = self._path_target(request)
        except GatewayError as e:
            return self._error(e)
        return self._json({
            "port": port,
            "acknowledged": True,
            "message": "PXE boot setting not supported for UniFi devices",
        })

    # --- Diagnostics ---

    async def _handle_health(self, request):
        """Health check; does not touch the switch."""
        try:
            backend_health = self._backend.get_health()
        except Exception:
            logger.exception("Failed to get backend health")
            backend_health = {"reachable": False}

        healthy = bool(backend_health.get("reachable", False))
        return self._json({
            "status": "healthy" if healthy else "degraded",
            "backend": backend_health,
            "version": self._version,
            "uptime_seconds": round(time.time() - self._start_time, 1),
        }, 200 if healthy else 503)

    async def _handle_poe_status(self, request):
        """GET /api/poe/status: detailed PoE snapshot for the X-Port port."""
        try:
            target = resolve_target(request.headers, self._default_device,
                                    require_device=self._backend.requires_device)
            status = await self._backend.get_detailed_status(target.device, target.port)
        except GatewayError as e:
            return self._error(e)
        return self._json(dataclasses.asdict(status))

    async def _handle_system_logs(self, request):
        """GET /api/system/logs?level=&limit=&search=&logger="""
        if self._log_buffer is None:
            return self._json({"error": "log buffer not available"}, 503)

        try:
            limit = int(request.query.get("limit", "200"))
        except ValueError:
            return self._json({"error": "limit must be an integer"}, 400)
        limit = max(1, min(limit, 1000))

        records = self._log_buffer.get_records(
            level=request.query.get("level"),
            limit=limit,
            search=request.query.get("search"),
            source=request.query.get("logger"),
        )
        return self._json({"logs": records, "count": len(records)})

    # --- Lifecycle ---

    async def start(self):
        self._runner = web.AppRunner(self._app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self._address, self._port)
        await site.start()
        logger.info("RPC gateway listening on http://%s:%d", self._address, self._port)

    async def stop(self):
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
