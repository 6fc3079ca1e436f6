# UniFi PoE RPC Gateway
# Created by Matthew Valancy, Valpatel Software LLC
# Copyright 2026 GPL-3.0 License
# https://github.com/mvalancy/CyberPower-PDU

"""Async client for the UniFi Network controller API.

Covers the three calls the gateway needs: fetch a device by MAC, write
a whole device object back, and run a devmgr command. One aiohttp
session (and cookie jar) lives for the whole process and is shared by
all requests.

Login is lazy. Before each call the cookie jar is checked for a session
cookie (TOKEN on UniFi OS, unifises on legacy controllers); if it is
missing, callers queue on one asyncio.Lock and re-check inside it, so a
burst of requests after expiry triggers a single re-login. A 401 from
the controller clears the jar; the failed call is not retried.
"""

import asyncio
import base64
import binascii
import json
import logging
import time
from typing import Any

import aiohttp
from aiohttp import ClientError, ClientTimeout
from yarl import URL

from .errors import (
    AuthenticationError,
    BackendError,
    BackendTimeout,
    DeviceNotFound,
)
from .poe_model import DEVMGR_POWER_CYCLE, SwitchDevice

logger = logging.getLogger(__name__)


class ControllerClient:
    """UniFi controller API session shared across requests."""

    SESSION_COOKIES = ("TOKEN", "unifises")

    def __init__(
        self,
        base_url: str,
        username: str,
        password: str,
        site: str = "default",
        unifi_os: bool = False,
        verify_tls: bool = False,
        timeout: float = 30.0,
    ):
        if not base_url:
            raise ValueError("controller endpoint is required")
        if not base_url.startswith(("http://", "https://")):
            base_url = f"https://{base_url}"
        self._base_url = base_url.rstrip("/")
        self._username = username
        self._password = password
        self._site = site or "default"
        self._unifi_os = unifi_os
        self._verify_tls = verify_tls
        self._timeout = timeout

        self._session: aiohttp.ClientSession | None = None
        self._auth_lock = asyncio.Lock()
        self._login_count = 0

        # Health tracking (mirrors SSHClient)
        self._total_requests = 0
        self._failed_requests = 0
        self._consecutive_failures = 0
        self._last_success_time: float | None = None
        self._last_error_time: float | None = None
        self._last_error_msg: str | None = None

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def api_base(self) -> str:
        if self._unifi_os:
            return f"{self._base_url}/proxy/network"
        return self._base_url

    @property
    def login_url(self) -> str:
        if self._unifi_os:
            return f"{self._base_url}/api/auth/login"
        return f"{self._base_url}/api/login"

    @property
    def login_count(self) -> int:
        return self._login_count

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    def get_health(self) -> dict:
        return {
            "endpoint": self._base_url,
            "site": self._site,
            "unifi_os": self._unifi_os,
            "logged_in": self.session_valid(),
            "logins": self._login_count,
            "total_requests": self._total_requests,
            "failed_requests": self._failed_requests,
            "consecutive_failures": self._consecutive_failures,
            "last_success": self._last_success_time,
            "last_error": self._last_error_time,
            "last_error_msg": self._last_error_msg,
            "reachable": self._consecutive_failures < 10,
        }

    def _record_success(self):
        self._consecutive_failures = 0
        self._last_success_time = time.time()

    def _record_failure(self, msg: str):
        self._failed_requests += 1
        self._consecutive_failures += 1
        self._last_error_time = time.time()
        self._last_error_msg = msg
        if self._consecutive_failures == 1:
            logger.warning("Controller: %s", msg)
        elif self._consecutive_failures <= 5:
            logger.error("Controller: %s (failure %d)", msg, self._consecutive_failures)
        elif self._consecutive_failures % 30 == 0:
            logger.error(
                "Controller: unreachable for %d consecutive failures: %s",
                self._consecutive_failures, msg,
            )

    # --- Session ---------------------------------------------------------

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(ssl=None if self._verify_tls else False)
            self._session = aiohttp.ClientSession(
                connector=connector,
                # controllers are usually addressed by IP
                cookie_jar=aiohttp.CookieJar(unsafe=True),
                timeout=ClientTimeout(total=self._timeout),
                headers={"Accept": "application/json"},
            )
        return self._session

    def _cookies(self):
        if self._session is None or self._session.closed:
            return {}
        return self._session.cookie_jar.filter_cookies(URL(self._base_url))

    def session_valid(self) -> bool:
        cookies = self._cookies()
        return any(name in cookies for name in self.SESSION_COOKIES)

    def _csrf_token(self) -> str | None:
        """Pull csrfToken out of the UniFi OS TOKEN cookie (a JWT)."""
        morsel = self._cookies().get("TOKEN")
        if morsel is None:
            return None
        parts = morsel.value.split(".")
        if len(parts) != 3:
            logger.debug("TOKEN cookie is not a JWT")
            return None
        payload = parts[1] + "=" * (-len(parts[1]) % 4)
        try:
            claims = json.loads(base64.urlsafe_b64decode(payload))
        except (binascii.Error, ValueError):
            logger.debug("Could not decode TOKEN cookie payload")
            return None
        if not isinstance(claims, dict):
            logger.debug("TOKEN cookie payload is not an object")
            return None
        token = claims.get("csrfToken")
        return token if isinstance(token, str) else None

    async def ensure_login(self) -> None:
        if self.session_valid():
            return
        async with self._auth_lock:
            if self.session_valid():
                return
            if self._login_count:
                logger.info("Controller: session expired, logging in again")
            await self._login()

    async def _login(self) -> None:
        session = self._get_session()
        creds = {"username": self._username, "password": self._password}
        try:
            async with session.post(self.login_url, json=creds) as resp:
                try:
                    body = await resp.json(content_type=None)
                except ValueError:
                    body = {}
                if resp.status != 200:
                    raise AuthenticationError(
                        f"controller login failed: HTTP {resp.status}"
                    )
                meta = (body.get("meta") or {}) if isinstance(body, dict) else {}
                if not self._unifi_os and meta.get("rc") != "ok":
                    raise AuthenticationError("controller login failed: response code not ok")
        except asyncio.TimeoutError:
            raise BackendTimeout("controller login timed out") from None
        except ClientError as e:
            raise AuthenticationError(f"controller login failed: {e}") from e

        self._login_count += 1
        logger.info("Controller: logged in to %s as %s", self._base_url, self._username)

    # --- Requests --------------------------------------------------------

    async def _request(self, method: str, path: str,
                       payload: dict | None = None) -> list[dict[str, Any]]:
        """Call /api/s/<site>/<path> and return the `data` list."""
        self._total_requests += 1
        try:
            await self.ensure_login()
            data = await self._send(method, path, payload)
        except BackendError as e:
            self._record_failure(f"{method} {path}: {e}")
            raise
        self._record_success()
        return data

    async def _send(self, method: str, path: str,
                    payload: dict | None) -> list[dict[str, Any]]:
        session = self._get_session()
        url = f"{self.api_base}/api/s/{self._site}/{path}"
        headers = {}
        csrf = self._csrf_token()
        if csrf:
            headers["X-Csrf-Token"] = csrf

        logger.debug("Controller: %s %s", method, url)
        try:
            async with session.request(method, url, json=payload,
                                       headers=headers) as resp:
                if resp.status == 401:
                    session.cookie_jar.clear()
                    raise AuthenticationError("controller rejected session (401)")
                try:
                    body = await resp.json(content_type=None)
                except ValueError:
                    body = None
        except asyncio.TimeoutError:
            raise BackendTimeout(f"controller request timed out: {method} {path}") from None
        except ClientError as e:
            raise BackendError(f"controller request failed: {e}") from e

        if not isinstance(body, dict):
            raise BackendError(f"unexpected controller response (HTTP {resp.status})")
        meta = body.get("meta") or {}
        if resp.status >= 400 or meta.get("rc", "ok") != "ok":
            msg = meta.get("msg") or f"HTTP {resp.status}"
            if "UnknownDevice" in msg or resp.status == 404:
                raise DeviceNotFound(f"controller: {msg}")
            raise BackendError(f"controller error: {msg}")
        return body.get("data") or []

    async def get_device_by_mac(self, mac: str) -> SwitchDevice:
        mac = mac.strip().lower()
        rows = await self._request("GET", f"stat/device/{mac}")
        for row in rows:
            if row.get("mac", "").lower() == mac:
                return SwitchDevice.from_dict(row)
        raise DeviceNotFound(f"device with MAC address {mac} not found")

    async def update_device(self, device: SwitchDevice) -> SwitchDevice:
        """Submit the entire device object back to the controller."""
        rows = await self._request("PUT", f"rest/device/{device.id}", device.to_dict())
        if rows:
            return SwitchDevice.from_dict(rows[0])
        return device

    async def execute_cmd(self, manager: str, cmd: str, **params) -> list[dict]:
        payload = {"cmd": cmd}
        payload.update(params)
        return await self._request("POST", f"cmd/{manager}", payload)

    async def power_cycle(self, mac: str, port: int) -> None:
        await self.execute_cmd("devmgr", DEVMGR_POWER_CYCLE,
                               mac=mac.strip().lower(), port_idx=port)

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None
