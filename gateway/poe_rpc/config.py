# UniFi PoE RPC Gateway
# Created by Matthew Valancy, Valpatel Software LLC
# Copyright 2026 GPL-3.0 License
# https://github.com/mvalancy/CyberPower-PDU

"""Configuration from environment variables with validation.

All settings use the UNIFI_RPC_ prefix. Which backend parameters are
required depends on UNIFI_RPC_BACKEND; a missing one raises ConfigError
at startup, which is the only fatal error path in the process.
"""

import logging
import os

logger = logging.getLogger(__name__)

BACKENDS = ("ssh", "controller", "mock")

_TRUE = ("true", "1", "yes")


class ConfigError(Exception):
    """Raised when configuration is invalid."""


class Config:
    def __init__(self):
        self.address = os.environ.get("UNIFI_RPC_ADDRESS", "0.0.0.0")
        self.port = self._int("UNIFI_RPC_PORT", "5000", 1, 65535)
        self.backend = os.environ.get("UNIFI_RPC_BACKEND", "ssh").strip().lower()
        self.log_level = os.environ.get("UNIFI_RPC_LOG_LEVEL", "INFO").upper()
        self.timeout = self._float("UNIFI_RPC_TIMEOUT", "30", 1, 300)

        # SSH backend
        self.switch_host = os.environ.get("UNIFI_RPC_SWITCH_HOST", "")
        self.ssh_port = self._int("UNIFI_RPC_SSH_PORT", "22", 1, 65535)
        self.ssh_username = os.environ.get("UNIFI_RPC_SSH_USERNAME", "root")
        self.ssh_key_path = os.environ.get("UNIFI_RPC_SSH_KEY_PATH", "")
        self.ssh_strict_host_key = self._bool("UNIFI_RPC_SSH_STRICT_HOST_KEY", "false")

        # Controller backend
        self.api_endpoint = os.environ.get("UNIFI_RPC_API_ENDPOINT", "")
        self.username = os.environ.get("UNIFI_RPC_USERNAME", "")
        self.password = os.environ.get("UNIFI_RPC_PASSWORD", "")
        self.site = os.environ.get("UNIFI_RPC_SITE", "default")
        self.unifi_os = self._bool("UNIFI_RPC_UNIFI_OS", "false")
        self.verify_tls = self._bool("UNIFI_RPC_VERIFY_TLS", "false")

        # Static fallback for the X-MAC-Address header
        self.device_mac = os.environ.get("UNIFI_RPC_DEVICE_MAC", "").strip().lower()

        # Mock backend
        self.mock_ports = self._int("UNIFI_RPC_MOCK_PORTS", "8", 1, 52)

        self.validate()
        self._log_config()

    @staticmethod
    def _int(env: str, default: str, min_val: int, max_val: int) -> int:
        raw = os.environ.get(env, default)
        try:
            val = int(raw)
        except (ValueError, TypeError):
            raise ConfigError(f"{env}={raw!r} is not a valid integer")
        if not (min_val <= val <= max_val):
            raise ConfigError(f"{env}={val} out of range [{min_val}, {max_val}]")
        return val

    @staticmethod
    def _float(env: str, default: str, min_val: float, max_val: float) -> float:
        raw = os.environ.get(env, default)
        try:
            val = float(raw)
        except (ValueError, TypeError):
            raise ConfigError(f"{env}={raw!r} is not a valid number")
        if not (min_val <= val <= max_val):
            raise ConfigError(f"{env}={val} out of range [{min_val}, {max_val}]")
        return val

    @staticmethod
    def _bool(env: str, default: str) -> bool:
        return os.environ.get(env, default).strip().lower() in _TRUE

    def validate(self):
        if self.backend not in BACKENDS:
            raise ConfigError(
                f"UNIFI_RPC_BACKEND={self.backend!r} must be one of {', '.join(BACKENDS)}"
            )
        if self.backend == "ssh":
            if not self.switch_host:
                raise ConfigError("switch_host is required (UNIFI_RPC_SWITCH_HOST)")
            if not self.ssh_key_path:
                raise ConfigError("ssh_key_path is required (UNIFI_RPC_SSH_KEY_PATH)")
            if not os.path.isfile(self.ssh_key_path):
                raise ConfigError(f"ssh_key_path {self.ssh_key_path!r} does not exist")
        elif self.backend == "controller":
            if not self.api_endpoint:
                raise ConfigError("api_endpoint is required (UNIFI_RPC_API_ENDPOINT)")
            if not self.username or not self.password:
                raise ConfigError(
                    "controller credentials are required "
                    "(UNIFI_RPC_USERNAME, UNIFI_RPC_PASSWORD)"
                )

    def _log_config(self):
        if self.backend == "ssh":
            target = f"{self.ssh_username}@{self.switch_host}:{self.ssh_port}"
        elif self.backend == "controller":
            target = f"{self.api_endpoint} site={self.site} unifi_os={self.unifi_os}"
        else:
            target = f"{self.mock_ports} simulated ports"
        logger.info(
            "Config: listen=%s:%d backend=%s target=%s timeout=%.0fs default_device=%s",
            self.address, self.port, self.backend, target, self.timeout,
            self.device_mac or "-",
        )
