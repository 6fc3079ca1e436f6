# UniFi PoE RPC Gateway
# Created by Matthew Valancy, Valpatel Software LLC
# Copyright 2026 GPL-3.0 License
# https://github.com/mvalancy/CyberPower-PDU

"""SSH command client for UniFi switches.

One SSH connection per command: connect, authenticate with the private
key, open a session, run the command, collect combined stdout/stderr,
close. There is no connection pool, so every call pays full setup cost.

paramiko is synchronous, so the work runs in the default executor. The
awaiting task bounds it with the configured timeout; on timeout or
cancellation the paramiko client is closed so the blocked thread
unwinds instead of holding the socket open, and an abort flag stops a
connect that completes late from going on to run the command.
"""

import asyncio
import logging
import threading
import time

import paramiko
from paramiko.ssh_exception import SSHException

from .errors import BackendError, BackendTimeout, GatewayError

logger = logging.getLogger(__name__)


class SSHClient:
    """Runs shell commands on a single switch.

    Provides health tracking that mirrors ControllerClient's interface.
    """

    RECV_CHUNK = 4096

    def __init__(
        self,
        host: str,
        username: str,
        key_path: str,
        port: int = 22,
        timeout: float = 30.0,
        strict_host_key: bool = False,
    ):
        if not host:
            raise ValueError("host is required")
        if not username:
            raise ValueError("username is required")
        if not key_path:
            raise ValueError("private key is required")

        self._host = host
        self._port = port or 22
        self._username = username
        self._key_path = key_path
        self._timeout = timeout or 30.0
        self._strict_host_key = strict_host_key

        # Parse once at startup so a bad key fails fast
        self._pkey = paramiko.PKey.from_path(key_path)

        # Health tracking
        self._total_commands = 0
        self._failed_commands = 0
        self._consecutive_failures = 0
        self._last_success_time: float | None = None
        self._last_error_time: float | None = None
        self._last_error_msg: str | None = None
        self._last_command_duration: float | None = None

    @property
    def host(self) -> str:
        return self._host

    @property
    def port(self) -> int:
        return self._port

    @property
    def timeout(self) -> float:
        return self._timeout

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    def get_health(self) -> dict:
        """Return SSH command health metrics."""
        return {
            "host": self._host,
            "port": self._port,
            "username": self._username,
            "total_commands": self._total_commands,
            "failed_commands": self._failed_commands,
            "consecutive_failures": self._consecutive_failures,
            "last_success": self._last_success_time,
            "last_error": self._last_error_time,
            "last_error_msg": self._last_error_msg,
            "last_command_duration_ms": (
                round(self._last_command_duration * 1000, 1)
                if self._last_command_duration is not None else None
            ),
            "reachable": self._consecutive_failures < 10,
        }

    def reset_health(self) -> None:
        self._consecutive_failures = 0
        self._failed_commands = 0
        self._last_error_msg = None
        self._last_error_time = None

    def _record_success(self):
        self._consecutive_failures = 0
        self._last_success_time = time.time()

    def _record_failure(self, msg: str):
        self._failed_commands += 1
        self._consecutive_failures += 1
        self._last_error_time = time.time()
        self._last_error_msg = msg
        if self._consecutive_failures == 1:
            logger.warning("SSH: %s", msg)
        elif self._consecutive_failures <= 5:
            logger.error("SSH: %s (failure %d)", msg, self._consecutive_failures)
        elif self._consecutive_failures % 30 == 0:
            logger.error(
                "SSH: switch unreachable for %d consecutive failures: %s",
                self._consecutive_failures, msg,
            )

    def _new_client(self) -> paramiko.SSHClient:
        client = paramiko.SSHClient()
        if self._strict_host_key:
            client.load_system_host_keys()
            client.set_missing_host_key_policy(paramiko.RejectPolicy())
        else:
            client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        return client

    async def execute(self, command: str) -> str:
        """Run a command and return its combined output.

        Raises BackendTimeout when the timeout expires and BackendError
        on connection, authentication or non-zero exit failures.
        """
        self._total_commands += 1
        start = time.monotonic()
        client = self._new_client()
        abort = threading.Event()
        loop = asyncio.get_running_loop()
        try:
            output = await asyncio.wait_for(
                loop.run_in_executor(None, self._execute_sync, client, command, abort),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            abort.set()
            client.close()
            self._record_failure(f"'{command}' timed out after {self._timeout:.0f}s")
            raise BackendTimeout(
                f"command execution timed out after {self._timeout:.0f}s"
            ) from None
        except asyncio.CancelledError:
            abort.set()
            client.close()
            self._record_failure(f"'{command}' cancelled")
            raise
        except GatewayError as e:
            self._record_failure(f"'{command}': {e}")
            raise
        except (SSHException, OSError) as e:
            self._record_failure(f"'{command}': {e}")
            raise BackendError(f"command execution failed: {e}") from e
        finally:
            self._last_command_duration = time.monotonic() - start

        self._record_success()
        logger.debug("SSH: '%s' -> %d bytes", command, len(output))
        return output

    def _execute_sync(self, client: paramiko.SSHClient, command: str,
                      abort: threading.Event) -> str:
        try:
            try:
                client.connect(
                    hostname=self._host,
                    port=self._port,
                    username=self._username,
                    pkey=self._pkey,
                    timeout=self._timeout,
                    banner_timeout=self._timeout,
                    auth_timeout=self._timeout,
                    look_for_keys=False,
                    allow_agent=False,
                )
            except (SSHException, OSError) as e:
                raise BackendError(f"failed to connect to SSH server: {e}") from e

            transport = client.get_transport()
            if transport is None:
                raise BackendError("failed to create SSH session: no transport")
            channel = transport.open_session(timeout=self._timeout)
            channel.set_combine_stderr(True)
            channel.settimeout(self._timeout)
            # caller already gave up; a late connect must not run the command
            if abort.is_set():
                raise BackendTimeout(f"'{command}' abandoned after timeout")
            channel.exec_command(command)

            chunks = []
            while True:
                data = channel.recv(self.RECV_CHUNK)
                if not data:
                    break
                chunks.append(data)
            exit_status = channel.recv_exit_status()
            output = b"".join(chunks).decode("utf-8", errors="replace")

            if exit_status != 0:
                raise BackendError(
                    f"command '{command}' exited with status {exit_status}: "
                    f"{output.strip()[:200]}"
                )
            return output
        finally:
            client.close()
