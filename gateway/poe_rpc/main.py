# UniFi PoE RPC Gateway
# Created by Matthew Valancy, Valpatel Software LLC
# Copyright 2026 GPL-3.0 License
# https://github.com/mvalancy/CyberPower-PDU

"""Entry point -- PoE power-control RPC gateway for one UniFi switch.

Architecture
------------
Gateway     -- builds the configured PowerBackend once at startup and
               hands it to the WebServer, which owns the HTTP surface.
"""

__version__ = "1.0.0"

import asyncio
import logging
import signal
import sys

from paramiko.ssh_exception import SSHException

from .config import Config, ConfigError
from .controller_client import ControllerClient
from .controller_transport import ControllerTransport
from .mock_switch import MockSwitch
from .ssh_client import SSHClient
from .ssh_transport import SSHTransport
from .transport import PowerBackend
from .web import RingBufferHandler, WebServer

logger = logging.getLogger("poe_rpc")

LOG_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"
LOG_BUFFER_SIZE = 1000


def build_backend(config: Config) -> PowerBackend:
    """Construct the backend selected by config.

    Raises ConfigError when the backend cannot be created (for example,
    an unreadable SSH private key).
    """
    if config.backend == "mock":
        logger.warning("Running with simulated switch (%d ports)", config.mock_ports)
        return MockSwitch(num_ports=config.mock_ports)

    if config.backend == "controller":
        try:
            client = ControllerClient(
                config.api_endpoint,
                config.username,
                config.password,
                site=config.site,
                unifi_os=config.unifi_os,
                verify_tls=config.verify_tls,
                timeout=config.timeout,
            )
        except ValueError as e:
            raise ConfigError(f"failed to create controller client: {e}") from e
        return ControllerTransport(client)

    try:
        ssh = SSHClient(
            config.switch_host,
            config.ssh_username,
            config.ssh_key_path,
            port=config.ssh_port,
            timeout=config.timeout,
            strict_host_key=config.ssh_strict_host_key,
        )
    except (ValueError, OSError) as e:
        raise ConfigError(f"failed to create power client: {e}") from e
    except SSHException as e:
        raise ConfigError(f"failed to read SSH private key: {e}") from e
    return SSHTransport(ssh)


class Gateway:
    def __init__(self, config: Config, backend: PowerBackend | None = None):
        self.config = config
        self.backend = backend or build_backend(config)
        self.web = WebServer(
            self.backend,
            port=config.port,
            address=config.address,
            default_device=config.device_mac,
            version=__version__,
        )
        self._running = False
        self._stopped = asyncio.Event()

    async def run(self):
        self._running = True
        await self.web.start()
        logger.info("Gateway %s started (backend=%s)", __version__, self.backend.name)
        await self._stopped.wait()
        await self.web.stop()
        await self.backend.close()

    def stop(self):
        if not self._running:
            return
        self._running = False
        self._stopped.set()


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main():
    try:
        config = Config()
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format=LOG_FORMAT,
    )

    log_buffer = RingBufferHandler(LOG_BUFFER_SIZE)
    log_buffer.setFormatter(logging.Formatter(LOG_FORMAT))
    logging.getLogger().addHandler(log_buffer)

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    try:
        gateway = Gateway(config)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        loop.close()
        sys.exit(1)
    gateway.web.set_log_buffer(log_buffer)

    def _shutdown(sig, frame):
        logger.info("Received signal %s, shutting down...", sig)
        loop.call_soon_threadsafe(gateway.stop)

    signal.signal(signal.SIGTERM, _shutdown)
    signal.signal(signal.SIGINT, _shutdown)

    try:
        loop.run_until_complete(gateway.run())
    except KeyboardInterrupt:
        pass
    finally:
        loop.close()
        logger.info("Gateway stopped.")


if __name__ == "__main__":
    main()
