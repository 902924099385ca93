"""Network clients for Global Caché devices."""

from __future__ import annotations

from abc import ABC, abstractmethod
import asyncio
from collections import deque
from collections.abc import Callable
import contextlib
from enum import StrEnum
import logging
import re
import socket
import struct

from homeassistant.exceptions import HomeAssistantError

from .const import (
    BEACON_GROUP,
    BEACON_PORT,
    CONNECT_TIMEOUT,
    GC100_FAMILY,
    KEEPALIVE_INITIAL_DELAY,
    RECONNECT_INTERVAL,
    SEND_TIMEOUT,
)
from .models import DeviceInfo, IrPort, IrPortMode, parse_address

_LOGGER = logging.getLogger(__name__)

TERMINATOR = b"\r"

_BEACON_FIELD = re.compile(r"<-([^=>]+)=([^>]*)>")
_DEVICE_LINE = re.compile(r"^device,(\d+),(\d+)\s+(\S+)$")


class GlobalCacheError(HomeAssistantError):
    """Exception to indicate a general Global Caché error."""


class GlobalCacheConnectionError(GlobalCacheError):
    """Exception to indicate a connection error occurred."""


class GlobalCacheTimeoutError(GlobalCacheError):
    """Exception to indicate that a device did not respond in time."""


class GlobalCacheCommandError(GlobalCacheError):
    """Exception to indicate the device responded with an error message."""


class ClientState(StrEnum):
    """State of a device connection."""

    STOPPED = "stopped"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    FAILED = "failed"


def parse_reply(reply: str) -> str:
    """Return the reply, or raise if the device responded with an error.

    Raises:
        GlobalCacheCommandError: If the reply is an error message

    """
    if reply.startswith(("ERR", "unknowncommand")):
        raise GlobalCacheCommandError(f"Device error: {reply}")
    return reply


def parse_beacon(data: bytes) -> dict[str, str] | None:
    """Parse an AMX discovery beacon.

    Returns:
        The beacon fields, or None if the data is not an AMX beacon

    """
    text = data.decode("ascii", errors="ignore").strip("\r\n\0 ")
    if not text.startswith("AMXB"):
        return None
    return dict(_BEACON_FIELD.findall(text))


def parse_device_list(lines: list[str]) -> list[tuple[int, int, str]]:
    """Parse a getdevices response into (module, port count, type) tuples."""
    modules: list[tuple[int, int, str]] = []
    for line in lines:
        match = _DEVICE_LINE.match(line.strip())
        if match is None:
            continue
        modules.append((int(match.group(1)), int(match.group(2)), match.group(3)))
    return modules


class DeviceTransport(ABC):
    """Persistent control connection to a single device.

    Connection changes are reported through the ``on_connect``, ``on_close``
    and ``on_error`` callbacks.
    """

    def __init__(self) -> None:
        """Initialize the transport."""
        self.on_connect: Callable[[], None] | None = None
        self.on_close: Callable[[], None] | None = None
        self.on_error: Callable[[Exception], None] | None = None

    @property
    @abstractmethod
    def state(self) -> ClientState:
        """Return the connection state."""

    @property
    def connected(self) -> bool:
        """Return if the connection is established."""
        return self.state is ClientState.CONNECTED

    @abstractmethod
    def connect(
        self,
        host: str,
        port: int,
        *,
        reconnect: bool = True,
        tcp_keepalive: bool = False,
        keepalive_initial_delay: float = KEEPALIVE_INITIAL_DELAY,
    ) -> None:
        """Start connecting to the device in the background."""

    @abstractmethod
    def close(self, *, reconnect: bool = False) -> None:
        """Close the connection."""

    @abstractmethod
    async def async_send(self, message: str) -> str:
        """Send a message and return the reply."""


class DiscoveryClient(ABC):
    """Discovers devices and retrieves their information."""

    @abstractmethod
    async def async_discover(self, timeout: float) -> list[dict[str, str]]:
        """Collect device beacons for the given number of seconds."""

    @abstractmethod
    async def async_retrieve_device_info(self, address: str) -> DeviceInfo:
        """Connect to a device and retrieve its information."""


class GlobalCacheClient(DeviceTransport):
    """TCP client for the Global Caché control protocol."""

    def __init__(self, send_timeout: float = SEND_TIMEOUT) -> None:
        """Initialize the client.

        Args:
            send_timeout: Seconds to wait for the reply of a request

        """
        super().__init__()
        self._send_timeout = send_timeout
        self._state = ClientState.STOPPED
        self._reconnect = False
        self._host = ""
        self._port = 0
        self._tcp_keepalive = False
        self._keepalive_initial_delay: float = KEEPALIVE_INITIAL_DELAY
        self._task: asyncio.Task[None] | None = None
        self._writer: asyncio.StreamWriter | None = None
        self._pending: deque[asyncio.Future[str]] = deque()

    @property
    def state(self) -> ClientState:
        """Return the connection state."""
        return self._state

    def connect(
        self,
        host: str,
        port: int,
        *,
        reconnect: bool = True,
        tcp_keepalive: bool = False,
        keepalive_initial_delay: float = KEEPALIVE_INITIAL_DELAY,
    ) -> None:
        """Start connecting to the device in the background."""
        if self._task and not self._task.done():
            return
        self._host = host
        self._port = port
        self._reconnect = reconnect
        self._tcp_keepalive = tcp_keepalive
        self._keepalive_initial_delay = keepalive_initial_delay
        self._state = ClientState.CONNECTING
        self._task = asyncio.create_task(self._async_run())

    def close(self, *, reconnect: bool = False) -> None:
        """Close the connection.

        Without reconnect, a running connection or reconnection attempt is
        cancelled.
        """
        self._reconnect = reconnect
        if reconnect:
            if self._writer:
                self._writer.close()
            return
        was_connected = self._state is ClientState.CONNECTED
        if self._task and not self._task.done():
            self._task.cancel()
        # the cancelled task finishes in the background without touching state
        self._task = None
        self._writer = None
        self._state = ClientState.STOPPED
        self._fail_pending()
        if was_connected and self.on_close:
            self.on_close()

    async def async_send(self, message: str) -> str:
        """Send a message and wait for the reply.

        Returns:
            The reply message

        Raises:
            GlobalCacheConnectionError: If not connected or sending fails
            GlobalCacheTimeoutError: If there's no reply within the send timeout
            GlobalCacheCommandError: If the device responded with an error

        """
        if self._writer is None or self._state is not ClientState.CONNECTED:
            raise GlobalCacheConnectionError(f"Not connected to {self._host}")

        future: asyncio.Future[str] = asyncio.get_running_loop().create_future()
        self._pending.append(future)
        _LOGGER.debug("[%s] -> %s", self._host, message)
        try:
            self._writer.write(message.encode("ascii") + TERMINATOR)
            await self._writer.drain()
        except OSError as err:
            self._pending.remove(future)
            future.cancel()
            raise GlobalCacheConnectionError(
                f"Failed to send to {self._host}: {err}"
            ) from err

        try:
            reply = await asyncio.wait_for(future, self._send_timeout)
        except TimeoutError as err:
            # the cancelled future stays queued to swallow a late reply
            raise GlobalCacheTimeoutError(
                f"No reply from {self._host} for: {message}"
            ) from err
        return parse_reply(reply)

    async def _async_run(self) -> None:
        """Connect, read replies and reconnect until closed."""
        try:
            while True:
                try:
                    reader, writer = await asyncio.open_connection(
                        self._host, self._port
                    )
                except OSError as err:
                    self._state = ClientState.FAILED
                    self._emit_error(
                        GlobalCacheConnectionError(
                            f"Failed to connect to {self._host}:{self._port}: {err}"
                        )
                    )
                else:
                    await self._async_handle_connection(reader, writer)

                if not self._is_current_task():
                    return
                if not self._reconnect:
                    if self._state is not ClientState.FAILED:
                        self._state = ClientState.STOPPED
                    return

                _LOGGER.debug(
                    "[%s] reconnecting in %s seconds", self._host, RECONNECT_INTERVAL
                )
                self._state = ClientState.RECONNECTING
                await asyncio.sleep(RECONNECT_INTERVAL)
                self._state = ClientState.CONNECTING
        except asyncio.CancelledError:
            _LOGGER.debug("[%s] connection task cancelled", self._host)
            if self._is_current_task():
                self._state = ClientState.STOPPED
            raise

    async def _async_handle_connection(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        self._writer = writer
        if self._tcp_keepalive:
            self._enable_keepalive(writer)
        self._state = ClientState.CONNECTED
        if self.on_connect:
            self.on_connect()

        try:
            while True:
                line = await reader.readuntil(TERMINATOR)
                self._handle_line(line.decode("ascii", errors="ignore").strip())
        except asyncio.IncompleteReadError:
            _LOGGER.debug("[%s] connection closed by device", self._host)
        except OSError as err:
            self._emit_error(
                GlobalCacheConnectionError(f"Connection error {self._host}: {err}")
            )
        finally:
            if self._writer is writer:
                self._writer = None
            writer.close()
            with contextlib.suppress(OSError, asyncio.CancelledError):
                await writer.wait_closed()
            if self._is_current_task():
                self._fail_pending()
                self._state = ClientState.STOPPED
                if self.on_close:
                    self.on_close()

    def _is_current_task(self) -> bool:
        return self._task is not None and self._task is asyncio.current_task()

    def _handle_line(self, line: str) -> None:
        if not line:
            return
        if line.startswith("sensornotify"):
            _LOGGER.debug("[%s] %s", self._host, line)
            return
        _LOGGER.debug("[%s] <- %s", self._host, line)
        if not self._pending:
            _LOGGER.debug("[%s] ignoring unexpected message: %s", self._host, line)
            return
        future = self._pending.popleft()
        if not future.done():
            future.set_result(line)

    def _fail_pending(self) -> None:
        while self._pending:
            future = self._pending.popleft()
            if not future.done():
                future.set_exception(
                    GlobalCacheConnectionError(f"Connection to {self._host} closed")
                )

    def _enable_keepalive(self, writer: asyncio.StreamWriter) -> None:
        sock = writer.get_extra_info("socket")
        if sock is None:
            return
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)
        if hasattr(socket, "TCP_KEEPIDLE"):
            sock.setsockopt(
                socket.IPPROTO_TCP,
                socket.TCP_KEEPIDLE,
                int(self._keepalive_initial_delay),
            )

    def _emit_error(self, err: Exception) -> None:
        if self.on_error:
            self.on_error(err)
        else:
            _LOGGER.debug("[%s] %s", self._host, err)


class _BeaconProtocol(asyncio.DatagramProtocol):
    """Collects AMX beacons keyed by UUID."""

    def __init__(self) -> None:
        self.devices: dict[str, dict[str, str]] = {}

    def datagram_received(self, data: bytes, addr: tuple[str, int]) -> None:
        beacon = parse_beacon(data)
        if beacon is None:
            return
        beacon["address"] = addr[0]
        key = beacon.get("UUID", addr[0])
        self.devices.setdefault(key, {}).update(beacon)


class GlobalCacheDiscovery(DiscoveryClient):
    """Discovery of Global Caché devices on the local network."""

    async def async_discover(self, timeout: float) -> list[dict[str, str]]:
        """Listen for device beacons.

        Returns:
            Beacon fields of each discovered device, plus its ``address``

        Raises:
            GlobalCacheConnectionError: If the beacon socket cannot be opened

        """
        loop = asyncio.get_running_loop()
        try:
            sock = _beacon_socket()
            transport, protocol = await loop.create_datagram_endpoint(
                _BeaconProtocol, sock=sock
            )
        except OSError as err:
            raise GlobalCacheConnectionError(
                f"Cannot listen for device beacons: {err}"
            ) from err

        try:
            await asyncio.sleep(timeout)
        finally:
            transport.close()

        _LOGGER.debug("Discovered %d devices", len(protocol.devices))
        return list(protocol.devices.values())

    async def async_retrieve_device_info(self, address: str) -> DeviceInfo:
        """Retrieve model, version and port configuration of a device.

        Raises:
            GlobalCacheConnectionError: If the device cannot be reached
            GlobalCacheTimeoutError: If the device does not respond

        """
        try:
            host, port = parse_address(address)
        except ValueError as err:
            raise GlobalCacheConnectionError(f"Invalid address {address}") from err
        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(host, port), CONNECT_TIMEOUT
            )
        except TimeoutError as err:
            raise GlobalCacheTimeoutError(f"Timeout connecting to {address}") from err
        except OSError as err:
            raise GlobalCacheConnectionError(
                f"Failed to connect to {address}: {err}"
            ) from err

        try:
            lines = await _async_query(reader, writer, "getdevices", "endlistdevices")
            modules = parse_device_list(lines)
            version = (await _async_query(reader, writer, "getversion"))[0]
            family = GC100_FAMILY if version.startswith("version,") else "iTach"
            version = version.rpartition(",")[2]

            ir_ports: list[IrPort] = []
            for module, count, module_type in modules:
                if module_type != IrPortMode.IR:
                    continue
                for number in range(1, count + 1):
                    mode: str = IrPortMode.IR
                    if family != GC100_FAMILY:
                        reply = (
                            await _async_query(
                                reader, writer, f"get_IR,{module}:{number}"
                            )
                        )[0]
                        mode = reply.rpartition(",")[2] or IrPortMode.IR
                    ir_ports.append(IrPort(module, number, mode))
        except asyncio.IncompleteReadError as err:
            raise GlobalCacheConnectionError(
                f"Connection to {address} closed"
            ) from err
        except TimeoutError as err:
            raise GlobalCacheTimeoutError(f"No reply from {address}") from err
        except OSError as err:
            raise GlobalCacheConnectionError(
                f"Communication error with {address}: {err}"
            ) from err
        finally:
            writer.close()
            with contextlib.suppress(OSError):
                await writer.wait_closed()

        if family == GC100_FAMILY:
            ir_modules = sum(1 for module in modules if module[2] == IrPortMode.IR)
            model = f"{GC100_FAMILY}-{ir_modules * 6:02d}"
        else:
            model = family

        return DeviceInfo(
            host=host,
            port=port,
            product_family=family,
            model=model,
            version=version,
            ir_ports=ir_ports,
        )


async def _async_query(
    reader: asyncio.StreamReader,
    writer: asyncio.StreamWriter,
    command: str,
    end_marker: str | None = None,
) -> list[str]:
    """Send a command and read one reply line, or all lines up to a marker."""
    writer.write(command.encode("ascii") + TERMINATOR)
    await writer.drain()
    lines: list[str] = []
    while True:
        raw = await asyncio.wait_for(reader.readuntil(TERMINATOR), SEND_TIMEOUT)
        line = raw.decode("ascii", errors="ignore").strip()
        if not line:
            continue
        parse_reply(line)
        if end_marker is None:
            return [line]
        if line == end_marker:
            return lines
        lines.append(line)


def _beacon_socket() -> socket.socket:
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind(("", BEACON_PORT))
        membership = struct.pack(
            "4sl", socket.inet_aton(BEACON_GROUP), socket.INADDR_ANY
        )
        sock.setsockopt(socket.IPPROTO_IP, socket.IP_ADD_MEMBERSHIP, membership)
        sock.setblocking(False)
    except OSError:
        sock.close()
        raise
    return sock
