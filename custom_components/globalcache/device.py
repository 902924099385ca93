"""Communication session with a configured Global Caché device."""

from __future__ import annotations

from collections.abc import Callable
import logging

from .api import ClientState, DeviceTransport
from .const import GC100_FAMILY, KEEPALIVE_INITIAL_DELAY, MAX_IR_ID
from .models import DeviceState, GcDevice
from .pronto import convert_pronto_to_sendir

_LOGGER = logging.getLogger(__name__)

type StateChangedCallback = Callable[[str, DeviceState], None]


class GlobalCacheDevice:
    """Live connection to one configured device.

    Connectivity changes of the transport are reported as ONLINE / OFFLINE
    state changes with the device identifier.
    """

    def __init__(
        self,
        device: GcDevice,
        transport: DeviceTransport,
        on_state_changed: StateChangedCallback | None = None,
    ) -> None:
        """Initialize the session."""
        self._device = device
        self._transport = transport
        self._on_state_changed = on_state_changed
        self._connected = False
        self._last_send_ir_port = ""
        self._last_send_ir = ""
        self._ir_id = 1

        transport.on_connect = self._on_connected
        transport.on_close = self._on_closed
        transport.on_error = self._on_error

    @property
    def device(self) -> GcDevice:
        """Return the device configuration."""
        return self._device

    @property
    def connected(self) -> bool:
        """Return if the device connection is established."""
        return self._connected

    def connect(self) -> None:
        """Connect to the device, unless connected or already connecting."""
        if self._transport.connected:
            return
        if self._transport.state not in (ClientState.STOPPED, ClientState.FAILED):
            return

        # the GC-100 doesn't reliably support TCP keep-alive
        tcp_keepalive = not self._device.name.startswith(GC100_FAMILY)
        _LOGGER.debug(
            "[%s] start connection to %s (keepAlive=%s)",
            self._device.id,
            self._device.address,
            tcp_keepalive,
        )
        self._transport.connect(
            self._device.host,
            self._device.port,
            reconnect=True,
            tcp_keepalive=tcp_keepalive,
            keepalive_initial_delay=KEEPALIVE_INITIAL_DELAY,
        )

    def disconnect(self) -> None:
        """Disconnect from the device without reconnecting."""
        _LOGGER.debug("[%s] disconnecting", self._device.id)
        self._connected = False
        self._transport.close(reconnect=False)

    def remove_listeners(self) -> None:
        """Stop reporting state changes."""
        self._on_state_changed = None

    async def async_send(self, data: str) -> str:
        """Send a raw request message without further processing.

        Returns:
            The reply of the device

        Raises:
            GlobalCacheError: On a communication error or an error reply

        """
        self._last_send_ir_port = ""
        self._last_send_ir = ""
        return await self._transport.async_send(data)

    async def async_send_pronto(self, port: str, pronto: str, repeat: int = 1) -> str:
        """Send a PRONTO IR code as sendir request.

        A repeated code keeps its IR identifier, which the device interprets
        as a continued key press. A new code gets the next identifier.

        Args:
            port: Output port as ``module:port``
            pronto: PRONTO hex code
            repeat: Number of repeats, values below 1 are sent as 1

        Returns:
            The reply of the device

        Raises:
            UnsupportedFormatError: If the PRONTO code cannot be converted
            GlobalCacheError: On a communication error or an error reply

        """
        send_ir = convert_pronto_to_sendir(pronto, max(repeat, 1))
        if self._last_send_ir_port != port or self._last_send_ir != send_ir:
            self._last_send_ir_port = port
            self._last_send_ir = send_ir
            self._ir_id += 1
            if self._ir_id > MAX_IR_ID:
                self._ir_id = 1
        return await self._transport.async_send(
            f"sendir,{port},{self._ir_id},{send_ir}"
        )

    async def async_stop_ir(self, port: str) -> str:
        """Stop a repeating IR transmission on the given port."""
        return await self.async_send(f"stopir,{port}")

    def _on_connected(self) -> None:
        self._connected = True
        _LOGGER.info("[%s] connected", self._device.id)
        if self._on_state_changed:
            self._on_state_changed(self._device.id, DeviceState.ONLINE)

    def _on_closed(self) -> None:
        self._connected = False
        _LOGGER.info("[%s] disconnected", self._device.id)
        if self._on_state_changed:
            self._on_state_changed(self._device.id, DeviceState.OFFLINE)

    def _on_error(self, err: Exception) -> None:
        _LOGGER.error("[%s] communication error: %s", self._device.id, err)
