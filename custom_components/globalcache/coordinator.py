"""Coordinator of the configured Global Caché devices."""

from __future__ import annotations

from collections.abc import Callable
import logging

from homeassistant.const import Platform
from homeassistant.core import HomeAssistant, callback
from homeassistant.helpers import entity_registry as er
from homeassistant.helpers.dispatcher import async_dispatcher_send

from .api import DeviceTransport, GlobalCacheClient, GlobalCacheConnectionError
from .const import DOMAIN, SIGNAL_DEVICE_ADDED, SIGNAL_DEVICE_STATE
from .device import GlobalCacheDevice
from .models import DeviceState, GcDevice
from .store import DeviceStore

_LOGGER = logging.getLogger(__name__)


async def async_get_coordinator(hass: HomeAssistant) -> GlobalCacheCoordinator:
    """Return the coordinator, loading the device configuration on first use."""
    coordinator: GlobalCacheCoordinator | None = hass.data.get(DOMAIN)
    if coordinator is None:
        coordinator = GlobalCacheCoordinator(hass)
        hass.data[DOMAIN] = coordinator
        await coordinator.async_initialize()
    return coordinator


class GlobalCacheCoordinator:
    """Owns the device configuration and one session per configured device."""

    def __init__(
        self,
        hass: HomeAssistant,
        transport_factory: Callable[[], DeviceTransport] = GlobalCacheClient,
    ) -> None:
        """Initialize the coordinator."""
        self.hass = hass
        self.store = DeviceStore()
        self._transport_factory = transport_factory
        self._sessions: dict[str, GlobalCacheDevice] = {}
        self._states: dict[str, DeviceState] = {}

    async def async_initialize(self) -> bool:
        """Load the device configuration and create the device sessions.

        Sessions are connected when their entities are added.

        Returns:
            True if a configuration could be loaded

        """
        loaded = await self.hass.async_add_executor_job(
            self.store.initialize,
            self.hass.config.config_dir,
            self._async_on_device_added,
            self._async_on_device_removed,
        )
        for device in self.store.list_all():
            self.async_add_configured_device(device, connect=False)
        return loaded

    @property
    def sessions(self) -> dict[str, GlobalCacheDevice]:
        """Return the device sessions keyed by device id."""
        return self._sessions

    def get_session(self, device_id: str) -> GlobalCacheDevice | None:
        """Return the session of a device."""
        return self._sessions.get(device_id)

    def is_online(self, device_id: str) -> bool:
        """Return if the device is connected."""
        return self._states.get(device_id) is DeviceState.ONLINE

    @callback
    def async_add_configured_device(self, device: GcDevice, connect: bool = True) -> None:
        """Create the session of a configured device."""
        session = self._sessions.get(device.id)
        if session is not None:
            # a new session picks up configuration changes like the address
            session.remove_listeners()
            session.disconnect()
        _LOGGER.debug(
            "Adding Global Caché device: %s (%s) %s",
            device.name,
            device.id,
            device.address,
        )
        session = GlobalCacheDevice(
            device, self._transport_factory(), self._async_on_state_changed
        )
        self._sessions[device.id] = session
        if connect:
            session.connect()

    @callback
    def async_connect_device(self, device_id: str) -> None:
        """Connect a configured device, creating its session if required."""
        if (session := self._sessions.get(device_id)) is not None:
            session.connect()
        elif (device := self.store.get(device_id)) is not None:
            self.async_add_configured_device(device)

    @callback
    def async_connect_all(self) -> None:
        """Connect all device sessions."""
        for session in self._sessions.values():
            session.connect()

    @callback
    def async_disconnect_all(self) -> None:
        """Disconnect all device sessions."""
        for session in self._sessions.values():
            session.disconnect()

    async def async_send_pronto(
        self, device_id: str, port: str, pronto: str, repeat: int = 1
    ) -> str:
        """Send a PRONTO code with the session of the given device.

        Raises:
            GlobalCacheConnectionError: If the device is not configured
            GlobalCacheError: On a communication error or an error reply
            UnsupportedFormatError: If the PRONTO code cannot be converted

        """
        if (session := self._sessions.get(device_id)) is None:
            raise GlobalCacheConnectionError(f"Device {device_id} is not configured")
        return await session.async_send_pronto(port, pronto, repeat)

    @callback
    def _async_on_device_added(self, device: GcDevice) -> None:
        _LOGGER.debug("New device added: %s", device)
        self.async_add_configured_device(device, connect=False)
        async_dispatcher_send(self.hass, SIGNAL_DEVICE_ADDED, device)

    @callback
    def _async_on_device_removed(self, device: GcDevice | None) -> None:
        registry = er.async_get(self.hass)

        if device is None:
            _LOGGER.debug(
                "Configuration cleared, disconnecting & removing all device sessions"
            )
            for session in self._sessions.values():
                session.remove_listeners()
                session.disconnect()
            self._sessions.clear()
            self._states.clear()
            for entry in list(registry.entities.values()):
                if entry.platform == DOMAIN:
                    registry.async_remove(entry.entity_id)
            return

        if (session := self._sessions.pop(device.id, None)) is not None:
            _LOGGER.debug("Disconnecting from removed device %s", device.id)
            session.remove_listeners()
            session.disconnect()
        self._states.pop(device.id, None)

        unique_ids = set(device.entity_unique_ids())
        for platform in (Platform.REMOTE, Platform.BINARY_SENSOR):
            for unique_id in unique_ids:
                if entity_id := registry.async_get_entity_id(platform, DOMAIN, unique_id):
                    registry.async_remove(entity_id)

    @callback
    def _async_on_state_changed(self, device_id: str, state: DeviceState) -> None:
        if not self.store.contains(device_id):
            _LOGGER.warning(
                "Can't handle device state change '%s': device %s is no longer configured",
                state,
                device_id,
            )
            return
        if self._states.get(device_id) is state:
            return
        self._states[device_id] = state
        async_dispatcher_send(self.hass, SIGNAL_DEVICE_STATE.format(device_id), state)
