"""Support for the IR emitter of Global Caché devices."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
import logging
from typing import Any

import voluptuous as vol

from homeassistant.components.remote import (
    ATTR_DELAY_SECS,
    ATTR_DEVICE,
    ATTR_NUM_REPEATS,
    DEFAULT_DELAY_SECS,
    DEFAULT_NUM_REPEATS,
    RemoteEntity,
)
from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant, callback
from homeassistant.exceptions import HomeAssistantError
import homeassistant.helpers.config_validation as cv
from homeassistant.helpers.dispatcher import async_dispatcher_connect
from homeassistant.helpers.entity_platform import (
    AddConfigEntryEntitiesCallback,
    async_get_current_platform,
)

from .api import GlobalCacheError
from .const import (
    ATTR_IR_FORMATS,
    ATTR_PORT,
    ATTR_PORTS,
    DOMAIN,
    SERVICE_STOP_IR,
    SIGNAL_DEVICE_ADDED,
)
from .coordinator import GlobalCacheCoordinator
from .entity import GlobalCacheEntity
from .models import GcDevice
from .pronto import UnsupportedFormatError

_LOGGER = logging.getLogger(__name__)


async def async_setup_entry(
    hass: HomeAssistant,
    entry: ConfigEntry,
    async_add_entities: AddConfigEntryEntitiesCallback,
) -> None:
    """Set up the IR emitters of the configured devices."""
    coordinator: GlobalCacheCoordinator = hass.data[DOMAIN]

    @callback
    def _async_add_device(device: GcDevice) -> None:
        if device.emitter_ports():
            async_add_entities([GlobalCacheRemote(coordinator, device)])

    for device in coordinator.store.list_all():
        _async_add_device(device)

    entry.async_on_unload(
        async_dispatcher_connect(hass, SIGNAL_DEVICE_ADDED, _async_add_device)
    )

    # Register a service to stop a repeating IR transmission
    platform = async_get_current_platform()
    platform.async_register_entity_service(
        SERVICE_STOP_IR,
        {vol.Optional(ATTR_PORT): cv.string},
        "async_stop_ir",
    )


class GlobalCacheRemote(GlobalCacheEntity, RemoteEntity):
    """IR emitter combining all IR output ports of a device."""

    _attr_name = "IR emitter"

    def __init__(self, coordinator: GlobalCacheCoordinator, device: GcDevice) -> None:
        """Initialize the IR emitter."""
        super().__init__(coordinator, device, device.emitter_unique_id)
        self._ports = [port.name for port in device.emitter_ports()]
        self._attr_extra_state_attributes = {
            ATTR_PORTS: self._ports,
            ATTR_IR_FORMATS: ["PRONTO"],
        }

    @property
    def is_on(self) -> bool:  # type: ignore[override]
        """Return if the emitter is ready to send."""
        return self.coordinator.is_online(self._device.id)

    async def async_send_command(self, command: Iterable[str], **kwargs: Any) -> None:
        """Send PRONTO codes to an output port."""
        port = kwargs.get(ATTR_DEVICE) or self._ports[0]
        if port not in self._ports:
            raise HomeAssistantError(
                f"Invalid port {port} for {self._device.name}, use one of {self._ports}"
            )
        repeat = kwargs.get(ATTR_NUM_REPEATS, DEFAULT_NUM_REPEATS)
        delay = kwargs.get(ATTR_DELAY_SECS, DEFAULT_DELAY_SECS)

        for index, code in enumerate(command):
            if index > 0 and delay:
                await asyncio.sleep(delay)
            try:
                await self.coordinator.async_send_pronto(
                    self._device.id, port, code, repeat
                )
            except (GlobalCacheError, UnsupportedFormatError) as err:
                raise HomeAssistantError(
                    f"Failed to send IR code on {port} of {self._device.name}: {err}"
                ) from err

    async def async_stop_ir(self, port: str | None = None) -> None:
        """Stop IR transmission on one or all output ports."""
        session = self.coordinator.get_session(self._device.id)
        if session is None:
            raise HomeAssistantError(f"{self._device.name} is not configured")
        for name in [port] if port else self._ports:
            try:
                await session.async_stop_ir(name)
            except GlobalCacheError as err:
                raise HomeAssistantError(
                    f"Failed to stop IR on {name} of {self._device.name}: {err}"
                ) from err
