"""Base entity for Global Caché devices."""

from __future__ import annotations

from homeassistant.core import callback
from homeassistant.helpers.device_registry import DeviceInfo
from homeassistant.helpers.dispatcher import async_dispatcher_connect
from homeassistant.helpers.entity import Entity

from .const import DOMAIN, MANUFACTURER, SIGNAL_DEVICE_STATE
from .coordinator import GlobalCacheCoordinator
from .models import DeviceState, GcDevice


class GlobalCacheEntity(Entity):
    """Base class for entities of a Global Caché device."""

    _attr_should_poll = False
    _attr_has_entity_name = True

    def __init__(
        self, coordinator: GlobalCacheCoordinator, device: GcDevice, unique_id: str
    ) -> None:
        """Initialize the entity."""
        self.coordinator = coordinator
        self._device = device
        self._attr_unique_id = unique_id
        self._attr_device_info = DeviceInfo(
            identifiers={(DOMAIN, device.id)},
            name=device.name,
            manufacturer=MANUFACTURER,
            model=device.name,
            configuration_url=f"http://{device.host}",
        )

    @property
    def available(self) -> bool:  # type: ignore[override]
        """Return if the device is connected."""
        return self.coordinator.is_online(self._device.id)

    async def async_added_to_hass(self) -> None:
        """Subscribe to state changes and connect to the device."""
        await super().async_added_to_hass()
        self.async_on_remove(
            async_dispatcher_connect(
                self.hass,
                SIGNAL_DEVICE_STATE.format(self._device.id),
                self._async_device_state_changed,
            )
        )
        self.coordinator.async_connect_device(self._device.id)

    @callback
    def _async_device_state_changed(self, state: DeviceState) -> None:
        self.async_write_ha_state()
