"""Support for sensor ports of Global Caché devices."""

from __future__ import annotations

from homeassistant.components.binary_sensor import BinarySensorEntity
from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant, callback
from homeassistant.helpers.dispatcher import async_dispatcher_connect
from homeassistant.helpers.entity_platform import AddConfigEntryEntitiesCallback

from .const import DOMAIN, SIGNAL_DEVICE_ADDED
from .coordinator import GlobalCacheCoordinator
from .entity import GlobalCacheEntity
from .models import GcDevice, IrPort


async def async_setup_entry(
    hass: HomeAssistant,
    entry: ConfigEntry,
    async_add_entities: AddConfigEntryEntitiesCallback,
) -> None:
    """Set up the sensor ports of the configured devices."""
    coordinator: GlobalCacheCoordinator = hass.data[DOMAIN]

    @callback
    def _async_add_device(device: GcDevice) -> None:
        async_add_entities(
            GlobalCacheSensorPort(coordinator, device, port)
            for port in device.sensor_ports()
        )

    for device in coordinator.store.list_all():
        _async_add_device(device)

    entry.async_on_unload(
        async_dispatcher_connect(hass, SIGNAL_DEVICE_ADDED, _async_add_device)
    )


class GlobalCacheSensorPort(GlobalCacheEntity, BinarySensorEntity):
    """Port of a device in sensor mode.

    The sensor state isn't polled, only the availability is tracked.
    """

    def __init__(
        self, coordinator: GlobalCacheCoordinator, device: GcDevice, port: IrPort
    ) -> None:
        """Initialize the sensor port."""
        super().__init__(coordinator, device, device.port_unique_id(port))
        self._attr_name = f"Sensor {port.name}"
        self._attr_is_on = None
