"""Persistent configuration of the Global Caché devices."""

from __future__ import annotations

from collections.abc import Callable
import json
import logging
import os
from typing import Any

import voluptuous as vol

from .const import CFG_FILENAME
from .models import GcDevice, IrPort

_LOGGER = logging.getLogger(__name__)

PORT_SCHEMA = vol.Schema(
    {
        vol.Required("module"): vol.All(vol.Coerce(int), vol.Range(min=1)),
        vol.Required("port"): vol.All(vol.Coerce(int), vol.Range(min=1)),
        vol.Required("mode"): vol.All(str, vol.Length(min=1)),
    },
    extra=vol.ALLOW_EXTRA,
)

DEVICE_SCHEMA = vol.Schema(
    {
        vol.Required("id"): str,
        vol.Required("name"): str,
        vol.Required("address"): str,
        vol.Optional("irPorts", default=list): list,
    },
    extra=vol.ALLOW_EXTRA,
)

type DeviceAddedHandler = Callable[[GcDevice], None]
# Called with None if all devices have been removed
type DeviceRemovedHandler = Callable[[GcDevice | None], None]


def _device_from_dict(item: dict[str, Any]) -> GcDevice:
    data = DEVICE_SCHEMA(item)
    ir_ports: list[IrPort] = []
    for port in data["irPorts"]:
        try:
            port_data = PORT_SCHEMA(port)
        except vol.Invalid as err:
            _LOGGER.debug("Ignoring invalid port of %s: %s", data["id"], err)
            continue
        ir_ports.append(
            IrPort(port_data["module"], port_data["port"], port_data["mode"])
        )
    return GcDevice(data["id"], data["name"], data["address"], ir_ports)


class DeviceStore:
    """Manages all configured Global Caché devices.

    All access is synchronous. Changes are written to the configuration file
    immediately, and the added / removed handlers are called after the
    in-memory configuration has been changed.
    """

    def __init__(self) -> None:
        """Initialize an empty device store."""
        self._devices: list[GcDevice] = []
        self._data_path: str | None = None
        self._cfg_file_path: str | None = None
        self._on_added: DeviceAddedHandler | None = None
        self._on_removed: DeviceRemovedHandler | None = None

    @property
    def data_path(self) -> str | None:
        """Return the configuration directory."""
        return self._data_path

    def initialize(
        self,
        data_path: str,
        on_added: DeviceAddedHandler | None = None,
        on_removed: DeviceRemovedHandler | None = None,
    ) -> bool:
        """Initialize the devices from the configuration file.

        Args:
            data_path: Directory of the configuration file
            on_added: Handler for added devices
            on_removed: Handler for removed devices

        Returns:
            True if a configuration could be loaded, False otherwise

        """
        self._data_path = data_path
        self._cfg_file_path = os.path.join(data_path, CFG_FILENAME)
        self._on_added = on_added
        self._on_removed = on_removed
        return self.load()

    def list_all(self) -> list[GcDevice]:
        """Return all configured devices in insertion order."""
        return list(self._devices)

    def contains(self, device_id: str) -> bool:
        """Check if there's a device with the given identifier."""
        return any(device.id == device_id for device in self._devices)

    def get(self, device_id: str) -> GcDevice | None:
        """Return the device configuration for the given identifier."""
        return next(
            (device for device in self._devices if device.id == device_id), None
        )

    def add_or_update(self, device: GcDevice) -> None:
        """Add a new device and persist the configuration.

        The device is updated if it already exists in the configuration, in
        which case the added handler is not called.
        """
        if self.update(device):
            return
        self._devices.append(device)
        self.store()
        if self._on_added:
            self._on_added(device)

    def update(self, device: GcDevice) -> bool:
        """Update a configured device and persist the configuration.

        Returns:
            True if the device exists and was updated

        """
        for index, existing in enumerate(self._devices):
            if existing.id == device.id:
                self._devices[index] = GcDevice(
                    id=existing.id,
                    name=device.name,
                    address=device.address,
                    ir_ports=list(device.ir_ports),
                )
                self.store()
                return True
        return False

    def remove(self, device_id: str) -> bool:
        """Remove the given device and persist the configuration.

        Returns:
            True if the device was found and removed

        """
        device = self.get(device_id)
        if device is None:
            return False
        self._devices.remove(device)
        self.store()
        if self._on_removed:
            self._on_removed(device)
        return True

    def clear(self) -> None:
        """Remove all devices and delete the configuration file."""
        self._devices = []
        if self._cfg_file_path and os.path.exists(self._cfg_file_path):
            try:
                os.remove(self._cfg_file_path)
            except OSError as err:
                _LOGGER.error("Could not delete configuration file: %s", err)
        if self._on_removed:
            self._on_removed(None)

    def store(self) -> bool:
        """Write the configuration file.

        Returns:
            True if the configuration could be saved

        """
        if self._cfg_file_path is None:
            _LOGGER.error("Cannot write the config file: store is not initialized")
            return False
        try:
            with open(self._cfg_file_path, "w", encoding="utf-8") as file:
                json.dump([device.to_dict() for device in self._devices], file)
        except OSError as err:
            _LOGGER.error("Cannot write the config file: %s", err)
            return False
        return True

    def load(self) -> bool:
        """Load the configuration from the configuration file.

        Returns:
            True if the configuration could be loaded

        """
        self._devices = []
        if self._cfg_file_path is None or not os.path.exists(self._cfg_file_path):
            _LOGGER.info("No configuration file found, using empty configuration")
            return False

        try:
            with open(self._cfg_file_path, encoding="utf-8") as file:
                items = json.load(file)
            if not isinstance(items, list):
                raise vol.Invalid("expected a list of devices")
            devices = [_device_from_dict(item) for item in items]
        except (OSError, ValueError, vol.Invalid) as err:
            _LOGGER.error("Cannot open the config file: %s", err)
            return False

        for device in devices:
            _LOGGER.debug("Config entry: %s", device)
        self._devices = devices
        return True
