"""Setup flow for Global Caché devices.

The flow is driven by setup messages from the host and answers each message
with a setup action:

- ``DriverSetupRequest``: start a new setup, or reconfigure an existing one
- ``UserDataResponse``: values of the input fields of the last screen
- ``UserConfirmationResponse``: confirmation of the last screen
- ``AbortDriverSetup``: the user or the host cancelled the setup
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum, StrEnum
import logging
import re
from typing import Any

from .api import DiscoveryClient, GlobalCacheError
from .const import DISCOVERY_TIMEOUT, HOST_ACCESSORY_MAKE
from .models import GcDevice, IrPort
from .store import DeviceStore

_LOGGER = logging.getLogger(__name__)

ACTION_ADD = "add"
ACTION_REMOVE = "remove"
ACTION_RESET = "reset"

FIELD_ACTION = "action"
FIELD_ADDRESS = "address"
FIELD_CHOICE = "choice"
FIELD_INFO = "info"


class SetupStep(IntEnum):
    """Setup steps to keep track of user data responses."""

    INIT = 0
    CONFIGURATION_MODE = 1
    DISCOVER = 2
    DEVICE_CHOICE = 3


class IntegrationSetupError(StrEnum):
    """Setup error reported to the host."""

    NONE = "none"
    NOT_FOUND = "not_found"
    CONNECTION_REFUSED = "connection_refused"
    AUTHORIZATION_ERROR = "authorization_error"
    TIMEOUT = "timeout"
    OTHER = "other"


class FieldKind(StrEnum):
    """Kind of a setup input field."""

    LABEL = "label"
    TEXT = "text"
    DROPDOWN = "dropdown"
    CHECKBOX = "checkbox"


@dataclass
class SetupField:
    """Input field of a setup screen."""

    id: str
    label: str
    kind: FieldKind
    value: Any = None
    items: list[tuple[str, str]] = field(default_factory=list)


@dataclass
class DriverSetupRequest:
    """Start of the setup."""

    reconfigure: bool = False
    setup_data: dict[str, str] = field(default_factory=dict)


@dataclass
class UserDataResponse:
    """User input values of a setup screen."""

    input_values: dict[str, str]


@dataclass
class UserConfirmationResponse:
    """User confirmation of a setup screen."""

    confirm: bool = True


@dataclass
class AbortDriverSetup:
    """Setup was aborted."""

    error: str = "user"


type SetupDriver = (
    DriverSetupRequest | UserDataResponse | UserConfirmationResponse | AbortDriverSetup
)


@dataclass
class RequestUserInput:
    """Ask the user for input values."""

    title: str
    settings: list[SetupField]


@dataclass
class RequestUserConfirmation:
    """Ask the user for a confirmation."""

    title: str
    header: str | None = None


@dataclass
class SetupComplete:
    """Setup finished successfully."""


@dataclass
class SetupError:
    """Setup failed."""

    error_type: IntegrationSetupError = IntegrationSetupError.OTHER


type SetupAction = RequestUserInput | RequestUserConfirmation | SetupComplete | SetupError


def manual_device_id(product_family: str, host: str) -> str:
    """Return the identifier of a manually added device."""
    return f"{product_family}_{re.sub(r'[^0-9A-Za-z]', '', host)}"


class SetupFlow:
    """Discovery and configuration of Global Caché devices."""

    def __init__(
        self,
        store: DeviceStore,
        discovery: DiscoveryClient,
        discovery_timeout: float = DISCOVERY_TIMEOUT,
    ) -> None:
        """Initialize the setup flow."""
        self._store = store
        self._discovery = discovery
        self._discovery_timeout = discovery_timeout
        self.step = SetupStep.INIT
        self.add_device = False
        self.manual_address = False
        self.discovered: dict[str, dict[str, str]] = {}

    async def async_handle(self, msg: SetupDriver) -> SetupAction:
        """Dispatch a setup message to the handler of the current step.

        Returns:
            The setup action on how to continue

        """
        if isinstance(msg, DriverSetupRequest):
            self.step = SetupStep.INIT
            self.add_device = False
            return await self._async_handle_driver_setup(msg)

        if isinstance(msg, UserConfirmationResponse):
            if self.step is SetupStep.DISCOVER:
                _LOGGER.debug("Received user confirmation for starting discovery again")
                return await self._async_handle_discovery(msg)
            _LOGGER.error(
                "No or invalid user confirmation response was received in step %s: %s",
                self.step.name,
                msg,
            )
        elif isinstance(msg, UserDataResponse):
            if (
                self.step is SetupStep.CONFIGURATION_MODE
                and FIELD_ACTION in msg.input_values
            ):
                return await self._async_handle_configuration_mode(msg)
            if self.step is SetupStep.DISCOVER:
                return await self._async_handle_discovery(msg)
            if self.step is SetupStep.DEVICE_CHOICE:
                return await self._async_handle_device_choice(msg)
            _LOGGER.error(
                "No or invalid user response was received in step %s: %s",
                self.step.name,
                msg,
            )
        elif isinstance(msg, AbortDriverSetup):
            _LOGGER.info("Setup was aborted with code: %s", msg.error)
            self.abort()

        return SetupError()

    def abort(self) -> None:
        """Reset the flow, the device configuration is not changed."""
        self.discovered.clear()
        self.step = SetupStep.INIT

    async def _async_handle_driver_setup(self, msg: DriverSetupRequest) -> SetupAction:
        _LOGGER.debug("Setting up driver. Setup data: %s", msg)

        if msg.reconfigure:
            self.step = SetupStep.CONFIGURATION_MODE
            return self._configuration_screen()

        # initial setup, make sure we have a clean configuration
        self._store.clear()
        self.step = SetupStep.DISCOVER
        return await self._async_handle_discovery(msg)

    def _configuration_screen(self) -> RequestUserInput:
        devices = [
            (device.id, f"{device.name} ({device.id})")
            for device in self._store.list_all()
        ]
        actions = [(ACTION_ADD, "Add a new device")]
        if devices:
            actions.append((ACTION_REMOVE, "Delete selected device"))
            actions.append((ACTION_RESET, "Reset configuration and reconfigure"))
        else:
            # dummy entry if no devices are available
            devices.append(("", "---"))

        return RequestUserInput(
            "Configuration mode",
            [
                SetupField(
                    FIELD_CHOICE,
                    "Configured devices",
                    FieldKind.DROPDOWN,
                    value=devices[0][0],
                    items=devices,
                ),
                SetupField(
                    FIELD_ACTION,
                    "Action",
                    FieldKind.DROPDOWN,
                    value=actions[0][0],
                    items=actions,
                ),
            ],
        )

    async def _async_handle_configuration_mode(
        self, msg: UserDataResponse
    ) -> SetupAction:
        action = msg.input_values[FIELD_ACTION]

        if action == ACTION_ADD:
            self.add_device = True
        elif action == ACTION_REMOVE:
            choice = msg.input_values.get(FIELD_CHOICE, "")
            if not self._store.remove(choice):
                _LOGGER.warning("Could not remove device from configuration: %s", choice)
                return SetupError(IntegrationSetupError.OTHER)
            return SetupComplete()
        elif action == ACTION_RESET:
            self._store.clear()
        else:
            _LOGGER.error("Invalid configuration action: %s", action)
            return SetupError(IntegrationSetupError.OTHER)

        self.step = SetupStep.DISCOVER
        return RequestUserInput(
            "Discovery",
            [
                SetupField(
                    FIELD_INFO,
                    "Leave the address empty to discover devices on the network.",
                    FieldKind.LABEL,
                ),
                SetupField(FIELD_ADDRESS, "IP address", FieldKind.TEXT, value=""),
            ],
        )

    async def _async_handle_discovery(self, msg: SetupDriver) -> SetupAction:
        self.manual_address = False
        checkboxes: list[SetupField] = []

        address = ""
        if isinstance(msg, UserDataResponse):
            address = msg.input_values.get(FIELD_ADDRESS, "").strip()

        if address:
            _LOGGER.debug("Starting manual driver setup for: %s", address)
            self.manual_address = True
            try:
                info = await self._discovery.async_retrieve_device_info(address)
            except GlobalCacheError as err:
                _LOGGER.warning("Failed to connect to device %s: %s", address, err)
                return SetupError(IntegrationSetupError.CONNECTION_REFUSED)

            device_id = manual_device_id(info.product_family, info.host)
            self.discovered = {
                device_id: {"UUID": device_id, "address": info.address}
            }
            if self.add_device and self._store.contains(device_id):
                _LOGGER.debug("Manual device %s is already configured", device_id)
            checkboxes.append(
                SetupField(
                    device_id,
                    f"{info.product_family} {info.version} ({info.host})",
                    FieldKind.CHECKBOX,
                    value=True,
                )
            )
        else:
            _LOGGER.info("Discovering devices on the network")
            try:
                beacons = await self._discovery.async_discover(self._discovery_timeout)
            except GlobalCacheError as err:
                _LOGGER.error("Device discovery failed: %s", err)
                return SetupError(IntegrationSetupError.OTHER)
            self.discovered = {}
            for beacon in beacons:
                device_id = beacon.get("UUID")
                if not device_id:
                    _LOGGER.warning("Ignoring discovered device: missing UUID %s", beacon)
                elif self.add_device and self._store.contains(device_id):
                    _LOGGER.info("Skipping found device %s: already configured", device_id)
                elif beacon.get("Make") == HOST_ACCESSORY_MAKE:
                    _LOGGER.debug("Ignoring %s device: %s", HOST_ACCESSORY_MAKE, device_id)
                else:
                    self.discovered[device_id] = beacon
                    checkboxes.append(
                        SetupField(
                            device_id,
                            f"{beacon.get('Model', '')} {beacon.get('Revision', '')} "
                            f"({beacon.get('address', '')})",
                            FieldKind.CHECKBOX,
                            value=False,
                        )
                    )

        if not checkboxes:
            _LOGGER.info("Could not discover any new devices")
            return RequestUserConfirmation(
                "No devices found",
                "Make sure the devices are powered on and connected to the network.",
            )

        self.step = SetupStep.DEVICE_CHOICE
        return RequestUserInput("Select your Global Caché products", checkboxes)

    async def _async_handle_device_choice(self, msg: UserDataResponse) -> SetupAction:
        _LOGGER.debug("Received user input for driver setup: %s", msg)

        for device_id, selected in msg.input_values.items():
            if selected != "true":
                continue
            candidate = self.discovered.get(device_id)
            if candidate is None:
                continue
            try:
                info = await self._discovery.async_retrieve_device_info(
                    candidate["address"]
                )
            except GlobalCacheError as err:
                _LOGGER.error(
                    "Failed to retrieve device information for %s: %s", device_id, err
                )
                return SetupError(IntegrationSetupError.OTHER)

            _LOGGER.info("Device information %s: %s", device_id, info)
            ir_ports = [
                IrPort(port.module, port.port, str(port.mode)) for port in info.ir_ports
            ]
            self._store.add_or_update(
                GcDevice(device_id, info.name, info.address, ir_ports)
            )

        return SetupComplete()
