"""Test the device onboarding flow."""

from unittest.mock import MagicMock

import pytest

from custom_components.globalcache.api import (
    GlobalCacheConnectionError,
    GlobalCacheDiscovery,
)
from custom_components.globalcache.setup_flow import (
    ACTION_ADD,
    ACTION_REMOVE,
    ACTION_RESET,
    FIELD_ACTION,
    FIELD_ADDRESS,
    FIELD_CHOICE,
    AbortDriverSetup,
    DriverSetupRequest,
    FieldKind,
    IntegrationSetupError,
    RequestUserConfirmation,
    RequestUserInput,
    SetupComplete,
    SetupError,
    SetupFlow,
    SetupStep,
    UserConfirmationResponse,
    UserDataResponse,
    manual_device_id,
)
from custom_components.globalcache.store import DeviceStore

from .conftest import FakeDiscovery
from .const import (
    DOCK_BEACON,
    GC100_INFO,
    GC100_UUID,
    ITACH_BEACON,
    ITACH_INFO,
    ITACH_UUID,
    MOCK_DEVICE,
)

GC100_BEACON = {
    "UUID": GC100_UUID,
    "Make": "GlobalCache",
    "Model": "GC-100-12",
    "Revision": "3.0-12",
    "address": "192.168.1.71",
}


def _reconfigure() -> DriverSetupRequest:
    return DriverSetupRequest(reconfigure=True)


async def test_initial_setup(device_store: DeviceStore) -> None:
    """Test a new setup clears the configuration and discovers devices."""
    device_store.add_or_update(MOCK_DEVICE)
    discovery = FakeDiscovery(
        [ITACH_BEACON, DOCK_BEACON], {"192.168.1.70": ITACH_INFO}
    )
    flow = SetupFlow(device_store, discovery)

    action = await flow.async_handle(DriverSetupRequest())

    assert device_store.list_all() == []
    assert discovery.discover_calls == [35]
    assert isinstance(action, RequestUserInput)
    assert [setting.id for setting in action.settings] == [ITACH_UUID]
    assert action.settings[0].kind is FieldKind.CHECKBOX
    assert action.settings[0].value is False
    assert action.settings[0].label == "iTachIP2IR 710-1005-05 (192.168.1.70)"
    assert flow.step is SetupStep.DEVICE_CHOICE

    action = await flow.async_handle(UserDataResponse({ITACH_UUID: "true"}))

    assert isinstance(action, SetupComplete)
    assert discovery.info_calls == ["192.168.1.70"]
    device = device_store.get(ITACH_UUID)
    assert device is not None
    assert device.name == "iTach"
    assert device.address == "192.168.1.70"
    assert [port.label for port in device.ir_ports] == [
        "1:1 IR",
        "1:2 IR_BLASTER",
        "1:3 SENSOR",
    ]


async def test_initial_setup_calls_removed_handler(tmp_path) -> None:
    """Test a new setup signals the removal of all devices."""
    on_removed = MagicMock()
    store = DeviceStore()
    store.initialize(str(tmp_path), None, on_removed)
    flow = SetupFlow(store, FakeDiscovery())

    await flow.async_handle(DriverSetupRequest())

    on_removed.assert_called_once_with(None)


async def test_no_devices_found(device_store: DeviceStore) -> None:
    """Test discovery can be repeated if no device was found."""
    discovery = FakeDiscovery([DOCK_BEACON, {"Make": "GlobalCache"}])
    flow = SetupFlow(device_store, discovery)

    action = await flow.async_handle(DriverSetupRequest())

    assert isinstance(action, RequestUserConfirmation)
    assert flow.step is SetupStep.DISCOVER

    discovery.beacons = [ITACH_BEACON]
    action = await flow.async_handle(UserConfirmationResponse(True))

    assert isinstance(action, RequestUserInput)
    assert [setting.id for setting in action.settings] == [ITACH_UUID]
    assert len(discovery.discover_calls) == 2


async def test_unselected_devices_are_not_added(device_store: DeviceStore) -> None:
    """Test only selected devices are added."""
    discovery = FakeDiscovery(
        [ITACH_BEACON, GC100_BEACON],
        {"192.168.1.70": ITACH_INFO, "192.168.1.71": GC100_INFO},
    )
    flow = SetupFlow(device_store, discovery)
    await flow.async_handle(DriverSetupRequest())

    action = await flow.async_handle(
        UserDataResponse({ITACH_UUID: "false", GC100_UUID: "true", "other": "true"})
    )

    assert isinstance(action, SetupComplete)
    assert [device.id for device in device_store.list_all()] == [GC100_UUID]
    assert device_store.get(GC100_UUID).name == "GC-100-12"


async def test_device_choice_failure_keeps_added_devices(
    device_store: DeviceStore,
) -> None:
    """Test devices added before a failing device are kept."""
    discovery = FakeDiscovery(
        [ITACH_BEACON, GC100_BEACON],
        {
            "192.168.1.70": ITACH_INFO,
            "192.168.1.71": GlobalCacheConnectionError("refused"),
        },
    )
    flow = SetupFlow(device_store, discovery)
    await flow.async_handle(DriverSetupRequest())

    action = await flow.async_handle(
        UserDataResponse({ITACH_UUID: "true", GC100_UUID: "true"})
    )

    assert action == SetupError(IntegrationSetupError.OTHER)
    assert [device.id for device in device_store.list_all()] == [ITACH_UUID]


async def test_manual_address(device_store: DeviceStore) -> None:
    """Test adding a device by its address."""
    discovery = FakeDiscovery(infos={"192.168.1.71": GC100_INFO})
    flow = SetupFlow(device_store, discovery)
    await flow.async_handle(_reconfigure())
    await flow.async_handle(UserDataResponse({FIELD_ACTION: ACTION_ADD}))

    action = await flow.async_handle(UserDataResponse({FIELD_ADDRESS: " 192.168.1.71 "}))

    assert discovery.discover_calls == []
    assert flow.manual_address
    assert isinstance(action, RequestUserInput)
    device_id = manual_device_id("GC-100", "192.168.1.71")
    assert device_id == "GC-100_192168171"
    assert action.settings[0].id == device_id
    assert action.settings[0].value is True
    assert action.settings[0].label == "GC-100 3.0-12 (192.168.1.71)"

    action = await flow.async_handle(UserDataResponse({device_id: "true"}))

    assert isinstance(action, SetupComplete)
    assert device_store.get(device_id).address == "192.168.1.71"


async def test_manual_address_failure(device_store: DeviceStore) -> None:
    """Test an unreachable manual address."""
    discovery = FakeDiscovery(
        infos={"192.168.1.99": GlobalCacheConnectionError("timeout")}
    )
    flow = SetupFlow(device_store, discovery)
    await flow.async_handle(_reconfigure())
    await flow.async_handle(UserDataResponse({FIELD_ACTION: ACTION_ADD}))

    action = await flow.async_handle(UserDataResponse({FIELD_ADDRESS: "192.168.1.99"}))

    assert action == SetupError(IntegrationSetupError.CONNECTION_REFUSED)


async def test_reconfigure_without_devices(device_store: DeviceStore) -> None:
    """Test the configuration screen without configured devices."""
    flow = SetupFlow(device_store, FakeDiscovery())

    action = await flow.async_handle(_reconfigure())

    assert flow.step is SetupStep.CONFIGURATION_MODE
    assert isinstance(action, RequestUserInput)
    choice, actions = action.settings
    assert choice.id == FIELD_CHOICE
    assert choice.items == [("", "---")]
    assert actions.id == FIELD_ACTION
    assert actions.value == ACTION_ADD
    assert [item[0] for item in actions.items] == [ACTION_ADD]


async def test_reconfigure_with_devices(device_store: DeviceStore) -> None:
    """Test the configuration screen lists the configured devices."""
    device_store.add_or_update(MOCK_DEVICE)
    flow = SetupFlow(device_store, FakeDiscovery())

    action = await flow.async_handle(_reconfigure())

    choice, actions = action.settings
    assert choice.value == ITACH_UUID
    assert choice.items == [(ITACH_UUID, f"iTach ({ITACH_UUID})")]
    assert [item[0] for item in actions.items] == [
        ACTION_ADD,
        ACTION_REMOVE,
        ACTION_RESET,
    ]


async def test_reconfigure_add_skips_configured(device_store: DeviceStore) -> None:
    """Test discovery in add mode skips configured devices."""
    device_store.add_or_update(MOCK_DEVICE)
    discovery = FakeDiscovery([ITACH_BEACON, GC100_BEACON, DOCK_BEACON])
    flow = SetupFlow(device_store, discovery)
    await flow.async_handle(_reconfigure())

    action = await flow.async_handle(UserDataResponse({FIELD_ACTION: ACTION_ADD}))

    assert flow.add_device
    assert flow.step is SetupStep.DISCOVER
    assert isinstance(action, RequestUserInput)
    assert action.settings[1].id == FIELD_ADDRESS

    action = await flow.async_handle(UserDataResponse({FIELD_ADDRESS: ""}))

    assert [setting.id for setting in action.settings] == [GC100_UUID]
    assert device_store.contains(ITACH_UUID)


async def test_reconfigure_remove(device_store: DeviceStore) -> None:
    """Test removing a configured device."""
    device_store.add_or_update(MOCK_DEVICE)
    flow = SetupFlow(device_store, FakeDiscovery())
    await flow.async_handle(_reconfigure())

    action = await flow.async_handle(
        UserDataResponse({FIELD_ACTION: ACTION_REMOVE, FIELD_CHOICE: ITACH_UUID})
    )

    assert isinstance(action, SetupComplete)
    assert device_store.list_all() == []


async def test_reconfigure_remove_unknown(device_store: DeviceStore) -> None:
    """Test removing a device that is no longer configured."""
    flow = SetupFlow(device_store, FakeDiscovery())
    await flow.async_handle(_reconfigure())

    action = await flow.async_handle(
        UserDataResponse({FIELD_ACTION: ACTION_REMOVE, FIELD_CHOICE: ITACH_UUID})
    )

    assert action == SetupError(IntegrationSetupError.OTHER)


async def test_reconfigure_reset(device_store: DeviceStore) -> None:
    """Test resetting the configuration starts a new discovery."""
    device_store.add_or_update(MOCK_DEVICE)
    discovery = FakeDiscovery([ITACH_BEACON])
    flow = SetupFlow(device_store, discovery)
    await flow.async_handle(_reconfigure())

    action = await flow.async_handle(UserDataResponse({FIELD_ACTION: ACTION_RESET}))

    assert device_store.list_all() == []
    assert flow.step is SetupStep.DISCOVER
    assert not flow.add_device

    action = await flow.async_handle(UserDataResponse({FIELD_ADDRESS: ""}))

    assert [setting.id for setting in action.settings] == [ITACH_UUID]


async def test_reconfigure_invalid_action(device_store: DeviceStore) -> None:
    """Test an unknown configuration action."""
    flow = SetupFlow(device_store, FakeDiscovery())
    await flow.async_handle(_reconfigure())

    action = await flow.async_handle(UserDataResponse({FIELD_ACTION: "update"}))

    assert action == SetupError(IntegrationSetupError.OTHER)


@pytest.mark.parametrize(
    "msg",
    [
        UserDataResponse({"unexpected": "value"}),
        UserConfirmationResponse(True),
    ],
)
async def test_unexpected_response(device_store: DeviceStore, msg) -> None:
    """Test responses that don't match the current step."""
    flow = SetupFlow(device_store, FakeDiscovery())
    await flow.async_handle(_reconfigure())

    assert await flow.async_handle(msg) == SetupError(IntegrationSetupError.OTHER)
    assert flow.step is SetupStep.CONFIGURATION_MODE


async def test_abort(device_store: DeviceStore) -> None:
    """Test aborting resets the flow without changing the configuration."""
    device_store.add_or_update(MOCK_DEVICE)
    flow = SetupFlow(device_store, FakeDiscovery([ITACH_BEACON]))
    await flow.async_handle(_reconfigure())
    await flow.async_handle(UserDataResponse({FIELD_ACTION: ACTION_ADD}))

    action = await flow.async_handle(AbortDriverSetup("timeout"))

    assert isinstance(action, SetupError)
    assert flow.step is SetupStep.INIT
    assert flow.discovered == {}
    assert device_store.list_all() == [MOCK_DEVICE]


async def test_manual_address_invalid_port(device_store: DeviceStore) -> None:
    """Test a manual address with an invalid port is a connection failure."""
    flow = SetupFlow(device_store, GlobalCacheDiscovery())
    await flow.async_handle(_reconfigure())
    await flow.async_handle(UserDataResponse({FIELD_ACTION: ACTION_ADD}))

    action = await flow.async_handle(
        UserDataResponse({FIELD_ADDRESS: "192.168.1.5:abc"})
    )

    assert action == SetupError(IntegrationSetupError.CONNECTION_REFUSED)
    assert device_store.list_all() == []
