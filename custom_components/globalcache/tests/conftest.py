"""Global fixtures for Global Caché integration."""

from __future__ import annotations

from typing import Any

import pytest

from custom_components.globalcache.api import (
    ClientState,
    DeviceTransport,
    DiscoveryClient,
)
from custom_components.globalcache.models import DeviceInfo
from custom_components.globalcache.store import DeviceStore

pytest_plugins = "pytest_homeassistant_custom_component"


@pytest.fixture
def auto_enable_custom_integrations(enable_custom_integrations: Any) -> None:  # noqa: D103
    return


class FakeTransport(DeviceTransport):
    """Transport recording requests instead of talking to a device."""

    def __init__(self) -> None:
        super().__init__()
        self._state = ClientState.STOPPED
        self.connect_calls: list[dict[str, Any]] = []
        self.close_calls: list[bool] = []
        self.sent: list[str] = []
        self.reply = "completeir"

    @property
    def state(self) -> ClientState:
        return self._state

    def connect(self, host: str, port: int, **kwargs: Any) -> None:
        self.connect_calls.append({"host": host, "port": port, **kwargs})
        self._state = ClientState.CONNECTING

    def close(self, *, reconnect: bool = False) -> None:
        self.close_calls.append(reconnect)
        self._state = ClientState.STOPPED

    async def async_send(self, message: str) -> str:
        self.sent.append(message)
        return self.reply

    def simulate_connect(self) -> None:
        self._state = ClientState.CONNECTED
        if self.on_connect:
            self.on_connect()

    def simulate_close(self) -> None:
        self._state = ClientState.STOPPED
        if self.on_close:
            self.on_close()


class FakeDiscovery(DiscoveryClient):
    """Discovery returning prepared beacons and device information."""

    def __init__(
        self,
        beacons: list[dict[str, str]] | None = None,
        infos: dict[str, DeviceInfo | Exception] | None = None,
    ) -> None:
        self.beacons = beacons or []
        self.infos = infos or {}
        self.discover_calls: list[float] = []
        self.info_calls: list[str] = []

    async def async_discover(self, timeout: float) -> list[dict[str, str]]:
        self.discover_calls.append(timeout)
        return self.beacons

    async def async_retrieve_device_info(self, address: str) -> DeviceInfo:
        self.info_calls.append(address)
        info = self.infos[address]
        if isinstance(info, Exception):
            raise info
        return info


@pytest.fixture
def transport() -> FakeTransport:
    """Return a fake device transport."""
    return FakeTransport()


@pytest.fixture
def device_store(tmp_path) -> DeviceStore:
    """Return an initialized, empty device store."""
    store = DeviceStore()
    store.initialize(str(tmp_path))
    return store
