"""Data models for Global Caché integration."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
import logging
from typing import Any

from .const import DEFAULT_PORT

_LOGGER = logging.getLogger(__name__)


class IrPortMode(StrEnum):
    """Operating mode of a device port."""

    IR = "IR"
    SENSOR = "SENSOR"
    SENSOR_NOTIFY = "SENSOR_NOTIFY"
    IR_BLASTER = "IR_BLASTER"
    BL2_BLASTER = "BL2_BLASTER"
    IR_NOCARRIER = "IR_NOCARRIER"
    IRTRIPORT = "IRTRIPORT"
    IRTRIPORT_BLASTER = "IRTRIPORT_BLASTER"
    LED_LIGHTING = "LED_LIGHTING"
    SERIAL = "SERIAL"
    RECEIVER = "RECEIVER"
    RELAY = "RELAY"


IR_EMITTER_MODES = frozenset(
    {
        IrPortMode.IR,
        IrPortMode.IR_BLASTER,
        IrPortMode.BL2_BLASTER,
        IrPortMode.IR_NOCARRIER,
        IrPortMode.IRTRIPORT,
        IrPortMode.IRTRIPORT_BLASTER,
    }
)

SENSOR_MODES = frozenset({IrPortMode.SENSOR, IrPortMode.SENSOR_NOTIFY})


class DeviceState(StrEnum):
    """Connectivity state of a device session."""

    ONLINE = "ONLINE"
    OFFLINE = "OFFLINE"


def parse_address(address: str) -> tuple[str, int]:
    """Split an address into host and port.

    The port suffix is optional and defaults to the Global Caché control port.
    """
    host, sep, port = address.partition(":")
    if not sep or not port:
        return host, DEFAULT_PORT
    return host, int(port)


@dataclass
class IrPort:
    """Port descriptor of a Global Caché device."""

    module: int
    port: int
    mode: str

    @property
    def name(self) -> str:
        """Return the port name as used in the wire protocol."""
        return f"{self.module}:{self.port}"

    @property
    def label(self) -> str:
        """Return a human readable port label."""
        return f"{self.name} {self.mode}"

    def to_dict(self) -> dict[str, Any]:
        """Return the persisted representation."""
        return {"module": self.module, "port": self.port, "mode": self.mode}


@dataclass
class GcDevice:
    """Configured Global Caché device."""

    id: str
    name: str
    address: str
    ir_ports: list[IrPort] = field(default_factory=list)

    @property
    def host(self) -> str:
        """Return the host part of the address."""
        return parse_address(self.address)[0]

    @property
    def port(self) -> int:
        """Return the TCP control port."""
        return parse_address(self.address)[1]

    @property
    def emitter_unique_id(self) -> str:
        """Return the unique id of the pooled IR emitter entity."""
        return f"{self.id}:IR"

    def port_unique_id(self, port: IrPort) -> str:
        """Return the unique id of a single port entity."""
        return f"{self.id}:{port.module}_{port.port}"

    def emitter_ports(self) -> list[IrPort]:
        """Return all ports which can send IR codes."""
        return [port for port in self.ir_ports if port.mode in IR_EMITTER_MODES]

    def sensor_ports(self) -> list[IrPort]:
        """Return all ports in sensor mode."""
        return [port for port in self.ir_ports if port.mode in SENSOR_MODES]

    def entity_unique_ids(self) -> list[str]:
        """Return the unique ids of all entities provided by this device."""
        unique_ids: list[str] = []
        for port in self.ir_ports:
            if port.mode not in IR_EMITTER_MODES and port.mode not in SENSOR_MODES:
                _LOGGER.debug("[%s] %s not supported", self.id, port.label)
        if self.emitter_ports():
            unique_ids.append(self.emitter_unique_id)
        unique_ids.extend(self.port_unique_id(port) for port in self.sensor_ports())
        return unique_ids

    def to_dict(self) -> dict[str, Any]:
        """Return the persisted representation."""
        return {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "irPorts": [port.to_dict() for port in self.ir_ports],
        }


@dataclass
class DeviceInfo:
    """Device information retrieved from a Global Caché device."""

    host: str
    port: int
    product_family: str
    model: str
    version: str
    ir_ports: list[IrPort] = field(default_factory=list)

    @property
    def name(self) -> str:
        """Return the default device name."""
        return self.model

    @property
    def address(self) -> str:
        """Return the address, including the port only if not the default."""
        if self.port == DEFAULT_PORT:
            return self.host
        return f"{self.host}:{self.port}"
