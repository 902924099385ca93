"""Constants for the Global Caché integration."""

from homeassistant.const import Platform

DOMAIN = "globalcache"
MANUFACTURER = "Global Caché"

# Platforms
PLATFORMS = [Platform.BINARY_SENSOR, Platform.REMOTE]

# Device configuration file in the Home Assistant config directory
CFG_FILENAME = "gc_config.json"

DEFAULT_PORT = 4998

# Product family without reliable TCP keep-alive support
GC100_FAMILY = "GC-100"

SEND_TIMEOUT = 1  # seconds to wait for a reply to a single request
CONNECT_TIMEOUT = 5  # seconds, device info probe
RECONNECT_INTERVAL = 15  # seconds to wait after disconnect before reconnecting
KEEPALIVE_INITIAL_DELAY = 10  # seconds

DISCOVERY_TIMEOUT = 35  # seconds
BEACON_GROUP = "239.255.250.250"
BEACON_PORT = 9131

# Make of beacon-sending devices which are not Global Caché products
HOST_ACCESSORY_MAKE = "Unfolded Circle"

MAX_IR_ID = 65535

# Dispatcher signals
SIGNAL_DEVICE_ADDED = f"{DOMAIN}_device_added"
SIGNAL_DEVICE_STATE = f"{DOMAIN}_device_state_{{}}"

ATTR_PORT = "port"
ATTR_PORTS = "ports"
ATTR_IR_FORMATS = "ir_formats"

SERVICE_STOP_IR = "stop_ir"
