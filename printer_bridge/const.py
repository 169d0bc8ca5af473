"""Constants for printer_bridge."""

import os
from logging import Logger, getLogger

DEBUG = os.environ.get("DEBUG", "false").lower() == "true"
LOG_LEVEL = os.environ.get("LOG_LEVEL", "DEBUG" if DEBUG else "INFO").upper()
LOGGER: Logger = getLogger(__package__)

# Configuration keys
CONF_API_KEY = "api_key"
CONF_CHUNK_SIZE = "chunk_size"
CONF_DEVICE_ADDRESS = "device_address"
CONF_ENDPOINT_URL = "endpoint_url"
CONF_HOST = "host"
CONF_ID = "id"
CONF_INTERFACE = "interface"
CONF_LAST_USED = "last_used"
CONF_MODEL = "model"
CONF_NAME = "name"
CONF_PAPER_WIDTH = "paper_width"
CONF_PORT = "port"
CONF_PRODUCT_ID = "product_id"
CONF_RELAY_URL = "relay_url"
CONF_TYPE = "type"
CONF_VENDOR_ID = "vendor_id"

# Printer defaults
DEFAULT_PRINTER_PORT = 9100
PAPER_WIDTHS_MM = (58, 80)

# Relay service
DEFAULT_RELAY_HOST = "0.0.0.0"  # noqa: S104
DEFAULT_RELAY_PORT = 8080
DEFAULT_RELAY_URL = os.environ.get(
    "PRINTER_BRIDGE_RELAY_URL", f"http://127.0.0.1:{DEFAULT_RELAY_PORT}"
)
RELAY_CONNECT_TIMEOUT = 5.0
RELAY_IDLE_TIMEOUT = 2.0
RELAY_MAX_SESSIONS = 32
RELAY_MAX_WAITING = 128
RELAY_MAX_PAYLOAD_SIZE = 16 * 1024 * 1024
RELAY_MAX_RESPONSE_SIZE = 64 * 1024
RELAY_READ_CHUNK_SIZE = 4096
RELAY_CLIENT_TIMEOUT = 60.0
DISCOVERY_CLIENT_TIMEOUT = 60.0

# Discovery
DISCOVERY_PROBE_TIMEOUT = 1.0
DISCOVERY_CONCURRENCY = 64
DISCOVERY_MAX_HOSTS = 254
PROBE_TIMEOUT = 5.0

# USB
USB_PRINTER_CLASS = 0x07
USB_WRITE_CHUNK_SIZE = 16384
USB_WRITE_TIMEOUT_MS = 5000
USB_MAX_PAYLOAD_SIZE = 16 * 1024 * 1024

# Bluetooth GATT
BLE_PRINTER_SERVICE_UUIDS = (
    "000018f0-0000-1000-8000-00805f9b34fb",  # Generic
    "49535343-fe7d-4ae5-8fa9-9fafd205e455",  # ISSC (Star and others)
    "6e400001-b5a3-f393-e0a9-e50e24dcca9e",  # Nordic UART
)
BLE_PRINTER_NAME_PREFIXES = ("Printer", "TSP", "TM", "POS", "Receipt")
BLE_DEFAULT_CHUNK_SIZE = 20
BLE_CHUNK_DELAY = 0.01
BLE_CONNECT_TIMEOUT = 10.0
BLE_SCAN_TIMEOUT = 10.0
BLE_MAX_PAYLOAD_SIZE = 1024 * 1024

# HTTP API printers
API_REQUEST_TIMEOUT = 15.0
API_MAX_PAYLOAD_SIZE = 8 * 1024 * 1024

# Dispatcher
JOB_HISTORY_LIMIT = 50

# Persistence
STORE_VERSION = 1
DEFAULT_STORE_PATH = os.environ.get(
    "PRINTER_BRIDGE_STORE",
    os.path.join(os.path.expanduser("~"), ".config", "printer_bridge", "printers.json"),
)
