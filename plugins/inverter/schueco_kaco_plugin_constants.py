# plugins/inverter/schueco_kaco_plugin_constants.py
"""
Constants and field definitions for Schueco SGI inverters (KACO ASCII protocol).

Field indices refer to the payload tokens of the measurement reply after the
address echo and the trailing status letter have been removed:

    index:   0     1      2     3     4      5     6    7     8
    token:   4   350.0  1.18   414  229.2  1.74   398  31   1139
             st  DC V   DC A   DC W  AC V   AC A  AC W  degC  Wh today

Variable names are the German names used for this inverter family and are
published unchanged.
"""

from decimal import Decimal
from typing import Any, Dict

from .kaco_protocol import COMMAND_MEASUREMENT

MANUFACTURER = "Schueco"
PLUGIN_LOG_PREFIX = "Schueco Plugin"

# Default serial parameters
DEFAULT_BAUD_RATE = 9600
DEFAULT_INVERTER_ADDRESS = 1
DEFAULT_SERIAL_PORT = "/dev/ttyUSB0"
DEFAULT_TCP_PORT = 4001
DEFAULT_TIMEOUT_SECONDS = 2.0

CONNECTION_FAILED_MESSAGE = "Connection failed"
CONNECTION_SUCCESSFUL_MESSAGE = "Connection successful, found inverter model {model}"

# Published variable names
VAR_STATUS = "status"
VAR_SOLAR_VOLTAGE = "solarspannung"
VAR_SOLAR_CURRENT = "solarstrom"
VAR_SOLAR_POWER = "solarleistung"
VAR_GRID_VOLTAGE = "netzspannung"
VAR_GRID_CURRENT = "netzstrom"
VAR_AC_POWER = "wattleistung"
VAR_DEVICE_TEMPERATURE = "geraetetemperatur"
VAR_DAILY_ENERGY = "tagesenergie"

WH_PER_KWH = Decimal(1000)

# Commands issued on every work cycle. The identification command is only
# used for static data and connection tests.
SCHUECO_COMMANDS: Dict[str, Dict[str, Any]] = {
    "measurement": {
        "command": COMMAND_MEASUREMENT,
        "cache_on_failure": True,
        "fields": {
            VAR_STATUS: {"index": 0, "unit": "Code"},
            VAR_SOLAR_VOLTAGE: {"index": 1, "unit": "V"},
            VAR_SOLAR_CURRENT: {"index": 2, "unit": "A"},
            VAR_SOLAR_POWER: {"index": 3, "unit": "W"},
            VAR_GRID_VOLTAGE: {"index": 4, "unit": "V"},
            VAR_GRID_CURRENT: {"index": 5, "unit": "A"},
            VAR_AC_POWER: {"index": 6, "unit": "W"},
            VAR_DEVICE_TEMPERATURE: {"index": 7, "unit": "°C"},
            VAR_DAILY_ENERGY: {"index": 8, "unit": "Wh"},
        },
    },
}
