# plugins/plugin_interface.py
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Tuple
import logging # Use standard logging

def _strip_inline_comment(value: Any) -> str:
    # Strip comments (everything after ';') and whitespace
    return str(value).split(';')[0].strip()

def parse_config_int(config_dict: Dict[str, Any], key: str, default: int) -> int:
    """
    Parse an integer configuration value, handling comments and whitespace.

    Args:
        config_dict: The configuration dictionary
        key: The configuration key to parse
        default: Default value if key is not found

    Returns:
        The parsed integer value

    Example:
        # Handles values like "9600 ; comment" or "9600"
        baud_rate = parse_config_int(config, "baud_rate", 9600)
    """
    return int(_strip_inline_comment(config_dict.get(key, default)))

def parse_config_float(config_dict: Dict[str, Any], key: str, default: float) -> float:
    """
    Parse a float configuration value, handling comments and whitespace.

    Args:
        config_dict: The configuration dictionary
        key: The configuration key to parse
        default: Default value if key is not found

    Returns:
        The parsed float value
    """
    return float(_strip_inline_comment(config_dict.get(key, default)))

def parse_config_str(config_dict: Dict[str, Any], key: str, default: Optional[str] = None) -> Optional[str]:
    """
    Parse a string configuration value, handling comments and whitespace.

    Returns:
        The parsed string value, or None if not found and no default
    """
    value = config_dict.get(key, default)
    if value is None:
        return None
    clean_value = _strip_inline_comment(value)
    return clean_value if clean_value else None

def parse_config_bool(config_dict: Dict[str, Any], key: str, default: bool) -> bool:
    """Parse a boolean configuration value ("true", "1", "yes", "on" are truthy)."""
    value = config_dict.get(key)
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return _strip_inline_comment(value).lower() in ['true', '1', 'yes', 'on']

# --- Standardized Data Keys ---
class StandardDataKeys:
    """
    A centralized namespace for standardized data keys shared between plugins
    and the host application.

    Plugins publish their device-specific variables as well, but every value
    that has a standard meaning is also reported under one of these keys so
    that host services can consume any plugin the same way.
    """
    # === TIMESTAMPS & STATUS (Core Application Populated) ===
    SERVER_TIMESTAMP_MS_UTC = "server_timestamp_ms_utc"
    PLUGIN_DATA_TIMESTAMP_MS_UTC = "plugin_data_timestamp_ms_utc"

    # === DEVICE IDENTIFICATION & STATIC INFO (from Plugin's read_static_data) ===
    STATIC_DEVICE_CATEGORY = "static_device_category" # str: "inverter", "bms", "meter"

    # === INVERTER IDENTIFICATION & STATIC INFO ===
    STATIC_INVERTER_MODEL_NAME = "static_inverter_model_name"
    STATIC_INVERTER_SERIAL_NUMBER = "static_inverter_serial_number"
    STATIC_INVERTER_FIRMWARE_VERSION = "static_inverter_firmware_version"
    STATIC_INVERTER_MANUFACTURER = "static_inverter_manufacturer"
    STATIC_COMMUNICATION_PROTOCOL_VERSION = "static_communication_protocol_version"
    STATIC_NUMBER_OF_MPPTS = "static_number_of_mppts"
    STATIC_NUMBER_OF_PHASES_AC = "static_number_of_phases_ac"

    # === INVERTER OPERATIONAL STATUS (Dynamic) ===
    OPERATIONAL_INVERTER_STATUS_CODE = "operational_inverter_status_code"
    OPERATIONAL_INVERTER_TEMPERATURE_CELSIUS = "operational_inverter_temperature_celsius"

    # === PV / SOLAR INPUT (Dynamic) ===
    PV_MPPT1_VOLTAGE_VOLTS = "pv_mppt1_voltage_volts"
    PV_MPPT1_CURRENT_AMPS = "pv_mppt1_current_amps"
    PV_MPPT1_POWER_WATTS = "pv_mppt1_power_watts"
    PV_TOTAL_DC_POWER_WATTS = "pv_total_dc_power_watts"
    ENERGY_PV_DAILY_KWH = "energy_pv_daily_kwh"

    # === GRID INTERACTION (Dynamic) ===
    GRID_L1_VOLTAGE_VOLTS = "grid_l1_voltage_volts"
    GRID_L1_CURRENT_AMPS = "grid_l1_current_amps"

    # === LOAD / CONSUMPTION (Dynamic) ===
    AC_POWER_WATTS = "ac_power_watts" # Typically Inverter AC output power

    # === PLUGIN-SPECIFIC DATA (Optional pass-through) ===
    PLUGIN_SPECIFIC_DATA_DICT = "plugin_specific_data_dict" # dict


class DevicePlugin(ABC):
    """
    Abstract Base Class for all device plugins.

    This class defines the interface the host application uses to talk to a
    device plugin: connecting, disconnecting, and reading both static (model,
    serial number) and dynamic (power, voltage) data.
    """
    def __init__(self, instance_name: str, plugin_specific_config: Dict[str, Any], main_logger: logging.Logger, app_state: Optional[Any] = None):
        """
        'instance_name' is a unique identifier for this plugin instance (e.g., "INV_SCHUECO").
        'plugin_specific_config' is a dictionary derived from the main config.ini
        (all keys from the [PLUGIN_<instance_name>] section).
        'app_state' is the host's shared state object; plugins only pass it through.
        """
        self.instance_name = instance_name
        self.plugin_config = plugin_specific_config
        self.logger = main_logger
        self.app_state = app_state
        self.client: Optional[Any] = None # Plugin-specific client (e.g., serial channel)
        self._is_connected_flag: bool = False # Common flag, managed by plugin's connect/disconnect
        self.connection_status: str = "Initializing"

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the unique type name of this plugin (e.g., 'schueco_kaco')."""
        pass

    @property
    @abstractmethod
    def pretty_name(self) -> str:
        """Return a human-friendly name for the plugin type."""
        pass

    @property
    def is_connected(self) -> bool:
        """Check if currently connected to the device. Returns True if connected."""
        return self._is_connected_flag

    @abstractmethod
    def connect(self) -> bool:
        """
        Establish connection to the device.
        MUST set self._is_connected_flag = True on success.
        Returns True on success, False on failure.
        """
        pass

    @abstractmethod
    def disconnect(self) -> None:
        """
        Disconnect from the device.
        MUST set self._is_connected_flag = False.
        """
        pass

    @abstractmethod
    def read_static_data(self) -> Optional[Dict[str, Any]]:
        """
        Read static/identifying data from the device ONCE upon successful connection.
        MUST include StandardDataKeys.STATIC_DEVICE_CATEGORY key in the returned dictionary.
        """
        pass

    @abstractmethod
    def read_dynamic_data(self) -> Optional[Dict[str, Any]]:
        """
        Read dynamic/operational data from the device.
        Returns a dictionary where keys are from StandardDataKeys (plus any
        plugin-specific variable names) and values are the current readings.
        Returns None if the read failed.
        """
        pass

    def test_connection(self) -> Tuple[bool, str]:
        """
        Optional: user-triggered connectivity check.

        Returns:
            (success, message). The message is meant for display and must not
            contain raw exception details.
            Default implementation: open and close the connection.
        """
        ok = self.connect()
        self.disconnect()
        return ok, "Connection successful" if ok else "Connection failed"
