# plugins/inverter/schueco_kaco_plugin.py
"""
Schueco SGI Inverter Plugin

This plugin reads Schueco SGI series string inverters over their RS485/USB
interface using the KACO ASCII protocol. Both a directly attached serial
adapter and an RS485-to-TCP bridge are supported.

Every work cycle sends the measurement request to the configured inverter
address and maps the reply tokens onto named values (DC voltage, AC power,
device temperature, daily energy, ...). If a reply is garbled, the values of
the last good reply are reused for that cycle.

Supported Models:
- Schueco SGI series (e.g. SGI 3502)
- Other inverters answering the KACO "#AA0" / "#AA9" requests

Example Configuration:
    [PLUGIN_INV_SCHUECO]
    plugin_type = inverter.schueco_kaco_plugin
    connection_type = serial
    serial_port = /dev/ttyUSB0
    baud_rate = 9600
    inverter_address = 1

License: MIT
"""

import json
import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from plugins.field_calculator import FieldRule, StringArrayCalculator
from plugins.plugin_interface import (
    DevicePlugin,
    StandardDataKeys,
    parse_config_bool,
    parse_config_float,
    parse_config_int,
    parse_config_str,
)
from plugins.serial_channel import ConnectionType, SerialChannel, create_channel
from utils.helpers import UNKNOWN

from .kaco_protocol import COMMAND_IDENTIFICATION, KacoFrame, KacoProtocol
from .schueco_kaco_plugin_constants import (
    CONNECTION_FAILED_MESSAGE,
    CONNECTION_SUCCESSFUL_MESSAGE,
    DEFAULT_BAUD_RATE,
    DEFAULT_INVERTER_ADDRESS,
    DEFAULT_SERIAL_PORT,
    DEFAULT_TCP_PORT,
    DEFAULT_TIMEOUT_SECONDS,
    MANUFACTURER,
    PLUGIN_LOG_PREFIX,
    SCHUECO_COMMANDS,
    VAR_AC_POWER,
    VAR_DAILY_ENERGY,
    VAR_DEVICE_TEMPERATURE,
    VAR_GRID_CURRENT,
    VAR_GRID_VOLTAGE,
    VAR_SOLAR_CURRENT,
    VAR_SOLAR_POWER,
    VAR_SOLAR_VOLTAGE,
    VAR_STATUS,
    WH_PER_KWH,
)

ChannelFactory = Callable[[Dict[str, Any]], SerialChannel]


@dataclass
class CommandProperty:
    """
    One command issued per work cycle together with its field rules.

    ``cached_value`` holds the payload tokens of the last valid reply and is
    owned by this object only.
    """
    name: str
    command: str
    field_rules: List[FieldRule]
    cache_on_failure: bool = False
    cached_value: Optional[Tuple[str, ...]] = field(default=None, repr=False)


def load_command_definitions(path: str) -> Dict[str, Dict[str, Any]]:
    """
    Read command definitions from a JSON file shaped like SCHUECO_COMMANDS.

    Raises:
        OSError: If the file cannot be read.
        ValueError: If the file is not valid JSON or a definition has no "command".
    """
    with open(path, encoding="utf-8") as f:
        definitions = json.load(f)
    if not isinstance(definitions, dict) or not all(isinstance(d, dict) and "command" in d for d in definitions.values()):
        raise ValueError(f"Invalid command definitions in {path}")
    return definitions


def build_command_properties(definitions: Dict[str, Dict[str, Any]], use_cached_values: bool = True) -> List[CommandProperty]:
    """Create fresh CommandProperty objects from a command definition map."""
    properties = []
    for name, definition in definitions.items():
        rules = [
            FieldRule(
                index=int(info["index"]),
                variable_name=variable_name,
                factor=Decimal(str(info.get("factor", 1))),
                offset=Decimal(str(info.get("offset", 0))),
                unit=info.get("unit"),
            )
            for variable_name, info in definition.get("fields", {}).items()
        ]
        properties.append(CommandProperty(
            name=name,
            command=definition["command"],
            field_rules=rules,
            cache_on_failure=use_cached_values and bool(definition.get("cache_on_failure", False)),
        ))
    return properties


class SchuecoKacoPlugin(DevicePlugin):
    """
    Schueco SGI inverter plugin using the KACO ASCII protocol.

    Configuration Parameters:
    - connection_type: "serial" or "tcp"
    - serial_port: COM port or device path
    - baud_rate: Serial communication speed (default 9600)
    - serial_timeout_seconds: Read/write timeout of the channel
    - tcp_host / tcp_port: RS485-to-TCP bridge address
    - inverter_address: KACO bus address of the inverter (default 1)
    - use_cached_values: Reuse the last good reply when a reply is invalid
    - commands_file: Optional JSON file replacing the built-in command definitions
    """

    def __init__(self, instance_name: str, plugin_specific_config: Dict[str, Any], main_logger: logging.Logger,
                 app_state: Optional[Any] = None, channel_factory: Optional[ChannelFactory] = None):
        super().__init__(instance_name, plugin_specific_config, main_logger, app_state)

        self.connection_type = ConnectionType(parse_config_str(self.plugin_config, "connection_type", "serial").lower())
        self.serial_port_path = parse_config_str(self.plugin_config, "serial_port", DEFAULT_SERIAL_PORT)
        self.baud_rate = parse_config_int(self.plugin_config, "baud_rate", DEFAULT_BAUD_RATE)
        self.timeout = parse_config_float(self.plugin_config, "serial_timeout_seconds", DEFAULT_TIMEOUT_SECONDS)
        self.tcp_host = parse_config_str(self.plugin_config, "tcp_host")
        self.tcp_port = parse_config_int(self.plugin_config, "tcp_port", DEFAULT_TCP_PORT)
        self.inverter_address = parse_config_int(self.plugin_config, "inverter_address", DEFAULT_INVERTER_ADDRESS)
        self.use_cached_values = parse_config_bool(self.plugin_config, "use_cached_values", True)

        self.channel_factory: ChannelFactory = channel_factory or create_channel
        self.client: Optional[SerialChannel] = None
        self.protocol = KacoProtocol()
        self.calculator = StringArrayCalculator()
        commands_file = parse_config_str(self.plugin_config, "commands_file")
        definitions = load_command_definitions(commands_file) if commands_file else SCHUECO_COMMANDS
        self.command_properties = build_command_properties(definitions, self.use_cached_values)

        self.last_error_message: Optional[str] = None
        self.last_known_static_data: Optional[Dict[str, Any]] = None
        self.last_known_dynamic_data: Dict[str, Any] = {}
        self.last_live_read_time: Optional[float] = None

        self.logger.info(f"{self._prefix}: Initialized for inverter address {self.inverter_address}, connection type: {self.connection_type.value}")

    @property
    def name(self) -> str:
        """Return the technical name of the plugin."""
        return "schueco_kaco"

    @property
    def pretty_name(self) -> str:
        """Return a user-friendly name for the plugin."""
        return "Schueco SGI Inverter"

    @property
    def _prefix(self) -> str:
        return f"{PLUGIN_LOG_PREFIX} '{self.instance_name}'"

    @property
    def channel_target(self) -> str:
        """The port or bridge this instance talks to; instances sharing it share the bus."""
        if self.connection_type == ConnectionType.SERIAL:
            return self.serial_port_path
        return f"{self.tcp_host}:{self.tcp_port}"

    def _describe_target(self) -> str:
        if self.connection_type == ConnectionType.SERIAL:
            return f"serial port {self.serial_port_path} @ {self.baud_rate} baud (timeout {self.timeout}s)"
        return f"TCP bridge {self.tcp_host}:{self.tcp_port}"

    def connect(self) -> bool:
        """
        Open the channel and keep it for subsequent work cycles.

        Returns:
            True if the channel is open, False otherwise (see last_error_message).
        """
        if self._is_connected_flag and self.client is not None and self.client.is_open:
            return True

        self.disconnect()
        self.last_error_message = None
        try:
            channel = self.channel_factory(self.plugin_config)
            channel.connect()
        except (OSError, ValueError) as e:
            self.last_error_message = f"Failed to open {self._describe_target()}: {e}"
            self.logger.error(f"{self._prefix}: {self.last_error_message}")
            self.connection_status = "disconnected"
            return False

        self.client = channel
        self._is_connected_flag = True
        self.connection_status = "connected"
        self.logger.info(f"{self._prefix}: Successfully connected via {self._describe_target()}")
        return True

    def disconnect(self) -> None:
        """Close the channel if open. Safe to call multiple times."""
        if self.client is not None:
            try:
                self.client.disconnect()
                self.logger.debug(f"{self._prefix}: Channel closed")
            except OSError as e:
                self.logger.warning(f"{self._prefix}: Error closing channel: {e}")
            self.client = None
            self.logger.info(f"{self._prefix}: Disconnected from inverter")
        self._is_connected_flag = False
        self.connection_status = "disconnected"

    @contextmanager
    def _cycle_channel(self) -> Iterator[SerialChannel]:
        """
        Channel for one work cycle.

        Reuses the channel opened by connect(); otherwise opens a new one and
        closes it again on every exit path.
        """
        if self.client is not None and self.client.is_open:
            yield self.client
            return
        with self.channel_factory(self.plugin_config) as channel:
            yield channel

    def do_activity_work(self, variables: Dict[str, Decimal]) -> bool:
        """
        Run one work cycle and merge the decoded values into ``variables``.

        Raises:
            OSError: If the channel could not be opened or a command hit a
                transport error. Commands after a failed one are still issued.
        """
        with self._cycle_channel() as channel:
            self.work_properties(channel, variables)
        return True

    def work_properties(self, channel: SerialChannel, variables: Dict[str, Decimal]) -> None:
        first_error: Optional[OSError] = None
        for command_property in self.command_properties:
            try:
                self.handle_command_property(channel, command_property, variables)
            except OSError as e:
                self.logger.error(f"{self._prefix}: Transport error on command '{command_property.command}' ({command_property.name}): {e}")
                if first_error is None:
                    first_error = e
        if first_error is not None:
            raise first_error

    def handle_command_property(self, channel: SerialChannel, command_property: CommandProperty, variables: Dict[str, Decimal]) -> bool:
        """
        Issue one command and calculate its fields.

        Returns:
            True if a live, valid reply was used.
        """
        request = KacoFrame(self.inverter_address, command_property.command)
        self.logger.debug(f"{self._prefix}: send command {command_property.command} to address {self.inverter_address}")
        frame = self.protocol.exchange(channel, request)
        self.logger.debug(f"{self._prefix}: {frame}")

        if frame.is_valid:
            command_property.cached_value = frame.data
            self.last_live_read_time = time.time()
            self.calculator.calculate(frame.data, command_property.field_rules, variables)
            return True

        self.logger.error(f"{self._prefix}: invalid frame, address:{self.inverter_address}, command:{command_property.command}, raw:{frame.raw!r}")
        if command_property.cache_on_failure and command_property.cached_value is not None:
            self.handle_cached_command_property(command_property, variables)
        return False

    def handle_cached_command_property(self, command_property: CommandProperty, variables: Dict[str, Decimal]) -> None:
        self.logger.debug(f"{self._prefix}: use cached value {list(command_property.cached_value)}")
        self.calculator.calculate(command_property.cached_value, command_property.field_rules, variables)

    def test_connection(self, test_config: Optional[Dict[str, Any]] = None) -> Tuple[bool, str]:
        """
        Ask the inverter for its model name.

        Args:
            test_config: Settings to test instead of the plugin's own configuration.

        Returns:
            (True, success message with the model name) or
            (False, CONNECTION_FAILED_MESSAGE). No error details are returned.
        """
        request = KacoFrame(self.inverter_address, COMMAND_IDENTIFICATION)
        if test_config is not None:
            request = KacoFrame(parse_config_int(test_config, "inverter_address", DEFAULT_INVERTER_ADDRESS), COMMAND_IDENTIFICATION)
        try:
            if test_config is not None:
                with self.channel_factory(test_config) as channel:
                    frame = self.protocol.exchange(channel, request)
            else:
                with self._cycle_channel() as channel:
                    frame = self.protocol.exchange(channel, request)
        except Exception as e:
            self.logger.debug(f"{self._prefix}: Connection test failed: {e}")
            return False, CONNECTION_FAILED_MESSAGE

        if frame.is_valid:
            return True, CONNECTION_SUCCESSFUL_MESSAGE.format(model=frame.data[0])
        self.logger.debug(f"{self._prefix}: Connection test got invalid reply {frame.raw!r}")
        return False, CONNECTION_FAILED_MESSAGE

    def read_static_data(self) -> Optional[Dict[str, Any]]:
        """
        Read the inverter model via the identification command.

        Returns:
            Dictionary containing standardized static data keys, or None on failure.
            Cached after the first successful read.
        """
        if self.last_known_static_data is not None:
            return self.last_known_static_data

        try:
            with self._cycle_channel() as channel:
                frame = self.protocol.exchange(channel, KacoFrame(self.inverter_address, COMMAND_IDENTIFICATION))
        except OSError as e:
            self.last_error_message = f"Communication error during identification read: {e}"
            self.logger.error(f"{self._prefix}: {self.last_error_message}")
            self.disconnect()
            return None

        if not frame.is_valid:
            self.last_error_message = f"Invalid identification reply: {frame.raw!r}"
            self.logger.error(f"{self._prefix}: {self.last_error_message}")
            return None

        self.last_known_static_data = {
            StandardDataKeys.STATIC_DEVICE_CATEGORY: "inverter",
            StandardDataKeys.STATIC_INVERTER_MANUFACTURER: MANUFACTURER,
            StandardDataKeys.STATIC_INVERTER_MODEL_NAME: frame.data[0],
            StandardDataKeys.STATIC_INVERTER_SERIAL_NUMBER: UNKNOWN,
            StandardDataKeys.STATIC_INVERTER_FIRMWARE_VERSION: UNKNOWN,
            StandardDataKeys.STATIC_COMMUNICATION_PROTOCOL_VERSION: "KACO ASCII",
            StandardDataKeys.STATIC_NUMBER_OF_MPPTS: 1,
            StandardDataKeys.STATIC_NUMBER_OF_PHASES_AC: 1,
        }
        return self.last_known_static_data

    def read_dynamic_data(self) -> Optional[Dict[str, Any]]:
        """
        Run one work cycle and return the standardized values.

        Returns:
            Dictionary with the published variable names, StandardDataKeys and
            "raw_values", or None if nothing could be read.
        """
        variables: Dict[str, Decimal] = {}
        try:
            self.do_activity_work(variables)
        except OSError as e:
            self.last_error_message = f"Communication error: {e}"
            self.logger.error(f"{self._prefix}: {self.last_error_message}")
            self.disconnect()
            return None
        except Exception as e:
            self.last_error_message = f"An unexpected error occurred: {e}"
            self.logger.error(f"{self._prefix}: {self.last_error_message}", exc_info=True)
            return None

        if not variables:
            self.last_error_message = "No valid data received from inverter."
            self.logger.warning(f"{self._prefix}: {self.last_error_message}")
            return None

        standardized_data = self._standardize_operational_data(variables)
        self.last_known_dynamic_data = standardized_data.copy()
        return standardized_data

    def _standardize_operational_data(self, variables: Dict[str, Decimal]) -> Dict[str, Any]:
        daily_energy_wh = variables.get(VAR_DAILY_ENERGY)
        standardized: Dict[str, Any] = dict(variables)
        standardized.update({
            StandardDataKeys.OPERATIONAL_INVERTER_STATUS_CODE: variables.get(VAR_STATUS),
            StandardDataKeys.OPERATIONAL_INVERTER_TEMPERATURE_CELSIUS: variables.get(VAR_DEVICE_TEMPERATURE),
            StandardDataKeys.AC_POWER_WATTS: variables.get(VAR_AC_POWER),
            StandardDataKeys.PV_TOTAL_DC_POWER_WATTS: variables.get(VAR_SOLAR_POWER),
            StandardDataKeys.PV_MPPT1_VOLTAGE_VOLTS: variables.get(VAR_SOLAR_VOLTAGE),
            StandardDataKeys.PV_MPPT1_CURRENT_AMPS: variables.get(VAR_SOLAR_CURRENT),
            StandardDataKeys.PV_MPPT1_POWER_WATTS: variables.get(VAR_SOLAR_POWER),
            StandardDataKeys.GRID_L1_VOLTAGE_VOLTS: variables.get(VAR_GRID_VOLTAGE),
            StandardDataKeys.GRID_L1_CURRENT_AMPS: variables.get(VAR_GRID_CURRENT),
            StandardDataKeys.ENERGY_PV_DAILY_KWH: daily_energy_wh / WH_PER_KWH if daily_energy_wh is not None else None,
            StandardDataKeys.PLUGIN_DATA_TIMESTAMP_MS_UTC: int(self.last_live_read_time * 1000) if self.last_live_read_time is not None else None,
            "raw_values": dict(variables),
        })
        return standardized
