#!/usr/bin/env python3
"""
Test suite for the Schueco SGI / KACO inverter plugin.

Runs the plugin against FakeKacoChannel, which replays the reference
exchange of an SGI 3502 at bus address 1.

Usage:
    python -m pytest test_plugins/test_schueco_kaco_plugin.py
    python test_plugins/test_schueco_kaco_plugin.py
"""

import sys
import os
import json
import tempfile
import unittest
import logging
from decimal import Decimal
from unittest.mock import Mock

# Add the project root to the Python path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from plugins.inverter.schueco_kaco_plugin import SchuecoKacoPlugin, build_command_properties, load_command_definitions
from plugins.inverter.schueco_kaco_plugin_constants import (
    CONNECTION_FAILED_MESSAGE,
    SCHUECO_COMMANDS,
)
from plugins.plugin_interface import StandardDataKeys
from plugins.serial_channel import ConnectionType
from test_plugins.fake_kaco_channel import (
    FakeKacoChannel,
    IDENTIFICATION_REQUEST,
    MEASUREMENT_REQUEST,
)

GARBLED_MEASUREMENT_REPLY = "\n*010   4 350.0  1.18 x\r"


class TestSchuecoKacoPluginConfig(unittest.TestCase):
    """Configuration parsing; no channel is opened."""

    def setUp(self):
        self.mock_logger = Mock(spec=logging.Logger)

    def test_defaults(self):
        plugin = SchuecoKacoPlugin("INV_SCHUECO", {}, self.mock_logger)
        self.assertEqual(plugin.connection_type, ConnectionType.SERIAL)
        self.assertEqual(plugin.serial_port_path, "/dev/ttyUSB0")
        self.assertEqual(plugin.baud_rate, 9600)
        self.assertEqual(plugin.inverter_address, 1)
        self.assertTrue(plugin.use_cached_values)
        self.assertEqual(plugin.name, "schueco_kaco")
        self.assertEqual(plugin.pretty_name, "Schueco SGI Inverter")
        self.assertEqual(plugin.channel_target, "/dev/ttyUSB0")

    def test_values_with_inline_comments(self):
        config = {
            "serial_port": "/dev/ttyS1 ; RS485 adapter",
            "baud_rate": "19200 ; fast",
            "inverter_address": " 3 ",
            "use_cached_values": "no ; always live",
        }
        plugin = SchuecoKacoPlugin("INV_SCHUECO", config, self.mock_logger)
        self.assertEqual(plugin.serial_port_path, "/dev/ttyS1")
        self.assertEqual(plugin.baud_rate, 19200)
        self.assertEqual(plugin.inverter_address, 3)
        self.assertFalse(plugin.use_cached_values)
        self.assertFalse(any(p.cache_on_failure for p in plugin.command_properties))

    def test_tcp_channel_target(self):
        config = {"connection_type": "TCP", "tcp_host": "192.168.1.50", "tcp_port": "8899"}
        plugin = SchuecoKacoPlugin("INV_SCHUECO", config, self.mock_logger)
        self.assertEqual(plugin.connection_type, ConnectionType.TCP)
        self.assertEqual(plugin.channel_target, "192.168.1.50:8899")

    def test_invalid_connection_type(self):
        with self.assertRaises(ValueError):
            SchuecoKacoPlugin("INV_SCHUECO", {"connection_type": "bluetooth"}, self.mock_logger)

    def test_command_properties_are_not_shared(self):
        first = build_command_properties(SCHUECO_COMMANDS)
        second = build_command_properties(SCHUECO_COMMANDS)
        self.assertIsNot(first[0], second[0])
        first[0].cached_value = ("1",)
        self.assertIsNone(second[0].cached_value)

    def test_commands_file(self):
        """Command definitions can be supplied as JSON."""
        definitions = {
            "power": {
                "command": "0",
                "cache_on_failure": False,
                "fields": {"wattleistung_kw": {"index": 6, "factor": 0.001, "unit": "kW"}},
            }
        }
        handle, path = tempfile.mkstemp(suffix=".json")
        with os.fdopen(handle, "w", encoding="utf-8") as f:
            json.dump(definitions, f)
        self.addCleanup(os.remove, path)

        plugin = SchuecoKacoPlugin("INV_SCHUECO", {"commands_file": path}, self.mock_logger,
                                   channel_factory=lambda _config: FakeKacoChannel())
        self.assertEqual([p.name for p in plugin.command_properties], ["power"])
        self.assertFalse(plugin.command_properties[0].cache_on_failure)
        data = plugin.read_dynamic_data()
        self.assertEqual(data["wattleistung_kw"], Decimal("0.398"))

    def test_invalid_commands_file(self):
        handle, path = tempfile.mkstemp(suffix=".json")
        with os.fdopen(handle, "w", encoding="utf-8") as f:
            f.write('{"power": {"fields": {}}}')
        self.addCleanup(os.remove, path)
        with self.assertRaises(ValueError):
            load_command_definitions(path)


class TestSchuecoKacoPluginCycle(unittest.TestCase):
    """Work cycles against the replayed SGI 3502."""

    def setUp(self):
        self.mock_logger = Mock(spec=logging.Logger)
        self.channel = FakeKacoChannel()
        self.plugin = self._make_plugin(self.channel)

    def _make_plugin(self, channel, config=None):
        return SchuecoKacoPlugin(
            "INV_SCHUECO", config or {}, self.mock_logger,
            channel_factory=lambda _config: channel
        )

    def test_reference_measurement(self):
        """The reference reply yields the published values exactly."""
        data = self.plugin.read_dynamic_data()
        self.assertIsNotNone(data)
        self.assertEqual(data["status"], 4)
        self.assertEqual(data["solarspannung"], 350)
        self.assertEqual(data["solarstrom"], Decimal("1.18"))
        self.assertEqual(data["solarleistung"], 414)
        self.assertEqual(data["netzspannung"], Decimal("229.2"))
        self.assertEqual(data["netzstrom"], Decimal("1.74"))
        self.assertEqual(data["wattleistung"], 398)
        self.assertEqual(data["geraetetemperatur"], 31)
        self.assertEqual(data["tagesenergie"], 1139)

    def test_standard_keys(self):
        data = self.plugin.read_dynamic_data()
        self.assertEqual(data[StandardDataKeys.AC_POWER_WATTS], 398)
        self.assertEqual(data[StandardDataKeys.PV_TOTAL_DC_POWER_WATTS], 414)
        self.assertEqual(data[StandardDataKeys.GRID_L1_VOLTAGE_VOLTS], Decimal("229.2"))
        self.assertEqual(data[StandardDataKeys.OPERATIONAL_INVERTER_TEMPERATURE_CELSIUS], 31)
        self.assertEqual(data[StandardDataKeys.ENERGY_PV_DAILY_KWH], Decimal("1.139"))
        self.assertIsInstance(data[StandardDataKeys.PLUGIN_DATA_TIMESTAMP_MS_UTC], int)
        self.assertEqual(len(data["raw_values"]), 9)

    def test_cycle_sends_one_measurement_and_closes_channel(self):
        self.plugin.read_dynamic_data()
        self.assertEqual(self.channel.written, [MEASUREMENT_REQUEST])
        self.assertEqual(self.channel.connect_count, 1)
        self.assertEqual(self.channel.disconnect_count, 1)
        self.assertFalse(self.channel.is_open)

    def test_garbled_reply_uses_cached_values(self):
        """An invalid reply after a good one reproduces the good values."""
        first = self.plugin.read_dynamic_data()
        self.channel.replies[MEASUREMENT_REQUEST] = GARBLED_MEASUREMENT_REPLY
        second = self.plugin.read_dynamic_data()
        self.assertIsNotNone(second)
        self.assertEqual(second["raw_values"], first["raw_values"])
        self.assertEqual(second[StandardDataKeys.PLUGIN_DATA_TIMESTAMP_MS_UTC],
                         first[StandardDataKeys.PLUGIN_DATA_TIMESTAMP_MS_UTC])

    def test_garbled_first_reply_has_no_cache(self):
        self.channel.replies[MEASUREMENT_REQUEST] = GARBLED_MEASUREMENT_REPLY
        self.assertIsNone(self.plugin.read_dynamic_data())
        self.assertEqual(self.plugin.last_error_message, "No valid data received from inverter.")

    def test_cache_disabled(self):
        plugin = self._make_plugin(self.channel, {"use_cached_values": "false"})
        self.assertIsNotNone(plugin.read_dynamic_data())
        self.channel.replies[MEASUREMENT_REQUEST] = GARBLED_MEASUREMENT_REPLY
        self.assertIsNone(plugin.read_dynamic_data())

    def test_caches_are_per_instance(self):
        self.assertIsNotNone(self.plugin.read_dynamic_data())
        other_channel = FakeKacoChannel({MEASUREMENT_REQUEST: GARBLED_MEASUREMENT_REPLY})
        other = self._make_plugin(other_channel)
        self.assertIsNone(other.read_dynamic_data())

    def test_transport_error_closes_channel(self):
        self.channel.replies.pop(MEASUREMENT_REQUEST)
        with self.assertRaises(OSError):
            self.plugin.do_activity_work({})
        self.assertFalse(self.channel.is_open)
        self.assertIsNone(self.plugin.read_dynamic_data())
        self.assertFalse(self.channel.is_open)
        self.assertIn("Communication error", self.plugin.last_error_message)

    def test_failed_command_does_not_stop_the_cycle(self):
        """Later commands still run after a transport error; the error is raised afterwards."""
        self.plugin.command_properties = build_command_properties({
            "unanswered": {"command": "Z", "fields": {"z_value": {"index": 0}}},
            "measurement": SCHUECO_COMMANDS["measurement"],
        })
        variables = {}
        with self.assertRaises(OSError):
            self.plugin.do_activity_work(variables)
        self.assertEqual(self.channel.written, [b"#01Z\r", MEASUREMENT_REQUEST])
        self.assertEqual(variables["wattleistung"], 398)
        self.assertNotIn("z_value", variables)
        self.assertFalse(self.channel.is_open)

    def test_channel_open_failure(self):
        def failing_factory(_config):
            raise ValueError("connection_type is 'tcp' but tcp_host is not configured")
        plugin = SchuecoKacoPlugin("INV_SCHUECO", {}, self.mock_logger, channel_factory=failing_factory)
        self.assertFalse(plugin.connect())
        self.assertIn("tcp_host", plugin.last_error_message)

    def test_persistent_connection_is_reused(self):
        self.assertTrue(self.plugin.connect())
        self.assertTrue(self.plugin.is_connected)
        self.assertIsNotNone(self.plugin.read_dynamic_data())
        self.assertIsNotNone(self.plugin.read_dynamic_data())
        self.assertEqual(self.channel.connect_count, 1)
        self.assertTrue(self.channel.is_open)
        self.plugin.disconnect()
        self.assertFalse(self.channel.is_open)
        self.assertFalse(self.plugin.is_connected)

    def test_disconnect_twice(self):
        self.plugin.connect()
        self.plugin.disconnect()
        self.plugin.disconnect()
        self.assertEqual(self.channel.disconnect_count, 1)


class TestSchuecoKacoPluginIdentification(unittest.TestCase):

    def setUp(self):
        self.mock_logger = Mock(spec=logging.Logger)
        self.channel = FakeKacoChannel()
        self.plugin = SchuecoKacoPlugin(
            "INV_SCHUECO", {}, self.mock_logger,
            channel_factory=lambda _config: self.channel
        )

    def test_connection_reports_model(self):
        ok, message = self.plugin.test_connection()
        self.assertTrue(ok)
        self.assertIn("SG3502", message)
        self.assertEqual(self.channel.written, [IDENTIFICATION_REQUEST])
        self.assertFalse(self.channel.is_open)

    def test_connection_failure_message_is_normalized(self):
        """Whatever went wrong, only the fixed message is returned."""
        self.channel.replies.clear()
        self.assertEqual(self.plugin.test_connection(), (False, CONNECTION_FAILED_MESSAGE))

        def failing_factory(_config):
            raise OSError("[Errno 2] could not open port /dev/ttyUSB9")
        plugin = SchuecoKacoPlugin("INV_SCHUECO", {}, self.mock_logger, channel_factory=failing_factory)
        self.assertEqual(plugin.test_connection(), (False, CONNECTION_FAILED_MESSAGE))

    def test_connection_with_other_settings(self):
        """A test configuration is used instead of the plugin's own."""
        seen = []

        def factory(config):
            seen.append(config)
            return FakeKacoChannel({b"#059\r": "\n*059 SG5002 h\r"})
        plugin = SchuecoKacoPlugin("INV_SCHUECO", {}, self.mock_logger, channel_factory=factory)
        ok, message = plugin.test_connection({"inverter_address": "5"})
        self.assertTrue(ok)
        self.assertIn("SG5002", message)
        self.assertEqual(seen, [{"inverter_address": "5"}])

    def test_static_data(self):
        static = self.plugin.read_static_data()
        self.assertEqual(static[StandardDataKeys.STATIC_DEVICE_CATEGORY], "inverter")
        self.assertEqual(static[StandardDataKeys.STATIC_INVERTER_MODEL_NAME], "SG3502")
        self.assertEqual(static[StandardDataKeys.STATIC_INVERTER_MANUFACTURER], "Schueco")
        # Cached; no second request
        self.assertIs(self.plugin.read_static_data(), static)
        self.assertEqual(self.channel.written, [IDENTIFICATION_REQUEST])

    def test_static_data_failure(self):
        self.channel.replies.clear()
        self.assertIsNone(self.plugin.read_static_data())
        self.assertIsNone(self.plugin.last_known_static_data)


def run_tests():
    """Run all tests and print a summary."""
    loader = unittest.TestLoader()
    suite = unittest.TestSuite()
    for test_class in (TestSchuecoKacoPluginConfig, TestSchuecoKacoPluginCycle, TestSchuecoKacoPluginIdentification):
        suite.addTests(loader.loadTestsFromTestCase(test_class))

    runner = unittest.TextTestRunner(verbosity=2)
    result = runner.run(suite)

    print(f"\n{'=' * 50}")
    print(f"Tests run: {result.testsRun}")
    print(f"Failures: {len(result.failures)}")
    print(f"Errors: {len(result.errors)}")
    return result.wasSuccessful()


if __name__ == "__main__":
    sys.exit(0 if run_tests() else 1)
