#!/usr/bin/env python3
"""
Tests for core.config_loader: value precedence, inline comments and plugin sections.

Usage:
    python -m pytest test_plugins/test_config_loader.py
"""

import os
import sys
import tempfile
import configparser
import unittest
from unittest.mock import patch

# Add the project root to the Python path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.app_state import AppState
from core.config_loader import (
    get_config_value,
    load_configuration,
    load_plugin_config,
    load_plugin_config_from_file,
    validate_core_config,
)

SAMPLE_CONFIG = """
[GENERAL]
PLUGIN_INSTANCES = INV_SCHUECO, INV_ROOF ; two inverters
POLL_INTERVAL = 30

[LOGGING]
LOG_LEVEL = debug
LOG_TO_FILE = false

[PLUGIN_INV_SCHUECO]
plugin_type = inverter.schueco_kaco_plugin
serial_port = /dev/ttyUSB0
inverter_address = 1

[PLUGIN_INV_ROOF]
plugin_type = inverter.schueco_kaco_plugin
connection_type = tcp
tcp_host = 192.168.1.50
"""


def _parse(text: str) -> configparser.ConfigParser:
    config = configparser.ConfigParser(interpolation=None)
    config.read_string(text)
    return config


class TestGetConfigValue(unittest.TestCase):

    def setUp(self):
        self.config = _parse(SAMPLE_CONFIG)

    def test_inline_comment_is_stripped(self):
        value = get_config_value(self.config, "PLUGIN_INSTANCES", str, "", section="GENERAL")
        self.assertEqual(value, "INV_SCHUECO, INV_ROOF")

    def test_cast(self):
        self.assertEqual(get_config_value(self.config, "POLL_INTERVAL", int, 60, section="GENERAL"), 30)
        self.assertFalse(get_config_value(self.config, "LOG_TO_FILE", bool, True, section="LOGGING"))

    def test_environment_wins(self):
        with patch.dict(os.environ, {"POLL_INTERVAL": "15"}):
            self.assertEqual(get_config_value(self.config, "POLL_INTERVAL", int, 60, section="GENERAL"), 15)

    def test_missing_value_uses_default(self):
        self.assertEqual(get_config_value(self.config, "NOT_THERE", int, 7, section="GENERAL"), 7)
        self.assertEqual(get_config_value(self.config, "POLL_INTERVAL", int, 7, section="NO_SECTION"), 7)

    def test_bad_cast_uses_default(self):
        config = _parse("[GENERAL]\nPOLL_INTERVAL = often\n")
        with self.assertLogs("core.config_loader", level="WARNING"):
            self.assertEqual(get_config_value(config, "POLL_INTERVAL", int, 60, section="GENERAL"), 60)

    def test_quotes_are_removed(self):
        config = _parse('[GENERAL]\nINSTANCE_LABEL = "roof inverter"\n')
        self.assertEqual(get_config_value(config, "INSTANCE_LABEL", str, None, section="GENERAL"), "roof inverter")


class TestLoadConfiguration(unittest.TestCase):

    def setUp(self):
        handle, self.config_path = tempfile.mkstemp(suffix=".ini")
        with os.fdopen(handle, "w", encoding="utf-8") as f:
            f.write(SAMPLE_CONFIG)
        self.addCleanup(os.remove, self.config_path)

    def test_app_state_is_populated(self):
        app_state = AppState(version="test")
        load_configuration(self.config_path, app_state)
        self.assertEqual(app_state.configured_plugin_instance_names, ["INV_SCHUECO", "INV_ROOF"])
        self.assertEqual(app_state.poll_interval, 30)
        self.assertEqual(app_state.log_level, "DEBUG")
        self.assertFalse(app_state.log_to_file)
        validate_core_config(app_state)

    def test_missing_file_gives_defaults(self):
        app_state = AppState(version="test")
        load_configuration(self.config_path + ".missing", app_state)
        self.assertEqual(app_state.configured_plugin_instance_names, [])
        self.assertEqual(app_state.poll_interval, 60)

    def test_validation_exits_without_instances(self):
        app_state = AppState(version="test")
        load_configuration(self.config_path + ".missing", app_state)
        with self.assertRaises(SystemExit):
            validate_core_config(app_state)

    def test_plugin_section(self):
        plugin_config = load_plugin_config_from_file(self.config_path, "INV_ROOF")
        self.assertEqual(plugin_config["connection_type"], "tcp")
        self.assertEqual(plugin_config["tcp_host"], "192.168.1.50")
        self.assertEqual(plugin_config["_instance_name"], "INV_ROOF")

    def test_plugin_section_missing(self):
        with self.assertRaises(ValueError):
            load_plugin_config(_parse(SAMPLE_CONFIG), "INV_GARAGE")

    def test_plugin_config_file_missing(self):
        with self.assertRaises(FileNotFoundError):
            load_plugin_config_from_file(self.config_path + ".missing", "INV_SCHUECO")


if __name__ == "__main__":
    unittest.main()
