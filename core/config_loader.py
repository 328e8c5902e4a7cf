# core/config_loader.py
import configparser
import logging
import os
import sys
from typing import Any, Dict, Type, Optional

from core.app_state import AppState
from core.constants import DEFAULT_POLL_INTERVAL

logger = logging.getLogger(__name__)


def get_config_value(config: configparser.ConfigParser, var_name: str, return_type: Type = str,
                     default: Any = None, section: str = 'DEFAULT') -> Any:
    """
    Retrieves and converts a configuration value with environment variable override support.

    Precedence:
    1. Environment variable named like the key in upper case (highest priority)
    2. Configuration file value
    3. Default value (lowest priority)

    Args:
        config: The parsed configuration
        var_name: The configuration variable name
        return_type: The expected type for conversion (str, int, float, bool)
        default: Default value if not found in env or config
        section: Configuration file section name

    Returns:
        The configuration value converted to the specified type
    """
    env_value = os.environ.get(var_name.upper())
    config_value = config.get(section, var_name, fallback=None) if config.has_option(section, var_name) else None

    value_to_cast = env_value if env_value is not None else config_value
    if value_to_cast is None:
        return default

    if isinstance(value_to_cast, str):
        # Inline comments are only recognised when preceded by whitespace
        comment_at = value_to_cast.find(' ;')
        if comment_at >= 0:
            value_to_cast = value_to_cast[:comment_at]
        value_to_cast = value_to_cast.strip().strip("'\"")

    try:
        if return_type == bool:
            return value_to_cast.lower() in ['true', '1', 'yes', 'on']
        return return_type(value_to_cast)
    except (ValueError, TypeError):
        logger.warning(f"Could not cast '{value_to_cast}' for '{var_name}' to {return_type.__name__}. Using default: {default}")
        return default


def read_config_file(config_path: str) -> configparser.ConfigParser:
    """Read an .ini file; a missing file yields an empty configuration."""
    config = configparser.ConfigParser(interpolation=None)
    if os.path.exists(config_path):
        config.read(config_path, encoding='utf-8')
        logger.info(f"Successfully read configuration from {config_path}")
    else:
        logger.warning(f"Config file not found at {config_path}. Using defaults and environment variables.")
    return config


def load_configuration(config_path: str, app_state: AppState) -> None:
    """
    Loads configuration from a .ini file and environment variables, populating the AppState object.

    Args:
        config_path (str): The path to the configuration file (e.g., 'config.ini').
        app_state (AppState): The application state object to be populated.
    """
    config = read_config_file(config_path)
    app_state.config = config

    # General
    app_state.poll_interval = get_config_value(config, "POLL_INTERVAL", int, DEFAULT_POLL_INTERVAL, section='GENERAL')
    plugin_instances_str = get_config_value(config, "PLUGIN_INSTANCES", str, "", section='GENERAL')
    if plugin_instances_str:
        app_state.configured_plugin_instance_names = [name.strip() for name in plugin_instances_str.split(',') if name.strip()]

    # Logging
    app_state.log_level = get_config_value(config, "LOG_LEVEL", str, "INFO", section='LOGGING').upper()
    app_state.log_to_file = get_config_value(config, "LOG_TO_FILE", bool, True, section='LOGGING')
    logger.info("Configuration loading complete.")


def load_plugin_config(config: configparser.ConfigParser, instance_name: str) -> Dict[str, Any]:
    """
    Returns the [PLUGIN_<instance_name>] section as a plain dictionary.

    Raises:
        ValueError: If the section does not exist.
    """
    section = f"PLUGIN_{instance_name}"
    if not config.has_section(section):
        raise ValueError(f"Configuration section [{section}] not found.")
    plugin_config: Dict[str, Any] = dict(config.items(section))
    plugin_config["_instance_name"] = instance_name
    return plugin_config


def load_plugin_config_from_file(config_file_path: str, instance_name: str) -> Dict[str, Any]:
    """
    Reads a config file and returns one plugin section.

    Raises:
        FileNotFoundError: If the config file does not exist.
        ValueError: If the plugin section does not exist.
    """
    if not os.path.exists(config_file_path):
        raise FileNotFoundError(f"Configuration file not found: {config_file_path}")
    return load_plugin_config(read_config_file(config_file_path), instance_name)


def validate_core_config(app_state: AppState) -> None:
    """
    Validates critical configuration settings after they have been loaded.

    Checks that at least one plugin instance is configured, that each has a
    `plugin_type`, and that POLL_INTERVAL is positive. Exits with status 1
    on any error.
    """
    errors = []
    if not app_state.configured_plugin_instance_names:
        errors.append("PLUGIN_INSTANCES must be configured in [GENERAL] (e.g., PLUGIN_INSTANCES = INV_SCHUECO).")
    else:
        for instance_name in app_state.configured_plugin_instance_names:
            plugin_type: Optional[str] = app_state.config.get(f"PLUGIN_{instance_name}", "plugin_type", fallback=None)
            if not plugin_type:
                errors.append(f"Missing 'plugin_type' for instance '{instance_name}' in config section [PLUGIN_{instance_name}].")

    if app_state.poll_interval <= 0:
        errors.append("POLL_INTERVAL must be > 0.")

    if errors:
        logger.critical("Core Configuration Errors: " + "; ".join(errors) + ". Exiting.")
        sys.exit(1)

    logger.info("Core configuration validated successfully.")
