"""
Command line runner for the Schueco SGI / KACO inverter plugin.

- Sets up logging.
- Loads configuration and validates it.
- Locks every serial port / TCP bridge in use so two runners never share a line.
- Either tests the connection, runs a single work cycle, or polls every
  POLL_INTERVAL seconds until SIGINT/SIGTERM.

Usage:
    python main.py --config config.ini --test-connection
    python main.py --config config.ini --once
    python main.py --config config.ini --instance INV_SCHUECO
"""

import argparse
import logging
from logging.handlers import RotatingFileHandler
import pathlib
import signal
import sys
from typing import Any, Callable, Dict, List, Optional

from core.app_state import AppState
from core.config_loader import load_configuration, validate_core_config
from core.plugin_manager import load_plugin_instance, poll_plugin_once
from core.constants import (
    APP_NAME, CONFIG_FILE_NAME, CORE_LOGGER_NAME, LOCK_FILE_PREFIX, LOG_FILE_BACKUP_COUNT,
    LOG_FILE_MAX_BYTES, LOG_FILE_NAME
)
from utils.helpers import format_value
from utils.lock import acquire_lock, channel_lock_path, cleanup_lock_file

# Application version
__version__ = "1.0.1"


def setup_logging(app_state: AppState, log_dir: pathlib.Path) -> None:
    """
    Sets up logging to console and a rotating file based on the configuration.

    Args:
        app_state: The application state object containing the loaded config.
        log_dir: Directory for the rotating log file.
    """
    log_levels = {
        "DEBUG": logging.DEBUG, "INFO": logging.INFO,
        "WARNING": logging.WARNING, "ERROR": logging.ERROR, "CRITICAL": logging.CRITICAL,
    }
    effective_log_level = log_levels.get(app_state.log_level, logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(effective_log_level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    formatter = logging.Formatter('%(asctime)s %(levelname)-8s [%(threadName)s] %(name)s: %(message)s')

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if app_state.log_to_file:
        log_file_path = log_dir / LOG_FILE_NAME
        file_handler = RotatingFileHandler(
            log_file_path, maxBytes=LOG_FILE_MAX_BYTES, backupCount=LOG_FILE_BACKUP_COUNT, encoding='utf-8'
        )
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)
        logging.info(f"Logging to file: {log_file_path}")

    logging.info(f"Logging level set to {app_state.log_level}.")


def graceful_exit(app_state: AppState) -> Callable[[int, Any], None]:
    """
    Creates a signal handler that stops the polling loop after the current cycle.
    """
    def handler(signum, frame):
        if not app_state.running:
            return
        logger = logging.getLogger(CORE_LOGGER_NAME)
        logger.warning(f"Shutdown signal ({signal.Signals(signum).name}) received. Stopping after current cycle...")
        app_state.running = False
        app_state.main_threads_stop_event.set()
    return handler


def print_data(instance_name: str, data: Optional[Dict[str, Any]]) -> None:
    print(f"\n--- {instance_name} ---")
    if not data:
        print("  (No data returned)")
        return
    for key in sorted(k for k in data if k != "raw_values"):
        print(f"  {key}: {format_value(data[key])}")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description=f"{APP_NAME}: read Schueco SGI inverters via the KACO serial protocol",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument('--config', default=CONFIG_FILE_NAME,
                        help='Path to the configuration file (default: %(default)s)')
    parser.add_argument('--instance', action='append',
                        help='Plugin instance to run (repeatable); defaults to PLUGIN_INSTANCES')
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument('--test-connection', action='store_true',
                      help='Query the inverter model and exit')
    mode.add_argument('--once', action='store_true',
                      help='Run a single work cycle and exit')
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    config_path = pathlib.Path(args.config).resolve()

    app_state = AppState(version=__version__)
    load_configuration(str(config_path), app_state)
    if args.instance:
        app_state.configured_plugin_instance_names = args.instance

    setup_logging(app_state, config_path.parent)
    logger = logging.getLogger(CORE_LOGGER_NAME)
    logger.info(f"--- Starting {APP_NAME} v{__version__} ---")

    # Exits if config is invalid
    validate_core_config(app_state)

    for name in app_state.configured_plugin_instance_names:
        plugin_type = app_state.config.get(f"PLUGIN_{name}", "plugin_type")
        instance = load_plugin_instance(plugin_type, name, app_state)
        if instance:
            app_state.active_plugin_instances[name] = instance

    if not app_state.active_plugin_instances:
        logger.critical("No plugins were loaded successfully. Exiting.")
        return 1

    for name, plugin in app_state.active_plugin_instances.items():
        target = getattr(plugin, "channel_target", name)
        if not acquire_lock(channel_lock_path(LOCK_FILE_PREFIX, target)):
            logger.critical(f"Channel '{target}' of instance '{name}' is locked by another runner. Exiting.")
            cleanup_lock_file()
            return 1

    try:
        if args.test_connection:
            all_ok = True
            for name, plugin in app_state.active_plugin_instances.items():
                ok, message = plugin.test_connection()
                print(f"{name}: {message}")
                all_ok = all_ok and ok
            return 0 if all_ok else 1

        signal.signal(signal.SIGINT, graceful_exit(app_state))
        signal.signal(signal.SIGTERM, graceful_exit(app_state))

        while app_state.running:
            any_success = False
            for name in app_state.active_plugin_instances:
                data = poll_plugin_once(name, app_state)
                any_success = any_success or data is not None
                print_data(name, data)
            if args.once:
                return 0 if any_success else 1
            app_state.main_threads_stop_event.wait(app_state.poll_interval)
        return 0
    finally:
        for name, plugin in app_state.active_plugin_instances.items():
            plugin.disconnect()
        cleanup_lock_file()
        logger.info(f"--- {APP_NAME} v{__version__} Finished ---")


if __name__ == "__main__":
    sys.exit(main())
