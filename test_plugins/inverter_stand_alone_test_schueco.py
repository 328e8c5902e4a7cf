# inverter_stand_alone_test_schueco.py
"""
A standalone test script for the plugins/inverter/schueco_kaco_plugin.
This script loads configuration from config.ini and talks to a real Schueco SGI
inverter without running the full polling loop.

Instructions:
1. Configure your inverter settings in config.ini under [PLUGIN_INV_SCHUECO]
2. Run the script from your terminal: python inverter_stand_alone_test_schueco.py

Optional: You can override the config instance name by setting the environment variable:
   set INVERTER_INSTANCE_NAME=INV_ROOF
   python inverter_stand_alone_test_schueco.py
"""
import logging
import time
import sys
import os
from pprint import pformat

# --- Setup Project Path ---
current_script_dir = os.path.dirname(os.path.abspath(__file__))
project_root_dir = os.path.dirname(current_script_dir)
if project_root_dir not in sys.path:
    sys.path.insert(0, project_root_dir)

from core.config_loader import load_plugin_config_from_file
from plugins.inverter.schueco_kaco_plugin import SchuecoKacoPlugin


def pretty_print_data(data_dict, title="Data"):
    """Helper function to print dictionaries in a readable format."""
    print(f"\n--- {title} ---")
    if not data_dict:
        print("  (No data returned)")
        return
    print(pformat(data_dict, indent=2, width=120))


if __name__ == "__main__":
    logging.basicConfig(level=logging.DEBUG, format='%(asctime)s %(levelname)-8s [%(threadName)s] %(name)s: %(message)s')
    logger = logging.getLogger("SchuecoStandaloneTest")

    config_file_path = os.path.join(project_root_dir, "config.ini")
    inverter_instance_name = os.environ.get("INVERTER_INSTANCE_NAME", "INV_SCHUECO")

    try:
        schueco_config = load_plugin_config_from_file(config_file_path, inverter_instance_name)
        logger.info(f"Loaded configuration for instance '{inverter_instance_name}' from {config_file_path}")
    except (FileNotFoundError, ValueError) as e:
        logger.error(f"Configuration error: {e}")
        logger.error(f"Please ensure config.ini exists and contains a [PLUGIN_{inverter_instance_name}] section.")
        sys.exit(1)

    try:
        plugin = SchuecoKacoPlugin(
            instance_name=inverter_instance_name,
            plugin_specific_config=schueco_config,
            main_logger=logger
        )
    except Exception as e:
        logger.error(f"Error during SchuecoKacoPlugin instantiation: {e}", exc_info=True)
        sys.exit(1)

    ok, message = plugin.test_connection()
    logger.info(f"Connection test: {message}")
    if not ok:
        sys.exit(1)

    if plugin.connect():
        try:
            static_info = plugin.read_static_data()
            if static_info:
                pretty_print_data(static_info, "Static Inverter Information")
            else:
                logger.error(f"Failed to read static data. Last error: {plugin.last_error_message}")

            for i in range(5):
                dynamic_data = plugin.read_dynamic_data()
                if dynamic_data:
                    pretty_print_data(dynamic_data, f"Dynamic Data (Cycle {i+1})")
                else:
                    logger.error(f"Failed to read dynamic data. Last error: {plugin.last_error_message}")
                time.sleep(5)
        except KeyboardInterrupt:
            logger.info("Test interrupted by user.")
        finally:
            plugin.disconnect()
    else:
        logger.error(f"Failed to connect. Last error: {plugin.last_error_message}")
