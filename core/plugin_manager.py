# core/plugin_manager.py
import inspect
import logging
import time
from typing import Any, Dict, Optional

from plugins.plugin_interface import DevicePlugin, StandardDataKeys
from core.app_state import AppState
from core.config_loader import load_plugin_config

logger = logging.getLogger(__name__)


def load_plugin_instance(plugin_type_full: str, instance_name: str, app_state: AppState) -> Optional[DevicePlugin]:
    """
    Loads a single plugin instance based on its type string and config.

    The type string has the form 'category.module_name' (e.g.
    "inverter.schueco_kaco_plugin"). The module is imported from
    `plugins.<category>.<module_name>` and its first concrete DevicePlugin
    subclass is instantiated with the [PLUGIN_<instance_name>] section.

    Returns:
        The plugin instance, or None if it could not be loaded.
    """
    try:
        if '.' not in plugin_type_full:
            logger.error(f"Invalid plugin_type format '{plugin_type_full}' for instance '{instance_name}'. Expected 'category.module_name'.")
            return None

        category, module_name = plugin_type_full.split('.', 1)
        mod_path = f"plugins.{category}.{module_name}"

        plug_mod = __import__(mod_path, fromlist=[module_name])

        found_class = None
        for item_name in dir(plug_mod):
            item_obj = getattr(plug_mod, item_name)
            if (isinstance(item_obj, type) and
                    issubclass(item_obj, DevicePlugin) and
                    item_obj is not DevicePlugin and
                    not inspect.isabstract(item_obj)):
                found_class = item_obj
                logger.debug(f"Found concrete plugin class '{found_class.__name__}' in module {mod_path}.")
                break

        if not found_class:
            logger.error(f"No valid, non-abstract DevicePlugin subclass found in module {mod_path}.")
            return None

        plugin_config = load_plugin_config(app_state.config, instance_name)
        plugin_config["_plugin_category_from_type_string"] = category

        logger.info(f"Instantiating plugin '{instance_name}' (Class: {found_class.__name__})")
        return found_class(instance_name=instance_name, plugin_specific_config=plugin_config,
                           main_logger=logging.getLogger(f"plugins.{instance_name}"), app_state=app_state)

    except ImportError as e:
        logger.error(f"Cannot import plugin module for type '{plugin_type_full}': {e}", exc_info=True)
    except Exception as e:
        logger.error(f"Unexpected error loading plugin instance '{instance_name}': {e}", exc_info=True)
    return None


def poll_plugin_once(instance_id: str, app_state: AppState) -> Optional[Dict[str, Any]]:
    """
    Runs one work cycle of a plugin and records the outcome in AppState.

    On success the data is stored in `per_plugin_data_cache` and the
    last-successful-poll timestamp is taken from the plugin's own data
    timestamp. On failure only the failure counter and last error change;
    previously published data stays.
    """
    plugin_inst = app_state.active_plugin_instances.get(instance_id)
    if plugin_inst is None:
        logger.error(f"Plugin instance '{instance_id}' is not active.")
        return None

    data = plugin_inst.read_dynamic_data()
    with app_state.data_lock:
        if data is None:
            failures = app_state.plugin_consecutive_failures.get(instance_id, 0) + 1
            app_state.plugin_consecutive_failures[instance_id] = failures
            app_state.last_error_per_plugin[instance_id] = getattr(plugin_inst, "last_error_message", None)
            logger.warning(f"Poll of '{instance_id}' failed ({failures} consecutive). Last error: {app_state.last_error_per_plugin[instance_id]}")
            return None

        data[StandardDataKeys.SERVER_TIMESTAMP_MS_UTC] = int(time.time() * 1000)
        app_state.per_plugin_data_cache[instance_id] = data
        # Cached replies carry the time of the last live read, so this only advances on fresh data
        plugin_ts_ms = data.get(StandardDataKeys.PLUGIN_DATA_TIMESTAMP_MS_UTC)
        if plugin_ts_ms is not None:
            app_state.last_successful_poll_timestamp_per_plugin[instance_id] = plugin_ts_ms / 1000.0
        app_state.plugin_consecutive_failures[instance_id] = 0
        app_state.last_error_per_plugin[instance_id] = None
    return data
