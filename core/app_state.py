# core/app_state.py
import threading
from typing import Dict, Any, Optional, List

class AppState:
    """
    Shared runtime state of the plugin runner.

    Holds the loaded configuration, the active plugin instances and the
    per-plugin results of the most recent work cycle. The "last successful
    poll" timestamps are the only staleness signal for cached inverter
    values: a plugin that keeps serving cached data stops advancing its
    timestamp once live reads fail.
    """
    def __init__(self, version: str):
        # Version and Lifecycle
        self.version = version
        self.running = True
        self.main_threads_stop_event = threading.Event()

        # Configuration (will be populated by config_loader)
        self.config = None
        self.poll_interval = 60
        self.log_level = "INFO"
        self.log_to_file = True
        self.configured_plugin_instance_names: List[str] = []

        # Plugin & Polling State
        self.active_plugin_instances: Dict[str, 'DevicePlugin'] = {}
        self.per_plugin_data_cache: Dict[str, Dict[str, Any]] = {}
        self.plugin_consecutive_failures: Dict[str, int] = {}
        self.last_successful_poll_timestamp_per_plugin: Dict[str, float] = {}
        self.last_error_per_plugin: Dict[str, Optional[str]] = {}

        # Locks
        self.data_lock = threading.RLock()
