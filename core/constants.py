"""
Centralized constants for the Schueco inverter reader.
"""

# Application Details
APP_NAME = "Schueco KACO Reader"
LOCK_FILE_PREFIX = "schueco_kaco"
LOG_FILE_NAME = "schueco_kaco.log"
CONFIG_FILE_NAME = "config.ini"

# Logger Names
CORE_LOGGER_NAME = "SchuecoReaderCore"

# Default Intervals (seconds)
DEFAULT_POLL_INTERVAL = 60

# Log file rotation
LOG_FILE_MAX_BYTES = 5 * 1024 * 1024
LOG_FILE_BACKUP_COUNT = 3
