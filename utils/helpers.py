# utils/helpers.py
import re
import logging
from decimal import Decimal
from typing import Any

logger = logging.getLogger(__name__)

# --- Status Constants ---
UNKNOWN = "Unknown"
STATUS_NA = "N/A"

# --- Formatting Functions ---
def format_value(value: Any, precision: int = 2) -> str:
    """
    Formats a numeric value to a string with specified precision.

    Decimal values are printed as reported by the device, so "229.2" stays
    "229.2" instead of gaining float noise.

    Args:
        value: The value to format (Decimal, int, float, or other type)
        precision: Number of decimal places for floating point values

    Returns:
        Formatted string representation of the value, or "N/A" if None
    """
    if value is None:
        return STATUS_NA
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, float):
        return f"{value:.{precision}f}"
    return str(value)

def safe_file_token(text: str) -> str:
    """Reduces a device path or host:port to a string usable in a file name."""
    token = re.sub(r'[^A-Za-z0-9_.-]+', '_', text).strip('_')
    return token or UNKNOWN.lower()
