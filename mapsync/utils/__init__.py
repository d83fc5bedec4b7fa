"""
mapsync utils - logging, ID generation and timing helpers.
"""

from mapsync.utils.logging import setup_logging, get_logger
from mapsync.utils.ids import generate_bookmark_id, generate_widget_id
from mapsync.utils.timing import Debouncer, Throttle

__all__ = [
    "setup_logging",
    "get_logger",
    "generate_bookmark_id",
    "generate_widget_id",
    "Debouncer",
    "Throttle",
]
