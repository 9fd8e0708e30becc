"""
Utility functions
"""

from .helpers import *
from .logger import setup_logging

__all__ = [
    'now_ms',
    'parse_duration',
    'format_duration',
    'format_minutes',
    'create_progress_bar',
    'create_embed',
    'send_dm',
    'can_moderate',
    'capitalize',
    'truncate_string',
    'setup_logging',
]
