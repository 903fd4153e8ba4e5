"""
Datetime utility functions.
"""

from datetime import datetime

import pytz


def utcnow() -> datetime:
    """
    Get current UTC datetime using pytz.UTC.

    Returns:
        Current UTC datetime with pytz timezone information
    """
    return datetime.now(pytz.UTC)


def epoch_millis(moment: datetime = None) -> int:
    """
    Milliseconds since the Unix epoch (defaults to now).

    Used as a sortable prefix for storage object names.
    """
    moment = moment or utcnow()
    return int(moment.timestamp() * 1000)
