"""Wall-clock source for the scheduling core."""
from datetime import datetime
from typing import Callable
from zoneinfo import ZoneInfo

from common.config import get_settings

Clock = Callable[[], datetime]


def local_now() -> datetime:
    """Current time in the scheduling timezone as a naive datetime.

    Booking dates and times are stored as naive wall-clock values in that
    timezone, so comparisons against them must use the same frame.
    """
    return datetime.now(ZoneInfo(get_settings().scheduling_timezone)).replace(tzinfo=None)
