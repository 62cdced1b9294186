"""Clock helpers.

All persisted timestamps are naive UTC. Activity-calendar keys are UTC
calendar dates rendered as ``YYYY-MM-DD``.
"""

from datetime import date, datetime, timezone
from typing import Callable, Union

Clock = Callable[[], datetime]

DAY_KEY_FORMAT = "%Y-%m-%d"


def utcnow() -> datetime:
    """Return the current UTC time as a naive datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def day_key(moment: Union[datetime, date]) -> str:
    """Render the activity-calendar key for a moment."""
    return moment.strftime(DAY_KEY_FORMAT)


def hours_between(start: datetime, end: datetime) -> float:
    """Return the elapsed hours from ``start`` to ``end``."""
    return (end - start).total_seconds() / 3600
