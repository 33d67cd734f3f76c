from datetime import date, datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo


class Clock:
    """
    Source of "now" and "today" for services.

    `now()` is always UTC. `today()` is the calendar date in the business
    timezone, which is what subscription start/end dates are expressed in.
    Tests pass a subclass returning fixed values.
    """

    def __init__(self, tz_name: Optional[str] = None):
        self.tz = ZoneInfo(tz_name) if tz_name else timezone.utc

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def today(self) -> date:
        return self.now().astimezone(self.tz).date()
