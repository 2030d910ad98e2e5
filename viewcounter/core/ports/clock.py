from datetime import datetime
from typing import Protocol


class TimePort(Protocol):
    def now_utc(self) -> datetime:
        """Return current UTC time."""
        ...
