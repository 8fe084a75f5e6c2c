"""
Working calendar used to turn planned man-hours into calendar dates.

Conversion rule:
    - ``hours_per_day`` working hours make one working day
      (WORKING_HOURS_PER_DAY, default 8)
    - each whole working day moves the timestamp to the same clock time on
      the next working weekday (WORKING_WEEKDAYS, default Monday-Friday)
    - the remaining hours are added as clock hours
    - a start on a non-working day is first rolled forward to the next
      working day at the same clock time

So 16 man-hours from Monday 09:00 end on Wednesday 09:00, and from
Friday 09:00 on Tuesday 09:00.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta

from printflow.utils.helpers import config_value

DEFAULT_HOURS_PER_DAY = 8.0
DEFAULT_WORKING_WEEKDAYS = (0, 1, 2, 3, 4)


@dataclass(frozen=True)
class WorkingCalendar:
    hours_per_day: float = DEFAULT_HOURS_PER_DAY
    working_weekdays: tuple[int, ...] = DEFAULT_WORKING_WEEKDAYS

    def __post_init__(self):
        if not 0 < self.hours_per_day <= 24:
            raise ValueError(f"hours_per_day must be in (0, 24], got {self.hours_per_day}")
        if not self.working_weekdays or any(d not in range(7) for d in self.working_weekdays):
            raise ValueError(f"working_weekdays must be weekday numbers 0-6, got {self.working_weekdays}")

    @classmethod
    def from_config(cls) -> "WorkingCalendar":
        return cls(
            hours_per_day=float(config_value("WORKING_HOURS_PER_DAY", DEFAULT_HOURS_PER_DAY)),
            working_weekdays=tuple(config_value("WORKING_WEEKDAYS", DEFAULT_WORKING_WEEKDAYS)),
        )

    def is_working_day(self, moment: datetime) -> bool:
        return moment.weekday() in self.working_weekdays

    def roll_forward(self, moment: datetime) -> datetime:
        while not self.is_working_day(moment):
            moment += timedelta(days=1)
        return moment

    def next_working_day(self, moment: datetime) -> datetime:
        return self.roll_forward(moment + timedelta(days=1))

    def add_working_hours(self, start: datetime, hours: float) -> datetime:
        """Return the moment ``hours`` working hours after ``start``."""
        if hours < 0:
            raise ValueError("hours must not be negative")
        moment = self.roll_forward(start)
        whole_days, remainder = divmod(hours, self.hours_per_day)
        for _ in range(int(whole_days)):
            moment = self.next_working_day(moment)
        if remainder:
            moment += timedelta(hours=remainder)
        return moment

    def to_dict(self) -> dict:
        return {
            "hours_per_day": self.hours_per_day,
            "working_weekdays": list(self.working_weekdays),
        }
