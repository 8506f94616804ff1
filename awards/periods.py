from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Optional, Union

from ledger.models import PeriodKind, as_utc


@dataclass(frozen=True)
class PeriodWindow:
    """Inclusive time range plus the key award records are stored under."""

    start: datetime
    end: datetime
    key: str
    kind: PeriodKind

    def __post_init__(self):
        object.__setattr__(self, "start", as_utc(self.start))
        object.__setattr__(self, "end", as_utc(self.end))
        if self.end < self.start:
            raise ValueError(f"Window {self.key} ends before it starts")

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment <= self.end

    @classmethod
    def for_week(cls, day: Union[date, datetime], tz: tzinfo = timezone.utc) -> "PeriodWindow":
        if isinstance(day, datetime):
            day = day.date()
        monday = day - timedelta(days=day.weekday())
        sunday = monday + timedelta(days=6)
        iso_year, iso_week, _ = monday.isocalendar()
        return cls(
            start=datetime.combine(monday, time.min, tzinfo=tz),
            end=datetime.combine(sunday, time.max, tzinfo=tz),
            key=f"{iso_year}-W{iso_week:02d}",
            kind=PeriodKind.WEEKLY,
        )

    @classmethod
    def for_month(cls, year: int, month: int, tz: tzinfo = timezone.utc) -> "PeriodWindow":
        first = date(year, month, 1)
        next_first = date(year + 1, 1, 1) if month == 12 else date(year, month + 1, 1)
        return cls(
            start=datetime.combine(first, time.min, tzinfo=tz),
            end=datetime.combine(next_first - timedelta(days=1), time.max, tzinfo=tz),
            key=f"{year}-{month:02d}",
            kind=PeriodKind.MONTHLY,
        )

    @classmethod
    def between(cls, start: datetime, end: datetime, key: str) -> "PeriodWindow":
        """Arbitrary range, used by competitions; it has no previous or next period."""
        return cls(start=start, end=end, key=key, kind=PeriodKind.CUSTOM)

    @classmethod
    def from_key(cls, key: str, tz: tzinfo = timezone.utc) -> "PeriodWindow":
        """Parse 'YYYY-Www' or 'YYYY-MM'."""
        year_part, _, rest = key.partition("-")
        if rest.upper().startswith("W"):
            monday = date.fromisocalendar(int(year_part), int(rest[1:]), 1)
            return cls.for_week(monday, tz)
        return cls.for_month(int(year_part), int(rest), tz)

    @classmethod
    def current(cls, kind: PeriodKind, now: Optional[datetime] = None) -> "PeriodWindow":
        if PeriodKind(kind) == PeriodKind.CUSTOM:
            raise ValueError("Custom windows have no current period")
        now = now or datetime.now(timezone.utc)
        tz = now.tzinfo or timezone.utc
        if PeriodKind(kind) == PeriodKind.WEEKLY:
            return cls.for_week(now, tz)
        return cls.for_month(now.year, now.month, tz)

    def shift(self, steps: int) -> "PeriodWindow":
        if self.kind == PeriodKind.CUSTOM:
            raise ValueError(f"Custom window {self.key} cannot be shifted")
        tz = self.start.tzinfo or timezone.utc
        if self.kind == PeriodKind.WEEKLY:
            return PeriodWindow.for_week(self.start.date() + timedelta(weeks=steps), tz)
        month_index = self.start.year * 12 + (self.start.month - 1) + steps
        return PeriodWindow.for_month(month_index // 12, month_index % 12 + 1, tz)

    def to_dict(self) -> dict:
        return {
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "key": self.key,
            "kind": self.kind.value,
        }
