from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from .brackets import parse_amount


@dataclass(frozen=True)
class ThresholdTable:
    """Step function: the highest ``minimum`` reached decides the stars."""

    name: str
    steps: tuple[tuple[Decimal, int], ...]

    def __post_init__(self):
        minimums = [minimum for minimum, _ in self.steps]
        if minimums != sorted(minimums, reverse=True):
            raise ValueError(f"{self.name}: steps must be ordered from highest minimum down")

    def stars_for(self, value: Any) -> int:
        amount = parse_amount(value)
        if amount is None:
            return 0
        for minimum, stars in self.steps:
            if amount >= minimum:
                return stars
        return 0

    @classmethod
    def of(cls, name: str, *steps: tuple[int, int]) -> "ThresholdTable":
        return cls(name, tuple((Decimal(minimum), stars) for minimum, stars in steps))


SUPERMARGIN_PERCENT = ThresholdTable.of("supermargin", (100, 5), (80, 4), (60, 3), (40, 2), (20, 1))
CS_PER_HOUR = ThresholdTable.of("cs_per_hour", (200, 5), (150, 4), (100, 3), (50, 2), (20, 1))
CLUB_SIGNUPS = ThresholdTable.of("club_signups", (15, 5), (10, 4), (7, 3), (5, 2), (3, 1))
