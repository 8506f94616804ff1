import math
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional

from ledger.models import BonusInfo, SaleEvent, as_utc
from scoring.errors import IncentiveError

ALL_CATEGORIES = "All"


@dataclass(frozen=True)
class BonusFilter:
    category: str
    start: datetime
    end: datetime

    def __post_init__(self):
        object.__setattr__(self, "start", as_utc(self.start))
        object.__setattr__(self, "end", as_utc(self.end))

    def matches(self, event: SaleEvent) -> bool:
        if not self.start <= event.timestamp <= self.end:
            return False
        return self.category == ALL_CATEGORIES or event.category == self.category


@dataclass(frozen=True)
class BonusCampaign:
    filter: BonusFilter
    multiplier: float
    description: str = ""


@dataclass
class BonusResult:
    rewritten: list[SaleEvent] = field(default_factory=list)
    staff_deltas: dict[str, int] = field(default_factory=dict)
    skipped: int = 0

    @property
    def total_delta(self) -> int:
        return sum(self.staff_deltas.values())

    def to_dict(self) -> dict:
        return {
            "rewritten": [e.model_dump(mode="json") for e in self.rewritten],
            "staff_deltas": self.staff_deltas,
            "skipped": self.skipped,
            "total_delta": self.total_delta,
        }


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def _check_multiplier(multiplier: float) -> None:
    if isinstance(multiplier, bool) or not isinstance(multiplier, (int, float)):
        raise IncentiveError(f"Bonus multiplier must be a number, got {multiplier!r}")
    if not math.isfinite(multiplier) or multiplier <= 0:
        raise IncentiveError(f"Bonus multiplier must be a finite number > 0, got {multiplier!r}")


def apply_bonus(events: Iterable[SaleEvent], bonus_filter: BonusFilter, multiplier: float,
                description: Optional[str] = None) -> BonusResult:
    """Multiply stars of matching events, at most once per event.

    Events already carrying an applied bonus are skipped, so running this
    again over its own output changes nothing. Input events are not mutated.
    """
    _check_multiplier(multiplier)
    result = BonusResult()
    deltas: dict[str, int] = defaultdict(int)

    for event in events:
        if not bonus_filter.matches(event):
            continue
        if event.bonus_applied:
            result.skipped += 1
            continue

        new_stars = round_half_up(event.stars_awarded * multiplier)
        delta = new_stars - event.stars_awarded
        if delta == 0:
            continue

        result.rewritten.append(event.model_copy(update={
            "stars_awarded": new_stars,
            "bonus": BonusInfo(
                applied=True,
                multiplier=multiplier,
                original_stars=event.stars_awarded,
                description=description,
            ),
        }))
        deltas[event.staff_id] += delta

    result.staff_deltas = dict(deltas)
    return result


def revert_bonus(events: Iterable[SaleEvent], bonus_filter: BonusFilter) -> BonusResult:
    """Undo ``apply_bonus`` by restoring each event's original stars."""
    result = BonusResult()
    deltas: dict[str, int] = defaultdict(int)

    for event in events:
        if not bonus_filter.matches(event) or not event.bonus_applied:
            continue
        original = event.bonus.original_stars
        deltas[event.staff_id] += original - event.stars_awarded
        result.rewritten.append(event.model_copy(update={"stars_awarded": original, "bonus": None}))

    result.staff_deltas = {staff_id: delta for staff_id, delta in deltas.items() if delta}
    return result
