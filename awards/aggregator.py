from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional

from scoring.settings import settings

from .periods import PeriodWindow

MetricSelector = Callable[[Any], int]


def count_records(record: Any) -> int:
    return 1


def count_category(category: str) -> MetricSelector:
    def selector(record: Any) -> int:
        return int(getattr(record, "category", None) == category)
    return selector


def count_service(category: str, service_key: str) -> MetricSelector:
    def selector(record: Any) -> int:
        return int(getattr(record, "category", None) == category and getattr(record, "service_key", None) == service_key)
    return selector


def sum_stars(record: Any) -> int:
    return getattr(record, "stars_awarded", 0)


def _matches_any(record: Any, targets: Iterable[tuple[str, Optional[str]]]) -> bool:
    category = getattr(record, "category", None)
    service_key = getattr(record, "service_key", None)
    return any(
        category == target_category and (target_service is None or service_key == target_service)
        for target_category, target_service in targets
    )


def count_services(targets: Iterable[tuple[str, Optional[str]]]) -> MetricSelector:
    """Count records of any (category, service) target; a None service takes the whole category.

    No targets counts every record.
    """
    targets = tuple(targets)

    def selector(record: Any) -> int:
        return int(not targets or _matches_any(record, targets))
    return selector


def stars_for_services(targets: Iterable[tuple[str, Optional[str]]]) -> MetricSelector:
    targets = tuple(targets)

    def selector(record: Any) -> int:
        return sum_stars(record) if not targets or _matches_any(record, targets) else 0
    return selector


@dataclass(frozen=True)
class TieSet:
    staff_ids: tuple[str, ...]
    value: int
    runner_up: int

    @property
    def size(self) -> int:
        return len(self.staff_ids)

    @property
    def is_tie(self) -> bool:
        return self.size > 1

    def __contains__(self, staff_id: str) -> bool:
        return staff_id in self.staff_ids

    def to_dict(self) -> dict:
        return {"staff_ids": list(self.staff_ids), "value": self.value, "runner_up": self.runner_up}


@dataclass(frozen=True)
class RankedResult:
    window: PeriodWindow
    counts: dict[str, int] = field(default_factory=dict)
    max_value: int = 0
    second_max: int = 0
    margin_threshold: int = 3
    tie_set: Optional[TieSet] = None

    @property
    def margin(self) -> int:
        return self.max_value - self.second_max

    @property
    def margin_ok(self) -> bool:
        return self.max_value > 0 and self.margin >= self.margin_threshold

    @property
    def winners(self) -> list[str]:
        return list(self.tie_set.staff_ids) if self.tie_set else []

    @property
    def is_tie(self) -> bool:
        return self.tie_set is not None and self.tie_set.is_tie

    def ranking(self) -> list[tuple[str, int]]:
        return sorted(self.counts.items(), key=lambda item: (-item[1], item[0]))

    def to_dict(self) -> dict:
        return {
            "window": self.window.to_dict(),
            "counts": dict(self.ranking()),
            "max_value": self.max_value,
            "second_max": self.second_max,
            "margin": self.margin,
            "margin_threshold": self.margin_threshold,
            "margin_ok": self.margin_ok,
            "winners": self.winners,
            "is_tie": self.is_tie,
            "tie_set": self.tie_set.to_dict() if self.tie_set else None,
        }


def aggregate(records: Iterable[Any], metric_selector: MetricSelector, window: PeriodWindow,
              margin_threshold: Optional[int] = None) -> RankedResult:
    """Rank staff by a metric inside ``window``.

    ``second_max`` is the second-highest distinct value, not the runner-up
    person, so ties at the top never count as the runner-up. A winner exists
    only when the lead over that value reaches ``margin_threshold``.
    """
    if margin_threshold is None:
        margin_threshold = settings.MARGIN_THRESHOLD

    counts: dict[str, int] = defaultdict(int)
    for record in records:
        if not window.contains(record.timestamp):
            continue
        value = int(metric_selector(record))
        if value:
            counts[record.staff_id] += value

    counts = {staff_id: value for staff_id, value in counts.items() if value > 0}
    distinct = sorted(set(counts.values()), reverse=True)
    max_value = distinct[0] if distinct else 0
    second_max = distinct[1] if len(distinct) > 1 else 0

    result = RankedResult(
        window=window,
        counts=counts,
        max_value=max_value,
        second_max=second_max,
        margin_threshold=margin_threshold,
    )
    if not result.margin_ok:
        return result

    leaders = tuple(sorted(staff_id for staff_id, value in counts.items() if value == max_value))
    return RankedResult(
        window=window,
        counts=counts,
        max_value=max_value,
        second_max=second_max,
        margin_threshold=margin_threshold,
        tie_set=TieSet(staff_ids=leaders, value=max_value, runner_up=second_max),
    )
