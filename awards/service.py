import logging
import random
import secrets
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from ledger.models import AwardRecord, PeriodKind, PeriodTag, ReversalResult, SaleEvent
from ledger.service import LedgerService
from scoring.catalog import AWARD_CATEGORY
from scoring.errors import AlreadyAwardedError, IncentiveError, PartialBatchFailureError
from scoring.settings import settings

from .aggregator import MetricSelector, RankedResult, aggregate, count_records
from .periods import PeriodWindow
from .retroactive import ALL_CATEGORIES, BonusCampaign, BonusResult, apply_bonus, revert_bonus
from .ties import AwardDistribution, TiePolicy, award_amount, resolve_tie
from .weekly import WeeklyKpis, weekly_award_lines

logger = logging.getLogger(__name__)

WEEKLY_REVIEW_KIND = "weekly_review"


@dataclass
class AwardPreview:
    window: PeriodWindow
    metric: str
    result: RankedResult
    amount: int
    policy: TiePolicy
    distribution: list[AwardDistribution]
    seed: Optional[int] = None
    already_awarded: bool = False

    @property
    def kind(self) -> str:
        return self.window.kind.value

    def to_dict(self) -> dict:
        return {
            "window": self.window.to_dict(),
            "metric": self.metric,
            "result": self.result.to_dict(),
            "amount": self.amount,
            "policy": self.policy.value,
            "distribution": [d.to_dict() for d in self.distribution],
            "seed": self.seed,
            "already_awarded": self.already_awarded,
        }


@dataclass
class ResetResult:
    reversal: ReversalResult
    shifts_removed: int
    award_records_removed: list[str] = field(default_factory=list)


class PeriodAwardService:
    """Best-performer awards per week or month, previewed before they are committed."""

    def __init__(self, ledger: LedgerService, margin_threshold: Optional[int] = None,
                 base_amount: Optional[int] = None, margin_bonus_cap: Optional[int] = None):
        self.ledger = ledger
        self.storage = ledger.storage
        self.margin_threshold = settings.MARGIN_THRESHOLD if margin_threshold is None else margin_threshold
        self.base_amount = settings.MONTHLY_AWARD if base_amount is None else base_amount
        self.margin_bonus_cap = settings.MARGIN_BONUS_CAP if margin_bonus_cap is None else margin_bonus_cap
        # Held across the already-awarded check and the write.
        self._commit_lock = threading.Lock()

    def preview(self, window: PeriodWindow, policy: TiePolicy = TiePolicy.ALL, *,
                records: Optional[Iterable[Any]] = None,
                metric_selector: MetricSelector = count_records,
                metric: str = "shifts",
                base_amount: Optional[int] = None,
                custom_amount: Optional[int] = None,
                selected_staff_id: Optional[str] = None,
                seed: Optional[int] = None) -> AwardPreview:
        if records is None:
            records = self.storage.query_shifts(window=window)
        result = aggregate(records, metric_selector, window, self.margin_threshold)

        base = self.base_amount if base_amount is None else base_amount
        amount = award_amount(base, result.margin, self.margin_bonus_cap)

        policy = TiePolicy(policy)
        distribution = []
        if result.tie_set:
            rng = None
            if policy == TiePolicy.RANDOM and result.is_tie:
                seed = secrets.randbits(32) if seed is None else seed
                rng = random.Random(seed)
            distribution = resolve_tie(
                result.tie_set, policy, amount,
                custom_amount=custom_amount,
                selected_staff_id=selected_staff_id,
                rng=rng,
            )
        if policy != TiePolicy.RANDOM or not result.is_tie:
            seed = None

        preview = AwardPreview(
            window=window,
            metric=metric,
            result=result,
            amount=amount,
            policy=policy,
            distribution=distribution,
            seed=seed,
            already_awarded=self.storage.has_award_record(window.key, window.kind.value),
        )
        logger.debug("Award preview %s: %s", window.key, preview.to_dict())
        return preview

    def commit(self, preview: AwardPreview, override: bool = False,
               staff_names: Optional[dict[str, str]] = None) -> AwardRecord:
        """Store the award events and the period's award record as one unit."""
        window = preview.window
        if not preview.distribution:
            raise IncentiveError(f"No winner to award for {window.key}")

        staff_names = staff_names or {}
        tag = PeriodTag(kind=window.kind, period_key=window.key)
        value = preview.result.max_value
        events = [
            self.ledger.award_event(
                staff_id=entry.staff_id,
                stars=entry.stars,
                category=AWARD_CATEGORY,
                service_key=f"Period winner - {preview.metric} ({value})",
                period_tag=tag,
                reference=f"{window.kind.value.upper()}-{window.key}-{preview.metric.upper()}-{value}",
                staff_name=staff_names.get(entry.staff_id),
            )
            for entry in preview.distribution
            if entry.stars > 0
        ]
        awarded = [e.staff_id for e in events]

        record = AwardRecord(
            period_key=window.key,
            kind=preview.kind,
            created_at=datetime.now(timezone.utc),
            staff_ids_awarded=awarded,
            stars_awarded=max((d.stars for d in preview.distribution), default=0),
            tie_policy=preview.policy.value if preview.result.is_tie else None,
            random_seed=preview.seed,
            override=override,
            details={
                "metric": preview.metric,
                "counts": preview.result.counts,
                "max_value": preview.result.max_value,
                "second_max": preview.result.second_max,
                "margin_threshold": preview.result.margin_threshold,
            },
        )
        with self._commit_lock:
            self._check_not_awarded(window.key, preview.kind, override)
            self.ledger.post_events(events, award_record=record)
        logger.info("Awarded %s period %s to %s", preview.kind, window.key, awarded)
        return record

    def _check_not_awarded(self, period_key: str, kind: str, override: bool) -> None:
        if self.storage.has_award_record(period_key, kind):
            if not override:
                raise AlreadyAwardedError(period_key, kind)
            logger.warning("Re-awarding %s period %s by operator override", kind, period_key)

    def commit_weekly_review(self, window: PeriodWindow, kpis_by_staff: dict[str, WeeklyKpis],
                             override: bool = False,
                             staff_names: Optional[dict[str, str]] = None) -> AwardRecord:
        if window.kind != PeriodKind.WEEKLY:
            raise IncentiveError("Weekly review needs a weekly window")

        staff_names = staff_names or {}
        tag = PeriodTag(kind=PeriodKind.WEEKLY, period_key=window.key)
        events = []
        totals: dict[str, int] = {}
        for staff_id, kpis in kpis_by_staff.items():
            for line in weekly_award_lines(kpis):
                events.append(self.ledger.award_event(
                    staff_id=staff_id,
                    stars=line.stars,
                    category=line.category,
                    service_key=line.service_key,
                    period_tag=tag,
                    reference=f"WEEKLY-{window.key}-{line.tag}",
                    staff_name=staff_names.get(staff_id),
                ))
                totals[staff_id] = totals.get(staff_id, 0) + line.stars

        record = AwardRecord(
            period_key=window.key,
            kind=WEEKLY_REVIEW_KIND,
            created_at=datetime.now(timezone.utc),
            staff_ids_awarded=sorted(totals),
            stars_awarded=sum(totals.values()),
            override=override,
            details={"stars_by_staff": totals},
        )
        with self._commit_lock:
            self._check_not_awarded(window.key, WEEKLY_REVIEW_KIND, override)
            self.ledger.post_events(events, award_record=record)
        logger.info("Weekly review %s awarded %d stars to %d staff", window.key, record.stars_awarded, len(totals))
        return record

    def reset(self, window: PeriodWindow, include_shifts: bool = True) -> ResetResult:
        """Take back every award tagged with the period and clear its award records."""
        with self._commit_lock:
            tagged = [
                e for e in self.storage.query_events()
                if e.period_tag is not None
                and e.period_tag.kind == window.kind
                and e.period_tag.period_key == window.key
            ]
            reversal = self.ledger.reverse(tagged)

            kinds = [window.kind.value] + ([WEEKLY_REVIEW_KIND] if window.kind == PeriodKind.WEEKLY else [])
            removed = [kind for kind in kinds if self.storage.delete_award_record(window.key, kind)]

        shifts_removed = 0
        if include_shifts:
            shifts_removed = self.ledger.remove_shifts(self.storage.query_shifts(window=window))
        logger.info(
            "Reset %s: %d award events reversed, %d shifts removed",
            window.key, len(reversal.removed_event_ids), shifts_removed,
        )
        return ResetResult(reversal=reversal, shifts_removed=shifts_removed, award_records_removed=removed)


@dataclass
class BonusCommit:
    result: BonusResult
    chunks: int
    committed_event_ids: list[str] = field(default_factory=list)


class RetroactiveBonusService:
    def __init__(self, ledger: LedgerService, batch_size: Optional[int] = None):
        self.ledger = ledger
        self.storage = ledger.storage
        self.batch_size = batch_size or settings.BONUS_BATCH_SIZE

    def _snapshot(self, campaign: BonusCampaign) -> list[SaleEvent]:
        bonus_filter = campaign.filter
        category = None if bonus_filter.category == ALL_CATEGORIES else bonus_filter.category
        return self.storage.query_events(category=category, window=bonus_filter)

    def preview(self, campaign: BonusCampaign) -> BonusResult:
        return apply_bonus(self._snapshot(campaign), campaign.filter, campaign.multiplier, campaign.description)

    def commit(self, campaign: BonusCampaign) -> BonusCommit:
        snapshot = self._snapshot(campaign)
        result = apply_bonus(snapshot, campaign.filter, campaign.multiplier, campaign.description)
        return self._commit_chunks(snapshot, result)

    def revert(self, campaign: BonusCampaign) -> BonusCommit:
        snapshot = self._snapshot(campaign)
        result = revert_bonus(snapshot, campaign.filter)
        return self._commit_chunks(snapshot, result)

    def _commit_chunks(self, snapshot: list[SaleEvent], result: BonusResult) -> BonusCommit:
        before = {e.id: e for e in snapshot}
        rewritten = result.rewritten
        chunks = [rewritten[i:i + self.batch_size] for i in range(0, len(rewritten), self.batch_size)]

        committed_events: list[str] = []
        committed_staff: set[str] = set()
        for index, chunk in enumerate(chunks):
            try:
                self.ledger.apply_rewrites((before[e.id], e) for e in chunk)
            except Exception as exc:
                logger.error("Bonus chunk %d/%d failed: %s", index + 1, len(chunks), exc)
                raise PartialBatchFailureError(
                    completed_staff_ids=sorted(committed_staff),
                    completed_event_ids=committed_events,
                    failed_chunk=index,
                    total_chunks=len(chunks),
                ) from exc
            committed_events.extend(e.id for e in chunk)
            committed_staff.update(e.staff_id for e in chunk)
            logger.info("Committed bonus chunk %d/%d (%d events)", index + 1, len(chunks), len(chunk))

        return BonusCommit(result=result, chunks=len(chunks), committed_event_ids=committed_events)
