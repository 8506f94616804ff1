import logging
import threading
from collections import defaultdict
from dataclasses import replace
from datetime import datetime, timezone
from typing import Iterable, Optional, Union
from uuid import uuid4

from scoring.brackets import parse_amount
from scoring.catalog import MANUAL_CATEGORY, ServiceCatalog
from scoring.errors import IncentiveError
from scoring.scorer import EventScorer, RawSale, ScoredEvent

from .models import (
    AwardRecord,
    EmployeeLedger,
    ImportReceipt,
    LedgerAudit,
    LedgerField,
    LedgerHistoryResponse,
    PeriodTag,
    ReversalResult,
    SaleEvent,
    SaleReceipt,
    ShiftRecord,
)
from .storage import InMemoryStorage

logger = logging.getLogger(__name__)

LOCK_STRIPES = 64


class LedgerServiceError(IncentiveError):
    pass


class EventNotFoundError(LedgerServiceError):
    pass


def _require_staff(staff_id: str) -> None:
    if not staff_id or not staff_id.strip():
        raise LedgerServiceError("staff_id is required")


class LedgerService:
    """Every star mutation goes through ``apply_delta`` or one store batch;
    totals are never read back and rewritten.
    """

    def __init__(self, storage: Optional[InMemoryStorage] = None, catalog: Optional[ServiceCatalog] = None):
        self.storage = storage or InMemoryStorage()
        self.catalog = catalog or ServiceCatalog.default()
        self.scorer = EventScorer(self.catalog)
        # Fixed set of striped locks; keys that share a stripe only contend.
        self._stripes = [threading.Lock() for _ in range(LOCK_STRIPES)]

    def _lock_for(self, *key) -> threading.Lock:
        return self._stripes[hash(key) % LOCK_STRIPES]

    # --- the single mutation entry point ---

    def apply_delta(self, staff_id: str, delta: int, field: LedgerField = LedgerField.STARS) -> int:
        if isinstance(delta, bool) or not isinstance(delta, int):
            raise LedgerServiceError(f"Delta must be an integer, got {delta!r}")
        _require_staff(staff_id)
        return self.storage.atomic_increment(staff_id, field, delta)

    # --- sales ---

    def preview_sale(self, sale: RawSale) -> ScoredEvent:
        try:
            rule = self.scorer.resolve(sale)
            existing = self.storage.count_events(sale.staff_id, rule.category, rule.service_key)
        except IncentiveError:
            existing = 0
        return self.scorer.score_sale(sale, existing)

    def record_sale(self, sale: RawSale, timestamp: Optional[datetime] = None) -> SaleReceipt:
        _require_staff(sale.staff_id)
        rule = self.scorer.resolve(sale)

        # existing_count is read-then-act, so concurrent sales of one rule are serialised.
        with self._lock_for(sale.staff_id, rule.category, rule.service_key):
            existing = self.storage.count_events(sale.staff_id, rule.category, rule.service_key)
            scored = self.scorer.score(sale, rule, existing)
            scored.raise_for_rejection()

            event = SaleEvent(
                id=str(uuid4()),
                staff_id=sale.staff_id,
                staff_name=sale.staff_name,
                category=scored.category,
                service_key=scored.service_key,
                stars_awarded=scored.stars,
                timestamp=timestamp or datetime.now(timezone.utc),
                reference=sale.reference,
                amount=parse_amount(sale.amount) if self.catalog.is_bracketed(scored.category) else None,
            )
            self._post(event)

        logger.info(
            "Recorded sale %s for %s: %s/%s +%d stars (prior %d)",
            event.id, sale.staff_id, event.category, event.service_key, event.stars_awarded, existing,
        )
        return SaleReceipt(
            event=event,
            scored=scored.to_dict(),
            ledger=self.storage.get_ledger(sale.staff_id),
            message="Sale recorded" if scored.stars else "Sale recorded without stars",
        )

    def record_sales(self, staff_id: str, sales: Iterable[RawSale],
                     timestamp: Optional[datetime] = None) -> ImportReceipt:
        """Import several receipts for one employee, in order.

        Every sale is resolved before the first is recorded, and each is then
        scored against the ones before it, so N-for-1 groups fill up across
        the batch.
        """
        _require_staff(staff_id)
        batch = [replace(sale, staff_id=staff_id) for sale in sales]
        if not batch:
            raise LedgerServiceError("Nothing to import")
        for sale in batch:
            self.scorer.resolve(sale)

        when = timestamp or datetime.now(timezone.utc)
        events = [self.record_sale(sale, timestamp=when).event for sale in batch]
        stars = sum(e.stars_awarded for e in events)
        logger.info("Imported %d sales for %s: +%d stars", len(events), staff_id, stars)
        return ImportReceipt(
            staff_id=staff_id,
            events=events,
            stars_added=stars,
            ledger=self.storage.get_ledger(staff_id),
        )

    def record_manual(self, staff_id: str, stars: int, reference: str, comment: Optional[str] = None,
                      staff_name: Optional[str] = None, timestamp: Optional[datetime] = None) -> SaleEvent:
        _require_staff(staff_id)
        if stars == 0:
            raise LedgerServiceError("Manual adjustment must be non-zero")
        if not reference or not reference.strip():
            raise LedgerServiceError("Manual adjustment needs a reference")

        event = SaleEvent(
            id=str(uuid4()),
            staff_id=staff_id,
            staff_name=staff_name,
            category=MANUAL_CATEGORY,
            service_key="Kommentar" if comment else "Bilagsnummer",
            stars_awarded=stars,
            timestamp=timestamp or datetime.now(timezone.utc),
            is_manual=True,
            reference=reference.strip(),
            comment=comment,
        )
        self._post(event)
        logger.info("Manual adjustment %+d stars for %s (%s)", stars, staff_id, event.reference)
        return event

    def award_event(self, staff_id: str, stars: int, category: str, service_key: str,
                    period_tag: PeriodTag, reference: str, staff_name: Optional[str] = None,
                    timestamp: Optional[datetime] = None) -> SaleEvent:
        """Build a period award event; nothing is stored until ``post_events``."""
        _require_staff(staff_id)
        return SaleEvent(
            id=str(uuid4()),
            staff_id=staff_id,
            staff_name=staff_name,
            category=category,
            service_key=service_key,
            stars_awarded=stars,
            timestamp=timestamp or datetime.now(timezone.utc),
            period_tag=period_tag,
            reference=reference,
        )

    def post_events(self, events: Iterable[SaleEvent], award_record: Optional[AwardRecord] = None) -> dict[str, int]:
        """Store events, their ledger deltas and an optional award record together."""
        events = list(events)
        deltas: dict[str, int] = defaultdict(int)
        for event in events:
            _require_staff(event.staff_id)
            deltas[event.staff_id] += event.stars_awarded

        increments = [(staff_id, LedgerField.STARS, delta) for staff_id, delta in deltas.items() if delta]
        self.storage.commit_batch(increments=increments, new_events=events, award_record=award_record)
        return dict(deltas)

    def _post(self, event: SaleEvent) -> None:
        self.storage.append_event(event)
        if event.stars_awarded:
            self.apply_delta(event.staff_id, event.stars_awarded)

    def correct_event(self, event_id: str, stars_awarded: int) -> SaleEvent:
        if stars_awarded < 0:
            raise LedgerServiceError("stars_awarded must be >= 0")
        event = self._require_event(event_id)
        difference = stars_awarded - event.stars_awarded
        patch = {"stars_awarded": stars_awarded}
        if event.bonus_applied:
            # The corrected value is final; reverting the bonus later keeps it.
            patch["bonus"] = event.bonus.model_copy(update={"original_stars": stars_awarded})

        self.storage.commit_batch(
            event_patches=[(event_id, patch)],
            increments=[(event.staff_id, LedgerField.STARS, difference)] if difference else [],
            expected_stars={event_id: event.stars_awarded},
        )
        logger.info("Corrected event %s: %d -> %d stars", event_id, event.stars_awarded, stars_awarded)
        return self._require_event(event_id)

    def reverse(self, events: Iterable[Union[SaleEvent, str]]) -> ReversalResult:
        """Remove events and take back exactly the stars they currently hold.

        Deletions and deltas are committed as one unit; if any event is gone
        or changed by the time of the commit, nothing is removed.
        """
        event_ids = list(dict.fromkeys(e.id if isinstance(e, SaleEvent) else e for e in events))
        stored = [self._require_event(event_id) for event_id in event_ids]

        deltas: dict[str, int] = defaultdict(int)
        for event in stored:
            deltas[event.staff_id] -= event.stars_awarded

        self.storage.commit_batch(
            increments=[(staff_id, LedgerField.STARS, delta) for staff_id, delta in deltas.items() if delta],
            expected_stars={event.id: event.stars_awarded for event in stored},
            deleted_event_ids=event_ids,
        )

        logger.info("Reversed %d events across %d staff", len(stored), len(deltas))
        return ReversalResult(staff_deltas=dict(deltas), removed_event_ids=event_ids)

    def apply_rewrites(self, rewrites: Iterable[tuple[SaleEvent, SaleEvent]]) -> dict[str, int]:
        """Commit (before, after) event pairs and their ledger deltas as one unit.

        The store refuses the whole unit if any event no longer holds its
        ``before`` stars, so a stale snapshot can never be applied twice.
        """
        patches, expected = [], {}
        deltas: dict[str, int] = defaultdict(int)
        for before, after in rewrites:
            if before.id != after.id or before.staff_id != after.staff_id:
                raise LedgerServiceError(f"Rewrite of {before.id} changes identity")
            patches.append((after.id, {"stars_awarded": after.stars_awarded, "bonus": after.bonus}))
            expected[before.id] = before.stars_awarded
            deltas[before.staff_id] += after.stars_awarded - before.stars_awarded

        increments = [(staff_id, LedgerField.STARS, delta) for staff_id, delta in deltas.items() if delta]
        self.storage.commit_batch(patches, increments, expected_stars=expected)
        return dict(deltas)

    def _require_event(self, event_id: str) -> SaleEvent:
        event = self.storage.get_event(event_id)
        if event is None:
            raise EventNotFoundError(f"Event {event_id} not found")
        return event

    # --- shifts ---

    def record_shifts(self, staff_id: str, count: int = 1, timestamp: Optional[datetime] = None) -> list[ShiftRecord]:
        _require_staff(staff_id)
        if count < 1:
            raise LedgerServiceError("count must be >= 1")
        when = timestamp or datetime.now(timezone.utc)
        shifts = [ShiftRecord(id=str(uuid4()), staff_id=staff_id, timestamp=when) for _ in range(count)]
        for shift in shifts:
            self.storage.append_shift(shift)
        self.apply_delta(staff_id, count, LedgerField.SHIFTS)
        return shifts

    def remove_shifts(self, shifts: Iterable[ShiftRecord]) -> int:
        removed = 0
        for shift in shifts:
            self.storage.delete_shift(shift.id)
            self.apply_delta(shift.staff_id, -1, LedgerField.SHIFTS)
            removed += 1
        return removed

    # --- reads ---

    def get_ledger(self, staff_id: str) -> EmployeeLedger:
        return self.storage.get_ledger(staff_id)

    def get_history(self, staff_id: str, limit: int = 50, offset: int = 0) -> LedgerHistoryResponse:
        events = self.storage.query_events(staff_id=staff_id)
        events.reverse()
        return LedgerHistoryResponse(
            staff_id=staff_id,
            events=events[offset:offset + limit],
            total_count=len(events),
            stars_total=self.get_ledger(staff_id).stars_total,
        )

    def audit(self, staff_id: str) -> LedgerAudit:
        events = self.storage.query_events(staff_id=staff_id)
        audit = LedgerAudit(
            staff_id=staff_id,
            stars_total=self.get_ledger(staff_id).stars_total,
            live_event_stars=sum(e.stars_awarded for e in events),
            live_event_count=len(events),
        )
        if not audit.consistent:
            logger.warning(
                "Ledger drift for %s: total %d, live events %d",
                staff_id, audit.stars_total, audit.live_event_stars,
            )
        return audit
