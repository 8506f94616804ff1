import threading
from collections import defaultdict
from typing import Any, Iterable, Optional
from uuid import uuid4

from .models import AwardRecord, EmployeeLedger, LedgerField, SaleEvent, ShiftRecord


class StorageError(Exception):
    pass


def _in_window(timestamp, window) -> bool:
    return window is None or window.start <= timestamp <= window.end


class InMemoryStorage:
    """Event and ledger store with the access pattern the engine relies on:
    append, filtered range reads, single-event patches and atomic increments.
    """

    def __init__(self):
        self.events: dict[str, SaleEvent] = {}
        self.shifts: dict[str, ShiftRecord] = {}
        self.ledgers: dict[str, dict[str, int]] = defaultdict(lambda: {f.value: 0 for f in LedgerField})
        self.award_records: dict[tuple[str, str], AwardRecord] = {}
        self.competitions: dict[str, Any] = {}
        self._lock = threading.RLock()

    # --- events ---

    def query_events(self, staff_id: Optional[str] = None, category: Optional[str] = None,
                     window=None, service_key: Optional[str] = None) -> list[SaleEvent]:
        with self._lock:
            events = [
                e for e in self.events.values()
                if (staff_id is None or e.staff_id == staff_id)
                and (category is None or e.category == category)
                and (service_key is None or e.service_key == service_key)
                and _in_window(e.timestamp, window)
            ]
        events.sort(key=lambda e: e.timestamp)
        return events

    def count_events(self, staff_id: str, category: str, service_key: str) -> int:
        return len(self.query_events(staff_id=staff_id, category=category, service_key=service_key))

    def get_event(self, event_id: str) -> Optional[SaleEvent]:
        return self.events.get(event_id)

    def append_event(self, event: SaleEvent) -> str:
        with self._lock:
            if not event.id:
                event = event.model_copy(update={"id": str(uuid4())})
            if event.id in self.events:
                raise StorageError(f"Event {event.id} already exists")
            self.events[event.id] = event
        return event.id

    def update_event(self, event_id: str, patch: dict[str, Any]) -> SaleEvent:
        with self._lock:
            event = self.events.get(event_id)
            if event is None:
                raise StorageError(f"Event {event_id} not found")
            updated = event.model_copy(update=patch)
            self.events[event_id] = updated
        return updated

    def delete_event(self, event_id: str) -> None:
        with self._lock:
            if self.events.pop(event_id, None) is None:
                raise StorageError(f"Event {event_id} not found")

    # --- ledger ---

    def atomic_increment(self, staff_id: str, field: LedgerField, delta: int) -> int:
        field = LedgerField(field)
        with self._lock:
            totals = self.ledgers[staff_id]
            totals[field.value] += delta
            return totals[field.value]

    def get_ledger(self, staff_id: str) -> EmployeeLedger:
        with self._lock:
            totals = dict(self.ledgers.get(staff_id) or {})
        return EmployeeLedger(staff_id=staff_id, **totals)

    def commit_batch(self, event_patches: Iterable[tuple[str, dict[str, Any]]] = (),
                     increments: Iterable[tuple[str, LedgerField, int]] = (),
                     expected_stars: Optional[dict[str, int]] = None, *,
                     new_events: Iterable[SaleEvent] = (),
                     deleted_event_ids: Iterable[str] = (),
                     award_record: Optional[AwardRecord] = None) -> None:
        """Apply event patches, appends, deletions, ledger increments and an
        award record as one unit, or nothing.
        """
        event_patches = list(event_patches)
        new_events = list(new_events)
        deleted_event_ids = list(deleted_event_ids)
        increments = [(staff_id, LedgerField(field), delta) for staff_id, field, delta in increments]
        with self._lock:
            touched = [event_id for event_id, _ in event_patches] + deleted_event_ids
            missing = [event_id for event_id in touched if event_id not in self.events]
            if missing:
                raise StorageError(f"Events not found: {missing}")
            duplicates = [e.id for e in new_events if e.id in self.events]
            if duplicates:
                raise StorageError(f"Events already exist: {duplicates}")
            stale = [
                event_id for event_id, stars in (expected_stars or {}).items()
                if event_id not in self.events or self.events[event_id].stars_awarded != stars
            ]
            if stale:
                raise StorageError(f"Events changed since snapshot: {stale}")

            for event_id, patch in event_patches:
                self.events[event_id] = self.events[event_id].model_copy(update=patch)
            for event_id in deleted_event_ids:
                del self.events[event_id]
            for event in new_events:
                self.events[event.id] = event
            for staff_id, field, delta in increments:
                self.ledgers[staff_id][field.value] += delta
            if award_record is not None:
                self.award_records[(award_record.period_key, award_record.kind)] = award_record

    # --- shifts ---

    def append_shift(self, shift: ShiftRecord) -> str:
        with self._lock:
            self.shifts[shift.id] = shift
        return shift.id

    def query_shifts(self, staff_id: Optional[str] = None, window=None) -> list[ShiftRecord]:
        with self._lock:
            shifts = [
                s for s in self.shifts.values()
                if (staff_id is None or s.staff_id == staff_id) and _in_window(s.timestamp, window)
            ]
        shifts.sort(key=lambda s: s.timestamp)
        return shifts

    def delete_shift(self, shift_id: str) -> None:
        with self._lock:
            if self.shifts.pop(shift_id, None) is None:
                raise StorageError(f"Shift {shift_id} not found")

    # --- award records ---

    def get_award_record(self, period_key: str, kind: str) -> Optional[AwardRecord]:
        return self.award_records.get((period_key, kind))

    def has_award_record(self, period_key: str, kind: str) -> bool:
        return (period_key, kind) in self.award_records

    def set_award_record(self, record: AwardRecord) -> None:
        with self._lock:
            self.award_records[(record.period_key, record.kind)] = record

    def delete_award_record(self, period_key: str, kind: str) -> bool:
        with self._lock:
            return self.award_records.pop((period_key, kind), None) is not None

    # --- competitions ---

    def set_competition(self, competition: Any) -> None:
        with self._lock:
            self.competitions[competition.id] = competition

    def get_competition(self, competition_id: str) -> Optional[Any]:
        return self.competitions.get(competition_id)

    def list_competitions(self) -> list[Any]:
        with self._lock:
            return list(self.competitions.values())

    def delete_competition(self, competition_id: str) -> bool:
        with self._lock:
            return self.competitions.pop(competition_id, None) is not None
