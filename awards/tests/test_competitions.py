"""
Unit Tests for Competitions

Tests cover:
1. Custom windows
2. Multi-service selectors
3. Standings and phases
4. The competition service
"""

import pytest
from datetime import datetime, timedelta, timezone

from awards.aggregator import count_services, stars_for_services
from awards.competitions import (
    Competition, CompetitionNotFoundError, CompetitionService, ServiceTarget, standings,
)
from awards.periods import PeriodWindow
from ledger.models import PeriodKind, SaleEvent
from ledger.service import LedgerService
from scoring.errors import IncentiveError
from scoring.scorer import RawSale


START = datetime(2026, 10, 12, tzinfo=timezone.utc)
END = datetime(2026, 10, 25, 23, 59, tzinfo=timezone.utc)
DURING = datetime(2026, 10, 14, 12, 0, tzinfo=timezone.utc)


def event(staff_id, category, service_key, stars=1, timestamp=DURING):
    return SaleEvent(
        id=f"{staff_id}-{category}-{service_key}-{timestamp.isoformat()}",
        staff_id=staff_id,
        category=category,
        service_key=service_key,
        stars_awarded=stars,
        timestamp=timestamp,
    )


def competition(targets=(), point_type="count"):
    return Competition(
        id="c1",
        title="Oktoberkamp",
        start=START,
        end=END,
        targets=list(targets),
        point_type=point_type,
        created_at=START,
    )


class TestCustomWindow:
    """Tests for windows over an arbitrary range."""

    def test_between(self):
        window = PeriodWindow.between(START, END, key="competition-c1")
        assert window.kind == PeriodKind.CUSTOM
        assert window.contains(DURING)
        assert not window.contains(END + timedelta(minutes=1))

    def test_naive_bounds_read_as_utc(self):
        window = PeriodWindow.between(datetime(2026, 10, 12), datetime(2026, 10, 13), key="k")
        assert window.start.tzinfo is not None
        assert window.contains(datetime(2026, 10, 12, 6, tzinfo=timezone.utc))

    def test_custom_window_has_no_neighbours(self):
        window = PeriodWindow.between(START, END, key="k")
        with pytest.raises(ValueError):
            window.shift(1)
        with pytest.raises(ValueError):
            PeriodWindow.current(PeriodKind.CUSTOM)


class TestServiceSelectors:
    """Tests for selectors over several target services."""

    def test_count_services(self):
        selector = count_services([("Forsikring", None), ("AVS/Support", "Returgreen")])
        assert selector(event("A", "Forsikring", "500-999kr")) == 1
        assert selector(event("A", "AVS/Support", "Returgreen")) == 1
        assert selector(event("A", "AVS/Support", "MOBOFUSM")) == 0

    def test_no_targets_counts_everything(self):
        assert count_services([])(event("A", "Kundeklubb", "40%")) == 1

    def test_stars_for_services(self):
        selector = stars_for_services([("AVS/Support", "SUPPORTAVTALE 12mnd")])
        assert selector(event("A", "AVS/Support", "SUPPORTAVTALE 12mnd", stars=3)) == 3
        assert selector(event("A", "Forsikring", "1500kr+", stars=4)) == 0


class TestStandings:
    """Tests for ranking a competition."""

    def test_count_standings(self):
        """Test only target sales inside the window are ranked."""
        records = [
            event("A", "Forsikring", "500-999kr"),
            event("A", "Forsikring", "1500kr+"),
            event("B", "Forsikring", "300-499kr"),
            event("B", "AVS/Support", "MOBOFUSM"),
            event("C", "Forsikring", "300-499kr", timestamp=START - timedelta(days=1)),
        ]

        result = standings(records, competition([ServiceTarget(category="Forsikring")]))

        assert result.counts == {"A": 2, "B": 1}
        assert result.winners == ["A"]

    def test_star_standings_tie(self):
        records = [
            event("A", "AVS/Support", "SUPPORTAVTALE 12mnd", stars=3),
            event("B", "Forsikring", "1000-1499kr", stars=3),
        ]

        result = standings(records, competition(point_type="stars"))

        assert result.winners == ["A", "B"]
        assert result.is_tie

    def test_phase(self):
        c = competition()
        assert c.phase(START - timedelta(seconds=1)) == "not_started"
        assert c.phase(DURING) == "ongoing"
        assert c.phase(END + timedelta(seconds=1)) == "ended"
        assert c.phase(datetime(2026, 10, 14)) == "ongoing"


class TestCompetitionService:
    """Tests for stored competitions."""

    def test_create_list_and_standings(self):
        ledger = LedgerService()
        service = CompetitionService(ledger)
        target = ServiceTarget(category="AVS/Support", service_key="Returgreen")
        created = service.create("Grønn uke", START, END, targets=[target, target])
        older = created.model_copy(update={"id": "old", "created_at": START - timedelta(days=30)})
        ledger.storage.set_competition(older)

        ledger.record_sale(RawSale("A", "AVS/Support", "Returgreen"), timestamp=DURING)
        ledger.record_sale(RawSale("A", "AVS/Support", "Returgreen"), timestamp=END + timedelta(days=1))
        ledger.record_manual("B", 10, "B-1", timestamp=DURING)

        assert created.targets == [target]
        assert [c.id for c in service.list_all()] == [created.id, "old"]

        body = service.standings(created.id, now=DURING)
        assert body["standings"] == [{"staff_id": "A", "value": 1}]
        assert body["phase"] == "ongoing"

    def test_create_rejects_bad_input(self):
        service = CompetitionService(LedgerService())
        with pytest.raises(IncentiveError):
            service.create("  ", START, END)
        with pytest.raises(IncentiveError):
            service.create("Baklengs", END, START)

    def test_unknown_competition(self):
        service = CompetitionService(LedgerService())
        with pytest.raises(CompetitionNotFoundError):
            service.standings("missing")

    def test_pause(self):
        service = CompetitionService(LedgerService())
        created = service.create("Pause", START, END)
        assert service.set_status(created.id, "paused").status == "paused"
        assert service.get(created.id).status == "paused"
