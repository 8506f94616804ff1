"""
Unit Tests for Retroactive Bonuses

Tests cover:
1. Multiplying stars of matching events
2. Running the same bonus twice changes nothing
3. Category "All" and date filtering
4. Reverting a bonus
"""

import pytest
from datetime import datetime, timedelta, timezone

from awards.retroactive import BonusFilter, apply_bonus, revert_bonus, round_half_up
from ledger.models import SaleEvent
from scoring.errors import IncentiveError


START = datetime(2026, 10, 1, tzinfo=timezone.utc)
END = datetime(2026, 10, 7, 23, 59, tzinfo=timezone.utc)
INSURANCE = BonusFilter(category="Forsikring", start=START, end=END)
EVERYTHING = BonusFilter(category="All", start=START, end=END)


def make_event(event_id, staff_id="A", category="Forsikring", stars=1, days=1, **extra):
    return SaleEvent(
        id=event_id,
        staff_id=staff_id,
        category=category,
        service_key="300-499kr",
        stars_awarded=stars,
        timestamp=START + timedelta(days=days),
        **extra,
    )


class TestApplyBonus:
    """Tests for applying a bonus multiplier."""

    def test_doubles_matching_events(self):
        events = [make_event("e1", stars=1), make_event("e2", staff_id="B", stars=3)]

        result = apply_bonus(events, INSURANCE, 2, "Dobbel uke")

        assert result.staff_deltas == {"A": 1, "B": 3}
        assert [e.stars_awarded for e in result.rewritten] == [2, 6]
        assert result.rewritten[0].bonus.original_stars == 1
        assert result.rewritten[0].bonus.description == "Dobbel uke"

    def test_input_not_mutated(self):
        event = make_event("e1", stars=2)
        apply_bonus([event], INSURANCE, 3)
        assert event.stars_awarded == 2
        assert event.bonus is None

    def test_second_run_is_a_no_op(self):
        """Test applying the bonus to its own output yields no deltas."""
        events = [make_event("e1", stars=1), make_event("e2", stars=4)]
        first = apply_bonus(events, INSURANCE, 2)

        second = apply_bonus(first.rewritten, INSURANCE, 2)

        assert second.rewritten == []
        assert second.staff_deltas == {}
        assert second.skipped == 2

    def test_deterministic(self):
        events = [make_event("e1", stars=3), make_event("e2", staff_id="B", stars=5)]
        assert apply_bonus(events, INSURANCE, 1.5) == apply_bonus(events, INSURANCE, 1.5)

    def test_filters_category_and_dates(self):
        events = [
            make_event("in"),
            make_event("other-category", category="Kundeklubb"),
            make_event("too-late", days=10),
        ]
        result = apply_bonus(events, INSURANCE, 2)
        assert [e.id for e in result.rewritten] == ["in"]

    def test_all_categories(self):
        """Test category 'All' takes every event in range, manual ones too."""
        events = [
            make_event("e1"),
            make_event("e2", category="Kundeklubb", stars=2),
            make_event("e3", category="Manuell registrering", stars=1, is_manual=True),
        ]
        result = apply_bonus(events, EVERYTHING, 2)
        assert result.staff_deltas == {"A": 4}

    def test_round_half_up(self):
        """Test 1.5 x 1 rounds to 2 and 2.5 x 1 rounds to 3."""
        assert round_half_up(1.5) == 2
        assert round_half_up(2.5) == 3
        result = apply_bonus([make_event("e1", stars=1)], INSURANCE, 1.5)
        assert result.rewritten[0].stars_awarded == 2

    def test_unchanged_stars_not_rewritten(self):
        result = apply_bonus([make_event("e1", stars=0)], INSURANCE, 3)
        assert result.rewritten == []

    @pytest.mark.parametrize("multiplier", [0, -2, float("nan"), float("inf"), True, "2"])
    def test_bad_multiplier(self, multiplier):
        with pytest.raises(IncentiveError):
            apply_bonus([make_event("e1")], INSURANCE, multiplier)


class TestRevertBonus:
    """Tests for undoing a bonus."""

    def test_revert_restores_original(self):
        applied = apply_bonus([make_event("e1", stars=2), make_event("e2", stars=1)], INSURANCE, 3).rewritten

        result = revert_bonus(applied, INSURANCE)

        assert [e.stars_awarded for e in result.rewritten] == [2, 1]
        assert all(e.bonus is None for e in result.rewritten)
        assert result.staff_deltas == {"A": -6}

    def test_revert_skips_events_without_bonus(self):
        assert revert_bonus([make_event("e1")], INSURANCE).rewritten == []
