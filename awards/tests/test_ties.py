"""
Unit Tests for Tie Resolution

Tests cover:
1. ALL, CUSTOM, RANDOM and SPECIFIC policies
2. Invalid selections
3. Award amount with margin bonus
"""

import random

import pytest

from awards.aggregator import TieSet
from awards.ties import TiePolicy, award_amount, resolve_tie
from scoring.errors import IncentiveError, InvalidSelectionError


TIED = TieSet(staff_ids=("A", "B"), value=6, runner_up=2)
SINGLE = TieSet(staff_ids=("A",), value=6, runner_up=2)


def as_pairs(distribution):
    return [(d.staff_id, d.stars) for d in distribution]


class TestResolveTie:
    """Tests for distributing an award among tied staff."""

    def test_all(self):
        """Test ALL gives every tied member the full amount."""
        assert as_pairs(resolve_tie(TIED, TiePolicy.ALL, 2)) == [("A", 2), ("B", 2)]

    def test_custom(self):
        distribution = resolve_tie(TIED, TiePolicy.CUSTOM, 10, custom_amount=4)
        assert as_pairs(distribution) == [("A", 4), ("B", 4)]

    def test_custom_needs_amount(self):
        with pytest.raises(IncentiveError):
            resolve_tie(TIED, TiePolicy.CUSTOM, 10)

    def test_random_is_reproducible(self):
        """Test RANDOM picks one member and the same seed picks the same one."""
        first = resolve_tie(TIED, TiePolicy.RANDOM, 10, rng=random.Random(42))
        second = resolve_tie(TIED, TiePolicy.RANDOM, 10, rng=random.Random(42))
        assert len(first) == 1
        assert first[0].staff_id in TIED
        assert first == second

    def test_specific(self):
        distribution = resolve_tie(TIED, TiePolicy.SPECIFIC, 10, selected_staff_id="B")
        assert as_pairs(distribution) == [("B", 10)]

    def test_specific_outside_tie_set(self):
        """Test choosing someone who is not tied is refused."""
        with pytest.raises(InvalidSelectionError):
            resolve_tie(TIED, TiePolicy.SPECIFIC, 10, selected_staff_id="C")

    @pytest.mark.parametrize("policy", list(TiePolicy))
    def test_single_winner_ignores_policy(self, policy):
        """Test a lone leader always gets the full amount."""
        assert as_pairs(resolve_tie(SINGLE, policy, 10)) == [("A", 10)]

    def test_empty_tie_set(self):
        assert resolve_tie(TieSet(staff_ids=(), value=0, runner_up=0), TiePolicy.ALL, 10) == []

    def test_negative_amount(self):
        with pytest.raises(IncentiveError):
            resolve_tie(TIED, TiePolicy.ALL, -1)


class TestAwardAmount:
    """Tests for the margin bonus on top of the base award."""

    @pytest.mark.parametrize("margin, expected", [(1, 10), (2, 10), (3, 10), (4, 11), (6, 12), (12, 15), (40, 15)])
    def test_margin_bonus(self, margin, expected):
        assert award_amount(10, margin, bonus_cap=5) == expected

    def test_no_cap_no_bonus(self):
        assert award_amount(10, 20, bonus_cap=0) == 10
