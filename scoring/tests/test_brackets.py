"""
Unit Tests for Amount Brackets

Tests cover:
1. Boundary amounts
2. Every integer amount lands in exactly one bracket
3. Non-numeric and non-positive amounts
4. Bracket table validation
"""

import pytest
from decimal import Decimal

from scoring.brackets import Bracket, BracketClassifier, DEFAULT_BRACKETS, parse_amount


class TestClassify:
    """Tests for classifying sale amounts."""

    @pytest.mark.parametrize("amount, label", [
        (1, "Mindre enn 100kr x3"),
        (99, "Mindre enn 100kr x3"),
        (99.99, "Mindre enn 100kr x3"),
        (100, "100-299kr x2"),
        (299, "100-299kr x2"),
        (299.5, "100-299kr x2"),
        (300, "300-499kr"),
        (499, "300-499kr"),
        (500, "500-999kr"),
        (999, "500-999kr"),
        (1000, "1000-1499kr"),
        (1499, "1000-1499kr"),
        (1500, "1500kr+"),
        (250000, "1500kr+"),
    ])
    def test_boundaries(self, amount, label):
        """Test lower bounds are inclusive and upper bounds exclusive."""
        assert BracketClassifier().classify(amount) == label

    def test_every_amount_has_exactly_one_bracket(self):
        """Test that brackets cover 1..3000 without gaps or overlaps."""
        classifier = BracketClassifier()
        for amount in range(1, 3001):
            matches = [b for b in classifier.brackets if b.contains(Decimal(amount))]
            assert len(matches) == 1, amount
            assert classifier.classify(amount) == matches[0].label

    @pytest.mark.parametrize("amount", [None, "", "abc", "12kr", float("nan"), float("inf"), True, [100]])
    def test_non_numeric_amount(self, amount):
        """Test that values which are not numbers have no bracket."""
        assert BracketClassifier().classify(amount) is None

    @pytest.mark.parametrize("amount", [0, -1, "-150"])
    def test_non_positive_amount(self, amount):
        """Test that zero and negative amounts have no bracket."""
        assert BracketClassifier().classify(amount) is None

    def test_numeric_string(self):
        """Test that amounts typed into a form as text are accepted."""
        assert BracketClassifier().classify(" 150 ") == "100-299kr x2"


class TestParseAmount:
    """Tests for amount coercion."""

    def test_parse_float_exactly(self):
        assert parse_amount(0.1) == Decimal("0.1")

    def test_parse_rejects_bool(self):
        assert parse_amount(False) is None


class TestBracketValidation:
    """Tests for rejecting malformed bracket tables."""

    def test_gap_rejected(self):
        """Test that a gap between brackets is refused."""
        with pytest.raises(ValueError):
            BracketClassifier([
                Bracket("low", Decimal("0"), Decimal("100")),
                Bracket("high", Decimal("101")),
            ])

    def test_overlap_rejected(self):
        """Test that overlapping brackets are refused."""
        with pytest.raises(ValueError):
            BracketClassifier([
                Bracket("low", Decimal("0"), Decimal("200")),
                Bracket("high", Decimal("100")),
            ])

    def test_closed_top_rejected(self):
        """Test that the last bracket must be open-ended."""
        with pytest.raises(ValueError):
            BracketClassifier([Bracket("only", Decimal("0"), Decimal("100"))])

    def test_round_trip_through_config(self):
        """Test that a classifier loads back from its own listing."""
        classifier = BracketClassifier.from_list(BracketClassifier(DEFAULT_BRACKETS).to_list())
        assert classifier.labels == [b.label for b in DEFAULT_BRACKETS]
        assert classifier.classify(1500) == "1500kr+"
