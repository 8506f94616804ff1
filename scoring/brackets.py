import math
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Optional


@dataclass(frozen=True)
class Bracket:
    label: str
    lower: Decimal
    upper: Optional[Decimal] = None  # exclusive; None for the open top bracket

    def contains(self, amount: Decimal) -> bool:
        if amount < self.lower:
            return False
        return self.upper is None or amount < self.upper

    def to_dict(self) -> dict:
        return {
            "label": self.label,
            "lower": str(self.lower),
            "upper": str(self.upper) if self.upper is not None else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Bracket":
        upper = data.get("upper")
        return cls(
            label=data["label"],
            lower=Decimal(str(data["lower"])),
            upper=Decimal(str(upper)) if upper is not None else None,
        )


DEFAULT_BRACKETS = (
    Bracket("Mindre enn 100kr x3", Decimal("0"), Decimal("100")),
    Bracket("100-299kr x2", Decimal("100"), Decimal("300")),
    Bracket("300-499kr", Decimal("300"), Decimal("500")),
    Bracket("500-999kr", Decimal("500"), Decimal("1000")),
    Bracket("1000-1499kr", Decimal("1000"), Decimal("1500")),
    Bracket("1500kr+", Decimal("1500")),
)


def parse_amount(value: Any) -> Optional[Decimal]:
    """Coerce a user-supplied amount, returning None when it is not a finite number."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite():
        return None
    return amount


class BracketClassifier:
    def __init__(self, brackets=DEFAULT_BRACKETS):
        self.brackets: tuple[Bracket, ...] = tuple(brackets)
        self._validate()

    def _validate(self) -> None:
        if not self.brackets:
            raise ValueError("At least one bracket is required")
        for current, following in zip(self.brackets, self.brackets[1:]):
            if current.upper is None:
                raise ValueError(f"Only the last bracket may be open-ended, not {current.label!r}")
            if current.upper != following.lower:
                raise ValueError(
                    f"Brackets {current.label!r} and {following.label!r} must share a boundary "
                    f"({current.upper} != {following.lower})"
                )
        for bracket in self.brackets:
            if bracket.upper is not None and bracket.upper <= bracket.lower:
                raise ValueError(f"Bracket {bracket.label!r} is empty")
        if self.brackets[-1].upper is not None:
            raise ValueError("The last bracket must be open-ended")

    @property
    def labels(self) -> list[str]:
        return [b.label for b in self.brackets]

    def classify(self, amount: Any) -> Optional[str]:
        value = parse_amount(amount)
        if value is None or value <= 0:
            return None
        for bracket in self.brackets:
            if bracket.contains(value):
                return bracket.label
        return None

    def to_list(self) -> list[dict]:
        return [b.to_dict() for b in self.brackets]

    @classmethod
    def from_list(cls, data: list[dict]) -> "BracketClassifier":
        return cls(Bracket.from_dict(item) for item in data)
