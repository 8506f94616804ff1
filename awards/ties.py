import random
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from scoring.errors import IncentiveError, InvalidSelectionError

from .aggregator import TieSet


class TiePolicy(str, Enum):
    ALL = "ALL"
    CUSTOM = "CUSTOM"
    RANDOM = "RANDOM"
    SPECIFIC = "SPECIFIC"


@dataclass(frozen=True)
class AwardDistribution:
    staff_id: str
    stars: int

    def to_dict(self) -> dict:
        return {"staff_id": self.staff_id, "stars": self.stars}


def award_amount(base: int, margin: int, bonus_cap: int = 0) -> int:
    """Period award, plus one star per two shifts of lead beyond two (capped)."""
    if bonus_cap <= 0 or margin <= 2:
        return base
    return base + min((margin - 2) // 2, bonus_cap)


def resolve_tie(tie_set: TieSet, policy: TiePolicy, amount: int, *,
                custom_amount: Optional[int] = None,
                selected_staff_id: Optional[str] = None,
                rng: Optional[random.Random] = None) -> list[AwardDistribution]:
    if tie_set.size == 0:
        return []
    if amount < 0:
        raise IncentiveError("Award amount must be >= 0")

    policy = TiePolicy(policy)
    members = sorted(tie_set.staff_ids)
    if tie_set.size == 1:
        return [AwardDistribution(members[0], amount)]

    if policy == TiePolicy.ALL:
        return [AwardDistribution(staff_id, amount) for staff_id in members]

    if policy == TiePolicy.CUSTOM:
        if custom_amount is None or custom_amount < 0:
            raise IncentiveError("CUSTOM tie resolution needs a non-negative custom_amount")
        return [AwardDistribution(staff_id, custom_amount) for staff_id in members]

    if policy == TiePolicy.RANDOM:
        chooser = rng or random.Random()
        return [AwardDistribution(chooser.choice(members), amount)]

    if selected_staff_id not in tie_set:
        raise InvalidSelectionError(f"{selected_staff_id!r} is not one of the tied staff {members}")
    return [AwardDistribution(selected_staff_id, amount)]
