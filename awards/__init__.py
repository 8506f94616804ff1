"""
Period Awards and Retroactive Bonuses

- Weekly/monthly windows with stable period keys
- Metric aggregation with a margin-of-victory rule
- Tie resolution strategies (all, custom amount, random, specific)
- Idempotent retroactive bonus multiplier with chunked commits
- Competitions over arbitrary windows and service targets
"""

from .aggregator import RankedResult, TieSet, aggregate
from .competitions import Competition, CompetitionService, ServiceTarget, standings
from .periods import PeriodWindow
from .retroactive import BonusCampaign, BonusFilter, BonusResult, apply_bonus, revert_bonus
from .service import AwardPreview, PeriodAwardService, RetroactiveBonusService
from .ties import AwardDistribution, TiePolicy, resolve_tie
from .weekly import TodoListStatus, WeeklyKpis

__all__ = [
    "RankedResult",
    "TieSet",
    "aggregate",
    "Competition",
    "CompetitionService",
    "ServiceTarget",
    "standings",
    "PeriodWindow",
    "BonusCampaign",
    "BonusFilter",
    "BonusResult",
    "apply_bonus",
    "revert_bonus",
    "AwardPreview",
    "PeriodAwardService",
    "RetroactiveBonusService",
    "AwardDistribution",
    "TiePolicy",
    "resolve_tie",
    "TodoListStatus",
    "WeeklyKpis",
]
