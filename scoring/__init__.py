"""
Incentive Scoring Engine

Turns a raw sale into stars:
- Service catalog of flat, N-for-1 multiplier, amount-bracket and recurring rules
- Amount bracket classification for insurance sales
- Multiplier progress from a caller-supplied prior count
- Pure event scoring with reject-with-reason results
"""

from .brackets import Bracket, BracketClassifier, DEFAULT_BRACKETS
from .catalog import ServiceCatalog, ServiceRule, load_catalog
from .errors import (
    IncentiveError,
    InvalidAmountError,
    UnknownRuleError,
    InvalidSelectionError,
    AlreadyAwardedError,
    PartialBatchFailureError,
)
from .multiplier import MultiplierProgress, progress
from .scorer import EventScorer, RawSale, ScoredEvent, RejectionReason

__all__ = [
    "Bracket",
    "BracketClassifier",
    "DEFAULT_BRACKETS",
    "ServiceCatalog",
    "ServiceRule",
    "load_catalog",
    "IncentiveError",
    "InvalidAmountError",
    "UnknownRuleError",
    "InvalidSelectionError",
    "AlreadyAwardedError",
    "PartialBatchFailureError",
    "MultiplierProgress",
    "progress",
    "EventScorer",
    "RawSale",
    "ScoredEvent",
    "RejectionReason",
]
