"""
Star Ledger

This module provides:
- Sale, shift and award records
- Per-employee star and shift totals changed only by atomic signed deltas
- Bulk import of several receipts for one employee
- Exact reversal of recorded events, committed as one unit
- Award records guarding against double period awards
- An audit of the totals against live events
"""

from .models import (
    PeriodKind,
    PeriodTag,
    BonusInfo,
    SaleEvent,
    ShiftRecord,
    EmployeeLedger,
    AwardRecord,
)
from .service import LedgerService, LedgerServiceError, EventNotFoundError
from .storage import InMemoryStorage

__all__ = [
    "PeriodKind",
    "PeriodTag",
    "BonusInfo",
    "SaleEvent",
    "ShiftRecord",
    "EmployeeLedger",
    "AwardRecord",
    "LedgerService",
    "LedgerServiceError",
    "EventNotFoundError",
    "InMemoryStorage",
]
