from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Optional
from pydantic import AfterValidator, BaseModel, Field, ConfigDict, computed_field


def as_utc(moment: datetime) -> datetime:
    """Read timestamps without a timezone as UTC; every window is timezone-aware."""
    if moment.tzinfo is None or moment.utcoffset() is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


UtcDatetime = Annotated[datetime, AfterValidator(as_utc)]


class PeriodKind(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    CUSTOM = "custom"


class LedgerField(str, Enum):
    STARS = "stars_total"
    SHIFTS = "shifts_total"


class PeriodTag(BaseModel):
    kind: PeriodKind
    period_key: str

    model_config = ConfigDict(frozen=True)


class BonusInfo(BaseModel):
    applied: bool = True
    multiplier: float
    original_stars: int
    description: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class SaleEvent(BaseModel):
    id: str
    staff_id: str
    category: str
    service_key: str
    stars_awarded: int
    timestamp: UtcDatetime
    is_manual: bool = False
    period_tag: Optional[PeriodTag] = None
    bonus: Optional[BonusInfo] = None
    staff_name: Optional[str] = None
    reference: str = ""
    amount: Optional[Decimal] = None
    comment: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

    @property
    def bonus_applied(self) -> bool:
        return self.bonus is not None and self.bonus.applied


class ShiftRecord(BaseModel):
    id: str
    staff_id: str
    timestamp: UtcDatetime


class EmployeeLedger(BaseModel):
    staff_id: str
    stars_total: int = 0
    shifts_total: int = 0


class AwardRecord(BaseModel):
    period_key: str
    kind: str
    created_at: UtcDatetime
    staff_ids_awarded: list[str] = Field(default_factory=list)
    stars_awarded: int = 0
    tie_policy: Optional[str] = None
    random_seed: Optional[int] = None
    override: bool = False
    details: dict[str, Any] = Field(default_factory=dict)


class LedgerAudit(BaseModel):
    staff_id: str
    stars_total: int
    live_event_stars: int
    live_event_count: int

    @computed_field
    @property
    def consistent(self) -> bool:
        return self.stars_total == self.live_event_stars


class ReversalResult(BaseModel):
    staff_deltas: dict[str, int]
    removed_event_ids: list[str]


class LedgerHistoryResponse(BaseModel):
    staff_id: str
    events: list[SaleEvent]
    total_count: int
    stars_total: int


# --- HTTP request/response bodies ---

class ScoreSaleRequest(BaseModel):
    staff_id: str = Field(..., min_length=1)
    category: str
    service_key: Optional[str] = None
    amount: Optional[Decimal] = None
    reference: str = Field(default="", description="Receipt (bilag) number")
    staff_name: Optional[str] = None

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "staff_id": "staff-ola",
            "category": "Forsikring",
            "amount": 150,
            "reference": "B-10442",
        }
    })


class SaleReceipt(BaseModel):
    event: SaleEvent
    scored: dict
    ledger: EmployeeLedger
    message: str


class ImportSaleEntry(BaseModel):
    reference: str = Field(..., min_length=1, description="Receipt (bilag) number")
    category: str
    service_key: Optional[str] = None
    amount: Optional[Decimal] = None


class ImportSalesRequest(BaseModel):
    entries: list[ImportSaleEntry] = Field(..., min_length=1)
    staff_name: Optional[str] = None

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "entries": [
                {"reference": "B-201", "category": "AVS/Support", "service_key": "Teletime15 x3"},
                {"reference": "B-202", "category": "AVS/Support", "service_key": "Teletime15 x3"},
                {"reference": "B-203", "category": "AVS/Support", "service_key": "Teletime15 x3"},
            ]
        }
    })


class ImportReceipt(BaseModel):
    staff_id: str
    events: list[SaleEvent]
    stars_added: int
    ledger: EmployeeLedger


class ReverseEventsRequest(BaseModel):
    event_ids: list[str] = Field(..., min_length=1)
    reason: Optional[str] = None


class CorrectEventRequest(BaseModel):
    stars_awarded: int = Field(..., ge=0)
    reason: Optional[str] = None


class ManualAdjustmentRequest(BaseModel):
    stars: int = Field(..., description="Signed star adjustment, never zero")
    reference: str = Field(..., min_length=1)
    comment: Optional[str] = None
    staff_name: Optional[str] = None


class RecordShiftsRequest(BaseModel):
    count: int = Field(default=1, ge=1)
    timestamp: Optional[UtcDatetime] = None
