from typing import Literal, Optional
from pydantic import BaseModel, Field, ConfigDict

from ledger.models import PeriodKind, UtcDatetime

from .competitions import CompetitionStatus, PointType, ServiceTarget
from .ties import TiePolicy
from .weekly import TodoListStatus


class PeriodRef(BaseModel):
    kind: PeriodKind = PeriodKind.MONTHLY
    period_key: Optional[str] = Field(default=None, description="YYYY-MM or YYYY-Www; current period when omitted")


class AwardPreviewRequest(PeriodRef):
    metric: Literal["shifts", "sales", "stars"] = "shifts"
    category: Optional[str] = Field(default=None, description="Only count sales of this category")
    policy: TiePolicy = TiePolicy.ALL
    base_amount: Optional[int] = Field(default=None, ge=0)
    custom_amount: Optional[int] = Field(default=None, ge=0)
    selected_staff_id: Optional[str] = None
    seed: Optional[int] = None

    model_config = ConfigDict(json_schema_extra={
        "example": {"kind": "monthly", "period_key": "2026-10", "metric": "shifts", "policy": "ALL"}
    })


class AwardCommitRequest(AwardPreviewRequest):
    override: bool = Field(default=False, description="Award again even if the period was already awarded")
    staff_names: dict[str, str] = Field(default_factory=dict)


class ResetPeriodRequest(PeriodRef):
    include_shifts: bool = True


class WeeklyKpiEntry(BaseModel):
    supermargin_percent: Optional[float] = None
    cs_per_hour: Optional[float] = None
    club_signups: Optional[int] = Field(default=None, ge=0)
    knowledge_checklist: bool = False
    todolist: Optional[TodoListStatus] = None


class WeeklyReviewRequest(BaseModel):
    period_key: Optional[str] = None
    staff: dict[str, WeeklyKpiEntry]
    override: bool = False
    staff_names: dict[str, str] = Field(default_factory=dict)


class BonusCampaignRequest(BaseModel):
    category: str = Field(default="All", description="Category name or 'All'")
    multiplier: float = Field(..., gt=0)
    start: UtcDatetime
    end: Optional[UtcDatetime] = Field(default=None, description="Now when omitted")
    description: str = ""

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "category": "Forsikring",
            "multiplier": 2,
            "start": "2026-10-01T00:00:00Z",
            "description": "Dobbel stjerne-uke!",
        }
    })


class CompetitionRequest(BaseModel):
    title: str = Field(..., min_length=1)
    start: UtcDatetime
    end: UtcDatetime
    targets: list[ServiceTarget] = Field(default_factory=list, description="Every service counts when empty")
    point_type: PointType = "count"
    description: str = ""
    reward: Optional[str] = None

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "title": "Forsikringsfest",
            "start": "2026-10-12T00:00:00Z",
            "end": "2026-10-25T23:59:59Z",
            "targets": [
                {"category": "Forsikring"},
                {"category": "AVS/Support", "service_key": "SUPPORTAVTALE 12mnd"},
            ],
            "point_type": "count",
        }
    })


class CompetitionStatusRequest(BaseModel):
    status: CompetitionStatus
