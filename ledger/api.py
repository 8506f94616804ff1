import logging
from datetime import datetime, timezone

from fastapi import FastAPI, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware

from awards.aggregator import count_category, count_records, sum_stars
from awards.competitions import Competition, CompetitionNotFoundError, CompetitionService
from awards.models import (
    AwardCommitRequest, AwardPreviewRequest, BonusCampaignRequest, CompetitionRequest,
    CompetitionStatusRequest, PeriodRef, ResetPeriodRequest, WeeklyReviewRequest,
)
from awards.periods import PeriodWindow
from awards.retroactive import BonusCampaign, BonusFilter
from awards.service import PeriodAwardService, RetroactiveBonusService
from awards.ties import TiePolicy
from awards.weekly import WeeklyKpis
from ledger.models import PeriodKind
from scoring.catalog import load_catalog
from scoring.errors import AlreadyAwardedError, IncentiveError, PartialBatchFailureError
from scoring.scorer import RawSale
from scoring.settings import settings

from .models import (
    AwardRecord, CorrectEventRequest, EmployeeLedger, ImportReceipt, ImportSalesRequest,
    LedgerAudit, LedgerHistoryResponse, ManualAdjustmentRequest, RecordShiftsRequest,
    ReversalResult, ReverseEventsRequest, SaleEvent, SaleReceipt, ScoreSaleRequest, ShiftRecord,
)
from .service import EventNotFoundError, LedgerService
from .storage import InMemoryStorage, StorageError


def configure_logging() -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


configure_logging()

app = FastAPI(
    title="Sales Star API",
    description="Scores sales into stars, awards period winners and applies retroactive bonuses",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

ledger_service = LedgerService(InMemoryStorage(), load_catalog(settings.CATALOG_PATH))
award_service = PeriodAwardService(ledger_service)
bonus_service = RetroactiveBonusService(ledger_service)
competition_service = CompetitionService(ledger_service)


def _window(ref: PeriodRef) -> PeriodWindow:
    if ref.kind == PeriodKind.CUSTOM:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Custom windows belong to competitions")
    if not ref.period_key:
        return PeriodWindow.current(ref.kind)
    try:
        window = PeriodWindow.from_key(ref.period_key)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Bad period key {ref.period_key!r}")
    if window.kind != ref.kind:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Period key {ref.period_key!r} is not a {ref.kind.value} period",
        )
    return window


def _campaign(request: BonusCampaignRequest) -> BonusCampaign:
    end = request.end or datetime.now(timezone.utc)
    if end < request.start:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Bonus ends before it starts")
    return BonusCampaign(
        filter=BonusFilter(category=request.category, start=request.start, end=end),
        multiplier=request.multiplier,
        description=request.description,
    )


def _raw_sale(request: ScoreSaleRequest) -> RawSale:
    return RawSale(
        staff_id=request.staff_id,
        category=request.category,
        service_key=request.service_key,
        amount=request.amount,
        reference=request.reference,
        staff_name=request.staff_name,
    )


def _is_sale(event: SaleEvent) -> bool:
    return not event.is_manual and event.period_tag is None


def _award_preview(request: AwardPreviewRequest):
    window = _window(request)
    options = dict(
        metric=request.metric,
        base_amount=request.base_amount,
        custom_amount=request.custom_amount,
        selected_staff_id=request.selected_staff_id,
        seed=request.seed,
    )
    if request.metric == "sales":
        events = [e for e in ledger_service.storage.query_events(window=window) if _is_sale(e)]
        selector = count_category(request.category) if request.category else count_records
        return award_service.preview(window, request.policy, records=events, metric_selector=selector, **options)
    if request.metric == "stars":
        events = ledger_service.storage.query_events(window=window)
        return award_service.preview(window, request.policy, records=events, metric_selector=sum_stars, **options)
    return award_service.preview(window, request.policy, **options)


@app.get("/health", tags=["System"])
def health_check():
    return {"status": "healthy", "service": "sales-stars"}


@app.get("/catalog", tags=["System"])
def get_catalog():
    return ledger_service.catalog.to_dict()


@app.post("/sales/score", tags=["Sales"])
def score_sale(request: ScoreSaleRequest) -> dict:
    return ledger_service.preview_sale(_raw_sale(request)).to_dict()


@app.post("/sales", response_model=SaleReceipt, status_code=status.HTTP_201_CREATED, tags=["Sales"])
def record_sale(request: ScoreSaleRequest) -> SaleReceipt:
    try:
        return ledger_service.record_sale(_raw_sale(request))
    except IncentiveError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@app.post("/staff/{staff_id}/sales/import", response_model=ImportReceipt, status_code=status.HTTP_201_CREATED, tags=["Sales"])
def import_sales(staff_id: str, request: ImportSalesRequest) -> ImportReceipt:
    sales = [
        RawSale(
            staff_id=staff_id,
            category=entry.category,
            service_key=entry.service_key,
            amount=entry.amount,
            reference=entry.reference,
            staff_name=request.staff_name,
        )
        for entry in request.entries
    ]
    try:
        return ledger_service.record_sales(staff_id, sales)
    except IncentiveError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@app.post("/sales/reverse", response_model=ReversalResult, tags=["Sales"])
def reverse_sales(request: ReverseEventsRequest) -> ReversalResult:
    try:
        return ledger_service.reverse(request.event_ids)
    except EventNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except StorageError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))


@app.patch("/sales/{event_id}", response_model=SaleEvent, tags=["Sales"])
def correct_sale(event_id: str, request: CorrectEventRequest) -> SaleEvent:
    try:
        return ledger_service.correct_event(event_id, request.stars_awarded)
    except EventNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@app.post("/staff/{staff_id}/manual", response_model=SaleEvent, status_code=status.HTTP_201_CREATED, tags=["Staff"])
def manual_adjustment(staff_id: str, request: ManualAdjustmentRequest) -> SaleEvent:
    try:
        return ledger_service.record_manual(
            staff_id, request.stars, request.reference,
            comment=request.comment, staff_name=request.staff_name,
        )
    except IncentiveError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@app.post("/staff/{staff_id}/shifts", response_model=list[ShiftRecord], status_code=status.HTTP_201_CREATED, tags=["Staff"])
def record_shifts(staff_id: str, request: RecordShiftsRequest) -> list[ShiftRecord]:
    try:
        return ledger_service.record_shifts(staff_id, request.count, request.timestamp)
    except IncentiveError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@app.get("/staff/{staff_id}/ledger", response_model=EmployeeLedger, tags=["Staff"])
def get_staff_ledger(staff_id: str) -> EmployeeLedger:
    return ledger_service.get_ledger(staff_id)


@app.get("/staff/{staff_id}/history", response_model=LedgerHistoryResponse, tags=["Staff"])
def get_staff_history(staff_id: str, limit: int = 50, offset: int = 0) -> LedgerHistoryResponse:
    return ledger_service.get_history(staff_id, limit, offset)


@app.get("/staff/{staff_id}/audit", response_model=LedgerAudit, tags=["Staff"])
def audit_staff(staff_id: str) -> LedgerAudit:
    return ledger_service.audit(staff_id)


@app.post("/periods/preview", tags=["Periods"])
def preview_period_award(request: AwardPreviewRequest) -> dict:
    try:
        return _award_preview(request).to_dict()
    except IncentiveError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@app.post("/periods/commit", response_model=AwardRecord, tags=["Periods"])
def commit_period_award(request: AwardCommitRequest) -> AwardRecord:
    try:
        preview = _award_preview(request)
        if preview.policy == TiePolicy.RANDOM and preview.result.is_tie and request.seed is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Random tie-break needs the seed from the preview",
            )
        return award_service.commit(preview, override=request.override, staff_names=request.staff_names)
    except AlreadyAwardedError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except IncentiveError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@app.post("/periods/reset", tags=["Periods"])
def reset_period(request: ResetPeriodRequest) -> dict:
    result = award_service.reset(_window(request), include_shifts=request.include_shifts)
    return {
        "reversal": result.reversal.model_dump(),
        "shifts_removed": result.shifts_removed,
        "award_records_removed": result.award_records_removed,
    }


@app.post("/periods/weekly-review", response_model=AwardRecord, tags=["Periods"])
def weekly_review(request: WeeklyReviewRequest) -> AwardRecord:
    window = _window(PeriodRef(kind=PeriodKind.WEEKLY, period_key=request.period_key))
    kpis = {staff_id: WeeklyKpis(**entry.model_dump()) for staff_id, entry in request.staff.items()}
    try:
        return award_service.commit_weekly_review(
            window, kpis, override=request.override, staff_names=request.staff_names,
        )
    except AlreadyAwardedError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))


@app.post("/bonus/preview", tags=["Bonus"])
def preview_bonus(request: BonusCampaignRequest) -> dict:
    return bonus_service.preview(_campaign(request)).to_dict()


@app.post("/bonus/apply", tags=["Bonus"])
def apply_bonus(request: BonusCampaignRequest) -> dict:
    try:
        commit = bonus_service.commit(_campaign(request))
    except PartialBatchFailureError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail={"error": str(e), **e.to_dict()})
    return {"chunks": commit.chunks, **commit.result.to_dict()}


@app.post("/bonus/revert", tags=["Bonus"])
def revert_bonus(request: BonusCampaignRequest) -> dict:
    try:
        commit = bonus_service.revert(_campaign(request))
    except PartialBatchFailureError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail={"error": str(e), **e.to_dict()})
    return {"chunks": commit.chunks, **commit.result.to_dict()}


@app.post("/competitions", response_model=Competition, status_code=status.HTTP_201_CREATED, tags=["Competitions"])
def create_competition(request: CompetitionRequest) -> Competition:
    try:
        return competition_service.create(**request.model_dump(exclude={"targets"}), targets=request.targets)
    except IncentiveError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@app.get("/competitions", response_model=list[Competition], tags=["Competitions"])
def list_competitions() -> list[Competition]:
    return competition_service.list_all()


@app.patch("/competitions/{competition_id}", response_model=Competition, tags=["Competitions"])
def set_competition_status(competition_id: str, request: CompetitionStatusRequest) -> Competition:
    try:
        return competition_service.set_status(competition_id, request.status)
    except CompetitionNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@app.get("/competitions/{competition_id}/standings", tags=["Competitions"])
def competition_standings(competition_id: str) -> dict:
    try:
        return competition_service.standings(competition_id)
    except CompetitionNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
