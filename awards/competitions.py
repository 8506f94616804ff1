import logging
from datetime import datetime, timezone
from typing import Iterable, Literal, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from ledger.models import SaleEvent, UtcDatetime, as_utc
from ledger.service import LedgerService
from scoring.errors import IncentiveError

from .aggregator import MetricSelector, RankedResult, aggregate, count_services, stars_for_services
from .periods import PeriodWindow

logger = logging.getLogger(__name__)

PointType = Literal["stars", "count"]
CompetitionStatus = Literal["active", "paused"]


class CompetitionNotFoundError(IncentiveError):
    pass


class ServiceTarget(BaseModel):
    category: str
    service_key: Optional[str] = Field(default=None, description="Whole category when omitted")

    model_config = ConfigDict(frozen=True)


class Competition(BaseModel):
    id: str
    title: str
    start: UtcDatetime
    end: UtcDatetime
    targets: list[ServiceTarget] = Field(default_factory=list)
    point_type: PointType = "count"
    status: CompetitionStatus = "active"
    description: str = ""
    reward: Optional[str] = None
    created_at: UtcDatetime

    @property
    def window(self) -> PeriodWindow:
        return PeriodWindow.between(self.start, self.end, key=f"competition-{self.id}")

    def phase(self, now: Optional[datetime] = None) -> str:
        now = as_utc(now) if now else datetime.now(timezone.utc)
        if now < self.start:
            return "not_started"
        if now > self.end:
            return "ended"
        return "ongoing"

    def selector(self) -> MetricSelector:
        targets = [(t.category, t.service_key) for t in self.targets]
        return stars_for_services(targets) if self.point_type == "stars" else count_services(targets)


def standings(records: Iterable[SaleEvent], competition: Competition) -> RankedResult:
    """Rank staff inside the competition window; the leader needs no margin."""
    return aggregate(records, competition.selector(), competition.window, margin_threshold=0)


class CompetitionService:
    def __init__(self, ledger: LedgerService):
        self.storage = ledger.storage

    def create(self, title: str, start: datetime, end: datetime, targets: Iterable[ServiceTarget] = (),
               point_type: PointType = "count", description: str = "",
               reward: Optional[str] = None) -> Competition:
        if not title or not title.strip():
            raise IncentiveError("Competition needs a title")
        competition = Competition(
            id=str(uuid4()),
            title=title.strip(),
            start=start,
            end=end,
            targets=list(dict.fromkeys(targets)),
            point_type=point_type,
            description=description,
            reward=reward,
            created_at=datetime.now(timezone.utc),
        )
        if competition.end < competition.start:
            raise IncentiveError(f"Competition {competition.title!r} ends before it starts")
        self.storage.set_competition(competition)
        logger.info("Created competition %s (%s) with %d targets", competition.id, competition.title, len(competition.targets))
        return competition

    def get(self, competition_id: str) -> Competition:
        competition = self.storage.get_competition(competition_id)
        if competition is None:
            raise CompetitionNotFoundError(f"Competition {competition_id} not found")
        return competition

    def list_all(self) -> list[Competition]:
        return sorted(self.storage.list_competitions(), key=lambda c: c.created_at, reverse=True)

    def set_status(self, competition_id: str, status: CompetitionStatus) -> Competition:
        competition = self.get(competition_id).model_copy(update={"status": status})
        self.storage.set_competition(competition)
        return competition

    def standings(self, competition_id: str, now: Optional[datetime] = None) -> dict:
        competition = self.get(competition_id)
        window = competition.window
        events = [
            e for e in self.storage.query_events(window=window)
            if not e.is_manual and e.period_tag is None
        ]
        result = standings(events, competition)
        return {
            "competition": competition.model_dump(mode="json"),
            "phase": competition.phase(now),
            "standings": [{"staff_id": staff_id, "value": value} for staff_id, value in result.ranking()],
            "leaders": result.winners,
            "result": result.to_dict(),
        }
