from dataclasses import dataclass
from enum import Enum
from typing import Optional

from scoring.catalog import AWARD_CATEGORY
from scoring.thresholds import CLUB_SIGNUPS, CS_PER_HOUR, SUPERMARGIN_PERCENT

CLUB_CATEGORY = "Kundeklubb"
KNOWLEDGE_CHECKLIST_STARS = 3


class TodoListStatus(str, Enum):
    FILLED = "fylt-ut-1-uke"
    ALL_YES = "alt-ja-1-uke"


_TODO_LINES = {
    TodoListStatus.FILLED: ("Todolist - Fylt ut 1 uke", 1, "TODOLIST-FYLT-UT"),
    TodoListStatus.ALL_YES: ("Todolist - Alt JA 1 uke", 2, "TODOLIST-ALT-JA"),
}


@dataclass(frozen=True)
class WeeklyKpis:
    supermargin_percent: Optional[float] = None
    cs_per_hour: Optional[float] = None
    club_signups: Optional[int] = None
    knowledge_checklist: bool = False
    todolist: Optional[TodoListStatus] = None


@dataclass(frozen=True)
class AwardLine:
    category: str
    service_key: str
    stars: int
    tag: str


def weekly_award_lines(kpis: WeeklyKpis) -> list[AwardLine]:
    lines = []

    stars = SUPERMARGIN_PERCENT.stars_for(kpis.supermargin_percent)
    if stars:
        value = f"{kpis.supermargin_percent:g}"
        lines.append(AwardLine(AWARD_CATEGORY, f"Supermargin {value}%", stars, f"SUPERMARGIN-{value}%"))

    stars = CS_PER_HOUR.stars_for(kpis.cs_per_hour)
    if stars:
        value = f"{kpis.cs_per_hour:g}"
        lines.append(AwardLine(AWARD_CATEGORY, f"CS per time {value}kr", stars, f"CS-PER-TIME-{value}kr"))

    stars = CLUB_SIGNUPS.stars_for(kpis.club_signups)
    if stars:
        lines.append(AwardLine(
            CLUB_CATEGORY, f"Kundeklubb {kpis.club_signups} stk", stars,
            f"KUNDEKLUBB-ANTALL-{kpis.club_signups}",
        ))

    if kpis.knowledge_checklist:
        lines.append(AwardLine(AWARD_CATEGORY, "Kunnskap Sjekkliste", KNOWLEDGE_CHECKLIST_STARS, "KUNNSKAP-SJEKKLISTE"))

    if kpis.todolist is not None:
        service_key, stars, tag = _TODO_LINES[TodoListStatus(kpis.todolist)]
        lines.append(AwardLine(AWARD_CATEGORY, service_key, stars, tag))

    return lines
