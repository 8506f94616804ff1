from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from .catalog import ServiceCatalog, ServiceRule
from .errors import InvalidAmountError, UnknownRuleError
from .multiplier import MultiplierProgress, progress


class RejectionReason(str, Enum):
    INVALID_AMOUNT = "InvalidAmount"
    UNKNOWN_RULE = "UnknownRule"


@dataclass(frozen=True)
class RawSale:
    staff_id: str
    category: str
    service_key: Optional[str] = None
    amount: Any = None
    reference: str = ""
    staff_name: Optional[str] = None


@dataclass(frozen=True)
class ScoredEvent:
    stars: int
    category: str
    service_key: Optional[str] = None
    rule: Optional[ServiceRule] = None
    progress: Optional[MultiplierProgress] = None
    recurring_suppressed: bool = False
    rejected: Optional[RejectionReason] = None
    message: str = ""

    @property
    def accepted(self) -> bool:
        return self.rejected is None

    def raise_for_rejection(self) -> None:
        if self.rejected == RejectionReason.INVALID_AMOUNT:
            raise InvalidAmountError(self.message)
        if self.rejected == RejectionReason.UNKNOWN_RULE:
            raise UnknownRuleError(self.category, self.service_key)

    def to_dict(self) -> dict:
        return {
            "stars": self.stars,
            "category": self.category,
            "service_key": self.service_key,
            "rule": self.rule.to_dict() if self.rule else None,
            "progress": self.progress.to_dict() if self.progress else None,
            "recurring_suppressed": self.recurring_suppressed,
            "rejected": self.rejected.value if self.rejected else None,
            "message": self.message,
        }

    @classmethod
    def rejection(cls, sale: RawSale, reason: RejectionReason, message: str) -> "ScoredEvent":
        return cls(stars=0, category=sale.category, service_key=sale.service_key, rejected=reason, message=message)


class EventScorer:
    def __init__(self, catalog: ServiceCatalog):
        self.catalog = catalog

    def resolve(self, sale: RawSale) -> ServiceRule:
        """Pick the rule a sale is scored under; bracketed categories go by amount."""
        if self.catalog.is_bracketed(sale.category):
            label = self.catalog.classifier.classify(sale.amount)
            if label is None:
                raise InvalidAmountError(f"Amount {sale.amount!r} is not a positive number")
            return self.catalog.get_rule(sale.category, label)
        return self.catalog.get_rule(sale.category, sale.service_key)

    def score(self, sale: RawSale, rule: ServiceRule, existing_count: int) -> ScoredEvent:
        if self.catalog.is_bracketed(rule.category):
            label = self.catalog.classifier.classify(sale.amount)
            if label is None:
                return ScoredEvent.rejection(
                    sale, RejectionReason.INVALID_AMOUNT,
                    f"Amount {sale.amount!r} is not a positive number",
                )
            if label != rule.service_key:
                rule = self.catalog.get_rule(rule.category, label)

        result = progress(existing_count, rule.multiplier, rule.base_stars)
        stars = result.stars_earned

        # Subscriptions are credited once; later renewals score nothing.
        suppressed = rule.is_recurring and existing_count > 0
        if suppressed:
            stars = 0

        return ScoredEvent(
            stars=stars,
            category=rule.category,
            service_key=rule.service_key,
            rule=rule,
            progress=result,
            recurring_suppressed=suppressed,
        )

    def score_sale(self, sale: RawSale, existing_count: int) -> ScoredEvent:
        try:
            rule = self.resolve(sale)
        except InvalidAmountError as e:
            return ScoredEvent.rejection(sale, RejectionReason.INVALID_AMOUNT, str(e))
        except UnknownRuleError as e:
            return ScoredEvent.rejection(sale, RejectionReason.UNKNOWN_RULE, str(e))
        return self.score(sale, rule, existing_count)
