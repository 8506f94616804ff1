import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional, Union

from .brackets import BracketClassifier, DEFAULT_BRACKETS
from .errors import UnknownRuleError

INSURANCE_CATEGORY = "Forsikring"
MANUAL_CATEGORY = "Manuell registrering"
AWARD_CATEGORY = "Annet"

_MULTIPLIER_SUFFIX = re.compile(r"\sx(\d+)\b")


def multiplier_from_name(service_key: str) -> int:
    """Services named like 'Teletime15 x3' need three sales per award."""
    match = _MULTIPLIER_SUFFIX.search(service_key)
    return int(match.group(1)) if match else 1


@dataclass(frozen=True)
class ServiceRule:
    category: str
    service_key: str
    base_stars: int
    multiplier: int = 1
    is_recurring: bool = False
    start_amount: Optional[int] = None
    end_amount: Optional[int] = None

    def __post_init__(self):
        if self.base_stars < 0:
            raise ValueError(f"base_stars must be >= 0 for {self.key}")
        if self.multiplier < 1:
            raise ValueError(f"multiplier must be >= 1 for {self.key}")

    @property
    def key(self) -> tuple[str, str]:
        return (self.category, self.service_key)

    def to_dict(self) -> dict:
        return {
            "category": self.category,
            "service_key": self.service_key,
            "base_stars": self.base_stars,
            "multiplier": self.multiplier,
            "is_recurring": self.is_recurring,
            "start_amount": self.start_amount,
            "end_amount": self.end_amount,
        }

    @classmethod
    def from_config(cls, category: str, service_key: str, value: Union[int, dict]) -> "ServiceRule":
        if isinstance(value, dict):
            return cls(
                category=category,
                service_key=service_key,
                base_stars=int(value.get("stars", 1)),
                multiplier=int(value.get("multiplier") or multiplier_from_name(service_key)),
                is_recurring=bool(value.get("isRecurring", False)),
                start_amount=value.get("startAmount") or None,
                end_amount=value.get("endAmount") or None,
            )
        return cls(
            category=category,
            service_key=service_key,
            base_stars=int(value),
            multiplier=multiplier_from_name(service_key),
        )


DEFAULT_CATEGORIES = {
    INSURANCE_CATEGORY: {
        "Mindre enn 100kr x3": 1,
        "100-299kr x2": 1,
        "300-499kr": 1,
        "500-999kr": 2,
        "1000-1499kr": 3,
        "1500kr+": 4,
    },
    "AVS/Support": {
        "MOBOFUSM": 1,
        "Teletime15 x3": 1,
        "Pctime15 x3": 1,
        "Mdatime15 x3": 1,
        "Teletime30 x2": 1,
        "Pctime30 x2": 1,
        "Mdatime30 x2": 1,
        "Teletime60": 1,
        "Pctime60": 1,
        "Mdatime60": 1,
        "RTGWEARABLES x2": 1,
        "Annen RTG": 1,
        "SUPPORTAVTALE 6mnd": 2,
        "SUPPORTAVTALE 12mnd": 3,
        "SUPPORTAVTALE 24mnd": 4,
        "SUPPORTAVTALE 36mnd": 5,
        "Installasjon hvitevare": 3,
        "Returgreen": 1,
    },
    "Kundeklubb": {
        "20%": 1,
        "40%": 2,
        "60%": 3,
        "80%": 4,
        "100%": 5,
    },
    AWARD_CATEGORY: {
        "Kunnskap Sjekkliste": 3,
        "Todolist - Fylt ut 1 uke": 1,
        "Todolist - Alt JA 1 uke": 2,
    },
}


class ServiceCatalog:
    def __init__(self, rules: Iterable[ServiceRule], bracketed_categories: Iterable[str] = (INSURANCE_CATEGORY,),
                 classifier: Optional[BracketClassifier] = None):
        self.rules: dict[tuple[str, str], ServiceRule] = {}
        for rule in rules:
            if rule.key in self.rules:
                raise ValueError(f"Duplicate rule {rule.key}")
            self.rules[rule.key] = rule
        self.bracketed_categories = frozenset(bracketed_categories)
        self.classifier = classifier or BracketClassifier(DEFAULT_BRACKETS)

        for category in self.bracketed_categories:
            missing = [label for label in self.classifier.labels if (category, label) not in self.rules]
            if missing:
                raise ValueError(f"Bracketed category {category!r} has no rules for {missing}")

    def is_bracketed(self, category: str) -> bool:
        return category in self.bracketed_categories

    def get_rule(self, category: str, service_key: Optional[str]) -> ServiceRule:
        rule = self.rules.get((category, service_key)) if service_key is not None else None
        if rule is None:
            raise UnknownRuleError(category, service_key)
        return rule

    def categories(self) -> list[str]:
        return sorted({category for category, _ in self.rules})

    def list_rules(self, category: Optional[str] = None) -> list[ServiceRule]:
        rules = list(self.rules.values())
        if category:
            rules = [r for r in rules if r.category == category]
        return rules

    def to_dict(self) -> dict:
        return {
            "categories": self.categories(),
            "bracketed_categories": sorted(self.bracketed_categories),
            "brackets": self.classifier.to_list(),
            "rules": [r.to_dict() for r in self.rules.values()],
        }

    @classmethod
    def from_config(cls, categories: dict, bracketed_categories: Iterable[str] = (INSURANCE_CATEGORY,),
                    classifier: Optional[BracketClassifier] = None) -> "ServiceCatalog":
        rules = [
            ServiceRule.from_config(category, service_key, value)
            for category, services in categories.items()
            for service_key, value in services.items()
        ]
        return cls(rules, bracketed_categories=bracketed_categories, classifier=classifier)

    @classmethod
    def default(cls) -> "ServiceCatalog":
        return cls.from_config(DEFAULT_CATEGORIES)


def load_catalog(path: Optional[str] = None) -> ServiceCatalog:
    if not path:
        return ServiceCatalog.default()
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    categories = data.get("categories", data)
    classifier = BracketClassifier.from_list(data["brackets"]) if "brackets" in data else None
    bracketed = data.get("bracketed_categories", [INSURANCE_CATEGORY])
    return ServiceCatalog.from_config(categories, bracketed_categories=bracketed, classifier=classifier)
