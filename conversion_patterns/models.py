"""
Domain Records for Conversion Pattern Mining
Immutable, validated records shared by every stage of a mining run.
"""

import math
from dataclasses import dataclass, field
from typing import FrozenSet, Tuple

from .exceptions import ValidationError, ValueOutOfRangeError


def _check_unit_interval(name: str, value: float) -> None:
    if not 0.0 <= value <= 1.0:
        raise ValueOutOfRangeError(name, value, min_value=0, max_value=1)


def _check_non_negative(name: str, value: float) -> None:
    if value < 0:
        raise ValueOutOfRangeError(name, value, min_value=0)


@dataclass(frozen=True)
class UserRecord:
    """A user's exposures and conversion outcome for one run."""

    user_id: str
    exposed_items: FrozenSet[str] = field(default_factory=frozenset)
    converted: bool = False
    conversion_count: int = 0

    def __post_init__(self):
        if not self.user_id:
            raise ValidationError("user_id must be a non-empty string", field="user_id")
        _check_non_negative("conversion_count", self.conversion_count)
        if (self.conversion_count > 0) != self.converted:
            raise ValidationError(
                "converted must be true exactly when conversion_count > 0",
                field="converted",
                value=self.converted,
                details={"user_id": self.user_id, "conversion_count": self.conversion_count},
            )
        if not isinstance(self.exposed_items, frozenset):
            object.__setattr__(self, "exposed_items", frozenset(self.exposed_items))

    def is_exposed_to(self, items) -> bool:
        """True when the user viewed every item in ``items``."""
        return self.exposed_items.issuperset(items)


@dataclass(frozen=True, order=True)
class Combination:
    """An unordered pair of distinct item ids, stored in lexicographic order."""

    first: str
    second: str

    def __post_init__(self):
        if self.first == self.second:
            raise ValidationError(
                "A combination needs two distinct items", field="second", value=self.second
            )
        if self.first > self.second:
            first, second = self.second, self.first
            object.__setattr__(self, "first", first)
            object.__setattr__(self, "second", second)

    @property
    def items(self) -> Tuple[str, str]:
        return (self.first, self.second)

    def __iter__(self):
        return iter(self.items)

    def __str__(self) -> str:
        return f"({self.first}, {self.second})"


@dataclass(frozen=True)
class CombinationResult:
    """Fit and business metrics of one combination."""

    combination: Combination
    beta0: float
    beta1: float
    log_likelihood: float
    aic: float
    odds_ratio: float
    precision: float
    recall: float
    lift: float
    users_with_exposure: int
    conversion_rate_in_group: float
    overall_conversion_rate: float
    total_conversions: int

    def __post_init__(self):
        if self.log_likelihood > 0:
            raise ValueOutOfRangeError("log_likelihood", self.log_likelihood, max_value=0)
        for name in ("odds_ratio", "lift", "users_with_exposure", "total_conversions"):
            _check_non_negative(name, getattr(self, name))
        for name in (
            "precision",
            "recall",
            "conversion_rate_in_group",
            "overall_conversion_rate",
        ):
            _check_unit_interval(name, getattr(self, name))
        if math.isnan(self.aic):
            raise ValidationError("aic must be a number", field="aic")

    @property
    def expected_value(self) -> float:
        """Ranking score balancing association strength against conversions explained."""
        return self.lift * self.total_conversions
