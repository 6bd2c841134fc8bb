"""
Pydantic Schemas for Conversion Pattern Mining
Validation and serialization models for engagement input, stored rows and run summaries.
"""

from datetime import datetime
from enum import Enum
import numbers
from typing import Any, List, Optional

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, field_validator

_TRUE_STRINGS = {"true", "t", "yes", "y"}


def parse_flag(value: Any) -> bool:
    """
    Read a conversion flag that may arrive as a bool, a number or text.

    Numbers (and numeric text such as "1.0") are true when non-zero. Missing
    values are false.
    """
    if value is None:
        return False
    if isinstance(value, (bool, np.bool_)):
        return bool(value)
    if isinstance(value, numbers.Number):
        return bool(value == value and value != 0)

    text = str(value).strip().lower()
    if text in ("", "nan", "none", "null"):
        return False
    try:
        return float(text) != 0
    except ValueError:
        return text in _TRUE_STRINGS


class RunStatus(str, Enum):
    """Outcome of an analysis run."""

    COMPLETED = "completed"
    PARTIAL = "partial"
    INSUFFICIENT_DATA = "insufficient_data"


# Base Models
class BaseSchema(BaseModel):
    """Base schema with common configuration."""

    model_config = ConfigDict(
        from_attributes=True, populate_by_name=True, str_strip_whitespace=True
    )


# Engagement Schemas
class EngagementRow(BaseSchema):
    """One aggregated (user, item) engagement record."""

    user_id: str = Field(..., min_length=1)
    item_id: Optional[str] = None
    view_count: float = Field(default=0, ge=0)
    converted: bool = False
    conversion_count: int = Field(default=0, ge=0)
    display_name: Optional[str] = None

    @field_validator("user_id", "item_id", "display_name", mode="before")
    @classmethod
    def coerce_identifier(cls, v):
        if v is None:
            return v
        if isinstance(v, float) and v != v:  # NaN from pandas
            return None
        return str(v)

    @field_validator("view_count", "conversion_count", mode="before")
    @classmethod
    def fill_missing_count(cls, v):
        if v is None or (isinstance(v, float) and v != v):
            return 0
        return v

    @field_validator("converted", mode="before")
    @classmethod
    def parse_converted(cls, v):
        return parse_flag(v)


# Result Schemas
class CombinationRow(BaseSchema):
    """A ranked combination as persisted for one analysis type."""

    analysis_type: str = Field(..., min_length=1)
    combination_rank: int = Field(..., ge=1)
    value_1: str
    value_2: str
    display_name_1: Optional[str] = None
    display_name_2: Optional[str] = None
    total_views_1: Optional[float] = None
    total_views_2: Optional[float] = None
    log_likelihood: float = Field(..., le=0)
    aic: float
    odds_ratio: float = Field(..., ge=0)
    precision: float = Field(..., ge=0, le=1)
    recall: float = Field(..., ge=0, le=1)
    lift: float = Field(..., ge=0)
    users_with_exposure: int = Field(..., ge=0)
    conversion_rate_in_group: float = Field(..., ge=0, le=1)
    overall_conversion_rate: float = Field(..., ge=0, le=1)
    total_conversions: int = Field(..., ge=0)
    analyzed_at: datetime


class CombinationPreview(BaseSchema):
    """Display-ready entry of the top-N preview."""

    rank: int
    value_1: str
    value_2: str
    display_name_1: Optional[str] = None
    display_name_2: Optional[str] = None
    aic: float
    odds_ratio: float
    lift: float
    conversion_rate_pct: float
    users_exposed: int
    total_conversions: int


class AnalysisSummary(BaseSchema):
    """Summary of one analysis run."""

    analysis_type: str
    status: RunStatus
    message: str = ""
    analyzed_at: datetime
    rows_loaded: int = 0
    rows_skipped: int = 0
    users_analyzed: int = 0
    candidates_considered: int = 0
    combinations_total: int = 0
    combinations_evaluated: int = 0
    combinations_retained: int = 0
    combinations_stored: int = 0
    resume_offset: Optional[int] = None
    top_combinations: List[CombinationPreview] = Field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.status == RunStatus.COMPLETED
