"""
Ranking Pipeline
Filters scored combinations, ranks them by expected value, and prepares stored rows
plus a display-ready preview.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional

from .logging_config import get_logger
from .models import CombinationResult
from .schemas import CombinationPreview, CombinationRow

logger = get_logger(__name__)


@dataclass(frozen=True)
class RankedCombination:
    """A retained result and its 1-based rank."""

    rank: int
    result: CombinationResult


class RankingPipeline:
    """Filter, rank and shape combination results for one analysis type."""

    @staticmethod
    def has_signal(result: CombinationResult) -> bool:
        """Shared exposure that led to at least one conversion."""
        return result.users_with_exposure > 0 and result.total_conversions > 0

    def filter(self, results: Iterable[CombinationResult]) -> List[CombinationResult]:
        """Drop combinations with no shared exposure or no resulting conversions."""
        results = list(results)
        kept = [r for r in results if self.has_signal(r)]
        logger.info(f"Retained {len(kept)} of {len(results)} combinations with conversions")
        return kept

    def rank(self, results: Iterable[CombinationResult]) -> List[RankedCombination]:
        """
        Order by lift x total_conversions, highest first.

        ``sorted`` is stable, so equal scores keep their enumeration order.
        """
        ordered = sorted(results, key=lambda r: r.expected_value, reverse=True)
        return [RankedCombination(rank=i + 1, result=r) for i, r in enumerate(ordered)]

    def run(self, results: Iterable[CombinationResult]) -> List[RankedCombination]:
        return self.rank(self.filter(results))

    def to_rows(
        self,
        analysis_type: str,
        ranked: Iterable[RankedCombination],
        analyzed_at: datetime,
        display_names: Optional[Mapping[str, str]] = None,
        total_views: Optional[Mapping[str, float]] = None,
    ) -> List[CombinationRow]:
        """Rows for the result store; display names and views are enrichment only."""
        display_names = display_names or {}
        total_views = total_views or {}

        rows = []
        for entry in ranked:
            r = entry.result
            first, second = r.combination.items
            rows.append(
                CombinationRow(
                    analysis_type=analysis_type,
                    combination_rank=entry.rank,
                    value_1=first,
                    value_2=second,
                    display_name_1=display_names.get(first),
                    display_name_2=display_names.get(second),
                    total_views_1=total_views.get(first),
                    total_views_2=total_views.get(second),
                    log_likelihood=r.log_likelihood,
                    aic=r.aic,
                    odds_ratio=r.odds_ratio,
                    precision=r.precision,
                    recall=r.recall,
                    lift=r.lift,
                    users_with_exposure=r.users_with_exposure,
                    conversion_rate_in_group=r.conversion_rate_in_group,
                    overall_conversion_rate=r.overall_conversion_rate,
                    total_conversions=r.total_conversions,
                    analyzed_at=analyzed_at,
                )
            )
        return rows

    def preview(
        self,
        ranked: List[RankedCombination],
        top_n: int = 10,
        display_names: Optional[Dict[str, str]] = None,
    ) -> List[CombinationPreview]:
        """Top-N entries rounded for direct display."""
        display_names = display_names or {}
        preview = []
        for entry in ranked[:top_n]:
            r = entry.result
            first, second = r.combination.items
            preview.append(
                CombinationPreview(
                    rank=entry.rank,
                    value_1=first,
                    value_2=second,
                    display_name_1=display_names.get(first),
                    display_name_2=display_names.get(second),
                    aic=round(r.aic, 2),
                    odds_ratio=round(r.odds_ratio, 2),
                    lift=round(r.lift, 2),
                    conversion_rate_pct=round(r.conversion_rate_in_group * 100, 2),
                    users_exposed=r.users_with_exposure,
                    total_conversions=r.total_conversions,
                )
            )
        return preview
