"""
Conversion Pattern Miner
Main interface: engagement rows in, ranked and persisted combination set out.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

import numpy as np

from .candidates import CandidateSelector, CombinationEnumerator
from .config import MiningConfig, get_config
from .data_processor import EngagementData, EngagementDataProcessor
from .exceptions import PersistenceError, ValidationError, ValueOutOfRangeError
from .exposure_index import ExposureIndex
from .logging_config import LogMetrics, get_logger
from .logistic import LogisticFitter
from .models import Combination, CombinationResult
from .ranking import RankedCombination, RankingPipeline
from .schemas import AnalysisSummary, CombinationRow, RunStatus
from .scoring import CombinationScorer
from .storage import ResultStore, get_result_store

logger = get_logger(__name__)


@dataclass
class MiningRun:
    """
    Everything one run produced, before persistence.

    Partial runs keep their raw ``results`` so that consecutive slices can be
    combined with ``ConversionPatternMiner.merge_runs``.
    """

    summary: AnalysisSummary
    results: List[CombinationResult] = field(default_factory=list)
    ranked: List[RankedCombination] = field(default_factory=list)
    rows: List[CombinationRow] = field(default_factory=list)
    start_offset: int = 0
    display_names: Dict[str, str] = field(default_factory=dict)
    total_views: Dict[str, float] = field(default_factory=dict)

    @property
    def complete(self) -> bool:
        return self.summary.status == RunStatus.COMPLETED


class _EvaluationContext:
    """Read-only per-run vectors shared by every combination evaluation."""

    def __init__(self, index: ExposureIndex, candidates: List[str]):
        self.candidates = candidates
        self.matrix = index.exposure_matrix(candidates)
        self.converted = index.outcomes()
        self.conversion_counts = index.conversion_counts()


class ConversionPatternMiner:
    """
    Searches candidate item pairs for joint exposures associated with conversion.

    One logistic model is fitted per pair (exposed to both items vs. not), the
    pair is scored, and the retained pairs replace the stored set of the
    analysis type.
    """

    def __init__(
        self,
        config: Optional[MiningConfig] = None,
        store: Optional[ResultStore] = None,
    ):
        """
        Initialize the miner.

        Args:
            config: Mining settings. Uses the global configuration if not provided.
            store: Destination of ranked rows. Built from the global storage
                settings if not provided.
        """
        self.config = config or get_config().mining
        self.store = store if store is not None else get_result_store()

        if self.config.workers < 1:
            raise ValueOutOfRangeError("workers", self.config.workers, min_value=1)

        self.selector = CandidateSelector(self.config.min_users, self.config.max_candidates)
        self.fitter = LogisticFitter(
            max_iter=self.config.max_iterations,
            tol=self.config.tolerance,
            singular_tol=self.config.singular_tolerance,
        )
        self.scorer = CombinationScorer()
        self.ranking = RankingPipeline()
        self.metrics = LogMetrics(logger)

    def evaluate(self, combination: Combination, exposed: np.ndarray, context: _EvaluationContext) -> CombinationResult:
        """Fit and score one combination given its per-user exposure flags."""
        fit = self.fitter.fit(exposed, context.converted)
        if not fit.converged and logger.isEnabledFor(logging.DEBUG):
            fit_logger = logger.with_context(combination=str(combination), stage="fit")
            if fit.singular:
                fit_logger.debug(
                    f"Near-singular Hessian for {combination} after {fit.n_iter} iterations; "
                    f"keeping beta0={fit.beta0:.4f}, beta1={fit.beta1:.4f}"
                )
            else:
                fit_logger.debug(
                    f"No convergence for {combination} within {self.fitter.max_iter} iterations"
                )
        return self.scorer.score(
            combination, fit, exposed, context.converted, context.conversion_counts
        )

    def _evaluate_pair(self, pair: Tuple[int, int], context: _EvaluationContext) -> CombinationResult:
        i, j = pair
        combination = Combination(context.candidates[i], context.candidates[j])
        exposed = context.matrix[:, i] & context.matrix[:, j]
        return self.evaluate(combination, exposed, context)

    def _evaluate_all(
        self, pairs: Iterator[Tuple[int, int]], context: _EvaluationContext
    ) -> Iterator[CombinationResult]:
        if self.config.workers == 1:
            for pair in pairs:
                yield self._evaluate_pair(pair, context)
            return

        # map() keeps enumeration order whatever the worker count
        with ThreadPoolExecutor(max_workers=self.config.workers) as executor:
            yield from executor.map(lambda p: self._evaluate_pair(p, context), pairs)

    def mine(
        self,
        analysis_type: str,
        data: EngagementData,
        max_combinations: Optional[int] = None,
        start_offset: int = 0,
    ) -> MiningRun:
        """
        Run the search without touching the result store.

        Args:
            analysis_type: Opaque key of the analysis (e.g. 'subscription').
            data: Engagement rows as a DataFrame or an iterable of mappings.
            max_combinations: Step budget; evaluation stops after this many pairs.
            start_offset: Number of pairs to skip, to resume a budgeted run.

        Returns:
            MiningRun with the summary, raw results, ranking and stored-row form.
        """
        if not analysis_type or not str(analysis_type).strip():
            raise ValidationError("analysis_type must be a non-empty string", field="analysis_type")
        if max_combinations is not None and max_combinations < 0:
            raise ValueOutOfRangeError("max_combinations", max_combinations, min_value=0)
        if start_offset < 0:
            raise ValueOutOfRangeError("start_offset", start_offset, min_value=0)

        analyzed_at = datetime.now(timezone.utc)
        logger.info(f"Starting {analysis_type} pattern analysis...")

        processor = EngagementDataProcessor()
        frame = processor.prepare(data, analysis_type)
        index = ExposureIndex.from_frame(frame)

        summary = AnalysisSummary(
            analysis_type=analysis_type,
            status=RunStatus.INSUFFICIENT_DATA,
            analyzed_at=analyzed_at,
            rows_loaded=len(frame),
            rows_skipped=processor.rows_skipped,
            users_analyzed=len(index),
        )

        if len(index) < self.config.min_population:
            summary.message = (
                f"Insufficient data for pattern analysis "
                f"(need {self.config.min_population}+ users, have {len(index)})"
            )
            logger.warning(summary.message)
            return MiningRun(summary=summary)

        candidates = self.selector.select(index)
        if len(candidates) < 2:
            summary.message = "Insufficient items for pattern analysis (need 2+ with engagement)"
            logger.warning(summary.message)
            return MiningRun(summary=summary)

        enumerator = CombinationEnumerator(candidates)
        total = len(enumerator)
        summary.candidates_considered = len(candidates)
        summary.combinations_total = total
        self.metrics.log_run_started(analysis_type, len(index), len(candidates), total)

        context = _EvaluationContext(index, candidates)
        results: List[CombinationResult] = []
        kept = 0
        for result in self._evaluate_all(
            enumerator.index_pairs(start_offset, max_combinations), context
        ):
            results.append(result)
            if self.ranking.has_signal(result):
                kept += 1
            if len(results) % max(1, self.config.progress_interval) == 0:
                self.metrics.log_progress(analysis_type, start_offset + len(results), total, kept)

        ranked = self.ranking.run(results)
        display_names = processor.display_names(frame)
        total_views = processor.total_views(frame)
        rows = self.ranking.to_rows(analysis_type, ranked, analyzed_at, display_names, total_views)

        reached = start_offset + len(results)
        summary.combinations_evaluated = len(results)
        summary.combinations_retained = len(ranked)
        summary.top_combinations = self.ranking.preview(
            ranked, self.config.top_n_preview, display_names
        )
        if start_offset == 0 and reached >= total:
            summary.status = RunStatus.COMPLETED
            summary.message = f"{analysis_type} pattern analysis completed successfully"
        else:
            summary.status = RunStatus.PARTIAL
            summary.resume_offset = reached if reached < total else None
            summary.message = (
                f"Evaluated combinations {start_offset}..{reached} of {total}; "
                "stored results left unchanged"
            )

        return MiningRun(
            summary=summary,
            results=results,
            ranked=ranked,
            rows=rows,
            start_offset=start_offset,
            display_names=display_names,
            total_views=total_views,
        )

    def analyze(
        self,
        analysis_type: str,
        data: EngagementData,
        max_combinations: Optional[int] = None,
        start_offset: int = 0,
    ) -> AnalysisSummary:
        """
        Mine ``data`` and replace the stored set of ``analysis_type``.

        Only a run that covered every combination is persisted. Insufficient
        data and budget-limited runs leave the stored set untouched; collect
        the slices returned by ``mine`` and pass them to ``merge_runs`` instead.

        Raises:
            PersistenceError: the delete or insert failed; the run did not succeed.
        """
        started = time.time()
        run = self.mine(analysis_type, data, max_combinations, start_offset)
        summary = run.summary

        if run.complete:
            summary.combinations_stored = self._persist(analysis_type, run.rows)

        self.metrics.log_run_completed(
            analysis_type,
            summary.status.value,
            summary.combinations_evaluated,
            summary.combinations_stored,
            time.time() - started,
        )
        return summary

    def merge_runs(self, runs: Sequence[MiningRun]) -> AnalysisSummary:
        """
        Rank and persist the slices of a budgeted search as one result set.

        The slices must belong to the same analysis type and data, and their
        offsets must cover every combination exactly once. Results keep
        enumeration order, so the ranking matches a single full run.

        Raises:
            ValidationError: the slices are incompatible, overlap or leave gaps.
            PersistenceError: the delete or insert failed.
        """
        started = time.time()
        if not runs:
            raise ValidationError("No runs to merge", field="runs")

        runs = sorted(runs, key=lambda r: r.start_offset)
        first = runs[0].summary
        analysis_type = first.analysis_type

        covered = 0
        for run in runs:
            if run.summary.status == RunStatus.INSUFFICIENT_DATA:
                raise ValidationError(
                    "Cannot merge a run without enough data", field="status", value=run.summary.status.value
                )
            if (
                run.summary.analysis_type != analysis_type
                or run.summary.combinations_total != first.combinations_total
            ):
                raise ValidationError("Runs belong to different analyses", field="runs")
            if run.start_offset != covered:
                raise ValidationError(
                    f"Slices do not line up at combination {covered}",
                    field="start_offset",
                    value=run.start_offset,
                )
            covered += run.summary.combinations_evaluated

        if covered != first.combinations_total:
            raise ValidationError(
                f"Slices cover {covered} of {first.combinations_total} combinations", field="runs"
            )

        ranked = self.ranking.run([r for run in runs for r in run.results])
        rows = self.ranking.to_rows(
            analysis_type, ranked, first.analyzed_at, runs[0].display_names, runs[0].total_views
        )
        summary = first.model_copy(
            update={
                "status": RunStatus.COMPLETED,
                "message": f"{analysis_type} pattern analysis completed from {len(runs)} slices",
                "combinations_evaluated": covered,
                "combinations_retained": len(ranked),
                "resume_offset": None,
                "top_combinations": self.ranking.preview(
                    ranked, self.config.top_n_preview, runs[0].display_names
                ),
            }
        )
        summary.combinations_stored = self._persist(analysis_type, rows)

        self.metrics.log_run_completed(
            analysis_type,
            summary.status.value,
            summary.combinations_evaluated,
            summary.combinations_stored,
            time.time() - started,
        )
        return summary

    def _persist(self, analysis_type: str, rows: List[CombinationRow]) -> int:
        try:
            return self.store.replace_results(analysis_type, rows)
        except PersistenceError as exc:
            self.metrics.log_error(
                type(exc).__name__, exc.message, {"analysis_type": analysis_type, "stage": "persist"}
            )
            raise

    def get_stored_results(self, analysis_type: str, limit: Optional[int] = None) -> List[CombinationRow]:
        """Ranked rows of the most recent completed run of ``analysis_type``."""
        return self.store.get_results(analysis_type, limit)


def analyze_engagement(
    analysis_type: str,
    data: EngagementData,
    config: Optional[MiningConfig] = None,
    store: Optional[ResultStore] = None,
) -> Dict:
    """
    Convenience function to run one analysis and return the summary as a dict.
    """
    miner = ConversionPatternMiner(config, store)
    return miner.analyze(analysis_type, data).model_dump(mode="json")
