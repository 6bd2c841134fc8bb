"""
Unit and integration tests for the conversion pattern mining pipeline.
"""

import math
import sqlite3
import sys
from datetime import datetime, timezone
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from conversion_patterns.candidates import CandidateSelector, CombinationEnumerator
from conversion_patterns.config import MiningConfig
from conversion_patterns.data_processor import EngagementDataProcessor, load_engagement
from conversion_patterns.exceptions import (
    MissingRequiredFieldError,
    PersistenceError,
    ValidationError,
    ValueOutOfRangeError,
)
from conversion_patterns.exposure_index import ExposureIndex
from conversion_patterns.logistic import LogisticFitter
from conversion_patterns.miner import ConversionPatternMiner, analyze_engagement
from conversion_patterns.models import Combination, CombinationResult, UserRecord
from conversion_patterns.ranking import RankingPipeline
from conversion_patterns.schemas import RunStatus
from conversion_patterns.scoring import CombinationScorer
from conversion_patterns.storage import MemoryResultStore, SQLiteResultStore


def engagement(user_id, item_id, views=1, converted=False, count=0, name=None):
    return {
        "user_id": user_id,
        "item_id": item_id,
        "view_count": views,
        "converted": converted,
        "conversion_count": count,
        "display_name": name,
    }


def three_item_rows():
    """Users 1-2 saw A and B and converted, user 3 saw A and B only, users 4-6 saw C."""
    rows = []
    for user in ("u1", "u2"):
        rows += [engagement(user, "A", 2, True, 1), engagement(user, "B", 1, True, 1)]
    rows += [engagement("u3", "A", 1), engagement("u3", "B", 3)]
    for user in ("u4", "u5", "u6"):
        rows.append(engagement(user, "C", 1))
    return rows


def two_pair_rows():
    """A+B viewers both convert, one of two C+D viewers converts."""
    return [
        engagement("u1", "A", converted=True, count=1),
        engagement("u1", "B", converted=True, count=1),
        engagement("u2", "A", converted=True, count=2),
        engagement("u2", "B", converted=True, count=2),
        engagement("u3", "C", converted=True, count=1),
        engagement("u3", "D", converted=True, count=1),
        engagement("u4", "C"),
        engagement("u4", "D"),
        engagement("u5", "A"),
        engagement("u6", "C"),
    ]


def make_result(first, second, lift, total_conversions, users_with_exposure=3):
    return CombinationResult(
        combination=Combination(first, second),
        beta0=0.0,
        beta1=0.0,
        log_likelihood=-1.0,
        aic=6.0,
        odds_ratio=1.0,
        precision=0.5,
        recall=0.5,
        lift=lift,
        users_with_exposure=users_with_exposure,
        conversion_rate_in_group=0.5,
        overall_conversion_rate=0.25,
        total_conversions=total_conversions,
    )


@pytest.fixture
def small_config():
    return MiningConfig(min_population=1)


@pytest.fixture
def store():
    return MemoryResultStore()


class TestModels:
    """Tests for the domain records."""

    def test_combination_is_canonical(self):
        assert Combination("B", "A") == Combination("A", "B")
        assert Combination("B", "A").items == ("A", "B")
        assert str(Combination("B", "A")) == "(A, B)"

    def test_combination_requires_distinct_items(self):
        with pytest.raises(ValidationError):
            Combination("A", "A")

    def test_user_record_conversion_consistency(self):
        with pytest.raises(ValidationError):
            UserRecord("u1", frozenset({"A"}), converted=False, conversion_count=2)
        with pytest.raises(ValidationError):
            UserRecord("u1", frozenset({"A"}), converted=True, conversion_count=0)

    def test_user_record_exposure(self):
        user = UserRecord("u1", {"A", "B"}, converted=True, conversion_count=1)
        assert isinstance(user.exposed_items, frozenset)
        assert user.is_exposed_to(("A", "B"))
        assert not user.is_exposed_to(("A", "C"))

    def test_result_rejects_positive_log_likelihood(self):
        with pytest.raises(ValueOutOfRangeError):
            CombinationResult(
                combination=Combination("A", "B"),
                beta0=0.0,
                beta1=0.0,
                log_likelihood=0.5,
                aic=3.0,
                odds_ratio=1.0,
                precision=0.0,
                recall=0.0,
                lift=0.0,
                users_with_exposure=0,
                conversion_rate_in_group=0.0,
                overall_conversion_rate=0.0,
                total_conversions=0,
            )

    def test_result_rejects_out_of_range_precision(self):
        with pytest.raises(ValueOutOfRangeError):
            CombinationResult(
                combination=Combination("A", "B"),
                beta0=0.0,
                beta1=0.0,
                log_likelihood=-1.0,
                aic=6.0,
                odds_ratio=1.0,
                precision=1.5,
                recall=0.0,
                lift=0.0,
                users_with_exposure=0,
                conversion_rate_in_group=0.0,
                overall_conversion_rate=0.0,
                total_conversions=0,
            )


class TestEngagementDataProcessor:
    """Tests for loading and cleaning engagement rows."""

    def test_maps_source_columns(self):
        df = pd.DataFrame(
            {
                "distinct_id": ["u1", "u1"],
                "creator_id": ["c1", "c2"],
                "creator_username": ["alice", "bob"],
                "profile_view_count": ["3", "0"],
                "did_subscribe": ["true", "true"],
                "subscription_count": ["2", "2"],
            }
        )
        processor = EngagementDataProcessor()
        cleaned = processor.prepare(df, "subscription")

        assert list(cleaned["item_id"]) == ["c1", "c2"]
        assert cleaned["converted"].all()
        assert list(cleaned["view_count"]) == [3.0, 0.0]
        assert processor.display_names(cleaned) == {"c1": "alice", "c2": "bob"}

    def test_rows_without_user_are_skipped(self):
        rows = three_item_rows() + [engagement(None, "A"), {"item_id": "B"}]
        processor = EngagementDataProcessor()
        cleaned = processor.prepare(rows)

        assert processor.rows_skipped == 2
        assert cleaned["user_id"].nunique() == 6

    def test_missing_item_column_raises(self):
        df = pd.DataFrame({"user_id": ["u1"], "view_count": [1]})
        with pytest.raises(MissingRequiredFieldError):
            EngagementDataProcessor().prepare(df)

    def test_negative_counts_are_clipped(self):
        df = pd.DataFrame([engagement("u1", "A", views=-4)])
        cleaned = EngagementDataProcessor().prepare(df)
        assert cleaned["view_count"].iloc[0] == 0

    def test_total_views(self):
        processor = EngagementDataProcessor()
        cleaned = processor.prepare(three_item_rows())
        assert processor.total_views(cleaned) == {"A": 5.0, "B": 5.0, "C": 3.0}

    def test_load_engagement_keeps_ids_as_strings(self, tmp_path):
        path = tmp_path / "engagement.csv"
        pd.DataFrame(
            {
                "distinct_id": ["001", "002"],
                "portfolio_ticker": ["007", "7"],
                "pdp_view_count": [1, 1],
                "did_copy": [False, True],
                "copy_count": [0, 1],
            }
        ).to_csv(path, index=False)

        df, processor = load_engagement(str(path), "copy")

        assert set(df["item_id"]) == {"007", "7"}
        assert list(df["user_id"]) == ["001", "002"]
        assert processor.validate_data_quality(df)["converted_users"] == 1

    def test_float_flag_column(self):
        # a bool column with a gap arrives as float64
        df = pd.DataFrame(
            {
                "user_id": ["u1", "u2"],
                "item_id": ["A", "A"],
                "view_count": [1, 1],
                "converted": [1.0, np.nan],
                "conversion_count": [0, 0],
            }
        )
        cleaned = EngagementDataProcessor().prepare(df)
        by_id = {u.user_id: u for u in ExposureIndex.from_frame(cleaned)}

        assert list(cleaned["converted"]) == [True, False]
        assert by_id["u1"].converted and by_id["u1"].conversion_count == 1
        assert not by_id["u2"].converted

    def test_numeric_text_flags_from_csv(self, tmp_path):
        path = tmp_path / "engagement.csv"
        path.write_text(
            "distinct_id,portfolio_ticker,pdp_view_count,did_copy,copy_count\n"
            "u1,AAPL,1,1.0,2\n"
            "u2,AAPL,1,,0\n"
            "u3,MSFT,1,0.0,0\n"
        )

        df, _ = load_engagement(str(path), "copy")

        assert list(df["converted"]) == [True, False, False]
        assert list(df["conversion_count"]) == [2, 0, 0]

    def test_numeric_text_flags_in_mapping_rows(self):
        rows = [
            engagement("u1", "A", converted="1.0", count=1),
            engagement("u2", "A", converted="0"),
            engagement("u3", "A", converted=1.0, count=1),
            engagement("u4", "A", converted="yes", count=1),
        ]
        processor = EngagementDataProcessor()
        cleaned = processor.prepare(rows)

        assert processor.rows_skipped == 0
        assert list(cleaned["converted"]) == [True, False, True, True]


class TestExposureIndex:
    """Tests for per-user exposure sets."""

    def test_zero_views_are_not_exposure(self):
        rows = [engagement("u1", "A", views=0), engagement("u1", "B", views=2)]
        index = ExposureIndex.from_frame(EngagementDataProcessor().prepare(rows))
        assert index.users[0].exposed_items == frozenset({"B"})

    def test_duplicate_pairs_are_summed(self):
        rows = [engagement("u1", "A", views=0), engagement("u1", "A", views=1)]
        index = ExposureIndex.from_frame(EngagementDataProcessor().prepare(rows))
        assert index.users[0].exposed_items == frozenset({"A"})

    def test_user_without_items_counts_toward_population(self):
        rows = three_item_rows() + [engagement("u7", None, views=0, converted=True, count=1)]
        index = ExposureIndex.from_frame(EngagementDataProcessor().prepare(rows))

        assert len(index) == 7
        assert int(index.outcomes().sum()) == 3
        assert index.item_user_counts() == {"A": 3, "B": 3, "C": 3}

    def test_inconsistent_outcomes_are_reconciled(self):
        rows = [
            engagement("u1", "A", converted=False, count=2),
            engagement("u2", "A", converted=True, count=0),
        ]
        index = ExposureIndex.from_frame(EngagementDataProcessor().prepare(rows))
        by_id = {u.user_id: u for u in index}

        assert by_id["u1"].converted and by_id["u1"].conversion_count == 2
        assert by_id["u2"].converted and by_id["u2"].conversion_count == 1

    def test_exposure_matrix(self):
        index = ExposureIndex.from_frame(EngagementDataProcessor().prepare(three_item_rows()))
        matrix = index.exposure_matrix(["A", "C"])

        assert matrix.shape == (6, 2)
        assert matrix[:, 0].sum() == 3
        assert not (matrix[:, 0] & matrix[:, 1]).any()

    def test_empty_frame(self):
        index = ExposureIndex.from_frame(EngagementDataProcessor().prepare([]))
        assert len(index) == 0


class TestCandidateSelector:
    """Tests for candidate selection."""

    @pytest.fixture
    def index(self):
        rows = three_item_rows() + [engagement("u6", "A"), engagement("u1", "D")]
        return ExposureIndex.from_frame(EngagementDataProcessor().prepare(rows))

    def test_most_exposed_first(self, index):
        assert CandidateSelector().select(index) == ["A", "B", "C", "D"]

    def test_min_users_threshold(self, index):
        assert CandidateSelector(min_users=3).select(index) == ["A", "B", "C"]

    def test_cap_keeps_top_items(self, index):
        assert CandidateSelector(max_candidates=2).select(index) == ["A", "B"]

    def test_fewer_than_two_candidates(self, index):
        assert CandidateSelector(min_users=4).select(index) == []

    def test_invalid_settings(self):
        with pytest.raises(ValueOutOfRangeError):
            CandidateSelector(min_users=0)
        with pytest.raises(ValueOutOfRangeError):
            CandidateSelector(max_candidates=1)


class TestCombinationEnumerator:
    """Tests for pair enumeration."""

    def test_every_pair_once_in_order(self):
        enumerator = CombinationEnumerator(["w", "x", "y", "z"])
        pairs = [c.items for c in enumerator]

        assert len(enumerator) == 6
        assert pairs == [
            ("w", "x"), ("w", "y"), ("w", "z"), ("x", "y"), ("x", "z"), ("y", "z"),
        ]

    def test_pairs_are_canonical(self):
        pairs = list(CombinationEnumerator(["b", "a"]))
        assert pairs == [Combination("a", "b")]

    def test_can_be_consumed_twice(self):
        enumerator = CombinationEnumerator(["a", "b", "c"])
        assert list(enumerator) == list(enumerator)

    def test_start_and_limit(self):
        enumerator = CombinationEnumerator(["a", "b", "c", "d"])
        assert list(enumerator.index_pairs(start=2, limit=3)) == [(0, 3), (1, 2), (1, 3)]
        assert list(enumerator.index_pairs(start=3)) == [(1, 2), (1, 3), (2, 3)]
        assert list(enumerator.index_pairs(start=6)) == []

    def test_short_lists_have_no_pairs(self):
        assert len(CombinationEnumerator(["a"])) == 0
        assert list(CombinationEnumerator([])) == []


class TestLogisticFitter:
    """Tests for the Newton-Raphson fit."""

    @pytest.fixture
    def grouped_data(self):
        # 12/40 exposed and 6/60 unexposed users convert
        x = np.array([True] * 40 + [False] * 60)
        y = np.array([True] * 12 + [False] * 28 + [True] * 6 + [False] * 54)
        return x, y

    def test_matches_closed_form(self, grouped_data):
        fit = LogisticFitter().fit(*grouped_data)

        assert fit.converged
        assert not fit.singular
        assert fit.beta0 == pytest.approx(math.log(0.1 / 0.9), abs=1e-6)
        assert fit.beta1 == pytest.approx(math.log(0.3 / 0.7) - math.log(0.1 / 0.9), abs=1e-6)

        expected_ll = (
            12 * math.log(0.3) + 28 * math.log(0.7) + 6 * math.log(0.1) + 54 * math.log(0.9)
        )
        assert fit.log_likelihood == pytest.approx(expected_ll, rel=1e-6)

    def test_matches_sklearn(self, grouped_data):
        from sklearn.linear_model import LogisticRegression

        x, y = grouped_data
        reference = LogisticRegression(C=1e10, max_iter=1000, tol=1e-10)
        reference.fit(x.reshape(-1, 1).astype(float), y)
        fit = LogisticFitter().fit(x, y)

        assert fit.beta0 == pytest.approx(reference.intercept_[0], abs=1e-3)
        assert fit.beta1 == pytest.approx(reference.coef_[0][0], abs=1e-3)

    def test_fit_counts_equals_fit(self, grouped_data):
        fitter = LogisticFitter()
        assert fitter.fit(*grouped_data) == fitter.fit_counts(40, 12, 60, 6)

    def test_zero_variance_predictor(self):
        fit = LogisticFitter().fit_counts(0, 0, 10, 3)

        assert fit.singular
        assert not fit.converged
        assert fit.beta0 == 0.0 and fit.beta1 == 0.0
        assert fit.log_likelihood == pytest.approx(10 * math.log(0.5), rel=1e-6)

    def test_perfect_separation_terminates(self):
        fit = LogisticFitter().fit_counts(5, 5, 5, 0)

        assert math.isfinite(fit.beta0) and math.isfinite(fit.beta1)
        assert fit.beta1 > 5
        assert fit.log_likelihood <= 0
        assert fit.n_iter <= 20

    def test_iteration_cap(self):
        fit = LogisticFitter(max_iter=1).fit_counts(40, 12, 60, 6)
        assert fit.n_iter == 1
        assert not fit.converged


class TestCombinationScorer:
    """Tests for combination metrics."""

    @pytest.fixture
    def vectors(self):
        exposed = np.array([True, True, True, False, False, False])
        converted = np.array([True, True, False, False, False, False])
        counts = np.array([1, 3, 0, 0, 0, 0])
        return exposed, converted, counts

    def test_metrics(self, vectors):
        exposed, converted, counts = vectors
        fit = LogisticFitter().fit(exposed, converted)
        result = CombinationScorer().score(Combination("A", "B"), fit, exposed, converted, counts)

        assert result.users_with_exposure == 3
        assert result.total_conversions == 4
        assert result.precision == pytest.approx(2 / 3)
        assert result.recall == pytest.approx(1.0)
        assert result.conversion_rate_in_group == pytest.approx(2 / 3)
        assert result.overall_conversion_rate == pytest.approx(2 / 6)
        assert result.lift == pytest.approx(2.0)
        assert result.aic == pytest.approx(4 - 2 * fit.log_likelihood)
        assert result.odds_ratio == pytest.approx(math.exp(fit.beta1))

    def test_no_exposure(self, vectors):
        _, converted, counts = vectors
        exposed = np.zeros(6, dtype=bool)
        fit = LogisticFitter().fit(exposed, converted)
        result = CombinationScorer().score(Combination("A", "C"), fit, exposed, converted, counts)

        assert result.users_with_exposure == 0
        assert result.precision == 0.0
        assert result.recall == 0.0
        assert result.lift == 0.0
        assert result.total_conversions == 0

    def test_no_conversions(self, vectors):
        exposed, _, _ = vectors
        converted = np.zeros(6, dtype=bool)
        counts = np.zeros(6, dtype=int)
        fit = LogisticFitter().fit(exposed, converted)
        result = CombinationScorer().score(Combination("A", "B"), fit, exposed, converted, counts)

        assert result.overall_conversion_rate == 0.0
        assert result.lift == 0.0
        assert result.recall == 0.0


class TestRankingPipeline:
    """Tests for filtering and ranking."""

    def test_filters_results_without_signal(self):
        results = [
            make_result("A", "B", 2.0, 2),
            make_result("A", "C", 0.0, 0, users_with_exposure=0),
            make_result("B", "C", 1.5, 0, users_with_exposure=3),
        ]
        kept = RankingPipeline().filter(results)
        assert [r.combination for r in kept] == [Combination("A", "B")]

    def test_ranks_by_expected_value(self):
        results = [
            make_result("A", "B", 2.0, 2),
            make_result("A", "C", 1.0, 10),
            make_result("B", "C", 3.0, 3),
        ]
        ranked = RankingPipeline().run(results)

        assert [r.rank for r in ranked] == [1, 2, 3]
        assert [str(r.result.combination) for r in ranked] == ["(A, C)", "(B, C)", "(A, B)"]

    def test_ties_keep_enumeration_order(self):
        results = [make_result("C", "D", 1.0, 4), make_result("A", "B", 2.0, 2)]
        ranked = RankingPipeline().rank(results)
        assert [r.result.combination for r in ranked] == [Combination("C", "D"), Combination("A", "B")]

    def test_rows_and_preview(self):
        pipeline = RankingPipeline()
        ranked = pipeline.run([make_result("A", "B", 2.0, 2)])
        analyzed_at = datetime(2026, 1, 1, tzinfo=timezone.utc)

        rows = pipeline.to_rows("subscription", ranked, analyzed_at, {"A": "alice"}, {"B": 7.0})
        assert rows[0].combination_rank == 1
        assert rows[0].display_name_1 == "alice"
        assert rows[0].display_name_2 is None
        assert rows[0].total_views_2 == 7.0

        preview = pipeline.preview(ranked, top_n=5)
        assert preview[0].conversion_rate_pct == 50.0
        assert preview[0].users_exposed == 3


class TestConversionPatternMiner:
    """Integration tests for the full pipeline."""

    def test_three_item_scenario(self, small_config, store):
        miner = ConversionPatternMiner(small_config, store)
        summary = miner.analyze("subscription", three_item_rows())

        assert summary.status == RunStatus.COMPLETED
        assert summary.users_analyzed == 6
        assert summary.candidates_considered == 3
        assert summary.combinations_total == 3
        assert summary.combinations_evaluated == 3
        assert summary.combinations_stored == 1

        rows = store.get_results("subscription")
        assert len(rows) == 1
        row = rows[0]
        assert (row.value_1, row.value_2) == ("A", "B")
        assert row.users_with_exposure == 3
        assert row.total_conversions == 2
        assert row.conversion_rate_in_group == pytest.approx(2 / 3)
        assert row.overall_conversion_rate == pytest.approx(2 / 6)
        assert row.lift == pytest.approx(2.0)
        assert row.log_likelihood <= 0

    def test_mine_does_not_touch_store(self, small_config, store):
        run = ConversionPatternMiner(small_config, store).mine("subscription", three_item_rows())

        assert run.complete
        assert len(run.results) == 3
        assert len(run.rows) == 1
        assert store.count() == 0

    def test_second_run_replaces_first(self, small_config, store):
        miner = ConversionPatternMiner(small_config, store)
        miner.analyze("subscription", two_pair_rows())
        assert store.count("subscription") == 2

        miner.analyze("subscription", three_item_rows())
        rows = store.get_results("subscription")
        assert len(rows) == 1
        assert [r.combination_rank for r in rows] == [1]

    def test_analysis_types_are_independent(self, small_config, store):
        miner = ConversionPatternMiner(small_config, store)
        miner.analyze("subscription", two_pair_rows())
        miner.analyze("copy", three_item_rows())

        assert store.count("subscription") == 2
        assert store.count("copy") == 1

    def test_insufficient_users_leave_store_untouched(self, store):
        miner = ConversionPatternMiner(MiningConfig(), store)
        ConversionPatternMiner(MiningConfig(min_population=1), store).analyze(
            "subscription", two_pair_rows()
        )

        summary = miner.analyze("subscription", three_item_rows())

        assert summary.status == RunStatus.INSUFFICIENT_DATA
        assert not summary.success
        assert "need 50+ users" in summary.message
        assert store.count("subscription") == 2

    def test_single_candidate_is_insufficient(self, small_config, store):
        rows = [engagement("u1", "A"), engagement("u2", "A", converted=True, count=1)]
        summary = ConversionPatternMiner(small_config, store).analyze("copy", rows)

        assert summary.status == RunStatus.INSUFFICIENT_DATA
        assert summary.combinations_evaluated == 0

    def test_budgeted_run_is_partial(self, small_config, store):
        miner = ConversionPatternMiner(small_config, store)
        summary = miner.analyze("subscription", three_item_rows(), max_combinations=1)

        assert summary.status == RunStatus.PARTIAL
        assert summary.combinations_evaluated == 1
        assert summary.resume_offset == 1
        assert store.count() == 0

        resumed = miner.analyze("subscription", three_item_rows(), start_offset=1)
        assert resumed.status == RunStatus.PARTIAL
        assert resumed.combinations_evaluated == 2
        assert resumed.resume_offset is None

    def test_parallel_matches_sequential(self, store):
        rows = two_pair_rows() + three_item_rows()
        sequential = ConversionPatternMiner(MiningConfig(min_population=1), store).mine("copy", rows)
        parallel = ConversionPatternMiner(
            MiningConfig(min_population=1, workers=3), store
        ).mine("copy", rows)

        assert sequential.results == parallel.results
        assert [r.result for r in sequential.ranked] == [r.result for r in parallel.ranked]

    def test_source_layout_with_display_names(self, small_config, store):
        df = pd.DataFrame(three_item_rows()).drop(columns=["display_name"]).rename(
            columns={
                "user_id": "distinct_id",
                "item_id": "creator_id",
                "view_count": "profile_view_count",
                "converted": "did_subscribe",
                "conversion_count": "subscription_count",
            }
        )
        df["creator_username"] = df["creator_id"].str.lower()

        summary = ConversionPatternMiner(small_config, store).analyze("subscription", df)
        row = store.get_results("subscription")[0]

        assert summary.top_combinations[0].display_name_1 == "a"
        assert row.display_name_2 == "b"
        assert row.total_views_1 == 5.0
        assert row.total_views_2 == 5.0

    def test_persistence_failure_is_reported(self, small_config):
        class FailingStore(MemoryResultStore):
            def _replace(self, analysis_type, rows):
                raise PersistenceError(analysis_type, "insert")

        with pytest.raises(PersistenceError):
            ConversionPatternMiner(small_config, FailingStore()).analyze(
                "subscription", three_item_rows()
            )

    def test_sqlite_failure_rolls_back(self, small_config, tmp_path):
        class BrokenInsertStore(SQLiteResultStore):
            def _insert_rows(self, conn, rows):
                raise sqlite3.OperationalError("disk I/O error")

        path = str(tmp_path / "results.db")
        ConversionPatternMiner(small_config, SQLiteResultStore(path)).analyze(
            "subscription", two_pair_rows()
        )

        with pytest.raises(PersistenceError) as exc_info:
            ConversionPatternMiner(small_config, BrokenInsertStore(path)).analyze(
                "subscription", three_item_rows()
            )

        assert exc_info.value.details["operation"] == "insert"
        assert SQLiteResultStore(path).count("subscription") == 2

    def test_invalid_arguments(self, small_config, store):
        miner = ConversionPatternMiner(small_config, store)
        with pytest.raises(ValidationError):
            miner.analyze("", three_item_rows())
        with pytest.raises(ValueOutOfRangeError):
            miner.analyze("subscription", three_item_rows(), start_offset=-1)
        with pytest.raises(ValueOutOfRangeError):
            ConversionPatternMiner(MiningConfig(workers=0), store)

    def test_analyze_engagement_returns_dict(self, small_config, store):
        summary = analyze_engagement("subscription", three_item_rows(), small_config, store)

        assert summary["status"] == "completed"
        assert summary["top_combinations"][0]["lift"] == 2.0
        assert summary["top_combinations"][0]["total_conversions"] == 2

    def test_merged_slices_match_full_run(self, small_config, store):
        rows = two_pair_rows()
        miner = ConversionPatternMiner(small_config, store)
        full = miner.mine("subscription", rows)
        slices = [
            miner.mine("subscription", rows, start_offset=4),
            miner.mine("subscription", rows, max_combinations=2),
            miner.mine("subscription", rows, start_offset=2, max_combinations=2),
        ]

        summary = miner.merge_runs(slices)

        assert summary.status == RunStatus.COMPLETED
        assert summary.combinations_evaluated == 6
        assert summary.resume_offset is None
        assert summary.combinations_stored == 2
        stored = store.get_results("subscription")
        expected = full.rows
        assert [(r.combination_rank, r.value_1, r.value_2, r.lift) for r in stored] == [
            (r.combination_rank, r.value_1, r.value_2, r.lift) for r in expected
        ]

    def test_merge_rejects_gaps(self, small_config, store):
        miner = ConversionPatternMiner(small_config, store)
        slices = [
            miner.mine("subscription", two_pair_rows(), max_combinations=2),
            miner.mine("subscription", two_pair_rows(), start_offset=3),
        ]

        with pytest.raises(ValidationError):
            miner.merge_runs(slices)
        assert store.count() == 0

    def test_merge_rejects_incomplete_coverage(self, small_config, store):
        miner = ConversionPatternMiner(small_config, store)
        with pytest.raises(ValidationError):
            miner.merge_runs([miner.mine("subscription", two_pair_rows(), max_combinations=5)])
        with pytest.raises(ValidationError):
            miner.merge_runs([])
