"""
Combination scoring: turns a fitted model and the per-user vectors into metrics.
"""

import math

import numpy as np

from .logistic import LogisticFit
from .models import Combination, CombinationResult

# intercept + exposure coefficient
N_PARAMETERS = 2


def _safe_ratio(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator > 0 else 0.0


class CombinationScorer:
    """
    Builds the CombinationResult of one pair.

    AIC and odds ratio come from the logistic fit. Precision and recall treat
    the exposure flag itself as the prediction (exposed means predicted
    positive), independent of how well the logistic model fits.
    """

    def score(
        self,
        combination: Combination,
        fit: LogisticFit,
        exposed: np.ndarray,
        converted: np.ndarray,
        conversion_counts: np.ndarray,
    ) -> CombinationResult:
        exposed = np.asarray(exposed, dtype=bool)
        converted = np.asarray(converted, dtype=bool)
        n_users = len(converted)

        hits = exposed & converted
        tp = int(hits.sum())
        fp = int(exposed.sum()) - tp
        fn = int(converted.sum()) - tp

        users_with_exposure = tp + fp
        overall_rate = _safe_ratio(int(converted.sum()), n_users)
        group_rate = _safe_ratio(tp, users_with_exposure)

        return CombinationResult(
            combination=combination,
            beta0=fit.beta0,
            beta1=fit.beta1,
            log_likelihood=fit.log_likelihood,
            aic=2 * N_PARAMETERS - 2 * fit.log_likelihood,
            odds_ratio=math.exp(min(fit.beta1, 700.0)),
            precision=_safe_ratio(tp, tp + fp),
            recall=_safe_ratio(tp, tp + fn),
            lift=_safe_ratio(group_rate, overall_rate),
            users_with_exposure=users_with_exposure,
            conversion_rate_in_group=group_rate,
            overall_conversion_rate=overall_rate,
            total_conversions=int(np.asarray(conversion_counts)[hits].sum()),
        )
