#!/usr/bin/env python3
"""
Fit Evaluation Script for Conversion Pattern Mining
Re-fits the top combinations with scikit-learn and reports how far the
Newton-Raphson coefficients and exposure metrics drift from it.
"""
import os
import sys
import json
import logging
from pathlib import Path

import numpy as np
from sklearn.linear_model import LogisticRegression
from sklearn.metrics import precision_score, recall_score

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from conversion_patterns.config import MiningConfig
from conversion_patterns.data_processor import load_engagement
from conversion_patterns.exposure_index import ExposureIndex
from conversion_patterns.miner import ConversionPatternMiner
from conversion_patterns.storage import MemoryResultStore

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# effectively unpenalized
REFERENCE_C = 1e10


def evaluate_fit(data_path: str, analysis_type: str, top_n: int = 20) -> dict:
    """
    Compare the top combinations against a reference logistic regression.

    Args:
        data_path: Engagement CSV export
        analysis_type: Analysis type whose column layout the file uses
        top_n: Number of ranked combinations to check

    Returns:
        Metrics dictionary
    """
    df, _ = load_engagement(data_path, analysis_type)
    index = ExposureIndex.from_frame(df)
    users = index.users
    y = index.outcomes()

    miner = ConversionPatternMiner(MiningConfig(min_population=1), MemoryResultStore())
    run = miner.mine(analysis_type, df)

    checks = []
    for entry in run.ranked[:top_n]:
        result = entry.result
        x = np.array([u.is_exposed_to(result.combination.items) for u in users])

        # both groups need both outcomes, otherwise the MLE does not exist
        groups = [y[x], y[~x]]
        if any(len(g) == 0 or g.all() or not g.any() for g in groups):
            logger.info(f"Skipping separated combination {result.combination}")
            continue

        reference = LogisticRegression(C=REFERENCE_C, max_iter=1000)
        reference.fit(x.reshape(-1, 1).astype(float), y)
        checks.append({
            "combination": str(result.combination),
            "beta0_diff": abs(float(reference.intercept_[0]) - result.beta0),
            "beta1_diff": abs(float(reference.coef_[0][0]) - result.beta1),
            "precision_diff": abs(float(precision_score(y, x, zero_division=0)) - result.precision),
            "recall_diff": abs(float(recall_score(y, x, zero_division=0)) - result.recall),
        })

    metrics = {
        "analysis_type": analysis_type,
        "users": len(users),
        "combinations_ranked": len(run.ranked),
        "combinations_checked": len(checks),
        "max_beta_diff": max(
            [max(c["beta0_diff"], c["beta1_diff"]) for c in checks], default=0.0
        ),
        "max_metric_diff": max(
            [max(c["precision_diff"], c["recall_diff"]) for c in checks], default=0.0
        ),
        "checks": checks,
    }

    os.makedirs("metrics", exist_ok=True)
    with open("metrics/fit_evaluation.json", 'w') as f:
        json.dump(metrics, f, indent=2)
    logger.info("Fit evaluation saved to metrics/fit_evaluation.json")

    print("\n" + "=" * 50)
    print("FIT EVALUATION")
    print("=" * 50)
    print(f"Users:                 {metrics['users']}")
    print(f"Combinations checked:  {metrics['combinations_checked']}")
    print(f"Max coefficient diff:  {metrics['max_beta_diff']:.2e}")
    print(f"Max metric diff:       {metrics['max_metric_diff']:.2e}")
    print("=" * 50)

    return metrics


def main():
    """Main entry point."""
    data_path = os.environ.get("DATA_PATH", "data/engagement.csv")
    analysis_type = os.environ.get("ANALYSIS_TYPE", "subscription")

    metrics = evaluate_fit(data_path, analysis_type)

    if metrics['max_beta_diff'] > 1e-3 or metrics['max_metric_diff'] > 1e-9:
        logger.warning("Fitted values drift from the reference implementation")
        sys.exit(1)


if __name__ == "__main__":
    main()
