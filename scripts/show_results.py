#!/usr/bin/env python3
"""
Print the stored combination ranking of an analysis type.
"""
import sys
import argparse
from pathlib import Path

import pandas as pd

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from conversion_patterns.config import get_config
from conversion_patterns.storage import SQLiteResultStore

COLUMNS = [
    'combination_rank',
    'value_1',
    'value_2',
    'display_name_1',
    'display_name_2',
    'lift',
    'odds_ratio',
    'aic',
    'users_with_exposure',
    'total_conversions',
]


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Show stored conversion patterns")
    parser.add_argument("analysis_type")
    parser.add_argument("--store-path", default=get_config().storage.path)
    parser.add_argument("--table", default=get_config().storage.table)
    parser.add_argument("--limit", type=int, default=20)
    args = parser.parse_args(argv)

    store = SQLiteResultStore(args.store_path, args.table)
    rows = store.get_results(args.analysis_type, args.limit)
    if not rows:
        print(f"No stored results for '{args.analysis_type}'")
        return 1

    df = pd.DataFrame([row.model_dump() for row in rows])
    print(f"Analyzed at {rows[0].analyzed_at.isoformat()}")
    print(df[COLUMNS].round(3).to_string(index=False))
    return 0


if __name__ == "__main__":
    sys.exit(main())
