#!/usr/bin/env python3
"""
Analysis Script for Conversion Pattern Mining
Loads an engagement export, mines item pairs and replaces the stored result set.
"""
import os
import sys
import json
import yaml
import logging
import argparse
import dataclasses
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from conversion_patterns.config import ANALYSIS_SOURCES, MiningConfig, StorageConfig, get_config
from conversion_patterns.data_processor import load_engagement
from conversion_patterns.exceptions import (
    PatternMiningException,
    UnknownAnalysisTypeError,
    format_exception,
    wrap_exception,
)
from conversion_patterns.miner import ConversionPatternMiner
from conversion_patterns.storage import get_result_store

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def load_params(params_file: str = "params.yaml") -> dict:
    """Load parameters from params.yaml; a missing file means defaults."""
    if not os.path.exists(params_file):
        logger.info(f"No parameter file at {params_file}, using defaults")
        return {}
    with open(params_file, 'r') as f:
        return yaml.safe_load(f) or {}


def build_mining_config(params: dict, args: argparse.Namespace) -> MiningConfig:
    """Copy of the global settings with params.yaml and command-line overrides applied."""
    mining = dataclasses.replace(get_config().mining)
    for key, value in params.get('mining', {}).items():
        if hasattr(mining, key):
            setattr(mining, key, value)

    if args.workers is not None:
        mining.workers = args.workers
    if args.min_population is not None:
        mining.min_population = args.min_population
    return mining


def build_storage_config(params: dict, args: argparse.Namespace) -> StorageConfig:
    storage = dataclasses.replace(get_config().storage)
    for key, value in params.get('storage', {}).items():
        if hasattr(storage, key):
            setattr(storage, key, value)

    if args.store is not None:
        storage.type = args.store
    if args.store_path is not None:
        storage.path = args.store_path
    return storage


def run_analysis(args: argparse.Namespace) -> dict:
    """
    Run one analysis and return its summary.

    Args:
        args: Parsed command-line arguments

    Returns:
        Summary dictionary (JSON-serializable)
    """
    if args.analysis_type not in ANALYSIS_SOURCES and not args.allow_custom_type:
        raise UnknownAnalysisTypeError(args.analysis_type, known=sorted(ANALYSIS_SOURCES))

    params = load_params(args.params)
    mining = build_mining_config(params, args)
    store = get_result_store(build_storage_config(params, args))

    df, processor = load_engagement(args.data, args.analysis_type)
    logger.info(f"Data quality: {processor.validate_data_quality(df)}")

    miner = ConversionPatternMiner(mining, store)
    summary = miner.analyze(
        args.analysis_type,
        df,
        max_combinations=args.max_combinations,
        start_offset=args.start_offset,
    )
    return summary.model_dump(mode="json")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Mine item pairs associated with conversion")
    parser.add_argument("--data", default=get_config().data_path, help="Engagement CSV export")
    parser.add_argument(
        "--analysis-type",
        default="subscription",
        help=f"One of {', '.join(sorted(ANALYSIS_SOURCES))}",
    )
    parser.add_argument(
        "--allow-custom-type",
        action="store_true",
        help="Accept an unregistered analysis type (CSV must use canonical columns)",
    )
    parser.add_argument("--params", default="params.yaml", help="YAML parameter file")
    parser.add_argument("--store", choices=["memory", "sqlite"], default=None)
    parser.add_argument("--store-path", default=None, help="SQLite database path")
    parser.add_argument("--workers", type=int, default=None)
    parser.add_argument("--min-population", type=int, default=None)
    parser.add_argument("--max-combinations", type=int, default=None)
    parser.add_argument("--start-offset", type=int, default=0)
    parser.add_argument("--output", default=None, help="Write the summary JSON here")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)

    try:
        summary = run_analysis(args)
    except PatternMiningException as exc:
        logger.error(f"Analysis failed: {exc.message}")
        print(json.dumps(format_exception(exc), indent=2, default=str))
        return 1
    except Exception as exc:
        wrapped = wrap_exception(exc, context="Analysis failed")
        logger.exception(wrapped.message)
        print(json.dumps(format_exception(wrapped), indent=2, default=str))
        return 1

    output = json.dumps(summary, indent=2)
    if args.output:
        Path(args.output).parent.mkdir(parents=True, exist_ok=True)
        with open(args.output, 'w') as f:
            f.write(output)
        logger.info(f"Summary written to {args.output}")
    else:
        print(output)

    return 0 if summary["status"] != "insufficient_data" else 2


if __name__ == "__main__":
    sys.exit(main())
