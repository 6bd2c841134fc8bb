"""
Data Processor Module
Handles loading, column mapping, and cleaning of user/item engagement data.
"""

import pandas as pd
import numpy as np
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple, Union

from pydantic import ValidationError as PydanticValidationError

from .config import ANALYSIS_SOURCES, AnalysisSource
from .exceptions import DataLoadError, MissingRequiredFieldError
from .logging_config import get_logger
from .schemas import EngagementRow, parse_flag

logger = get_logger(__name__)

CANONICAL_COLUMNS = [
    'user_id',
    'item_id',
    'view_count',
    'converted',
    'conversion_count',
    'display_name',
]

EngagementData = Union[pd.DataFrame, Iterable[Mapping[str, Any]]]


def _coerce_flag(series: pd.Series) -> pd.Series:
    """Normalize booleans that arrive as bools, numbers, or strings."""
    if series.dtype == bool:
        return series
    return series.map(parse_flag).astype(bool)


class EngagementDataProcessor:
    """Turns raw engagement tables into the canonical per-row layout."""

    def __init__(self, filepath: Optional[str] = None):
        """Initialize the processor with an optional CSV filepath."""
        self.filepath = filepath
        self.raw_data = None
        self.processed_data = None
        self.rows_skipped = 0

    def load_data(self, filepath: Optional[str] = None) -> pd.DataFrame:
        """
        Load engagement rows from a CSV file.

        Args:
            filepath: Path to CSV file. Uses instance filepath if not provided.

        Returns:
            DataFrame with the raw rows.
        """
        filepath = filepath or self.filepath
        if not filepath:
            raise ValueError("No filepath provided")

        logger.info(f"Loading data from {filepath}")
        try:
            # ids stay strings: "007" and "7" are different items
            self.raw_data = pd.read_csv(filepath, dtype=str, keep_default_na=True)
        except (OSError, pd.errors.ParserError, pd.errors.EmptyDataError) as exc:
            raise DataLoadError(filepath, cause=exc) from exc

        logger.info(f"Loaded {len(self.raw_data)} engagement rows")
        return self.raw_data

    def to_canonical(self, df: pd.DataFrame, analysis_type: Optional[str] = None) -> pd.DataFrame:
        """
        Rename source columns of a registered analysis type to canonical names.

        Frames that already carry canonical columns pass through unchanged, so
        unregistered analysis types work as long as the caller uses them.
        """
        source: Optional[AnalysisSource] = ANALYSIS_SOURCES.get(analysis_type or '')
        if source is not None and source.entity_column in df.columns:
            mapping = {
                source.user_column: 'user_id',
                source.entity_column: 'item_id',
                source.view_column: 'view_count',
                source.outcome_column: 'converted',
                source.count_column: 'conversion_count',
            }
            if source.display_column:
                mapping[source.display_column] = 'display_name'
            df = df.rename(columns={k: v for k, v in mapping.items() if k in df.columns})

        for required in ('user_id', 'item_id'):
            if required not in df.columns:
                raise MissingRequiredFieldError(required)

        df = df.copy()
        for col, default in (
            ('view_count', 0),
            ('converted', False),
            ('conversion_count', 0),
            ('display_name', None),
        ):
            if col not in df.columns:
                df[col] = default

        return df[CANONICAL_COLUMNS]

    def rows_to_frame(self, rows: Iterable[Mapping[str, Any]]) -> pd.DataFrame:
        """
        Validate mapping rows one by one and collect the valid ones.

        Malformed rows (for example a missing user_id) are skipped and counted.
        """
        valid = []
        skipped = 0
        for row in rows:
            try:
                valid.append(EngagementRow.model_validate(dict(row)).model_dump())
            except PydanticValidationError as exc:
                skipped += 1
                logger.debug(f"Skipping malformed engagement row {dict(row)!r}: {exc.error_count()} errors")

        if skipped:
            logger.warning(f"Skipped {skipped} malformed engagement rows")
        self.rows_skipped += skipped
        return pd.DataFrame(valid, columns=CANONICAL_COLUMNS)

    def clean_data(self, df: Optional[pd.DataFrame] = None) -> pd.DataFrame:
        """
        Clean canonical engagement rows.

        Drops rows without a user id, coerces counts to non-negative numbers and
        flags to booleans, and normalizes ids to stripped strings.

        Args:
            df: Canonical DataFrame to clean.

        Returns:
            Cleaned DataFrame.
        """
        if df is None:
            if self.raw_data is None:
                raise ValueError("No data to clean. Load data first.")
            df = self.to_canonical(self.raw_data)
        df = df.copy()

        # Identifiers
        for col in ('user_id', 'item_id', 'display_name'):
            df[col] = df[col].map(lambda v: None if pd.isna(v) else str(v).strip() or None)

        missing_user = df['user_id'].isna()
        if missing_user.any():
            dropped = int(missing_user.sum())
            self.rows_skipped += dropped
            logger.warning(f"Skipped {dropped} rows without a user_id")
            df = df[~missing_user]

        # Counts
        df['view_count'] = pd.to_numeric(df['view_count'], errors='coerce').fillna(0).clip(lower=0)
        df['conversion_count'] = (
            pd.to_numeric(df['conversion_count'], errors='coerce')
            .fillna(0)
            .clip(lower=0)
            .astype(np.int64)
        )

        # Flags
        df['converted'] = _coerce_flag(df['converted'])

        df = df.reset_index(drop=True)
        logger.info(f"Cleaned data: {len(df)} rows")
        self.processed_data = df
        return df

    def prepare(self, data: EngagementData, analysis_type: Optional[str] = None) -> pd.DataFrame:
        """Convert any supported input into a cleaned canonical DataFrame."""
        self.rows_skipped = 0
        if isinstance(data, pd.DataFrame):
            self.raw_data = data
            df = self.to_canonical(data, analysis_type)
        else:
            rows = list(data)
            source = ANALYSIS_SOURCES.get(analysis_type or '')
            if source is not None and rows and source.entity_column in rows[0]:
                df = self.to_canonical(pd.DataFrame(rows), analysis_type)
                rows = df.to_dict('records')
            df = self.rows_to_frame(rows)
        return self.clean_data(df)

    def display_names(self, df: Optional[pd.DataFrame] = None) -> Dict[str, str]:
        """Map each item id to the first display name recorded for it."""
        df = df if df is not None else self.processed_data
        named = df.dropna(subset=['item_id', 'display_name'])
        if named.empty:
            return {}
        return named.groupby('item_id', sort=False)['display_name'].first().to_dict()

    def total_views(self, df: Optional[pd.DataFrame] = None) -> Dict[str, float]:
        """Sum of view counts per item across all users."""
        df = df if df is not None else self.processed_data
        viewed = df.dropna(subset=['item_id'])
        if viewed.empty:
            return {}
        return {
            item: float(total)
            for item, total in viewed.groupby('item_id', sort=False)['view_count'].sum().items()
        }

    def validate_data_quality(self, df: Optional[pd.DataFrame] = None) -> dict:
        """
        Validate data quality and return quality metrics.

        Args:
            df: Canonical DataFrame to validate.

        Returns:
            Dictionary with quality metrics.
        """
        df = df if df is not None else self.processed_data

        if df is None:
            raise ValueError("No data to validate")

        return {
            'total_rows': len(df),
            'unique_users': int(df['user_id'].nunique()),
            'unique_items': int(df['item_id'].nunique()),
            'missing_values': df.isnull().sum().to_dict(),
            'zero_view_rows': int((df['view_count'] <= 0).sum()),
            'duplicate_pairs': int(df.duplicated(subset=['user_id', 'item_id']).sum()),
            'converted_users': int(df.loc[df['converted'], 'user_id'].nunique()),
            'rows_skipped': self.rows_skipped,
        }


def load_engagement(filepath: str, analysis_type: Optional[str] = None) -> Tuple[pd.DataFrame, EngagementDataProcessor]:
    """
    Convenience function to load and clean engagement data in one step.

    Args:
        filepath: Path to engagement CSV.
        analysis_type: Analysis type whose source column layout the file uses.

    Returns:
        Tuple of (cleaned DataFrame, processor instance).
    """
    processor = EngagementDataProcessor(filepath)
    raw = processor.load_data()
    return processor.prepare(raw, analysis_type), processor
