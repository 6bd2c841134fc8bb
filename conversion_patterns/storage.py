"""
Result Store for Conversion Pattern Mining
Holds the ranked combination set of each analysis type with replace-all semantics.
"""

import re
import sqlite3
import threading
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Any, Dict, List, Optional, Sequence

from .config import StorageConfig, get_config
from .exceptions import ConfigurationError, PersistenceError, ValidationError
from .logging_config import get_logger
from .schemas import CombinationRow

logger = get_logger(__name__)

ROW_FIELDS = list(CombinationRow.model_fields)


class ResultStore(ABC):
    """
    Abstract base class for result stores.

    ``replace_results`` deletes every stored row of an analysis type and
    inserts the new ranked rows as one unit. Replacements of the same analysis
    type never interleave.
    """

    def __init__(self):
        self._registry_lock = threading.Lock()
        self._type_locks: Dict[str, threading.Lock] = {}

    def _lock_for(self, analysis_type: str) -> threading.Lock:
        with self._registry_lock:
            if analysis_type not in self._type_locks:
                self._type_locks[analysis_type] = threading.Lock()
            return self._type_locks[analysis_type]

    def replace_results(self, analysis_type: str, rows: Sequence[CombinationRow]) -> int:
        """Replace the stored set of ``analysis_type`` with ``rows``; returns rows written."""
        foreign = {r.analysis_type for r in rows} - {analysis_type}
        if foreign:
            raise ValidationError(
                f"Rows for {sorted(foreign)} passed to replace '{analysis_type}'",
                field="analysis_type",
                value=analysis_type,
            )

        with self._lock_for(analysis_type):
            written = self._replace(analysis_type, list(rows))
        logger.info(f"Stored {written} combination results for '{analysis_type}'")
        return written

    @abstractmethod
    def _replace(self, analysis_type: str, rows: List[CombinationRow]) -> int:
        """Delete then insert inside one unit of work."""
        pass

    @abstractmethod
    def get_results(self, analysis_type: str, limit: Optional[int] = None) -> List[CombinationRow]:
        """Stored rows of an analysis type ordered by rank."""
        pass

    @abstractmethod
    def count(self, analysis_type: Optional[str] = None) -> int:
        """Number of stored rows, optionally for one analysis type."""
        pass

    @abstractmethod
    def clear(self) -> None:
        """Remove every stored row."""
        pass


class MemoryResultStore(ResultStore):
    """Thread-safe in-process store."""

    def __init__(self):
        super().__init__()
        self._rows: Dict[str, List[CombinationRow]] = defaultdict(list)
        self._lock = threading.RLock()

    def _replace(self, analysis_type: str, rows: List[CombinationRow]) -> int:
        ordered = sorted(rows, key=lambda r: r.combination_rank)
        with self._lock:
            self._rows[analysis_type] = ordered
        return len(ordered)

    def get_results(self, analysis_type: str, limit: Optional[int] = None) -> List[CombinationRow]:
        with self._lock:
            rows = list(self._rows.get(analysis_type, []))
        return rows[:limit] if limit is not None else rows

    def count(self, analysis_type: Optional[str] = None) -> int:
        with self._lock:
            if analysis_type is not None:
                return len(self._rows.get(analysis_type, []))
            return sum(len(rows) for rows in self._rows.values())

    def clear(self) -> None:
        with self._lock:
            self._rows.clear()


class SQLiteResultStore(ResultStore):
    """SQLite-backed store; each replacement runs in a single transaction."""

    _COLUMN_TYPES = {
        "analysis_type": "TEXT NOT NULL",
        "combination_rank": "INTEGER NOT NULL",
        "value_1": "TEXT NOT NULL",
        "value_2": "TEXT NOT NULL",
        "display_name_1": "TEXT",
        "display_name_2": "TEXT",
        "total_views_1": "REAL",
        "total_views_2": "REAL",
        "log_likelihood": "REAL",
        "aic": "REAL",
        "odds_ratio": "REAL",
        "precision": "REAL",
        "recall": "REAL",
        "lift": "REAL",
        "users_with_exposure": "INTEGER",
        "conversion_rate_in_group": "REAL",
        "overall_conversion_rate": "REAL",
        "total_conversions": "INTEGER",
        "analyzed_at": "TEXT",
    }

    def __init__(self, path: str, table: str = "conversion_pattern_combinations"):
        super().__init__()
        if not re.match(r"^[A-Za-z_][A-Za-z0-9_]*$", table):
            raise ConfigurationError(f"Invalid table name '{table}'", setting="storage.table")
        self.path = path
        self.table = table
        self.initialize()

    def get_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.path)
        conn.row_factory = sqlite3.Row
        return conn

    def initialize(self) -> None:
        columns = ",\n    ".join(f"{name} {kind}" for name, kind in self._COLUMN_TYPES.items())
        conn = self.get_connection()
        try:
            with conn:
                conn.execute(
                    f"""
                    CREATE TABLE IF NOT EXISTS {self.table} (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        {columns}
                    )
                    """
                )
                conn.execute(
                    f"CREATE INDEX IF NOT EXISTS idx_{self.table}_type_rank "
                    f"ON {self.table} (analysis_type, combination_rank)"
                )
        finally:
            conn.close()

    def _delete(self, conn: sqlite3.Connection, analysis_type: str) -> None:
        conn.execute(f"DELETE FROM {self.table} WHERE analysis_type = ?", (analysis_type,))

    def _insert_rows(self, conn: sqlite3.Connection, rows: List[CombinationRow]) -> None:
        placeholders = ", ".join("?" for _ in ROW_FIELDS)
        conn.executemany(
            f"INSERT INTO {self.table} ({', '.join(ROW_FIELDS)}) VALUES ({placeholders})",
            [self._to_params(row) for row in rows],
        )

    @staticmethod
    def _to_params(row: CombinationRow) -> tuple:
        data = row.model_dump()
        data["analyzed_at"] = row.analyzed_at.isoformat()
        return tuple(data[name] for name in ROW_FIELDS)

    def _replace(self, analysis_type: str, rows: List[CombinationRow]) -> int:
        operation = "delete"
        conn = self.get_connection()
        try:
            # commits on success, rolls back on any error
            with conn:
                self._delete(conn, analysis_type)
                operation = "insert"
                self._insert_rows(conn, rows)
        except sqlite3.Error as exc:
            logger.error(f"Failed to {operation} results for '{analysis_type}': {exc}")
            raise PersistenceError(analysis_type, operation, cause=exc) from exc
        finally:
            conn.close()
        return len(rows)

    def get_results(self, analysis_type: str, limit: Optional[int] = None) -> List[CombinationRow]:
        query = (
            f"SELECT {', '.join(ROW_FIELDS)} FROM {self.table} "
            "WHERE analysis_type = ? ORDER BY combination_rank"
        )
        params: tuple = (analysis_type,)
        if limit is not None:
            query += " LIMIT ?"
            params = (analysis_type, limit)

        conn = self.get_connection()
        try:
            records = conn.execute(query, params).fetchall()
        finally:
            conn.close()
        return [CombinationRow.model_validate(dict(record)) for record in records]

    def count(self, analysis_type: Optional[str] = None) -> int:
        conn = self.get_connection()
        try:
            if analysis_type is None:
                row = conn.execute(f"SELECT COUNT(*) FROM {self.table}").fetchone()
            else:
                row = conn.execute(
                    f"SELECT COUNT(*) FROM {self.table} WHERE analysis_type = ?",
                    (analysis_type,),
                ).fetchone()
        finally:
            conn.close()
        return int(row[0])

    def clear(self) -> None:
        conn = self.get_connection()
        try:
            with conn:
                conn.execute(f"DELETE FROM {self.table}")
        finally:
            conn.close()

    def get_stats(self) -> Dict[str, Any]:
        conn = self.get_connection()
        try:
            records = conn.execute(
                f"SELECT analysis_type, COUNT(*) AS n, MAX(analyzed_at) AS analyzed_at "
                f"FROM {self.table} GROUP BY analysis_type"
            ).fetchall()
        finally:
            conn.close()
        return {
            "type": "sqlite",
            "path": self.path,
            "analysis_types": {
                r["analysis_type"]: {"rows": r["n"], "analyzed_at": r["analyzed_at"]}
                for r in records
            },
        }


def get_result_store(config: Optional[StorageConfig] = None) -> ResultStore:
    """Create the result store described by ``config``."""
    if config is None:
        config = get_config().storage

    if config.type == "sqlite":
        return SQLiteResultStore(config.path, config.table)
    if config.type == "memory":
        return MemoryResultStore()
    raise ConfigurationError(f"Unsupported store type '{config.type}'", setting="storage.type")
