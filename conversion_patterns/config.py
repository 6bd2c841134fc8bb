"""
Configuration Management for Conversion Pattern Mining
Centralized settings management with environment variable support.
"""

import json
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class Environment(Enum):
    """Application environment types."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTING = "testing"


@dataclass(frozen=True)
class AnalysisSource:
    """Column layout of the engagement table feeding one analysis type."""

    entity_column: str
    view_column: str
    outcome_column: str
    count_column: str
    display_column: Optional[str] = None
    user_column: str = "distinct_id"


# Engagement tables of the analytics warehouse, keyed by analysis type
ANALYSIS_SOURCES: Dict[str, AnalysisSource] = {
    "subscription": AnalysisSource(
        entity_column="creator_id",
        display_column="creator_username",
        view_column="profile_view_count",
        outcome_column="did_subscribe",
        count_column="subscription_count",
    ),
    "copy": AnalysisSource(
        entity_column="portfolio_ticker",
        view_column="pdp_view_count",
        outcome_column="did_copy",
        count_column="copy_count",
    ),
    "creator_copy": AnalysisSource(
        entity_column="creator_id",
        display_column="creator_username",
        view_column="profile_view_count",
        outcome_column="did_copy",
        count_column="copy_count",
    ),
}


@dataclass
class MiningConfig:
    """Pattern mining settings."""

    min_users: int = 1
    max_candidates: int = 200
    min_population: int = 50
    max_iterations: int = 20
    tolerance: float = 1e-6
    singular_tolerance: float = 1e-10
    workers: int = 1
    top_n_preview: int = 10
    progress_interval: int = 1000


@dataclass
class StorageConfig:
    """Result store settings."""

    type: str = "memory"  # memory, sqlite
    path: str = "conversion_patterns.db"
    table: str = "conversion_pattern_combinations"


@dataclass
class LoggingConfig:
    """Logging configuration settings."""

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file_path: Optional[str] = None
    max_bytes: int = 10485760  # 10MB
    backup_count: int = 5
    json_format: bool = False


@dataclass
class PatternsConfig:
    """Main configuration class for Conversion Pattern Mining."""

    environment: Environment = Environment.DEVELOPMENT
    project_name: str = "Conversion Pattern Mining"
    version: str = "1.0.0"
    debug: bool = False

    # Sub-configurations
    mining: MiningConfig = field(default_factory=MiningConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Data paths
    data_dir: str = "data"
    default_data_file: str = "engagement.csv"

    @property
    def data_path(self) -> str:
        return os.path.join(self.data_dir, self.default_data_file)

    @classmethod
    def from_env(cls) -> "PatternsConfig":
        """Create configuration from environment variables."""
        env_str = os.getenv("PATTERNS_ENVIRONMENT", "development").lower()
        environment = (
            Environment(env_str)
            if env_str in [e.value for e in Environment]
            else Environment.DEVELOPMENT
        )

        config = cls(
            environment=environment,
            debug=os.getenv("PATTERNS_DEBUG", "false").lower() == "true",
        )

        # Mining config from env
        config.mining.min_users = int(os.getenv("PATTERNS_MIN_USERS", config.mining.min_users))
        config.mining.max_candidates = int(
            os.getenv("PATTERNS_MAX_CANDIDATES", config.mining.max_candidates)
        )
        config.mining.min_population = int(
            os.getenv("PATTERNS_MIN_POPULATION", config.mining.min_population)
        )
        config.mining.max_iterations = int(
            os.getenv("PATTERNS_MAX_ITERATIONS", config.mining.max_iterations)
        )
        config.mining.workers = int(os.getenv("PATTERNS_WORKERS", config.mining.workers))
        config.mining.top_n_preview = int(os.getenv("PATTERNS_TOP_N", config.mining.top_n_preview))

        # Storage config from env
        config.storage.type = os.getenv("PATTERNS_STORE_TYPE", config.storage.type)
        config.storage.path = os.getenv("PATTERNS_STORE_PATH", config.storage.path)
        config.storage.table = os.getenv("PATTERNS_STORE_TABLE", config.storage.table)

        # Logging config from env
        config.logging.level = os.getenv("PATTERNS_LOG_LEVEL", config.logging.level)
        config.logging.file_path = os.getenv("PATTERNS_LOG_FILE", config.logging.file_path)
        config.logging.json_format = (
            os.getenv("PATTERNS_LOG_JSON", "false").lower() == "true"
        )

        # Data paths from env
        config.data_dir = os.getenv("PATTERNS_DATA_DIR", config.data_dir)
        config.default_data_file = os.getenv("PATTERNS_DATA_FILE", config.default_data_file)

        return config

    @classmethod
    def from_json(cls, filepath: str) -> "PatternsConfig":
        """Load configuration from JSON file."""
        with open(filepath, "r") as f:
            data = json.load(f)

        config = cls()

        if "environment" in data:
            config.environment = Environment(data["environment"])
        if "debug" in data:
            config.debug = data["debug"]

        # Sub-configurations
        for section in ("mining", "storage", "logging"):
            target = getattr(config, section)
            for key, value in data.get(section, {}).items():
                if hasattr(target, key):
                    setattr(target, key, value)

        return config

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return {
            "environment": self.environment.value,
            "project_name": self.project_name,
            "version": self.version,
            "debug": self.debug,
            "mining": {
                "min_users": self.mining.min_users,
                "max_candidates": self.mining.max_candidates,
                "min_population": self.mining.min_population,
                "max_iterations": self.mining.max_iterations,
                "workers": self.mining.workers,
                "top_n_preview": self.mining.top_n_preview,
            },
            "storage": {
                "type": self.storage.type,
                "path": self.storage.path,
                "table": self.storage.table,
            },
            "logging": {
                "level": self.logging.level,
                "file_path": self.logging.file_path,
            },
        }


# Global configuration instance
_config: Optional[PatternsConfig] = None


def get_config() -> PatternsConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = PatternsConfig.from_env()
    return _config


def set_config(config: PatternsConfig) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config


def reset_config() -> None:
    """Reset the global configuration to None."""
    global _config
    _config = None
