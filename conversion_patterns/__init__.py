"""
Conversion Pattern Mining
Finds item pairs whose joint exposure is associated with user conversion.
"""

__version__ = "1.0.0"

# Core modules
from .config import get_config, PatternsConfig, MiningConfig, ANALYSIS_SOURCES
from .logging_config import get_logger, LoggerFactory
from .exceptions import PatternMiningException, ValidationError, PersistenceError

# Data
from .data_processor import EngagementDataProcessor, load_engagement
from .exposure_index import ExposureIndex
from .models import Combination, CombinationResult, UserRecord

# Mining stages
from .candidates import CandidateSelector, CombinationEnumerator, MAX_CANDIDATES
from .logistic import LogisticFitter, LogisticFit
from .scoring import CombinationScorer
from .ranking import RankingPipeline

# Storage
from .storage import ResultStore, MemoryResultStore, SQLiteResultStore, get_result_store

# Pipeline
from .miner import ConversionPatternMiner, MiningRun, analyze_engagement
from .schemas import AnalysisSummary, CombinationRow, RunStatus

__all__ = [
    # Config
    "get_config",
    "PatternsConfig",
    "MiningConfig",
    "ANALYSIS_SOURCES",
    # Logging
    "get_logger",
    "LoggerFactory",
    # Exceptions
    "PatternMiningException",
    "ValidationError",
    "PersistenceError",
    # Data
    "EngagementDataProcessor",
    "load_engagement",
    "ExposureIndex",
    "Combination",
    "CombinationResult",
    "UserRecord",
    # Stages
    "CandidateSelector",
    "CombinationEnumerator",
    "MAX_CANDIDATES",
    "LogisticFitter",
    "LogisticFit",
    "CombinationScorer",
    "RankingPipeline",
    # Storage
    "ResultStore",
    "MemoryResultStore",
    "SQLiteResultStore",
    "get_result_store",
    # Pipeline
    "ConversionPatternMiner",
    "MiningRun",
    "analyze_engagement",
    "AnalysisSummary",
    "CombinationRow",
    "RunStatus",
]
