"""
Exception Handling for Conversion Pattern Mining
Custom exceptions and error handling utilities.
"""

from typing import Optional, Any, Dict
from enum import Enum
import traceback


class ErrorCode(Enum):
    """Error codes for the pattern mining system."""
    # Validation errors (1000-1999)
    VALIDATION_ERROR = 1000
    MISSING_REQUIRED_FIELD = 1003
    VALUE_OUT_OF_RANGE = 1005
    UNKNOWN_ANALYSIS_TYPE = 1006

    # Data errors (2000-2999)
    DATA_NOT_FOUND = 2000
    DATA_LOAD_ERROR = 2002
    DATA_PROCESSING_ERROR = 2003

    # System errors (5000-5999)
    INTERNAL_ERROR = 5000
    DATABASE_ERROR = 5001
    CONFIGURATION_ERROR = 5003


class PatternMiningException(Exception):
    """Base exception for Conversion Pattern Mining."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.cause = cause

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for run reports."""
        result = {
            "error": True,
            "error_code": self.error_code.value,
            "error_name": self.error_code.name,
            "message": self.message,
        }

        if self.details:
            result["details"] = self.details

        if self.cause:
            result["cause"] = str(self.cause)

        return result

    def __repr__(self) -> str:
        return f"PatternMiningException({self.error_code.name}: {self.message})"


# Validation Exceptions
class ValidationError(PatternMiningException):
    """Raised when input validation fails."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message,
            error_code=ErrorCode.VALIDATION_ERROR,
            details={
                "field": field,
                "value": str(value) if value is not None else None,
                **(details or {})
            }
        )


class MissingRequiredFieldError(ValidationError):
    """Raised when a required field is missing."""

    def __init__(self, field: str):
        super().__init__(
            message=f"Required field '{field}' is missing",
            field=field
        )
        self.error_code = ErrorCode.MISSING_REQUIRED_FIELD


class ValueOutOfRangeError(ValidationError):
    """Raised when a value is out of acceptable range."""

    def __init__(
        self,
        field: str,
        value: Any,
        min_value: Optional[Any] = None,
        max_value: Optional[Any] = None
    ):
        range_str = ""
        if min_value is not None and max_value is not None:
            range_str = f" Must be between {min_value} and {max_value}"
        elif min_value is not None:
            range_str = f" Must be >= {min_value}"
        elif max_value is not None:
            range_str = f" Must be <= {max_value}"

        super().__init__(
            message=f"Value {value} for '{field}' is out of range.{range_str}",
            field=field,
            value=value,
            details={
                "min_value": min_value,
                "max_value": max_value
            }
        )
        self.error_code = ErrorCode.VALUE_OUT_OF_RANGE


class UnknownAnalysisTypeError(ValidationError):
    """Raised when an analysis type has no registered source layout."""

    def __init__(self, analysis_type: str, known: Optional[list] = None):
        super().__init__(
            message=f"Invalid analysis_type: '{analysis_type}'",
            field="analysis_type",
            value=analysis_type,
            details={"known_types": known or []}
        )
        self.error_code = ErrorCode.UNKNOWN_ANALYSIS_TYPE


# Data Exceptions
class DataError(PatternMiningException):
    """Base exception for data-related errors."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.DATA_NOT_FOUND,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, error_code, details)


class DataLoadError(DataError):
    """Raised when engagement data cannot be loaded."""

    def __init__(self, filepath: str, cause: Optional[Exception] = None):
        super().__init__(
            message=f"Failed to load data from '{filepath}'",
            error_code=ErrorCode.DATA_LOAD_ERROR,
            details={"filepath": filepath}
        )
        self.cause = cause


# System Exceptions
class ConfigurationError(PatternMiningException):
    """Raised when settings are inconsistent or unsupported."""

    def __init__(self, message: str, setting: Optional[str] = None):
        super().__init__(
            message,
            error_code=ErrorCode.CONFIGURATION_ERROR,
            details={"setting": setting}
        )


class PersistenceError(PatternMiningException):
    """Raised when replacing the stored result set fails."""

    def __init__(self, analysis_type: str, operation: str, cause: Optional[Exception] = None):
        super().__init__(
            message=f"Failed to {operation} results for analysis type '{analysis_type}'",
            error_code=ErrorCode.DATABASE_ERROR,
            details={"analysis_type": analysis_type, "operation": operation},
            cause=cause
        )


# Utility Functions
def format_exception(exc: Exception) -> Dict[str, Any]:
    """Format any exception for a run report."""
    if isinstance(exc, PatternMiningException):
        return exc.to_dict()

    return {
        "error": True,
        "error_code": ErrorCode.INTERNAL_ERROR.value,
        "error_name": ErrorCode.INTERNAL_ERROR.name,
        "message": str(exc),
        "type": type(exc).__name__
    }


def wrap_exception(exc: Exception, context: Optional[str] = None) -> PatternMiningException:
    """Wrap a standard exception in a PatternMiningException."""
    if isinstance(exc, PatternMiningException):
        return exc

    message = str(exc)
    if context:
        message = f"{context}: {message}"

    return PatternMiningException(
        message=message,
        error_code=ErrorCode.INTERNAL_ERROR,
        cause=exc,
        details={"traceback": traceback.format_exc()}
    )
