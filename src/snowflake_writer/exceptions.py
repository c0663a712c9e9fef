"""
Exception hierarchy for the Snowflake writer.

Two kinds of failure are distinguished:

- ``UserError``: caused by configuration or warehouse state the caller can
  fix (bad credentials, missing warehouse, schema drift, failed statements).
- ``ApplicationError``: an internal invariant was violated; reaching one is
  a defect in the writer or in the code driving it.
"""

from typing import Any, Dict, Optional


class SnowflakeWriterError(Exception):
    """Base exception for all writer errors."""

    def __init__(self, message: str, data: Optional[Dict[str, Any]] = None):
        self.data = data or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to structured dict for logging."""
        result: Dict[str, Any] = {
            "error_type": type(self).__name__,
            "message": str(self),
        }
        if self.__cause__ is not None:
            result["original_error_type"] = type(self.__cause__).__name__
            result["original_error_message"] = str(self.__cause__)
        if self.data:
            result["data"] = self.data
        return result


class UserError(SnowflakeWriterError):
    """Raised for failures the caller can resolve by fixing input or state."""

    pass


class ApplicationError(SnowflakeWriterError):
    """Raised when the writer reaches a state that should be impossible."""

    pass


class ConfigValidationError(UserError):
    """Raised when config.yml or a table manifest fails validation."""

    pass
