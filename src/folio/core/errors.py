"""
Structured error types for the report cache and scheduler.

Provides a small hierarchy of typed errors carrying a category, a retry
hint, structured context and an optional chained cause.  The cache path
never lets these escape to report-generation callers (faults degrade to a
miss); the schedule path raises them synchronously for configuration
problems and records them as schedule state for execution problems.

Manifesto:
    - **Typed hierarchy:** one subclass per fault domain
    - **Rich context:** owner, fingerprint, schedule id, operation
    - **Error chaining:** the original exception survives as ``cause``

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────┐
        │                        FolioError                            │
        │  (category, retryable, context, cause)                       │
        ├─────────────────────────────────────────────────────────────┤
        │  CacheError        StorageError       DatabaseError          │
        │  (CACHE)           (STORAGE)          (DATABASE)             │
        │      │                 │                  │                  │
        │  FingerprintError  ArtifactError      IntegrityError         │
        │                                                              │
        │  ValidationError   ConfigError        ScheduleError          │
        │  (VALIDATION)      (CONFIG)           (SCHEDULE)             │
        │      │                                    │                  │
        │  RecurrenceRuleError              ScheduleNotFoundError      │
        │                                   ScheduleLimitError         │
        │                                   ScheduleAccessError        │
        └─────────────────────────────────────────────────────────────┘

Examples:
    >>> err = ArtifactError("artifact vanished").with_context(fingerprint="abc")
    >>> err.context.fingerprint
    'abc'
    >>> err.to_dict()["category"]
    'STORAGE'

Tags:
    error-handling, exception-hierarchy, error-context, folio
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and log routing."""

    CACHE = "CACHE"
    STORAGE = "STORAGE"
    DATABASE = "DATABASE"
    VALIDATION = "VALIDATION"
    CONFIG = "CONFIG"
    SCHEDULE = "SCHEDULE"
    INTERNAL = "INTERNAL"
    UNKNOWN = "UNKNOWN"


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Only the fields that are set are emitted by ``to_dict()``, so the
    same context type serves cache faults (owner + fingerprint) and
    schedule faults (schedule id + operation).

    Attributes:
        owner: Owner key of the request (``user:42`` / ``scope:ALL_USERS``)
        fingerprint: Cache fingerprint involved
        schedule_id: Schedule involved
        operation: Operation name (``lookup``, ``put``, ``run`` ...)
        metadata: Additional key-value pairs
    """

    owner: str | None = None
    fingerprint: str | None = None
    schedule_id: str | None = None
    operation: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["owner", "fingerprint", "schedule_id", "operation"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class FolioError(Exception):
    """
    Base exception for all folio errors.

    Subclasses set ``default_category`` and ``default_retryable`` so that
    raising sites only pass what differs from the domain default.

    Examples:
        >>> error = FolioError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.retryable
        False
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> FolioError:
        """
        Add context to this error (fluent API).

        Usage:
            raise ScheduleError("run failed").with_context(
                schedule_id="0f3c...", operation="run"
            )
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CACHE ERRORS
# =============================================================================


class CacheError(FolioError):
    """Cache-layer fault.  Never surfaced to report-generation callers."""

    default_category = ErrorCategory.CACHE


class FingerprintError(CacheError):
    """A report request could not be canonicalised into a fingerprint."""

    pass


# =============================================================================
# STORAGE / DATABASE ERRORS
# =============================================================================


class StorageError(FolioError):
    """Artifact storage error (disk, blob store)."""

    default_category = ErrorCategory.STORAGE


class ArtifactError(StorageError):
    """A stored artifact is missing or could not be removed."""

    pass


class DatabaseError(FolioError):
    """Durable record store error."""

    default_category = ErrorCategory.DATABASE
    default_retryable = True


class IntegrityError(DatabaseError):
    """Uniqueness violation in the durable store (e.g. a fingerprint race)."""

    default_retryable = False


# =============================================================================
# VALIDATION / CONFIG ERRORS
# =============================================================================


class ValidationError(FolioError):
    """
    Input validation error.

    Never retryable - the input must be fixed.
    """

    default_category = ErrorCategory.VALIDATION

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        value: Any = None,
        constraint: str | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.field = field
        self.value = value
        self.constraint = constraint

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.field:
            result["field"] = self.field
        if self.value is not None:
            result["value"] = repr(self.value)
        if self.constraint:
            result["constraint"] = self.constraint
        return result


class RecurrenceRuleError(ValidationError):
    """A recurrence rule violates its variant's constraints."""

    pass


class ConfigError(FolioError):
    """Configuration error (bad settings value, unknown backend)."""

    default_category = ErrorCategory.CONFIG


# =============================================================================
# SCHEDULE ERRORS
# =============================================================================


class ScheduleError(FolioError):
    """Schedule configuration or execution error."""

    default_category = ErrorCategory.SCHEDULE


class ScheduleNotFoundError(ScheduleError):
    """No active schedule with the given id."""

    def __init__(self, schedule_id: str):
        super().__init__(f"Schedule not found: {schedule_id}")
        self.context.schedule_id = schedule_id


class ScheduleLimitError(ScheduleError):
    """The owner already has the maximum number of active schedules."""

    pass


class ScheduleAccessError(ScheduleError):
    """The caller does not own the schedule it tried to modify."""

    pass


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def categorize_error(error: Exception) -> ErrorCategory:
    """Get the category of an error."""
    if isinstance(error, FolioError):
        return error.category
    if isinstance(error, OSError):
        return ErrorCategory.STORAGE
    if isinstance(error, ValueError):
        return ErrorCategory.VALIDATION
    return ErrorCategory.UNKNOWN


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "FolioError",
    "CacheError",
    "FingerprintError",
    "StorageError",
    "ArtifactError",
    "DatabaseError",
    "IntegrityError",
    "ValidationError",
    "RecurrenceRuleError",
    "ConfigError",
    "ScheduleError",
    "ScheduleNotFoundError",
    "ScheduleLimitError",
    "ScheduleAccessError",
    "categorize_error",
]
