"""
Structured error types for the migration coordinator.

Every failure the coordinator raises on purpose is a ``StaminadsError``
carrying a category, a retry hint, structured context, and the chained
cause. Failures raised *inside* a migration (a bad ``ALTER TABLE`` in a
workspace, a dropped connection mid-way) are not wrapped: they propagate
to the caller of ``MigrationRunner.run()`` unchanged, after the lease has
been released and the client closed.

Architecture:
    ::

        StaminadsError
        ├── ConfigError                  (CONFIG, never retryable)
        ├── DatabaseConnectionError      (DATABASE, retryable)
        ├── RegistryError                (INTERNAL, build-time defect)
        └── MigrationError               (MIGRATION)
            ├── DowngradeNotSupportedError
            ├── MigrationNotFoundError
            ├── InvalidVersionError
            └── MigrationLockTimeoutError (retryable)

    Lock contention has no error type: another instance holding the
    lease is an expected outcome, reported by ``run()`` returning ``True``.

Examples:
    >>> err = DowngradeNotSupportedError(installed_version=7, code_version=5)
    >>> err.installed_version, err.code_version
    (7, 5)
    >>> err.to_dict()["category"]
    'MIGRATION'

Tags:
    error-handling, exception-hierarchy, migrations, staminads
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and alert routing."""

    DATABASE = "DATABASE"         # Connection, query timeout
    CONFIG = "CONFIG"             # Missing or invalid settings
    MIGRATION = "MIGRATION"       # Version bookkeeping, registry lookups
    INTERNAL = "INTERNAL"         # Bugs, unexpected state


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error for logging.

    Attributes:
        database: Database the operation targeted (system or workspace db)
        workspace_id: Workspace being migrated, if any
        version: Major version involved
        holder: Lease holder identity
        metadata: Additional key-value pairs
    """

    database: str | None = None
    workspace_id: str | None = None
    version: int | None = None
    holder: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result: dict[str, Any] = {}
        for key in ["database", "workspace_id", "version", "holder"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class StaminadsError(Exception):
    """
    Base exception for all coordinator errors.

    Subclasses set ``default_category`` and ``default_retryable`` so call
    sites only pass what differs from the norm.
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

    def with_context(self, **kwargs: Any) -> StaminadsError:
        """
        Add context to this error (fluent API).

        Usage:
            raise MigrationError("Workspace phase failed").with_context(
                workspace_id="ws-1", version=3
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
        result: dict[str, Any] = {
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
# CONFIGURATION / INFRASTRUCTURE
# =============================================================================


class ConfigError(StaminadsError):
    """Missing or invalid configuration. Never retryable."""

    default_category = ErrorCategory.CONFIG


class DatabaseConnectionError(StaminadsError):
    """The analytics database could not be reached."""

    default_category = ErrorCategory.DATABASE
    default_retryable = True


class RegistryError(StaminadsError):
    """The migration registry was assembled inconsistently."""

    default_category = ErrorCategory.INTERNAL


# =============================================================================
# MIGRATION ERRORS
# =============================================================================


class MigrationError(StaminadsError):
    """Base for version bookkeeping failures raised by the coordinator."""

    default_category = ErrorCategory.MIGRATION


class DowngradeNotSupportedError(MigrationError):
    """The installed schema is newer than the running code."""

    def __init__(self, installed_version: int, code_version: int, **kwargs: Any):
        self.installed_version = installed_version
        self.code_version = code_version
        super().__init__(
            f"Database version ({installed_version}) is newer than code version "
            f"({code_version}). Downgrade not supported.",
            **kwargs,
        )
        self.context.version = installed_version


class MigrationNotFoundError(MigrationError):
    """No migration unit is registered for the next required version."""

    def __init__(
        self,
        version: int,
        *,
        installed_version: int | None = None,
        code_version: int | None = None,
        **kwargs: Any,
    ):
        self.version = version
        self.installed_version = installed_version
        self.code_version = code_version
        message = f"Migration for version {version} not found."
        if installed_version is not None and code_version is not None:
            message += f" Cannot upgrade from {installed_version} to {code_version}."
        super().__init__(message, **kwargs)
        self.context.version = version


class InvalidVersionError(MigrationError):
    """The stored ``db_major_version`` is not an integer."""

    def __init__(self, raw_value: str, **kwargs: Any):
        self.raw_value = raw_value
        super().__init__(f"Stored database version {raw_value!r} is not an integer", **kwargs)


class MigrationLockTimeoutError(MigrationError):
    """Another instance kept the migration lease past the wait timeout."""

    default_retryable = True

    def __init__(self, timeout: float, holder: str | None = None, **kwargs: Any):
        self.timeout = timeout
        self.holder = holder
        held = f" (held by {holder})" if holder else ""
        super().__init__(
            f"Migration lease still held after waiting {timeout:g}s{held}",
            **kwargs,
        )
        self.context.holder = holder


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "StaminadsError",
    "ConfigError",
    "DatabaseConnectionError",
    "RegistryError",
    "MigrationError",
    "DowngradeNotSupportedError",
    "MigrationNotFoundError",
    "InvalidVersionError",
    "MigrationLockTimeoutError",
]
