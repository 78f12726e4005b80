"""
Z App Store Exception Hierarchy

Provides clear, actionable error messages with structured information
for logging, user feedback, and programmatic error handling.

Every error raised by the registry engine is recoverable: the worst
outcome is a degraded view, never a terminated process.
"""

from typing import Optional, Dict, Any


class AppStoreError(Exception):
    """
    Base exception for all App Store errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional context as key-value pairs
        cause: Original exception that caused this error
        recoverable: Whether the error is recoverable
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        recoverable: bool = True,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        self.cause = cause
        self.recoverable = recoverable

    def __str__(self):
        s = f"[{self.code}] {self.message}"
        if self.details:
            s += f" (details: {self.details})"
        if self.cause:
            s += f" caused by: {self.cause}"
        return s

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
        }


# =============================================================================
# Catalog / discovery errors
# =============================================================================

class CatalogError(AppStoreError):
    """Base for remote catalog errors."""
    pass


class CatalogFetchError(CatalogError):
    """The organization repository listing could not be fetched."""
    def __init__(self, url: str, reason: str, cause: Optional[Exception] = None):
        super().__init__(
            f"Failed to load apps from {url}: {reason}",
            code="CATALOG_FETCH_FAILED",
            details={"url": url, "reason": reason},
            cause=cause,
        )


class DescriptorError(CatalogError):
    """A single repository's metadata descriptor is unusable."""
    def __init__(self, repo: str, reason: str):
        super().__init__(
            f"Skipping repository '{repo}': {reason}",
            code="DESCRIPTOR_INVALID",
            details={"repo": repo, "reason": reason},
        )


# =============================================================================
# Installation errors
# =============================================================================

class InstallError(AppStoreError):
    """Base for installation errors."""
    pass


class NotInstallableError(InstallError):
    """Manifest is flagged as not installable."""
    def __init__(self, app_id: str):
        super().__init__(
            f"App '{app_id}' is not installable",
            code="NOT_INSTALLABLE",
            details={"app_id": app_id},
        )


class InstallFailedError(InstallError):
    """The install transition did not complete."""
    def __init__(self, app_id: str, reason: str, cause: Optional[Exception] = None):
        super().__init__(
            f"Failed to install '{app_id}': {reason}",
            code="INSTALL_FAILED",
            details={"app_id": app_id, "reason": reason},
            cause=cause,
        )


class OperationInProgressError(InstallError):
    """Another install or update for the same app is still in flight."""
    def __init__(self, app_id: str):
        super().__init__(
            f"An operation on '{app_id}' is already in progress",
            code="OPERATION_IN_PROGRESS",
            details={"app_id": app_id},
        )


# =============================================================================
# Update errors
# =============================================================================

class UpdateError(AppStoreError):
    """Base for update errors."""
    pass


class AppNotInstalledError(UpdateError):
    """Update requested for an app that is not installed."""
    def __init__(self, app_id: str):
        super().__init__(
            f"App '{app_id}' is not installed",
            code="APP_NOT_INSTALLED",
            details={"app_id": app_id},
        )


class UpdateFailedError(UpdateError):
    """The update transition did not complete."""
    def __init__(
        self,
        app_id: str,
        target_version: str,
        reason: str,
        cause: Optional[Exception] = None,
    ):
        super().__init__(
            f"Failed to update '{app_id}' to {target_version}: {reason}",
            code="UPDATE_FAILED",
            details={"app_id": app_id, "target_version": target_version, "reason": reason},
            cause=cause,
        )


# =============================================================================
# Persistence errors
# =============================================================================

class PersistenceError(AppStoreError):
    """Installed-state snapshot could not be written."""
    def __init__(self, path: str, reason: str, cause: Optional[Exception] = None):
        super().__init__(
            f"Cannot write installed apps to {path}: {reason}",
            code="PERSISTENCE_FAILED",
            details={"path": path, "reason": reason},
            cause=cause,
        )


# =============================================================================
# Configuration errors
# =============================================================================

class ConfigError(AppStoreError):
    """Base for configuration errors."""
    pass


class InvalidConfigError(ConfigError):
    """Invalid configuration."""
    def __init__(self, field: str, value: Any, reason: str):
        super().__init__(
            f"Invalid configuration: {field}={value}: {reason}",
            code="INVALID_CONFIG",
            details={"field": field, "value": str(value), "reason": reason},
        )
