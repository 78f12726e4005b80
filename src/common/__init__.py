"""
Z App Store Common Utilities

Shared exceptions, decorators, and logging setup.
"""

from .exceptions import (
    AppStoreError, CatalogError, CatalogFetchError, DescriptorError,
    InstallError, NotInstallableError, InstallFailedError,
    OperationInProgressError, UpdateError, AppNotInstalledError,
    UpdateFailedError, PersistenceError, ConfigError, InvalidConfigError,
)
from .decorators import handle_errors, retry, timed
from .logging_config import setup_logging, LogContext

__all__ = [
    # Exceptions
    "AppStoreError", "CatalogError", "CatalogFetchError", "DescriptorError",
    "InstallError", "NotInstallableError", "InstallFailedError",
    "OperationInProgressError", "UpdateError", "AppNotInstalledError",
    "UpdateFailedError", "PersistenceError", "ConfigError", "InvalidConfigError",
    # Decorators
    "handle_errors", "retry", "timed",
    # Logging
    "setup_logging", "LogContext",
]
