"""
App Installer - the pluggable step that runs inside install/update transitions.

The registry engine owns the installed-state bookkeeping; an installer
only does whatever work the host needs before an install or update
may commit. Uninstall is pure bookkeeping and never reaches the installer.
Raising from any method fails the transition and leaves the installed
set untouched.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from .models import AppManifest, InstalledApp

logger = logging.getLogger(__name__)


class BaseInstaller(ABC):
    """Base class for app installers."""

    @abstractmethod
    async def install(self, manifest: AppManifest) -> None:
        """Prepare ``manifest`` for use by the host."""
        pass

    @abstractmethod
    async def update(self, app: InstalledApp, target_version: str) -> None:
        """Move an installed app to ``target_version``."""
        pass


class RecordOnlyInstaller(BaseInstaller):
    """
    Installer that only records the transition.

    The host loads apps straight from their entry point, so there is
    nothing to fetch or unpack locally.
    """

    async def install(self, manifest: AppManifest) -> None:
        logger.debug(f"Recording install of {manifest.id} {manifest.version}")

    async def update(self, app: InstalledApp, target_version: str) -> None:
        logger.debug(
            f"Recording update of {app.id} {app.installed_version} -> {target_version}"
        )
