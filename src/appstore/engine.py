"""
Registry Engine - orchestrates discovery, installed state and transitions.

An AppRegistry is constructed explicitly and handed to whatever front end
renders it; it owns three views:

    available   bundled manifests followed by discovered ones, one per id
    installed   persisted InstalledApp records, one per id
    updates     derived: installed apps whose manifest is newer

Transitions per app id:

    NOT_INSTALLED --install--> INSTALLING --ok--> INSTALLED
                                          --fail--> NOT_INSTALLED
    INSTALLED --uninstall--> NOT_INSTALLED            (bundled apps refuse)
    UPDATE_AVAILABLE --update--> UPDATING --ok--> INSTALLED (new version)
                                          --fail--> INSTALLED (old version)

Observers subscribe to RegistryEvent notifications. They are advisory:
a failing observer is logged and never affects the engine's own state.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Union

import httpx

from common.decorators import handle_errors, timed
from common.exceptions import (
    AppStoreError,
    AppNotInstalledError,
    CatalogFetchError,
    DescriptorError,
    InstallFailedError,
    NotInstallableError,
    OperationInProgressError,
    PersistenceError,
    UpdateFailedError,
)
from common.logging_config import LogContext

from .bundled import BUNDLED_APPS
from .config import RegistryConfig
from .installation_store import InstallationStore, JsonInstallationStore
from .installer import BaseInstaller, RecordOnlyInstaller
from .manifest_source import GitHubManifestSource, ManifestSource
from .models import AppManifest, AppSource, AppState, AppUpdate, InstalledApp
from .versions import compare_versions

logger = logging.getLogger(__name__)


class RegistryEvent(Enum):
    """Notifications emitted after a transition commits."""
    INSTALLED = "app-installed"       # payload: InstalledApp
    UNINSTALLED = "app-uninstalled"   # payload: app id
    UPDATED = "app-updated"           # payload: app id


def merge_manifests(*groups: Iterable[AppManifest]) -> List[AppManifest]:
    """Concatenate manifest lists, keeping the first manifest seen per id."""
    merged: List[AppManifest] = []
    seen = set()
    for group in groups:
        for manifest in group:
            if manifest.id in seen:
                logger.debug(f"Ignoring duplicate manifest for {manifest.id}")
                continue
            seen.add(manifest.id)
            merged.append(manifest)
    return merged


def _reason(error: BaseException) -> str:
    if isinstance(error, asyncio.TimeoutError):
        return "timed out"
    return str(error) or type(error).__name__


class AppRegistry:
    """
    The application registry.

    Example:
        async with AppRegistry.from_config(load_config()) as registry:
            for update in registry.updates:
                await registry.update(update.id, update.latest_version)
    """

    def __init__(
        self,
        source: ManifestSource,
        store: InstallationStore,
        installer: Optional[BaseInstaller] = None,
        bundled: Optional[Iterable[AppManifest]] = None,
        operation_timeout: Optional[float] = None,
    ):
        """
        Initialize AppRegistry.

        Args:
            source: Where manifests are discovered
            store: Where installed state is persisted
            installer: Work performed inside install/update (default: none)
            bundled: Apps shipped with the host (default: BUNDLED_APPS)
            operation_timeout: Seconds before an install/update is abandoned
        """
        self.source = source
        self.store = store
        self.installer = installer or RecordOnlyInstaller()
        self.bundled = list(BUNDLED_APPS if bundled is None else bundled)
        self.operation_timeout = operation_timeout

        self._available: List[AppManifest] = []
        self._installed: Dict[str, InstalledApp] = {}
        self._updates: List[AppUpdate] = []
        self._in_flight: Dict[str, AppState] = {}
        self._subscribers: Dict[RegistryEvent, List[Callable]] = {}

        self.loading = False
        self.error: Optional[AppStoreError] = None
        self.discovery_warnings: List[DescriptorError] = []

    @classmethod
    def from_config(
        cls,
        config: RegistryConfig,
        client: Optional[httpx.AsyncClient] = None,
        installer: Optional[BaseInstaller] = None,
    ) -> "AppRegistry":
        """Build a registry backed by GitHub discovery and a JSON snapshot."""
        return cls(
            source=GitHubManifestSource(config, client),
            store=JsonInstallationStore(config.state_path),
            installer=installer,
            operation_timeout=config.operation_timeout,
        )

    # ─── Lifecycle ───────────────────────────────────────────────────────

    async def open(self) -> bool:
        """Initial load. Returns False if discovery failed (see ``error``)."""
        return await self.refresh()

    async def close(self) -> None:
        """Release the manifest source's network resources."""
        await self.source.aclose()

    async def __aenter__(self) -> "AppRegistry":
        await self.open()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # ─── Views ───────────────────────────────────────────────────────────

    @property
    def available_apps(self) -> List[AppManifest]:
        return list(self._available)

    @property
    def updates(self) -> List[AppUpdate]:
        return list(self._updates)

    def get_installed_apps(self) -> List[InstalledApp]:
        return list(self._installed.values())

    def get_installed(self, app_id: str) -> Optional[InstalledApp]:
        return self._installed.get(app_id)

    def get_manifest(self, app_id: str) -> Optional[AppManifest]:
        for manifest in self._available:
            if manifest.id == app_id:
                return manifest
        return None

    def is_installed(self, app_id: str) -> bool:
        return app_id in self._installed

    def is_busy(self, app_id: str) -> bool:
        """True while an install or update of ``app_id`` is in flight."""
        return app_id in self._in_flight

    def state_of(self, app_id: str) -> AppState:
        if app_id in self._in_flight:
            return self._in_flight[app_id]
        if app_id not in self._installed:
            return AppState.NOT_INSTALLED
        if any(u.id == app_id for u in self._updates):
            return AppState.UPDATE_AVAILABLE
        return AppState.INSTALLED

    def filter(self, term: str = "") -> List[AppManifest]:
        """Available apps whose name or description contains ``term``."""
        if not term:
            return list(self._available)
        return [m for m in self._available if m.matches(term)]

    def check_for_updates(self) -> List[AppUpdate]:
        """Recompute update candidates from the installed and available sets."""
        latest = {m.id: m for m in self._available}
        updates = []
        for app in self._installed.values():
            manifest = latest.get(app.id)
            if manifest is None:
                continue
            if compare_versions(app.installed_version, manifest.version) < 0:
                updates.append(AppUpdate(
                    id=app.id,
                    current_version=app.installed_version,
                    latest_version=manifest.version,
                    release_notes=manifest.release_notes,
                ))
        self._updates = updates
        return list(updates)

    # ─── Events ──────────────────────────────────────────────────────────

    def subscribe(
        self,
        event: Union[RegistryEvent, str],
        callback: Callable[[object], None],
    ) -> Callable[[], None]:
        """
        Register a callback for an event.

        Args:
            event: RegistryEvent or its name ("app-installed", ...)
            callback: Called with the event payload

        Returns:
            A function that removes the subscription.
        """
        event = RegistryEvent(event)
        self._subscribers.setdefault(event, []).append(callback)

        def unsubscribe() -> None:
            callbacks = self._subscribers.get(event, [])
            if callback in callbacks:
                callbacks.remove(callback)

        return unsubscribe

    def _emit(self, event: RegistryEvent, payload: object) -> None:
        for callback in list(self._subscribers.get(event, [])):
            try:
                callback(payload)
            except Exception as e:
                logger.warning(f"{event.value} subscriber error: {e}")

    # ─── Loading ─────────────────────────────────────────────────────────

    def reload_installed(self) -> List[InstalledApp]:
        """Re-read the store and make sure every bundled app is present."""
        self._installed = {}
        for app in self.store.load():
            self._installed.setdefault(app.id, app)

        if self._seed_bundled():
            self._persist()
        return self.get_installed_apps()

    def _seed_bundled(self) -> bool:
        changed = False
        for manifest in self.bundled:
            current = self._installed.get(manifest.id)
            if current is not None and current.source is not AppSource.BUNDLED:
                continue
            if current is not None and compare_versions(
                current.installed_version, manifest.version
            ) >= 0:
                continue
            # Missing, or the host now ships a newer build
            self._installed[manifest.id] = InstalledApp.from_manifest(
                manifest,
                AppSource.BUNDLED,
                installed_at=current.installed_at if current else None,
            )
            changed = True
        return changed

    @timed
    async def refresh(self) -> bool:
        """
        Reload installed state, rediscover manifests, recompute updates.

        A discovery failure leaves the available set empty and sets
        ``error``; the installed set is still loaded.

        Returns:
            True if discovery succeeded.
        """
        self.loading = True
        self.error = None
        try:
            self.reload_installed()

            try:
                discovered = await self.source.discover()
            except Exception as e:
                if not isinstance(e, AppStoreError):
                    e = CatalogFetchError(
                        getattr(self.source, "listing_url", type(self.source).__name__),
                        _reason(e),
                        cause=e,
                    )
                logger.error(f"Failed to load apps: {e}")
                self.error = e
                self._available = []
                self._updates = []
                self.discovery_warnings = []
                return False

            self.discovery_warnings = list(self.source.warnings)
            self._available = merge_manifests(self.bundled, discovered)
            self.check_for_updates()
            logger.info(
                f"{len(self._available)} apps available, {len(self._installed)} installed, "
                f"{len(self._updates)} updates"
            )
            return True
        finally:
            self.loading = False

    # ─── Transitions ─────────────────────────────────────────────────────

    def _begin(self, app_id: str, state: AppState) -> None:
        if app_id in self._in_flight:
            raise OperationInProgressError(app_id)
        self._in_flight[app_id] = state

    def _end(self, app_id: str) -> None:
        self._in_flight.pop(app_id, None)

    async def _run(self, operation: Awaitable[None]) -> None:
        if self.operation_timeout:
            await asyncio.wait_for(operation, self.operation_timeout)
        else:
            await operation

    @handle_errors(
        PersistenceError,
        default=False,
        log_level=logging.WARNING,
        message="Installed apps not saved",
    )
    def _persist(self) -> bool:
        self.store.save(self.get_installed_apps())
        return True

    async def install(self, manifest: AppManifest) -> InstalledApp:
        """
        Install an app.

        Returns:
            The new installed record.

        Raises:
            NotInstallableError: manifest is flagged not installable
            OperationInProgressError: app is already being installed/updated
            InstallFailedError: the installer failed or timed out
        """
        if not manifest.installable:
            logger.warning(f"Refusing to install {manifest.id}: not installable")
            raise NotInstallableError(manifest.id)

        self._begin(manifest.id, AppState.INSTALLING)
        try:
            await self._run(self.installer.install(manifest))
        except Exception as e:
            logger.error(f"Install of {manifest.id} failed: {_reason(e)}")
            raise InstallFailedError(manifest.id, _reason(e), cause=e) from e
        finally:
            self._end(manifest.id)

        prior = self._installed.pop(manifest.id, None)
        # Reinstalling a bundled app must not make it removable
        source = AppSource.BUNDLED if prior and not prior.removable else AppSource.REMOTE
        record = InstalledApp.from_manifest(manifest, source)
        self._installed[record.id] = record

        with LogContext(app_id=record.id, operation="install"):
            self._persist()
            logger.info(f"Installed {record.name} {record.installed_version}")

        self.check_for_updates()
        self._emit(RegistryEvent.INSTALLED, record)
        return record

    def uninstall(self, app_id: str) -> bool:
        """
        Uninstall an app.

        Returns:
            True if a record was removed. Unknown ids, bundled apps and
            apps with an operation in flight are left alone.
        """
        app = self._installed.get(app_id)
        if app is None:
            logger.debug(f"Uninstall of unknown app {app_id} ignored")
            return False
        if not app.removable:
            logger.warning(f"Refusing to uninstall bundled app {app_id}")
            return False
        if app_id in self._in_flight:
            logger.warning(f"Refusing to uninstall {app_id} while it is busy")
            return False

        del self._installed[app_id]
        with LogContext(app_id=app_id, operation="uninstall"):
            self._persist()
            logger.info(f"Uninstalled {app.name}")

        self.check_for_updates()
        self._emit(RegistryEvent.UNINSTALLED, app_id)
        return True

    async def update(self, app_id: str, latest_version: str) -> InstalledApp:
        """
        Move an installed app to ``latest_version``.

        Returns:
            The updated record (same identity, new version).

        Raises:
            AppNotInstalledError: app is not installed
            OperationInProgressError: app is already being installed/updated
            UpdateFailedError: the installer failed or timed out; the
                record keeps its original version
        """
        app = self._installed.get(app_id)
        if app is None:
            raise AppNotInstalledError(app_id)

        self._begin(app_id, AppState.UPDATING)
        try:
            await self._run(self.installer.update(app, latest_version))
        except Exception as e:
            logger.error(f"Update of {app_id} failed: {_reason(e)}")
            raise UpdateFailedError(app_id, latest_version, _reason(e), cause=e) from e
        finally:
            self._end(app_id)

        # A refresh may have reloaded the record while the update ran
        current = self._installed.get(app_id)
        if current is None:
            raise AppNotInstalledError(app_id)

        previous = current.installed_version
        current.installed_version = latest_version
        current.version = latest_version

        with LogContext(app_id=app_id, operation="update"):
            self._persist()
            logger.info(f"Updated {current.name} {previous} -> {latest_version}")

        self._updates = [u for u in self._updates if u.id != app_id]
        self._emit(RegistryEvent.UPDATED, app_id)
        return current
