"""
Installation Store - durable record of installed apps.

The whole installed set is one snapshot: ``save()`` replaces it and
``load()`` reads it back. Reading never fails; a missing file is the
first-run state and a damaged file is set aside and treated as empty.
"""

from __future__ import annotations

import copy
import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterable, List, Optional, Union

from common.exceptions import PersistenceError
from common.logging_config import LogContext
from utils.atomic_write import atomic_write_json, safe_backup

from .models import InstalledApp

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1


class InstallationStore(ABC):
    """Base class for installed-state persistence."""

    @abstractmethod
    def load(self) -> List[InstalledApp]:
        """Return the persisted installed set ([] on first run)."""
        pass

    @abstractmethod
    def save(self, apps: Iterable[InstalledApp]) -> None:
        """
        Replace the persisted installed set.

        Raises:
            PersistenceError: if the snapshot cannot be written
        """
        pass


class MemoryInstallationStore(InstallationStore):
    """Keeps the snapshot in memory, for tests and throwaway sessions."""

    def __init__(self, apps: Optional[Iterable[InstalledApp]] = None):
        self._apps: List[InstalledApp] = copy.deepcopy(list(apps or []))
        self.save_count = 0

    def load(self) -> List[InstalledApp]:
        return copy.deepcopy(self._apps)

    def save(self, apps: Iterable[InstalledApp]) -> None:
        self._apps = copy.deepcopy(list(apps))
        self.save_count += 1


class JsonInstallationStore(InstallationStore):
    """
    Stores installed apps in a single JSON document.

    Format:
        {"version": 1, "apps": [{...InstalledApp.to_dict()...}, ...]}
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def load(self) -> List[InstalledApp]:
        if not self.path.exists():
            logger.debug(f"No installed-apps snapshot at {self.path}")
            return []

        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            if not isinstance(data, dict) or not isinstance(data.get("apps"), list):
                raise ValueError("expected an object with an 'apps' list")
        except (OSError, ValueError) as e:
            self._quarantine(e)
            return []

        apps: List[InstalledApp] = []
        seen = set()
        for record in data["apps"]:
            try:
                app = InstalledApp.from_dict(record)
            except (KeyError, ValueError, TypeError, AttributeError) as e:
                logger.warning(f"Skipping unreadable installed-app record: {e}")
                continue
            if app.id in seen:
                logger.warning(f"Duplicate installed-app record for {app.id}, keeping first")
                continue
            seen.add(app.id)
            apps.append(app)

        logger.debug(f"Loaded {len(apps)} installed apps from {self.path}")
        return apps

    def _quarantine(self, error: Exception) -> None:
        with LogContext(path=str(self.path)):
            logger.error(f"Installed-apps snapshot is unreadable, starting empty: {error}")
        try:
            backup = safe_backup(self.path, ".corrupt")
            logger.info(f"Kept damaged snapshot as {backup}")
        except OSError as e:
            logger.warning(f"Could not back up damaged snapshot: {e}")

    def save(self, apps: Iterable[InstalledApp]) -> None:
        records = [app.to_dict() for app in apps]
        try:
            atomic_write_json(self.path, {"version": SNAPSHOT_VERSION, "apps": records})
        except OSError as e:
            raise PersistenceError(str(self.path), e.strerror or str(e), cause=e)
        logger.debug(f"Saved {len(records)} installed apps to {self.path}")
