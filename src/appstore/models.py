"""
App Store data model.

Manifests describe what an organization publishes; installed records are
the locally persisted proof that an app was installed, with their own
version tracking independent of the manifest's current version.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Tuple, Dict, Any, Iterable


class AppCategory(Enum):
    """Application categories."""
    PRODUCTIVITY = "productivity"
    UTILITIES = "utilities"
    ENTERTAINMENT = "entertainment"
    DEVELOPER = "developer"
    SYSTEM = "system"

    @classmethod
    def parse(cls, value: Any) -> "AppCategory":
        """Lenient lookup; anything unrecognised lands in utilities."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.UTILITIES


class AppSource(Enum):
    """Where an installed app came from."""
    BUNDLED = "bundled"   # Shipped with the host, cannot be uninstalled
    REMOTE = "remote"     # Installed from the organization catalog
    LOCAL = "local"       # Side-loaded

    @classmethod
    def parse(cls, value: Any) -> "AppSource":
        if isinstance(value, cls):
            return value
        text = str(value).strip().lower()
        if text == "github":
            return cls.REMOTE
        try:
            return cls(text)
        except ValueError:
            return cls.LOCAL


class AppState(Enum):
    """Per-app state as seen by the registry engine."""
    NOT_INSTALLED = "not_installed"
    INSTALLING = "installing"
    INSTALLED = "installed"
    UPDATE_AVAILABLE = "update_available"
    UPDATING = "updating"


def _permissions(value: Any) -> Tuple[str, ...]:
    """Normalize a permissions list: strings only, no duplicates, order kept."""
    if isinstance(value, str) or not isinstance(value, Iterable):
        return ()
    seen = []
    for item in value:
        if isinstance(item, str) and item and item not in seen:
            seen.append(item)
    return tuple(seen)


def _text(value: Any, default: str = "") -> str:
    if value is None:
        return default
    return str(value)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class AppManifest:
    """An installable package as published remotely."""
    id: str
    name: str
    description: str = ""
    icon: str = "📦"
    version: str = "0.0.0"
    category: AppCategory = AppCategory.UTILITIES

    # Provenance / compatibility
    author: str = ""
    repository_url: str = ""
    min_platform_version: str = "1.0.0"

    permissions: Tuple[str, ...] = ()
    installable: bool = True
    entry_point: str = "index.js"
    release_notes: Optional[str] = None

    def __post_init__(self):
        self.category = AppCategory.parse(self.category)
        self.permissions = _permissions(self.permissions)
        if not self.release_notes:
            self.release_notes = None

    def matches(self, term: str) -> bool:
        """Case-insensitive substring match over name and description."""
        needle = term.lower()
        return needle in self.name.lower() or needle in self.description.lower()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "icon": self.icon,
            "version": self.version,
            "category": self.category.value,
            "author": self.author,
            "repositoryUrl": self.repository_url,
            "minPlatformVersion": self.min_platform_version,
            "permissions": list(self.permissions),
            "installable": self.installable,
            "entryPoint": self.entry_point,
            "releaseNotes": self.release_notes,
        }

    @classmethod
    def _manifest_kwargs(cls, data: Dict[str, Any]) -> Dict[str, Any]:
        app_id = data["id"]
        if not isinstance(app_id, str) or not app_id:
            raise ValueError(f"Invalid app id: {app_id!r}")
        release_notes = data.get("releaseNotes")
        return {
            "id": app_id,
            "name": _text(data.get("name"), app_id),
            "description": _text(data.get("description")),
            "icon": _text(data.get("icon"), "📦"),
            "version": _text(data.get("version"), "0.0.0"),
            "category": AppCategory.parse(data.get("category", "utilities")),
            "author": _text(data.get("author")),
            "repository_url": _text(data.get("repositoryUrl")),
            "min_platform_version": _text(data.get("minPlatformVersion"), "1.0.0"),
            "permissions": _permissions(data.get("permissions", ())),
            "installable": data.get("installable") is not False,
            "entry_point": _text(data.get("entryPoint"), "index.js"),
            "release_notes": _text(release_notes) if release_notes else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AppManifest":
        """Create from dictionary."""
        return cls(**cls._manifest_kwargs(data))


@dataclass
class InstalledApp(AppManifest):
    """A manifest plus local installation bookkeeping."""
    installed_at: datetime = field(default_factory=_utcnow)
    installed_version: str = ""
    source: AppSource = AppSource.REMOTE

    def __post_init__(self):
        super().__post_init__()
        self.source = AppSource.parse(self.source)
        if not self.installed_version:
            self.installed_version = self.version

    @property
    def removable(self) -> bool:
        return self.source is not AppSource.BUNDLED

    @classmethod
    def from_manifest(
        cls,
        manifest: AppManifest,
        source: AppSource = AppSource.REMOTE,
        installed_at: Optional[datetime] = None,
    ) -> "InstalledApp":
        """Build an installed record for ``manifest`` at its current version."""
        values = {f.name: getattr(manifest, f.name) for f in fields(AppManifest)}
        return cls(
            **values,
            installed_at=installed_at or _utcnow(),
            installed_version=manifest.version,
            source=source,
        )

    def to_manifest(self) -> AppManifest:
        values = {f.name: getattr(self, f.name) for f in fields(AppManifest)}
        return AppManifest(**values)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({
            "installedAt": self.installed_at.isoformat(),
            "installedVersion": self.installed_version,
            "source": self.source.value,
        })
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "InstalledApp":
        """
        Create from a persisted record.

        Raises:
            KeyError, ValueError, TypeError: if the record is unusable
        """
        installed_at = datetime.fromisoformat(data["installedAt"])
        if installed_at.tzinfo is None:
            installed_at = installed_at.replace(tzinfo=timezone.utc)
        return cls(
            **cls._manifest_kwargs(data),
            installed_at=installed_at,
            installed_version=_text(data.get("installedVersion")),
            source=AppSource.parse(data.get("source", "remote")),
        )


@dataclass
class AppUpdate:
    """A newer published version of an installed app. Derived, never stored."""
    id: str
    current_version: str
    latest_version: str
    release_notes: Optional[str] = None
