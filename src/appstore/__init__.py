"""
Z App Store

Registry engine for apps published in a GitHub organization: discovery,
installed-state persistence, update detection and install/uninstall/update
transitions.
"""

from .config import RegistryConfig, load_config
from .engine import AppRegistry, RegistryEvent, merge_manifests
from .installation_store import (
    InstallationStore,
    JsonInstallationStore,
    MemoryInstallationStore,
)
from .installer import BaseInstaller, RecordOnlyInstaller
from .manifest_source import (
    GitHubManifestSource,
    ManifestSource,
    StaticManifestSource,
    parse_descriptor,
)
from .models import (
    AppCategory,
    AppManifest,
    AppSource,
    AppState,
    AppUpdate,
    InstalledApp,
)
from .versions import compare_versions, is_newer, parse_version

__all__ = [
    "AppRegistry",
    "RegistryEvent",
    "merge_manifests",
    "RegistryConfig",
    "load_config",
    "InstallationStore",
    "JsonInstallationStore",
    "MemoryInstallationStore",
    "BaseInstaller",
    "RecordOnlyInstaller",
    "ManifestSource",
    "GitHubManifestSource",
    "StaticManifestSource",
    "parse_descriptor",
    "AppCategory",
    "AppManifest",
    "AppSource",
    "AppState",
    "AppUpdate",
    "InstalledApp",
    "compare_versions",
    "is_newer",
    "parse_version",
]
