"""
Pytest configuration and shared fixtures for App Store tests.

Provides in-memory sources, stores and installers so no test touches
the network or the real ~/.config directory.
"""

import logging
import pytest
from pathlib import Path
import sys

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


# ============ Environment Fixtures ============

@pytest.fixture
def state_path(tmp_path: Path) -> Path:
    """Path for an installed-apps snapshot inside the test's temp dir."""
    return tmp_path / "zos" / "installed-apps.json"


@pytest.fixture
def restore_root_logger():
    """Undo setup_logging() so later tests keep pytest's capture handlers."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


# ============ Manifest Fixtures ============

@pytest.fixture
def make_manifest():
    """Factory for AppManifest with sensible defaults."""
    from appstore.models import AppManifest, AppCategory

    def _make(app_id: str, version: str = "1.0.0", **kwargs) -> "AppManifest":
        defaults = {
            "name": app_id.rsplit(".", 1)[-1].title(),
            "description": f"The {app_id} app",
            "category": AppCategory.UTILITIES,
            "author": "z-os4",
        }
        defaults.update(kwargs)
        return AppManifest(id=app_id, version=version, **defaults)

    return _make


@pytest.fixture
def notes_manifest(make_manifest):
    """A productivity app with a release note."""
    from appstore.models import AppCategory

    return make_manifest(
        "io.zos.notes",
        "1.1.0",
        name="Notes",
        description="Quick notes and checklists",
        category=AppCategory.PRODUCTIVITY,
        permissions=("storage",),
        release_notes="Checklists can be reordered",
    )


@pytest.fixture
def bundled_manifest(make_manifest):
    from appstore.models import AppCategory

    return make_manifest(
        "io.zos.finder",
        "1.0.0",
        name="Finder",
        description="Browse files",
        category=AppCategory.SYSTEM,
    )


# ============ Installer Fixtures ============

class FakeInstaller:
    """Installer double that can fail or hold a transition open."""

    def __init__(self):
        self.fail_with = None
        self.gate = None
        self.calls = []

    async def _step(self, name, *args):
        self.calls.append((name,) + args)
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_with is not None:
            raise self.fail_with

    async def install(self, manifest):
        await self._step("install", manifest.id)

    async def update(self, app, target_version):
        await self._step("update", app.id, target_version)


@pytest.fixture
def fake_installer():
    return FakeInstaller()


# ============ Registry Fixtures ============

@pytest.fixture
def memory_store():
    from appstore.installation_store import MemoryInstallationStore
    return MemoryInstallationStore()


@pytest.fixture
def make_registry(memory_store, fake_installer):
    """Build an AppRegistry over a static source and an in-memory store."""
    from appstore.engine import AppRegistry
    from appstore.manifest_source import StaticManifestSource

    def _make(manifests=(), bundled=(), store=None, source=None,
              installer=None, **kwargs):
        return AppRegistry(
            source=source or StaticManifestSource(manifests),
            store=store or memory_store,
            installer=installer or fake_installer,
            bundled=list(bundled),
            **kwargs,
        )

    return _make


@pytest.fixture
def event_log():
    """Subscribe a recorder to every registry event."""
    from appstore.engine import RegistryEvent

    def _attach(registry):
        events = []
        for event in RegistryEvent:
            registry.subscribe(event, lambda payload, e=event: events.append((e, payload)))
        return events

    return _attach


# ============ Marker Configuration ============

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line(
        "markers", "unit: fast unit tests with no external deps"
    )
    config.addinivalue_line(
        "markers", "integration: tests that combine several components"
    )
