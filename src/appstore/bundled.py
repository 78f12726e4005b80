"""
Apps shipped with the host.

They are listed ahead of anything discovered remotely, so a bundled
manifest always wins over a remote one with the same id, and they are
seeded into the installed set as non-removable records.
"""

from __future__ import annotations

from typing import List

from .models import AppManifest, AppCategory

BUNDLED_APPS: List[AppManifest] = [
    AppManifest(
        id="io.zos.finder",
        name="Finder",
        description="Browse files and folders",
        icon="📁",
        version="1.0.0",
        category=AppCategory.SYSTEM,
        author="zOS",
        entry_point="builtin:finder",
    ),
    AppManifest(
        id="io.zos.terminal",
        name="Terminal",
        description="Command line shell",
        icon="⌨️",
        version="1.0.0",
        category=AppCategory.DEVELOPER,
        author="zOS",
        entry_point="builtin:terminal",
    ),
    AppManifest(
        id="io.zos.settings",
        name="System Preferences",
        description="Configure appearance, network and accounts",
        icon="⚙️",
        version="1.0.0",
        category=AppCategory.SYSTEM,
        author="zOS",
        entry_point="builtin:settings",
    ),
    AppManifest(
        id="io.zos.appstore",
        name="App Store",
        description="Discover, install and update apps",
        icon="🛍️",
        version="1.0.0",
        category=AppCategory.SYSTEM,
        author="zOS",
        permissions=("network",),
        entry_point="builtin:appstore",
    ),
]
