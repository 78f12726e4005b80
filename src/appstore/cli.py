#!/usr/bin/env python3
"""
Z App Store CLI

Command-line front end for discovering, installing, updating and
removing apps. All state changes go through AppRegistry.
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from common.exceptions import AppStoreError, InvalidConfigError
from common.logging_config import setup_logging

from appstore.config import RegistryConfig, load_config
from appstore.engine import AppRegistry
from appstore.models import AppCategory, AppState

logger = logging.getLogger(__name__)


def get_config(args) -> RegistryConfig:
    """Load config and apply command-line overrides."""
    config = load_config(Path(args.config) if args.config else None)
    if args.org:
        config.organization = args.org
    if args.state:
        config.state_path = Path(args.state).expanduser()
    return config


def _state_label(registry: AppRegistry, app_id: str) -> str:
    state = registry.state_of(app_id)
    if state is AppState.UPDATE_AVAILABLE:
        return "update available"
    if state is AppState.INSTALLED:
        return "installed"
    return ""


async def cmd_discover(args, registry: AppRegistry) -> int:
    """List apps available in the catalog."""
    results = registry.filter(args.query or "")

    if args.category:
        try:
            category = AppCategory(args.category)
        except ValueError:
            print(f"Unknown category: {args.category}", file=sys.stderr)
            print(f"Valid categories: {', '.join(c.value for c in AppCategory)}")
            return 1
        results = [app for app in results if app.category == category]

    if not results:
        print(f"No apps found for: {args.query or '(all)'}")
        return 0

    print(f"Found {len(results)} app(s):\n")
    for app in results:
        label = _state_label(registry, app.id)
        print(f"  {app.icon} {app.id}")
        print(f"    {app.name} v{app.version} ({app.category.value})"
              + (f" [{label}]" if label else ""))
        if app.description:
            print(f"    {app.description[:80]}")
        print()

    for warning in registry.discovery_warnings:
        logger.info(warning.message)

    return 0


async def cmd_info(args, registry: AppRegistry) -> int:
    """Show detailed app information."""
    app = registry.get_manifest(args.app_id) or registry.get_installed(args.app_id)
    if not app:
        print(f"App not found: {args.app_id}", file=sys.stderr)
        return 1

    print(f"Name:        {app.name}")
    print(f"ID:          {app.id}")
    print(f"Version:     {app.version}")
    print(f"Category:    {app.category.value}")
    if app.author:
        print(f"Author:      {app.author}")
    if app.description:
        print(f"Description: {app.description}")
    if app.repository_url:
        print(f"Repository:  {app.repository_url}")
    if app.permissions:
        print(f"Permissions: {', '.join(app.permissions)}")
    print(f"Requires:    zOS {app.min_platform_version}+")

    installed = registry.get_installed(app.id)
    if installed:
        print(f"Installed:   v{installed.installed_version} ({installed.source.value})")
    elif not app.installable:
        print("Installed:   No (not installable)")
    else:
        print("Installed:   No")

    return 0


async def cmd_install(args, registry: AppRegistry) -> int:
    """Install an application."""
    manifest = registry.get_manifest(args.app_id)
    if not manifest:
        print(f"App not found: {args.app_id}", file=sys.stderr)
        return 1

    if registry.is_installed(manifest.id) and not args.force:
        print(f"{manifest.name} is already installed.")
        return 0

    print(f"Installing {manifest.name} v{manifest.version}...")
    try:
        await registry.install(manifest)
    except AppStoreError as e:
        print(f"Failed to install {manifest.name}: {e.message}", file=sys.stderr)
        return 1

    print(f"Successfully installed {manifest.name}")
    return 0


async def cmd_uninstall(args, registry: AppRegistry) -> int:
    """Uninstall an application."""
    app = registry.get_installed(args.app_id)
    if not app:
        print(f"{args.app_id} is not installed.")
        return 0

    if not app.removable:
        print(f"{app.name} is bundled with the system and cannot be uninstalled.",
              file=sys.stderr)
        return 1

    if registry.uninstall(app.id):
        print(f"Successfully uninstalled {app.name}")
        return 0

    print(f"Failed to uninstall {app.name}", file=sys.stderr)
    return 1


async def cmd_list(args, registry: AppRegistry) -> int:
    """List installed applications."""
    installed = registry.get_installed_apps()

    if not installed:
        print("No apps installed yet.")
        return 0

    print(f"Installed apps ({len(installed)}):\n")
    for app in installed:
        print(f"  {app.id}: {app.name} v{app.installed_version} ({app.source.value})")

    return 0


async def cmd_updates(args, registry: AppRegistry) -> int:
    """List available updates."""
    updates = registry.updates

    if not updates:
        print("All apps are up to date!")
        return 0

    print(f"Updates available ({len(updates)}):\n")
    for update in updates:
        print(f"  {update.id}: v{update.current_version} -> v{update.latest_version}")
        if update.release_notes:
            print(f"    {update.release_notes[:200]}")

    return 0


async def cmd_update(args, registry: AppRegistry) -> int:
    """Update one application, or all of them."""
    if args.all:
        targets = registry.updates
    else:
        if not args.app_id:
            print("Specify an app ID or --all", file=sys.stderr)
            return 1
        targets = [u for u in registry.updates if u.id == args.app_id]
        if not targets:
            if not registry.is_installed(args.app_id):
                print(f"{args.app_id} is not installed.", file=sys.stderr)
                return 1
            print(f"{args.app_id} is up to date.")
            return 0

    if not targets:
        print("All apps are up to date!")
        return 0

    failed = 0
    for update in targets:
        print(f"Updating {update.id} v{update.current_version} -> v{update.latest_version}...")
        try:
            await registry.update(update.id, update.latest_version)
        except AppStoreError as e:
            print(f"Failed to update {update.id}: {e.message}", file=sys.stderr)
            failed += 1

    if failed:
        return 1
    print("Update complete.")
    return 0


def cmd_config(args) -> int:
    """Print the effective configuration."""
    try:
        config = get_config(args)
    except InvalidConfigError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1
    print(json.dumps(config.to_dict(), indent=2, default=str))
    return 0


async def run_command(args, registry: Optional[AppRegistry] = None) -> int:
    """Open the registry, run the selected command, close the registry."""
    if registry is None:
        try:
            registry = AppRegistry.from_config(get_config(args))
        except InvalidConfigError as e:
            print(f"Error: {e.message}", file=sys.stderr)
            return 1

    try:
        if args.needs_catalog:
            if not await registry.refresh():
                message = registry.error.message if registry.error else "unknown error"
                print(f"Error: {message}", file=sys.stderr)
                print("Check your connection and run the command again.", file=sys.stderr)
                return 1
        else:
            registry.reload_installed()
        return await args.func(args, registry)
    finally:
        await registry.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="zos-appstore",
        description="zOS App Store",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable verbose output"
    )
    parser.add_argument("--config", help="Path to appstore.json")
    parser.add_argument("--org", help="GitHub organization to browse")
    parser.add_argument("--state", help="Path to the installed-apps snapshot")
    parser.add_argument("--log-file", help="Also write a debug log to this file")
    parser.add_argument("--json-logs", action="store_true",
                        help="Write the log file as JSON lines")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # discover
    discover_p = subparsers.add_parser("discover", help="Browse and search apps")
    discover_p.add_argument("query", nargs="?", default="", help="Search query")
    discover_p.add_argument("-c", "--category", help="Filter by category")
    discover_p.set_defaults(func=cmd_discover, needs_catalog=True)

    # info
    info_p = subparsers.add_parser("info", help="Show app details")
    info_p.add_argument("app_id", help="App ID")
    info_p.set_defaults(func=cmd_info, needs_catalog=True)

    # install
    install_p = subparsers.add_parser("install", help="Install an app")
    install_p.add_argument("app_id", help="App ID")
    install_p.add_argument("-f", "--force", action="store_true",
                           help="Reinstall if already installed")
    install_p.set_defaults(func=cmd_install, needs_catalog=True)

    # uninstall
    uninstall_p = subparsers.add_parser("uninstall", help="Uninstall an app")
    uninstall_p.add_argument("app_id", help="App ID")
    uninstall_p.set_defaults(func=cmd_uninstall, needs_catalog=False)

    # list
    list_p = subparsers.add_parser("list", help="List installed apps")
    list_p.set_defaults(func=cmd_list, needs_catalog=False)

    # updates
    updates_p = subparsers.add_parser("updates", help="List available updates")
    updates_p.set_defaults(func=cmd_updates, needs_catalog=True)

    # update
    update_p = subparsers.add_parser("update", help="Update apps")
    update_p.add_argument("app_id", nargs="?", help="App ID")
    update_p.add_argument("-a", "--all", action="store_true", help="Update every app")
    update_p.set_defaults(func=cmd_update, needs_catalog=True)

    # config
    subparsers.add_parser("config", help="Show effective configuration")

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(
        logging.DEBUG if args.verbose else logging.WARNING,
        log_file=args.log_file,
        json_logs=args.json_logs,
    )

    if args.command is None:
        parser.print_help()
        return 1

    if args.command == "config":
        return cmd_config(args)

    return asyncio.run(run_command(args))


if __name__ == "__main__":
    sys.exit(main())
