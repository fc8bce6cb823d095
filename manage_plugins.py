#!/usr/bin/env python3
"""Plugin management CLI tool."""

import argparse
import asyncio
import json
import shutil
import sys
from pathlib import Path

# Ensure project root is in path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from plugin_host.constants import (
    BUNDLED_PLUGINS_DIR,
    INSTALLED_PLUGINS_DIR,
    PLUGIN_CONFIG_FILE,
    get_extra_plugin_paths,
)
from plugin_host.errors import PluginLoadError
from plugin_host.plugins.config import PluginConfigService
from plugin_host.plugins.discovery import PluginDiscovery
from plugin_host.plugins.loader import PluginLoader, order_entries
from plugin_host.plugins.manifest import validate_manifest


def get_discovery() -> PluginDiscovery:
    """Create a PluginDiscovery instance."""
    search_paths = [
        (BUNDLED_PLUGINS_DIR, "bundled"),
        (INSTALLED_PLUGINS_DIR, "installed"),
    ]
    search_paths.extend((p, "external") for p in get_extra_plugin_paths())
    return PluginDiscovery(search_paths)


def get_config() -> PluginConfigService:
    """Create a PluginConfigService instance."""
    return PluginConfigService(PLUGIN_CONFIG_FILE)


def find_entry(plugin_id: str):
    entries = get_discovery().discover_all()
    entry = next((e for e in entries if e.id == plugin_id), None)
    if not entry:
        print(f"Plugin '{plugin_id}' not found.")
        sys.exit(1)
    return entry


def cmd_list(args):
    """List all discovered plugins in load order."""
    config = get_config()
    entries = get_discovery().discover_all()

    if not entries:
        print("No plugins found.")
        return

    print(f"{'ID':<20} {'Source':<10} {'Enabled':<8} {'Priority':<9} {'Depends on'}")
    print("-" * 80)

    for e in order_entries(entries):
        enabled = "Yes" if e.enabled and config.is_enabled(e.id) else "No"
        deps = ", ".join(str(d) for d in e.dependencies) or "-"
        print(f"{e.id:<20} {e.source:<10} {enabled:<8} {e.priority:<9} {deps}")


def cmd_info(args):
    """Show detailed plugin information (imports the plugin)."""
    config = get_config()
    entry = find_entry(args.plugin_id)

    try:
        definition = asyncio.run(PluginLoader().load_plugin(entry))
    except PluginLoadError as e:
        print(f"Plugin '{entry.id}' failed to load: {e}")
        sys.exit(1)

    manifest = definition.manifest
    plugin_config = config.get_plugin_config(entry.id)

    print(f"Plugin: {manifest.id}")
    print(f"  Name:         {manifest.name}")
    print(f"  Version:      {manifest.version}")
    print(f"  Description:  {manifest.description}")
    print(f"  Source:       {entry.source}")
    print(f"  Path:         {entry.path}")
    print(f"  Entry Point:  {entry.entry_point}")
    print(f"  Enabled:      {config.is_enabled(entry.id)}")
    print(f"  Permissions:  {', '.join(manifest.permissions) or '-'}")
    print(f"  Dependencies: {', '.join(str(d) for d in manifest.dependencies) or '-'}")
    if definition.messages:
        print(f"  Handles:      {', '.join(f'{manifest.id}:{t}' for t in definition.messages.handlers)}")
    if definition.api:
        print(f"  Methods:      {', '.join(sorted(definition.api.methods))}")
    if plugin_config:
        print(f"  Config:       {json.dumps(plugin_config, indent=4, ensure_ascii=False)}")


def cmd_enable(args):
    """Enable a plugin."""
    find_entry(args.plugin_id)
    get_config().enable(args.plugin_id)
    print(f"Plugin '{args.plugin_id}' enabled. Restart the service to take effect.")


def cmd_disable(args):
    """Disable a plugin."""
    get_config().disable(args.plugin_id)
    print(f"Plugin '{args.plugin_id}' disabled. Restart the service to take effect.")


def cmd_install(args):
    """Install a plugin from a local path."""
    source = Path(args.path).resolve()
    if not source.exists():
        print(f"Path does not exist: {source}")
        sys.exit(1)

    entry = PluginDiscovery([]).discover_single(source, "installed")
    if not entry:
        print(f"No valid plugin.json found at {source}")
        sys.exit(1)

    dest = INSTALLED_PLUGINS_DIR / entry.id
    if dest.exists():
        print(f"Plugin '{entry.id}' already installed at {dest}")
        sys.exit(1)

    INSTALLED_PLUGINS_DIR.mkdir(parents=True, exist_ok=True)
    shutil.copytree(source, dest)
    print(f"Plugin '{entry.id}' installed to {dest}")


def cmd_doctor(args):
    """Run health checks on the plugin system."""
    issues = []

    if not BUNDLED_PLUGINS_DIR.exists():
        issues.append(f"Bundled plugins directory missing: {BUNDLED_PLUGINS_DIR}")

    if PLUGIN_CONFIG_FILE.exists():
        try:
            with open(PLUGIN_CONFIG_FILE) as f:
                json.load(f)
        except json.JSONDecodeError as e:
            issues.append(f"Plugin config file has invalid JSON: {e}")

    config = get_config()
    entries = get_discovery().discover_all()
    discovered_ids = {e.id for e in entries}

    for disabled_id in config.get_disabled_list():
        if disabled_id not in discovered_ids:
            issues.append(f"Disabled plugin '{disabled_id}' not found in any search path")

    loader = PluginLoader()
    for entry in entries:
        for dep in entry.dependencies:
            if not dep.optional and dep.plugin_id not in discovered_ids:
                issues.append(f"Plugin '{entry.id}': missing dependency {dep}")
        try:
            definition = asyncio.run(loader.load_plugin(entry))
        except PluginLoadError as e:
            issues.append(f"Plugin '{entry.id}': {e}")
            continue
        for error in validate_manifest(definition.manifest):
            issues.append(f"Plugin '{entry.id}': {error}")

    if issues:
        print(f"Found {len(issues)} issue(s):")
        for i, issue in enumerate(issues, 1):
            print(f"  {i}. {issue}")
        sys.exit(1)
    else:
        print(f"All checks passed. {len(entries)} plugin(s) found, {len(config.get_disabled_list())} disabled.")


def main():
    parser = argparse.ArgumentParser(description="Plugin Host Plugin Manager")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("list", help="List all plugins")

    info_parser = subparsers.add_parser("info", help="Show plugin details")
    info_parser.add_argument("plugin_id", help="Plugin ID")

    enable_parser = subparsers.add_parser("enable", help="Enable a plugin")
    enable_parser.add_argument("plugin_id", help="Plugin ID")

    disable_parser = subparsers.add_parser("disable", help="Disable a plugin")
    disable_parser.add_argument("plugin_id", help="Plugin ID")

    install_parser = subparsers.add_parser("install", help="Install a plugin from local path")
    install_parser.add_argument("path", help="Path to plugin directory")

    subparsers.add_parser("doctor", help="Run health checks")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    commands = {
        "list": cmd_list,
        "info": cmd_info,
        "enable": cmd_enable,
        "disable": cmd_disable,
        "install": cmd_install,
        "doctor": cmd_doctor,
    }

    commands[args.command](args)


if __name__ == "__main__":
    main()
