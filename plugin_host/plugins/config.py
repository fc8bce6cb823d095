"""Plugin configuration service - manages plugins/config.json."""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List

logger = logging.getLogger(__name__)


class PluginConfigService:
    """Manages the plugins/config.json configuration file.

    Plugins are loaded unless listed under "disabled"; the per-plugin
    section becomes ``PluginContext.config``.

    Config format:
    {
        "disabled": ["inventory"],
        "plugins": {
            "clients": {
                "page_size": 25
            }
        }
    }
    """

    def __init__(self, config_file: Path):
        self.config_file = config_file
        self._config: Dict[str, Any] = self._load()

    def _load(self) -> Dict[str, Any]:
        """Load config from file, creating defaults if not found."""
        if self.config_file.exists():
            try:
                with open(self.config_file, "r", encoding="utf-8") as f:
                    return json.load(f)
            except (json.JSONDecodeError, IOError) as e:
                logger.error(f"Error loading plugin config: {e}")

        return {"disabled": [], "plugins": {}}

    def _save(self) -> None:
        """Save config to file."""
        self.config_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self.config_file, "w", encoding="utf-8") as f:
            json.dump(self._config, f, indent=2, ensure_ascii=False)
        logger.debug(f"Saved plugin config to {self.config_file}")

    def is_enabled(self, plugin_id: str) -> bool:
        """Check if a plugin may be loaded."""
        return plugin_id not in self._config.get("disabled", [])

    def get_plugin_config(self, plugin_id: str) -> Dict[str, Any]:
        """Get configuration for a specific plugin."""
        return self._config.get("plugins", {}).get(plugin_id, {})

    def get_disabled_list(self) -> List[str]:
        """Get list of disabled plugin IDs."""
        return list(self._config.get("disabled", []))

    def enable(self, plugin_id: str) -> None:
        """Enable a plugin."""
        disabled = self._config.get("disabled", [])
        if plugin_id in disabled:
            disabled.remove(plugin_id)
            self._save()
            logger.info(f"Enabled plugin: {plugin_id}")

    def disable(self, plugin_id: str) -> None:
        """Disable a plugin."""
        disabled = self._config.setdefault("disabled", [])
        if plugin_id not in disabled:
            disabled.append(plugin_id)
            self._save()
            logger.info(f"Disabled plugin: {plugin_id}")

    def update_plugin_config(self, plugin_id: str, config: Dict[str, Any]) -> None:
        """Update configuration for a specific plugin."""
        plugins = self._config.setdefault("plugins", {})
        plugins[plugin_id] = config
        self._save()
        logger.info(f"Updated config for plugin: {plugin_id}")

    def reload(self) -> None:
        """Reload config from disk."""
        self._config = self._load()
