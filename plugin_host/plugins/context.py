"""PluginContext - the capability bundle handed to each plugin's setup()."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional

from plugin_host.messaging.bus import MessageBusAPI
from plugin_host.plugins.storage import NamespacedStorage

if TYPE_CHECKING:
    from plugin_host.core import PluginsAPI
    from plugin_host.routing import RouteManager
    from plugin_host.state import EventEmitter, StateManager

LoggerFactory = Callable[[str], logging.Logger]


def create_plugin_logger(plugin_id: str, name: Optional[str] = None) -> logging.Logger:
    """Get a logger namespaced to a plugin.

    Args:
        plugin_id: Plugin ID
        name: Optional sub-logger name (appended to plugin.{plugin_id})

    Returns:
        Logger instance
    """
    if name:
        return logging.getLogger(f"plugin.{plugin_id}.{name}")
    return logging.getLogger(f"plugin.{plugin_id}")


@dataclass
class CoreAPI:
    """Services shared with every plugin. Passed through to plugins unmodified."""

    messages: MessageBusAPI
    routes: RouteManager
    state: StateManager
    events: EventEmitter
    plugins: Optional[PluginsAPI] = None


@dataclass
class PluginContext:
    """Capabilities given to a plugin during setup.

    ``logger`` and ``storage`` are namespaced to the plugin id; ``bus`` publishes
    with the plugin as source and only receives targeted messages meant for it.
    """

    plugin_id: str
    core: CoreAPI
    logger: logging.Logger
    storage: NamespacedStorage
    bus: MessageBusAPI
    config: Dict[str, Any] = field(default_factory=dict)

    def get_logger(self, name: Optional[str] = None) -> logging.Logger:
        return create_plugin_logger(self.plugin_id, name)
