"""Core - top-level orchestrator wiring the bus, registry and collaborators."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, List, Optional, Tuple

from plugin_host.constants import MESSAGE_HISTORY_LIMIT, REQUEST_TIMEOUT
from plugin_host.errors import PluginMethodNotFoundError, PluginNotRegisteredError
from plugin_host.messaging.bus import MessageBus
from plugin_host.plugins.config import PluginConfigService
from plugin_host.plugins.context import CoreAPI
from plugin_host.plugins.definition import MethodContext
from plugin_host.plugins.discovery import PluginDiscovery, PluginEntry
from plugin_host.plugins.hooks import maybe_await
from plugin_host.plugins.loader import PluginLoader
from plugin_host.plugins.registry import PluginInstance, PluginRegistry
from plugin_host.plugins.storage import MemoryStorageBackend, storage_factory
from plugin_host.routing import RouteManager
from plugin_host.state import EventEmitter, StateManager

logger = logging.getLogger(__name__)


class PluginsAPI:
    """Read-only view of the registry handed to plugins via ``core.plugins``."""

    def __init__(self, registry: PluginRegistry):
        self._registry = registry

    def get(self, plugin_id: str) -> Optional[PluginInstance]:
        return self._registry.get(plugin_id)

    def get_all(self) -> List[PluginInstance]:
        return self._registry.get_all()

    def has(self, plugin_id: str) -> bool:
        return self._registry.has(plugin_id)

    async def call(self, plugin_id: str, method: str, input: Any = None,
                   caller_id: Optional[str] = None) -> Any:
        """Invoke a method another plugin exposes in its ``api``."""
        plugin = self._registry.get(plugin_id)
        if plugin is None:
            raise PluginNotRegisteredError(plugin_id)
        if plugin.api is None or method not in plugin.api.methods:
            raise PluginMethodNotFoundError(plugin_id, method)
        handler = plugin.api.methods[method].handler
        return await maybe_await(handler(input, MethodContext(caller_id=caller_id)))

    def on_plugin_load(self, handler: Callable[[PluginInstance], Any]) -> Callable[[], None]:
        return self._registry.on_load(handler)

    def on_plugin_unload(self, handler: Callable[[str], Any]) -> Callable[[], None]:
        return self._registry.on_unload(handler)


class Core:
    """Owns one instance of every core component.

    Coordinates discovery, loading and registration at startup and tears
    everything down on ``destroy``.
    """

    def __init__(
        self,
        messages: MessageBus,
        routes: RouteManager,
        state: StateManager,
        events: EventEmitter,
        config: Optional[PluginConfigService] = None,
        storage_backend: Optional[MemoryStorageBackend] = None,
        search_paths: Optional[List[Tuple[Path, str]]] = None,
    ):
        self.messages = messages
        self.routes = routes
        self.state = state
        self.events = events
        self.config = config

        self.api = CoreAPI(messages=messages, routes=routes, state=state, events=events)
        self.registry = PluginRegistry(
            self.api,
            storage=storage_factory(storage_backend or MemoryStorageBackend()),
            config_provider=config.get_plugin_config if config else None,
        )
        self.api.plugins = PluginsAPI(self.registry)

        self.loader = PluginLoader()
        self.discovery = PluginDiscovery(search_paths or [])

    def discover(self) -> List[PluginEntry]:
        """Discover plugins on the search paths, applying the config's disabled list."""
        entries = self.discovery.discover_all()
        if self.config is not None:
            for entry in entries:
                if not self.config.is_enabled(entry.id):
                    logger.info(f"Plugin '{entry.id}' is disabled in config, skipping")
                    entry.enabled = False
        return entries

    async def initialize(self, entries: Optional[List[PluginEntry]] = None) -> None:
        """Load and register plugins. Individual failures are logged, not raised."""
        if entries is None:
            entries = self.discover()
        logger.info(f"Initializing with {len(entries)} plugin entries")
        self.events.emit("core:initializing")

        for definition in await self.loader.load_all(entries):
            plugin_id = definition.manifest.id
            try:
                await self.registry.register(definition)
            except Exception as e:
                logger.error(f"Failed to register plugin {plugin_id}: {e}")

        plugin_ids = [p.id for p in self.registry.get_all()]
        self.events.emit("core:ready", {"plugins": plugin_ids})
        logger.info(f"Plugin system initialized, {len(plugin_ids)} plugin(s) registered")

    async def destroy(self) -> None:
        """Unregister every plugin and clear shared state."""
        logger.info("Destroying core")
        self.events.emit("core:destroying")

        # Dependents were registered after their dependencies; unload in reverse
        for plugin in reversed(self.registry.get_all()):
            try:
                await self.registry.unregister(plugin.id)
            except Exception as e:
                logger.error(f"Failed to unregister plugin {plugin.id}: {e}")

        await self.messages.drain()
        self.state.clear()
        self.messages.clear_history()
        self.events.remove_all_listeners()

        self.events.emit("core:destroyed")
        logger.info("Core destroyed")

    async def enable_plugin(self, plugin_id: str) -> PluginInstance:
        """Enable a plugin and persist the choice in the plugin config."""
        await self.registry.enable(plugin_id)
        if self.config is not None:
            self.config.enable(plugin_id)
        return self.registry.get(plugin_id)

    async def disable_plugin(self, plugin_id: str) -> PluginInstance:
        """Disable a plugin and persist the choice in the plugin config."""
        await self.registry.disable(plugin_id)
        if self.config is not None:
            self.config.disable(plugin_id)
        return self.registry.get(plugin_id)

    def get_plugin_info(self, plugin_id: str) -> Optional[dict]:
        """Get plugin information as dict."""
        instance = self.registry.get(plugin_id)
        if instance is None:
            return None
        info = instance.to_dict()
        info["config"] = self.config.get_plugin_config(plugin_id) if self.config else {}
        return info

    def list_plugins(self) -> List[dict]:
        """List all plugins as dicts."""
        return [p.to_dict() for p in self.registry.get_all()]


def create_core(
    config: Optional[PluginConfigService] = None,
    storage_backend: Optional[MemoryStorageBackend] = None,
    search_paths: Optional[List[Tuple[Path, str]]] = None,
    history_limit: int = MESSAGE_HISTORY_LIMIT,
    request_timeout: float = REQUEST_TIMEOUT,
) -> Core:
    """Build a fully wired Core with fresh, owned components."""
    return Core(
        messages=MessageBus(history_limit=history_limit, default_timeout=request_timeout),
        routes=RouteManager(),
        state=StateManager(),
        events=EventEmitter(),
        config=config,
        storage_backend=storage_backend,
        search_paths=search_paths,
    )
