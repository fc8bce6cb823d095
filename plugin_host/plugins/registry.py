"""Plugin registry - validates plugins and drives them through their lifecycle."""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from plugin_host.errors import (
    DuplicateRegistrationError,
    ManifestValidationError,
    MissingDependencyError,
    PluginNotRegisteredError,
    PluginStateError,
)
from plugin_host.messaging.bus import MessageBusAPI
from plugin_host.observable import Observable, ReadableObservable
from plugin_host.plugins.context import CoreAPI, LoggerFactory, PluginContext, create_plugin_logger
from plugin_host.plugins.definition import PluginApi, PluginDefinition, PluginRoutes, PluginStores
from plugin_host.plugins.hooks import maybe_await
from plugin_host.plugins.manifest import PluginManifest, find_missing_dependencies, validate_manifest
from plugin_host.plugins.storage import MemoryStorageBackend, StorageFactory, storage_factory

logger = logging.getLogger(__name__)

Unsubscribe = Callable[[], None]


def _remover(listeners: Dict, handler: Callable) -> Unsubscribe:
    def unsubscribe() -> None:
        listeners.pop(handler, None)

    return unsubscribe


class PluginStatus(str, Enum):
    """Plugin lifecycle states."""

    LOADING = "loading"
    LOADED = "loaded"
    ENABLED = "enabled"
    DISABLED = "disabled"
    ERROR = "error"
    UNLOADING = "unloading"


# Only a settled plugin can be switched on or off; error is left via unregister
_TOGGLEABLE = (PluginStatus.ENABLED, PluginStatus.DISABLED)


@dataclass(frozen=True)
class PluginInstance:
    """Snapshot of a registered plugin, as seen by observers."""

    manifest: PluginManifest
    status: PluginStatus
    api: Optional[PluginApi] = None
    routes: Optional[PluginRoutes] = None
    stores: Optional[PluginStores] = None
    error: Optional[str] = None

    @property
    def id(self) -> str:
        return self.manifest.id

    def to_dict(self) -> dict:
        """Serialize plugin instance to dict for API responses."""
        return {
            "id": self.manifest.id,
            "name": self.manifest.name,
            "version": self.manifest.version,
            "description": self.manifest.description,
            "status": self.status.value,
            "priority": self.manifest.priority,
            "permissions": list(self.manifest.permissions),
            "dependencies": [str(dep) for dep in self.manifest.dependencies],
            "methods": sorted(self.api.methods) if self.api else [],
            "routes": self.routes.full_paths() if self.routes else [],
            "error": self.error,
        }


class PluginRegistry:
    """Owns the set of active plugins and their lifecycle.

    The instance table is published through an observable store; every
    structural change produces a new snapshot dict.
    """

    def __init__(
        self,
        core: CoreAPI,
        logger_factory: LoggerFactory = create_plugin_logger,
        storage: Optional[StorageFactory] = None,
        config_provider: Optional[Callable[[str], Dict[str, Any]]] = None,
        bus_factory: Optional[Callable[[str], MessageBusAPI]] = None,
    ):
        self._core = core
        self._logger_factory = logger_factory
        self._storage = storage or storage_factory(MemoryStorageBackend())
        self._config_provider = config_provider or (lambda plugin_id: {})
        self._bus_factory = bus_factory or getattr(core.messages, "create_scoped", lambda plugin_id: core.messages)

        self._plugins: Observable[Dict[str, PluginInstance]] = Observable({})
        self._definitions: Dict[str, PluginDefinition] = {}
        self._contexts: Dict[str, PluginContext] = {}
        self._subscriptions: Dict[str, List[Unsubscribe]] = {}

        # dicts used as ordered sets
        self._load_listeners: Dict[Callable[[PluginInstance], Any], None] = {}
        self._unload_listeners: Dict[Callable[[str], Any], None] = {}
        self._error_listeners: Dict[Callable[[str, BaseException], Any], None] = {}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def register(self, definition: PluginDefinition) -> None:
        """Validate, set up and enable (or disable) a plugin.

        Validation failures raise before anything is changed. Once the instance
        is in the table, any failure marks it ``error``, notifies error
        listeners and the manifest's ``on_error`` hook, and is re-raised.
        """
        manifest = definition.manifest
        plugin_id = manifest.id

        errors = validate_manifest(manifest)
        if errors:
            raise ManifestValidationError(plugin_id, errors)

        if plugin_id in self._definitions:
            raise DuplicateRegistrationError(plugin_id)

        missing = find_missing_dependencies(manifest, self._plugins.get())
        if missing:
            raise MissingDependencyError(plugin_id, missing)

        # Claimed before the first await so a concurrent register() of the
        # same id is rejected as a duplicate.
        self._definitions[plugin_id] = definition

        instance = PluginInstance(
            manifest=manifest,
            status=PluginStatus.LOADING,
            api=definition.api,
            routes=definition.routes,
            stores=definition.stores,
        )
        self._put(instance)
        logger.info(f"Loading plugin: {plugin_id} v{manifest.version}")

        try:
            await maybe_await(manifest.lifecycle.on_before_load())

            context = self._create_context(definition)
            self._contexts[plugin_id] = context

            if definition.setup is not None:
                await maybe_await(definition.setup(context))

            if definition.routes is not None:
                self._register_routes(plugin_id, definition.routes)

            if definition.messages is not None:
                self._subscribe_messages(definition, context)

            status = PluginStatus.ENABLED if manifest.enabled else PluginStatus.DISABLED
            instance = replace(instance, status=status)
            self._put(instance)

            await maybe_await(manifest.lifecycle.on_load())

            for listener in list(self._load_listeners):
                listener(instance)

        except Exception as e:
            logger.error(f"Failed to register plugin {plugin_id}: {e}")
            self._set_status(plugin_id, PluginStatus.ERROR, error=str(e))
            self._emit_error(plugin_id, e, manifest)
            raise

        logger.info(f"Registered plugin: {plugin_id} ({status.value})")

    async def unregister(self, plugin_id: str) -> None:
        """Tear a plugin down and remove it.

        If a hook or teardown raises, error listeners are notified and the
        error is re-raised; the plugin then stays in ``unloading``.
        A plugin still in ``loading`` cannot be unregistered until its
        registration finishes.
        """
        definition = self._require(plugin_id, action="unregister", blocked=(PluginStatus.LOADING,))

        try:
            self._set_status(plugin_id, PluginStatus.UNLOADING)

            await maybe_await(definition.manifest.lifecycle.on_unload())
            if definition.teardown is not None:
                await maybe_await(definition.teardown())

            if definition.routes is not None:
                self._unregister_routes(definition.routes)

            for unsubscribe in self._subscriptions.pop(plugin_id, []):
                unsubscribe()

            self._definitions.pop(plugin_id, None)
            self._contexts.pop(plugin_id, None)
            self._remove(plugin_id)

            for listener in list(self._unload_listeners):
                listener(plugin_id)

        except Exception as e:
            logger.error(f"Failed to unregister plugin {plugin_id}: {e}")
            self._emit_error(plugin_id, e, definition.manifest)
            raise

        logger.info(f"Unregistered plugin: {plugin_id}")

    async def enable(self, plugin_id: str) -> None:
        """Run ``on_enable`` and mark the plugin enabled. Only valid from enabled or disabled."""
        definition = self._require(plugin_id, action="enable", allowed=_TOGGLEABLE)
        await maybe_await(definition.manifest.lifecycle.on_enable())
        self._set_status(plugin_id, PluginStatus.ENABLED)
        logger.info(f"Enabled plugin: {plugin_id}")

    async def disable(self, plugin_id: str) -> None:
        definition = self._require(plugin_id, action="disable", allowed=_TOGGLEABLE)
        await maybe_await(definition.manifest.lifecycle.on_disable())
        self._set_status(plugin_id, PluginStatus.DISABLED)
        logger.info(f"Disabled plugin: {plugin_id}")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, plugin_id: str) -> Optional[PluginInstance]:
        """Get a plugin by ID."""
        return self._plugins.get().get(plugin_id)

    def get_all(self) -> List[PluginInstance]:
        """Get all registered plugins."""
        return list(self._plugins.get().values())

    def has(self, plugin_id: str) -> bool:
        """Check if a plugin is registered."""
        return plugin_id in self._plugins.get()

    def count(self) -> int:
        return len(self._plugins.get())

    def get_store(self) -> ReadableObservable[Dict[str, PluginInstance]]:
        """Read-only observable over the instance table."""
        return self._plugins.readonly()

    def get_context(self, plugin_id: str) -> Optional[PluginContext]:
        return self._contexts.get(plugin_id)

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def on_load(self, handler: Callable[[PluginInstance], Any]) -> Unsubscribe:
        self._load_listeners[handler] = None
        return _remover(self._load_listeners, handler)

    def on_unload(self, handler: Callable[[str], Any]) -> Unsubscribe:
        self._unload_listeners[handler] = None
        return _remover(self._unload_listeners, handler)

    def on_error(self, handler: Callable[[str, BaseException], Any]) -> Unsubscribe:
        self._error_listeners[handler] = None
        return _remover(self._error_listeners, handler)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require(self, plugin_id: str, action: str = "", allowed: Tuple[PluginStatus, ...] = (),
                 blocked: Tuple[PluginStatus, ...] = ()) -> PluginDefinition:
        definition = self._definitions.get(plugin_id)
        if definition is None:
            raise PluginNotRegisteredError(plugin_id)
        status = self.get(plugin_id).status
        if (allowed and status not in allowed) or status in blocked:
            raise PluginStateError(plugin_id, status.value, action)
        return definition

    def _create_context(self, definition: PluginDefinition) -> PluginContext:
        plugin_id = definition.manifest.id
        return PluginContext(
            plugin_id=plugin_id,
            core=self._core,
            config=dict(self._config_provider(plugin_id)),
            logger=self._logger_factory(plugin_id),
            storage=self._storage(plugin_id),
            bus=self._bus_factory(plugin_id),
        )

    def _register_routes(self, plugin_id: str, routes: PluginRoutes) -> None:
        self._core.routes.register(routes.routes, routes.base_path, plugin_id)
        for item in routes.navigation:
            self._core.routes.add_navigation_item(item)

    def _unregister_routes(self, routes: PluginRoutes) -> None:
        self._core.routes.unregister(routes.full_paths())
        for item in routes.navigation:
            self._core.routes.remove_navigation_item(item.id)

    def _subscribe_messages(self, definition: PluginDefinition, context: PluginContext) -> None:
        plugin_id = definition.manifest.id
        unsubscribes = self._subscriptions.setdefault(plugin_id, [])

        for message_type, handler in definition.messages.handlers.items():
            unsubscribes.append(
                self._core.messages.subscribe(f"{plugin_id}:{message_type}", handler, source="*")
            )

        for subscription in definition.messages.subscriptions:
            unsubscribes.append(
                context.bus.subscribe(subscription.type, subscription.handler, source=subscription.source)
            )

    def _put(self, instance: PluginInstance) -> None:
        self._plugins.update(lambda table: {**table, instance.id: instance})

    def _set_status(self, plugin_id: str, status: PluginStatus, error: Optional[str] = None) -> None:
        def apply(table: Dict[str, PluginInstance]) -> Dict[str, PluginInstance]:
            updated = dict(table)
            current = updated.get(plugin_id)
            if current is not None:
                updated[plugin_id] = replace(current, status=status, error=error)
            return updated

        self._plugins.update(apply)

    def _remove(self, plugin_id: str) -> None:
        self._plugins.update(lambda table: {k: v for k, v in table.items() if k != plugin_id})

    def _emit_error(self, plugin_id: str, error: BaseException, manifest: PluginManifest) -> None:
        for listener in list(self._error_listeners):
            try:
                listener(plugin_id, error)
            except Exception:
                logger.exception(f"Error listener failed for plugin {plugin_id}")
        try:
            manifest.lifecycle.on_error(error)
        except Exception:
            logger.exception(f"on_error hook failed for plugin {plugin_id}")
