"""Plugin definition - everything a plugin hands to the registry."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, List, Optional, Union

from plugin_host.messaging.message import Message, MessageHandler
from plugin_host.observable import Observable
from plugin_host.plugins.manifest import PluginManifest
from plugin_host.routing import NavigationItem, RouteDefinition, join_path

if TYPE_CHECKING:
    from plugin_host.plugins.context import PluginContext


@dataclass
class MethodContext:
    """Call-site information passed to plugin API methods."""

    caller_id: Optional[str] = None
    user: Optional[Dict[str, Any]] = None


@dataclass
class PluginMethod:
    handler: Callable[[Any, MethodContext], Any]
    description: str = ""
    input_schema: Optional[Dict[str, Any]] = None
    output_schema: Optional[Dict[str, Any]] = None
    permissions: List[str] = field(default_factory=list)


@dataclass
class PluginApi:
    """Methods a plugin exposes to other plugins through ``core.plugins.call``."""

    version: str = "1.0.0"
    methods: Dict[str, PluginMethod] = field(default_factory=dict)
    docs: Optional[Dict[str, Any]] = None


@dataclass
class PluginRoutes:
    base_path: str
    routes: List[RouteDefinition] = field(default_factory=list)
    navigation: List[NavigationItem] = field(default_factory=list)

    def full_paths(self) -> List[str]:
        """Every path these routes occupy, children included."""
        paths: List[str] = []
        pending = [(self.base_path, route) for route in self.routes]
        while pending:
            parent, route = pending.pop(0)
            full_path = join_path(parent, route.path)
            paths.append(full_path)
            pending[:0] = [(full_path, child) for child in route.children]
        return paths


@dataclass
class MessageSchema:
    type: str
    payload: Dict[str, Any] = field(default_factory=dict)
    response: Optional[Dict[str, Any]] = None
    description: str = ""
    expects_response: bool = False


@dataclass
class MessageSubscription:
    """A subscription to another plugin's (un-namespaced) message type."""

    type: str
    handler: Union[MessageHandler, Callable[[Message], Any]]
    source: Optional[Union[str, List[str]]] = None


@dataclass
class PluginMessages:
    # Keyed by local type; subscribed on the bus as "{plugin_id}:{type}"
    handlers: Dict[str, Union[MessageHandler, Callable[[Message], Any]]] = field(default_factory=dict)
    schemas: Dict[str, MessageSchema] = field(default_factory=dict)
    subscriptions: List[MessageSubscription] = field(default_factory=list)


@dataclass
class PluginStores:
    readable: Dict[str, Observable] = field(default_factory=dict)
    writable: Dict[str, Observable] = field(default_factory=dict)
    schemas: Dict[str, Dict[str, Any]] = field(default_factory=dict)


@dataclass
class PluginDefinition:
    manifest: PluginManifest
    api: Optional[PluginApi] = None
    routes: Optional[PluginRoutes] = None
    messages: Optional[PluginMessages] = None
    stores: Optional[PluginStores] = None
    setup: Optional[Callable[["PluginContext"], Union[None, Awaitable[None]]]] = None
    teardown: Optional[Callable[[], Union[None, Awaitable[None]]]] = None

    @property
    def id(self) -> str:
        return self.manifest.id
