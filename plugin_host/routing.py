"""Route manager - tracks routes and navigation items contributed by plugins."""

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Optional, Tuple
from urllib.parse import parse_qsl, urlsplit

from plugin_host.observable import Observable

logger = logging.getLogger(__name__)


@dataclass
class RouteDefinition:
    path: str
    endpoint: Optional[Callable[..., Any]] = None
    meta: Dict[str, Any] = field(default_factory=dict)
    children: List["RouteDefinition"] = field(default_factory=list)


@dataclass
class RegisteredRoute:
    full_path: str
    definition: RouteDefinition
    plugin_id: Optional[str] = None

    @property
    def is_dynamic(self) -> bool:
        return "[" in self.full_path or ":" in self.full_path

    def to_dict(self) -> dict:
        return {
            "path": self.full_path,
            "plugin": self.plugin_id,
            "meta": self.definition.meta,
        }


@dataclass
class NavigationItem:
    id: str
    label: str
    path: str
    icon: Optional[str] = None
    order: int = 0
    badge: Optional[str] = None
    children: List["NavigationItem"] = field(default_factory=list)


@dataclass
class RouteInfo:
    path: str = "/"
    params: Dict[str, str] = field(default_factory=dict)
    query: Dict[str, str] = field(default_factory=dict)
    plugin_id: Optional[str] = None


def join_path(base_path: str, route_path: str) -> str:
    """Join a plugin base path and a route path into one absolute path."""
    base = base_path.rstrip("/")
    route = route_path if route_path.startswith("/") else f"/{route_path}"
    if route == "/":
        return base or "/"
    return f"{base}{route}"


def match_path(pattern: str, path: str) -> Optional[Dict[str, str]]:
    """Match ``path`` against a route pattern, returning captured params or None.

    Supports ``:param``, ``[param]``, ``[...rest]`` and ``[[...rest]]`` segments.
    """
    pattern_parts = [p for p in pattern.split("/") if p]
    path_parts = [p for p in path.split("/") if p]

    has_catch_all = any("..." in p for p in pattern_parts)
    if not has_catch_all and len(pattern_parts) != len(path_parts):
        return None

    params: Dict[str, str] = {}
    for i, segment in enumerate(pattern_parts):
        part = path_parts[i] if i < len(path_parts) else None

        if segment.startswith("[[...") and segment.endswith("]]"):
            params[segment[5:-2]] = "/".join(path_parts[i:])
            return params
        if segment.startswith("[...") and segment.endswith("]"):
            rest = path_parts[i:]
            if not rest:
                return None
            params[segment[4:-1]] = "/".join(rest)
            return params

        if segment.startswith("[") and segment.endswith("]"):
            if part is None:
                return None
            params[segment[1:-1]] = part
        elif segment.startswith(":"):
            if part is None:
                return None
            params[segment[1:]] = part
        elif segment != part:
            return None

    return params


def _sort_key(route: RegisteredRoute) -> Tuple[int, int]:
    # Static before dynamic, then longer (more specific) paths first
    return (1 if route.is_dynamic else 0, -len(route.full_path))


class RouteManager:
    """Keeps the table of plugin routes and navigation entries."""

    def __init__(self):
        self._routes: Observable[List[RegisteredRoute]] = Observable([])
        self._navigation: Observable[List[NavigationItem]] = Observable([])
        self._route_change_handlers: Dict[int, Callable[[RouteInfo], None]] = {}
        self._next_handler_key = 0
        self._current = RouteInfo()

    def register(self, routes: List[RouteDefinition], base_path: str = "",
                 plugin_id: Optional[str] = None) -> None:
        """Register routes (and their children) under ``base_path``.

        A route whose full path is already registered is replaced.
        """
        updated = list(self._routes.get())
        self._collect(routes, base_path, plugin_id, updated)
        self._routes.set(sorted(updated, key=_sort_key))

    def _collect(self, routes: List[RouteDefinition], base_path: str,
                 plugin_id: Optional[str], into: List[RegisteredRoute]) -> None:
        for route in routes:
            full_path = join_path(base_path, route.path)
            registered = RegisteredRoute(full_path=full_path, definition=route, plugin_id=plugin_id)

            existing = next((i for i, r in enumerate(into) if r.full_path == full_path), None)
            if existing is not None:
                logger.warning(f"Route {full_path} already registered, replacing")
                into[existing] = registered
            else:
                into.append(registered)
            logger.debug(f"Registered route {full_path}" + (f" ({plugin_id})" if plugin_id else ""))

            if route.children:
                self._collect(route.children, full_path, plugin_id, into)

    def unregister(self, paths: List[str]) -> None:
        wanted = set(paths)
        self._routes.set([r for r in self._routes.get() if r.full_path not in wanted])
        logger.debug(f"Unregistered routes: {', '.join(paths)}")

    def match_route(self, path: str) -> Optional[Tuple[RegisteredRoute, Dict[str, str]]]:
        for route in self._routes.get():
            params = match_path(route.full_path, path)
            if params is not None:
                return route, params
        return None

    def get_all_routes(self) -> List[RegisteredRoute]:
        return list(self._routes.get())

    def get_store(self):
        return self._routes.readonly()

    # Navigation -------------------------------------------------------

    def add_navigation_item(self, item: NavigationItem) -> None:
        current = list(self._navigation.get())
        existing = next((i for i, n in enumerate(current) if n.id == item.id), None)
        if existing is not None:
            current[existing] = item
        else:
            current.append(item)
        self._navigation.set(sorted(current, key=lambda n: n.order))

    def remove_navigation_item(self, item_id: str) -> None:
        self._navigation.set([n for n in self._navigation.get() if n.id != item_id])

    def get_navigation(self) -> List[NavigationItem]:
        return list(self._navigation.get())

    def get_navigation_store(self):
        return self._navigation.readonly()

    # Current route ----------------------------------------------------

    async def navigate(self, path: str, replace_current: bool = False) -> None:
        """Move the current route to ``path`` and notify route-change handlers."""
        parts = urlsplit(path)
        info = RouteInfo(path=parts.path or "/", query=dict(parse_qsl(parts.query)))
        matched = self.match_route(info.path)
        if matched is not None:
            route, params = matched
            info = replace(info, params=params, plugin_id=route.plugin_id)

        logger.debug(f"Navigating to {info.path}" + (" (replace)" if replace_current else ""))
        self._current = info
        for handler in list(self._route_change_handlers.values()):
            try:
                handler(info)
            except Exception:
                logger.exception("Route change handler failed")

    def get_current_route(self) -> RouteInfo:
        return self._current

    def on_route_change(self, handler: Callable[[RouteInfo], None]) -> Callable[[], None]:
        key = self._next_handler_key
        self._next_handler_key += 1
        self._route_change_handlers[key] = handler

        def unsubscribe() -> None:
            self._route_change_handlers.pop(key, None)

        return unsubscribe
