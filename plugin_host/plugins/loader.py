"""Plugin loader - resolves discovered entries into PluginDefinitions."""

import heapq
import importlib.util
import logging
import sys
from typing import Dict, List

from plugin_host.errors import PluginLoadError
from plugin_host.plugins.definition import PluginDefinition
from plugin_host.plugins.discovery import PluginEntry
from plugin_host.plugins.hooks import maybe_await

logger = logging.getLogger(__name__)


def order_entries(entries: List[PluginEntry]) -> List[PluginEntry]:
    """Order entries so dependencies come before their dependents.

    Among entries that are ready at the same time, higher priority goes first,
    then discovery order. Dependencies on ids not in ``entries`` are ignored
    here (the registry reports them). Entries caught in a cycle are appended
    in discovery order.
    """
    by_id = {entry.id: entry for entry in entries}
    index = {entry.id: i for i, entry in enumerate(entries)}
    dependents: Dict[str, List[str]] = {entry.id: [] for entry in entries}
    in_degree = {entry.id: 0 for entry in entries}

    for entry in entries:
        for dep in entry.dependencies:
            if dep.plugin_id in by_id and dep.plugin_id != entry.id:
                dependents[dep.plugin_id].append(entry.id)
                in_degree[entry.id] += 1

    ready = [(-by_id[i].priority, index[i], i) for i, degree in in_degree.items() if degree == 0]
    heapq.heapify(ready)

    ordered = []
    while ready:
        _, _, plugin_id = heapq.heappop(ready)
        ordered.append(by_id[plugin_id])
        for dependent in dependents[plugin_id]:
            in_degree[dependent] -= 1
            if in_degree[dependent] == 0:
                heapq.heappush(ready, (-by_id[dependent].priority, index[dependent], dependent))

    if len(ordered) < len(entries):
        placed = {entry.id for entry in ordered}
        cyclic = [entry for entry in entries if entry.id not in placed]
        logger.warning(f"Dependency cycle between plugins: {', '.join(e.id for e in cyclic)}")
        ordered.extend(cyclic)

    return ordered


class PluginLoader:
    """Imports plugin entry points and caches the resulting definitions."""

    def __init__(self):
        self._loaded: Dict[str, PluginDefinition] = {}

    async def load_all(self, entries: List[PluginEntry]) -> List[PluginDefinition]:
        """Load every enabled entry in dependency order.

        Entries that fail to load are logged and skipped.
        """
        results = []
        for entry in order_entries([e for e in entries if e.enabled]):
            try:
                results.append(await self.load_plugin(entry))
            except PluginLoadError as e:
                logger.error(f"Failed to load plugin {entry.id}: {e}")
        return results

    async def load_plugin(self, entry: PluginEntry) -> PluginDefinition:
        """Resolve one entry into a PluginDefinition (cached per id)."""
        cached = self._loaded.get(entry.id)
        if cached is not None:
            return cached

        if entry.factory is not None:
            target = entry.factory
        elif entry.path is not None and entry.entry_point:
            target = self._import_entry_point(entry)
        else:
            raise PluginLoadError(f"Plugin {entry.id} has neither a factory nor an entry point")

        definition = await self._resolve(entry, target)
        if definition.manifest.id != entry.id:
            raise PluginLoadError(
                f"Plugin entry '{entry.id}' produced manifest id '{definition.manifest.id}'"
            )

        self._loaded[entry.id] = definition
        logger.info(f"Loaded plugin: {entry.id} ({entry.source})")
        return definition

    def get_loaded(self) -> Dict[str, PluginDefinition]:
        return dict(self._loaded)

    def forget(self, plugin_id: str) -> None:
        """Drop a cached definition so the next load re-imports it."""
        self._loaded.pop(plugin_id, None)

    async def _resolve(self, entry: PluginEntry, target) -> PluginDefinition:
        if isinstance(target, PluginDefinition):
            return target
        if not callable(target):
            raise PluginLoadError(f"Entry point for {entry.id} is neither a PluginDefinition nor callable")
        try:
            result = await maybe_await(target())
        except Exception as e:
            raise PluginLoadError(f"Plugin factory for {entry.id} failed: {e}") from e
        if not isinstance(result, PluginDefinition):
            raise PluginLoadError(
                f"Plugin factory for {entry.id} returned {type(result).__name__}, expected PluginDefinition"
            )
        return result

    def _import_entry_point(self, entry: PluginEntry):
        """Import ``module:attribute`` from the plugin directory."""
        try:
            module_name, attr_name = entry.entry_point.split(":")
        except ValueError:
            raise PluginLoadError(f"Invalid entry point '{entry.entry_point}' for {entry.id}") from None

        module_file = entry.path / f"{module_name}.py"
        if not module_file.exists():
            raise PluginLoadError(f"Cannot find module {module_name}.py in {entry.path}")

        # Plugin directory on sys.path for the duration of the import, so the
        # plugin can import its sibling modules.
        plugin_dir = str(entry.path)
        added = plugin_dir not in sys.path
        if added:
            sys.path.insert(0, plugin_dir)

        try:
            spec = importlib.util.spec_from_file_location(
                f"plugin_{entry.id.replace('-', '_')}_{module_name}", module_file
            )
            if spec is None or spec.loader is None:
                raise PluginLoadError(f"Cannot load module {module_name}.py in {entry.path}")
            module = importlib.util.module_from_spec(spec)
            spec.loader.exec_module(module)
        except PluginLoadError:
            raise
        except Exception as e:
            raise PluginLoadError(f"Error importing {module_file}: {e}") from e
        finally:
            if added and plugin_dir in sys.path:
                sys.path.remove(plugin_dir)

        target = getattr(module, attr_name, None)
        if target is None:
            raise PluginLoadError(f"Module {module_name} has no attribute '{attr_name}'")
        return target
