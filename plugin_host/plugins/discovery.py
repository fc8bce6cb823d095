"""Plugin discovery - scans directories to find plugins."""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from plugin_host.plugins.manifest import PluginDependency

logger = logging.getLogger(__name__)


class PluginDescriptor(BaseModel):
    """Contents of a plugin.json file.

    Only what the host needs before importing the plugin: the entry point and
    the ordering hints. The full manifest lives in the plugin's code.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., description="Plugin identifier; must match the manifest id")
    entry_point: str = Field(
        ...,
        alias="entryPoint",
        description="module:attribute relative to the plugin directory, e.g. 'plugin:definition'",
    )
    enabled: bool = True
    priority: int = 0
    dependencies: List[PluginDependency] = Field(default_factory=list)


@dataclass
class PluginEntry:
    """A plugin the loader knows how to obtain.

    Either ``path`` + ``entry_point`` (file based) or ``factory`` (dynamic).
    """

    id: str
    source: str  # "bundled" | "installed" | "external" | "dynamic"
    path: Optional[Path] = None
    entry_point: Optional[str] = None
    factory: Optional[Callable] = field(default=None, repr=False)
    enabled: bool = True
    priority: int = 0
    dependencies: List[PluginDependency] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "source": self.source,
            "path": str(self.path) if self.path else None,
            "entry_point": self.entry_point,
            "enabled": self.enabled,
            "priority": self.priority,
            "dependencies": [str(dep) for dep in self.dependencies],
        }


def dynamic_entry(plugin_id: str, factory: Callable, enabled: bool = True, priority: int = 0,
                  dependencies: Optional[List[PluginDependency]] = None) -> PluginEntry:
    """Create an entry whose definition comes from calling ``factory``."""
    return PluginEntry(
        id=plugin_id,
        source="dynamic",
        factory=factory,
        enabled=enabled,
        priority=priority,
        dependencies=list(dependencies or []),
    )


class PluginDiscovery:
    """Discovers plugins by scanning directories for plugin.json descriptors."""

    MANIFEST_FILE = "plugin.json"

    def __init__(self, search_paths: List[Tuple[Path, str]]):
        """Initialize discovery with search paths.

        Args:
            search_paths: List of (path, source_label) tuples, searched in order.
        """
        self.search_paths = search_paths

    def discover_all(self) -> List[PluginEntry]:
        """Discover all plugins from configured search paths.

        Returns:
            List of PluginEntry objects, first-found id wins
        """
        discovered = []
        seen_ids = set()

        for search_path, source in self.search_paths:
            if not search_path.exists():
                logger.debug(f"Plugin search path does not exist: {search_path}")
                continue

            for entry in self._scan_directory(search_path, source):
                if entry.id in seen_ids:
                    logger.warning(
                        f"Duplicate plugin ID '{entry.id}' found at {entry.path}, "
                        f"skipping (first-found wins)"
                    )
                    continue
                seen_ids.add(entry.id)
                discovered.append(entry)

        logger.info(f"Discovered {len(discovered)} plugin(s)")
        return discovered

    def discover_single(self, plugin_path: Path, source: str = "external") -> Optional[PluginEntry]:
        """Discover a single plugin from a specific directory."""
        descriptor_file = plugin_path / self.MANIFEST_FILE
        if not descriptor_file.exists():
            logger.error(f"No {self.MANIFEST_FILE} found at {plugin_path}")
            return None
        return self._load_descriptor(descriptor_file, source)

    def _scan_directory(self, search_path: Path, source: str) -> List[PluginEntry]:
        entries = []
        for item in sorted(search_path.iterdir()):
            if not item.is_dir():
                continue
            descriptor_file = item / self.MANIFEST_FILE
            if not descriptor_file.exists():
                continue

            entry = self._load_descriptor(descriptor_file, source)
            if entry:
                entries.append(entry)
        return entries

    def _load_descriptor(self, descriptor_file: Path, source: str) -> Optional[PluginEntry]:
        """Load and validate a plugin.json file.

        Returns:
            PluginEntry if valid, None otherwise
        """
        try:
            with open(descriptor_file, "r", encoding="utf-8") as f:
                data = json.load(f)

            descriptor = PluginDescriptor(**data)
            entry = PluginEntry(
                id=descriptor.id,
                source=source,
                path=descriptor_file.parent,
                entry_point=descriptor.entry_point,
                enabled=descriptor.enabled,
                priority=descriptor.priority,
                dependencies=list(descriptor.dependencies),
            )
            logger.debug(f"Discovered plugin: {entry.id} at {entry.path}")
            return entry

        except json.JSONDecodeError as e:
            logger.error(f"Invalid JSON in {descriptor_file}: {e}")
        except ValidationError as e:
            logger.error(f"Invalid descriptor in {descriptor_file}: {e}")
        except (IOError, TypeError) as e:
            logger.error(f"Error loading {descriptor_file}: {e}")

        return None
