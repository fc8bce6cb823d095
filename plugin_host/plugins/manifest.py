"""Plugin manifest model - describes a plugin's metadata and requirements."""

import re
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from plugin_host.plugins.hooks import LifecycleHooks

PLUGIN_ID_PATTERN = re.compile(r"[a-z0-9-]+")
VERSION_PATTERN = re.compile(r"\d+\.\d+\.\d+")


class PluginDependency(BaseModel):
    """A dependency on another plugin."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    plugin_id: str = Field(..., alias="pluginId", description="Id of the required plugin")
    version: str = Field(default="*", description="Required version (informational)")
    optional: bool = Field(default=False, description="Missing optional dependencies are ignored")

    def __str__(self) -> str:
        return f"{self.plugin_id}@{self.version}"


class PluginManifest(BaseModel):
    """Static declaration of a plugin.

    Shape is deliberately permissive: the registry validates id, name and version
    and reports every problem at once.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True, populate_by_name=True)

    id: str = Field(default="", description="Unique plugin identifier (kebab-case)")
    name: str = Field(default="", description="Human-readable plugin name")
    version: str = Field(default="", description="Semantic version, e.g. 1.0.0")
    description: str = Field(default="", description="Plugin description")
    author: Optional[str] = None
    homepage: Optional[str] = None
    icon: Optional[str] = None
    dependencies: List[PluginDependency] = Field(default_factory=list)
    permissions: List[str] = Field(default_factory=list)
    lifecycle: LifecycleHooks = Field(default_factory=LifecycleHooks, exclude=True)
    config_schema: Optional[Dict[str, Any]] = Field(
        default=None,
        alias="configSchema",
        description="JSON Schema for plugin configuration",
    )
    priority: int = Field(default=0, description="Load order hint, higher first")
    enabled: bool = Field(default=True, description="Whether the plugin starts enabled")


def validate_manifest(manifest: PluginManifest) -> List[str]:
    """Return a list of problems with ``manifest`` (empty when valid)."""
    errors = []

    if not manifest.id:
        errors.append("Missing required field: id")
    if not manifest.name:
        errors.append("Missing required field: name")
    if not manifest.version:
        errors.append("Missing required field: version")

    if manifest.id and not PLUGIN_ID_PATTERN.fullmatch(manifest.id):
        errors.append("Plugin id must be kebab-case (lowercase letters, numbers, hyphens)")

    if manifest.version and not VERSION_PATTERN.match(manifest.version):
        errors.append("Version must be semver format (e.g., 1.0.0)")

    return errors


def find_missing_dependencies(manifest: PluginManifest, available_ids) -> List[str]:
    """Return ``pluginId@version`` for every required dependency not in ``available_ids``."""
    return [
        str(dep)
        for dep in manifest.dependencies
        if not dep.optional and dep.plugin_id not in available_ids
    ]
