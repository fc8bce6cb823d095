"""Per-plugin key/value storage.

Each plugin gets a NamespacedStorage whose keys are prefixed with
``plugin:{plugin_id}:`` so plugins cannot read or clobber each other's data.
Values are stored JSON-encoded.
"""

import json
import logging
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Optional

logger = logging.getLogger(__name__)


class MemoryStorageBackend:
    """Raw string storage kept in a dict."""

    def __init__(self):
        self._data: Dict[str, str] = {}

    def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove_item(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> Iterable[str]:
        return list(self._data)


class JsonFileStorageBackend(MemoryStorageBackend):
    """Raw string storage persisted to a single JSON file on every write."""

    def __init__(self, storage_file: Path):
        super().__init__()
        self.storage_file = storage_file
        self._data = self._load()

    def _load(self) -> Dict[str, str]:
        if self.storage_file.exists():
            try:
                with open(self.storage_file, "r", encoding="utf-8") as f:
                    return json.load(f)
            except (json.JSONDecodeError, IOError) as e:
                logger.error(f"Error loading plugin storage: {e}")
        return {}

    def _save(self) -> None:
        self.storage_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self.storage_file, "w", encoding="utf-8") as f:
            json.dump(self._data, f, indent=2, ensure_ascii=False)

    def set_item(self, key: str, value: str) -> None:
        super().set_item(key, value)
        self._save()

    def remove_item(self, key: str) -> None:
        if key in self._data:
            super().remove_item(key)
            self._save()


class NamespacedStorage:
    """Async storage view scoped to one plugin."""

    def __init__(self, backend: MemoryStorageBackend, plugin_id: str):
        self._backend = backend
        self.plugin_id = plugin_id
        self.prefix = f"plugin:{plugin_id}:"

    async def get(self, key: str, default: Any = None) -> Any:
        raw = self._backend.get_item(self.prefix + key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Undecodable value for {self.prefix}{key}, ignoring")
            return default

    async def set(self, key: str, value: Any) -> None:
        self._backend.set_item(self.prefix + key, json.dumps(value, ensure_ascii=False))

    async def delete(self, key: str) -> None:
        self._backend.remove_item(self.prefix + key)

    async def clear(self) -> None:
        for key in [k for k in self._backend.keys() if k.startswith(self.prefix)]:
            self._backend.remove_item(key)


StorageFactory = Callable[[str], NamespacedStorage]


def storage_factory(backend: MemoryStorageBackend) -> StorageFactory:
    """Build a factory handing out namespaced views over one shared backend."""

    def create(plugin_id: str) -> NamespacedStorage:
        return NamespacedStorage(backend, plugin_id)

    return create
