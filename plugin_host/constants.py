"""Global constants for the plugin host."""

import os
from pathlib import Path

# Message bus audit history capacity (oldest entries are evicted first)
MESSAGE_HISTORY_LIMIT = int(os.getenv("MESSAGE_HISTORY_LIMIT", "1000"))

# Default wait for a request/reply round trip (seconds)
REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", "30"))

# Default number of entries returned by MessageBus.get_history()
HISTORY_PAGE_SIZE = 100

# Source identity used for messages published outside any plugin
CORE_SOURCE = "core"

# Directory paths
HOST_ROOT = Path(__file__).resolve().parent.parent

PLUGINS_DIR = HOST_ROOT / "plugins"
BUNDLED_PLUGINS_DIR = PLUGINS_DIR / "bundled"      # shipped with the host
INSTALLED_PLUGINS_DIR = PLUGINS_DIR / "installed"  # copied in via manage_plugins.py install
PLUGIN_CONFIG_FILE = Path(os.getenv("PLUGIN_CONFIG_FILE", str(PLUGINS_DIR / "config.json")))

DATA_DIR = HOST_ROOT / "data"
PLUGIN_STORAGE_FILE = Path(os.getenv("PLUGIN_STORAGE_FILE", str(DATA_DIR / "plugin_storage.json")))


def get_extra_plugin_paths() -> list[Path]:
    """Parse extra plugin search paths from the PLUGIN_PATHS env var (':'-separated)."""
    raw = os.getenv("PLUGIN_PATHS", "")
    return [Path(p.strip()) for p in raw.split(":") if p.strip()]
