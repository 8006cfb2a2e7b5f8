import logging as _logging
import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv(Path.home() / ".plinth" / ".env")

_log = _logging.getLogger(__name__)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    """Parse an integer env var with safe fallback on invalid input."""
    raw = os.getenv(name)
    if raw is None:
        value = default
    else:
        try:
            value = int(raw.strip())
        except ValueError:
            _log.warning("Invalid integer for %s: %r, using %d", name, raw, default)
            value = default
    return value


# Paths
PLINTH_HOME = Path(os.getenv("PLINTH_HOME", str(Path.home() / ".plinth"))).expanduser()
LOG_DIR = PLINTH_HOME / "logs"

# Logging
LOG_LEVEL = os.getenv("PLINTH_LOG_LEVEL", "INFO").strip().upper()
LOG_FILE_NAME = "plinth.log"

# Plugin discovery
PLUGIN_DIR = Path(os.getenv("PLINTH_PLUGIN_DIR", str(PLINTH_HOME / "plugins"))).expanduser()
PLUGIN_ENABLED = _env_bool("PLINTH_PLUGIN_ENABLED", True)

# Plugin directory layout
MANIFEST_FILES = ("plugin.json", "plugin.yaml", "plugin.yml")
CORE_ENTRIES = ("core/__init__.py", "core.py")
UI_ENTRY = "main.js"           # pre-built UI bundle
DEV_ENTRY = "entry.js"         # dev-server bundle source
DEV_PUBLIC_DIR = "public"
DEV_FEATURES_DIR = Path("src") / "features"
PLUGIN_MODULE_PREFIX = "plinth_plugin_"

# Project configuration
PROJECT_CONFIG_FILES = ("plinth.yaml", "plinth.yml", "plinth.json")
DEFAULT_DEV_PORT = _env_int("PLINTH_DEV_PORT", 6076)
DEV_BUNDLE_URL = "http://localhost:{port}/static/js/{name}.bundle.js"

# Application type applied when nothing else decides one
COMMON_APP_TYPE = "common"
