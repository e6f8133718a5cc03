"""
Shared configuration loader for wiimctl.

Loads a single JSON config file.  Search order:
  1. /etc/wiimctl/config.json       (system install)
  2. config.json                     (CWD — handy for local dev)
  3. ../../config/default.json       (repo fallback)

WIIMCTL_CONFIG overrides the search and names one file directly.

Durable user choices (selected device, source mode) live in a separate
state file written on every change, see ``Settings``.

Usage:
    from wiimctl.lib.config import cfg, settings

    interval   = cfg("poll", "interval", default=2.0)
    fallback   = cfg("local", "fallback_player", default="spotify")
    host       = settings().get("device", "host", default="")
    settings().set("source", "mode", "auto")
"""

import json
import logging
import os

logger = logging.getLogger(__name__)

_config: dict | None = None
_settings: "Settings | None" = None

_SEARCH_PATHS = [
    "/etc/wiimctl/config.json",
    "config.json",
    os.path.join(os.path.dirname(__file__), "..", "..", "config", "default.json"),
]

_VALID_MODES = ("auto", "wiim", "local")


def _search_paths() -> list[str]:
    override = os.getenv("WIIMCTL_CONFIG")
    if override:
        return [override]
    return _SEARCH_PATHS


def _validate(config: dict, path: str) -> None:
    """Warn about missing or suspicious config values."""
    device = config.get("device") or {}
    scheme = device.get("scheme", "https")
    if scheme not in ("http", "https"):
        logger.warning("Config %s: unknown device.scheme '%s'", path, scheme)
    poll = config.get("poll") or {}
    interval = poll.get("interval", 2.0)
    if not isinstance(interval, (int, float)) or interval <= 0:
        logger.warning("Config %s: poll.interval must be a positive number", path)
    source = config.get("source") or {}
    mode = source.get("mode")
    if mode is not None and mode not in _VALID_MODES:
        logger.warning("Config %s: unknown source.mode '%s'", path, mode)


def load_config() -> dict:
    """Load config from the first JSON file found. Cached after first call."""
    global _config
    if _config is not None:
        return _config

    for path in _search_paths():
        try:
            with open(path) as f:
                _config = json.load(f)
                logger.info("Config loaded from %s", path)
                _validate(_config, path)
                return _config
        except FileNotFoundError:
            continue
        except json.JSONDecodeError as e:
            logger.error("Invalid JSON in %s: %s", path, e)
            continue

    logger.warning("No config.json found — using empty config")
    _config = {}
    return _config


def cfg(section: str, key: str | None = None, *, default=None):
    """Read a config value.

    cfg("http")                     → config["http"]
    cfg("device", "scheme")         → config["device"]["scheme"]
    cfg("poll", "interval", default=2.0)  → config["poll"]["interval"] or 2.0
    """
    config = load_config()
    val = config.get(section)
    if key is None:
        return val if val is not None else default
    if isinstance(val, dict):
        return val.get(key, default)
    return default


def reload_config():
    """Force re-read from disk (for testing or hot-reload)."""
    global _config
    _config = None
    return load_config()


# ---------------------------------------------------------------------------
# Persisted settings
# ---------------------------------------------------------------------------

def default_state_path() -> str:
    override = os.getenv("WIIMCTL_STATE")
    if override:
        return override
    base = os.getenv("XDG_CONFIG_HOME") or os.path.join(os.path.expanduser("~"), ".config")
    return os.path.join(base, "wiimctl", "state.json")


class Settings:
    """Small key/value store persisted as JSON, written through on every set.

    Reads fall back to the static config so a deployed config.json can
    preseed the device address.
    """

    def __init__(self, path: str | None = None):
        self.path = path or default_state_path()
        self._data: dict[str, dict] = {}
        self._load()

    def _load(self):
        try:
            with open(self.path) as f:
                data = json.load(f)
        except FileNotFoundError:
            return
        except (OSError, json.JSONDecodeError) as e:
            logger.error("Could not read state %s: %s", self.path, e)
            return
        if isinstance(data, dict):
            self._data = {k: v for k, v in data.items() if isinstance(v, dict)}

    def get(self, section: str, key: str, *, default=None):
        value = self._data.get(section, {}).get(key)
        if value is not None:
            return value
        return cfg(section, key, default=default)

    def set(self, section: str, key: str, value) -> None:
        self._data.setdefault(section, {})[key] = value
        self._save()

    def _save(self):
        directory = os.path.dirname(self.path)
        tmp = f"{self.path}.tmp"
        try:
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(tmp, "w") as f:
                json.dump(self._data, f, indent=2, sort_keys=True)
            os.replace(tmp, self.path)
        except OSError as e:
            logger.error("Could not write state %s: %s", self.path, e)


def settings() -> Settings:
    """Process-wide settings store (created on first use)."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings(path: str | None = None) -> Settings:
    """Replace the process-wide store (for testing)."""
    global _settings
    _settings = Settings(path)
    return _settings
