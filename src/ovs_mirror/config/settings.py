"""Global settings for ovs-mirror.

Settings come from /etc/ovs-mirror/ovs-mirror.conf, which uses the
shell-style format older installs already have:

    MAX_WAIT=120
    WAIT_INTERVAL=5
    LOG_DIR=/var/log/openvswitch

A file ending in .yaml/.yml is read as a YAML mapping with the same keys in
lowercase. Environment variables override the file:
- OVS_MIRROR_MAX_WAIT, OVS_MIRROR_WAIT_INTERVAL
- OVS_MIRROR_LOG_DIR
- OVS_MIRROR_LOCK_FILE, OVS_MIRROR_LOCK_TIMEOUT
- OVS_MIRROR_RULES_FILE

LOCK_TIMEOUT defaults to three times MAX_WAIT.
"""
import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Optional, Union

import yaml

logger = logging.getLogger(__name__)

CONFIG_DIR = Path("/etc/ovs-mirror")
DEFAULT_RULES_FILE = CONFIG_DIR / "mirrors.conf"
DEFAULT_SETTINGS_FILE = CONFIG_DIR / "ovs-mirror.conf"

DEFAULT_MAX_WAIT = 120.0
DEFAULT_WAIT_INTERVAL = 5.0
DEFAULT_LOG_DIR = "/var/log/openvswitch"
DEFAULT_LOCK_FILE = "/run/lock/ovs-mirror.lock"
# Lock wait when LOCK_TIMEOUT is unset, as a multiple of MAX_WAIT.
LOCK_WAIT_FACTOR = 3

ENV_PREFIX = "OVS_MIRROR_"
NUMERIC_FIELDS = {"max_wait", "wait_interval", "lock_timeout"}


@dataclass(frozen=True)
class Settings:
    """Process-wide settings, loaded once at startup."""
    max_wait: float = DEFAULT_MAX_WAIT
    wait_interval: float = DEFAULT_WAIT_INTERVAL
    log_dir: str = DEFAULT_LOG_DIR
    lock_file: str = DEFAULT_LOCK_FILE
    lock_timeout: Optional[float] = None
    rules_file: str = str(DEFAULT_RULES_FILE)

    @property
    def effective_lock_timeout(self) -> float:
        """LOCK_TIMEOUT if set, otherwise derived from MAX_WAIT."""
        if self.lock_timeout is not None:
            return self.lock_timeout
        return LOCK_WAIT_FACTOR * self.max_wait

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "Settings":
        """Load settings from a settings file; missing file means defaults."""
        path = Path(path)
        if not path.is_file():
            logger.debug(f"Settings file not found: {path}, using defaults")
            return cls()

        text = path.read_text(encoding="utf-8")
        if path.suffix in (".yaml", ".yml"):
            data = yaml.safe_load(text) or {}
            if not isinstance(data, dict):
                logger.warning(f"Settings file {path} is not a mapping, ignoring")
                return cls()
            values = {str(k).lower(): v for k, v in data.items()}
        else:
            values = _parse_key_values(text)

        return cls().with_overrides(values, source=str(path))

    def with_env(self, environ: Optional[dict[str, str]] = None) -> "Settings":
        """Apply OVS_MIRROR_* environment overrides."""
        environ = os.environ if environ is None else environ
        values = {
            key[len(ENV_PREFIX):].lower(): value
            for key, value in environ.items()
            if key.startswith(ENV_PREFIX)
        }
        return self.with_overrides(values, source="environment")

    @classmethod
    def load(cls, path: Union[str, Path, None] = None) -> "Settings":
        """Load the settings file, then apply environment overrides."""
        return cls.from_file(path or DEFAULT_SETTINGS_FILE).with_env()

    def with_overrides(self, values: dict[str, Any], source: str = "") -> "Settings":
        """Return a copy with recognized keys replaced; bad values keep the default."""
        known = {f.name: f for f in fields(self)}
        changes: dict[str, Any] = {}

        for key, raw in values.items():
            if key not in known:
                continue
            if key in NUMERIC_FIELDS:
                try:
                    value = float(raw)
                except (TypeError, ValueError):
                    logger.warning(f"{source}: invalid {key.upper()}={raw!r}, ignoring")
                    continue
                if value < 0 or (key == "wait_interval" and value == 0):
                    logger.warning(f"{source}: {key.upper()} must be positive, ignoring")
                    continue
                changes[key] = value
            else:
                changes[key] = str(raw)

        return replace(self, **changes)


def _parse_key_values(text: str) -> dict[str, str]:
    """Parse shell-style KEY=value lines."""
    values = {}
    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export "):].strip()
        key, sep, value = line.partition("=")
        if not sep:
            continue
        value = value.split(" #", 1)[0].strip().strip("'\"")
        values[key.strip().lower()] = value
    return values
