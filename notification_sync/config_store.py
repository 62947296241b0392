"""Config store: YAML/JSON config file (master over env) + runtime overrides."""
import json
import logging
import threading
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import ValidationError as PydanticValidationError

logger = logging.getLogger(__name__)


def _read_config_file(path: Path) -> dict[str, Any]:
    """Read a YAML or JSON config file into a flat dict. Returns {} when missing or unreadable."""
    if not path.exists():
        logger.debug("Config file not found: %s (optional; using env/defaults)", path)
        return {}
    try:
        raw = path.read_text()
    except OSError as e:
        logger.warning("Could not read config file %s: %s", path, e)
        return {}
    suffix = path.suffix.lower()
    if suffix in (".yaml", ".yml"):
        try:
            data = yaml.safe_load(raw)
        except yaml.YAMLError as e:
            logger.warning("Invalid YAML in %s: %s", path, e)
            return {}
    elif suffix == ".json":
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning("Invalid JSON in %s: %s", path, e)
            return {}
    else:
        logger.warning("Config file must be .yaml, .yml, or .json: %s", path)
        return {}
    if data is None:
        return {}
    if not isinstance(data, dict):
        logger.warning("Config file must contain a mapping; got %s", type(data).__name__)
        return {}
    return data


class ConfigStore:
    """
    Holds settings built from env, an optional config file and pushed overrides.
    Precedence: overrides > config file > env > defaults.
    """

    def __init__(self, SettingsCls: type, config_file_path: Optional[str] = None):
        self._SettingsCls = SettingsCls
        self._file_path: Optional[Path] = None
        if config_file_path:
            self._file_path = Path(config_file_path).expanduser().resolve()
        self._overrides: dict[str, Any] = {}
        self._current: Optional[Any] = None
        self._lock = threading.RLock()

    def _build(self) -> Any:
        # Init kwargs win over env in pydantic-settings, so the file is master over env.
        file_dict = _read_config_file(self._file_path) if self._file_path else {}
        if file_dict:
            logger.info("Loaded config file (master over env): %s", self._file_path)
        return self._SettingsCls(**{**file_dict, **self._overrides})

    def load_initial(self) -> None:
        """Build settings once at startup."""
        with self._lock:
            self._current = self._build()

    def get_settings(self) -> Any:
        """Return the current Settings instance, loading it on first use."""
        with self._lock:
            if self._current is None:
                self.load_initial()
            return self._current

    def update(self, overrides: dict[str, Any]) -> bool:
        """Merge overrides and rebuild. Keeps the previous settings when validation fails."""
        with self._lock:
            current = self.get_settings()
            try:
                self._current = self._SettingsCls(**{**current.model_dump(), **overrides})
            except PydanticValidationError as e:
                logger.warning("Config update validation failed; keeping previous config: %s", e)
                return False
            self._overrides.update(overrides)
            return True

    def reload_from_file(self) -> None:
        """Re-read the config file and re-apply saved overrides."""
        with self._lock:
            try:
                self._current = self._build()
            except PydanticValidationError as e:
                logger.warning("Config reload validation failed; keeping previous config: %s", e)

    def clear_overrides(self) -> None:
        """Drop pushed overrides and reset to file + env."""
        with self._lock:
            self._overrides.clear()
            self._current = self._build()
