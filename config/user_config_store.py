"""Key/value JSON store holding user configurations."""

import json
import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ValidationError

from image_upload_module.config_factory import UserConfig
from image_upload_module.core.errors import MissingPrimaryConfig
from logger import format_log, get_logger
from utils.redaction import sanitize_config

logger = get_logger()


class ConfigStoreError(Exception):
    """Stored configuration is unreadable or invalid."""


class UserConfigStore:
    """JSON file of key -> value; values under config keys parse as UserConfig."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._data: dict[str, Any] | None = None

    def _ensure_loaded(self) -> dict[str, Any]:
        if self._data is None:
            if not self.path.exists():
                self._data = {}
            else:
                try:
                    with open(self.path, encoding="utf-8") as f:
                        self._data = json.load(f)
                except (OSError, json.JSONDecodeError) as e:
                    raise ConfigStoreError(f"Cannot read config store {self.path}: {e}") from e
                if not isinstance(self._data, dict):
                    raise ConfigStoreError(f"Config store {self.path} must hold a JSON object")
                logger.info(format_log("✅ Config store loaded", path=self.path))
        return self._data

    def get(self, key: str) -> UserConfig | None:
        raw = self._ensure_loaded().get(key)
        if raw is None:
            return None
        try:
            return UserConfig.model_validate(raw)
        except ValidationError as e:
            raise ConfigStoreError(f"Stored config '{key}' is invalid: {e}") from e

    def set(self, key: str, value: UserConfig | dict[str, Any]) -> None:
        if isinstance(value, BaseModel):
            value = value.model_dump(mode="json", by_alias=True)
        self._ensure_loaded()[key] = value
        logger.debug(format_log("Config updated", key=key, value=sanitize_config(value)))

    def save(self) -> None:
        data = self._ensure_loaded()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise ConfigStoreError(f"Cannot write config store {self.path}: {e}") from e
        logger.info(format_log("Config store saved", path=self.path))


def require_user_config(store: UserConfigStore, key: str) -> UserConfig:
    """Stored config or MissingPrimaryConfig; never an empty default."""
    config = store.get(key)
    if config is None:
        raise MissingPrimaryConfig(None, f"No user configuration stored under '{key}' in {store.path}")
    return config
