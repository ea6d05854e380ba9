"""
Riot API key resolution.

Two sources: the ``RIOT_API_KEY`` environment value and an admin-managed JSON file
(``{"riotApiKey": "RGAPI-..."}``). ``prefer_env`` decides which one is tried first;
after an auth failure the caller flips the preference with ``use_fallback_source``.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


def _mask(key: str) -> str:
    return f"{key[:8]}..." if len(key) > 8 else "***"


class ApiKeyProvider:
    def __init__(
        self,
        env_key: Optional[str] = None,
        key_file: Optional[str] = None,
        prefer_env: bool = True,
    ) -> None:
        self._env_key = (env_key or "").strip() or None
        self._key_file = key_file
        self.prefer_env = prefer_env

    @classmethod
    def from_settings(cls, settings) -> "ApiKeyProvider":
        return cls(
            env_key=settings.riot_api_key,
            key_file=settings.api_key_file,
            prefer_env=settings.prefer_env_key,
        )

    def _file_key(self) -> Optional[str]:
        if not self._key_file:
            return None
        path = Path(self._key_file)
        if not path.is_file():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Unreadable API key file %s: %s", path, e)
            return None
        if not isinstance(data, dict):
            return None
        value = data.get("riotApiKey")
        return value.strip() if isinstance(value, str) and value.strip() else None

    def _env_value(self) -> Optional[str]:
        return self._env_key or ((os.environ.get("RIOT_API_KEY") or "").strip() or None)

    def current_api_key(self) -> Optional[str]:
        """Return the key from the preferred source, else the other one, else None."""
        sources = (self._env_value, self._file_key) if self.prefer_env else (self._file_key, self._env_value)
        for source in sources:
            key = source()
            if key:
                return key
        return None

    def use_fallback_source(self) -> None:
        self.prefer_env = not self.prefer_env
        logger.info("API key source switched to %s", "env" if self.prefer_env else "admin file")

    def describe(self, key: Optional[str]) -> str:
        return _mask(key) if key else "<none>"
