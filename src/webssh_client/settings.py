"""
Client-local persistence.

Terminal preferences live under one key (SETTINGS_KEY) as a JSON object;
the session log uses its own keys (see session_log). Both go through a
KeyValueStore: MemoryStore for tests and embedding, JSONFileStore for the
CLI.
"""
from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Mapping, Protocol

from webssh_client.config import TerminalSettings
from webssh_client.icons import Severity

logger = logging.getLogger(__name__)

SETTINGS_KEY = "webssh2.settings.global"
PROMPT_SOUNDS_KEY = "prompt_sounds"


class KeyValueStore(Protocol):
    """String-keyed, string-valued persistent store."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


class MemoryStore:
    """In-memory KeyValueStore."""

    def __init__(self, initial: Mapping[str, str] | None = None) -> None:
        self._data = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        assert isinstance(value, str), f"Value must be str, got {type(value).__name__}"
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)


class JSONFileStore:
    """
    KeyValueStore backed by one JSON file.

    Every write rewrites the file atomically (temp file + rename). A missing
    file is an empty store; an unreadable one is logged and treated as empty.
    """

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path).expanduser()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, str]:
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Ignoring unreadable store %s: %s", self._path, e)
            return {}
        if not isinstance(data, dict):
            logger.warning("Ignoring store %s: not a JSON object", self._path)
            return {}
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def _save(self, data: dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self._path.parent, prefix=".store-")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f)
            os.replace(tmp, self._path)
        except OSError:
            Path(tmp).unlink(missing_ok=True)
            raise

    def get(self, key: str) -> str | None:
        return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self._save(data)

    def remove(self, key: str) -> None:
        data = self._load()
        if data.pop(key, None) is not None:
            self._save(data)


class SettingsStore:
    """
    Terminal display preferences, merged into one JSON object.

    Usage:
        settings = SettingsStore(JSONFileStore("~/.webssh2/state.json"))
        settings.save({"font_size": 16})
        terminal = settings.terminal_settings(config.terminal)
    """

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    def load(self) -> dict[str, Any]:
        raw = self._store.get(SETTINGS_KEY)
        if not raw:
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error("Stored settings are not valid JSON: %s", e)
            return {}
        return data if isinstance(data, dict) else {}

    def save(self, values: Mapping[str, Any]) -> dict[str, Any]:
        """Merge values into the stored settings; returns the merged result."""
        merged = {**self.load(), **values}
        self._store.set(SETTINGS_KEY, json.dumps(merged))
        logger.debug("Saved settings: %s", sorted(values))
        return merged

    def initialize(self) -> None:
        """Create an empty settings entry if none exists."""
        if self._store.get(SETTINGS_KEY) is None:
            self.save({})

    def terminal_settings(self, defaults: TerminalSettings | None = None) -> TerminalSettings:
        """Stored preferences applied over defaults."""
        stored = {k: v for k, v in self.load().items() if k != PROMPT_SOUNDS_KEY}
        return (defaults or TerminalSettings()).updated(stored)

    def prompt_sound_enabled(self, severity: Severity) -> bool:
        """Sounds are off unless enabled globally and for this severity."""
        sounds = self.load().get(PROMPT_SOUNDS_KEY)
        if not isinstance(sounds, dict) or sounds.get("enabled") is not True:
            return False
        severities = sounds.get("severities")
        if not isinstance(severities, dict):
            return True
        return severities.get(severity.value, True) is not False
