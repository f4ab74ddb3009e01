"""
Tests for client-local persistence and the session log.
"""
from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path

import pytest

from webssh_client.config import TerminalSettings
from webssh_client.icons import Severity
from webssh_client.session_log import LOG_DATE_KEY, LOG_KEY, SessionLog, format_date
from webssh_client.settings import SETTINGS_KEY, JSONFileStore, MemoryStore, SettingsStore


class FixedClock:
    def __init__(self, moment: datetime) -> None:
        self.moment = moment

    def __call__(self) -> datetime:
        return self.moment


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------

class TestJSONFileStore:
    """Tests for the file-backed store."""

    def test_round_trip(self, tmp_path: Path) -> None:
        path = tmp_path / "nested" / "state.json"
        store = JSONFileStore(path)

        store.set("a", "1")
        store.set("b", "2")
        store.remove("a")

        assert JSONFileStore(path).get("b") == "2"
        assert JSONFileStore(path).get("a") is None
        assert json.loads(path.read_text()) == {"b": "2"}

    def test_missing_file_is_empty(self, tmp_path: Path) -> None:
        assert JSONFileStore(tmp_path / "none.json").get("a") is None

    def test_corrupt_file_is_empty(self, tmp_path: Path) -> None:
        path = tmp_path / "state.json"
        path.write_text("{not json")
        store = JSONFileStore(path)
        assert store.get("a") is None
        store.set("a", "1")
        assert store.get("a") == "1"


class TestSettingsStore:
    """Tests for terminal preferences and prompt sounds."""

    def test_save_merges(self) -> None:
        settings = SettingsStore(MemoryStore())
        settings.save({"font_size": 16})
        merged = settings.save({"cursor_blink": False})
        assert merged == {"font_size": 16, "cursor_blink": False}

    def test_initialize_only_once(self) -> None:
        store = MemoryStore()
        settings = SettingsStore(store)
        settings.initialize()
        assert store.get(SETTINGS_KEY) == "{}"
        settings.save({"font_size": 12})
        settings.initialize()
        assert settings.load() == {"font_size": 12}

    def test_invalid_json_ignored(self) -> None:
        settings = SettingsStore(MemoryStore({SETTINGS_KEY: "not json"}))
        assert settings.load() == {}

    def test_terminal_settings_over_defaults(self) -> None:
        settings = SettingsStore(MemoryStore())
        settings.save({"font_size": 20, "prompt_sounds": {"enabled": True}})
        terminal = settings.terminal_settings(TerminalSettings(scrollback=500))
        assert terminal.font_size == 20
        assert terminal.scrollback == 500

    def test_prompt_sounds(self) -> None:
        settings = SettingsStore(MemoryStore())
        assert not settings.prompt_sound_enabled(Severity.ERROR)

        settings.save({"prompt_sounds": {"enabled": True, "severities": {"info": False}}})

        assert settings.prompt_sound_enabled(Severity.ERROR)
        assert not settings.prompt_sound_enabled(Severity.INFO)


# ---------------------------------------------------------------------------
# Session log
# ---------------------------------------------------------------------------

@pytest.fixture
def log_clock() -> FixedClock:
    return FixedClock(datetime(2024, 3, 9, 14, 5, 7))


class TestSessionLog:
    """Tests for SessionLog."""

    def test_format_date(self) -> None:
        assert format_date(datetime(2024, 3, 9, 14, 5, 7)) == "2024/03/09 @ 14:05:07"

    def test_records_only_when_enabled(self, log_clock: FixedClock) -> None:
        log = SessionLog(MemoryStore(), now=log_clock)
        log.record("before\r\n")
        log.start("ssh://example.com")
        log.record("hello\r\n")
        log.stop("ssh://example.com")
        log.record("after\r\n")

        assert log.content == (
            "Log Start for ssh://example.com - 2024/03/09 @ 14:05:07\r\n\r\n"
            "hello\r\n"
            "\r\n\r\nLog End for ssh://example.com - 2024/03/09 @ 14:05:07\r\n"
        )

    def test_toggle(self, log_clock: FixedClock) -> None:
        log = SessionLog(MemoryStore(), now=log_clock)
        assert log.toggle() is True
        assert log.toggle() is False

    def test_download_clears(self, log_clock: FixedClock) -> None:
        store = MemoryStore()
        log = SessionLog(store, now=log_clock)
        log.start("footer")
        log.record("data")

        download = log.download()

        assert download is not None
        assert download.filename == "WebSSH2-20240309140507.log"
        assert "data" in download.content
        assert store.get(LOG_KEY) is None
        assert store.get(LOG_DATE_KEY) is None
        assert log.download() is None

    def test_download_without_logging(self, log_clock: FixedClock) -> None:
        log = SessionLog(MemoryStore({LOG_KEY: "stale"}), now=log_clock)
        assert log.download() is None

    def test_recover_previous_session(self, log_clock: FixedClock) -> None:
        store = MemoryStore({
            LOG_KEY: "old output",
            LOG_DATE_KEY: datetime(2024, 1, 2, 3, 4, 5).isoformat(),
        })
        log = SessionLog(store, now=log_clock)

        recovered = log.recover()

        assert recovered is not None
        assert recovered.filename == "WebSSH2-Recovered-20240102030405.log"
        assert recovered.content == "old output"
        assert log.recover() is None

    def test_recover_bad_date(self, log_clock: FixedClock) -> None:
        store = MemoryStore({LOG_KEY: "old", LOG_DATE_KEY: "yesterday"})
        recovered = SessionLog(store, now=log_clock).recover()
        assert recovered.filename == "WebSSH2-Recovered-20240309140507.log"
