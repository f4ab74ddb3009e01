"""
Session log: terminal output captured to the client-local store.

Output is appended to LOG_KEY while logging is enabled; LOG_DATE_KEY holds
the start time. A log is cleared once it has been downloaded, and a log
left behind by a previous session can be recovered on start-up.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from webssh_client.settings import KeyValueStore

logger = logging.getLogger(__name__)

LOG_KEY = "webssh2_session_log"
LOG_DATE_KEY = "webssh2_session_log_date"

_FILENAME_STRIP = re.compile(r"[/:\s@]")


def format_date(moment: datetime) -> str:
    """YYYY/MM/DD @ HH:MM:SS"""
    return moment.strftime("%Y/%m/%d @ %H:%M:%S")


@dataclass(frozen=True)
class LogDownload:
    filename: str
    content: str


class SessionLog:
    """
    Args:
        store: Where the log text and start date are kept
        now: Clock, for timestamps and file names
    """

    def __init__(self, store: KeyValueStore, now: Callable[[], datetime] = datetime.now) -> None:
        self._store = store
        self._now = now
        self._enabled = False
        self._logged_data = False

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def logged_data(self) -> bool:
        """True once logging has been started in this session."""
        return self._logged_data

    @property
    def content(self) -> str:
        return self._store.get(LOG_KEY) or ""

    def add(self, data: str) -> None:
        self._store.set(LOG_KEY, self.content + data)

    def start(self, footer: str | None = None) -> None:
        moment = self._now()
        self._enabled = True
        self._logged_data = True
        self.add(f"Log Start for {footer or ''} - {format_date(moment)}\r\n\r\n")
        self._store.set(LOG_DATE_KEY, moment.isoformat())
        logger.info("Session log started")

    def stop(self, footer: str | None = None) -> None:
        was_enabled = self._enabled
        self._enabled = False
        if was_enabled and self._logged_data:
            self.add(f"\r\n\r\nLog End for {footer or ''} - {format_date(self._now())}\r\n")
            logger.info("Session log stopped")

    def toggle(self, footer: str | None = None) -> bool:
        if self._enabled:
            self.stop(footer)
        else:
            self.start(footer)
        return self._enabled

    def record(self, data: str) -> None:
        """Append terminal output if logging is enabled."""
        if self._enabled:
            self.add(data)

    def clear(self) -> None:
        self._store.remove(LOG_KEY)
        self._store.remove(LOG_DATE_KEY)
        logger.debug("Session log cleared")

    def download(self) -> LogDownload | None:
        """Return the log for saving and clear it; None if nothing was logged."""
        text = self.content
        if not text or not self._logged_data:
            return None
        filename = f"WebSSH2-{_FILENAME_STRIP.sub('', format_date(self._now()))}.log"
        self.clear()
        return LogDownload(filename=filename, content=text)

    def recover(self) -> LogDownload | None:
        """Return and clear a log left by an earlier session, if any."""
        text = self.content
        saved = self._store.get(LOG_DATE_KEY)
        if not text or not saved:
            return None
        try:
            moment = datetime.fromisoformat(saved)
        except ValueError:
            logger.warning("Saved session log has an invalid date: %r", saved[:40])
            moment = self._now()
        filename = f"WebSSH2-Recovered-{_FILENAME_STRIP.sub('', format_date(moment))}.log"
        self.clear()
        return LogDownload(filename=filename, content=text)
