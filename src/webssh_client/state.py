"""
Session state container shared by the connection state machine, the
prompt engine and the UI.

There is no module-level singleton: a SessionState is created by whoever
assembles the client and passed by reference to each component. Writes go
through Store.set(), which notifies subscribers with exactly the keys that
changed; the UI reads properties or subscribes.

Provides:
- ConnectionStatus: idle/connecting/authenticating/connected/reauth_required/error
- PermissionsState: server-asserted booleans, set once per connection
- SftpStatus: SFTP availability and server limits, from sftp-status
- HeaderContent: banner text and styling from updateUI events
- Store: observable key-value store
- SessionState: the concrete store for one client
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Callable, Mapping

from webssh_client.redaction import mask_secrets

logger = logging.getLogger(__name__)

Listener = Callable[[dict[str, Any]], None]


class ConnectionStatus(str, Enum):
    """
    Connection lifecycle states.

    State transitions:
        IDLE -> CONNECTING (connect requested)
        CONNECTING -> AUTHENTICATING (transport connected)
        AUTHENTICATING -> CONNECTED (auth_result success)
        REAUTH_REQUIRED -> AUTHENTICATING (credentials resubmitted)
        any -> ERROR | REAUTH_REQUIRED
        any -> IDLE (clean disconnect and reset)
    """
    IDLE = "idle"
    CONNECTING = "connecting"
    AUTHENTICATING = "authenticating"
    CONNECTED = "connected"
    REAUTH_REQUIRED = "reauth_required"
    ERROR = "error"


# Statuses in which connect() is a no-op
BUSY_STATUSES = frozenset({
    ConnectionStatus.CONNECTING,
    ConnectionStatus.AUTHENTICATING,
    ConnectionStatus.CONNECTED,
})


@dataclass(frozen=True)
class PermissionsState:
    """Server-asserted permissions. Defaults are the conservative ones."""
    allow_reauth: bool = False
    allow_replay: bool = False
    allow_reconnect: bool = False
    auto_log: bool = False

    # Wire names used by the server
    _WIRE_NAMES = {
        "allowReauth": "allow_reauth",
        "allowReplay": "allow_replay",
        "allowReconnect": "allow_reconnect",
        "autoLog": "auto_log",
    }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "PermissionsState":
        """Build from a permissions event payload, ignoring unknown keys."""
        values: dict[str, bool] = {}
        for key, value in payload.items():
            attr = cls._WIRE_NAMES.get(key)
            if attr is None:
                logger.debug("Unhandled permission key: %s", key)
                continue
            values[attr] = bool(value)
        return cls(**values)

    def to_dict(self) -> dict[str, bool]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass(frozen=True)
class SftpStatus:
    """Whether the proxy offers SFTP on this connection, from sftp-status."""
    enabled: bool = False
    config: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "SftpStatus":
        config = payload.get("config")
        return cls(
            enabled=payload.get("enabled") is True,
            config=dict(config) if isinstance(config, Mapping) else {},
        )


@dataclass(frozen=True)
class HeaderContent:
    """Header banner content. Text is validated, never trusted as markup."""
    text: str = ""
    background: str = "transparent"
    background_is_utility_class: bool = False
    full_style: str | None = None


class Store:
    """
    Observable key-value store with a fixed set of keys.

    Reads never notify. set() applies changes atomically, then calls each
    listener once with the dict of keys whose value actually changed.
    """

    def __init__(self, initial: Mapping[str, Any]) -> None:
        self._initial = dict(initial)
        self._values = dict(initial)
        self._listeners: list[Listener] = []

    def get(self, key: str) -> Any:
        assert key in self._values, f"Unknown state key: {key}"
        return self._values[key]

    def snapshot(self) -> dict[str, Any]:
        """Return a copy of every value."""
        return dict(self._values)

    def set(self, **changes: Any) -> dict[str, Any]:
        """
        Apply changes and notify listeners.

        Returns:
            The subset of changes that altered a value
        """
        unknown = set(changes) - set(self._values)
        assert not unknown, f"Unknown state keys: {sorted(unknown)}"

        changed = {k: v for k, v in changes.items() if self._values[k] != v}
        if not changed:
            return changed

        self._values.update(changed)
        logger.debug("state: %s", mask_secrets(
            {k: v.value if isinstance(v, Enum) else v for k, v in changed.items()}
        ))
        for listener in list(self._listeners):
            listener(changed)
        return changed

    def reset(self, *keys: str) -> dict[str, Any]:
        """Restore keys (or all keys) to their initial values."""
        targets = keys or tuple(self._initial)
        return self.set(**{k: self._initial[k] for k in targets})

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe


class SessionState(Store):
    """
    State for one client instance.

    Connection-scoped keys are cleared by reset_connection() at the start
    and end of every connection; page-scoped keys (basic-auth cookie flag,
    banners, session-log flags) survive reconnects.
    """

    CONNECTION_KEYS = (
        "status",
        "permissions",
        "permissions_received",
        "sftp_status",
        "reauth_required",
        "is_connecting",
        "status_text",
    )

    def __init__(self, basic_auth_cookie_present: bool = False) -> None:
        super().__init__({
            "status": ConnectionStatus.IDLE,
            "permissions": PermissionsState(),
            "permissions_received": False,
            "sftp_status": SftpStatus(),
            "reauth_required": False,
            "is_connecting": False,
            "status_text": "Disconnected",
            "basic_auth_cookie_present": basic_auth_cookie_present,
            "term": None,
            "header": None,
            "footer": None,
            "session_log_enabled": False,
            "logged_data": False,
            "show_reconnect": False,
        })

    def reset_connection(self) -> None:
        """Return every connection-scoped key to its default."""
        self.reset(*self.CONNECTION_KEYS)

    @property
    def status(self) -> ConnectionStatus:
        return self.get("status")

    @property
    def permissions(self) -> PermissionsState:
        return self.get("permissions")

    @property
    def reauth_required(self) -> bool:
        return self.get("reauth_required")

    @property
    def is_connecting(self) -> bool:
        return self.get("is_connecting")

    @property
    def basic_auth_cookie_present(self) -> bool:
        return self.get("basic_auth_cookie_present")

    @property
    def header(self) -> HeaderContent | None:
        return self.get("header")

    @property
    def footer(self) -> str | None:
        return self.get("footer")

    @property
    def term(self) -> str | None:
        return self.get("term")

    @property
    def sftp_status(self) -> SftpStatus:
        return self.get("sftp_status")
