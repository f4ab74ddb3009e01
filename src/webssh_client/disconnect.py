"""
Disconnect reason taxonomy.

Transport and server failures arrive as loosely typed strings
("auth_failed", "ssh_error", "io server disconnect", ...). They are
classified once into a closed DisconnectKind and then resolved into exactly
one UI action. The resolution table is checked at import time to cover
every kind, so adding a kind without deciding its action fails loudly.

Order matters: an SSH or server error arriving while a reauth is pending is
an artifact of the server closing the old session, and is suppressed.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from webssh_client.errors import (
    AuthFailed,
    AuthRequired,
    ConnectFailed,
    SSHProtocolError,
    TransportError,
    WebSSHError,
)


class DisconnectKind(str, Enum):
    """Closed set of reasons a session can end or be interrupted."""
    AUTH_REQUIRED = "auth_required"
    AUTH_FAILED = "auth_failed"
    REAUTH_REQUIRED = "reauth_required"
    ERROR = "error"
    SSH_ERROR = "ssh_error"
    CONNECT_ERROR = "connect_error"
    OTHER = "other"


class DisconnectAction(str, Enum):
    """What the UI does in response to a classified reason."""
    OPEN_LOGIN = "open_login"
    REOPEN_LOGIN_FOR_REAUTH = "reopen_login_for_reauth"
    SHOW_ERROR = "show_error"
    SUPPRESS = "suppress"


@dataclass(frozen=True)
class DisconnectReason:
    """
    A classified disconnect reason.

    raw is the original reason string (for OTHER it is the only
    description available); detail is the optional payload that came
    with it, e.g. the ssherror message.
    """
    kind: DisconnectKind
    raw: str
    detail: Any = None

    @property
    def message(self) -> str:
        """Human-readable description: the detail if present, else the raw reason."""
        if isinstance(self.detail, dict):
            text = self.detail.get("message")
            if text:
                return str(text)
        elif self.detail:
            return str(self.detail)
        return self.raw

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "raw": self.raw, "message": self.message}

    def to_error(self) -> WebSSHError:
        """The error this reason represents, for structured logging."""
        return _ERRORS[self.kind](self.message.strip() or self.kind.value)


_KIND_BY_RAW = {kind.value: kind for kind in DisconnectKind if kind is not DisconnectKind.OTHER}


def classify_disconnect(reason: str, detail: Any = None) -> DisconnectReason:
    """Map a raw reason string to its DisconnectKind."""
    raw = str(reason) if reason is not None else ""
    kind = _KIND_BY_RAW.get(raw, DisconnectKind.OTHER)
    return DisconnectReason(kind=kind, raw=raw or "unknown", detail=detail)


# Action for each kind when no reauth is pending
_ACTIONS: dict[DisconnectKind, DisconnectAction] = {
    DisconnectKind.AUTH_REQUIRED: DisconnectAction.OPEN_LOGIN,
    DisconnectKind.AUTH_FAILED: DisconnectAction.OPEN_LOGIN,
    DisconnectKind.REAUTH_REQUIRED: DisconnectAction.REOPEN_LOGIN_FOR_REAUTH,
    DisconnectKind.ERROR: DisconnectAction.SHOW_ERROR,
    DisconnectKind.SSH_ERROR: DisconnectAction.SHOW_ERROR,
    DisconnectKind.CONNECT_ERROR: DisconnectAction.SHOW_ERROR,
    DisconnectKind.OTHER: DisconnectAction.SHOW_ERROR,
}

# Kinds that are stale when they follow a reauth request
_STALE_AFTER_REAUTH = frozenset({DisconnectKind.ERROR, DisconnectKind.SSH_ERROR})

_ERRORS: dict[DisconnectKind, type[WebSSHError]] = {
    DisconnectKind.AUTH_REQUIRED: AuthRequired,
    DisconnectKind.AUTH_FAILED: AuthFailed,
    DisconnectKind.REAUTH_REQUIRED: AuthRequired,
    DisconnectKind.ERROR: TransportError,
    DisconnectKind.SSH_ERROR: SSHProtocolError,
    DisconnectKind.CONNECT_ERROR: ConnectFailed,
    DisconnectKind.OTHER: TransportError,
}

assert set(_ACTIONS) == set(DisconnectKind), \
    f"Disconnect kinds without an action: {set(DisconnectKind) - set(_ACTIONS)}"
assert set(_ERRORS) == set(DisconnectKind), \
    f"Disconnect kinds without an error class: {set(DisconnectKind) - set(_ERRORS)}"


def resolve_action(reason: DisconnectReason, reauth_pending: bool) -> DisconnectAction:
    """
    Decide the UI action for a reason, given whether a reauth is pending.

    Returns SUPPRESS for an error or ssh_error that follows reauth_required;
    the caller clears the pending flag in that case.
    """
    if reauth_pending and reason.kind in _STALE_AFTER_REAUTH:
        return DisconnectAction.SUPPRESS
    return _ACTIONS[reason.kind]
