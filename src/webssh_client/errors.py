"""
Error taxonomy for the WebSSH client core, with structured data for JSONL logging.

Provides specific error types for the failure classes the client can observe:
- Transport failures (the Socket.IO channel could not be opened or dropped)
- Authentication failures (rejected or missing credentials)
- SSH protocol failures reported by the proxy (including algorithm mismatches)
- Local credential validation failures (never transmitted)
- Permission denials for server-gated operations
- SFTP request and transfer failures

Error hierarchy:
- WebSSHError (base)
  - TransportError
    - ConnectFailed
  - AuthenticationError
    - AuthFailed (server rejected the credentials)
    - AuthRequired (no usable credentials could be assembled)
  - SSHProtocolError
    - AlgorithmMismatch (no mutual algorithm, with both offered sets)
  - CredentialError
    - InvalidCredentials (host/port/username/... failed validation)
    - KeyValidationError (private key failed phase 1 or phase 2)
  - PermissionDenied (reauth/replay not allowed by the server)
  - SftpError (file operation or transfer failed)
    - TransferCancelled

Rate-limit and circuit-breaker trips are deliberately absent: they drop input
and are logged, never raised.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from typing import Any


@dataclass
class ErrorContext:
    """
    Structured context for client errors.

    Carries the information needed for debugging and JSONL event logging.
    Secrets never belong here.
    """
    host: str | None = None
    port: int | None = None
    username: str | None = None
    field_name: str | None = None
    original_error: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Validate invariants after initialisation."""
        if self.port is not None:
            assert isinstance(self.port, int) and 1 <= self.port <= 65535, (
                f"Port must be between 1 and 65535, got {self.port}"
            )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary, excluding None values."""
        result = {}
        for key, value in asdict(self).items():
            if value is None:
                continue
            if key == "extra" and isinstance(value, dict):
                field_names = {f.name for f in fields(self)} - {"extra"}
                collisions = field_names & value.keys()
                assert not collisions, (
                    f"Extra keys collision with dataclass field names: "
                    f"{collisions}. Use distinct key names in extra."
                )
                result.update(value)
            else:
                result[key] = value
        return result


class WebSSHError(Exception):
    """
    Base exception for all client errors.

    All errors carry structured context for logging and debugging.
    """

    def __init__(self, message: str, context: ErrorContext | None = None) -> None:
        assert isinstance(message, str) and message.strip(), (
            f"WebSSHError message must be a non-empty string, got {message!r}"
        )
        super().__init__(message)
        self.context = context or ErrorContext()

    @property
    def error_type(self) -> str:
        """Return the error type name for logging."""
        return self.__class__.__name__

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for JSONL logging."""
        return {
            "error_type": self.error_type,
            "message": str(self),
            **self.context.to_dict(),
        }


# ---------------------------------------------------------------------------
# Transport Errors
# ---------------------------------------------------------------------------

class TransportError(WebSSHError):
    """Base class for transport-level failures."""
    pass


class ConnectFailed(TransportError):
    """The Socket.IO connection could not be established."""
    pass


# ---------------------------------------------------------------------------
# Authentication Errors
# ---------------------------------------------------------------------------

class AuthenticationError(WebSSHError):
    """Base class for authentication-related errors."""
    pass


class AuthFailed(AuthenticationError):
    """The server rejected the submitted credentials."""
    pass


class AuthRequired(AuthenticationError):
    """No credentials with both host and username could be assembled."""
    pass


# ---------------------------------------------------------------------------
# SSH Protocol Errors
# ---------------------------------------------------------------------------

class SSHProtocolError(WebSSHError):
    """An SSH-level failure reported by the proxy."""
    pass


class AlgorithmMismatch(SSHProtocolError):
    """
    No mutual algorithm between the proxy and the SSH server.

    Carries the algorithm sets offered by each side so the UI can show
    them side by side.
    """

    def __init__(
        self,
        message: str,
        client_algorithms: dict[str, list[str]] | None = None,
        server_algorithms: dict[str, list[str]] | None = None,
        context: ErrorContext | None = None,
    ) -> None:
        super().__init__(message, context)
        self.client_algorithms = dict(client_algorithms or {})
        self.server_algorithms = dict(server_algorithms or {})

    def to_dict(self) -> dict[str, Any]:
        return {
            **super().to_dict(),
            "client_algorithms": self.client_algorithms,
            "server_algorithms": self.server_algorithms,
        }


# ---------------------------------------------------------------------------
# Credential Errors
# ---------------------------------------------------------------------------

class CredentialError(WebSSHError):
    """Base class for local credential validation failures."""
    pass


class InvalidCredentials(CredentialError):
    """A credential field failed its allow-list validator."""

    def __init__(
        self,
        message: str,
        field_name: str | None = None,
        context: ErrorContext | None = None,
    ) -> None:
        if context is None:
            context = ErrorContext()
        context.field_name = field_name
        super().__init__(message, context)


class KeyValidationError(CredentialError):
    """
    Private key material failed validation.

    The reason is one of:
    - public_key: a public key was supplied instead of a private one
    - not_private_key: PEM framing present but not a private key
    - missing_headers: no recognised header/footer pair (phase 1)
    - corrupted: decoded body has the wrong structure (phase 2)
    - too_large: exceeds the maximum accepted key size
    """

    def __init__(
        self,
        message: str,
        reason: str,
        suggestion: str | None = None,
        context: ErrorContext | None = None,
    ) -> None:
        assert reason, "KeyValidationError requires a reason"
        if context is None:
            context = ErrorContext()
        context.field_name = "private_key"
        context.extra["reason"] = reason
        super().__init__(message, context)
        self.reason = reason
        self.suggestion = suggestion


# ---------------------------------------------------------------------------
# Permission Errors
# ---------------------------------------------------------------------------

class PermissionDenied(WebSSHError):
    """A server-gated operation (reauth, replay) is not permitted."""

    def __init__(
        self,
        message: str,
        operation: str,
        context: ErrorContext | None = None,
    ) -> None:
        if context is None:
            context = ErrorContext()
        context.extra["operation"] = operation
        super().__init__(message, context)
        self.operation = operation


# ---------------------------------------------------------------------------
# SFTP Errors
# ---------------------------------------------------------------------------

class SftpError(WebSSHError):
    """
    An SFTP request failed, timed out or lost its connection.

    code is the server's error code when the proxy sent one (sftp-error),
    otherwise one of NOT_CONNECTED, SFTP_DISABLED, TIMEOUT, SUPERSEDED, DISCONNECTED,
    BAD_RESPONSE or CANCELLED.
    """

    def __init__(
        self,
        message: str,
        code: str | None = None,
        operation: str | None = None,
        path: str | None = None,
        transfer_id: str | None = None,
        context: ErrorContext | None = None,
    ) -> None:
        if context is None:
            context = ErrorContext()
        for key, value in (("code", code), ("operation", operation),
                           ("path", path), ("transfer_id", transfer_id)):
            if value is not None:
                context.extra[key] = value
        super().__init__(message, context)
        self.code = code
        self.operation = operation
        self.path = path
        self.transfer_id = transfer_id


class TransferCancelled(SftpError):
    """The transfer was cancelled before it completed."""

    def __init__(self, transfer_id: str, context: ErrorContext | None = None) -> None:
        super().__init__("Transfer cancelled", code="CANCELLED", transfer_id=transfer_id, context=context)
