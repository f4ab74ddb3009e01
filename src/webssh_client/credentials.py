"""
Credential assembly for the authenticate request.

Credentials are built immediately before they are sent and never stored.
Each field is taken from the first source that supplies it, in this order:

    explicit form > URL parameters > server-asserted defaults > basicauth cookie

The cookie only ever contributes host and port. Secrets the allowed auth
methods do not use are stripped before validation, so a private key is
never validated (or sent) when publickey auth is not allowed.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping

from webssh_client.config import BasicAuthCookie, ClientConfig, DEFAULT_TERM, sanitize_auth_payload
from webssh_client.errors import ErrorContext, InvalidCredentials
from webssh_client.keys import KeyFormat, require_valid_private_key
from webssh_client.redaction import mask_secrets
from webssh_client.validation import (
    URLParameters,
    validate_host,
    validate_passphrase,
    validate_password,
    validate_port,
    validate_terminal_type,
    validate_username,
)

logger = logging.getLogger(__name__)


@dataclass
class Credentials:
    """
    One authenticate request's worth of credentials.

    Secrets are excluded from repr so an accidental log line cannot leak
    them.
    """
    host: str
    port: int
    username: str
    password: str | None = field(default=None, repr=False)
    private_key: str | None = field(default=None, repr=False)
    passphrase: str | None = field(default=None, repr=False)
    term: str = DEFAULT_TERM
    cols: int | None = None
    rows: int | None = None
    key_format: KeyFormat | None = None

    def __post_init__(self) -> None:
        assert self.host, "Credentials require a host"
        assert self.username, "Credentials require a username"
        assert 1 <= self.port <= 65535, f"Port out of range: {self.port}"

    def to_payload(self) -> dict[str, Any]:
        """Wire form of the authenticate event."""
        payload: dict[str, Any] = {
            "host": self.host,
            "port": self.port,
            "username": self.username,
            "term": self.term,
        }
        if self.password:
            payload["password"] = self.password
        if self.private_key:
            payload["privateKey"] = self.private_key
            if self.passphrase:
                payload["passphrase"] = self.passphrase
        if self.cols:
            payload["cols"] = self.cols
        if self.rows:
            payload["rows"] = self.rows
        return payload


def _first(*values: Any) -> Any:
    for value in values:
        if value not in (None, ""):
            return value
    return None


def _validated(validator, value: Any, field_name: str) -> Any:
    try:
        return validator(value)
    except ValueError as e:
        raise InvalidCredentials(
            str(e),
            field_name=field_name,
            context=ErrorContext(original_error=str(e)),
        ) from e


def build_credentials(
    config: ClientConfig,
    form: Mapping[str, Any] | None = None,
    url: URLParameters | None = None,
    cookie: BasicAuthCookie | None = None,
    cols: int | None = None,
    rows: int | None = None,
) -> Credentials | None:
    """
    Assemble credentials from every available source.

    Returns:
        Credentials, or None when no source supplies both a host and a
        username (the caller must ask the user to log in)

    Raises:
        InvalidCredentials: If a supplied field fails its validator
        KeyValidationError: If an allowed private key fails validation
    """
    form = form or {}
    url = url or URLParameters()
    ssh = config.ssh

    host = _first(form.get("host"), url.host, ssh.host, cookie.host if cookie else None)
    username = _first(form.get("username"), url.username, ssh.username)
    if not host or not username:
        logger.debug("Credentials incomplete: host=%s username=%s", bool(host), bool(username))
        return None

    port_value = _first(
        form.get("port"),
        url.port,
        ssh.port,
        cookie.port if cookie else None,
    )
    term_value = _first(form.get("term"), url.sshterm, ssh.sshterm, DEFAULT_TERM)

    secrets = sanitize_auth_payload(
        {
            "password": _first(form.get("password"), url.password, ssh.password),
            "private_key": _first(form.get("private_key"), ssh.private_key),
            "passphrase": _first(form.get("passphrase"), ssh.passphrase),
        },
        config.allowed_auth_methods,
    )

    private_key = secrets.get("private_key")
    key_format = require_valid_private_key(private_key) if private_key else None

    credentials = Credentials(
        host=_validated(validate_host, host, "host"),
        port=_validated(validate_port, port_value if port_value is not None else 22, "port"),
        username=_validated(validate_username, username, "username"),
        password=_validated(validate_password, secrets["password"], "password")
        if "password" in secrets else None,
        private_key=private_key,
        passphrase=_validated(validate_passphrase, secrets["passphrase"], "passphrase")
        if "passphrase" in secrets else None,
        term=_validated(validate_terminal_type, term_value, "term"),
        cols=cols or None,
        rows=rows or None,
        key_format=key_format,
    )
    logger.debug("Built credentials: %s", mask_secrets(credentials.to_payload()))
    return credentials
