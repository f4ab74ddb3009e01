"""
Client configuration.

Mirrors the configuration object a WebSSH2 page is served with, plus the
overrides a page URL may carry.

Provides:
- ClientConfig and its parts (SocketConfig, SSHDefaults, TerminalSettings,
  HeaderConfig), with the original client's defaults
- load_config: read a JSON config file
- coerce_auth_methods / sanitize_auth_payload: enforce allowed auth methods
- ClientConfig.with_url_overrides: apply validated URL parameters
- parse_basic_auth_cookie: read the proxy's basicauth cookie
"""
from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field, replace
from http.cookies import CookieError, SimpleCookie
from pathlib import Path
from typing import Any, Mapping
from urllib.parse import parse_qsl, unquote, urlsplit

from webssh_client.validation import (
    URLParameters,
    validate_host,
    validate_port,
    validate_url_parameters,
)

logger = logging.getLogger(__name__)

AUTH_METHODS = ("password", "keyboard-interactive", "publickey")
DEFAULT_SOCKET_PATH = "/ssh/socket.io"
DEFAULT_TERM = "xterm-color"


@dataclass
class SocketConfig:
    """Where the Socket.IO endpoint lives."""
    url: str | None = None
    path: str = DEFAULT_SOCKET_PATH


@dataclass
class SSHDefaults:
    """Server-asserted connection defaults."""
    host: str | None = None
    port: int | None = None
    username: str | None = None
    password: str | None = None
    private_key: str = ""
    passphrase: str = ""
    sshterm: str = DEFAULT_TERM


@dataclass
class TerminalSettings:
    """Terminal display preferences; persisted by settings.SettingsStore."""
    cursor_blink: bool = True
    scrollback: int = 10000
    tab_stop_width: int = 8
    bell_style: str = "sound"
    font_size: int = 14
    font_family: str = "courier-new, courier, monospace"
    letter_spacing: int = 0
    line_height: float = 1.0
    clipboard_auto_select_to_copy: bool = True
    clipboard_enable_middle_click_paste: bool = True
    clipboard_enable_keyboard_shortcuts: bool = True
    keyboard_capture: bool = False

    def updated(self, values: Mapping[str, Any]) -> "TerminalSettings":
        """Return a copy with known keys from values applied."""
        known = {k: v for k, v in values.items() if k in self.__dataclass_fields__}
        unknown = set(values) - set(known)
        if unknown:
            logger.debug("Ignoring unknown terminal settings: %s", sorted(unknown))
        return replace(self, **known)


@dataclass
class HeaderConfig:
    text: str | None = None
    background: str = "#000"


@dataclass
class ClientConfig:
    """
    Complete client configuration.

    Usage:
        config = load_config("webssh2.json")
        config = config.with_url_overrides("host=example.com&port=2222")
    """
    socket: SocketConfig = field(default_factory=SocketConfig)
    ssh: SSHDefaults = field(default_factory=SSHDefaults)
    terminal: TerminalSettings = field(default_factory=TerminalSettings)
    header: HeaderConfig = field(default_factory=HeaderConfig)
    allowed_auth_methods: list[str] = field(default_factory=lambda: list(AUTH_METHODS))
    auto_connect: bool = False
    log_level: str = "info"

    def __post_init__(self) -> None:
        self.allowed_auth_methods = coerce_auth_methods(self.allowed_auth_methods)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ClientConfig":
        """Build from a (possibly partial) mapping; unknown keys are ignored."""
        def part(klass, key: str):
            values = data.get(key) or {}
            known = {k: v for k, v in values.items() if k in klass.__dataclass_fields__}
            return klass(**known)

        return cls(
            socket=part(SocketConfig, "socket"),
            ssh=part(SSHDefaults, "ssh"),
            terminal=part(TerminalSettings, "terminal"),
            header=part(HeaderConfig, "header"),
            allowed_auth_methods=data.get("allowed_auth_methods", list(AUTH_METHODS)),
            auto_connect=bool(data.get("auto_connect", False)),
            log_level=str(data.get("log_level", "info")),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def with_url_overrides(self, query: str | Mapping[str, str]) -> "ClientConfig":
        """
        Return a copy with validated URL parameters applied.

        Invalid parameters are dropped. Auto-connect is switched off if the
        allowed auth methods leave no usable secret.
        """
        params = parse_query(query) if isinstance(query, str) else dict(query)
        url = validate_url_parameters(params)

        ssh = replace(
            self.ssh,
            host=url.host or self.ssh.host,
            port=url.port or self.ssh.port,
            username=url.username or self.ssh.username,
            password=url.password or self.ssh.password,
            sshterm=url.sshterm or self.ssh.sshterm,
        )
        header = replace(
            self.header,
            text=url.header_text or self.header.text,
            background=url.header_background or self.header.background,
        )
        auth = sanitize_auth_payload(
            {"password": ssh.password, "private_key": ssh.private_key, "passphrase": ssh.passphrase},
            self.allowed_auth_methods,
        )
        ssh = replace(
            ssh,
            password=auth.get("password"),
            private_key=auth.get("private_key", ""),
            passphrase=auth.get("passphrase", ""),
        )

        auto_connect = self.auto_connect or _truthy(params.get("autoConnect"))
        if auto_connect and not ssh.password and not ssh.private_key:
            logger.debug("Auto-connect disabled: sanitised credentials removed all secrets")
            auto_connect = False

        return replace(
            self,
            ssh=ssh,
            header=header,
            auto_connect=auto_connect,
            log_level=url.log_level or self.log_level,
        )

    def url_parameters(self, query: str | Mapping[str, str]) -> URLParameters:
        """Validate a query without applying it."""
        params = parse_query(query) if isinstance(query, str) else dict(query)
        return validate_url_parameters(params)


def _truthy(value: str | None) -> bool:
    return str(value).lower() in ("1", "true", "yes", "on") if value is not None else False


def parse_query(query: str) -> dict[str, str]:
    """Parse a query string (with or without a leading ? or a full URL)."""
    if "://" in query:
        query = urlsplit(query).query
    query = query.lstrip("?")
    return dict(parse_qsl(query, keep_blank_values=False))


def load_config(path: Path | str) -> ClientConfig:
    """
    Load a ClientConfig from a JSON file.

    Raises:
        ValueError: If the file is not a JSON object
    """
    path = Path(path)
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a JSON object")
    return ClientConfig.from_mapping(data)


def coerce_auth_methods(methods: Any) -> list[str]:
    """
    Normalise a list of auth method names.

    Unknown names and duplicates are dropped. A non-list or an empty
    result falls back to every known method.
    """
    if not isinstance(methods, (list, tuple)):
        return list(AUTH_METHODS)

    normalised: list[str] = []
    for value in methods:
        if isinstance(value, str) and value in AUTH_METHODS and value not in normalised:
            normalised.append(value)
    return normalised or list(AUTH_METHODS)


def sanitize_auth_payload(
    payload: Mapping[str, Any],
    allowed_methods: list[str] | tuple[str, ...],
) -> dict[str, Any]:
    """
    Strip secrets the allowed auth methods do not use.

    - password is removed unless "password" is allowed, or when blank
    - private_key and passphrase are removed unless "publickey" is allowed,
      or when the key is blank; a blank passphrase is removed on its own
    """
    methods = coerce_auth_methods(list(allowed_methods))
    sanitized = dict(payload)

    password = sanitized.get("password")
    if "password" not in methods or not isinstance(password, str) or not password.strip():
        sanitized.pop("password", None)

    private_key = sanitized.get("private_key")
    if "publickey" not in methods or not isinstance(private_key, str) or not private_key.strip():
        sanitized.pop("private_key", None)
        sanitized.pop("passphrase", None)
    else:
        passphrase = sanitized.get("passphrase")
        if not isinstance(passphrase, str) or not passphrase.strip():
            sanitized.pop("passphrase", None)

    return sanitized


@dataclass(frozen=True)
class BasicAuthCookie:
    """Target stored by the proxy when HTTP Basic auth was used."""
    host: str | None = None
    port: int | None = None


def parse_basic_auth_cookie(cookie_header: str | None) -> BasicAuthCookie | None:
    """
    Extract the basicauth cookie from a Cookie header value.

    Returns None when the cookie is absent or malformed. A present but
    partially invalid cookie yields a BasicAuthCookie with the invalid
    fields unset: its presence alone changes reauth behaviour.
    """
    if not cookie_header:
        return None

    jar = SimpleCookie()
    try:
        jar.load(cookie_header)
    except CookieError as e:
        logger.debug("Malformed Cookie header: %s", e)
        return None

    morsel = jar.get("basicauth")
    if morsel is None:
        return None

    try:
        data = json.loads(unquote(morsel.value))
    except json.JSONDecodeError:
        logger.warning("Failed to parse basicauth cookie")
        return BasicAuthCookie()
    if not isinstance(data, dict):
        return BasicAuthCookie()

    host = port = None
    try:
        host = validate_host(data["host"]) if data.get("host") else None
    except ValueError:
        logger.debug("basicauth cookie carries an invalid host")
    try:
        port = validate_port(data["port"]) if data.get("port") else None
    except ValueError:
        logger.debug("basicauth cookie carries an invalid port")
    return BasicAuthCookie(host=host, port=port)
