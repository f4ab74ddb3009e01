"""
Allow-list validators for connection parameters and banner content.

Every value that can reach the transport or the UI (host, port, username,
password, terminal type, header/footer text and colours, log level) passes
through one of these validators first. They bound the blast radius of
malformed input; none of them attempt to check that the remote side will
accept the value.

Field validators raise ValueError with a readable message. The aggregate
helpers (validate_url_parameters, validate_form_data) drop or reject
invalid fields instead of raising.
"""
from __future__ import annotations

import ipaddress
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Final, Mapping

logger = logging.getLogger(__name__)

DEFAULT_PORT: Final[int] = 22

# Maximum accepted lengths per field
MAX_LENGTHS: Final[dict[str, int]] = {
    "host": 253,
    "port": 5,
    "username": 32,
    "password": 256,
    "header": 200,
    "headerbackground": 50,
    "sshterm": 50,
    "log_level": 20,
    "private_key": 16384,
    "passphrase": 256,
}
MAX_LABEL_LENGTH: Final[int] = 63

# Characters that must never appear in host or username values
DANGEROUS_CHARS: Final[frozenset[str]] = frozenset(
    "\x00"
    "\n\r"
    "`$(){}[]|;&<>\\'\""
    "\t"
)

_LABEL_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"^[a-zA-Z0-9]([a-zA-Z0-9-]*[a-zA-Z0-9])?$"
)
_USERNAME_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[a-zA-Z0-9._-]+$")
_PROTOCOL_PREFIX: Final[re.Pattern[str]] = re.compile(r"^https?://", re.IGNORECASE)

_HEX_COLOR: Final[re.Pattern[str]] = re.compile(r"^#([0-9a-fA-F]{3}){1,2}$")
_RGB_COLOR: Final[re.Pattern[str]] = re.compile(
    r"^rgba?\(\s*(\d{1,3}\s*,\s*){2,3}\s*\d{1,3}\s*\)$"
)
_NAMED_COLOR: Final[re.Pattern[str]] = re.compile(r"^[a-zA-Z]+$")
_CLASS_TOKEN: Final[re.Pattern[str]] = re.compile(r"^[a-zA-Z0-9_:/.%-]+$")

_TERM_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[a-zA-Z0-9-]+$")
KNOWN_TERMINAL_TYPES: Final[frozenset[str]] = frozenset({
    "xterm",
    "xterm-256color",
    "xterm-color",
    "xterm-16color",
    "vt100",
    "vt102",
    "vt220",
    "ansi",
    "linux",
    "screen",
    "screen-256color",
    "rxvt",
    "rxvt-unicode",
    "tmux",
    "tmux-256color",
})

LOG_LEVELS: Final[frozenset[str]] = frozenset(
    {"error", "warn", "info", "debug", "trace", "silent"}
)


def _check_dangerous_chars(value: str, field_name: str) -> None:
    """
    Raise ValueError if value contains a shell metacharacter or control char.

    Args:
        value: The value to check
        field_name: Name of the field for error messages
    """
    assert isinstance(value, str), \
        f"Precondition: value must be str, got {type(value).__name__}"

    for char in value:
        if char in DANGEROUS_CHARS:
            if char == "\x00":
                char_desc = "null byte"
            elif char == "\n":
                char_desc = "newline"
            elif char == "\r":
                char_desc = "carriage return"
            elif char == "\t":
                char_desc = "tab"
            else:
                char_desc = repr(char)
            raise ValueError(f"{field_name} contains forbidden character: {char_desc}")


def _strip_host_decorations(value: str) -> str:
    """Remove a protocol prefix, any path and a trailing :port from a host."""
    value = _PROTOCOL_PREFIX.sub("", value)
    value = value.split("/", 1)[0]
    if value.startswith("[") and "]" in value:
        # [v6addr] or [v6addr]:port
        return value[1:value.index("]")]
    if value.count(":") == 1:
        value = value.split(":", 1)[0]
    return value


def _is_ip_address(value: str) -> bool:
    try:
        ipaddress.ip_address(value)
    except ValueError:
        return False
    return True


def validate_host(host: str) -> str:
    """
    Validate and normalise a host name or IP address.

    Accepts RFC 1123 host names, IPv4 and IPv6 addresses. A leading
    http(s):// prefix, a path and a :port suffix are stripped first, so a
    value pasted from a browser address bar still resolves to a host.

    Args:
        host: The host to validate

    Returns:
        The normalised host (lowercase)

    Raises:
        ValueError: If the host is invalid
    """
    if not isinstance(host, str):
        raise ValueError(f"host must be a string, got {type(host).__name__}")

    value = _strip_host_decorations(host.strip())
    if not value:
        raise ValueError("host must not be empty")

    if _is_ip_address(value):
        return value.lower()

    _check_dangerous_chars(value, "host")

    if len(value) > MAX_LENGTHS["host"]:
        raise ValueError(
            f"host exceeds maximum length of {MAX_LENGTHS['host']} characters "
            f"(got {len(value)})"
        )

    labels = value.split(".")
    for i, label in enumerate(labels):
        if not label:
            if i == 0:
                raise ValueError("host must not start with a dot")
            elif i == len(labels) - 1:
                raise ValueError("host must not end with a dot")
            raise ValueError("host must not contain consecutive dots")

        if len(label) > MAX_LABEL_LENGTH:
            raise ValueError(
                f"host label '{label}' exceeds maximum length of "
                f"{MAX_LABEL_LENGTH} characters (got {len(label)})"
            )

        if not _LABEL_PATTERN.match(label):
            if label.startswith("-"):
                raise ValueError(f"host label '{label}' must not start with a hyphen")
            elif label.endswith("-"):
                raise ValueError(f"host label '{label}' must not end with a hyphen")
            raise ValueError(
                f"host label '{label}' contains invalid characters "
                "(only alphanumeric and hyphens allowed)"
            )

    return value.lower()


def validate_port(port: int | str) -> int:
    """
    Validate a TCP port given as an int or a decimal string.

    Returns:
        The port as an int in 1-65535

    Raises:
        ValueError: If the port is invalid
    """
    if isinstance(port, bool):
        raise ValueError("port must be an integer, got bool")

    if isinstance(port, str):
        text = port.strip()
        if not text.isdigit() or len(text) > MAX_LENGTHS["port"]:
            raise ValueError(f"port must be a decimal number, got {port!r}")
        port = int(text)

    if not isinstance(port, int):
        raise ValueError(f"port must be an integer, got {type(port).__name__}")

    if port < 1:
        raise ValueError(f"port must be at least 1, got {port}")
    if port > 65535:
        raise ValueError(f"port must be at most 65535, got {port}")

    return port


def validate_username(username: str) -> str:
    """
    Validate a remote username.

    Accepts letters, digits, dot, underscore and hyphen, up to 32
    characters. Surrounding whitespace is trimmed.

    Raises:
        ValueError: If the username is invalid
    """
    if not isinstance(username, str):
        raise ValueError(f"username must be a string, got {type(username).__name__}")

    value = username.strip()
    if not value:
        raise ValueError("username must not be empty")

    _check_dangerous_chars(value, "username")

    if len(value) > MAX_LENGTHS["username"]:
        raise ValueError(
            f"username exceeds maximum length of {MAX_LENGTHS['username']} characters "
            f"(got {len(value)})"
        )

    if not _USERNAME_PATTERN.match(value):
        for char in value:
            if not (char.isalnum() or char in "._-"):
                raise ValueError(f"username contains invalid character: {char!r}")
        raise ValueError(
            "username contains invalid characters "
            "(only alphanumeric, dot, underscore, and hyphen allowed)"
        )

    return value


def validate_password(password: str) -> str:
    """Validate a password. Only the length is bounded."""
    if not isinstance(password, str):
        raise ValueError(f"password must be a string, got {type(password).__name__}")
    if len(password) > MAX_LENGTHS["password"]:
        raise ValueError(
            f"password exceeds maximum length of {MAX_LENGTHS['password']} characters"
        )
    return password


def validate_passphrase(passphrase: str) -> str:
    """Validate a private key passphrase. Only the length is bounded."""
    if not isinstance(passphrase, str):
        raise ValueError(
            f"passphrase must be a string, got {type(passphrase).__name__}"
        )
    if len(passphrase) > MAX_LENGTHS["passphrase"]:
        raise ValueError(
            f"passphrase exceeds maximum length of {MAX_LENGTHS['passphrase']} characters"
        )
    return passphrase


def validate_text(text: Any, max_length: int = MAX_LENGTHS["header"]) -> str:
    """
    Bound free text shown in header/footer banners.

    Never raises: non-strings become "", overlong text is truncated and
    null bytes are removed. Escaping happens at render time, not here.
    """
    assert max_length > 0, f"max_length must be positive, got {max_length}"

    if not text or not isinstance(text, str):
        return ""
    if len(text) > max_length:
        logger.debug("Text truncated from %d to %d characters", len(text), max_length)
        text = text[:max_length]
    return text.replace("\x00", "")


def validate_color(color: str) -> str:
    """
    Validate a CSS colour: #rgb/#rrggbb, rgb()/rgba(), or a bare colour name.

    Raises:
        ValueError: If the colour does not match any allowed form
    """
    if not isinstance(color, str):
        raise ValueError(f"color must be a string, got {type(color).__name__}")

    value = color.strip()
    if not value:
        raise ValueError("color must not be empty")
    if len(value) > MAX_LENGTHS["headerbackground"]:
        raise ValueError(
            f"color exceeds maximum length of {MAX_LENGTHS['headerbackground']} characters"
        )
    if _HEX_COLOR.match(value) or _RGB_COLOR.match(value) or _NAMED_COLOR.match(value):
        return value
    raise ValueError(f"color is not an allowed CSS colour: {value!r}")


def validate_css_classes(classes: str, max_length: int = MAX_LENGTHS["header"]) -> str:
    """
    Validate a space-separated list of utility class names.

    Returns:
        The classes joined by single spaces

    Raises:
        ValueError: If any token has characters outside a class name
    """
    if not isinstance(classes, str):
        raise ValueError(f"classes must be a string, got {type(classes).__name__}")
    if len(classes) > max_length:
        raise ValueError(f"classes exceed maximum length of {max_length} characters")

    tokens = classes.split()
    if not tokens:
        raise ValueError("classes must not be empty")
    for token in tokens:
        if not _CLASS_TOKEN.match(token):
            raise ValueError(f"invalid class name: {token[:40]!r}")
    return " ".join(tokens)


def validate_terminal_type(term: str) -> str:
    """
    Validate a terminal type such as xterm-256color.

    Known types are normalised to lowercase; other values must be
    alphanumeric with hyphens.

    Raises:
        ValueError: If the terminal type is invalid
    """
    if not isinstance(term, str):
        raise ValueError(f"terminal type must be a string, got {type(term).__name__}")

    value = term.strip()
    if not value:
        raise ValueError("terminal type must not be empty")
    if len(value) > MAX_LENGTHS["sshterm"]:
        raise ValueError(
            f"terminal type exceeds maximum length of {MAX_LENGTHS['sshterm']} characters"
        )
    if value.lower() in KNOWN_TERMINAL_TYPES:
        return value.lower()
    if _TERM_PATTERN.match(value):
        return value
    raise ValueError(f"terminal type contains invalid characters: {value!r}")


def validate_log_level(level: str) -> str:
    """Validate a client log level name, returning it lowercased."""
    if not isinstance(level, str):
        raise ValueError(f"log level must be a string, got {type(level).__name__}")
    value = level.strip().lower()
    if value not in LOG_LEVELS:
        raise ValueError(
            f"log level must be one of {sorted(LOG_LEVELS)}, got {level!r}"
        )
    return value


@dataclass
class URLParameters:
    """Validated connection parameters taken from a page URL query string."""
    host: str | None = None
    port: int | None = None
    username: str | None = None
    password: str | None = None
    header_text: str = ""
    header_background: str | None = None
    sshterm: str | None = None
    log_level: str | None = None
    rejected: list[str] = field(default_factory=list)


def _try(validator, value: Any, name: str, rejected: list[str]) -> Any:
    try:
        return validator(value)
    except ValueError as e:
        logger.debug("Dropping invalid URL parameter %s: %s", name, e)
        rejected.append(name)
        return None


def validate_url_parameters(params: Mapping[str, str]) -> URLParameters:
    """
    Validate URL query parameters, dropping any that fail.

    The names of dropped parameters are recorded in `rejected` so callers
    can report them; the values themselves are never echoed.
    """
    result = URLParameters()
    rejected = result.rejected

    if params.get("host"):
        result.host = _try(validate_host, params["host"], "host", rejected)
    if params.get("port"):
        result.port = _try(validate_port, params["port"], "port", rejected)
    if params.get("username"):
        result.username = _try(validate_username, params["username"], "username", rejected)
    if params.get("password"):
        result.password = _try(validate_password, params["password"], "password", rejected)
    if params.get("header"):
        result.header_text = validate_text(params["header"])
    if params.get("headerbackground"):
        result.header_background = _try(
            validate_color, params["headerbackground"], "headerbackground", rejected
        )
    if params.get("sshterm"):
        result.sshterm = _try(validate_terminal_type, params["sshterm"], "sshterm", rejected)
    if params.get("logLevel"):
        result.log_level = _try(validate_log_level, params["logLevel"], "logLevel", rejected)

    return result


def validate_form_data(form: Mapping[str, Any]) -> dict[str, Any] | None:
    """
    Validate login form data before submission.

    Host and username are required. Returns the sanitised dict, or None
    when any supplied field is invalid. Private key contents are only
    size-checked here; see keys.check_private_key for format checks.
    """
    if not isinstance(form, Mapping):
        return None

    validated: dict[str, Any] = {}
    try:
        validated["host"] = validate_host(form.get("host") or "")
        validated["username"] = validate_username(form.get("username") or "")
        port = form.get("port")
        validated["port"] = validate_port(port) if port not in (None, "") else DEFAULT_PORT
        if form.get("password"):
            validated["password"] = validate_password(form["password"])
        if form.get("private_key"):
            private_key = str(form["private_key"])
            if len(private_key) > MAX_LENGTHS["private_key"]:
                raise ValueError("private key is too large")
            validated["private_key"] = private_key
            if form.get("passphrase"):
                validated["passphrase"] = validate_passphrase(str(form["passphrase"]))
    except ValueError as e:
        logger.debug("Form data rejected: %s", e)
        return None

    return validated
