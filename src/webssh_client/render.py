"""
Auto-escaping render path for everything the server can put on screen.

Prompt text, banners and connection-error diagnostics (including SSH
algorithm names) are untrusted. They are only ever interpolated through
markupsafe, so a value can never become markup. Class names and icon names
come from fixed tables, never from payloads.

Provides:
- render_prompt / render_toast: prompt fragments
- render_header / render_footer: banner fragments
- ConnectionErrorInfo + render_connection_error: the error view, with
  analyze_algorithms comparing offered SSH algorithm sets
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Final, Mapping

from markupsafe import Markup, escape

from webssh_client.errors import (
    AlgorithmMismatch,
    AuthFailed,
    ConnectFailed,
    ErrorContext,
    SSHProtocolError,
    WebSSHError,
)
from webssh_client.icons import Severity
from webssh_client.prompts import PromptPayload
from webssh_client.state import HeaderContent
from webssh_client.validation import validate_text

SEVERITY_CLASSES: Final[dict[Severity, str]] = {
    Severity.INFO: "prompt-info",
    Severity.WARNING: "prompt-warning",
    Severity.ERROR: "prompt-error",
    Severity.SUCCESS: "prompt-success",
}

BUTTON_CLASSES: Final[dict[str, str]] = {
    "primary": "btn-primary",
    "secondary": "btn-secondary",
    "danger": "btn-danger",
}

ALGORITHM_CATEGORIES: Final[tuple[tuple[str, str], ...]] = (
    ("kex", "Key Exchange"),
    ("serverHostKey", "Host Key"),
    ("cipher", "Cipher"),
    ("mac", "MAC"),
    ("compress", "Compression"),
)


def render_text(value: Any) -> Markup:
    """Escape any value for use as element text or an attribute value."""
    return escape("" if value is None else value)


def render_prompt(prompt: PromptPayload) -> Markup:
    """Render a modal prompt as an HTML fragment."""
    role = "alertdialog" if prompt.type.value == "notice" else "dialog"
    parts = [
        Markup('<div class="prompt {}" role="{}" data-prompt-id="{}">').format(
            SEVERITY_CLASSES[prompt.effective_severity], role, prompt.id,
        ),
        Markup('<span class="icon" data-icon="{}"></span>').format(prompt.resolved_icon),
        Markup('<h2 class="prompt-title">{}</h2>').format(prompt.title),
    ]
    if prompt.message:
        parts.append(Markup('<p class="prompt-message">{}</p>').format(prompt.message))

    for field_ in prompt.inputs:
        parts.append(Markup(
            '<label>{} <input name="{}" type="{}" placeholder="{}" value="{}"{}></label>'
        ).format(
            field_.label,
            field_.id,
            "password" if field_.type == "password" else "text",
            field_.placeholder or "",
            "" if field_.type == "password" else field_.value,
            Markup(" required") if field_.required else "",
        ))

    for button in prompt.effective_buttons:
        parts.append(Markup('<button class="{}" data-action="{}">{}</button>').format(
            BUTTON_CLASSES.get(button.variant, "btn-secondary"), button.action, button.label,
        ))
    parts.append(Markup("</div>"))
    return Markup("").join(parts)


def render_toast(toast: PromptPayload) -> Markup:
    body = Markup('<strong>{}</strong>').format(toast.title)
    if toast.message:
        body += Markup(" {}").format(toast.message)
    return Markup('<div class="toast {}" role="status" data-icon="{}">{}</div>').format(
        SEVERITY_CLASSES[toast.effective_severity], toast.resolved_icon, body,
    )


def render_header(header: HeaderContent) -> Markup:
    """
    Render the header banner.

    full_style and a utility-class background are class lists (already
    restricted to class-name characters); any other background is a
    validated CSS colour.
    """
    text = validate_text(header.text)
    classes = ["header"]
    if header.full_style:
        classes.append(header.full_style)
    if header.background_is_utility_class:
        classes.append(header.background)
        return Markup('<div class="{}">{}</div>').format(" ".join(classes), text)
    return Markup('<div class="{}" style="background-color: {}">{}</div>').format(
        " ".join(classes), header.background, text,
    )


def render_footer(text: str | None) -> Markup:
    return Markup('<div class="footer">{}</div>').format(validate_text(text))


# --- Connection errors -------------------------------------------------

class ConnectionErrorType(str, Enum):
    NETWORK = "network"
    TIMEOUT = "timeout"
    AUTH = "auth"
    ALGORITHM = "algorithm"
    UNKNOWN = "unknown"


DEFAULT_ERROR_TITLES: Final[dict[ConnectionErrorType, str]] = {
    ConnectionErrorType.NETWORK: "Connection Failed",
    ConnectionErrorType.TIMEOUT: "Connection Timeout",
    ConnectionErrorType.AUTH: "Authentication Failed",
    ConnectionErrorType.ALGORITHM: "Algorithm Mismatch",
    ConnectionErrorType.UNKNOWN: "Connection Error",
}


@dataclass(frozen=True)
class CategoryAnalysis:
    category: str
    common: tuple[str, ...]
    client_only: tuple[str, ...]
    server_only: tuple[str, ...]

    @property
    def has_match(self) -> bool:
        return bool(self.common)


def _algorithm_list(algorithms: Mapping[str, Any] | None, category: str) -> list[str]:
    if not isinstance(algorithms, Mapping):
        return []
    values = algorithms.get(category) or []
    if not isinstance(values, list):
        return []
    return [str(v) for v in values]


def analyze_algorithms(
    client: Mapping[str, Any] | None,
    server: Mapping[str, Any] | None,
) -> dict[str, CategoryAnalysis]:
    """
    Compare client and server algorithm offers per category.

    Order follows each side's preference list.
    """
    result: dict[str, CategoryAnalysis] = {}
    for category, _label in ALGORITHM_CATEGORIES:
        ours = _algorithm_list(client, category)
        theirs = _algorithm_list(server, category)
        result[category] = CategoryAnalysis(
            category=category,
            common=tuple(a for a in ours if a in theirs),
            client_only=tuple(a for a in ours if a not in theirs),
            server_only=tuple(a for a in theirs if a not in ours),
        )
    return result


@dataclass
class ConnectionErrorInfo:
    """A connection-error payload after shape checking."""
    error_type: ConnectionErrorType
    message: str
    title: str | None = None
    host: str | None = None
    port: int | None = None
    client_algorithms: dict[str, list[str]] = field(default_factory=dict)
    server_algorithms: dict[str, list[str]] = field(default_factory=dict)
    error_details: str | None = None

    @property
    def effective_title(self) -> str:
        return self.title or DEFAULT_ERROR_TITLES[self.error_type]

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "ConnectionErrorInfo":
        try:
            error_type = ConnectionErrorType(payload.get("errorType", "unknown"))
        except ValueError:
            error_type = ConnectionErrorType.UNKNOWN

        debug = payload.get("debugInfo")
        debug = debug if isinstance(debug, Mapping) else {}
        port = payload.get("port")

        def algorithms(key: str) -> dict[str, list[str]]:
            return {c: _algorithm_list(debug.get(key), c) for c, _ in ALGORITHM_CATEGORIES}

        title = payload.get("title")
        details = debug.get("errorDetails")
        return cls(
            error_type=error_type,
            message=validate_text(payload.get("message"), 500) or "Connection error",
            title=validate_text(title) if isinstance(title, str) else None,
            host=validate_text(payload.get("host"), 253) or None,
            port=port if isinstance(port, int) and not isinstance(port, bool) else None,
            client_algorithms=algorithms("clientAlgorithms"),
            server_algorithms=algorithms("serverAlgorithms"),
            error_details=validate_text(str(details), 2000) if details is not None else None,
        )

    def analysis(self) -> dict[str, CategoryAnalysis]:
        return analyze_algorithms(self.client_algorithms, self.server_algorithms)

    def to_error(self) -> WebSSHError:
        port = self.port if self.port and 1 <= self.port <= 65535 else None
        context = ErrorContext(host=self.host, port=port, original_error=self.error_details)
        if self.error_type is ConnectionErrorType.ALGORITHM:
            return AlgorithmMismatch(
                self.message,
                client_algorithms=self.client_algorithms,
                server_algorithms=self.server_algorithms,
                context=context,
            )
        if self.error_type in (ConnectionErrorType.NETWORK, ConnectionErrorType.TIMEOUT):
            return ConnectFailed(self.message, context)
        if self.error_type is ConnectionErrorType.AUTH:
            return AuthFailed(self.message, context)
        return SSHProtocolError(self.message, context)


def _algorithm_column(title: str, side: str, algorithms: Mapping[str, list[str]],
                      analysis: Mapping[str, CategoryAnalysis]) -> Markup:
    parts = [Markup('<div class="algorithms-{}"><h4>{}</h4>').format(side, title)]
    for category, label in ALGORITHM_CATEGORIES:
        names = algorithms.get(category) or []
        if not names:
            continue
        entry = analysis[category]
        exclusive = entry.client_only if side == "client" else entry.server_only
        parts.append(Markup("<div><span>{}</span><ul>").format(label))
        for name in names:
            if name in entry.common:
                css = "alg-match"
            elif name in exclusive:
                css = "alg-missing"
            else:
                css = "alg-neutral"
            parts.append(Markup('<li class="{}">{}</li>').format(css, name))
        parts.append(Markup("</ul></div>"))
    parts.append(Markup("</div>"))
    return Markup("").join(parts)


def render_connection_error(info: ConnectionErrorInfo) -> Markup:
    """Render the connection error view, with algorithm columns when present."""
    parts = [
        Markup('<div class="connection-error" data-error-type="{}">').format(info.error_type.value),
        Markup("<h3>{}</h3>").format(info.effective_title),
        Markup("<p>{}</p>").format(info.message),
    ]
    if info.host:
        target = info.host if info.port is None else f"{info.host}:{info.port}"
        parts.append(Markup('<p class="target">{}</p>').format(target))

    if any(info.client_algorithms.values()) or any(info.server_algorithms.values()):
        analysis = info.analysis()
        parts.append(_algorithm_column("Client Offers", "client", info.client_algorithms, analysis))
        parts.append(_algorithm_column("Server Offers", "server", info.server_algorithms, analysis))
    if info.error_details:
        parts.append(Markup("<pre>{}</pre>").format(info.error_details))
    parts.append(Markup("</div>"))
    return Markup("").join(parts)
