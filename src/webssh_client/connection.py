"""
Connection and authentication state machine.

WebSSHClient owns the transport lifecycle for one page: it opens a
transport per connection attempt, answers the server's authentication
handshake, classifies every way a session can end and drives the UI
through an injected UIHooks object.

Every transport event handler is bound to the generation of the transport
it was installed on. Tearing a transport down closes it and bumps the
generation, so late events from a superseded socket are ignored.

Usage:
    client = WebSSHClient(config, lambda: SocketIOTransport(url), hooks)
    client.start()                      # auto-connect or open the login form
    client.connect({"host": "example.com", "username": "alice", "password": "..."})
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Sequence

from webssh_client.config import BasicAuthCookie, ClientConfig
from webssh_client.credentials import build_credentials
from webssh_client.disconnect import (
    DisconnectAction,
    DisconnectKind,
    DisconnectReason,
    classify_disconnect,
    resolve_action,
)
from webssh_client.errors import CredentialError, PermissionDenied
from webssh_client.events import EventEmitter, EventType
from webssh_client.prompts import PromptEngine, PromptResponse
from webssh_client.redaction import mask_secrets
from webssh_client.render import ConnectionErrorInfo
from webssh_client.session_log import LogDownload, SessionLog
from webssh_client.settings import MemoryStore
from webssh_client.sftp import SftpClient
from webssh_client.state import (
    BUSY_STATUSES,
    ConnectionStatus,
    HeaderContent,
    PermissionsState,
    SessionState,
    SftpStatus,
)
from webssh_client.timers import AsyncioScheduler, Debouncer, Scheduler
from webssh_client.transport import SERVER_EVENTS, Transport, TransportFactory
from webssh_client.validation import (
    URLParameters,
    validate_color,
    validate_css_classes,
    validate_text,
)

logger = logging.getLogger(__name__)

DEFAULT_COLS = 80
DEFAULT_ROWS = 24
MAX_DIMENSION = 9999
RESIZE_DEBOUNCE_SEC = 0.15
MAX_KI_PROMPTS = 10

_UTILITY_BACKGROUND_MARKERS = ("gradient", "from-", "to-")


class UIHooks:
    """
    What the state machine asks of the UI.

    Every method is a no-op here; UIs override the ones they support.
    """

    def open_login(self, reauth: bool = False) -> None:
        """Show the login form. For reauth, host and port stay filled in."""

    def show_error(self, message: str) -> None:
        pass

    def show_connection_error(self, info: ConnectionErrorInfo) -> None:
        self.show_error(info.message)

    def focus_terminal(self) -> None:
        pass

    def write_terminal(self, data: str) -> None:
        pass

    def reset_terminal(self) -> None:
        pass

    def reload_page(self) -> None:
        pass

    def clear_password(self) -> None:
        pass

    def show_keyboard_interactive(self, challenge: "KeyboardInteractiveChallenge") -> None:
        pass

    def save_log(self, download: LogDownload) -> None:
        pass


@dataclass(frozen=True)
class KeyboardInteractivePrompt:
    prompt: str
    echo: bool = False


@dataclass(frozen=True)
class KeyboardInteractiveChallenge:
    name: str
    prompts: tuple[KeyboardInteractivePrompt, ...]

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "KeyboardInteractiveChallenge | None":
        raw = payload.get("prompts")
        if not isinstance(raw, list) or not raw or len(raw) > MAX_KI_PROMPTS:
            return None
        prompts = []
        for item in raw:
            if not isinstance(item, Mapping) or not isinstance(item.get("prompt"), str):
                return None
            prompts.append(KeyboardInteractivePrompt(
                prompt=validate_text(item["prompt"], 500),
                echo=item.get("echo") is True,
            ))
        name = validate_text(payload.get("name")) or "Authentication Required"
        return cls(name=name, prompts=tuple(prompts))


def normalize_dimension(value: Any) -> int | None:
    """Clamp a terminal dimension to 1..9999; None if not a number."""
    if isinstance(value, bool):
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if not isinstance(value, int):
        return None
    return max(1, min(MAX_DIMENSION, value))


class WebSSHClient:
    """
    Client-side connection state machine.

    Args:
        config: Page configuration (after URL overrides)
        transport_factory: Creates a fresh transport per connection attempt
        hooks: UI callbacks
        state: Shared session state (created if omitted)
        scheduler: Timers; defaults to the running asyncio loop
        url_params: Validated URL parameters (a credential source)
        cookie: basicauth cookie, if the page was served behind Basic auth
        session_log: Session log (in-memory if omitted)
        emitter: Optional structured event emitter
        prompt_engine: Prompt engine (created and wired if omitted)
    """

    def __init__(
        self,
        config: ClientConfig,
        transport_factory: TransportFactory,
        hooks: UIHooks | None = None,
        state: SessionState | None = None,
        scheduler: Scheduler | None = None,
        url_params: URLParameters | None = None,
        cookie: BasicAuthCookie | None = None,
        session_log: SessionLog | None = None,
        emitter: EventEmitter | None = None,
        prompt_engine: PromptEngine | None = None,
        play_sound: Callable[..., None] | None = None,
    ) -> None:
        self._config = config
        self._transport_factory = transport_factory
        self._hooks = hooks or UIHooks()
        self._scheduler = scheduler or AsyncioScheduler()
        self._url_params = url_params or URLParameters()
        self._cookie = cookie
        self._emitter = emitter
        self.state = state or SessionState(basic_auth_cookie_present=cookie is not None)
        self.session_log = session_log or SessionLog(MemoryStore())
        self.prompts = prompt_engine or PromptEngine(
            self._scheduler,
            respond=self._send_prompt_response,
            disconnect=self._abort_for_abuse,
            show_error=self._hooks.show_error,
            play_sound=play_sound,
            emitter=emitter,
        )
        self.sftp = SftpClient(self._send, is_available=lambda: self.state.sftp_status.enabled, emitter=emitter)

        self._transport: Transport | None = None
        self._generation = 0
        self._form: dict[str, Any] | None = None
        self._dims: tuple[int, int] | None = None
        self._sent_dims: tuple[int, int] | None = None
        self._resize = Debouncer(self._scheduler, RESIZE_DEBOUNCE_SEC, self._flush_resize)

        if emitter:
            self.state.subscribe(self._emit_state_change)

    # --- Introspection ---------------------------------------------------

    @property
    def status(self) -> ConnectionStatus:
        return self.state.status

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def transport(self) -> Transport | None:
        return self._transport

    @property
    def dimensions(self) -> tuple[int, int]:
        return self._dims or (DEFAULT_COLS, DEFAULT_ROWS)

    def _emit(self, event_type: EventType, **data: Any) -> None:
        if self._emitter:
            self._emitter.emit(event_type, **data)

    def _emit_state_change(self, changed: dict[str, Any]) -> None:
        if "status" in changed:
            self._emit(EventType.STATE_CHANGE, status=changed["status"].value)

    # --- Lifecycle -------------------------------------------------------

    def start(self) -> None:
        """Offer any recovered session log, then auto-connect or ask for login."""
        recovered = self.session_log.recover()
        if recovered:
            self._hooks.save_log(recovered)

        if self._config.auto_connect:
            ssh = self._config.ssh
            form: dict[str, Any] = {}
            if ssh.port:
                form["port"] = ssh.port
            if ssh.host:
                form["host"] = ssh.host
            if ssh.username:
                form["username"] = ssh.username
            self.connect(form)
        else:
            self._hooks.open_login()

    def connect(self, form: Mapping[str, Any] | None = None) -> bool:
        """
        Open a new transport and start the handshake.

        A no-op (returns False) while connecting, authenticating or
        connected. Form data, if given, replaces the stored login form.
        """
        if self.state.is_connecting or self.state.status in BUSY_STATUSES:
            logger.debug("connect() ignored in status %s", self.state.status.value)
            return False

        if self.state.reauth_required:
            self.state.set(reauth_required=False)
            self._hooks.reset_terminal()

        if form is not None:
            self._form = dict(form)

        self._teardown()
        self.prompts.clear()
        generation = self._generation
        transport = self._transport_factory()
        self._transport = transport
        self._install_listeners(transport, generation)

        self.state.set(
            status=ConnectionStatus.CONNECTING,
            is_connecting=True,
            status_text="Connecting...",
        )
        self._emit(EventType.CONNECT, generation=generation)
        logger.info("Connecting (generation %d)", generation)
        transport.open()
        return True

    def reconnect(self) -> bool:
        """User-initiated reconnect after a disconnect."""
        self.state.set(show_reconnect=False)
        self._hooks.reset_terminal()
        return self.connect()

    def disconnect(self) -> None:
        """Close the transport and return to idle. Idempotent."""
        self._teardown()
        self.prompts.clear()
        self.state.reset_connection()
        self._emit(EventType.DISCONNECT, kind="client", message="client disconnect")
        logger.info("Disconnected by client")

    def reset(self) -> None:
        """Disconnect and forget the stored login form."""
        self.disconnect()
        self._form = None
        self._sent_dims = None
        self._hooks.reset_terminal()

    def _teardown(self) -> None:
        self._resize.cancel()
        self.sftp.reset()
        if self._transport is not None:
            self._transport.close()
            self._transport = None
        self._generation += 1

    def _install_listeners(self, transport: Transport, generation: int) -> None:
        handlers: dict[str, Callable[..., None]] = {
            "connect": self._on_connect,
            "connect_error": self._on_connect_error,
            "disconnect": self._on_disconnect,
            "authentication": self._on_authentication,
            "permissions": self._on_permissions,
            "ssherror": self._on_ssh_error,
            "updateUI": self._on_update_ui,
            "data": self._on_data,
            "getTerminal": self._on_get_terminal,
            "prompt": self.prompts.handle_prompt,
            "connection-error": self._on_connection_error,
            "sftp-status": self._on_sftp_status,
            **self.sftp.handlers(),
        }
        assert set(handlers) == set(SERVER_EVENTS), "Listener table out of sync with SERVER_EVENTS"
        for event, handler in handlers.items():
            transport.on(event, self._bind(generation, event, handler))

    def _bind(self, generation: int, event: str, handler: Callable[..., None]) -> Callable[..., None]:
        def guarded(*args: Any) -> None:
            if generation != self._generation:
                logger.debug("Ignoring %s from stale transport %d", event, generation)
                return
            handler(*args)
        return guarded

    def _send(self, event: str, data: Any = None) -> bool:
        if self._transport is None:
            logger.debug("No transport, not sending %s", event)
            return False
        self._transport.emit(event, data)
        return True

    # --- Transport events ------------------------------------------------

    def _on_connect(self, *_: Any) -> None:
        self.state.set(
            status=ConnectionStatus.AUTHENTICATING,
            is_connecting=False,
            status_text="Connected",
            show_reconnect=False,
            permissions=PermissionsState(),
            permissions_received=False,
            sftp_status=SftpStatus(),
        )
        if self.session_log.enabled:
            self.session_log.stop(self.state.footer)
        self.state.set(session_log_enabled=False, logged_data=False)
        self.prompts.reset_circuit_breaker()
        self._sent_dims = None
        self._flush_resize()

    def _on_connect_error(self, error: Any = None) -> None:
        detail = error.get("message") if isinstance(error, Mapping) else error
        logger.info("Transport connect error: %s", detail)
        self._handle_disconnect(DisconnectKind.CONNECT_ERROR.value, detail)

    def _on_disconnect(self, reason: Any = None) -> None:
        logger.info("Transport disconnected: %s", reason)
        self.state.set(is_connecting=False)
        self._handle_disconnect(str(reason) if reason else "transport close")
        self.sftp.reset()
        self.state.set(permissions=PermissionsState(), permissions_received=False, sftp_status=SftpStatus())

    def _on_ssh_error(self, message: Any = None) -> None:
        self._handle_disconnect(DisconnectKind.SSH_ERROR.value, message)

    def _on_authentication(self, payload: Any) -> None:
        if not isinstance(payload, Mapping):
            logger.warning("Ignoring malformed authentication event")
            return

        action = payload.get("action")
        logger.debug("Authentication event: %s", action)
        if action == "request_auth":
            self.state.set(status_text="Requesting authentication...")
            self._authenticate()
        elif action == "auth_result":
            self._on_auth_result(payload.get("success") is True, payload.get("message"))
        elif action == "keyboard-interactive":
            challenge = KeyboardInteractiveChallenge.from_payload(payload)
            if challenge is None:
                logger.warning("Ignoring malformed keyboard-interactive challenge")
                return
            self._emit(EventType.AUTH, method="keyboard-interactive", prompts=len(challenge.prompts))
            self._hooks.show_keyboard_interactive(challenge)
        elif action == "reauth":
            if self.state.basic_auth_cookie_present:
                logger.info("Reauth requested with basic-auth cookie, reloading")
                self._hooks.reload_page()
            else:
                self._handle_disconnect(DisconnectKind.REAUTH_REQUIRED.value)
        elif action == "dimensions":
            self._sent_dims = None
            self._resize()
        else:
            logger.debug("Unhandled authentication action: %s", str(action)[:50])

    def _authenticate(self) -> None:
        cols, rows = self.dimensions
        try:
            credentials = build_credentials(
                self._config,
                form=self._form,
                url=self._url_params,
                cookie=self._cookie,
                cols=cols,
                rows=rows,
            )
        except CredentialError as e:
            logger.info("Local credential validation failed: %s", e)
            self._emit(EventType.ERROR, **e.to_dict())
            self._hooks.show_error(str(e))
            credentials = None

        if credentials is None:
            self._handle_disconnect(DisconnectKind.AUTH_REQUIRED.value)
            return

        payload = credentials.to_payload()
        self.state.set(term=credentials.term, status_text="Authenticating...")
        self._emit(EventType.AUTH, action="authenticate", payload=mask_secrets(payload))
        self._send("authenticate", payload)

    def _on_auth_result(self, success: bool, message: Any) -> None:
        self.state.set(is_connecting=False)
        if success:
            self.state.set(status=ConnectionStatus.CONNECTED, status_text="Connected")
            self._emit(EventType.AUTH, action="auth_result", success=True)
            self._hooks.focus_terminal()
            return

        text = validate_text(message) if isinstance(message, str) else ""
        self.state.set(status=ConnectionStatus.ERROR, status_text=f"Authentication failed: {text}")
        self._emit(EventType.AUTH, action="auth_result", success=False, message=text)
        # Key and passphrase stay for correction; the rejected password goes
        if self._form is not None:
            self._form.pop("password", None)
        self._hooks.clear_password()
        self._handle_disconnect(DisconnectKind.AUTH_FAILED.value, text or None)

    def _on_permissions(self, payload: Any) -> None:
        if not isinstance(payload, Mapping):
            logger.warning("Ignoring malformed permissions event")
            return
        if self.state.get("permissions_received"):
            logger.warning("Ignoring repeated permissions event")
            return

        permissions = PermissionsState.from_payload(payload)
        self.state.set(permissions=permissions, permissions_received=True)
        logger.debug("Permissions: %s", permissions.to_dict())
        if permissions.auto_log and not self.session_log.enabled:
            self.start_log()

    def _on_sftp_status(self, payload: Any) -> None:
        if not isinstance(payload, Mapping):
            logger.warning("Ignoring malformed sftp-status event")
            return
        status = SftpStatus.from_payload(payload)
        self.state.set(sftp_status=status)
        logger.debug("SFTP %s", "enabled" if status.enabled else "disabled")
        if not status.enabled:
            self.sftp.reset("SFTP disabled by server")

    def _on_update_ui(self, data: Any) -> None:
        if not isinstance(data, Mapping) or not data.get("element") or data.get("value") is None:
            logger.warning("updateUI: invalid payload dropped")
            return

        element, value = data["element"], data["value"]
        try:
            self._apply_ui_update(element, value)
        except ValueError as e:
            logger.warning("updateUI %s: %s", str(element)[:30], e)

    def _apply_ui_update(self, element: str, value: Any) -> None:
        header = self.state.header or HeaderContent()
        if element == "footer":
            text = value.get("text") if isinstance(value, Mapping) else value
            self.state.set(footer=validate_text(str(text)))
        elif element == "status":
            self.state.set(status_text=validate_text(str(value)))
        elif element == "header":
            if isinstance(value, Mapping):
                background = value.get("background")
                self.state.set(header=HeaderContent(
                    text=validate_text(value.get("text")),
                    background=validate_color(background) if background else "transparent",
                ))
            else:
                self.state.set(header=HeaderContent(text=validate_text(str(value))))
        elif element == "headerBackground":
            text = str(value)
            if text.startswith("bg-") or any(m in text for m in _UTILITY_BACKGROUND_MARKERS):
                self.state.set(header=HeaderContent(
                    text=header.text,
                    background=validate_css_classes(text),
                    background_is_utility_class=True,
                    full_style=header.full_style,
                ))
            else:
                self.state.set(header=HeaderContent(
                    text=header.text,
                    background=validate_color(text),
                    full_style=header.full_style,
                ))
        elif element == "headerStyle":
            self.state.set(header=HeaderContent(
                text=header.text,
                background=header.background,
                background_is_utility_class=header.background_is_utility_class,
                full_style=validate_css_classes(str(value)),
            ))
        else:
            logger.debug("Unknown updateUI element: %s", str(element)[:30])

    def _on_data(self, chunk: Any) -> None:
        if not isinstance(chunk, str):
            chunk = chunk.decode("utf-8", errors="replace") if isinstance(chunk, bytes) else str(chunk)
        self._hooks.write_terminal(chunk)
        self.session_log.record(chunk)

    def _on_get_terminal(self, *_: Any) -> None:
        cols, rows = self.dimensions
        self._send("terminal", {"cols": cols, "rows": rows, "term": self.state.term})

    def _on_connection_error(self, payload: Any) -> None:
        if not isinstance(payload, Mapping):
            logger.warning("Ignoring malformed connection-error event")
            return
        info = ConnectionErrorInfo.from_payload(payload)
        self.state.set(status=ConnectionStatus.ERROR, is_connecting=False)
        self._emit(EventType.ERROR, **info.to_error().to_dict())
        self._hooks.show_connection_error(info)

    # --- Disconnect handling ---------------------------------------------

    def _handle_disconnect(self, raw: str, detail: Any = None) -> DisconnectAction:
        reason = classify_disconnect(raw, detail)
        action = resolve_action(reason, self.state.reauth_required)
        self._emit(EventType.DISCONNECT, action=action.value, **reason.to_dict())
        logger.debug("Disconnect %s -> %s", reason.kind.value, action.value)
        if action is DisconnectAction.SHOW_ERROR or reason.kind is DisconnectKind.AUTH_FAILED:
            self._emit(EventType.ERROR, **reason.to_error().to_dict())

        if action is DisconnectAction.OPEN_LOGIN:
            if reason.kind is DisconnectKind.AUTH_REQUIRED:
                self.state.set(
                    status=ConnectionStatus.IDLE,
                    is_connecting=False,
                    status_text="Authentication required",
                )
            else:
                self.state.set(status=ConnectionStatus.ERROR, is_connecting=False)
            self._hooks.open_login(reauth=False)
        elif action is DisconnectAction.REOPEN_LOGIN_FOR_REAUTH:
            self.state.set(
                status=ConnectionStatus.REAUTH_REQUIRED,
                reauth_required=True,
                is_connecting=False,
            )
            self._hooks.open_login(reauth=True)
        elif action is DisconnectAction.SUPPRESS:
            logger.debug("Suppressing %s after reauth request", reason.kind.value)
            self.state.set(reauth_required=False)
        else:
            self.state.set(status=ConnectionStatus.ERROR, is_connecting=False)
            self._hooks.show_error(self._error_message(reason))
            self._post_disconnect()
        return action

    @staticmethod
    def _error_message(reason: DisconnectReason) -> str:
        if reason.kind in (DisconnectKind.ERROR, DisconnectKind.SSH_ERROR):
            return validate_text(reason.message, 500)
        return f"Disconnected: {validate_text(reason.message, 500)}"

    def _post_disconnect(self) -> None:
        self.state.set(is_connecting=False)
        if self.session_log.enabled:
            self.session_log.stop(self.state.footer)
            self.download_log()
        self.state.set(session_log_enabled=False)
        if self.state.permissions.allow_reconnect and not self.state.basic_auth_cookie_present:
            self.state.set(show_reconnect=True)

    def _abort_for_abuse(self) -> None:
        """Drop the transport after the prompt circuit breaker trips."""
        logger.warning("Closing transport: prompt flood")
        self._teardown()
        self.state.set(
            status=ConnectionStatus.ERROR,
            is_connecting=False,
            status_text="Disconnected: too many prompts",
        )
        self._emit(EventType.DISCONNECT, kind="prompt_flood", message="circuit breaker tripped")
        self._post_disconnect()
        self.state.set(permissions=PermissionsState(), permissions_received=False)

    # --- User actions ----------------------------------------------------

    def _guarded_control(self, allowed: bool, command: str, denial: str) -> bool:
        if not allowed:
            error = PermissionDenied(denial, operation=command)
            logger.warning(denial)
            self._emit(EventType.ERROR, **error.to_dict())
            self._hooks.show_error(denial)
            return False
        return self._send("control", command)

    def reauth(self) -> bool:
        """Ask the server to re-request credentials, if permitted."""
        return self._guarded_control(
            self.state.permissions.allow_reauth, "reauth", "Reauthentication not permitted",
        )

    def replay_credentials(self) -> bool:
        """Ask the server to replay stored credentials to the shell, if permitted."""
        return self._guarded_control(
            self.state.permissions.allow_replay, "replayCredentials", "Credential replay not permitted",
        )

    def submit_keyboard_interactive(self, responses: Sequence[str]) -> bool:
        assert all(isinstance(r, str) for r in responses), "responses must be strings"
        return self._send("authentication", {
            "action": "keyboard-interactive",
            "responses": list(responses),
        })

    def send_data(self, chunk: str) -> bool:
        """Forward terminal input to the server."""
        return self._send("data", chunk)

    def resize(self, cols: Any, rows: Any) -> bool:
        """
        Record new terminal dimensions and schedule a debounced resize.

        Returns False (and changes nothing) for non-numeric values.
        """
        c, r = normalize_dimension(cols), normalize_dimension(rows)
        if c is None or r is None:
            logger.debug("Ignoring invalid resize %r x %r", cols, rows)
            return False
        self._dims = (c, r)
        if self._dims == self._sent_dims and not self._resize.pending:
            return True
        self._resize()
        return True

    def _flush_resize(self) -> None:
        cols, rows = self.dimensions
        if (cols, rows) == self._sent_dims:
            return
        if self._send("resize", {"cols": cols, "rows": rows}):
            self._sent_dims = (cols, rows)

    def _send_prompt_response(self, response: PromptResponse) -> None:
        self._send("prompt-response", response.to_payload())

    # --- Session log -----------------------------------------------------

    def start_log(self) -> None:
        self.session_log.start(self.state.footer)
        self.state.set(session_log_enabled=True, logged_data=True)

    def stop_log(self) -> None:
        self.session_log.stop(self.state.footer)
        self.state.set(session_log_enabled=False)

    def download_log(self) -> LogDownload | None:
        download = self.session_log.download()
        if download is not None:
            self._hooks.save_log(download)
        return download
