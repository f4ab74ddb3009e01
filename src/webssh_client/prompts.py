"""
Server-driven prompts: parsing, admission and the bounded UI model.

The server may push any number of prompt events; the PromptEngine turns
that stream into at most one active modal prompt, a queue of at most three
pending modals and at most five toasts. Every arrival passes the rate
limiter first. A flood trips the circuit breaker, which drops the transport
and rejects prompts until reset_circuit_breaker() is called on reconnect.

Provides:
- PromptType, PromptButton, PromptInput, PromptPayload, PromptResponse
- parse_prompt: bounded parsing of untrusted payloads
- PromptEngine: admission pipeline, queue, toasts, dismiss-all and the
  focus-trap safety valve
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Final, Mapping

from webssh_client.events import EventEmitter, EventType
from webssh_client.icons import Severity, resolve_prompt_icon
from webssh_client.ratelimit import Admission, PromptRateLimiter
from webssh_client.state import Store
from webssh_client.timers import Scheduler, TimerHandle

logger = logging.getLogger(__name__)

MAX_MODAL_QUEUE_SIZE: Final[int] = 3
MAX_ACTIVE_TOASTS: Final[int] = 5
DEFAULT_TOAST_TIMEOUT_MS: Final[int] = 5000
MAX_TOAST_TIMEOUT_MS: Final[int] = 60000
FORCE_CLOSE_ENABLE_DELAY_SEC: Final[float] = 5.0

MAX_ID_LENGTH: Final[int] = 128
MAX_TITLE_LENGTH: Final[int] = 200
MAX_MESSAGE_LENGTH: Final[int] = 2000
MAX_LABEL_LENGTH: Final[int] = 100
MAX_ACTION_LENGTH: Final[int] = 64
MAX_BUTTONS: Final[int] = 5
MAX_INPUTS: Final[int] = 10

CIRCUIT_BREAKER_MESSAGE: Final[str] = (
    "Too many prompts received. Possible attack detected. Please reconnect."
)

_ID_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[A-Za-z0-9_.:-]+$")


class PromptType(str, Enum):
    """
    input/confirm/notice take focus and block the terminal; toast does
    neither and dismisses itself.
    """
    INPUT = "input"
    CONFIRM = "confirm"
    NOTICE = "notice"
    TOAST = "toast"


@dataclass(frozen=True)
class KeyCombo:
    key: str
    ctrl: bool = False
    shift: bool = False
    alt: bool = False

    def matches(self, key: str, ctrl: bool = False, shift: bool = False, alt: bool = False) -> bool:
        return (key, ctrl, shift, alt) == (self.key, self.ctrl, self.shift, self.alt)


DISMISS_ALL_SHORTCUT: Final[KeyCombo] = KeyCombo("Escape", ctrl=True, shift=True)


@dataclass(frozen=True)
class PromptButton:
    action: str
    label: str
    variant: str = "secondary"
    default: bool = False


@dataclass(frozen=True)
class PromptInput:
    id: str
    label: str
    type: str = "text"
    placeholder: str | None = None
    required: bool = False
    value: str = ""


DEFAULT_BUTTONS: Final[tuple[PromptButton, ...]] = (
    PromptButton(action="ok", label="OK", variant="primary", default=True),
)


@dataclass(frozen=True)
class PromptPayload:
    """A validated prompt. Text fields are plain text, never markup."""
    id: str
    type: PromptType
    title: str
    message: str | None = None
    inputs: tuple[PromptInput, ...] = ()
    buttons: tuple[PromptButton, ...] = ()
    severity: Severity | None = None
    icon: str | None = None
    auto_focus: bool = True
    timeout: int | None = None
    close_on_backdrop: bool = True
    sound: bool = True

    @property
    def is_modal(self) -> bool:
        return self.type is not PromptType.TOAST

    @property
    def effective_severity(self) -> Severity:
        return self.severity or Severity.INFO

    @property
    def resolved_icon(self) -> str:
        return resolve_prompt_icon(self.icon, self.effective_severity)

    @property
    def effective_buttons(self) -> tuple[PromptButton, ...]:
        """Buttons to show; a single OK when the server sent none."""
        return self.buttons or DEFAULT_BUTTONS

    @property
    def default_button(self) -> PromptButton | None:
        """The button a form submit presses: marked default, else primary."""
        for button in self.effective_buttons:
            if button.default:
                return button
        for button in self.effective_buttons:
            if button.variant == "primary":
                return button
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "title": self.title,
            "message": self.message,
            "severity": self.effective_severity.value,
            "icon": self.resolved_icon,
            "inputs": [i.id for i in self.inputs],
            "buttons": [b.action for b in self.effective_buttons],
        }


@dataclass(frozen=True)
class PromptResponse:
    id: str
    action: str
    inputs: dict[str, str] | None = None

    def to_payload(self) -> dict[str, Any]:
        """Wire form of the prompt-response event."""
        payload: dict[str, Any] = {"id": self.id, "action": self.action}
        if self.inputs is not None:
            payload["inputs"] = dict(self.inputs)
        return payload


def _text(data: Mapping[str, Any], key: str, max_length: int, required: bool = False) -> str | None:
    value = data.get(key)
    if value is None:
        if required:
            raise ValueError(f"prompt {key} is required")
        return None
    if not isinstance(value, str):
        raise ValueError(f"prompt {key} must be a string, got {type(value).__name__}")
    if required and not value.strip():
        raise ValueError(f"prompt {key} must not be empty")
    if len(value) > max_length:
        raise ValueError(f"prompt {key} exceeds {max_length} characters")
    return value


def _identifier(value: Any, what: str) -> str:
    if not isinstance(value, str) or not value:
        raise ValueError(f"{what} must be a non-empty string")
    if len(value) > MAX_ID_LENGTH or not _ID_PATTERN.match(value):
        raise ValueError(f"{what} contains invalid characters or is too long")
    return value


def _items(data: Mapping[str, Any], key: str, limit: int) -> list[Mapping[str, Any]]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"prompt {key} must be a list")
    if len(value) > limit:
        raise ValueError(f"prompt {key} exceeds {limit} entries")
    if not all(isinstance(item, Mapping) for item in value):
        raise ValueError(f"prompt {key} entries must be objects")
    return value


def _parse_button(data: Mapping[str, Any]) -> PromptButton:
    # Older servers send the action as "id"
    action = _identifier(data.get("action", data.get("id")), "button action")
    if len(action) > MAX_ACTION_LENGTH:
        raise ValueError("button action is too long")
    variant = data.get("variant", "secondary")
    if variant not in ("primary", "secondary", "danger"):
        variant = "secondary"
    return PromptButton(
        action=action,
        label=_text(data, "label", MAX_LABEL_LENGTH, required=True),
        variant=variant,
        default=data.get("default") is True,
    )


def _parse_input(data: Mapping[str, Any]) -> PromptInput:
    input_type = data.get("type", "text")
    if input_type not in ("text", "password"):
        raise ValueError(f"input type must be text or password, got {input_type!r}")
    return PromptInput(
        id=_identifier(data.get("id"), "input id"),
        label=_text(data, "label", MAX_LABEL_LENGTH, required=True),
        type=input_type,
        placeholder=_text(data, "placeholder", MAX_LABEL_LENGTH),
        required=data.get("required") is True,
        value=_text(data, "value", MAX_MESSAGE_LENGTH) or "",
    )


def parse_prompt(data: Any) -> PromptPayload:
    """
    Validate an untrusted prompt event payload.

    Unknown severities fall back to None (rendered as info); unknown icon
    names are kept and resolved against the whitelist at render time.

    Raises:
        ValueError: If the payload is malformed or exceeds a bound
    """
    if isinstance(data, PromptPayload):
        return data
    if not isinstance(data, Mapping):
        raise ValueError(f"prompt payload must be an object, got {type(data).__name__}")

    try:
        prompt_type = PromptType(data.get("type"))
    except ValueError:
        raise ValueError(f"unknown prompt type: {str(data.get('type'))[:20]!r}") from None

    try:
        severity = Severity(data["severity"]) if data.get("severity") is not None else None
    except ValueError:
        severity = None

    timeout = data.get("timeout")
    if timeout is not None:
        if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
            raise ValueError("prompt timeout must be a positive number of milliseconds")
        timeout = int(min(timeout, MAX_TOAST_TIMEOUT_MS))

    icon = data.get("icon")
    inputs = tuple(_parse_input(item) for item in _items(data, "inputs", MAX_INPUTS))
    if len({i.id for i in inputs}) != len(inputs):
        raise ValueError("prompt input ids must be unique")

    return PromptPayload(
        id=_identifier(data.get("id"), "prompt id"),
        type=prompt_type,
        title=_text(data, "title", MAX_TITLE_LENGTH, required=True),
        message=_text(data, "message", MAX_MESSAGE_LENGTH),
        inputs=inputs,
        buttons=tuple(_parse_button(item) for item in _items(data, "buttons", MAX_BUTTONS)),
        severity=severity,
        icon=icon[:MAX_LABEL_LENGTH] if isinstance(icon, str) else None,
        auto_focus=data.get("autoFocus") is not False,
        timeout=timeout,
        close_on_backdrop=data.get("closeOnBackdrop") is not False,
        sound=data.get("sound") is not False,
    )


class PromptEngine:
    """
    Owns the prompt queue, the toast list and the rate limiter.

    The UI reads the projections (active_prompt, queue, toasts,
    circuit_tripped) or subscribes to changes, and writes only through
    dismiss_prompt(), remove_toast(), dismiss_all(), backdrop_click() and
    handle_key().

    Args:
        scheduler: Clock and timers (toast expiry, focus-trap valve)
        respond: Sends a PromptResponse to the server
        disconnect: Drops the transport; called once when the breaker trips
        show_error: Shows a user-facing error; called once when the breaker trips
        play_sound: Called with the severity of each admitted prompt that
            asks for a sound
        emitter: Optional structured event emitter
        rate_limiter: Override the default 5/s, breaker-at-10 limiter
    """

    def __init__(
        self,
        scheduler: Scheduler,
        respond: Callable[[PromptResponse], None] | None = None,
        disconnect: Callable[[], None] | None = None,
        show_error: Callable[[str], None] | None = None,
        play_sound: Callable[[Severity], None] | None = None,
        emitter: EventEmitter | None = None,
        rate_limiter: PromptRateLimiter | None = None,
    ) -> None:
        self._scheduler = scheduler
        self._respond = respond
        self._disconnect = disconnect
        self._show_error = show_error
        self._play_sound = play_sound
        self._emitter = emitter
        self._limiter = rate_limiter or PromptRateLimiter(scheduler.time)

        self._store = Store({
            "active_prompt": None,
            "queue": (),
            "toasts": (),
            "circuit_tripped": False,
            "force_close_enabled": False,
        })
        self._toast_timers: dict[str, TimerHandle] = {}
        self._valve_timer: TimerHandle | None = None

    # --- Projections ---------------------------------------------------

    @property
    def active_prompt(self) -> PromptPayload | None:
        return self._store.get("active_prompt")

    @property
    def queue(self) -> tuple[PromptPayload, ...]:
        return self._store.get("queue")

    @property
    def toasts(self) -> tuple[PromptPayload, ...]:
        return self._store.get("toasts")

    @property
    def circuit_tripped(self) -> bool:
        return self._store.get("circuit_tripped")

    @property
    def force_close_enabled(self) -> bool:
        """True once the active modal has been open long enough to force-close."""
        return self._store.get("force_close_enabled")

    @property
    def has_modal(self) -> bool:
        return self.active_prompt is not None

    def snapshot(self) -> dict[str, Any]:
        active = self.active_prompt
        return {
            "active_prompt": active.to_dict() if active else None,
            "queue": [p.id for p in self.queue],
            "toasts": [t.id for t in self.toasts],
            "circuit_tripped": self.circuit_tripped,
        }

    def subscribe(self, listener: Callable[[dict[str, Any]], None]) -> Callable[[], None]:
        """Register for projection changes; returns an unsubscribe function."""
        return self._store.subscribe(listener)

    # --- Admission -----------------------------------------------------

    def _emit(self, **data: Any) -> None:
        if self._emitter:
            self._emitter.emit(EventType.PROMPT, **data)

    def _admit(self, prompt_id: str) -> bool:
        outcome = self._limiter.check()
        if outcome.admitted:
            return True

        if self._emitter:
            self._emitter.emit(EventType.RATE_LIMIT, prompt_id=prompt_id, outcome=outcome.value)

        if outcome is Admission.TRIPPED:
            self._store.set(circuit_tripped=True)
            if self._show_error:
                self._show_error(CIRCUIT_BREAKER_MESSAGE)
            if self._disconnect:
                self._disconnect()
        return False

    def handle_prompt(self, data: Any) -> bool:
        """
        Entry point for a raw prompt event.

        Every arrival counts against the rate limiter, including malformed
        ones. Returns True if the prompt was shown or queued.
        """
        raw_id = data.get("id") if isinstance(data, Mapping) else None
        if not self._admit(str(raw_id)[:MAX_ID_LENGTH]):
            return False

        try:
            payload = parse_prompt(data)
        except ValueError as e:
            logger.warning("Dropping malformed prompt: %s", e)
            self._emit(action="rejected", reason=str(e))
            return False

        if payload.is_modal:
            return self._enqueue_modal(payload)
        return self._push_toast(payload)

    def show_prompt(self, payload: PromptPayload | Mapping[str, Any]) -> bool:
        """
        Admit a modal prompt (input, confirm or notice).

        Raises:
            ValueError: If the payload is malformed or is a toast
        """
        payload = parse_prompt(payload)
        if not payload.is_modal:
            raise ValueError(f"show_prompt needs a modal prompt, got {payload.type.value}")
        if not self._admit(payload.id):
            return False
        return self._enqueue_modal(payload)

    def add_toast(self, payload: PromptPayload | Mapping[str, Any]) -> bool:
        """
        Admit a toast.

        Raises:
            ValueError: If the payload is malformed or is a modal prompt
        """
        payload = parse_prompt(payload)
        if payload.is_modal:
            raise ValueError(f"add_toast needs a toast, got {payload.type.value}")
        if not self._admit(payload.id):
            return False
        return self._push_toast(payload)

    def _announce(self, payload: PromptPayload) -> None:
        if self._play_sound and payload.sound and payload.severity is not None:
            self._play_sound(payload.severity)

    def _enqueue_modal(self, payload: PromptPayload) -> bool:
        known = {p.id for p in self.queue}
        if self.active_prompt is not None:
            known.add(self.active_prompt.id)
        if payload.id in known:
            logger.debug("Duplicate prompt id %s, dropping", payload.id)
            return False

        if self.active_prompt is None:
            self._announce(payload)
            self._activate(payload)
        elif len(self.queue) < MAX_MODAL_QUEUE_SIZE:
            self._announce(payload)
            self._store.set(queue=self.queue + (payload,))
            self._emit(action="queued", prompt_id=payload.id, depth=len(self.queue))
        else:
            logger.debug("Prompt queue full, dropping prompt %s", payload.id)
            self._emit(action="dropped", prompt_id=payload.id, reason="queue_full")
            return False
        return True

    def _activate(self, payload: PromptPayload | None) -> None:
        self._cancel_valve()
        self._store.set(active_prompt=payload, force_close_enabled=False)
        if payload is not None:
            self._valve_timer = self._scheduler.call_later(
                FORCE_CLOSE_ENABLE_DELAY_SEC, self._enable_force_close,
            )
            self._emit(action="shown", prompt_id=payload.id, type=payload.type.value)

    def _enable_force_close(self) -> None:
        self._valve_timer = None
        self._store.set(force_close_enabled=True)

    def _cancel_valve(self) -> None:
        if self._valve_timer is not None:
            self._valve_timer.cancel()
            self._valve_timer = None

    def _push_toast(self, payload: PromptPayload) -> bool:
        self._announce(payload)
        toasts = [t for t in self.toasts if t.id != payload.id]
        self._cancel_toast_timer(payload.id)
        while len(toasts) >= MAX_ACTIVE_TOASTS:
            evicted = toasts.pop(0)
            self._cancel_toast_timer(evicted.id)
        toasts.append(payload)
        self._store.set(toasts=tuple(toasts))

        timeout_ms = payload.timeout or DEFAULT_TOAST_TIMEOUT_MS
        self._toast_timers[payload.id] = self._scheduler.call_later(
            timeout_ms / 1000, lambda: self.remove_toast(payload.id),
        )
        self._emit(action="toast", prompt_id=payload.id)
        return True

    def _cancel_toast_timer(self, toast_id: str) -> None:
        handle = self._toast_timers.pop(toast_id, None)
        if handle is not None:
            handle.cancel()

    # --- Resolution ----------------------------------------------------

    def _submit(self, response: PromptResponse) -> None:
        logger.debug("Prompt response %s: %s", response.id, response.action)
        self._emit(action="response", prompt_id=response.id, response=response.action)
        if self._respond:
            self._respond(response)

    def dismiss_prompt(
        self,
        prompt_id: str,
        action: str = "dismissed",
        inputs: Mapping[str, str] | None = None,
    ) -> bool:
        """
        Resolve the active prompt and promote the next queued one.

        Ignored (returns False) when prompt_id is not the active prompt.
        """
        active = self.active_prompt
        if active is None or active.id != prompt_id:
            logger.debug("dismiss_prompt for inactive prompt %s ignored", prompt_id)
            return False

        self._submit(PromptResponse(
            id=prompt_id,
            action=action,
            inputs=dict(inputs) if inputs is not None else None,
        ))

        queue = self.queue
        if queue:
            self._store.set(queue=queue[1:])
            self._activate(queue[0])
        else:
            self._activate(None)
        return True

    def respond(self, action: str, inputs: Mapping[str, str] | None = None) -> bool:
        """Press a button on the active prompt, attaching its input values."""
        active = self.active_prompt
        if active is None:
            return False
        if action not in {b.action for b in active.effective_buttons}:
            logger.debug("Unknown action %r for prompt %s", action, active.id)
            return False
        values = None
        if active.inputs:
            supplied = dict(inputs or {})
            values = {i.id: str(supplied.get(i.id, i.value)) for i in active.inputs}
        return self.dismiss_prompt(active.id, action, values)

    def backdrop_click(self) -> bool:
        """
        Dismiss the active prompt from a click outside it.

        Allowed when the prompt permits backdrop close, or once the
        focus-trap safety valve has opened.
        """
        active = self.active_prompt
        if active is None:
            return False
        if not active.close_on_backdrop and not self.force_close_enabled:
            return False
        return self.dismiss_prompt(active.id)

    def remove_toast(self, toast_id: str) -> None:
        self._cancel_toast_timer(toast_id)
        toasts = tuple(t for t in self.toasts if t.id != toast_id)
        if len(toasts) != len(self.toasts):
            self._store.set(toasts=toasts)

    def dismiss_all(self) -> list[str]:
        """
        Emergency close: send a dismissed response for the active prompt and
        each queued prompt in order, then clear prompts and toasts.

        Works while the circuit breaker is tripped.

        Returns:
            The ids that received a dismissed response
        """
        pending = ([self.active_prompt] if self.active_prompt else []) + list(self.queue)
        for prompt in pending:
            self._submit(PromptResponse(id=prompt.id, action="dismissed"))

        for toast_id in list(self._toast_timers):
            self._cancel_toast_timer(toast_id)
        self._cancel_valve()
        self._store.set(active_prompt=None, queue=(), toasts=(), force_close_enabled=False)
        logger.info("Dismissed all prompts (%d responses sent)", len(pending))
        return [p.id for p in pending]

    def handle_key(self, key: str, ctrl: bool = False, shift: bool = False, alt: bool = False) -> bool:
        """Run dismiss-all if the key matches DISMISS_ALL_SHORTCUT."""
        if DISMISS_ALL_SHORTCUT.matches(key, ctrl, shift, alt):
            self.dismiss_all()
            return True
        return False

    def reset_circuit_breaker(self) -> None:
        """Clear the rate window and the breaker latch (on reconnect)."""
        self._limiter.reset()
        self._store.set(circuit_tripped=False)

    def clear(self) -> None:
        """Drop all prompts and toasts without responding (connection gone)."""
        for toast_id in list(self._toast_timers):
            self._cancel_toast_timer(toast_id)
        self._cancel_valve()
        self._store.set(active_prompt=None, queue=(), toasts=(), force_close_enabled=False)
