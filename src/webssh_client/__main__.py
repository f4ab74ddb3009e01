"""
CLI interface for webssh-client.

Usage:
    python -m webssh_client check-key ~/.ssh/id_ed25519
    python -m webssh_client check-key --passphrase ~/.ssh/id_rsa
    python -m webssh_client validate-url "host=example.com&port=2222&sshterm=xterm-256color"
    python -m webssh_client connect https://proxy.example.com/ssh/host/10.0.0.5?port=22
    python -m webssh_client -v --events connect https://proxy.example.com/ssh
    python -m webssh_client --help
"""
from __future__ import annotations

import argparse
import asyncio
import getpass
import logging
import os
import signal
import sys
from pathlib import Path
from urllib.parse import unquote, urlsplit

from webssh_client.config import ClientConfig, load_config, parse_basic_auth_cookie
from webssh_client.connection import KeyboardInteractiveChallenge, UIHooks, WebSSHClient
from webssh_client.errors import KeyValidationError
from webssh_client.events import EventCollector, EventEmitter, EventType
from webssh_client.icons import Severity
from webssh_client.keys import check_private_key, inspect_private_key
from webssh_client.redaction import mask_secrets
from webssh_client.render import ConnectionErrorInfo
from webssh_client.session_log import LogDownload, SessionLog
from webssh_client.settings import JSONFileStore, SettingsStore
from webssh_client.state import ConnectionStatus
from webssh_client.transport import SocketIOTransport

logger = logging.getLogger(__name__)

DEFAULT_STATE_FILE = "~/.webssh2/client-state.json"
MAX_LOGIN_ATTEMPTS = 3


def setup_logging(verbose: int, quiet: bool) -> None:
    """Configure stderr logging from -v/-q."""
    if quiet:
        level = logging.ERROR
    elif verbose >= 2:
        level = logging.DEBUG
    elif verbose == 1:
        level = logging.INFO
    else:
        level = logging.WARNING

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )
    # Socket.IO internals are only interesting at -vvv
    wire_level = logging.DEBUG if verbose >= 3 else logging.WARNING
    for name in ("socketio", "engineio"):
        logging.getLogger(name).setLevel(wire_level)


class ConsoleUIHooks(UIHooks):
    """
    Line-mode UI: terminal output to stdout, dialogs on stderr/stdin.

    The login dialog runs from the event loop rather than inside the
    handler that asked for it, so `login_pending` is already set when the
    state change that preceded the request is examined.
    """

    def __init__(self, stop: asyncio.Event, log_dir: Path) -> None:
        self.client: WebSSHClient | None = None
        self.login_pending = False
        self._stop = stop
        self._log_dir = log_dir
        self._login_attempts = 0
        self._last_form: dict[str, object] = {}

    def open_login(self, reauth: bool = False) -> None:
        self.login_pending = True
        asyncio.get_running_loop().call_soon(self._login, reauth)

    def _login(self, reauth: bool) -> None:
        assert self.client is not None, "ConsoleUIHooks used before binding a client"
        self._login_attempts += 1
        if self._login_attempts > MAX_LOGIN_ATTEMPTS:
            print("Too many login attempts.", file=sys.stderr)
            self._stop.set()
            return

        # Blank answers fall back to the URL and configured defaults
        form = dict(self._last_form) if reauth else {}
        try:
            if not form.get("host"):
                host = input("Host [default]: ").strip()
                if host:
                    form["host"] = host
            port = input("Port [default]: ").strip()
            if port:
                form["port"] = port
            username = input("Username [default]: ").strip()
            if username:
                form["username"] = username
            form["password"] = getpass.getpass("Password: ")
        except (EOFError, KeyboardInterrupt):
            print(file=sys.stderr)
            self._stop.set()
            return
        finally:
            self.login_pending = False

        self._last_form = {k: v for k, v in form.items() if k in ("host", "port")}
        self.client.connect(form)

    def show_error(self, message: str) -> None:
        print(f"Error: {message}", file=sys.stderr)

    def show_connection_error(self, info: ConnectionErrorInfo) -> None:
        print(f"{info.effective_title}: {info.message}", file=sys.stderr)
        for category, entry in info.analysis().items():
            if entry.client_only or entry.server_only:
                print(
                    f"  {category}: client offers {', '.join(entry.client_only) or '-'}; "
                    f"server offers {', '.join(entry.server_only) or '-'}",
                    file=sys.stderr,
                )

    def write_terminal(self, data: str) -> None:
        sys.stdout.write(data)
        sys.stdout.flush()

    def reset_terminal(self) -> None:
        sys.stdout.write("\x1bc")
        sys.stdout.flush()

    def reload_page(self) -> None:
        print("Server requested a full re-login; exiting.", file=sys.stderr)
        self._stop.set()

    def show_keyboard_interactive(self, challenge: KeyboardInteractiveChallenge) -> None:
        assert self.client is not None, "ConsoleUIHooks used before binding a client"
        print(challenge.name, file=sys.stderr)
        try:
            responses = [
                input(p.prompt) if p.echo else getpass.getpass(p.prompt)
                for p in challenge.prompts
            ]
        except (EOFError, KeyboardInterrupt):
            self._stop.set()
            return
        self.client.submit_keyboard_interactive(responses)

    def save_log(self, download: LogDownload) -> None:
        self._log_dir.mkdir(parents=True, exist_ok=True)
        path = self._log_dir / download.filename
        path.write_text(download.content, encoding="utf-8")
        print(f"Session log saved to {path}", file=sys.stderr)


def ring_bell(settings: SettingsStore, severity: Severity) -> None:
    if settings.prompt_sound_enabled(severity):
        sys.stderr.write("\a")
        sys.stderr.flush()


def split_connect_url(url: str) -> tuple[str, str, str | None]:
    """
    Split a WebSSH2 page URL into (server URL, query, host from path).

    https://proxy:2222/ssh/host/10.0.0.5?port=22
        -> ("https://proxy:2222", "port=22", "10.0.0.5")
    """
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise ValueError(f"URL must be http(s)://host[:port]/..., got {url!r}")

    host = None
    segments = [s for s in parts.path.split("/") if s]
    if "host" in segments:
        index = segments.index("host")
        if index + 1 < len(segments):
            host = unquote(segments[index + 1])
    return f"{parts.scheme}://{parts.netloc}", parts.query, host


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the webssh-client CLI."""
    parser = argparse.ArgumentParser(
        prog="webssh-client",
        description="Client core for WebSSH2-compatible SSH proxies",
        epilog="Example: python -m webssh_client check-key ~/.ssh/id_ed25519",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase logging verbosity (-v info, -vv debug, -vvv wire)",
    )
    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Only log errors",
    )
    parser.add_argument(
        "--events",
        action="store_true",
        help="Print structured events as JSONL to stderr on exit",
    )
    parser.add_argument(
        "--events-file",
        type=Path,
        help="Also append structured events to this JSONL file",
    )

    sub = parser.add_subparsers(dest="subcommand", required=True)

    check = sub.add_parser("check-key", help="Validate a private key file")
    check.add_argument("file", type=Path, help="Private key file")
    check.add_argument(
        "--passphrase",
        action="store_true",
        help="Prompt for a passphrase and check that it opens the key",
    )

    url = sub.add_parser("validate-url", help="Validate URL query parameters")
    url.add_argument("query", help="Query string or full URL")

    connect = sub.add_parser("connect", help="Open a line-mode session through a proxy")
    connect.add_argument("url", help="WebSSH2 page URL, e.g. https://proxy/ssh/host/HOST")
    connect.add_argument("--config", type=Path, help="JSON client configuration file")
    connect.add_argument(
        "--state-file",
        type=Path,
        default=Path(DEFAULT_STATE_FILE),
        help=f"Where settings and the session log are kept (default: {DEFAULT_STATE_FILE})",
    )
    connect.add_argument("--cookie", help="Cookie header to send (e.g. basicauth=...)")
    connect.add_argument("--log-dir", type=Path, default=Path("."), help="Where session logs are saved")

    return parser


def cmd_check_key(args: argparse.Namespace, emitter: EventEmitter) -> int:
    try:
        text = args.file.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if not text.strip():
        print("Error: key file is empty", file=sys.stderr)
        return 1
    result = check_private_key(text)
    if not result.is_valid:
        emitter.emit(EventType.ERROR, reason=result.reason, message=result.error)
        print(f"Invalid: {result.error}", file=sys.stderr)
        if result.suggestion:
            print(f"Hint: {result.suggestion}", file=sys.stderr)
        return 1

    print(f"Valid private key ({result.format.value})")
    passphrase = getpass.getpass("Passphrase: ") if args.passphrase else None
    try:
        inspection = inspect_private_key(text, passphrase)
    except KeyValidationError as e:
        print(f"Invalid: {e}", file=sys.stderr)
        return 1

    if inspection.error:
        print(f"Note: could not inspect key further: {inspection.error}")
    elif inspection.encrypted is False:
        print(f"Unencrypted {inspection.algorithm} key")
    elif inspection.passphrase_ok is None:
        print("Key is encrypted; use --passphrase to check a passphrase")
    elif inspection.passphrase_ok:
        print(f"Passphrase opens {inspection.algorithm} key")
    else:
        print("Passphrase does not open this key", file=sys.stderr)
        return 1
    return 0


def cmd_validate_url(args: argparse.Namespace, emitter: EventEmitter) -> int:
    params = ClientConfig().url_parameters(args.query)
    accepted = {
        "host": params.host,
        "port": params.port,
        "username": params.username,
        "password": params.password,
        "header": params.header_text or None,
        "headerbackground": params.header_background,
        "sshterm": params.sshterm,
        "logLevel": params.log_level,
    }
    for name, value in mask_secrets({k: v for k, v in accepted.items() if v is not None}).items():
        print(f"{name} = {value}")
    for name in params.rejected:
        print(f"rejected: {name}", file=sys.stderr)
    if params.rejected:
        emitter.emit(EventType.ERROR, rejected=list(params.rejected))
        return 1
    return 0


async def cmd_connect(args: argparse.Namespace, emitter: EventEmitter) -> int:
    try:
        server_url, query, path_host = split_connect_url(args.url)
        config = load_config(args.config) if args.config else ClientConfig()
    except (ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if path_host:
        config.ssh.host = path_host
    config = config.with_url_overrides(query)
    url_params = config.url_parameters(query)

    store = JSONFileStore(args.state_file)
    settings = SettingsStore(store)
    settings.initialize()
    headers = {"Cookie": args.cookie} if args.cookie else {}

    stop = asyncio.Event()
    hooks = ConsoleUIHooks(stop, args.log_dir)
    client = WebSSHClient(
        config,
        lambda: SocketIOTransport(server_url, path=config.socket.path, headers=headers),
        hooks,
        url_params=url_params,
        cookie=parse_basic_auth_cookie(args.cookie),
        session_log=SessionLog(store),
        emitter=emitter,
        play_sound=lambda severity: ring_bell(settings, severity),
    )
    hooks.client = client

    def stop_if_failed() -> None:
        if client.status is ConnectionStatus.ERROR and not hooks.login_pending:
            stop.set()

    connected = asyncio.Event()

    def on_state(changed: dict) -> None:
        if changed.get("status") is ConnectionStatus.CONNECTED:
            connected.set()
        elif changed.get("status") is ConnectionStatus.ERROR:
            loop.call_soon(stop_if_failed)

    loop = asyncio.get_running_loop()
    client.state.subscribe(on_state)

    def on_winch() -> None:
        try:
            size = os.get_terminal_size()
        except OSError:
            return
        client.resize(size.columns, size.lines)

    on_winch()
    if hasattr(signal, "SIGWINCH"):
        loop.add_signal_handler(signal.SIGWINCH, on_winch)
    client.start()

    async def pump_stdin() -> None:
        # stdin belongs to the login dialog until the first shell is up
        await connected.wait()
        while not stop.is_set():
            line = await loop.run_in_executor(None, sys.stdin.readline)
            if not line:
                stop.set()
                return
            client.send_data(line)

    pump = asyncio.create_task(pump_stdin())
    try:
        await stop.wait()
    finally:
        pump.cancel()
        if hasattr(signal, "SIGWINCH"):
            loop.remove_signal_handler(signal.SIGWINCH)
        status = client.status
        transport = client.transport
        client.disconnect()
        if isinstance(transport, SocketIOTransport):
            await transport.wait_closed()

    return 0 if status in (ConnectionStatus.CONNECTED, ConnectionStatus.IDLE) else 1


async def run_command(args: argparse.Namespace) -> int:
    setup_logging(args.verbose, args.quiet)

    collector = EventCollector() if args.events else None
    emitter = EventEmitter(collector=collector, jsonl_path=args.events_file)
    try:
        if args.subcommand == "check-key":
            return cmd_check_key(args, emitter)
        if args.subcommand == "validate-url":
            return cmd_validate_url(args, emitter)
        return await cmd_connect(args, emitter)
    finally:
        emitter.close()
        if collector:
            for event in collector.events:
                print(event.to_json(), file=sys.stderr)


def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    return asyncio.run(run_command(args))


if __name__ == "__main__":
    sys.exit(main())
