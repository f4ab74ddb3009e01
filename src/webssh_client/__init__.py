"""webssh-client: client core for WebSSH2-compatible SSH proxies."""

__version__ = "0.1.0"

from webssh_client.config import (
    BasicAuthCookie,
    ClientConfig,
    HeaderConfig,
    SocketConfig,
    SSHDefaults,
    TerminalSettings,
    load_config,
    parse_basic_auth_cookie,
    sanitize_auth_payload,
)
from webssh_client.connection import (
    KeyboardInteractiveChallenge,
    KeyboardInteractivePrompt,
    UIHooks,
    WebSSHClient,
)
from webssh_client.credentials import Credentials, build_credentials
from webssh_client.disconnect import (
    DisconnectAction,
    DisconnectKind,
    DisconnectReason,
    classify_disconnect,
    resolve_action,
)
from webssh_client.errors import (
    AlgorithmMismatch,
    AuthenticationError,
    AuthFailed,
    AuthRequired,
    ConnectFailed,
    CredentialError,
    ErrorContext,
    InvalidCredentials,
    KeyValidationError,
    PermissionDenied,
    SftpError,
    SSHProtocolError,
    TransferCancelled,
    TransportError,
    WebSSHError,
)
from webssh_client.events import Event, EventCollector, EventEmitter, EventType
from webssh_client.icons import Severity, resolve_prompt_icon
from webssh_client.keys import (
    KeyFormat,
    KeyInspection,
    KeyValidationResult,
    check_private_key,
    inspect_private_key,
)
from webssh_client.prompts import (
    PromptButton,
    PromptEngine,
    PromptInput,
    PromptPayload,
    PromptResponse,
    PromptType,
    parse_prompt,
)
from webssh_client.ratelimit import Admission, PromptRateLimiter
from webssh_client.redaction import mask_secrets
from webssh_client.render import (
    ConnectionErrorInfo,
    ConnectionErrorType,
    render_connection_error,
    render_footer,
    render_header,
    render_prompt,
    render_toast,
)
from webssh_client.session_log import LogDownload, SessionLog
from webssh_client.settings import JSONFileStore, MemoryStore, SettingsStore
from webssh_client.sftp import (
    DirectoryListing,
    DownloadedFile,
    FileType,
    SftpClient,
    SftpFileEntry,
    Transfer,
    TransferDirection,
    TransferProgress,
    TransferStatus,
)
from webssh_client.state import (
    ConnectionStatus,
    HeaderContent,
    PermissionsState,
    SessionState,
    SftpStatus,
)
from webssh_client.timers import AsyncioScheduler, Debouncer
from webssh_client.transfers import DownloadAssembler, FileChunk, FileChunker
from webssh_client.transport import SocketIOTransport, Transport
from webssh_client.validation import URLParameters, validate_form_data, validate_url_parameters

__all__ = [
    # Client
    "WebSSHClient",
    "UIHooks",
    "KeyboardInteractiveChallenge",
    "KeyboardInteractivePrompt",
    # Configuration
    "ClientConfig",
    "SocketConfig",
    "SSHDefaults",
    "TerminalSettings",
    "HeaderConfig",
    "BasicAuthCookie",
    "load_config",
    "parse_basic_auth_cookie",
    "sanitize_auth_payload",
    # Credentials and keys
    "Credentials",
    "build_credentials",
    "KeyFormat",
    "KeyInspection",
    "KeyValidationResult",
    "check_private_key",
    "inspect_private_key",
    # Validation
    "URLParameters",
    "validate_url_parameters",
    "validate_form_data",
    # State
    "ConnectionStatus",
    "PermissionsState",
    "HeaderContent",
    "SessionState",
    "SftpStatus",
    # Disconnects
    "DisconnectKind",
    "DisconnectAction",
    "DisconnectReason",
    "classify_disconnect",
    "resolve_action",
    # Prompts
    "PromptType",
    "PromptButton",
    "PromptInput",
    "PromptPayload",
    "PromptResponse",
    "PromptEngine",
    "parse_prompt",
    "Admission",
    "PromptRateLimiter",
    "Severity",
    "resolve_prompt_icon",
    # Rendering
    "render_prompt",
    "render_toast",
    "render_header",
    "render_footer",
    "render_connection_error",
    "ConnectionErrorInfo",
    "ConnectionErrorType",
    # Session log and settings
    "SessionLog",
    "LogDownload",
    "SettingsStore",
    "MemoryStore",
    "JSONFileStore",
    # SFTP
    "SftpClient",
    "SftpFileEntry",
    "DirectoryListing",
    "FileType",
    "Transfer",
    "TransferDirection",
    "TransferProgress",
    "TransferStatus",
    "DownloadedFile",
    "FileChunk",
    "FileChunker",
    "DownloadAssembler",
    # Transport and timers
    "Transport",
    "SocketIOTransport",
    "AsyncioScheduler",
    "Debouncer",
    # Events
    "Event",
    "EventCollector",
    "EventEmitter",
    "EventType",
    "mask_secrets",
    # Errors
    "WebSSHError",
    "ErrorContext",
    "TransportError",
    "ConnectFailed",
    "AuthenticationError",
    "AuthFailed",
    "AuthRequired",
    "SSHProtocolError",
    "AlgorithmMismatch",
    "CredentialError",
    "InvalidCredentials",
    "KeyValidationError",
    "PermissionDenied",
    "SftpError",
    "TransferCancelled",
]
