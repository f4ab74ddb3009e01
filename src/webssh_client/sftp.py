"""
SFTP over the proxy's Socket.IO channel.

The proxy runs the SFTP subsystem; the client sends sftp-* requests on the
same transport as the terminal and matches the replies. Requests are
awaitable: each waits on a future keyed by what the reply will carry
(path for list/stat/mkdir/delete, transfer id and chunk index for
transfers). The server may answer a request for "~" with the resolved
path, so a reply that matches no key resolves the oldest request of the
same kind.

Uploads wait for sftp-upload-ready (which sets the chunk size), then send
one chunk at a time and wait for its ack. Downloads wait for
sftp-download-ready, assemble sftp-download-chunk events, and finish on
sftp-complete.

Every reply payload is untrusted: shapes are checked, unknown transfers are
ignored, and a bad chunk fails its transfer rather than the connection.

Usage:
    listing = await client.sftp.list_directory("~")
    await client.sftp.upload(b"hello", "/tmp/hello.txt", "hello.txt")
    downloaded = await client.sftp.download("/etc/motd")
"""
from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, BinaryIO, Callable, Final, Mapping

from webssh_client.errors import SftpError, TransferCancelled
from webssh_client.events import EventEmitter, EventType
from webssh_client.transfers import DEFAULT_CHUNK_SIZE, DownloadAssembler, FileChunker

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT_SEC: Final = 30.0
DOWNLOAD_TIMEOUT_SEC: Final = 600.0
MAX_CHUNK_SIZE: Final = 1024 * 1024

# Reply events and the handler method for each
SFTP_EVENTS: Final = {
    "sftp-directory": "handle_directory",
    "sftp-stat-result": "handle_stat_result",
    "sftp-operation-result": "handle_operation_result",
    "sftp-upload-ready": "handle_upload_ready",
    "sftp-upload-ack": "handle_upload_ack",
    "sftp-download-ready": "handle_download_ready",
    "sftp-download-chunk": "handle_download_chunk",
    "sftp-progress": "handle_progress",
    "sftp-complete": "handle_complete",
    "sftp-error": "handle_error",
}

# sftp-error operation -> prefix of the request keys it can fail
_OPERATION_PREFIXES: Final = {
    "list": "list:",
    "stat": "stat:",
    "mkdir": "operation:",
    "delete": "operation:",
    "upload": "upload-",
    "download": "download-",
}


class FileType(str, Enum):
    FILE = "file"
    DIRECTORY = "directory"
    SYMLINK = "symlink"
    OTHER = "other"


class TransferDirection(str, Enum):
    UPLOAD = "upload"
    DOWNLOAD = "download"


class TransferStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


ACTIVE_STATUSES: Final = frozenset({TransferStatus.PENDING, TransferStatus.ACTIVE})


def _text(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def _count(value: Any) -> int | None:
    """A non-negative integer from a payload, else None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return value if isinstance(value, int) and value >= 0 else None


@dataclass(frozen=True)
class SftpFileEntry:
    name: str
    path: str
    type: FileType
    size: int = 0
    modified_at: str | None = None
    permissions: str | None = None
    is_hidden: bool = False

    @property
    def is_directory(self) -> bool:
        return self.type is FileType.DIRECTORY

    @classmethod
    def from_payload(cls, data: Any) -> "SftpFileEntry":
        """
        Raises:
            ValueError: If name or path is missing
        """
        if not isinstance(data, Mapping):
            raise ValueError("file entry must be an object")
        name, path = _text(data.get("name")), _text(data.get("path"))
        if not name or not path:
            raise ValueError("file entry needs a name and a path")
        try:
            file_type = FileType(data.get("type"))
        except ValueError:
            file_type = FileType.OTHER
        permissions = data.get("permissions")
        return cls(
            name=name,
            path=path,
            type=file_type,
            size=_count(data.get("size")) or 0,
            modified_at=_text(data.get("modifiedAt")),
            permissions=str(permissions) if permissions is not None else None,
            is_hidden=data.get("isHidden") is True or name.startswith("."),
        )


@dataclass(frozen=True)
class DirectoryListing:
    """A listing; path is the server's resolved path (~ expanded)."""
    path: str
    entries: tuple[SftpFileEntry, ...]


@dataclass(frozen=True)
class TransferProgress:
    transfer_id: str
    direction: TransferDirection
    bytes_transferred: int
    total_bytes: int
    percent_complete: int
    bytes_per_second: int = 0
    estimated_seconds_remaining: int | None = None


@dataclass
class Transfer:
    """Book-keeping for one upload or download."""
    id: str
    direction: TransferDirection
    remote_path: str
    file_name: str
    total_bytes: int
    started_at: float
    bytes_transferred: int = 0
    percent_complete: int = 0
    bytes_per_second: int = 0
    estimated_seconds_remaining: int | None = None
    status: TransferStatus = TransferStatus.PENDING
    error: str | None = None

    def progress(self) -> TransferProgress:
        return TransferProgress(
            transfer_id=self.id,
            direction=self.direction,
            bytes_transferred=self.bytes_transferred,
            total_bytes=self.total_bytes,
            percent_complete=self.percent_complete,
            bytes_per_second=self.bytes_per_second,
            estimated_seconds_remaining=self.estimated_seconds_remaining,
        )


@dataclass(frozen=True)
class DownloadedFile:
    file_name: str
    mime_type: str
    data: bytes = field(repr=False)


ProgressCallback = Callable[[TransferProgress], None]
Sender = Callable[[str, Any], bool]


class SftpClient:
    """
    Request/reply matching and transfer state for the sftp-* events.

    Args:
        send: Emits an event; returns False when there is no transport
        is_available: Whether the server enabled SFTP (sftp-status)
        emitter: Optional structured event emitter
        clock: Seconds, for transfer speed and ETA
        request_timeout: Seconds to wait for any single reply
        download_timeout: Seconds to wait for a download to complete
    """

    def __init__(
        self,
        send: Sender,
        is_available: Callable[[], bool] = lambda: True,
        emitter: EventEmitter | None = None,
        clock: Callable[[], float] = time.monotonic,
        request_timeout: float = REQUEST_TIMEOUT_SEC,
        download_timeout: float = DOWNLOAD_TIMEOUT_SEC,
    ) -> None:
        assert request_timeout > 0 and download_timeout > 0, "timeouts must be positive"
        self._send = send
        self._is_available = is_available
        self._emitter = emitter
        self._clock = clock
        self._request_timeout = request_timeout
        self._download_timeout = download_timeout

        self._pending: dict[str, asyncio.Future] = {}
        self._transfers: dict[str, Transfer] = {}
        self._chunkers: dict[str, FileChunker] = {}
        self._assemblers: dict[str, DownloadAssembler] = {}
        self._callbacks: dict[str, ProgressCallback] = {}

    def handlers(self) -> dict[str, Callable[[Any], None]]:
        """Transport event name -> bound handler."""
        return {event: getattr(self, method) for event, method in SFTP_EVENTS.items()}

    def _emit(self, **data: Any) -> None:
        if self._emitter:
            self._emitter.emit(EventType.SFTP, **data)

    # --- Request/reply matching -----------------------------------------

    @property
    def pending_requests(self) -> tuple[str, ...]:
        return tuple(self._pending)

    def _check_ready(self) -> None:
        if not self._is_available():
            raise SftpError("SFTP is not available on this connection", code="SFTP_DISABLED")

    def _expect(self, key: str) -> asyncio.Future:
        previous = self._pending.pop(key, None)
        if previous is not None and not previous.done():
            logger.debug("Superseding pending SFTP request %s", key)
            previous.set_exception(SftpError(f"SFTP request superseded: {key}", code="SUPERSEDED"))
        future = asyncio.get_running_loop().create_future()
        self._pending[key] = future
        return future

    def _send_or_fail(self, key: str, event: str, payload: Mapping[str, Any]) -> None:
        if not self._send(event, dict(payload)):
            self._pending.pop(key, None)
            raise SftpError("Not connected", code="NOT_CONNECTED")

    async def _wait(self, key: str, future: asyncio.Future, timeout: float | None = None) -> Any:
        try:
            return await asyncio.wait_for(future, timeout or self._request_timeout)
        except asyncio.TimeoutError:
            raise SftpError(f"SFTP request timed out: {key}", code="TIMEOUT") from None
        finally:
            if self._pending.get(key) is future:
                del self._pending[key]

    async def _request(self, key: str, event: str, payload: Mapping[str, Any]) -> Any:
        future = self._expect(key)
        self._send_or_fail(key, event, payload)
        return await self._wait(key, future)

    def _resolve(self, key: str, value: Any) -> bool:
        future = self._pending.pop(key, None)
        if future is None:
            return False
        if not future.done():
            future.set_result(value)
        return True

    def _resolve_by_prefix(self, prefix: str, value: Any) -> bool:
        for key in list(self._pending):
            if key.startswith(prefix):
                logger.debug("Resolving %s by prefix %s", key, prefix)
                return self._resolve(key, value)
        return False

    def _reject(self, key: str, error: Exception) -> bool:
        future = self._pending.pop(key, None)
        if future is None:
            return False
        if not future.done():
            future.set_exception(error)
        return True

    def _reject_matching(self, match: Callable[[str], bool], error: Exception) -> int:
        keys = [k for k in self._pending if match(k)]
        for key in keys:
            self._reject(key, error)
        return len(keys)

    def _reject_transfer(self, transfer_id: str, error: Exception) -> None:
        self._reject_matching(lambda k: k.split(":")[1:2] == [transfer_id], error)
        self._chunkers.pop(transfer_id, None)
        self._assemblers.pop(transfer_id, None)
        self._callbacks.pop(transfer_id, None)

    def reset(self, reason: str = "SFTP service disconnected") -> None:
        """Fail every pending request and forget all transfers (connection gone)."""
        error = SftpError(reason, code="DISCONNECTED")
        rejected = self._reject_matching(lambda k: True, error)
        for transfer in self._transfers.values():
            if transfer.status in ACTIVE_STATUSES:
                transfer.status = TransferStatus.FAILED
                transfer.error = reason
        for chunker in self._chunkers.values():
            chunker.cancel()
        self._transfers.clear()
        self._chunkers.clear()
        self._assemblers.clear()
        self._callbacks.clear()
        if rejected:
            logger.info("SFTP reset: %d pending request(s) failed", rejected)

    # --- Operations ------------------------------------------------------

    async def list_directory(self, path: str, show_hidden: bool = False) -> DirectoryListing:
        self._check_ready()
        response = await self._request(f"list:{path}", "sftp-list", {"path": path, "showHidden": show_hidden})
        if response.get("error"):
            raise SftpError(str(response["error"]), operation="list", path=path)
        entries = []
        for raw in response.get("entries") or []:
            try:
                entries.append(SftpFileEntry.from_payload(raw))
            except ValueError as e:
                logger.warning("Skipping malformed directory entry: %s", e)
        return DirectoryListing(path=_text(response.get("path")) or path, entries=tuple(entries))

    async def stat(self, path: str) -> SftpFileEntry:
        self._check_ready()
        response = await self._request(f"stat:{path}", "sftp-stat", {"path": path})
        if response.get("error") or not response.get("entry"):
            raise SftpError(str(response.get("error") or "File not found"), operation="stat", path=path)
        try:
            return SftpFileEntry.from_payload(response["entry"])
        except ValueError as e:
            raise SftpError(f"Malformed stat reply: {e}", code="BAD_RESPONSE", operation="stat", path=path) from e

    async def mkdir(self, path: str, mode: int | None = None) -> None:
        self._check_ready()
        payload: dict[str, Any] = {"path": path}
        if mode is not None:
            payload["mode"] = mode
        response = await self._request(f"operation:{path}", "sftp-mkdir", payload)
        if response.get("success") is not True:
            raise SftpError(str(response.get("error") or "Failed to create directory"), operation="mkdir", path=path)
        self._emit(action="mkdir", path=path)

    async def delete(self, path: str, recursive: bool = False) -> None:
        self._check_ready()
        response = await self._request(
            f"operation:{path}", "sftp-delete", {"path": path, "recursive": recursive},
        )
        if response.get("success") is not True:
            raise SftpError(str(response.get("error") or "Failed to delete"), operation="delete", path=path)
        self._emit(action="delete", path=path, recursive=recursive)

    # --- Transfers -------------------------------------------------------

    def _start_transfer(
        self,
        direction: TransferDirection,
        remote_path: str,
        file_name: str,
        total_bytes: int,
        transfer_id: str | None,
        on_progress: ProgressCallback | None,
    ) -> Transfer:
        transfer = Transfer(
            id=transfer_id or uuid.uuid4().hex,
            direction=direction,
            remote_path=remote_path,
            file_name=file_name,
            total_bytes=total_bytes,
            started_at=self._clock(),
        )
        assert transfer.id not in self._transfers, f"Duplicate transfer id {transfer.id}"
        self._transfers[transfer.id] = transfer
        if on_progress:
            self._callbacks[transfer.id] = on_progress
        self._emit(action=f"{direction.value}_start", transfer_id=transfer.id, remote_path=remote_path)
        return transfer

    def _update_rate(self, transfer: Transfer) -> None:
        elapsed = self._clock() - transfer.started_at
        if elapsed <= 0:
            return
        transfer.bytes_per_second = round(transfer.bytes_transferred / elapsed)
        remaining = max(0, transfer.total_bytes - transfer.bytes_transferred)
        transfer.estimated_seconds_remaining = (
            round(remaining / transfer.bytes_per_second) if transfer.bytes_per_second > 0 else None
        )

    def _notify(self, transfer: Transfer) -> None:
        callback = self._callbacks.get(transfer.id)
        if callback:
            callback(transfer.progress())

    def _finish(self, transfer: Transfer, error: BaseException | None = None) -> None:
        if isinstance(error, TransferCancelled) or transfer.status is TransferStatus.CANCELLED:
            transfer.status = TransferStatus.CANCELLED
        elif error is not None:
            transfer.status = TransferStatus.FAILED
            transfer.error = str(error) or type(error).__name__
        else:
            transfer.status = TransferStatus.COMPLETED
        self._emit(
            action=f"{transfer.direction.value}_{transfer.status.value}",
            transfer_id=transfer.id,
            bytes_transferred=transfer.bytes_transferred,
            **({"error": transfer.error} if transfer.error else {}),
        )

    def _discard_transfer(self, transfer_id: str, *futures: asyncio.Future | None) -> None:
        """Drop what is left of a finished transfer's requests and buffers."""
        for key in [k for k in self._pending if k.split(":")[1:2] == [transfer_id]]:
            self._pending.pop(key).cancel()
        for future in futures:
            if future is None:
                continue
            if future.done() and not future.cancelled():
                future.exception()
            else:
                future.cancel()
        self._chunkers.pop(transfer_id, None)
        self._assemblers.pop(transfer_id, None)
        self._callbacks.pop(transfer_id, None)

    async def upload(
        self,
        source: bytes | BinaryIO,
        remote_path: str,
        file_name: str,
        mime_type: str | None = None,
        overwrite: bool | None = None,
        transfer_id: str | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> Transfer:
        """
        Upload source to remote_path, one acknowledged chunk at a time.

        Raises:
            TransferCancelled: If cancel() was called for this transfer
            SftpError: On a server error, timeout or lost connection
        """
        self._check_ready()
        chunker = FileChunker(source)
        transfer = self._start_transfer(
            TransferDirection.UPLOAD, remote_path, file_name, chunker.size, transfer_id, on_progress,
        )
        tid = transfer.id
        complete: asyncio.Future | None = None
        try:
            start: dict[str, Any] = {
                "transferId": tid,
                "remotePath": remote_path,
                "fileName": file_name,
                "fileSize": chunker.size,
            }
            if mime_type:
                start["mimeType"] = mime_type
            if overwrite is not None:
                start["overwrite"] = overwrite

            ready = await self._request(f"upload-ready:{tid}", "sftp-upload-start", start)
            chunker.chunk_size = min(_count(ready.get("chunkSize")) or DEFAULT_CHUNK_SIZE, MAX_CHUNK_SIZE)
            self._chunkers[tid] = chunker
            transfer.status = TransferStatus.ACTIVE
            # The server may report completion as soon as the last chunk lands
            complete = self._expect(f"complete:{tid}")

            chunk = chunker.next_chunk()
            while chunk is not None:
                ack = await self._request(f"upload-ack:{tid}:{chunk.index}", "sftp-upload-chunk", {
                    "transferId": tid,
                    "chunkIndex": chunk.index,
                    "data": chunk.data,
                    "isLast": chunk.is_last,
                })
                received = _count(ack.get("bytesReceived"))
                transfer.bytes_transferred = min(
                    chunker.size,
                    received if received is not None else chunk.byte_offset + chunk.byte_length,
                )
                transfer.percent_complete = (
                    round(transfer.bytes_transferred * 100 / chunker.size) if chunker.size else 100
                )
                self._update_rate(transfer)
                self._notify(transfer)
                chunk = chunker.next_chunk()

            if chunker.cancelled:
                raise TransferCancelled(tid)
            await self._wait(f"complete:{tid}", complete)
        except BaseException as e:
            self._finish(transfer, e)
            raise
        finally:
            self._discard_transfer(tid, complete)

        transfer.percent_complete = 100
        self._finish(transfer)
        return transfer

    async def download(
        self,
        remote_path: str,
        transfer_id: str | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> DownloadedFile:
        """
        Download remote_path into memory.

        Raises:
            TransferCancelled: If cancel() was called for this transfer
            SftpError: On a server error, bad chunk, timeout or lost connection
        """
        self._check_ready()
        file_name = remote_path.rstrip("/").rsplit("/", 1)[-1] or "download"
        transfer = self._start_transfer(
            TransferDirection.DOWNLOAD, remote_path, file_name, 0, transfer_id, on_progress,
        )
        tid = transfer.id
        ready = self._expect(f"download-ready:{tid}")
        complete = self._expect(f"complete:{tid}")
        try:
            self._send_or_fail(
                f"download-ready:{tid}", "sftp-download-start", {"transferId": tid, "remotePath": remote_path},
            )
            await self._wait(f"download-ready:{tid}", ready)
            transfer.status = TransferStatus.ACTIVE
            await self._wait(f"complete:{tid}", complete, self._download_timeout)

            assembler = self._assemblers.get(tid)
            if assembler is None:
                raise SftpError("Download completed without data", code="BAD_RESPONSE", transfer_id=tid)
            try:
                data = assembler.assemble()
            except ValueError as e:
                raise SftpError(str(e), code="BAD_RESPONSE", operation="download", transfer_id=tid) from e
        except BaseException as e:
            self._finish(transfer, e)
            raise
        finally:
            self._discard_transfer(tid, ready, complete)

        transfer.bytes_transferred = len(data)
        transfer.percent_complete = 100
        self._finish(transfer)
        return DownloadedFile(file_name=transfer.file_name, mime_type=assembler.mime_type, data=data)

    def cancel(self, transfer_id: str) -> bool:
        """Cancel an active transfer; False if there is none."""
        transfer = self._transfers.get(transfer_id)
        if transfer is None or transfer.status not in ACTIVE_STATUSES:
            logger.debug("No active transfer %s to cancel", transfer_id)
            return False

        transfer.status = TransferStatus.CANCELLED
        self._send(f"sftp-{transfer.direction.value}-cancel", {"transferId": transfer_id})
        chunker = self._chunkers.get(transfer_id)
        if chunker:
            chunker.cancel()
        assembler = self._assemblers.get(transfer_id)
        if assembler:
            assembler.cancel()
        self._reject_transfer(transfer_id, TransferCancelled(transfer_id))
        return True

    def get_transfer(self, transfer_id: str) -> Transfer | None:
        return self._transfers.get(transfer_id)

    @property
    def transfers(self) -> tuple[Transfer, ...]:
        return tuple(self._transfers.values())

    @property
    def active_transfers(self) -> tuple[Transfer, ...]:
        return tuple(t for t in self._transfers.values() if t.status in ACTIVE_STATUSES)

    def clear_finished(self) -> int:
        """Forget completed, failed and cancelled transfers; returns how many."""
        done = [tid for tid, t in self._transfers.items() if t.status not in ACTIVE_STATUSES]
        for tid in done:
            del self._transfers[tid]
        return len(done)

    # --- Reply handlers --------------------------------------------------

    @staticmethod
    def _payload(event: str, data: Any) -> Mapping[str, Any] | None:
        if not isinstance(data, Mapping):
            logger.warning("Ignoring malformed %s event", event)
            return None
        return data

    def _resolve_path_reply(self, kind: str, event: str, data: Any) -> None:
        response = self._payload(event, data)
        if response is None:
            return
        path = _text(response.get("path")) or ""
        if not self._resolve(f"{kind}:{path}", response) and not self._resolve_by_prefix(f"{kind}:", response):
            logger.debug("Unmatched %s reply for %s", event, path[:100])

    def handle_directory(self, data: Any) -> None:
        self._resolve_path_reply("list", "sftp-directory", data)

    def handle_stat_result(self, data: Any) -> None:
        self._resolve_path_reply("stat", "sftp-stat-result", data)

    def handle_operation_result(self, data: Any) -> None:
        self._resolve_path_reply("operation", "sftp-operation-result", data)

    def _transfer_reply(self, event: str, data: Any) -> tuple[Mapping[str, Any], str] | None:
        response = self._payload(event, data)
        if response is None:
            return None
        tid = _text(response.get("transferId"))
        if not tid or tid not in self._transfers:
            logger.debug("Ignoring %s for unknown transfer %s", event, str(tid)[:40])
            return None
        return response, tid

    def handle_upload_ready(self, data: Any) -> None:
        reply = self._transfer_reply("sftp-upload-ready", data)
        if reply:
            self._resolve(f"upload-ready:{reply[1]}", reply[0])

    def handle_upload_ack(self, data: Any) -> None:
        reply = self._transfer_reply("sftp-upload-ack", data)
        if reply:
            response, tid = reply
            self._resolve(f"upload-ack:{tid}:{response.get('chunkIndex')}", response)

    def handle_download_ready(self, data: Any) -> None:
        reply = self._transfer_reply("sftp-download-ready", data)
        if reply is None:
            return
        response, tid = reply
        size = _count(response.get("fileSize"))
        if size is None:
            self._fail_transfer(tid, "Download announced no file size")
            return
        transfer = self._transfers[tid]
        transfer.file_name = _text(response.get("fileName")) or transfer.file_name
        transfer.total_bytes = size
        self._assemblers[tid] = DownloadAssembler(tid, transfer.file_name, size, _text(response.get("mimeType")))
        self._resolve(f"download-ready:{tid}", response)

    def handle_download_chunk(self, data: Any) -> None:
        reply = self._transfer_reply("sftp-download-chunk", data)
        if reply is None:
            return
        response, tid = reply
        assembler = self._assemblers.get(tid)
        index = _count(response.get("chunkIndex"))
        if assembler is None or index is None or not isinstance(response.get("data"), str):
            logger.debug("Dropping download chunk for %s", tid)
            return
        try:
            assembler.add_chunk(index, response["data"], response.get("isLast") is True)
        except ValueError as e:
            logger.warning("Download %s failed: %s", tid, e)
            self._fail_transfer(tid, str(e))
            return

        transfer = self._transfers[tid]
        transfer.bytes_transferred = assembler.bytes_received
        transfer.percent_complete = assembler.progress
        self._update_rate(transfer)
        self._notify(transfer)

    def handle_progress(self, data: Any) -> None:
        reply = self._transfer_reply("sftp-progress", data)
        if reply is None:
            return
        response, tid = reply
        transfer = self._transfers[tid]
        transferred = _count(response.get("bytesTransferred"))
        if transferred is not None:
            transfer.bytes_transferred = transferred
        percent = _count(response.get("percentComplete"))
        if percent is not None:
            transfer.percent_complete = min(100, percent)
        rate = _count(response.get("bytesPerSecond"))
        if rate is not None:
            transfer.bytes_per_second = rate
        transfer.estimated_seconds_remaining = _count(response.get("estimatedSecondsRemaining"))
        if transfer.status is TransferStatus.PENDING:
            transfer.status = TransferStatus.ACTIVE
        self._notify(transfer)

    def handle_complete(self, data: Any) -> None:
        reply = self._transfer_reply("sftp-complete", data)
        if reply is None:
            return
        response, tid = reply
        transfer = self._transfers[tid]
        transferred = _count(response.get("bytesTransferred"))
        if transferred is not None:
            transfer.bytes_transferred = transferred
        self._resolve(f"complete:{tid}", response)

    def _fail_transfer(self, transfer_id: str, message: str) -> None:
        self._reject_transfer(
            transfer_id, SftpError(message, code="BAD_RESPONSE", transfer_id=transfer_id),
        )

    def handle_error(self, data: Any) -> None:
        response = self._payload("sftp-error", data)
        if response is None:
            return
        code, operation = _text(response.get("code")), _text(response.get("operation"))
        path, tid = _text(response.get("path")), _text(response.get("transferId"))
        message = _text(response.get("message")) or "SFTP error"
        logger.info("SFTP error %s (%s): %s", code, operation, message)
        self._emit(action="error", code=code, operation=operation, message=message)

        def error() -> SftpError:
            return SftpError(message, code=code, operation=operation, path=path, transfer_id=tid)

        if tid and tid in self._transfers:
            self._transfers[tid].error = message
            self._reject_transfer(tid, error())
            return

        matched = False
        if path:
            for kind in ("list", "stat", "operation"):
                matched = self._reject(f"{kind}:{path}", error()) or matched
        if not matched and operation in _OPERATION_PREFIXES:
            prefix = _OPERATION_PREFIXES[operation]
            self._reject_matching(lambda k: k.startswith(prefix), error())
