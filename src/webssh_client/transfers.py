"""
Chunked file transfer over the SFTP events.

Uploads are cut into fixed-size chunks, base64-encoded for the wire, and
sent one at a time. Downloads arrive as base64 chunks that may come out of
order; the assembler keeps them by index and joins them once the last one
is in.

Provides:
- FileChunk: one encoded chunk with its index and byte range
- FileChunker: reads a bytes object or binary stream chunk by chunk
- DownloadAssembler: collects and verifies received chunks
- chunk_count: chunks needed for a given size
"""
from __future__ import annotations

import base64
import binascii
import io
import logging
import math
from dataclasses import dataclass
from typing import BinaryIO, Final

logger = logging.getLogger(__name__)

# Matches the proxy's default chunk size
DEFAULT_CHUNK_SIZE: Final = 32 * 1024
DEFAULT_MIME_TYPE: Final = "application/octet-stream"


def chunk_count(size: int, chunk_size: int = DEFAULT_CHUNK_SIZE) -> int:
    assert size >= 0, f"size must be non-negative, got {size}"
    assert chunk_size > 0, f"chunk_size must be positive, got {chunk_size}"
    return math.ceil(size / chunk_size)


@dataclass(frozen=True)
class FileChunk:
    index: int
    data: str
    is_last: bool
    byte_offset: int
    byte_length: int


class FileChunker:
    """
    Sequential reader of upload chunks.

    A stream source is read from its current position to its end; the
    stream must be seekable so the size is known up front.

    Args:
        source: File contents, or a seekable binary stream
        chunk_size: Bytes per chunk (the server's choice from sftp-upload-ready)
    """

    def __init__(self, source: bytes | BinaryIO, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        assert chunk_size > 0, f"chunk_size must be positive, got {chunk_size}"
        self._stream: BinaryIO = io.BytesIO(source) if isinstance(source, (bytes, bytearray)) else source
        self._start = self._stream.tell()
        self._size = self._stream.seek(0, io.SEEK_END) - self._start
        self._stream.seek(self._start)
        self._chunk_size = chunk_size
        self._total = chunk_count(self._size, chunk_size)
        self._next_index = 0
        self._cancelled = False

    @property
    def size(self) -> int:
        return self._size

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    @chunk_size.setter
    def chunk_size(self, value: int) -> None:
        assert value > 0, f"chunk_size must be positive, got {value}"
        assert self._next_index == 0, "chunk_size cannot change once reading has started"
        self._chunk_size = value
        self._total = chunk_count(self._size, value)

    @property
    def total_chunks(self) -> int:
        return self._total

    @property
    def next_index(self) -> int:
        return self._next_index

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def is_complete(self) -> bool:
        return self._next_index >= self._total

    @property
    def bytes_read(self) -> int:
        return min(self._next_index * self._chunk_size, self._size)

    def read_chunk(self, index: int) -> FileChunk | None:
        """Read chunk index, or None past the end."""
        offset = index * self._chunk_size
        if index < 0 or offset >= self._size:
            return None
        self._stream.seek(self._start + offset)
        raw = self._stream.read(min(self._chunk_size, self._size - offset))
        return FileChunk(
            index=index,
            data=base64.b64encode(raw).decode("ascii"),
            is_last=offset + len(raw) >= self._size,
            byte_offset=offset,
            byte_length=len(raw),
        )

    def next_chunk(self) -> FileChunk | None:
        """The next chunk in order; None once complete or cancelled."""
        if self._cancelled or self.is_complete:
            return None
        chunk = self.read_chunk(self._next_index)
        if chunk is not None:
            self._next_index += 1
        return chunk

    def cancel(self) -> None:
        self._cancelled = True
        logger.debug("Chunker cancelled at chunk %d/%d", self._next_index, self._total)


class DownloadAssembler:
    """
    Collects download chunks by index.

    Chunks are accepted in any order; a repeated index is ignored. The
    server's announced size bounds what is buffered.
    """

    def __init__(
        self,
        transfer_id: str,
        file_name: str,
        expected_size: int,
        mime_type: str | None = None,
    ) -> None:
        assert expected_size >= 0, f"expected_size must be non-negative, got {expected_size}"
        self.transfer_id = transfer_id
        self.file_name = file_name
        self.expected_size = expected_size
        self.mime_type = mime_type or DEFAULT_MIME_TYPE
        self._chunks: dict[int, bytes] = {}
        self._bytes_received = 0
        self._last_index: int | None = None
        self._cancelled = False

    @property
    def bytes_received(self) -> int:
        return self._bytes_received

    @property
    def progress(self) -> int:
        """Percent received, 0..100."""
        if self.expected_size == 0:
            return 100
        return min(100, round(self._bytes_received * 100 / self.expected_size))

    @property
    def is_complete(self) -> bool:
        return self._last_index is not None and len(self._chunks) == self._last_index + 1

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def chunk_count(self) -> int:
        return len(self._chunks)

    def missing_chunks(self) -> list[int]:
        """Indexes below the highest one seen that have not arrived."""
        highest = self._last_index if self._last_index is not None else max(self._chunks, default=-1)
        return [i for i in range(highest + 1) if i not in self._chunks]

    def add_chunk(self, index: int, data: str, is_last: bool = False) -> bool:
        """
        Store one chunk.

        Returns:
            False for a duplicate index or after cancel()

        Raises:
            ValueError: If data is not base64, or the total would exceed the
                announced size
        """
        if self._cancelled:
            logger.debug("Ignoring chunk %d of cancelled download %s", index, self.transfer_id)
            return False
        if index in self._chunks:
            logger.debug("Ignoring duplicate chunk %d of %s", index, self.transfer_id)
            return False
        if index < 0 or (self._last_index is not None and index > self._last_index):
            raise ValueError(f"chunk index {index} out of range")
        if is_last and any(i > index for i in self._chunks):
            raise ValueError(f"last chunk {index} precedes chunks already received")

        try:
            raw = base64.b64decode(data, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValueError(f"chunk {index} is not valid base64") from e
        if self._bytes_received + len(raw) > self.expected_size:
            raise ValueError(
                f"download exceeds announced size of {self.expected_size} bytes"
            )

        self._chunks[index] = raw
        self._bytes_received += len(raw)
        if is_last:
            self._last_index = index
        return True

    def assemble(self) -> bytes:
        """
        Join the chunks in index order.

        Raises:
            ValueError: If the last chunk has not arrived or one is missing
        """
        if self._last_index is None:
            raise ValueError("cannot assemble an incomplete download")
        missing = self.missing_chunks()
        if missing:
            raise ValueError(f"missing chunk at index {missing[0]}")
        return b"".join(self._chunks[i] for i in range(self._last_index + 1))

    def cancel(self) -> None:
        self._cancelled = True
        self._chunks.clear()
