"""Newline-delimited message framing.

One ReadBuffer belongs to exactly one stream (stdin, or one accepted
connection). Records end at a single ``\\n``; an optional trailing ``\\r`` is
stripped before parsing.
"""

from shellbridge.errors import MessageTooLargeError
from shellbridge.rpc.protocol import RPCMessage, parse_message

# 10MB per record
DEFAULT_MAX_LINE_BYTES = 10 * 1024 * 1024


class ReadBuffer:
    """Accumulates stream bytes and yields complete messages in arrival order.

    A record longer than ``max_line_bytes`` is reported once with
    MessageTooLargeError and dropped; reading resumes at the following
    newline. Pass ``max_line_bytes=None`` to buffer without limit.
    """

    def __init__(self, max_line_bytes: int | None = DEFAULT_MAX_LINE_BYTES):
        self._buffer = bytearray()
        self._max_line_bytes = max_line_bytes
        self._discarding = False

    def append(self, chunk: bytes) -> None:
        if self._discarding:
            index = chunk.find(b"\n")
            if index == -1:
                return
            chunk = chunk[index + 1 :]
            self._discarding = False
        self._buffer.extend(chunk)

    def read_message(self) -> RPCMessage | None:
        """Return the next complete message, or None if no full line is buffered.

        Raises:
            ParseError: If the next line is malformed. The line is consumed and
                the rest of the buffer is kept, so reading can continue.
        """
        index = self._buffer.find(b"\n")
        limit = self._max_line_bytes

        if index == -1:
            if limit is not None and len(self._buffer) > limit:
                size = len(self._buffer)
                self._buffer.clear()
                self._discarding = True
                raise MessageTooLargeError(
                    f"Message too large: more than {limit} bytes buffered ({size})"
                )
            return None

        line = bytes(self._buffer[:index])
        del self._buffer[: index + 1]

        if limit is not None and len(line) > limit:
            raise MessageTooLargeError(f"Message too large: {len(line)}")

        if line.endswith(b"\r"):
            line = line[:-1]
        return parse_message(line)

    def clear(self) -> None:
        self._buffer.clear()
        self._discarding = False

    @property
    def pending_bytes(self) -> int:
        """Number of buffered bytes not yet forming a complete record."""
        return len(self._buffer)
