"""Stream framing for editor links.

``length_prefixed`` frames carry a 4-byte big-endian unsigned length followed
by that many bytes of UTF-8 JSON. ``raw_json`` frames are bare JSON objects
written back to back, as the legacy plugin does; the decoder splits them
incrementally and tolerates objects arriving across several reads.
"""

from __future__ import annotations

import re
import struct
from typing import Protocol

from editorlink.core.config import MAX_FRAME_BYTES
from editorlink.core.errors import FramingError

_HEADER = struct.Struct(">I")
HEADER_BYTES = _HEADER.size

_STRUCTURAL = re.compile(rb'[{}\[\]"]')
_STRING_SPECIAL = re.compile(rb'["\\]')
_QUOTE = ord('"')
_BACKSLASH = ord("\\")
_OPENERS = b"{["


class FrameDecoder(Protocol):
    def feed(self, data: bytes) -> list[bytes]: ...


class FrameCodec(Protocol):
    def encode(self, payload: bytes) -> bytes: ...

    def decoder(self) -> FrameDecoder: ...


class LengthPrefixedDecoder:
    """Incremental decoder for length-prefixed frames."""

    def __init__(self, max_frame_bytes: int = MAX_FRAME_BYTES) -> None:
        self._max = max_frame_bytes
        self._buffer = bytearray()

    def feed(self, data: bytes) -> list[bytes]:
        """Append *data* and return every frame now complete.

        Raises:
            FramingError: If a header announces a frame above the size limit.
        """
        self._buffer.extend(data)
        frames: list[bytes] = []
        while len(self._buffer) >= HEADER_BYTES:
            (size,) = _HEADER.unpack_from(self._buffer)
            if size > self._max:
                msg = f"Frame of {size} bytes exceeds limit of {self._max} bytes"
                raise FramingError(msg)
            end = HEADER_BYTES + size
            if len(self._buffer) < end:
                break
            frames.append(bytes(self._buffer[HEADER_BYTES:end]))
            del self._buffer[:end]
        return frames


class LengthPrefixedCodec:
    def __init__(self, max_frame_bytes: int = MAX_FRAME_BYTES) -> None:
        self.max_frame_bytes = max_frame_bytes

    def encode(self, payload: bytes) -> bytes:
        if len(payload) > self.max_frame_bytes:
            msg = f"Outbound frame of {len(payload)} bytes exceeds limit"
            raise FramingError(msg)
        return _HEADER.pack(len(payload)) + payload

    def decoder(self) -> LengthPrefixedDecoder:
        return LengthPrefixedDecoder(self.max_frame_bytes)


class RawJsonDecoder:
    """Incremental splitter for back-to-back JSON objects.

    Whitespace between objects is skipped. A partial object stays buffered
    until the rest arrives; bytes that can never start a JSON object are a
    framing error. Scan state survives between feeds, so every byte is
    examined once no matter how the object is chunked.
    """

    def __init__(self, max_frame_bytes: int = MAX_FRAME_BYTES) -> None:
        self._max = max_frame_bytes
        self._buffer = bytearray()
        self._scanned = 0
        self._depth = 0
        self._in_string = False
        self._escaped = False

    def feed(self, data: bytes) -> list[bytes]:
        """Append *data* and return every object now complete.

        Raises:
            FramingError: On a non-object start, or an object (complete or
                not) larger than the frame limit.
        """
        self._buffer.extend(data)
        frames: list[bytes] = []
        while True:
            if self._scanned == 0:
                start = _skip_whitespace(self._buffer)
                if start:
                    del self._buffer[:start]
                if not self._buffer:
                    break
                if self._buffer[0] != ord("{"):
                    msg = "Raw JSON stream does not start with an object"
                    raise FramingError(msg)
            end = self._scan()
            if end is None:
                if len(self._buffer) > self._max:
                    msg = f"Unterminated JSON object exceeds limit of {self._max} bytes"
                    raise FramingError(msg)
                break
            if end > self._max:
                msg = f"JSON object of {end} bytes exceeds limit of {self._max} bytes"
                raise FramingError(msg)
            frames.append(bytes(self._buffer[:end]))
            del self._buffer[:end]
            self._scanned = 0
        return frames

    def _scan(self) -> int | None:
        """Resume scanning; return the index just past the object once it closes."""
        buffer = self._buffer
        position = self._scanned
        while True:
            if self._in_string:
                if self._escaped:
                    if position >= len(buffer):
                        break
                    position += 1
                    self._escaped = False
                    continue
                match = _STRING_SPECIAL.search(buffer, position)
                if match is None:
                    position = len(buffer)
                    break
                position = match.end()
                if buffer[match.start()] == _BACKSLASH:
                    self._escaped = True
                else:
                    self._in_string = False
                continue

            match = _STRUCTURAL.search(buffer, position)
            if match is None:
                position = len(buffer)
                break
            byte = buffer[match.start()]
            position = match.end()
            if byte == _QUOTE:
                self._in_string = True
            elif byte in _OPENERS:
                self._depth += 1
            else:
                self._depth -= 1
                if self._depth == 0:
                    return position
        self._scanned = position
        return None


def _skip_whitespace(buffer: bytearray) -> int:
    index = 0
    while index < len(buffer) and buffer[index] in b" \t\r\n":
        index += 1
    return index


class RawJsonCodec:
    def __init__(self, max_frame_bytes: int = MAX_FRAME_BYTES) -> None:
        self.max_frame_bytes = max_frame_bytes

    def encode(self, payload: bytes) -> bytes:
        return payload

    def decoder(self) -> RawJsonDecoder:
        return RawJsonDecoder(self.max_frame_bytes)


def codec_for(framing: str, max_frame_bytes: int = MAX_FRAME_BYTES) -> FrameCodec:
    """Return the codec matching a ``[link] framing`` config value."""
    if framing == "raw_json":
        return RawJsonCodec(max_frame_bytes)
    return LengthPrefixedCodec(max_frame_bytes)


__all__ = [
    "HEADER_BYTES",
    "FrameCodec",
    "FrameDecoder",
    "LengthPrefixedCodec",
    "LengthPrefixedDecoder",
    "RawJsonCodec",
    "RawJsonDecoder",
    "codec_for",
]
