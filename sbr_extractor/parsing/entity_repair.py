"""
Streaming repair of numeric character references.

The exporting app writes characters outside the Basic Multilingual Plane
(emoji, mostly) as two UTF-16 surrogate references, e.g. ``&#55357;&#56832;``,
and occasionally writes ``&#0;`` or other control characters. XML 1.0 rejects
all of these, so a strict parser would abort the whole file on the first one.

EntityRepairStream wraps the raw byte stream and rewrites only references to
characters XML forbids:
- a high/low surrogate pair becomes one reference to the combined code point
- ``&#0;`` is dropped
- any other forbidden reference becomes U+FFFD

Everything else passes through byte for byte. References split across read
boundaries are held back until the next read completes them.
"""

import re
from typing import BinaryIO, Optional

_CHAR_REF = re.compile(rb'&#(?:([0-9]+)|[xX]([0-9a-fA-F]+));')
_PARTIAL_TAIL = re.compile(rb'&(?:#[xX]?[0-9a-fA-F]{0,8})?$')
_COMPLETE_TAIL = re.compile(rb'&#(?:([0-9]{1,8})|[xX]([0-9a-fA-F]{1,7}));$')

_REPLACEMENT = b'&#65533;'
_TAIL_WINDOW = 24


def _code_point(match) -> Optional[int]:
    decimal, hexadecimal = match.group(1), match.group(2)
    try:
        if decimal is not None:
            return int(decimal)
        return int(hexadecimal, 16)
    except ValueError:
        return None


def _is_xml_char(code_point: int) -> bool:
    return (
        code_point in (0x9, 0xA, 0xD)
        or 0x20 <= code_point <= 0xD7FF
        or 0xE000 <= code_point <= 0xFFFD
        or 0x10000 <= code_point <= 0x10FFFF
    )


def _is_high_surrogate(code_point: int) -> bool:
    return 0xD800 <= code_point <= 0xDBFF


def _is_low_surrogate(code_point: int) -> bool:
    return 0xDC00 <= code_point <= 0xDFFF


def repair_character_references(data: bytes) -> bytes:
    """
    Rewrite XML-illegal numeric character references in a complete buffer.

    Args:
        data: Raw document bytes

    Returns:
        Bytes where every numeric character reference names a legal XML character
    """
    if b'&#' not in data:
        return data

    matches = list(_CHAR_REF.finditer(data))
    output = bytearray()
    position = 0
    i = 0
    while i < len(matches):
        match = matches[i]
        code_point = _code_point(match)
        if code_point is not None and _is_xml_char(code_point):
            i += 1
            continue

        output += data[position:match.start()]
        position = match.end()
        i += 1

        if code_point is not None and _is_high_surrogate(code_point) and i < len(matches):
            follower = matches[i]
            low = _code_point(follower)
            if follower.start() == match.end() and low is not None and _is_low_surrogate(low):
                combined = 0x10000 + ((code_point - 0xD800) << 10) + (low - 0xDC00)
                output += b'&#%d;' % combined
                position = follower.end()
                i += 1
                continue

        if code_point != 0:
            output += _REPLACEMENT

    output += data[position:]
    return bytes(output)


def _split_tail(data: bytes) -> int:
    """
    Find where to cut a chunk so no reference is repaired before it is complete.

    Held back: a trailing partial reference (``&#5535``) and, in front of it,
    a complete high surrogate whose low partner may arrive in the next chunk.
    """
    cut = len(data)
    window = max(0, cut - _TAIL_WINDOW)
    partial = _PARTIAL_TAIL.search(data, window)
    if partial is not None:
        cut = partial.start()

    complete = _COMPLETE_TAIL.search(data, max(0, cut - _TAIL_WINDOW), cut)
    if complete is not None:
        code_point = _code_point(complete)
        if code_point is not None and _is_high_surrogate(code_point):
            cut = complete.start()
    return cut


class EntityRepairStream:
    """Read-only binary stream that repairs character references as it reads."""

    def __init__(self, raw: BinaryIO, chunk_size: int = 1024 * 1024):
        """
        Wrap a binary stream.

        Args:
            raw: Underlying readable binary stream
            chunk_size: Minimum number of bytes requested from the raw stream per read
        """
        self._raw = raw
        self.chunk_size = chunk_size
        self._pending = b''
        self._ready = bytearray()
        self._eof = False

    def read(self, size: int = -1) -> bytes:
        if size is None or size < 0:
            while not self._eof:
                self._fill(self.chunk_size)
            result = bytes(self._ready)
            self._ready.clear()
            return result

        while not self._eof and len(self._ready) < size:
            self._fill(max(size, self.chunk_size))
        result = bytes(self._ready[:size])
        del self._ready[:size]
        return result

    def _fill(self, request: int) -> None:
        chunk = self._raw.read(request)
        if not chunk:
            self._eof = True
            data, self._pending = self._pending, b''
        else:
            data = self._pending + chunk
            cut = _split_tail(data)
            data, self._pending = data[:cut], data[cut:]

        self._ready += repair_character_references(data)

    def readable(self) -> bool:
        return True

    def close(self) -> None:
        self._raw.close()
