"""Text encodings used on the IPC wire.

Free text (app ids, titles, workspace names) is carried either
percent-encoded (text protocol) or as JSON strings (JSON protocol).

Client bytes are not required to be valid UTF-8. Lines are decoded with
``surrogateescape`` so that any byte sequence survives the round trip
bytes -> str -> bytes unchanged.
"""

import json
import re
import string
from typing import Any, Union
from urllib.parse import quote_from_bytes

from .errors import EncodingError

WIRE_ENCODING = "utf-8"
WIRE_ERRORS = "surrogateescape"

_HEX_DIGITS = frozenset(string.hexdigits.encode("ascii"))
_PERCENT = ord("%")
_LONE_SURROGATE = re.compile("[\ud800-\udfff]")


def as_text(data: bytes) -> str:
    """Decode wire bytes losslessly."""
    return data.decode(WIRE_ENCODING, WIRE_ERRORS)


def as_bytes(text: str) -> bytes:
    """Encode text for the wire; inverse of as_text()."""
    return text.encode(WIRE_ENCODING, WIRE_ERRORS)


def percent_encode(value: Union[str, bytes]) -> str:
    """Percent-encode every byte outside ``[A-Za-z0-9-_.~]``.

    Args:
        value: Text or raw bytes

    Returns:
        ASCII-only encoded text, with uppercase hex escapes
    """
    data = as_bytes(value) if isinstance(value, str) else bytes(value)
    return quote_from_bytes(data, safe="")


def percent_decode(value: Union[str, bytes]) -> bytes:
    """Decode ``%XX`` escapes, validating every escape.

    Args:
        value: Encoded text as received from a client

    Returns:
        Decoded bytes

    Raises:
        EncodingError: On a truncated escape or a non-hex digit
    """
    data = as_bytes(value) if isinstance(value, str) else bytes(value)
    out = bytearray()
    i = 0
    end = len(data)
    while i < end:
        byte = data[i]
        if byte != _PERCENT:
            out.append(byte)
            i += 1
            continue
        if i + 2 >= end:
            raise EncodingError(as_text(data), i)
        hi, lo = data[i + 1], data[i + 2]
        if hi not in _HEX_DIGITS or lo not in _HEX_DIGITS:
            raise EncodingError(as_text(data), i)
        out.append(int(chr(hi) + chr(lo), 16))
        i += 3
    return bytes(out)


def percent_decode_text(value: str) -> str:
    """Decode a percent-encoded client value into (lossless) text."""
    return as_text(percent_decode(value))


def json_line(document: Any) -> str:
    """Serialize a response document as one compact, newline-terminated line.

    Non-ASCII text is kept as-is. Undecodable client bytes (lone surrogates
    after surrogateescape) are written as \\uXXXX escapes so the line is
    always valid UTF-8.
    """
    text = json.dumps(document, ensure_ascii=False, separators=(",", ":"))
    return _LONE_SURROGATE.sub(_escape_surrogate, text) + "\n"


def _escape_surrogate(match: re.Match) -> str:
    return f"\\u{ord(match.group()):04x}"
