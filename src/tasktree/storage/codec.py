# src/tasktree/storage/codec.py

"""
Reversible storage codec.

    save:  JSON  ->  compress (optional)  ->  obfuscate (optional)  ->  bytes
    load:  bytes ->  deobfuscate          ->  decompress            ->  JSON

Compression is a small domain-specific scheme, not a general-purpose compressor:
- the control character ESC (\\x01) is escaped as ESC ESC wherever it occurs;
- `"priority":"<value>"` and `"status":"<value>"` become ESC p<first letter> /
  ESC s<first letter>;
- runs of more than 3 identical whitespace/punctuation characters become
  ESC <count> : <char>.
Because every token starts with ESC and literal ESC is escaped, decompress()
inverts compress() for any input string, not only for task JSON.

"Encryption" is a fixed byte shift (+7 mod 256). It keeps the file from being
readable at a glance and offers no confidentiality at all.
"""

from __future__ import annotations

import json
import logging
import re
import string
from typing import Any

from ..errors import CodecError

logger = logging.getLogger(__name__)

ESC = "\x01"
OBFUSCATION_SHIFT = 7
MIN_RUN = 4

_PRIORITY_VALUES = ("low", "medium", "high", "urgent")
_STATUS_VALUES = ("pending", "in_progress", "blocked", "done")

_SHORT_FIELDS: dict[str, tuple[str, tuple[str, ...]]] = {
    "p": ("priority", _PRIORITY_VALUES),
    "s": ("status", _STATUS_VALUES),
}
_EXPAND: dict[str, dict[str, str]] = {
    code: {value[0]: value for value in values} for code, (_, values) in _SHORT_FIELDS.items()
}
_FIELD_RE = re.compile(
    r'"(priority|status)":"(' + "|".join(_PRIORITY_VALUES + _STATUS_VALUES) + r')"'
)

_RUN_CHARS = set(string.whitespace) | set(string.punctuation)


def _shorten(match: re.Match[str]) -> str:
    key, value = match.group(1), match.group(2)
    code = key[0]
    if _EXPAND[code].get(value[0]) != value:
        return match.group(0)
    return f"{ESC}{code}{value[0]}"


def _rle(text: str) -> str:
    out: list[str] = []
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        j = i + 1
        if ch in _RUN_CHARS:
            while j < n and text[j] == ch:
                j += 1
        run = j - i
        if run >= MIN_RUN:
            out.append(f"{ESC}{run}:{ch}")
        else:
            out.append(ch * run)
        i = j
    return "".join(out)


def compress(text: str) -> str:
    escaped = text.replace(ESC, ESC + ESC)
    shortened = _FIELD_RE.sub(_shorten, escaped)
    return _rle(shortened)


def decompress(text: str) -> str:
    out: list[str] = []
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if ch != ESC:
            out.append(ch)
            i += 1
            continue

        if i + 1 >= n:
            raise CodecError("truncated escape sequence")
        tag = text[i + 1]

        if tag == ESC:
            out.append(ESC)
            i += 2
        elif tag in _EXPAND:
            if i + 2 >= n:
                raise CodecError("truncated field token")
            value = _EXPAND[tag].get(text[i + 2])
            if value is None:
                raise CodecError(f"unknown {tag!r} field token {text[i + 2]!r}")
            out.append(f'"{_SHORT_FIELDS[tag][0]}":"{value}"')
            i += 3
        elif tag.isdigit():
            j = i + 1
            while j < n and text[j].isdigit():
                j += 1
            if j + 1 >= n or text[j] != ":":
                raise CodecError("malformed run-length token")
            out.append(text[j + 1] * int(text[i + 1 : j]))
            i = j + 2
        else:
            raise CodecError(f"unknown escape tag {tag!r}")
    return "".join(out)


def obfuscate(data: bytes) -> bytes:
    return bytes((b + OBFUSCATION_SHIFT) % 256 for b in data)


def deobfuscate(data: bytes) -> bytes:
    return bytes((b - OBFUSCATION_SHIFT) % 256 for b in data)


class Codec:
    """Applies the enabled stages symmetrically; decode errors surface as CodecError."""

    def __init__(self, *, compression: bool = False, encryption: bool = False) -> None:
        self.compression = compression
        self.encryption = encryption

    def encode_text(self, text: str) -> bytes:
        if self.compression:
            text = compress(text)
        data = text.encode("utf-8")
        if self.encryption:
            data = obfuscate(data)
        return data

    def decode_text(self, data: bytes) -> str:
        if self.encryption:
            data = deobfuscate(data)
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise CodecError(f"payload is not valid UTF-8: {exc}") from exc
        if self.compression:
            text = decompress(text)
        return text

    def encode(self, payload: Any) -> bytes:
        try:
            text = json.dumps(payload, ensure_ascii=False, separators=(",", ":"))
        except (TypeError, ValueError) as exc:
            raise CodecError(f"payload is not JSON-serializable: {exc}") from exc
        return self.encode_text(text)

    def decode(self, data: bytes) -> Any:
        text = self.decode_text(data)
        if not text.strip():
            raise CodecError("empty payload")
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise CodecError(f"invalid JSON: {exc}") from exc
        except RecursionError as exc:
            raise CodecError("JSON nested too deeply") from exc
