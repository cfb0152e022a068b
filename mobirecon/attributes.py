"""Searching tag attributes in raw HTML and CSS markup.

Positions are byte offsets into the searched data. ``end`` is the offset of
the last byte that may be examined (inclusive). Attribute values are decoded
as Latin-1 so that every byte round-trips unchanged.
"""

from __future__ import annotations

from typing import Optional, Union

from .model import (
    ATTRNAME_MAXSIZE,
    ATTRVALUE_MAXSIZE,
    FileType,
    ParamError,
    Part,
    SearchResult,
)

_SPACE = frozenset(b" \t\n\v\f\r")
_QUOTES = frozenset(b"\"'")

_LT = ord("<")
_GT = ord(">")
_SLASH = ord("/")


def _to_bytes(text: Union[str, bytes]) -> bytes:
    if isinstance(text, bytes):
        return text
    try:
        return text.encode("latin-1")
    except UnicodeEncodeError:
        return text.encode("utf-8")


def _resolve_end(data: bytes, end: Optional[int]) -> int:
    return len(data) - 1 if end is None else end


def _byte_at(data: bytes, pos: int) -> Optional[int]:
    return data[pos] if 0 <= pos < len(data) else None


def _is_self_closing(data: bytes, pos: int) -> bool:
    return _byte_at(data, pos - 1) == _SLASH and _byte_at(data, pos) == _GT


def search_links_kf7(data: bytes, start: int = 0, end: Optional[int] = None) -> SearchResult:
    """Find the first ``filepos=`` or ``recindex=`` attribute inside a tag.

    The returned span covers the whole attribute (name and value); the value
    holds the same text.
    """
    end = _resolve_end(data, end)
    result = SearchResult()
    needles = (b"filepos=", b"recindex=")
    needle_length = max(len(needle) for needle in needles)
    if start + needle_length > end:
        return result
    last_border = _LT
    pos = start
    while pos <= end:
        byte = data[pos]
        if byte in (_LT, _GT):
            last_border = byte
        if pos + needle_length <= end and any(
            data.startswith(needle, pos) for needle in needles
        ):
            if last_border != _LT:
                pos += needle_length
                continue
            while pos >= start and data[pos] not in _SPACE and data[pos] != _LT:
                pos -= 1
            pos += 1
            result.start = pos
            value = bytearray()
            while (
                pos <= end
                and data[pos] not in _SPACE
                and data[pos] != _GT
                and len(value) < ATTRVALUE_MAXSIZE
            ):
                value.append(data[pos])
                pos += 1
            if _is_self_closing(data, pos):
                pos -= 1
                del value[-1:]
            result.end = pos
            result.value = value.decode("latin-1")
            return result
        pos += 1
    return result


def find_attrvalue(
    data: bytes,
    start: int = 0,
    end: Optional[int] = None,
    file_type: FileType = FileType.HTML,
    needle: Union[str, bytes] = b"",
) -> SearchResult:
    """Find the first attribute value (or CSS ``url()`` argument) containing ``needle``.

    Raises ParamError if ``needle`` is longer than the maximal attribute name.
    """
    end = _resolve_end(data, end)
    needle_bytes = _to_bytes(needle)
    needle_length = len(needle_bytes)
    if needle_length > ATTRNAME_MAXSIZE:
        raise ParamError(f"attribute too long: {needle_length}")
    result = SearchResult()
    if start + needle_length > end:
        return result
    if file_type is FileType.CSS:
        tag_open, tag_close = ord("{"), ord("}")
    else:
        tag_open, tag_close = _LT, _GT
    value_stops = {tag_open, ord("="), ord("(")}
    paren_close = ord(")")
    last_border = tag_close
    pos = start
    while pos <= end:
        byte = data[pos]
        if byte in (tag_open, tag_close):
            last_border = byte
        if pos + needle_length <= end and data.startswith(needle_bytes, pos):
            if last_border != tag_open:
                pos += needle_length
                continue
            while pos >= start and data[pos] not in _SPACE and data[pos] not in value_stops:
                pos -= 1
            result.is_url = _byte_at(data, pos) == ord("(")
            pos += 1
            result.start = pos
            value = bytearray()
            while (
                pos <= end
                and data[pos] not in _SPACE
                and data[pos] != tag_close
                and data[pos] != paren_close
                and len(value) < ATTRVALUE_MAXSIZE
            ):
                value.append(data[pos])
                pos += 1
            if _is_self_closing(data, pos):
                pos -= 1
                del value[-1:]
            result.end = pos
            result.value = value.decode("latin-1")
            return result
        pos += 1
    return result


def find_attrname(
    data: bytes,
    start: int = 0,
    end: Optional[int] = None,
    attrname: Union[str, bytes] = b"",
) -> SearchResult:
    """Find the first quoted attribute ``attrname="..."`` inside a tag.

    The returned span runs from the attribute name to just past the closing quote.
    """
    end = _resolve_end(data, end)
    needle = (_to_bytes(attrname) + b"=")[:ATTRNAME_MAXSIZE]
    needle_length = len(needle)
    result = SearchResult()
    if start + needle_length > end:
        return result
    quote = ord('"')
    last_border = _GT
    pos = start
    while pos <= end:
        byte = data[pos]
        if byte in (_LT, _GT):
            last_border = byte
        if pos + needle_length + 2 <= end and data.startswith(needle, pos):
            if last_border != _LT:
                pos += needle_length
                continue
            if pos > start:
                pos -= 1
                if data[pos] not in _SPACE and data[pos] != _LT:
                    pos += needle_length
                    continue
            pos += 1
            result.start = pos
            pos += needle_length
            opening = data[pos]
            pos += 1
            if opening != quote:
                result.start = None
                continue
            while pos <= end:
                if data[pos] == quote:
                    result.end = pos + 1
                    return result
                pos += 1
            result.start = None
        pos += 1
    return result


def search_links_kf8(
    data: bytes,
    start: int = 0,
    end: Optional[int] = None,
    file_type: FileType = FileType.HTML,
) -> SearchResult:
    """Find the first attribute value holding a ``kindle:`` link."""
    return find_attrvalue(data, start, end, file_type, b"kindle:")


def get_attribute_value(
    data: bytes,
    attribute: Union[str, bytes],
    only_quoted: bool = True,
) -> Optional[tuple[str, int]]:
    """Return the value of the first ``attribute`` found inside a tag and its offset.

    Without ``only_quoted`` an unquoted value (ending at a space) is accepted.
    Returns None if there is no such attribute.
    """
    attr = _to_bytes(attribute)
    if len(attr) > ATTRNAME_MAXSIZE:
        return None
    attr += b"="
    attr_length = len(attr)
    size = len(data)
    if size < attr_length:
        return None
    last_border = 0
    pos = 0
    length = size
    while True:
        advance = True
        byte = data[pos]
        if byte in (_LT, _GT):
            last_border = byte
        if length > attr_length + 1 and data.startswith(attr, pos):
            in_text = last_border == _GT
            bad_prefix = pos > 0 and data[pos - 1] != _LT and data[pos - 1] not in _SPACE
            if in_text or bad_prefix:
                pos += attr_length
                length -= attr_length - 1
                advance = False
            else:
                pos += attr_length
                length -= attr_length
                if data[pos] in _QUOTES:
                    separator = data[pos]
                    pos += 1
                    length -= 1
                elif only_quoted:
                    separator = None
                    advance = False
                else:
                    separator = ord(" ")
                if separator is not None:
                    value = bytearray()
                    while (
                        len(value) < ATTRVALUE_MAXSIZE
                        and length
                        and data[pos] != separator
                        and data[pos] != _GT
                    ):
                        value.append(data[pos])
                        pos += 1
                        length -= 1
                    count = len(value)
                    if _is_self_closing(data, pos):
                        del value[-1:]
                    return value.decode("latin-1"), size - length - count
        if advance:
            pos += 1
        length -= 1
        if length <= 0:
            return None


def get_aid_offset(html: Part, aid: Union[str, bytes]) -> Optional[int]:
    """Offset of the value of the ``aid`` attribute equal to ``aid``, or None."""
    data = html.data
    aid_bytes = _to_bytes(aid)
    aid_length = len(aid_bytes)
    attr_length = 5  # length of "aid='"
    size = len(data)
    pos = 0
    length = size
    while length > 0:
        if length > aid_length + attr_length and data.startswith(b"aid=", pos):
            pos += attr_length
            length -= attr_length
            if data.startswith(aid_bytes, pos) and data[pos + aid_length] in _QUOTES:
                return size - length
        pos += 1
        length -= 1
    return None