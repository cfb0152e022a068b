"""Splitting raw book text into flow sections and markup parts, and cleaning them up."""

from __future__ import annotations

import re
import struct
from collections.abc import Iterator

from .attributes import find_attrname, find_attrvalue
from .model import (
    REPLICA_MAGIC,
    DataCorruptError,
    FileType,
    IndexTag,
    InitError,
    Part,
    Rawml,
    base32_decode,
)

_REPLICA_HEADER = struct.Struct(">II")
_REPLICA_HEADER_OFFSET = 12
_FLOW_PREFIX = "kindle:flow:"
_LEADING_NUMBER = re.compile(r"\s*\+?(\d+)")
_FLOW_MIME_TYPES = {
    "text/css": FileType.CSS,
    "image/svg+xml": FileType.SVG,
}


def _leading_number(text: str) -> int:
    match = _LEADING_NUMBER.match(text)
    return int(match.group(1)) if match else 0


def process_replica(text: bytes) -> bytes:
    """Extract the PDF document embedded in Print Replica text."""
    if len(text) < _REPLICA_HEADER_OFFSET + _REPLICA_HEADER.size:
        raise DataCorruptError("replica header truncated")
    pdf_offset, pdf_length = _REPLICA_HEADER.unpack_from(text, _REPLICA_HEADER_OFFSET)
    if pdf_length > len(text):
        raise DataCorruptError(f"PDF size from replica header too large: {pdf_length}")
    pdf = bytes(text[pdf_offset:pdf_offset + pdf_length])
    if len(pdf) != pdf_length:
        raise DataCorruptError("PDF data beyond end of text")
    return pdf


def _flow_types(first: bytes) -> dict[int, FileType]:
    """Types of flow sections as announced by ``kindle:flow`` links in the first section."""
    types: dict[int, FileType] = {}
    end = len(first) - 1
    pos = 0
    while True:
        result = find_attrvalue(first, pos, end, FileType.HTML, _FLOW_PREFIX)
        if not result.found or result.end <= pos:
            break
        pos = result.end
        value = result.value
        index = value.find(_FLOW_PREFIX)
        if index < 0:
            continue
        reference = value[index + len(_FLOW_PREFIX):]
        fid, _, mime = reference.partition("?mime=")
        try:
            uid = base32_decode(fid[:4])
        except DataCorruptError:
            continue
        file_type = next(
            (kind for name, kind in _FLOW_MIME_TYPES.items() if name in mime),
            FileType.UNKNOWN,
        )
        types.setdefault(uid, file_type)
    return types


def reconstruct_flow(rawml: Rawml, text: bytes) -> None:
    """Split raw text into flow parts, using the FDST table when there is one."""
    if rawml.fdst is not None:
        sections = []
        for start, end in rawml.fdst.sections():
            length = end - start
            if length < 0 or start + length > len(text):
                raise DataCorruptError(f"wrong fdst section length: {length}")
            sections.append(bytes(text[start:end]))
        if not sections:
            rawml.flow = [Part(0, FileType.UNKNOWN)]
            return
        kf8 = rawml.is_kf8()
        announced = _flow_types(sections[0]) if kf8 else {}

        def section_type(uid: int) -> FileType:
            if uid == 0 or not kf8:
                return FileType.HTML
            return announced.get(uid, FileType.UNKNOWN)

        rawml.flow = [Part(uid, section_type(uid), data) for uid, data in enumerate(sections)]
        return
    if bytes(text[:len(REPLICA_MAGIC)]) == REPLICA_MAGIC:
        rawml.flow = [Part(0, FileType.PDF, process_replica(text))]
    else:
        rawml.flow = [Part(0, FileType.HTML, bytes(text))]


def reconstruct_parts(rawml: Rawml) -> None:
    """Rebuild markup files from the first flow part, skeleton and fragment indices."""
    if not rawml.flow:
        raise InitError("flow structure not initialized")
    source = rawml.flow[0]
    data = source.data
    if rawml.skel is None:
        rawml.markup = [Part(0, source.type, data)]
        return
    if rawml.frag is None:
        raise InitError("fragment index not initialized")
    markup: list[Part] = []
    fragments_left = rawml.frag.total_entries_count
    frag_entries = iter(rawml.frag.entries)
    curr_position = 0
    for number, entry in enumerate(rawml.skel.entries):
        fragments_count = entry.tag_value(IndexTag.SKEL_COUNT)
        if fragments_count > fragments_left:
            raise DataCorruptError("wrong count of fragments")
        fragments_left -= fragments_count
        skel_position = entry.tag_value(IndexTag.SKEL_POSITION)
        skel_length = entry.tag_value(IndexTag.SKEL_LENGTH)
        if skel_position + skel_length > len(data):
            raise DataCorruptError("skeleton data beyond flow end")
        text = bytearray(data[skel_position:skel_position + skel_length])
        read_pos = skel_position + skel_length
        for _ in range(fragments_count):
            frag = next(frag_entries, None)
            if frag is None:
                raise DataCorruptError("missing fragment index entry")
            insert_position = _leading_number(frag.label)
            if insert_position < curr_position:
                raise DataCorruptError(
                    f"insert position ({insert_position}) before part start ({curr_position})"
                )
            if frag.tag_value(IndexTag.FRAG_FILE_NR) != number:
                raise DataCorruptError("skeleton part number and fragment file number don't match")
            frag_length = frag.tag_value(IndexTag.FRAG_LENGTH)
            insert_position = min(insert_position - curr_position, len(text))
            fragment = data[read_pos:read_pos + frag_length]
            if len(fragment) != frag_length:
                raise DataCorruptError("fragment data beyond flow end")
            read_pos += frag_length
            text[insert_position:insert_position] = fragment
        markup.append(Part(number, FileType.HTML, bytes(text)))
        curr_position += len(text)
    rawml.markup = markup


def text_parts(rawml: Rawml) -> Iterator[Part]:
    """Yield the html and css parts: markup parts, then flow parts after the first."""
    for part in [*rawml.markup, *rawml.flow[1:]]:
        if part.type in (FileType.HTML, FileType.CSS):
            yield part


def strip_mobitags(part: Part) -> None:
    """Remove ``aid`` attributes from an html part."""
    if part is None or part.data is None:
        raise InitError("part not initialized")
    if part.type is not FileType.HTML:
        return
    data = part.data
    end = len(data) - 1
    chunks: list[bytes] = []
    data_in = 0
    pos = 0
    while True:
        result = find_attrname(data, pos, end, "aid")
        if not result.found:
            break
        if result.start < data_in:
            raise DataCorruptError("attribute found before the end of the previous one")
        chunks.append(data[data_in:result.start])
        data_in = pos = result.end
    if not chunks:
        return
    if data_in > len(data):
        raise DataCorruptError("attribute span beyond part end")
    chunks.append(data[data_in:])
    part.data = b"".join(chunks)


def markup_to_utf8(part: Part) -> None:
    """Convert the data of a part from cp1252 to utf-8."""
    if part is None:
        raise InitError("part not initialized")
    converted = part.data.decode("cp1252", errors="replace").encode("utf-8")
    if not converted:
        raise DataCorruptError("conversion from cp1252 to utf8 failed")
    part.data = converted