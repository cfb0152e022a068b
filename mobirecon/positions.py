"""Resolving KF7/KF8 position references to markup files, offsets and link targets."""

from __future__ import annotations

import re
from typing import Optional

from .attributes import get_attribute_value
from .model import (
    ATTRVALUE_MAXSIZE,
    AttrType,
    DataCorruptError,
    FileType,
    IndexEntry,
    IndexTag,
    InitError,
    MobiError,
    ParamError,
    Part,
    Rawml,
    base32_decode,
)

_UINT32_MAX = 0xFFFFFFFF
_ULONG_MODULUS = 1 << 64
_SPACE = " \t\n\v\f\r"

_POSFID_TEMPLATE = "kindle:pos:fid:0000:off:0000000000"
_POSFID_PREFIX = "kindle:pos:fid:"
_POSFID_OFF_SKIP = len("0001:off:")
_FLOW_TEMPLATE = "kindle:flow:0000?mime="
_FLOW_PREFIX = "kindle:flow:"
_EMBED_TEMPLATE = "kindle:embed:0000"
_EMBED_PREFIX = "kindle:embed:"
_NCX_FILEPOS_SKIP = len("part00000.html#")

_NUMBER = re.compile(r"[ \t\n\v\f\r]*([+-]?)(\d*)")


def _strtoul(text: str) -> int:
    """Leading unsigned decimal number of ``text``, 0 if there is none."""
    match = _NUMBER.match(text)
    digits = match.group(2) if match else ""
    if not digits:
        return 0
    value = int(digits)
    if match.group(1) == "-":
        value = (-value) % _ULONG_MODULUS
    return value


def _clip(link: str) -> str:
    return link[:ATTRVALUE_MAXSIZE]


def _frag_entry(rawml: Rawml, pos_fid: int) -> IndexEntry:
    if rawml is None or rawml.frag is None or not rawml.frag.entries:
        raise InitError("fragment index not initialized")
    if not 0 <= pos_fid < rawml.frag.entries_count:
        raise DataCorruptError(f"entry for pos:fid:{pos_fid} doesn't exist")
    return rawml.frag.entries[pos_fid]


def get_rawlink_location(rawml: Rawml, pos_fid: int, pos_off: int) -> int:
    """Convert ``kindle:pos:fid:x:off:y`` to an offset in the raw text."""
    entry = _frag_entry(rawml, pos_fid)
    return _strtoul(entry.label) + pos_off


def get_offset_by_posoff(rawml: Rawml, pos_fid: int, pos_off: int) -> tuple[int, int]:
    """Return the skeleton file number and the offset inside it for a position."""
    if (
        rawml is None
        or rawml.frag is None
        or not rawml.frag.entries
        or rawml.skel is None
        or not rawml.skel.entries
    ):
        raise InitError("fragment or skeleton index not initialized")
    entry = _frag_entry(rawml, pos_fid)
    offset = _strtoul(entry.label)
    file_number = entry.tag_value(IndexTag.FRAG_FILE_NR)
    if file_number >= rawml.skel.entries_count:
        raise DataCorruptError(f"entry for skeleton part no {file_number} doesn't exist")
    skel_position = rawml.skel.entries[file_number].tag_value(IndexTag.SKEL_POSITION)
    return file_number, offset - skel_position + pos_off


def _check_offset(html: Part, offset: int) -> None:
    if html is None:
        raise ParamError("html part is missing")
    if offset < 0 or offset > html.size:
        raise ParamError(f"offset ({offset}) outside part of size {html.size}")


def get_aid_by_offset(html: Part, offset: int) -> str:
    """Value of the closest ``aid`` attribute following ``offset`` in ``html``."""
    _check_offset(html, offset)
    found = get_attribute_value(html.data[offset:], "aid", True)
    if found is None:
        raise DataCorruptError(f"no aid attribute after offset {offset}")
    return found[0]


def get_id_by_offset(html: Part, offset: int, pref_attr: AttrType = AttrType.ID) -> tuple[str, AttrType]:
    """Value of the closest ``id`` or ``name`` attribute following ``offset``.

    The preferred attribute is tried first; if only the other one is found it
    becomes the preferred attribute returned. An empty value means none was found.
    """
    _check_offset(html, offset)
    data = html.data[offset:]
    found = get_attribute_value(data, pref_attr.attribute, True)
    if found is not None:
        return found[0], pref_attr
    other = pref_attr.other
    found = get_attribute_value(data, other.attribute, True)
    if found is None:
        return "", pref_attr
    return found[0], other


def _markup_at(rawml: Rawml, pos_fid: int, pos_off: int) -> tuple[int, Part, int]:
    try:
        file_number, offset = get_offset_by_posoff(rawml, pos_fid, pos_off)
    except MobiError as error:
        raise DataCorruptError(str(error)) from error
    html = rawml.part_by_uid(file_number)
    if html is None:
        raise DataCorruptError(f"markup part {file_number} not found")
    return file_number, html, offset


def get_aid_by_posoff(rawml: Rawml, pos_fid: int, pos_off: int) -> tuple[int, str]:
    """Return the html file number and closest ``aid`` value following a position."""
    file_number, html, offset = _markup_at(rawml, pos_fid, pos_off)
    try:
        aid = get_aid_by_offset(html, offset)
    except MobiError as error:
        raise DataCorruptError(str(error)) from error
    return file_number, aid


def get_id_by_posoff(
    rawml: Rawml, pos_fid: int, pos_off: int, pref_attr: AttrType = AttrType.ID
) -> tuple[int, str, AttrType]:
    """Return the html file number, closest ``id``/``name`` value and preferred attribute."""
    file_number, html, offset = _markup_at(rawml, pos_fid, pos_off)
    try:
        target_id, pref_attr = get_id_by_offset(html, offset, pref_attr)
    except MobiError as error:
        raise DataCorruptError(str(error)) from error
    return file_number, target_id, pref_attr


def _attribute_values(data: bytes, attribute: str, only_quoted: bool):
    """Yield every value of ``attribute`` found scanning forward through ``data``."""
    pos = 0
    while True:
        found = get_attribute_value(data[pos:], attribute, only_quoted)
        if found is None:
            return
        value, offset = found
        pos += offset
        yield value


def get_filepos_array(part: Part) -> list[int]:
    """Link target offsets of all ``filepos`` attributes in an html part."""
    if part is None:
        raise InitError("part not initialized")
    links = []
    for value in _attribute_values(part.data, "filepos", False):
        filepos = _strtoul(value)
        if filepos == 0 or filepos > _UINT32_MAX:
            continue
        links.append(filepos)
    return links


def _ncx_filepos(value: str) -> int:
    text = value[_NCX_FILEPOS_SKIP:].lstrip(_SPACE)[:10]
    return _strtoul(text) & _UINT32_MAX


def get_ncx_filepos_array(rawml: Rawml) -> list[int]:
    """Link target offsets of all ``src`` attributes in the NCX resources."""
    if rawml is None:
        raise ParamError("rawml not initialized")
    return [
        _ncx_filepos(value)
        for part in rawml.resources
        if part.type is FileType.NCX
        for value in _attribute_values(part.data, "src", False)
    ]


def posfid_to_link(
    rawml: Rawml, value: str, pref_attr: AttrType = AttrType.ID
) -> tuple[str, AttrType]:
    """Turn ``kindle:pos:fid:XXXX:off:YYYYYYYYYY`` into a quoted html href.

    Returns the link (empty if the value is skipped) and the preferred attribute.
    """
    if len(value) < len(_POSFID_TEMPLATE):
        return "", pref_attr
    value = value[len(_POSFID_PREFIX):]
    if value[4] != ":":
        return "", pref_attr
    str_fid = value[:4]
    str_off = value[_POSFID_OFF_SKIP:_POSFID_OFF_SKIP + 10]
    pos_off = base32_decode(str_off)
    pos_fid = base32_decode(str_fid)
    part_id, target_id, pref_attr = get_id_by_posoff(rawml, pos_fid, pos_off, pref_attr)
    if pos_off:
        link = f'"part{part_id:05d}.html#{target_id}"'
        if len(link) > ATTRVALUE_MAXSIZE + 1:
            return "", pref_attr
        return _clip(link), pref_attr
    return _clip(f'"part{part_id:05d}.html"'), pref_attr


def flow_to_link(rawml: Rawml, value: str) -> str:
    """Turn ``kindle:flow:XXXX?mime=type`` into a quoted flow file href, or ``""``."""
    if len(value) < len(_FLOW_TEMPLATE):
        return ""
    value = value[len(_FLOW_PREFIX):]
    if value[4] != "?":
        return ""
    flow = rawml.flow_by_fid(value[:4])
    if flow is None:
        return ""
    return _clip(f'"flow{flow.uid:05d}.{flow.type.extension()}"')


def embed_to_link(rawml: Rawml, value: str) -> str:
    """Turn ``kindle:embed:XXXX[?mime=type]`` into a quoted resource href, or ``""``."""
    value = value.lstrip("\"'" + _SPACE)
    if len(value) < len(_EMBED_TEMPLATE):
        return ""
    value = value[len(_EMBED_PREFIX):]
    try:
        part_id = base32_decode(value[:4])
    except DataCorruptError:
        return ""
    part_id = (part_id - 1) & _UINT32_MAX
    resource = rawml.resource_by_uid(part_id)
    if resource is None:
        return ""
    return _clip(f'"resource{part_id:05d}.{resource.type.extension()}"')