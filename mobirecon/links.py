"""Replacing offset links in reconstructed markup with ordinary html links.

KF8 markup refers to other files through ``kindle:pos``, ``kindle:flow`` and
``kindle:embed`` values. Older markup uses ``filepos`` and ``recindex``
attributes and needs anchors inserted at the link targets. Dictionary entry
markup is rebuilt from the orth index when one is present.
"""

from __future__ import annotations

import re
from typing import Optional

from .attributes import search_links_kf7, search_links_kf8
from .model import (
    ATTRVALUE_MAXSIZE,
    AttrType,
    DataCorruptError,
    IndexTag,
    InitError,
    Part,
    Rawml,
)
from .positions import (
    embed_to_link,
    flow_to_link,
    get_filepos_array,
    get_ncx_filepos_array,
    posfid_to_link,
)

_UINT32_MASK = 0xFFFFFFFF
_DIGITS = re.compile(r"\d+")

_ORTH_TAG = '<idx:entry><idx:orth value="{label}">{infl}</idx:orth></idx:entry>'
_ORTH_TAG_SCRIPTABLE = '<idx:entry scriptable="yes"><idx:orth value="{label}">{infl}</idx:orth>'
_ORTH_END_TAG = b"</idx:entry>"

# A segment is a chunk of output: (offset in the part's input data, bytes) for
# copied data, (None, bytes) for replacement text.
_Segment = tuple[Optional[int], bytes]


def _splice(segments: list[_Segment], insertions: list[tuple[int, bytes]]) -> bytes:
    """Join segments, inserting texts at offsets of the input data.

    Texts for the same offset keep their order. Offsets that fall inside
    replaced spans go to the start of the next copied chunk; offsets past the
    end go to the end.
    """
    pending = sorted(insertions, key=lambda item: item[0])
    out: list[bytes] = []
    index = 0
    for raw_start, chunk in segments:
        if raw_start is None:
            out.append(chunk)
            continue
        stop = raw_start + len(chunk)
        cursor = raw_start
        while index < len(pending) and pending[index][0] < stop:
            offset = max(pending[index][0], cursor)
            out.append(chunk[cursor - raw_start:offset - raw_start])
            out.append(pending[index][1])
            cursor = offset
            index += 1
        out.append(chunk[cursor - raw_start:])
    out.extend(text for _, text in pending[index:])
    return b"".join(out)


def _orth_insertions(rawml: Rawml) -> list[tuple[int, bytes]]:
    """Dictionary entry markup to insert, from the orth index."""
    orth = rawml.orth
    insertions: list[tuple[int, bytes]] = []
    for entry in orth.entries:
        try:
            start = entry.tag_value(IndexTag.ORTH_POSITION)
        except DataCorruptError:
            continue
        lengths = entry.tags.get(IndexTag.ORTH_LENGTH)
        text_length = lengths[0] if lengths else 0
        template = _ORTH_TAG if text_length == 0 else _ORTH_TAG_SCRIPTABLE
        markup = template.format(label=entry.label, infl="")
        insertions.append((start, markup.encode(orth.encoding, errors="replace")))
        if text_length > 0:
            insertions.append((start + text_length, _ORTH_END_TAG))
    return insertions


def _kf7_replacement(rawml: Rawml, attribute: str) -> Optional[tuple[int, str]]:
    """Shift of the replaced span start and the new attribute text, or None."""
    match = _DIGITS.search(attribute)
    if match is None:
        return None
    target = int(match.group())
    kind = attribute[:1]
    if kind == "f":
        return 0, f'href="#{target & _UINT32_MASK:010d}"'
    if kind in ("h", "l", "r"):
        shift = 2 if kind in ("h", "l") else 0
        if target > 0:
            target -= 1
        target &= _UINT32_MASK
        file_type = rawml.resource_type_by_uid(target)
        return shift, f'src="resource{target:05d}.{file_type.extension()}"'
    return None


def reconstruct_links_kf7(rawml: Rawml) -> None:
    """Replace ``filepos``/``recindex`` links in the first markup part.

    Anchors are inserted at every link target, and dictionary markup is
    rebuilt if the book has an orth index.
    """
    if rawml is None or not rawml.markup:
        raise InitError("markup not initialized")
    part: Part = rawml.markup[0]
    targets = sorted(set(get_filepos_array(part)) | set(get_ncx_filepos_array(rawml)))
    data = part.data
    end = len(data) - 1
    segments: list[_Segment] = []
    data_in = 0
    pos = 0
    while True:
        result = search_links_kf7(data, pos, end)
        if not result.found:
            break
        data_cur = result.start
        pos = result.end
        replacement = _kf7_replacement(rawml, result.value)
        if replacement is None:
            continue
        shift, link = replacement
        data_cur += shift
        if data_cur < data_in:
            raise DataCorruptError("link found before the end of the previous one")
        segments.append((data_in, data[data_in:data_cur]))
        segments.append((None, link.encode("ascii")[:ATTRVALUE_MAXSIZE]))
        data_in = result.end
    if segments:
        if data_in > len(data):
            raise DataCorruptError("link span beyond part end")
        segments.append((data_in, data[data_in:]))
    else:
        segments.append((0, data))
    insertions = [
        (offset, f'<a id="{offset:010d}"></a>'.encode("ascii")) for offset in targets
    ]
    if rawml.orth is not None:
        insertions.extend(_orth_insertions(rawml))
    if len(segments) > 1 or insertions:
        part.data = _splice(segments, insertions)


def _kf8_link(rawml: Rawml, value: str, pref_attr: AttrType) -> tuple[str, AttrType]:
    index = value.find("kindle:pos:fid:")
    if index >= 0:
        return posfid_to_link(rawml, value[index:], pref_attr)
    index = value.find("kindle:flow:")
    if index >= 0:
        return flow_to_link(rawml, value[index:]), pref_attr
    index = value.find("kindle:embed:")
    if index >= 0:
        return embed_to_link(rawml, value[index:]), pref_attr
    return "", pref_attr


def _rewrite_kf8_part(rawml: Rawml, part: Part) -> Optional[bytes]:
    """New data for ``part`` with its ``kindle:`` links replaced, or None if unchanged."""
    data = part.data
    end = len(data) - 1
    chunks: list[bytes] = []
    data_in = 0
    pos = 0
    pref_attr = AttrType.ID
    while True:
        result = search_links_kf8(data, pos, end, part.type)
        if not result.found:
            break
        pos = result.start
        if result.start < data_in:
            raise DataCorruptError("link found before the end of the previous one")
        link, pref_attr = _kf8_link(rawml, result.value, pref_attr)
        if not link:
            continue
        if result.is_url:
            link = link[1:-1]
        chunks.append(data[data_in:result.start])
        chunks.append(link.encode("latin-1", errors="replace"))
        data_in = result.end
    if not chunks:
        return None
    if data_in > len(data):
        raise DataCorruptError("link span beyond part end")
    chunks.append(data[data_in:])
    return b"".join(chunks)


def reconstruct_links_kf8(rawml: Rawml) -> None:
    """Replace ``kindle:`` links in markup parts and in flow parts after the first.

    All parts are scanned before any is changed, since position links are
    resolved against the unmodified markup.
    """
    if rawml is None:
        raise InitError("rawml not initialized")
    updates: list[tuple[Part, bytes]] = []
    for parts in (rawml.markup, rawml.flow[1:]):
        for part in parts:
            new_data = _rewrite_kf8_part(rawml, part)
            if new_data is not None:
                updates.append((part, new_data))
    for part, new_data in updates:
        part.data = new_data


def reconstruct_links(rawml: Rawml) -> None:
    """Replace offset links with html links, choosing the scheme by book format."""
    if rawml is None:
        raise InitError("rawml not initialized")
    if rawml.is_kf8():
        reconstruct_links_kf8(rawml)
    else:
        reconstruct_links_kf7(rawml)