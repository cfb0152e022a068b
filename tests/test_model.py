import pytest

from mobirecon.model import (
    DataCorruptError,
    Fdst,
    FileType,
    Index,
    IndexEntry,
    IndexTag,
    MobiError,
    Part,
    Rawml,
    SearchResult,
    base32_decode,
)


@pytest.mark.parametrize(
    "text,expected",
    [("0000", 0), ("0001", 1), ("000A", 10), ("V", 31), ("10", 32)],
)
def test_base32_decode_values(text, expected):
    assert base32_decode(text) == expected


@pytest.mark.parametrize("text", ["000a", "00W1", "0-01"])
def test_base32_decode_rejects_invalid(text):
    with pytest.raises(DataCorruptError):
        base32_decode(text)


def test_base32_decode_overflow():
    with pytest.raises(DataCorruptError):
        base32_decode("VVVVVVVVVV")


def test_errors_share_base():
    with pytest.raises(MobiError):
        base32_decode("zz")


def test_filetype_meta():
    assert FileType.HTML.extension() == "html"
    assert FileType.CSS.mime_type() == "text/css"
    assert FileType.BREAK.extension() == FileType.UNKNOWN.extension()


def test_search_result_found():
    result = SearchResult()
    assert result.found is False
    result.start = 3
    assert result.found is True


def test_part_size_follows_data():
    part = Part(uid=0, type=FileType.HTML, data=b"<p>abc</p>")
    assert part.size == 10
    part.data = b""
    assert part.size == 0


def test_index_entry_tag_value():
    entry = IndexEntry("12", {IndexTag.FRAG_FILE_NR: [4, 7]})
    assert entry.tag_value(IndexTag.FRAG_FILE_NR) == 4
    with pytest.raises(DataCorruptError):
        entry.tag_value(IndexTag.FRAG_LENGTH)


def test_index_cncx_string_roundtrip():
    text = "Chapter".encode("utf-8")
    record = b"\x00" + bytes([0x80 | len(text)]) + text
    index = Index(entries=[], cncx=record)
    assert index.cncx_string(1) == "Chapter"


def test_index_cncx_errors():
    with pytest.raises(DataCorruptError):
        Index().cncx_string(0)
    index = Index(cncx=b"\x85ab")
    with pytest.raises(DataCorruptError):
        index.cncx_string(0)
    with pytest.raises(DataCorruptError):
        index.cncx_string(10)


def test_index_counts_and_tags():
    entries = [IndexEntry("a", {IndexTag.ORTH_INFL: [1]}), IndexEntry("b")]
    index = Index(entries=entries)
    assert index.entries_count == 2
    assert index.total_entries_count == 2
    assert index.has_tag(IndexTag.ORTH_INFL)
    assert not index.has_tag(IndexTag.INFL_GROUPS)


def test_fdst_sections():
    fdst = Fdst([0, 10], [10, 25])
    assert fdst.section_count == 2
    assert list(fdst.sections()) == [(0, 10), (10, 25)]


def test_rawml_is_kf8():
    assert Rawml(version=8).is_kf8()
    assert not Rawml(version=6).is_kf8()
    assert not Rawml().is_kf8()


def test_rawml_lookups():
    rawml = Rawml(
        flow=[Part(0, FileType.HTML), Part(1, FileType.CSS)],
        markup=[Part(0, FileType.HTML, b"x"), Part(1, FileType.HTML, b"y")],
        resources=[Part(0, FileType.JPG), Part(2, FileType.PNG)],
    )
    assert rawml.part_by_uid(1).data == b"y"
    assert rawml.part_by_uid(5) is None
    assert rawml.resource_by_uid(2).type is FileType.PNG
    assert rawml.resource_type_by_uid(0) is FileType.JPG
    assert rawml.resource_type_by_uid(1) is FileType.UNKNOWN
    assert rawml.flow_by_fid("0001").type is FileType.CSS
    assert rawml.flow_by_fid("0009") is None
    assert rawml.flow_by_fid("00x1") is None