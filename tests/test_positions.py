import pytest

from mobirecon.model import (
    AttrType,
    DataCorruptError,
    FileType,
    Index,
    IndexEntry,
    IndexTag,
    InitError,
    ParamError,
    Part,
    Rawml,
)
from mobirecon.positions import (
    embed_to_link,
    flow_to_link,
    get_aid_by_offset,
    get_aid_by_posoff,
    get_filepos_array,
    get_id_by_offset,
    get_id_by_posoff,
    get_ncx_filepos_array,
    get_offset_by_posoff,
    get_rawlink_location,
    posfid_to_link,
)

HTML = b'<html><body><p id="chap1" aid="0A">Hi</p><a name="n1">x</a></body></html>'


def _frag(label, file_nr):
    return IndexEntry(label=label, tags={IndexTag.FRAG_FILE_NR: [file_nr]})


def _skel(position):
    return IndexEntry(label="SKEL", tags={IndexTag.SKEL_POSITION: [position]})


def _rawml(markup_data=HTML, frag_label="0"):
    return Rawml(
        version=8,
        frag=Index(entries=[_frag(frag_label, 0), _frag("0", 1)]),
        skel=Index(entries=[_skel(0), _skel(0)]),
        markup=[Part(uid=0, type=FileType.HTML, data=markup_data)],
        flow=[Part(0, FileType.HTML, b"<html/>"), Part(1, FileType.CSS, b"p{}")],
        resources=[Part(0, FileType.JPG, b"\xff\xd8")],
    )


def test_rawlink_location_adds_offset():
    rawml = _rawml(frag_label="100")
    assert get_rawlink_location(rawml, 0, 0) == 100
    assert get_rawlink_location(rawml, 0, 7) - get_rawlink_location(rawml, 0, 0) == 7


def test_rawlink_location_errors():
    with pytest.raises(DataCorruptError):
        get_rawlink_location(_rawml(), 5, 0)
    with pytest.raises(InitError):
        get_rawlink_location(Rawml(), 0, 0)


def test_offset_by_posoff_invariant():
    rawml = _rawml(frag_label="10")
    file_number, base = get_offset_by_posoff(rawml, 0, 0)
    assert file_number == 0
    assert get_offset_by_posoff(rawml, 0, 7) == (0, base + 7)


def test_offset_by_posoff_errors():
    with pytest.raises(DataCorruptError):
        get_offset_by_posoff(_rawml(), 9, 0)
    with pytest.raises(InitError):
        get_offset_by_posoff(Rawml(frag=Index(entries=[_frag("0", 0)])), 0, 0)
    rawml = _rawml()
    rawml.frag.entries[0] = _frag("0", 7)
    with pytest.raises(DataCorruptError):
        get_offset_by_posoff(rawml, 0, 0)


def test_aid_by_offset():
    part = Part(0, FileType.HTML, HTML)
    assert get_aid_by_offset(part, 0) == "0A"
    with pytest.raises(DataCorruptError):
        get_aid_by_offset(Part(0, FileType.HTML, b"<p id='x'>y</p>"), 0)
    with pytest.raises(ParamError):
        get_aid_by_offset(part, part.size + 1)


def test_id_by_offset_prefers_attribute():
    part = Part(0, FileType.HTML, HTML)
    assert get_id_by_offset(part, 0, AttrType.ID) == ("chap1", AttrType.ID)
    assert get_id_by_offset(part, 0, AttrType.NAME) == ("n1", AttrType.NAME)


def test_id_by_offset_falls_back_to_other_attribute():
    part = Part(0, FileType.HTML, HTML)
    after_id = HTML.index(b"Hi")
    assert get_id_by_offset(part, after_id, AttrType.ID) == ("n1", AttrType.NAME)


def test_id_by_offset_nothing_found_keeps_preference():
    part = Part(0, FileType.HTML, b"<p>plain</p>")
    assert get_id_by_offset(part, 0, AttrType.NAME) == ("", AttrType.NAME)


def test_aid_and_id_by_posoff():
    rawml = _rawml()
    assert get_aid_by_posoff(rawml, 0, 0) == (0, "0A")
    assert get_id_by_posoff(rawml, 0, 0, AttrType.ID) == (0, "chap1", AttrType.ID)


def test_posoff_errors_become_data_corrupt():
    rawml = _rawml()
    # fragment 1 points to skeleton part 1 which has no markup part
    with pytest.raises(DataCorruptError):
        get_id_by_posoff(rawml, 1, 0, AttrType.ID)
    with pytest.raises(DataCorruptError):
        get_aid_by_posoff(Rawml(), 0, 0)
    with pytest.raises(DataCorruptError):
        get_aid_by_posoff(rawml, 0, len(HTML) + 10)


def test_filepos_array():
    data = b'<a filepos=0000000123>x</a><a filepos="0000000045">y</a><a filepos=0>z</a>'
    assert get_filepos_array(Part(0, FileType.HTML, data)) == [123, 45]
    assert get_filepos_array(Part(0, FileType.HTML, b"")) == []
    with pytest.raises(InitError):
        get_filepos_array(None)


def test_ncx_filepos_array():
    rawml = Rawml(
        resources=[
            Part(0, FileType.HTML, b'<img src="part00000.html#0000000099"/>'),
            Part(1, FileType.NCX, b'<navPoint><content src="part00000.html#0000000042"/></navPoint>'),
        ]
    )
    assert get_ncx_filepos_array(rawml) == [42]
    with pytest.raises(ParamError):
        get_ncx_filepos_array(None)


def test_posfid_to_link_top_of_file():
    link, attr = posfid_to_link(_rawml(), "kindle:pos:fid:0000:off:0000000000", AttrType.ID)
    assert link == '"part00000.html"'
    assert attr is AttrType.ID


def test_posfid_to_link_with_anchor():
    rawml = _rawml(markup_data=b'<p>x</p><p id="t1">y</p>')
    link, attr = posfid_to_link(rawml, "kindle:pos:fid:0000:off:0000000005", AttrType.ID)
    assert link == '"part00000.html#t1"'
    assert attr is AttrType.ID


def test_posfid_to_link_skips_bad_values():
    rawml = _rawml()
    assert posfid_to_link(rawml, "kindle:pos:fid:0000", AttrType.ID) == ("", AttrType.ID)
    assert posfid_to_link(rawml, "kindle:pos:fid:00000off:0000000000", AttrType.NAME) == ("", AttrType.NAME)
    with pytest.raises(DataCorruptError):
        posfid_to_link(rawml, "kindle:pos:fid:zzzz:off:0000000000", AttrType.ID)


def test_flow_to_link():
    rawml = _rawml()
    assert flow_to_link(rawml, "kindle:flow:0001?mime=text/css") == '"flow00001.css"'
    assert flow_to_link(rawml, "kindle:flow:0009?mime=text/css") == ""
    assert flow_to_link(rawml, "kindle:flow:0001xmime=text/css") == ""
    assert flow_to_link(rawml, "kindle:flow:1") == ""


def test_embed_to_link():
    rawml = _rawml()
    assert embed_to_link(rawml, "kindle:embed:0001?mime=image/jpeg") == '"resource00000.jpg"'
    assert embed_to_link(rawml, '"kindle:embed:0001"') == '"resource00000.jpg"'


def test_embed_to_link_skips_bad_values():
    rawml = _rawml()
    assert embed_to_link(rawml, "kindle:embed:0000") == ""
    assert embed_to_link(rawml, "kindle:embed:zzzz") == ""
    assert embed_to_link(rawml, "kindle:embed:0002") == ""
    assert embed_to_link(rawml, "kindle:embed:") == ""