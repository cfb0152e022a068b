"""Core data structures for reconstructed MOBI markup: parts, indices and errors."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Optional

ATTRNAME_MAXSIZE = 150
"""Maximum length of a tag attribute name, like ``href``."""

ATTRVALUE_MAXSIZE = 150
"""Maximum length of a tag attribute value."""

NOTSET = 0xFFFFFFFF
"""Marker for an unset 32-bit value."""

REPLICA_MAGIC = b"%MOP"
"""Leading bytes of Print Replica text."""


class MobiError(Exception):
    """Base class of all errors raised by this package."""


class DataCorruptError(MobiError):
    """The book data is malformed or inconsistent."""


class InitError(MobiError):
    """A required structure has not been loaded."""


class ParamError(MobiError):
    """A function was called with an invalid argument."""


class FileType(enum.Enum):
    """Type of a reconstructed part or resource."""

    UNKNOWN = "unknown"
    HTML = "html"
    CSS = "css"
    SVG = "svg"
    OPF = "opf"
    NCX = "ncx"
    JPG = "jpg"
    GIF = "gif"
    PNG = "png"
    BMP = "bmp"
    OTF = "otf"
    TTF = "ttf"
    MP3 = "mp3"
    MPG = "mpg"
    PDF = "pdf"
    FONT = "font"
    AUDIO = "audio"
    VIDEO = "video"
    BREAK = "break"

    def extension(self) -> str:
        """File name extension used for parts of this type."""
        return _FILE_META.get(self, _FILE_META[FileType.UNKNOWN])[0]

    def mime_type(self) -> str:
        """MIME type used for parts of this type."""
        return _FILE_META.get(self, _FILE_META[FileType.UNKNOWN])[1]


_FILE_META: dict[FileType, tuple[str, str]] = {
    FileType.UNKNOWN: ("dat", "application/unknown"),
    FileType.HTML: ("html", "application/xhtml+xml"),
    FileType.CSS: ("css", "text/css"),
    FileType.SVG: ("svg", "image/svg+xml"),
    FileType.OPF: ("opf", "application/oebps-package+xml"),
    FileType.NCX: ("ncx", "application/x-dtbncx+xml"),
    FileType.JPG: ("jpg", "image/jpeg"),
    FileType.GIF: ("gif", "image/gif"),
    FileType.PNG: ("png", "image/png"),
    FileType.BMP: ("bmp", "image/bmp"),
    FileType.OTF: ("otf", "application/vnd.ms-opentype"),
    FileType.TTF: ("ttf", "application/x-font-truetype"),
    FileType.MP3: ("mp3", "audio/mpeg"),
    FileType.MPG: ("mpg", "video/mpeg"),
    FileType.PDF: ("pdf", "application/pdf"),
}


class IndexTag(enum.Enum):
    """Tags carried by index entries."""

    GUIDE_TITLE_CNCX = enum.auto()
    NCX_FILEPOS = enum.auto()
    NCX_TEXT_CNCX = enum.auto()
    NCX_LEVEL = enum.auto()
    NCX_PARENT = enum.auto()
    NCX_CHILD_START = enum.auto()
    NCX_CHILD_END = enum.auto()
    NCX_POSFID = enum.auto()
    NCX_POSOFF = enum.auto()
    SKEL_COUNT = enum.auto()
    SKEL_POSITION = enum.auto()
    SKEL_LENGTH = enum.auto()
    FRAG_AID_CNCX = enum.auto()
    FRAG_FILE_NR = enum.auto()
    FRAG_SEQUENCE_NR = enum.auto()
    FRAG_POSITION = enum.auto()
    FRAG_LENGTH = enum.auto()
    ORTH_POSITION = enum.auto()
    ORTH_LENGTH = enum.auto()
    ORTH_INFL = enum.auto()
    INFL_GROUPS = enum.auto()
    INFL_PARTS_V1 = enum.auto()
    INFL_PARTS_V2 = enum.auto()


class AttrType(enum.IntEnum):
    """HTML attribute used as a link target."""

    ID = 0
    NAME = 1

    @property
    def attribute(self) -> str:
        return "id" if self is AttrType.ID else "name"

    @property
    def other(self) -> "AttrType":
        return AttrType.NAME if self is AttrType.ID else AttrType.ID


@dataclass
class SearchResult:
    """An attribute found in markup: the byte span to replace and its value."""

    start: Optional[int] = None
    end: Optional[int] = None
    value: str = ""
    is_url: bool = False

    @property
    def found(self) -> bool:
        return self.start is not None


@dataclass
class Part:
    """One reconstructed file: flow section, markup part or resource."""

    uid: int
    type: FileType
    data: bytes = b""

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class IndexEntry:
    """Single index entry: a label and its tag values."""

    label: str
    tags: dict[IndexTag, list[int]] = field(default_factory=dict)

    def tag_value(self, tag: IndexTag) -> int:
        """Return the first value of ``tag``; raise DataCorruptError if absent."""
        values = self.tags.get(tag)
        if not values:
            raise DataCorruptError(f"tag {tag.name} missing in entry {self.label!r}")
        return values[0]


def _read_varlen(data: bytes, pos: int) -> tuple[int, int]:
    value = 0
    while pos < len(data):
        byte = data[pos]
        pos += 1
        value = (value << 7) | (byte & 0x7F)
        if byte & 0x80:
            return value, pos
    raise DataCorruptError("unterminated variable-length value")


@dataclass
class Index:
    """Parsed index with its entries and CNCX string record."""

    entries: list[IndexEntry] = field(default_factory=list)
    cncx: Optional[bytes] = None
    encoding: str = "utf-8"
    total_entries_count: Optional[int] = None
    orth_index_name: Optional[str] = None

    def __post_init__(self) -> None:
        if self.total_entries_count is None:
            self.total_entries_count = len(self.entries)

    @property
    def entries_count(self) -> int:
        return len(self.entries)

    def has_tag(self, tag: IndexTag) -> bool:
        return any(tag in entry.tags for entry in self.entries)

    def cncx_string(self, offset: int) -> str:
        """Return the length-prefixed string stored at ``offset`` in the CNCX record."""
        if self.cncx is None:
            raise DataCorruptError("missing cncx record")
        if not 0 <= offset < len(self.cncx):
            raise DataCorruptError(f"cncx offset {offset} out of range")
        length, pos = _read_varlen(self.cncx, offset)
        raw = self.cncx[pos:pos + length]
        if len(raw) != length:
            raise DataCorruptError("cncx string beyond record end")
        return raw.decode(self.encoding, errors="replace")


@dataclass
class Fdst:
    """Flow section table: start and end offsets of each section."""

    section_starts: list[int] = field(default_factory=list)
    section_ends: list[int] = field(default_factory=list)

    @property
    def section_count(self) -> int:
        return len(self.section_starts)

    def sections(self):
        return zip(self.section_starts, self.section_ends)


@dataclass
class Rawml:
    """Reconstructed book: flow sections, markup parts, resources and indices."""

    version: Optional[int] = None
    fdst: Optional[Fdst] = None
    skel: Optional[Index] = None
    frag: Optional[Index] = None
    guide: Optional[Index] = None
    ncx: Optional[Index] = None
    orth: Optional[Index] = None
    infl: Optional[Index] = None
    flow: list[Part] = field(default_factory=list)
    markup: list[Part] = field(default_factory=list)
    resources: list[Part] = field(default_factory=list)

    def is_kf8(self) -> bool:
        """True for KF8 (version 8 and newer) books."""
        return self.version is not None and self.version != NOTSET and self.version >= 8

    def part_by_uid(self, uid: int) -> Optional[Part]:
        """Markup part with the given uid, or None."""
        return next((part for part in self.markup if part.uid == uid), None)

    def resource_by_uid(self, uid: int) -> Optional[Part]:
        """Resource part with the given uid, or None."""
        return next((part for part in self.resources if part.uid == uid), None)

    def resource_type_by_uid(self, uid: int) -> FileType:
        """Type of the resource with the given uid, UNKNOWN if there is none."""
        resource = self.resource_by_uid(uid)
        return resource.type if resource is not None else FileType.UNKNOWN

    def flow_by_fid(self, fid: str) -> Optional[Part]:
        """Flow part addressed by a base32 fid string, or None."""
        try:
            uid = base32_decode(fid)
        except DataCorruptError:
            return None
        return next((part for part in self.flow if part.uid == uid), None)


def base32_decode(text: str) -> int:
    """Decode a base32 number written with digits 0-9 and A-V."""
    value = 0
    for char in text.lstrip("0"):
        if "0" <= char <= "9":
            digit = ord(char) - ord("0")
        elif "A" <= char <= "V":
            digit = ord(char) - ord("A") + 10
        else:
            raise DataCorruptError(f"invalid base32 character {char!r} in {text!r}")
        value = value * 32 + digit
        if value > 0xFFFFFFFF:
            raise DataCorruptError(f"base32 value {text!r} out of range")
    return value