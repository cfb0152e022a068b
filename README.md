# mobirecon

mobirecon rebuilds readable markup from the decompressed text of MOBI and KF8
ebooks. You give it the raw text and the index data you have already parsed.
It produces:

- **flow parts**: the raw HTML stream and, with an FDST table, the sections
  after it (CSS, SVG), or the PDF held inside a Print Replica book;
- **markup parts**: HTML files put back together from the skeleton and
  fragment indices;
- **links**: KF8 `kindle:pos`, `kindle:flow` and `kindle:embed` references,
  and the `filepos` / `recindex` attributes of older books, turned into plain
  relative hrefs such as `part00001.html#chapter2`, `flow00002.css` and
  `resource00003.jpg`.

It uses only the Python standard library.

## Installation

```
pip install mobirecon
```

To run the tests, install the `test` extra and run `pytest`.

## Data model (`mobirecon.model`)

- `Rawml` holds the `flow`, `markup` and `resources` lists of parts, the
  optional `fdst` table, the `skel`, `frag`, `guide`, `ncx`, `orth` and
  `infl` indices, and the format `version`. `Rawml.is_kf8()` is true for
  version 8 and later. `part_by_uid`, `resource_by_uid`,
  `resource_type_by_uid` and `flow_by_fid` look parts up.
- `Part` is one output file: a `uid`, a `FileType` and its `data` (bytes).
- `FileType` gives each type's `extension()` and `mime_type()`.
- `Index` holds `IndexEntry` objects and a CNCX record. `cncx_string(offset)`
  reads a string from the CNCX record. `IndexEntry.tag_value(tag)` returns the
  first value of an `IndexTag`.
- `Fdst` holds the start and end offsets of the flow sections.
- `base32_decode(text)` decodes the base32 numbers used in `kindle:` links.
- Errors are raised as subclasses of `MobiError`: `DataCorruptError`,
  `InitError` and `ParamError`.

## Modules

- `mobirecon.parts`:
  - `reconstruct_flow(rawml, text)` splits the raw text into flow parts.
  - `reconstruct_parts(rawml)` builds the markup parts.
  - `process_replica(text)` extracts the PDF from Print Replica text.
  - `text_parts(rawml)` yields the HTML and CSS parts.
  - `strip_mobitags(part)` removes `aid` attributes.
  - `markup_to_utf8(part)` converts cp1252 text to UTF-8. Bytes that cp1252
    does not define are replaced.
- `mobirecon.links`: `reconstruct_links(rawml)` calls
  `reconstruct_links_kf8` for KF8 books and `reconstruct_links_kf7`
  otherwise. For older books it also inserts `<a id="..."></a>` anchors at
  link targets, and `<idx:entry>` / `<idx:orth>` markup when an orth index
  is present.
- `mobirecon.positions`: resolves positions to files and targets.
  `get_offset_by_posoff` and `get_id_by_posoff` map a position to a part
  number, an offset and a target id. `posfid_to_link`, `flow_to_link` and
  `embed_to_link` build hrefs. `get_filepos_array` and
  `get_ncx_filepos_array` collect link targets.
- `mobirecon.attributes`: the low-level scanners that find attributes in
  HTML and CSS bytes: `find_attrvalue`, `find_attrname`, `search_links_kf7`,
  `search_links_kf8`, `get_attribute_value` and `get_aid_offset`.

## Example

```python
from mobirecon.model import Rawml
from mobirecon.parts import reconstruct_flow, reconstruct_parts, text_parts, markup_to_utf8
from mobirecon.links import reconstruct_links

rawml = Rawml()
reconstruct_flow(rawml, raw_text)   # raw_text: decompressed book text (bytes)
reconstruct_parts(rawml)
reconstruct_links(rawml)

for part in text_parts(rawml):
    markup_to_utf8(part)            # only for books stored in cp1252

for part in rawml.markup:
    print(part.uid, part.type, len(part.data))
```

## What it does not do

- It does not open or decompress ebook files. It does not read PDB records,
  headers, EXTH metadata or index records. You fill `Rawml`, its `Index`
  objects and its `resources` list yourself.
- It does not detect resource types and does not write an OPF or NCX
  document.
- Dictionary entries are rebuilt without inflection forms. The `infl` index
  is not used.
- There is no command-line tool. It is a library only.