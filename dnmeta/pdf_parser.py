# Copyright 2025 DNAi inc.

# Dual-licensed under the DNAi Free License v1.1 and the
# DNAi Commercial License v1.1.
# See the LICENSE files in the project root for details.

"""
PDF structure parser

This module reads the parts of a PDF file needed for document metadata:
the last cross-reference section (classic table or cross-reference
stream), its trailer, and the Document Information dictionary the
trailer points to. Page content is never parsed.

Incremental-update chains are tolerated without being fully parsed:
the last trailer is authoritative, and earlier sections (/Prev) are only
consulted when an object is missing from the last one.

Copyright 2025 DNAi inc.
"""

import logging
import re
import zlib
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple

from dnmeta.date_formatter import parse_pdf_date
from dnmeta.exceptions import MalformedContainerError, UnsupportedFormatError
from dnmeta.metadata_model import MetadataField, MetadataSet, ValueKind

logger = logging.getLogger(__name__)

WHITESPACE = b' \t\r\n\x0c\x00'
DELIMITERS = b'()<>[]{}/%'

# How far from the start a %PDF- header may appear
HEADER_SEARCH_LIMIT = 1024

# Upper bound on cross-reference sections followed through /Prev
MAX_XREF_SECTIONS = 64

DATE_KEYS = ('CreationDate', 'ModDate')

_NUMBER_RE = re.compile(rb'[+-]?(?:\d+\.?\d*|\.\d+)')
_INT_RE = re.compile(rb'\d+')
_XREF_SUBSECTION_RE = re.compile(rb'[ \t\r\n\x0c]*(\d+)[ \t]+(\d+)[ \t]*\r?\n?')
_XREF_ENTRY_RE = re.compile(rb'[ \t\r\n\x0c]*(\d{1,10})[ \t]+(\d{1,5})[ \t]+([nf])')

# PDFDocEncoding code points that differ from Latin-1
PDF_DOC_ENCODING = {
    0x18: '˘', 0x19: 'ˇ', 0x1A: 'ˆ', 0x1B: '˙',
    0x1C: '˝', 0x1D: '˛', 0x1E: '˚', 0x1F: '˜',
    0x80: '•', 0x81: '†', 0x82: '‡', 0x83: '…',
    0x84: '—', 0x85: '–', 0x86: 'ƒ', 0x87: '⁄',
    0x88: '‹', 0x89: '›', 0x8A: '−', 0x8B: '‰',
    0x8C: '„', 0x8D: '“', 0x8E: '”', 0x8F: '‘',
    0x90: '’', 0x91: '‚', 0x92: '™', 0x93: 'ﬁ',
    0x94: 'ﬂ', 0x95: 'Ł', 0x96: 'Œ', 0x97: 'Š',
    0x98: 'Ÿ', 0x99: 'Ž', 0x9A: 'ı', 0x9B: 'ł',
    0x9C: 'œ', 0x9D: 'š', 0x9E: 'ž', 0xA0: '€',
}
_PDF_DOC_REVERSE = {char: code for code, char in PDF_DOC_ENCODING.items()}
_PDF_DOC_UNDEFINED = {0x7F, 0x9F, 0xAD}


class PDFName(str):
    """A PDF name object, stored without the leading slash."""
    pass


class PDFString(bytes):
    """A PDF string object (literal or hex), holding the decoded bytes."""
    pass


@dataclass(frozen=True)
class PDFRef:
    """An indirect reference "num gen R"."""
    num: int
    gen: int

    def __str__(self) -> str:
        return f"{self.num} {self.gen} R"


@dataclass
class PDFDictionary:
    """
    A parsed dictionary.

    For every key, `spans` holds the (start, end) offsets of the value
    token in the buffer the dictionary was parsed from, and `raw` the
    token bytes themselves, so writers can copy untouched values.
    """
    entries: Dict[str, Any] = field(default_factory=dict)
    spans: Dict[str, Tuple[int, int]] = field(default_factory=dict)
    raw: Dict[str, bytes] = field(default_factory=dict)
    start: int = 0
    end: int = 0

    def get(self, key: str, default: Any = None) -> Any:
        return self.entries.get(key, default)

    def __contains__(self, key: object) -> bool:
        return key in self.entries


@dataclass
class PDFIndirectObject:
    """An "N G obj ... endobj" object, with its stream data if any."""
    num: int
    gen: int
    value: Any
    offset: Optional[int]  # None when stored inside an object stream
    stream: Optional[bytes] = None


@dataclass
class XRefSection:
    """One cross-reference section with its trailer."""
    offset: int
    is_stream: bool
    entries: Dict[int, Tuple[int, int, int]]
    trailer: PDFDictionary

    @property
    def prev(self) -> Optional[int]:
        prev = self.trailer.get('Prev')
        return prev if isinstance(prev, int) and not isinstance(prev, bool) else None

    @property
    def xref_stream(self) -> Optional[int]:
        offset = self.trailer.get('XRefStm')
        return offset if isinstance(offset, int) and not isinstance(offset, bool) else None


def pdf_integer(value: Any, what: str, minimum: int = 0) -> int:
    """
    Check that a structural value is an integer no smaller than minimum.

    Raises:
        MalformedContainerError: For reals, names, booleans and out-of-range values
    """
    if not isinstance(value, int) or isinstance(value, bool) or value < minimum:
        raise MalformedContainerError(f"PDF {what} is not a valid integer")
    return value


def decode_text_string(data: bytes) -> str:
    """
    Decode a PDF text string.

    UTF-16BE and UTF-8 are recognized by their byte order marks;
    everything else is PDFDocEncoding.
    """
    if data[:2] == b'\xfe\xff':
        return data[2:].decode('utf-16-be', errors='replace')
    if data[:3] == b'\xef\xbb\xbf':
        return data[3:].decode('utf-8', errors='replace')
    return ''.join(PDF_DOC_ENCODING.get(b, chr(b)) for b in data)


def encode_pdf_doc(text: str) -> Optional[bytes]:
    """Encode text in PDFDocEncoding, or return None if it cannot be."""
    out = bytearray()
    for char in text:
        code = _PDF_DOC_REVERSE.get(char)
        if code is None:
            code = ord(char)
            if code > 0xFF or code in PDF_DOC_ENCODING or code in _PDF_DOC_UNDEFINED:
                return None
        out.append(code)
    return bytes(out)


class PDFObjectParser:
    """
    Tokenizer and object parser over a byte buffer.

    Produces Python values: dict -> PDFDictionary, array -> list,
    name -> PDFName, string -> PDFString, numbers -> int/float,
    booleans, null -> None, and "N G R" -> PDFRef.
    """

    def __init__(self, data: bytes, pos: int = 0):
        self.data = data
        self.pos = pos

    def _fail(self, message: str) -> MalformedContainerError:
        return MalformedContainerError(f"PDF syntax error at offset {self.pos}: {message}")

    def skip_whitespace(self) -> None:
        data = self.data
        length = len(data)
        while self.pos < length:
            c = data[self.pos]
            if c in WHITESPACE:
                self.pos += 1
            elif c == 0x25:  # % comment runs to end of line
                while self.pos < length and data[self.pos] not in b'\r\n':
                    self.pos += 1
            else:
                break

    def at_keyword(self, keyword: bytes) -> bool:
        end = self.pos + len(keyword)
        if self.data[self.pos:end] != keyword:
            return False
        return end >= len(self.data) or self.data[end] in WHITESPACE or self.data[end] in DELIMITERS

    def expect_keyword(self, keyword: bytes) -> None:
        self.skip_whitespace()
        if not self.at_keyword(keyword):
            raise self._fail(f"expected '{keyword.decode()}'")
        self.pos += len(keyword)

    def read_int(self) -> int:
        self.skip_whitespace()
        match = _INT_RE.match(self.data, self.pos)
        if not match:
            raise self._fail("expected integer")
        self.pos = match.end()
        return int(match.group(0))

    def parse_object(self) -> Any:
        """Parse one object at the current position."""
        self.skip_whitespace()
        data = self.data
        if self.pos >= len(data):
            raise self._fail("unexpected end of data")
        c = data[self.pos:self.pos + 1]
        if data[self.pos:self.pos + 2] == b'<<':
            return self.parse_dictionary()
        if c == b'<':
            return self._parse_hex_string()
        if c == b'(':
            return self._parse_literal_string()
        if c == b'/':
            return self._parse_name()
        if c == b'[':
            return self._parse_array()
        if c in b'+-.0123456789':
            return self._parse_number_or_ref()
        for keyword, value in ((b'true', True), (b'false', False), (b'null', None)):
            if self.at_keyword(keyword):
                self.pos += len(keyword)
                return value
        raise self._fail(f"unexpected byte {c!r}")

    def parse_dictionary(self) -> PDFDictionary:
        result = PDFDictionary(start=self.pos)
        self.pos += 2
        while True:
            self.skip_whitespace()
            if self.pos >= len(self.data):
                raise self._fail("unterminated dictionary")
            if self.data[self.pos:self.pos + 2] == b'>>':
                self.pos += 2
                break
            key = self.parse_object()
            if not isinstance(key, PDFName):
                raise self._fail("dictionary key is not a name")
            self.skip_whitespace()
            value_start = self.pos
            value = self.parse_object()
            result.entries[key] = value
            result.spans[key] = (value_start, self.pos)
            result.raw[key] = bytes(self.data[value_start:self.pos])
        result.end = self.pos
        return result

    def _parse_array(self) -> List[Any]:
        self.pos += 1
        items = []
        while True:
            self.skip_whitespace()
            if self.pos >= len(self.data):
                raise self._fail("unterminated array")
            if self.data[self.pos:self.pos + 1] == b']':
                self.pos += 1
                return items
            items.append(self.parse_object())

    def _parse_name(self) -> PDFName:
        self.pos += 1
        start = self.pos
        data = self.data
        while self.pos < len(data) and data[self.pos] not in WHITESPACE and data[self.pos] not in DELIMITERS:
            self.pos += 1
        raw = data[start:self.pos]
        decoded = re.sub(rb'#([0-9A-Fa-f]{2})', lambda m: bytes([int(m.group(1), 16)]), raw)
        try:
            return PDFName(decoded.decode('utf-8'))
        except UnicodeDecodeError:
            return PDFName(decoded.decode('latin-1'))

    def _parse_number_or_ref(self) -> Any:
        match = _NUMBER_RE.match(self.data, self.pos)
        if not match:
            raise self._fail("malformed number")
        token = match.group(0)
        self.pos = match.end()
        if b'.' in token:
            return float(token)
        value = int(token)
        if token[:1] in b'+-':
            return value
        # Look ahead for "gen R"
        saved = self.pos
        try:
            self.skip_whitespace()
            gen_match = _INT_RE.match(self.data, self.pos)
            if gen_match:
                self.pos = gen_match.end()
                self.skip_whitespace()
                if self.at_keyword(b'R'):
                    self.pos += 1
                    return PDFRef(value, int(gen_match.group(0)))
        except IndexError:
            pass
        self.pos = saved
        return value

    def _parse_hex_string(self) -> PDFString:
        end = self.data.find(b'>', self.pos)
        if end == -1:
            raise self._fail("unterminated hex string")
        digits = re.sub(rb'[^0-9A-Fa-f]', b'', self.data[self.pos + 1:end])
        if len(digits) % 2:
            digits += b'0'
        self.pos = end + 1
        return PDFString(bytes.fromhex(digits.decode('ascii')))

    def _parse_literal_string(self) -> PDFString:
        data = self.data
        self.pos += 1
        depth = 1
        out = bytearray()
        escapes = {ord('n'): b'\n', ord('r'): b'\r', ord('t'): b'\t', ord('b'): b'\b',
                   ord('f'): b'\x0c', ord('('): b'(', ord(')'): b')', ord('\\'): b'\\'}
        while True:
            if self.pos >= len(data):
                raise self._fail("unterminated literal string")
            c = data[self.pos]
            self.pos += 1
            if c == 0x5C:  # backslash
                if self.pos >= len(data):
                    raise self._fail("unterminated literal string")
                e = data[self.pos]
                if e in escapes:
                    out += escapes[e]
                    self.pos += 1
                elif 0x30 <= e <= 0x37:
                    digits = re.match(rb'[0-7]{1,3}', data[self.pos:self.pos + 3]).group(0)
                    out.append(int(digits, 8) & 0xFF)
                    self.pos += len(digits)
                elif e == 0x0D:
                    self.pos += 2 if data[self.pos + 1:self.pos + 2] == b'\n' else 1
                elif e == 0x0A:
                    self.pos += 1
                else:
                    out.append(e)
                    self.pos += 1
            elif c == 0x28:
                depth += 1
                out.append(c)
            elif c == 0x29:
                depth -= 1
                if depth == 0:
                    return PDFString(bytes(out))
                out.append(c)
            elif c == 0x0D:
                # Unescaped end-of-line markers read as a single newline
                if data[self.pos:self.pos + 1] == b'\n':
                    self.pos += 1
                out += b'\n'
            else:
                out.append(c)


def _png_unpredict(data: bytes, columns: int) -> bytes:
    """Undo PNG row prediction (Predictor >= 10) with one byte per sample."""
    row_size = columns + 1
    if columns <= 0 or len(data) % row_size:
        raise MalformedContainerError("PDF stream predictor data does not match /Columns")
    out = bytearray()
    prev = bytearray(columns)
    for start in range(0, len(data), row_size):
        filter_type = data[start]
        row = bytearray(data[start + 1:start + row_size])
        for i in range(columns):
            left = row[i - 1] if i else 0
            up = prev[i]
            up_left = prev[i - 1] if i else 0
            if filter_type == 1:
                row[i] = (row[i] + left) & 0xFF
            elif filter_type == 2:
                row[i] = (row[i] + up) & 0xFF
            elif filter_type == 3:
                row[i] = (row[i] + ((left + up) >> 1)) & 0xFF
            elif filter_type == 4:
                p = left + up - up_left
                pa, pb, pc = abs(p - left), abs(p - up), abs(p - up_left)
                predictor = left if pa <= pb and pa <= pc else (up if pb <= pc else up_left)
                row[i] = (row[i] + predictor) & 0xFF
            elif filter_type != 0:
                raise MalformedContainerError(f"Unknown PNG predictor filter {filter_type}")
        out += row
        prev = row
    return bytes(out)


def decode_stream(dictionary: PDFDictionary, data: bytes) -> bytes:
    """
    Decode stream data.

    Only FlateDecode (with optional PNG predictors) is supported, which
    covers cross-reference and object streams.
    """
    filters = dictionary.get('Filter')
    params = dictionary.get('DecodeParms')
    if filters is None:
        return data
    if not isinstance(filters, list):
        filters = [filters]
        params = [params]
    elif not isinstance(params, list):
        params = [params] * len(filters)
    for name, param in zip(filters, params):
        if name != 'FlateDecode':
            raise MalformedContainerError(f"Unsupported PDF stream filter /{name}")
        try:
            data = zlib.decompress(data)
        except zlib.error:
            # Tolerate missing checksum or trailing garbage
            data = zlib.decompressobj().decompress(data)
        if isinstance(param, PDFDictionary):
            predictor = pdf_integer(param.get('Predictor', 1), "/Predictor")
            if predictor >= 10:
                data = _png_unpredict(data, pdf_integer(param.get('Columns', 1), "/Columns", 1))
            elif predictor != 1:
                raise MalformedContainerError(f"Unsupported PDF predictor {predictor}")
    return data


class PDFDocument:
    """
    Cross-reference and trailer view of a PDF file.

    Example:
        >>> document = PDFDocument(pdf_bytes).parse()
        >>> document.info_dictionary()
    """

    def __init__(self, file_data: bytes):
        """
        Initialize PDF document parser.

        Args:
            file_data: PDF file data
        """
        self.file_data = file_data
        self.version: Optional[str] = None
        self.startxref: int = 0
        self.sections: List[XRefSection] = []
        self.trailer: PDFDictionary = PDFDictionary()
        self.reconstructed = False
        self._section_cache: Dict[int, XRefSection] = {}
        self._object_cache: Dict[int, PDFIndirectObject] = {}

    def parse(self) -> 'PDFDocument':
        """
        Parse the header, the last cross-reference section and its trailer.

        Raises:
            MalformedContainerError: If the structure is invalid
            UnsupportedFormatError: For encrypted documents
        """
        data = self.file_data
        header = data.find(b'%PDF-', 0, HEADER_SEARCH_LIMIT)
        if header == -1:
            raise MalformedContainerError("Invalid PDF file: missing %PDF- header")
        version = re.match(rb'%PDF-(\d+\.\d+)', data[header:header + 16])
        if version:
            self.version = version.group(1).decode('ascii')

        # Scan backward from end-of-buffer for the last startxref
        marker = data.rfind(b'startxref')
        if marker == -1:
            raise MalformedContainerError("PDF missing startxref")
        try:
            self.startxref = PDFObjectParser(data, marker + len(b'startxref')).read_int()
            last = self._load_section(self.startxref)
        except MalformedContainerError as e:
            last = self._recover_last_section(e)
            self.startxref = last.offset
        self.sections.append(last)
        self.trailer = last.trailer

        if 'Encrypt' in self.trailer:
            raise UnsupportedFormatError("Encrypted PDF files are not supported")
        root = self.trailer.get('Root')
        if not isinstance(root, PDFRef):
            raise MalformedContainerError("PDF trailer has no /Root reference")
        if not isinstance(self.resolve(root), PDFDictionary):
            raise MalformedContainerError("PDF /Root does not resolve to a dictionary")
        return self

    def _recover_last_section(self, error: MalformedContainerError) -> XRefSection:
        """
        Find the last trailer by scanning backward when startxref is unusable.

        The xref table just before that trailer is used if it parses;
        otherwise the trailer stands alone and objects are located by
        scanning for "N G obj".
        """
        data = self.file_data
        trailer_at = data.rfind(b'trailer')
        if trailer_at == -1:
            raise error
        logger.warning("PDF startxref is unusable (%s); scanning for the last trailer", error.message)

        xref_at = data.rfind(b'xref', 0, trailer_at)
        while xref_at >= 5 and data[xref_at - 5:xref_at] == b'start':
            xref_at = data.rfind(b'xref', 0, xref_at - 5)
        if xref_at != -1:
            try:
                section = self._load_section(xref_at)
            except MalformedContainerError:
                section = None
            if section is not None and not section.is_stream and section.trailer.start > trailer_at:
                return section

        trailer = PDFObjectParser(data, trailer_at + len(b'trailer')).parse_object()
        if not isinstance(trailer, PDFDictionary):
            raise error
        section = XRefSection(trailer_at, False, {}, trailer)
        self._section_cache[trailer_at] = section
        self.reconstructed = True
        return section

    @property
    def last_section(self) -> XRefSection:
        return self.sections[0]

    @property
    def prev_offset(self) -> Optional[int]:
        """Offset a following update section may chain to with /Prev."""
        return None if self.reconstructed else self.startxref

    @property
    def size(self) -> int:
        return pdf_integer(self.trailer.get('Size'), "trailer /Size", 1)

    def _load_section(self, offset: int) -> XRefSection:
        if offset in self._section_cache:
            return self._section_cache[offset]
        if offset < 0 or offset >= len(self.file_data):
            raise MalformedContainerError(f"PDF cross-reference offset {offset} outside file")
        parser = PDFObjectParser(self.file_data, offset)
        parser.skip_whitespace()
        if parser.at_keyword(b'xref'):
            section = self._parse_xref_table(parser, offset)
        else:
            section = self._parse_xref_stream(offset)
        self._section_cache[offset] = section
        return section

    def _parse_xref_table(self, parser: PDFObjectParser, offset: int) -> XRefSection:
        data = self.file_data
        parser.pos += 4
        entries: Dict[int, Tuple[int, int, int]] = {}
        while True:
            parser.skip_whitespace()
            if parser.at_keyword(b'trailer'):
                parser.pos += len(b'trailer')
                break
            header = _XREF_SUBSECTION_RE.match(data, parser.pos)
            if not header:
                raise MalformedContainerError(f"Malformed PDF xref table at offset {parser.pos}")
            first, count = int(header.group(1)), int(header.group(2))
            parser.pos = header.end()
            for i in range(count):
                entry = _XREF_ENTRY_RE.match(data, parser.pos)
                if not entry:
                    raise MalformedContainerError(f"Malformed PDF xref entry at offset {parser.pos}")
                parser.pos = entry.end()
                kind = 1 if entry.group(3) == b'n' else 0
                entries.setdefault(first + i, (kind, int(entry.group(1)), int(entry.group(2))))
        trailer = parser.parse_object()
        if not isinstance(trailer, PDFDictionary):
            raise MalformedContainerError("PDF trailer is not a dictionary")
        return XRefSection(offset, False, entries, trailer)

    def _parse_xref_stream(self, offset: int) -> XRefSection:
        obj = self._parse_indirect_object(offset)
        dictionary = obj.value
        if obj.stream is None or not isinstance(dictionary, PDFDictionary) or dictionary.get('Type') != 'XRef':
            raise MalformedContainerError(f"No cross-reference table or stream at offset {offset}")
        widths = dictionary.get('W')
        if not isinstance(widths, list) or len(widths) != 3:
            raise MalformedContainerError("PDF cross-reference stream has invalid /W")
        widths = [pdf_integer(width, "cross-reference stream /W entry") for width in widths]
        size = pdf_integer(dictionary.get('Size', 0), "cross-reference stream /Size")
        index = dictionary.get('Index', [0, size])
        if not isinstance(index, list) or len(index) % 2:
            raise MalformedContainerError("PDF cross-reference stream has invalid /Index")
        index = [pdf_integer(value, "cross-reference stream /Index entry") for value in index]
        data = decode_stream(dictionary, obj.stream)
        row = sum(widths)
        if row == 0:
            raise MalformedContainerError("PDF cross-reference stream has zero-width rows")

        entries: Dict[int, Tuple[int, int, int]] = {}
        pos = 0
        for first, count in zip(index[0::2], index[1::2]):
            for num in range(first, first + count):
                if pos + row > len(data):
                    raise MalformedContainerError("PDF cross-reference stream truncated")
                fields = []
                for width in widths:
                    fields.append(int.from_bytes(data[pos:pos + width], 'big') if width else None)
                    pos += width
                kind = 1 if fields[0] is None else fields[0]
                entries.setdefault(num, (kind, fields[1] or 0, fields[2] or 0))
        return XRefSection(offset, True, entries, dictionary)

    def _find_entry(self, num: int) -> Optional[Tuple[int, int, int]]:
        """
        Look an object up in the last section, then through /XRefStm and /Prev.
        """
        visited: Set[int] = set()
        pending = [self.startxref]
        while pending:
            offset = pending.pop(0)
            if offset in visited:
                continue
            if len(visited) >= MAX_XREF_SECTIONS:
                raise MalformedContainerError("PDF cross-reference chain too long")
            visited.add(offset)
            try:
                section = self._load_section(offset)
            except MalformedContainerError:
                # Earlier sections of a damaged file fall back to scanning
                if not self.reconstructed:
                    raise
                continue
            if num in section.entries:
                return section.entries[num]
            if section.xref_stream is not None:
                pending.insert(0, section.xref_stream)
            if section.prev is not None:
                pending.append(section.prev)
        return None

    def get_object(self, num: int) -> Optional[PDFIndirectObject]:
        """Load an indirect object by number, or None if it is free or absent."""
        if num in self._object_cache:
            return self._object_cache[num]
        entry = self._find_entry(num)
        obj = None
        if entry is not None:
            kind, a, b = entry
            if kind == 1:
                obj = self._parse_indirect_object(a, expected=num)
            elif kind == 2:
                obj = self._load_from_object_stream(num, a, b)
            else:
                return None
        if obj is None:
            obj = self._scan_for_object(num)
        if obj is not None:
            self._object_cache[num] = obj
        return obj

    def resolve(self, value: Any) -> Any:
        """Follow indirect references to a direct value."""
        seen = set()
        while isinstance(value, PDFRef):
            if value.num in seen:
                raise MalformedContainerError(f"PDF reference cycle at object {value.num}")
            seen.add(value.num)
            obj = self.get_object(value.num)
            value = obj.value if obj is not None else None
        return value

    def _parse_indirect_object(self, offset: int, expected: Optional[int] = None) -> PDFIndirectObject:
        if offset < 0 or offset >= len(self.file_data):
            raise MalformedContainerError(f"PDF object offset {offset} outside file")
        parser = PDFObjectParser(self.file_data, offset)
        num = parser.read_int()
        gen = parser.read_int()
        parser.expect_keyword(b'obj')
        if expected is not None and num != expected:
            found = self._scan_for_object(expected)
            if found is None:
                raise MalformedContainerError(f"PDF xref points object {expected} at object {num}")
            return found
        value = parser.parse_object()
        stream = None
        parser.skip_whitespace()
        if isinstance(value, PDFDictionary) and parser.at_keyword(b'stream'):
            stream = self._read_stream(parser, value)
        return PDFIndirectObject(num, gen, value, offset, stream)

    def _read_stream(self, parser: PDFObjectParser, dictionary: PDFDictionary) -> bytes:
        data = self.file_data
        start = parser.pos + len(b'stream')
        if data[start:start + 2] == b'\r\n':
            start += 2
        elif data[start:start + 1] in (b'\n', b'\r'):
            start += 1
        length = dictionary.get('Length')
        if isinstance(length, PDFRef):
            length = self.resolve(length)
        end = start + length if isinstance(length, int) and length >= 0 else -1
        if end < 0 or end > len(data) or b'endstream' not in data[end:end + 32]:
            # Wrong or unresolvable /Length: fall back to the endstream keyword
            end = data.find(b'endstream', start)
            if end == -1:
                raise MalformedContainerError("PDF stream without endstream")
            if data[end - 2:end] == b'\r\n':
                end -= 2
            elif data[end - 1:end] in (b'\n', b'\r'):
                end -= 1
        return bytes(data[start:end])

    def _load_from_object_stream(self, num: int, stream_num: int, index: int) -> Optional[PDFIndirectObject]:
        container = self.get_object(stream_num)
        if container is None or container.stream is None or not isinstance(container.value, PDFDictionary):
            raise MalformedContainerError(f"PDF object stream {stream_num} not found")
        data = decode_stream(container.value, container.stream)
        count = pdf_integer(container.value.get('N', 0), "object stream /N")
        first = pdf_integer(container.value.get('First', 0), "object stream /First")
        parser = PDFObjectParser(data)
        pairs = [(parser.read_int(), parser.read_int()) for _ in range(count)]
        for obj_num, rel_offset in pairs:
            if obj_num == num:
                parser = PDFObjectParser(data, first + rel_offset)
                return PDFIndirectObject(num, 0, parser.parse_object(), None)
        return None

    def _scan_for_object(self, num: int) -> Optional[PDFIndirectObject]:
        """Find the last "num G obj" in the file when the xref does not locate it."""
        pattern = re.compile(rb'(?<![0-9])' + str(num).encode('ascii') + rb'[ \t\r\n\x0c]+\d+[ \t\r\n\x0c]+obj\b')
        matches = list(pattern.finditer(self.file_data))
        if not matches:
            return None
        logger.warning("PDF object %d located by scanning, not through the xref", num)
        offset = matches[-1].start()
        return self._parse_indirect_object(offset)

    def info_reference(self) -> Optional[PDFRef]:
        info = self.trailer.get('Info')
        return info if isinstance(info, PDFRef) else None

    def info_object(self) -> Optional[PDFIndirectObject]:
        """
        Return the indirect object holding the Info dictionary.

        Raises:
            MalformedContainerError: If /Info does not resolve to a dictionary
        """
        ref = self.info_reference()
        if ref is None:
            if isinstance(self.trailer.get('Info'), PDFDictionary):
                return PDFIndirectObject(0, 0, self.trailer.get('Info'), None)
            return None
        obj = self.get_object(ref.num)
        if obj is None:
            return None
        if not isinstance(obj.value, PDFDictionary):
            raise MalformedContainerError("PDF /Info is not a dictionary")
        return obj

    def info_field(self, key: str, value: Any, span: Optional[Tuple[int, int]]) -> MetadataField:
        """Convert one Info dictionary entry into a MetadataField."""
        if isinstance(value, PDFRef):
            value = self.resolve(value)
            span = None
        offset, length = (span[0], span[1] - span[0]) if span else (None, None)
        if isinstance(value, PDFString):
            text = decode_text_string(value)
            if key in DATE_KEYS:
                parsed = parse_pdf_date(text)
                if parsed is not None:
                    return MetadataField(key, parsed, ValueKind.TIMESTAMP, offset, length)
            return MetadataField(key, text, ValueKind.TEXT, offset, length)
        if isinstance(value, PDFName):
            return MetadataField(key, str(value), ValueKind.TEXT, offset, length)
        if isinstance(value, bool):
            return MetadataField(key, 'true' if value else 'false', ValueKind.TEXT, offset, length)
        if isinstance(value, int):
            return MetadataField(key, value, ValueKind.INTEGER, offset, length)
        if isinstance(value, float):
            return MetadataField(key, repr(value), ValueKind.TEXT, offset, length)
        raw = self.file_data[span[0]:span[1]] if span else repr(value).encode('utf-8')
        return MetadataField(key, bytes(raw), ValueKind.BYTES, offset, length)

    def to_metadata(self) -> MetadataSet:
        """Build the MetadataSet from the Document Information dictionary."""
        metadata = MetadataSet()
        obj = self.info_object()
        if obj is None:
            return metadata
        info: PDFDictionary = obj.value
        in_file = obj.offset is not None
        for key, value in info.entries.items():
            span = info.spans[key] if in_file else None
            metadata.add(self.info_field(key, value, span))
        return metadata


def read_pdf(file_data: bytes) -> MetadataSet:
    """Parse a PDF buffer and return its document metadata."""
    return PDFDocument(file_data).parse().to_metadata()
