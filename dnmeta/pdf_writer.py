# Copyright 2025 DNAi inc.

# Dual-licensed under the DNAi Free License v1.1 and the
# DNAi Commercial License v1.1.
# See the LICENSE files in the project root for details.

"""
PDF metadata writer

This module writes Document Information dictionary edits back into PDF
files.

When every new value serializes to exactly the byte length of the
token it replaces, the tokens are patched in place. Otherwise an
incremental update is appended: a new revision of the Info object, a
cross-reference section of the same kind as the file's last one, and a
trailer chaining back through /Prev. The original bytes are never
modified in that case.

Copyright 2025 DNAi inc.
"""

import logging
import re
import zlib
from typing import Dict, List, Optional, Tuple

from dnmeta.date_formatter import format_pdf_date, parse_iso_datetime, parse_pdf_date
from dnmeta.exceptions import (
    DNMetaError, InvalidFieldValueError, MalformedContainerError,
    UnencodableValueError, UnsupportedFieldError,
)
from dnmeta.metadata_diff import ChangeType, RewriteDiff
from dnmeta.metadata_model import MetadataField, ValueKind
from dnmeta.pdf_parser import (
    DATE_KEYS, DELIMITERS, PDFDictionary, PDFDocument, PDFIndirectObject, encode_pdf_doc,
)
from dnmeta.rewrite_plan import RewritePlan

logger = logging.getLogger(__name__)

# Fields writable when the "basic" Info field policy is selected
BASIC_INFO_FIELDS = ('Title', 'Author', 'Subject')

TRAPPED_VALUES = ('True', 'False', 'Unknown')

# Trailer keys rewritten for every new section
_SECTION_KEYS = {'Size', 'Prev', 'Info', 'XRefStm'}

# Keys that describe an xref stream itself rather than the document
_XREF_STREAM_KEYS = {
    'Type', 'W', 'Index', 'Filter', 'DecodeParms', 'Length', 'DL', 'F', 'FFilter', 'FDecodeParms',
}

_INVALID_NAME_RE = re.compile(r'[\s/\[\]()<>{}%]')

MAX_CLASSIC_OFFSET = 9999999999


def coerce_pdf_field(
    name: str,
    text: str,
    current: Optional[MetadataField],
    basic_only: bool = False
) -> MetadataField:
    """
    Coerce caller text to the type of a PDF Info entry.

    CreationDate and ModDate take ISO-8601 or PDF date syntax, Trapped
    takes True/False/Unknown, existing integer entries take integers,
    and every other key takes text.

    Raises:
        UnsupportedFieldError: If the key cannot be a PDF name, or is
            outside the basic field set when that policy is active
        InvalidFieldValueError: If the text does not parse
        UnencodableValueError: If the text cannot be encoded as UTF-16
    """
    if not name or _INVALID_NAME_RE.search(name):
        raise UnsupportedFieldError(f"'{name}' is not a valid PDF Info key")
    if basic_only and name not in BASIC_INFO_FIELDS:
        raise UnsupportedFieldError(
            f"PDF field '{name}' is not writable (allowed: {', '.join(BASIC_INFO_FIELDS)})"
        )

    if name in DATE_KEYS:
        value = parse_iso_datetime(text) or parse_pdf_date(text)
        if value is None:
            raise InvalidFieldValueError(f"{name}: '{text}' is not a date/time")
        return MetadataField(name, value, ValueKind.TIMESTAMP)

    if name == 'Trapped':
        for candidate in TRAPPED_VALUES:
            if text.strip().lower() == candidate.lower():
                return MetadataField(name, candidate, ValueKind.TEXT)
        raise InvalidFieldValueError(f"Trapped must be one of {', '.join(TRAPPED_VALUES)}")

    if current is not None and current.kind is ValueKind.INTEGER:
        try:
            return MetadataField(name, int(text.strip()), ValueKind.INTEGER)
        except ValueError:
            raise InvalidFieldValueError(f"{name}: '{text}' is not an integer")

    try:
        text.encode('utf-16-be')
    except UnicodeEncodeError:
        raise UnencodableValueError(f"{name}: text cannot be encoded in a PDF string")
    return MetadataField(name, text, ValueKind.TEXT)


def encode_name(name: str) -> bytes:
    """Serialize a PDF name, escaping irregular bytes as #xx."""
    out = bytearray(b'/')
    for b in name.encode('utf-8'):
        if 0x21 <= b <= 0x7E and b not in DELIMITERS and b != 0x23:
            out.append(b)
        else:
            out += b'#%02X' % b
    return bytes(out)


def _literal(data: bytes) -> bytes:
    escaped = (
        data.replace(b'\\', b'\\\\')
        .replace(b'(', b'\\(')
        .replace(b')', b'\\)')
        .replace(b'\r', b'\\r')
        .replace(b'\n', b'\\n')
    )
    return b'(' + escaped + b')'


def _hex(data: bytes) -> bytes:
    return b'<' + data.hex().upper().encode('ascii') + b'>'


def string_tokens(text: str) -> List[bytes]:
    """
    Candidate serializations of a text string, preferred one first.

    PDFDocEncoding is used when every character fits it, as a literal
    and as a hex string; UTF-16BE with a byte order mark always works.
    """
    tokens = []
    encoded = encode_pdf_doc(text)
    if encoded is not None and not encoded.startswith((b'\xfe\xff', b'\xef\xbb\xbf')):
        tokens.append(_literal(encoded))
        tokens.append(_hex(encoded))
    tokens.append(_hex(b'\xfe\xff' + text.encode('utf-16-be')))
    return tokens


def value_tokens(field: MetadataField) -> List[bytes]:
    """Candidate serializations of a field value, preferred one first."""
    if field.kind is ValueKind.TIMESTAMP:
        return string_tokens(format_pdf_date(field.value))
    if field.kind is ValueKind.INTEGER:
        return [str(field.value).encode('ascii')]
    if field.kind is ValueKind.TEXT:
        if field.name == 'Trapped' and field.value in TRAPPED_VALUES:
            return [encode_name(field.value)]
        return string_tokens(field.value)
    raise UnsupportedFieldError(f"PDF field '{field.name}' cannot be written as {field.kind.value}")


class PDFWriter:
    """
    Writer for the PDF Document Information dictionary.
    """

    def __init__(self, validate: bool = True):
        """
        Initialize PDF writer.

        Args:
            validate: Re-parse the output after an incremental update
        """
        self.validate = validate

    def write(self, file_data: bytes, diff: RewriteDiff) -> bytes:
        """
        Apply a validated diff to a PDF buffer.

        Args:
            file_data: Original PDF file data
            diff: Changes produced by the field editor

        Returns:
            New PDF file data
        """
        if diff.is_empty:
            return bytes(file_data)

        document = PDFDocument(file_data).parse()
        info_obj = document.info_object()

        patches = self._in_place_patches(diff)
        if patches is not None:
            logger.debug("PDF: patching %d Info value(s) in place", len(patches))
            return RewritePlan.patched(file_data, patches).render(file_data)

        output = self._incremental_update(file_data, document, info_obj, diff)
        if self.validate:
            self._validate(output, diff)
        return output

    @staticmethod
    def _in_place_patches(diff: RewriteDiff) -> Optional[List[Tuple[int, bytes]]]:
        """Return same-length token patches, or None if any change needs an update section."""
        patches = []
        for change in diff:
            if change.change_type is not ChangeType.CHANGED or not change.old.is_located:
                return None
            for token in value_tokens(change.new):
                if len(token) == change.old.source_length:
                    patches.append((change.old.source_offset, token))
                    break
            else:
                return None
        return patches

    def _build_info(self, info_obj: Optional[PDFIndirectObject], diff: RewriteDiff) -> bytes:
        """Serialize the new Info dictionary, copying untouched entries verbatim."""
        info = info_obj.value if info_obj is not None else PDFDictionary()
        changes = diff.by_name()
        body = bytearray(b'<<')
        for key, raw in info.raw.items():
            change = changes.get(key)
            if change is None:
                token = raw
            elif change.change_type is ChangeType.REMOVED:
                continue
            else:
                token = value_tokens(change.new)[0]
            body += b'\n' + encode_name(key) + b' ' + token
        for change in diff.added:
            body += b'\n' + encode_name(change.name) + b' ' + value_tokens(change.new)[0]
        body += b'\n>>'
        return bytes(body)

    @staticmethod
    def _trailer_entries(document: PDFDocument, exclude: set) -> bytes:
        out = bytearray()
        for key, raw in document.trailer.raw.items():
            if key in exclude:
                continue
            out += b'\n' + encode_name(key) + b' ' + raw
        return bytes(out)

    def _incremental_update(
        self,
        file_data: bytes,
        document: PDFDocument,
        info_obj: Optional[PDFIndirectObject],
        diff: RewriteDiff
    ) -> bytes:
        """
        Append a new Info revision and a cross-reference section for it.
        """
        size = document.size
        ref = document.info_reference()
        if ref is not None:
            info_num, info_gen = ref.num, ref.gen
        else:
            info_num, info_gen = size, 0
            size += 1

        appended = bytearray()
        if not file_data.endswith((b'\n', b'\r')):
            appended += b'\n'
        base = len(file_data)
        offsets: Dict[int, Tuple[int, int]] = {info_num: (base + len(appended), info_gen)}
        appended += b'%d %d obj\n' % (info_num, info_gen)
        appended += self._build_info(info_obj, diff)
        appended += b'\nendobj\n'

        xref_offset = base + len(appended)
        info_entry = b'\n/Info %d %d R' % (info_num, info_gen)
        prev_entry = b'' if document.prev_offset is None else b'\n/Prev %d' % document.prev_offset

        if document.last_section.is_stream:
            xref_num = size
            size += 1
            offsets[xref_num] = (xref_offset, 0)
            appended += self._xref_stream(document, offsets, size, xref_num, info_entry + prev_entry)
            kind = "xref stream"
        else:
            appended += self._xref_table(document, offsets, size, info_entry + prev_entry)
            kind = "xref table"
        appended += b'startxref\n%d\n%%%%EOF\n' % xref_offset

        logger.debug(
            "PDF: incremental update with %s (%s), %d bytes appended",
            kind, diff.summary(), len(appended)
        )
        plan = RewritePlan(len(file_data))
        plan.copy_rest(0)
        plan.emit(bytes(appended))
        return plan.render(file_data)

    def _xref_table(
        self,
        document: PDFDocument,
        offsets: Dict[int, Tuple[int, int]],
        size: int,
        extra: bytes
    ) -> bytes:
        out = bytearray(b'xref\n')
        for num in sorted(offsets):
            offset, gen = offsets[num]
            if offset > MAX_CLASSIC_OFFSET:
                raise UnencodableValueError("PDF offset too large for a classic cross-reference table")
            out += b'%d 1\n%010d %05d n \n' % (num, offset, gen)
        out += b'trailer\n<<\n/Size %d' % size
        out += self._trailer_entries(document, _SECTION_KEYS)
        out += extra
        out += b'\n>>\n'
        return bytes(out)

    def _xref_stream(
        self,
        document: PDFDocument,
        offsets: Dict[int, Tuple[int, int]],
        size: int,
        xref_num: int,
        extra: bytes
    ) -> bytes:
        largest = max(offset for offset, _ in offsets.values())
        width = max(4, (largest.bit_length() + 7) // 8)
        rows = bytearray()
        index = []
        for num in sorted(offsets):
            offset, gen = offsets[num]
            if gen > 0xFFFF:
                raise UnencodableValueError(f"PDF generation number {gen} too large")
            rows += b'\x01' + offset.to_bytes(width, 'big') + gen.to_bytes(2, 'big')
            index += [num, 1]
        data = zlib.compress(bytes(rows))

        out = bytearray(b'%d 0 obj\n<<\n/Type /XRef\n/Size %d' % (xref_num, size))
        out += b'\n/W [1 %d 2]' % width
        out += b'\n/Index [' + b' '.join(b'%d' % n for n in index) + b']'
        out += b'\n/Filter /FlateDecode\n/Length %d' % len(data)
        out += self._trailer_entries(document, _SECTION_KEYS | _XREF_STREAM_KEYS)
        out += extra
        out += b'\n>>\nstream\n' + data + b'\nendstream\nendobj\n'
        return bytes(out)

    @staticmethod
    def _validate(output: bytes, diff: RewriteDiff) -> None:
        """Re-read the updated file and check every edit landed."""
        try:
            metadata = PDFDocument(output).parse().to_metadata()
        except DNMetaError as e:
            raise MalformedContainerError(f"Rewritten PDF failed validation: {e.message}")
        for change in diff:
            if change.change_type is ChangeType.REMOVED:
                if change.name in metadata:
                    raise MalformedContainerError(f"Rewritten PDF still contains {change.name}")
            elif change.name not in metadata:
                raise MalformedContainerError(f"Rewritten PDF is missing {change.name}")
