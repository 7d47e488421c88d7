# Copyright 2025 DNAi inc.

# Dual-licensed under the DNAi Free License v1.1 and the
# DNAi Commercial License v1.1.
# See the LICENSE files in the project root for details.

"""
TIFF metadata writer

This module writes edited metadata back into TIFF files.

Values whose encoding keeps the entry's type, count and byte length are
patched in place. Anything else triggers a relayout: the affected
directories are re-serialized and appended after the original bytes,
which stay where they are, so strip and tile offsets remain valid.
The header (or the parent directory's sub-IFD pointer) is then
re-pointed at the new directory.

Copyright 2025 DNAi inc.
"""

import logging
import re
import struct
from typing import Dict, List, Optional, Tuple

from dnmeta.date_formatter import format_exif_datetime, parse_exif_datetime, parse_iso_datetime
from dnmeta.exceptions import (
    DNMetaError, InvalidFieldValueError, MalformedContainerError,
    UnencodableValueError, UnsupportedFieldError,
)
from dnmeta.metadata_diff import ChangeType, FieldChange, RewriteDiff
from dnmeta.metadata_model import MetadataField, MetadataSet, Rational, ValueKind
from dnmeta.rewrite_plan import RewritePlan
from dnmeta.tiff_structure import ENTRY_SIZE, IFD, IFDEntry, TIFFStructure
from dnmeta.tiff_tags import (
    EXIF_IFD, EXIF_IFD_POINTER, GPS_IFD, GPS_IFD_POINTER, IFD0, INTEGER_FORMATS,
    INTEGER_RANGES, TAGS_BY_ID, TAGS_BY_NAME, TiffType, parse_tag_name,
)

logger = logging.getLogger(__name__)

MAX_TIFF_SIZE = 0xFFFFFFFF

# (tag type, count, value bytes)
EncodedValue = Tuple[int, int, bytes]

_SUB_IFDS = ((EXIF_IFD, EXIF_IFD_POINTER), (GPS_IFD, GPS_IFD_POINTER))


def coerce_tiff_field(name: str, text: str, current: Optional[MetadataField]) -> MetadataField:
    """
    Coerce caller text to the native type of a writable TIFF tag.

    Args:
        name: Field name (tag name)
        text: Requested value as text
        current: The field as read from the file, if present

    Returns:
        New MetadataField without source location

    Raises:
        UnsupportedFieldError: If the tag is unknown or structural
        InvalidFieldValueError: If the text does not parse as the tag's type
        UnencodableValueError: If text is not 7-bit ASCII
    """
    spec = TAGS_BY_NAME.get(name)
    if spec is None or not spec.writable:
        raise UnsupportedFieldError(f"TIFF field '{name}' is not writable")

    kind = spec.kind
    if kind is ValueKind.TEXT:
        if '\x00' in text:
            raise InvalidFieldValueError(f"{name}: text may not contain NUL characters")
        if not text.isascii():
            raise UnencodableValueError(f"{name}: TIFF ASCII fields only hold 7-bit ASCII text")
        return MetadataField(name, text, kind)

    if kind is ValueKind.TIMESTAMP:
        value = parse_exif_datetime(text) or parse_iso_datetime(text)
        if value is None:
            raise InvalidFieldValueError(f"{name}: '{text}' is not a date/time")
        return MetadataField(name, value, kind)

    tokens = [t for t in re.split(r'[\s,]+', text.strip()) if t]
    if spec.count is not None and len(tokens) != spec.count:
        raise InvalidFieldValueError(f"{name}: expected {spec.count} value(s), got {len(tokens)}")

    if kind is ValueKind.INTEGER:
        try:
            values = tuple(int(t) for t in tokens)
        except ValueError:
            raise InvalidFieldValueError(f"{name}: '{text}' is not an integer")
        low, high = INTEGER_RANGES[spec.tag_type]
        if spec.tag_type == TiffType.SHORT:
            high = INTEGER_RANGES[TiffType.LONG][1]
        for v in values:
            if not low <= v <= high:
                raise InvalidFieldValueError(f"{name}: {v} out of range {low}..{high}")
    else:
        try:
            values = tuple(Rational.parse(t) for t in tokens)
        except ValueError:
            raise InvalidFieldValueError(f"{name}: '{text}' is not a rational number")
        for v in values:
            if v.denominator == 0:
                raise InvalidFieldValueError(f"{name}: zero denominator")
            if spec.tag_type == TiffType.RATIONAL and (v.numerator < 0 or v.denominator < 0):
                raise InvalidFieldValueError(f"{name}: negative value for unsigned rational")

    if not values:
        raise InvalidFieldValueError(f"{name}: no value given")
    return MetadataField(name, values[0] if len(values) == 1 else values, kind)


class TIFFWriter:
    """
    TIFF writer with file structure preservation.

    Pixel data and every byte the edit does not touch are copied from
    the original buffer unchanged.
    """

    def __init__(self, validate: bool = True):
        """
        Initialize TIFF writer.

        Args:
            validate: Re-parse the output after a relayout
        """
        self.validate = validate

    def write(self, file_data: bytes, diff: RewriteDiff) -> bytes:
        """
        Apply a validated diff to a TIFF buffer.

        Args:
            file_data: Original TIFF file data
            diff: Changes produced by the field editor

        Returns:
            New TIFF file data

        Raises:
            MalformedContainerError: If the original or rewritten structure is invalid
            UnencodableValueError: If a value or the output exceeds TIFF limits
        """
        if diff.is_empty:
            return bytes(file_data)

        structure = TIFFStructure(file_data).parse()

        # Encode every change first so patch eligibility is known per directory
        work: List[Tuple[str, int, FieldChange, Optional[EncodedValue]]] = []
        relayout_groups = set()
        for change in diff:
            location = parse_tag_name(change.name)
            if location is None:
                raise UnsupportedFieldError(f"TIFF field '{change.name}' is not writable")
            group, tag_id = location
            ifd = structure.get_ifd(group)
            entry = ifd.find(tag_id) if ifd is not None else None

            if change.change_type is ChangeType.REMOVED:
                if entry is not None:
                    work.append((group, tag_id, change, None))
                    relayout_groups.add(group)
                continue

            encoded = self._encode(group, tag_id, change.new, entry, structure.endian)
            work.append((group, tag_id, change, encoded))
            if not self._can_patch(change, entry, encoded):
                relayout_groups.add(group)

        # A directory that does not exist yet needs a pointer in IFD0
        for group, _ in _SUB_IFDS:
            if group in relayout_groups and structure.get_ifd(group) is None:
                relayout_groups.add(IFD0)

        patches: List[Tuple[int, bytes]] = []
        pending: Dict[str, Dict[int, Optional[EncodedValue]]] = {g: {} for g in relayout_groups}
        for group, tag_id, change, encoded in work:
            if group in relayout_groups:
                pending[group][tag_id] = encoded
            else:
                patches.append((change.old.source_offset, encoded[2]))

        if not pending:
            logger.debug("TIFF: patching %d value(s) in place", len(patches))
            return RewritePlan.patched(file_data, patches).render(file_data)

        output = self._relayout(file_data, structure, patches, pending)
        if self.validate:
            self._validate(output, diff)
        return output

    @staticmethod
    def _can_patch(change: FieldChange, entry: Optional[IFDEntry], encoded: EncodedValue) -> bool:
        if entry is None or change.old is None or not change.old.is_located:
            return False
        tag_type, count, data = encoded
        return (
            entry.tag_type == tag_type
            and entry.count == count
            and len(data) == change.old.source_length
            and change.old.source_offset == entry.value_offset
        )

    def _encode(
        self,
        group: str,
        tag_id: int,
        field: MetadataField,
        entry: Optional[IFDEntry],
        endian: str
    ) -> EncodedValue:
        """
        Serialize a typed value for a tag.

        An existing entry's type is kept when the value still fits it.

        Returns:
            (tag type, count, value bytes)
        """
        spec = TAGS_BY_ID.get((group, tag_id))
        if spec is None or not spec.writable:
            raise UnsupportedFieldError(f"TIFF field '{field.name}' is not writable")

        if field.kind is ValueKind.TIMESTAMP:
            data = format_exif_datetime(field.value).encode('ascii') + b'\x00'
            return TiffType.ASCII, len(data), data

        if field.kind is ValueKind.TEXT:
            try:
                data = field.value.encode('ascii') + b'\x00'
            except UnicodeEncodeError:
                raise UnencodableValueError(f"{field.name}: TIFF ASCII fields only hold 7-bit ASCII text")
            return TiffType.ASCII, len(data), data

        values = field.value if isinstance(field.value, tuple) else (field.value,)

        if field.kind is ValueKind.INTEGER:
            candidates = []
            if entry is not None and entry.tag_type in INTEGER_FORMATS:
                candidates.append(TiffType(entry.tag_type))
            candidates.append(spec.tag_type)
            if spec.tag_type == TiffType.SHORT:
                candidates.append(TiffType.LONG)
            for tag_type in candidates:
                low, high = INTEGER_RANGES[tag_type]
                if all(low <= v <= high for v in values):
                    fmt = INTEGER_FORMATS[tag_type]
                    return tag_type, len(values), struct.pack(f'{endian}{len(values)}{fmt}', *values)
            raise UnencodableValueError(f"{field.name}: value out of range for TIFF type")

        if field.kind is ValueKind.RATIONAL:
            tag_type = spec.tag_type
            if entry is not None and entry.tag_type in (TiffType.RATIONAL, TiffType.SRATIONAL):
                tag_type = TiffType(entry.tag_type)
            fmt, low, high = ('ii', -0x80000000, 0x7FFFFFFF) if tag_type == TiffType.SRATIONAL else ('II', 0, 0xFFFFFFFF)
            data = bytearray()
            for v in values:
                if not (low <= v.numerator <= high and low <= v.denominator <= high):
                    raise UnencodableValueError(f"{field.name}: {v} out of range for TIFF rational")
                data += struct.pack(f'{endian}{fmt}', v.numerator, v.denominator)
            return tag_type, len(values), bytes(data)

        raise UnsupportedFieldError(f"TIFF field '{field.name}' holds binary data and is not writable")

    def _relayout(
        self,
        file_data: bytes,
        structure: TIFFStructure,
        patches: List[Tuple[int, bytes]],
        pending: Dict[str, Dict[int, Optional[EncodedValue]]]
    ) -> bytes:
        """
        Append re-serialized directories and re-point their parents.
        """
        endian = structure.endian
        base = len(file_data)
        appended = bytearray()
        if base % 2:
            appended += b'\x00'  # IFDs start on a word boundary

        new_offsets: Dict[str, int] = {}
        for group, _ in _SUB_IFDS:
            if group in pending:
                at = base + len(appended)
                appended += self._build_ifd(
                    file_data, structure.get_ifd(group), pending[group], at, endian, {}
                )
                new_offsets[group] = at

        ifd0 = structure.ifds[0]
        if IFD0 in pending:
            pointers = {tag: new_offsets[group] for group, tag in _SUB_IFDS if group in new_offsets}
            at = base + len(appended)
            appended += self._build_ifd(file_data, ifd0, pending[IFD0], at, endian, pointers)
            patches.append((4, struct.pack(f'{endian}I', at)))
        else:
            for group, pointer_tag in _SUB_IFDS:
                if group in new_offsets:
                    entry = ifd0.find(pointer_tag)
                    patches.append((entry.entry_offset + 8, struct.pack(f'{endian}I', new_offsets[group])))

        if base + len(appended) > MAX_TIFF_SIZE:
            raise UnencodableValueError("Rewritten TIFF would exceed 4 GiB")

        logger.debug(
            "TIFF: relayout of %s, %d bytes appended, %d in-place patch(es)",
            ", ".join(sorted(pending)), len(appended), len(patches)
        )
        plan = RewritePlan.patched(file_data, patches)
        plan.emit(bytes(appended))
        return plan.render(file_data)

    def _build_ifd(
        self,
        file_data: bytes,
        original: Optional[IFD],
        changes: Dict[int, Optional[EncodedValue]],
        at: int,
        endian: str,
        pointers: Dict[int, int]
    ) -> bytes:
        """
        Serialize one directory to be placed at absolute offset `at`.

        Untouched entries are copied verbatim, so their out-of-line values
        keep pointing at the original bytes. New values follow the
        directory, each starting on a word boundary.
        """
        entries: Dict[int, object] = {}
        if original is not None:
            for entry in original.entries:
                entries.setdefault(entry.tag_id, entry)
        for tag_id, encoded in changes.items():
            if encoded is None:
                entries.pop(tag_id, None)
            else:
                entries[tag_id] = encoded
        for tag_id, offset in pointers.items():
            entries[tag_id] = (TiffType.LONG, 1, struct.pack(f'{endian}I', offset))

        if len(entries) > 0xFFFF:
            raise UnencodableValueError("Too many entries for one TIFF directory")

        value_base = at + 2 + ENTRY_SIZE * len(entries) + 4
        directory = bytearray(struct.pack(f'{endian}H', len(entries)))
        values = bytearray()
        for tag_id in sorted(entries):
            item = entries[tag_id]
            if isinstance(item, IFDEntry):
                directory += file_data[item.entry_offset:item.entry_offset + ENTRY_SIZE]
                continue
            tag_type, count, data = item
            if len(data) <= 4:
                value_field = data.ljust(4, b'\x00')
            else:
                value_field = struct.pack(f'{endian}I', value_base + len(values))
                values += data
                if len(values) % 2:
                    values += b'\x00'
            directory += struct.pack(f'{endian}HHI', tag_id, tag_type, count) + value_field

        next_offset = original.next_offset if original is not None else 0
        directory += struct.pack(f'{endian}I', next_offset)
        return bytes(directory + values)

    @staticmethod
    def _validate(output: bytes, diff: RewriteDiff) -> None:
        """Re-read the rewritten file and check every edit landed."""
        try:
            metadata: MetadataSet = TIFFStructure(output).parse().to_metadata()
        except DNMetaError as e:
            raise MalformedContainerError(f"Rewritten TIFF failed validation: {e.message}")
        for change in diff:
            if change.change_type is ChangeType.REMOVED:
                if change.name in metadata:
                    raise MalformedContainerError(f"Rewritten TIFF still contains {change.name}")
            elif change.name not in metadata:
                raise MalformedContainerError(f"Rewritten TIFF is missing {change.name}")
