# Copyright 2025 DNAi inc.

# Dual-licensed under the DNAi Free License v1.1 and the
# DNAi Commercial License v1.1.
# See the LICENSE files in the project root for details.

"""
TIFF file structure parser

This module parses the TIFF header and Image File Directories (IFDs)
into located entries, and converts the descriptive directories (IFD0,
Exif and GPS) into a MetadataSet.

Copyright 2025 DNAi inc.
"""

import logging
import struct
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from dnmeta.date_formatter import parse_exif_datetime
from dnmeta.exceptions import MalformedContainerError, UnsupportedFormatError
from dnmeta.metadata_model import MetadataField, MetadataSet, Rational, ValueKind
from dnmeta.tiff_tags import (
    EXIF_IFD, GPS_IFD, IFD0, INTEGER_FORMATS, SUB_IFD_POINTERS, TAGS_BY_ID,
    TYPE_SIZES, TiffType, kind_for_type, tag_name,
)

logger = logging.getLogger(__name__)

# Upper bound on directories in the IFD chain
MAX_IFDS = 64

ENTRY_SIZE = 12


@dataclass
class IFDEntry:
    """One 12-byte directory entry with its value bytes located in the file."""
    tag_id: int
    tag_type: int
    count: int
    entry_offset: int
    value_offset: int  # absolute offset of the value bytes
    value_bytes: bytes

    @property
    def is_inline(self) -> bool:
        return self.value_offset == self.entry_offset + 8

    @property
    def value_size(self) -> int:
        return len(self.value_bytes)


@dataclass
class IFD:
    """A parsed Image File Directory."""
    group: str
    offset: int
    entries: List[IFDEntry] = field(default_factory=list)
    next_offset: int = 0

    @property
    def size(self) -> int:
        return 2 + ENTRY_SIZE * len(self.entries) + 4

    def find(self, tag_id: int) -> Optional[IFDEntry]:
        for entry in self.entries:
            if entry.tag_id == tag_id:
                return entry
        return None


class TIFFStructure:
    """
    TIFF file structure parser.

    Walks the IFD chain starting at IFD0 and the Exif/GPS sub-IFDs it
    points to. Every offset is bounds-checked and every directory offset
    may be visited only once, so malformed or hostile files fail with
    MalformedContainerError instead of looping.
    """

    def __init__(self, file_data: bytes):
        """
        Initialize TIFF structure parser.

        Args:
            file_data: TIFF file data
        """
        self.file_data = file_data
        self.endian: str = '<'
        self.ifd0_offset: int = 0
        self.ifds: List[IFD] = []
        self._visited: Dict[int, str] = {}

    def parse(self) -> 'TIFFStructure':
        """
        Parse the TIFF header and all reachable directories.

        Returns:
            self, for chaining

        Raises:
            MalformedContainerError: If the structure is invalid
            UnsupportedFormatError: For BigTIFF files
        """
        data = self.file_data
        if len(data) < 8:
            raise MalformedContainerError("Invalid TIFF file: too short")

        # Determine endianness
        if data[:2] == b'II':
            self.endian = '<'
        elif data[:2] == b'MM':
            self.endian = '>'
        else:
            raise MalformedContainerError("Invalid TIFF file: bad byte order")

        magic = self._unpack('H', 2)
        if magic == 43:
            raise UnsupportedFormatError("BigTIFF files are not supported")
        if magic != 42:
            raise MalformedContainerError(f"Invalid TIFF file: bad magic number {magic}")

        self.ifd0_offset = self._unpack('I', 4)
        if self.ifd0_offset == 0:
            raise MalformedContainerError("Invalid TIFF file: no IFD0")

        # Main chain: IFD0, IFD1, ...
        offset = self.ifd0_offset
        index = 0
        while offset:
            if index >= MAX_IFDS:
                raise MalformedContainerError(f"TIFF IFD chain longer than {MAX_IFDS} directories")
            ifd = self._parse_ifd(offset, f"IFD{index}")
            self.ifds.append(ifd)
            offset = ifd.next_offset
            index += 1

        # Exif and GPS sub-IFDs hang off IFD0
        ifd0 = self.ifds[0]
        for pointer_tag, group in SUB_IFD_POINTERS.items():
            entry = ifd0.find(pointer_tag)
            if entry is None:
                continue
            if entry.count != 1 or entry.tag_type not in (TiffType.LONG, TiffType.IFD):
                raise MalformedContainerError(f"Invalid {group} pointer entry")
            sub_offset = struct.unpack(f'{self.endian}I', entry.value_bytes)[0]
            if sub_offset:
                self.ifds.append(self._parse_ifd(sub_offset, group))

        return self

    def _unpack(self, fmt: str, offset: int) -> Any:
        size = struct.calcsize(fmt)
        if offset < 0 or offset + size > len(self.file_data):
            raise MalformedContainerError(f"TIFF read past end of buffer at offset {offset}")
        return struct.unpack(f'{self.endian}{fmt}', self.file_data[offset:offset + size])[0]

    def _parse_ifd(self, offset: int, group: str) -> IFD:
        """
        Parse one IFD.

        Args:
            offset: Absolute offset of the directory
            group: Directory group name

        Returns:
            Parsed IFD
        """
        if offset in self._visited:
            raise MalformedContainerError(
                f"Cyclic TIFF directory: {group} at offset {offset} already read as {self._visited[offset]}"
            )
        if offset < 8 or offset + 2 > len(self.file_data):
            raise MalformedContainerError(f"{group} offset {offset} outside file")
        self._visited[offset] = group

        num_entries = self._unpack('H', offset)
        end = offset + 2 + num_entries * ENTRY_SIZE
        if end + 4 > len(self.file_data):
            raise MalformedContainerError(f"{group} truncated: {num_entries} entries at offset {offset}")

        ifd = IFD(group=group, offset=offset)
        for i in range(num_entries):
            ifd.entries.append(self._parse_entry(offset + 2 + i * ENTRY_SIZE, group))
        ifd.next_offset = self._unpack('I', end)
        return ifd

    def _parse_entry(self, entry_offset: int, group: str) -> IFDEntry:
        tag_id = self._unpack('H', entry_offset)
        tag_type = self._unpack('H', entry_offset + 2)
        count = self._unpack('I', entry_offset + 4)

        try:
            type_size = TYPE_SIZES[TiffType(tag_type)]
        except ValueError:
            # Unknown field type: keep the raw 4-byte value field
            value_offset = entry_offset + 8
            return IFDEntry(tag_id, tag_type, count, entry_offset, value_offset,
                            self.file_data[value_offset:value_offset + 4])

        total = type_size * count
        if total <= 4:
            value_offset = entry_offset + 8
        else:
            value_offset = self._unpack('I', entry_offset + 8)
            if value_offset + total > len(self.file_data):
                raise MalformedContainerError(
                    f"{group} tag 0x{tag_id:04X} value ({total} bytes at {value_offset}) "
                    f"extends past end of file"
                )
        return IFDEntry(tag_id, tag_type, count, entry_offset, value_offset,
                        self.file_data[value_offset:value_offset + total])

    def get_ifd(self, group: str) -> Optional[IFD]:
        for ifd in self.ifds:
            if ifd.group == group:
                return ifd
        return None

    def decode_value(self, entry: IFDEntry) -> Tuple[ValueKind, Any]:
        """
        Decode an entry's value bytes.

        Returns:
            (kind, value); multi-valued numeric entries yield tuples
        """
        kind = kind_for_type(entry.tag_type)
        data = entry.value_bytes
        if kind is ValueKind.TEXT:
            null_pos = data.find(b'\x00')
            string_data = data[:null_pos] if null_pos >= 0 else data
            try:
                return kind, string_data.decode('utf-8')
            except UnicodeDecodeError:
                return kind, string_data.decode('latin-1')
        if kind is ValueKind.INTEGER:
            fmt = INTEGER_FORMATS[TiffType(entry.tag_type)]
            values = struct.unpack(f'{self.endian}{entry.count}{fmt}', data)
            return kind, values[0] if entry.count == 1 else tuple(values)
        if kind is ValueKind.RATIONAL:
            fmt = 'ii' if entry.tag_type == TiffType.SRATIONAL else 'II'
            pairs = [
                Rational(*struct.unpack(f'{self.endian}{fmt}', data[i * 8:i * 8 + 8]))
                for i in range(entry.count)
            ]
            return kind, pairs[0] if entry.count == 1 else tuple(pairs)
        return ValueKind.BYTES, bytes(data)

    def to_metadata(self) -> MetadataSet:
        """
        Build the MetadataSet for IFD0, Exif and GPS directories.

        Sub-IFD pointer entries are structural and not reported.
        """
        metadata = MetadataSet()
        for group in (IFD0, EXIF_IFD, GPS_IFD):
            ifd = self.get_ifd(group)
            if ifd is None:
                continue
            for entry in ifd.entries:
                if group == IFD0 and entry.tag_id in SUB_IFD_POINTERS:
                    continue
                name = tag_name(group, entry.tag_id)
                if name in metadata:
                    logger.warning("Duplicate TIFF tag %s in %s ignored", name, group)
                    continue
                kind, value = self.decode_value(entry)
                spec = TAGS_BY_ID.get((group, entry.tag_id))
                if spec is not None and spec.timestamp and kind is ValueKind.TEXT:
                    parsed = parse_exif_datetime(value)
                    if parsed is not None:
                        kind, value = ValueKind.TIMESTAMP, parsed
                metadata.add(MetadataField(
                    name=name,
                    value=value,
                    kind=kind,
                    source_offset=entry.value_offset,
                    source_length=entry.value_size,
                ))
        return metadata


def read_tiff(file_data: bytes) -> MetadataSet:
    """Parse a TIFF buffer and return its metadata."""
    return TIFFStructure(file_data).parse().to_metadata()
