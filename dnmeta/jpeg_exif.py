# Copyright 2025 DNAi inc.

# Dual-licensed under the DNAi Free License v1.1 and the
# DNAi Commercial License v1.1.
# See the LICENSE files in the project root for details.

"""
JPEG Exif container

A JPEG file carries its Exif metadata as a complete TIFF structure inside
an APP1 segment that starts with "Exif\\0\\0". This module locates that
segment, reads the embedded TIFF with the TIFF reader and writes edits
with the TIFF writer, then re-frames the segment length. Entropy-coded
image data and every other segment are copied unchanged.

Copyright 2025 DNAi inc.
"""

import dataclasses
import logging
import struct
from typing import List, Optional, Tuple

from dnmeta.exceptions import DNMetaError, MalformedContainerError, UnencodableValueError
from dnmeta.metadata_diff import RewriteDiff
from dnmeta.metadata_model import MetadataSet
from dnmeta.rewrite_plan import RewritePlan
from dnmeta.tiff_structure import TIFFStructure
from dnmeta.tiff_writer import TIFFWriter

logger = logging.getLogger(__name__)

EXIF_IDENTIFIER = b'Exif\x00\x00'

# Segment length field counts itself but not the marker
MAX_SEGMENT_LENGTH = 0xFFFF

# Empty big-endian TIFF (one IFD0 without entries) for files with no Exif yet
EMPTY_EXIF_TIFF = b'MM\x00*\x00\x00\x00\x08' + b'\x00\x00' + b'\x00\x00\x00\x00'


def is_jpeg(file_data: bytes) -> bool:
    return file_data[:3] == b'\xff\xd8\xff'


class JPEGSegments:
    """
    Marker segments of a JPEG file up to the start of scan.

    Example:
        >>> segments = JPEGSegments(jpeg_bytes).parse()
        >>> segments.exif_payload_range()
    """

    SOI = 0xFFD8
    EOI = 0xFFD9
    SOS = 0xFFDA
    APP0 = 0xFFE0
    APP1 = 0xFFE1

    def __init__(self, file_data: bytes):
        """
        Initialize JPEG segment parser.

        Args:
            file_data: JPEG file data
        """
        self.file_data = file_data
        self.segments: List[Tuple[int, int, int]] = []  # (marker, offset, length)

    def parse(self) -> 'JPEGSegments':
        """
        Walk the marker segments that precede the image data.

        Raises:
            MalformedContainerError: If the marker structure is invalid
        """
        data = self.file_data
        if len(data) < 4 or struct.unpack('>H', data[0:2])[0] != self.SOI:
            raise MalformedContainerError("Invalid JPEG file: missing SOI marker")

        i = 2
        while True:
            if i + 2 > len(data):
                raise MalformedContainerError("JPEG file ends before the image data")
            if data[i] != 0xFF:
                raise MalformedContainerError(f"JPEG marker expected at offset {i}")
            marker_byte = data[i + 1]
            if marker_byte == 0xFF:
                # Fill byte before a marker
                i += 1
                continue
            marker = 0xFF00 | marker_byte
            if marker == self.EOI:
                break
            if 0xD0 <= marker_byte <= 0xD7 or marker_byte == 0x01:
                # Standalone markers carry no length
                i += 2
                continue
            if i + 4 > len(data):
                raise MalformedContainerError(f"JPEG segment header truncated at offset {i}")
            length = struct.unpack('>H', data[i + 2:i + 4])[0]
            if length < 2 or i + 2 + length > len(data):
                raise MalformedContainerError(f"JPEG segment at offset {i} has invalid length {length}")
            self.segments.append((marker, i, length))
            if marker == self.SOS:
                break
            i += 2 + length
        return self

    def exif_segment(self) -> Optional[Tuple[int, int]]:
        """Return (offset, length) of the first Exif APP1 segment, or None."""
        for marker, offset, length in self.segments:
            if marker == self.APP1 and self.file_data[offset + 4:offset + 10] == EXIF_IDENTIFIER:
                return offset, length
        return None

    def exif_payload_range(self) -> Optional[Tuple[int, int]]:
        """Return (start, end) of the TIFF structure inside the Exif segment."""
        segment = self.exif_segment()
        if segment is None:
            return None
        offset, length = segment
        return offset + 4 + len(EXIF_IDENTIFIER), offset + 2 + length

    def insertion_offset(self) -> int:
        """Where a new Exif segment goes: after a leading JFIF APP0, otherwise after SOI."""
        if self.segments and self.segments[0][0] == self.APP0 and self.segments[0][1] == 2:
            return 2 + 2 + self.segments[0][2]
        return 2


def read_jpeg(file_data: bytes) -> MetadataSet:
    """
    Read the Exif metadata of a JPEG buffer.

    Field locations are absolute offsets into the JPEG buffer. A JPEG
    without an Exif segment yields an empty MetadataSet.
    """
    segments = JPEGSegments(file_data).parse()
    payload_range = segments.exif_payload_range()
    if payload_range is None:
        return MetadataSet()
    start, end = payload_range
    metadata = TIFFStructure(bytes(file_data[start:end])).parse().to_metadata()
    shifted = MetadataSet()
    for field in metadata.fields():
        if field.is_located:
            field = dataclasses.replace(field, source_offset=field.source_offset + start)
        shifted.add(field)
    return shifted


def _payload_diff(diff: RewriteDiff, start: int) -> RewriteDiff:
    """Re-base the located old values of a diff onto the embedded TIFF."""
    payload_diff = RewriteDiff()
    for change in diff:
        old = change.old
        if old is not None and old.is_located:
            old = dataclasses.replace(old, source_offset=old.source_offset - start)
        payload_diff.add(dataclasses.replace(change, old=old))
    return payload_diff


class JPEGExifWriter:
    """
    Writer for the Exif segment of JPEG files.
    """

    def __init__(self, validate: bool = True):
        """
        Initialize JPEG Exif writer.

        Args:
            validate: Re-parse the embedded TIFF and the segment structure
                after a relayout
        """
        self.validate = validate

    def write(self, file_data: bytes, diff: RewriteDiff) -> bytes:
        """
        Apply a validated diff to the Exif segment of a JPEG buffer.

        Raises:
            MalformedContainerError: If the JPEG or embedded TIFF structure is invalid
            UnencodableValueError: If the new Exif segment exceeds 64 KiB
        """
        if diff.is_empty:
            return bytes(file_data)

        segments = JPEGSegments(file_data).parse()
        payload_range = segments.exif_payload_range()
        tiff_writer = TIFFWriter(validate=self.validate)
        if payload_range is None:
            segment_start = segment_end = segments.insertion_offset()
            new_payload = tiff_writer.write(EMPTY_EXIF_TIFF, diff)
            logger.debug("JPEG: adding an Exif segment at offset %d", segment_start)
        else:
            start, end = payload_range
            segment_start = start - 4 - len(EXIF_IDENTIFIER)
            segment_end = end
            new_payload = tiff_writer.write(bytes(file_data[start:end]), _payload_diff(diff, start))

        if payload_range is not None and len(new_payload) == end - start:
            # Same size: only the patched value bytes differ
            plan = RewritePlan(len(file_data))
            plan.copy(0, start)
            plan.emit(new_payload)
            plan.copy_rest(end)
            return plan.render(file_data)

        length = 2 + len(EXIF_IDENTIFIER) + len(new_payload)
        if length > MAX_SEGMENT_LENGTH:
            raise UnencodableValueError(f"Exif segment too large for JPEG APP1 ({length} bytes)")
        segment = struct.pack('>HH', JPEGSegments.APP1, length) + EXIF_IDENTIFIER + new_payload

        logger.debug("JPEG: Exif segment re-framed, %d -> %d bytes", segment_end - segment_start, len(segment))
        plan = RewritePlan(len(file_data))
        plan.copy(0, segment_start)
        plan.emit(segment)
        plan.copy_rest(segment_end)
        output = plan.render(file_data)
        if self.validate:
            self._validate(output)
        return output

    @staticmethod
    def _validate(output: bytes) -> None:
        try:
            read_jpeg(output)
        except DNMetaError as e:
            raise MalformedContainerError(f"Rewritten JPEG failed validation: {e.message}")
