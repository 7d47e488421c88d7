# Copyright 2025 DNAi inc.

# Dual-licensed under the DNAi Free License v1.1 and the
# DNAi Commercial License v1.1.
# See the LICENSE files in the project root for details.

"""
TIFF tag definitions

Tag names, field types and writability for the directories the TIFF
codec reads: IFD0, the Exif sub-IFD and the GPS sub-IFD. Structural
tags (image geometry, strip/tile layout, sub-IFD pointers) are listed so
they get readable names, but are never writable.

Copyright 2025 DNAi inc.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Dict, Optional, Tuple

from dnmeta.metadata_model import ValueKind


class TiffType(IntEnum):
    """TIFF 6.0 field types"""
    BYTE = 1
    ASCII = 2
    SHORT = 3
    LONG = 4
    RATIONAL = 5
    SBYTE = 6
    UNDEFINED = 7
    SSHORT = 8
    SLONG = 9
    SRATIONAL = 10
    FLOAT = 11
    DOUBLE = 12
    IFD = 13


# Field type sizes in bytes
TYPE_SIZES = {
    TiffType.BYTE: 1,
    TiffType.ASCII: 1,
    TiffType.SHORT: 2,
    TiffType.LONG: 4,
    TiffType.RATIONAL: 8,
    TiffType.SBYTE: 1,
    TiffType.UNDEFINED: 1,
    TiffType.SSHORT: 2,
    TiffType.SLONG: 4,
    TiffType.SRATIONAL: 8,
    TiffType.FLOAT: 4,
    TiffType.DOUBLE: 8,
    TiffType.IFD: 4,
}

# struct format characters for the integer types
INTEGER_FORMATS = {
    TiffType.BYTE: 'B',
    TiffType.SHORT: 'H',
    TiffType.LONG: 'I',
    TiffType.SBYTE: 'b',
    TiffType.SSHORT: 'h',
    TiffType.SLONG: 'i',
    TiffType.IFD: 'I',
}

INTEGER_RANGES = {
    TiffType.BYTE: (0, 0xFF),
    TiffType.SHORT: (0, 0xFFFF),
    TiffType.LONG: (0, 0xFFFFFFFF),
    TiffType.SBYTE: (-0x80, 0x7F),
    TiffType.SSHORT: (-0x8000, 0x7FFF),
    TiffType.SLONG: (-0x80000000, 0x7FFFFFFF),
    TiffType.IFD: (0, 0xFFFFFFFF),
}

# Directory groups
IFD0 = 'IFD0'
EXIF_IFD = 'ExifIFD'
GPS_IFD = 'GPS'

# Sub-IFD pointer tags in IFD0
EXIF_IFD_POINTER = 0x8769
GPS_IFD_POINTER = 0x8825
SUB_IFD_POINTERS = {
    EXIF_IFD_POINTER: EXIF_IFD,
    GPS_IFD_POINTER: GPS_IFD,
}


@dataclass(frozen=True)
class TagSpec:
    """Definition of one known tag."""
    tag_id: int
    name: str
    group: str
    tag_type: TiffType
    writable: bool = False
    count: Optional[int] = None  # None means variable (ASCII) or any
    timestamp: bool = False

    @property
    def kind(self) -> ValueKind:
        if self.timestamp:
            return ValueKind.TIMESTAMP
        return kind_for_type(self.tag_type)


def kind_for_type(tag_type: int) -> ValueKind:
    """Map a TIFF field type to the value kind a reader reports."""
    if tag_type == TiffType.ASCII:
        return ValueKind.TEXT
    if tag_type in INTEGER_FORMATS:
        return ValueKind.INTEGER
    if tag_type in (TiffType.RATIONAL, TiffType.SRATIONAL):
        return ValueKind.RATIONAL
    return ValueKind.BYTES


_A = TiffType.ASCII
_S = TiffType.SHORT
_L = TiffType.LONG
_R = TiffType.RATIONAL
_B = TiffType.BYTE
_U = TiffType.UNDEFINED

TAG_SPECS = (
    # IFD0 structural tags
    TagSpec(0x00FE, 'NewSubfileType', IFD0, _L),
    TagSpec(0x00FF, 'SubfileType', IFD0, _S),
    TagSpec(0x0100, 'ImageWidth', IFD0, _L),
    TagSpec(0x0101, 'ImageLength', IFD0, _L),
    TagSpec(0x0102, 'BitsPerSample', IFD0, _S),
    TagSpec(0x0103, 'Compression', IFD0, _S),
    TagSpec(0x0106, 'PhotometricInterpretation', IFD0, _S),
    TagSpec(0x010A, 'FillOrder', IFD0, _S),
    TagSpec(0x0111, 'StripOffsets', IFD0, _L),
    TagSpec(0x0115, 'SamplesPerPixel', IFD0, _S),
    TagSpec(0x0116, 'RowsPerStrip', IFD0, _L),
    TagSpec(0x0117, 'StripByteCounts', IFD0, _L),
    TagSpec(0x011C, 'PlanarConfiguration', IFD0, _S),
    TagSpec(0x0120, 'FreeOffsets', IFD0, _L),
    TagSpec(0x0121, 'FreeByteCounts', IFD0, _L),
    TagSpec(0x013D, 'Predictor', IFD0, _S),
    TagSpec(0x0140, 'ColorMap', IFD0, _S),
    TagSpec(0x0142, 'TileWidth', IFD0, _L),
    TagSpec(0x0143, 'TileLength', IFD0, _L),
    TagSpec(0x0144, 'TileOffsets', IFD0, _L),
    TagSpec(0x0145, 'TileByteCounts', IFD0, _L),
    TagSpec(0x014A, 'SubIFDs', IFD0, _L),
    TagSpec(0x0152, 'ExtraSamples', IFD0, _S),
    TagSpec(0x0153, 'SampleFormat', IFD0, _S),
    TagSpec(0x0201, 'JPEGInterchangeFormat', IFD0, _L),
    TagSpec(0x0202, 'JPEGInterchangeFormatLength', IFD0, _L),
    TagSpec(0x02BC, 'XMLPacket', IFD0, _B),
    TagSpec(0x83BB, 'IPTC-NAA', IFD0, _L),
    TagSpec(0x8773, 'ICC_Profile', IFD0, _U),
    # IFD0 descriptive tags
    TagSpec(0x010D, 'DocumentName', IFD0, _A, writable=True),
    TagSpec(0x010E, 'ImageDescription', IFD0, _A, writable=True),
    TagSpec(0x010F, 'Make', IFD0, _A, writable=True),
    TagSpec(0x0110, 'Model', IFD0, _A, writable=True),
    TagSpec(0x0112, 'Orientation', IFD0, _S, writable=True, count=1),
    TagSpec(0x011A, 'XResolution', IFD0, _R, writable=True, count=1),
    TagSpec(0x011B, 'YResolution', IFD0, _R, writable=True, count=1),
    TagSpec(0x011D, 'PageName', IFD0, _A, writable=True),
    TagSpec(0x0128, 'ResolutionUnit', IFD0, _S, writable=True, count=1),
    TagSpec(0x0131, 'Software', IFD0, _A, writable=True),
    TagSpec(0x0132, 'DateTime', IFD0, _A, writable=True, timestamp=True),
    TagSpec(0x013B, 'Artist', IFD0, _A, writable=True),
    TagSpec(0x013C, 'HostComputer', IFD0, _A, writable=True),
    TagSpec(0x8298, 'Copyright', IFD0, _A, writable=True),
    # Exif IFD
    TagSpec(0x829A, 'ExposureTime', EXIF_IFD, _R, writable=True, count=1),
    TagSpec(0x829D, 'FNumber', EXIF_IFD, _R, writable=True, count=1),
    TagSpec(0x8822, 'ExposureProgram', EXIF_IFD, _S, writable=True, count=1),
    TagSpec(0x8827, 'ISOSpeedRatings', EXIF_IFD, _S, writable=True, count=1),
    TagSpec(0x9000, 'ExifVersion', EXIF_IFD, _U),
    TagSpec(0x9003, 'DateTimeOriginal', EXIF_IFD, _A, writable=True, timestamp=True),
    TagSpec(0x9004, 'DateTimeDigitized', EXIF_IFD, _A, writable=True, timestamp=True),
    TagSpec(0x9010, 'OffsetTime', EXIF_IFD, _A, writable=True),
    TagSpec(0x9011, 'OffsetTimeOriginal', EXIF_IFD, _A, writable=True),
    TagSpec(0x9101, 'ComponentsConfiguration', EXIF_IFD, _U),
    TagSpec(0x920A, 'FocalLength', EXIF_IFD, _R, writable=True, count=1),
    TagSpec(0x927C, 'MakerNote', EXIF_IFD, _U),
    TagSpec(0x9286, 'UserComment', EXIF_IFD, _U),
    TagSpec(0xA000, 'FlashpixVersion', EXIF_IFD, _U),
    TagSpec(0xA001, 'ColorSpace', EXIF_IFD, _S, writable=True, count=1),
    TagSpec(0xA002, 'PixelXDimension', EXIF_IFD, _L),
    TagSpec(0xA003, 'PixelYDimension', EXIF_IFD, _L),
    TagSpec(0xA005, 'InteropIFDPointer', EXIF_IFD, _L),
    TagSpec(0xA420, 'ImageUniqueID', EXIF_IFD, _A, writable=True),
    TagSpec(0xA430, 'CameraOwnerName', EXIF_IFD, _A, writable=True),
    TagSpec(0xA431, 'BodySerialNumber', EXIF_IFD, _A, writable=True),
    TagSpec(0xA433, 'LensMake', EXIF_IFD, _A, writable=True),
    TagSpec(0xA434, 'LensModel', EXIF_IFD, _A, writable=True),
    TagSpec(0xA435, 'LensSerialNumber', EXIF_IFD, _A, writable=True),
    # GPS IFD
    TagSpec(0x0000, 'GPSVersionID', GPS_IFD, _B),
    TagSpec(0x0001, 'GPSLatitudeRef', GPS_IFD, _A, writable=True),
    TagSpec(0x0002, 'GPSLatitude', GPS_IFD, _R, writable=True, count=3),
    TagSpec(0x0003, 'GPSLongitudeRef', GPS_IFD, _A, writable=True),
    TagSpec(0x0004, 'GPSLongitude', GPS_IFD, _R, writable=True, count=3),
    TagSpec(0x0005, 'GPSAltitudeRef', GPS_IFD, _B, writable=True, count=1),
    TagSpec(0x0006, 'GPSAltitude', GPS_IFD, _R, writable=True, count=1),
    TagSpec(0x0012, 'GPSMapDatum', GPS_IFD, _A, writable=True),
    TagSpec(0x001D, 'GPSDateStamp', GPS_IFD, _A, writable=True),
)

TAGS_BY_ID: Dict[Tuple[str, int], TagSpec] = {(s.group, s.tag_id): s for s in TAG_SPECS}
TAGS_BY_NAME: Dict[str, TagSpec] = {s.name: s for s in TAG_SPECS}


def tag_name(group: str, tag_id: int) -> str:
    """
    Return the field name for a tag.

    Unknown tags are named Tag0xNNNN, prefixed with the directory group
    outside IFD0 so names stay unique across directories.
    """
    spec = TAGS_BY_ID.get((group, tag_id))
    if spec is not None:
        return spec.name
    if group == IFD0:
        return f"Tag0x{tag_id:04X}"
    return f"{group}:Tag0x{tag_id:04X}"


def parse_tag_name(name: str) -> Optional[Tuple[str, int]]:
    """Resolve a field name back to (group, tag_id), or None if unknown."""
    spec = TAGS_BY_NAME.get(name)
    if spec is not None:
        return spec.group, spec.tag_id
    group, _, rest = name.rpartition(':')
    group = group or IFD0
    if group not in (IFD0, EXIF_IFD, GPS_IFD) or not rest.startswith('Tag0x'):
        return None
    try:
        return group, int(rest[5:], 16)
    except ValueError:
        return None
