# Copyright 2025 DNAi inc.

# Dual-licensed under the DNAi Free License v1.1 and the
# DNAi Commercial License v1.1.
# See the LICENSE files in the project root for details.

"""
ID3v2 tag parser

This module parses the ID3v2.3 / ID3v2.4 tag at the start of MPEG audio
files into frames, and turns the frames into a MetadataSet.

Text, comment and URL frames are decoded; every other frame (and every
frame the parser cannot decode) is kept as an opaque BYTES field so a
later rewrite preserves it.

Copyright 2025 DNAi inc.
"""

import logging
import re
import struct
from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple

from dnmeta.exceptions import MalformedContainerError, UnsupportedFormatError
from dnmeta.metadata_model import MetadataField, MetadataSet, ValueKind

logger = logging.getLogger(__name__)

HEADER_SIZE = 10
FRAME_HEADER_SIZE = 10

# Largest value a 28-bit synchsafe integer can hold
SYNCHSAFE_LIMIT = 0x0FFFFFFF

# Tag header flags
FLAG_UNSYNCHRONISATION = 0x80
FLAG_EXTENDED_HEADER = 0x40
FLAG_FOOTER = 0x10

NUMERIC_FRAMES = ('TBPM', 'TLEN', 'TDLY', 'TORY', 'TSIZ', 'TYER')
TIMESTAMP_FRAMES = ('TDRC', 'TDOR', 'TDRL', 'TDEN', 'TDTG')
NUMBER_PAIR_FRAMES = ('TRCK', 'TPOS')

# Text encoding byte -> Python codec
# 0 = ISO-8859-1, 1 = UTF-16 with BOM, 2 = UTF-16BE, 3 = UTF-8
TEXT_ENCODINGS = {0: 'latin-1', 1: 'utf-16', 2: 'utf-16-be', 3: 'utf-8'}

V24_STRING_SEPARATOR = '; '

_FRAME_ID_RE = re.compile(rb'^[A-Z0-9]{4}$')


def synchsafe_to_int(data: bytes) -> int:
    """Convert a 4-byte synchsafe integer to int."""
    value = 0
    for byte in data:
        value = (value << 7) | (byte & 0x7F)
    return value


def int_to_synchsafe(value: int) -> bytes:
    """Convert an integer to 4-byte synchsafe representation."""
    if value < 0 or value > SYNCHSAFE_LIMIT:
        raise ValueError(f"{value} does not fit in a synchsafe integer")
    out = bytearray(4)
    for i in range(4):
        out[3 - i] = value & 0x7F
        value >>= 7
    return bytes(out)


def remove_unsynchronisation(data: bytes) -> bytes:
    """Undo the unsynchronisation scheme ($FF $00 -> $FF)."""
    return data.replace(b'\xff\x00', b'\xff')


def text_terminator(encoding: int) -> bytes:
    return b'\x00\x00' if encoding in (1, 2) else b'\x00'


def find_terminator(data: bytes, start: int, encoding: int) -> int:
    """Return the offset of the string terminator at or after `start`, or -1."""
    if encoding in (1, 2):
        pos = start
        while True:
            pos = data.find(b'\x00\x00', pos)
            if pos == -1 or (pos - start) % 2 == 0:
                return pos
            pos += 1
    return data.find(b'\x00', start)


def decode_strings(data: bytes, encoding: int) -> List[str]:
    """Decode a run of terminated (or unterminated) strings."""
    codec = TEXT_ENCODINGS[encoding]
    terminator = text_terminator(encoding)
    strings = []
    pos = 0
    while pos < len(data):
        end = find_terminator(data, pos, encoding)
        if end == -1:
            end = len(data)
        strings.append(data[pos:end].decode(codec))
        pos = end + len(terminator)
    while len(strings) > 1 and not strings[-1]:
        strings.pop()
    return strings


@dataclass
class ID3Frame:
    """One frame as stored in the tag."""
    frame_id: str
    flags: int
    body: bytes
    raw: bytes  # header + body exactly as stored
    body_offset: Optional[int]  # absolute file offset of the body, None if not patchable
    name: str = ''
    opaque: bool = False  # compressed, encrypted, grouped or repeated


@dataclass
class ID3Tag:
    """A parsed ID3v2 tag."""
    major: int
    revision: int
    flags: int
    size: int  # declared size, excluding header and footer
    extended_header: bytes = b''
    extended_header_has_crc: bool = False
    frames: List[ID3Frame] = field(default_factory=list)
    padding: int = 0

    @property
    def has_footer(self) -> bool:
        return self.major == 4 and bool(self.flags & FLAG_FOOTER)

    @property
    def unsynchronised(self) -> bool:
        return bool(self.flags & FLAG_UNSYNCHRONISATION)

    @property
    def total_size(self) -> int:
        return HEADER_SIZE + self.size + (HEADER_SIZE if self.has_footer else 0)

    def find(self, name: str) -> Optional[ID3Frame]:
        for frame in self.frames:
            if frame.name == name:
                return frame
        return None


class ID3Parser:
    """
    Parser for ID3v2.3 and ID3v2.4 tags.

    Example:
        >>> tag = ID3Parser(mp3_bytes).parse()
        >>> ID3Parser(mp3_bytes).to_metadata()
    """

    def __init__(self, file_data: bytes):
        """
        Initialize ID3 parser.

        Args:
            file_data: Audio file data
        """
        self.file_data = file_data

    def parse(self) -> Optional[ID3Tag]:
        """
        Parse the leading ID3v2 tag.

        Returns:
            ID3Tag, or None when the buffer carries no tag

        Raises:
            UnsupportedFormatError: For ID3v2.2 and unknown major versions
            MalformedContainerError: If the tag structure is invalid
        """
        data = self.file_data
        if not data.startswith(b'ID3'):
            return None
        if len(data) < HEADER_SIZE:
            raise MalformedContainerError("ID3 header truncated")

        major, revision, flags = data[3], data[4], data[5]
        if major == 2:
            raise UnsupportedFormatError("ID3v2.2 tags are not supported")
        if major not in (3, 4):
            raise UnsupportedFormatError(f"Unknown ID3 version 2.{major}")
        if any(b & 0x80 for b in data[6:10]):
            raise MalformedContainerError("ID3 tag size is not a synchsafe integer")

        tag = ID3Tag(major=major, revision=revision, flags=flags, size=synchsafe_to_int(data[6:10]))
        if tag.total_size > len(data):
            raise MalformedContainerError(
                f"ID3 tag size {tag.size} extends past end of file ({len(data)} bytes)"
            )

        region = data[HEADER_SIZE:HEADER_SIZE + tag.size]
        # v2.3 unsynchronises the whole tag; offsets into the file no longer line up
        located = True
        if major == 3 and tag.unsynchronised:
            region = remove_unsynchronisation(region)
            located = False

        pos = 0
        if flags & FLAG_EXTENDED_HEADER:
            pos = self._parse_extended_header(tag, region)

        names_seen = set()
        while pos + FRAME_HEADER_SIZE <= len(region):
            if region[pos] == 0:
                break
            frame = self._parse_frame(tag, region, pos, located)
            pos += len(frame.raw)
            frame.name = self._frame_name(frame, tag.major, names_seen)
            names_seen.add(frame.name)
            tag.frames.append(frame)
        tag.padding = max(0, len(region) - pos)
        return tag

    def _parse_extended_header(self, tag: ID3Tag, region: bytes) -> int:
        if len(region) < 6:
            raise MalformedContainerError("ID3 extended header truncated")
        if tag.major == 3:
            length = 4 + struct.unpack('>I', region[:4])[0]
            has_crc = len(region) >= 6 and bool(region[4] & 0x80)
        else:
            length = synchsafe_to_int(region[:4])
            has_crc = len(region) >= 6 and region[4] >= 1 and bool(region[5] & 0x20)
        if length < 6 or length > len(region):
            raise MalformedContainerError(f"ID3 extended header size {length} invalid")
        tag.extended_header = bytes(region[:length])
        tag.extended_header_has_crc = has_crc
        return length

    def _parse_frame(self, tag: ID3Tag, region: bytes, pos: int, located: bool) -> ID3Frame:
        header = region[pos:pos + FRAME_HEADER_SIZE]
        frame_id = header[:4]
        if not _FRAME_ID_RE.match(frame_id):
            raise MalformedContainerError(f"Invalid ID3 frame id {frame_id!r} at tag offset {pos}")
        if tag.major == 4:
            size = synchsafe_to_int(header[4:8])
        else:
            size = struct.unpack('>I', header[4:8])[0]
        flags = struct.unpack('>H', header[8:10])[0]
        end = pos + FRAME_HEADER_SIZE + size
        if end > len(region):
            raise MalformedContainerError(
                f"ID3 frame {frame_id.decode('ascii')} ({size} bytes) overruns the tag"
            )
        body = region[pos + FRAME_HEADER_SIZE:end]
        body_offset = HEADER_SIZE + pos + FRAME_HEADER_SIZE if located else None

        frame = ID3Frame(
            frame_id=frame_id.decode('ascii'),
            flags=flags,
            body=bytes(body),
            raw=bytes(region[pos:end]),
            body_offset=body_offset,
        )
        if tag.major == 4:
            # Format flags: grouping 0x40, compression 0x08, encryption 0x04,
            # unsynchronisation 0x02, data length indicator 0x01
            frame.opaque = bool(flags & 0x004C)
            if not frame.opaque and flags & 0x0003:
                content = frame.body
                if flags & 0x0001:
                    content = content[4:]
                if flags & 0x0002:
                    content = remove_unsynchronisation(content)
                frame.body = content
                frame.body_offset = None
        else:
            # compression 0x80, encryption 0x40, grouping 0x20
            frame.opaque = bool(flags & 0x00E0)
        return frame

    @staticmethod
    def _frame_name(frame: ID3Frame, major: int, names_seen: set) -> str:
        """Name a frame; repeats get ID#2, ID#3, ... and become opaque."""
        name = frame.frame_id
        body = frame.body
        if not frame.opaque and body and frame.frame_id in ('TXXX', 'WXXX', 'COMM'):
            try:
                encoding = body[0]
                if encoding not in TEXT_ENCODINGS:
                    raise ValueError(encoding)
                start = 4 if frame.frame_id == 'COMM' else 1
                end = find_terminator(body, start, encoding)
                if end != -1:
                    description = body[start:end].decode(TEXT_ENCODINGS[encoding])
                    if frame.frame_id == 'COMM':
                        name = f"COMM:{body[1:4].decode('latin-1')}:{description}"
                    else:
                        name = f"{frame.frame_id}:{description}"
            except (ValueError, UnicodeDecodeError):
                name = frame.frame_id
        if name not in names_seen:
            return name
        frame.opaque = True
        index = 2
        while f"{frame.frame_id}#{index}" in names_seen:
            index += 1
        return f"{frame.frame_id}#{index}"

    @staticmethod
    def decode_frame(frame: ID3Frame, major: int) -> Tuple[ValueKind, Any]:
        """
        Decode a frame body into (kind, value).

        Raises:
            ValueError: If the body cannot be decoded as its frame type
        """
        fid = frame.frame_id
        body = frame.body
        if frame.opaque:
            return ValueKind.BYTES, body

        if fid.startswith('W') and fid != 'WXXX':
            return ValueKind.TEXT, body.split(b'\x00', 1)[0].decode('latin-1')

        if fid not in ('TXXX', 'WXXX', 'COMM') and not fid.startswith('T'):
            return ValueKind.BYTES, body

        if not body or body[0] not in TEXT_ENCODINGS:
            raise ValueError(f"bad text encoding in {fid}")
        encoding = body[0]

        if fid in ('TXXX', 'WXXX', 'COMM'):
            start = 4 if fid == 'COMM' else 1
            end = find_terminator(body, start, encoding)
            if end == -1:
                raise ValueError(f"{fid} description not terminated")
            value_start = end + len(text_terminator(encoding))
            if fid == 'WXXX':
                return ValueKind.TEXT, body[value_start:].split(b'\x00', 1)[0].decode('latin-1')
            strings = decode_strings(body[value_start:], encoding)
            return ValueKind.TEXT, strings[0] if strings else ''

        strings = decode_strings(body[1:], encoding)
        if major == 4:
            text = V24_STRING_SEPARATOR.join(strings)
        else:
            text = strings[0] if strings else ''
        if fid in NUMERIC_FRAMES and text.strip().isdigit():
            return ValueKind.INTEGER, int(text.strip())
        return ValueKind.TEXT, text

    def to_metadata(self) -> MetadataSet:
        """Build the MetadataSet for the tag; untagged audio yields an empty set."""
        metadata = MetadataSet()
        tag = self.parse()
        if tag is None:
            return metadata
        for frame in tag.frames:
            try:
                kind, value = self.decode_frame(frame, tag.major)
            except (ValueError, UnicodeDecodeError) as e:
                logger.debug("ID3 frame %s kept as binary: %s", frame.frame_id, e)
                kind, value = ValueKind.BYTES, frame.body
            location = (frame.body_offset, len(frame.body)) if frame.body_offset is not None else (None, None)
            metadata.add(MetadataField(frame.name, value, kind, *location))
        return metadata


def read_id3(file_data: bytes) -> MetadataSet:
    """Parse an audio buffer and return its ID3 metadata."""
    return ID3Parser(file_data).to_metadata()
