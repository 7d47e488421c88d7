# Copyright 2025 DNAi inc.

# Dual-licensed under the DNAi Free License v1.1 and the
# DNAi Commercial License v1.1.
# See the LICENSE files in the project root for details.

"""
ID3v2 tag writer

This module writes text, comment and URL frame edits into the ID3v2 tag
of MPEG audio files.

A changed frame whose new body has the same length as the old one is
patched in place. Otherwise the frame area is re-serialized in original
order (untouched frames are copied byte for byte) and, when it still fits
the declared tag size, padding absorbs the difference so the audio data
does not move. Untagged audio gets a new tag.

Copyright 2025 DNAi inc.
"""

import logging
import re
import struct
from typing import List, Optional, Tuple

from dnmeta.date_formatter import is_id3_timestamp
from dnmeta.exceptions import (
    DNMetaError, InvalidFieldValueError, MalformedContainerError,
    UnencodableValueError, UnsupportedFieldError,
)
from dnmeta.id3_parser import (
    FLAG_EXTENDED_HEADER, FLAG_UNSYNCHRONISATION, NUMBER_PAIR_FRAMES,
    NUMERIC_FRAMES, SYNCHSAFE_LIMIT, TEXT_ENCODINGS, TIMESTAMP_FRAMES, V24_STRING_SEPARATOR,
    ID3Frame, ID3Parser, ID3Tag, int_to_synchsafe, text_terminator,
)
from dnmeta.metadata_diff import ChangeType, FieldChange, RewriteDiff
from dnmeta.metadata_model import MetadataField, ValueKind
from dnmeta.rewrite_plan import RewritePlan

logger = logging.getLogger(__name__)

_TEXT_FRAME_RE = re.compile(r'^T[A-Z0-9]{3}$')
_URL_FRAME_RE = re.compile(r'^W[A-Z0-9]{3}$')
_LANGUAGE_RE = re.compile(r'^[A-Za-z]{3}$')
_NUMBER_PAIR_RE = re.compile(r'^\d+(/\d+)?$')


def split_frame_name(name: str) -> Tuple[str, str, str]:
    """
    Split a field name into (frame id, language, description).

    Raises:
        UnsupportedFieldError: If the name is not a writable frame name
    """
    if name.startswith(('TXXX:', 'WXXX:')):
        return name[:4], '', name[5:]
    if name.startswith('COMM:'):
        language, sep, description = name[5:].partition(':')
        if sep and _LANGUAGE_RE.match(language):
            return 'COMM', language, description
    elif name not in ('TXXX', 'WXXX') and (_TEXT_FRAME_RE.match(name) or _URL_FRAME_RE.match(name)):
        return name, '', ''
    raise UnsupportedFieldError(f"ID3 field '{name}' is not a writable frame")


def coerce_id3_field(name: str, text: str, current: Optional[MetadataField]) -> MetadataField:
    """
    Coerce caller text to the type of an ID3 frame.

    Raises:
        UnsupportedFieldError: If the name is not a text/URL/comment frame,
            or names an opaque binary frame
        InvalidFieldValueError: If the text breaks the frame's grammar
        UnencodableValueError: If a URL is not Latin-1
    """
    if current is not None and current.kind is ValueKind.BYTES:
        raise UnsupportedFieldError(f"ID3 frame '{name}' holds binary data and is not writable")
    frame_id, _, _ = split_frame_name(name)

    if '\x00' in text:
        raise InvalidFieldValueError(f"{name}: text may not contain NUL characters")

    if frame_id.startswith('W'):
        try:
            text.encode('latin-1')
        except UnicodeEncodeError:
            raise UnencodableValueError(f"{name}: URL frames only hold Latin-1 text")
        return MetadataField(name, text, ValueKind.TEXT)

    if frame_id in NUMERIC_FRAMES:
        if not text.strip().isdigit():
            raise InvalidFieldValueError(f"{name}: '{text}' is not a decimal integer")
        return MetadataField(name, int(text.strip()), ValueKind.INTEGER)

    if frame_id in NUMBER_PAIR_FRAMES and not _NUMBER_PAIR_RE.match(text.strip()):
        raise InvalidFieldValueError(f"{name}: '{text}' must be a number or number/total")

    if frame_id in TIMESTAMP_FRAMES and not is_id3_timestamp(text):
        raise InvalidFieldValueError(f"{name}: '{text}' is not an ID3 timestamp (yyyy-MM-ddTHH:mm:ss)")

    return MetadataField(name, text, ValueKind.TEXT)


def encode_text(text: str, encoding: int) -> bytes:
    """Encode text with an ID3 text encoding byte value."""
    if encoding == 1:
        return b'\xff\xfe' + text.encode('utf-16-le')
    return text.encode(TEXT_ENCODINGS[encoding])


def choose_encoding(text: str, preferred: Optional[int], major: int) -> int:
    """
    Pick a text encoding: the original frame's if it can hold the text,
    then ISO-8859-1, then UTF-16 (v2.3) or UTF-8 (v2.4).
    """
    candidates = [preferred] if preferred is not None else []
    candidates += [0, 1 if major == 3 else 3]
    for encoding in candidates:
        if encoding not in TEXT_ENCODINGS or (major == 3 and encoding in (2, 3)):
            continue
        try:
            encode_text(text, encoding)
        except UnicodeEncodeError:
            continue
        return encoding
    raise UnencodableValueError(f"'{text}' cannot be encoded in an ID3 frame")


def _original_style(frame: Optional[ID3Frame]) -> Tuple[Optional[int], bool]:
    """Return (encoding, terminated) of an existing frame body."""
    if frame is None or not frame.body or (frame.frame_id.startswith('W') and frame.frame_id != 'WXXX'):
        return None, False
    encoding = frame.body[0]
    if encoding not in TEXT_ENCODINGS:
        return None, False
    terminator = text_terminator(encoding)
    body = frame.body
    terminated = body.endswith(terminator) and (encoding not in (1, 2) or (len(body) - 1) % 2 == 0)
    return encoding, terminated


def build_frame_body(field: MetadataField, original: Optional[ID3Frame], major: int) -> bytes:
    """Serialize the body of a text, comment or URL frame."""
    frame_id, language, description = split_frame_name(field.name)
    text = str(field.value)

    if frame_id.startswith('W') and frame_id != 'WXXX':
        return text.encode('latin-1')

    preferred, terminated = _original_style(original)
    encoding = choose_encoding(description + text, preferred, major)
    terminator = text_terminator(encoding)
    body = bytearray([encoding])
    if frame_id == 'COMM':
        body += language.encode('latin-1')
    if frame_id in ('TXXX', 'WXXX', 'COMM'):
        body += encode_text(description, encoding) + terminator
    if frame_id == 'WXXX':
        body += text.encode('latin-1')
        return bytes(body)
    if major == 4 and frame_id not in ('TXXX', 'COMM'):
        # v2.4 text frames hold multiple values as NUL-separated strings
        body += terminator.join(encode_text(part, encoding) for part in text.split(V24_STRING_SEPARATOR))
    else:
        body += encode_text(text, encoding)
    if terminated:
        body += terminator
    return bytes(body)


def build_frame(frame_id: str, body: bytes, major: int, status_flags: int = 0) -> bytes:
    """Serialize a frame header and body."""
    if len(body) > SYNCHSAFE_LIMIT:
        raise UnencodableValueError(f"ID3 frame {frame_id} too large ({len(body)} bytes)")
    size = int_to_synchsafe(len(body)) if major == 4 else struct.pack('>I', len(body))
    return frame_id.encode('ascii') + size + bytes([status_flags, 0]) + body


class ID3Writer:
    """
    Writer for ID3v2.3 / ID3v2.4 tags.
    """

    def __init__(self, validate: bool = True, padding: int = 0, version: int = 3):
        """
        Initialize ID3 writer.

        Args:
            validate: Re-parse the output after a relayout
            padding: Extra padding bytes added when the tag has to grow
            version: Major version (3 or 4) for tags created from scratch
        """
        if version not in (3, 4):
            raise ValueError(f"Unsupported ID3 version 2.{version}")
        self.validate = validate
        self.padding = padding
        self.version = version

    def write(self, file_data: bytes, diff: RewriteDiff) -> bytes:
        """
        Apply a validated diff to an audio buffer.

        Args:
            file_data: Original audio file data
            diff: Changes produced by the field editor

        Returns:
            New audio file data
        """
        if diff.is_empty:
            return bytes(file_data)

        tag = ID3Parser(file_data).parse()
        if tag is None:
            output = self._new_tag(file_data, diff)
        else:
            patches = self._in_place_patches(tag, diff)
            if patches is not None:
                logger.debug("ID3: patching %d frame(s) in place", len(patches))
                return RewritePlan.patched(file_data, patches).render(file_data)
            output = self._relayout(file_data, tag, diff)

        if self.validate:
            self._validate(output, diff)
        return output

    @staticmethod
    def _in_place_patches(tag: ID3Tag, diff: RewriteDiff) -> Optional[List[Tuple[int, bytes]]]:
        patches = []
        for change in diff:
            if change.change_type is not ChangeType.CHANGED or not change.old.is_located:
                return None
            frame = tag.find(change.name)
            if frame is None or frame.body_offset != change.old.source_offset:
                return None
            body = build_frame_body(change.new, frame, tag.major)
            if len(body) != change.old.source_length:
                return None
            patches.append((change.old.source_offset, body))
        return patches

    def _new_frame(self, change: FieldChange, original: Optional[ID3Frame], major: int) -> bytes:
        frame_id, _, _ = split_frame_name(change.name)
        body = build_frame_body(change.new, original, major)
        status_flags = (original.flags >> 8) if original is not None else 0
        return build_frame(frame_id, body, major, status_flags)

    def _relayout(self, file_data: bytes, tag: ID3Tag, diff: RewriteDiff) -> bytes:
        """
        Re-serialize the frame area and fit it into the tag.
        """
        changes = diff.by_name()
        flags = tag.flags & ~FLAG_UNSYNCHRONISATION
        area = bytearray()
        kept_extended_header = False
        if tag.extended_header:
            if tag.extended_header_has_crc:
                logger.warning("ID3 extended header with CRC dropped on rewrite")
                flags &= ~FLAG_EXTENDED_HEADER
            else:
                area += tag.extended_header
                kept_extended_header = True

        for frame in tag.frames:
            change = changes.get(frame.name)
            if change is None:
                area += frame.raw
            elif change.change_type is not ChangeType.REMOVED:
                area += self._new_frame(change, frame, tag.major)
        for change in diff.added:
            area += self._new_frame(change, None, tag.major)

        if not tag.has_footer and len(area) <= tag.size:
            size = tag.size
        else:
            size = len(area) + (0 if tag.has_footer else self.padding)
        if size > SYNCHSAFE_LIMIT:
            raise UnencodableValueError(f"ID3 tag too large ({size} bytes)")
        padding = size - len(area)
        if kept_extended_header and tag.major == 3:
            # v2.3 extended header records the padding size
            area[6:10] = struct.pack('>I', padding)

        version = bytes([tag.major, tag.revision, flags])
        header = b'ID3' + version + int_to_synchsafe(size)
        footer = b'3DI' + version + int_to_synchsafe(size) if tag.has_footer else b''

        logger.debug(
            "ID3: relayout (%s), tag size %d -> %d, %d padding byte(s)",
            diff.summary(), tag.size, size, padding
        )
        plan = RewritePlan(len(file_data))
        plan.emit(header + bytes(area) + b'\x00' * padding + footer)
        plan.copy_rest(tag.total_size)
        return plan.render(file_data)

    def _new_tag(self, file_data: bytes, diff: RewriteDiff) -> bytes:
        """Prepend a fresh tag to untagged audio."""
        area = bytearray()
        for change in diff.added:
            area += self._new_frame(change, None, self.version)
        size = len(area) + self.padding
        if size > SYNCHSAFE_LIMIT:
            raise UnencodableValueError(f"ID3 tag too large ({size} bytes)")
        header = b'ID3' + bytes([self.version, 0, 0]) + int_to_synchsafe(size)

        logger.debug("ID3: new v2.%d tag with %d frame(s)", self.version, len(diff.added))
        plan = RewritePlan(len(file_data))
        plan.emit(header + bytes(area) + b'\x00' * self.padding)
        plan.copy_rest(0)
        return plan.render(file_data)

    @staticmethod
    def _validate(output: bytes, diff: RewriteDiff) -> None:
        """Re-read the rewritten tag and check every edit landed."""
        try:
            metadata = ID3Parser(output).to_metadata()
        except DNMetaError as e:
            raise MalformedContainerError(f"Rewritten ID3 tag failed validation: {e.message}")
        for change in diff:
            if change.change_type is ChangeType.REMOVED:
                if change.name in metadata:
                    raise MalformedContainerError(f"Rewritten ID3 tag still contains {change.name}")
            elif change.name not in metadata:
                raise MalformedContainerError(f"Rewritten ID3 tag is missing {change.name}")
