# Copyright 2025 DNAi inc.

# Dual-licensed under the DNAi Free License v1.1 and the
# DNAi Commercial License v1.1.
# See the LICENSE files in the project root for details.

"""
Format codec registry

Each supported container family is served by one codec exposing the same
three capabilities: read a buffer into a MetadataSet, coerce caller text
into a typed field, and write a RewriteDiff back into a buffer. The
dispatcher and the field editor only talk to codecs through this
interface.

Copyright 2025 DNAi inc.
"""

from typing import Any, Dict, Optional, Type

from dnmeta.exceptions import UnsupportedFieldError, UnsupportedFormatError
from dnmeta.id3_parser import read_id3
from dnmeta.id3_writer import ID3Writer, coerce_id3_field, split_frame_name
from dnmeta.jpeg_exif import JPEGExifWriter, is_jpeg, read_jpeg
from dnmeta.metadata_diff import RewriteDiff
from dnmeta.metadata_model import FormatTag, MetadataField, MetadataSet, ValueKind
from dnmeta.pdf_parser import read_pdf
from dnmeta.pdf_writer import BASIC_INFO_FIELDS, PDFWriter, coerce_pdf_field
from dnmeta.tiff_structure import read_tiff
from dnmeta.tiff_tags import TAGS_BY_NAME
from dnmeta.tiff_writer import TIFFWriter, coerce_tiff_field


class MetadataCodec:
    """
    Base class for format codecs.

    Codecs hold no state besides the read-only options they were built
    with.
    """

    tag: FormatTag = FormatTag.UNSUPPORTED

    def __init__(self, options: Optional[Dict[str, Any]] = None):
        self.options = options or {}

    def read(self, file_data: bytes) -> MetadataSet:
        raise NotImplementedError

    def coerce(self, name: str, text: str, current: Optional[MetadataField]) -> MetadataField:
        raise NotImplementedError

    def check_removable(self, name: str, current: MetadataField) -> None:
        """Raise UnsupportedFieldError if the field may not be removed."""
        raise NotImplementedError

    def write(self, file_data: bytes, diff: RewriteDiff) -> bytes:
        raise NotImplementedError


class TIFFCodec(MetadataCodec):
    tag = FormatTag.TIFF_IMAGE

    def read(self, file_data: bytes) -> MetadataSet:
        if is_jpeg(file_data):
            return read_jpeg(file_data)
        return read_tiff(file_data)

    def coerce(self, name: str, text: str, current: Optional[MetadataField]) -> MetadataField:
        return coerce_tiff_field(name, text, current)

    def check_removable(self, name: str, current: MetadataField) -> None:
        spec = TAGS_BY_NAME.get(name)
        if spec is None or not spec.writable:
            raise UnsupportedFieldError(f"TIFF field '{name}' is not writable")

    def write(self, file_data: bytes, diff: RewriteDiff) -> bytes:
        validate = self.options.get('ValidateOutput', True)
        if is_jpeg(file_data):
            return JPEGExifWriter(validate=validate).write(file_data, diff)
        return TIFFWriter(validate=validate).write(file_data, diff)


class PDFCodec(MetadataCodec):
    tag = FormatTag.PDF

    @property
    def basic_only(self) -> bool:
        return self.options.get('PDFInfoFields', 'all') == 'basic'

    def read(self, file_data: bytes) -> MetadataSet:
        return read_pdf(file_data)

    def coerce(self, name: str, text: str, current: Optional[MetadataField]) -> MetadataField:
        return coerce_pdf_field(name, text, current, basic_only=self.basic_only)

    def check_removable(self, name: str, current: MetadataField) -> None:
        if self.basic_only and name not in BASIC_INFO_FIELDS:
            raise UnsupportedFieldError(f"PDF field '{name}' is not writable")

    def write(self, file_data: bytes, diff: RewriteDiff) -> bytes:
        return PDFWriter(validate=self.options.get('ValidateOutput', True)).write(file_data, diff)


class ID3Codec(MetadataCodec):
    tag = FormatTag.AUDIO_TAG

    def read(self, file_data: bytes) -> MetadataSet:
        return read_id3(file_data)

    def coerce(self, name: str, text: str, current: Optional[MetadataField]) -> MetadataField:
        return coerce_id3_field(name, text, current)

    def check_removable(self, name: str, current: MetadataField) -> None:
        if current.kind is ValueKind.BYTES:
            raise UnsupportedFieldError(f"ID3 frame '{name}' holds binary data and is not writable")
        split_frame_name(name)

    def write(self, file_data: bytes, diff: RewriteDiff) -> bytes:
        writer = ID3Writer(
            validate=self.options.get('ValidateOutput', True),
            padding=self.options.get('ID3Padding', 0),
            version=self.options.get('ID3Version', 3),
        )
        return writer.write(file_data, diff)


CODECS: Dict[FormatTag, Type[MetadataCodec]] = {
    FormatTag.TIFF_IMAGE: TIFFCodec,
    FormatTag.PDF: PDFCodec,
    FormatTag.AUDIO_TAG: ID3Codec,
}


def get_codec(tag: FormatTag, options: Optional[Dict[str, Any]] = None) -> MetadataCodec:
    """
    Return the codec for a format tag.

    Raises:
        UnsupportedFormatError: For UNSUPPORTED (or any unregistered) tag
    """
    codec_class = CODECS.get(tag)
    if codec_class is None:
        raise UnsupportedFormatError(f"Unsupported file format: {tag.value}")
    return codec_class(options)
