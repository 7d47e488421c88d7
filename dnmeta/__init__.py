# Copyright 2025 DNAi inc.

# Dual-licensed under the DNAi Free License v1.1 and the
# DNAi Commercial License v1.1.
# See the LICENSE files in the project root for details.

"""
DNMeta - A 100% Pure Python Metadata Codec Engine

Reads and writes document metadata in TIFF images (IFD0, Exif, GPS),
JPEG Exif segments, PDF documents (Document Information dictionary) and
MP3 audio (ID3v2 tags), and inspects Windows executable headers read-only.

All metadata parsing is done by directly reading binary file structures.
Edits are applied in place when the new value fits the old bytes, and by
relaying out the container structure otherwise.

Copyright 2025 DNAi inc.
"""

__version__ = "0.1.0"
__author__ = "DNAi inc."

from dnmeta.core import DNMeta, inspect_executable, read_metadata, write_metadata
from dnmeta.exceptions import (
    DNMetaError,
    InputTooLargeError,
    InvalidFieldValueError,
    MalformedContainerError,
    UnencodableValueError,
    UnsupportedFieldError,
    UnsupportedFormatError,
)
from dnmeta.field_editor import EditRequest, FieldEditor, Remove, SetValue
from dnmeta.format_detector import FormatDetector
from dnmeta.metadata_diff import ChangeType, FieldChange, RewriteDiff
from dnmeta.metadata_model import FormatTag, MetadataField, MetadataSet, Rational, ValueKind

__all__ = [
    "DNMeta",
    "read_metadata",
    "write_metadata",
    "inspect_executable",
    "DNMetaError",
    "InputTooLargeError",
    "InvalidFieldValueError",
    "MalformedContainerError",
    "UnencodableValueError",
    "UnsupportedFieldError",
    "UnsupportedFormatError",
    "EditRequest",
    "FieldEditor",
    "Remove",
    "SetValue",
    "FormatDetector",
    "ChangeType",
    "FieldChange",
    "RewriteDiff",
    "FormatTag",
    "MetadataField",
    "MetadataSet",
    "Rational",
    "ValueKind",
]
