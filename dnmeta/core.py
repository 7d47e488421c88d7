# Copyright 2025 DNAi inc.

# Dual-licensed under the DNAi Free License v1.1 and the
# DNAi Commercial License v1.1.
# See the LICENSE files in the project root for details.

"""
Core DNMeta engine

This module provides the dispatcher: classify a byte buffer, read its
metadata through the matching codec, and turn caller edits into new
file bytes. Executables are only ever inspected.

Copyright 2025 DNAi inc.
"""

import logging
import struct
import zlib
from typing import Any, Callable, Dict, Mapping, Optional, Union

from dnmeta.exceptions import (
    DNMetaError, InputTooLargeError, MalformedContainerError, UnsupportedFormatError,
)
from dnmeta.exe_parser import inspect_pe
from dnmeta.field_editor import EditRequest, FieldEditor
from dnmeta.format_codecs import get_codec
from dnmeta.format_detector import FormatDetector
from dnmeta.metadata_diff import RewriteDiff
from dnmeta.metadata_model import FormatTag, MetadataSet

logger = logging.getLogger(__name__)

Edits = Union[EditRequest, Mapping[str, Optional[str]]]

# Exceptions a parser can leak on hostile input that are not part of the taxonomy
_PARSE_ERRORS = (struct.error, IndexError, TypeError, ValueError, zlib.error, RecursionError)


class DNMeta:
    """
    Metadata codec engine.

    Every call is a pure function of (buffer, edits, options); the engine
    only holds the options.

    Example:
        >>> engine = DNMeta()
        >>> engine.set_option('ID3Padding', 1024)
        >>> metadata = engine.read_metadata(data, 'song.mp3')
        >>> new_data = engine.write_metadata(data, 'song.mp3', {'TIT2': 'New Title'})
    """

    def __init__(self, **options: Any):
        """
        Initialize the engine.

        Args:
            **options: Initial option values (see available_options())

        Raises:
            ValueError: If an option name or value is not valid
        """
        self.options: Dict[str, Any] = {}
        self._initialize_default_options()
        for option_name, value in options.items():
            self.set_option(option_name, value)

    @staticmethod
    def available_options() -> Dict[str, Dict[str, Any]]:
        """
        Return a dictionary of available API options.

        Returns:
            Dictionary mapping option names to their metadata:
            {
                'OptionName': {
                    'description': 'Description of the option',
                    'type': 'bool|str|int',
                    'default': default_value,
                    'choices': (...)  # only for enumerated options
                },
                ...
            }
        """
        return {
            'MaxInputSize': {
                'description': 'Largest accepted input in bytes (0 = unlimited)',
                'type': 'int',
                'default': 256 * 1024 * 1024,
            },
            'ValidateOutput': {
                'description': 'Re-read rewritten files to verify their structure',
                'type': 'bool',
                'default': True,
            },
            'ID3Padding': {
                'description': 'Padding bytes added when an ID3 tag has to grow',
                'type': 'int',
                'default': 0,
            },
            'ID3Version': {
                'description': 'ID3v2 major version for tags created from scratch',
                'type': 'int',
                'default': 3,
                'choices': (3, 4),
            },
            'PDFInfoFields': {
                'description': 'Writable PDF Info keys: "all" or "basic" (Title, Author, Subject)',
                'type': 'str',
                'default': 'all',
                'choices': ('all', 'basic'),
            },
        }

    def _initialize_default_options(self) -> None:
        """
        Initialize default API options from available_options().
        """
        for option_name, option_info in self.available_options().items():
            self.options[option_name] = option_info['default']

    def set_option(self, option_name: str, value: Any) -> None:
        """
        Set an API option value.

        Args:
            option_name: Name of the option (e.g., 'ID3Padding')
            value: Value to set for the option

        Raises:
            ValueError: If option name is not recognized or the value is invalid
        """
        available = self.available_options()
        if option_name not in available:
            raise ValueError(f"Unknown option: {option_name}. Use available_options() to see valid options.")

        option_info = available[option_name]
        expected_type = option_info['type']
        if expected_type == 'bool' and not isinstance(value, bool):
            # Try to convert string 'true'/'false' to bool
            if isinstance(value, str):
                value = value.lower() in ('true', '1', 'yes', 'on')
            else:
                value = bool(value)
        elif expected_type == 'int' and not isinstance(value, int):
            try:
                value = int(value)
            except (ValueError, TypeError):
                raise ValueError(f"Option {option_name} requires int value, got {type(value).__name__}")
        elif expected_type == 'str':
            value = str(value)

        if expected_type == 'int' and value < 0:
            raise ValueError(f"Option {option_name} must not be negative")
        if 'choices' in option_info and value not in option_info['choices']:
            choices = ', '.join(str(c) for c in option_info['choices'])
            raise ValueError(f"Option {option_name} must be one of: {choices}")

        self.options[option_name] = value

    def get_option(self, option_name: str, default: Any = None) -> Any:
        """
        Get an API option value.

        Args:
            option_name: Name of the option
            default: Default value if option is not set

        Returns:
            Option value or default if not set
        """
        return self.options.get(option_name, default)

    def _prepare(self, file_data: bytes) -> bytes:
        data = bytes(file_data)
        limit = self.get_option('MaxInputSize', 0)
        if limit and len(data) > limit:
            raise InputTooLargeError(f"Input is {len(data)} bytes, limit is {limit} (MaxInputSize)")
        return data

    def _guarded(self, operation: Callable[[], Any], what: str) -> Any:
        """Run a codec operation, mapping stray parser exceptions to MalformedContainerError."""
        try:
            return operation()
        except DNMetaError:
            raise
        except _PARSE_ERRORS as e:
            logger.debug("%s failed with %s: %s", what, type(e).__name__, e)
            raise MalformedContainerError(f"{what}: malformed container ({type(e).__name__}: {e})")

    def classify(self, file_data: bytes, declared_name: Optional[str] = None) -> FormatTag:
        """
        Classify a buffer into a format family.

        Args:
            file_data: File data
            declared_name: File name as supplied by the caller

        Returns:
            FormatTag
        """
        return FormatDetector.classify(file_data, declared_name)

    def _codec_tag(self, file_data: bytes, declared_name: Optional[str]) -> FormatTag:
        if FormatDetector.is_executable(file_data, declared_name):
            raise UnsupportedFormatError(
                "Executable files are read-only; use inspect_executable() for header facts"
            )
        tag = self.classify(file_data, declared_name)
        if tag is FormatTag.UNSUPPORTED:
            raise UnsupportedFormatError(f"Unsupported file format: {declared_name or '<buffer>'}")
        return tag

    def read_metadata(self, file_data: bytes, declared_name: Optional[str] = None) -> MetadataSet:
        """
        Read metadata from a buffer.

        Args:
            file_data: File data
            declared_name: File name as supplied by the caller

        Returns:
            MetadataSet

        Raises:
            InputTooLargeError: If the buffer exceeds MaxInputSize
            UnsupportedFormatError: If the format is not handled
            MalformedContainerError: If the container structure is invalid
        """
        data = self._prepare(file_data)
        tag = self._codec_tag(data, declared_name)
        codec = get_codec(tag, self.options)
        return self._guarded(lambda: codec.read(data), f"Reading {tag.value}")

    def plan_edits(self, file_data: bytes, declared_name: Optional[str], edits: Edits) -> RewriteDiff:
        """
        Validate edits against a buffer without rewriting it.

        Returns:
            RewriteDiff describing what write_metadata() would change
        """
        data = self._prepare(file_data)
        tag = self._codec_tag(data, declared_name)
        if not isinstance(edits, EditRequest):
            edits = EditRequest.from_mapping(edits)
        codec = get_codec(tag, self.options)
        metadata = self._guarded(lambda: codec.read(data), f"Reading {tag.value}")
        return FieldEditor(self.options).apply(metadata, edits, tag)

    def write_metadata(self, file_data: bytes, declared_name: Optional[str], edits: Edits) -> bytes:
        """
        Apply edits and return the complete new file bytes.

        Args:
            file_data: Original file data (never modified)
            declared_name: File name as supplied by the caller
            edits: EditRequest, or a mapping name -> text (None or "" removes)

        Returns:
            New file data; a copy of the input when nothing changes

        Raises:
            InputTooLargeError: If the buffer exceeds MaxInputSize
            UnsupportedFormatError: If the format is not handled
            MalformedContainerError: If the container structure is invalid
            UnsupportedFieldError: If a field cannot be stored by the format
            InvalidFieldValueError: If a value does not coerce to the field's type
            UnencodableValueError: If a value exceeds a hard format limit
        """
        data = self._prepare(file_data)
        tag = self._codec_tag(data, declared_name)
        diff = self.plan_edits(data, declared_name, edits)
        if diff.is_empty:
            return bytes(data)
        logger.debug("Writing %s: %s", tag.value, diff.summary())
        codec = get_codec(tag, self.options)
        return self._guarded(lambda: codec.write(data, diff), f"Writing {tag.value}")

    def inspect_executable(self, file_data: bytes, declared_name: Optional[str] = None) -> MetadataSet:
        """
        Report read-only header facts of a PE executable.

        Raises:
            UnsupportedFormatError: If the buffer is not an executable
            MalformedContainerError: If the PE headers are invalid
        """
        data = self._prepare(file_data)
        if not FormatDetector.is_executable(data, declared_name):
            raise UnsupportedFormatError(f"Not an executable: {declared_name or '<buffer>'}")
        return self._guarded(lambda: inspect_pe(data), "Inspecting executable")


def read_metadata(file_data: bytes, declared_name: Optional[str] = None, **options: Any) -> MetadataSet:
    """Read metadata from a buffer with a default-configured engine."""
    return DNMeta(**options).read_metadata(file_data, declared_name)


def write_metadata(file_data: bytes, declared_name: Optional[str], edits: Edits, **options: Any) -> bytes:
    """Apply edits to a buffer with a default-configured engine."""
    return DNMeta(**options).write_metadata(file_data, declared_name, edits)


def inspect_executable(file_data: bytes, declared_name: Optional[str] = None, **options: Any) -> MetadataSet:
    """Inspect a PE executable with a default-configured engine."""
    return DNMeta(**options).inspect_executable(file_data, declared_name)
