# Copyright 2025 DNAi inc.

# Dual-licensed under the DNAi Free License v1.1 and the
# DNAi Commercial License v1.1.
# See the LICENSE files in the project root for details.

"""
File format detector

This module classifies a byte buffer into one of the container families
the engine can read and write. Signatures are checked before the
declared file extension, so a mislabeled file is still handled by the
right codec.

Copyright 2025 DNAi inc.
"""

import logging
from pathlib import Path
from typing import Dict, Optional

from dnmeta.metadata_model import FormatTag

logger = logging.getLogger(__name__)


class FormatDetector:
    """
    Detects file formats from file signatures and extensions.
    """

    # Format signatures (magic numbers) at offset 0
    FORMAT_SIGNATURES: Dict[bytes, FormatTag] = {
        b'II*\x00': FormatTag.TIFF_IMAGE,
        b'MM\x00*': FormatTag.TIFF_IMAGE,
        # BigTIFF: same family, rejected by the reader
        b'II+\x00': FormatTag.TIFF_IMAGE,
        b'MM\x00+': FormatTag.TIFF_IMAGE,
        # JPEG carries its Exif metadata as a TIFF structure in APP1
        b'\xff\xd8\xff': FormatTag.TIFF_IMAGE,
        b'ID3': FormatTag.AUDIO_TAG,
        # Formats recognized but not handled
        b'\x89PNG\r\n\x1a\n': FormatTag.UNSUPPORTED,
        b'GIF87a': FormatTag.UNSUPPORTED,
        b'GIF89a': FormatTag.UNSUPPORTED,
        b'PK\x03\x04': FormatTag.UNSUPPORTED,
        b'MZ': FormatTag.UNSUPPORTED,
    }

    # Extension to format mapping
    EXTENSION_FORMATS: Dict[str, FormatTag] = {
        '.tif': FormatTag.TIFF_IMAGE, '.tiff': FormatTag.TIFF_IMAGE,
        '.jpg': FormatTag.TIFF_IMAGE, '.jpeg': FormatTag.TIFF_IMAGE,
        '.pdf': FormatTag.PDF,
        '.mp3': FormatTag.AUDIO_TAG,
    }

    EXECUTABLE_EXTENSIONS = ('.exe', '.dll', '.sys', '.ocx', '.scr', '.cpl', '.drv')

    # %PDF- may follow leading junk within this many bytes
    PDF_HEADER_WINDOW = 1024

    @staticmethod
    def _is_mpeg_frame_sync(file_data: bytes) -> bool:
        """Check for an MPEG audio frame header at offset 0."""
        if len(file_data) < 4 or file_data[0] != 0xFF or (file_data[1] & 0xE0) != 0xE0:
            return False
        version = (file_data[1] >> 3) & 0x03
        layer = (file_data[1] >> 1) & 0x03
        bitrate_index = file_data[2] >> 4
        sample_rate_index = (file_data[2] >> 2) & 0x03
        return version != 1 and layer != 0 and bitrate_index != 0x0F and sample_rate_index != 0x03

    @classmethod
    def detect_signature(cls, file_data: bytes) -> Optional[FormatTag]:
        """
        Classify by content alone.

        Returns:
            FormatTag, or None when no known signature matches
        """
        for signature, tag in cls.FORMAT_SIGNATURES.items():
            if file_data.startswith(signature):
                return tag
        if b'%PDF-' in file_data[:cls.PDF_HEADER_WINDOW]:
            return FormatTag.PDF
        if cls._is_mpeg_frame_sync(file_data):
            return FormatTag.AUDIO_TAG
        return None

    @classmethod
    def classify(cls, file_data: bytes, declared_name: Optional[str] = None) -> FormatTag:
        """
        Detect file format from data, then from the declared name.

        Args:
            file_data: File data
            declared_name: File name or path as supplied by the caller

        Returns:
            FormatTag (UNSUPPORTED when nothing matches)
        """
        tag = cls.detect_signature(file_data)
        if tag is not None:
            logger.debug("Classified %s as %s by signature", declared_name or '<buffer>', tag.value)
            return tag

        if declared_name:
            ext = Path(declared_name).suffix.lower()
            if ext in cls.EXTENSION_FORMATS:
                tag = cls.EXTENSION_FORMATS[ext]
                logger.debug("Classified %s as %s by extension", declared_name, tag.value)
                return tag

        return FormatTag.UNSUPPORTED

    @classmethod
    def is_executable(cls, file_data: bytes, declared_name: Optional[str] = None) -> bool:
        """
        Check whether the input is a Windows executable.

        Executables are never read or written as metadata containers; they
        can only be inspected.
        """
        if file_data.startswith(b'MZ'):
            return True
        if cls.detect_signature(file_data) is not None:
            return False
        return bool(declared_name) and Path(declared_name).suffix.lower() in cls.EXECUTABLE_EXTENSIONS
