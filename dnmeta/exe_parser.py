# Copyright 2025 DNAi inc.

# Dual-licensed under the DNAi Free License v1.1 and the
# DNAi Commercial License v1.1.
# See the LICENSE files in the project root for details.

"""
EXE file parser for Win32 Portable Executable files.

Executables are inspected, never edited: this parser reports the COFF
file header, the optional header essentials and the section table as a
read-only MetadataSet.

Copyright 2025 DNAi inc.
"""

import struct
from datetime import datetime, timezone

from dnmeta.exceptions import MalformedContainerError
from dnmeta.metadata_model import MetadataField, MetadataSet, ValueKind


class EXEParser:
    """
    Parser for Win32 EXE (Portable Executable) files.
    """

    # PE signature
    PE_SIGNATURE = b'PE\x00\x00'

    # IMAGE_FILE_HEADER size
    IMAGE_FILE_HEADER_SIZE = 20

    # IMAGE_SECTION_HEADER size
    IMAGE_SECTION_HEADER_SIZE = 40

    MACHINE_TYPES = {
        0x014c: 'I386',
        0x8664: 'AMD64',
        0x01c0: 'ARM',
        0x01c4: 'ARMNT',
        0xaa64: 'ARM64',
        0x0200: 'IA64',
    }

    SUBSYSTEMS = {
        1: 'Native',
        2: 'Windows GUI',
        3: 'Windows Console',
        7: 'POSIX Console',
        9: 'Windows CE GUI',
        10: 'EFI Application',
        11: 'EFI Boot Service Driver',
        12: 'EFI Runtime Driver',
        14: 'Xbox',
        16: 'Windows Boot Application',
    }

    def __init__(self, file_data: bytes):
        """
        Initialize EXE parser.

        Args:
            file_data: EXE file data bytes
        """
        self.file_data = file_data

    def _unpack(self, fmt: str, offset: int):
        size = struct.calcsize(fmt)
        if offset + size > len(self.file_data):
            raise MalformedContainerError(f"Invalid EXE file: read past end at offset {offset}")
        return struct.unpack('<' + fmt, self.file_data[offset:offset + size])[0]

    def parse(self) -> MetadataSet:
        """
        Parse EXE header metadata.

        Returns:
            MetadataSet of header facts (no field is located or writable)

        Raises:
            MalformedContainerError: If the DOS or PE headers are invalid
        """
        file_data = self.file_data
        if len(file_data) < 64:
            raise MalformedContainerError("Invalid EXE file: too short")
        # DOS header starts with "MZ" signature (0x4D 0x5A)
        if file_data[0:2] != b'MZ':
            raise MalformedContainerError("Invalid EXE file: missing DOS header")

        metadata = MetadataSet()

        # PE header offset from DOS header (offset 0x3C)
        pe_offset = self._unpack('I', 60)
        if file_data[pe_offset:pe_offset + 4] != self.PE_SIGNATURE:
            raise MalformedContainerError("Invalid EXE file: missing PE signature")

        header = pe_offset + 4
        machine = self._unpack('H', header)
        num_sections = self._unpack('H', header + 2)
        timestamp = self._unpack('I', header + 4)
        optional_header_size = self._unpack('H', header + 16)
        characteristics = self._unpack('H', header + 18)

        metadata.add(MetadataField(
            'Machine', self.MACHINE_TYPES.get(machine, f"0x{machine:04X}"), ValueKind.TEXT
        ))
        metadata.add(MetadataField('NumberOfSections', num_sections, ValueKind.INTEGER))
        if timestamp > 0:
            metadata.add(MetadataField(
                'TimeDateStamp', datetime.fromtimestamp(timestamp, tz=timezone.utc), ValueKind.TIMESTAMP
            ))
        metadata.add(MetadataField('Characteristics', characteristics, ValueKind.INTEGER))
        metadata.add(MetadataField('IsDLL', 'Yes' if characteristics & 0x2000 else 'No', ValueKind.TEXT))

        optional = header + self.IMAGE_FILE_HEADER_SIZE
        if optional_header_size >= 2:
            magic = self._unpack('H', optional)
            is_pe32_plus = magic == 0x20B
            metadata.add(MetadataField('PEType', 'PE32+' if is_pe32_plus else 'PE32', ValueKind.TEXT))
            if optional_header_size >= 70:
                metadata.add(MetadataField(
                    'LinkerVersion', f"{file_data[optional + 2]}.{file_data[optional + 3]}", ValueKind.TEXT
                ))
                metadata.add(MetadataField(
                    'AddressOfEntryPoint', self._unpack('I', optional + 16), ValueKind.INTEGER
                ))
                if is_pe32_plus:
                    image_base = self._unpack('Q', optional + 24)
                else:
                    image_base = self._unpack('I', optional + 28)
                metadata.add(MetadataField('ImageBase', image_base, ValueKind.INTEGER))
                os_major = self._unpack('H', optional + 40)
                os_minor = self._unpack('H', optional + 42)
                metadata.add(MetadataField('OSVersion', f"{os_major}.{os_minor}", ValueKind.TEXT))
                subsystem = self._unpack('H', optional + 68)
                metadata.add(MetadataField(
                    'Subsystem', self.SUBSYSTEMS.get(subsystem, f"Unknown ({subsystem})"), ValueKind.TEXT
                ))

        # Section table follows the optional header
        section_table = optional + optional_header_size
        names = []
        for i in range(num_sections):
            entry = section_table + i * self.IMAGE_SECTION_HEADER_SIZE
            if entry + self.IMAGE_SECTION_HEADER_SIZE > len(file_data):
                raise MalformedContainerError("Invalid EXE file: section table truncated")
            names.append(file_data[entry:entry + 8].rstrip(b'\x00').decode('latin-1'))
        if names:
            metadata.add(MetadataField('Sections', ' '.join(names), ValueKind.TEXT))

        return metadata


def inspect_pe(file_data: bytes) -> MetadataSet:
    """Return read-only header facts for a PE executable."""
    return EXEParser(file_data).parse()
