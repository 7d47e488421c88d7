from datetime import datetime, timezone

import pytest

from builders import build_pe
from dnmeta.exceptions import MalformedContainerError
from dnmeta.exe_parser import inspect_pe


def test_inspect_pe(pe_bytes):
    metadata = inspect_pe(pe_bytes)

    assert metadata.get_text('Machine') == 'AMD64'
    assert metadata.get_integer('NumberOfSections') == 2
    assert metadata.get_timestamp('TimeDateStamp') == datetime.fromtimestamp(1700000000, tz=timezone.utc)
    assert metadata.get_text('IsDLL') == 'No'
    assert metadata.get_text('PEType') == 'PE32+'
    assert metadata.get_text('LinkerVersion') == '14.20'
    assert metadata.get_integer('AddressOfEntryPoint') == 0x1000
    assert metadata.get_integer('ImageBase') == 0x140000000
    assert metadata.get_text('OSVersion') == '6.0'
    assert metadata.get_text('Subsystem') == 'Windows Console'
    assert metadata.get_text('Sections') == '.text .data'
    # header facts are read-only
    assert not any(field.is_located for field in metadata.fields())


def test_unknown_machine_and_no_timestamp():
    metadata = inspect_pe(build_pe(machine=0x1234, timestamp=0, sections=()))

    assert metadata.get_text('Machine') == '0x1234'
    assert 'TimeDateStamp' not in metadata
    assert 'Sections' not in metadata


def test_malformed_pe(pe_bytes):
    with pytest.raises(MalformedContainerError):
        inspect_pe(b'MZ')
    with pytest.raises(MalformedContainerError):
        inspect_pe(b'MZ' + bytes(62))
    with pytest.raises(MalformedContainerError):
        inspect_pe(pe_bytes[:100])
    with pytest.raises(MalformedContainerError):
        inspect_pe(pe_bytes[:-20])
