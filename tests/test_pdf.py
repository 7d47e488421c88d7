from datetime import datetime, timezone

import pytest

from builders import build_pdf
from dnmeta.core import DNMeta
from dnmeta.exceptions import (
    InvalidFieldValueError, MalformedContainerError, UnsupportedFieldError, UnsupportedFormatError,
)
from dnmeta.metadata_model import ValueKind
from dnmeta.pdf_parser import (
    PDFDictionary, PDFDocument, PDFName, PDFObjectParser, PDFRef, PDFString,
    decode_text_string, encode_pdf_doc, read_pdf,
)
from dnmeta.pdf_writer import encode_name, string_tokens


def test_object_parser():
    parser = PDFObjectParser(
        b'<< /Title (Hello \\(World\\) \\101) /Kids [1 0 R 2 0 R] /N 3 /F -1.5 '
        b'/Hex <48 65 6C 6C 6F> /Name /A#20B /Flag true /Nothing null >>'
    )
    value = parser.parse_object()

    assert isinstance(value, PDFDictionary)
    assert value.get('Title') == b'Hello (World) A'
    assert isinstance(value.get('Title'), PDFString)
    assert value.get('Kids') == [PDFRef(1, 0), PDFRef(2, 0)]
    assert value.get('N') == 3
    assert value.get('F') == -1.5
    assert value.get('Hex') == b'Hello'
    assert value.get('Name') == PDFName('A B')
    assert value.get('Flag') is True
    assert 'Nothing' in value and value.get('Nothing') is None
    assert value.raw['Kids'] == b'[1 0 R 2 0 R]'


def test_text_strings():
    assert decode_text_string(b'\xfe\xff\x00H\x00i') == 'Hi'
    assert decode_text_string(b'\xef\xbb\xbfH\xc3\xa9') == 'Hé'
    assert decode_text_string(b'caf\xe9 \x80') == 'café •'
    assert encode_pdf_doc('café •') == b'caf\xe9 \x80'
    assert encode_pdf_doc('日本') is None


def test_serialization_helpers():
    assert encode_name('Title') == b'/Title'
    assert encode_name('My Key#1') == b'/My#20Key#231'
    assert string_tokens('a(b)') == [b'(a\\(b\\))', b'<61286229>', b'<FEFF0061002800620029>']
    # not representable in PDFDocEncoding
    assert string_tokens('日本') == [b'<FEFF65E5672C>']


def test_read_pdf(pdf_bytes):
    metadata = read_pdf(pdf_bytes)

    assert metadata.names() == ['Title', 'Author']
    assert metadata.get_text('Title') == 'Old Title'
    title = metadata['Title']
    assert pdf_bytes[title.source_offset:title.source_offset + title.source_length] == b'(Old Title)'


def test_read_typed_info_values():
    data = build_pdf(
        b"<< /CreationDate (D:20240102030405Z) /Trapped /True /Pages 12 "
        b"/Version 1.7 /Custom [1 2] /ModDate (not a date) >>"
    )
    metadata = read_pdf(data)

    assert metadata.get_timestamp('CreationDate') == datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    assert metadata.get_text('Trapped') == 'True'
    assert metadata.get_integer('Pages') == 12
    assert metadata.get_text('Version') == '1.7'
    assert metadata.get_bytes('Custom') == b'[1 2]'
    # unparseable dates are still reported, as text
    assert metadata['ModDate'].kind is ValueKind.TEXT
    assert metadata.get_text('ModDate') == 'not a date'


def test_read_pdf_without_info():
    assert len(read_pdf(build_pdf(info=None))) == 0


def test_read_xref_stream_and_object_stream(xref_stream_pdf_bytes):
    document = PDFDocument(xref_stream_pdf_bytes).parse()
    metadata = document.to_metadata()

    assert document.version == '1.5'
    assert document.last_section.is_stream
    assert metadata.get_text('Title') == 'Stream Title'
    assert metadata.get_text('Producer') == 'Builder'
    # values inside a compressed object stream cannot be patched in place
    assert not metadata['Title'].is_located


def test_encrypted_pdf_is_unsupported():
    data = build_pdf(trailer_extra=b' /Encrypt << /Filter /Standard >>')

    with pytest.raises(UnsupportedFormatError):
        read_pdf(data)


def test_malformed_pdf(pdf_bytes):
    with pytest.raises(MalformedContainerError):
        read_pdf(b'%PDF-1.4\n1 0 obj\n<< >>\nendobj\n')
    with pytest.raises(MalformedContainerError):
        read_pdf(pdf_bytes.replace(b'/Root 1 0 R', b'/Root 9 0 R'))
    with pytest.raises(MalformedContainerError):
        DNMeta().read_metadata(pdf_bytes[:-40] + b'startxref\nabc\n%%EOF\n', 'x.pdf')


@pytest.mark.parametrize('old, new', [
    (b'/N 1 ', b'/N 1.'),
    (b'/First ', b'/First /A /Pad '),
    (b'/Size 8 /W', b'/Size /A /W'),
    (b'/Size 8 /W', b'/Size 8 /Index [0 8.0] /W'),
    (b'/W [1 4 2]', b'/W [1 true 2]'),
    (b'/Columns 7', b'/Columns 7.5'),
])
def test_non_integer_structure_values_are_malformed(xref_stream_pdf_bytes, old, new):
    data = xref_stream_pdf_bytes.replace(old, new)
    assert data != xref_stream_pdf_bytes

    with pytest.raises(MalformedContainerError):
        DNMeta().read_metadata(data, 'a.pdf')


def test_wrong_startxref_uses_last_trailer(pdf_bytes):
    startxref = PDFDocument(pdf_bytes).parse().startxref
    data = pdf_bytes.replace(b'startxref\n%d\n' % startxref, b'startxref\n%d\n' % (startxref + 3))

    document = PDFDocument(data).parse()
    assert document.startxref == startxref
    assert document.to_metadata().get_text('Title') == 'Old Title'

    new_data = DNMeta().write_metadata(data, 'a.pdf', {'Title': 'Recovered and longer'})
    assert b'/Prev %d' % startxref in new_data[len(data):]
    assert read_pdf(new_data).get_text('Title') == 'Recovered and longer'


def test_unusable_xref_table_locates_objects_by_scanning(pdf_bytes):
    data = pdf_bytes.replace(b'xref\n0 6\n', b'xref\n0 X\n')
    assert data != pdf_bytes

    document = PDFDocument(data).parse()
    assert document.reconstructed
    assert document.to_metadata().get_text('Author') == 'Jane'

    new_data = DNMeta().write_metadata(data, 'a.pdf', {'Title': 'Rebuilt and longer'})
    update = new_data[len(data):]
    # nothing valid to chain back to
    assert b'/Prev' not in update
    metadata = read_pdf(new_data)
    assert metadata.get_text('Title') == 'Rebuilt and longer'
    assert metadata.get_text('Author') == 'Jane'


def test_same_length_edit_patches_in_place(pdf_bytes):
    new_data = DNMeta().write_metadata(pdf_bytes, 'a.pdf', {'Title': 'New Title', 'Author': 'John'})
    original = read_pdf(pdf_bytes)

    assert len(new_data) == len(pdf_bytes)
    diff = [i for i in range(len(pdf_bytes)) if pdf_bytes[i] != new_data[i]]
    allowed = set()
    for name in ('Title', 'Author'):
        field = original[name]
        allowed |= set(range(field.source_offset, field.source_offset + field.source_length))
    assert diff and set(diff) <= allowed

    metadata = read_pdf(new_data)
    assert metadata.get_text('Title') == 'New Title'
    assert metadata.get_text('Author') == 'John'


def test_incremental_update(pdf_bytes):
    new_data = DNMeta().write_metadata(
        pdf_bytes, 'a.pdf', {'Title': 'A Much Longer Title', 'Subject': 'Tests', 'Author': None}
    )

    # the original revision is kept byte for byte
    assert new_data.startswith(pdf_bytes)
    update = new_data[len(pdf_bytes):]
    assert update.startswith(b'5 0 obj')
    assert b'\nxref\n' in update
    assert b'/Prev %d' % PDFDocument(pdf_bytes).parse().startxref in update
    assert update.endswith(b'%%EOF\n')

    metadata = read_pdf(new_data)
    assert metadata.get_text('Title') == 'A Much Longer Title'
    assert metadata.get_text('Subject') == 'Tests'
    assert 'Author' not in metadata


def test_incremental_update_keeps_stream_xref(xref_stream_pdf_bytes):
    new_data = DNMeta().write_metadata(xref_stream_pdf_bytes, 'a.pdf', {'Title': 'Fresh'})

    assert new_data.startswith(xref_stream_pdf_bytes)
    update = new_data[len(xref_stream_pdf_bytes):]
    assert b'/Type /XRef' in update
    assert b'\nxref\n' not in update

    document = PDFDocument(new_data).parse()
    assert document.last_section.is_stream
    metadata = document.to_metadata()
    assert metadata.get_text('Title') == 'Fresh'
    assert metadata.get_text('Producer') == 'Builder'


def test_add_info_dictionary():
    data = build_pdf(info=None)
    new_data = DNMeta().write_metadata(data, 'a.pdf', {'Title': 'Created'})

    document = PDFDocument(new_data).parse()
    assert document.info_reference() == PDFRef(5, 0)
    assert document.size == 6
    assert document.to_metadata().get_text('Title') == 'Created'


def test_typed_writes(pdf_bytes):
    new_data = DNMeta().write_metadata(pdf_bytes, 'a.pdf', {
        'CreationDate': '2024-01-02T03:04:05Z',
        'Trapped': 'false',
        'Keywords': 'Καλημέρα',
    })

    assert b'/Trapped /False' in new_data
    assert b'(D:20240102030405Z)' in new_data
    metadata = read_pdf(new_data)
    assert metadata.get_timestamp('CreationDate') == datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    assert metadata.get_text('Trapped') == 'False'
    assert metadata.get_text('Keywords') == 'Καλημέρα'


def test_rejected_edits(pdf_bytes):
    engine = DNMeta()

    with pytest.raises(InvalidFieldValueError):
        engine.write_metadata(pdf_bytes, 'a.pdf', {'ModDate': 'yesterday'})
    with pytest.raises(InvalidFieldValueError):
        engine.write_metadata(pdf_bytes, 'a.pdf', {'Trapped': 'maybe'})
    with pytest.raises(UnsupportedFieldError):
        engine.write_metadata(pdf_bytes, 'a.pdf', {'Bad Key': 'x'})


def test_basic_field_policy(pdf_bytes):
    engine = DNMeta(PDFInfoFields='basic')

    assert read_pdf(engine.write_metadata(pdf_bytes, 'a.pdf', {'Subject': 'ok'})).get_text('Subject') == 'ok'
    with pytest.raises(UnsupportedFieldError):
        engine.write_metadata(pdf_bytes, 'a.pdf', {'Keywords': 'nope'})
    with pytest.raises(UnsupportedFieldError):
        engine.write_metadata(build_pdf(b'<< /Producer (x) >>'), 'a.pdf', {'Producer': None})
