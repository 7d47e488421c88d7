import struct

import pytest

from builders import JPEG_APP0, JPEG_DQT, JPEG_SCAN, build_jpeg, jpeg_segment, sample_tiff
from dnmeta.core import DNMeta
from dnmeta.exceptions import MalformedContainerError, UnencodableValueError
from dnmeta.jpeg_exif import JPEGSegments, read_jpeg
from dnmeta.metadata_model import Rational

# SOI + JFIF APP0
APP1_AT = 2 + len(JPEG_APP0)


def test_read_jpeg_exif(jpeg_bytes):
    metadata = read_jpeg(jpeg_bytes)

    assert metadata.get_text('Make') == 'Canon'
    assert metadata.get_text('Artist') == 'Jane Doe'
    assert metadata.get_rational('ExposureTime') == Rational(1, 125)
    # locations point into the JPEG buffer, not the embedded TIFF
    make = metadata['Make']
    assert jpeg_bytes[make.source_offset:make.source_offset + make.source_length] == b'Canon\x00'


def test_segments(jpeg_bytes):
    segments = JPEGSegments(jpeg_bytes).parse()

    assert [marker for marker, _, _ in segments.segments] == [0xFFE0, 0xFFE1, 0xFFDB, 0xFFDA]
    assert segments.exif_payload_range() == (APP1_AT + 10, APP1_AT + 10 + len(sample_tiff()))
    assert JPEGSegments(build_jpeg()).parse().insertion_offset() == APP1_AT
    assert JPEGSegments(build_jpeg(app0=False)).parse().insertion_offset() == 2


def test_jpeg_without_exif_has_no_fields():
    assert len(read_jpeg(build_jpeg())) == 0
    # APP1 segments that are not Exif (XMP) are ignored
    xmp = jpeg_segment(0xFFE1, b'http://ns.adobe.com/xap/1.0/\x00<x/>')
    data = b'\xff\xd8' + xmp + JPEG_DQT + JPEG_SCAN
    assert len(read_jpeg(data)) == 0


def test_same_length_edit_patches_in_place(jpeg_bytes):
    new_data = DNMeta().write_metadata(jpeg_bytes, 'a.jpg', {'Make': 'Nikon'})
    make = read_jpeg(jpeg_bytes)['Make']

    assert len(new_data) == len(jpeg_bytes)
    diff = [i for i in range(len(jpeg_bytes)) if jpeg_bytes[i] != new_data[i]]
    assert diff and set(diff) <= set(range(make.source_offset, make.source_offset + make.source_length))
    assert read_jpeg(new_data).get_text('Make') == 'Nikon'


def test_longer_value_reframes_exif_segment(jpeg_bytes):
    new_data = DNMeta().write_metadata(jpeg_bytes, 'a.jpg', {'Artist': 'Someone Else Entirely'})

    assert len(new_data) > len(jpeg_bytes)
    assert new_data[:APP1_AT] == jpeg_bytes[:APP1_AT]
    assert new_data.endswith(JPEG_DQT + JPEG_SCAN)
    length = struct.unpack('>H', new_data[APP1_AT + 2:APP1_AT + 4])[0]
    assert new_data[APP1_AT + 2 + length:] == JPEG_DQT + JPEG_SCAN

    metadata = read_jpeg(new_data)
    assert metadata.get_text('Artist') == 'Someone Else Entirely'
    assert metadata.get_text('Make') == 'Canon'
    assert metadata.get_bytes('ExifIFD:Tag0x9999') == b'secret'


def test_add_exif_segment():
    data = build_jpeg()
    new_data = DNMeta().write_metadata(data, 'a.jpg', {'Artist': 'Jane', 'Orientation': '6'})

    assert new_data[:APP1_AT] == data[:APP1_AT]
    assert new_data[APP1_AT:APP1_AT + 2] == b'\xff\xe1'
    assert new_data[APP1_AT + 4:APP1_AT + 10] == b'Exif\x00\x00'
    assert new_data.endswith(data[APP1_AT:])
    metadata = read_jpeg(new_data)
    assert metadata.get_text('Artist') == 'Jane'
    assert metadata.get_integer('Orientation') == 6

    bare = DNMeta().write_metadata(build_jpeg(app0=False), 'a.jpg', {'Artist': 'Jane'})
    assert bare[2:4] == b'\xff\xe1'
    assert read_jpeg(bare).get_text('Artist') == 'Jane'


def test_exif_segment_size_limit(jpeg_bytes):
    with pytest.raises(UnencodableValueError):
        DNMeta().write_metadata(jpeg_bytes, 'a.jpg', {'ImageDescription': 'x' * 70000})


@pytest.mark.parametrize('data', [
    b'\xff\xd8\xff\xe1\x00',
    b'\xff\xd8' + jpeg_segment(0xFFE1, b'Exif\x00\x00')[:-2] + b'\xff\x00',
    b'\xff\xd8\xff\xe1\x01\x00Exif\x00\x00',
    b'\xff\xd8' + JPEG_APP0 + b'\x00\x00' + JPEG_SCAN,
    build_jpeg(b'XX*\x00' + bytes(8)),
])
def test_malformed_jpeg(data):
    with pytest.raises(MalformedContainerError):
        DNMeta().read_metadata(data, 'a.jpg')
