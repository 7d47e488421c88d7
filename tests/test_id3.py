import logging
import struct

import pytest

from builders import MPEG_AUDIO, build_id3, id3_frame, id3_text, synchsafe
from dnmeta.core import DNMeta
from dnmeta.exceptions import (
    InvalidFieldValueError, MalformedContainerError, UnencodableValueError,
    UnsupportedFieldError, UnsupportedFormatError,
)
from dnmeta.id3_parser import ID3Parser, int_to_synchsafe, read_id3, synchsafe_to_int
from dnmeta.metadata_model import ValueKind


def tag_size(data):
    return synchsafe_to_int(data[6:10])


def test_synchsafe():
    assert int_to_synchsafe(0x0FFFFFFF) == b'\x7f\x7f\x7f\x7f'
    assert synchsafe_to_int(b'\x00\x00\x02\x01') == 257
    assert synchsafe_to_int(int_to_synchsafe(123456)) == 123456
    with pytest.raises(ValueError):
        int_to_synchsafe(0x10000000)


def test_read_id3(id3_bytes):
    metadata = read_id3(id3_bytes)

    assert metadata.names() == ['TIT2', 'TPE1', 'COMM:eng:', 'XYZW']
    assert metadata.get_text('TIT2') == 'Old'
    assert metadata.get_text('TPE1') == 'Some Artist'
    assert metadata.get_text('COMM:eng:') == 'Nice song'
    assert metadata.get_bytes('XYZW') == b'\x01\x02\x03opaque'


def test_read_encodings_and_special_frames():
    data = build_id3([
        id3_text('TIT2', 'Ünïcode ♪', major=4, encoding=3),
        id3_frame('TPE1', b'\x03A\x00B', major=4),
        id3_text('TALB', 'Wide', major=4, encoding=1),
        id3_frame('TXXX', b'\x00Mood\x00Calm', major=4),
        id3_frame('WOAR', b'http://example.com/', major=4),
        id3_text('TLEN', '215000', major=4),
        id3_frame('TXXX', b'\x00Mood\x00Again', major=4),
    ], major=4)
    metadata = read_id3(data)

    assert metadata.get_text('TIT2') == 'Ünïcode ♪'
    # v2.4 multiple strings are joined
    assert metadata.get_text('TPE1') == 'A; B'
    assert metadata.get_text('TALB') == 'Wide'
    assert metadata.get_text('TXXX:Mood') == 'Calm'
    assert metadata.get_text('WOAR') == 'http://example.com/'
    assert metadata.get_integer('TLEN') == 215000
    # repeated frames are kept as opaque data
    assert metadata['TXXX#2'].kind is ValueKind.BYTES


def test_untagged_audio_has_no_fields(mpeg_audio):
    assert len(read_id3(mpeg_audio)) == 0


def test_unsupported_and_malformed_tags():
    with pytest.raises(UnsupportedFormatError):
        read_id3(b'ID3\x02\x00\x00' + synchsafe(0) + MPEG_AUDIO)
    with pytest.raises(MalformedContainerError):
        read_id3(b'ID3\x03\x00\x00' + synchsafe(5000) + MPEG_AUDIO)
    with pytest.raises(MalformedContainerError):
        # frame claims 100 bytes inside a 20 byte tag
        read_id3(b'ID3\x03\x00\x00' + synchsafe(20) + b'TIT2' + struct.pack('>I', 100) + bytes(12) + MPEG_AUDIO)
    with pytest.raises(MalformedContainerError):
        read_id3(build_id3([id3_frame('tit2', b'\x00x')]))
    with pytest.raises(MalformedContainerError):
        read_id3(b'ID3\x03\x00\x00\x00\x00\x80\x00' + MPEG_AUDIO)


def test_same_length_edit_patches_in_place(id3_bytes):
    new_data = DNMeta().write_metadata(id3_bytes, 'a.mp3', {'TIT2': 'New'})

    assert len(new_data) == len(id3_bytes)
    assert new_data.replace(b'\x00New', b'\x00Old', 1) == id3_bytes
    assert read_id3(new_data).get_text('TIT2') == 'New'


def test_growth_without_padding(id3_bytes):
    new_data = DNMeta().write_metadata(id3_bytes, 'a.mp3', {'TIT2': 'NewTitle'})

    assert len(new_data) == len(id3_bytes) + 5
    assert tag_size(new_data) == tag_size(id3_bytes) + 5
    assert new_data.endswith(MPEG_AUDIO)
    # unknown frames are carried over byte for byte
    assert id3_frame('XYZW', b'\x01\x02\x03opaque') in new_data

    metadata = read_id3(new_data)
    assert metadata.get_text('TIT2') == 'NewTitle'
    assert metadata.get_text('TPE1') == 'Some Artist'
    assert metadata.get_bytes('XYZW') == b'\x01\x02\x03opaque'


def test_padding_absorbs_growth():
    data = build_id3([id3_text('TIT2', 'Old')], padding=64)
    new_data = DNMeta().write_metadata(data, 'a.mp3', {'TIT2': 'A considerably longer title'})

    assert len(new_data) == len(data)
    assert tag_size(new_data) == tag_size(data)
    assert new_data.endswith(MPEG_AUDIO)
    assert read_id3(new_data).get_text('TIT2') == 'A considerably longer title'


def test_configured_padding_on_growth(id3_bytes):
    new_data = DNMeta(ID3Padding=100).write_metadata(id3_bytes, 'a.mp3', {'TIT2': 'NewTitle'})

    assert tag_size(new_data) == tag_size(id3_bytes) + 5 + 100
    tag = ID3Parser(new_data).parse()
    assert tag.padding == 100


def test_remove_keeps_tag_size(id3_bytes):
    new_data = DNMeta().write_metadata(id3_bytes, 'a.mp3', {'TPE1': None})

    assert len(new_data) == len(id3_bytes)
    assert 'TPE1' not in read_id3(new_data)


def test_add_user_frames(id3_bytes):
    new_data = DNMeta().write_metadata(id3_bytes, 'a.mp3', {
        'TXXX:Mood': 'Happy',
        'COMM:eng:': 'Great',
        'COMM:deu:Notiz': 'Grüße',
        'WOAR': 'http://example.com/artist',
        'TRCK': '3/12',
        'TLEN': '1000',
    })
    metadata = read_id3(new_data)

    assert metadata.get_text('TXXX:Mood') == 'Happy'
    assert metadata.get_text('COMM:eng:') == 'Great'
    assert metadata.get_text('COMM:deu:Notiz') == 'Grüße'
    assert metadata.get_text('WOAR') == 'http://example.com/artist'
    assert metadata.get_text('TRCK') == '3/12'
    assert metadata.get_integer('TLEN') == 1000


def test_non_latin_text_switches_encoding(id3_bytes):
    new_data = DNMeta().write_metadata(id3_bytes, 'a.mp3', {'TIT2': '日本語'})
    tag = ID3Parser(new_data).parse()

    assert tag.find('TIT2').body[0] == 1  # UTF-16 in a v2.3 tag
    assert read_id3(new_data).get_text('TIT2') == '日本語'


def test_create_tag_for_untagged_audio(mpeg_audio):
    new_data = DNMeta().write_metadata(mpeg_audio, 'a.mp3', {'TIT2': 'Fresh'})

    assert new_data.startswith(b'ID3\x03\x00')
    assert new_data.endswith(mpeg_audio)
    assert read_id3(new_data).get_text('TIT2') == 'Fresh'

    v4 = DNMeta(ID3Version=4, ID3Padding=16).write_metadata(mpeg_audio, 'a.mp3', {'TIT2': 'Fresh'})
    assert v4.startswith(b'ID3\x04\x00')
    assert ID3Parser(v4).parse().padding == 16


def test_unsynchronised_v23_tag_is_rewritten_clean():
    data = build_id3([id3_text('TIT2', 'Old')], flags=0x80, padding=8)
    new_data = DNMeta().write_metadata(data, 'a.mp3', {'TIT2': 'New'})

    assert new_data[5] & 0x80 == 0
    assert read_id3(new_data).get_text('TIT2') == 'New'


def test_crc_extended_header_is_dropped(caplog):
    extended = struct.pack('>IHI', 10, 0x8000, 0) + b'\x12\x34\x56\x78'
    data = build_id3([id3_text('TIT2', 'Old')], flags=0x40, extended_header=extended)

    with caplog.at_level(logging.WARNING, logger='dnmeta.id3_writer'):
        new_data = DNMeta().write_metadata(data, 'a.mp3', {'TIT2': 'Newer'})

    assert new_data[5] & 0x40 == 0
    assert read_id3(new_data).get_text('TIT2') == 'Newer'
    assert 'CRC' in caplog.text


def test_v24_footer_is_rewritten():
    data = build_id3([id3_text('TIT2', 'Old', major=4)], major=4, flags=0x10)
    new_data = DNMeta(ID3Padding=100).write_metadata(data, 'a.mp3', {'TIT2': 'Longer'})

    size = tag_size(new_data)
    footer = new_data[10 + size:20 + size]
    assert footer[:3] == b'3DI'
    assert footer[6:10] == new_data[6:10]
    # a tag with a footer carries no padding
    assert ID3Parser(new_data).parse().padding == 0
    assert new_data[20 + size:] == MPEG_AUDIO
    assert read_id3(new_data).get_text('TIT2') == 'Longer'


def test_v23_extended_header_records_new_padding():
    extended = struct.pack('>IHI', 6, 0, 40)
    data = build_id3([id3_text('TIT2', 'Old')], flags=0x40, extended_header=extended, padding=40)
    new_data = DNMeta().write_metadata(data, 'a.mp3', {'TIT2': 'A noticeably longer title'})

    assert len(new_data) == len(data)
    assert new_data[5] & 0x40
    tag = ID3Parser(new_data).parse()
    assert 0 < tag.padding < 40
    assert struct.unpack('>I', new_data[16:20])[0] == tag.padding
    assert read_id3(new_data).get_text('TIT2') == 'A noticeably longer title'


def test_v24_multiple_strings_stay_separate():
    data = build_id3([id3_frame('TPE1', b'\x03A\x00B', major=4)], major=4)
    new_data = DNMeta().write_metadata(data, 'a.mp3', {'TPE1': 'First; Second; Third'})

    assert ID3Parser(new_data).parse().find('TPE1').body == b'\x03First\x00Second\x00Third'
    assert read_id3(new_data).get_text('TPE1') == 'First; Second; Third'


def test_rejected_edits(id3_bytes):
    engine = DNMeta()

    with pytest.raises(InvalidFieldValueError):
        engine.write_metadata(id3_bytes, 'a.mp3', {'TRCK': 'three'})
    with pytest.raises(InvalidFieldValueError):
        engine.write_metadata(id3_bytes, 'a.mp3', {'TLEN': '3 minutes'})
    with pytest.raises(InvalidFieldValueError):
        engine.write_metadata(id3_bytes, 'a.mp3', {'TDRC': 'last year'})
    with pytest.raises(UnencodableValueError):
        engine.write_metadata(id3_bytes, 'a.mp3', {'WOAR': 'http://例え.jp/'})
    with pytest.raises(UnsupportedFieldError):
        engine.write_metadata(id3_bytes, 'a.mp3', {'APIC': 'cover'})
    with pytest.raises(UnsupportedFieldError):
        engine.write_metadata(id3_bytes, 'a.mp3', {'XYZW': 'text'})
    with pytest.raises(UnsupportedFieldError):
        engine.write_metadata(id3_bytes, 'a.mp3', {'XYZW': None})
    with pytest.raises(UnsupportedFieldError):
        engine.write_metadata(id3_bytes, 'a.mp3', {'COMM:english:x': 'bad language'})
