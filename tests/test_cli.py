import json
from pathlib import Path

import pytest

from dnmeta.cli import (
    decode_text_file, default_output_path, format_output, main, parse_tag_assignments,
)
from dnmeta.id3_parser import read_id3
from dnmeta.metadata_model import MetadataField, MetadataSet, ValueKind
from dnmeta.tiff_structure import read_tiff


@pytest.fixture
def tiff_file(tmp_path, tiff_bytes):
    path = tmp_path / 'photo.tif'
    path.write_bytes(tiff_bytes)
    return path


@pytest.fixture
def mp3_file(tmp_path, id3_bytes):
    path = tmp_path / 'song.mp3'
    path.write_bytes(id3_bytes)
    return path


def test_format_output():
    metadata = MetadataSet([
        MetadataField('Title', 'Say "hi"', ValueKind.TEXT),
        MetadataField('Count', 2, ValueKind.INTEGER),
    ])

    assert format_output(metadata) == 'Count: 2\nTitle: Say "hi"'
    assert json.loads(format_output(metadata, 'json')) == {'Count': '2', 'Title': 'Say "hi"'}
    assert format_output(metadata, 'csv') == 'Tag,Value\n"Count","2"\n"Title","Say ""hi"""'


def test_parse_tag_assignments():
    assert parse_tag_assignments(['-TIT2=New = Title', 'Artist=']) == {'TIT2': 'New = Title', 'Artist': ''}
    with pytest.raises(ValueError):
        parse_tag_assignments(['-verbose'])
    with pytest.raises(ValueError):
        parse_tag_assignments(['=value'])


def test_decode_text_file():
    assert decode_text_file('TIT2=Grüße\n'.encode('utf-16')) == 'TIT2=Grüße\n'
    assert decode_text_file(b'TIT2=plain\n') == 'TIT2=plain\n'


def test_default_output_path():
    assert default_output_path(Path('/music/song.mp3'), False) == Path('/music/song_modified.mp3')
    assert default_output_path(Path('/music/song.mp3'), True) == Path('/music/song.mp3')


def test_read_text(tiff_file, capsys):
    assert main([str(tiff_file)]) == 0

    out = capsys.readouterr().out
    assert 'Make: Canon' in out
    assert 'ExposureTime: 1/125' in out
    assert 'DateTimeOriginal: 2024-01-02T03:04:05' in out


def test_read_json_and_csv(tiff_file, capsys):
    assert main(['-j', str(tiff_file)]) == 0
    assert json.loads(capsys.readouterr().out)['Model'] == 'EOS'

    assert main(['-csv', str(tiff_file)]) == 0
    lines = capsys.readouterr().out.splitlines()
    assert lines[0] == 'Tag,Value'
    assert '"Make","Canon"' in lines


def test_write_to_modified_copy(mp3_file, id3_bytes, capsys):
    assert main([str(mp3_file), '-TIT2=Fresh', '-t', 'TPE1=Band']) == 0

    output = mp3_file.with_name('song_modified.mp3')
    assert 'Metadata written successfully to' in capsys.readouterr().out
    assert mp3_file.read_bytes() == id3_bytes
    metadata = read_id3(output.read_bytes())
    assert metadata.get_text('TIT2') == 'Fresh'
    assert metadata.get_text('TPE1') == 'Band'


def test_remove_and_overwrite(tiff_file):
    assert main(['-t', 'Artist=', '-overwrite_original', str(tiff_file)]) == 0

    assert 'Artist' not in read_tiff(tiff_file.read_bytes())
    assert not tiff_file.with_name('photo_modified.tif').exists()


def test_argfile_output_and_api(tmp_path, mp3_file):
    argfile = tmp_path / 'tags.txt'
    argfile.write_text('# tags to apply\n\nTIT2=From a file\nTALB=Album\n', encoding='utf-8')
    output = tmp_path / 'out.mp3'

    assert main(['-@', str(argfile), '-o', str(output), '-api', 'ID3Padding=64', str(mp3_file)]) == 0

    data = output.read_bytes()
    metadata = read_id3(data)
    assert metadata.get_text('TIT2') == 'From a file'
    assert metadata.get_text('TALB') == 'Album'
    assert len(data) > len(mp3_file.read_bytes()) + 64


def test_inspect(tmp_path, pe_bytes, capsys):
    path = tmp_path / 'setup.exe'
    path.write_bytes(pe_bytes)

    assert main(['--inspect', str(path)]) == 0
    assert 'Machine: AMD64' in capsys.readouterr().out


def test_errors(tmp_path, tiff_file, capsys):
    assert main([str(tmp_path / 'missing.tif')]) == 1
    assert capsys.readouterr().err.startswith('Error:')

    text = tmp_path / 'notes.txt'
    text.write_text('hello')
    assert main([str(text)]) == 1
    assert 'Unsupported file format' in capsys.readouterr().err

    assert main([str(tiff_file), '-Orientation=sideways']) == 1
    assert 'Orientation' in capsys.readouterr().err

    assert main(['-api', 'Bogus=1', str(tiff_file)]) == 1
    assert 'Unknown option' in capsys.readouterr().err
