from dnmeta.format_detector import FormatDetector
from dnmeta.metadata_model import FormatTag


def test_signatures(tiff_bytes, jpeg_bytes, pdf_bytes, id3_bytes, mpeg_audio, pe_bytes):
    assert FormatDetector.classify(tiff_bytes) is FormatTag.TIFF_IMAGE
    assert FormatDetector.classify(b'MM\x00*\x00\x00\x00\x08') is FormatTag.TIFF_IMAGE
    # JPEG Exif is a TIFF structure inside APP1
    assert FormatDetector.classify(jpeg_bytes) is FormatTag.TIFF_IMAGE
    assert FormatDetector.classify(pdf_bytes) is FormatTag.PDF
    assert FormatDetector.classify(id3_bytes) is FormatTag.AUDIO_TAG
    # untagged MPEG audio is detected by its frame sync
    assert FormatDetector.classify(mpeg_audio) is FormatTag.AUDIO_TAG
    assert FormatDetector.classify(pe_bytes) is FormatTag.UNSUPPORTED


def test_signature_beats_extension(tiff_bytes, pdf_bytes):
    assert FormatDetector.classify(tiff_bytes, 'song.mp3') is FormatTag.TIFF_IMAGE
    assert FormatDetector.classify(pdf_bytes, 'image.tif') is FormatTag.PDF
    assert FormatDetector.classify(b'\x89PNG\r\n\x1a\n' + bytes(8), 'photo.tif') is FormatTag.UNSUPPORTED


def test_pdf_header_after_junk(pdf_bytes):
    assert FormatDetector.classify(b'\x00' * 100 + pdf_bytes) is FormatTag.PDF
    assert FormatDetector.classify(b'\x00' * 2000 + pdf_bytes) is FormatTag.UNSUPPORTED


def test_extension_fallback():
    data = b'nothing recognizable here'
    assert FormatDetector.classify(data, 'Report.PDF') is FormatTag.PDF
    assert FormatDetector.classify(data, '/music/track.mp3') is FormatTag.AUDIO_TAG
    assert FormatDetector.classify(data, 'scan.tiff') is FormatTag.TIFF_IMAGE
    assert FormatDetector.classify(data, 'holiday.JPG') is FormatTag.TIFF_IMAGE
    assert FormatDetector.classify(data, 'notes.txt') is FormatTag.UNSUPPORTED
    assert FormatDetector.classify(data) is FormatTag.UNSUPPORTED
    assert FormatDetector.classify(b'') is FormatTag.UNSUPPORTED


def test_is_executable(pe_bytes, tiff_bytes):
    assert FormatDetector.is_executable(pe_bytes)
    assert FormatDetector.is_executable(b'garbage', 'setup.EXE')
    assert FormatDetector.is_executable(b'garbage', 'library.dll')
    assert not FormatDetector.is_executable(tiff_bytes, 'setup.exe')
    assert not FormatDetector.is_executable(b'garbage', 'notes.txt')
