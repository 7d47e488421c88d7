import pytest

from builders import (
    MPEG_AUDIO, build_jpeg, build_pdf, build_pe, build_xref_stream_pdf, sample_id3, sample_tiff,
)


@pytest.fixture
def tiff_bytes():
    return sample_tiff()


@pytest.fixture
def jpeg_bytes():
    return build_jpeg(sample_tiff())


@pytest.fixture
def pdf_bytes():
    return build_pdf()


@pytest.fixture
def xref_stream_pdf_bytes():
    return build_xref_stream_pdf()


@pytest.fixture
def id3_bytes():
    return sample_id3()


@pytest.fixture
def mpeg_audio():
    return MPEG_AUDIO


@pytest.fixture
def pe_bytes():
    return build_pe()
