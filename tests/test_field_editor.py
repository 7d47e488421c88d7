import pytest

from dnmeta.exceptions import UnsupportedFieldError, UnsupportedFormatError
from dnmeta.field_editor import EditRequest, FieldEditor, Remove, SetValue
from dnmeta.metadata_diff import ChangeType
from dnmeta.metadata_model import FormatTag, Rational, ValueKind
from dnmeta.tiff_structure import read_tiff


def test_edit_request():
    request = EditRequest.from_mapping({'Artist': 'Jane', 'Copyright': None, 'Model': '', 'Orientation': 3})

    assert len(request) == 4
    assert 'Artist' in request
    assert list(request) == [
        ('Artist', SetValue('Jane')),
        ('Copyright', Remove()),
        ('Model', Remove()),
        ('Orientation', SetValue('3')),
    ]

    chained = EditRequest().set('Make', 'Nikon').remove('Make')
    assert list(chained) == [('Make', Remove())]


def test_apply_builds_diff(tiff_bytes):
    metadata = read_tiff(tiff_bytes)
    edits = (
        EditRequest()
        .set('Make', 'Canon')             # unchanged
        .set('Model', 'R5')
        .set('XResolution', '300')
        .set('Copyright', 'Jane')
        .remove('Artist')
        .remove('Software')               # not present
    )
    diff = FieldEditor().apply(metadata, edits, FormatTag.TIFF_IMAGE)
    changes = diff.by_name()

    assert set(changes) == {'Model', 'XResolution', 'Copyright', 'Artist'}
    assert changes['Model'].change_type is ChangeType.CHANGED
    assert changes['Model'].old.value == 'EOS'
    assert changes['Model'].new.value == 'R5'
    assert not changes['Model'].new.is_located
    assert changes['XResolution'].new.value == Rational(300, 1)
    assert changes['XResolution'].new.kind is ValueKind.RATIONAL
    assert changes['Copyright'].change_type is ChangeType.ADDED
    assert changes['Artist'].change_type is ChangeType.REMOVED


def test_apply_equal_value_is_noop(tiff_bytes):
    metadata = read_tiff(tiff_bytes)
    edits = EditRequest().set('DateTimeOriginal', '2024:01:02 03:04:05').set('Orientation', ' 1 ')

    assert FieldEditor().apply(metadata, edits, FormatTag.TIFF_IMAGE).is_empty


def test_apply_errors(tiff_bytes):
    metadata = read_tiff(tiff_bytes)

    with pytest.raises(UnsupportedFieldError):
        FieldEditor().apply(metadata, EditRequest().remove('StripOffsets'), FormatTag.TIFF_IMAGE)
    with pytest.raises(UnsupportedFormatError):
        FieldEditor().apply(metadata, EditRequest().set('Make', 'x'), FormatTag.UNSUPPORTED)
