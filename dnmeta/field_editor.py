# Copyright 2025 DNAi inc.

# Dual-licensed under the DNAi Free License v1.1 and the
# DNAi Commercial License v1.1.
# See the LICENSE files in the project root for details.

"""
Field editor

This module turns caller edits (field name -> text, or removal) into a
validated RewriteDiff against the metadata read from a file. Value
coercion is delegated to the format codec.

Copyright 2025 DNAi inc.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterator, Mapping, Optional, Tuple, Union

from dnmeta.format_codecs import MetadataCodec, get_codec
from dnmeta.metadata_diff import ChangeType, FieldChange, RewriteDiff
from dnmeta.metadata_model import FormatTag, MetadataSet


@dataclass(frozen=True)
class SetValue:
    """Set a field to a value given as text."""
    text: str


@dataclass(frozen=True)
class Remove:
    """Remove a field."""
    pass


Edit = Union[SetValue, Remove]


class EditRequest:
    """
    Ordered mapping of field name -> SetValue or Remove.

    Example:
        >>> edits = EditRequest.from_mapping({'Artist': 'Jane', 'Copyright': None})
    """

    def __init__(self):
        self._edits: Dict[str, Edit] = {}

    def set(self, name: str, text: str) -> 'EditRequest':
        self._edits[name] = SetValue(text)
        return self

    def remove(self, name: str) -> 'EditRequest':
        self._edits[name] = Remove()
        return self

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Optional[Any]]) -> 'EditRequest':
        """Build a request; None or an empty string means removal."""
        request = cls()
        for name, value in mapping.items():
            if value is None or value == '':
                request.remove(name)
            else:
                request.set(name, str(value))
        return request

    def __iter__(self) -> Iterator[Tuple[str, Edit]]:
        return iter(self._edits.items())

    def __len__(self) -> int:
        return len(self._edits)

    def __contains__(self, name: object) -> bool:
        return name in self._edits


class FieldEditor:
    """
    Validates edits against a MetadataSet and produces a RewriteDiff.
    """

    def __init__(self, options: Optional[Dict[str, Any]] = None):
        """
        Initialize field editor.

        Args:
            options: Engine options passed to the format codec
        """
        self.options = options or {}

    def apply(self, metadata: MetadataSet, edits: EditRequest, tag: FormatTag) -> RewriteDiff:
        """
        Compute the changes an edit request makes to a file's metadata.

        Args:
            metadata: Metadata as read from the file
            edits: Requested edits
            tag: Format of the file

        Returns:
            RewriteDiff; setting a field to its current value or removing
            an absent field contributes nothing

        Raises:
            UnsupportedFormatError: If the format has no codec
            UnsupportedFieldError: If a field cannot be stored by the format
            InvalidFieldValueError: If a value does not coerce to the field's type
            UnencodableValueError: If a value cannot be represented by the format
        """
        codec: MetadataCodec = get_codec(tag, self.options)
        diff = RewriteDiff()
        for name, edit in edits:
            current = metadata.get(name)
            if isinstance(edit, Remove):
                if current is None:
                    continue
                codec.check_removable(name, current)
                diff.add(FieldChange(name, ChangeType.REMOVED, old=current))
                continue

            new = codec.coerce(name, edit.text, current)
            if current is None:
                diff.add(FieldChange(name, ChangeType.ADDED, new=new))
            elif current.kind is not new.kind or current.value != new.value:
                diff.add(FieldChange(name, ChangeType.CHANGED, old=current, new=new))
        return diff
