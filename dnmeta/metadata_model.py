# Copyright 2025 DNAi inc.

# Dual-licensed under the DNAi Free License v1.1 and the
# DNAi Commercial License v1.1.
# See the LICENSE files in the project root for details.

"""
Format-agnostic metadata model

This module holds the in-memory representation shared by every codec:
the format tag assigned by the sniffer, typed metadata fields located
in the source buffer, and the ordered set of fields a reader returns.

Copyright 2025 DNAi inc.
"""

import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union


class FormatTag(Enum):
    """Container family assigned by the format sniffer."""
    TIFF_IMAGE = "TiffImage"
    PDF = "Pdf"
    AUDIO_TAG = "AudioTag"
    UNSUPPORTED = "Unsupported"


class ValueKind(Enum):
    """Native type of a metadata field value."""
    TEXT = "text"
    INTEGER = "integer"
    RATIONAL = "rational"
    TIMESTAMP = "timestamp"
    BYTES = "bytes"


_RATIONAL_RE = re.compile(r'^\s*([+-]?\d+)\s*/\s*([+-]?\d+)\s*$')


@dataclass(frozen=True)
class Rational:
    """
    A numerator/denominator pair.

    Unlike fractions.Fraction the pair is never reduced, so a TIFF
    resolution stored as 300/1 or 600/2 reads back exactly as stored.
    """
    numerator: int
    denominator: int

    def __str__(self) -> str:
        return f"{self.numerator}/{self.denominator}"

    def __float__(self) -> float:
        if self.denominator == 0:
            return float('nan')
        return self.numerator / self.denominator

    @classmethod
    def parse(cls, text: str) -> 'Rational':
        """
        Parse "a/b", an integer or a decimal string.

        Decimals are scaled by a power of ten ("0.25" -> 25/100).

        Raises:
            ValueError: If the text is not a rational number
        """
        match = _RATIONAL_RE.match(text)
        if match:
            return cls(int(match.group(1)), int(match.group(2)))
        text = text.strip()
        if re.fullmatch(r'[+-]?\d+', text):
            return cls(int(text), 1)
        if re.fullmatch(r'[+-]?\d*\.\d+', text):
            sign = -1 if text.startswith('-') else 1
            whole, frac = text.lstrip('+-').split('.')
            scale = 10 ** len(frac)
            return cls(sign * (int(whole or '0') * scale + int(frac)), scale)
        raise ValueError(f"not a rational number: {text!r}")


FieldValue = Union[str, int, Rational, datetime, bytes, Tuple[Any, ...]]


@dataclass(frozen=True)
class MetadataField:
    """
    One named metadata value.

    source_offset and source_length locate the serialized value bytes in
    the buffer the field was read from. They are only used to decide
    whether an edit can be patched in place and are None for fields
    created by an edit.
    """
    name: str
    value: FieldValue
    kind: ValueKind
    source_offset: Optional[int] = None
    source_length: Optional[int] = None

    @property
    def is_located(self) -> bool:
        return self.source_offset is not None and self.source_length is not None

    def display_value(self) -> str:
        from dnmeta.value_formatter import format_field_value
        return format_field_value(self.kind, self.value)


class MetadataSet:
    """
    Ordered mapping from field name to MetadataField.

    A fresh instance is built by every read; names are unique and keep
    the order in which the reader found them.
    """

    def __init__(self, fields: Optional[List[MetadataField]] = None):
        self._fields: Dict[str, MetadataField] = {}
        for field in fields or []:
            self.add(field)

    def add(self, field: MetadataField) -> None:
        """
        Add a field.

        Raises:
            ValueError: If a field with the same name already exists
        """
        if field.name in self._fields:
            raise ValueError(f"duplicate metadata field: {field.name}")
        self._fields[field.name] = field

    def get(self, name: str, default: Optional[MetadataField] = None) -> Optional[MetadataField]:
        return self._fields.get(name, default)

    def __getitem__(self, name: str) -> MetadataField:
        return self._fields[name]

    def __contains__(self, name: object) -> bool:
        return name in self._fields

    def __iter__(self) -> Iterator[str]:
        return iter(self._fields)

    def __len__(self) -> int:
        return len(self._fields)

    def __repr__(self) -> str:
        return f"MetadataSet({list(self._fields)!r})"

    def names(self) -> List[str]:
        return list(self._fields)

    def fields(self) -> List[MetadataField]:
        return list(self._fields.values())

    def to_display_pairs(self) -> List[Tuple[str, str]]:
        """
        Return (name, text value) pairs sorted by name for presentation.
        """
        return [
            (name, self._fields[name].display_value())
            for name in sorted(self._fields)
        ]

    def to_dict(self) -> Dict[str, str]:
        """Return an ordered name -> text mapping in reader order."""
        return {name: field.display_value() for name, field in self._fields.items()}

    def _typed(self, name: str, kind: ValueKind) -> Any:
        field = self._fields[name]
        if field.kind is not kind:
            raise TypeError(
                f"field {name} holds {field.kind.value}, not {kind.value}"
            )
        return field.value

    def get_text(self, name: str) -> str:
        return self._typed(name, ValueKind.TEXT)

    def get_integer(self, name: str) -> Union[int, Tuple[int, ...]]:
        return self._typed(name, ValueKind.INTEGER)

    def get_rational(self, name: str) -> Union[Rational, Tuple[Rational, ...]]:
        return self._typed(name, ValueKind.RATIONAL)

    def get_timestamp(self, name: str) -> datetime:
        return self._typed(name, ValueKind.TIMESTAMP)

    def get_bytes(self, name: str) -> bytes:
        return self._typed(name, ValueKind.BYTES)
