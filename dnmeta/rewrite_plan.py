# Copyright 2025 DNAi inc.

# Dual-licensed under the DNAi Free License v1.1 and the
# DNAi Commercial License v1.1.
# See the LICENSE files in the project root for details.

"""
Rewrite plans

A RewritePlan describes an output file as an ordered list of segments,
each either a byte range copied from the original buffer or newly
serialized bytes. Rewriters build a plan and render it once, so regions
an edit did not touch are always taken from the original buffer.

Copyright 2025 DNAi inc.
"""

from dataclasses import dataclass
from typing import Iterable, List, Tuple, Union

from dnmeta.exceptions import MalformedContainerError


@dataclass(frozen=True)
class CopySegment:
    """Copy `length` bytes from the original buffer at `offset`."""
    offset: int
    length: int


@dataclass(frozen=True)
class EmitSegment:
    """Emit newly serialized bytes."""
    data: bytes

    @property
    def length(self) -> int:
        return len(self.data)


Segment = Union[CopySegment, EmitSegment]


class RewritePlan:
    """
    Ordered output segments for one rewritten file.

    Example:
        >>> plan = RewritePlan(len(original))
        >>> plan.copy(0, 8)
        >>> plan.emit(new_header)
        >>> plan.copy_rest(8 + len(new_header))
        >>> new_data = plan.render(original)
    """

    def __init__(self, source_length: int):
        self.source_length = source_length
        self.segments: List[Segment] = []

    def copy(self, offset: int, length: int) -> None:
        """
        Append a copy of original[offset:offset + length].

        Raises:
            MalformedContainerError: If the range lies outside the source
        """
        if length == 0:
            return
        if offset < 0 or length < 0 or offset + length > self.source_length:
            raise MalformedContainerError(
                f"copy range {offset}+{length} outside source of {self.source_length} bytes"
            )
        if self.segments and isinstance(self.segments[-1], CopySegment):
            last = self.segments[-1]
            if last.offset + last.length == offset:
                self.segments[-1] = CopySegment(last.offset, last.length + length)
                return
        self.segments.append(CopySegment(offset, length))

    def copy_rest(self, offset: int) -> None:
        """Append a copy of everything from `offset` to the end of the source."""
        self.copy(offset, self.source_length - offset)

    def emit(self, data: bytes) -> None:
        """Append newly serialized bytes."""
        if not data:
            return
        if self.segments and isinstance(self.segments[-1], EmitSegment):
            self.segments[-1] = EmitSegment(self.segments[-1].data + bytes(data))
            return
        self.segments.append(EmitSegment(bytes(data)))

    @property
    def total_length(self) -> int:
        return sum(segment.length for segment in self.segments)

    @property
    def emitted_length(self) -> int:
        return sum(s.length for s in self.segments if isinstance(s, EmitSegment))

    def render(self, source: bytes) -> bytes:
        """Concatenate all segments into the output buffer."""
        if len(source) != self.source_length:
            raise MalformedContainerError("plan rendered against a different source buffer")
        out = bytearray()
        for segment in self.segments:
            if isinstance(segment, CopySegment):
                out += source[segment.offset:segment.offset + segment.length]
            else:
                out += segment.data
        return bytes(out)

    @classmethod
    def patched(cls, source: bytes, patches: Iterable[Tuple[int, bytes]]) -> 'RewritePlan':
        """
        Build a plan that replaces byte ranges in place.

        Each patch is (offset, replacement); the replacement overwrites
        exactly len(replacement) bytes, so the output has the source length.

        Raises:
            MalformedContainerError: If patches overlap or exceed the source
        """
        plan = cls(len(source))
        position = 0
        for offset, data in sorted(patches, key=lambda patch: patch[0]):
            if offset < position:
                raise MalformedContainerError(f"overlapping in-place patch at offset {offset}")
            if offset + len(data) > len(source):
                raise MalformedContainerError(f"in-place patch at offset {offset} exceeds source")
            plan.copy(position, offset - position)
            plan.emit(data)
            position = offset + len(data)
        plan.copy_rest(position)
        return plan
