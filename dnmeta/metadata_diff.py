# Copyright 2025 DNAi inc.

# Dual-licensed under the DNAi Free License v1.1 and the
# DNAi Commercial License v1.1.
# See the LICENSE files in the project root for details.

"""
Metadata Diff Module

This module defines the validated change set the field editor hands to
a rewriter: which fields are added, changed or removed, with both the
original field (and its source location) and the coerced new field.

Copyright 2025 DNAi inc.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, List, Optional

from dnmeta.metadata_model import MetadataField


class ChangeType(Enum):
    """Type of change applied to one field."""
    ADDED = "added"  # Field not present in the original file
    CHANGED = "changed"  # Field present with a different value
    REMOVED = "removed"  # Field present and requested for removal


@dataclass(frozen=True)
class FieldChange:
    """One validated change to a field."""
    name: str
    change_type: ChangeType
    old: Optional[MetadataField] = None
    new: Optional[MetadataField] = None


@dataclass
class RewriteDiff:
    """Ordered set of field changes, at most one per field name."""
    changes: List[FieldChange] = field(default_factory=list)

    def add(self, change: FieldChange) -> None:
        self.changes = [c for c in self.changes if c.name != change.name]
        self.changes.append(change)

    def __iter__(self) -> Iterator[FieldChange]:
        return iter(self.changes)

    def __len__(self) -> int:
        return len(self.changes)

    @property
    def is_empty(self) -> bool:
        return not self.changes

    @property
    def added(self) -> List[FieldChange]:
        return [c for c in self.changes if c.change_type is ChangeType.ADDED]

    @property
    def changed(self) -> List[FieldChange]:
        return [c for c in self.changes if c.change_type is ChangeType.CHANGED]

    @property
    def removed(self) -> List[FieldChange]:
        return [c for c in self.changes if c.change_type is ChangeType.REMOVED]

    def by_name(self) -> Dict[str, FieldChange]:
        return {c.name: c for c in self.changes}

    def summary(self) -> str:
        """Short human-readable description, e.g. "1 added, 2 changed"."""
        parts = []
        for label, items in (('added', self.added), ('changed', self.changed), ('removed', self.removed)):
            if items:
                parts.append(f"{len(items)} {label}")
        return ", ".join(parts) if parts else "no changes"
