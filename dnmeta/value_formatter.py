# Copyright 2025 DNAi inc.

# Dual-licensed under the DNAi Free License v1.1 and the
# DNAi Commercial License v1.1.
# See the LICENSE files in the project root for details.

"""
Value formatter for converting typed field values to display strings.

Copyright 2025 DNAi inc.
"""

from datetime import datetime
from typing import Any

from dnmeta.metadata_model import Rational, ValueKind

# Binary values up to this size are shown as hex, larger ones summarized
MAX_HEX_BYTES = 16


def format_field_value(kind: ValueKind, value: Any) -> str:
    """
    Format a field value following the engine's text conventions.

    Rationals render as "a/b", timestamps as ISO-8601, multi-valued
    entries space-separated, and binary data as hex or a size summary.

    Args:
        kind: The field's value kind
        value: The typed value

    Returns:
        Display string
    """
    if value is None:
        return ""
    if isinstance(value, tuple):
        return " ".join(format_field_value(kind, item) for item in value)
    if kind is ValueKind.TIMESTAMP and isinstance(value, datetime):
        return value.isoformat()
    if kind is ValueKind.RATIONAL and isinstance(value, Rational):
        return str(value)
    if kind is ValueKind.BYTES or isinstance(value, (bytes, bytearray)):
        data = bytes(value)
        if len(data) <= MAX_HEX_BYTES:
            return data.hex()
        return f"(Binary data {len(data)} bytes)"
    return str(value)
