# Copyright 2025 DNAi inc.

# Dual-licensed under the DNAi Free License v1.1 and the
# DNAi Commercial License v1.1.
# See the LICENSE files in the project root for details.

"""
Exception classes for DNMeta

This module defines the error taxonomy of the metadata codec engine.
Every failure on the read or write path is raised as one of these
exceptions; the engine never returns partial or truncated output.

Copyright 2025 DNAi inc.
"""


class DNMetaError(Exception):
    """
    Base exception for all DNMeta errors.

    All DNMeta exceptions inherit from this class, allowing
    catch-all error handling for any DNMeta-related errors.
    """
    def __init__(self, message: str = ""):
        """
        Initialize the exception with an optional error message.

        Args:
            message: Descriptive error message explaining what went wrong
        """
        self.message = message
        super().__init__(message)


class UnsupportedFormatError(DNMetaError):
    """
    Raised when the buffer cannot be handled by any codec.

    This exception is raised when:
    - Neither the signature nor the declared extension identifies a known family
    - The family is recognized but the variant is not (BigTIFF, ID3v2.2, encrypted PDF)
    - The format is read-only (executables)
    """
    pass


class MalformedContainerError(DNMetaError):
    """
    Raised when the container structure cannot be trusted.

    This exception is raised when:
    - Magic bytes or version fields are wrong
    - The buffer is truncated or a length points past end-of-buffer
    - An offset chain loops back on itself
    - A rewritten file fails structural validation
    """
    pass


class InvalidFieldValueError(DNMetaError):
    """Raised when an edit value cannot be coerced to the field's native type."""
    pass


class UnsupportedFieldError(DNMetaError):
    """Raised when an edit targets a field the format has no writable slot for."""
    pass


class UnencodableValueError(DNMetaError):
    """
    Raised when a value exceeds a hard limit of the target format.

    Examples are an ID3 tag larger than the 28-bit synchsafe size field,
    non-ASCII text in a TIFF ASCII entry, or a TIFF file growing past 4 GiB.
    """
    pass


class InputTooLargeError(DNMetaError):
    """Raised when the input buffer exceeds the configured MaxInputSize."""
    pass
