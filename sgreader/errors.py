"""Exceptions raised while reading SG archives and decoding their pixels.

Everything derives from `SgFormatError`, itself a `ValueError`: a failure
here always means the bytes on disk do not describe what the metadata
claims, never a transient condition worth retrying.
"""

from __future__ import annotations

from typing import Optional


class SgFormatError(ValueError):
    """Base exception for malformed archive or pixel data."""

    def __init__(self, message: str, image_id: Optional[int] = None):
        self.message = message
        self.image_id = image_id
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        if self.image_id is not None:
            return f"{self.message} [Image: {self.image_id}]"
        return self.message


class TruncatedDataError(SgFormatError, EOFError):
    """Raised on a short read or a seek outside the byte source."""

    def __init__(self, message: str, offset: Optional[int] = None, image_id: Optional[int] = None):
        self.offset = offset
        super().__init__(message, image_id)

    def _format_message(self) -> str:
        base = super()._format_message()
        if self.offset is not None:
            return f"{base} [Offset: 0x{self.offset:X}]"
        return base


class TextDecodeError(SgFormatError):
    """Raised when a fixed-length text field is not valid UTF-8."""


class HeaderSizeMismatchError(SgFormatError):
    """Raised when the declared file size does not validate for the version."""

    def __init__(self, message: str, version: int, declared_size: int, actual_size: int):
        self.version = version
        self.declared_size = declared_size
        self.actual_size = actual_size
        super().__init__(message)

    def _format_message(self) -> str:
        return (
            f"{self.message} [Version: 0x{self.version:X}, "
            f"Declared: {self.declared_size}, Actual: {self.actual_size}]"
        )


class MalformedArchiveError(SgFormatError):
    """Raised when the archive tables are inconsistent with each other."""


class UnknownImageTypeError(SgFormatError):
    """Raised when an image record names an encoding we cannot decode."""

    def __init__(self, image_type: int, image_id: Optional[int] = None):
        self.image_type = image_type
        super().__init__(f"Unrecognised image type: {image_type}", image_id)


class ImageDataLengthMismatchError(SgFormatError):
    """Raised when plain pixel data does not cover width x height exactly."""

    def __init__(self, expected: int, actual: int, image_id: Optional[int] = None):
        self.expected = expected
        self.actual = actual
        super().__init__("Image data length doesn't match image size", image_id)

    def _format_message(self) -> str:
        return f"{super()._format_message()} [Expected: {self.expected}, Actual: {self.actual}]"


class FootprintMismatchError(SgFormatError):
    """Raised when isometric data does not match the footprint geometry."""
