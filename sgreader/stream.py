"""Little-endian primitive reads over a seekable binary stream."""

from __future__ import annotations

import io
import os
import struct
from typing import BinaryIO, Union

from .errors import TextDecodeError, TruncatedDataError

_U16 = struct.Struct("<H")
_U32 = struct.Struct("<I")
_I32 = struct.Struct("<i")


class ByteReader:
    """Cursor over a seekable byte source.

    Reads never zero-pad: anything shorter than requested raises
    `TruncatedDataError`.
    """

    def __init__(self, stream: Union[BinaryIO, bytes, bytearray, memoryview]):
        if isinstance(stream, (bytes, bytearray, memoryview)):
            stream = io.BytesIO(bytes(stream))
        self.stream = stream
        self._size = -1

    @property
    def size(self) -> int:
        """Total length of the underlying source in bytes."""
        if self._size < 0:
            here = self.stream.tell()
            self._size = self.stream.seek(0, os.SEEK_END)
            self.stream.seek(here)
        return self._size

    def tell(self) -> int:
        return self.stream.tell()

    def seek(self, offset: int) -> int:
        if offset < 0 or offset > self.size:
            raise TruncatedDataError("Seek outside of data", offset=offset)
        return self.stream.seek(offset)

    def seek_relative(self, delta: int) -> int:
        return self.seek(self.tell() + delta)

    def read_bytes(self, length: int) -> bytes:
        if length < 0:
            raise ValueError(f"Negative read length: {length}")
        start = self.stream.tell()
        data = self.stream.read(length)
        if len(data) != length:
            raise TruncatedDataError(f"Expected {length} bytes, got {len(data)}", offset=start)
        return data

    def read_u8(self) -> int:
        return self.read_bytes(1)[0]

    def read_u16_le(self) -> int:
        return _U16.unpack(self.read_bytes(2))[0]

    def read_u32_le(self) -> int:
        return _U32.unpack(self.read_bytes(4))[0]

    def read_i32_le(self) -> int:
        return _I32.unpack(self.read_bytes(4))[0]

    def read_utf(self, length: int) -> str:
        """Read fixed-length UTF-8 text, dropping trailing NUL padding."""
        start = self.stream.tell()
        raw = self.read_bytes(length)
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise TextDecodeError(f"Invalid UTF-8 text at 0x{start:X}: {exc.reason}") from exc
        return text.rstrip("\x00")
