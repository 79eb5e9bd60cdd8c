"""Pixel sinks: where decoded pixels end up.

The decoder never builds an image itself. It asks a factory for a sink of
the right size, pushes pixels into it and finally calls `build()`. Any
callable ``factory(width, height)`` returning an object with the
`ImageSink` methods works; the sink classes below are their own
factories.
"""

from __future__ import annotations

from typing import Optional, Protocol, Tuple, TypeVar

import numpy as np
from PIL import Image

T_co = TypeVar("T_co", covariant=True)

Rgba = Tuple[int, int, int, int]

TRANSPARENT_555 = 0xF81F


class ImageSink(Protocol[T_co]):
    """Receives decoded pixels for one image."""

    def set_pixel(self, x: int, y: int, rgba: Rgba) -> None: ...

    def set_alpha(self, x: int, y: int, alpha: int) -> None: ...

    def flip_horizontal(self) -> None: ...

    def build(self) -> T_co: ...


class ImageSinkFactory(Protocol[T_co]):
    """Creates a zero-initialised sink for an image of the given size."""

    def __call__(self, width: int, height: int) -> ImageSink[T_co]: ...


def unpack_555(value: int) -> Optional[Rgba]:
    """Convert a packed 16-bit colour to opaque RGBA.

    Returns None for the transparent sentinel 0xF81F: such pixels are left
    as they were allocated.
    """
    if value == TRANSPARENT_555:
        return None
    r = (value >> 7) & 0xF8
    g = (value >> 2) & 0xF8
    b = (value << 3) & 0xF8
    return r, g, b, 0xFF


class RgbaBufferSink:
    """Row-major RGBA bytes, four per pixel."""

    def __init__(self, width: int, height: int):
        self.width = width
        self.height = height
        self.pixels = bytearray(width * height * 4)

    def set_pixel(self, x: int, y: int, rgba: Rgba) -> None:
        i = (x + self.width * y) * 4
        self.pixels[i : i + 4] = bytes(rgba)

    def set_alpha(self, x: int, y: int, alpha: int) -> None:
        self.pixels[(x + self.width * y) * 4 + 3] = alpha

    def flip_horizontal(self) -> None:
        px = self.pixels
        for row in range(self.height):
            row_off = row * self.width
            for x in range(self.width // 2):
                a = (row_off + x) * 4
                b = (row_off + self.width - x - 1) * 4
                px[a : a + 4], px[b : b + 4] = px[b : b + 4], px[a : a + 4]

    def build(self) -> bytes:
        return bytes(self.pixels)


class ArraySink:
    """RGBA pixels as a ``(height, width, 4)`` uint8 array."""

    def __init__(self, width: int, height: int):
        self.width = width
        self.height = height
        self.array = np.zeros((height, width, 4), dtype=np.uint8)

    def set_pixel(self, x: int, y: int, rgba: Rgba) -> None:
        self.array[y, x] = rgba

    def set_alpha(self, x: int, y: int, alpha: int) -> None:
        self.array[y, x, 3] = alpha

    def flip_horizontal(self) -> None:
        self.array = np.ascontiguousarray(self.array[:, ::-1])

    def build(self) -> np.ndarray:
        return self.array


class PilImageSink(ArraySink):
    """RGBA `PIL.Image.Image`, ready for `save()`."""

    def build(self) -> Image.Image:  # type: ignore[override]
        if self.array.size == 0:
            return Image.new("RGBA", (self.width, self.height))
        return Image.fromarray(self.array)
