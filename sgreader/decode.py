"""Pixel decoding for SG image records.

Four encodings exist, selected by the record's image type:

- plain: row-major little-endian 16-bit packed colours
- isometric: diamond of terrain tiles in diagonal scan order, followed by
  an RLE overlay for anything sticking out above the footprint
- sprite: RLE alternating transparent skips and runs of packed colours
- alpha mask: optional trailing RLE stream of 5-bit alpha samples

Every decode is a pure function of the record and the pixel stream bytes
it points at.
"""

from __future__ import annotations

import logging
from typing import BinaryIO, Tuple, TypeVar, Union

from .errors import (
    FootprintMismatchError,
    ImageDataLengthMismatchError,
    MalformedArchiveError,
    UnknownImageTypeError,
)
from .image import SgImage
from .sink import ImageSink, ImageSinkFactory, RgbaBufferSink, unpack_555
from .stream import ByteReader

logger = logging.getLogger(__name__)

T = TypeVar("T")

PLAIN_TYPES = frozenset((0, 1, 10, 12, 13))
ISOMETRIC_TYPES = frozenset((30,))
SPRITE_TYPES = frozenset((256, 257, 276))

RLE_SKIP = 255

# (raw bytes, height, width) per tile
ISOMETRIC_TILE = (1800, 30, 58)
ISOMETRIC_LARGE_TILE = (3200, 40, 78)


class _Canvas:
    """Bounds-checked writes into a sink of known size."""

    def __init__(self, sink: ImageSink, image: SgImage):
        self.sink = sink
        self.image = image
        self.width = image.width
        self.height = image.height

    def _check(self, x: int, y: int) -> None:
        if not (0 <= x < self.width and 0 <= y < self.height):
            raise MalformedArchiveError(
                f"Pixel ({x}, {y}) outside {self.width}x{self.height} image", image_id=self.image.id
            )

    def put_555(self, x: int, y: int, colour: int) -> None:
        self._check(x, y)
        rgba = unpack_555(colour)
        if rgba is not None:
            self.sink.set_pixel(x, y, rgba)

    def put_alpha(self, x: int, y: int, alpha: int) -> None:
        self._check(x, y)
        self.sink.set_alpha(x, y, alpha)


def decode_image(
    image: SgImage,
    stream: Union[BinaryIO, ByteReader],
    factory: ImageSinkFactory[T] = RgbaBufferSink,  # type: ignore[assignment]
) -> T:
    """Decode the pixels of `image` from its pixel-data stream.

    Images with zero width, height or data length come back as the empty,
    fully transparent sink output.
    """
    sink = factory(image.width, image.height)
    # Placeholder records may point anywhere, including past the pixel file.
    if image.width <= 0 or image.height <= 0 or image.length <= 0:
        return sink.build()

    reader = stream if isinstance(stream, ByteReader) else ByteReader(stream)

    # External images are stored one byte earlier than their offset says.
    reader.seek(image.offset - image.flags[0])

    canvas = _Canvas(sink, image)
    logger.debug("Decoding image %d (type %d, %dx%d)", image.id, image.image_type, image.width, image.height)
    if image.image_type in PLAIN_TYPES:
        _decode_plain(canvas, reader)
    elif image.image_type in ISOMETRIC_TYPES:
        _decode_isometric(canvas, reader)
    elif image.image_type in SPRITE_TYPES:
        reader.seek(image.offset)
        _decode_rle_sprite(canvas, reader, image.offset + image.length)
    else:
        raise UnknownImageTypeError(image.image_type, image_id=image.id)

    if image.alpha_length > 0:
        _decode_alpha_mask(canvas, reader, image.offset + image.length + image.alpha_length)

    if image.invert_offset != 0:
        sink.flip_horizontal()

    return sink.build()


def _decode_plain(canvas: _Canvas, reader: ByteReader) -> None:
    image = canvas.image
    expected = image.width * image.height * 2
    if expected != image.length:
        raise ImageDataLengthMismatchError(expected, image.length, image_id=image.id)
    for y in range(image.height):
        for x in range(image.width):
            canvas.put_555(x, y, reader.read_u16_le())


def isometric_tile_count(image: SgImage, footprint_height: int) -> int:
    """Tiles along one side of the diamond; flags[3] overrides detection."""
    if image.flags[3] == 0:
        if footprint_height % ISOMETRIC_TILE[1] == 0:
            return footprint_height // ISOMETRIC_TILE[1]
        if footprint_height % ISOMETRIC_LARGE_TILE[1] == 0:
            return footprint_height // ISOMETRIC_LARGE_TILE[1]
    return image.flags[3]


def isometric_tile_size(tiles: int, footprint_height: int) -> Tuple[int, int, int]:
    if ISOMETRIC_TILE[1] * tiles == footprint_height:
        return ISOMETRIC_TILE
    return ISOMETRIC_LARGE_TILE


def _decode_isometric(canvas: _Canvas, reader: ByteReader) -> None:
    image = canvas.image
    reader.seek(image.offset)
    _decode_isometric_base(canvas, reader)
    # Buildings and terrain detail drawn over the base diamond.
    _decode_rle_sprite(canvas, reader, image.offset + image.length)


def _decode_isometric_base(canvas: _Canvas, reader: ByteReader) -> None:
    image = canvas.image
    width = image.width
    footprint_height = (width + 2) // 2  # 58 -> 30, 118 -> 60
    if (width + 2) * footprint_height != image.uncompressed_length:
        raise FootprintMismatchError("Data length doesn't match footprint size", image_id=image.id)
    if image.height < footprint_height:
        raise FootprintMismatchError(
            f"Image height {image.height} is below footprint height {footprint_height}", image_id=image.id
        )

    size = isometric_tile_count(image, footprint_height)
    _, tile_height, tile_width = isometric_tile_size(size, footprint_height)

    y_offset = image.height - footprint_height
    for y in range(2 * size - 1):
        if y < size:
            x_lim = y + 1
            x_offset = (size - y - 1) * tile_height
        else:
            x_lim = 2 * size - y - 1
            x_offset = (y - size + 1) * tile_height
        for _ in range(x_lim):
            _write_isometric_tile(canvas, reader, x_offset, y_offset, tile_width, tile_height)
            x_offset += tile_width + 2
        y_offset += tile_height // 2


def _write_isometric_tile(
    canvas: _Canvas, reader: ByteReader, offset_x: int, offset_y: int, tile_width: int, tile_height: int
) -> None:
    half = tile_height // 2
    # Top wedge widens by 4 pixels per row, bottom wedge narrows again.
    for y in range(half):
        start = tile_height - 2 * (y + 1)
        for x in range(start, tile_width - start):
            canvas.put_555(offset_x + x, offset_y + y, reader.read_u16_le())
    for y in range(half, tile_height):
        start = 2 * y - tile_height
        for x in range(start, tile_width - start):
            canvas.put_555(offset_x + x, offset_y + y, reader.read_u16_le())


def _decode_rle_sprite(canvas: _Canvas, reader: ByteReader, end: int) -> None:
    """Skip/fill RLE of packed colours; row wraps carry the column remainder."""
    width = canvas.width
    x = 0
    y = 0
    while reader.tell() < end:
        c = reader.read_u8()
        if c == RLE_SKIP:
            x += reader.read_u8()
            while x >= width:
                y += 1
                x -= width
        else:
            for _ in range(c):
                canvas.put_555(x, y, reader.read_u16_le())
                x += 1
                if x >= width:
                    y += 1
                    x -= width


def _decode_alpha_mask(canvas: _Canvas, reader: ByteReader, end: int) -> None:
    """Same grammar as the sprite RLE, but every row wrap restarts at column 0."""
    width = canvas.width
    x = 0
    y = 0
    while reader.tell() < end:
        c = reader.read_u8()
        if c == RLE_SKIP:
            x += reader.read_u8()
            if x >= width:
                y += 1
                x = 0
        else:
            for _ in range(c):
                canvas.put_alpha(x, y, (reader.read_u8() << 3) & 0xFF)
                x += 1
                if x >= width:
                    y += 1
                    x = 0
