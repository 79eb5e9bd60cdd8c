"""Image records: geometry, encoding type and where the pixel stream lives."""

from __future__ import annotations

import dataclasses
import logging
from typing import List, Optional, Tuple

from .errors import MalformedArchiveError
from .stream import ByteReader

logger = logging.getLogger(__name__)

IMAGE_RECORD_SIZE = 64
ALPHA_BLOCK_SIZE = 8


@dataclasses.dataclass(frozen=True)
class SgAlphaMask:
    """Location of a separate alpha-mask stream (newer archives only)."""

    offset: int
    length: int


@dataclasses.dataclass(frozen=True)
class SgImage:
    id: int
    offset: int
    length: int
    uncompressed_length: int
    zeroes: bytes
    invert_offset: int
    width: int
    height: int
    unknown_a: Tuple[int, int, int]
    anim_sprites: int
    unknown_b: int
    x_offset: int
    y_offset: int
    unknown_c: bytes
    is_reversible: int
    unknown_d: int
    image_type: int
    flags: bytes
    bitmap_id: int
    unknown_e: int
    anim_speed_id: int
    unknown_f: bytes
    # None when the archive version predates alpha masks.
    alpha: Optional[SgAlphaMask] = None

    @property
    def is_external(self) -> bool:
        """Pixel data sits in the bitmap's external file, not the archive's own."""
        return self.flags[0] > 0

    @property
    def is_mirror_alias(self) -> bool:
        return self.invert_offset != 0

    @property
    def alpha_offset(self) -> int:
        return self.alpha.offset if self.alpha is not None else 0

    @property
    def alpha_length(self) -> int:
        return self.alpha.length if self.alpha is not None else 0


def parse_image(reader: ByteReader, image_id: int, include_alpha: bool) -> SgImage:
    offset = reader.read_u32_le()
    length = reader.read_u32_le()
    uncompressed_length = reader.read_u32_le()
    zeroes = reader.read_bytes(4)
    invert_offset = reader.read_i32_le()
    width = reader.read_u16_le()
    height = reader.read_u16_le()
    unknown_a = (reader.read_u16_le(), reader.read_u16_le(), reader.read_u16_le())
    anim_sprites = reader.read_u16_le()
    unknown_b = reader.read_u16_le()
    x_offset = reader.read_u16_le()
    y_offset = reader.read_u16_le()
    unknown_c = reader.read_bytes(10)
    is_reversible = reader.read_u8()
    unknown_d = reader.read_u8()
    image_type = reader.read_u16_le()
    flags = reader.read_bytes(4)
    bitmap_id = reader.read_u8()
    unknown_e = reader.read_u8()
    anim_speed_id = reader.read_u8()
    unknown_f = reader.read_bytes(5)
    alpha = None
    if include_alpha:
        alpha = SgAlphaMask(offset=reader.read_u32_le(), length=reader.read_u32_le())
    return SgImage(
        id=image_id,
        offset=offset,
        length=length,
        uncompressed_length=uncompressed_length,
        zeroes=zeroes,
        invert_offset=invert_offset,
        width=width,
        height=height,
        unknown_a=unknown_a,
        anim_sprites=anim_sprites,
        unknown_b=unknown_b,
        x_offset=x_offset,
        y_offset=y_offset,
        unknown_c=unknown_c,
        is_reversible=is_reversible,
        unknown_d=unknown_d,
        image_type=image_type,
        flags=flags,
        bitmap_id=bitmap_id,
        unknown_e=unknown_e,
        anim_speed_id=anim_speed_id,
        unknown_f=unknown_f,
        alpha=alpha,
    )


def parse_images(reader: ByteReader, count: int, include_alpha: bool) -> List[SgImage]:
    """Read `count` records in table order and resolve mirror aliases.

    A record with a non-zero invert offset is replaced by a copy of the
    earlier record it points to, keeping only its own id and offset.
    """
    images: List[SgImage] = []
    for i in range(count):
        image = parse_image(reader, i, include_alpha)
        if image.invert_offset != 0:
            target = i + image.invert_offset
            if not 0 <= target < i:
                raise MalformedArchiveError(
                    f"Mirror alias points to record {target}, outside 0..{i - 1}", image_id=i
                )
            image = dataclasses.replace(images[target], id=i, invert_offset=image.invert_offset)
            logger.debug("Image %d mirrors image %d", i, target)
        images.append(image)
    return images
