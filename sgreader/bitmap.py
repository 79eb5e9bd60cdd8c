"""Bitmap group records.

A "bitmap" here is a named group of images whose pixel data live in the
same file. The 200-byte record layout:

- 65 bytes filename, 51 bytes comment (NUL padded UTF-8)
- u32 width, height, num_images, start_index, end_index, image_id
- 4 x u32 unknown
- u32 image_width, image_height (real image size)
- u32 file_size_internal, total_file_size, file_size_external
- 24 bytes unknown
"""

from __future__ import annotations

import dataclasses
from typing import List

from .stream import ByteReader

BITMAP_RECORD_SIZE = 200


@dataclasses.dataclass(frozen=True)
class SgBitmap:
    id: int
    external_filename: str
    comment: str
    width: int
    height: int
    num_images: int
    start_index: int
    end_index: int
    image_id: int
    image_width: int
    image_height: int
    file_size_internal: int
    total_file_size: int
    file_size_external: int

    @property
    def name(self) -> str:
        return self.external_filename or self.comment

    @property
    def is_internal(self) -> bool:
        # Any of the size fields set means the data sits in the archive's own .555.
        return bool(self.file_size_internal or self.total_file_size or self.file_size_external)


def parse_bitmap(reader: ByteReader, bitmap_id: int) -> SgBitmap:
    external_filename = reader.read_utf(65)
    comment = reader.read_utf(51)
    width = reader.read_u32_le()
    height = reader.read_u32_le()
    num_images = reader.read_u32_le()
    start_index = reader.read_u32_le()
    end_index = reader.read_u32_le()
    image_id = reader.read_u32_le()
    reader.seek_relative(16)
    image_width = reader.read_u32_le()
    image_height = reader.read_u32_le()
    file_size_internal = reader.read_u32_le()
    total_file_size = reader.read_u32_le()
    file_size_external = reader.read_u32_le()
    reader.seek_relative(24)
    return SgBitmap(
        id=bitmap_id,
        external_filename=external_filename,
        comment=comment,
        width=width,
        height=height,
        num_images=num_images,
        start_index=start_index,
        end_index=end_index,
        image_id=image_id,
        image_width=image_width,
        image_height=image_height,
        file_size_internal=file_size_internal,
        total_file_size=total_file_size,
        file_size_external=file_size_external,
    )


def parse_bitmaps(reader: ByteReader, count: int) -> List[SgBitmap]:
    return [parse_bitmap(reader, i) for i in range(count)]
