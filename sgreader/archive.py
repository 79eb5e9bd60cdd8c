"""SG2/SG3 archive metadata and pixel-file lookup.

Layout of an archive (all little-endian):

- header: 10 x u32, then 640 unknown bytes
- bitmap table: ``bitmap_count`` records of 200 bytes, padded to 100 slots
  (SG2, version 0xD3) or 200 slots (SG3)
- image table: ``image_count + 1`` records of 64 bytes, 72 bytes for
  version 0xD6 and later which append the alpha-mask offset and length

Pixel data is not in the archive itself but in ``.555`` files next to it:
one named after the archive for internal images, and one per bitmap for
images flagged as external.
"""

from __future__ import annotations

import dataclasses
import logging
import os
import pathlib
from typing import BinaryIO, Iterator, List, Optional, Tuple, TypeVar, Union

from .bitmap import BITMAP_RECORD_SIZE, SgBitmap, parse_bitmaps
from .decode import decode_image
from .errors import HeaderSizeMismatchError, MalformedArchiveError
from .image import SgImage, parse_images
from .sink import ImageSinkFactory, RgbaBufferSink
from .stream import ByteReader

logger = logging.getLogger(__name__)

T = TypeVar("T")

SG2_VERSION = 0xD3
SG3_VERSIONS = (0xD5, 0xD6)
ALPHA_MIN_VERSION = 0xD6

# Declared sizes of a normal and an enemy SG2 file.
SG2_FILE_SIZES = (74480, 522680)

HEADER_RESERVED_SIZE = 640
SG2_BITMAP_SLOTS = 100
SG3_BITMAP_SLOTS = 200

Source = Union[str, "os.PathLike[str]", BinaryIO]


@dataclasses.dataclass(frozen=True)
class SgHeader:
    file_size: int
    version: int
    max_image_count: int
    image_count: int
    bitmap_count: int
    bitmap_records_without_system: int
    total_file_size: int
    file_size_internal: int
    file_size_external: int

    @property
    def has_alpha(self) -> bool:
        return self.version >= ALPHA_MIN_VERSION

    @property
    def bitmap_slots(self) -> int:
        return SG2_BITMAP_SLOTS if self.version == SG2_VERSION else SG3_BITMAP_SLOTS


def check_header(version: int, file_size: int, actual_size: int) -> None:
    """Validate the declared file size against the version tag."""
    if version == SG2_VERSION:
        if file_size not in SG2_FILE_SIZES:
            raise HeaderSizeMismatchError("Wrong file size declared for a SG2 file", version, file_size, actual_size)
    elif version in SG3_VERSIONS:
        if file_size != SG2_FILE_SIZES[0] and file_size != actual_size:
            raise HeaderSizeMismatchError("Wrong file size of a SG3 file", version, file_size, actual_size)
    else:
        logger.warning("Unknown archive version 0x%X, file size not checked", version)


def parse_header(reader: ByteReader) -> SgHeader:
    file_size = reader.read_u32_le()
    version = reader.read_u32_le()
    check_header(version, file_size, reader.size)
    reader.read_u32_le()  # unknown
    max_image_count = reader.read_u32_le()
    image_count = reader.read_u32_le()
    bitmap_count = reader.read_u32_le()
    bitmap_records_without_system = reader.read_u32_le()
    total_file_size = reader.read_u32_le()
    file_size_internal = reader.read_u32_le()
    file_size_external = reader.read_u32_le()
    return SgHeader(
        file_size=file_size,
        version=version,
        max_image_count=max_image_count,
        image_count=image_count,
        bitmap_count=bitmap_count,
        bitmap_records_without_system=bitmap_records_without_system,
        total_file_size=total_file_size,
        file_size_internal=file_size_internal,
        file_size_external=file_size_external,
    )


@dataclasses.dataclass
class SgArchive:
    header: SgHeader
    bitmaps: List[SgBitmap]
    images: List[SgImage]
    path: Optional[pathlib.Path] = None

    @property
    def version(self) -> int:
        return self.header.version

    def bitmap_for(self, image: SgImage) -> SgBitmap:
        if image.bitmap_id >= len(self.bitmaps):
            raise MalformedArchiveError(
                f"Bitmap id {image.bitmap_id} outside table of {len(self.bitmaps)}", image_id=image.id
            )
        return self.bitmaps[image.bitmap_id]

    def pixel_file_path(self, bitmap_id: int, external: bool) -> pathlib.Path:
        """Locate the ``.555`` file holding pixel data for a bitmap."""
        if self.path is None:
            raise ValueError("Archive was not loaded from a file; pixel files cannot be located")
        if external:
            if bitmap_id >= len(self.bitmaps):
                raise MalformedArchiveError(f"Bitmap id {bitmap_id} outside table of {len(self.bitmaps)}")
            basename = self.bitmaps[bitmap_id].external_filename
        else:
            basename = self.path.name
        filename = f"{basename[:-4]}.555"
        folder = self.path.parent
        candidate = folder / filename
        if candidate.exists():
            return candidate
        return folder / "555" / filename

    def pixel_file_for(self, image: SgImage) -> pathlib.Path:
        self.bitmap_for(image)
        return self.pixel_file_path(image.bitmap_id, image.is_external)

    def load_image(
        self,
        image: Union[int, SgImage],
        factory: ImageSinkFactory[T] = RgbaBufferSink,  # type: ignore[assignment]
    ) -> T:
        """Decode one image, opening the pixel file it lives in."""
        if isinstance(image, int):
            image = self.images[image]
        with self.pixel_file_for(image).open("rb") as fh:
            return decode_image(image, fh, factory)

    def iter_image_data(
        self,
        factory: ImageSinkFactory[T] = RgbaBufferSink,  # type: ignore[assignment]
    ) -> Iterator[T]:
        """Decode every image in table order.

        The pixel file is reopened only when the (bitmap, external) pair
        changes from one image to the next.
        """
        current: Optional[Tuple[int, bool]] = None
        fh: Optional[BinaryIO] = None
        try:
            for image in self.images:
                key = (image.bitmap_id, image.is_external)
                if fh is None or key != current:
                    if fh is not None:
                        fh.close()
                    path = self.pixel_file_for(image)
                    logger.debug("Opening pixel file %s", path)
                    fh = path.open("rb")
                    current = key
                yield decode_image(image, fh, factory)
        finally:
            if fh is not None:
                fh.close()

    def load_image_data(
        self,
        factory: ImageSinkFactory[T] = RgbaBufferSink,  # type: ignore[assignment]
    ) -> List[T]:
        return list(self.iter_image_data(factory))


def _read_archive(stream: BinaryIO, path: Optional[pathlib.Path]) -> SgArchive:
    reader = ByteReader(stream)
    header = parse_header(reader)

    if header.bitmap_count > header.bitmap_slots:
        raise MalformedArchiveError(
            f"Bitmap count {header.bitmap_count} exceeds table size {header.bitmap_slots}"
        )

    reader.seek_relative(HEADER_RESERVED_SIZE)
    bitmaps = parse_bitmaps(reader, header.bitmap_count)
    reader.seek_relative(BITMAP_RECORD_SIZE * (header.bitmap_slots - header.bitmap_count))

    # The image table always holds one record more than the header declares.
    images = parse_images(reader, header.image_count + 1, header.has_alpha)

    logger.debug(
        "Loaded archive version 0x%X: %d bitmaps, %d images", header.version, len(bitmaps), len(images)
    )
    return SgArchive(header=header, bitmaps=bitmaps, images=images, path=path)


def load_metadata(source: Source) -> SgArchive:
    """Read header, bitmap table and image table from an archive.

    `source` is either a filesystem path or an open, seekable binary
    stream. Only archives loaded from a path can locate their pixel files.
    """
    if isinstance(source, (str, os.PathLike)):
        path = pathlib.Path(source)
        with path.open("rb") as fh:
            return _read_archive(fh, path)
    return _read_archive(source, None)


def load_fully(
    source: Union[str, "os.PathLike[str]"],
    factory: ImageSinkFactory[T] = RgbaBufferSink,  # type: ignore[assignment]
) -> Tuple[SgArchive, List[T]]:
    """Read metadata and decode the pixels of every image."""
    archive = load_metadata(source)
    return archive, archive.load_image_data(factory)
