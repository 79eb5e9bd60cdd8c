from __future__ import annotations

import io
import os
import pathlib
import struct
import tempfile
import unittest

from _builders import build_archive, colour_bytes, pack_bitmap, pack_image

from sgreader import (
    HeaderSizeMismatchError,
    MalformedArchiveError,
    RgbaBufferSink,
    TextDecodeError,
    load_fully,
    load_metadata,
)
from sgreader.archive import check_header


class HeaderTestCase(unittest.TestCase):
    """Tests for header parsing and file-size validation."""

    def test_sg2_legacy_size_ignores_actual_length(self) -> None:
        data = build_archive(0xD3, [], [pack_image()], file_size=74480)
        self.assertNotEqual(len(data), 74480)
        archive = load_metadata(io.BytesIO(data))
        self.assertEqual(archive.header.file_size, 74480)
        self.assertEqual(archive.header.version, 0xD3)
        self.assertEqual(archive.header.max_image_count, 10000)

    def test_sg2_enemy_size(self) -> None:
        check_header(0xD3, 522680, 1)

    def test_sg2_wrong_size(self) -> None:
        with self.assertRaises(HeaderSizeMismatchError) as cm:
            check_header(0xD3, 12345, 99999)
        self.assertEqual(cm.exception.declared_size, 12345)
        self.assertEqual(cm.exception.actual_size, 99999)

    def test_sg2_wrong_size_aborts_load(self) -> None:
        data = build_archive(0xD3, [], [pack_image()], file_size=12345)
        with self.assertRaises(HeaderSizeMismatchError):
            load_metadata(io.BytesIO(data))

    def test_sg3_size_must_match(self) -> None:
        good = build_archive(0xD5, [], [pack_image()])
        self.assertEqual(load_metadata(io.BytesIO(good)).header.file_size, len(good))
        bad = build_archive(0xD5, [], [pack_image()], file_size=len(good) + 1)
        with self.assertRaises(HeaderSizeMismatchError):
            load_metadata(io.BytesIO(bad))

    def test_sg3_accepts_shared_legacy_size(self) -> None:
        check_header(0xD6, 74480, 99999)

    def test_unknown_version_not_checked(self) -> None:
        with self.assertLogs("sgreader.archive", level="WARNING"):
            check_header(0xD4, 1, 2)


class TablesTestCase(unittest.TestCase):
    """Tests for bitmap and image table parsing."""

    def test_bitmaps(self) -> None:
        bitmaps = [
            pack_bitmap("Housing.bmp", "houses", width=640, height=480, num_images=2, start_index=1, end_index=2,
                        image_id=1, image_width=58, image_height=30, sizes=(100, 200, 0)),
            pack_bitmap("", "system"),
        ]
        data = build_archive(0xD5, bitmaps, [pack_image()] * 3)
        archive = load_metadata(io.BytesIO(data))
        self.assertEqual(len(archive.bitmaps), 2)
        b = archive.bitmaps[0]
        self.assertEqual(b.id, 0)
        self.assertEqual(b.external_filename, "Housing.bmp")
        self.assertEqual(b.comment, "houses")
        self.assertEqual((b.width, b.height, b.num_images), (640, 480, 2))
        self.assertEqual((b.start_index, b.end_index, b.image_id), (1, 2, 1))
        self.assertEqual((b.image_width, b.image_height), (58, 30))
        self.assertEqual((b.file_size_internal, b.total_file_size, b.file_size_external), (100, 200, 0))
        self.assertTrue(b.is_internal)
        self.assertEqual(archive.bitmaps[1].id, 1)
        self.assertEqual(archive.bitmaps[1].name, "system")
        self.assertFalse(archive.bitmaps[1].is_internal)

    def test_image_count_off_by_one(self) -> None:
        images = [pack_image(offset=i * 10, width=i) for i in range(4)]
        archive = load_metadata(io.BytesIO(build_archive(0xD5, [], images)))
        self.assertEqual(archive.header.image_count, 3)
        self.assertEqual(len(archive.images), 4)
        self.assertEqual([i.id for i in archive.images], [0, 1, 2, 3])
        self.assertEqual(archive.images[3].offset, 30)

    def test_image_fields(self) -> None:
        images = [
            pack_image(),
            pack_image(offset=100, length=50, uncompressed_length=40, width=7, height=9, image_type=257,
                       flags=bytes((1, 0, 0, 2)), bitmap_id=3),
        ]
        image = load_metadata(io.BytesIO(build_archive(0xD5, [], images))).images[1]
        self.assertEqual((image.offset, image.length, image.uncompressed_length), (100, 50, 40))
        self.assertEqual((image.width, image.height), (7, 9))
        self.assertEqual(image.image_type, 257)
        self.assertEqual(image.flags, bytes((1, 0, 0, 2)))
        self.assertTrue(image.is_external)
        self.assertEqual(image.bitmap_id, 3)
        self.assertIsNone(image.alpha)
        self.assertEqual((image.alpha_offset, image.alpha_length), (0, 0))

    def test_alpha_fields_for_new_version(self) -> None:
        images = [pack_image(alpha=(0, 0)), pack_image(offset=8, length=4, alpha=(12, 6))]
        archive = load_metadata(io.BytesIO(build_archive(0xD6, [], images)))
        self.assertTrue(archive.header.has_alpha)
        self.assertEqual(archive.images[1].offset, 8)
        self.assertEqual((archive.images[1].alpha_offset, archive.images[1].alpha_length), (12, 6))

    def test_sg2_bitmap_padding(self) -> None:
        data = build_archive(0xD3, [pack_bitmap("a.bmp")], [pack_image(), pack_image(offset=77)], file_size=74480)
        archive = load_metadata(io.BytesIO(data))
        self.assertEqual(archive.header.bitmap_slots, 100)
        self.assertEqual(archive.images[1].offset, 77)

    def test_too_many_bitmaps(self) -> None:
        data = bytearray(build_archive(0xD3, [], [pack_image()], file_size=74480))
        struct.pack_into("<I", data, 20, 101)
        with self.assertRaises(MalformedArchiveError):
            load_metadata(io.BytesIO(bytes(data)))

    def test_invalid_text(self) -> None:
        bitmap = bytearray(pack_bitmap("x.bmp"))
        bitmap[0] = 0xFF
        with self.assertRaises(TextDecodeError):
            load_metadata(io.BytesIO(build_archive(0xD5, [bytes(bitmap)], [pack_image()])))

    def test_mirror_alias_copies_target(self) -> None:
        images = [
            pack_image(),
            pack_image(offset=40, length=8, width=2, height=2, image_type=1, bitmap_id=1),
            pack_image(offset=999, length=1, width=5, height=5, image_type=256, invert_offset=-1),
        ]
        archive = load_metadata(io.BytesIO(build_archive(0xD5, [], images)))
        alias = archive.images[2]
        self.assertEqual(alias.id, 2)
        self.assertEqual(alias.invert_offset, -1)
        self.assertTrue(alias.is_mirror_alias)
        self.assertEqual((alias.offset, alias.length), (40, 8))
        self.assertEqual((alias.width, alias.height, alias.image_type, alias.bitmap_id), (2, 2, 1, 1))

    def test_mirror_alias_out_of_range(self) -> None:
        images = [pack_image(), pack_image(invert_offset=-5)]
        with self.assertRaises(MalformedArchiveError):
            load_metadata(io.BytesIO(build_archive(0xD5, [], images)))

    def test_truncated_table(self) -> None:
        data = build_archive(0xD3, [], [pack_image()], file_size=74480)
        with self.assertRaises(EOFError):
            load_metadata(io.BytesIO(data[:-10]))


class PixelFilesTestCase(unittest.TestCase):
    """Tests for locating and reading .555 pixel files next to an archive."""

    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.dir = pathlib.Path(self._tmp.name)

    def _write_archive(self, images) -> pathlib.Path:
        bitmaps = [pack_bitmap("Sprites.bmp", "sprites"), pack_bitmap("Extra.bmp", "extra")]
        path = self.dir / "Game.sg3"
        path.write_bytes(build_archive(0xD5, bitmaps, images))
        return path

    def test_pixel_file_path(self) -> None:
        path = self._write_archive([pack_image()])
        archive = load_metadata(path)
        self.assertEqual(archive.path, path)
        self.assertEqual(archive.pixel_file_path(0, False), self.dir / "555" / "Game.555")
        (self.dir / "Game.555").write_bytes(b"")
        self.assertEqual(archive.pixel_file_path(0, False), self.dir / "Game.555")
        self.assertEqual(archive.pixel_file_path(1, True), self.dir / "555" / "Extra.555")

    def test_stream_archive_has_no_pixel_files(self) -> None:
        archive = load_metadata(io.BytesIO(build_archive(0xD5, [], [pack_image()])))
        with self.assertRaises(ValueError):
            archive.pixel_file_path(0, False)

    def test_bitmap_id_out_of_range(self) -> None:
        path = self._write_archive([pack_image(bitmap_id=7, width=1, height=1, length=2)])
        archive = load_metadata(path)
        with self.assertRaises(MalformedArchiveError):
            archive.load_image(0)

    def test_load_fully(self) -> None:
        images = [
            pack_image(offset=0, length=4, width=2, height=1, image_type=0),
            # External images sit one byte before their declared offset.
            pack_image(offset=1, length=2, width=1, height=1, image_type=0, bitmap_id=1, flags=bytes((1, 0, 0, 0))),
            pack_image(offset=4, length=2, width=1, height=1, image_type=0),
        ]
        path = self._write_archive(images)
        (self.dir / "Game.555").write_bytes(colour_bytes([0x7C00, 0x001F, 0x03E0]))
        os.mkdir(self.dir / "555")
        (self.dir / "555" / "Extra.555").write_bytes(colour_bytes([0xFFFF]))

        archive, pixels = load_fully(path, RgbaBufferSink)
        self.assertEqual(len(pixels), 3)
        self.assertEqual(pixels[0], bytes((0xF8, 0, 0, 0xFF, 0, 0, 0xF8, 0xFF)))
        self.assertEqual(pixels[1], bytes((0xF8, 0xF8, 0xF8, 0xFF)))
        self.assertEqual(pixels[2], bytes((0, 0xF8, 0, 0xFF)))
        self.assertEqual(archive.load_image(2), pixels[2])


if __name__ == "__main__":
    unittest.main()
