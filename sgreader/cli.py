#!/usr/bin/env python3
"""
Command-line helpers for SG2/SG3 archives.

- info: summarise header, bitmap groups and (optionally) image records.
- export: decode images to PNG, optionally filtered by a JSON/YAML config.
"""

from __future__ import annotations

import argparse
import json
import logging
import pathlib
import re
from collections import Counter
from typing import Any, Dict, List, Optional, Sequence, Set

import yaml

from .archive import SgArchive, load_metadata
from .errors import SgFormatError
from .image import SgImage
from .sink import PilImageSink

logger = logging.getLogger(__name__)

DEFAULT_NAME_TEMPLATE = "{bitmap}_{id:05d}.png"
EXPORT_CONFIG_KEYS = {"bitmaps", "images", "skip_empty", "name_template"}


def _load_config(path: pathlib.Path) -> Dict[str, Any]:
    ext = path.suffix.lower()
    text = path.read_text(encoding="utf-8")
    if ext == ".json":
        data = json.loads(text)
    else:
        data = yaml.safe_load(text)
    if not isinstance(data, dict):
        raise ValueError("Config root must be a mapping/object")
    unknown = set(data) - EXPORT_CONFIG_KEYS
    if unknown:
        raise ValueError(f"Unknown config keys: {', '.join(sorted(unknown))}")
    return data


def _to_int(v: Any) -> int:
    if isinstance(v, int):
        return int(v)
    if isinstance(v, str):
        return int(v, 0)
    raise ValueError(f"Expected int-like value, got: {type(v).__name__}")


def _parse_id_selection(items: Sequence[Any]) -> Set[int]:
    ids: Set[int] = set()
    for item in items:
        if isinstance(item, str):
            m = re.fullmatch(r"\s*(\w+)\s*-\s*(\w+)\s*", item)
            if m:
                lo, hi = _to_int(m.group(1)), _to_int(m.group(2))
                if hi < lo:
                    raise ValueError(f"Invalid image range '{item}'")
                ids.update(range(lo, hi + 1))
                continue
        ids.add(_to_int(item))
    return ids


def _select_bitmaps(archive: SgArchive, items: Sequence[Any]) -> Set[int]:
    selected: Set[int] = set()
    for item in items:
        if isinstance(item, int):
            selected.add(item)
            continue
        name = str(item).lower()
        matches = [
            b.id for b in archive.bitmaps if name in (b.external_filename.lower(), b.comment.lower())
        ]
        if not matches:
            raise ValueError(f"No bitmap named '{item}'")
        selected.update(matches)
    return selected


def _bitmap_label(archive: SgArchive, image: SgImage) -> str:
    if image.bitmap_id < len(archive.bitmaps):
        name = archive.bitmaps[image.bitmap_id].name
        if name:
            return pathlib.PurePath(name).stem
    return f"bitmap{image.bitmap_id}"


def _image_summary(image: SgImage) -> Dict[str, Any]:
    return {
        "id": image.id,
        "bitmap_id": image.bitmap_id,
        "type": image.image_type,
        "width": image.width,
        "height": image.height,
        "offset": image.offset,
        "length": image.length,
        "external": image.is_external,
        "invert_offset": image.invert_offset,
        "alpha_length": image.alpha_length,
    }


def cmd_info(args: argparse.Namespace) -> int:
    archive = load_metadata(args.archive)
    header = archive.header
    report: Dict[str, Any] = {
        "archive": str(args.archive),
        "version": f"0x{header.version:X}",
        "file_size": header.file_size,
        "max_image_count": header.max_image_count,
        "image_count": header.image_count,
        "bitmap_count": header.bitmap_count,
        "bitmaps": [
            {
                "id": b.id,
                "filename": b.external_filename,
                "comment": b.comment,
                "start_index": b.start_index,
                "end_index": b.end_index,
                "num_images": b.num_images,
            }
            for b in archive.bitmaps
        ],
        "image_types": {str(k): v for k, v in sorted(Counter(i.image_type for i in archive.images).items())},
    }
    if args.images:
        report["images"] = [_image_summary(i) for i in archive.images]
    print(json.dumps(report, indent=2))
    return 0


def cmd_export(args: argparse.Namespace) -> int:
    archive = load_metadata(args.archive)
    cfg: Dict[str, Any] = _load_config(pathlib.Path(args.config)) if args.config else {}
    out_dir = pathlib.Path(args.outdir)
    out_dir.mkdir(parents=True, exist_ok=True)

    wanted_ids: Optional[Set[int]] = None
    if args.image:
        wanted_ids = _parse_id_selection(args.image)
    elif "images" in cfg:
        wanted_ids = _parse_id_selection(cfg["images"])
    wanted_bitmaps = _select_bitmaps(archive, cfg["bitmaps"]) if "bitmaps" in cfg else None
    skip_empty = bool(cfg.get("skip_empty", True))
    template = str(cfg.get("name_template", DEFAULT_NAME_TEMPLATE))

    exported: List[Dict[str, Any]] = []
    failed: List[Dict[str, Any]] = []
    for image in archive.images:
        if wanted_ids is not None and image.id not in wanted_ids:
            continue
        if wanted_bitmaps is not None and image.bitmap_id not in wanted_bitmaps:
            continue
        if skip_empty and (image.width == 0 or image.height == 0 or image.length == 0):
            continue
        try:
            img = archive.load_image(image, PilImageSink)
        except (SgFormatError, OSError) as exc:
            logger.warning("Image %d failed: %s", image.id, exc)
            failed.append({"id": image.id, "error": str(exc)})
            continue
        out_path = out_dir / template.format(bitmap=_bitmap_label(archive, image), id=image.id, type=image.image_type)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        img.save(out_path)
        exported.append({"id": image.id, "png": str(out_path), "width": image.width, "height": image.height})

    manifest = {
        "archive": str(args.archive),
        "config": args.config,
        "exported": exported,
        "failed": failed,
    }
    out_manifest = out_dir / "manifest.json"
    out_manifest.write_text(json.dumps(manifest, indent=2), encoding="utf-8")
    print(
        json.dumps(
            {
                "outdir": str(out_dir),
                "manifest": str(out_manifest),
                "exported_count": len(exported),
                "failed_count": len(failed),
            },
            indent=2,
        )
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="SG2/SG3 sprite archive reader")
    p.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = p.add_subparsers(dest="cmd", required=True)

    pi = sub.add_parser("info", help="Summarise archive header, bitmaps and image types")
    pi.add_argument("archive", help="Path to .sg2/.sg3 archive")
    pi.add_argument("--images", action="store_true", help="Include every image record in the report")
    pi.set_defaults(func=cmd_info)

    pe = sub.add_parser("export", help="Decode images to PNG")
    pe.add_argument("archive", help="Path to .sg2/.sg3 archive")
    pe.add_argument("--outdir", required=True, help="Output folder for PNGs and manifest.json")
    pe.add_argument("--config", help="Optional JSON/YAML export config (bitmaps, images, skip_empty, name_template)")
    pe.add_argument("--image", action="append", default=[], help="Image id or start-end range (repeatable, overrides config)")
    pe.set_defaults(func=cmd_export)

    return p


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING, format="%(levelname)s %(name)s: %(message)s")
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
