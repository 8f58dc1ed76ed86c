"""Cover image lookup and the blurhash image descriptor Jellyfin stores in `Images`.

The descriptor has the exact form Jellyfin writes itself:

    <path>*<ticks>*Primary*<width>*<height>*<blurhash>
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Optional, Tuple

import blurhash
from loguru import logger
from PIL import Image

BLURHASH_MAX_COMPONENTS = 5
# Jellyfin hashes a copy scaled to this many pixels of height per component.
BLURHASH_PIXELS_PER_COMPONENT = 32
IMAGE_TYPE = "Primary"

# 0001-01-01 to 1970-01-01 in 100 ns ticks (.NET DateTime epoch).
TICKS_AT_UNIX_EPOCH = 621355968000000000
TICKS_PER_MILLISECOND = 10000


def find_image(directory: Path, image_name: str) -> Optional[Path]:
    """First entry of `directory` whose name contains `image_name`."""
    if not image_name:
        return None
    try:
        names = sorted(os.listdir(directory))
    except OSError as e:
        logger.warning(f"Unable to list '{directory}': {e}")
        return None
    for name in names:
        if image_name in name:
            return Path(directory) / name
    return None


def blurhash_components(width: int, height: int) -> Tuple[int, int]:
    """Component grid (x, y), at most 5 per axis, following the aspect ratio."""
    if width == height:
        return BLURHASH_MAX_COMPONENTS, BLURHASH_MAX_COMPONENTS
    if width > height:
        y = BLURHASH_MAX_COMPONENTS // (width // height)
        return BLURHASH_MAX_COMPONENTS, max(1, y)
    x = BLURHASH_MAX_COMPONENTS // (height // width)
    return max(1, x), BLURHASH_MAX_COMPONENTS


def modified_ticks(path: Path) -> int:
    """Last modification time of `path` in .NET ticks."""
    mtime_ms = os.stat(path).st_mtime_ns // 1_000_000
    return mtime_ms * TICKS_PER_MILLISECOND + TICKS_AT_UNIX_EPOCH


def compose_descriptor(path: str, ticks: int, width: int, height: int, hash_value: str) -> str:
    return f"{path}*{ticks}*{IMAGE_TYPE}*{width}*{height}*{hash_value}"


def encode_blurhash(img: Image.Image, components: Tuple[int, int]) -> str:
    """Blurhash of an RGB image, scaled down the way Jellyfin does first."""
    x, y = components
    target_height = x * BLURHASH_PIXELS_PER_COMPONENT
    if img.height > target_height:
        target_width = max(1, round(img.width * target_height / img.height))
        img = img.resize((target_width, target_height), Image.Resampling.BILINEAR)

    raw = img.tobytes()
    stride = img.width * 3
    rows = [
        [raw[off + i:off + i + 3] for i in range(0, stride, 3)]
        for off in range(0, len(raw), stride)
    ]
    return blurhash.encode(rows, x, y)


def compute_image_descriptor(directory: Path, image_name: str) -> str:
    """Descriptor for the cover image in `directory`, or "" if there is none usable."""
    image_path = find_image(directory, image_name)
    if image_path is None:
        return ""

    try:
        with Image.open(image_path) as img:
            img.load()
            bands = img.getbands()
            if len(bands) != 3:
                logger.warning(f"Couldn't decode '{image_path}' to 3 channel RGB.")
                return ""
            rgb = img.convert("RGB")
    except (OSError, Image.DecompressionBombError) as e:
        logger.warning(f"Unable to load image '{image_path}': {e}")
        return ""

    width, height = rgb.size
    hash_value = encode_blurhash(rgb, blurhash_components(width, height))
    canonical = os.path.realpath(image_path)
    return compose_descriptor(canonical, modified_ticks(image_path), width, height, hash_value)
