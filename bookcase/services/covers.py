"""Cover image helpers built on Pillow."""

from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import Optional

from PIL import Image

from bookcase.errors import DecodeError

logger = logging.getLogger(__name__)


def is_image(data: Optional[bytes]) -> bool:
    """True when ``data`` decodes as an image Pillow understands."""
    if not data:
        return False
    try:
        with Image.open(io.BytesIO(data)) as image:
            image.verify()
        return True
    except Exception as e:
        logger.debug("Cover bytes are not a usable image: %s", e)
        return False


def load_cover_file(path: str | Path) -> bytes:
    """Read a cover image from disk, refusing files that are not images."""
    path = Path(path).expanduser()
    try:
        data = path.read_bytes()
    except OSError as e:
        raise DecodeError(f"Could not read cover image {path}: {e}") from e
    if not is_image(data):
        raise DecodeError(f"{path} is not a supported image file")
    return data


def describe_cover(data: Optional[bytes]) -> str:
    if not data:
        return "none"
    try:
        with Image.open(io.BytesIO(data)) as image:
            return f"{image.format} {image.width}x{image.height}"
    except Exception as e:
        logger.debug("Could not describe cover: %s", e)
        return f"{len(data)} bytes (unreadable)"
