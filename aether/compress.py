"""AetherShare v1 — compression stage.

New payloads are zstd frames (level 3, content size recorded).  Links made by
the old browser client carry gzip members; ``decompress`` tells the two apart
by magic bytes so both keep opening.

The optional lossy pre-stage re-encodes raster images as WebP before
compression.  It never raises on undecodable input: whatever Pillow cannot
read goes through untouched.
"""

import gzip
import io
import logging
import zlib

import zstandard as zstd
from PIL import Image, UnidentifiedImageError

from .errors import CorruptStream
from .profiles import (
    DEFAULT_IMAGE_QUALITY,
    GZIP_MAGIC,
    IMAGE_FORMAT,
    ZSTD_LEVEL,
)

log = logging.getLogger(__name__)


def compress(data: bytes, level: int = ZSTD_LEVEL) -> bytes:
    """Compress *data* with zstd at *level*.

    Returns the compressed bytes.  Never raises on valid input (empty included).
    """
    cctx = zstd.ZstdCompressor(level=level, write_content_size=True)
    return cctx.compress(bytes(data))


def decompress(data: bytes) -> bytes:
    """Inflate a zstd frame or a legacy gzip member.

    Raises CorruptStream on any invalid input.
    """
    data = bytes(data)
    if data[:2] == GZIP_MAGIC:
        try:
            return gzip.decompress(data)
        except (OSError, EOFError, zlib.error) as exc:
            raise CorruptStream(f"invalid gzip stream: {exc}") from None

    try:
        dctx = zstd.ZstdDecompressor()
        return dctx.decompress(data)
    except zstd.ZstdError as exc:
        raise CorruptStream(f"invalid zstd stream: {exc}") from None


def is_image_mime(mime: str | None) -> bool:
    return bool(mime) and mime.lower().startswith("image/")


def transcode_image(
    data: bytes,
    quality: float = DEFAULT_IMAGE_QUALITY,
    mime: str | None = None,
) -> bytes:
    """Re-encode an image payload as lossy WebP.

    Args:
        data:    Raw file bytes.
        quality: (0, 1] — mapped onto Pillow's 1–100 scale.
        mime:    Optional MIME hint.  A non-image hint skips decoding entirely.

    Returns:
        The WebP bytes, or *data* unchanged when it is not a decodable raster
        image or when the re-encode would not be smaller.
    """
    if not (0.0 < quality <= 1.0):
        raise ValueError(f"quality must be in (0, 1], got {quality}")
    if mime is not None and not is_image_mime(mime):
        return data

    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            if img.mode not in ("RGB", "RGBA"):
                img = img.convert("RGBA" if "A" in img.getbands() else "RGB")
            out = io.BytesIO()
            img.save(out, format=IMAGE_FORMAT, quality=max(1, int(round(quality * 100))))
    except (UnidentifiedImageError, OSError, ValueError, KeyError, Image.DecompressionBombError) as exc:
        log.debug("transcode skipped: %s", exc)
        return data

    webp = out.getvalue()
    if len(webp) >= len(data):
        return data
    return webp
