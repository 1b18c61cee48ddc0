# storage.py
#
# Uploaded images and screenshot artifacts on local disk. Every file gets a
# per-request name so concurrent requests never share a path.

import io
import logging
import re
import time
import uuid
from pathlib import Path
from typing import Optional

from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

UPLOAD_URL_PREFIX = "/uploads"
UPLOAD_NAME_RE = re.compile(r"^upload-(\d+)-[0-9a-f]+\.(png|jpg|gif|bmp|webp)$")

# Pillow format name -> stored extension
ACCEPTED_FORMATS = {
    "PNG": "png",
    "JPEG": "jpg",
    "GIF": "gif",
    "BMP": "bmp",
    "WEBP": "webp",
}


class UploadRejected(Exception):
    """The uploaded file is not something we are willing to store."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


def _unique_stem(prefix: str) -> str:
    return f"{prefix}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:12]}"


def detect_image_type(data: bytes) -> Optional[str]:
    """Decode ``data`` with Pillow and return the extension to store it under.

    Returns None for anything Pillow cannot fully decode (text, truncated
    files, decompression bombs) or for formats we do not accept.
    """
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except UnidentifiedImageError:
        return None
    except (Image.DecompressionBombError, OSError, SyntaxError, ValueError) as e:
        logger.debug("Image failed to decode: %s", e)
        return None
    return ACCEPTED_FORMATS.get(image.format)


def public_url(name: str) -> str:
    return f"{UPLOAD_URL_PREFIX}/{name}"


def is_upload_name(name: str) -> bool:
    """True for names produced by save_upload (no paths, no foreign files)."""
    return bool(UPLOAD_NAME_RE.match(name or ""))


def save_upload(data: bytes, upload_dir: Path, max_bytes: int) -> str:
    """Store an uploaded image under a fresh name and return that name.

    Raises UploadRejected for empty, oversized or non-image data. Errors while
    writing (OSError) are left to the caller.
    """
    if not data:
        raise UploadRejected("Uploaded file is empty.")
    if len(data) > max_bytes:
        raise UploadRejected(f"Uploaded file exceeds the {max_bytes} byte limit.", status_code=413)
    extension = detect_image_type(data)
    if extension is None:
        raise UploadRejected("Only PNG, JPEG, GIF, WebP and BMP images are accepted.", status_code=415)

    upload_dir.mkdir(parents=True, exist_ok=True)
    filename = f"{_unique_stem('upload')}.{extension}"
    (upload_dir / filename).write_bytes(data)
    logger.info("Stored upload %s (%d bytes)", filename, len(data))
    return filename


def new_artifact_path(screenshot_dir: Path) -> Path:
    screenshot_dir.mkdir(parents=True, exist_ok=True)
    return screenshot_dir / f"{_unique_stem('screenshot')}.png"


def download_name(artifact: Path) -> str:
    """Attachment filename offered to the client, e.g. image-screenshot-1700000000000.png."""
    match = re.match(r"screenshot-(\d+)-", artifact.name)
    timestamp = match.group(1) if match else str(int(time.time() * 1000))
    return f"image-screenshot-{timestamp}.png"


def discard(artifact: Path) -> None:
    """Delete a screenshot artifact. Failures are logged, never raised."""
    try:
        artifact.unlink()
    except FileNotFoundError:
        return
    except OSError as e:
        logger.warning("Failed to clean up screenshot file %s: %s", artifact, e)
        return
    logger.debug("Removed screenshot file %s", artifact)


def _upload_timestamp(name: str) -> float:
    """Upload time in seconds, taken from the generated name."""
    return int(UPLOAD_NAME_RE.match(name).group(1)) / 1000.0


def prune_uploads(upload_dir: Path, max_files: int, max_age_seconds: int, keep: Optional[str] = None) -> int:
    """Delete uploads older than ``max_age_seconds`` and all but the newest ``max_files``.

    ``keep`` names a file that is never removed (the upload just stored).
    Returns the number of files deleted.
    """
    if not upload_dir.is_dir():
        return 0
    names = sorted(
        (path.name for path in upload_dir.iterdir() if is_upload_name(path.name)),
        key=lambda name: (_upload_timestamp(name), name),
        reverse=True,
    )
    cutoff = time.time() - max_age_seconds
    retained = 1 if keep else 0
    removed = 0
    for name in names:
        if name == keep:
            continue
        if retained < max_files and _upload_timestamp(name) >= cutoff:
            retained += 1
            continue
        try:
            (upload_dir / name).unlink()
            removed += 1
        except FileNotFoundError:
            continue
        except OSError as e:
            logger.warning("Failed to prune upload %s: %s", name, e)
    if removed:
        logger.info("Pruned %d old upload(s) from %s", removed, upload_dir)
    return removed
