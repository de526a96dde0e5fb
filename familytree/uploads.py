"""Photo storage: validates uploaded images and keeps them under UPLOAD_DIR.

Files are served back by the static ``/uploads`` mount in ``main``; the
database only ever stores the returned ``path`` string in ``persons.photo``.
"""

from __future__ import annotations

import logging
import os
import random
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

try:
    from .errors import NotFound, ValidationError
except ImportError:  # pragma: no cover
    from errors import NotFound, ValidationError

log = logging.getLogger(__name__)

# Default upload limit: 5 MiB.
DEFAULT_MAX_UPLOAD_BYTES = 5 * 1024 * 1024

# At most this many files per multi-file upload.
MAX_FILES_PER_UPLOAD = 10

ALLOWED_MIME_TYPES = frozenset(
    {"image/jpeg", "image/jpg", "image/png", "image/gif", "image/webp"}
)

_HIDDEN_NAMES = frozenset({".gitkeep"})


def upload_dir() -> Path:
    """Return the upload directory, creating it on first use.

    Layout:
        repo/
          familytree/uploads.py   <- this file
          uploads/                <- default UPLOAD_DIR
    """
    configured = os.environ.get("UPLOAD_DIR")
    path = Path(configured) if configured else Path(__file__).resolve().parent.parent / "uploads"
    path.mkdir(parents=True, exist_ok=True)
    return path


def max_upload_bytes() -> int:
    raw = os.environ.get("MAX_UPLOAD_BYTES")
    if not raw:
        return DEFAULT_MAX_UPLOAD_BYTES
    try:
        return max(1, int(raw))
    except ValueError:
        log.warning("Ignoring invalid MAX_UPLOAD_BYTES=%r", raw)
        return DEFAULT_MAX_UPLOAD_BYTES


def stored_name(original: str, *, now_ms: int | None = None) -> str:
    """``photo.jpg`` -> ``photo-<unix ms>-<random>.jpg``."""

    base = Path(original or "upload").name
    stem, ext = os.path.splitext(base)
    stem = stem or "upload"
    stamp = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"{stem}-{stamp}-{random.randint(0, 999_999_999)}{ext}"


def _resolve_inside(filename: str) -> Path:
    root = upload_dir().resolve()
    target = (root / filename).resolve()
    if target.parent != root or filename in _HIDDEN_NAMES:
        raise ValidationError("Invalid filename")
    return target


def check_upload(content: bytes, content_type: str | None) -> None:
    if content_type not in ALLOWED_MIME_TYPES:
        raise ValidationError("Only image files can be uploaded (jpg, jpeg, png, gif, webp)")
    limit = max_upload_bytes()
    if len(content) > limit:
        raise ValidationError(f"File exceeds the {limit:,} byte limit")
    if not content:
        raise ValidationError("Uploaded file is empty")


def save_upload(content: bytes, filename: str | None, content_type: str | None) -> dict[str, Any]:
    """Validate and write one file; return its public description."""

    check_upload(content, content_type)

    name = stored_name(filename or "upload")
    target = upload_dir() / name
    target.write_bytes(content)
    log.info("Stored upload %s (%d bytes)", name, len(content))

    return {
        "filename": name,
        "originalname": filename,
        "path": f"/uploads/{name}",
        "size": len(content),
        "mimetype": content_type,
    }


def list_uploads() -> list[dict[str, Any]]:
    out: list[dict[str, Any]] = []
    for entry in sorted(upload_dir().iterdir()):
        if not entry.is_file() or entry.name in _HIDDEN_NAMES:
            continue
        st = entry.stat()
        out.append(
            {
                "filename": entry.name,
                "path": f"/uploads/{entry.name}",
                "size": st.st_size,
                "created": datetime.fromtimestamp(st.st_mtime, tz=timezone.utc).isoformat(),
            }
        )
    return out


def delete_upload(filename: str) -> None:
    target = _resolve_inside(filename)
    if not target.is_file():
        raise NotFound("File not found")
    target.unlink()
    log.info("Deleted upload %s", filename)
