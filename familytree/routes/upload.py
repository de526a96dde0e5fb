"""Routes for storing person photos.

Endpoints:
  POST   /upload            one image in the ``photo`` field
  POST   /upload/multiple   up to 10 images in the ``photos`` field
  GET    /upload/list       everything currently stored
  DELETE /upload/{filename} remove a stored image
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, File, UploadFile

try:
    from ..errors import ValidationError
    from ..uploads import (
        MAX_FILES_PER_UPLOAD,
        check_upload,
        delete_upload,
        list_uploads,
        save_upload,
    )
except ImportError:  # pragma: no cover
    from errors import ValidationError
    from uploads import (
        MAX_FILES_PER_UPLOAD,
        check_upload,
        delete_upload,
        list_uploads,
        save_upload,
    )

router = APIRouter(tags=["upload"])


@router.post("/upload")
async def upload_single(photo: Optional[UploadFile] = File(default=None)) -> dict[str, Any]:
    if photo is None or not photo.filename:
        raise ValidationError("No file was uploaded")

    content = await photo.read()
    stored = save_upload(content, photo.filename, photo.content_type)
    return {"success": True, "data": stored, "message": "File uploaded"}


@router.post("/upload/multiple")
async def upload_multiple(photos: Optional[list[UploadFile]] = File(default=None)) -> dict[str, Any]:
    files = [f for f in (photos or []) if f.filename]
    if not files:
        raise ValidationError("No file was uploaded")
    if len(files) > MAX_FILES_PER_UPLOAD:
        raise ValidationError(f"At most {MAX_FILES_PER_UPLOAD} files can be uploaded at once")

    # Every file is checked before any is written.
    payloads: list[tuple[bytes, str | None, str | None]] = []
    for f in files:
        content = await f.read()
        check_upload(content, f.content_type)
        payloads.append((content, f.filename, f.content_type))

    stored = [save_upload(content, name, mime) for content, name, mime in payloads]
    return {
        "success": True,
        "count": len(stored),
        "data": stored,
        "message": f"{len(stored)} files uploaded",
    }


@router.get("/upload/list")
def upload_list() -> dict[str, Any]:
    files = list_uploads()
    return {"success": True, "count": len(files), "data": files}


@router.delete("/upload/{filename}")
def upload_delete(filename: str) -> dict[str, Any]:
    delete_upload(filename)
    return {"success": True, "message": "File deleted"}
