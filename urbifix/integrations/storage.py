"""Local disk storage for chat attachments, served under ``/uploads``."""

from __future__ import annotations

import uuid
from pathlib import Path
from typing import Any

from fastapi import UploadFile

from urbifix.common.dates import isoformat, utcnow
from urbifix.common.exceptions import BadRequestError
from urbifix.config import settings
from urbifix.integrations.base import BaseIntegration

ALLOWED_MIME_PREFIXES = (
    "image/",
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "text/plain",
)


class StorageClient(BaseIntegration):
    def __init__(self, root: str | Path | None = None) -> None:
        super().__init__("storage")
        self._root = Path(root or settings.UPLOAD_DIR)
        self.max_bytes = settings.MAX_UPLOAD_SIZE_MB * 1024 * 1024
        self.allowed_extensions = {
            ext.strip().lower() for ext in settings.ALLOWED_UPLOAD_EXTENSIONS.split(",") if ext.strip()
        }

    async def health_check(self) -> bool:
        self._root.mkdir(parents=True, exist_ok=True)
        return self._root.is_dir()

    def _too_large(self) -> BadRequestError:
        return BadRequestError(f"File exceeds the {settings.MAX_UPLOAD_SIZE_MB}MB limit")

    async def read_upload(self, upload: UploadFile) -> bytes:
        """Read an upload without buffering more than one byte past the cap."""
        if upload.size is not None and upload.size > self.max_bytes:
            raise self._too_large()
        content = await upload.read(self.max_bytes + 1)
        if len(content) > self.max_bytes:
            raise self._too_large()
        return content

    def validate(self, filename: str, content_type: str | None, size: int) -> str:
        """Return the normalized extension or raise 400."""
        if size > self.max_bytes:
            raise self._too_large()
        if size == 0:
            raise BadRequestError("Uploaded file is empty")
        ext = Path(filename).suffix.lstrip(".").lower()
        if ext not in self.allowed_extensions:
            raise BadRequestError("Only images and documents are allowed")
        if not content_type or not content_type.startswith(ALLOWED_MIME_PREFIXES):
            raise BadRequestError("Only images and documents are allowed")
        return ext

    async def save(
        self, content: bytes, filename: str, content_type: str | None, folder: str = "chat"
    ) -> dict[str, Any]:
        ext = self.validate(filename, content_type, len(content))
        stored_name = f"{int(utcnow().timestamp() * 1000)}-{uuid.uuid4().hex[:12]}.{ext}"

        target_dir = self._root / folder
        target_dir.mkdir(parents=True, exist_ok=True)
        (target_dir / stored_name).write_bytes(content)

        self.logger.info("Stored upload %s/%s (%d bytes)", folder, stored_name, len(content))
        return {
            "filename": stored_name,
            "original_name": filename,
            "url": f"/uploads/{folder}/{stored_name}",
            "mimetype": content_type,
            "size": len(content),
            "uploaded_at": isoformat(utcnow()),
        }
