# aibot/core/media_store.py

from pathlib import Path
from typing import Optional
import asyncio
import logging
import re
import uuid

from fastapi import UploadFile

from aibot.core.exceptions import MediaFetchError

logger = logging.getLogger(__name__)

# Extensions for the MIME types WhatsApp delivers; anything else is saved without one
MIME_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
    "image/gif": ".gif",
    "application/pdf": ".pdf",
    "application/vnd.ms-powerpoint": ".ppt",
    "application/msword": ".doc",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": ".docx",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation": ".pptx",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": ".xlsx",
    "text/plain": ".txt",
    "audio/ogg": ".ogg",
    "audio/mpeg": ".mp3",
    "video/mp4": ".mp4",
}


class MediaStore:
    """Stores downloaded and uploaded attachments on the local filesystem"""

    def __init__(self, upload_dir: str = "uploads"):
        """Initialize the MediaStore with an upload directory"""
        self.upload_dir = Path(upload_dir)
        self.upload_dir.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def extension_for(mime_type: Optional[str]) -> str:
        """Map a MIME type to a file extension, ignoring parameters like charset"""
        if not mime_type:
            return ""
        base_type = mime_type.split(";")[0].strip().lower()
        return MIME_EXTENSIONS.get(base_type, "")

    async def save_bytes(self, content: bytes, stem: str, mime_type: Optional[str]) -> Path:
        """Save media bytes as <stem><ext> and return the absolute path"""
        safe_stem = re.sub(r"[^A-Za-z0-9_.-]", "_", stem).lstrip(".") or uuid.uuid4().hex
        file_path = (self.upload_dir / f"{safe_stem}{self.extension_for(mime_type)}").resolve()
        try:
            await asyncio.to_thread(file_path.write_bytes, content)
        except OSError as e:
            raise MediaFetchError(f"Could not save media to {file_path}: {e}") from e

        logger.info(f"File saved successfully: {file_path}")
        return file_path

    async def save_upload(self, file: UploadFile) -> Path:
        """Save an uploaded file under a generated name and return the absolute path"""
        extension = self.extension_for(file.content_type)
        if not extension and file.filename:
            # Fall back to the client's filename extension
            extension = Path(file.filename).suffix

        file_path = (self.upload_dir / f"{uuid.uuid4()}{extension}").resolve()
        content = await file.read()
        await asyncio.to_thread(file_path.write_bytes, content)
        logger.info(f"Upload stored at {file_path}")
        return file_path
