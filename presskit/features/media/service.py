"""
Media upload pipeline.

Files are validated in full before anything is sent to the asset host, so
a rejected batch never leaves partial uploads behind.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from presskit.core.errors import BadRequestError, ExternalServiceError, ServiceUnavailableError
from presskit.features.crud import iso, utc_now
from presskit.features.media.provider import AssetHost, AssetHostError

logger = logging.getLogger("presskit")

MAX_FILE_SIZE = 25 * 1024 * 1024
MAX_FILES = 10

ALLOWED_TYPES = {
    "image/jpeg",
    "image/png",
    "image/webp",
    "image/heic",
    "audio/mpeg",
    "audio/wav",
    "audio/flac",
    "application/pdf",
}


@dataclass
class IncomingFile:
    filename: Optional[str]
    content_type: Optional[str]
    content: bytes
    size: int


def validate_uploads(files: Sequence[IncomingFile]) -> None:
    if not files:
        raise BadRequestError("Please upload a file")
    if len(files) > MAX_FILES:
        raise BadRequestError(f"Too many files. Maximum is {MAX_FILES} files")
    for f in files:
        if not f.filename or not f.content_type:
            raise BadRequestError("Invalid file metadata")
        if f.content_type not in ALLOWED_TYPES:
            raise BadRequestError("File type not supported")
        if f.size > MAX_FILE_SIZE:
            raise BadRequestError("File too large. Maximum size is 25MB")


class MediaStore:
    def __init__(self, assets: Optional[AssetHost], folder: str):
        self.assets = assets
        self.folder = folder.strip("/")

    def _host(self) -> AssetHost:
        if self.assets is None:
            raise ServiceUnavailableError("Media storage is not configured")
        return self.assets

    def folder_for(self, epk_id: str) -> str:
        return f"{self.folder}/epk/{epk_id}"

    def upload_all(self, epk_id: str, files: Sequence[IncomingFile], kind: str) -> List[dict]:
        """Validate then upload ``files``; returns the media items to append."""
        validate_uploads(files)
        host = self._host()
        items = []
        for f in files:
            try:
                asset = host.upload(f.content, f.filename, f.content_type, self.folder_for(epk_id))
            except AssetHostError as e:
                logger.error("media.upload_failed", extra={"epk_id": epk_id, "file_name": f.filename, "error_message": str(e)})
                raise ExternalServiceError("Failed to upload file") from e
            items.append(
                {
                    "url": asset.url,
                    "publicId": asset.public_id,
                    "type": kind,
                    "name": f.filename,
                    "size": asset.size,
                    "format": asset.format,
                    "uploadedAt": iso(utc_now()),
                }
            )
        logger.info("media.uploaded", extra={"epk_id": epk_id, "count": len(items), "kind": kind})
        return items

    def delete(self, public_id: str) -> None:
        try:
            self._host().delete(public_id)
        except AssetHostError as e:
            logger.error("media.delete_failed", extra={"public_id": public_id, "error_message": str(e)})
            raise ExternalServiceError("Failed to delete file") from e

    def purge(self, public_ids: Sequence[str]) -> None:
        """Delete every id; a missing host is tolerated when there is nothing to delete."""
        if not public_ids:
            return
        if self.assets is None:
            logger.warning("media.purge_skipped", extra={"count": len(public_ids)})
            return
        for public_id in public_ids:
            self.delete(public_id)
