"""
S3-compatible asset host (AWS S3, Cloudflare R2, MinIO).

Implements the AssetHost protocol using boto3.
"""
import mimetypes
import os
from typing import Optional
from uuid import uuid4

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from presskit.core.config import Settings
from presskit.features.media.provider import AssetHostError, UploadedAsset


def _resource_type(content_type: str) -> str:
    if content_type.startswith("image/"):
        return "image"
    if content_type.startswith("audio/"):
        return "video"  # audio is grouped with video on most asset hosts
    return "raw"


class S3AssetHost:
    """S3 implementation of AssetHost protocol."""

    def __init__(
        self,
        bucket: str,
        region: str = "us-east-1",
        endpoint_url: Optional[str] = None,
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
        public_base_url: Optional[str] = None,
        client=None,
    ):
        if not bucket:
            raise AssetHostError("ASSET_BUCKET not configured")
        self.bucket = bucket
        self.region = region
        self.public_base_url = (public_base_url or f"https://{bucket}.s3.{region}.amazonaws.com").rstrip("/")
        if client is None:
            session = boto3.session.Session()
            client = session.client(
                service_name="s3",
                region_name=region,
                endpoint_url=endpoint_url,
                aws_access_key_id=access_key_id,
                aws_secret_access_key=secret_access_key,
            )
        self.client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "S3AssetHost":
        return cls(
            bucket=settings.ASSET_BUCKET,
            region=settings.ASSET_REGION,
            endpoint_url=settings.ASSET_ENDPOINT_URL,
            access_key_id=settings.ASSET_ACCESS_KEY_ID,
            secret_access_key=settings.ASSET_SECRET_ACCESS_KEY,
            public_base_url=settings.ASSET_PUBLIC_BASE_URL,
        )

    def upload(self, content: bytes, filename: str, content_type: str, folder: str) -> UploadedAsset:
        ext = os.path.splitext(filename)[1].lower() or (mimetypes.guess_extension(content_type) or "")
        key = f"{folder.strip('/')}/{uuid4().hex}{ext}"
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=content,
                ContentType=content_type,
                Metadata={"original-name": filename.encode("ascii", "ignore").decode()},
            )
        except (BotoCoreError, ClientError) as e:
            raise AssetHostError(f"S3 upload failed: {e}")
        return UploadedAsset(
            url=f"{self.public_base_url}/{key}",
            public_id=key,
            format=ext.lstrip("."),
            size=len(content),
            resource_type=_resource_type(content_type),
        )

    def delete(self, public_id: str) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket, Key=public_id)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("NoSuchKey", "404"):
                return
            raise AssetHostError(f"S3 delete failed: {e}")
        except BotoCoreError as e:
            raise AssetHostError(f"S3 delete failed: {e}")
