"""
Asset host protocol.

Defines the interface for media storage providers (S3-compatible buckets,
etc.) so upload logic does not depend on a particular vendor.
"""
from dataclasses import dataclass
from typing import Protocol


@dataclass
class UploadedAsset:
    """Result of storing one file on the asset host."""
    url: str
    public_id: str
    format: str
    size: int
    resource_type: str


class AssetHost(Protocol):
    """
    Protocol for asset hosts.

    Implementations must handle:
    - Storing a file under a folder and returning a public URL
    - Deleting a previously stored file by its opaque id (idempotent)
    """

    def upload(self, content: bytes, filename: str, content_type: str, folder: str) -> UploadedAsset:
        """
        Store a file.

        Raises:
            AssetHostError: If the host rejects the upload
        """
        ...

    def delete(self, public_id: str) -> None:
        """
        Remove a stored file. Deleting a missing file is not an error.

        Raises:
            AssetHostError: If the host cannot be reached
        """
        ...


class AssetHostError(Exception):
    """Base exception for asset host errors."""
    pass
