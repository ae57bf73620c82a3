"""
Blob store client for previously uploaded contract files.

Downloads objects from Supabase Storage over its REST interface. Uploading is
handled by the client application; this service only reads.
"""

import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote

import httpx

from .api_resilience import ServiceUnavailableError, storage_breaker, with_circuit_breaker
from ..utils.errors import StorageUnavailable

logger = logging.getLogger(__name__)


@dataclass
class StoredObject:
    """Raw bytes of a stored file with the content type reported by the store."""
    data: bytes
    content_type: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.data)


class SupabaseBlobStore:
    """
    Read-only access to Supabase Storage buckets using the service-role key.
    """

    def __init__(
        self,
        base_url: str,
        service_role_key: str,
        client: Optional[httpx.AsyncClient] = None
    ):
        """
        Initialize the blob store client.

        Args:
            base_url: Supabase project URL (e.g. https://xyz.supabase.co)
            service_role_key: Service-role key with read access to the buckets
            client: Optional preconfigured httpx client (used in tests)
        """
        self.base_url = base_url.rstrip("/")
        self._service_role_key = service_role_key
        self._client = client or httpx.AsyncClient()

    def _object_url(self, bucket: str, path: str) -> str:
        return (
            f"{self.base_url}/storage/v1/object/"
            f"{quote(bucket, safe='')}/{quote(path.lstrip('/'), safe='/')}"
        )

    async def download(self, bucket: str, path: str) -> StoredObject:
        """
        Download a stored object.

        Args:
            bucket: Storage bucket name
            path: Object path within the bucket

        Returns:
            StoredObject with the file bytes and content type

        Raises:
            StorageUnavailable: If the object is missing or the store is unreachable
        """
        try:
            return await self._download(bucket, path)
        except ServiceUnavailableError as e:
            raise StorageUnavailable(f"Failed to download file: {e}")

    @with_circuit_breaker(storage_breaker)
    async def _download(self, bucket: str, path: str) -> StoredObject:
        url = self._object_url(bucket, path)
        headers = {
            "Authorization": f"Bearer {self._service_role_key}",
            "apikey": self._service_role_key,
        }

        try:
            response = await self._client.get(url, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"Blob store unreachable for {bucket}/{path}: {e}")
            raise StorageUnavailable(f"Failed to download file: {e}")

        if response.status_code != 200:
            reason = self._error_reason(response)
            logger.error(
                f"Blob store returned {response.status_code} for {bucket}/{path}: {reason}"
            )
            raise StorageUnavailable(
                f"Failed to download file: {reason}",
                {"status_code": response.status_code},
            )

        content_type = response.headers.get("content-type")
        logger.info(f"Downloaded {bucket}/{path} ({len(response.content)} bytes, {content_type})")

        return StoredObject(data=response.content, content_type=content_type)

    @staticmethod
    def _error_reason(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text or f"HTTP {response.status_code}"
        if isinstance(body, dict):
            return str(body.get("message") or body.get("error") or body)
        return str(body)

    async def close(self) -> None:
        await self._client.aclose()
