"""Storage capability provider for S3-compatible object stores."""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Any

from aiobotocore.session import get_session

from shared.utils.logging import get_logger

logger = get_logger(__name__)


class StorageClient(ABC):
    """Abstract base class for storage capability providers.

    Implementations mint signed URLs and drive the multipart primitives.
    They never receive file bytes.
    """

    @abstractmethod
    def is_configured(self) -> bool:
        """Return True if the provider has the credentials it needs."""
        pass

    @abstractmethod
    async def generate_presigned_upload_url(
        self,
        key: str,
        content_type: str,
        expires_in: int = 3600,
    ) -> dict[str, Any]:
        """Generate a signed URL for a single-shot PUT."""
        pass

    @abstractmethod
    async def generate_presigned_download_url(
        self,
        key: str,
        expires_in: int = 3600,
    ) -> dict[str, Any]:
        """Generate a signed URL for a GET."""
        pass

    @abstractmethod
    async def delete_object(self, key: str) -> None:
        """Delete an object."""
        pass

    @abstractmethod
    async def create_multipart_upload(self, key: str, content_type: str) -> str:
        """Open a multipart upload and return the provider upload id."""
        pass

    @abstractmethod
    async def generate_presigned_part_url(
        self,
        key: str,
        upload_id: str,
        part_number: int,
        expires_in: int = 3600,
    ) -> dict[str, Any]:
        """Generate a signed URL for uploading one part."""
        pass

    @abstractmethod
    async def complete_multipart_upload(
        self,
        key: str,
        upload_id: str,
        parts: list[dict[str, Any]],
    ) -> dict[str, Any]:
        """Assemble the uploaded parts into the final object.

        Args:
            key: Object key
            upload_id: Provider upload id
            parts: ``{"part_number", "etag"}`` dicts in part-number order

        Returns:
            Dict with location and etag of the assembled object
        """
        pass

    @abstractmethod
    async def abort_multipart_upload(self, key: str, upload_id: str) -> None:
        """Abort a multipart upload and release its parts."""
        pass


class S3Client(StorageClient):
    """Async S3 client wrapper."""

    def __init__(
        self,
        bucket: str,
        region: str = "us-east-1",
        endpoint_url: str | None = None,
        access_key: str | None = None,
        secret_key: str | None = None,
    ):
        """Initialize S3 client.

        Args:
            bucket: S3 bucket name
            region: AWS region
            endpoint_url: Custom endpoint (for LocalStack/MinIO)
            access_key: AWS access key (or fake for LocalStack)
            secret_key: AWS secret key (or fake for LocalStack)
        """
        self.bucket = bucket
        self.region = region
        self.endpoint_url = endpoint_url
        # Use fake credentials for LocalStack if endpoint_url is set but no credentials
        self.access_key = access_key or ("test" if endpoint_url else None)
        self.secret_key = secret_key or ("test" if endpoint_url else None)
        self._session = get_session()

    def _client(self):
        return self._session.create_client(
            "s3",
            region_name=self.region,
            endpoint_url=self.endpoint_url,
            aws_access_key_id=self.access_key,
            aws_secret_access_key=self.secret_key,
        )

    def is_configured(self) -> bool:
        return bool(self.bucket and self.region and self.access_key and self.secret_key)

    async def _presign(
        self,
        operation: str,
        params: dict[str, Any],
        expires_in: int,
    ) -> dict[str, Any]:
        async with self._client() as client:
            url = await client.generate_presigned_url(
                operation,
                Params={"Bucket": self.bucket, **params},
                ExpiresIn=expires_in,
            )

        return {
            "presigned_url": url,
            "expires_at": datetime.utcnow() + timedelta(seconds=expires_in),
        }

    async def generate_presigned_upload_url(
        self,
        key: str,
        content_type: str,
        expires_in: int = 3600,
    ) -> dict[str, Any]:
        """Generate a pre-signed URL for uploading.

        Args:
            key: S3 object key
            content_type: MIME type the client must send
            expires_in: URL expiration time in seconds

        Returns:
            Dict with presigned_url and expires_at
        """
        result = await self._presign(
            "put_object",
            {"Key": key, "ContentType": content_type},
            expires_in,
        )
        logger.info(
            "presigned_upload_url_generated",
            bucket=self.bucket,
            key=key,
            expires_at=result["expires_at"].isoformat(),
        )
        return result

    async def generate_presigned_download_url(
        self,
        key: str,
        expires_in: int = 3600,
    ) -> dict[str, Any]:
        """Generate a pre-signed URL for downloading.

        Args:
            key: S3 object key
            expires_in: URL expiration time in seconds

        Returns:
            Dict with presigned_url and expires_at
        """
        return await self._presign("get_object", {"Key": key}, expires_in)

    async def generate_presigned_part_url(
        self,
        key: str,
        upload_id: str,
        part_number: int,
        expires_in: int = 3600,
    ) -> dict[str, Any]:
        """Generate a pre-signed URL for one part of a multipart upload."""
        return await self._presign(
            "upload_part",
            {"Key": key, "UploadId": upload_id, "PartNumber": part_number},
            expires_in,
        )

    async def delete_object(self, key: str) -> None:
        async with self._client() as client:
            await client.delete_object(Bucket=self.bucket, Key=key)
        logger.info("s3_object_deleted", bucket=self.bucket, key=key)

    async def create_multipart_upload(self, key: str, content_type: str) -> str:
        async with self._client() as client:
            response = await client.create_multipart_upload(
                Bucket=self.bucket,
                Key=key,
                ContentType=content_type,
            )
        upload_id = response["UploadId"]
        logger.info("s3_multipart_created", bucket=self.bucket, key=key, upload_id=upload_id)
        return upload_id

    async def complete_multipart_upload(
        self,
        key: str,
        upload_id: str,
        parts: list[dict[str, Any]],
    ) -> dict[str, Any]:
        multipart_upload = {
            "Parts": [
                {"PartNumber": part["part_number"], "ETag": part["etag"]}
                for part in parts
            ]
        }
        async with self._client() as client:
            response = await client.complete_multipart_upload(
                Bucket=self.bucket,
                Key=key,
                UploadId=upload_id,
                MultipartUpload=multipart_upload,
            )
        logger.info(
            "s3_multipart_completed",
            bucket=self.bucket,
            key=key,
            upload_id=upload_id,
            parts=len(parts),
        )
        return {
            "location": response.get("Location"),
            "etag": response.get("ETag"),
        }

    async def abort_multipart_upload(self, key: str, upload_id: str) -> None:
        async with self._client() as client:
            await client.abort_multipart_upload(
                Bucket=self.bucket,
                Key=key,
                UploadId=upload_id,
            )
        logger.info("s3_multipart_aborted", bucket=self.bucket, key=key, upload_id=upload_id)
