"""Amazon S3 blob store."""

from typing import Any, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from medilocker.core.exceptions import NotFoundError, TransientCollaboratorError
from medilocker.storage.base import BlobStore, StoredBlob
from medilocker.utils.logging import get_logger

logger = get_logger(__name__)

TRANSIENT_ERRORS = (ConnectTimeoutError, ReadTimeoutError, EndpointConnectionError)
MISSING_KEY_CODES = {"NoSuchKey", "404", "NotFound"}
THROTTLING_CODES = {"SlowDown", "Throttling", "RequestTimeout", "ServiceUnavailable"}


class S3BlobStore(BlobStore):
    """Blob store backed by one S3 bucket."""

    def __init__(
        self,
        bucket_name: str,
        region: str = "us-east-1",
        endpoint_url: Optional[str] = None,
        client: Optional[Any] = None,
        max_attempts: int = 3,
        timeout_seconds: float = 10.0,
    ):
        """Initialize the S3 client.

        Args:
            bucket_name: Bucket holding record content
            region: AWS region of the bucket
            endpoint_url: Alternative endpoint, e.g. for S3-compatible stores
            client: Preconfigured boto3 client, mainly for tests
            max_attempts: Attempts per ``put`` before giving up
            timeout_seconds: Connect and read timeout per call
        """
        super().__init__(max_attempts=max_attempts, timeout_seconds=timeout_seconds)
        self.bucket_name = bucket_name
        if client is None:
            # Retries are driven by BlobStore.put, not botocore
            client_config = Config(
                connect_timeout=timeout_seconds,
                read_timeout=timeout_seconds,
                retries={"max_attempts": 1, "mode": "standard"},
            )
            client = boto3.client(
                "s3",
                region_name=region,
                endpoint_url=endpoint_url,
                config=client_config,
            )
        self.s3_client = client
        logger.info("s3_client_initialized", bucket=bucket_name)

    def _put(self, key: str, data: bytes, content_type: str) -> None:
        try:
            self.s3_client.put_object(
                Bucket=self.bucket_name,
                Key=key,
                Body=data,
                ContentType=content_type,
                ServerSideEncryption="AES256",
            )
        except TRANSIENT_ERRORS as e:
            raise TransientCollaboratorError(f"S3 unavailable: {e}") from e
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in THROTTLING_CODES:
                raise TransientCollaboratorError(f"S3 throttled: {e}") from e
            raise

    def get(self, key: str) -> StoredBlob:
        try:
            response = self.s3_client.get_object(Bucket=self.bucket_name, Key=key)
        except TRANSIENT_ERRORS as e:
            raise TransientCollaboratorError(f"S3 unavailable: {e}") from e
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in MISSING_KEY_CODES:
                raise NotFoundError(f"No content stored under {key}") from e
            raise
        return StoredBlob(
            key=key,
            data=response["Body"].read(),
            content_type=response.get("ContentType", "application/octet-stream"),
        )

    def exists(self, key: str) -> bool:
        try:
            self.s3_client.head_object(Bucket=self.bucket_name, Key=key)
            return True
        except TRANSIENT_ERRORS as e:
            raise TransientCollaboratorError(f"S3 unavailable: {e}") from e
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in MISSING_KEY_CODES:
                return False
            raise

    def get_temporary_read_handle(
        self, key: str, ttl_seconds: int, file_name: Optional[str] = None
    ) -> str:
        """Generate a pre-signed GET URL."""
        params = {"Bucket": self.bucket_name, "Key": key}
        if file_name:
            params["ResponseContentDisposition"] = f'attachment; filename="{file_name}"'
        try:
            url = self.s3_client.generate_presigned_url(
                ClientMethod="get_object",
                Params=params,
                ExpiresIn=int(ttl_seconds),
            )
        except BotoCoreError as e:
            raise TransientCollaboratorError(
                f"Failed to generate presigned URL: {e}"
            ) from e
        return str(url)
