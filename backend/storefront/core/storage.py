"""Signed download URLs for purchased model archives.

The entitlement service decides whether a URL may be issued; the issuer
only knows how. S3SignedUrlIssuer presigns GET requests against any
S3-compatible bucket (AWS S3, Cloudflare R2, MinIO).
"""

import logging
from functools import lru_cache
from typing import Protocol

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from storefront.core.config import settings
from storefront.core.errors import ExternalServiceError

logger = logging.getLogger(__name__)


class SignedUrlIssuer(Protocol):
    """Turns a stored object key into a time-boxed download URL."""

    def issue(self, key: str) -> str: ...


class S3SignedUrlIssuer:
    """Presigned-URL issuer for an S3-compatible bucket.

    Args:
        bucket: Bucket holding the model archives.
        expires_in: URL lifetime in seconds.
    """

    def __init__(self, *, bucket: str, expires_in: int) -> None:
        self._bucket = bucket
        self._expires_in = expires_in
        self._client = None

    @property
    def client(self):
        """Lazy-load S3 client."""
        if self._client is None:
            client_kwargs = {
                "service_name": "s3",
                "region_name": settings.s3_region,
                "aws_access_key_id": settings.s3_access_key.get_secret_value() or None,
                "aws_secret_access_key": settings.s3_secret_key.get_secret_value()
                or None,
                "config": Config(
                    signature_version="s3v4",
                    retries={"max_attempts": 3, "mode": "standard"},
                ),
            }
            # Custom endpoint for R2/MinIO
            if settings.s3_endpoint:
                client_kwargs["endpoint_url"] = settings.s3_endpoint
            self._client = boto3.client(**client_kwargs)
        return self._client

    def issue(self, key: str) -> str:
        """Presign a GET for ``key``.

        Raises:
            ExternalServiceError: If the URL could not be generated.
        """
        try:
            return self.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self._bucket, "Key": key},
                ExpiresIn=self._expires_in,
            )
        except (BotoCoreError, ClientError) as exc:
            logger.error("Failed to generate signed URL", extra={"key": key})
            raise ExternalServiceError("Failed to prepare the download") from exc


@lru_cache(maxsize=1)
def get_signed_url_issuer() -> SignedUrlIssuer:
    """Build the production signed-URL issuer from settings."""
    return S3SignedUrlIssuer(
        bucket=settings.s3_bucket,
        expires_in=settings.download_url_ttl_seconds,
    )
