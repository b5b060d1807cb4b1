import logging
import posixpath
import threading
from typing import List, Optional
from urllib.parse import quote, unquote, urlparse

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError
from flask import current_app

from services.errors import ObjectStoreError

logger = logging.getLogger(__name__)


class ObjectStore:
    """
    Abstraction over the S3-compatible bucket holding file bytes.
    Keys are flat file names (e.g. "report.png"); the public URL of a key is
    the configured public base URL joined with the key.
    """

    def __init__(
        self,
        bucket: str,
        public_base_url: str,
        endpoint_url: Optional[str] = None,
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
        region_name: str = "auto",
        client=None,
    ) -> None:
        if not bucket:
            raise ValueError("A bucket name is required for object storage.")
        if not public_base_url:
            raise ValueError("A public base URL is required for object storage.")
        self.bucket = bucket
        self.public_base_url = public_base_url.rstrip("/")
        self._endpoint_url = endpoint_url
        self._access_key_id = access_key_id
        self._secret_access_key = secret_access_key
        self._region_name = region_name
        self._client = client
        self._client_lock = threading.Lock()

    @classmethod
    def from_config(cls, config) -> "ObjectStore":
        return cls(
            bucket=config.get("R2_BUCKET_NAME"),
            public_base_url=config.get("R2_PUBLIC_BASE_URL"),
            endpoint_url=config.get("R2_BASE_ENDPOINT"),
            access_key_id=config.get("R2_ACCESS_KEY_ID"),
            secret_access_key=config.get("R2_SECRET_ACCESS_KEY"),
            region_name=config.get("R2_REGION") or "auto",
        )

    # ---------- S3 helpers ----------

    def _get_s3_client(self):
        """
        Build the S3 client once. R2 needs path-style addressing and the
        "auto" region.
        """
        if self._client is None:
            with self._client_lock:
                if self._client is None:
                    session = boto3.session.Session(
                        aws_access_key_id=self._access_key_id,
                        aws_secret_access_key=self._secret_access_key,
                        region_name=self._region_name,
                    )
                    self._client = session.client(
                        "s3",
                        endpoint_url=self._endpoint_url,
                        config=BotoConfig(s3={"addressing_style": "path"}),
                    )
        return self._client

    # ---------- URL helpers ----------

    def public_url(self, key: str) -> str:
        return f"{self.public_base_url}/{quote(key)}"

    def key_from_url(self, url: str) -> str:
        """
        Recover the object key from a public URL. URLs under the public base
        URL give back everything after it; any other URL (e.g. the legacy
        https://<bucket>.r2.dev/<key> form) gives its last path segment.
        """
        if not url:
            return ""
        prefix = self.public_base_url + "/"
        if url.startswith(prefix):
            return unquote(url[len(prefix):].split("?", 1)[0])
        return unquote(posixpath.basename(urlparse(url).path))

    # ---------- Public API ----------

    def put(self, key: str, data: bytes, content_type: str) -> str:
        """Store bytes under key and return the public URL."""
        if not key:
            raise ValueError("Object key is required for upload.")

        client = self._get_s3_client()
        try:
            client.put_object(Bucket=self.bucket, Key=key, Body=data, ContentType=content_type)
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Failed to upload object (bucket={self.bucket}, key={key}): {e}")
            raise ObjectStoreError(f"Failed to upload '{key}': {e}") from e

        logger.info(f"Uploaded object {key} ({len(data)} bytes, {content_type})")
        return self.public_url(key)

    def list_all_keys(self) -> List[str]:
        """Every key in the bucket, in the store's listing order."""
        client = self._get_s3_client()
        keys: List[str] = []
        try:
            paginator = client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket):
                for obj in page.get("Contents", []):
                    keys.append(obj["Key"])
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Failed to list objects (bucket={self.bucket}): {e}")
            raise ObjectStoreError(f"Failed to list bucket '{self.bucket}': {e}") from e
        return keys

    def delete_object(self, key: str) -> None:
        if not key:
            raise ValueError("Object key is required for delete.")

        client = self._get_s3_client()
        try:
            client.delete_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Failed to delete object (bucket={self.bucket}, key={key}): {e}")
            raise ObjectStoreError(f"Failed to delete '{key}': {e}") from e


def get_object_store() -> ObjectStore:
    """The object store bound to the current application."""
    return current_app.extensions["line_drive"]["object_store"]
