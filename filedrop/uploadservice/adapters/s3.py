from __future__ import annotations
import asyncio
import logging
from typing import Optional
from urllib.parse import urlparse

import boto3
from botocore.client import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from ..errors import ObjectStoreError, StorageUnavailable, StorageWriteError
from ..ports import ObjectStorePort

log = logging.getLogger("filedrop.uploadservice.s3")

_DEFAULT_PORTS = {"http": 80, "https": 443}


def _status(e: ClientError) -> Optional[int]:
    return e.response.get("ResponseMetadata", {}).get("HTTPStatusCode")


def _code(e: ClientError) -> str:
    return str(e.response.get("Error", {}).get("Code", ""))


class S3ObjectStore(ObjectStorePort):
    """
    Object store over the S3 API (MinIO in deployment). One bucket per
    container, object key = filename, path-style addressing.
    """

    def __init__(self, endpoint_url: str, access_key: Optional[str] = None,
                 secret_key: Optional[str] = None, region: str = "us-east-1",
                 connect_timeout: float = 5.0, read_timeout: float = 30.0,
                 client=None):
        parsed = urlparse(endpoint_url)
        self.scheme = parsed.scheme or "http"
        self.host = parsed.hostname or "localhost"
        self.port = parsed.port or _DEFAULT_PORTS.get(self.scheme, 80)
        self.region = region
        self.s3 = client or boto3.client(
            "s3",
            endpoint_url=endpoint_url,
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            region_name=region,
            config=BotoConfig(
                s3={"addressing_style": "path"},
                connect_timeout=connect_timeout,
                read_timeout=read_timeout,
                retries={"max_attempts": 1},
            ),
        )
        self.adapter = "s3"

    async def ensure_container(self, name: str) -> None:
        try:
            await asyncio.to_thread(self.s3.head_bucket, Bucket=name)
            return
        except ClientError as e:
            if _status(e) != 404 and _code(e) not in ("404", "NoSuchBucket", "NotFound"):
                raise StorageUnavailable(str(e))
        except BotoCoreError as e:
            raise StorageUnavailable(str(e))

        kwargs = {"Bucket": name}
        if self.region and self.region != "us-east-1":
            kwargs["CreateBucketConfiguration"] = {"LocationConstraint": self.region}
        try:
            await asyncio.to_thread(self.s3.create_bucket, **kwargs)
            log.info("s3.bucket_created bucket=%s", name)
        except ClientError as e:
            if _code(e) == "BucketAlreadyOwnedByYou":
                # another request for the same user created it first
                return
            raise StorageUnavailable(str(e))
        except BotoCoreError as e:
            raise StorageUnavailable(str(e))

    async def put(self, container: str, key: str, data: bytes, size: int, content_type: str) -> str:
        def upload():
            return self.s3.put_object(
                Bucket=container, Key=key, Body=data, ContentLength=size, ContentType=content_type
            )

        try:
            resp = await asyncio.to_thread(upload)
        except (ClientError, BotoCoreError) as e:
            raise StorageWriteError(str(e))
        etag = (resp.get("ETag") or "").strip('"')
        if not etag:
            raise StorageWriteError("object store returned no etag")
        return etag

    async def delete(self, container: str, key: str) -> None:
        try:
            await asyncio.to_thread(self.s3.delete_object, Bucket=container, Key=key)
        except ClientError as e:
            if _status(e) == 404 or _code(e) in ("NoSuchKey", "NoSuchBucket"):
                return
            raise ObjectStoreError(str(e))
        except BotoCoreError as e:
            raise ObjectStoreError(str(e))

    def object_uri(self, container: str, key: str) -> str:
        return f"{self.scheme}://{self.host}:{self.port}/{container}/{key}"
