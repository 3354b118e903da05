"""
Media Transfer Service - Fetches source videos and audio assets, publishes results.

Supported sources:
- S3 URLs (s3://bucket/key, virtual-hosted or path-style https) or bare keys
- Direct http(s) URLs (streamed with httpx)
- Local files (file:///path or /absolute/path)

Finished edits are uploaded to S3 or copied into a local output directory,
depending on the configured storage backend.
"""

import asyncio
import logging
import mimetypes
import os
import shutil
from dataclasses import dataclass
from datetime import datetime
from typing import Literal, Optional
from urllib.parse import unquote, urlparse

import boto3
import httpx
from botocore.exceptions import BotoCoreError, ClientError

from app.config import get_settings
from app.services.errors import TransferError

logger = logging.getLogger(__name__)


SourceType = Literal["s3", "http", "local"]


@dataclass
class UploadResult:
    """Result of publishing a finished artifact."""

    url: str
    key: str
    file_size_bytes: int
    content_type: str
    storage_backend: str


class MediaTransferService:
    """
    Service for moving media between asset storage and job working directories.

    Features:
    - Source type detection from URI
    - Streaming HTTP download
    - S3 download/upload in a thread pool (boto3 is synchronous)
    - Per-transfer deadlines
    """

    def __init__(self):
        self.settings = get_settings()
        self._client: Optional[boto3.client] = None

    @property
    def client(self) -> boto3.client:
        """Lazy-initialize S3 client."""
        if self._client is None:
            config = {
                "region_name": self.settings.aws_region,
            }
            if self.settings.aws_access_key_id and self.settings.aws_secret_access_key:
                config["aws_access_key_id"] = self.settings.aws_access_key_id
                config["aws_secret_access_key"] = self.settings.aws_secret_access_key

            self._client = boto3.client("s3", **config)

        return self._client

    def detect_source_type(self, uri: str) -> SourceType:
        """
        Detect the source type from a URI or key.

        Args:
            uri: URI, absolute path or S3 key

        Returns:
            SourceType
        """
        if uri.startswith("file://") or os.path.isabs(uri):
            return "local"

        if uri.startswith("s3://"):
            return "s3"

        if not uri.startswith("http"):
            # Bare key in the configured bucket
            return "s3"

        parsed = urlparse(uri)
        if parsed.hostname and (
            ".s3." in parsed.hostname
            or parsed.hostname.startswith("s3.")
            or parsed.hostname == "s3.amazonaws.com"
        ):
            return "s3"

        return "http"

    async def fetch(
        self,
        uri: str,
        output_path: str,
        timeout_seconds: Optional[float] = None,
    ) -> str:
        """
        Fetch a media file into local working storage.

        Args:
            uri: Source URI
            output_path: Destination file path
            timeout_seconds: Deadline for the whole transfer

        Returns:
            output_path

        Raises:
            TransferError: Source unreachable, empty, or deadline exceeded
        """
        os.makedirs(os.path.dirname(output_path) or ".", exist_ok=True)
        timeout = timeout_seconds or self.settings.download_timeout_seconds
        source_type = self.detect_source_type(uri)
        logger.info(f"Fetching {source_type} media: {uri[:100]}")

        try:
            if source_type == "s3":
                coro = self._fetch_from_s3(uri, output_path)
            elif source_type == "local":
                coro = self._fetch_local(uri, output_path)
            else:
                coro = self._fetch_http(uri, output_path)
            await asyncio.wait_for(coro, timeout=timeout)
        except asyncio.TimeoutError:
            self._remove_partial(output_path)
            raise TransferError(f"Fetching {uri[:100]} timed out after {timeout:.0f}s")
        except TransferError:
            self._remove_partial(output_path)
            raise

        if not os.path.isfile(output_path) or os.path.getsize(output_path) == 0:
            self._remove_partial(output_path)
            raise TransferError(f"Fetched file is missing or empty: {uri[:100]}")

        file_size = os.path.getsize(output_path)
        logger.info(f"Fetched {file_size / 1024 / 1024:.2f} MB to {output_path}")
        return output_path

    async def _fetch_from_s3(self, uri: str, output_path: str) -> None:
        """Download an object from S3."""
        bucket, key = self._parse_s3_url(uri)

        loop = asyncio.get_event_loop()
        try:
            await loop.run_in_executor(
                None,
                lambda: self.client.download_file(bucket, key, output_path),
            )
        except (ClientError, BotoCoreError) as e:
            raise TransferError(f"Failed to download s3://{bucket}/{key}: {e}")

    async def _fetch_http(self, url: str, output_path: str) -> None:
        """Stream a direct URL to disk with httpx."""
        try:
            async with httpx.AsyncClient(follow_redirects=True, timeout=60) as client:
                async with client.stream("GET", url) as response:
                    response.raise_for_status()
                    with open(output_path, "wb") as f:
                        async for chunk in response.aiter_bytes():
                            f.write(chunk)
        except httpx.HTTPStatusError as e:
            raise TransferError(f"Failed to download {url[:100]}: HTTP {e.response.status_code}")
        except httpx.HTTPError as e:
            raise TransferError(f"Failed to download {url[:100]}: {e}")

    async def _fetch_local(self, uri: str, output_path: str) -> None:
        """Copy a local file into the working directory."""
        local_path = unquote(urlparse(uri).path) if uri.startswith("file://") else uri
        if not os.path.isfile(local_path):
            raise TransferError(f"Local file not found: {local_path}")

        loop = asyncio.get_event_loop()
        try:
            await loop.run_in_executor(None, lambda: shutil.copy2(local_path, output_path))
        except OSError as e:
            raise TransferError(f"Failed to copy local file: {e}")

    def _parse_s3_url(self, uri: str) -> tuple[str, str]:
        """
        Parse S3 URL or key into bucket and key.

        Supports formats:
        - s3://bucket/key
        - https://bucket.s3.region.amazonaws.com/key
        - https://s3.region.amazonaws.com/bucket/key
        - just-a-key (uses configured bucket)
        """
        # Plain key
        if not uri.startswith("http") and not uri.startswith("s3://"):
            return self.settings.s3_bucket, uri

        # s3:// URL
        if uri.startswith("s3://"):
            parts = uri[5:].split("/", 1)
            if len(parts) != 2 or not parts[1]:
                raise TransferError(f"Invalid S3 URL: {uri}")
            return parts[0], parts[1]

        parsed = urlparse(uri)

        # Virtual-hosted style: bucket.s3.region.amazonaws.com/key
        if parsed.hostname and ".s3." in parsed.hostname:
            bucket = parsed.hostname.split(".s3.")[0]
            key = parsed.path.lstrip("/")
            return bucket, key

        # Path style: s3.region.amazonaws.com/bucket/key
        if parsed.hostname and parsed.hostname.startswith("s3."):
            path_parts = parsed.path.lstrip("/").split("/", 1)
            if len(path_parts) != 2:
                raise TransferError(f"Invalid S3 URL: {uri}")
            return path_parts[0], path_parts[1]

        raise TransferError(f"Unable to parse S3 URL: {uri}")

    async def upload(
        self,
        local_path: str,
        job_id: str,
        user_id: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
    ) -> UploadResult:
        """
        Publish a finished edit.

        Args:
            local_path: Rendered file in the job working directory
            job_id: Job identifier (used in the object key)
            user_id: Optional owner for key scoping
            timeout_seconds: Deadline for the upload

        Returns:
            UploadResult with the public URL / path

        Raises:
            TransferError: Upload failed or deadline exceeded
        """
        if not os.path.isfile(local_path):
            raise TransferError(f"File not found: {local_path}")

        timeout = timeout_seconds or self.settings.upload_timeout_seconds
        ext = os.path.splitext(local_path)[1] or ".mp4"
        timestamp = datetime.utcnow().strftime("%Y%m%d%H%M%S")
        filename = f"edited_{timestamp}{ext}"
        if user_id:
            key = f"video-edits/{user_id}/{job_id}/{filename}"
        else:
            key = f"video-edits/{timestamp[:8]}/{job_id}/{filename}"

        content_type = mimetypes.guess_type(local_path)[0] or "video/mp4"
        file_size = os.path.getsize(local_path)

        try:
            if self.settings.storage_backend == "local":
                url = await asyncio.wait_for(self._copy_to_output(local_path, key), timeout=timeout)
            else:
                url = await asyncio.wait_for(
                    self._upload_to_s3(local_path, key, content_type, job_id), timeout=timeout
                )
        except asyncio.TimeoutError:
            raise TransferError(f"Upload timed out after {timeout:.0f}s")

        logger.info(f"Upload complete: {url} ({file_size / 1024 / 1024:.1f} MB)")

        return UploadResult(
            url=url,
            key=key,
            file_size_bytes=file_size,
            content_type=content_type,
            storage_backend=self.settings.storage_backend,
        )

    async def _upload_to_s3(self, local_path: str, key: str, content_type: str, job_id: str) -> str:
        """Upload a file to the configured bucket."""
        logger.info(f"Uploading edit to s3://{self.settings.s3_bucket}/{key}")

        extra_args = {
            "ContentType": content_type,
            "Metadata": {"job_id": job_id},
        }

        # Upload (use thread pool for sync boto3 call)
        loop = asyncio.get_event_loop()
        try:
            await loop.run_in_executor(
                None,
                lambda: self.client.upload_file(
                    local_path,
                    self.settings.s3_bucket,
                    key,
                    ExtraArgs=extra_args,
                ),
            )
        except (ClientError, BotoCoreError) as e:
            raise TransferError(f"Failed to upload to S3: {e}")

        return f"https://{self.settings.s3_bucket}.s3.{self.settings.aws_region}.amazonaws.com/{key}"

    async def _copy_to_output(self, local_path: str, key: str) -> str:
        """Copy a file into the local output directory."""
        output_path = os.path.abspath(os.path.join(self.settings.output_directory, key))
        os.makedirs(os.path.dirname(output_path), exist_ok=True)

        loop = asyncio.get_event_loop()
        try:
            await loop.run_in_executor(None, lambda: shutil.copy2(local_path, output_path))
        except OSError as e:
            raise TransferError(f"Failed to store output locally: {e}")

        return output_path

    @staticmethod
    def _remove_partial(path: str) -> None:
        if os.path.isfile(path):
            try:
                os.remove(path)
            except OSError as e:
                logger.warning(f"Failed to remove partial download {path}: {e}")
