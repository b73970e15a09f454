"""
AWS S3 service for uploads, multipart sessions and clip storage
"""

from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Tuple
from urllib.parse import urlparse

import boto3
from boto3.exceptions import S3UploadFailedError
from botocore.exceptions import BotoCoreError, ClientError

from clipflow.config.base import settings
from clipflow.utils.errors import UpstreamStorageError
from clipflow.utils.logger import get_logger, PerformanceLogger

logger = get_logger(__name__)

CLIP_CONTENT_TYPES = {
    "mp4": "video/mp4",
    "mov": "video/quicktime",
    "mkv": "video/x-matroska",
}


class S3Service:
    def __init__(self, client=None, bucket: Optional[str] = None, region: Optional[str] = None,
                 endpoint_url: Optional[str] = None, url_expires: Optional[int] = None):
        self.bucket = bucket or settings.S3_BUCKET
        self.region = region or settings.AWS_REGION
        self.endpoint_url = (endpoint_url or settings.AWS_ENDPOINT_URL or "").rstrip("/") or None
        self.url_expires = url_expires or settings.PRESIGNED_URL_EXPIRES

        if client is not None:
            self.client = client
            self.enabled = True
        elif not all([settings.AWS_ACCESS_KEY_ID, settings.AWS_SECRET_ACCESS_KEY, self.bucket]):
            logger.warning("S3 credentials not configured - S3 functionality disabled")
            self.client = None
            self.enabled = False
            return
        else:
            self.client = boto3.client(
                's3',
                aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
                aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
                region_name=self.region,
                endpoint_url=self.endpoint_url,
            )
            self.enabled = True

        logger.info(f"S3 service initialized for bucket: {self.bucket}")

    def _require_enabled(self, operation: str) -> None:
        if not self.enabled:
            raise UpstreamStorageError(
                f"S3 not configured - cannot {operation}",
                "STORAGE_NOT_CONFIGURED",
                {"operation": operation},
            )

    def _storage_error(self, operation: str, error: Exception, **details) -> UpstreamStorageError:
        code = None
        if isinstance(error, ClientError):
            code = error.response.get("Error", {}).get("Code")
        logger.error(f"S3 {operation} failed: {error}")
        return UpstreamStorageError(
            f"Failed to {operation}: {error}",
            details={"operation": operation, "code": code, **details},
        )

    # ---- locators -------------------------------------------------------

    def object_url(self, key: str, bucket: Optional[str] = None) -> str:
        """Fully-qualified retrievable locator for an object key"""
        bucket = bucket or self.bucket
        if self.endpoint_url:
            return f"{self.endpoint_url}/{bucket}/{key}"
        return f"https://{bucket}.s3.amazonaws.com/{key}"

    def is_storage_locator(self, locator: str) -> bool:
        if locator.startswith("s3://"):
            return True
        try:
            parsed = urlparse(locator)
        except ValueError:
            return False
        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            return False
        if self.endpoint_url and locator.startswith(self.endpoint_url + "/"):
            return True
        host = parsed.hostname
        return (
            host.endswith("s3.amazonaws.com")
            or ".s3." in host
            or host.startswith("s3-")
            or host.startswith("s3.")
        )

    def parse_locator(self, locator: str) -> Tuple[str, str]:
        """Split a storage locator into (bucket, key)"""
        if locator.startswith("s3://"):
            bucket, _, key = locator[5:].partition("/")
            if not bucket or not key:
                raise UpstreamStorageError(f"Invalid S3 URI: {locator}", "INVALID_LOCATOR")
            return bucket, key

        parsed = urlparse(locator)
        path = parsed.path.lstrip("/")
        host = parsed.hostname or ""

        if self.endpoint_url and locator.startswith(self.endpoint_url + "/"):
            bucket, _, key = locator[len(self.endpoint_url) + 1:].split("?")[0].partition("/")
            return bucket, key

        # Path-style: https://s3.<region>.amazonaws.com/<bucket>/<key>
        if host.startswith("s3.") or host.startswith("s3-"):
            bucket, _, key = path.partition("/")
            return bucket, key

        # Virtual-hosted style: https://<bucket>.s3[.<region>].amazonaws.com/<key>
        bucket = host.split(".s3")[0] if ".s3" in host else self.bucket
        if not path:
            raise UpstreamStorageError(f"Invalid S3 URL format: {locator}", "INVALID_LOCATOR")
        return bucket, path

    # ---- single-shot uploads --------------------------------------------

    def generate_presigned_upload_url(
        self,
        key: str,
        content_type: str,
        content_length: int,
        expires_in: Optional[int] = None,
    ) -> str:
        """Presigned PUT bound to the declared Content-Type and Content-Length"""
        self._require_enabled("generate presigned upload URL")
        expires_in = expires_in or self.url_expires
        try:
            url = self.client.generate_presigned_url(
                'put_object',
                Params={
                    'Bucket': self.bucket,
                    'Key': key,
                    'ContentType': content_type,
                    'ContentLength': content_length,
                },
                ExpiresIn=expires_in,
            )
        except (BotoCoreError, ClientError) as e:
            raise self._storage_error("generate presigned upload URL", e, key=key)
        logger.info(f"Generated presigned upload URL for {key} (expires in {expires_in}s)")
        return url

    def generate_presigned_url(self, key: str, expires_in: Optional[int] = None,
                               bucket: Optional[str] = None) -> str:
        """Generate presigned URL for file access"""
        self._require_enabled("generate presigned URL")
        expires_in = expires_in or self.url_expires
        try:
            url = self.client.generate_presigned_url(
                'get_object',
                Params={'Bucket': bucket or self.bucket, 'Key': key},
                ExpiresIn=expires_in,
            )
        except (BotoCoreError, ClientError) as e:
            raise self._storage_error("generate presigned URL", e, key=key)
        logger.info(f"Generated presigned URL for {key} (expires in {expires_in}s)")
        return url

    def generate_signed_read_url(self, locator: str, expires_in: Optional[int] = None) -> str:
        """Read URL for a storage locator, usable without AWS credentials"""
        bucket, key = self.parse_locator(locator)
        return self.generate_presigned_url(key, expires_in, bucket=bucket)

    # ---- multipart uploads ----------------------------------------------

    def create_multipart_upload(self, key: str, content_type: str,
                                metadata: Optional[Dict[str, str]] = None) -> str:
        """Open a multipart upload and return its upload id"""
        self._require_enabled("initiate multipart upload")
        params = {'Bucket': self.bucket, 'Key': key, 'ContentType': content_type}
        if metadata:
            params['Metadata'] = {k: str(v) for k, v in metadata.items()}
        try:
            response = self.client.create_multipart_upload(**params)
        except (BotoCoreError, ClientError) as e:
            raise self._storage_error("initiate multipart upload", e, key=key)

        upload_id = response.get('UploadId')
        if not upload_id:
            raise UpstreamStorageError("Failed to get upload ID from S3", details={"key": key})

        logger.info(f"Initiated multipart upload: {upload_id} for file: {key}")
        return upload_id

    def generate_presigned_part_url(self, key: str, upload_id: str, part_number: int,
                                    expires_in: Optional[int] = None) -> str:
        self._require_enabled("generate part upload URL")
        expires_in = expires_in or self.url_expires
        try:
            url = self.client.generate_presigned_url(
                'upload_part',
                Params={
                    'Bucket': self.bucket,
                    'Key': key,
                    'UploadId': upload_id,
                    'PartNumber': part_number,
                },
                ExpiresIn=expires_in,
            )
        except (BotoCoreError, ClientError) as e:
            raise self._storage_error("generate part upload URL", e, key=key, part_number=part_number)
        logger.debug(f"Generated part URL for part {part_number} of upload {upload_id}")
        return url

    def complete_multipart_upload(self, key: str, upload_id: str,
                                  parts: Sequence[Tuple[int, str]]) -> str:
        """Assemble the uploaded parts; returns the object locator"""
        self._require_enabled("complete multipart upload")
        try:
            self.client.complete_multipart_upload(
                Bucket=self.bucket,
                Key=key,
                UploadId=upload_id,
                MultipartUpload={
                    'Parts': [
                        {'PartNumber': part_number, 'ETag': etag}
                        for part_number, etag in sorted(parts)
                    ]
                },
            )
        except (BotoCoreError, ClientError) as e:
            raise self._storage_error("complete multipart upload", e, key=key, upload_id=upload_id)

        logger.info(f"Completed multipart upload: {upload_id} for file: {key}")
        return self.object_url(key)

    def abort_multipart_upload(self, key: str, upload_id: str) -> None:
        self._require_enabled("abort multipart upload")
        try:
            self.client.abort_multipart_upload(Bucket=self.bucket, Key=key, UploadId=upload_id)
        except (BotoCoreError, ClientError) as e:
            raise self._storage_error("abort multipart upload", e, key=key, upload_id=upload_id)
        logger.info(f"Aborted multipart upload: {upload_id} for file: {key}")

    def list_multipart_uploads(self) -> List[Dict]:
        """All multipart uploads still open in the bucket"""
        self._require_enabled("list multipart uploads")
        uploads: List[Dict] = []
        params = {'Bucket': self.bucket}
        try:
            while True:
                response = self.client.list_multipart_uploads(**params)
                for upload in response.get('Uploads', []):
                    uploads.append({
                        'key': upload['Key'],
                        'upload_id': upload['UploadId'],
                        'initiated': upload.get('Initiated'),
                    })
                if not response.get('IsTruncated'):
                    break
                params['KeyMarker'] = response.get('NextKeyMarker')
                params['UploadIdMarker'] = response.get('NextUploadIdMarker')
        except (BotoCoreError, ClientError) as e:
            raise self._storage_error("list multipart uploads", e)
        return uploads

    # ---- clip outputs ---------------------------------------------------

    def upload_clip(self, local_path: str, project_id: str, clip_id: str, format: str = "mp4") -> str:
        """
        Upload a rendered clip under clips/{project_id}/{clip_id}.{format}

        Re-rendering the same clip overwrites the previous object.

        Returns:
            Locator of the uploaded clip
        """
        self._require_enabled("upload clip")
        key = f"clips/{project_id}/{clip_id}.{format}"
        perf = PerformanceLogger("s3_upload")
        perf.start(f"upload {key}")
        try:
            self.client.upload_file(
                local_path,
                self.bucket,
                key,
                ExtraArgs={
                    'ContentType': CLIP_CONTENT_TYPES.get(format, f"video/{format}"),
                    'Metadata': {
                        'project_id': project_id,
                        'clip_id': clip_id,
                        'uploaded_at': datetime.now(timezone.utc).isoformat(),
                    },
                },
            )
        except (BotoCoreError, ClientError, S3UploadFailedError) as e:
            raise self._storage_error("upload clip", e, key=key)
        perf.end(key)
        return self.object_url(key)

