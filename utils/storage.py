import os
import logging

import boto3
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)

# Design keys embed the design id and are never overwritten
IMMUTABLE_CACHE_CONTROL = "public, max-age=31536000, immutable"


def _read_payload(data):
    if hasattr(data, 'read'):
        data.seek(0)
        payload = data.read()
        data.seek(0)
        return payload
    return data


class StorageBackend:
    def put_file(self, data, key, content_type=None):
        raise NotImplementedError

    def get_url(self, key, expires_seconds=3600):
        raise NotImplementedError

    def delete(self, key):
        raise NotImplementedError


class LocalStorage(StorageBackend):
    """
    Files under base_dir, served by the /uploads/<key> route.
    """
    def __init__(self, base_dir, base_url):
        self.base_dir = os.path.abspath(base_dir)
        self.base_url = base_url
        os.makedirs(self.base_dir, exist_ok=True)

    def _get_abs_path(self, key):
        # Keys are relative ("designs/<user>/<id>.png"); never escape base_dir
        abs_path = os.path.abspath(os.path.join(self.base_dir, key))
        if os.path.commonpath([abs_path, self.base_dir]) != self.base_dir:
            raise ValueError(f"Storage key escapes base directory: {key}")
        return abs_path

    def put_file(self, data, key, content_type=None):
        abs_path = self._get_abs_path(key)
        os.makedirs(os.path.dirname(abs_path), exist_ok=True)
        with open(abs_path, 'wb') as f:
            f.write(_read_payload(data))
        return key

    def get_url(self, key, expires_seconds=3600):
        return f"{self.base_url}/uploads/{key}".replace("\\", "/")

    def delete(self, key):
        abs_path = self._get_abs_path(key)
        if os.path.exists(abs_path):
            os.remove(abs_path)


class S3Storage(StorageBackend):
    def __init__(self, bucket_name, region, prefix="", public_base_url=""):
        # Credentials come from the standard AWS chain (env, profile, role)
        self.s3 = boto3.client('s3', region_name=region)
        self.bucket = bucket_name
        self.prefix = prefix
        self.public_base_url = public_base_url

    def _get_s3_key(self, key):
        if self.prefix:
            return f"{self.prefix.rstrip('/')}/{key.lstrip('/')}"
        return key

    def put_file(self, data, key, content_type=None):
        self.s3.put_object(
            Bucket=self.bucket,
            Key=self._get_s3_key(key),
            Body=_read_payload(data),
            ContentType=content_type or "application/octet-stream",
            CacheControl=IMMUTABLE_CACHE_CONTROL,
        )
        return key

    def get_url(self, key, expires_seconds=3600):
        full_key = self._get_s3_key(key)
        if self.public_base_url:
            return f"{self.public_base_url}/{full_key}"
        try:
            return self.s3.generate_presigned_url(
                'get_object',
                Params={'Bucket': self.bucket, 'Key': full_key},
                ExpiresIn=expires_seconds
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(f"[Storage] Presign failed for {full_key}: {e}")
            return ""

    def delete(self, key):
        self.s3.delete_object(Bucket=self.bucket, Key=self._get_s3_key(key))


def get_storage():
    """Storage backend for design images, picked by STORAGE_BACKEND."""
    from config import (
        STORAGE_BACKEND, S3_BUCKET, AWS_REGION, S3_PREFIX, S3_PUBLIC_BASE_URL,
        UPLOAD_DIR, PUBLIC_BASE_URL,
    )

    if STORAGE_BACKEND == 's3':
        return S3Storage(S3_BUCKET, AWS_REGION, prefix=S3_PREFIX, public_base_url=S3_PUBLIC_BASE_URL)
    return LocalStorage(UPLOAD_DIR, PUBLIC_BASE_URL)
