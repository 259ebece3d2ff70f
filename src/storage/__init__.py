"""ファイルストレージ"""

from functools import lru_cache

import boto3

from src.config.settings import get_settings
from src.storage.base import FileStorage, StorageError, Upload, store_upload
from src.storage.local import LocalFileStorage
from src.storage.s3 import S3FileStorage

__all__ = ["FileStorage", "LocalFileStorage", "S3FileStorage", "StorageError", "Upload", "get_file_storage", "store_upload"]


@lru_cache
def get_file_storage() -> FileStorage:
    """設定に応じたストレージバックエンド"""
    settings = get_settings()
    if settings.storage_backend == "s3":
        client = boto3.client(
            "s3",
            region_name=settings.aws_region,
            aws_access_key_id=settings.aws_access_key_id or None,
            aws_secret_access_key=settings.aws_secret_access_key or None,
        )
        return S3FileStorage(client, settings.s3_bucket_evidence, settings.max_upload_size_bytes)
    return LocalFileStorage(settings.upload_dir, settings.max_upload_size_bytes)
