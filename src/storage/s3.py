"""S3 ストレージ"""

import asyncio
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError
from loguru import logger

from src.storage.base import FileStorage, StorageError, Upload


class S3FileStorage(FileStorage):
    """S3ベースのファイルストレージ

    パスは s3://<bucket>/<key> 形式で返す。
    """

    def __init__(self, client: Any, bucket: str, max_size_bytes: int) -> None:
        super().__init__(max_size_bytes)
        self._client = client
        self._bucket = bucket

    async def _write(self, key: str, upload: Upload) -> str:
        extra_args: dict[str, Any] = {"ServerSideEncryption": "aws:kms"}
        if upload.content_type:
            extra_args["ContentType"] = upload.content_type
        try:
            await asyncio.to_thread(
                self._client.put_object,
                Bucket=self._bucket,
                Key=key,
                Body=upload.content,
                **extra_args,
            )
        except (BotoCoreError, ClientError) as e:
            logger.error("S3アップロード失敗", key=key, error=str(e))
            raise StorageError("ファイルの保存に失敗しました") from e

        logger.info("S3アップロード完了", s3_key=key, size=upload.size)
        return f"s3://{self._bucket}/{key}"

    async def read(self, path: str) -> bytes:
        key = path.removeprefix(f"s3://{self._bucket}/")
        response = await asyncio.to_thread(self._client.get_object, Bucket=self._bucket, Key=key)
        return response["Body"].read()
