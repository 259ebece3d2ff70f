"""S3ストレージ テスト"""

import io
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from src.config.constants import StorageCategory
from src.storage import S3FileStorage, StorageError, Upload
from src.workflow.errors import ValidationError


@pytest.fixture
def s3_client() -> MagicMock:
    return MagicMock()


@pytest.mark.unit
class TestS3FileStorage:
    async def test_put_object_with_kms(self, s3_client: MagicMock) -> None:
        storage = S3FileStorage(s3_client, "evidence-bucket", max_size_bytes=1024)
        path = await storage.save(Upload("memo.pdf", b"%PDF", "application/pdf"), 9, StorageCategory.EVIDENCE)

        assert path.startswith("s3://evidence-bucket/9/evidence/")
        kwargs = s3_client.put_object.call_args.kwargs
        assert kwargs["Bucket"] == "evidence-bucket"
        assert kwargs["Key"] == path.removeprefix("s3://evidence-bucket/")
        assert kwargs["Body"] == b"%PDF"
        assert kwargs["ServerSideEncryption"] == "aws:kms"
        assert kwargs["ContentType"] == "application/pdf"

    async def test_content_type_optional(self, s3_client: MagicMock) -> None:
        storage = S3FileStorage(s3_client, "bucket", max_size_bytes=1024)
        await storage.save(Upload("a.bin", b"a"), 1, StorageCategory.EVIDENCE)
        assert "ContentType" not in s3_client.put_object.call_args.kwargs

    async def test_client_error_is_storage_error(self, s3_client: MagicMock) -> None:
        s3_client.put_object.side_effect = ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "denied"}}, "PutObject"
        )
        storage = S3FileStorage(s3_client, "bucket", max_size_bytes=1024)
        with pytest.raises(StorageError):
            await storage.save(Upload("a.bin", b"a"), 1, StorageCategory.EVIDENCE)

    async def test_oversize_never_uploaded(self, s3_client: MagicMock) -> None:
        storage = S3FileStorage(s3_client, "bucket", max_size_bytes=2)
        with pytest.raises(ValidationError):
            await storage.save(Upload("a.bin", b"abc"), 1, StorageCategory.EVIDENCE)
        s3_client.put_object.assert_not_called()

    async def test_read(self, s3_client: MagicMock) -> None:
        s3_client.get_object.return_value = {"Body": io.BytesIO(b"data")}
        storage = S3FileStorage(s3_client, "bucket", max_size_bytes=1024)
        assert await storage.read("s3://bucket/1/evidence/x_a.bin") == b"data"
        s3_client.get_object.assert_called_once_with(Bucket="bucket", Key="1/evidence/x_a.bin")
