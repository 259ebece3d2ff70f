"""ファイルストレージ基盤 — 保存後は不透明なパスのみを返す"""

import re
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass

from src.config.constants import StorageCategory
from src.workflow.errors import ValidationError

_UNSAFE_CHARS = re.compile(r"[^\w.\-]")


@dataclass(frozen=True)
class Upload:
    """アップロードされたファイル1件"""

    filename: str
    content: bytes
    content_type: str | None = None

    @property
    def size(self) -> int:
        return len(self.content)


def storage_key(organization_id: int, category: StorageCategory, filename: str) -> str:
    """組織・区分ごとの衝突しないキーを生成"""
    safe_name = _UNSAFE_CHARS.sub("_", filename.rsplit("/", 1)[-1]) or "file"
    return f"{organization_id}/{category.value}/{uuid.uuid4().hex}_{safe_name}"


class FileStorage(ABC):
    """ストレージバックエンド基底クラス"""

    def __init__(self, max_size_bytes: int) -> None:
        self._max_size_bytes = max_size_bytes

    def _check_size(self, upload: Upload) -> None:
        if upload.size == 0:
            raise ValidationError("空のファイルはアップロードできません")
        if upload.size > self._max_size_bytes:
            raise ValidationError(
                f"ファイルサイズが上限を超えています: {upload.filename} ({upload.size} bytes)"
            )

    async def save(self, upload: Upload, organization_id: int, category: StorageCategory) -> str:
        """ファイルを保存し、参照用パスを返す

        Raises:
            ValidationError: サイズ上限超過・空ファイル
            StorageError: バックエンドへの書き込み失敗
        """
        self._check_size(upload)
        key = storage_key(organization_id, category, upload.filename)
        return await self._write(key, upload)

    @abstractmethod
    async def _write(self, key: str, upload: Upload) -> str:
        """キーに書き込みパスを返す"""
        ...

    @abstractmethod
    async def read(self, path: str) -> bytes:
        ...


class StorageError(Exception):
    """ストレージ書き込み失敗（詳細はサーバーログのみ）"""


async def store_upload(
    storage: FileStorage | None, upload: Upload | None, organization_id: int, category: StorageCategory
) -> str | None:
    """任意添付の保存（未添付ならNone）"""
    if upload is None:
        return None
    if storage is None:
        raise StorageError("ファイルストレージが設定されていません")
    return await storage.save(upload, organization_id, category)
