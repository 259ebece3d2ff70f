"""ローカルディスクストレージ（開発・単一ノード向け）"""

import asyncio
from pathlib import Path

from loguru import logger

from src.storage.base import FileStorage, StorageError, Upload


class LocalFileStorage(FileStorage):
    """upload_dir/<組織>/<区分>/ 配下に保存"""

    def __init__(self, root: str | Path, max_size_bytes: int) -> None:
        super().__init__(max_size_bytes)
        self._root = Path(root)

    def _resolve(self, path: str) -> Path:
        target = (self._root / path).resolve()
        if not target.is_relative_to(self._root.resolve()):
            raise StorageError(f"不正なパスです: {path}")
        return target

    def _write_sync(self, key: str, content: bytes) -> None:
        target = self._resolve(key)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content)

    async def _write(self, key: str, upload: Upload) -> str:
        try:
            await asyncio.to_thread(self._write_sync, key, upload.content)
        except OSError as e:
            logger.error("ファイル保存失敗", key=key, error=str(e))
            raise StorageError("ファイルの保存に失敗しました") from e
        logger.info("ファイル保存", path=key, size=upload.size)
        return key

    async def read(self, path: str) -> bytes:
        return await asyncio.to_thread(self._resolve(path).read_bytes)
