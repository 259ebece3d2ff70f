"""共通スキーマ"""

from pydantic import BaseModel


class DeletedResponse(BaseModel):
    success: bool = True
    id: int
