"""調書テンプレートスキーマ"""

from datetime import datetime

from pydantic import BaseModel, Field

from src.api.schemas.audits import ColumnResponse
from src.config.constants import ColumnType


class ColumnRequest(BaseModel):
    name: str
    column_type: ColumnType
    # 改行区切り文字列またはリスト
    options: list[str] | str | None = None
    formula: str | None = None


class TemplateRequest(BaseModel):
    name: str
    description: str | None = None
    allow_row_insert: bool = True
    columns: list[ColumnRequest] = Field(..., min_length=1)


class TemplateResponse(BaseModel):
    id: int
    name: str
    description: str | None = None
    allow_row_insert: bool
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class TemplateDetailResponse(TemplateResponse):
    columns: list[ColumnResponse] = Field(default_factory=list)
