"""組織・ユーザー管理スキーマ"""

from datetime import datetime

from pydantic import BaseModel, Field

from src.config.constants import UserRole


class OrganizationCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None


class OrganizationResponse(BaseModel):
    id: int
    name: str
    description: str | None = None
    is_active: bool
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class UserCreate(BaseModel):
    email: str
    full_name: str = Field(..., min_length=1)
    password: str
    role: UserRole
    organization_id: int | None = None
