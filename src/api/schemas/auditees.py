"""被監査部門・監査ユニバーススキーマ"""

from pydantic import BaseModel, Field

from src.notifications import DeliveryResult


class AuditeeCreate(BaseModel):
    name: str
    official_email: str
    departments: list[str] = Field(default_factory=list)


class AuditeeUpdate(BaseModel):
    name: str
    new_departments: list[str] = Field(default_factory=list)


class DepartmentResponse(BaseModel):
    id: int
    name: str

    model_config = {"from_attributes": True}


class AuditeeResponse(BaseModel):
    id: int
    name: str
    official_email: str
    user_id: int | None = None
    departments: list[DepartmentResponse] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class AuditeeCreatedResponse(AuditeeResponse):
    notification: DeliveryResult
    # メール送信に失敗した場合のみ返す
    initial_password: str | None = None


class CredentialsResponse(BaseModel):
    auditee_id: int
    notification: DeliveryResult
    initial_password: str | None = None


class UniverseItemRequest(BaseModel):
    audit_area: str
    process: str | None = None
    inherent_risk: str | None = None
    control_measure: str | None = None
    audit_procedure: str | None = None
    department_id: int | None = None


class UniverseItemResponse(UniverseItemRequest):
    id: int
    auditee_id: int

    model_config = {"from_attributes": True}
