"""管理エンドポイント — 組織・ユーザー"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_db_session
from src.api.middleware.auth import context_with
from src.api.schemas.admin import OrganizationCreate, OrganizationResponse, UserCreate
from src.api.schemas.auth import UserResponse
from src.api.schemas.dashboard import AdminSummaryResponse
from src.workflow.accounts import AccountService, UserFields
from src.workflow.context import RequestContext
from src.workflow.dashboard import DashboardService

router = APIRouter()


@router.post("/organizations", response_model=OrganizationResponse, status_code=status.HTTP_201_CREATED)
async def create_organization(
    body: OrganizationCreate,
    ctx: RequestContext = Depends(context_with("admin:organizations")),
    session: AsyncSession = Depends(get_db_session),
) -> OrganizationResponse:
    organization = await AccountService(session).create_organization(ctx, body.name, body.description)
    return OrganizationResponse.model_validate(organization)


@router.get("/organizations", response_model=list[OrganizationResponse])
async def list_organizations(
    ctx: RequestContext = Depends(context_with("admin:organizations")),
    session: AsyncSession = Depends(get_db_session),
) -> list[OrganizationResponse]:
    organizations = await AccountService(session).list_organizations(ctx)
    return [OrganizationResponse.model_validate(o) for o in organizations]


@router.post("/users", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    body: UserCreate,
    ctx: RequestContext = Depends(context_with("admin:users")),
    session: AsyncSession = Depends(get_db_session),
) -> UserResponse:
    """ユーザー作成（head_of_auditは自組織の監査部門ユーザーのみ）"""
    fields = UserFields(
        email=body.email,
        full_name=body.full_name,
        password=body.password,
        role=body.role,
        organization_id=body.organization_id,
    )
    user = await AccountService(session).create_user(ctx, fields)
    return UserResponse.model_validate(user)


@router.get("/users", response_model=list[UserResponse])
async def list_users(
    organization_id: int | None = None,
    ctx: RequestContext = Depends(context_with("admin:users")),
    session: AsyncSession = Depends(get_db_session),
) -> list[UserResponse]:
    users = await AccountService(session).list_users(ctx, organization_id)
    return [UserResponse.model_validate(u) for u in users]


@router.get("/dashboard", response_model=AdminSummaryResponse)
async def admin_dashboard(
    ctx: RequestContext = Depends(context_with("admin:organizations")),
    session: AsyncSession = Depends(get_db_session),
) -> AdminSummaryResponse:
    """組織数・ユーザー数"""
    summary = await DashboardService(session).admin_summary(ctx)
    return AdminSummaryResponse(organization_count=summary.organization_count, user_count=summary.user_count)
