"""被監査部門・監査ユニバースエンドポイント"""

from fastapi import APIRouter, Depends, status
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_db_session, get_notifier
from src.api.middleware.auth import context_with
from src.api.schemas.auditees import (
    AuditeeCreate,
    AuditeeCreatedResponse,
    AuditeeResponse,
    AuditeeUpdate,
    CredentialsResponse,
    DepartmentResponse,
    UniverseItemRequest,
    UniverseItemResponse,
)
from src.api.schemas.common import DeletedResponse
from src.db.models.audit import Auditee
from src.notifications import IssueNotifier
from src.workflow.context import RequestContext
from src.workflow.universe import UniverseItemFields, UniverseService

router = APIRouter()


async def _auditee_response(service: UniverseService, ctx: RequestContext, auditee: Auditee) -> AuditeeResponse:
    departments = await service.list_departments(ctx, auditee.id)
    return AuditeeResponse(
        id=auditee.id,
        name=auditee.name,
        official_email=auditee.official_email,
        user_id=auditee.user_id,
        departments=[DepartmentResponse.model_validate(d) for d in departments],
    )


def _item_fields(body: UniverseItemRequest) -> UniverseItemFields:
    return UniverseItemFields(**body.model_dump())


# ── 被監査部門 ─────────────────────────────────────────


@router.post("/", response_model=AuditeeCreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_auditee(
    body: AuditeeCreate,
    ctx: RequestContext = Depends(context_with("universe:manage")),
    session: AsyncSession = Depends(get_db_session),
    notifier: IssueNotifier = Depends(get_notifier),
) -> AuditeeCreatedResponse:
    """被監査部門作成 — コミット後に認証情報をメール送付"""
    service = UniverseService(session)
    created = await service.create_auditee(ctx, body.name, body.official_email, body.departments)
    delivery = await notifier.credentials(created.auditee, created.initial_password)
    if not delivery.sent:
        logger.warning("認証情報メール未送信", auditee_id=created.auditee.id, error=delivery.error)

    base = await _auditee_response(service, ctx, created.auditee)
    return AuditeeCreatedResponse(
        **base.model_dump(),
        notification=delivery,
        initial_password=None if delivery.sent else created.initial_password,
    )


@router.get("/", response_model=list[AuditeeResponse])
async def list_auditees(
    ctx: RequestContext = Depends(context_with("audit:read")),
    session: AsyncSession = Depends(get_db_session),
) -> list[AuditeeResponse]:
    service = UniverseService(session)
    return [await _auditee_response(service, ctx, a) for a in await service.list_auditees(ctx)]


@router.get("/{auditee_id}", response_model=AuditeeResponse)
async def get_auditee(
    auditee_id: int,
    ctx: RequestContext = Depends(context_with("audit:read")),
    session: AsyncSession = Depends(get_db_session),
) -> AuditeeResponse:
    service = UniverseService(session)
    return await _auditee_response(service, ctx, await service.get_auditee(ctx, auditee_id))


@router.patch("/{auditee_id}", response_model=AuditeeResponse)
async def update_auditee(
    auditee_id: int,
    body: AuditeeUpdate,
    ctx: RequestContext = Depends(context_with("universe:manage")),
    session: AsyncSession = Depends(get_db_session),
) -> AuditeeResponse:
    service = UniverseService(session)
    auditee = await service.update_auditee(ctx, auditee_id, body.name, body.new_departments)
    return await _auditee_response(service, ctx, auditee)


@router.delete("/{auditee_id}", response_model=DeletedResponse)
async def delete_auditee(
    auditee_id: int,
    ctx: RequestContext = Depends(context_with("universe:manage")),
    session: AsyncSession = Depends(get_db_session),
) -> DeletedResponse:
    await UniverseService(session).delete_auditee(ctx, auditee_id)
    return DeletedResponse(id=auditee_id)


@router.post("/{auditee_id}/send-credentials", response_model=CredentialsResponse)
async def send_credentials(
    auditee_id: int,
    ctx: RequestContext = Depends(context_with("universe:manage")),
    session: AsyncSession = Depends(get_db_session),
    notifier: IssueNotifier = Depends(get_notifier),
) -> CredentialsResponse:
    """パスワードを再発行して認証情報を再送"""
    auditee, password = await UniverseService(session).reset_auditee_password(ctx, auditee_id)
    delivery = await notifier.credentials(auditee, password)
    return CredentialsResponse(
        auditee_id=auditee.id,
        notification=delivery,
        initial_password=None if delivery.sent else password,
    )


# ── 監査ユニバース ─────────────────────────────────────


@router.get("/{auditee_id}/universe", response_model=list[UniverseItemResponse])
async def list_universe(
    auditee_id: int,
    ctx: RequestContext = Depends(context_with("audit:read")),
    session: AsyncSession = Depends(get_db_session),
) -> list[UniverseItemResponse]:
    items = await UniverseService(session).list_universe(ctx, auditee_id)
    return [UniverseItemResponse.model_validate(i) for i in items]


@router.post("/{auditee_id}/universe", response_model=UniverseItemResponse, status_code=status.HTTP_201_CREATED)
async def add_universe_item(
    auditee_id: int,
    body: UniverseItemRequest,
    ctx: RequestContext = Depends(context_with("universe:manage")),
    session: AsyncSession = Depends(get_db_session),
) -> UniverseItemResponse:
    item = await UniverseService(session).add_universe_item(ctx, auditee_id, _item_fields(body))
    return UniverseItemResponse.model_validate(item)


@router.patch("/universe/{item_id}", response_model=UniverseItemResponse)
async def update_universe_item(
    item_id: int,
    body: UniverseItemRequest,
    ctx: RequestContext = Depends(context_with("universe:manage")),
    session: AsyncSession = Depends(get_db_session),
) -> UniverseItemResponse:
    item = await UniverseService(session).update_universe_item(ctx, item_id, _item_fields(body))
    return UniverseItemResponse.model_validate(item)


@router.delete("/universe/{item_id}", response_model=DeletedResponse)
async def delete_universe_item(
    item_id: int,
    ctx: RequestContext = Depends(context_with("universe:manage")),
    session: AsyncSession = Depends(get_db_session),
) -> DeletedResponse:
    await UniverseService(session).delete_universe_item(ctx, item_id)
    return DeletedResponse(id=item_id)
