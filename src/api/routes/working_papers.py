"""調書テンプレートエンドポイント"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_db_session
from src.api.middleware.auth import context_with
from src.api.schemas.audits import ColumnResponse
from src.api.schemas.common import DeletedResponse
from src.api.schemas.working_papers import TemplateDetailResponse, TemplateRequest, TemplateResponse
from src.workflow.context import RequestContext
from src.workflow.working_papers import ColumnSpec, TemplateDetail, WorkingPaperService

router = APIRouter()


def _columns(body: TemplateRequest) -> list[ColumnSpec]:
    return [
        ColumnSpec(name=c.name, column_type=c.column_type, options=c.options, formula=c.formula)
        for c in body.columns
    ]


def _detail_response(detail: TemplateDetail) -> TemplateDetailResponse:
    base = TemplateResponse.model_validate(detail.template)
    return TemplateDetailResponse(
        **base.model_dump(),
        columns=[ColumnResponse.model_validate(c) for c in detail.columns],
    )


@router.post("/", response_model=TemplateDetailResponse, status_code=status.HTTP_201_CREATED)
async def create_template(
    body: TemplateRequest,
    ctx: RequestContext = Depends(context_with("working_paper:manage")),
    session: AsyncSession = Depends(get_db_session),
) -> TemplateDetailResponse:
    detail = await WorkingPaperService(session).create_template(
        ctx, body.name, _columns(body), body.allow_row_insert, body.description
    )
    return _detail_response(detail)


@router.get("/", response_model=list[TemplateResponse])
async def list_templates(
    ctx: RequestContext = Depends(context_with("audit:read")),
    session: AsyncSession = Depends(get_db_session),
) -> list[TemplateResponse]:
    templates = await WorkingPaperService(session).list_templates(ctx)
    return [TemplateResponse.model_validate(t) for t in templates]


@router.get("/{template_id}", response_model=TemplateDetailResponse)
async def get_template(
    template_id: int,
    ctx: RequestContext = Depends(context_with("audit:read")),
    session: AsyncSession = Depends(get_db_session),
) -> TemplateDetailResponse:
    return _detail_response(await WorkingPaperService(session).get_template(ctx, template_id))


@router.put("/{template_id}", response_model=TemplateDetailResponse)
async def update_template(
    template_id: int,
    body: TemplateRequest,
    ctx: RequestContext = Depends(context_with("working_paper:manage")),
    session: AsyncSession = Depends(get_db_session),
) -> TemplateDetailResponse:
    """テンプレート更新（カラムは全置換）"""
    detail = await WorkingPaperService(session).update_template(
        ctx, template_id, body.name, _columns(body), body.allow_row_insert, body.description
    )
    return _detail_response(detail)


@router.delete("/{template_id}", response_model=DeletedResponse)
async def delete_template(
    template_id: int,
    ctx: RequestContext = Depends(context_with("working_paper:manage")),
    session: AsyncSession = Depends(get_db_session),
) -> DeletedResponse:
    await WorkingPaperService(session).delete_template(ctx, template_id)
    return DeletedResponse(id=template_id)
