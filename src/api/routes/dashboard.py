"""ダッシュボードエンドポイント"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_db_session
from src.api.middleware.auth import get_request_context
from src.api.schemas.audits import AuditResponse
from src.api.schemas.dashboard import DashboardResponse, RecentAuditResponse
from src.workflow.context import RequestContext
from src.workflow.dashboard import DashboardService

router = APIRouter()


@router.get("", response_model=DashboardResponse)
async def dashboard(
    ctx: RequestContext = Depends(get_request_context),
    session: AsyncSession = Depends(get_db_session),
) -> DashboardResponse:
    """監査件数・査閲待ち件数・直近5件の監査"""
    result = await DashboardService(session).dashboard(ctx)
    return DashboardResponse(
        total_audits=result.total_audits,
        active_audits=result.active_audits,
        completed_audits=result.completed_audits,
        pending_verification=result.pending_verification,
        recent_audits=[
            RecentAuditResponse(
                **AuditResponse.model_validate(r.audit).model_dump(),
                auditee_name=r.auditee_name,
                team_leader_name=r.team_leader_name,
            )
            for r in result.recent_audits
        ],
    )
