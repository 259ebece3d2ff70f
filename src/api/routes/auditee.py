"""被監査部門ポータル — 受信箱・経営者コメント・フォローアップ回答"""

from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_db_session, get_storage, read_upload
from src.api.middleware.auth import context_with
from src.api.schemas.auditee import InboxItemResponse, InboxResponse
from src.api.schemas.issues import CommentResponse, FollowupHistoryResponse, IssueResponse
from src.storage import FileStorage
from src.workflow.comments import CommentService, InboxItem
from src.workflow.context import RequestContext
from src.workflow.followup import FollowupService

router = APIRouter()


def _item_response(item: InboxItem) -> InboxItemResponse:
    return InboxItemResponse(
        issue=IssueResponse.model_validate(item.issue),
        audit_id=item.audit.id,
        audit_name=item.audit.name,
        audit_area=item.audit_area,
        due_date=item.due_date,
        remaining_days=item.remaining_days,
        is_past_due=item.is_past_due,
        has_responded=item.thread.has_responded if item.thread else None,
    )


@router.get("/inbox", response_model=InboxResponse)
async def inbox(
    ctx: RequestContext = Depends(context_with("auditee:respond")),
    session: AsyncSession = Depends(get_db_session),
) -> InboxResponse:
    """コメント依頼（未回答・期限切れ・回答済み）とフォローアップ依頼"""
    result = await CommentService(session).auditee_inbox(ctx)
    return InboxResponse(
        pending_comments=[_item_response(i) for i in result.pending_comments],
        overdue_comments=[_item_response(i) for i in result.overdue_comments],
        commented=[_item_response(i) for i in result.commented],
        pending_followups=[_item_response(i) for i in result.pending_followups],
        responded_followups=[_item_response(i) for i in result.responded_followups],
    )


@router.post("/issues/{issue_id}/comments", response_model=CommentResponse, status_code=status.HTTP_201_CREATED)
async def submit_comment(
    issue_id: int,
    comment: str = Form(...),
    attachment: UploadFile | None = File(default=None),
    ctx: RequestContext = Depends(context_with("auditee:respond")),
    session: AsyncSession = Depends(get_db_session),
    storage: FileStorage = Depends(get_storage),
) -> CommentResponse:
    """経営者コメント登録（添付は任意）"""
    upload = await read_upload(attachment)
    created = await CommentService(session, storage).submit_comment(ctx, issue_id, comment, upload)
    return CommentResponse.model_validate(created)


@router.post(
    "/issues/{issue_id}/followup", response_model=FollowupHistoryResponse, status_code=status.HTTP_201_CREATED
)
async def submit_followup(
    issue_id: int,
    response: str = Form(...),
    evidence: UploadFile | None = File(default=None),
    ctx: RequestContext = Depends(context_with("auditee:respond")),
    session: AsyncSession = Depends(get_db_session),
    storage: FileStorage = Depends(get_storage),
) -> FollowupHistoryResponse:
    """フォローアップ回答（証跡は任意）"""
    upload = await read_upload(evidence)
    record = await FollowupService(session, storage).submit_followup(ctx, issue_id, response, upload)
    return FollowupHistoryResponse.model_validate(record)
