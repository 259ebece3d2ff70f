"""課題記述アシスタントエンドポイント"""

from fastapi import APIRouter, Depends

from src.api.dependencies import get_writing_assistant
from src.api.middleware.auth import require_permission
from src.api.schemas.assistant import AssistantResponse, ConsequenceRequest, RephraseRequest
from src.llm_gateway.assistant import IssueWritingAssistant
from src.security.auth import TokenPayload

router = APIRouter()


@router.post("/rephrase", response_model=AssistantResponse)
async def rephrase(
    body: RephraseRequest,
    _user: TokenPayload = Depends(require_permission("issue:author")),
    assistant: IssueWritingAssistant = Depends(get_writing_assistant),
) -> AssistantResponse:
    """課題文の言い換え"""
    return AssistantResponse(text=await assistant.rephrase(body.text))


@router.post("/consequence", response_model=AssistantResponse)
async def generate_consequence(
    body: ConsequenceRequest,
    _user: TokenPayload = Depends(require_permission("issue:author")),
    assistant: IssueWritingAssistant = Depends(get_writing_assistant),
) -> AssistantResponse:
    """基準と現状から影響（Consequence）の文案を生成"""
    return AssistantResponse(text=await assistant.generate_consequence(body.criteria, body.condition))
