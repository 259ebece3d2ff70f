"""監査課題の文章作成アシスタント"""

from loguru import logger

from src.llm_gateway.gateway import LLMGateway
from src.llm_gateway.prompts.issue_writing import CONSEQUENCE_PROMPT, REPHRASE_PROMPT, SYSTEM_PROMPT
from src.workflow.errors import ValidationError


class AssistantError(Exception):
    """文章生成サービスの失敗（API層で502に変換）"""

    code = "assistant_error"


class IssueWritingAssistant:
    """言い換え・影響文の生成"""

    def __init__(self, gateway: LLMGateway) -> None:
        self._gateway = gateway

    async def _complete(self, prompt: str, task: str) -> str:
        try:
            response = await self._gateway.generate(prompt=prompt, system_prompt=SYSTEM_PROMPT)
        except Exception as e:
            logger.error("文章生成失敗", task=task, error=str(e))
            raise AssistantError("文章生成サービスを利用できません") from e

        text = response.content.strip()
        if not text:
            raise AssistantError("文章生成サービスから空の応答が返されました")
        logger.info("文章生成完了", task=task, tokens=response.total_tokens)
        return text

    async def rephrase(self, text: str) -> str:
        if not text or not text.strip():
            raise ValidationError("書き直す文章を入力してください")
        return await self._complete(REPHRASE_PROMPT.format(text=text.strip()), "rephrase")

    async def generate_consequence(self, criteria: str, condition: str) -> str:
        if not criteria or not criteria.strip() or not condition or not condition.strip():
            raise ValidationError("基準と現状の両方を入力してください")
        prompt = CONSEQUENCE_PROMPT.format(criteria=criteria.strip(), condition=condition.strip())
        return await self._complete(prompt, "consequence")
