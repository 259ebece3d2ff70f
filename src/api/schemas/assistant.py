"""課題記述アシスタントスキーマ"""

from pydantic import BaseModel


class RephraseRequest(BaseModel):
    text: str


class ConsequenceRequest(BaseModel):
    criteria: str
    condition: str


class AssistantResponse(BaseModel):
    text: str
