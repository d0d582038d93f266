"""API request/response schemas."""

from typing import Optional

from pydantic import BaseModel, Field


# === Request Schemas ===


class TurnRequest(BaseModel):
    """턴 진행 요청"""

    idle_entity_ids: Optional[list[str]] = Field(
        default=None,
        description="이번 턴 유휴 개체 ID 목록. 비우면 대화 중이 아닌 모든 활성 개체",
    )


# === Response Schemas ===


class ConversationInfo(BaseModel):
    """활성 대화 정보"""

    conversation_id: int
    template_id: str
    topic: str
    initiator_id: str
    responder_id: str
    current_line_index: int
    line_count: int
    turns_until_next_line: int
    created_on_turn: int


class LineLogEntry(BaseModel):
    """전달된 대사 1줄"""

    conversation_id: int
    template_id: str
    topic: str
    line_index: int
    speaker_id: str
    speaker_name: str
    listener_id: str
    listener_name: str
    text: str
    tone: str
    turn: int


class TurnResponse(BaseModel):
    """턴 진행 결과"""

    turn: int
    initiated_by: list[str] = []
    active_count: int
    lines: list[LineLogEntry] = []


class InterruptResponse(BaseModel):
    """대화 중단 결과"""

    entity_id: str
    ended: int
