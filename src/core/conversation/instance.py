"""진행 중인 대화 1건의 상태 머신

Pending(생성, 첫 대사는 생성 시 전달) → Advancing(대기 턴 소모) → Complete.
오케스트레이터의 턴 틱으로만 진행하며 I/O는 하지 않는다.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Tuple

from .models import (
    ConversationTemplate,
    DeliveredLine,
    RelationshipDescriptor,
    Speaker,
)


@dataclass
class ConversationInstance:
    """활성 대화 인스턴스 (저장하지 않음)

    resolved_texts는 lines와 평행한 배열. 생성 시 한 번만 계산되고
    이후 월드 상태가 바뀌어도 다시 계산하지 않는다.
    """

    conversation_id: int
    template: ConversationTemplate
    initiator: RelationshipDescriptor
    responder: RelationshipDescriptor
    resolved_texts: Tuple[str, ...] = field(default_factory=tuple)

    current_line_index: int = 0
    turns_until_next_line: int = 0
    is_complete: bool = False
    created_on_turn: int = -1

    @property
    def initiator_id(self) -> str:
        return self.initiator.entity_id

    @property
    def responder_id(self) -> str:
        return self.responder.entity_id

    @property
    def line_count(self) -> int:
        return len(self.template.lines)

    def involves(self, entity_id: str) -> bool:
        return entity_id in (self.initiator_id, self.responder_id)

    # ── 현재 대사 조회 ────────────────────────────────────────

    def _speaker_of(self, index: int) -> Speaker:
        return self.template.lines[index].speaker

    def current_speaker_id(self) -> Optional[str]:
        if self.current_line_index >= self.line_count:
            return None
        if self._speaker_of(self.current_line_index) == Speaker.INITIATOR:
            return self.initiator_id
        return self.responder_id

    def current_listener_id(self) -> Optional[str]:
        if self.current_line_index >= self.line_count:
            return None
        if self._speaker_of(self.current_line_index) == Speaker.INITIATOR:
            return self.responder_id
        return self.initiator_id

    def current_text(self) -> Optional[str]:
        if self.current_line_index >= self.line_count:
            return None
        if self.current_line_index < len(self.resolved_texts):
            return self.resolved_texts[self.current_line_index]
        return self.template.lines[self.current_line_index].text

    # ── 진행 ─────────────────────────────────────────────────

    def step(self) -> Optional[DeliveredLine]:
        """한 턴 진행. 전달할 대사가 있으면 DeliveredLine, 아니면 None.

        - 완료 상태이거나 대사가 없는 템플릿: 완료 처리 후 None
        - 대기 턴이 남아 있으면 1 감소 후 None
        - 대기가 끝나면 현재 대사 전달, 다음 대사 대기 턴은 max(1, turn_delay)
        """
        if self.is_complete:
            return None
        if self.template.is_malformed or self.current_line_index >= self.line_count:
            self.is_complete = True
            return None

        self.turns_until_next_line -= 1
        if self.turns_until_next_line > 0:
            return None

        delivered = DeliveredLine(
            line_index=self.current_line_index,
            speaker_id=self.current_speaker_id() or "",
            listener_id=self.current_listener_id() or "",
            text=self.current_text() or "",
        )

        self.current_line_index += 1
        if self.current_line_index < self.line_count:
            next_delay = self.template.lines[self.current_line_index].turn_delay
            self.turns_until_next_line = max(1, next_delay)
        else:
            self.is_complete = True
        return delivered
