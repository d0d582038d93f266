"""대화 템플릿 저장소: JSON 로드 + 주제별 인덱스 + 적격 템플릿 선택"""

from __future__ import annotations

import json
import logging
import random
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterable, Optional

from .models import (
    ConversationLine,
    ConversationTemplate,
    ConversationTopic,
    RelationshipDescriptor,
    Speaker,
    is_same_faction,
    outranks,
)
from .predicates import PredicateContext, get_predicate
from .world import DistrictState, WorldStateProvider

logger = logging.getLogger(__name__)


class TemplateCooldownView(ABC):
    """템플릿 쿨다운 조회 (읽기 전용). 기록은 오케스트레이터가 소유한다."""

    @abstractmethod
    def is_template_cooldown_expired(
        self, template_id: str, current_turn: int, cooldown_turns: int
    ) -> bool:
        ...


class TemplateRegistry:
    """
    대화 템플릿 저장소.
    콘텐츠 로드 후에는 읽기 위주. find_template은 아무것도 수정하지 않는다.
    """

    def __init__(
        self,
        world: WorldStateProvider,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._world = world
        self._rng = rng or random.Random()
        self._by_topic: dict[ConversationTopic, list[ConversationTemplate]] = {}
        self._by_id: dict[str, ConversationTemplate] = {}

    # ── 등록 ─────────────────────────────────────────────────

    def register(self, template: ConversationTemplate) -> None:
        """템플릿 등록. 같은 template_id가 있으면 경고 후 교체."""
        existing = self._by_id.get(template.template_id)
        if existing is not None:
            logger.warning("Overwriting existing template: %s", template.template_id)
            self._by_topic[existing.topic].remove(existing)
        self._by_id[template.template_id] = template
        self._by_topic.setdefault(template.topic, []).append(template)

    def load_templates(self, templates: Iterable[ConversationTemplate]) -> int:
        """메모리 목록 일괄 등록. 반환: 등록 수량."""
        count = 0
        for template in templates:
            self.register(template)
            count += 1
        return count

    def load_from_json(self, path: str | Path) -> int:
        """conversation_templates.json 로드. 반환: 로드된 수량.

        잘못된 레코드(필수 키 누락, 알 수 없는 주제/화자/판정 함수, 빈 대사)는
        경고 로그 후 건너뛴다.
        """
        path = Path(path)
        with path.open("r", encoding="utf-8") as f:
            raw_list: list[dict] = json.load(f)

        count = 0
        for raw in raw_list:
            try:
                template = _template_from_dict(raw)
            except (KeyError, ValueError, TypeError) as e:
                logger.warning(
                    "Failed to load conversation template: %s: %s",
                    raw.get("id", "?"),
                    e,
                )
                continue
            self.register(template)
            count += 1

        logger.info("Loaded %d conversation templates from %s", count, path)
        return count

    # ── 조회 ─────────────────────────────────────────────────

    def get(self, template_id: str) -> Optional[ConversationTemplate]:
        return self._by_id.get(template_id)

    def get_by_topic(self, topic: ConversationTopic) -> list[ConversationTemplate]:
        return list(self._by_topic.get(topic, []))

    def topics(self) -> list[ConversationTopic]:
        """템플릿이 하나 이상 있는 주제 목록"""
        return [t for t, bucket in self._by_topic.items() if bucket]

    def count(self) -> int:
        return len(self._by_id)

    # ── 필터 ─────────────────────────────────────────────────

    def eligible_templates(
        self,
        initiator: RelationshipDescriptor,
        responder: RelationshipDescriptor,
        topic: ConversationTopic,
        district: Optional[DistrictState] = None,
        *,
        current_turn: int,
        cooldowns: TemplateCooldownView,
    ) -> list[ConversationTemplate]:
        """주제 버킷에서 모든 제약을 통과한 템플릿 목록"""
        bucket = self._by_topic.get(topic)
        if not bucket:
            return []

        same_faction = is_same_faction(initiator, responder)
        inter_rep = 0
        if not same_faction and initiator.has_faction and responder.has_faction:
            inter_rep = self._world.get_inter_rep(
                initiator.faction_id, responder.faction_id
            )

        ctx = PredicateContext(
            initiator=initiator,
            responder=responder,
            district=district,
            world=self._world,
            current_turn=current_turn,
        )

        result: list[ConversationTemplate] = []
        for template in bucket:
            if template.same_faction_only and not same_faction:
                continue
            if template.cross_faction_only and same_faction:
                continue
            if not same_faction and not (
                template.min_inter_rep <= inter_rep <= template.max_inter_rep
            ):
                continue
            if (
                template.require_rank_difference
                and same_faction
                and not outranks(initiator, responder)
            ):
                continue
            if (
                template.required_initiator_faction_id
                and template.required_initiator_faction_id != initiator.faction_id
            ):
                continue
            if template.predicate is not None and not template.predicate(ctx):
                continue
            if template.cooldown_turns > 0 and not cooldowns.is_template_cooldown_expired(
                template.template_id, current_turn, template.cooldown_turns
            ):
                continue
            result.append(template)
        return result

    def find_template(
        self,
        initiator: RelationshipDescriptor,
        responder: RelationshipDescriptor,
        topic: ConversationTopic,
        district: Optional[DistrictState] = None,
        *,
        current_turn: int,
        cooldowns: TemplateCooldownView,
    ) -> Optional[ConversationTemplate]:
        """적격 템플릿 중 하나를 균등 확률로 선택. 없으면 None."""
        candidates = self.eligible_templates(
            initiator,
            responder,
            topic,
            district,
            current_turn=current_turn,
            cooldowns=cooldowns,
        )
        if not candidates:
            return None
        return self._rng.choice(candidates)


def _template_from_dict(raw: dict) -> ConversationTemplate:
    """JSON 객체 → ConversationTemplate. 잘못된 값은 KeyError/ValueError."""
    lines = tuple(
        ConversationLine(
            speaker=Speaker(line["speaker"]),
            text=str(line["text"]),
            turn_delay=int(line.get("turn_delay", 1)),
        )
        for line in raw["lines"]
    )
    if not lines:
        raise ValueError("template has no lines")
    if any(line.turn_delay < 0 for line in lines):
        raise ValueError("turn_delay must be >= 0")

    predicate_name = raw.get("predicate")
    predicate = None
    if predicate_name:
        predicate = get_predicate(predicate_name)
        if predicate is None:
            raise ValueError(f"unknown predicate: {predicate_name}")

    return ConversationTemplate(
        template_id=raw["id"],
        topic=ConversationTopic(raw["topic"]),
        lines=lines,
        same_faction_only=bool(raw.get("same_faction", False)),
        cross_faction_only=bool(raw.get("cross_faction", False)),
        min_inter_rep=int(raw.get("min_rep", -100)),
        max_inter_rep=int(raw.get("max_rep", 100)),
        require_rank_difference=bool(raw.get("require_rank_difference", False)),
        required_initiator_faction_id=raw.get("required_initiator_faction_id"),
        predicate=predicate,
        predicate_name=predicate_name,
        cooldown_turns=int(raw.get("cooldown_turns", 0)),
    )
