"""Conversation Service: 개체 간 잡담 오케스트레이터

유휴 개체의 대화 시작(상대 탐색 → 주제 선택 → 템플릿 조회 → 인스턴스 생성),
턴마다 활성 대화 진행, 전투/무효 참가자 축출, 쿨다운/바쁨 상태 관리.

규칙:
- 활성 인스턴스, 바쁨 집합, 개체/템플릿 쿨다운은 이 서비스만 수정한다
- 예상 가능한 실패(상대 없음, 템플릿 없음, 정원 초과, 쿨다운)는 False로 끝낸다
- 다른 서비스와는 EventBus로만 통신한다
"""

import random
from dataclasses import dataclass
from typing import Dict, List, Optional, Set, Tuple

from src.config import Settings
from src.core.conversation.instance import ConversationInstance
from src.core.conversation.models import (
    ConversationTemplate,
    ConversationTopic,
    DeliveredLine,
    DeliveryRecord,
    RelationshipDescriptor,
    RelationshipTone,
    Speaker,
    is_same_faction,
    outranks,
)
from src.core.conversation.registry import TemplateCooldownView, TemplateRegistry
from src.core.conversation.tokens import build_token_values, resolve_tokens
from src.core.conversation.tone import relationship_tone
from src.core.conversation.topics import (
    TopicContext,
    WeightedTopics,
    build_topic_weights,
    pick_weighted_topic,
    total_weight,
)
from src.core.conversation.world import DistrictState, TensionRecord, WorldStateProvider
from src.core.event_bus import EventBus, GameEvent
from src.core.event_types import EndReasons, EventTypes
from src.core.logging import get_logger
from src.services.delivery import DeliverySink

logger = get_logger(__name__)

EVENT_SOURCE = "conversation_service"


@dataclass(frozen=True)
class OrchestratorSettings:
    """오케스트레이터 조정값"""

    conversation_range: int = 4
    initiation_chance: float = 0.08
    min_turns_between_conversations: int = 8
    max_simultaneous_conversations: int = 4
    same_faction_partner_chance: float = 0.7
    cooldown_cleanup_chance: float = 0.1
    friendly_threshold: int = 25
    hostile_threshold: int = -25
    hostility_topic_weight: int = 0

    @classmethod
    def from_settings(cls, s: Settings) -> "OrchestratorSettings":
        return cls(
            conversation_range=s.CONVERSATION_RANGE,
            initiation_chance=s.INITIATION_CHANCE,
            min_turns_between_conversations=s.MIN_TURNS_BETWEEN_CONVERSATIONS,
            max_simultaneous_conversations=s.MAX_SIMULTANEOUS_CONVERSATIONS,
            same_faction_partner_chance=s.SAME_FACTION_PARTNER_CHANCE,
            cooldown_cleanup_chance=s.COOLDOWN_CLEANUP_CHANCE,
            friendly_threshold=s.FRIENDLY_THRESHOLD,
            hostile_threshold=s.HOSTILE_THRESHOLD,
            hostility_topic_weight=s.HOSTILITY_TOPIC_WEIGHT,
        )


def tile_distance(a: Tuple[int, int], b: Tuple[int, int]) -> int:
    """격자 거리 (맨해튼)"""
    return abs(a[0] - b[0]) + abs(a[1] - b[1])


class ConversationService(TemplateCooldownView):
    """개체 간 대화 생명주기 관리

    진입점: try_initiate(유휴 개체마다), tick(전체 턴마다 1회),
    interrupt(외부 전투/경계 전환), clear_all(재시작).
    """

    def __init__(
        self,
        world: WorldStateProvider,
        registry: TemplateRegistry,
        event_bus: EventBus,
        sink: DeliverySink,
        settings: Optional[OrchestratorSettings] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._world = world
        self._registry = registry
        self._bus = event_bus
        self._sink = sink
        self._settings = settings or OrchestratorSettings()
        self._rng = rng or random.Random()

        self._active: List[ConversationInstance] = []
        self._busy: Set[str] = set()
        self._last_conversation_turn: Dict[str, int] = {}
        self._template_last_fired: Dict[str, int] = {}
        self._display_name_cache: Dict[str, str] = {}
        self._next_conversation_id = 0

    @property
    def settings(self) -> OrchestratorSettings:
        return self._settings

    # ── 조회 ─────────────────────────────────────────────────

    def active_conversations(self) -> Tuple[ConversationInstance, ...]:
        return tuple(self._active)

    def is_in_conversation(self, entity_id: str) -> bool:
        return entity_id in self._busy

    def is_entity_off_cooldown(self, entity_id: str, current_turn: int) -> bool:
        last = self._last_conversation_turn.get(entity_id)
        if last is None:
            return True
        return current_turn - last >= self._settings.min_turns_between_conversations

    def is_template_cooldown_expired(
        self, template_id: str, current_turn: int, cooldown_turns: int
    ) -> bool:
        last = self._template_last_fired.get(template_id)
        if last is None or cooldown_turns <= 0:
            return True
        return current_turn - last >= cooldown_turns

    # ── 대화 시작 ────────────────────────────────────────────

    def try_initiate(self, entity_id: str) -> bool:
        """유휴 개체의 대화 시작 시도. 시작했으면 True.

        전제 조건을 순서대로 검사하고 하나라도 실패하면 상태를 바꾸지 않고 False.
        """
        s = self._settings
        if len(self._active) >= s.max_simultaneous_conversations:
            return False
        if entity_id in self._busy:
            return False

        current_turn = self._world.current_turn()
        if not self.is_entity_off_cooldown(entity_id, current_turn):
            return False
        if self._rng.random() > s.initiation_chance:
            return False
        if not self._world.is_conversational(entity_id):
            return False

        faction_id = self._world.get_faction_id(entity_id)
        if not faction_id or not self._world.is_entity_valid(entity_id):
            return False
        if self._world.is_hostile_alert(entity_id):
            return False

        partner_id = self._find_partner(entity_id, faction_id)
        if partner_id is None:
            logger.debug("No conversation partner for %s", entity_id)
            return False

        initiator = self._describe(entity_id)
        responder = self._describe(partner_id)
        district = self._world.get_district_for(entity_id)

        weights = self.build_topic_weights(initiator, responder, district, current_turn)
        topic = self._roll_topic(weights)

        template = self._registry.find_template(
            initiator,
            responder,
            topic,
            district,
            current_turn=current_turn,
            cooldowns=self,
        )
        if template is None:
            logger.debug(
                "No eligible template: %s -> %s topic=%s",
                entity_id,
                partner_id,
                topic.value,
            )
            return False

        instance = self._create_instance(template, initiator, responder, current_turn)
        self._active.append(instance)
        self._busy.add(entity_id)
        self._busy.add(partner_id)
        self._last_conversation_turn[entity_id] = current_turn
        self._last_conversation_turn[partner_id] = current_turn
        self._template_last_fired[template.template_id] = current_turn

        logger.info(
            "Conversation %d started: %s -> %s topic=%s template=%s",
            instance.conversation_id,
            entity_id,
            partner_id,
            template.topic.value,
            template.template_id,
        )
        self._bus.emit(
            GameEvent(
                event_type=EventTypes.CONVERSATION_STARTED,
                data={
                    "conversation_id": instance.conversation_id,
                    "initiator_id": entity_id,
                    "responder_id": partner_id,
                    "topic": template.topic.value,
                    "template_id": template.template_id,
                    "turn": current_turn,
                },
                source=EVENT_SOURCE,
                key=str(instance.conversation_id),
            )
        )

        # 첫 대사는 생성 턴에 즉시 전달
        first = instance.step()
        if first is not None:
            try:
                self._deliver(instance, first, current_turn)
            except Exception:
                self._end(instance, EndReasons.DELIVERY_FAILED)
                raise
        if instance.is_complete:
            self._end(instance, EndReasons.COMPLETED)
        return True

    def _describe(self, entity_id: str) -> RelationshipDescriptor:
        return RelationshipDescriptor(
            entity_id=entity_id,
            faction_id=self._world.get_faction_id(entity_id),
            rank_id=self._world.get_rank_id(entity_id),
        )

    def _find_partner(self, entity_id: str, faction_id: str) -> Optional[str]:
        """범위 내 대화 상대 탐색. 같은 세력 우선, 그룹 안에서는 균등 선택."""
        origin = self._world.get_position(entity_id)
        if origin is None:
            return None

        same: List[str] = []
        cross: List[str] = []
        for other_id in self._world.active_entities():
            if other_id == entity_id or other_id in self._busy:
                continue
            if not self._world.is_entity_valid(other_id):
                continue
            other_faction = self._world.get_faction_id(other_id)
            if not other_faction:
                continue
            if not self._world.is_conversational(other_id):
                continue
            pos = self._world.get_position(other_id)
            if pos is None or tile_distance(origin, pos) > self._settings.conversation_range:
                continue
            (same if other_faction == faction_id else cross).append(other_id)

        if same and cross:
            group = same if self._rng.random() < self._settings.same_faction_partner_chance else cross
        else:
            group = same or cross
        if not group:
            return None
        return self._rng.choice(group)

    # ── 주제 선택 ────────────────────────────────────────────

    def build_topic_weights(
        self,
        initiator: RelationshipDescriptor,
        responder: RelationshipDescriptor,
        district: Optional[DistrictState],
        current_turn: int,
    ) -> WeightedTopics:
        """월드에서 주제 맥락을 모아 가중치 분포 생성"""
        same_faction = is_same_faction(initiator, responder)

        inter_rep = 0
        trade_status = None
        tension = TensionRecord()
        if not same_faction and initiator.has_faction and responder.has_faction:
            inter_rep = self._world.get_inter_rep(initiator.faction_id, responder.faction_id)
            relation = self._world.get_trade_relation(initiator.faction_id, responder.faction_id)
            if relation is not None:
                trade_status = relation.status
            district_id = district.district_id if district is not None else ""
            tension = self._world.get_tension(
                initiator.faction_id, responder.faction_id, district_id
            )

        ctx = TopicContext(
            same_faction=same_faction,
            initiator_outranks=outranks(initiator, responder),
            inter_rep=inter_rep,
            trade_status=trade_status,
            has_district=district is not None,
            district_contested=district.is_contested if district is not None else False,
            district_prosperity=district.prosperity if district is not None else 1.0,
            initiator_heat=(
                district.heat_of(initiator.faction_id) if district is not None else 0.0
            ),
            tension=tension,
            current_turn=current_turn,
        )
        return build_topic_weights(
            ctx,
            friendly_threshold=self._settings.friendly_threshold,
            hostility_topic_weight=self._settings.hostility_topic_weight,
        )

    def _roll_topic(self, weights: WeightedTopics) -> ConversationTopic:
        total = total_weight(weights)
        if total <= 0:
            return ConversationTopic.GREETING
        return pick_weighted_topic(weights, self._rng.randrange(total))

    # ── 인스턴스 생성 ────────────────────────────────────────

    def _create_instance(
        self,
        template: ConversationTemplate,
        initiator: RelationshipDescriptor,
        responder: RelationshipDescriptor,
        current_turn: int,
    ) -> ConversationInstance:
        """토큰을 발화자 기준으로 한 번만 치환해 인스턴스 생성"""
        initiator_values = build_token_values(
            initiator, responder, self._world.get_district_for(initiator.entity_id), self._world
        )
        responder_values = build_token_values(
            responder, initiator, self._world.get_district_for(responder.entity_id), self._world
        )
        resolved = tuple(
            resolve_tokens(
                line.text,
                initiator_values if line.speaker == Speaker.INITIATOR else responder_values,
            )
            for line in template.lines
        )

        conversation_id = self._next_conversation_id
        self._next_conversation_id += 1
        return ConversationInstance(
            conversation_id=conversation_id,
            template=template,
            initiator=initiator,
            responder=responder,
            resolved_texts=resolved,
            current_line_index=0,
            turns_until_next_line=0,
            created_on_turn=current_turn,
        )

    # ── 턴 진행 ──────────────────────────────────────────────

    def tick(self, current_turn: int) -> int:
        """활성 대화를 한 턴 진행. 반환: 이번 틱에 전달된 대사 수."""
        delivered_count = 0
        for instance in reversed(list(self._active)):
            if instance.created_on_turn == current_turn:
                continue

            if not self._world.is_entity_valid(
                instance.initiator_id
            ) or not self._world.is_entity_valid(instance.responder_id):
                self._end(instance, EndReasons.PARTICIPANT_INVALID)
                continue

            if self._world.is_in_combat(instance.initiator_id) or self._world.is_in_combat(
                instance.responder_id
            ):
                self._end(instance, EndReasons.COMBAT)
                continue

            line = instance.step()
            if line is not None:
                self._deliver(instance, line, current_turn)
                delivered_count += 1

            if instance.is_complete:
                self._end(instance, EndReasons.COMPLETED)

        self._maybe_purge_cooldowns()
        return delivered_count

    def _maybe_purge_cooldowns(self) -> None:
        """낮은 확률로 사라진 개체의 쿨다운/표시 이름 캐시 정리"""
        if self._rng.random() > self._settings.cooldown_cleanup_chance:
            return
        stale = [
            entity_id
            for entity_id in self._last_conversation_turn
            if not self._world.is_entity_valid(entity_id)
        ]
        for entity_id in stale:
            del self._last_conversation_turn[entity_id]
            self._display_name_cache.pop(entity_id, None)
        if stale:
            logger.debug("Purged %d stale conversation cooldowns", len(stale))

    # ── 중단 / 초기화 ────────────────────────────────────────

    def interrupt(self, entity_id: str) -> int:
        """개체가 참여한 모든 대화를 즉시 종료. 반환: 종료된 대화 수.

        대화 중이 아니면 아무것도 하지 않는다.
        """
        if entity_id not in self._busy:
            return 0
        ended = 0
        for instance in reversed(list(self._active)):
            if instance.involves(entity_id):
                self._end(instance, EndReasons.INTERRUPTED)
                ended += 1
        return ended

    def on_combat_event(self, event: GameEvent) -> None:
        """entity_combat_started / entity_alert_hostile 핸들러"""
        entity_id = event.data.get("entity_id")
        if not entity_id:
            logger.warning("%s event without entity_id", event.event_type)
            return
        ended = self.interrupt(entity_id)
        if ended:
            logger.info(
                "Interrupted %d conversation(s) of %s on %s",
                ended,
                entity_id,
                event.event_type,
            )

    def clear_all(self) -> None:
        """모든 대화/바쁨/쿨다운/캐시 초기화 (재시작용)"""
        for instance in reversed(list(self._active)):
            self._end(instance, EndReasons.CLEARED)
        self._active.clear()
        self._busy.clear()
        self._last_conversation_turn.clear()
        self._template_last_fired.clear()
        self._display_name_cache.clear()
        logger.info("Conversation state cleared")

    def _end(self, instance: ConversationInstance, reason: str) -> None:
        if instance in self._active:
            self._active.remove(instance)
        self._busy.discard(instance.initiator_id)
        self._busy.discard(instance.responder_id)
        logger.debug("Conversation %d ended: %s", instance.conversation_id, reason)
        self._bus.emit(
            GameEvent(
                event_type=EventTypes.CONVERSATION_ENDED,
                data={
                    "conversation_id": instance.conversation_id,
                    "initiator_id": instance.initiator_id,
                    "responder_id": instance.responder_id,
                    "reason": reason,
                    "lines_delivered": instance.current_line_index,
                },
                source=EVENT_SOURCE,
                key=str(instance.conversation_id),
            )
        )

    # ── 전달 ─────────────────────────────────────────────────

    def _tone(self, instance: ConversationInstance) -> RelationshipTone:
        a = instance.initiator
        b = instance.responder
        inter_rep = 0
        if a.has_faction and b.has_faction and not is_same_faction(a, b):
            inter_rep = self._world.get_inter_rep(a.faction_id, b.faction_id)
        return relationship_tone(
            a,
            b,
            inter_rep,
            friendly_threshold=self._settings.friendly_threshold,
            hostile_threshold=self._settings.hostile_threshold,
        )

    def display_name(self, entity_id: str) -> str:
        """"{세력 표시 이름} {계급}", 세력이 없으면 개체 이름. 개체별 캐시."""
        cached = self._display_name_cache.get(entity_id)
        if cached is not None:
            return cached

        name = self._world.get_entity_name(entity_id)
        faction_id = self._world.get_faction_id(entity_id)
        if faction_id:
            faction_name = self._world.get_faction_display_name(faction_id)
            if faction_name:
                rank_id = self._world.get_rank_id(entity_id)
                name = f"{faction_name} {rank_id}" if rank_id else faction_name

        self._display_name_cache[entity_id] = name
        return name

    def _deliver(
        self, instance: ConversationInstance, line: DeliveredLine, current_turn: int
    ) -> None:
        record = DeliveryRecord(
            conversation_id=instance.conversation_id,
            template_id=instance.template.template_id,
            topic=instance.template.topic.value,
            line_index=line.line_index,
            speaker_id=line.speaker_id,
            speaker_name=self.display_name(line.speaker_id),
            listener_id=line.listener_id,
            listener_name=self.display_name(line.listener_id),
            text=line.text,
            tone=self._tone(instance),
            turn=current_turn,
        )
        self._sink.deliver(record)
        self._bus.emit(
            GameEvent(
                event_type=EventTypes.CONVERSATION_LINE_DELIVERED,
                data={
                    "conversation_id": record.conversation_id,
                    "line_index": record.line_index,
                    "speaker_id": record.speaker_id,
                    "listener_id": record.listener_id,
                    "text": record.text,
                    "tone": record.tone.value,
                    "turn": current_turn,
                },
                source=EVENT_SOURCE,
                key=f"{record.conversation_id}:{record.line_index}",
            )
        )
