"""ConversationModule - 개체 간 잡담 모듈 (GameModule 래핑)

ConversationService를 래핑하여 ModuleManager 생명주기에 통합.
전투 시작/적대 경계 이벤트를 구독해 해당 개체의 대화를 즉시 끊는다.
"""

import random
from typing import Optional

from src.core.conversation.registry import TemplateRegistry
from src.core.conversation.world import WorldStateProvider
from src.core.event_bus import EventBus
from src.core.event_types import EventTypes
from src.core.logging import get_logger
from src.modules.base import GameContext, GameModule
from src.services.conversation_service import ConversationService, OrchestratorSettings
from src.services.delivery import DeliverySink

logger = get_logger(__name__)

_INTERRUPT_EVENTS = (
    EventTypes.ENTITY_COMBAT_STARTED,
    EventTypes.ENTITY_ALERT_HOSTILE,
)


class ConversationModule(GameModule):
    """잡담 시스템 모듈

    담당:
    - 유휴 개체 대화 시작 (on_entity_idle)
    - 턴 종료 시 활성 대화 진행 (on_turn)
    - 전투/경계 이벤트 시 대화 중단

    의존성: 없음
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
        super().__init__()
        self._world = world
        self._registry = registry
        self._bus = event_bus
        self._sink = sink
        self._settings = settings
        self._rng = rng
        self._service: Optional[ConversationService] = None

    @property
    def name(self) -> str:
        return "conversation"

    @property
    def service(self) -> Optional[ConversationService]:
        """활성 상태일 때만 서비스 반환"""
        return self._service

    def on_enable(self) -> None:
        """모듈 활성화: ConversationService 생성 + EventBus 구독"""
        self._service = ConversationService(
            world=self._world,
            registry=self._registry,
            event_bus=self._bus,
            sink=self._sink,
            settings=self._settings,
            rng=self._rng,
        )
        for event_type in _INTERRUPT_EVENTS:
            self._bus.subscribe(event_type, self._service.on_combat_event)
        logger.info("conversation 모듈 활성화 (templates=%d)", self._registry.count())

    def on_disable(self) -> None:
        """모듈 비활성화: 진행 중 대화 정리 + EventBus 구독 해제"""
        if self._service is not None:
            for event_type in _INTERRUPT_EVENTS:
                self._bus.unsubscribe(event_type, self._service.on_combat_event)
            self._service.clear_all()
        self._service = None
        logger.info("conversation 모듈 비활성화")

    def on_turn(self, context: GameContext) -> None:
        """모든 개체 턴 처리 후 활성 대화 1턴 진행"""
        if self._service is None:
            return
        delivered = self._service.tick(context.current_turn)
        context.extra["conversation"] = {
            "active": len(self._service.active_conversations()),
            "delivered": delivered,
        }

    def on_entity_idle(self, entity_id: str, context: GameContext) -> bool:
        """유휴 개체에게 대화 시작 기회 제공"""
        if self._service is None:
            return False
        return self._service.try_initiate(entity_id)
