"""EventBus - 서비스/모듈 간 동기 이벤트 통신

규칙:
- 서비스는 다른 서비스를 직접 import하지 않는다 (EventBus 경유)
- 이벤트 데이터는 ID와 원시값만 담는다
- 한 턴 안에서 전파 깊이는 MAX_DEPTH 단계까지
- 같은 원인(source, event_type, key)에서 같은 이벤트를 두 번 발행하지 않는다
"""

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Set, Tuple

from src.core.logging import get_logger

logger = get_logger(__name__)

MAX_DEPTH = 5  # 한 턴 내 이벤트 전파 최대 깊이


@dataclass
class GameEvent:
    """이벤트 데이터 컨테이너

    Args:
        event_type: 이벤트 유형 (예: "conversation_started")
        data: 이벤트 데이터 (ID 위주)
        source: 발행한 서비스/모듈 이름
        key: 중복 판정 보조 키. 같은 source가 같은 유형을 여러 번
             발행해야 할 때(대화별 대사 전달 등) 구분용으로 채운다.
             비어 있으면 data["entity_id"]가 대신 쓰인다.
    """

    event_type: str
    data: Dict[str, Any]
    source: str
    key: str = ""

    _depth: int = field(default=0, repr=False)


EventHandler = Callable[[GameEvent], None]


class EventBus:
    """동기식 이벤트 버스

    사용 패턴:
        bus = EventBus()
        bus.subscribe("entity_combat_started", service.on_combat_started)
        bus.emit(GameEvent("entity_combat_started", {"entity_id": "guard_1"}, "combat"))
    """

    def __init__(self) -> None:
        self._handlers: Dict[str, List[EventHandler]] = defaultdict(list)
        self._current_depth: int = 0
        self._emitted_in_chain: Set[Tuple[str, str, str]] = set()

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        """이벤트 구독 등록"""
        self._handlers[event_type].append(handler)
        logger.debug("EventBus subscribe: %s -> %s", event_type, handler.__qualname__)

    def unsubscribe(self, event_type: str, handler: EventHandler) -> None:
        """이벤트 구독 해제. 미등록 핸들러는 경고만 남긴다."""
        handlers = self._handlers.get(event_type)
        if not handlers or handler not in handlers:
            logger.warning(
                "EventBus handler not registered: %s -> %s",
                event_type,
                handler.__qualname__,
            )
            return
        handlers.remove(handler)

    def emit(self, event: GameEvent) -> bool:
        """이벤트 발행. 핸들러를 등록 순서대로 동기 호출.

        Returns:
            전파되었으면 True, 깊이 초과/중복으로 차단되었으면 False.
            구독자가 없는 경우도 True (차단은 아님).
        """
        if self._current_depth >= MAX_DEPTH:
            logger.warning(
                "EventBus depth limit (%d) reached, dropping %s:%s",
                MAX_DEPTH,
                event.source,
                event.event_type,
            )
            return False

        chain_key = (event.source, event.event_type, self._chain_key(event))
        if chain_key in self._emitted_in_chain:
            logger.warning("EventBus duplicate blocked: %s", ":".join(chain_key))
            return False

        self._emitted_in_chain.add(chain_key)
        event._depth = self._current_depth

        handlers = list(self._handlers.get(event.event_type, []))
        if not handlers:
            return True

        self._current_depth += 1
        try:
            for handler in handlers:
                try:
                    handler(event)
                except Exception:
                    # 핸들러 하나의 실패가 나머지 구독자를 막지 않는다
                    logger.exception(
                        "EventBus handler error: %s (event=%s)",
                        handler.__qualname__,
                        event.event_type,
                    )
        finally:
            self._current_depth -= 1
        return True

    @staticmethod
    def _chain_key(event: GameEvent) -> str:
        """보조 키가 비어 있으면 대상 개체 ID로 구분"""
        if event.key:
            return event.key
        return str(event.data.get("entity_id", ""))

    def reset_chain(self) -> None:
        """턴 종료 시 호출. 중복 추적 초기화."""
        self._emitted_in_chain.clear()
        self._current_depth = 0

    def clear(self) -> None:
        """모든 구독 해제 (테스트/재시작용)"""
        self._handlers.clear()
        self.reset_chain()

    @property
    def handler_count(self) -> int:
        """등록된 총 핸들러 수"""
        return sum(len(h) for h in self._handlers.values())
