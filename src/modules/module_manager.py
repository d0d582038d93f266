"""모듈 관리자 - 등록, 활성화/비활성화, 의존성 검증, 턴/유휴 전파

턴 진행 순서 (호출자 책임):
1. 유휴 개체마다 process_entity_idle()
2. 전체 턴 종료 시 process_turn() 1회 → EventBus 체인 초기화
"""

from typing import Dict, List, Optional

from src.core.event_bus import EventBus
from src.core.logging import get_logger
from src.modules.base import GameContext, GameModule

logger = get_logger(__name__)


class ModuleManager:
    """모듈 토글 및 생명주기 관리

    모듈은 등록 순서대로 유휴/턴 처리를 받는다.
    """

    def __init__(self, event_bus: Optional[EventBus] = None) -> None:
        self._modules: Dict[str, GameModule] = {}
        self._event_bus: EventBus = event_bus or EventBus()

    @property
    def event_bus(self) -> EventBus:
        """모듈이 이벤트 구독/발행에 사용할 EventBus"""
        return self._event_bus

    @property
    def modules(self) -> Dict[str, GameModule]:
        """등록된 모든 모듈 (복사본)"""
        return dict(self._modules)

    def get(self, name: str) -> Optional[GameModule]:
        return self._modules.get(name)

    def get_enabled_modules(self) -> List[GameModule]:
        return [m for m in self._modules.values() if m.enabled]

    def is_enabled(self, name: str) -> bool:
        module = self._modules.get(name)
        return module is not None and module.enabled

    # ── 등록 / 토글 ──────────────────────────────────────────

    def register(self, module: GameModule) -> None:
        """모듈 등록. 같은 이름이면 경고 후 교체."""
        if module.name in self._modules:
            logger.warning("Module replaced: %s", module.name)
        self._modules[module.name] = module
        logger.info("Module registered: %s", module.name)

    def enable(self, name: str) -> bool:
        """모듈 활성화. 미등록이거나 의존성이 꺼져 있으면 False."""
        module = self._modules.get(name)
        if module is None:
            logger.error("Module not registered: %s", name)
            return False
        if module.enabled:
            return True

        missing = self._unmet_dependency(module)
        if missing is not None:
            logger.warning("Cannot enable %s: dependency %s not enabled", name, missing)
            return False

        module.on_enable()
        module.enabled = True
        logger.info("Module enabled: %s", name)
        return True

    def disable(self, name: str) -> bool:
        """모듈 비활성화. 의존하는 모듈부터 연쇄로 끈다. 미등록이면 False."""
        module = self._modules.get(name)
        if module is None:
            logger.error("Module not registered: %s", name)
            return False
        if not module.enabled:
            return True

        for dependent in self._enabled_dependents(name):
            logger.info("Cascade disable: %s (depends on %s)", dependent.name, name)
            self.disable(dependent.name)

        module.on_disable()
        module.enabled = False
        logger.info("Module disabled: %s", name)
        return True

    def _unmet_dependency(self, module: GameModule) -> Optional[str]:
        for dep in module.dependencies:
            if not self.is_enabled(dep):
                return dep
        return None

    def _enabled_dependents(self, name: str) -> List[GameModule]:
        return [
            m for m in self._modules.values() if m.enabled and name in m.dependencies
        ]

    # ── 턴 전파 ──────────────────────────────────────────────

    def process_entity_idle(self, entity_id: str, context: GameContext) -> bool:
        """유휴 개체를 활성 모듈에 순서대로 제안. 처음 소비한 모듈에서 멈춘다."""
        for module in self.get_enabled_modules():
            if module.on_entity_idle(entity_id, context):
                return True
        return False

    def process_turn(self, context: GameContext) -> None:
        """활성 모듈 on_turn 순차 호출 후 이벤트 체인 초기화"""
        for module in self.get_enabled_modules():
            module.on_turn(context)
        self._event_bus.reset_chain()
