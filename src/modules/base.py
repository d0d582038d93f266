"""모듈 기반 인터페이스"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session


@dataclass
class GameContext:
    """한 턴 동안 모듈에 전달되는 컨텍스트

    extra: 모듈이 턴 결과를 남기는 슬롯 (예: extra["conversation"])
    """

    current_turn: int
    db_session: Optional[Session] = None
    extra: Dict[str, Any] = field(default_factory=dict)


class GameModule(ABC):
    """시뮬레이션 모듈 기반 클래스

    규칙:
    - 모듈끼리 직접 import하지 않고 EventBus로만 통신한다
    - Module → Core, Module → Service 의존은 허용
    """

    def __init__(self) -> None:
        self._enabled = False

    @property
    @abstractmethod
    def name(self) -> str:
        """ModuleManager 등록 키"""
        ...

    @property
    def dependencies(self) -> List[str]:
        """먼저 활성화되어 있어야 하는 모듈 이름"""
        return []

    @property
    def enabled(self) -> bool:
        return self._enabled

    @enabled.setter
    def enabled(self, value: bool) -> None:
        self._enabled = value

    @abstractmethod
    def on_enable(self) -> None:
        ...

    @abstractmethod
    def on_disable(self) -> None:
        ...

    @abstractmethod
    def on_turn(self, context: GameContext) -> None:
        """전체 턴 종료 시 1회 (모든 개체 턴 처리 이후)"""
        ...

    def on_entity_idle(self, entity_id: str, context: GameContext) -> bool:
        """개체가 자기 턴에 할 일이 없을 때. 행동을 소비했으면 True."""
        return False
