"""대화 판정이 읽는 월드 상태 스냅샷 타입

지구/교역/긴장도 등 외부 시뮬레이션이 소유하는 상태를
읽기 전용 값으로 표현한다. 대화 코어는 이 값을 절대 수정하지 않는다.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple


@dataclass
class DistrictState:
    """지구 상태

    control/heat/loss_streak은 faction_id 키 딕셔너리.
    contested_days == 0 이면 비분쟁 지구.
    """

    district_id: str
    display_name: str
    prosperity: float = 0.5  # 0.0 ~ 1.0
    control: Dict[str, float] = field(default_factory=dict)
    heat: Dict[str, float] = field(default_factory=dict)
    contested_days: int = 0
    item_supply: Dict[str, float] = field(default_factory=dict)
    loss_streak: Dict[str, int] = field(default_factory=dict)

    @property
    def is_contested(self) -> bool:
        return self.contested_days > 0

    def control_of(self, faction_id: Optional[str]) -> Optional[float]:
        """세력 지배율. 측정값이 없으면 None."""
        if not faction_id:
            return None
        return self.control.get(faction_id)

    def heat_of(self, faction_id: Optional[str]) -> float:
        if not faction_id:
            return 0.0
        return self.heat.get(faction_id, 0.0)


class TradeStatus(str, Enum):
    """세력 간 교역 상태"""

    OPEN = "open"
    RESTRICTED = "restricted"
    EMBARGO = "embargo"
    EXCLUSIVE = "exclusive"
    ALLIANCE = "alliance"


@dataclass(frozen=True)
class TradeRelation:
    """양자 교역 관계"""

    source_faction_id: str
    target_faction_id: str
    status: TradeStatus = TradeStatus.OPEN
    tariff_rate: float = 0.0


class EscalationStage(IntEnum):
    """세력 간 긴장 단계 (순서 비교 가능)"""

    CALM = 0
    UNEASY = 1
    TENSE = 2
    VOLATILE = 3
    EXPLOSIVE = 4


@dataclass(frozen=True)
class TensionRecord:
    """지구 단위 세력쌍 긴장 기록"""

    stage: EscalationStage = EscalationStage.CALM
    incident_count: int = 0
    last_incident_turn: int = 0


@dataclass(frozen=True)
class WorldEvents:
    """최근 월드 사건 요약 (판정 함수가 참조)

    day 값은 경제 일 단위, turn 값은 게임 턴 단위.
    """

    current_day: int = 0

    last_reinforcement_district_id: Optional[str] = None
    last_reinforcement_day: int = -999

    last_raid_district_id: Optional[str] = None
    last_raid_faction_id: Optional[str] = None
    last_raid_day: int = -999

    last_skirmish_district_id: Optional[str] = None
    last_skirmish_attacker_faction_id: Optional[str] = None

    truce_district_ids: FrozenSet[str] = frozenset()
    active_quest_ids: FrozenSet[str] = frozenset()


class WorldStateProvider(ABC):
    """대화 엔진이 조회하는 외부 시뮬레이션 상태 (읽기 전용)

    턴, 세력 소속, 평판, 지구, 교역, 긴장도, 전투/경계 상태를 한 인터페이스로 묶는다.
    구현체는 어떤 메서드에서도 예외를 던지지 않고 안전한 기본값을 돌려줘야 한다.
    """

    # ── 턴 ───────────────────────────────────────────────────

    @abstractmethod
    def current_turn(self) -> int:
        """현재 게임 턴 (단조 증가)"""
        ...

    # ── 개체 / 세력 소속 ──────────────────────────────────────

    @abstractmethod
    def active_entities(self) -> Iterable[str]:
        """현재 활성 상태인 세력 소속 개체 ID 목록"""
        ...

    @abstractmethod
    def is_entity_valid(self, entity_id: str) -> bool:
        """개체가 아직 존재하고 활성 상태인가"""
        ...

    @abstractmethod
    def get_faction_id(self, entity_id: str) -> Optional[str]:
        ...

    @abstractmethod
    def get_rank_id(self, entity_id: str) -> Optional[str]:
        ...

    @abstractmethod
    def get_position(self, entity_id: str) -> Optional[Tuple[int, int]]:
        ...

    @abstractmethod
    def get_entity_name(self, entity_id: str) -> str:
        ...

    @abstractmethod
    def get_faction_display_name(self, faction_id: str) -> Optional[str]:
        ...

    @abstractmethod
    def is_conversational(self, entity_id: str) -> bool:
        """잡담 참여 가능 역할인가 (상인 등은 False)"""
        ...

    # ── 전투 / 경계 ──────────────────────────────────────────

    @abstractmethod
    def is_hostile_alert(self, entity_id: str) -> bool:
        ...

    @abstractmethod
    def has_combat_engagement(self, entity_id: str) -> bool:
        """적대 대상 보유 또는 추격/공격 상태"""
        ...

    def is_in_combat(self, entity_id: str) -> bool:
        return self.is_hostile_alert(entity_id) or self.has_combat_engagement(entity_id)

    # ── 평판 ─────────────────────────────────────────────────

    @abstractmethod
    def get_inter_rep(self, source_faction_id: str, target_faction_id: str) -> int:
        ...

    # ── 지구 ─────────────────────────────────────────────────

    @abstractmethod
    def get_district_at(self, x: int, y: int) -> Optional[DistrictState]:
        ...

    @abstractmethod
    def all_districts(self) -> List[DistrictState]:
        ...

    def get_district_for(self, entity_id: str) -> Optional[DistrictState]:
        """개체 위치의 지구. 위치를 모르면 None."""
        pos = self.get_position(entity_id)
        if pos is None:
            return None
        return self.get_district_at(pos[0], pos[1])

    # ── 교역 ─────────────────────────────────────────────────

    @abstractmethod
    def get_trade_relation(
        self, source_faction_id: str, target_faction_id: str
    ) -> Optional[TradeRelation]:
        ...

    @abstractmethod
    def all_trade_relations(self) -> List[TradeRelation]:
        ...

    # ── 긴장도 ───────────────────────────────────────────────

    @abstractmethod
    def get_tension(
        self, faction_a: str, faction_b: str, district_id: str
    ) -> TensionRecord:
        ...

    # ── 최근 사건 ─────────────────────────────────────────────

    @abstractmethod
    def get_world_events(self) -> WorldEvents:
        ...
