"""InMemoryWorld: 메모리 기반 WorldStateProvider 구현

외부 시뮬레이션(이동, 전투, 경제, 세력 전략)이 없는 환경에서
대화 엔진을 구동하기 위한 월드 상태 저장소. API 데모와 테스트가 사용한다.
시드 데이터는 JSON으로 로드한다 (src/data/demo_world.json).
"""

import json
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple

from src.core.conversation.world import (
    DistrictState,
    EscalationStage,
    TensionRecord,
    TradeRelation,
    TradeStatus,
    WorldEvents,
    WorldStateProvider,
)
from src.core.logging import get_logger

logger = get_logger(__name__)

# 잡담에 끼지 않는 역할
NON_CONVERSATIONAL_ROLES: FrozenSet[str] = frozenset({"merchant", "shopkeeper"})


@dataclass
class EntityRecord:
    """세력 소속 개체 1명"""

    entity_id: str
    name: str
    x: int
    y: int
    faction_id: Optional[str] = None
    rank_id: Optional[str] = None
    role: str = "soldier"
    active: bool = True
    hostile_alert: bool = False
    in_combat: bool = False


@dataclass
class _DistrictArea:
    state: DistrictState
    x_min: int
    y_min: int
    x_max: int
    y_max: int

    def contains(self, x: int, y: int) -> bool:
        return self.x_min <= x <= self.x_max and self.y_min <= y <= self.y_max


class InMemoryWorld(WorldStateProvider):
    """메모리 월드 상태

    평판은 방향성(source → target)으로 저장한다.
    교역 관계와 긴장도는 세력쌍 순서와 무관하게 조회된다.
    """

    def __init__(self, start_turn: int = 0) -> None:
        self._turn = start_turn
        self._entities: Dict[str, EntityRecord] = {}
        self._faction_names: Dict[str, str] = {}
        self._inter_rep: Dict[Tuple[str, str], int] = {}
        self._districts: List[_DistrictArea] = []
        self._trade: Dict[Tuple[str, str], TradeRelation] = {}
        self._tension: Dict[Tuple[str, str, str], TensionRecord] = {}
        self.events = WorldEvents()

    # ── 턴 ───────────────────────────────────────────────────

    def current_turn(self) -> int:
        return self._turn

    def advance_turn(self) -> int:
        """턴 1 증가. 반환: 새 턴 번호."""
        self._turn += 1
        return self._turn

    # ── 구성 ─────────────────────────────────────────────────

    def add_faction(self, faction_id: str, display_name: str) -> None:
        self._faction_names[faction_id] = display_name

    def add_entity(self, record: EntityRecord) -> None:
        if record.entity_id in self._entities:
            logger.warning("Overwriting existing entity: %s", record.entity_id)
        self._entities[record.entity_id] = record

    def get_entity(self, entity_id: str) -> Optional[EntityRecord]:
        return self._entities.get(entity_id)

    def remove_entity(self, entity_id: str) -> None:
        self._entities.pop(entity_id, None)

    def set_inter_rep(
        self, source_faction_id: str, target_faction_id: str, value: int, symmetric: bool = True
    ) -> None:
        self._inter_rep[(source_faction_id, target_faction_id)] = value
        if symmetric:
            self._inter_rep[(target_faction_id, source_faction_id)] = value

    def add_district(
        self, state: DistrictState, x_min: int, y_min: int, x_max: int, y_max: int
    ) -> None:
        """사각형 영역으로 지구 등록. 영역이 겹치면 먼저 등록된 지구가 우선."""
        self._districts.append(_DistrictArea(state, x_min, y_min, x_max, y_max))

    def get_district(self, district_id: str) -> Optional[DistrictState]:
        for area in self._districts:
            if area.state.district_id == district_id:
                return area.state
        return None

    def set_trade_relation(self, relation: TradeRelation) -> None:
        key = _pair_key(relation.source_faction_id, relation.target_faction_id)
        self._trade[key] = relation

    def set_tension(
        self, faction_a: str, faction_b: str, district_id: str, record: TensionRecord
    ) -> None:
        a, b = _pair_key(faction_a, faction_b)
        self._tension[(a, b, district_id)] = record

    def set_hostile_alert(self, entity_id: str, value: bool = True) -> None:
        entity = self._entities.get(entity_id)
        if entity is not None:
            entity.hostile_alert = value

    def set_in_combat(self, entity_id: str, value: bool = True) -> None:
        entity = self._entities.get(entity_id)
        if entity is not None:
            entity.in_combat = value

    def move_entity(self, entity_id: str, x: int, y: int) -> None:
        entity = self._entities.get(entity_id)
        if entity is not None:
            entity.x = x
            entity.y = y

    def update_events(self, **changes) -> WorldEvents:
        """WorldEvents 일부 필드 교체 (불변 스냅샷 재생성)"""
        self.events = replace(self.events, **changes)
        return self.events

    # ── WorldStateProvider ──────────────────────────────────

    def active_entities(self) -> Iterable[str]:
        return [e.entity_id for e in self._entities.values() if e.active]

    def is_entity_valid(self, entity_id: str) -> bool:
        entity = self._entities.get(entity_id)
        return entity is not None and entity.active

    def get_faction_id(self, entity_id: str) -> Optional[str]:
        entity = self._entities.get(entity_id)
        return entity.faction_id if entity else None

    def get_rank_id(self, entity_id: str) -> Optional[str]:
        entity = self._entities.get(entity_id)
        return entity.rank_id if entity else None

    def get_position(self, entity_id: str) -> Optional[Tuple[int, int]]:
        entity = self._entities.get(entity_id)
        return (entity.x, entity.y) if entity else None

    def get_entity_name(self, entity_id: str) -> str:
        entity = self._entities.get(entity_id)
        return entity.name if entity else entity_id

    def get_faction_display_name(self, faction_id: str) -> Optional[str]:
        return self._faction_names.get(faction_id)

    def is_conversational(self, entity_id: str) -> bool:
        entity = self._entities.get(entity_id)
        return entity is not None and entity.role not in NON_CONVERSATIONAL_ROLES

    def is_hostile_alert(self, entity_id: str) -> bool:
        entity = self._entities.get(entity_id)
        return entity is not None and entity.hostile_alert

    def has_combat_engagement(self, entity_id: str) -> bool:
        entity = self._entities.get(entity_id)
        return entity is not None and entity.in_combat

    def get_inter_rep(self, source_faction_id: str, target_faction_id: str) -> int:
        return self._inter_rep.get((source_faction_id, target_faction_id), 0)

    def get_district_at(self, x: int, y: int) -> Optional[DistrictState]:
        for area in self._districts:
            if area.contains(x, y):
                return area.state
        return None

    def all_districts(self) -> List[DistrictState]:
        return [area.state for area in self._districts]

    def get_trade_relation(
        self, source_faction_id: str, target_faction_id: str
    ) -> Optional[TradeRelation]:
        return self._trade.get(_pair_key(source_faction_id, target_faction_id))

    def all_trade_relations(self) -> List[TradeRelation]:
        return list(self._trade.values())

    def get_tension(
        self, faction_a: str, faction_b: str, district_id: str
    ) -> TensionRecord:
        a, b = _pair_key(faction_a, faction_b)
        return self._tension.get((a, b, district_id), TensionRecord())

    def get_world_events(self) -> WorldEvents:
        return self.events

    # ── 시드 로드 ────────────────────────────────────────────

    def load_from_json(self, path: str | Path) -> int:
        """demo_world.json 로드. 반환: 로드된 개체 수.

        factions / districts / entities / inter_rep / trade / tension 섹션을 읽는다.
        잘못된 레코드는 경고 로그 후 건너뛴다.
        """
        path = Path(path)
        with path.open("r", encoding="utf-8") as f:
            raw: dict = json.load(f)

        for faction in raw.get("factions", []):
            try:
                self.add_faction(faction["id"], faction["display_name"])
            except KeyError as e:
                logger.warning("Failed to load faction: %s", e)

        for d in raw.get("districts", []):
            try:
                state = DistrictState(
                    district_id=d["id"],
                    display_name=d["display_name"],
                    prosperity=float(d.get("prosperity", 0.5)),
                    control={k: float(v) for k, v in d.get("control", {}).items()},
                    heat={k: float(v) for k, v in d.get("heat", {}).items()},
                    contested_days=int(d.get("contested_days", 0)),
                    item_supply={k: float(v) for k, v in d.get("item_supply", {}).items()},
                    loss_streak={k: int(v) for k, v in d.get("loss_streak", {}).items()},
                )
                x_min, y_min, x_max, y_max = d["bounds"]
                self.add_district(state, int(x_min), int(y_min), int(x_max), int(y_max))
            except (KeyError, ValueError, TypeError) as e:
                logger.warning("Failed to load district: %s: %s", d.get("id", "?"), e)

        for rep in raw.get("inter_rep", []):
            try:
                self.set_inter_rep(
                    rep["source"],
                    rep["target"],
                    int(rep["value"]),
                    symmetric=bool(rep.get("symmetric", True)),
                )
            except (KeyError, ValueError) as e:
                logger.warning("Failed to load reputation: %s", e)

        for t in raw.get("trade", []):
            try:
                self.set_trade_relation(
                    TradeRelation(
                        source_faction_id=t["source"],
                        target_faction_id=t["target"],
                        status=TradeStatus(t["status"]),
                        tariff_rate=float(t.get("tariff_rate", 0.0)),
                    )
                )
            except (KeyError, ValueError) as e:
                logger.warning("Failed to load trade relation: %s", e)

        for t in raw.get("tension", []):
            try:
                self.set_tension(
                    t["faction_a"],
                    t["faction_b"],
                    t["district_id"],
                    TensionRecord(
                        stage=EscalationStage[t["stage"].upper()],
                        incident_count=int(t.get("incident_count", 0)),
                        last_incident_turn=int(t.get("last_incident_turn", 0)),
                    ),
                )
            except (KeyError, ValueError, AttributeError) as e:
                logger.warning("Failed to load tension record: %s", e)

        count = 0
        for e in raw.get("entities", []):
            try:
                self.add_entity(
                    EntityRecord(
                        entity_id=e["id"],
                        name=e.get("name", e["id"]),
                        x=int(e["x"]),
                        y=int(e["y"]),
                        faction_id=e.get("faction_id"),
                        rank_id=e.get("rank_id"),
                        role=e.get("role", "soldier"),
                    )
                )
                count += 1
            except (KeyError, ValueError) as err:
                logger.warning("Failed to load entity: %s: %s", e.get("id", "?"), err)

        logger.info(
            "Loaded world from %s: %d entities, %d districts, %d factions",
            path,
            count,
            len(self._districts),
            len(self._faction_names),
        )
        return count


def _pair_key(a: str, b: str) -> Tuple[str, str]:
    """순서 무관 세력쌍 키"""
    return (a, b) if a <= b else (b, a)
