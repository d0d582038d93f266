"""대화 템플릿 월드 판정 함수

각 함수는 대사가 주장하는 월드 상태가 실제로 참일 때만 True를 돌려준다.
템플릿 콘텐츠는 이름으로 판정 함수를 참조하고 PREDICATES 테이블이 이를 해석한다.

규칙:
- 순수 함수. 월드 상태를 읽기만 한다.
- 필요한 상태(지구, 세력 등)가 없으면 예외 대신 False.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

from src.core.conversation.models import ConversationPredicate, RelationshipDescriptor
from src.core.conversation.world import (
    DistrictState,
    EscalationStage,
    TensionRecord,
    TradeStatus,
    WorldStateProvider,
)


@dataclass(frozen=True)
class PredicateContext:
    """판정 함수 입력"""

    initiator: RelationshipDescriptor
    responder: RelationshipDescriptor
    district: Optional[DistrictState]
    world: WorldStateProvider
    current_turn: int


# ── 임계값 ──────────────────────────────────────────────────

REINFORCEMENT_WINDOW_DAYS = 2
SUPPLY_RAID_WINDOW_DAYS = 3
RAID_IN_DISTRICT_WINDOW_DAYS = 2
RESPONDER_RAID_WINDOW_DAYS = 5
LOSS_STREAK_THRESHOLD = 3
CONTESTED_DAYS_THRESHOLD = 3
DEMON_FACTION_ID = "faction_demon"
DEMON_CONTROL_THRESHOLD = 0.3
DEMON_QUEST_PREFIX = "dyn_demon_"
ELEVATED_HEAT_THRESHOLD = 0.4
NOT_LOST_CONTROL_THRESHOLD = 0.2
RECENT_INCIDENT_WINDOW_TURNS = 40  # 경제 2일
AFTERMATH_MIN_INCIDENTS = 3


# ── 내부 헬퍼 ────────────────────────────────────────────────


def _pair_tension(ctx: PredicateContext) -> TensionRecord:
    """세력쌍 긴장 기록. 세력을 모르면 기본값(CALM, 사건 0)."""
    a = ctx.initiator.faction_id
    b = ctx.responder.faction_id
    if not a or not b:
        return TensionRecord()
    district_id = ctx.district.district_id if ctx.district is not None else ""
    return ctx.world.get_tension(a, b, district_id)


def _pair_stage(ctx: PredicateContext) -> EscalationStage:
    return _pair_tension(ctx).stage


# ── 사실 위반 차단 ───────────────────────────────────────────


def require_recent_reinforcements(ctx: PredicateContext) -> bool:
    """"지원군이 오늘 아침 도착했다": 이 지구에 최근 2일 내 증원"""
    if ctx.district is None:
        return False
    ev = ctx.world.get_world_events()
    return (
        ev.last_reinforcement_district_id == ctx.district.district_id
        and ev.current_day - ev.last_reinforcement_day <= REINFORCEMENT_WINDOW_DAYS
    )


def require_supply_stress_and_raid(ctx: PredicateContext) -> bool:
    """"보급선이 얇다" + "대상단 습격": 보급 압박과 최근 습격이 모두 필요"""
    ds = ctx.district
    if ds is None:
        return False
    supply_stressed = ds.prosperity < 0.6 or any(
        v < 0.5 for v in ds.item_supply.values()
    )
    if not supply_stressed:
        return False
    ev = ctx.world.get_world_events()
    return (
        bool(ev.last_raid_district_id)
        and ev.current_day - ev.last_raid_day <= SUPPLY_RAID_WINDOW_DAYS
    )


def require_faction_loss_event(ctx: PredicateContext) -> bool:
    """"{FACTION_OTHER}가 지배권을 잃었다더라": 어느 지구든 연패 3 이상"""
    for state in ctx.world.all_districts():
        if any(streak >= LOSS_STREAK_THRESHOLD for streak in state.loss_streak.values()):
            return True
    return False


def require_recent_raid_in_district(ctx: PredicateContext) -> bool:
    """"어젯밤 보급 마차가 털렸다": 이 지구에서 최근 2일 내 습격"""
    if ctx.district is None:
        return False
    ev = ctx.world.get_world_events()
    return (
        ev.last_raid_district_id == ctx.district.district_id
        and ev.current_day - ev.last_raid_day <= RAID_IN_DISTRICT_WINDOW_DAYS
    )


def require_recent_attack_by_responder_faction(ctx: PredicateContext) -> bool:
    """"마을에 한 짓을 봤다": 응답자 세력이 최근 습격/교전의 공격자"""
    responder_faction = ctx.responder.faction_id
    if not responder_faction:
        return False
    ev = ctx.world.get_world_events()
    raid_match = (
        ev.last_raid_faction_id == responder_faction
        and ev.current_day - ev.last_raid_day <= RESPONDER_RAID_WINDOW_DAYS
    )
    skirmish_match = ev.last_skirmish_attacker_faction_id == responder_faction
    return raid_match or skirmish_match


def require_contested_three_plus_days(ctx: PredicateContext) -> bool:
    """"사흘째 이 땅을 지키고 있다": 이 지구가 3일 이상 분쟁 중"""
    if ctx.district is None:
        return False
    return ctx.district.contested_days >= CONTESTED_DAYS_THRESHOLD


# ── 미검증 암시 차단 ─────────────────────────────────────────


def require_any_embargo_exists(ctx: PredicateContext) -> bool:
    """"잉크 금수 얘기가 돈다": 세계 어딘가에 금수 관계 존재"""
    return any(
        rel.status == TradeStatus.EMBARGO for rel in ctx.world.all_trade_relations()
    )


def require_truce_inscription_nearby(ctx: PredicateContext) -> bool:
    """"국경 근처에 휴전 표식이 새겨졌다": 이 지구에 휴전 각인"""
    if ctx.district is None:
        return False
    return ctx.district.district_id in ctx.world.get_world_events().truce_district_ids


def require_demon_threat(ctx: PredicateContext) -> bool:
    """"악마들이 모이고 있다": 어느 지구든 악마 세력 지배율 0.3 초과"""
    return any(
        state.control.get(DEMON_FACTION_ID, 0.0) > DEMON_CONTROL_THRESHOLD
        for state in ctx.world.all_districts()
    )


def require_low_morale(ctx: PredicateContext) -> bool:
    """"어젯밤 셋이 탈영했다": 번영도 0.3 미만"""
    if ctx.district is None:
        return False
    return ctx.district.prosperity < 0.3


def require_active_demon_quest(ctx: PredicateContext) -> bool:
    """"악마 가죽에 현상금": 악마 관련 퀘스트 진행 중"""
    return any(
        quest_id.startswith(DEMON_QUEST_PREFIX)
        for quest_id in ctx.world.get_world_events().active_quest_ids
    )


def require_embargo_between_factions(ctx: PredicateContext) -> bool:
    """"금수가 시장을 조이고 있다": 두 세력 사이 금수"""
    a = ctx.initiator.faction_id
    b = ctx.responder.faction_id
    if not a or not b:
        return False
    rel = ctx.world.get_trade_relation(a, b)
    return rel is not None and rel.status == TradeStatus.EMBARGO


def require_contested_with_skirmish(ctx: PredicateContext) -> bool:
    """"외벽에서 밀려났다": 분쟁 지구이면서 여기서 교전 발생"""
    ds = ctx.district
    if ds is None:
        return False
    ev = ctx.world.get_world_events()
    return ds.is_contested and ev.last_skirmish_district_id == ds.district_id


def require_elevated_heat(ctx: PredicateContext) -> bool:
    """"{DISTRICT}에 열기가 오른다": 발화자 세력 heat 0.4 초과"""
    if ctx.district is None or not ctx.initiator.faction_id:
        return False
    return ctx.district.heat_of(ctx.initiator.faction_id) > ELEVATED_HEAT_THRESHOLD


# ── 토큰/응답 모순 차단 ──────────────────────────────────────


def require_not_lost_control(ctx: PredicateContext) -> bool:
    """"전선을 지킨다": 발화자 세력 지배율 0.2 이상 (lost/unclaimed 차단)"""
    if ctx.district is None:
        return False
    control = ctx.district.control_of(ctx.initiator.faction_id)
    if control is None:
        return False
    return control >= NOT_LOST_CONTROL_THRESHOLD


def require_poor_prosperity(ctx: PredicateContext) -> bool:
    """"경계를 두 배로": 번영도 0.5 미만"""
    if ctx.district is None:
        return False
    return ctx.district.prosperity < 0.5


def require_stable_prosperity(ctx: PredicateContext) -> bool:
    """"{DISTRICT}에서 보급이 왔다": 번영도 0.5 이상"""
    if ctx.district is None:
        return False
    return ctx.district.prosperity >= 0.5


# ── 적대 파이프라인 단계 ─────────────────────────────────────


def require_tension_uneasy(ctx: PredicateContext) -> bool:
    return _pair_stage(ctx) >= EscalationStage.UNEASY


def require_tension_tense(ctx: PredicateContext) -> bool:
    return _pair_stage(ctx) >= EscalationStage.TENSE


def require_tension_volatile(ctx: PredicateContext) -> bool:
    return _pair_stage(ctx) >= EscalationStage.VOLATILE


def require_tension_explosive(ctx: PredicateContext) -> bool:
    return _pair_stage(ctx) >= EscalationStage.EXPLOSIVE


def require_de_escalation(ctx: PredicateContext) -> bool:
    """폭발 직후 가라앉는 중 : 정확히 VOLATILE이고 사건 이력 있음"""
    record = _pair_tension(ctx)
    return record.stage == EscalationStage.VOLATILE and record.incident_count > 0


def require_recent_incident(ctx: PredicateContext) -> bool:
    """최근 40턴 내 사건 (단계 무관)"""
    record = _pair_tension(ctx)
    if record.incident_count == 0:
        return False
    return ctx.current_turn - record.last_incident_turn <= RECENT_INCIDENT_WINDOW_TURNS


def require_aftermath(ctx: PredicateContext) -> bool:
    """충돌 이후 : UNEASY 이하로 내려왔지만 사건 3회 이상"""
    record = _pair_tension(ctx)
    return (
        record.stage <= EscalationStage.UNEASY
        and record.incident_count >= AFTERMATH_MIN_INCIDENTS
    )


# ── 이름 → 함수 테이블 ──────────────────────────────────────

PREDICATES: Dict[str, ConversationPredicate] = {
    "require_recent_reinforcements": require_recent_reinforcements,
    "require_supply_stress_and_raid": require_supply_stress_and_raid,
    "require_faction_loss_event": require_faction_loss_event,
    "require_recent_raid_in_district": require_recent_raid_in_district,
    "require_recent_attack_by_responder_faction": require_recent_attack_by_responder_faction,
    "require_contested_three_plus_days": require_contested_three_plus_days,
    "require_any_embargo_exists": require_any_embargo_exists,
    "require_truce_inscription_nearby": require_truce_inscription_nearby,
    "require_demon_threat": require_demon_threat,
    "require_low_morale": require_low_morale,
    "require_active_demon_quest": require_active_demon_quest,
    "require_embargo_between_factions": require_embargo_between_factions,
    "require_contested_with_skirmish": require_contested_with_skirmish,
    "require_elevated_heat": require_elevated_heat,
    "require_not_lost_control": require_not_lost_control,
    "require_poor_prosperity": require_poor_prosperity,
    "require_stable_prosperity": require_stable_prosperity,
    "require_tension_uneasy": require_tension_uneasy,
    "require_tension_tense": require_tension_tense,
    "require_tension_volatile": require_tension_volatile,
    "require_tension_explosive": require_tension_explosive,
    "require_de_escalation": require_de_escalation,
    "require_recent_incident": require_recent_incident,
    "require_aftermath": require_aftermath,
}


def get_predicate(name: str) -> Optional[ConversationPredicate]:
    """이름으로 판정 함수 조회. 없으면 None."""
    return PREDICATES.get(name)
