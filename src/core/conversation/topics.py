"""대화 주제 가중치 분포와 누적 가중치 추첨"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Tuple

from .models import ConversationTopic
from .world import EscalationStage, TensionRecord, TradeStatus

WeightedTopics = List[Tuple[ConversationTopic, int]]

RAID_HEAT_THRESHOLD = 0.7
LOW_PROSPERITY_THRESHOLD = 0.5
RECENT_INCIDENT_WINDOW_TURNS = 40
AFTERMATH_MIN_INCIDENTS = 3


@dataclass(frozen=True)
class TopicContext:
    """주제 선택 입력 (오케스트레이터가 월드에서 모아 넘긴다)

    inter_rep / trade_status / tension은 세력이 다를 때만 의미가 있다.
    district_* 값은 발화자 위치의 지구가 없으면 None/False.
    """

    same_faction: bool
    initiator_outranks: bool = False
    inter_rep: int = 0
    trade_status: Optional[TradeStatus] = None
    has_district: bool = False
    district_contested: bool = False
    district_prosperity: float = 1.0
    initiator_heat: float = 0.0
    tension: TensionRecord = TensionRecord()
    current_turn: int = 0


def build_topic_weights(
    ctx: TopicContext,
    *,
    friendly_threshold: int = 25,
    hostility_topic_weight: int = 0,
) -> WeightedTopics:
    """관계/월드 맥락 → (주제, 가중치) 목록. 순서는 추첨 순서와 같다."""
    weights: WeightedTopics = []

    if ctx.same_faction:
        weights.append((ConversationTopic.GREETING, 30))
        weights.append((ConversationTopic.RUMOR, 25))
        weights.append((ConversationTopic.STATUS_REPORT, 20))
        if ctx.initiator_outranks:
            weights.append((ConversationTopic.ORDERS, 25))
    else:
        if ctx.inter_rep >= friendly_threshold:
            weights.append((ConversationTopic.ALLIANCE_AFFIRM, 30))
            weights.append((ConversationTopic.TRADE_NEGOTIATION, 20))
        elif ctx.inter_rep < 0:
            threat = max(10, min(50, -ctx.inter_rep * 2))
            wary = max(10, 40 - threat // 2)
            weights.append((ConversationTopic.THREAT, threat))
            weights.append((ConversationTopic.TAUNT, threat // 2))
            weights.append((ConversationTopic.WARY_ENCOUNTER, wary))
        else:
            weights.append((ConversationTopic.WARY_ENCOUNTER, 30))
            weights.append((ConversationTopic.TRADE_NEGOTIATION, 15))

        if ctx.trade_status == TradeStatus.EMBARGO:
            weights.append((ConversationTopic.TRADE_EMBARGO, 35))

        if hostility_topic_weight > 0:
            weights.extend(_hostility_overlay(ctx, hostility_topic_weight))

    # 지구 맥락 (같은/다른 세력 공통)
    if ctx.has_district:
        if ctx.district_contested:
            weights.append((ConversationTopic.TERRITORY_CONTEST, 30))
        if ctx.district_prosperity < LOW_PROSPERITY_THRESHOLD:
            weights.append(
                (ConversationTopic.PROSPERITY_LAMENT, 20 if ctx.same_faction else 15)
            )
        if ctx.same_faction and ctx.initiator_heat > RAID_HEAT_THRESHOLD:
            weights.append((ConversationTopic.RAID_WARNING, 25))

    if ctx.same_faction:
        weights.append((ConversationTopic.QUEST_HINT, 5))

    return weights


def _hostility_overlay(ctx: TopicContext, weight: int) -> WeightedTopics:
    """세력쌍 긴장 단계별 적대 주제"""
    record = ctx.tension
    stage = record.stage
    recent = (
        record.incident_count > 0
        and ctx.current_turn - record.last_incident_turn <= RECENT_INCIDENT_WINDOW_TURNS
    )

    if stage == EscalationStage.UNEASY:
        return [(ConversationTopic.HOSTILITY_LOW_TENSION, weight)]
    if stage == EscalationStage.TENSE:
        result = [(ConversationTopic.HOSTILITY_WARNING, weight)]
        if recent:
            result.append((ConversationTopic.HOSTILITY_GRIEVANCE, weight))
        return result
    if stage == EscalationStage.VOLATILE:
        if record.incident_count > 0:
            return [(ConversationTopic.HOSTILITY_DE_ESCALATION, weight)]
        return [(ConversationTopic.HOSTILITY_ESCALATION, weight)]
    if stage == EscalationStage.EXPLOSIVE:
        return [(ConversationTopic.HOSTILITY_BRAWL_START, weight)]
    if record.incident_count >= AFTERMATH_MIN_INCIDENTS:
        return [(ConversationTopic.HOSTILITY_AFTERMATH, weight)]
    return []


def total_weight(weights: WeightedTopics) -> int:
    return sum(w for _, w in weights)


def pick_weighted_topic(weights: WeightedTopics, roll: int) -> ConversationTopic:
    """누적 합이 roll을 처음 넘는 주제. 빈 분포면 greeting.

    roll은 [0, total_weight) 범위의 정수.
    """
    if not weights:
        return ConversationTopic.GREETING
    running = 0
    for topic, weight in weights:
        running += weight
        if running > roll:
            return topic
    return weights[-1][0]
