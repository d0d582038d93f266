"""대화 시스템 도메인 모델 (DB 무관)

템플릿(저작 데이터), 관계 디스크립터, 전달 레코드.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Callable, Optional, Tuple

if TYPE_CHECKING:
    from src.core.conversation.predicates import PredicateContext


class ConversationTopic(str, Enum):
    """대화 주제 태그 (닫힌 집합)"""

    # 같은 세력
    GREETING = "greeting"
    RUMOR = "rumor"
    STATUS_REPORT = "status_report"
    ORDERS = "orders"  # 상급자 → 하급자

    # 세력 간 경제
    TRADE_NEGOTIATION = "trade_negotiation"
    TRADE_EMBARGO = "trade_embargo"

    # 영토 (양쪽 모두)
    TERRITORY_CONTEST = "territory_contest"

    # 적대
    THREAT = "threat"
    TAUNT = "taunt"

    # 중립
    WARY_ENCOUNTER = "wary_encounter"

    # 우호
    ALLIANCE_AFFIRM = "alliance_affirm"

    # 월드 맥락
    PROSPERITY_LAMENT = "prosperity_lament"
    RAID_WARNING = "raid_warning"
    QUEST_HINT = "quest_hint"

    # 적대 파이프라인 단계 (순서 있음)
    HOSTILITY_LOW_TENSION = "hostility_low_tension"
    HOSTILITY_WARNING = "hostility_warning"
    HOSTILITY_GRIEVANCE = "hostility_grievance"
    HOSTILITY_ESCALATION = "hostility_escalation"
    HOSTILITY_BRAWL_START = "hostility_brawl_start"
    HOSTILITY_DE_ESCALATION = "hostility_de_escalation"
    HOSTILITY_AFTERMATH = "hostility_aftermath"


class Speaker(str, Enum):
    """대사 화자 역할"""

    INITIATOR = "initiator"
    RESPONDER = "responder"


class RelationshipTone(str, Enum):
    """관계 기반 표시 톤 (말풍선/로그 색상 대응)"""

    SAME_FACTION = "same_faction"
    FRIENDLY = "friendly"
    NEUTRAL = "neutral"
    HOSTILE = "hostile"


# 판정 함수: PredicateContext → bool (predicates.py 참조)
ConversationPredicate = Callable[["PredicateContext"], bool]


@dataclass(frozen=True)
class ConversationLine:
    """대사 1줄

    turn_delay: 직전 대사 전달 후 기다릴 턴 수.
    첫 대사의 값은 무시되고, 이후 대사는 전달 시 최소 1로 보정된다.
    """

    speaker: Speaker
    text: str
    turn_delay: int = 1


@dataclass
class ConversationTemplate:
    """저작된 2인 대화 템플릿

    적용 조건(세력 관계, 평판 범위, 계급, 세력 게이트, 월드 판정, 쿨다운)과
    대사 시퀀스를 가진다.
    """

    template_id: str
    topic: ConversationTopic
    lines: Tuple[ConversationLine, ...] = ()

    same_faction_only: bool = False
    cross_faction_only: bool = False

    # 세력 간 평판 범위 (세력이 다를 때만 검사, 양끝 포함)
    min_inter_rep: int = -100
    max_inter_rep: int = 100

    # 같은 세력일 때 발화자 계급이 응답자보다 높아야 함
    require_rank_difference: bool = False

    required_initiator_faction_id: Optional[str] = None

    predicate: Optional[ConversationPredicate] = None
    predicate_name: Optional[str] = None

    # 같은 템플릿 재발화까지 최소 턴 (0 = 제한 없음)
    cooldown_turns: int = 0

    @property
    def is_malformed(self) -> bool:
        return len(self.lines) == 0


# ── 계급 ─────────────────────────────────────────────────────

RANK_ORDER: dict[str, int] = {
    "high": 3,
    "mid": 2,
    "low": 1,
}


def rank_value(rank_id: Optional[str]) -> int:
    """계급 → 정수. 알 수 없는 계급은 0."""
    if not rank_id:
        return 0
    return RANK_ORDER.get(rank_id, 0)


@dataclass(frozen=True)
class RelationshipDescriptor:
    """참가자 1명의 관계 디스크립터 (저장하지 않고 매번 유도)"""

    entity_id: str
    faction_id: Optional[str] = None
    rank_id: Optional[str] = None

    @property
    def has_faction(self) -> bool:
        return bool(self.faction_id)


def is_same_faction(a: RelationshipDescriptor, b: RelationshipDescriptor) -> bool:
    """두 세력이 모두 존재하고 같을 때만 True"""
    return a.has_faction and b.has_faction and a.faction_id == b.faction_id


def outranks(a: RelationshipDescriptor, b: RelationshipDescriptor) -> bool:
    """a의 계급이 b보다 엄격히 높은가. 한쪽이라도 계급을 모르면 False."""
    ra = rank_value(a.rank_id)
    rb = rank_value(b.rank_id)
    if ra == 0 or rb == 0:
        return False
    return ra > rb


# ── 전달 ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class DeliveredLine:
    """ConversationInstance.step()이 돌려주는 전달 대상 대사"""

    line_index: int
    speaker_id: str
    listener_id: str
    text: str


@dataclass(frozen=True)
class DeliveryRecord:
    """DeliverySink로 넘기는 표시/로그 레코드"""

    conversation_id: int
    template_id: str
    topic: str
    line_index: int
    speaker_id: str
    speaker_name: str
    listener_id: str
    listener_name: str
    text: str
    tone: RelationshipTone
    turn: int
