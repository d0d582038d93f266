"""대사 토큰 치환

`{NAME}` 형식의 자리표시자를 발화자 기준 월드 값으로 바꾼다.
인스턴스 생성 시 한 번만 호출되며 결과는 그대로 고정된다.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .models import RelationshipDescriptor
from .world import DistrictState, TradeRelation, TradeStatus, WorldStateProvider

DEFAULT_FACTION_NAME = "Unknown"
DEFAULT_DISTRICT_NAME = "this place"
DEFAULT_PROSPERITY = "uncertain"
DEFAULT_CONTROL = "unknown"
DEFAULT_TRADE_STATUS = "open"

_TRADE_DESCRIPTORS: dict[TradeStatus, str] = {
    TradeStatus.OPEN: "open",
    TradeStatus.RESTRICTED: "restricted",
    TradeStatus.EMBARGO: "embargoed",
    TradeStatus.EXCLUSIVE: "exclusive",
    TradeStatus.ALLIANCE: "allied",
}


@dataclass(frozen=True)
class TokenValues:
    """발화자 1명 기준 토큰 값 스냅샷"""

    faction_self: str = DEFAULT_FACTION_NAME
    faction_other: str = DEFAULT_FACTION_NAME
    district: str = DEFAULT_DISTRICT_NAME
    prosperity: str = DEFAULT_PROSPERITY
    control: str = DEFAULT_CONTROL
    trade_status: str = DEFAULT_TRADE_STATUS

    def lookup(self, name: str) -> Optional[str]:
        """토큰 이름 → 값. 모르는 이름은 None."""
        return {
            "FACTION_SELF": self.faction_self,
            "FACTION_OTHER": self.faction_other,
            "DISTRICT": self.district,
            "PROSPERITY": self.prosperity,
            "CONTROL": self.control,
            "TRADE_STATUS": self.trade_status,
        }.get(name)


def prosperity_descriptor(prosperity: float) -> str:
    if prosperity >= 0.8:
        return "thriving"
    if prosperity >= 0.5:
        return "stable"
    if prosperity >= 0.3:
        return "struggling"
    return "desperate"


def control_descriptor(control: Optional[float]) -> str:
    """지배율 → 서술어. 측정값이 없거나 세력이 없으면 unclaimed."""
    if control is None:
        return "unclaimed"
    if control >= 0.7:
        return "firmly held"
    if control >= 0.4:
        return "contested"
    if control >= 0.2:
        return "slipping"
    return "lost"


def trade_descriptor(relation: Optional[TradeRelation]) -> str:
    if relation is None:
        return DEFAULT_TRADE_STATUS
    return _TRADE_DESCRIPTORS.get(relation.status, DEFAULT_TRADE_STATUS)


def build_token_values(
    speaker: RelationshipDescriptor,
    listener: RelationshipDescriptor,
    district: Optional[DistrictState],
    world: WorldStateProvider,
) -> TokenValues:
    """발화자 시점의 토큰 값 계산. 빠진 상태는 기본값으로 대체."""
    faction_self = DEFAULT_FACTION_NAME
    if speaker.faction_id:
        faction_self = world.get_faction_display_name(speaker.faction_id) or DEFAULT_FACTION_NAME

    faction_other = DEFAULT_FACTION_NAME
    if listener.faction_id:
        faction_other = world.get_faction_display_name(listener.faction_id) or DEFAULT_FACTION_NAME

    district_name = DEFAULT_DISTRICT_NAME
    prosperity = DEFAULT_PROSPERITY
    control = DEFAULT_CONTROL
    if district is not None:
        district_name = district.display_name or DEFAULT_DISTRICT_NAME
        prosperity = prosperity_descriptor(district.prosperity)
        control = control_descriptor(district.control_of(speaker.faction_id))

    trade_status = DEFAULT_TRADE_STATUS
    if speaker.faction_id and listener.faction_id:
        trade_status = trade_descriptor(
            world.get_trade_relation(speaker.faction_id, listener.faction_id)
        )

    return TokenValues(
        faction_self=faction_self,
        faction_other=faction_other,
        district=district_name,
        prosperity=prosperity,
        control=control,
        trade_status=trade_status,
    )


def resolve_tokens(text: str, values: TokenValues) -> str:
    """왼쪽에서 오른쪽으로 한 번 훑으며 `{NAME}` 치환.

    모르는 자리표시자와 닫히지 않은 `{`는 그대로 둔다. 치환 결과는 다시 훑지 않는다.
    """
    if "{" not in text:
        return text

    out: list[str] = []
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if ch != "{":
            out.append(ch)
            i += 1
            continue
        close = text.find("}", i + 1)
        if close == -1:
            out.append(text[i:])
            break
        name = text[i + 1 : close]
        value = values.lookup(name)
        # 모르는 토큰은 괄호째 그대로
        out.append(value if value is not None else text[i : close + 1])
        i = close + 1
    return "".join(out)
