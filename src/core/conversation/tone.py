"""관계 기반 표시 톤"""

from .models import RelationshipDescriptor, RelationshipTone, is_same_faction


def relationship_tone(
    speaker: RelationshipDescriptor,
    listener: RelationshipDescriptor,
    inter_rep: int,
    *,
    friendly_threshold: int = 25,
    hostile_threshold: int = -25,
) -> RelationshipTone:
    """같은 세력이거나 세력을 모르면 SAME_FACTION, 그 외는 평판 임계값으로 구분"""
    if is_same_faction(speaker, listener):
        return RelationshipTone.SAME_FACTION
    if not speaker.has_faction or not listener.has_faction:
        return RelationshipTone.SAME_FACTION
    if inter_rep >= friendly_threshold:
        return RelationshipTone.FRIENDLY
    if inter_rep <= hostile_threshold:
        return RelationshipTone.HOSTILE
    return RelationshipTone.NEUTRAL
