"""이벤트 유형 상수"""


class EventTypes:
    """이벤트 유형 문자열 상수"""

    # conversation (ConversationService 발행)
    CONVERSATION_STARTED = "conversation_started"
    CONVERSATION_LINE_DELIVERED = "conversation_line_delivered"
    CONVERSATION_ENDED = "conversation_ended"

    # combat / alert (외부 시뮬레이션 발행, ConversationService 구독)
    ENTITY_COMBAT_STARTED = "entity_combat_started"
    ENTITY_ALERT_HOSTILE = "entity_alert_hostile"

    # engine
    TURN_PROCESSED = "turn_processed"


class EndReasons:
    """conversation_ended 이벤트의 reason 값"""

    COMPLETED = "completed"
    PARTICIPANT_INVALID = "participant_invalid"
    COMBAT = "combat"
    INTERRUPTED = "interrupted"
    CLEARED = "cleared"
    DELIVERY_FAILED = "delivery_failed"
