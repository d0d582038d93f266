"""대화 Core 도메인 패키지

공개 API:
- 도메인 모델: ConversationTopic, Speaker, ConversationLine, ConversationTemplate,
  RelationshipDescriptor, DeliveredLine, DeliveryRecord, RelationshipTone
- 월드 상태: DistrictState, TradeRelation, TradeStatus, EscalationStage,
  TensionRecord, WorldEvents, WorldStateProvider
- 판정 함수: PredicateContext, PREDICATES, get_predicate
- 저장소: TemplateRegistry, TemplateCooldownView
- 인스턴스: ConversationInstance
- 토큰: TokenValues, build_token_values, resolve_tokens
- 주제: TopicContext, build_topic_weights, pick_weighted_topic
- 톤: relationship_tone
"""

from src.core.conversation.models import (
    ConversationLine,
    ConversationPredicate,
    ConversationTemplate,
    ConversationTopic,
    DeliveredLine,
    DeliveryRecord,
    RelationshipDescriptor,
    RelationshipTone,
    Speaker,
    is_same_faction,
    outranks,
    rank_value,
)
from src.core.conversation.world import (
    DistrictState,
    EscalationStage,
    TensionRecord,
    TradeRelation,
    TradeStatus,
    WorldEvents,
    WorldStateProvider,
)
from src.core.conversation.predicates import (
    PREDICATES,
    PredicateContext,
    get_predicate,
)
from src.core.conversation.registry import TemplateCooldownView, TemplateRegistry
from src.core.conversation.instance import ConversationInstance
from src.core.conversation.tokens import (
    TokenValues,
    build_token_values,
    control_descriptor,
    prosperity_descriptor,
    resolve_tokens,
    trade_descriptor,
)
from src.core.conversation.topics import (
    TopicContext,
    WeightedTopics,
    build_topic_weights,
    pick_weighted_topic,
    total_weight,
)
from src.core.conversation.tone import relationship_tone

__all__ = [
    "ConversationLine",
    "ConversationPredicate",
    "ConversationTemplate",
    "ConversationTopic",
    "DeliveredLine",
    "DeliveryRecord",
    "RelationshipDescriptor",
    "RelationshipTone",
    "Speaker",
    "is_same_faction",
    "outranks",
    "rank_value",
    "DistrictState",
    "EscalationStage",
    "TensionRecord",
    "TradeRelation",
    "TradeStatus",
    "WorldEvents",
    "WorldStateProvider",
    "PREDICATES",
    "PredicateContext",
    "get_predicate",
    "TemplateCooldownView",
    "TemplateRegistry",
    "ConversationInstance",
    "TokenValues",
    "build_token_values",
    "control_descriptor",
    "prosperity_descriptor",
    "resolve_tokens",
    "trade_descriptor",
    "TopicContext",
    "WeightedTopics",
    "build_topic_weights",
    "pick_weighted_topic",
    "total_weight",
    "relationship_tone",
]
