"""Conversation API endpoints."""

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from src.api.schemas import (
    ConversationInfo,
    InterruptResponse,
    LineLogEntry,
    TurnRequest,
    TurnResponse,
)
from src.core.conversation.instance import ConversationInstance
from src.core.conversation.models import DeliveryRecord
from src.core.event_bus import EventBus, GameEvent
from src.core.event_types import EventTypes
from src.core.logging import get_logger
from src.modules.base import GameContext
from src.modules.module_manager import ModuleManager
from src.services.conversation_service import ConversationService
from src.services.delivery import DeliverySink
from src.services.world_state import InMemoryWorld

logger = get_logger(__name__)

router = APIRouter(prefix="/conversations", tags=["conversations"])

# 턴 응답에 담을 최근 로그 조회 상한
_TURN_LOG_WINDOW = 200


def get_module_manager(request: Request) -> ModuleManager:
    """ModuleManager 인스턴스 반환 (의존성 주입)"""
    manager: ModuleManager = request.app.state.module_manager
    return manager


def get_conversation_service(request: Request) -> ConversationService:
    """활성 ConversationService 반환. 모듈이 꺼져 있으면 503."""
    module = get_module_manager(request).get("conversation")
    service = getattr(module, "service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Conversation module is disabled")
    return service


def get_world(request: Request) -> InMemoryWorld:
    world: InMemoryWorld = request.app.state.world
    return world


def get_delivery_sink(request: Request) -> DeliverySink:
    sink: DeliverySink = request.app.state.delivery_sink
    return sink


def get_event_bus(request: Request) -> EventBus:
    bus: EventBus = request.app.state.event_bus
    return bus


def _conversation_info(instance: ConversationInstance) -> ConversationInfo:
    return ConversationInfo(
        conversation_id=instance.conversation_id,
        template_id=instance.template.template_id,
        topic=instance.template.topic.value,
        initiator_id=instance.initiator_id,
        responder_id=instance.responder_id,
        current_line_index=instance.current_line_index,
        line_count=instance.line_count,
        turns_until_next_line=instance.turns_until_next_line,
        created_on_turn=instance.created_on_turn,
    )


def _log_entry(record: DeliveryRecord) -> LineLogEntry:
    return LineLogEntry(
        conversation_id=record.conversation_id,
        template_id=record.template_id,
        topic=record.topic,
        line_index=record.line_index,
        speaker_id=record.speaker_id,
        speaker_name=record.speaker_name,
        listener_id=record.listener_id,
        listener_name=record.listener_name,
        text=record.text,
        tone=record.tone.value,
        turn=record.turn,
    )


@router.get("/active", response_model=list[ConversationInfo])
def list_active(
    service: ConversationService = Depends(get_conversation_service),
) -> list[ConversationInfo]:
    """진행 중인 대화 목록"""
    return [_conversation_info(c) for c in service.active_conversations()]


@router.get("/log", response_model=list[LineLogEntry])
def read_log(
    limit: int = Query(50, ge=1, le=500),
    sink: DeliverySink = Depends(get_delivery_sink),
) -> list[LineLogEntry]:
    """최근 전달된 대사 (오래된 것부터)"""
    return [_log_entry(r) for r in sink.recent(limit)]


@router.post("/turn", response_model=TurnResponse)
def advance_turn(
    request: TurnRequest,
    manager: ModuleManager = Depends(get_module_manager),
    world: InMemoryWorld = Depends(get_world),
    sink: DeliverySink = Depends(get_delivery_sink),
    bus: EventBus = Depends(get_event_bus),
    service: ConversationService = Depends(get_conversation_service),
) -> TurnResponse:
    """한 턴 진행: 유휴 개체 대화 시작 기회 → 전체 턴 틱"""
    turn = world.advance_turn()
    context = GameContext(current_turn=turn)

    if request.idle_entity_ids is None:
        idle_ids = [e for e in world.active_entities() if not service.is_in_conversation(e)]
    else:
        idle_ids = list(request.idle_entity_ids)

    initiated_by: list[str] = []
    for entity_id in idle_ids:
        if manager.process_entity_idle(entity_id, context):
            initiated_by.append(entity_id)

    manager.process_turn(context)
    bus.emit(
        GameEvent(
            event_type=EventTypes.TURN_PROCESSED,
            data={"turn": turn, "initiated": len(initiated_by)},
            source="conversations_api",
            key=str(turn),
        )
    )

    lines = [
        _log_entry(r) for r in sink.recent(_TURN_LOG_WINDOW) if r.turn == turn
    ]
    logger.debug("Turn %d processed: initiated=%d lines=%d", turn, len(initiated_by), len(lines))
    return TurnResponse(
        turn=turn,
        initiated_by=initiated_by,
        active_count=len(service.active_conversations()),
        lines=lines,
    )


@router.post("/interrupt/{entity_id}", response_model=InterruptResponse)
def interrupt(
    entity_id: str,
    service: ConversationService = Depends(get_conversation_service),
) -> InterruptResponse:
    """개체가 참여한 대화를 즉시 중단 (대화 중이 아니면 ended=0)"""
    ended = service.interrupt(entity_id)
    return InterruptResponse(entity_id=entity_id, ended=ended)
