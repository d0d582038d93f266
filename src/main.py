"""FastAPI application entrypoint."""

import random
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI

from src.api.conversations import router as conversations_router
from src.api.health import router as health_router
from src.config import settings
from src.core.conversation.registry import TemplateRegistry
from src.core.event_bus import EventBus
from src.core.logging import get_logger, setup_logging
from src.db import database
from src.modules.conversation.module import ConversationModule
from src.modules.module_manager import ModuleManager
from src.services.conversation_service import OrchestratorSettings
from src.services.delivery import DatabaseDeliverySink
from src.services.world_state import InMemoryWorld

setup_logging(settings.LOG_LEVEL)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup and shutdown events."""
    # DB 테이블 생성
    logger.info("Creating database tables...")
    database.init_db()

    rng = random.Random(settings.RNG_SEED)

    # 월드 상태 로드
    logger.info("Loading world seed...")
    world = InMemoryWorld()
    world.load_from_json(settings.WORLD_SEED_PATH)
    app.state.world = world

    # 템플릿 로드
    logger.info("Loading conversation templates...")
    registry = TemplateRegistry(world, rng)
    registry.load_from_json(settings.CONVERSATION_CONTENT_PATH)
    app.state.template_registry = registry

    # 모듈 초기화
    event_bus = EventBus()
    sink = DatabaseDeliverySink(database.SessionLocal)
    manager = ModuleManager(event_bus)
    manager.register(
        ConversationModule(
            world=world,
            registry=registry,
            event_bus=event_bus,
            sink=sink,
            settings=OrchestratorSettings.from_settings(settings),
            rng=rng,
        )
    )
    manager.enable("conversation")

    app.state.event_bus = event_bus
    app.state.delivery_sink = sink
    app.state.module_manager = manager
    logger.info("Conversation engine initialized (templates=%d).", registry.count())

    yield

    # 종료 시 정리 (진행 중 대화는 저장하지 않는다)
    logger.info("Shutting down...")
    manager.disable("conversation")


app = FastAPI(title="Ambient Conversation Engine", lifespan=lifespan)

app.include_router(health_router)
app.include_router(conversations_router)
