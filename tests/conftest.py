"""Shared test fixtures."""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from src.core.conversation.world import DistrictState
from src.db.database import get_db
from src.db.models import Base
from src.main import app
from src.services.world_state import EntityRecord, InMemoryWorld

TEST_ENGINE = create_engine(
    "sqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
Base.metadata.create_all(TEST_ENGINE)
TestSession = sessionmaker(bind=TEST_ENGINE, autocommit=False, autoflush=False)


def _override_get_db():
    db = TestSession()
    try:
        yield db
    finally:
        db.close()


app.dependency_overrides[get_db] = _override_get_db


@pytest.fixture()
def client() -> TestClient:
    """FastAPI TestClient wired to an in-memory SQLite database."""
    return TestClient(app)


@pytest.fixture()
def db_session() -> Session:
    """Raw database session for direct DB assertions."""
    session = TestSession()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def session_factory():
    """테이블이 비어 있는 인메모리 SQLite 세션 팩토리 (테스트마다 새로)"""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine, autocommit=False, autoflush=False)
    engine.dispose()


@pytest.fixture()
def world() -> InMemoryWorld:
    """세력 3개, 지구 2개의 기본 월드 (턴 100에서 시작)

    - market (0..9): 번영 0.7, 비분쟁, guard 지배 0.6
    - docks (10..19): 번영 0.4, 분쟁 4일, guard heat 0.8
    """
    w = InMemoryWorld(start_turn=100)
    w.add_faction("faction_guard", "City Guard")
    w.add_faction("faction_scribes", "Scribes Guild")
    w.add_faction("faction_raiders", "Ash Raiders")
    w.add_district(
        DistrictState(
            district_id="market",
            display_name="Market Row",
            prosperity=0.7,
            control={"faction_guard": 0.6},
        ),
        0, 0, 9, 9,
    )
    w.add_district(
        DistrictState(
            district_id="docks",
            display_name="Ink Docks",
            prosperity=0.4,
            control={"faction_guard": 0.3, "faction_raiders": 0.5},
            heat={"faction_guard": 0.8},
            contested_days=4,
        ),
        10, 0, 19, 9,
    )
    return w


@pytest.fixture()
def add_entity(world: InMemoryWorld):
    """world에 개체를 추가하는 팩토리"""

    def _add(
        entity_id: str,
        faction_id=None,
        rank_id=None,
        x: int = 1,
        y: int = 1,
        role: str = "soldier",
    ) -> EntityRecord:
        record = EntityRecord(
            entity_id=entity_id,
            name=entity_id.title(),
            x=x,
            y=y,
            faction_id=faction_id,
            rank_id=rank_id,
            role=role,
        )
        world.add_entity(record)
        return record

    return _add
