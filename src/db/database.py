"""Database engine and session configuration."""

from collections.abc import Generator

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from src.config import settings
from src.core.logging import get_logger
from src.db.models import Base

logger = get_logger(__name__)


def make_engine(url: str, echo: bool = False) -> Engine:
    """URL에 맞는 엔진 생성. SQLite는 스레드 검사를 끈다."""
    connect_args = {}
    if url.startswith("sqlite"):
        connect_args["check_same_thread"] = False  # required for SQLite
    return create_engine(url, connect_args=connect_args, echo=echo)


engine = make_engine(settings.DATABASE_URL, echo=settings.DEBUG)

SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)


def init_db(bind: Engine | None = None) -> None:
    """conversation_log 등 전체 테이블 생성 (이미 있으면 유지)"""
    target = bind if bind is not None else engine
    Base.metadata.create_all(bind=target)
    logger.info("Database tables ensured: %s", ", ".join(Base.metadata.tables))


def get_db() -> Generator[Session, None, None]:
    """Yield a database session and ensure it is closed after use.

    Usage as a FastAPI dependency::

        @router.get("/conversations/log")
        def read_log(db: Session = Depends(get_db)):
            ...
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
