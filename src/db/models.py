"""SQLAlchemy declarative base for all ORM models."""

from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all database models."""


class ConversationLogModel(Base):
    """ORM model for delivered conversation lines.

    진행 중인 대화 상태는 저장하지 않는다. 전달이 끝난 대사만 로그로 남긴다.
    """

    __tablename__ = "conversation_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    conversation_id: Mapped[int] = mapped_column(Integer, nullable=False)
    template_id: Mapped[str] = mapped_column(String, nullable=False)
    topic: Mapped[str] = mapped_column(String, nullable=False)
    line_index: Mapped[int] = mapped_column(Integer, nullable=False)

    speaker_id: Mapped[str] = mapped_column(String, nullable=False)
    speaker_name: Mapped[str] = mapped_column(String, nullable=False, default="")
    listener_id: Mapped[str] = mapped_column(String, nullable=False)
    listener_name: Mapped[str] = mapped_column(String, nullable=False, default="")

    text: Mapped[str] = mapped_column(Text, nullable=False)
    tone: Mapped[str] = mapped_column(String, nullable=False)
    turn: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now()
    )

    __table_args__ = (
        Index("idx_conversation_log_conversation", "conversation_id"),
        Index("idx_conversation_log_turn", "turn"),
    )
