"""대사 전달 싱크

ConversationService가 전달한 DeliveryRecord를 표시/로그 계층으로 넘긴다.
서비스는 deliver()가 돌아온 뒤 그 레코드에 더 이상 책임지지 않는다.
"""

from abc import ABC, abstractmethod
from typing import List

from sqlalchemy.orm import Session, sessionmaker

from src.core.conversation.models import DeliveryRecord, RelationshipTone
from src.core.logging import get_logger
from src.db.models import ConversationLogModel

logger = get_logger(__name__)

DEFAULT_LOG_LIMIT = 50


class DeliverySink(ABC):
    """전달 싱크 인터페이스"""

    @abstractmethod
    def deliver(self, record: DeliveryRecord) -> None:
        ...

    @abstractmethod
    def recent(self, limit: int = DEFAULT_LOG_LIMIT) -> List[DeliveryRecord]:
        """최근 전달 레코드 (오래된 것부터)"""
        ...


class InMemoryDeliverySink(DeliverySink):
    """메모리 싱크 (테스트/헤드리스 실행용)"""

    def __init__(self) -> None:
        self.records: List[DeliveryRecord] = []

    def deliver(self, record: DeliveryRecord) -> None:
        self.records.append(record)

    def recent(self, limit: int = DEFAULT_LOG_LIMIT) -> List[DeliveryRecord]:
        if limit <= 0:
            return []
        return list(self.records[-limit:])

    def texts(self) -> List[str]:
        return [r.text for r in self.records]


class DatabaseDeliverySink(DeliverySink):
    """conversation_log 테이블에 한 줄씩 기록

    전달마다 세션을 열고 커밋한다. 실패 시 롤백 후 예외를 그대로 올린다.
    """

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def deliver(self, record: DeliveryRecord) -> None:
        session: Session = self._session_factory()
        try:
            session.add(_record_to_orm(record))
            session.commit()
        except Exception:
            session.rollback()
            logger.exception(
                "Failed to persist conversation line: conv=%d line=%d",
                record.conversation_id,
                record.line_index,
            )
            raise
        finally:
            session.close()

    def recent(self, limit: int = DEFAULT_LOG_LIMIT) -> List[DeliveryRecord]:
        if limit <= 0:
            return []
        session: Session = self._session_factory()
        try:
            rows = (
                session.query(ConversationLogModel)
                .order_by(ConversationLogModel.id.desc())
                .limit(limit)
                .all()
            )
            return [_orm_to_record(row) for row in reversed(rows)]
        finally:
            session.close()


def _record_to_orm(record: DeliveryRecord) -> ConversationLogModel:
    return ConversationLogModel(
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


def _orm_to_record(row: ConversationLogModel) -> DeliveryRecord:
    return DeliveryRecord(
        conversation_id=row.conversation_id,
        template_id=row.template_id,
        topic=row.topic,
        line_index=row.line_index,
        speaker_id=row.speaker_id,
        speaker_name=row.speaker_name,
        listener_id=row.listener_id,
        listener_name=row.listener_name,
        text=row.text,
        tone=RelationshipTone(row.tone),
        turn=row.turn,
    )
