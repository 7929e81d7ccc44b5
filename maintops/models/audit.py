"""
Audit events and the sinks that receive them.

The core only produces AuditEvent values, after the mutation they describe
has committed. Durable storage is the sink's job; the core never waits on it
and a failing sink never undoes a committed change.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import Column, String, Integer, DateTime, JSON, Enum as SQLEnum
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from maintops.database import Base
from maintops.models.domain import utcnow
from maintops.models.enums import AuditAction

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuditEvent:
    """Immutable record of one state-changing action."""
    action: AuditAction
    entity_type: str
    entity_id: str
    acting_user_id: str
    changes: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utcnow)
    description: Optional[str] = None


class AuditLog(Base):
    """
    Append-only persisted form of an AuditEvent.

    Invariants:
    - Once written, never edited or deleted
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    action = Column(SQLEnum(AuditAction), nullable=False, index=True)
    entity_type = Column(String, nullable=False)
    entity_id = Column(String, nullable=False, index=True)
    user_id = Column(String, nullable=False)
    changes = Column(JSON, nullable=True)
    description = Column(String, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)


class AuditSink:
    """Receives audit events. Fire-and-forget from the caller's side."""

    def record(self, event: AuditEvent) -> None:
        raise NotImplementedError


class DatabaseAuditSink(AuditSink):
    """Writes each event as an AuditLog row in its own transaction."""

    def __init__(self, db: Session):
        self.db = db

    def record(self, event: AuditEvent) -> None:
        self.db.add(AuditLog(
            action=event.action,
            entity_type=event.entity_type,
            entity_id=event.entity_id,
            user_id=event.acting_user_id,
            changes=event.changes or None,
            description=event.description,
            created_at=event.timestamp,
        ))
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception(
                "Failed to persist audit event %s %s/%s",
                event.action.value, event.entity_type, event.entity_id
            )


class LoggingAuditSink(AuditSink):
    """Emits events to the log only; used where no audit store is wired."""

    def record(self, event: AuditEvent) -> None:
        logger.info(
            "audit action=%s entity=%s/%s user=%s changes=%s",
            event.action.value, event.entity_type, event.entity_id,
            event.acting_user_id, event.changes
        )
