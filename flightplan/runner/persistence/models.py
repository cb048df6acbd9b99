"""
Transcript SQLAlchemy Models

Database models for agent conversations, so a runner restarted after a
sandbox checkpoint/restore can continue where it left off.
"""

import enum
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class MessageRole(str, enum.Enum):
    USER = "user"
    ASSISTANT = "assistant"


class TranscriptSessionModel(Base):
    """One conversation with the model for a mission"""

    __tablename__ = "transcript_sessions"

    # Primary key
    session_id = Column(String(36), primary_key=True)

    # Metadata
    mission_id = Column(String(36), nullable=False, index=True)
    model = Column(String(255), nullable=False)
    created_at = Column(DateTime, nullable=False, default=_utcnow)
    updated_at = Column(DateTime, nullable=False, default=_utcnow, onupdate=_utcnow)

    # Token usage (running totals)
    input_tokens = Column(Integer, nullable=False, default=0)
    output_tokens = Column(Integer, nullable=False, default=0)

    # Relationships
    messages = relationship(
        "TranscriptMessageModel",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="TranscriptMessageModel.position",
    )

    # Indexes
    __table_args__ = (Index("idx_transcripts_mission_updated", "mission_id", "updated_at"),)

    def __repr__(self):
        return f"<TranscriptSession(id={self.session_id}, mission={self.mission_id})>"


class TranscriptMessageModel(Base):
    """A single message in Anthropic messages-API shape"""

    __tablename__ = "transcript_messages"

    # Primary key
    id = Column(Integer, primary_key=True, autoincrement=True)

    # Foreign key
    session_id = Column(String(36), ForeignKey("transcript_sessions.session_id"), nullable=False)

    # Message data; content is a string or a list of content blocks
    position = Column(Integer, nullable=False)
    role = Column(Enum(MessageRole), nullable=False)
    content = Column(JSON, nullable=False)
    created_at = Column(DateTime, nullable=False, default=_utcnow)

    # Relationships
    session = relationship("TranscriptSessionModel", back_populates="messages")

    # Indexes
    __table_args__ = (Index("idx_transcript_messages_session_position", "session_id", "position"),)

    def __repr__(self):
        return f"<TranscriptMessage(session={self.session_id}, position={self.position}, role={self.role.value})>"
