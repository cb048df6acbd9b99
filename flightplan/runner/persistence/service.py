"""
Transcript Store

CRUD operations for conversation transcripts.
"""

import os
import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy import create_engine, desc, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from .models import Base, MessageRole, TranscriptMessageModel, TranscriptSessionModel, _utcnow
from ...utils.logger import get_logger

logger = get_logger(__name__)

TRANSCRIPT_DB_NAME = "transcripts.db"


class TranscriptStore:
    """
    Persists agent conversations.

    Features:
    - SQLAlchemy ORM over SQLite in the mission's session directory
    - Automatic session management
    - Messages kept in Anthropic messages-API shape
    """

    def __init__(self, database_url: str, echo: bool = False):
        """
        Initialize the store.

        Args:
            database_url: SQLAlchemy database URL
            echo: Log SQL statements
        """
        self.database_url = database_url
        self.engine = create_engine(database_url, echo=echo)
        self.SessionLocal = sessionmaker(bind=self.engine, autocommit=False, autoflush=False)

        # Create tables if they don't exist
        Base.metadata.create_all(bind=self.engine)
        logger.info("TranscriptStore initialized", database_url=database_url)

    @classmethod
    def for_directory(cls, session_dir: str, echo: bool = False) -> "TranscriptStore":
        """Open the SQLite transcript database inside ``session_dir``."""
        os.makedirs(session_dir, exist_ok=True)
        path = os.path.join(session_dir, TRANSCRIPT_DB_NAME)
        return cls(f"sqlite:///{path}", echo=echo)

    def get_session(self) -> Session:
        """Get a new database session."""
        return self.SessionLocal()

    # ============================================
    # Session Operations
    # ============================================

    def create_session(self, mission_id: str, model: str, session_id: Optional[str] = None) -> str:
        """
        Start a new transcript.

        Returns:
            The transcript session id
        """
        session_id = session_id or str(uuid.uuid4())
        db = self.get_session()
        try:
            db.add(TranscriptSessionModel(session_id=session_id, mission_id=mission_id, model=model))
            db.commit()
            logger.debug("Created transcript", session_id=session_id, mission_id=mission_id)
            return session_id
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("Failed to create transcript", error=str(e))
            raise
        finally:
            db.close()

    def latest_session_id(self, mission_id: str) -> Optional[str]:
        """Most recently updated transcript for the mission, if any."""
        db = self.get_session()
        try:
            model = (
                db.query(TranscriptSessionModel)
                .filter_by(mission_id=mission_id)
                .order_by(desc(TranscriptSessionModel.updated_at), desc(TranscriptSessionModel.created_at))
                .first()
            )
            return model.session_id if model else None
        finally:
            db.close()

    def record_usage(self, session_id: str, input_tokens: int, output_tokens: int) -> None:
        db = self.get_session()
        try:
            db.query(TranscriptSessionModel).filter_by(session_id=session_id).update(
                {
                    "input_tokens": TranscriptSessionModel.input_tokens + input_tokens,
                    "output_tokens": TranscriptSessionModel.output_tokens + output_tokens,
                    "updated_at": _utcnow(),
                },
                synchronize_session=False,
            )
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("Failed to record usage", session_id=session_id, error=str(e))
            raise
        finally:
            db.close()

    def get_usage(self, session_id: str) -> Dict[str, int]:
        db = self.get_session()
        try:
            model = db.query(TranscriptSessionModel).filter_by(session_id=session_id).first()
            if not model:
                return {"input_tokens": 0, "output_tokens": 0}
            return {"input_tokens": model.input_tokens, "output_tokens": model.output_tokens}
        finally:
            db.close()

    # ============================================
    # Message Operations
    # ============================================

    def append_messages(self, session_id: str, messages: List[Dict[str, Any]]) -> None:
        """
        Append messages in one transaction.

        Args:
            session_id: Transcript session id
            messages: ``{"role", "content"}`` dicts
        """
        db = self.get_session()
        try:
            position = (
                db.query(func.count(TranscriptMessageModel.id)).filter_by(session_id=session_id).scalar() or 0
            )
            for offset, message in enumerate(messages):
                db.add(
                    TranscriptMessageModel(
                        session_id=session_id,
                        position=position + offset,
                        role=MessageRole(message["role"]),
                        content=message["content"],
                    )
                )
            db.query(TranscriptSessionModel).filter_by(session_id=session_id).update(
                {"updated_at": _utcnow()}, synchronize_session=False
            )
            db.commit()
            logger.debug("Saved messages", session_id=session_id, count=len(messages))
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("Failed to save messages", session_id=session_id, error=str(e))
            raise
        finally:
            db.close()

    def replace_messages(self, session_id: str, messages: List[Dict[str, Any]]) -> None:
        """Replace the whole transcript (used after compaction)."""
        db = self.get_session()
        try:
            db.query(TranscriptMessageModel).filter_by(session_id=session_id).delete(synchronize_session=False)
            for position, message in enumerate(messages):
                db.add(
                    TranscriptMessageModel(
                        session_id=session_id,
                        position=position,
                        role=MessageRole(message["role"]),
                        content=message["content"],
                    )
                )
            db.commit()
            logger.debug("Replaced transcript", session_id=session_id, count=len(messages))
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("Failed to replace transcript", session_id=session_id, error=str(e))
            raise
        finally:
            db.close()

    def load_messages(self, session_id: str) -> List[Dict[str, Any]]:
        """
        Load a transcript in order.

        Returns:
            ``{"role", "content"}`` dicts ordered by position
        """
        db = self.get_session()
        try:
            models = (
                db.query(TranscriptMessageModel)
                .filter_by(session_id=session_id)
                .order_by(TranscriptMessageModel.position)
                .all()
            )
            return [{"role": m.role.value, "content": m.content} for m in models]
        finally:
            db.close()

    def close(self) -> None:
        """Close the database engine."""
        self.engine.dispose()
        logger.info("TranscriptStore closed")
