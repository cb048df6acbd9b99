"""
Persistence Layer

SQLAlchemy models and store for agent conversation transcripts.
"""

from .models import Base, MessageRole, TranscriptMessageModel, TranscriptSessionModel
from .service import TranscriptStore

__all__ = [
    "Base",
    "MessageRole",
    "TranscriptSessionModel",
    "TranscriptMessageModel",
    "TranscriptStore",
]
