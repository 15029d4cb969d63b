"""
Long-term memory persistence.

One row per durable fact, preference or insight, addressed by a unique key.
Categories are free text (preferences, insights, general, task_pattern, ...);
callers agree on the vocabulary.
"""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, DateTime, Float, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import RecordBase, utcnow


class LongTermMemory(RecordBase):
    __tablename__ = "long_term_memories"

    key: Mapped[str] = mapped_column(String, nullable=False, unique=True, index=True)
    category: Mapped[str] = mapped_column(String, nullable=False, default="general", index=True)
    value: Mapped[Any] = mapped_column(JSON, nullable=True)
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    embedding: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    relevance_score: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)
    # "metadata" is reserved on declarative classes
    meta: Mapped[dict] = mapped_column("metadata", JSON, nullable=False, default=dict)
    last_accessed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True, default=utcnow
    )
