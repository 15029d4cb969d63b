"""
Learn from conversations: user messages that state a preference, habit or
goal are appended to the `user_preferences` memory, and every answered turn
is kept as a `conversations` memory for later recall.
"""

import logging
from typing import Any

from ..models.base import utcnow
from .memory import MemoryStore

logger = logging.getLogger(__name__)

PREFERENCE_KEYWORDS = [
    "prefer", "like", "dislike", "habit", "goal",
    "thích", "không thích", "thói quen", "mục tiêu",
]
PREFERENCES_KEY = "user_preferences"
# Category the memory router pulls for task, planning and general questions.
PREFERENCES_CATEGORY = "preference"
MAX_ENTRIES = 50
CONVERSATIONS_CATEGORY = "conversations"


class MemoryUpdater:

    def __init__(self, memory: MemoryStore):
        self.memory = memory

    async def update_from_conversation(self, user_message: str, ai_response: str = "") -> bool:
        """Returns True when the message was remembered."""
        text = user_message.lower()
        if not any(keyword in text for keyword in PREFERENCE_KEYWORDS):
            return False

        await self.save_insight(PREFERENCES_KEY, {
            "message": user_message,
            "timestamp": utcnow().isoformat(),
        })
        logger.info("Remembered preference statement: %r", user_message[:100])
        return True

    async def store_conversation(self, user_message: str, ai_response: str) -> str:
        """Keep one answered turn as its own memory. Returns the memory key."""
        now = utcnow()
        key = f"conversation_{now.strftime('%Y%m%d%H%M%S%f')}"
        await self.memory.store(
            key,
            {
                "user_message": user_message,
                "ai_response": ai_response,
                "timestamp": now.isoformat(),
            },
            category=CONVERSATIONS_CATEGORY,
            content=f"User: {user_message}\nAssistant: {ai_response}",
            metadata={
                "user_message_length": len(user_message),
                "ai_response_length": len(ai_response),
            },
        )
        return key

    async def save_insight(self, key: str, entry: Any) -> None:
        """Append `entry` to the list stored under `key`, oldest dropped past MAX_ENTRIES."""
        existing = await self.memory.get(key)
        entries = list(existing.value) if existing is not None and isinstance(existing.value, list) else []
        entries.append(entry)
        entries = entries[-MAX_ENTRIES:]

        content = "\n".join(
            e["message"] if isinstance(e, dict) and "message" in e else str(e) for e in entries
        )
        await self.memory.store(
            key,
            entries,
            category=existing.category if existing is not None else PREFERENCES_CATEGORY,
            content=content,
            metadata={"source": "conversation", "entries": len(entries)},
        )
