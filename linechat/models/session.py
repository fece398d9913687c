"""In-memory conversation session for a LINE user."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from linechat.models.chat import ChatMessage


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ConversationSession:
    """Bounded conversation history for one user."""

    user_id: str
    timeout: timedelta
    max_turns: int
    messages: List[ChatMessage] = field(default_factory=list)
    last_access_time: datetime = field(default_factory=utcnow)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """A session sitting idle for exactly ``timeout`` is still alive."""
        now = now or utcnow()
        return now - self.last_access_time > self.timeout

    def add_turn(self, user_message: ChatMessage, assistant_message: ChatMessage) -> None:
        """Append one user/assistant pair, evicting the oldest pair when full."""
        if len(self.messages) >= self.max_turns * 2:
            self.messages = self.messages[2:]
        self.messages.append(user_message)
        self.messages.append(assistant_message)

    def get_history(self) -> List[ChatMessage]:
        """Return a copy of the history in chronological order."""
        return list(self.messages)

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "message_count": len(self.messages),
            "last_access_time": self.last_access_time.isoformat(),
            "timeout_seconds": self.timeout.total_seconds(),
            "max_turns": self.max_turns,
        }
