"""
Convocate - Message Record
The unified message shape every parser produces.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from dateutil import parser as dtparser


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Optional[str]) -> datetime:
    """
    Parse a free-form timestamp into an aware UTC datetime.

    Naive values are taken as UTC. Anything unparseable becomes now; the
    message itself is kept.
    """
    if value is None or not str(value).strip():
        return utc_now()
    try:
        parsed = dtparser.parse(str(value).strip())
    except (ValueError, OverflowError):
        return utc_now()
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


@dataclass(frozen=True)
class Message:
    """A single chat message from an export or a practice session."""
    sender: str
    text: str
    timestamp: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sender": self.sender,
            "message": self.text,
            "timestamp": self.timestamp.isoformat()
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        """Build a message from its wire form. Raises ValueError on a bad shape."""
        if not isinstance(data, dict):
            raise ValueError("message must be an object")
        sender = data.get("sender")
        text = data.get("message", data.get("text"))
        if not isinstance(sender, str) or not isinstance(text, str):
            raise ValueError("message needs string 'sender' and 'message' fields")
        return cls(sender=sender, text=text, timestamp=parse_timestamp(data.get("timestamp")))


def messages_to_dicts(messages: List[Message]) -> List[Dict[str, Any]]:
    return [m.to_dict() for m in messages]
