"""
Convocate - Persona Record
What the upload pipeline hands back to the client for each inferred speaker.
"""

import uuid
from datetime import datetime, timezone
from typing import Dict, List, Any
from dataclasses import dataclass, field

from ..models.message import Message, messages_to_dicts
from ..models.profile import StyleProfile


@dataclass
class Persona:
    """A speaker inferred from an upload, ready to be chatted with."""
    name: str
    message_count: int
    transcript: List[Message]
    style_profile: StyleProfile
    chat_history: List[Message] = field(default_factory=list)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "messageCount": self.message_count,
            "transcript": messages_to_dicts(self.transcript),
            "chatHistory": messages_to_dicts(self.chat_history),
            "styleProfile": self.style_profile.to_dict(),
            "createdAt": self.created_at
        }
