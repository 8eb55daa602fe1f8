"""
Convocate - Quota Ledger
Permanent per-client ceilings on personas created and chat messages sent.
Counters only ever go up.
"""

import logging
from typing import Dict, Any
from dataclasses import dataclass, asdict

from .kv import KeyValueStore

logger = logging.getLogger(__name__)

KEY_PREFIX = "quota:"
PERSONAS_FIELD = "persona_count"
MESSAGES_FIELD = "messages_used"

DEFAULT_MAX_PERSONAS = 2
DEFAULT_MAX_MESSAGES = 40


@dataclass
class QuotaRecord:
    """Usage counters for one client."""
    persona_count: int = 0
    messages_used: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class QuotaDecision:
    """Whether an action may proceed, and the user-facing reason if not."""
    allowed: bool
    record: QuotaRecord
    reason: str = ""


class QuotaLedger:
    """
    Tracks per-client usage against fixed ceilings.

    Persona slots are reserved with a single atomic compare-and-increment,
    so two concurrent uploads cannot both take the last slot.
    """

    def __init__(self, store: KeyValueStore, max_personas: int = DEFAULT_MAX_PERSONAS,
                 max_messages: int = DEFAULT_MAX_MESSAGES):
        self.store = store
        self.max_personas = max_personas
        self.max_messages = max_messages

    def _key(self, client_id: str) -> str:
        return f"{KEY_PREFIX}{client_id}"

    def get_record(self, client_id: str) -> QuotaRecord:
        data = self.store.get(self._key(client_id)) or {}
        return QuotaRecord(
            persona_count=data.get(PERSONAS_FIELD, 0),
            messages_used=data.get(MESSAGES_FIELD, 0)
        )

    def remaining_personas(self, client_id: str) -> int:
        return max(0, self.max_personas - self.get_record(client_id).persona_count)

    # ========================================================================
    # Personas
    # ========================================================================

    def persona_limit_message(self, used: int) -> str:
        return (
            f"You've exceeded the maximum number of personas ({self.max_personas} personas: "
            f"yourself + one other person). You have already created {used} personas. "
            f"This limit is permanent and cannot be reset by deleting personas."
        )

    def check(self, client_id: str) -> QuotaDecision:
        """Is at least one persona slot left? Reserves nothing."""
        record = self.get_record(client_id)
        if record.persona_count >= self.max_personas:
            return QuotaDecision(False, record, self.persona_limit_message(record.persona_count))
        return QuotaDecision(True, record)

    def check_and_reserve(self, client_id: str) -> QuotaDecision:
        """Atomically take one persona slot if one is left."""
        new_count = self.store.increment(self._key(client_id), PERSONAS_FIELD, 1, ceiling=self.max_personas)
        if new_count is None:
            record = self.get_record(client_id)
            logger.info("Persona slot refused for %s (%d/%d used)",
                        client_id, record.persona_count, self.max_personas)
            return QuotaDecision(False, record, self.persona_limit_message(record.persona_count))
        return QuotaDecision(True, self.get_record(client_id))

    def record_personas_created(self, client_id: str, count: int) -> QuotaRecord:
        """Add count to the persona counter without a ceiling check."""
        if count > 0:
            self.store.increment(self._key(client_id), PERSONAS_FIELD, count)
        return self.get_record(client_id)

    # ========================================================================
    # Messages
    # ========================================================================

    def message_limit_message(self) -> str:
        return (
            f"You've reached the maximum number of messages ({self.max_messages} messages). "
            f"This limit is permanent and cannot be reset."
        )

    def check_messages(self, client_id: str) -> QuotaDecision:
        record = self.get_record(client_id)
        if record.messages_used >= self.max_messages:
            return QuotaDecision(False, record, self.message_limit_message())
        return QuotaDecision(True, record)

    def record_message_used(self, client_id: str) -> QuotaDecision:
        """Count one completed chat turn, refusing past the ceiling."""
        new_count = self.store.increment(self._key(client_id), MESSAGES_FIELD, 1, ceiling=self.max_messages)
        record = self.get_record(client_id)
        if new_count is None:
            return QuotaDecision(False, record, self.message_limit_message())
        return QuotaDecision(True, record)

    def usage(self, client_id: str) -> Dict[str, int]:
        record = self.get_record(client_id)
        return {
            "personasCreated": record.persona_count,
            "maxPersonas": self.max_personas,
            "messagesUsed": record.messages_used,
            "maxMessages": self.max_messages
        }
