"""
Convocate - Shared State
"""

from .kv import KeyValueStore, InMemoryStore
from .ledger import QuotaLedger, QuotaRecord, QuotaDecision
from .results import ResultCache, ScoringTicket, CacheLookup, TicketStatus, new_ticket_id

__all__ = [
    "KeyValueStore", "InMemoryStore",
    "QuotaLedger", "QuotaRecord", "QuotaDecision",
    "ResultCache", "ScoringTicket", "CacheLookup", "TicketStatus", "new_ticket_id",
]
