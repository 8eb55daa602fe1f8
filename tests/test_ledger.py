"""
Tests for the key-value store and the per-client quota ledger.
"""

import threading

from convocate.store.kv import InMemoryStore
from convocate.store.ledger import QuotaLedger


def make_ledger(max_personas=2, max_messages=3):
    return QuotaLedger(InMemoryStore(), max_personas=max_personas, max_messages=max_messages)


# ============================================================================
# Store
# ============================================================================

def test_increment_respects_the_ceiling():
    store = InMemoryStore()

    assert store.increment("k", "n", 1, ceiling=2) == 1
    assert store.increment("k", "n", 1, ceiling=2) == 2
    assert store.increment("k", "n", 1, ceiling=2) is None
    assert store.get("k") == {"n": 2}


def test_get_returns_a_copy_of_dict_values():
    store = InMemoryStore()
    store.set("k", {"n": 1})

    store.get("k")["n"] = 99

    assert store.get("k") == {"n": 1}


def test_set_if_absent_and_pop():
    store = InMemoryStore()

    assert store.set_if_absent("k", "first")
    assert not store.set_if_absent("k", "second")
    assert store.pop("k") == "first"
    assert store.pop("k") is None


def test_scan_filters_by_prefix():
    store = InMemoryStore()
    store.set("score:a", 1)
    store.set("score:b", 2)
    store.set("quota:c", 3)

    assert sorted(key for key, _ in store.scan("score:")) == ["score:a", "score:b"]
    assert len(store) == 3


# ============================================================================
# Personas
# ============================================================================

def test_new_client_has_an_empty_record():
    ledger = make_ledger()

    assert ledger.get_record("c1").persona_count == 0
    assert ledger.remaining_personas("c1") == 2
    assert ledger.check("c1").allowed


def test_reserve_stops_at_the_ceiling():
    ledger = make_ledger()

    assert ledger.check_and_reserve("c1").allowed
    assert ledger.check_and_reserve("c1").allowed
    refused = ledger.check_and_reserve("c1")

    assert not refused.allowed
    assert refused.record.persona_count == 2
    assert "maximum number of personas (2 personas" in refused.reason
    assert "already created 2 personas" in refused.reason
    assert not ledger.check("c1").allowed


def test_clients_are_tracked_separately():
    ledger = make_ledger()
    ledger.record_personas_created("c1", 2)

    assert ledger.remaining_personas("c1") == 0
    assert ledger.remaining_personas("c2") == 2


def test_record_personas_created_ignores_non_positive_counts():
    ledger = make_ledger()
    ledger.record_personas_created("c1", 0)

    assert ledger.store.get("quota:c1") is None


def test_concurrent_reservations_never_exceed_the_ceiling():
    ledger = make_ledger(max_personas=2)
    results = []
    lock = threading.Lock()

    def reserve():
        decision = ledger.check_and_reserve("c1")
        with lock:
            results.append(decision.allowed)

    threads = [threading.Thread(target=reserve) for _ in range(20)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert results.count(True) == 2
    assert ledger.get_record("c1").persona_count == 2


# ============================================================================
# Messages
# ============================================================================

def test_message_counter_is_permanent():
    ledger = make_ledger(max_messages=2)

    assert ledger.record_message_used("c1").allowed
    assert ledger.record_message_used("c1").allowed
    assert ledger.check_messages("c1").allowed is False

    refused = ledger.record_message_used("c1")
    assert not refused.allowed
    assert refused.record.messages_used == 2
    assert refused.reason == (
        "You've reached the maximum number of messages (2 messages). "
        "This limit is permanent and cannot be reset."
    )


def test_usage_snapshot():
    ledger = make_ledger(max_personas=2, max_messages=40)
    ledger.check_and_reserve("c1")
    ledger.record_message_used("c1")

    assert ledger.usage("c1") == {
        "personasCreated": 1,
        "maxPersonas": 2,
        "messagesUsed": 1,
        "maxMessages": 40,
    }
