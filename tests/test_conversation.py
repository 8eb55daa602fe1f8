"""
Tests for chat request validation, the twin agent, the scorer and the turn engine.
"""

import json

import pytest
from requests.exceptions import ChunkedEncodingError

from convocate.agents.scorer import ScoreResult, StyleScorer, MAX_TIP_LENGTH
from convocate.agents.twin import TwinAgent, deduplicate
from convocate.conversation import ChatRequest, ConversationEngine, TurnState
from convocate.errors import (
    InvalidRequestError,
    MessageTooLongError,
    QuotaExceededError,
    TurnInProgressError,
)
from convocate.models.profile import StyleProfile
from convocate.models.runtime import ModelError
from convocate.store.kv import InMemoryStore
from convocate.store.ledger import QuotaLedger
from convocate.store.results import ResultCache, TicketStatus

from conftest import FakeRuntime, VALID_PROFILE, make_config, msg


def chat_payload(**overrides):
    payload = {
        "personaName": "Alice",
        "userMessage": "are you free tonight?",
        "styleProfile": VALID_PROFILE,
        "transcript": [
            {"sender": "Alice", "message": "lol same", "timestamp": "2023-01-02T10:00:00Z"},
            {"sender": "Bob", "message": "omw", "timestamp": "2023-01-02T10:01:00Z"},
        ],
        "chatHistory": [],
    }
    payload.update(overrides)
    return payload


def make_engine(runtime=None, max_messages=40):
    config = make_config()
    store = InMemoryStore()
    ledger = QuotaLedger(store, max_personas=2, max_messages=max_messages)
    results = ResultCache(store, ttl_seconds=600)
    engine = ConversationEngine(config, runtime or FakeRuntime(), ledger, results, store)
    return engine, store, ledger, results


@pytest.fixture
def engine_parts():
    parts = make_engine()
    yield parts
    parts[0].shutdown()


# ============================================================================
# Request validation
# ============================================================================

def test_chat_request_converts_wire_messages():
    request = ChatRequest.from_json(chat_payload(previousScore=71), 4000)

    assert request.persona_name == "Alice"
    assert [m.text for m in request.transcript] == ["lol same", "omw"]
    assert request.style_profile.tone == "Warm and teasing"
    assert request.previous_score == 71
    assert request.defer_score is False


@pytest.mark.parametrize("overrides", [
    {"personaName": ""},
    {"userMessage": "   "},
    {"userMessage": 42},
    {"styleProfile": "casual"},
    {"transcript": "not a list"},
    {"chatHistory": [{"sender": "Alice"}]},
])
def test_chat_request_rejects_bad_payloads(overrides):
    with pytest.raises(InvalidRequestError):
        ChatRequest.from_json(chat_payload(**overrides), 4000)


def test_chat_request_rejects_non_objects():
    with pytest.raises(InvalidRequestError):
        ChatRequest.from_json(None, 4000)


def test_chat_request_enforces_message_length():
    with pytest.raises(MessageTooLongError) as excinfo:
        ChatRequest.from_json(chat_payload(userMessage="x" * 11), 10)
    assert "10 characters" in excinfo.value.message


def test_previous_score_of_the_wrong_type_is_ignored():
    assert ChatRequest.from_json(chat_payload(previousScore=True), 4000).previous_score is None
    assert ChatRequest.from_json(chat_payload(previousScore="80"), 4000).previous_score is None


# ============================================================================
# Twin agent
# ============================================================================

def test_deduplicate_keeps_first_occurrence():
    messages = [msg("A", "hi", 0), msg("B", "hi", 1), msg("A", "hi", 2), msg("A", "yo", 3)]

    assert [(m.sender, m.text) for m in deduplicate(messages)] == [("A", "hi"), ("B", "hi"), ("A", "yo")]


def test_context_maps_roles_and_drops_repeats():
    agent = TwinAgent(FakeRuntime(), make_config().models.chat, transcript_context=2)
    transcript = [msg("Alice", "old", 0), msg("Bob", "hey", 1), msg("Alice", "lol", 2)]
    history = [msg("user", "hey", 3), msg("Alice", "sup", 4)]

    context = agent.build_context("Alice", transcript, history)

    assert context == [
        {"role": "user", "content": "hey"},
        {"role": "assistant", "content": "lol"},
        {"role": "assistant", "content": "sup"},
    ]


def test_reply_sends_system_context_and_user_message():
    runtime = FakeRuntime(reply="  haha yes  ")
    agent = TwinAgent(runtime, make_config().models.chat)
    profile = StyleProfile.from_partial(VALID_PROFILE)

    reply = agent.reply("Alice", profile, [msg("Bob", "hey", 0)], [], "wanna get food?")

    assert reply.text == "haha yes"
    assert reply.context_messages == 1
    call = runtime.calls_of("reply")[0]
    assert call["model"] == "chat-model"
    assert call["schema"] is None
    assert call["messages"][0]["role"] == "system"
    assert "You are Alice" in call["messages"][0]["content"]
    assert "Never mention being an AI" in call["messages"][0]["content"]
    assert call["messages"][-1] == {"role": "user", "content": "wanna get food?"}


def test_empty_reply_is_an_error():
    agent = TwinAgent(FakeRuntime(reply="   "), make_config().models.chat)

    with pytest.raises(ModelError):
        agent.reply("Alice", StyleProfile.fallback(), [], [], "hello")


def test_behavioral_profile_reflects_traits():
    profile = StyleProfile.from_partial(VALID_PROFILE)

    text = TwinAgent.behavioral_profile(profile)

    assert "Use expressive language" in text
    assert "Keep responses brief" in text


def test_contextual_enhancement_reacts_to_the_message():
    hints = TwinAgent.contextual_enhancement([], "ugh so stressed about work?")

    assert "Be supportive." in hints
    assert "Answer directly." in hints
    assert "Relate to work stuff." in hints
    assert "Build connection." in hints


# ============================================================================
# Scorer
# ============================================================================

def test_score_is_clamped_and_tips_trimmed():
    result = ScoreResult.from_json(json.dumps({
        "score": 140.6,
        "tips": ["  a  ", "b" * 200, "", "c", "d"],
    }))

    assert result.score == 100
    assert result.tips == ["a", "b" * MAX_TIP_LENGTH, "c"]
    assert result.scored


@pytest.mark.parametrize("text", [
    "not json",
    "[1, 2]",
    json.dumps({"score": True, "tips": []}),
    json.dumps({"score": "80", "tips": []}),
    json.dumps({"score": 80, "tips": "be casual"}),
])
def test_unusable_score_output_is_unscored(text):
    assert ScoreResult.from_json(text) == ScoreResult(score=0, tips=[], scored=False)


def test_scorer_never_raises():
    scorer = StyleScorer(FakeRuntime(score=ModelError("down")), make_config().models.score)

    result = scorer.score("Alice", StyleProfile.fallback(), "hey")

    assert result.to_dict() == {"score": 0, "tips": [], "scored": False}


def test_scorer_prompt_mentions_the_previous_score():
    scorer = StyleScorer(FakeRuntime(), make_config().models.score)
    profile = StyleProfile.from_partial(VALID_PROFILE)

    assert "PREVIOUS: 64" in scorer.build_prompt("Alice", profile, "hey", 64)
    assert "FIRST EVAL" in scorer.build_prompt("Alice", profile, "hey")


# ============================================================================
# Engine
# ============================================================================

def test_turn_replies_scores_and_charges_one_message(engine_parts):
    engine, store, ledger, _ = engine_parts
    request = ChatRequest.from_json(chat_payload(), 4000)

    result = engine.run_turn("c1", request)
    data = result.to_dict()

    assert result.state is TurnState.DONE
    assert data["twinReply"] == "lol yeah same, see you at 8"
    assert data["score"] == 82
    assert data["scored"] is True
    assert len(data["tips"]) == 3
    assert data["userMessage"]["sender"] == "user"
    assert data["personaMessage"]["sender"] == "Alice"
    assert data["usage"] == {"totalMessagesUsed": 1, "maxMessagesPerClient": 40, "contextMessagesUsed": 2}
    assert "scoringId" not in data
    assert ledger.get_record("c1").messages_used == 1
    assert store.get("turn:c1") is None


def test_bad_scorer_output_still_completes_the_turn():
    engine, _, _, _ = make_engine(FakeRuntime(score="I'd say about 80"))
    try:
        data = engine.run_turn("c1", ChatRequest.from_json(chat_payload(), 4000)).to_dict()
    finally:
        engine.shutdown()

    assert data["twinReply"]
    assert data["score"] == 0
    assert data["tips"] == []
    assert data["scored"] is False


def test_failed_reply_is_not_charged():
    engine, store, ledger, _ = make_engine(FakeRuntime(reply=ModelError("boom")))
    try:
        with pytest.raises(ModelError):
            engine.run_turn("c1", ChatRequest.from_json(chat_payload(), 4000))
    finally:
        engine.shutdown()

    assert ledger.get_record("c1").messages_used == 0
    assert store.get("turn:c1") is None


def test_message_quota_is_enforced():
    engine, _, ledger, _ = make_engine(max_messages=1)
    request = ChatRequest.from_json(chat_payload(), 4000)
    try:
        engine.run_turn("c1", request)
        with pytest.raises(QuotaExceededError) as excinfo:
            engine.run_turn("c1", request)
    finally:
        engine.shutdown()

    assert "maximum number of messages (1 messages)" in excinfo.value.message
    assert ledger.get_record("c1").messages_used == 1


def test_one_turn_in_flight_per_client(engine_parts):
    engine, store, ledger, _ = engine_parts
    store.set("turn:c1", 0)

    with pytest.raises(TurnInProgressError):
        engine.run_turn("c1", ChatRequest.from_json(chat_payload(), 4000))

    assert ledger.get_record("c1").messages_used == 0
    assert engine.run_turn("c2", ChatRequest.from_json(chat_payload(), 4000)).reply


def test_deferred_score_is_collected_from_the_cache(engine_parts):
    engine, _, _, results = engine_parts
    request = ChatRequest.from_json(chat_payload(deferScore=True), 4000)

    data = engine.run_turn("c1", request).to_dict()

    assert data["score"] is None
    assert data["scored"] is False
    assert data["tips"] == []
    scoring_id = data["scoringId"]

    engine.executor.shutdown(wait=True)
    lookup = results.get(scoring_id)
    assert lookup.status is TicketStatus.RESOLVED
    assert lookup.result.score == 82
    assert results.get(scoring_id).status is TicketStatus.NOT_FOUND


def test_defer_argument_overrides_the_request(engine_parts):
    engine, _, _, _ = engine_parts
    request = ChatRequest.from_json(chat_payload(deferScore=True), 4000)

    data = engine.run_turn("c1", request, defer_score=False).to_dict()

    assert data["score"] == 82
    assert "scoringId" not in data


def test_scorer_absorbs_unexpected_errors():
    scorer = StyleScorer(FakeRuntime(score=ChunkedEncodingError("broken")), make_config().models.score)

    assert scorer.score("Alice", StyleProfile.fallback(), "hey") == ScoreResult.unscored()


def test_turn_survives_a_transport_error_while_scoring():
    engine, _, ledger, _ = make_engine(FakeRuntime(score=ChunkedEncodingError("broken")))
    try:
        data = engine.run_turn("c1", ChatRequest.from_json(chat_payload(), 4000)).to_dict()
    finally:
        engine.shutdown()

    assert data["twinReply"] == "lol yeah same, see you at 8"
    assert data["scored"] is False
    assert ledger.get_record("c1").messages_used == 1


def test_turn_state_is_tracked_in_the_store(engine_parts):
    engine, _, _, _ = engine_parts
    seen = []
    reply, score = engine.twin.reply, engine.scorer.score

    def tracking_reply(*args):
        seen.append(engine.turn_state("c1"))
        return reply(*args)

    def tracking_score(*args):
        seen.append(engine.turn_state("c1"))
        return score(*args)

    engine.twin.reply = tracking_reply
    engine.scorer.score = tracking_score

    assert engine.turn_state("c1") is TurnState.IDLE
    engine.run_turn("c1", ChatRequest.from_json(chat_payload(), 4000))

    assert seen == [TurnState.AWAITING_REPLY, TurnState.AWAITING_SCORE]
    assert engine.turn_state("c1") is TurnState.IDLE
