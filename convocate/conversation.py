"""
Convocate - Conversation Engine
Runs one practice-chat turn: the persona replies, then the reply is scored.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Any
from dataclasses import dataclass

from .config import AppConfig
from .errors import InvalidRequestError, MessageTooLongError, QuotaExceededError, TurnInProgressError
from .agents.twin import TwinAgent
from .agents.scorer import StyleScorer, ScoreResult
from .models.message import Message
from .models.profile import StyleProfile
from .models.runtime import OllamaRuntime, ModelError
from .store.kv import KeyValueStore
from .store.ledger import QuotaLedger
from .store.results import ResultCache, new_ticket_id

logger = logging.getLogger(__name__)

TURN_KEY_PREFIX = "turn:"
USER_SENDER = "user"


class TurnState(Enum):
    """Chat turn lifecycle."""
    IDLE = "idle"
    AWAITING_REPLY = "awaiting_reply"
    AWAITING_SCORE = "awaiting_score"
    DONE = "done"
    FAILED = "failed"


def _message_list(value: Any, name: str) -> List[Message]:
    if not isinstance(value, list):
        raise InvalidRequestError()
    try:
        return [Message.from_dict(item) for item in value]
    except ValueError as e:
        raise InvalidRequestError(f"Invalid {name} entry: {e}")


@dataclass
class ChatRequest:
    """A validated /api/chat payload."""
    persona_name: str
    transcript: List[Message]
    chat_history: List[Message]
    user_message: str
    style_profile: StyleProfile
    previous_score: Optional[float] = None
    defer_score: bool = False

    @classmethod
    def from_json(cls, data: Any, max_message_length: int) -> "ChatRequest":
        """
        Validate and convert a request body.

        Raises:
            InvalidRequestError: missing or mistyped fields.
            MessageTooLongError: user message over the length cap.
        """
        if not isinstance(data, dict):
            raise InvalidRequestError()

        persona_name = data.get("personaName")
        user_message = data.get("userMessage")
        profile = data.get("styleProfile")
        if not isinstance(persona_name, str) or not persona_name.strip():
            raise InvalidRequestError()
        if not isinstance(user_message, str) or not user_message.strip():
            raise InvalidRequestError()
        if not isinstance(profile, dict):
            raise InvalidRequestError()
        if len(user_message) > max_message_length:
            raise MessageTooLongError(max_message_length)

        previous = data.get("previousScore")
        if isinstance(previous, bool) or not isinstance(previous, (int, float)):
            previous = None

        return cls(
            persona_name=persona_name,
            transcript=_message_list(data.get("transcript"), "transcript"),
            chat_history=_message_list(data.get("chatHistory"), "chatHistory"),
            user_message=user_message,
            style_profile=StyleProfile.from_partial(profile),
            previous_score=previous,
            defer_score=bool(data.get("deferScore", False))
        )


@dataclass
class TurnResult:
    """Outcome of a completed turn."""
    reply: str
    user_message: Message
    persona_message: Message
    usage: Dict[str, int]
    score: Optional[ScoreResult] = None
    scoring_id: Optional[str] = None
    state: TurnState = TurnState.DONE

    def to_dict(self) -> Dict[str, Any]:
        score = self.score or ScoreResult.unscored()
        data = {
            "twinReply": self.reply,
            "score": score.score if self.scoring_id is None else None,
            "tips": score.tips,
            "scored": score.scored,
            "userMessage": self.user_message.to_dict(),
            "personaMessage": self.persona_message.to_dict(),
            "usage": self.usage
        }
        if self.scoring_id is not None:
            data["scoringId"] = self.scoring_id
        return data


class ConversationEngine:
    """
    Turn-taking chat against a persona.

    Per turn: IDLE -> AWAITING_REPLY -> AWAITING_SCORE -> DONE, or FAILED if
    the reply call fails. The state lives on the client's turn key in the
    store until the turn ends (see turn_state()). A client has at most one
    turn in flight; the message quota is checked before and charged after a
    successful reply.
    Deferred scoring runs on the engine's executor and is collected through
    the result cache.
    """

    def __init__(
        self,
        config: AppConfig,
        runtime: OllamaRuntime,
        ledger: QuotaLedger,
        results: ResultCache,
        store: KeyValueStore,
        twin: Optional[TwinAgent] = None,
        scorer: Optional[StyleScorer] = None
    ):
        self.config = config
        self.ledger = ledger
        self.results = results
        self.store = store
        self.twin = twin or TwinAgent(runtime, config.models.chat, config.chat.transcript_context)
        self.scorer = scorer or StyleScorer(runtime, config.models.score)
        self.executor = ThreadPoolExecutor(
            max_workers=max(1, config.scoring.workers),
            thread_name_prefix="convocate-score"
        )

    def _turn_key(self, client_id: str) -> str:
        return f"{TURN_KEY_PREFIX}{client_id}"

    def _transition(self, client_id: str, started_at: float, state: TurnState) -> TurnState:
        self.store.set(self._turn_key(client_id), {"state": state.value, "started_at": started_at})
        logger.debug("Turn for %s -> %s", client_id, state.value)
        return state

    def turn_state(self, client_id: str) -> TurnState:
        """State of the client's in-flight turn; IDLE when none is running."""
        record = self.store.get(self._turn_key(client_id))
        if not isinstance(record, dict):
            return TurnState.IDLE
        return TurnState(record["state"])

    def run_turn(self, client_id: str, request: ChatRequest, defer_score: Optional[bool] = None) -> TurnResult:
        """
        Run one chat turn.

        Raises:
            QuotaExceededError: the client has used all its messages.
            TurnInProgressError: a previous turn from this client is still running.
            ModelError: the reply call failed (ModelQuotaError for exhausted credits).
        """
        decision = self.ledger.check_messages(client_id)
        if not decision.allowed:
            raise QuotaExceededError(decision.reason)

        turn_key = self._turn_key(client_id)
        started_at = time.time()
        if not self.store.set_if_absent(turn_key, {"state": TurnState.IDLE.value, "started_at": started_at}):
            raise TurnInProgressError()

        defer = request.defer_score if defer_score is None else defer_score
        try:
            state = self._transition(client_id, started_at, TurnState.AWAITING_REPLY)
            try:
                reply = self.twin.reply(
                    request.persona_name,
                    request.style_profile,
                    request.transcript,
                    request.chat_history,
                    request.user_message
                )
            except ModelError as e:
                self._transition(client_id, started_at, TurnState.FAILED)
                logger.warning("Reply generation for %s failed: %s", request.persona_name, e)
                raise

            record = self.ledger.record_message_used(client_id).record
            state = self._transition(client_id, started_at, TurnState.AWAITING_SCORE)

            score = None
            scoring_id = None
            if defer:
                scoring_id = new_ticket_id()
                future = self.executor.submit(
                    self.scorer.score, request.persona_name, request.style_profile,
                    reply.text, request.previous_score
                )
                self.results.put(scoring_id, future)
            else:
                score = self.scorer.score(
                    request.persona_name, request.style_profile, reply.text, request.previous_score
                )

            state = self._transition(client_id, started_at, TurnState.DONE)
        finally:
            self.store.delete(turn_key)

        now = datetime.now(timezone.utc)
        return TurnResult(
            reply=reply.text,
            user_message=Message(sender=USER_SENDER, text=request.user_message, timestamp=now),
            persona_message=Message(sender=request.persona_name, text=reply.text, timestamp=now),
            usage={
                "totalMessagesUsed": record.messages_used,
                "maxMessagesPerClient": self.ledger.max_messages,
                "contextMessagesUsed": reply.context_messages
            },
            score=score,
            scoring_id=scoring_id,
            state=state
        )

    def shutdown(self):
        self.executor.shutdown(wait=False)
