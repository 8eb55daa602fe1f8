"""
Shared fixtures: a scripted model runtime, a test configuration and export builders.
"""

import json
import threading
from datetime import datetime, timedelta, timezone

import pytest

from convocate.config import AppConfig, OllamaConfig, ModelsConfig, ModelConfig
from convocate.main import create_app
from convocate.models.message import Message
from convocate.models.runtime import GenerationResult
from convocate.personas.extractor import STYLE_SCHEMA
from convocate.agents.scorer import SCORE_SCHEMA
from convocate.store.kv import InMemoryStore


VALID_PROFILE = {
    "tone": "Warm and teasing",
    "formality": "casual",
    "pacing": "Quick bursts",
    "vocabulary": ["lol", "tbh", "lowkey"],
    "quirks": ["lowercase everything"],
    "examples": ["lol same", "omw"],
    "traits": {"openness": 8, "expressiveness": 9, "humor": 7,
               "empathy": 6, "directness": 5, "enthusiasm": 8},
    "emotions": {
        "primary": "playful",
        "secondary": ["curious"],
        "triggers": {"positive": ["plans"], "negative": ["being ignored"]},
        "mood_patterns": {"typical_mood": "upbeat", "mood_indicators": ["!!"], "stress_indicators": ["ugh"]}
    },
    "preferences": {
        "topics": ["food"],
        "avoids": ["politics"],
        "engagement": ["asks follow-ups"],
        "relationship_dynamics": {"power_position": "equal", "trust_indicators": ["inside jokes"],
                                  "boundary_style": "open"},
        "context_preferences": {"formal_contexts": [], "casual_contexts": ["texts"], "work_contexts": []}
    },
    "communication_patterns": {
        "message_length": "short",
        "punctuation_style": "emojis",
        "capitalization": "casual",
        "abbreviations": ["omw"],
        "unique_expressions": ["bet"]
    }
}

VALID_SCORE = {"score": 82, "tips": ["Use more lowercase", "Add a 'lol'", "Keep it shorter"]}


class FakeRuntime:
    """
    Stand-in for OllamaRuntime that answers by call kind.

    Each kind ("style", "reply", "score") maps to a string, an exception to
    raise, or a list of those consumed in order (the last one repeats).
    """

    def __init__(self, style=None, reply="lol yeah same, see you at 8", score=None, healthy=True):
        self.outputs = {
            "style": json.dumps(VALID_PROFILE) if style is None else style,
            "reply": reply,
            "score": json.dumps(VALID_SCORE) if score is None else score,
        }
        self.healthy = healthy
        self.calls = []
        self._lock = threading.Lock()

    def _kind(self, schema):
        if schema is STYLE_SCHEMA:
            return "style"
        if schema is SCORE_SCHEMA:
            return "score"
        return "reply"

    def _next_output(self, kind):
        output = self.outputs[kind]
        if isinstance(output, list):
            return output.pop(0) if len(output) > 1 else output[0]
        return output

    def calls_of(self, kind):
        return [call for call in self.calls if call["kind"] == kind]

    def check_health(self):
        return self.healthy

    def generate(self, model, prompt, system=None, max_tokens=300, temperature=0.7, schema=None):
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})
        return self.chat(model, messages, max_tokens=max_tokens, temperature=temperature, schema=schema)

    def chat(self, model, messages, max_tokens=300, temperature=0.7, schema=None):
        kind = self._kind(schema)
        with self._lock:
            self.calls.append({"kind": kind, "model": model, "messages": messages, "schema": schema})
            output = self._next_output(kind)
        if isinstance(output, BaseException):
            raise output
        return GenerationResult(text=output, tokens=10, duration_ms=1.0, model=model)


def make_config(**sections) -> AppConfig:
    """Test configuration; keyword arguments replace whole sections."""
    config = AppConfig(
        ollama=OllamaConfig(base_url="http://ollama.test", timeout=5, retry_attempts=1, retry_delay=0),
        models=ModelsConfig(
            style=ModelConfig(model="style-model", max_output_tokens=2000, temperature=0.4),
            chat=ModelConfig(model="chat-model", max_output_tokens=300, temperature=0.9),
            score=ModelConfig(model="score-model", max_output_tokens=300, temperature=0.2)
        )
    )
    for name, value in sections.items():
        setattr(config, name, value)
    return config


def at(minutes: float, base: datetime = datetime(2023, 1, 2, 10, 0, tzinfo=timezone.utc)) -> datetime:
    return base + timedelta(minutes=minutes)


def msg(sender: str, text: str, minutes: float = 0) -> Message:
    return Message(sender=sender, text=text, timestamp=at(minutes))


def whatsapp_export(rounds: int = 12, senders=("Alice", "Bob"), start_minute: int = 0) -> bytes:
    """Alternating one-minute dialogue in WhatsApp export format."""
    lines = []
    minute = start_minute
    for i in range(rounds):
        for sender in senders:
            stamp = at(minute)
            text = f"are we still on for tonight? ({i})" if sender == senders[0] else f"yeah lol see you at 8! ({i})"
            lines.append(f"[{stamp.month}/{stamp.day}/{stamp:%y}, {stamp:%H:%M}] {sender}: {text}")
            minute += 1
    return "\n".join(lines).encode("utf-8")


@pytest.fixture
def runtime():
    return FakeRuntime()


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def config():
    return make_config()


@pytest.fixture
def app(config, runtime, store):
    app = create_app(config=config, runtime=runtime, store=store)
    app.config["TESTING"] = True
    yield app
    app.config["CONVOCATE_ENGINE"].shutdown()


@pytest.fixture
def client(app):
    return app.test_client()
