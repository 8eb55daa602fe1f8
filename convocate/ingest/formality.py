"""
Convocate - Formality Detection
Rough formal/casual/mixed read of a speaker's messages (regex only, no LLM).
"""

import re
from typing import List

from ..models.message import Message
from .sampler import HAS_EMOJI

FORMAL_THRESHOLD = 1.5
CASUAL_THRESHOLD = -0.5

SIGN_OFFS = ("dear ", "sincerely", "best regards")
POLITENESS = ("thank you", "please", "appreciate")
BUSINESS_WORDS = ("meeting", "schedule", "regarding")

FORMAL_GREETING = re.compile(r'^(hello|good morning|good afternoon)', re.IGNORECASE)
CASUAL_GREETING = re.compile(r'^(hey|hi|sup|yo)\b', re.IGNORECASE)
SLANG = re.compile(r'\b(lol|omg|btw|tbh|nah|yeah|bro|dude)\b')
END_PUNCTUATION = re.compile(r'[.!?]$')


def message_formality(text: str) -> int:
    """Score one message: formal markers push up, casual markers push down."""
    lower = text.lower()
    score = 0

    if any(marker in lower for marker in SIGN_OFFS):
        score += 3
    if any(marker in lower for marker in POLITENESS):
        score += 1
    if any(marker in lower for marker in BUSINESS_WORDS):
        score += 1
    if FORMAL_GREETING.match(lower):
        score += 1
    if len(lower) > 100:
        score += 1

    if SLANG.search(lower):
        score -= 2
    if HAS_EMOJI.search(text):
        score -= 1
    if len(lower) < 30:
        score -= 1
    if not END_PUNCTUATION.search(lower.strip()):
        score -= 1
    if CASUAL_GREETING.match(lower):
        score -= 1

    return score


def detect_formality(messages: List[Message]) -> str:
    """Classify a speaker as "formal", "casual" or "mixed" from their average score."""
    if not messages:
        return "casual"

    average = sum(message_formality(m.text) for m in messages) / len(messages)
    if average > FORMAL_THRESHOLD:
        return "formal"
    if average < CASUAL_THRESHOLD:
        return "casual"
    return "mixed"
