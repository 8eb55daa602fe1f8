"""
Convocate - Representative Sampler
Picks a bounded, diverse, quality-weighted slice of one speaker's messages.

Selection is a union of four strategies, each excluding what earlier ones took:
1. 40% highest quality score
2. 30% spread over content categories (question, statement, reaction, planning, casual)
3. 20% spread over behavioural categories (proactive, reactive, emotional, analytical, casual)
4. 10% most recent
"""

import math
import re
from typing import Callable, Dict, List, Sequence

from ..models.message import Message

HAS_EMOJI = re.compile("[\U0001F300-\U0001FAFF\u2600-\u27BF]")

QUALITY_SHARE = 0.4
CONTENT_SHARE = 0.3
BEHAVIOR_SHARE = 0.2
RECENT_SHARE = 0.1

# Per-message formatting overhead when counting the prompt budget
BUDGET_OVERHEAD = 8


# ============================================================================
# Quality scoring
# ============================================================================

def quality_score(message: Message) -> float:
    """
    Score how much a message reveals about its author's voice.

    Mid-length messages score best; questions, exclamations, trailing
    thoughts, varied wording, slang and emoji all add to the score.
    """
    text = message.text
    length = len(text)
    score = 0.0

    if 10 < length < 200:
        score += 3
    elif length >= 200:
        score += 2
    else:
        score += 1

    if "?" in text:
        score += 2
    if "!" in text:
        score += 1
    if "..." in text:
        score += 1

    words = text.split()
    if words:
        score += (len({w.lower() for w in words}) / len(words)) * 3

    lower = text.lower()
    if "lol" in lower or "omg" in lower:
        score += 1
    if HAS_EMOJI.search(text):
        score += 1

    return score


# ============================================================================
# Category predicates
# ============================================================================

Predicate = Callable[[Message], bool]

PLANNING_WORDS = ("when", "where", "what time")
CASUAL_WORDS = ("lol", "yeah", "nah", "bro", "dude")
PROACTIVE_PATTERN = re.compile(r"(?:\b|^)let's\b|\bwe should\b", re.IGNORECASE)
SLANG_PATTERN = re.compile(r"\b(bro|dude|lol)\b", re.IGNORECASE)


def _is_reactive_expression(m: Message) -> bool:
    return "!" in m.text or bool(HAS_EMOJI.search(m.text))


CONTENT_CATEGORIES: Dict[str, Predicate] = {
    "question": lambda m: "?" in m.text,
    "statement": lambda m: "?" not in m.text and len(m.text) > 20,
    "reaction": _is_reactive_expression,
    "planning": lambda m: any(word in m.text.lower() for word in PLANNING_WORDS),
    "casual": lambda m: any(word in m.text.lower() for word in CASUAL_WORDS),
}

BEHAVIOR_CATEGORIES: Dict[str, Predicate] = {
    "proactive": lambda m: "?" in m.text or bool(PROACTIVE_PATTERN.search(m.text)),
    "reactive": lambda m: len(m.text) < 20 and "?" not in m.text,
    "emotional": _is_reactive_expression,
    "analytical": lambda m: len(m.text) > 50 and "." in m.text and "!" not in m.text,
    "casual": lambda m: bool(SLANG_PATTERN.search(m.text)),
}


def _stratified(
    messages: Sequence[Message],
    candidates: List[int],
    categories: Dict[str, Predicate],
    count: int
) -> List[int]:
    """Take an even share of candidates from each category, each message at most once."""
    if count <= 0:
        return []

    per_category = max(1, math.ceil(count / len(categories)))
    picked: List[int] = []
    seen = set()
    for predicate in categories.values():
        matches = [i for i in candidates if i not in seen and predicate(messages[i])]
        for i in matches[:per_category]:
            seen.add(i)
            picked.append(i)
    return picked[:count]


# ============================================================================
# Sampling
# ============================================================================

def sample(messages: List[Message], cap: int) -> List[Message]:
    """
    Select a representative subset of one speaker's messages.

    Args:
        messages: The speaker's messages in chronological order.
        cap: Maximum number of messages to return.

    Returns:
        The input unchanged if it already fits, otherwise exactly `cap`
        distinct messages in their original order.
    """
    if len(messages) <= cap:
        return messages
    if cap <= 0:
        return []

    scores = [quality_score(m) for m in messages]
    by_quality = sorted(range(len(messages)), key=lambda i: scores[i], reverse=True)

    chosen: List[int] = []
    taken = set()

    def take(indices, limit):
        added = 0
        for i in indices:
            if added >= limit:
                break
            if i not in taken:
                taken.add(i)
                chosen.append(i)
                added += 1

    take(by_quality, math.floor(cap * QUALITY_SHARE))

    remaining = [i for i in range(len(messages)) if i not in taken]
    take(_stratified(messages, remaining, CONTENT_CATEGORIES, math.floor(cap * CONTENT_SHARE)), cap)

    remaining = [i for i in range(len(messages)) if i not in taken]
    take(_stratified(messages, remaining, BEHAVIOR_CATEGORIES, math.floor(cap * BEHAVIOR_SHARE)), cap)

    take(reversed(range(len(messages))), math.floor(cap * RECENT_SHARE))

    # Categories can come up short; fill the rest with the best leftovers.
    take(by_quality, cap - len(chosen))

    return [messages[i] for i in sorted(chosen[:cap])]


def trim_to_budget(messages: List[Message], chars_budget: int, max_lines: int) -> List[Message]:
    """Keep leading messages while they fit the prompt's character budget and line cap."""
    used = 0
    kept = []
    for message in messages:
        cost = len(message.text) + BUDGET_OVERHEAD
        if used + cost > chars_budget:
            break
        kept.append(message)
        used += cost
    return kept[:max_lines]
