"""
Convocate - Message Aggregator
Merges parsed files into one chronological stream and picks the two personas.
"""

import logging
from typing import Dict, List, Tuple

from ..errors import InsufficientMessagesError, NoValidMessagesError
from ..models.message import Message

logger = logging.getLogger(__name__)

# One persona is "self", the other is the person they talk to.
DEFAULT_TOP_K = 2


def merge_messages(parsed: List[List[Message]]) -> List[Message]:
    """Flatten per-file results and sort by timestamp; ties keep input order."""
    merged = [message for messages in parsed for message in messages]
    merged.sort(key=lambda m: m.timestamp)
    return merged


def group_by_sender(messages: List[Message]) -> Dict[str, List[Message]]:
    """Bucket messages by exact sender string, in first-seen order."""
    buckets: Dict[str, List[Message]] = {}
    for message in messages:
        buckets.setdefault(message.sender, []).append(message)
    return buckets


def filter_by_minimum(
    buckets: Dict[str, List[Message]],
    minimum: int
) -> Tuple[Dict[str, List[Message]], Dict[str, List[Message]]]:
    """
    Split buckets into senders with enough messages to profile and the rest.

    Raises:
        InsufficientMessagesError: if no sender reaches the minimum.
    """
    kept = {sender: msgs for sender, msgs in buckets.items() if len(msgs) >= minimum}
    excluded = {sender: msgs for sender, msgs in buckets.items() if len(msgs) < minimum}

    if excluded:
        logger.info(
            "Excluded %d senders with fewer than %d messages: %s",
            len(excluded), minimum,
            ", ".join(f"{sender} ({len(msgs)})" for sender, msgs in excluded.items())
        )
    if not kept:
        raise InsufficientMessagesError(minimum)
    return kept, excluded


def select_top(buckets: Dict[str, List[Message]], k: int = DEFAULT_TOP_K) -> Dict[str, List[Message]]:
    """
    Keep the k most active senders.

    Ranking is by message count, descending; equal counts keep the order in
    which the senders were first seen. Everyone else is dropped entirely.
    """
    ranked = sorted(buckets.items(), key=lambda item: len(item[1]), reverse=True)
    return dict(ranked[:k])


def aggregate(parsed: List[List[Message]]) -> Dict[str, List[Message]]:
    """
    Merge parsed files and bucket them by sender.

    Raises:
        NoValidMessagesError: if the files produced no messages at all.
    """
    merged = merge_messages(parsed)
    if not merged:
        raise NoValidMessagesError()
    return group_by_sender(merged)
