"""
Convocate - Thread Reconstructor
Keeps only the stretches of a two-party stream that look like real dialogue.

Raw exports are full of one-sided bursts and messages days apart. A message
continues the current thread when it arrives within the thread window of the
previous thread message AND either the speaker changed, or the next message
in the stream follows within the (tighter) burst window. Threads that never
involve both speakers are dropped.
"""

from datetime import timedelta
from typing import List, Optional

from ..models.message import Message

THREAD_WINDOW = timedelta(minutes=10)
BURST_WINDOW = timedelta(minutes=5)


def _gap(a: Message, b: Message) -> timedelta:
    return abs(b.timestamp - a.timestamp)


def _continues_thread(
    message: Message,
    last: Message,
    next_message: Optional[Message],
    window: timedelta,
    burst_window: timedelta
) -> bool:
    if _gap(last, message) >= window:
        return False
    if message.sender != last.sender:
        return True
    # Same speaker again: only part of the exchange if the stream keeps moving.
    return next_message is not None and _gap(message, next_message) < burst_window


def _is_dialogue(thread: List[Message]) -> bool:
    return len({m.sender for m in thread}) >= 2


def split_threads(
    messages: List[Message],
    window: timedelta = THREAD_WINDOW,
    burst_window: timedelta = BURST_WINDOW
) -> List[List[Message]]:
    """
    Segment a chronologically sorted stream into dialogue threads.

    The lookahead compares message i with message i+1 of the whole stream,
    whoever sent it.

    Returns:
        Threads with at least two distinct senders, in discovery order.
    """
    threads: List[List[Message]] = []
    current: List[Message] = []

    for i, message in enumerate(messages):
        if not current:
            current = [message]
            continue

        next_message = messages[i + 1] if i + 1 < len(messages) else None
        if _continues_thread(message, current[-1], next_message, window, burst_window):
            current.append(message)
        else:
            if _is_dialogue(current):
                threads.append(current)
            current = [message]

    if current and _is_dialogue(current):
        threads.append(current)

    return threads


def reconstruct(
    messages: List[Message],
    window: timedelta = THREAD_WINDOW,
    burst_window: timedelta = BURST_WINDOW
) -> List[Message]:
    """Flatten the surviving dialogue threads back into one ordered transcript."""
    return [message for thread in split_threads(messages, window, burst_window) for message in thread]
