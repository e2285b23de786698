"""Context-window policy: which history turns are sent to the model.

Applied once per top-level request. The result strictly alternates
user/assistant, starts and ends with a user turn, drops failed exchanges and
respects the session's ``context_length``.
"""

import logging

from mcp_chat.config import UNLIMITED_CONTEXT
from mcp_chat.execution import Message

logger = logging.getLogger(__name__)


def _pair_turns(messages: list[Message]) -> list[Message]:
    """Pair each user turn with the answer that closed its exchange.

    The answer is the last assistant turn before the next user turn; earlier
    ones in between are tool-calling rounds of the same exchange. A pair whose
    answer failed is dropped with its user turn; assistant turns with no user
    turn before them are dropped; a final user turn with no answer is kept.
    """
    paired = []
    i = 0
    while i < len(messages):
        current = messages[i]
        if current.role != "user":
            i += 1
            continue

        next_user = next(
            (j for j in range(i + 1, len(messages)) if messages[j].role == "user"),
            len(messages),
        )
        answer = next(
            (m for m in reversed(messages[i + 1 : next_user]) if m.role == "assistant"),
            None,
        )
        if answer is None:
            paired.append(Message(role="user", content=current.content))
        elif answer.status != "error":
            paired.append(Message(role="user", content=current.content))
            paired.append(Message(role="assistant", content=answer.content))
        else:
            logger.debug("Skipping failed exchange and the user turn that caused it")
        i = next_user
    return paired


def _move_first_user_to_front(messages: list[Message]) -> bool:
    if not messages or messages[0].role == "user":
        return False
    for i, msg in enumerate(messages):
        if msg.role == "user":
            messages.insert(0, messages.pop(i))
            return True
    return False


def _move_last_user_to_end(messages: list[Message]) -> None:
    if not messages or messages[-1].role == "user":
        return
    for i in range(len(messages) - 2, -1, -1):
        if messages[i].role == "user":
            messages.append(messages.pop(i))
            return


def _alternate(messages: list[Message]) -> list[Message]:
    result = []
    expected = "user"
    for msg in messages:
        if msg.role == expected:
            result.append(msg)
            expected = "assistant" if expected == "user" else "user"

    if result and result[-1].role != "user":
        last_user = next((m for m in reversed(messages) if m.role == "user"), None)
        if last_user is not None:
            result.append(last_user)
    return result


def build_context(messages: list[Message], context_length: int) -> list[Message]:
    """Select the history turns to send for one request.

    Args:
        messages: Full conversation history, any order.
        context_length: Maximum number of turns, or ``UNLIMITED_CONTEXT``.

    Returns:
        New Message objects carrying role and content only.
    """
    if not messages:
        return []

    ordered = sorted(messages, key=lambda m: m.created_at)
    valid = [m for m in ordered if m.content and m.role in ("user", "assistant")]

    turns = _pair_turns(valid)
    if not turns:
        logger.debug("No user turn in history, nothing to send")
        return []

    _move_first_user_to_front(turns)
    _move_last_user_to_end(turns)

    if context_length != UNLIMITED_CONTEXT and 0 < context_length < len(turns):
        logger.debug(f"Truncating {len(turns)} turns to the last {context_length}")
        turns = turns[-context_length:]
        # The cut may land between a user turn and its answer
        while turns and turns[0].role != "user":
            turns.pop(0)

    if context_length == 1:
        last_user = next((m for m in reversed(turns) if m.role == "user"), None)
        if last_user is not None:
            return [last_user]

    return _alternate(turns)
