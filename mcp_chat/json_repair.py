"""Best-effort recovery of tool-call argument JSON.

Models stream tool arguments token by token, and what comes out the other end
is not always valid JSON: quotes escaped one or two layers too deep, a stray
``"}`` echoed after the object, a markdown code fence or ``name(args)`` wrapper
around it, or special tokens such as ``<｜tool▁call▁end｜>`` mixed in.

``repair_json`` tries a fixed list of heuristics in order. Each heuristic is a
pure function of the raw text; a heuristic that fails simply hands over to the
next one. When none of them decodes, a ``RepairFailure`` carrying the original
text is returned. Nothing is ever guessed or filled in.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Optional, Union

from mcp_chat.exceptions import ToolArgumentsError

logger = logging.getLogger(__name__)

CONTROL_TOKEN_RE = re.compile(r"<[｜|]tool[^>]*>")
CODE_FENCE_RE = re.compile(r"```(?:\w*\n)?([\s\S]*?)```")
FUNCTION_CALL_RE = re.compile(r"^\s*\w+\s*\(([\s\S]*?)\)\s*$")
LEADING_QUOTES_RE = re.compile(r"^[\"'\s]+")
TRAILING_QUOTES_RE = re.compile(r"[\"'\s]+$")

_decoder = json.JSONDecoder()


@dataclass(frozen=True)
class RepairFailure:
    """Returned by ``repair_json`` when no heuristic produced valid JSON."""

    original: str
    reason: str = "no heuristic produced valid JSON"


def strip_control_tokens(text: str) -> str:
    """Remove ``<|tool...|>`` / ``<｜tool...｜>`` tokens some models leak into arguments."""
    return CONTROL_TOKEN_RE.sub("", text)


def _unwrap(text: str) -> str:
    match = CODE_FENCE_RE.search(text)
    if match:
        text = match.group(1).strip()
    call = FUNCTION_CALL_RE.match(text)
    if call:
        text = call.group(1)
    return text.strip()


def _normalize(text: str) -> str:
    return _unwrap(strip_control_tokens(text))


def _decode_leading(text: str) -> Any:
    # First complete object/array wins; trailing artifacts such as '"}' are ignored.
    starts = [i for i in (text.find("{"), text.find("[")) if i != -1]
    if not starts:
        raise ValueError("no JSON object or array found")
    value, _ = _decoder.raw_decode(text, min(starts))
    return value


def _decode(text: str) -> Any:
    try:
        return json.loads(text)
    except ValueError:
        return _decode_leading(text)


def _direct(text: str) -> Any:
    return json.loads(text)


def _normalized(text: str) -> Any:
    return json.loads(_normalize(text))


def _leading_value(text: str) -> Any:
    return _decode_leading(_normalize(text))


def _unescaped(text: str) -> Any:
    return _decode(_normalize(text).replace('\\"', '"'))


def _double_unescaped(text: str) -> Any:
    return _decode(_normalize(text).replace('\\\\"', '\\"').replace('\\"', '"'))


def _wrapper_quotes(text: str) -> Any:
    cleaned = LEADING_QUOTES_RE.sub("", _normalize(text))
    cleaned = TRAILING_QUOTES_RE.sub("", cleaned)
    cleaned = cleaned.replace('\\"', '"').replace("\\\\", "\\")
    return _decode(cleaned)


HEURISTICS: list[tuple[str, Callable[[str], Any]]] = [
    ("direct", _direct),
    ("normalized", _normalized),
    ("leading value", _leading_value),
    ("unescaped", _unescaped),
    ("double unescaped", _double_unescaped),
    ("wrapper quotes", _wrapper_quotes),
]


def repair_json(raw: str) -> Union[Any, RepairFailure]:
    """Decode ``raw``, repairing common model-side malformations.

    Args:
        raw: Raw text, typically the accumulated arguments of a tool call.

    Returns:
        The decoded value, or a RepairFailure holding ``raw`` when every
        heuristic failed. Valid JSON is always returned exactly as
        ``json.loads`` would decode it.
    """
    if not isinstance(raw, str):
        return RepairFailure(original=repr(raw), reason="input is not a string")

    for name, heuristic in HEURISTICS:
        try:
            value = heuristic(raw)
        except (ValueError, RecursionError) as e:
            logger.debug(f"JSON heuristic '{name}' failed: {e}")
            continue
        if name != "direct":
            logger.debug(f"Recovered malformed JSON with heuristic '{name}'")
        return value

    logger.warning(f"Could not repair JSON: {raw!r}")
    return RepairFailure(original=raw)


def parse_tool_arguments(raw: Optional[str]) -> dict:
    """Parse accumulated tool-call arguments into a dict.

    Empty arguments mean "no parameters". A JSON string whose content is
    itself an object (double-encoded arguments) is decoded one more level.

    Raises:
        ToolArgumentsError: If the arguments cannot be recovered as an object.
    """
    if raw is None or not raw.strip():
        return {}

    value = repair_json(raw)
    if isinstance(value, str):
        inner = repair_json(value)
        if not isinstance(inner, RepairFailure):
            value = inner

    if isinstance(value, RepairFailure):
        raise ToolArgumentsError(f"Could not parse tool arguments: {raw!r}")
    if not isinstance(value, dict):
        raise ToolArgumentsError(
            f"Tool arguments must be a JSON object, got {type(value).__name__}"
        )
    return value
