"""
LLM response parsing

Model replies are free text that may or may not contain JSON. Recovery is an
ordered pipeline of small pure functions:

    candidate finders -> repairs -> json.loads

Each finder proposes a substring, each repair is applied cumulatively until
one parse succeeds. Keeping the steps separate lets every heuristic be tested
on its own.
"""

import json
import re
from typing import Any, Callable, List, Optional

from .exceptions import ResponseParseError

_FENCED_JSON_RE = re.compile(r'```json\s*([\s\S]*?)\s*```', re.IGNORECASE)
_FENCED_ANY_RE = re.compile(r'```[a-zA-Z]*\s*([\s\S]*?)\s*```')
_TRAILING_COMMA_RE = re.compile(r',(\s*[}\]])')
_BARE_KEY_RE = re.compile(r'([{,]\s*)([A-Za-z_][\w-]*)(\s*):')


# ---------------------------------------------------------------------------
# Candidate finders
# ---------------------------------------------------------------------------

def find_fenced_json(text: str) -> Optional[str]:
    match = _FENCED_JSON_RE.search(text)
    return match.group(1) if match else None


def find_fenced_block(text: str) -> Optional[str]:
    match = _FENCED_ANY_RE.search(text)
    return match.group(1) if match else None


def _span(text: str, opener: str, closer: str) -> Optional[str]:
    start = text.find(opener)
    end = text.rfind(closer)
    if start == -1 or end <= start:
        return None
    return text[start:end + 1]


def find_bare_object(text: str) -> Optional[str]:
    return _span(text, '{', '}')


def find_bare_array(text: str) -> Optional[str]:
    return _span(text, '[', ']')


def find_whole_text(text: str) -> Optional[str]:
    return text.strip() or None


OBJECT_FINDERS: List[Callable[[str], Optional[str]]] = [
    find_fenced_json,
    find_fenced_block,
    find_bare_object,
    find_bare_array,
    find_whole_text,
]

ARRAY_FINDERS: List[Callable[[str], Optional[str]]] = [
    find_fenced_json,
    find_fenced_block,
    find_bare_array,
    find_bare_object,
    find_whole_text,
]


# ---------------------------------------------------------------------------
# Repairs
# ---------------------------------------------------------------------------

def strip_trailing_commas(candidate: str) -> str:
    return _TRAILING_COMMA_RE.sub(r'\1', candidate)


def quote_bare_keys(candidate: str) -> str:
    return _BARE_KEY_RE.sub(r'\1"\2"\3:', candidate)


REPAIRS: List[Callable[[str], str]] = [
    strip_trailing_commas,
    quote_bare_keys,
]


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

def _try_parse(candidate: str) -> Any:
    attempt = candidate.strip()
    try:
        return json.loads(attempt)
    except json.JSONDecodeError:
        pass
    for repair in REPAIRS:
        attempt = repair(attempt)
        try:
            return json.loads(attempt)
        except json.JSONDecodeError:
            continue
    raise ResponseParseError("candidate is not valid JSON after repairs")


def parse_llm_json(text: str, expect_array: bool = False) -> Any:
    """
    Recover the first parseable JSON payload from model text.

    Args:
        text: Raw model reply
        expect_array: Prefer array-shaped candidates (direct extraction) over objects

    Returns:
        Parsed JSON value

    Raises:
        ResponseParseError: if no candidate parses
    """
    if not text or not text.strip():
        raise ResponseParseError("empty model response")

    finders = ARRAY_FINDERS if expect_array else OBJECT_FINDERS
    tried = set()
    for finder in finders:
        candidate = finder(text)
        if not candidate or candidate in tried:
            continue
        tried.add(candidate)
        try:
            return _try_parse(candidate)
        except ResponseParseError:
            continue

    raise ResponseParseError(f"no JSON payload found in response: {text[:120]!r}")
