"""
Reply Parser — Turns free-form model text into a validated directive.

The model is asked for one JSON object but often wraps it in commentary or
a code fence. We locate the first '{' and decode from there; if that fails
we fall back to the region up to the next '}'. The decoded object then goes
through the category's pydantic directive. Any failure raises a
ReplyParseError and the caller discards the whole reply.
"""

import json
import logging
from typing import Any, Dict

from pydantic import ValidationError

from models.directives import DiplomacyDirective, EventDirective, NarrationDirective
from tools.errors import ParseMalformed, SchemaViolation
from tools.text_utils import simplify_string

logger = logging.getLogger("ReplyParser")

IRRELEVANT_SENTINELS = {"irrelevante", "irrelevant"}

_decoder = json.JSONDecoder()


def extract_json_object(text: str) -> Dict[str, Any]:
    """Extract the first JSON object embedded in `text`."""
    if not text:
        raise ParseMalformed("Empty reply", raw=text or "")

    start = text.find("{")
    if start == -1:
        raise ParseMalformed("No JSON object in reply", raw=text)

    try:
        obj, _ = _decoder.raw_decode(text, start)
    except json.JSONDecodeError:
        # Naive region: from the first '{' to the next '}' (stopping at a nested '{')
        region = text[start + 1:]
        nested = region.find("{")
        if nested != -1:
            region = region[:nested]
        end = region.find("}")
        if end != -1:
            region = region[:end]
        try:
            obj = json.loads("{" + region + "}")
        except json.JSONDecodeError as e:
            raise ParseMalformed(f"Invalid JSON: {e}", raw=text) from e

    if not isinstance(obj, dict):
        raise ParseMalformed("Reply JSON is not an object", raw=text)
    return obj


def _schema_violation(error: ValidationError, raw: str) -> SchemaViolation:
    first = error.errors()[0]
    field = (first.get("ctx") or {}).get("field")
    if not field:
        field = ".".join(str(part) for part in first.get("loc", ())) or "<root>"
    return SchemaViolation(field, first.get("msg", "invalid"), raw=raw)


def parse_narration_reply(text: str) -> NarrationDirective:
    """Parse an action-narration reply. `valid=False` is a normal outcome."""
    data = extract_json_object(text)
    try:
        return NarrationDirective.model_validate(data)
    except ValidationError as e:
        raise _schema_violation(e, text) from e


def parse_diplomacy_reply(text: str) -> DiplomacyDirective:
    """Parse a diplomacy reply. Missing fields for its kind reject it entirely."""
    data = extract_json_object(text)
    try:
        return DiplomacyDirective.model_validate(data)
    except ValidationError as e:
        raise _schema_violation(e, text) from e


def is_irrelevant_sentinel(text: str) -> bool:
    simple = simplify_string(text).strip().strip("!.` \n\t")
    return simple in IRRELEVANT_SENTINELS


def parse_event_reply(text: str) -> EventDirective:
    """Event replies are plain text: the sentinel, or the context update itself."""
    if not text or not text.strip():
        raise ParseMalformed("Empty event reply", raw=text or "")
    if is_irrelevant_sentinel(text):
        return EventDirective(irrelevant=True)
    return EventDirective(context_update=text.strip())
