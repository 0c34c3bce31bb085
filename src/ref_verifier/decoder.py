"""Resilient JSON decoding for lookup program output.

Lookup programs are expected to print one JSON document, but scraping
tooling sometimes emits near-valid JSON. Decoding runs in stages, each
attempted only if the previous one failed:

1. strict: direct parse of the trimmed text
2. repair: apply REPAIR_STEPS (pure text transforms) in order, then re-parse
3. envelope: if the text is a failure envelope ({"success": false, "error": ...}),
   extract the error message and raise ApplicationError instead of DecodeError

The decoded document is then interpreted as a SuccessEnvelope or a
FailureEnvelope so call sites never probe fields ad hoc.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, Union

from ref_verifier.errors import ApplicationError, DecodeError
from ref_verifier.utils import bounded_preview

__all__ = [
    "REPAIR_STEPS",
    "FailureEnvelope",
    "SuccessEnvelope",
    "decode",
    "decode_payload",
    "detect_corruption",
    "extract_failure_envelope",
    "insert_missing_commas",
    "interpret",
    "quote_bare_values",
    "repair",
    "strip_trailing_commas",
]

logger = logging.getLogger("ref_verifier.decoder")

_STRING = r'"(?:[^"\\\n]|\\.)*"'

# ------------- Repair Transforms -------------

# A complete value (string, number, literal, or closed container) directly
# followed by the next key with no comma in between.
_MISSING_COMMA_RE = re.compile(rf"({_STRING}|\d|true|false|null|[\]}}])(\s*)({_STRING}\s*:)")

# key: <unquoted token> up to the next separator or closing delimiter
_BARE_VALUE_RE = re.compile(rf"({_STRING}\s*:\s*)([^\s\"{{\[\]}},][^,}}\]\n\"]*?)(\s*)(?=[,}}\]\n]|$)")
_JSON_NUMBER_RE = re.compile(r"-?(?:0|[1-9]\d*)(?:\.\d+)?(?:[eE][+-]?\d+)?")
_JSON_LITERALS = {"true", "false", "null"}

_TRAILING_COMMA_RE = re.compile(r",(\s*)([}\]])")


def insert_missing_commas(text: str) -> str:
    """Insert the comma missing between a value and the key that follows it.

    '{"doi": "10.1/x" "year": 2021}' -> '{"doi": "10.1/x", "year": 2021}'
    """
    return _MISSING_COMMA_RE.sub(r"\1,\2\3", text)


def _quote_bare(match: re.Match[str]) -> str:
    prefix, token, space = match.group(1), match.group(2), match.group(3)
    if token in _JSON_LITERALS or _JSON_NUMBER_RE.fullmatch(token):
        return match.group(0)
    return f"{prefix}{json.dumps(token)}{space}"


def quote_bare_values(text: str) -> str:
    """Quote unquoted scalar values that are not JSON numbers or literals.

    '{"doi": 10.1109/ICCV2021}' -> '{"doi": "10.1109/ICCV2021"}'
    """
    return _BARE_VALUE_RE.sub(_quote_bare, text)


def strip_trailing_commas(text: str) -> str:
    """Drop a separator that directly precedes a closing brace or bracket.

    '{"a": [1, 2,], }' -> '{"a": [1, 2] }'
    """
    return _TRAILING_COMMA_RE.sub(r"\1\2", text)


REPAIR_STEPS: tuple[tuple[str, Callable[[str], str]], ...] = (
    ("missing_comma", insert_missing_commas),
    ("bare_value", quote_bare_values),
    ("trailing_comma", strip_trailing_commas),
)


def repair(text: str) -> str:
    """Apply every repair transform in order."""
    for _name, step in REPAIR_STEPS:
        text = step(text)
    return text


# ------------- Diagnostics -------------

_CORRUPTION_SIGNATURES: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("malformed numeric field", re.compile(r":\s*-?\d+(?:\.\d+)*[A-Za-z_/.\-][^,}\]\n]*")),
    ("missing comma after string field", re.compile(rf"{_STRING}\s+{_STRING}\s*:")),
    ("trailing comma", re.compile(r",\s*[}\]]")),
    ("unescaped backslash", re.compile(r'\\(?![\\"/bfnrtu])')),
)


def _has_unterminated_string(text: str) -> bool:
    quotes = len(re.findall(r'(?<!\\)"', text))
    return quotes % 2 == 1


def detect_corruption(text: str) -> str | None:
    """Name the known corruption signature found in text, if any.

    Diagnostic only: the result is attached to DecodeError and never
    changes how decoding proceeds.
    """
    for name, pattern in _CORRUPTION_SIGNATURES:
        if pattern.search(text):
            return name
    if _has_unterminated_string(text):
        return "unterminated string"
    return None


# ------------- Envelopes -------------


@dataclass(frozen=True)
class SuccessEnvelope:
    """A decoded document that does not report a failure."""

    document: Any


@dataclass(frozen=True)
class FailureEnvelope:
    """A decoded document that reports a failure of its own."""

    message: str
    details: str | None = None

    def to_error(self) -> ApplicationError:
        return ApplicationError(self.message, self.details)


LookupPayload = Union[SuccessEnvelope, FailureEnvelope]

_SUCCESS_FALSE_RE = re.compile(r'"success"\s*:\s*false')
_ERROR_FIELD_RE = re.compile(r'"error"\s*:\s*("(?:[^"\\]|\\.)*")')
_DETAILS_FIELD_RE = re.compile(r'"details"\s*:\s*("(?:[^"\\]|\\.)*")')


def _unquote(literal: str) -> str:
    try:
        return json.loads(literal)
    except ValueError:
        return literal[1:-1]


def extract_failure_envelope(text: str) -> FailureEnvelope | None:
    """Pattern-match a failure envelope out of text that does not parse.

    Requires both a false success flag and a string error field.
    """
    if not _SUCCESS_FALSE_RE.search(text):
        return None
    m = _ERROR_FIELD_RE.search(text)
    if not m:
        return None
    d = _DETAILS_FIELD_RE.search(text)
    return FailureEnvelope(_unquote(m.group(1)), _unquote(d.group(1)) if d else None)


def interpret(document: Any) -> LookupPayload:
    """Classify a decoded document as a success or failure envelope.

    A mapping with `success: false` or a non-empty `error` field is a failure.
    """
    if isinstance(document, Mapping):
        error = document.get("error")
        if document.get("success") is False or error:
            message = str(error) if error else "Lookup reported failure"
            details = document.get("details")
            return FailureEnvelope(message, str(details) if details else None)
    return SuccessEnvelope(document)


# ------------- Decoding -------------


def _as_text(payload: bytes | str) -> str:
    if isinstance(payload, bytes):
        payload = payload.decode("utf-8", errors="replace")
    return payload.lstrip("\ufeff").strip()


def decode(payload: bytes | str) -> Any:
    """Decode a lookup payload into a JSON document.

    Raises:
        ApplicationError: If the payload is an unparseable failure envelope
        DecodeError: If no stage could decode the payload
    """
    text = _as_text(payload)
    if not text:
        raise DecodeError("strict", "", message="Lookup produced no output")

    try:
        document = json.loads(text)
        logger.debug("Decoded payload at stage strict")
        return document
    except json.JSONDecodeError as e:
        strict_error = e

    repaired = repair(text)
    if repaired != text:
        try:
            document = json.loads(repaired)
            logger.debug("Decoded payload at stage repair")
            return document
        except json.JSONDecodeError:
            pass

    envelope = extract_failure_envelope(text)
    if envelope is not None:
        logger.debug("Extracted failure envelope from undecodable payload")
        raise envelope.to_error()

    signature = detect_corruption(text)
    logger.warning(
        "Could not decode lookup payload (%s): %s",
        signature or "unknown corruption",
        strict_error.msg,
    )
    raise DecodeError(
        "envelope",
        bounded_preview(text),
        signature,
        message=f"Invalid JSON response: {strict_error.msg} at line {strict_error.lineno} column {strict_error.colno}",
    )


def decode_payload(payload: bytes | str) -> LookupPayload:
    """Decode and interpret a payload; failure envelopes are returned, not raised.

    Raises:
        DecodeError: If no stage could decode the payload
    """
    try:
        return interpret(decode(payload))
    except ApplicationError as e:
        return FailureEnvelope(e.message, e.details)
