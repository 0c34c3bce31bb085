"""Shared bibliographic helpers for reference verification.

Includes text normalization, DOI/ISBN handling and coercion of the
loosely-typed match records that lookup programs emit (authors as strings
or mappings, years as strings or integers, titles as strings or lists).
"""

from __future__ import annotations

import re
import unicodedata
from collections.abc import Mapping
from typing import Any

# ------------- Constants & Regex -------------

DOI_RE = re.compile(r"^10\.\d{4,9}/\S+$")
DOI_PREFIX_RE = re.compile(r"^(?:https?://(?:dx\.)?doi\.org/|doi:\s*)", re.IGNORECASE)
ISBN_RE = re.compile(r"^(?:\d{9}[\dX]|\d{13})$")

# ------------- Text Normalization -------------


def safe_lower(x: str | None) -> str:
    """Null-safe lowercase and strip."""
    return (x or "").lower().strip()


def strip_diacritics(text: str) -> str:
    """Remove diacritics from text (e.g., 'café' -> 'cafe')."""
    nfkd = unicodedata.normalize("NFKD", text)
    return "".join([c for c in nfkd if not unicodedata.combining(c)])


_LATEX_CMD_RE = re.compile(r"\\[a-zA-Z]+(\s*\[[^\]]*\])?(\s*\{[^}]*\})?")
_LATEX_MATH_RE = re.compile(r"\$[^$]*\$")
_BRACES_RE = re.compile(r"[{}]")
_HTML_TAG_RE = re.compile(r"<[^>]*>")


def latex_to_plain(text: str) -> str:
    """Remove LaTeX commands, math, and braces from text."""
    if not text:
        return ""
    t = _LATEX_MATH_RE.sub(" ", text)
    t = _LATEX_CMD_RE.sub(" ", t)
    t = _BRACES_RE.sub("", t)
    t = re.sub(r"\s+", " ", t)
    return t.strip()


def normalize_title_for_match(title: str) -> str:
    """Normalize a title for fuzzy matching.

    Removes LaTeX, HTML tags, diacritics, punctuation, and extra whitespace.
    Converts to lowercase.
    """
    t = _HTML_TAG_RE.sub(" ", title or "")
    t = latex_to_plain(t)
    t = strip_diacritics(t).lower()
    t = re.sub(r"[^a-z0-9\s]", " ", t)
    t = re.sub(r"\s+", " ", t).strip()
    return t


# ------------- DOI & ISBN Utilities -------------


def doi_normalize(doi: str | None) -> str | None:
    """Normalize a DOI by removing URL/scheme prefix and lowercasing."""
    if not doi:
        return None
    if not isinstance(doi, str):
        raise ValueError(f"DOI must be a string, got {type(doi).__name__}")
    d = DOI_PREFIX_RE.sub("", doi.strip())
    return d.lower() or None


def doi_url(doi: str) -> str:
    """Convert a DOI to a URL."""
    return f"https://doi.org/{doi}"


def looks_like_doi(query: str | None) -> bool:
    """Return True if the query string is a DOI (bare, doi: prefixed, or doi.org URL)."""
    d = doi_normalize(query)
    return bool(d and DOI_RE.match(d))


def isbn_normalize(isbn: str | None) -> str | None:
    """Strip hyphens/spaces from an ISBN; None if it is not a 10 or 13 digit ISBN."""
    if not isbn:
        return None
    digits = re.sub(r"[\s-]", "", isbn).upper()
    return digits if ISBN_RE.match(digits) else None


# ------------- Record Coercion -------------


def coerce_title(value: Any) -> str | None:
    """Return a clean title from a string or a list of strings (Crossref style)."""
    if isinstance(value, (list, tuple)):
        value = next((v for v in value if isinstance(v, str) and v.strip()), None)
    if not isinstance(value, str):
        return None
    title = _HTML_TAG_RE.sub("", value).strip()
    return re.sub(r"\s+", " ", title) or None


def coerce_year(value: Any) -> int | None:
    """Parse a publication year from an int, a string such as '2020-05-01', or None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        m = re.match(r"\s*(\d{4})", value)
        if m:
            return int(m.group(1))
    return None


def author_name(author: Any) -> str:
    """Render one author as 'Given Family' from any of the shapes lookup sources use.

    Accepts a plain string, {"name": ...} (Semantic Scholar/arXiv),
    {"given": ..., "family": ...} (Crossref) or {"literal": ...}.
    """
    if isinstance(author, str):
        return re.sub(r"\s+", " ", author).strip()
    if isinstance(author, Mapping):
        if author.get("name"):
            return str(author["name"]).strip()
        parts = [str(author.get(k) or "").strip() for k in ("given", "family")]
        full = " ".join(p for p in parts if p)
        if full:
            return full
        if author.get("literal"):
            return str(author["literal"]).strip()
    return ""


def author_names(authors: Any) -> list[str]:
    """Normalize an author collection into an ordered list of display names."""
    if authors is None:
        return []
    if isinstance(authors, (str, Mapping)):
        authors = [authors]
    elif not isinstance(authors, (list, tuple)):
        raise ValueError(f"Authors must be a list, got {type(authors).__name__}")
    names = [author_name(a) for a in authors]
    return [n for n in names if n]


def bounded_preview(text: str, head: int = 200, tail: int = 200) -> str:
    """Return a short head/tail preview of text for diagnostics.

    Text that fits in head + tail characters is returned unchanged; longer
    text keeps only its first `head` and last `tail` characters.
    """
    if len(text) <= head + tail:
        return text
    omitted = len(text) - head - tail
    return f"{text[:head]} ...[{omitted} chars omitted]... {text[-tail:]}"
