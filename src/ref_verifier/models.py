"""Data model for reference verification.

ReferenceDescriptor is the immutable request input; SourceResultSet holds the
per-source match records one lookup produced; CanonicalPaper is the single
merged record chosen from them; VerificationOutcome and PaperLookup are the
terminal values returned to callers.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ref_verifier.errors import DecodeError, InvalidReferenceError
from ref_verifier.utils import (
    author_names,
    bounded_preview,
    coerce_title,
    coerce_year,
    doi_normalize,
    looks_like_doi,
)

# Source names as emitted by the search lookup program
ARXIV = "arxiv"
SEMANTIC_SCHOLAR = "semantic_scholar"
CROSSREF = "crossref"
RETRACTED = "retracted"

MATCH_SOURCES = (ARXIV, SEMANTIC_SCHOLAR, CROSSREF)
SOURCE_NAMES = MATCH_SOURCES + (RETRACTED,)


# ------------- Enums -------------


class VerificationStatus(Enum):
    """Verification verdict for a reference."""

    VERIFIED = "verified"
    RETRACTED = "retracted"
    NOT_FOUND = "not_found"
    FAILED = "failed"


# ------------- Request -------------


def _clean(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(frozen=True)
class ReferenceDescriptor:
    """A bibliographic reference identified by DOI, title or ISBN.

    Blank identifiers count as absent; at least one must remain.
    """

    doi: str | None = None
    title: str | None = None
    isbn: str | None = None

    def __post_init__(self) -> None:
        for name in ("doi", "title", "isbn"):
            object.__setattr__(self, name, _clean(getattr(self, name)))
        if not (self.doi or self.title or self.isbn):
            raise InvalidReferenceError("Reference must have a DOI, title or ISBN")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ReferenceDescriptor:
        """Build a descriptor from a request body mapping, ignoring unrelated keys."""
        if not isinstance(data, Mapping):
            raise InvalidReferenceError("Reference must be a mapping")
        return cls(doi=data.get("doi"), title=data.get("title"), isbn=data.get("isbn"))

    def to_dict(self) -> dict[str, str]:
        return {k: v for k, v in (("doi", self.doi), ("title", self.title), ("isbn", self.isbn)) if v}


@dataclass(frozen=True)
class RawLookupResult:
    """Captured output of one lookup process run."""

    stdout: bytes
    stderr: str
    exit_code: int
    duration: float = 0.0

    @property
    def text(self) -> str:
        return self.stdout.decode("utf-8", errors="replace")


# ------------- Source Results -------------


def _coerce_records(value: Any) -> tuple[dict[str, Any], ...]:
    """Coerce one source's value into a tuple of match records.

    None and scalars become an empty tuple, a lone mapping becomes a one-item
    tuple, and bare strings inside a list become {"doi": ...} or {"title": ...}.
    """
    if value is None:
        return ()
    if isinstance(value, Mapping):
        return (dict(value),)
    if not isinstance(value, (list, tuple)):
        return ()
    records: list[dict[str, Any]] = []
    for item in value:
        if isinstance(item, Mapping):
            records.append(dict(item))
        elif isinstance(item, str) and item.strip():
            key = "doi" if looks_like_doi(item) else "title"
            records.append({key: item.strip()})
    return tuple(records)


@dataclass(frozen=True)
class SourceResultSet:
    """Per-source match records from one lookup.

    Every source is always present (possibly empty) so callers never need to
    distinguish a missing source from one without hits.
    """

    arxiv: tuple[dict[str, Any], ...] = ()
    semantic_scholar: tuple[dict[str, Any], ...] = ()
    crossref: tuple[dict[str, Any], ...] = ()
    retracted: tuple[dict[str, Any], ...] = ()

    @classmethod
    def from_document(cls, document: Any) -> SourceResultSet:
        """Build a result set from a decoded lookup document.

        Raises:
            DecodeError: If the document is not a JSON object.
        """
        if not isinstance(document, Mapping):
            raise DecodeError(
                "schema",
                bounded_preview(repr(document)),
                message=f"Expected a JSON object of source results, got {type(document).__name__}",
            )
        return cls(**{name: _coerce_records(document.get(name)) for name in SOURCE_NAMES})

    def get(self, source: str) -> tuple[dict[str, Any], ...]:
        if source not in SOURCE_NAMES:
            raise KeyError(source)
        return getattr(self, source)

    @property
    def has_matches(self) -> bool:
        """True if any of arXiv, Semantic Scholar or Crossref returned a hit."""
        return any(self.get(name) for name in MATCH_SOURCES)

    @property
    def is_retracted(self) -> bool:
        return bool(self.retracted)

    def to_dict(self) -> dict[str, list[dict[str, Any]]]:
        return {name: [dict(r) for r in self.get(name)] for name in SOURCE_NAMES}


# ------------- Canonical Paper -------------


@dataclass(frozen=True)
class CanonicalPaper:
    """The single best record for a paper, merged from source hits."""

    title: str
    doi: str | None = None
    authors: tuple[str, ...] = ()
    year: int | None = None
    is_retracted: bool = False

    @classmethod
    def from_record(cls, record: Mapping[str, Any], is_retracted: bool | None = None) -> CanonicalPaper:
        """Build a paper from a loosely-typed match or detail record.

        Args:
            record: Mapping with some of title, doi/DOI, authors/author, year/published
            is_retracted: Retraction flag to use; None reads it from the record itself

        Raises:
            ValueError: If the record is not a mapping, has no title, or carries
                a DOI or author field of the wrong type.
        """
        if not isinstance(record, Mapping):
            raise ValueError(f"Paper record must be a mapping, got {type(record).__name__}")
        title = coerce_title(record.get("title"))
        if not title:
            raise ValueError("Paper record has no title")
        doi = doi_normalize(record.get("doi") or record.get("DOI"))
        authors = author_names(record.get("authors", record.get("author")))
        year = coerce_year(record.get("year", record.get("published")))
        if is_retracted is None:
            is_retracted = bool(record.get("is_retracted") or record.get("retracted"))
        return cls(title=title, doi=doi, authors=tuple(authors), year=year, is_retracted=is_retracted)

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "doi": self.doi,
            "authors": list(self.authors),
            "year": self.year,
            "is_retracted": self.is_retracted,
        }


# ------------- Outcomes -------------


@dataclass(frozen=True)
class VerificationOutcome:
    """Terminal result of verifying one reference."""

    status: VerificationStatus
    results: SourceResultSet = field(default_factory=SourceResultSet)
    error: str | None = None
    details: str | None = None

    @classmethod
    def failed(cls, error: str, details: str | None = None) -> VerificationOutcome:
        return cls(status=VerificationStatus.FAILED, error=error, details=details)

    def to_dict(self) -> dict[str, Any]:
        if self.status is VerificationStatus.FAILED:
            out: dict[str, Any] = {"verification_status": self.status.value, "error": self.error}
            if self.details is not None:
                out["details"] = self.details
            return out
        return {"verification_status": self.status.value, "results": self.results.to_dict()}


@dataclass(frozen=True)
class PaperLookup:
    """Result of analyzing, searching or ISBN-resolving a paper.

    Exactly one of `paper` and `error` is set. `results` carries the raw
    per-source hits for searches, even when no candidate was found.
    """

    paper: CanonicalPaper | None = None
    results: SourceResultSet | None = None
    error: str | None = None
    details: str | None = None

    @property
    def ok(self) -> bool:
        return self.paper is not None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"success": self.ok}
        if self.paper is not None:
            out["paper"] = self.paper.to_dict()
        else:
            out["error"] = self.error
            if self.details is not None:
                out["details"] = self.details
        if self.results is not None:
            out["results"] = self.results.to_dict()
        return out
