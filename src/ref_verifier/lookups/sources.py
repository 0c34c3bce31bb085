"""Bibliographic source clients used by the lookup programs.

Each client returns match records in the shape the verifier consumes:
{"title", "authors", "year", "doi", ...} plus a source-specific id
("paperId" for Semantic Scholar, "arxivId" for arXiv).
"""

from __future__ import annotations

import logging
import re
import xml.etree.ElementTree as ET
from typing import Any

from rapidfuzz.fuzz import token_sort_ratio

from ref_verifier.lookups.httpclient import HttpClient
from ref_verifier.utils import (
    author_names,
    coerce_title,
    coerce_year,
    doi_normalize,
    normalize_title_for_match,
)

# API endpoints
CROSSREF_API = "https://api.crossref.org/works"
ARXIV_API = "http://export.arxiv.org/api/query"
S2_API = "https://api.semanticscholar.org/graph/v1"
OPEN_LIBRARY_SEARCH = "https://openlibrary.org/search.json"

ATOM_NS = "http://www.w3.org/2005/Atom"
ARXIV_NS = "http://arxiv.org/schemas/atom"
ARXIV_DOI_RE = re.compile(r"^10\.48550/arxiv\.(?P<id>.+)$", re.IGNORECASE)

TITLE_MATCH_THRESHOLD = 85.0


def title_matches(query: str, candidate: str | None, threshold: float = TITLE_MATCH_THRESHOLD) -> bool:
    """True if a candidate title is similar enough to the queried title."""
    if not candidate:
        return False
    q = normalize_title_for_match(query)
    c = normalize_title_for_match(candidate)
    if not q or not c:
        return False
    return token_sort_ratio(q, c) >= threshold


# ------------- Converters -------------


def crossref_item_to_match(item: dict[str, Any]) -> dict[str, Any] | None:
    """Convert a Crossref work item into a match record."""
    title = coerce_title(item.get("title"))
    doi = doi_normalize(item.get("DOI"))
    if not (title and doi):
        return None
    year = None
    for key in ("published-print", "published-online", "issued", "created"):
        parts = (item.get(key) or {}).get("date-parts") or [[]]
        if parts and parts[0] and parts[0][0]:
            year = int(parts[0][0])
            break
    container = item.get("container-title") or []
    return {
        "title": title,
        "authors": author_names(item.get("author")),
        "year": year,
        "doi": doi,
        "journal": container[0] if container else None,
        "publisher": item.get("publisher"),
        "url": item.get("URL"),
        "type": item.get("type"),
    }


def s2_paper_to_match(data: dict[str, Any]) -> dict[str, Any] | None:
    """Convert a Semantic Scholar paper into a match record."""
    title = coerce_title(data.get("title"))
    if not title:
        return None
    return {
        "title": title,
        "authors": author_names(data.get("authors")),
        "year": coerce_year(data.get("year")),
        "doi": doi_normalize((data.get("externalIds") or {}).get("DOI")),
        "paperId": data.get("paperId"),
        "venue": data.get("venue") or None,
        "url": data.get("url"),
    }


def _atom_text(element: ET.Element, tag: str) -> str | None:
    child = element.find(tag)
    if child is None or not child.text:
        return None
    return re.sub(r"\s+", " ", child.text).strip()


def arxiv_feed_to_matches(xml_text: str) -> list[dict[str, Any]]:
    """Parse an arXiv Atom feed into match records."""
    root = ET.fromstring(xml_text)
    matches = []
    for entry in root.findall(f"{{{ATOM_NS}}}entry"):
        title = _atom_text(entry, f"{{{ATOM_NS}}}title")
        abs_url = _atom_text(entry, f"{{{ATOM_NS}}}id") or ""
        if not title or "/abs/" not in abs_url:
            # arXiv reports query errors as a titled entry without an abs URL
            continue
        authors = [_atom_text(a, f"{{{ATOM_NS}}}name") for a in entry.findall(f"{{{ATOM_NS}}}author")]
        matches.append(
            {
                "title": title,
                "authors": [a for a in authors if a],
                "year": coerce_year(_atom_text(entry, f"{{{ATOM_NS}}}published")),
                "doi": doi_normalize(_atom_text(entry, f"{{{ARXIV_NS}}}doi")),
                "arxivId": abs_url.rsplit("/abs/", 1)[-1],
                "url": abs_url,
            }
        )
    return matches


def retraction_notice_to_match(item: dict[str, Any], retracted_doi: str | None = None) -> dict[str, Any]:
    """Convert a Crossref retraction notice into a retraction record."""
    target = retracted_doi
    for update in item.get("update-to") or []:
        if str(update.get("type") or "").lower() == "retraction" and update.get("DOI"):
            target = doi_normalize(update["DOI"])
            break
    return {
        "doi": target,
        "notice_doi": doi_normalize(item.get("DOI")),
        "title": coerce_title(item.get("title")),
        "year": coerce_year(((item.get("created") or {}).get("date-time"))),
    }


# ------------- Clients -------------


class CrossrefClient:
    """Crossref works API client."""

    def __init__(self, http: HttpClient, logger: logging.Logger | None = None):
        self.http = http
        self.logger = logger or logging.getLogger("ref_verifier.lookups")

    def search(self, title: str, rows: int = 5) -> list[dict[str, Any]]:
        """Search Crossref by title; keeps only hits whose title matches."""
        params = {"query.bibliographic": title, "rows": rows}
        resp = self.http.request("GET", CROSSREF_API, params=params, accept="application/json", service="crossref")
        if resp.status_code != 200:
            self.logger.debug("Crossref search returned HTTP %d", resp.status_code)
            return []
        items = resp.json().get("message", {}).get("items", []) or []
        matches = [crossref_item_to_match(i) for i in items]
        return [m for m in matches if m and title_matches(title, m["title"])]

    def work(self, doi: str) -> dict[str, Any] | None:
        """Fetch the work item for a DOI; None if Crossref does not know it."""
        resp = self.http.request("GET", f"{CROSSREF_API}/{doi}", accept="application/json", service="crossref")
        if resp.status_code != 200:
            return None
        return resp.json().get("message")

    def lookup(self, doi: str) -> list[dict[str, Any]]:
        item = self.work(doi)
        match = crossref_item_to_match(item) if item else None
        return [match] if match else []

    def retraction_notices(self, doi: str) -> list[dict[str, Any]]:
        """Find retraction notices that update the given DOI."""
        params = {"filter": f"updates:{doi},update-type:retraction", "rows": 5}
        resp = self.http.request("GET", CROSSREF_API, params=params, accept="application/json", service="crossref")
        if resp.status_code != 200:
            return []
        items = resp.json().get("message", {}).get("items", []) or []
        return [retraction_notice_to_match(i, retracted_doi=doi) for i in items]


class SemanticScholarClient:
    """Semantic Scholar Graph API client."""

    FIELDS = "paperId,title,authors,year,venue,externalIds,url"

    def __init__(self, http: HttpClient, logger: logging.Logger | None = None):
        self.http = http
        self.logger = logger or logging.getLogger("ref_verifier.lookups")

    def search(self, title: str, limit: int = 5) -> list[dict[str, Any]]:
        """Search Semantic Scholar by title; keeps only hits whose title matches."""
        params = {"query": title, "limit": limit, "fields": self.FIELDS}
        resp = self.http.request(
            "GET", f"{S2_API}/paper/search", params=params, accept="application/json", service="semanticscholar"
        )
        if resp.status_code != 200:
            self.logger.debug("Semantic Scholar search returned HTTP %d", resp.status_code)
            return []
        matches = [s2_paper_to_match(p) for p in resp.json().get("data", []) or []]
        return [m for m in matches if m and title_matches(title, m["title"])]

    def lookup(self, doi: str) -> list[dict[str, Any]]:
        """Get the paper for a DOI."""
        resp = self.http.request(
            "GET",
            f"{S2_API}/paper/DOI:{doi}",
            params={"fields": self.FIELDS},
            accept="application/json",
            service="semanticscholar",
        )
        if resp.status_code != 200:
            return []
        match = s2_paper_to_match(resp.json())
        return [match] if match else []


class ArxivClient:
    """arXiv Atom API client."""

    def __init__(self, http: HttpClient, logger: logging.Logger | None = None):
        self.http = http
        self.logger = logger or logging.getLogger("ref_verifier.lookups")

    def _query(self, params: dict[str, Any]) -> list[dict[str, Any]]:
        resp = self.http.request("GET", ARXIV_API, params=params, accept="application/atom+xml", service="arxiv")
        if resp.status_code != 200:
            self.logger.debug("arXiv query returned HTTP %d", resp.status_code)
            return []
        try:
            return arxiv_feed_to_matches(resp.text)
        except ET.ParseError as e:
            self.logger.warning("arXiv XML parse error: %s", e)
            return []

    def search(self, title: str, max_results: int = 5) -> list[dict[str, Any]]:
        """Search arXiv titles; keeps only hits whose title matches."""
        phrase = re.sub(r"[\"():]", " ", title).strip()
        matches = self._query({"search_query": f'ti:"{phrase}"', "max_results": max_results})
        return [m for m in matches if title_matches(title, m["title"])]

    def lookup(self, doi: str) -> list[dict[str, Any]]:
        """Look up an arXiv-issued DOI (10.48550/arXiv.<id>); other DOIs are not indexed by arXiv."""
        m = ARXIV_DOI_RE.match(doi)
        if not m:
            return []
        return self._query({"id_list": m.group("id")})


class OpenLibraryClient:
    """Open Library search client for ISBN lookups."""

    def __init__(self, http: HttpClient, logger: logging.Logger | None = None):
        self.http = http
        self.logger = logger or logging.getLogger("ref_verifier.lookups")

    def by_isbn(self, isbn: str) -> dict[str, Any] | None:
        """Return a book record for an ISBN, or None if Open Library has none."""
        resp = self.http.request(
            "GET",
            OPEN_LIBRARY_SEARCH,
            params={"isbn": isbn, "limit": 1},
            accept="application/json",
            service="openlibrary",
        )
        if resp.status_code != 200:
            return None
        docs = resp.json().get("docs", []) or []
        if not docs:
            return None
        doc = docs[0]
        publishers = doc.get("publisher") or []
        return {
            "title": doc.get("title"),
            "authors": doc.get("author_name", []) or [],
            "year": doc.get("first_publish_year"),
            "isbn": isbn,
            "publisher": publishers[0] if publishers else None,
            "url": f"https://openlibrary.org{doc['key']}" if doc.get("key") else None,
        }
