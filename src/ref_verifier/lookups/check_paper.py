#!/usr/bin/env python3
"""Search every bibliographic source for a DOI or title.

Prints {"arxiv": [...], "semantic_scholar": [...], "crossref": [...], "retracted": [...]}.
A source that fails is reported as empty; the program fails only if every
search source failed.

Usage:
    python check_paper.py 10.1234/abc
    python check_paper.py "Attention Is All You Need"
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Callable
from typing import Any

import httpx

from ref_verifier.lookups.httpclient import HttpClient
from ref_verifier.lookups.runner import run_lookup
from ref_verifier.lookups.sources import ArxivClient, CrossrefClient, SemanticScholarClient
from ref_verifier.utils import doi_normalize, looks_like_doi

MAX_RETRACTION_CHECKS = 3

SourceErrors = (RuntimeError, httpx.HTTPError, ValueError)


def _collect(
    name: str, fetch: Callable[[], list[dict[str, Any]]], failures: list[str], logger: logging.Logger
) -> list[dict[str, Any]]:
    try:
        hits = fetch()
    except SourceErrors as e:
        logger.warning("%s lookup failed: %s", name, e)
        failures.append(name)
        return []
    logger.info("%s: %d hit(s)", name, len(hits))
    return hits


def check_paper(query: str, http: HttpClient, logger: logging.Logger) -> dict[str, list[dict[str, Any]]]:
    """Query arXiv, Semantic Scholar and Crossref, then check matched DOIs for retractions.

    Raises:
        RuntimeError: If all three search sources failed.
    """
    query = query.strip()
    if not query:
        raise ValueError("Query must not be empty")
    arxiv = ArxivClient(http, logger)
    s2 = SemanticScholarClient(http, logger)
    crossref = CrossrefClient(http, logger)
    failures: list[str] = []

    if looks_like_doi(query):
        doi = doi_normalize(query)
        logger.info("Looking up DOI %s", doi)
        results = {
            "arxiv": _collect("arxiv", lambda: arxiv.lookup(doi), failures, logger),
            "semantic_scholar": _collect("semantic_scholar", lambda: s2.lookup(doi), failures, logger),
            "crossref": _collect("crossref", lambda: crossref.lookup(doi), failures, logger),
        }
        dois = [doi]
    else:
        logger.info("Searching title %r", query)
        results = {
            "arxiv": _collect("arxiv", lambda: arxiv.search(query), failures, logger),
            "semantic_scholar": _collect("semantic_scholar", lambda: s2.search(query), failures, logger),
            "crossref": _collect("crossref", lambda: crossref.search(query), failures, logger),
        }
        dois = []
        for source in ("crossref", "semantic_scholar", "arxiv"):
            for hit in results[source]:
                if hit.get("doi") and hit["doi"] not in dois:
                    dois.append(hit["doi"])
        dois = dois[:MAX_RETRACTION_CHECKS]

    if len(failures) == 3:
        raise RuntimeError("All bibliographic sources failed: " + ", ".join(failures))

    retracted: list[dict[str, Any]] = []
    for d in dois:
        hits = _collect(f"retraction check {d}", lambda d=d: crossref.retraction_notices(d), failures, logger)
        retracted.extend(hits)
    results["retracted"] = retracted
    return results


def main(argv: list[str] | None = None) -> int:
    return run_lookup("check_paper", check_paper, argv)


if __name__ == "__main__":
    sys.exit(main())
