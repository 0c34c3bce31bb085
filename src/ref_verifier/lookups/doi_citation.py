#!/usr/bin/env python3
"""Fetch paper details for a DOI.

Prints {"success": true, "paper": {...}} or, for an unknown DOI,
{"success": false, "error": "Paper not found", "details": <doi>}.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

from ref_verifier.lookups.httpclient import HttpClient
from ref_verifier.lookups.runner import run_lookup
from ref_verifier.lookups.sources import CrossrefClient, SemanticScholarClient, crossref_item_to_match
from ref_verifier.utils import doi_normalize, looks_like_doi


def doi_citation(query: str, http: HttpClient, logger: logging.Logger) -> dict[str, Any]:
    """Resolve a DOI through Crossref, falling back to Semantic Scholar."""
    if not looks_like_doi(query):
        return {"success": False, "error": "Invalid DOI", "details": query}
    doi = doi_normalize(query)
    crossref = CrossrefClient(http, logger)

    item = crossref.work(doi)
    paper = crossref_item_to_match(item) if item else None
    if paper is None:
        logger.info("Crossref has no record for %s, trying Semantic Scholar", doi)
        hits = SemanticScholarClient(http, logger).lookup(doi)
        paper = hits[0] if hits else None
    if paper is None:
        return {"success": False, "error": "Paper not found", "details": doi}

    notices = crossref.retraction_notices(doi)
    paper["is_retracted"] = bool(notices)
    if notices:
        logger.info("%s has %d retraction notice(s)", doi, len(notices))
    return {"success": True, "paper": paper}


def main(argv: list[str] | None = None) -> int:
    return run_lookup("doi_citation", doi_citation, argv)


if __name__ == "__main__":
    sys.exit(main())
