#!/usr/bin/env python3
"""Fetch book details for an ISBN from Open Library.

Prints {"success": true, "paper": {...}} or {"success": false, "error": ...}.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

from ref_verifier.lookups.httpclient import HttpClient
from ref_verifier.lookups.runner import run_lookup
from ref_verifier.lookups.sources import OpenLibraryClient
from ref_verifier.utils import isbn_normalize


def isbn_citation(query: str, http: HttpClient, logger: logging.Logger) -> dict[str, Any]:
    isbn = isbn_normalize(query)
    if not isbn:
        return {"success": False, "error": "Invalid ISBN", "details": query}
    book = OpenLibraryClient(http, logger).by_isbn(isbn)
    if not book or not book.get("title"):
        return {"success": False, "error": "Book not found", "details": isbn}
    return {"success": True, "paper": book}


def main(argv: list[str] | None = None) -> int:
    return run_lookup("isbn_citation", isbn_citation, argv)


if __name__ == "__main__":
    sys.exit(main())
