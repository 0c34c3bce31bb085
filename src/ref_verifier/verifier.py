#!/usr/bin/env python3
"""Reference verifier: check references against external bibliographic sources.

ReferenceVerifier is the single entry point for callers such as an HTTP
layer. It runs the lookup programs through LookupProcessAdapter, decodes
their output, aggregates the per-source hits and classifies the result:
- VERIFIED: found in arXiv, Semantic Scholar or Crossref, no retraction notice
- RETRACTED: found, and a retraction notice exists
- NOT_FOUND: no source returned a hit
- FAILED: the lookup could not be completed (spawn, exit, timeout or decode failure)

Usage:
    ref-verify verify --doi 10.1234/abc
    ref-verify search "Attention Is All You Need"
    ref-verify check-bib refs.bib --report report.json --strict
"""

from __future__ import annotations

import argparse
import concurrent.futures
import json
import logging
import sys
from collections.abc import Iterable, Mapping
from typing import Any

import bibtexparser

from ref_verifier.aggregator import ResultAggregator
from ref_verifier.classifier import classify
from ref_verifier.config import VerifierConfig, load_config
from ref_verifier.decoder import FailureEnvelope, decode_payload
from ref_verifier.errors import (
    ApplicationError,
    DecodeError,
    InvalidReferenceError,
    ProcessExitError,
    ProcessSpawnError,
    VerifierError,
)
from ref_verifier.models import (
    CanonicalPaper,
    PaperLookup,
    ReferenceDescriptor,
    SourceResultSet,
    VerificationOutcome,
    VerificationStatus,
)
from ref_verifier.process import LookupProcessAdapter
from ref_verifier.utils import latex_to_plain

NO_IDENTIFIER_MESSAGE = "Reference must have either a DOI or title for verification"


def _failure_detail(exc: VerifierError, action: str) -> tuple[str, str | None]:
    """Map an internal error to the (error, details) pair shown to callers."""
    if isinstance(exc, ProcessExitError):
        return f"Failed to {action}", exc.stderr_text.strip() or str(exc)
    if isinstance(exc, ProcessSpawnError):
        return f"Failed to {action}", str(exc)
    if isinstance(exc, DecodeError):
        return "Invalid JSON response", str(exc)
    if isinstance(exc, ApplicationError):
        return exc.message, exc.details
    return f"Failed to {action}", str(exc)


class ReferenceVerifier:
    """Orchestrates lookup, decoding, aggregation and classification."""

    def __init__(
        self,
        config: VerifierConfig | None = None,
        adapter: LookupProcessAdapter | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        """Initialize the verifier.

        Args:
            config: Script locations, timeouts and pool size; defaults apply if None
            adapter: Process adapter; one is built from config if None
            logger: Logger shared with the default adapter and aggregator
        """
        self.config = config or VerifierConfig()
        self.logger = logger or logging.getLogger("ref_verifier")
        self.adapter = adapter or LookupProcessAdapter(
            interpreter=self.config.interpreter,
            timeout=self.config.lookup_timeout,
            cwd=self.config.cwd,
            logger=self.logger,
        )
        self.aggregator = ResultAggregator(
            self.adapter,
            self.config.script_path(self.config.detail_script),
            detail_timeout=self.config.detail_timeout,
            logger=self.logger,
        )

    # --- lookups ---

    def _search(self, query: str) -> SourceResultSet:
        raw = self.adapter.invoke(
            self.config.script_path(self.config.search_script), query, timeout=self.config.lookup_timeout
        )
        payload = decode_payload(raw.stdout)
        if isinstance(payload, FailureEnvelope):
            raise payload.to_error()
        return SourceResultSet.from_document(payload.document)

    def _detail(self, script: str, query: str) -> CanonicalPaper:
        raw = self.adapter.invoke(self.config.script_path(script), query, timeout=self.config.lookup_timeout)
        payload = decode_payload(raw.stdout)
        if isinstance(payload, FailureEnvelope):
            raise payload.to_error()
        document = payload.document
        if not isinstance(document, Mapping):
            raise ApplicationError("Lookup returned no paper")
        record = document.get("paper", document)
        try:
            return CanonicalPaper.from_record(record)
        except (ValueError, TypeError) as e:
            raise ApplicationError("Lookup returned no paper", str(e)) from e

    # --- operations ---

    def verify_reference(self, reference: ReferenceDescriptor | Mapping[str, Any]) -> VerificationOutcome:
        """Verify one reference, keyed on its DOI if present, else its title.

        Raises:
            InvalidReferenceError: If the reference has neither DOI nor title.
                No lookup process is started in that case.
        """
        if not isinstance(reference, ReferenceDescriptor):
            reference = ReferenceDescriptor.from_dict(reference)
        query = reference.doi or reference.title
        if not query:
            raise InvalidReferenceError(NO_IDENTIFIER_MESSAGE)

        self.logger.debug("Verifying reference %s", reference.to_dict())
        try:
            results = self._search(query)
        except VerifierError as e:
            error, details = _failure_detail(e, "verify reference")
            self.logger.warning("Verification of %r failed: %s", query, e)
            return VerificationOutcome.failed(error, details)
        except Exception as e:
            self.logger.error("Unexpected error verifying %r: %s", query, e)
            return VerificationOutcome.failed("Failed to verify reference", str(e))

        status = classify(results)
        self.logger.debug("Reference %r classified as %s", query, status.value)
        return VerificationOutcome(status=status, results=results)

    def verify_references(
        self,
        references: Iterable[ReferenceDescriptor | Mapping[str, Any]],
        max_workers: int | None = None,
    ) -> list[VerificationOutcome]:
        """Verify many references concurrently; output order matches input order.

        A reference without DOI or title yields a FAILED outcome rather than
        stopping the batch.
        """
        items = list(references)
        outcomes: list[VerificationOutcome | None] = [None] * len(items)

        def _verify_one(index: int, reference: Any) -> None:
            try:
                outcomes[index] = self.verify_reference(reference)
            except InvalidReferenceError as e:
                outcomes[index] = VerificationOutcome.failed(NO_IDENTIFIER_MESSAGE, str(e))

        workers = max_workers or self.config.max_workers
        with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {executor.submit(_verify_one, i, ref): i for i, ref in enumerate(items)}
            for future in concurrent.futures.as_completed(futures):
                try:
                    future.result()
                except Exception as e:
                    idx = futures[future]
                    self.logger.error("Error verifying reference %d: %s", idx + 1, e)
                    outcomes[idx] = VerificationOutcome.failed("Failed to verify reference", str(e))

        return [o if o is not None else VerificationOutcome.failed("Failed to verify reference") for o in outcomes]

    def analyze_paper(self, identifier: str) -> PaperLookup:
        """Fetch the detail record for a DOI."""
        identifier = (identifier or "").strip()
        if not identifier:
            return PaperLookup(error="An identifier is required")
        try:
            return PaperLookup(paper=self._detail(self.config.detail_script, identifier))
        except VerifierError as e:
            error, details = _failure_detail(e, "analyze paper")
            self.logger.warning("Analysis of %r failed: %s", identifier, e)
            return PaperLookup(error=error, details=details)
        except Exception as e:
            self.logger.error("Unexpected error analyzing %r: %s", identifier, e)
            return PaperLookup(error="Failed to analyze paper", details=str(e))

    def lookup_isbn(self, isbn: str) -> PaperLookup:
        """Fetch the book record for an ISBN."""
        isbn = (isbn or "").strip()
        if not isbn:
            return PaperLookup(error="An ISBN is required")
        try:
            return PaperLookup(paper=self._detail(self.config.isbn_script, isbn))
        except VerifierError as e:
            error, details = _failure_detail(e, "process ISBN")
            self.logger.warning("ISBN lookup for %r failed: %s", isbn, e)
            return PaperLookup(error=error, details=details)
        except Exception as e:
            self.logger.error("Unexpected error looking up ISBN %r: %s", isbn, e)
            return PaperLookup(error="Failed to process ISBN", details=str(e))

    def search_paper(self, title: str) -> PaperLookup:
        """Search all sources by title and pick the canonical paper.

        The returned lookup carries the raw per-source results whenever the
        search itself completed, including when no candidate was found.
        """
        title = (title or "").strip()
        if not title:
            return PaperLookup(error="A title is required")
        try:
            results = self._search(title)
            paper, results = self.aggregator.aggregate(results)
        except VerifierError as e:
            error, details = _failure_detail(e, "search paper")
            self.logger.warning("Search for %r failed: %s", title, e)
            return PaperLookup(error=error, details=details)
        except Exception as e:
            self.logger.error("Unexpected error searching %r: %s", title, e)
            return PaperLookup(error="Failed to search paper", details=str(e))

        if paper is None:
            return PaperLookup(results=results, error="Paper not found")
        return PaperLookup(paper=paper, results=results)


# ------------- Command Line -------------


def entry_to_reference(entry: dict[str, Any]) -> dict[str, Any]:
    """Turn a BibTeX entry into a reference mapping (DOI, title, ISBN)."""
    return {
        "doi": entry.get("doi"),
        "title": latex_to_plain(entry.get("title", "")),
        "isbn": entry.get("isbn"),
    }


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    p = argparse.ArgumentParser(
        description="Verify bibliographic references against arXiv, Semantic Scholar and Crossref",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  ref-verify verify --doi 10.1234/abc
  ref-verify verify --title "Attention Is All You Need"
  ref-verify analyze 10.1234/abc
  ref-verify search "Attention Is All You Need"
  ref-verify isbn 9780262033848
  ref-verify check-bib refs.bib --report report.json --strict
        """,
    )
    p.add_argument("--config", "-c", metavar="FILE", help="YAML configuration file")
    p.add_argument("--timeout", type=float, metavar="SECONDS", help="Override the lookup timeout")
    p.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    sub = p.add_subparsers(dest="command", required=True)

    verify = sub.add_parser("verify", help="Verify one reference")
    ident = verify.add_mutually_exclusive_group(required=True)
    ident.add_argument("--doi", help="DOI of the reference")
    ident.add_argument("--title", help="Title of the reference")

    analyze = sub.add_parser("analyze", help="Fetch paper details for a DOI")
    analyze.add_argument("identifier", help="DOI of the paper")

    search = sub.add_parser("search", help="Search for a paper by title")
    search.add_argument("title", help="Paper title")

    isbn = sub.add_parser("isbn", help="Fetch book details for an ISBN")
    isbn.add_argument("isbn", help="ISBN-10 or ISBN-13")

    check = sub.add_parser("check-bib", help="Verify every entry of BibTeX files")
    check.add_argument("bibfiles", nargs="+", help="BibTeX files to check")
    check.add_argument("--report", "-r", metavar="FILE", help="Write JSON report to FILE instead of stdout")
    check.add_argument("--workers", type=int, metavar="N", help="Number of concurrent lookups")
    check.add_argument(
        "--strict",
        action="store_true",
        help="Exit with code 4 if NOT_FOUND or RETRACTED references are found",
    )
    return p


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


def _check_bib(verifier: ReferenceVerifier, args: argparse.Namespace, logger: logging.Logger) -> int:
    entries = []
    for path in args.bibfiles:
        try:
            with open(path, encoding="utf-8") as f:
                db = bibtexparser.load(f)
                entries.extend(db.entries)
                logger.info("Loaded %d entries from %s", len(db.entries), path)
        except FileNotFoundError:
            logger.error("File not found: %s", path)
            return 2
        except Exception as e:
            logger.error("Failed to parse %s: %s", path, e)
            return 2

    if not entries:
        logger.error("No entries found in input files")
        return 2

    outcomes = verifier.verify_references([entry_to_reference(e) for e in entries], max_workers=args.workers)
    report = [{"key": e.get("ID", "?"), **o.to_dict()} for e, o in zip(entries, outcomes)]

    counts = {s.value: 0 for s in VerificationStatus}
    for o in outcomes:
        counts[o.status.value] += 1
    logger.info("=" * 60)
    logger.info("SUMMARY: %d references checked", len(outcomes))
    for status, count in counts.items():
        if count > 0:
            logger.info("  %s: %d", status.upper(), count)

    if args.report:
        with open(args.report, "w", encoding="utf-8") as f:
            json.dump(report, f, indent=2, ensure_ascii=False)
        logger.info("JSON report written to %s", args.report)
    else:
        _print_json(report)

    if args.strict:
        problem_count = counts["not_found"] + counts["retracted"]
        if problem_count > 0:
            logger.warning("Strict mode: %d NOT_FOUND or RETRACTED references found", problem_count)
            return 4
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")
    logger = logging.getLogger("ref_verifier")

    try:
        config = load_config(args.config) if args.config else VerifierConfig()
        if args.timeout is not None:
            config.lookup_timeout = args.timeout
    except (OSError, ValueError) as e:
        logger.error("Invalid configuration: %s", e)
        return 2

    verifier = ReferenceVerifier(config, logger=logger)

    if args.command == "check-bib":
        return _check_bib(verifier, args, logger)

    if args.command == "verify":
        try:
            outcome = verifier.verify_reference({"doi": args.doi, "title": args.title})
        except InvalidReferenceError as e:
            logger.error("%s", e)
            return 2
        _print_json(outcome.to_dict())
        return 1 if outcome.status is VerificationStatus.FAILED else 0

    if args.command == "analyze":
        lookup = verifier.analyze_paper(args.identifier)
    elif args.command == "search":
        lookup = verifier.search_paper(args.title)
    else:
        lookup = verifier.lookup_isbn(args.isbn)
    _print_json(lookup.to_dict())
    return 0 if lookup.ok else 1


if __name__ == "__main__":
    sys.exit(main())
