"""Multi-source result aggregation.

Chooses one canonical paper from the per-source hits of a search lookup.
Candidates are taken from the first non-empty source in SOURCE_PRIORITY.
A DOI-bearing candidate is then enriched by a secondary detail lookup,
which is best effort: any failure falls back to the basic candidate.
"""

from __future__ import annotations

import logging
from typing import Any

from ref_verifier.decoder import FailureEnvelope, decode_payload
from ref_verifier.errors import VerifierError
from ref_verifier.models import (
    ARXIV,
    CROSSREF,
    SEMANTIC_SCHOLAR,
    CanonicalPaper,
    SourceResultSet,
)
from ref_verifier.process import LookupProcessAdapter

__all__ = ["SOURCE_PRIORITY", "ResultAggregator", "select_candidate"]

SOURCE_PRIORITY = (CROSSREF, SEMANTIC_SCHOLAR, ARXIV)


def select_candidate(results: SourceResultSet) -> tuple[str, dict[str, Any]] | None:
    """Return (source, record) for the first hit of the highest-priority non-empty source.

    Retraction hits never influence which candidate is chosen.
    """
    for source in SOURCE_PRIORITY:
        records = results.get(source)
        if records:
            return source, records[0]
    return None


class ResultAggregator:
    """Reduces a SourceResultSet to a single CanonicalPaper."""

    def __init__(
        self,
        adapter: LookupProcessAdapter,
        detail_script: str | None,
        detail_timeout: float = 15.0,
        logger: logging.Logger | None = None,
    ) -> None:
        """Initialize the aggregator.

        Args:
            adapter: Adapter used for the secondary detail lookup
            detail_script: Detail lookup program keyed on DOI; None disables enrichment
            detail_timeout: Wall-clock limit for the detail lookup in seconds
            logger: Logger for enrichment diagnostics
        """
        self.adapter = adapter
        self.detail_script = detail_script
        self.detail_timeout = detail_timeout
        self.logger = logger or logging.getLogger("ref_verifier.aggregator")

    def aggregate(self, results: SourceResultSet) -> tuple[CanonicalPaper | None, SourceResultSet]:
        """Select and, where possible, enrich the canonical paper.

        The retraction flag of the returned paper always reflects whether the
        retraction list is non-empty. Never raises for enrichment failures.
        """
        selected = select_candidate(results)
        if selected is None:
            return None, results
        source, record = selected
        retracted = results.is_retracted

        try:
            basic = CanonicalPaper.from_record(record, is_retracted=retracted)
        except (ValueError, TypeError) as e:
            self.logger.info("Discarding %s candidate without usable metadata: %s", source, e)
            return None, results

        if basic.doi and self.detail_script:
            detailed = self._detail_lookup(basic.doi, retracted)
            if detailed is not None:
                return detailed, results
        return basic, results

    def _detail_lookup(self, doi: str, retracted: bool) -> CanonicalPaper | None:
        try:
            raw = self.adapter.invoke(self.detail_script, doi, timeout=self.detail_timeout)
            payload = decode_payload(raw.stdout)
        except VerifierError as e:
            self.logger.info("Detail lookup for %s failed, keeping basic candidate: %s", doi, e)
            return None

        if isinstance(payload, FailureEnvelope):
            self.logger.info("Detail lookup for %s reported failure: %s", doi, payload.message)
            return None
        document = payload.document
        paper = document.get("paper") if isinstance(document, dict) else None
        if not paper:
            self.logger.info("Detail lookup for %s returned no paper payload", doi)
            return None
        try:
            return CanonicalPaper.from_record(paper, is_retracted=retracted)
        except (ValueError, TypeError) as e:
            self.logger.info("Detail payload for %s is unusable: %s", doi, e)
            return None
