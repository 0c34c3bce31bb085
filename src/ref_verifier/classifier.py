"""Verification classifier: derive a verdict from per-source results."""

from __future__ import annotations

from ref_verifier.models import SourceResultSet, VerificationStatus

__all__ = ["classify"]


def classify(results: SourceResultSet) -> VerificationStatus:
    """Classify a result set.

    - NOT_FOUND if arXiv, Semantic Scholar and Crossref are all empty
      (the retraction list is then irrelevant)
    - RETRACTED if any of them has a hit and the retraction list is non-empty
    - VERIFIED if any of them has a hit and the retraction list is empty

    Pure and total: never returns FAILED, which is reserved for lookups
    that could not be completed.
    """
    if not results.has_matches:
        return VerificationStatus.NOT_FOUND
    if results.is_retracted:
        return VerificationStatus.RETRACTED
    return VerificationStatus.VERIFIED
