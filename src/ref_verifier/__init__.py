"""Reference Verifier - check bibliographic references against external sources.

This package provides:
- Verification of a reference (DOI or title) against arXiv, Semantic Scholar,
  Crossref and Crossref retraction notices
- Paper detail lookup by DOI and book lookup by ISBN
- Title search that reduces multi-source hits to one canonical paper

Lookups run as separate programs; their output is decoded with a staged
JSON repair pipeline so malformed payloads degrade into typed failures.

Example usage:
    from ref_verifier import ReferenceDescriptor, ReferenceVerifier, VerifierConfig

    verifier = ReferenceVerifier(VerifierConfig(lookup_timeout=30.0))
    outcome = verifier.verify_reference(ReferenceDescriptor(doi="10.1234/abc"))
    print(outcome.status, outcome.to_dict())
"""

from ref_verifier._version import __version__
from ref_verifier.aggregator import SOURCE_PRIORITY, ResultAggregator, select_candidate
from ref_verifier.classifier import classify
from ref_verifier.config import VerifierConfig, load_config
from ref_verifier.decoder import (
    FailureEnvelope,
    SuccessEnvelope,
    decode,
    decode_payload,
    detect_corruption,
    repair,
)
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
    RawLookupResult,
    ReferenceDescriptor,
    SourceResultSet,
    VerificationOutcome,
    VerificationStatus,
)
from ref_verifier.process import ERROR_MARKER, LookupProcessAdapter, has_error_marker, resolve_interpreter
from ref_verifier.verifier import ReferenceVerifier

__all__ = [
    # Version
    "__version__",
    # Orchestration
    "ReferenceVerifier",
    "VerifierConfig",
    "load_config",
    # Components
    "LookupProcessAdapter",
    "ResultAggregator",
    "classify",
    "decode",
    "decode_payload",
    "detect_corruption",
    "repair",
    "select_candidate",
    "resolve_interpreter",
    "has_error_marker",
    "ERROR_MARKER",
    "SOURCE_PRIORITY",
    # Data model
    "CanonicalPaper",
    "FailureEnvelope",
    "PaperLookup",
    "RawLookupResult",
    "ReferenceDescriptor",
    "SourceResultSet",
    "SuccessEnvelope",
    "VerificationOutcome",
    "VerificationStatus",
    # Errors
    "ApplicationError",
    "DecodeError",
    "InvalidReferenceError",
    "ProcessExitError",
    "ProcessSpawnError",
    "VerifierError",
]
