"""Tests for the ReferenceVerifier orchestration facade."""

from __future__ import annotations

import time

import pytest

from ref_verifier import ReferenceDescriptor, ReferenceVerifier, VerificationStatus
from ref_verifier.errors import InvalidReferenceError, ProcessExitError, ProcessSpawnError
from ref_verifier.verifier import NO_IDENTIFIER_MESSAGE

CROSSREF_HIT = {"doi": "10.1234/x", "title": "T", "authors": ["A"], "year": 2020}


def _doc(**kwargs):
    doc = {"arxiv": [], "semantic_scholar": [], "crossref": [], "retracted": []}
    doc.update(kwargs)
    return doc


class TestVerifyReference:
    """Tests for verify_reference."""

    def test_verified(self, make_verifier):
        doc = _doc(crossref=[CROSSREF_HIT])
        verifier = make_verifier({"check_paper.py": doc})
        outcome = verifier.verify_reference({"doi": "10.1234/x"})
        assert outcome.status == VerificationStatus.VERIFIED
        assert outcome.to_dict() == {"verification_status": "verified", "results": doc}

    def test_retracted(self, make_verifier):
        doc = _doc(crossref=[CROSSREF_HIT], retracted=[{"doi": "10.1234/x"}])
        verifier = make_verifier({"check_paper.py": doc})
        outcome = verifier.verify_reference({"doi": "10.1234/x"})
        assert outcome.status == VerificationStatus.RETRACTED
        assert outcome.to_dict()["results"]["retracted"] == [{"doi": "10.1234/x"}]

    def test_not_found(self, make_verifier):
        verifier = make_verifier({"check_paper.py": _doc()})
        outcome = verifier.verify_reference(ReferenceDescriptor(title="Nonexistent Paper"))
        assert outcome.status == VerificationStatus.NOT_FOUND

    def test_lookup_exit_failure(self, make_verifier):
        verifier = make_verifier({"check_paper.py": ProcessExitError(1, "lookup host unreachable")})
        outcome = verifier.verify_reference({"doi": "10.1234/x"})
        assert outcome.to_dict() == {
            "verification_status": "failed",
            "error": "Failed to verify reference",
            "details": "lookup host unreachable",
        }

    def test_lookup_exit_failure_real_process(self, config, adapter, write_script, logger):
        write_script(
            "check_paper.py",
            """
            import sys
            sys.stderr.write("lookup host unreachable")
            sys.exit(1)
            """,
        )
        verifier = ReferenceVerifier(config, adapter=adapter, logger=logger)
        outcome = verifier.verify_reference({"doi": "10.1234/x"})
        assert outcome.status == VerificationStatus.FAILED
        assert outcome.error == "Failed to verify reference"
        assert outcome.details == "lookup host unreachable"

    def test_verified_real_process(self, config, adapter, write_script, logger):
        write_script(
            "check_paper.py",
            """
            import json
            import sys
            print(json.dumps({"arxiv": [], "semantic_scholar": [],
                              "crossref": [{"doi": sys.argv[1], "title": "T"}], "retracted": []}))
            """,
        )
        verifier = ReferenceVerifier(config, adapter=adapter, logger=logger)
        outcome = verifier.verify_reference({"doi": "10.1234/x"})
        assert outcome.status == VerificationStatus.VERIFIED
        assert outcome.results.crossref == ({"doi": "10.1234/x", "title": "T"},)

    def test_no_identifier_spawns_nothing(self, make_verifier):
        verifier = make_verifier({"check_paper.py": _doc()})
        with pytest.raises(InvalidReferenceError):
            verifier.verify_reference({})
        assert verifier.adapter.calls == []

    def test_isbn_only_is_not_verifiable(self, make_verifier):
        verifier = make_verifier({"check_paper.py": _doc()})
        with pytest.raises(InvalidReferenceError, match="DOI or title"):
            verifier.verify_reference({"isbn": "9780262033848"})
        assert verifier.adapter.calls == []

    def test_doi_preferred_over_title(self, make_verifier, config):
        verifier = make_verifier({"check_paper.py": _doc()})
        verifier.verify_reference({"doi": "10.1234/x", "title": "T"})
        assert verifier.adapter.calls == [("check_paper.py", "10.1234/x", config.lookup_timeout)]

    def test_title_used_without_doi(self, make_verifier):
        verifier = make_verifier({"check_paper.py": _doc()})
        verifier.verify_reference({"title": "  Attention Is All You Need "})
        assert verifier.adapter.calls[0][1] == "Attention Is All You Need"

    def test_partial_document(self, make_verifier):
        verifier = make_verifier({"check_paper.py": {"crossref": [CROSSREF_HIT]}})
        outcome = verifier.verify_reference({"doi": "10.1234/x"})
        assert outcome.status == VerificationStatus.VERIFIED
        assert outcome.to_dict()["results"] == _doc(crossref=[CROSSREF_HIT])

    def test_repairable_payload(self, make_verifier):
        payload = (
            '{"arxiv": [] "semantic_scholar": [], '
            '"crossref": [{"doi": "10.1234/x" "title": "T"}], "retracted": [],}'
        )
        verifier = make_verifier({"check_paper.py": payload})
        outcome = verifier.verify_reference({"doi": "10.1234/x"})
        assert outcome.status == VerificationStatus.VERIFIED

    def test_undecodable_payload(self, make_verifier):
        verifier = make_verifier({"check_paper.py": "Traceback (most recent call last):"})
        outcome = verifier.verify_reference({"doi": "10.1234/x"})
        assert outcome.status == VerificationStatus.FAILED
        assert outcome.error == "Invalid JSON response"

    def test_non_object_payload(self, make_verifier):
        verifier = make_verifier({"check_paper.py": [1, 2, 3]})
        outcome = verifier.verify_reference({"doi": "10.1234/x"})
        assert outcome.status == VerificationStatus.FAILED
        assert outcome.error == "Invalid JSON response"

    def test_spawn_failure(self, make_verifier):
        verifier = make_verifier({"check_paper.py": ProcessSpawnError("check_paper.py", "Lookup script not found")})
        outcome = verifier.verify_reference({"title": "T"})
        assert outcome.to_dict() == {
            "verification_status": "failed",
            "error": "Failed to verify reference",
            "details": "Lookup script not found",
        }

    def test_timeout(self, make_verifier):
        verifier = make_verifier({"check_paper.py": ProcessExitError(-9, "", timed_out=True)})
        outcome = verifier.verify_reference({"title": "T"})
        assert outcome.status == VerificationStatus.FAILED
        assert "timed out" in outcome.details

    def test_unexpected_error_is_contained(self, make_verifier):
        verifier = make_verifier({"check_paper.py": RuntimeError("boom")})
        outcome = verifier.verify_reference({"title": "T"})
        assert outcome.status == VerificationStatus.FAILED
        assert outcome.error == "Failed to verify reference"
        assert outcome.details == "boom"

    def test_parsed_failure_envelope(self, make_verifier):
        envelope = {"success": False, "error": "Lookup backend down"}
        verifier = make_verifier({"check_paper.py": envelope})
        outcome = verifier.verify_reference({"doi": "10.1234/x"})
        assert outcome.to_dict() == {"verification_status": "failed", "error": "Lookup backend down"}

    def test_failure_envelope_parsed_or_not_gives_same_outcome(self, make_verifier):
        parsed = make_verifier({"check_paper.py": {"success": False, "error": "Lookup backend down"}})
        truncated = make_verifier({"check_paper.py": '{"success": false, "error": "Lookup backend down"'})
        first = parsed.verify_reference({"title": "T"})
        second = truncated.verify_reference({"title": "T"})
        assert first.status is second.status is VerificationStatus.FAILED
        assert first.error == second.error == "Lookup backend down"


class TestVerifyReferences:
    """Tests for batch verification."""

    def test_order_preserved(self, make_verifier):
        def respond(query):
            # Earlier references finish last
            time.sleep({"a": 0.2, "b": 0.1}.get(query, 0))
            if query == "c":
                return _doc()
            return _doc(crossref=[{"title": query}])

        verifier = make_verifier({"check_paper.py": respond})
        outcomes = verifier.verify_references([{"title": "a"}, {"title": "b"}, {"title": "c"}], max_workers=3)
        assert [o.status for o in outcomes] == [
            VerificationStatus.VERIFIED,
            VerificationStatus.VERIFIED,
            VerificationStatus.NOT_FOUND,
        ]
        assert outcomes[0].results.crossref[0]["title"] == "a"
        assert outcomes[1].results.crossref[0]["title"] == "b"

    def test_invalid_reference_does_not_stop_batch(self, make_verifier):
        verifier = make_verifier({"check_paper.py": _doc(crossref=[CROSSREF_HIT])})
        outcomes = verifier.verify_references([{"doi": "10.1234/x"}, {}, {"title": "T"}])
        assert outcomes[0].status == VerificationStatus.VERIFIED
        assert outcomes[1].status == VerificationStatus.FAILED
        assert outcomes[1].error == NO_IDENTIFIER_MESSAGE
        assert outcomes[2].status == VerificationStatus.VERIFIED
        assert len(verifier.adapter.calls) == 2

    def test_empty_batch(self, make_verifier):
        assert make_verifier().verify_references([]) == []


class TestSearchPaper:
    """Tests for search_paper."""

    def test_detail_timeout_keeps_basic_candidate(self, make_verifier, config):
        verifier = make_verifier(
            {
                "check_paper.py": _doc(crossref=[CROSSREF_HIT]),
                "doi_citation.py": ProcessExitError(-9, "", timed_out=True),
            }
        )
        lookup = verifier.search_paper("Attention Is All You Need")
        assert lookup.ok
        assert lookup.paper.title == "T"
        assert lookup.paper.doi == "10.1234/x"
        assert lookup.results.crossref == (CROSSREF_HIT,)
        assert verifier.adapter.calls[1] == ("doi_citation.py", "10.1234/x", config.detail_timeout)

    def test_detail_enriches_candidate(self, make_verifier):
        detail = {"success": True, "paper": {"title": "T (Extended)", "doi": "10.1234/x", "authors": ["A", "B"]}}
        verifier = make_verifier({"check_paper.py": _doc(crossref=[CROSSREF_HIT]), "doi_citation.py": detail})
        lookup = verifier.search_paper("T")
        assert lookup.paper.title == "T (Extended)"
        data = lookup.to_dict()
        assert data["success"] is True
        assert data["paper"]["authors"] == ["A", "B"]
        assert data["results"]["crossref"] == [CROSSREF_HIT]

    def test_not_found_keeps_results(self, make_verifier):
        verifier = make_verifier({"check_paper.py": _doc()})
        lookup = verifier.search_paper("Unknown")
        assert not lookup.ok
        assert lookup.error == "Paper not found"
        assert lookup.to_dict()["results"] == _doc()

    def test_search_failure(self, make_verifier):
        verifier = make_verifier({"check_paper.py": ProcessExitError(1, "all sources down")})
        lookup = verifier.search_paper("T")
        assert lookup.error == "Failed to search paper"
        assert lookup.details == "all sources down"
        assert lookup.results is None

    def test_parsed_failure_envelope(self, make_verifier):
        envelope = {"success": False, "error": "Lookup backend down", "details": "crossref: 503"}
        verifier = make_verifier({"check_paper.py": envelope})
        lookup = verifier.search_paper("T")
        assert lookup.to_dict() == {"success": False, "error": "Lookup backend down", "details": "crossref: 503"}
        assert verifier.adapter.calls == [("check_paper.py", "T", verifier.config.lookup_timeout)]

    def test_non_string_doi_in_candidate(self, make_verifier):
        verifier = make_verifier({"check_paper.py": _doc(crossref=[{"title": "T", "doi": 1234}])})
        lookup = verifier.search_paper("T")
        assert lookup.error == "Paper not found"
        assert lookup.results.crossref == ({"title": "T", "doi": 1234},)

    def test_non_list_authors_in_candidate(self, make_verifier):
        verifier = make_verifier({"check_paper.py": _doc(crossref=[{"title": "T", "authors": 5}])})
        lookup = verifier.search_paper("T")
        assert lookup.error == "Paper not found"
        assert len(verifier.adapter.calls) == 1

    def test_unexpected_error_is_contained(self, make_verifier):
        verifier = make_verifier({"check_paper.py": RuntimeError("boom")})
        lookup = verifier.search_paper("T")
        assert lookup.to_dict() == {"success": False, "error": "Failed to search paper", "details": "boom"}

    def test_empty_title(self, make_verifier):
        verifier = make_verifier()
        lookup = verifier.search_paper("   ")
        assert lookup.error == "A title is required"
        assert verifier.adapter.calls == []


class TestAnalyzePaper:
    """Tests for analyze_paper."""

    def test_success(self, make_verifier):
        detail = {"success": True, "paper": {"title": "T", "DOI": "10.1234/X", "is_retracted": True}}
        verifier = make_verifier({"doi_citation.py": detail})
        lookup = verifier.analyze_paper("10.1234/x")
        assert lookup.ok
        assert lookup.paper.doi == "10.1234/x"
        assert lookup.paper.is_retracted is True
        assert lookup.to_dict() == {
            "success": True,
            "paper": {"title": "T", "doi": "10.1234/x", "authors": [], "year": None, "is_retracted": True},
        }

    def test_failure_envelope(self, make_verifier):
        envelope = {"success": False, "error": "Paper not found", "details": "10.1234/x"}
        verifier = make_verifier({"doi_citation.py": envelope})
        lookup = verifier.analyze_paper("10.1234/x")
        assert lookup.to_dict() == {"success": False, "error": "Paper not found", "details": "10.1234/x"}

    def test_truncated_failure_envelope(self, make_verifier):
        verifier = make_verifier({"doi_citation.py": '{"success": false, "error": "Paper not found"'})
        lookup = verifier.analyze_paper("10.1234/x")
        assert lookup.error == "Paper not found"

    def test_success_without_paper(self, make_verifier):
        verifier = make_verifier({"doi_citation.py": {"success": True, "paper": None}})
        lookup = verifier.analyze_paper("10.1234/x")
        assert lookup.error == "Lookup returned no paper"

    def test_non_string_doi_in_paper(self, make_verifier):
        verifier = make_verifier({"doi_citation.py": {"success": True, "paper": {"title": "T", "doi": 99}}})
        lookup = verifier.analyze_paper("10.1/x")
        assert lookup.error == "Lookup returned no paper"
        assert "DOI must be a string" in lookup.details

    def test_non_list_authors_in_paper(self, make_verifier):
        verifier = make_verifier({"doi_citation.py": {"success": True, "paper": {"title": "T", "authors": 5}}})
        lookup = verifier.analyze_paper("10.1/x")
        assert lookup.error == "Lookup returned no paper"

    def test_unexpected_error_is_contained(self, make_verifier):
        verifier = make_verifier({"doi_citation.py": RuntimeError("boom")})
        lookup = verifier.analyze_paper("10.1/x")
        assert lookup.error == "Failed to analyze paper"
        assert lookup.details == "boom"

    def test_process_failure(self, make_verifier):
        verifier = make_verifier({"doi_citation.py": ProcessExitError(2, "bad DOI\n")})
        lookup = verifier.analyze_paper("10.1234/x")
        assert lookup.error == "Failed to analyze paper"
        assert lookup.details == "bad DOI"

    def test_empty_identifier(self, make_verifier):
        assert make_verifier().analyze_paper("").error == "An identifier is required"


class TestLookupIsbn:
    """Tests for lookup_isbn."""

    def test_success(self, make_verifier):
        book = {"success": True, "paper": {"title": "Introduction to Algorithms", "authors": ["Cormen"], "year": 1990}}
        verifier = make_verifier({"isbn_citation.py": book})
        lookup = verifier.lookup_isbn("978-0262033848")
        assert lookup.paper.title == "Introduction to Algorithms"
        assert verifier.adapter.calls[0][:2] == ("isbn_citation.py", "978-0262033848")

    def test_book_not_found(self, make_verifier):
        verifier = make_verifier({"isbn_citation.py": {"success": False, "error": "Book not found"}})
        lookup = verifier.lookup_isbn("9780000000000")
        assert lookup.error == "Book not found"

    def test_process_failure(self, make_verifier):
        verifier = make_verifier({"isbn_citation.py": ProcessSpawnError("isbn_citation.py", "not found")})
        lookup = verifier.lookup_isbn("9780262033848")
        assert lookup.error == "Failed to process ISBN"

    def test_empty_isbn(self, make_verifier):
        assert make_verifier().lookup_isbn(None).error == "An ISBN is required"
