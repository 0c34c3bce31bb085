"""Shared fixtures for ref_verifier tests."""

from __future__ import annotations

import json
import logging
import os
import sys
import textwrap
from typing import Any

import pytest

from ref_verifier import (
    LookupProcessAdapter,
    RawLookupResult,
    ReferenceVerifier,
    SourceResultSet,
    VerifierConfig,
)


@pytest.fixture
def logger():
    """Create a test logger."""
    return logging.getLogger("test")


@pytest.fixture
def crossref_hit():
    """A typical Crossref match record."""
    return {"doi": "10.1234/x", "title": "T", "authors": ["A"], "year": 2020}


@pytest.fixture
def make_results():
    """Factory fixture for SourceResultSet documents (all sources present)."""

    def _make_results(**kwargs) -> dict[str, Any]:
        doc: dict[str, Any] = {"arxiv": [], "semantic_scholar": [], "crossref": [], "retracted": []}
        doc.update(kwargs)
        return doc

    return _make_results


@pytest.fixture
def make_result_set(make_results):
    """Factory fixture for SourceResultSet instances."""

    def _make(**kwargs) -> SourceResultSet:
        return SourceResultSet.from_document(make_results(**kwargs))

    return _make


class FakeAdapter(LookupProcessAdapter):
    """Adapter that returns canned payloads instead of spawning processes.

    `responses` maps a script file name to one of:
    - a dict/list (serialized as JSON), str or bytes payload
    - an exception instance to raise
    - a callable taking the query and returning one of the above
    """

    def __init__(self, responses: dict[str, Any] | None = None):
        super().__init__(interpreter="python3", timeout=5.0, logger=logging.getLogger("test"))
        self.responses = responses or {}
        self.calls: list[tuple[str, str, float | None]] = []

    def invoke(self, script, query, timeout=None):
        name = os.path.basename(script)
        self.calls.append((name, query, timeout))
        response = self.responses.get(name)
        if callable(response) and not isinstance(response, Exception):
            response = response(query)
        if isinstance(response, Exception):
            raise response
        if response is None:
            raise AssertionError(f"Unexpected lookup script {name}")
        if isinstance(response, str):
            payload = response.encode("utf-8")
        elif isinstance(response, bytes):
            payload = response
        else:
            payload = json.dumps(response).encode("utf-8")
        return RawLookupResult(stdout=payload, stderr="", exit_code=0)


@pytest.fixture
def fake_adapter():
    """Factory fixture for creating fake adapters."""

    def _create(responses: dict[str, Any] | None = None) -> FakeAdapter:
        return FakeAdapter(responses)

    return _create


@pytest.fixture
def config(tmp_path):
    """VerifierConfig pointing at a scratch scripts directory."""
    return VerifierConfig(scripts_dir=str(tmp_path), lookup_timeout=5.0, detail_timeout=2.0, max_workers=4)


@pytest.fixture
def make_verifier(config, fake_adapter, logger):
    """Factory fixture for a ReferenceVerifier backed by a FakeAdapter."""

    def _make(responses: dict[str, Any] | None = None) -> ReferenceVerifier:
        return ReferenceVerifier(config, adapter=fake_adapter(responses), logger=logger)

    return _make


@pytest.fixture
def write_script(tmp_path):
    """Factory fixture writing a small Python lookup program into tmp_path."""

    def _write(name: str, body: str) -> str:
        path = tmp_path / name
        path.write_text(textwrap.dedent(body), encoding="utf-8")
        return str(path)

    return _write


@pytest.fixture
def adapter(logger):
    """Real LookupProcessAdapter running the test interpreter."""
    return LookupProcessAdapter(interpreter=sys.executable, timeout=10.0, logger=logger)
