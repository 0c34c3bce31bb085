"""Shared command-line harness for the lookup programs."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from collections.abc import Callable
from typing import Any

from ref_verifier.lookups.httpclient import HttpClient, http_client_from_env
from ref_verifier.process import ERROR_MARKER

Lookup = Callable[[str, HttpClient, logging.Logger], Any]


def run_lookup(
    name: str,
    lookup: Lookup,
    argv: list[str] | None = None,
    http: HttpClient | None = None,
) -> int:
    """Run a lookup for the query given on the command line and print its JSON result.

    Args:
        name: Program name used in usage text and error messages
        lookup: Callable (query, http, logger) -> JSON-serializable result
        argv: Command-line arguments (defaults to sys.argv[1:])
        http: HTTP client to use; built from environment variables if None

    Returns:
        Process exit code: 0 on success, 1 if the lookup raised
    """
    p = argparse.ArgumentParser(prog=name, description=f"{name} lookup program")
    p.add_argument("query", help="DOI, title or ISBN to look up")
    p.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging on stderr")
    args = p.parse_args(argv)

    logging.basicConfig(
        stream=sys.stderr,
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
    )
    logger = logging.getLogger(f"ref_verifier.lookups.{name}")

    client = http or http_client_from_env(logger)
    try:
        result = lookup(args.query, client, logger)
    except Exception as e:
        print(f"{ERROR_MARKER} {name}: {e}", file=sys.stderr)
        return 1
    finally:
        if http is None:
            client.close()

    json.dump(result, sys.stdout, ensure_ascii=False)
    sys.stdout.write("\n")
    sys.stdout.flush()
    return 0
