#!/usr/bin/env python3
"""CLI entry point for the ref-verify command.

Verifies references against external bibliographic sources.
"""

import sys


def main() -> None:
    """Entry point for ref-verify command."""
    from ref_verifier.verifier import main as verifier_main

    sys.exit(verifier_main())


if __name__ == "__main__":
    main()
