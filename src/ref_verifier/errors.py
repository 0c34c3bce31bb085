"""Error taxonomy for reference verification.

Every failure the verification core can produce is one of these types:
- InvalidReferenceError: the caller supplied no usable identifier
- ProcessSpawnError: a lookup program could not be started
- ProcessExitError: a lookup program exited non-zero or timed out
- DecodeError: a lookup payload could not be parsed, even after repair
- ApplicationError: a payload parsed but reports a failure itself

The orchestration layer catches these once and turns them into
returned outcomes, so none of them ever reach an HTTP caller.
"""

from __future__ import annotations

__all__ = [
    "VerifierError",
    "InvalidReferenceError",
    "ProcessSpawnError",
    "ProcessExitError",
    "DecodeError",
    "ApplicationError",
]


class VerifierError(Exception):
    """Base class for all reference verification errors."""


class InvalidReferenceError(VerifierError, ValueError):
    """Reference descriptor carries no usable identifier."""


class ProcessSpawnError(VerifierError):
    """Lookup program could not be started."""

    def __init__(self, script: str, message: str) -> None:
        super().__init__(message)
        self.script = script


class ProcessExitError(VerifierError):
    """Lookup program terminated with a non-zero status or was killed on timeout."""

    def __init__(self, exit_code: int | None, stderr_text: str, timed_out: bool = False) -> None:
        if timed_out:
            message = f"Lookup process timed out (exit code {exit_code})"
        else:
            message = f"Lookup process exited with code {exit_code}"
        if stderr_text.strip():
            message = f"{message}: {stderr_text.strip()}"
        super().__init__(message)
        self.exit_code = exit_code
        self.stderr_text = stderr_text
        self.timed_out = timed_out


class DecodeError(VerifierError):
    """Payload could not be decoded as JSON even after the repair stages.

    Attributes:
        stage: Last decoding stage attempted ("strict", "repair", "envelope" or "schema")
        snippet: Bounded head/tail preview of the offending text
        signature: Known corruption signature matched, if any (diagnostic only)
    """

    def __init__(self, stage: str, snippet: str, signature: str | None = None, message: str | None = None) -> None:
        detail = message or "Payload is not valid JSON"
        if signature:
            detail = f"{detail} ({signature})"
        super().__init__(f"{detail} [stage={stage}]")
        self.stage = stage
        self.snippet = snippet
        self.signature = signature


class ApplicationError(VerifierError):
    """Payload was decoded but reports a failure (e.g. paper not found)."""

    def __init__(self, message: str, details: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details
