"""Lookup process adapter.

Runs one external lookup program for a single query and captures its two
output streams separately. stdout is the only channel for the JSON result;
stderr is kept apart for diagnostics and may contain ERROR_MARKER to flag a
genuine problem as opposed to progress logging.

Every spawned process is bounded by a wall-clock timeout and is always
reaped before invoke() returns or raises.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import sys
import time

from ref_verifier.errors import ProcessExitError, ProcessSpawnError
from ref_verifier.models import RawLookupResult

__all__ = ["ERROR_MARKER", "LookupProcessAdapter", "has_error_marker", "resolve_interpreter"]

# Lookup programs prefix real failures on stderr with this glyph
ERROR_MARKER = "❌"
KILL_GRACE = 5.0


def has_error_marker(stderr_text: str) -> bool:
    """Return True if stderr output flags a genuine failure."""
    return ERROR_MARKER in (stderr_text or "")


def resolve_interpreter(platform: str | None = None) -> str:
    """Resolve the Python interpreter used to run lookup programs.

    Prefers the running interpreter. Otherwise looks up the platform's
    conventional name: "python" on Windows, "python3" elsewhere.
    """
    if platform is None and sys.executable:
        return sys.executable
    name = "python" if (platform or sys.platform).startswith("win") else "python3"
    return shutil.which(name) or name


class LookupProcessAdapter:
    """Spawns lookup programs with a bounded wait and stream capture."""

    def __init__(
        self,
        interpreter: str | None = None,
        timeout: float = 60.0,
        cwd: str | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        """Initialize the adapter.

        Args:
            interpreter: Interpreter executable; resolved from the host if None
            timeout: Default wall-clock limit in seconds for one lookup
            cwd: Working directory for spawned processes
            logger: Logger for process diagnostics
        """
        self.interpreter = interpreter or resolve_interpreter()
        self.timeout = timeout
        self.cwd = cwd
        self.logger = logger or logging.getLogger("ref_verifier.process")

    def invoke(self, script: str, query: str, timeout: float | None = None) -> RawLookupResult:
        """Run `script` with `query` as its single positional argument.

        Args:
            script: Path to the lookup program
            query: DOI, title or ISBN passed to the program
            timeout: Overrides the adapter's default timeout for this call

        Returns:
            RawLookupResult with stdout bytes, decoded stderr and exit code 0

        Raises:
            ProcessSpawnError: If the program or interpreter cannot be started
            ProcessExitError: If the program exits non-zero or exceeds the timeout
        """
        limit = self.timeout if timeout is None else timeout
        if not os.path.isfile(script):
            raise ProcessSpawnError(script, f"Lookup script not found: {script}")

        cmd = [self.interpreter, script, query]
        self.logger.debug("Spawning lookup: %s %s %r (timeout %.1fs)", self.interpreter, script, query, limit)
        started = time.monotonic()
        try:
            proc = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                cwd=self.cwd,
            )
        except OSError as e:
            raise ProcessSpawnError(script, f"Failed to start lookup process {self.interpreter!r}: {e}") from e

        timed_out = False
        try:
            try:
                stdout, stderr = proc.communicate(timeout=limit)
            except subprocess.TimeoutExpired:
                timed_out = True
                self.logger.warning("Lookup %s timed out after %.1fs for %r; killing", script, limit, query)
                proc.kill()
                try:
                    stdout, stderr = proc.communicate(timeout=KILL_GRACE)
                except subprocess.TimeoutExpired:
                    # a surviving grandchild still holds the pipes
                    self.logger.warning("Lookup %s left output pipes open after kill", script)
                    proc.stdout.close()
                    proc.stderr.close()
                    stdout, stderr = b"", b""
        finally:
            if proc.poll() is None:
                proc.kill()
                proc.wait()

        duration = time.monotonic() - started
        stderr_text = stderr.decode("utf-8", errors="replace")
        self._log_stderr(script, stderr_text)
        self.logger.debug("Lookup %s exited with code %s in %.2fs", script, proc.returncode, duration)

        if timed_out:
            raise ProcessExitError(proc.returncode, stderr_text, timed_out=True)
        if proc.returncode != 0:
            raise ProcessExitError(proc.returncode, stderr_text)
        return RawLookupResult(stdout=stdout, stderr=stderr_text, exit_code=proc.returncode, duration=duration)

    def _log_stderr(self, script: str, stderr_text: str) -> None:
        if not stderr_text.strip():
            return
        if has_error_marker(stderr_text):
            self.logger.warning("Lookup %s reported: %s", script, stderr_text.strip())
        else:
            self.logger.debug("Lookup %s stderr: %s", script, stderr_text.strip())
