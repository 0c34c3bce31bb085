"""Configuration for the reference verifier."""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any

import yaml

__all__ = ["BUNDLED_SCRIPTS_DIR", "VerifierConfig", "load_config"]

BUNDLED_SCRIPTS_DIR = str(Path(__file__).resolve().parent / "lookups")


@dataclass
class VerifierConfig:
    """Configuration for the verification core.

    Attributes:
        interpreter: Interpreter used to run lookup programs. None resolves it
            from the host (the running interpreter, else python/python3).
        scripts_dir: Directory script names are resolved against. None means
            the lookup programs bundled with this package.
        search_script: Multi-source search program (DOI or title query)
        detail_script: Paper detail program keyed on DOI
        isbn_script: Book lookup program keyed on ISBN
        lookup_timeout: Wall-clock limit for primary lookups, in seconds
        detail_timeout: Wall-clock limit for the enrichment lookup, in seconds
        max_workers: Thread pool size for batch verification
        cwd: Working directory for spawned lookup processes
    """

    interpreter: str | None = None
    scripts_dir: str | None = None
    search_script: str = "check_paper.py"
    detail_script: str = "doi_citation.py"
    isbn_script: str = "isbn_citation.py"
    lookup_timeout: float = 60.0
    detail_timeout: float = 15.0
    max_workers: int = 4
    cwd: str | None = None

    def __post_init__(self) -> None:
        if self.lookup_timeout <= 0 or self.detail_timeout <= 0:
            raise ValueError("Timeouts must be positive")
        if self.max_workers < 1:
            raise ValueError("max_workers must be at least 1")

    def script_path(self, name: str) -> str:
        """Resolve a script name to an absolute path."""
        if os.path.isabs(name):
            return name
        base = self.scripts_dir or BUNDLED_SCRIPTS_DIR
        return str(Path(base).expanduser().resolve() / name)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> VerifierConfig:
        """Create config from a dictionary (e.g., loaded from YAML).

        Raises:
            ValueError: If the dictionary contains unknown keys.
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown configuration keys: {', '.join(unknown)}")
        return cls(**data)

    def to_dict(self) -> dict[str, Any]:
        """Convert config to a dictionary for serialization."""
        return asdict(self)


def load_config(path: str) -> VerifierConfig:
    """Load a VerifierConfig from a YAML file.

    An empty file yields the defaults.

    Raises:
        ValueError: If the file does not contain a mapping or has unknown keys.
    """
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        return VerifierConfig()
    if not isinstance(data, dict):
        raise ValueError(f"Configuration file {path} must contain a mapping")
    return VerifierConfig.from_dict(data)
