"""cargo_snapshot.errors

Exception taxonomy for the snapshot harness.

Suite-level errors (configuration, manifest, synthesis) abort the whole suite
before any per-file work runs. File-level errors (tool invocation, empty tool
output) are recorded against the file and the scan continues with its
siblings.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Optional, Sequence

if TYPE_CHECKING:
    from .report import SuiteReport


class CargoSnapshotError(Exception):
    """Base class for every error raised by this package."""


# -------------------------
# Suite-level (fatal)
# -------------------------


class ConfigurationError(CargoSnapshotError):
    """Invalid suite configuration or environment switch."""


class NoPatternsProvided(ConfigurationError):
    def __init__(self) -> None:
        super().__init__("no file patterns provided")


class EmptyFileSet(ConfigurationError):
    """One or more patterns matched zero files."""

    def __init__(self, patterns: Sequence[str]) -> None:
        self.patterns = tuple(patterns)
        lines = ["no matching files found for:"]
        lines.extend(f"    {p}" for p in self.patterns)
        super().__init__("\n".join(lines))


class SuiteStateError(ConfigurationError):
    """A suite was mutated or executed outside the state that allows it."""


class ManifestError(CargoSnapshotError):
    """The host package manifest could not be located or read."""


class ManifestNotFound(ManifestError):
    def __init__(self, start: Path) -> None:
        self.start = Path(start)
        super().__init__(f"could not find Cargo.toml in {self.start} or any parent directory")


class ManifestParseError(ManifestError):
    def __init__(self, path: Path, reason: str) -> None:
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"failed to parse {self.path}: {reason}")


class SynthesisError(CargoSnapshotError):
    """Filesystem or lock-file failure while building the ephemeral project."""


# -------------------------
# File-level (isolated)
# -------------------------


class ToolInvocationError(CargoSnapshotError):
    """The build tool could not be started at all."""

    def __init__(self, command: str, reason: str) -> None:
        self.command = command
        self.reason = reason
        super().__init__(f"failed to execute `{command}`: {reason}")


class ToolOutputEmpty(CargoSnapshotError):
    """A stage produced no output on a stream that was required to carry it."""

    def __init__(self, stage: str, stream: str) -> None:
        self.stage = stage
        self.stream = stream
        super().__init__(f"unexpectedly empty {stream} from `{stage}` stage")


# -------------------------
# Verdict
# -------------------------


class SuiteFailed(AssertionError):
    """Raised when a suite's outcome diverges from its declared expectation.

    Subclasses :class:`AssertionError` so test runners report it as a plain
    test failure rather than an error.
    """

    def __init__(self, message: str, report: Optional["SuiteReport"] = None) -> None:
        super().__init__(message)
        self.report = report
