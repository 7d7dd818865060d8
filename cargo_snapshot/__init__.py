"""cargo_snapshot

Snapshot tests for Rust macro expansion and diagnostics, driven from pytest.

Typical use::

    import cargo_snapshot

    def test_expand():
        cargo_snapshot.expand("tests/expand/*.rs").expect_pass()

    def test_compile_fail():
        cargo_snapshot.expand("tests/fail/*.rs").expect_fail()

    def test_run():
        with cargo_snapshot.run("tests/run/*.rs") as suite:
            suite.env("RUST_BACKTRACE", "0")

Set ``CARGO_SNAPSHOT=overwrite`` to create or update the snapshot files.
"""

from __future__ import annotations

from .config import HarnessConfig, load_config
from .errors import (
    CargoSnapshotError,
    ConfigurationError,
    EmptyFileSet,
    ManifestError,
    ManifestNotFound,
    ManifestParseError,
    NoPatternsProvided,
    SuiteFailed,
    SuiteStateError,
    SynthesisError,
    ToolInvocationError,
    ToolOutputEmpty,
)
from .models import Behavior, PipelineStage, StageStatus, Stream
from .report import FileOutcome, FileStatus, SuiteReport
from .suite import TestSuite, check, expand, run, run_tests

__all__ = [
    "Behavior",
    "CargoSnapshotError",
    "ConfigurationError",
    "EmptyFileSet",
    "FileOutcome",
    "FileStatus",
    "HarnessConfig",
    "ManifestError",
    "ManifestNotFound",
    "ManifestParseError",
    "NoPatternsProvided",
    "PipelineStage",
    "StageStatus",
    "Stream",
    "SuiteFailed",
    "SuiteReport",
    "SuiteStateError",
    "SynthesisError",
    "TestSuite",
    "ToolInvocationError",
    "ToolOutputEmpty",
    "check",
    "expand",
    "load_config",
    "run",
    "run_tests",
]
