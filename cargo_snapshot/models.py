"""cargo_snapshot.models

Lightweight data structures shared across the harness.

These dataclasses give the components a small, explicit vocabulary for:
- what the host package declares (HostManifest, Dependency)
- which source files are under test (TestFile)
- what was generated to host them (SynthesizedProject)
- how one file moves through the build pipeline (PipelineStage, StageStatus)

They carry no side effects so they can be passed freely between the manifest
reader, synthesizer, action runner and snapshot engine.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional, Tuple


class PipelineStage(enum.IntEnum):
    """Ordered build pipeline steps. Expand always runs first."""

    EXPAND = 0
    CHECK = 1
    RUN = 2
    RUN_TESTS = 3

    @property
    def subcommand(self) -> str:
        return _SUBCOMMANDS[self]

    @property
    def label(self) -> str:
        return self.name.lower().replace("_", "-")


_SUBCOMMANDS = {
    PipelineStage.EXPAND: "expand",
    PipelineStage.CHECK: "check",
    PipelineStage.RUN: "run",
    PipelineStage.RUN_TESTS: "test",
}


class StageStatus(enum.Enum):
    SUCCESS = "success"
    FAILURE = "failure"

    def __and__(self, other: "StageStatus") -> "StageStatus":
        if self is StageStatus.SUCCESS and other is StageStatus.SUCCESS:
            return StageStatus.SUCCESS
        return StageStatus.FAILURE


class Behavior(enum.Enum):
    """How snapshots on disk are treated."""

    EXPECT = "expect"
    OVERWRITE = "overwrite"


class Stream(enum.Enum):
    """Captured stream kinds, each persisted under its own fixed suffix."""

    CODE = "code"
    STDOUT = "stdout"
    STDERR = "stderr"

    @property
    def suffix(self) -> str:
        return _SUFFIXES[self]


_SUFFIXES = {
    Stream.CODE: "out.rs",
    Stream.STDOUT: "out.txt",
    Stream.STDERR: "err.txt",
}

SNAPSHOT_SUFFIXES: Tuple[str, ...] = tuple("." + s for s in _SUFFIXES.values())


@dataclass(frozen=True)
class Dependency:
    """One dependency declaration, kept as the raw TOML table.

    ``spec`` is whatever the manifest declared (a version string or a table).
    Path dependencies have already been re-anchored to absolute paths.
    """

    name: str
    spec: Any
    kind: str = "normal"  # "normal" | "dev" | "build"
    target: Optional[str] = None

    @property
    def path(self) -> Optional[str]:
        if isinstance(self.spec, Mapping):
            p = self.spec.get("path")
            return str(p) if p is not None else None
        return None


@dataclass(frozen=True)
class HostManifest:
    """Resolved metadata of the package whose tests invoke the harness."""

    name: str
    version: str
    edition: str
    manifest_path: Path
    workspace_root: Path
    dependencies: Tuple[Dependency, ...] = ()
    features: Mapping[str, Tuple[str, ...]] = field(default_factory=dict)
    active_features: Tuple[str, ...] = ()
    rust_version: Optional[str] = None
    patch: Mapping[str, Any] = field(default_factory=dict)
    replace: Mapping[str, Any] = field(default_factory=dict)
    lock_path: Optional[Path] = None
    target_dir: Optional[Path] = None

    @property
    def manifest_dir(self) -> Path:
        return self.manifest_path.parent

    def dependencies_of_kind(self, kind: str) -> Tuple[Dependency, ...]:
        return tuple(d for d in self.dependencies if d.kind == kind)


@dataclass(frozen=True)
class TestFile:
    """One input source file matched by a suite pattern."""

    __test__ = False  # keep pytest from collecting this class

    path: Path
    name: str
    pattern: str
    bin: str = ""

    def snapshot_path(self, stream: Stream) -> Path:
        return self.path.with_name(f"{self.path.stem}.{stream.suffix}")


@dataclass(frozen=True)
class SynthesizedProject:
    """The ephemeral package generated to host a suite's test files."""

    name: str
    dir: Path
    target_dir: Path
    host: HostManifest
    tests: Tuple[TestFile, ...]
    features: Tuple[str, ...] = ()

    @property
    def manifest_path(self) -> Path:
        return self.dir / "Cargo.toml"
