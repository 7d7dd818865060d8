"""cargo_snapshot.report

Per-file outcomes, suite aggregation and the human-readable report.

A file ends up in exactly one of four buckets:

- ``pass``     every snapshot matched and the pipeline met the expectation
- ``updated``  overwrite mode created, rewrote or removed at least one snapshot
- ``missing``  normal mode, fresh output with no snapshot on disk
- ``fail``     mismatch, orphaned snapshot, unexpected status or tool error

The suite passes iff no file is ``fail`` or ``missing``.
"""

from __future__ import annotations

import difflib
import enum
import sys
from dataclasses import dataclass, field
from typing import Dict, List, Optional, TextIO, Tuple

from .config import ENV_KEY
from .execution import PipelineResult
from .models import Behavior, TestFile
from .snapshots import OutcomeKind, SnapshotOutcome


class FileStatus(enum.Enum):
    PASS = "pass"
    FAIL = "fail"
    UPDATED = "updated"
    MISSING = "missing"

    @property
    def passed(self) -> bool:
        return self in (FileStatus.PASS, FileStatus.UPDATED)


@dataclass(frozen=True)
class FileOutcome:
    test: TestFile
    status: FileStatus
    snapshots: Tuple[SnapshotOutcome, ...] = ()
    pipeline: Optional[PipelineResult] = None
    error: Optional[str] = None

    @property
    def passed(self) -> bool:
        return self.status.passed


def classify(
    snapshots: Tuple[SnapshotOutcome, ...],
    *,
    error: Optional[str] = None,
) -> FileStatus:
    if error is not None:
        return FileStatus.FAIL
    kinds = {s.kind for s in snapshots}
    if OutcomeKind.MISMATCH in kinds or OutcomeKind.UNEXPECTED in kinds:
        return FileStatus.FAIL
    if OutcomeKind.MISSING in kinds:
        return FileStatus.MISSING
    if any(k.wrote for k in kinds):
        return FileStatus.UPDATED
    return FileStatus.PASS


@dataclass(frozen=True)
class SuiteReport:
    call_site: str
    behavior: Behavior
    outcomes: Tuple[FileOutcome, ...] = field(default_factory=tuple)

    def counts(self) -> Dict[str, int]:
        counts = {s.value: 0 for s in FileStatus}
        for o in self.outcomes:
            counts[o.status.value] += 1
        return counts

    @property
    def passed(self) -> bool:
        return all(o.passed for o in self.outcomes)

    @property
    def failures(self) -> List[FileOutcome]:
        return [o for o in self.outcomes if not o.passed]

    def summary(self) -> str:
        c = self.counts()
        verdict = "ok" if self.passed else "FAILED"
        return (
            f"snapshot suite {verdict}. {c['pass']} passed; {c['fail']} failed; "
            f"{c['updated']} updated; {c['missing']} missing"
        )

    def failure_message(self) -> str:
        failures = self.failures
        lines = [f"{len(failures)} of {len(self.outcomes)} snapshot tests failed ({self.call_site}):", ""]
        for o in failures:
            lines.append(f"    {o.test.name} ... {o.status.value}")
        for o in failures:
            detail = describe(o)
            if detail:
                lines.extend(["", detail])
        if any(o.status is FileStatus.MISSING or _has_mismatch(o) for o in failures):
            lines.extend(["", overwrite_hint()])
        return "\n".join(lines)


# -------------------------
# Rendering
# -------------------------


def overwrite_hint() -> str:
    return f"note: run with {ENV_KEY}=overwrite to accept the new output"


def _has_mismatch(outcome: FileOutcome) -> bool:
    return any(s.kind in (OutcomeKind.MISMATCH, OutcomeKind.UNEXPECTED) for s in outcome.snapshots)


def unified_diff(expected: Optional[str], actual: Optional[str], *, label: str) -> str:
    diff = difflib.unified_diff(
        (expected or "").splitlines(keepends=True),
        (actual or "").splitlines(keepends=True),
        fromfile=f"expected/{label}",
        tofile=f"actual/{label}",
    )
    return "".join(line if line.endswith("\n") else line + "\n" for line in diff)


def _indent(text: str, prefix: str = "    ") -> str:
    return "\n".join(prefix + line if line else line for line in text.rstrip("\n").split("\n"))


def describe(outcome: FileOutcome) -> str:
    """Details for one file: tool errors, unexpected status, snapshot diffs."""

    parts: List[str] = []
    if outcome.error:
        parts.append(f"  {outcome.test.name}: {outcome.error}")

    for snap in outcome.snapshots:
        name = snap.key.path.name
        if snap.kind is OutcomeKind.MISMATCH:
            parts.append(f"  {name}: mismatch")
            parts.append(_indent(unified_diff(snap.expected, snap.actual, label=name)))
        elif snap.kind is OutcomeKind.MISSING:
            parts.append(f"  {name}: no snapshot on disk; actual output:")
            parts.append(_indent(snap.actual or ""))
        elif snap.kind is OutcomeKind.UNEXPECTED:
            parts.append(f"  {name}: snapshot exists but the stage produced no output")
            parts.append(f"    remove {snap.key.path} if it is no longer expected")
    return "\n".join(parts)


_STATUS_MARKS = {
    FileStatus.PASS: "ok",
    FileStatus.UPDATED: "updated",
    FileStatus.MISSING: "MISSING",
    FileStatus.FAIL: "FAILED",
}


def print_outcome(outcome: FileOutcome, *, stream: Optional[TextIO] = None) -> None:
    """Print one completed file, with details when it did not simply pass."""

    out = stream if stream is not None else sys.stderr
    print(f"test {outcome.test.name} ... {_STATUS_MARKS[outcome.status]}", file=out)

    if outcome.status is FileStatus.UPDATED:
        for snap in outcome.snapshots:
            if snap.kind.wrote:
                print(f"  {snap.kind.value}: {snap.key.path}", file=out)
        return

    if not outcome.passed:
        detail = describe(outcome)
        if detail:
            print(detail, file=out)


def print_summary(report: SuiteReport, *, stream: Optional[TextIO] = None) -> None:
    out = stream if stream is not None else sys.stderr
    print("", file=out)
    print(report.summary(), file=out)
    if report.behavior is Behavior.OVERWRITE and report.counts()["updated"]:
        print("warning: snapshots were written; review and commit them", file=out)
