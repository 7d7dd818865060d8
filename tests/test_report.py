from __future__ import annotations

import io
from pathlib import Path

from cargo_snapshot.models import Behavior, PipelineStage, Stream, TestFile
from cargo_snapshot.report import (
    FileOutcome,
    FileStatus,
    SuiteReport,
    classify,
    print_outcome,
    print_summary,
    unified_diff,
)
from cargo_snapshot.snapshots import OutcomeKind, SnapshotKey, SnapshotOutcome

TEST = TestFile(path=Path("/src/tests/ui/a.rs"), name="tests/ui/a.rs", pattern="tests/ui/*.rs")


def _snap(kind: OutcomeKind, expected=None, actual=None, stream: Stream = Stream.CODE) -> SnapshotOutcome:
    return SnapshotOutcome(SnapshotKey(TEST, PipelineStage.EXPAND, stream), kind, expected, actual)


def test_classify_precedence() -> None:
    assert classify(()) is FileStatus.PASS
    assert classify((_snap(OutcomeKind.MATCH),)) is FileStatus.PASS
    assert classify((_snap(OutcomeKind.CREATED), _snap(OutcomeKind.MATCH))) is FileStatus.UPDATED
    assert classify((_snap(OutcomeKind.MISSING), _snap(OutcomeKind.MATCH))) is FileStatus.MISSING
    assert classify((_snap(OutcomeKind.MISSING), _snap(OutcomeKind.MISMATCH))) is FileStatus.FAIL
    assert classify((_snap(OutcomeKind.UNEXPECTED),)) is FileStatus.FAIL
    assert classify((_snap(OutcomeKind.MATCH),), error="boom") is FileStatus.FAIL


def test_suite_report_counts_and_verdict() -> None:
    outcomes = (
        FileOutcome(TEST, FileStatus.PASS),
        FileOutcome(TEST, FileStatus.UPDATED),
        FileOutcome(TEST, FileStatus.MISSING, snapshots=(_snap(OutcomeKind.MISSING, actual="x\n"),)),
    )
    report = SuiteReport("t.py:1", Behavior.EXPECT, outcomes)

    assert report.counts() == {"pass": 1, "fail": 0, "updated": 1, "missing": 1}
    assert not report.passed
    assert report.summary().startswith("snapshot suite FAILED.")
    assert "CARGO_SNAPSHOT=overwrite" in report.failure_message()


def test_unified_diff_labels() -> None:
    diff = unified_diff("a\n", "b\n", label="a.out.rs")
    assert diff.splitlines()[:2] == ["--- expected/a.out.rs", "+++ actual/a.out.rs"]
    assert "-a" in diff.splitlines() and "+b" in diff.splitlines()


def test_print_outcome_lists_written_files() -> None:
    buf = io.StringIO()
    outcome = FileOutcome(TEST, FileStatus.UPDATED, snapshots=(_snap(OutcomeKind.CREATED, actual="x\n"),))

    print_outcome(outcome, stream=buf)

    lines = buf.getvalue().splitlines()
    assert lines[0] == "test tests/ui/a.rs ... updated"
    assert lines[1] == f"  created: {TEST.snapshot_path(Stream.CODE)}"


def test_summary_warns_in_plain_text_after_overwriting() -> None:
    buf = io.StringIO()
    report = SuiteReport("t.py:1", Behavior.OVERWRITE, (FileOutcome(TEST, FileStatus.UPDATED),))

    print_summary(report, stream=buf)

    lines = buf.getvalue().splitlines()
    assert lines[-2] == report.summary()
    assert lines[-1] == "warning: snapshots were written; review and commit them"
    assert buf.getvalue().isascii()

    quiet = io.StringIO()
    print_summary(SuiteReport("t.py:1", Behavior.EXPECT, (FileOutcome(TEST, FileStatus.PASS),)), stream=quiet)
    assert "warning" not in quiet.getvalue()
