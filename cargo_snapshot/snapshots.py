"""cargo_snapshot.snapshots

Snapshot engine: load, compare and conditionally write persisted expected
output.

Snapshots live beside their test file, one file per stream::

    tests/expand/derive.rs
    tests/expand/derive.out.rs    expanded code
    tests/expand/derive.out.txt   stdout of a later stage (run / run-tests)
    tests/expand/derive.err.txt   diagnostics

Content is compared as a whole, never partially. Writes happen only in
overwrite mode and only when the fresh content differs from the value read
at the start of the same reconciliation (no re-read in between).
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .io import read_text_if_exists, write_text_atomic
from .models import Behavior, PipelineStage, Stream, TestFile

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SnapshotKey:
    test: TestFile
    stage: PipelineStage
    stream: Stream

    @property
    def path(self) -> Path:
        return self.test.snapshot_path(self.stream)


class Verification(enum.Enum):
    MATCHED = "matched"
    MISMATCHED = "mismatched"
    MISSING = "missing"  # fresh output, nothing on disk
    UNEXPECTED = "unexpected"  # on disk, but no fresh output


class OutcomeKind(enum.Enum):
    MATCH = "match"
    MISMATCH = "mismatch"
    MISSING = "missing"
    UNEXPECTED = "unexpected"
    CREATED = "created"
    UPDATED = "updated"
    REMOVED = "removed"

    @property
    def passed(self) -> bool:
        return self in (OutcomeKind.MATCH, OutcomeKind.CREATED, OutcomeKind.UPDATED, OutcomeKind.REMOVED)

    @property
    def wrote(self) -> bool:
        return self in (OutcomeKind.CREATED, OutcomeKind.UPDATED, OutcomeKind.REMOVED)


@dataclass(frozen=True)
class SnapshotOutcome:
    key: SnapshotKey
    kind: OutcomeKind
    expected: Optional[str] = None
    actual: Optional[str] = None

    @property
    def passed(self) -> bool:
        return self.kind.passed


class SnapshotStore:
    """Reconciles fresh, normalized output against snapshot files on disk.

    ``allow_writes=False`` (a suite's ``skip_overwrite()``) makes overwrite
    mode behave like expect mode.
    """

    def __init__(self, behavior: Behavior = Behavior.EXPECT, *, allow_writes: bool = True) -> None:
        self.behavior = behavior
        self.allow_writes = allow_writes

    @property
    def overwrite(self) -> bool:
        return self.behavior is Behavior.OVERWRITE and self.allow_writes

    def resolve(self, key: SnapshotKey) -> Optional[str]:
        return read_text_if_exists(key.path)

    @staticmethod
    def verify(existing: Optional[str], new_content: Optional[str]) -> Optional[Verification]:
        """Compare fresh content against what is on disk.

        Returns ``None`` when both are absent (nothing to check).
        """

        if new_content is None and existing is None:
            return None
        if new_content is None:
            return Verification.UNEXPECTED
        if existing is None:
            return Verification.MISSING
        if existing == new_content:
            return Verification.MATCHED
        return Verification.MISMATCHED

    def write_if_overwrite_mode(
        self, key: SnapshotKey, existing: Optional[str], new_content: Optional[str]
    ) -> bool:
        """Persist *new_content* if in overwrite mode and it differs from *existing*.

        ``new_content=None`` removes a stale snapshot. Returns True on write.
        """

        if not self.overwrite or existing == new_content:
            return False
        if new_content is None:
            logger.debug("removing stale snapshot %s", key.path)
            key.path.unlink()
        else:
            logger.debug("writing snapshot %s", key.path)
            write_text_atomic(key.path, new_content)
        return True

    def reconcile(self, key: SnapshotKey, actual: Optional[str]) -> Optional[SnapshotOutcome]:
        """Resolve once, then either write (overwrite mode) or verify."""

        existing = self.resolve(key)
        verification = self.verify(existing, actual)
        if verification is None:
            return None

        if self.overwrite:
            if verification is Verification.MATCHED:
                return SnapshotOutcome(key, OutcomeKind.MATCH, existing, actual)
            self.write_if_overwrite_mode(key, existing, actual)
            kind = {
                Verification.MISSING: OutcomeKind.CREATED,
                Verification.MISMATCHED: OutcomeKind.UPDATED,
                Verification.UNEXPECTED: OutcomeKind.REMOVED,
            }[verification]
            return SnapshotOutcome(key, kind, existing, actual)

        kind = {
            Verification.MATCHED: OutcomeKind.MATCH,
            Verification.MISMATCHED: OutcomeKind.MISMATCH,
            Verification.MISSING: OutcomeKind.MISSING,
            Verification.UNEXPECTED: OutcomeKind.UNEXPECTED,
        }[verification]
        return SnapshotOutcome(key, kind, existing, actual)
