"""cargo_snapshot.execution.model

Shared data structures for stage execution. No side effects.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from cargo_snapshot.models import PipelineStage, StageStatus


@dataclass(frozen=True)
class ToolOutput:
    """What the opaque build tool hands back: exit status plus both streams."""

    exit_code: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


@dataclass(frozen=True)
class Invocation:
    """A planned build-tool invocation."""

    cwd: Path
    subcommand: str
    args: List[str]
    envs: Dict[str, str] = field(default_factory=dict)

    @property
    def command_str(self) -> str:
        return " ".join(["cargo", self.subcommand, *self.args])


@dataclass(frozen=True)
class ActionResult:
    """Outcome of one stage for one test file, with normalized streams.

    ``stdout``/``stderr`` are ``None`` when the normalized stream is empty.
    """

    stage: PipelineStage
    status: StageStatus
    exit_code: int
    stdout: Optional[str] = None
    stderr: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status is StageStatus.SUCCESS
