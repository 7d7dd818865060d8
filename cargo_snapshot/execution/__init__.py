"""cargo_snapshot.execution

Running the build pipeline for one test file.

The execution layer is split into:

* :mod:`cargo_snapshot.execution.plan`    pure planning (which command, which env)
* :mod:`cargo_snapshot.execution.runner`  subprocess execution (side effects)
* :mod:`cargo_snapshot.execution.actions` per-file stage sequencing
"""

from __future__ import annotations

from .actions import PipelineResult, run_pipeline
from .model import ActionResult, Invocation, ToolOutput
from .runner import CargoRunner, ToolRunner

__all__ = [
    "ActionResult",
    "CargoRunner",
    "Invocation",
    "PipelineResult",
    "ToolOutput",
    "ToolRunner",
    "run_pipeline",
]
