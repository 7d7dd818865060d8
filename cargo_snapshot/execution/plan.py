"""cargo_snapshot.execution.plan

Pure planning helpers: turn (project, file, stage) into an :class:`Invocation`.

This module stays pure: no subprocess execution, no filesystem writes.
"""

from __future__ import annotations

from typing import Dict, List, Mapping, Optional, Sequence

from cargo_snapshot.models import PipelineStage, SynthesizedProject, TestFile

from .model import Invocation

# Per-stage arguments placed between ``--bin <name>`` and the user's extra args.
_STAGE_ARGS: Dict[PipelineStage, List[str]] = {
    PipelineStage.EXPAND: ["--theme", "none"],
    PipelineStage.CHECK: [],
    PipelineStage.RUN: ["--quiet"],
    PipelineStage.RUN_TESTS: ["--quiet"],
}


def stage_args(
    stage: PipelineStage,
    bin_target: str,
    *,
    features: Sequence[str] = (),
    extra_args: Sequence[str] = (),
) -> List[str]:
    args = ["--bin", bin_target, "--color", "never", *_STAGE_ARGS[stage]]
    if features:
        args.extend(["--features", ",".join(features)])
    args.extend(extra_args)
    return args


def stage_envs(project: SynthesizedProject, extra_envs: Mapping[str, str]) -> Dict[str, str]:
    envs = {
        "CARGO_TARGET_DIR": str(project.target_dir),
        "CARGO_TERM_COLOR": "never",
    }
    envs.update(extra_envs)
    return envs


def plan_invocation(
    project: SynthesizedProject,
    test: TestFile,
    stage: PipelineStage,
    *,
    extra_args: Sequence[str] = (),
    extra_envs: Optional[Mapping[str, str]] = None,
) -> Invocation:
    return Invocation(
        cwd=project.dir,
        subcommand=stage.subcommand,
        args=stage_args(stage, test.bin, features=project.features, extra_args=extra_args),
        envs=stage_envs(project, extra_envs or {}),
    )
