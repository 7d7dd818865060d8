"""cargo_snapshot.execution.actions

Action runner: drive one test file through the requested pipeline stages.

Sequencing rules
----------------
* Expand always runs first.
* Later stages run only while every prior stage succeeded *and* the suite
  expects overall success. Under expect-failure only Expand is evaluated.
* The first failing stage ends the pipeline for that file.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence, Tuple

from cargo_snapshot.models import PipelineStage, StageStatus, SynthesizedProject, TestFile
from cargo_snapshot.normalization import Normalizer, line_is_error, strip_ansi

from .model import ActionResult, ToolOutput
from .plan import plan_invocation
from .runner import ToolRunner

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PipelineResult:
    test: TestFile
    results: Tuple[ActionResult, ...]

    @property
    def status(self) -> StageStatus:
        status = StageStatus.SUCCESS
        for r in self.results:
            status = status & r.status
        return status

    @property
    def failed(self) -> Optional[ActionResult]:
        for r in self.results:
            if not r.succeeded:
                return r
        return None

    @property
    def last(self) -> ActionResult:
        return self.results[-1]

    def result_for(self, stage: PipelineStage) -> Optional[ActionResult]:
        for r in self.results:
            if r.stage is stage:
                return r
        return None


def evaluate_status(stage: PipelineStage, output: ToolOutput) -> StageStatus:
    """Decide whether a stage succeeded from its raw output.

    ``cargo expand`` can exit 0 even when compilation failed, so the expand
    stage additionally requires non-empty stdout and no ``error`` lines.
    """

    if not output.ok:
        return StageStatus.FAILURE
    if stage is PipelineStage.EXPAND:
        if not output.stdout.strip():
            return StageStatus.FAILURE
        if any(line_is_error(line) for line in strip_ansi(output.stderr).split("\n")):
            return StageStatus.FAILURE
    return StageStatus.SUCCESS


def ordered_stages(stages: Sequence[PipelineStage]) -> Tuple[PipelineStage, ...]:
    ordered = sorted(set(stages) | {PipelineStage.EXPAND})
    return tuple(ordered)


def run_stage(
    project: SynthesizedProject,
    test: TestFile,
    stage: PipelineStage,
    *,
    runner: ToolRunner,
    normalizer: Normalizer,
    extra_args: Sequence[str] = (),
    extra_envs: Optional[Mapping[str, str]] = None,
) -> ActionResult:
    inv = plan_invocation(project, test, stage, extra_args=extra_args, extra_envs=extra_envs)
    logger.debug("%s: %s", test.name, inv.command_str)

    output = runner.run(inv.cwd, inv.subcommand, inv.args, inv.envs)
    status = evaluate_status(stage, output)

    return ActionResult(
        stage=stage,
        status=status,
        exit_code=output.exit_code,
        stdout=normalizer.stdout(stage, test, output.stdout),
        stderr=normalizer.stderr(stage, test, output.stderr),
    )


def run_pipeline(
    project: SynthesizedProject,
    test: TestFile,
    stages: Sequence[PipelineStage],
    *,
    runner: ToolRunner,
    normalizer: Normalizer,
    expect_success: bool = True,
    extra_args: Sequence[str] = (),
    extra_envs: Optional[Mapping[str, str]] = None,
) -> PipelineResult:
    """Run *stages* for one file. :class:`ToolInvocationError` propagates."""

    results = []
    for stage in ordered_stages(stages):
        result = run_stage(
            project,
            test,
            stage,
            runner=runner,
            normalizer=normalizer,
            extra_args=extra_args,
            extra_envs=extra_envs,
        )
        results.append(result)
        logger.debug("%s: %s -> %s", test.name, stage.label, result.status.value)

        if not result.succeeded or not expect_success:
            break

    return PipelineResult(test=test, results=tuple(results))
