"""cargo_snapshot.suite

Test suite orchestration.

A :class:`TestSuite` accumulates configuration fluently, then executes once::

    Configuring --execute()--> Resolved --> Executed

* Configuring: patterns, stages, args, envs, features, filters, expectation.
* Resolved:    globs expanded and host manifest read; configuration frozen.
* Executed:    project synthesized, every file run and reconciled, report
               produced, synthesized project removed (unless retained).

Execution is triggered explicitly (:meth:`TestSuite.execute`,
:meth:`TestSuite.expect_pass`, :meth:`TestSuite.expect_fail`) or implicitly
when a ``with`` block around the suite exits without an exception.
"""

from __future__ import annotations

import enum
import logging
import os
import re
import sys
import traceback
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from .config import HarnessConfig, load_config
from .errors import (
    ConfigurationError,
    NoPatternsProvided,
    SuiteFailed,
    SuiteStateError,
    ToolInvocationError,
    ToolOutputEmpty,
)
from .execution import CargoRunner, PipelineResult, ToolRunner, run_pipeline
from .manifest import read_host_manifest
from .models import HostManifest, PipelineStage, StageStatus, Stream, SynthesizedProject, TestFile
from .normalization import Normalizer, RegexFilter
from .report import FileOutcome, FileStatus, SuiteReport, classify, print_outcome, print_summary
from .snapshots import SnapshotKey, SnapshotOutcome, SnapshotStore
from .synthesis import collect_test_files, suite_identity, synthesized_project

logger = logging.getLogger(__name__)

Patterns = Union[str, Iterable[str]]

_PACKAGE_DIR = os.path.dirname(os.path.abspath(__file__))


class SuiteState(enum.Enum):
    CONFIGURING = "configuring"
    RESOLVED = "resolved"
    EXECUTED = "executed"


def caller_site() -> str:
    """``file:line`` of the innermost stack frame outside this package."""

    for frame in reversed(traceback.extract_stack()):
        filename = os.path.abspath(frame.filename)
        if not filename.startswith(_PACKAGE_DIR + os.sep):
            return f"{frame.filename}:{frame.lineno}"
    return "<unknown>"


def _as_patterns(patterns: Patterns) -> List[str]:
    if isinstance(patterns, (str, os.PathLike)):
        return [os.fspath(patterns)]
    return [os.fspath(p) for p in patterns]


def snapshot_contents(
    pipeline: PipelineResult,
) -> List[Tuple[Stream, PipelineStage, Optional[str]]]:
    """Map a pipeline's results onto the three snapshot streams.

    - code:   expand stdout
    - stdout: stdout of the last run / run-tests stage
    - stderr: diagnostics of the failing stage; on success, stderr of a final
              run / run-tests stage
    """

    expand = pipeline.result_for(PipelineStage.EXPAND)
    code = expand.stdout if expand is not None else None

    post = [r for r in pipeline.results if r.stage in (PipelineStage.RUN, PipelineStage.RUN_TESTS)]
    stdout_stage = post[-1].stage if post else pipeline.last.stage
    stdout = post[-1].stdout if post else None

    failed = pipeline.failed
    if failed is not None:
        stderr_stage, stderr = failed.stage, failed.stderr
    elif pipeline.last.stage in (PipelineStage.RUN, PipelineStage.RUN_TESTS):
        stderr_stage, stderr = pipeline.last.stage, pipeline.last.stderr
    else:
        stderr_stage, stderr = pipeline.last.stage, None

    return [
        (Stream.CODE, PipelineStage.EXPAND, code),
        (Stream.STDOUT, stdout_stage, stdout),
        (Stream.STDERR, stderr_stage, stderr),
    ]


class TestSuite:
    """One configured batch of test files sharing synthesis and an expectation."""

    __test__ = False  # keep pytest from collecting this class

    def __init__(
        self,
        patterns: Patterns,
        stages: Sequence[PipelineStage] = (PipelineStage.EXPAND,),
        *,
        call_site: Optional[str] = None,
        base_dir: Optional[Path] = None,
        runner: Optional[ToolRunner] = None,
        config: Optional[HarnessConfig] = None,
    ) -> None:
        self.patterns = _as_patterns(patterns)
        if not self.patterns:
            raise NoPatternsProvided()

        self.call_site = call_site or caller_site()
        self.base_dir = Path(base_dir) if base_dir is not None else None
        self.runner = runner
        self.config = config

        self._state = SuiteState.CONFIGURING
        self._stages: List[PipelineStage] = []
        for stage in stages:
            self._add_stage(stage)
        self._args: List[str] = []
        self._envs: Dict[str, str] = {}
        self._features: List[str] = []
        self._filters: List[RegexFilter] = []
        self._skip_overwrite = False
        self._expectation = StageStatus.SUCCESS
        self.report: Optional[SuiteReport] = None

    def __repr__(self) -> str:
        stages = ",".join(s.label for s in self.stages)
        return f"TestSuite({self.patterns!r}, stages={stages}, state={self._state.value})"

    # -------------------------
    # Configuration
    # -------------------------

    @property
    def state(self) -> SuiteState:
        return self._state

    @property
    def stages(self) -> Tuple[PipelineStage, ...]:
        return tuple(sorted(set(self._stages) | {PipelineStage.EXPAND}))

    @property
    def expectation(self) -> StageStatus:
        return self._expectation

    def _require_configuring(self, what: str) -> None:
        if self._state is not SuiteState.CONFIGURING:
            raise SuiteStateError(f"cannot {what}: suite is already {self._state.value}")

    def _add_stage(self, stage: PipelineStage) -> None:
        if stage in self._stages:
            raise ConfigurationError(f"stage `{stage.label}` requested more than once")
        self._stages.append(stage)

    def arg(self, value: str) -> "TestSuite":
        self._require_configuring("add an argument")
        self._args.append(str(value))
        return self

    def args(self, values: Iterable[str]) -> "TestSuite":
        self._require_configuring("add arguments")
        self._args.extend(str(v) for v in values)
        return self

    def env(self, key: str, value: str) -> "TestSuite":
        self._require_configuring("add an environment variable")
        self._envs[str(key)] = str(value)
        return self

    def envs(self, values: Mapping[str, str]) -> "TestSuite":
        self._require_configuring("add environment variables")
        for key, value in values.items():
            self._envs[str(key)] = str(value)
        return self

    def features(self, names: Iterable[str]) -> "TestSuite":
        self._require_configuring("set features")
        self._features.extend(names)
        return self

    def skip_overwrite(self) -> "TestSuite":
        """Never write snapshots for this suite, even in overwrite mode."""

        self._require_configuring("skip overwrite")
        self._skip_overwrite = True
        return self

    def _filter(self, stream: Stream, pattern: str, replacement: str) -> "TestSuite":
        self._require_configuring("add a filter")
        try:
            compiled = re.compile(pattern, re.MULTILINE)
        except re.error as e:
            raise ConfigurationError(f"invalid {stream.value} filter {pattern!r}: {e}") from e
        self._filters.append(RegexFilter(stream, compiled, replacement))
        return self

    def filter_stdout(self, pattern: str, replacement: str) -> "TestSuite":
        return self._filter(Stream.STDOUT, pattern, replacement)

    def filter_stderr(self, pattern: str, replacement: str) -> "TestSuite":
        return self._filter(Stream.STDERR, pattern, replacement)

    def and_check(self) -> "TestSuite":
        self._require_configuring("add a stage")
        self._add_stage(PipelineStage.CHECK)
        return self

    def and_run(self) -> "TestSuite":
        self._require_configuring("add a stage")
        self._add_stage(PipelineStage.RUN)
        return self

    def and_run_tests(self) -> "TestSuite":
        self._require_configuring("add a stage")
        self._add_stage(PipelineStage.RUN_TESTS)
        return self

    def expecting_failure(self) -> "TestSuite":
        """Declare that every file is expected to fail (without executing)."""

        self._require_configuring("change the expectation")
        self._expectation = StageStatus.FAILURE
        return self

    def expect_pass(self) -> SuiteReport:
        self._require_configuring("execute")
        self._expectation = StageStatus.SUCCESS
        return self.execute()

    def expect_fail(self) -> SuiteReport:
        return self.expecting_failure().execute()

    # -------------------------
    # Implicit execution
    # -------------------------

    def __enter__(self) -> "TestSuite":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None and self._state is SuiteState.CONFIGURING:
            self.execute()

    # -------------------------
    # Execution
    # -------------------------

    def resolve(self) -> Tuple[Tuple[TestFile, ...], HostManifest]:
        """Expand globs and read the host manifest; freezes configuration."""

        self._require_configuring("resolve")
        tests = collect_test_files(self.patterns, base_dir=self.base_dir)
        host = read_host_manifest(self.base_dir, feature_overrides=self._features)
        self._state = SuiteState.RESOLVED
        return tests, host

    def execute(self) -> SuiteReport:
        """Run the suite; raises :class:`SuiteFailed` if any file diverges."""

        self._require_configuring("execute")
        config = self.config or load_config()
        runner = self.runner if self.runner is not None else CargoRunner()

        try:
            tests, host = self.resolve()
            identity = suite_identity(self.call_site, self.patterns)
            outcomes: List[FileOutcome] = []

            print(f"\nrunning {len(tests)} snapshot tests ({self.call_site})", file=sys.stderr)
            with synthesized_project(host, tests, config, identity=identity) as project:
                normalizer = Normalizer(project, max_lines=config.max_lines, filters=self._filters)
                store = SnapshotStore(config.behavior, allow_writes=not self._skip_overwrite)
                for test in project.tests:
                    outcome = self._run_file(project, test, runner, normalizer, store)
                    print_outcome(outcome)
                    outcomes.append(outcome)
        finally:
            self._state = SuiteState.EXECUTED

        report = SuiteReport(self.call_site, config.behavior, tuple(outcomes))
        self.report = report
        print_summary(report)

        if not report.passed:
            raise SuiteFailed(report.failure_message(), report)
        return report

    def _run_file(
        self,
        project: SynthesizedProject,
        test: TestFile,
        runner: ToolRunner,
        normalizer: Normalizer,
        store: SnapshotStore,
    ) -> FileOutcome:
        try:
            pipeline = run_pipeline(
                project,
                test,
                self.stages,
                runner=runner,
                normalizer=normalizer,
                expect_success=self._expectation is StageStatus.SUCCESS,
                extra_args=self._args,
                extra_envs=self._envs,
            )
        except ToolInvocationError as e:
            logger.debug("%s: %s", test.name, e)
            return FileOutcome(test, FileStatus.FAIL, error=str(e))

        try:
            return self._evaluate(test, pipeline, store)
        except ToolOutputEmpty as e:
            return FileOutcome(test, FileStatus.FAIL, pipeline=pipeline, error=str(e))

    def _evaluate(self, test: TestFile, pipeline: PipelineResult, store: SnapshotStore) -> FileOutcome:
        status = pipeline.status
        contents = snapshot_contents(pipeline)
        by_stream = {stream: content for stream, _, content in contents}

        if status is StageStatus.SUCCESS and by_stream[Stream.CODE] is None:
            raise ToolOutputEmpty(PipelineStage.EXPAND.label, "stdout")
        if status is StageStatus.FAILURE and by_stream[Stream.STDERR] is None:
            failed = pipeline.failed
            raise ToolOutputEmpty(failed.stage.label if failed else "expand", "stderr")

        if status is not self._expectation:
            return FileOutcome(test, FileStatus.FAIL, pipeline=pipeline, error=_unexpected(pipeline, by_stream))

        snapshots: List[SnapshotOutcome] = []
        for stream, stage, content in contents:
            outcome = store.reconcile(SnapshotKey(test, stage, stream), content)
            if outcome is not None:
                snapshots.append(outcome)

        snaps = tuple(snapshots)
        return FileOutcome(test, classify(snaps), snapshots=snaps, pipeline=pipeline)


def _unexpected(pipeline: PipelineResult, by_stream: Mapping[Stream, Optional[str]]) -> str:
    failed = pipeline.failed
    if failed is None:
        lines = ["expected failure, but every stage succeeded", "  expanded code:"]
        lines.extend("    " + line for line in (by_stream[Stream.CODE] or "").rstrip("\n").split("\n"))
        return "\n".join(lines)
    lines = [f"expected success, but `{failed.stage.label}` failed (exit code {failed.exit_code})"]
    lines.extend("    " + line for line in (failed.stderr or "").rstrip("\n").split("\n"))
    return "\n".join(lines)


# -------------------------
# Entry points
# -------------------------


def _suite(patterns: Patterns, stages: Sequence[PipelineStage], **kwargs) -> TestSuite:
    kwargs.setdefault("call_site", caller_site())
    return TestSuite(patterns, stages, **kwargs)


def expand(patterns: Patterns, **kwargs) -> TestSuite:
    return _suite(patterns, (PipelineStage.EXPAND,), **kwargs)


def check(patterns: Patterns, **kwargs) -> TestSuite:
    return _suite(patterns, (PipelineStage.EXPAND, PipelineStage.CHECK), **kwargs)


def run(patterns: Patterns, **kwargs) -> TestSuite:
    return _suite(patterns, (PipelineStage.EXPAND, PipelineStage.RUN), **kwargs)


def run_tests(patterns: Patterns, **kwargs) -> TestSuite:
    return _suite(patterns, (PipelineStage.EXPAND, PipelineStage.RUN_TESTS), **kwargs)
