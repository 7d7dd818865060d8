"""cargo_snapshot.execution.runner

Subprocess execution for build-tool stages.

Rule
----
Only this module should touch ``subprocess``. Everything above it talks to
the :class:`ToolRunner` capability, so orchestration can be exercised with a
recording fake instead of a real ``cargo``.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import time
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Protocol, Sequence

from cargo_snapshot.errors import ToolInvocationError

from .model import ToolOutput

logger = logging.getLogger(__name__)


class ToolRunner(Protocol):
    """Capability interface over the opaque build tool."""

    def run(
        self,
        cwd: Path,
        subcommand: str,
        args: Sequence[str],
        envs: Mapping[str, str],
    ) -> ToolOutput: ...


def resolve_cargo(env: Optional[Mapping[str, str]] = None) -> str:
    """Return the cargo executable: ``$CARGO`` if set, else ``cargo`` from PATH."""

    env = os.environ if env is None else env
    configured = env.get("CARGO")
    if configured:
        return configured
    return shutil.which("cargo") or "cargo"


def run_cmd(
    cmd: List[str],
    *,
    cwd: Optional[Path] = None,
    env: Optional[Dict[str, str]] = None,
) -> ToolOutput:
    """Run a subprocess and capture stdout/stderr (no ``shell=True``).

    Never raises on non-zero exit codes; raises :class:`ToolInvocationError`
    only when the process cannot be started. Stdin is closed so the child never
    waits on an interactive terminal. There is no timeout.
    """

    command_str = " ".join(cmd)

    # If env is provided, merge it onto the current process environment.
    env2 = None
    if env is not None:
        env2 = os.environ.copy()
        env2.update(env)

    t0 = time.time()
    try:
        proc = subprocess.run(
            cmd,
            cwd=str(cwd) if cwd else None,
            env=env2,
            stdin=subprocess.DEVNULL,
            capture_output=True,
        )
    except OSError as e:
        raise ToolInvocationError(command_str, e.strerror or str(e)) from e
    elapsed = time.time() - t0

    logger.debug("`%s` exited with %s after %.2fs", command_str, proc.returncode, elapsed)

    return ToolOutput(
        exit_code=proc.returncode,
        stdout=proc.stdout.decode("utf-8", errors="replace") if proc.stdout else "",
        stderr=proc.stderr.decode("utf-8", errors="replace") if proc.stderr else "",
    )


class CargoRunner:
    """Real :class:`ToolRunner` that spawns ``cargo <subcommand> <args...>``."""

    def __init__(self, program: Optional[str] = None) -> None:
        self.program = program or resolve_cargo()

    def run(
        self,
        cwd: Path,
        subcommand: str,
        args: Sequence[str],
        envs: Mapping[str, str],
    ) -> ToolOutput:
        cmd = [self.program, subcommand, *args]
        logger.debug("running `%s` in %s", " ".join(cmd), cwd)
        return run_cmd(cmd, cwd=cwd, env=dict(envs))
