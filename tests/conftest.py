from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Sequence, Union

import pytest

from cargo_snapshot.config import HarnessConfig
from cargo_snapshot.execution import ToolOutput
from cargo_snapshot.models import Behavior

Response = Union[ToolOutput, Callable[[Path, str, Sequence[str], Mapping[str, str]], ToolOutput]]


@dataclass
class Call:
    cwd: Path
    subcommand: str
    args: List[str]
    envs: Dict[str, str]

    @property
    def bin(self) -> str:
        return self.args[self.args.index("--bin") + 1]


@dataclass
class RecordingRunner:
    """Fake build tool: records every invocation, answers per subcommand."""

    responses: Dict[str, Response] = field(default_factory=dict)
    calls: List[Call] = field(default_factory=list)

    def run(self, cwd: Path, subcommand: str, args: Sequence[str], envs: Mapping[str, str]) -> ToolOutput:
        self.calls.append(Call(Path(cwd), subcommand, list(args), dict(envs)))
        response = self.responses.get(subcommand)
        if response is None:
            raise AssertionError(f"unexpected `cargo {subcommand}` invocation")
        if callable(response):
            return response(Path(cwd), subcommand, args, envs)
        return response

    def subcommands(self) -> List[str]:
        return [c.subcommand for c in self.calls]


@pytest.fixture
def runner() -> RecordingRunner:
    return RecordingRunner()


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in (
        "CARGO_TARGET_DIR",
        "CARGO_SNAPSHOT",
        "CARGO_SNAPSHOT_KEEP_ARTIFACTS",
        "CARGO_SNAPSHOT_DEBUG",
        "CARGO_SNAPSHOT_NO_TRUNCATE",
        "CARGO_SNAPSHOT_MAX_LINES",
        "CARGO_SNAPSHOT_TARGET_DIR",
    ):
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def expect_config() -> HarnessConfig:
    return HarnessConfig()


@pytest.fixture
def overwrite_config() -> HarnessConfig:
    return HarnessConfig(behavior=Behavior.OVERWRITE)


@pytest.fixture
def host_crate(tmp_path: Path) -> Path:
    """A minimal host package with two expansion test files."""

    (tmp_path / "Cargo.toml").write_text(
        '[package]\nname = "demo-macros"\nversion = "0.1.0"\nedition = "2021"\n\n'
        '[dependencies]\nquote = "1"\n\n'
        '[dev-dependencies]\ntrybuild = "1"\n\n'
        '[features]\nextra = []\n',
        encoding="utf-8",
    )
    expand_dir = tmp_path / "tests" / "expand"
    expand_dir.mkdir(parents=True)
    (expand_dir / "derive.rs").write_text("#[derive(Demo)]\nstruct Foo;\nfn main() {}\n", encoding="utf-8")
    (expand_dir / "attr.rs").write_text("#[demo]\nfn main() {}\n", encoding="utf-8")
    return tmp_path
