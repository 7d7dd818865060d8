from __future__ import annotations

import os
from pathlib import Path

import pytest

from cargo_snapshot.config import DEFAULT_MAX_LINES, HarnessConfig, load_config
from cargo_snapshot.errors import ConfigurationError
from cargo_snapshot.models import Behavior


def test_defaults_when_nothing_is_set() -> None:
    cfg = HarnessConfig.from_env({})

    assert cfg.behavior is Behavior.EXPECT
    assert not cfg.overwrite
    assert cfg.keep_artifacts is False
    assert cfg.debug is False
    assert cfg.max_lines == DEFAULT_MAX_LINES
    assert cfg.target_dir_override is None


def test_overwrite_and_flags_are_parsed() -> None:
    cfg = HarnessConfig.from_env(
        {
            "CARGO_SNAPSHOT": "Overwrite",
            "CARGO_SNAPSHOT_KEEP_ARTIFACTS": "yes",
            "CARGO_SNAPSHOT_DEBUG": "1",
            "CARGO_SNAPSHOT_MAX_LINES": "20",
        }
    )

    assert cfg.overwrite
    assert cfg.keep_artifacts is True
    assert cfg.debug is True
    assert cfg.max_lines == 20


def test_no_truncate_disables_line_limit() -> None:
    cfg = HarnessConfig.from_env({"CARGO_SNAPSHOT_NO_TRUNCATE": "true", "CARGO_SNAPSHOT_MAX_LINES": "5"})
    assert cfg.max_lines is None


def test_target_dir_override_is_absolute(tmp_path: Path) -> None:
    cfg = HarnessConfig.from_env({"CARGO_SNAPSHOT_TARGET_DIR": str(tmp_path / "shared")})
    assert cfg.target_dir_override == (tmp_path / "shared").resolve()


@pytest.mark.parametrize(
    "env",
    [
        {"CARGO_SNAPSHOT": "bless"},
        {"CARGO_SNAPSHOT_KEEP_ARTIFACTS": "maybe"},
        {"CARGO_SNAPSHOT_MAX_LINES": "many"},
        {"CARGO_SNAPSHOT_MAX_LINES": "0"},
    ],
)
def test_unrecognized_values_are_rejected(env) -> None:
    with pytest.raises(ConfigurationError) as ei:
        HarnessConfig.from_env(env)
    assert next(iter(env)) in str(ei.value)


def test_load_config_reads_dotenv_without_overriding(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    dotenv = tmp_path / ".env"
    dotenv.write_text("CARGO_SNAPSHOT=overwrite\nCARGO_SNAPSHOT_MAX_LINES=7\n", encoding="utf-8")

    # Registered first so teardown removes whatever load_dotenv leaves behind.
    monkeypatch.setenv("CARGO_SNAPSHOT_MAX_LINES", "placeholder")
    monkeypatch.delenv("CARGO_SNAPSHOT_MAX_LINES")
    monkeypatch.setenv("CARGO_SNAPSHOT", "expect")

    cfg = load_config(dotenv)

    assert cfg.behavior is Behavior.EXPECT
    assert cfg.max_lines == 7
    assert os.environ["CARGO_SNAPSHOT_MAX_LINES"] == "7"


def test_load_config_without_dotenv_file(tmp_path: Path) -> None:
    cfg = load_config(tmp_path / "missing.env")
    assert cfg == HarnessConfig()
