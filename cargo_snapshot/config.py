"""cargo_snapshot.config

Process-wide switches for the harness.

All environment-level toggles are read once, at the start of a suite
execution, into one immutable :class:`HarnessConfig`. Components receive that
value explicitly; nothing below this module reads ``os.environ`` for these
switches.

Environment variables
---------------------
``CARGO_SNAPSHOT``                 ``expect`` (default) or ``overwrite``
``CARGO_SNAPSHOT_KEEP_ARTIFACTS``  keep the synthesized project after the run
``CARGO_SNAPSHOT_DEBUG``           DEBUG-level logging on stderr
``CARGO_SNAPSHOT_NO_TRUNCATE``     store captured text without line limit
``CARGO_SNAPSHOT_MAX_LINES``       line limit for captured text (default 100)
``CARGO_SNAPSHOT_TARGET_DIR``      shared build-output directory override
"""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

from .errors import ConfigurationError
from .models import Behavior

ENV_KEY = "CARGO_SNAPSHOT"
KEEP_ARTIFACTS_ENV_KEY = "CARGO_SNAPSHOT_KEEP_ARTIFACTS"
DEBUG_ENV_KEY = "CARGO_SNAPSHOT_DEBUG"
NO_TRUNCATE_ENV_KEY = "CARGO_SNAPSHOT_NO_TRUNCATE"
MAX_LINES_ENV_KEY = "CARGO_SNAPSHOT_MAX_LINES"
TARGET_DIR_ENV_KEY = "CARGO_SNAPSHOT_TARGET_DIR"

DEFAULT_MAX_LINES = 100

_TRUE = {"1", "yes", "true"}
_FALSE = {"0", "no", "false", ""}

logger = logging.getLogger(__name__)


def _parse_bool(env: Mapping[str, str], key: str) -> bool:
    raw = env.get(key)
    if raw is None:
        return False
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ConfigurationError(f'unrecognized value of {key} env var: "{raw}"')


def _parse_behavior(env: Mapping[str, str]) -> Behavior:
    raw = env.get(ENV_KEY)
    if raw is None or raw.strip() == "":
        return Behavior.EXPECT
    try:
        return Behavior(raw.strip().lower())
    except ValueError:
        raise ConfigurationError(f'unrecognized value of {ENV_KEY} env var: "{raw}"') from None


def _parse_max_lines(env: Mapping[str, str]) -> int:
    raw = env.get(MAX_LINES_ENV_KEY)
    if raw is None or raw.strip() == "":
        return DEFAULT_MAX_LINES
    try:
        n = int(raw)
    except ValueError:
        raise ConfigurationError(f'{MAX_LINES_ENV_KEY} must be an integer, got "{raw}"') from None
    if n <= 0:
        raise ConfigurationError(f"{MAX_LINES_ENV_KEY} must be positive, got {n}")
    return n


@dataclass(frozen=True)
class HarnessConfig:
    behavior: Behavior = Behavior.EXPECT
    keep_artifacts: bool = False
    debug: bool = False
    max_lines: Optional[int] = DEFAULT_MAX_LINES
    target_dir_override: Optional[Path] = None

    @property
    def overwrite(self) -> bool:
        return self.behavior is Behavior.OVERWRITE

    @classmethod
    def from_env(cls, env: Mapping[str, str]) -> "HarnessConfig":
        """Build a config from an explicit mapping (pure; no dotenv loading)."""

        no_truncate = _parse_bool(env, NO_TRUNCATE_ENV_KEY)
        target = env.get(TARGET_DIR_ENV_KEY)
        return cls(
            behavior=_parse_behavior(env),
            keep_artifacts=_parse_bool(env, KEEP_ARTIFACTS_ENV_KEY),
            debug=_parse_bool(env, DEBUG_ENV_KEY),
            max_lines=None if no_truncate else _parse_max_lines(env),
            target_dir_override=Path(target).resolve() if target else None,
        )


def load_config(dotenv_path: Optional[Path] = None) -> HarnessConfig:
    """Load ``.env`` (if present) and read the harness switches from the process env.

    Variables already set in the environment win over ``.env`` entries.
    """

    path = Path(dotenv_path) if dotenv_path is not None else Path.cwd() / ".env"
    if path.exists():
        load_dotenv(path, override=False)

    config = HarnessConfig.from_env(os.environ)
    configure_logging(config)
    return config


def configure_logging(config: HarnessConfig) -> None:
    """Attach a stderr handler to the package logger when debug mode is on."""

    pkg_logger = logging.getLogger("cargo_snapshot")
    if not config.debug:
        return
    pkg_logger.setLevel(logging.DEBUG)
    if not any(getattr(h, "_cargo_snapshot", False) for h in pkg_logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter("[%(name)s] %(levelname)s: %(message)s"))
        handler._cargo_snapshot = True  # type: ignore[attr-defined]
        pkg_logger.addHandler(handler)
    logger.debug("debug logging enabled: %s", config)
