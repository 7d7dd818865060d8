"""cargo_snapshot.synthesis

Project synthesizer: turn scattered test files plus the host package's
dependency closure into one ephemeral, independently buildable package.

Layout
------
::

    <build-root>/tests/<host>_<identity>_<pid>/   synthesized package (owned by one suite)
        Cargo.toml                               generated manifest, one [[bin]] per file
        Cargo.lock                               copy of the host's lock file (if any)
    <build-root>/tests/cargo-snapshot/            build output shared by every suite

The synthesized directory is a scoped resource: :func:`synthesized_project`
removes it on every exit path unless artifact retention was requested.
"""

from __future__ import annotations

import base64
import contextlib
import glob
import hashlib
import logging
import os
import shutil
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

import tomli_w

from .config import HarnessConfig
from .errors import EmptyFileSet, NoPatternsProvided, SynthesisError
from .io import remove_tree, write_text_atomic
from .manifest import LOCK_NAME
from .models import SNAPSHOT_SUFFIXES, HostManifest, SynthesizedProject, TestFile

SHARED_TARGET_DIRNAME = "cargo-snapshot"

logger = logging.getLogger(__name__)


# -------------------------
# Naming
# -------------------------


def short_hash(*parts: str, length: int = 10) -> str:
    """Lowercase base32 BLAKE2 digest over *parts*."""

    h = hashlib.blake2b(digest_size=16)
    for part in parts:
        h.update(part.encode("utf-8"))
        h.update(b"\0")
    return base64.b32encode(h.digest()).decode("ascii").rstrip("=").lower()[:length]


def crate_ident(name: str) -> str:
    return name.replace("-", "_")


def suite_identity(call_site: str, patterns: Sequence[str]) -> str:
    """Stable identity for one declared suite (same call site + patterns => same id)."""

    return short_hash(call_site, *patterns)


def project_name(host_name: str, identity: str, disambiguator: Optional[str] = None) -> str:
    suffix = disambiguator if disambiguator is not None else str(os.getpid())
    return f"{crate_ident(host_name)}_{identity}_{suffix}"


def bin_name(host_name: str, test_name: str) -> str:
    return f"{crate_ident(host_name)}_{short_hash(test_name)}"


# -------------------------
# Test file discovery
# -------------------------


def _is_snapshot(path: Path) -> bool:
    return any(path.name.endswith(s) for s in SNAPSHOT_SUFFIXES)


def _logical_name(path: Path, base_dir: Path) -> str:
    try:
        return path.relative_to(base_dir).as_posix()
    except ValueError:
        return path.as_posix()


def collect_test_files(
    patterns: Sequence[str],
    *,
    base_dir: Optional[Path] = None,
) -> Tuple[TestFile, ...]:
    """Expand glob *patterns* into a sorted, de-duplicated set of test files.

    Raises :class:`NoPatternsProvided` for an empty pattern list and
    :class:`EmptyFileSet` naming every pattern that matched nothing.
    """

    if not patterns:
        raise NoPatternsProvided()

    base = Path(base_dir).resolve() if base_dir is not None else Path.cwd().resolve()
    seen: Dict[Path, TestFile] = {}
    unmatched: List[str] = []

    for pattern in patterns:
        if Path(pattern).is_absolute():
            found = [Path(m) for m in glob.glob(pattern, recursive=True)]
        else:
            found = [base / m for m in glob.glob(pattern, root_dir=base, recursive=True)]
        matches = sorted(
            p.resolve()
            for p in found
            if p.is_file() and not _is_snapshot(p)
        )
        if not matches:
            unmatched.append(pattern)
            continue
        for path in matches:
            if path in seen:
                continue
            name = _logical_name(path, base)
            seen[path] = TestFile(path=path, name=name, pattern=pattern)

    if unmatched:
        raise EmptyFileSet(sorted(set(unmatched)))

    return tuple(sorted(seen.values(), key=lambda t: t.path))


# -------------------------
# Manifest generation
# -------------------------


def build_manifest(host: HostManifest, name: str, tests: Sequence[TestFile]) -> Dict[str, Any]:
    """Return the synthesized package manifest as a TOML-ready dict."""

    package: Dict[str, Any] = {
        "name": name,
        "version": "0.0.0",
        "edition": host.edition,
        "publish": False,
    }
    if host.rust_version:
        package["rust-version"] = host.rust_version

    dependencies: Dict[str, Any] = {}
    targets: Dict[str, Dict[str, Any]] = {}

    # Normal first, then dev: bins cannot see dev-dependencies, and the test
    # sources rely on them, so both become regular dependencies here.
    for kind in ("normal", "dev"):
        for dep in host.dependencies_of_kind(kind):
            if dep.target is None:
                dependencies[dep.name] = dep.spec
            else:
                table = targets.setdefault(dep.target, {}).setdefault("dependencies", {})
                table[dep.name] = dep.spec

    dependencies[host.name] = {"path": str(host.manifest_dir)}

    manifest: Dict[str, Any] = {
        "package": package,
        "dependencies": dependencies,
        "features": {f: [f"{host.name}/{f}"] for f in sorted(host.features)},
        "bin": [{"name": t.bin, "path": str(t.path)} for t in tests],
        "workspace": {},
    }
    if targets:
        manifest["target"] = targets
    if host.patch:
        manifest["patch"] = {k: dict(v) for k, v in host.patch.items()}
    if host.replace:
        manifest["replace"] = dict(host.replace)
    return manifest


def render_manifest(manifest: Dict[str, Any]) -> str:
    return tomli_w.dumps(manifest)


# -------------------------
# Project lifecycle
# -------------------------


def shared_target_dir(host: HostManifest, config: HarnessConfig) -> Path:
    if config.target_dir_override is not None:
        return config.target_dir_override
    root = host.target_dir or (host.workspace_root / "target")
    return root / "tests" / SHARED_TARGET_DIRNAME


def synthesize(
    host: HostManifest,
    tests: Sequence[TestFile],
    config: HarnessConfig,
    *,
    identity: str,
    disambiguator: Optional[str] = None,
) -> SynthesizedProject:
    """Write the synthesized package to disk and return its description."""

    if not tests:
        raise SynthesisError("cannot synthesize a project without test files")

    tests = tuple(t if t.bin else replace(t, bin=bin_name(host.name, t.name)) for t in tests)

    name = project_name(host.name, identity, disambiguator)
    root = host.target_dir or (host.workspace_root / "target")
    project_dir = root / "tests" / name
    target_dir = shared_target_dir(host, config)

    project = SynthesizedProject(
        name=name,
        dir=project_dir,
        target_dir=target_dir,
        host=host,
        tests=tuple(tests),
        features=host.active_features,
    )

    try:
        # Only a rerun under the same pid or an explicit disambiguator reuses this name.
        remove_tree(project_dir)
        project_dir.mkdir(parents=True, exist_ok=True)
        target_dir.mkdir(parents=True, exist_ok=True)

        manifest_text = render_manifest(build_manifest(host, name, tests))
        write_text_atomic(project.manifest_path, manifest_text)

        if host.lock_path is not None:
            shutil.copyfile(host.lock_path, project_dir / LOCK_NAME)
    except OSError as e:
        with contextlib.suppress(OSError):
            remove_tree(project_dir)
        raise SynthesisError(f"failed to write synthesized project at {project_dir}: {e}") from e

    logger.debug("synthesized %s with %d bins at %s", name, len(tests), project_dir)
    return project


def teardown(project: SynthesizedProject, config: HarnessConfig) -> None:
    """Remove the synthesized package unless retention was requested."""

    if config.keep_artifacts:
        logger.debug("keeping synthesized project at %s", project.dir)
        return
    try:
        remove_tree(project.dir)
    except OSError as e:
        logger.warning("could not remove %s: %s", project.dir, e)


@contextlib.contextmanager
def synthesized_project(
    host: HostManifest,
    tests: Sequence[TestFile],
    config: HarnessConfig,
    *,
    identity: str,
    disambiguator: Optional[str] = None,
) -> Iterator[SynthesizedProject]:
    project = synthesize(host, tests, config, identity=identity, disambiguator=disambiguator)
    try:
        yield project
    finally:
        teardown(project, config)
