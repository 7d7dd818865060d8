from __future__ import annotations

from pathlib import Path

import pytest

from cargo_snapshot.errors import ManifestNotFound, ManifestParseError
from cargo_snapshot.manifest import active_features, find_manifest, read_host_manifest


def _write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    _write(
        tmp_path / "Cargo.toml",
        "[workspace]\n"
        'members = ["member"]\n\n'
        "[workspace.package]\n"
        'version = "1.2.3"\n'
        'edition = "2021"\n'
        'rust-version = "1.70"\n\n'
        "[workspace.dependencies]\n"
        'serde = { version = "1", features = ["derive"] }\n'
        'local = { path = "crates/local" }\n\n'
        "[patch.crates-io]\n"
        'syn = { path = "vendor/syn" }\n',
    )
    _write(
        tmp_path / "member" / "Cargo.toml",
        "[package]\n"
        'name = "member"\n'
        "version.workspace = true\n"
        "edition.workspace = true\n"
        "rust-version.workspace = true\n\n"
        "[dependencies]\n"
        'serde = { workspace = true, features = ["rc"] }\n'
        "local.workspace = true\n"
        'once_cell = "1"\n\n'
        "[dev-dependencies]\n"
        'helper = { path = "../helper" }\n\n'
        '[target."cfg(unix)".dependencies]\n'
        'libc = "0.2"\n\n'
        "[features]\n"
        'default = ["fast"]\n'
        "fast = []\n"
        "slow-path = []\n",
    )
    _write(tmp_path / "member" / "src" / "lib.rs", "")
    _write(tmp_path / "Cargo.lock", "# lock\n")
    return tmp_path


def test_find_manifest_walks_up(tmp_path: Path) -> None:
    manifest = _write(tmp_path / "Cargo.toml", '[package]\nname = "x"\n')
    nested = tmp_path / "tests" / "expand"
    nested.mkdir(parents=True)

    assert find_manifest(nested) == manifest.resolve()


def test_missing_manifest_raises(tmp_path: Path) -> None:
    lonely = tmp_path / "nowhere"
    lonely.mkdir()
    # Guard against a stray Cargo.toml somewhere above the temp dir.
    if any((p / "Cargo.toml").is_file() for p in lonely.resolve().parents):
        pytest.skip("a parent of the temp dir contains Cargo.toml")

    with pytest.raises(ManifestNotFound):
        find_manifest(lonely)


def test_unparsable_manifest_raises(tmp_path: Path) -> None:
    _write(tmp_path / "Cargo.toml", "[package\nname = ")
    with pytest.raises(ManifestParseError):
        read_host_manifest(tmp_path, env={})


def test_virtual_manifest_is_rejected(tmp_path: Path) -> None:
    _write(tmp_path / "Cargo.toml", '[workspace]\nmembers = ["a"]\n')
    with pytest.raises(ManifestParseError) as ei:
        read_host_manifest(tmp_path, env={})
    assert "[package]" in str(ei.value)


def test_standalone_package_is_its_own_workspace_root(tmp_path: Path) -> None:
    _write(
        tmp_path / "Cargo.toml",
        '[package]\nname = "solo"\nversion = "0.3.0"\nedition = "2018"\n\n[dependencies]\nsibling = { path = "../sibling" }\n',
    )

    host = read_host_manifest(tmp_path, env={})

    assert host.name == "solo"
    assert host.version == "0.3.0"
    assert host.edition == "2018"
    assert host.workspace_root == tmp_path.resolve()
    assert host.lock_path is None
    assert host.target_dir == tmp_path.resolve() / "target"
    (dep,) = host.dependencies
    assert dep.path == str((tmp_path / ".." / "sibling").resolve())


def test_workspace_member_inherits_fields_and_dependencies(workspace: Path) -> None:
    host = read_host_manifest(workspace / "member", env={})
    root = workspace.resolve()

    assert host.version == "1.2.3"
    assert host.edition == "2021"
    assert host.rust_version == "1.70"
    assert host.workspace_root == root
    assert host.lock_path == root / "Cargo.lock"

    deps = {d.name: d for d in host.dependencies}
    assert deps["serde"].spec == {"version": "1", "features": ["derive", "rc"]}
    assert deps["local"].path == str(root / "crates" / "local")
    assert deps["once_cell"].spec == "1"
    assert deps["helper"].kind == "dev"
    assert deps["helper"].path == str(root / "helper")
    assert deps["libc"].target == "cfg(unix)"

    assert host.patch == {"crates-io": {"syn": {"path": str(root / "vendor" / "syn")}}}


def test_missing_workspace_dependency_is_a_parse_error(tmp_path: Path) -> None:
    _write(tmp_path / "Cargo.toml", '[workspace]\nmembers = ["m"]\n')
    _write(
        tmp_path / "m" / "Cargo.toml",
        '[package]\nname = "m"\n\n[dependencies]\nrand.workspace = true\n',
    )
    with pytest.raises(ManifestParseError) as ei:
        read_host_manifest(tmp_path / "m", env={})
    assert "rand" in str(ei.value)


def test_active_features_come_from_env_and_overrides(workspace: Path) -> None:
    host = read_host_manifest(
        workspace / "member",
        env={"CARGO_FEATURE_SLOW_PATH": "1"},
        feature_overrides=["fast", "not-declared"],
    )
    assert host.active_features == ("fast", "slow-path")


def test_active_features_ignores_undeclared_env() -> None:
    assert active_features({"a": ()}, {"CARGO_FEATURE_B": "1"}) == ()


def test_cargo_target_dir_env_wins(workspace: Path, tmp_path: Path) -> None:
    host = read_host_manifest(workspace / "member", env={"CARGO_TARGET_DIR": str(tmp_path / "elsewhere")})
    assert host.target_dir == (tmp_path / "elsewhere").resolve()
