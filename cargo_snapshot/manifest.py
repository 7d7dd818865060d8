"""cargo_snapshot.manifest

Manifest reader: resolve the host package (and its workspace) into a
:class:`~cargo_snapshot.models.HostManifest`.

Read-only. Parsing is delegated to :mod:`tomllib`; this module only walks the
directory tree, resolves ``workspace = true`` inheritance, and re-anchors
relative ``path`` entries to absolute paths so they keep resolving from any
other directory.
"""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .errors import ManifestNotFound, ManifestParseError
from .models import Dependency, HostManifest

MANIFEST_NAME = "Cargo.toml"
LOCK_NAME = "Cargo.lock"

_DEP_TABLES = (
    ("dependencies", "normal"),
    ("dev-dependencies", "dev"),
    ("build-dependencies", "build"),
)

logger = logging.getLogger(__name__)


def load_toml(path: Path) -> Dict[str, Any]:
    try:
        with Path(path).open("rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ManifestParseError(path, str(e)) from e
    except OSError as e:
        raise ManifestParseError(path, e.strerror or str(e)) from e


def find_manifest(start: Path) -> Path:
    """Walk up from *start* and return the first ``Cargo.toml`` found."""

    start = Path(start).resolve()
    here = start if start.is_dir() else start.parent
    for d in (here, *here.parents):
        candidate = d / MANIFEST_NAME
        if candidate.is_file():
            return candidate
    raise ManifestNotFound(start)


def find_workspace_root(manifest_path: Path) -> Tuple[Path, Optional[Dict[str, Any]]]:
    """Return ``(workspace_root, workspace_manifest)`` for a package manifest.

    The root is the nearest directory (the package's own included) whose
    manifest declares a ``[workspace]`` table. A package outside any
    workspace is its own root and has no workspace manifest.
    """

    manifest_dir = Path(manifest_path).resolve().parent
    for d in (manifest_dir, *manifest_dir.parents):
        candidate = d / MANIFEST_NAME
        if not candidate.is_file():
            continue
        data = load_toml(candidate)
        if "workspace" in data:
            return d, data
    return manifest_dir, None


def _anchor(spec: Any, base_dir: Path) -> Any:
    """Return *spec* with a relative ``path`` made absolute against *base_dir*."""

    if not isinstance(spec, Mapping):
        return spec
    out = dict(spec)
    p = out.get("path")
    if p is not None and not Path(str(p)).is_absolute():
        out["path"] = str((base_dir / str(p)).resolve())
    return out


def _is_inherited(value: Any) -> bool:
    return isinstance(value, Mapping) and value.get("workspace") is True


def _inherit_field(
    package: Mapping[str, Any],
    key: str,
    ws_package: Mapping[str, Any],
    manifest_path: Path,
    default: Optional[str] = None,
) -> Optional[str]:
    value = package.get(key, default)
    if not _is_inherited(value):
        return None if value is None else str(value)
    if key not in ws_package:
        raise ManifestParseError(
            manifest_path, f"`{key}.workspace = true` but [workspace.package] has no `{key}`"
        )
    return str(ws_package[key])


def _resolve_dependency(
    name: str,
    spec: Any,
    *,
    declared_dir: Path,
    ws_deps: Mapping[str, Any],
    ws_root: Path,
    manifest_path: Path,
) -> Any:
    if not _is_inherited(spec):
        return _anchor(spec, declared_dir)

    if name not in ws_deps:
        raise ManifestParseError(
            manifest_path, f"dependency `{name}` inherits from the workspace but is not declared there"
        )
    base = ws_deps[name]
    merged: Dict[str, Any] = {"version": base} if isinstance(base, str) else dict(_anchor(base, ws_root))

    member = dict(spec)
    member.pop("workspace", None)
    extra_features = list(member.pop("features", []) or [])
    if extra_features:
        merged["features"] = list(merged.get("features", []) or []) + [
            f for f in extra_features if f not in (merged.get("features") or [])
        ]
    merged.update(member)
    return merged


def _collect_dependencies(
    raw: Mapping[str, Any],
    *,
    declared_dir: Path,
    ws_deps: Mapping[str, Any],
    ws_root: Path,
    manifest_path: Path,
) -> List[Dependency]:
    out: List[Dependency] = []

    def _table(table: Mapping[str, Any], kind: str, target: Optional[str]) -> None:
        for dep_name, spec in table.items():
            resolved = _resolve_dependency(
                dep_name,
                spec,
                declared_dir=declared_dir,
                ws_deps=ws_deps,
                ws_root=ws_root,
                manifest_path=manifest_path,
            )
            out.append(Dependency(name=dep_name, spec=resolved, kind=kind, target=target))

    for key, kind in _DEP_TABLES:
        _table(raw.get(key) or {}, kind, None)

    for target, tables in (raw.get("target") or {}).items():
        for key, kind in _DEP_TABLES:
            _table((tables or {}).get(key) or {}, kind, target)

    return out


def _anchor_patch(patch: Mapping[str, Any], base_dir: Path) -> Dict[str, Any]:
    return {
        registry: {name: _anchor(spec, base_dir) for name, spec in (entries or {}).items()}
        for registry, entries in patch.items()
    }


def _feature_env_key(feature: str) -> str:
    return "CARGO_FEATURE_" + feature.upper().replace("-", "_")


def active_features(
    features: Mapping[str, Sequence[str]],
    env: Mapping[str, str],
    overrides: Iterable[str] = (),
) -> Tuple[str, ...]:
    """Return declared features enabled via ``CARGO_FEATURE_*`` or *overrides*.

    Unknown override names are dropped with a warning.
    """

    enabled = {f for f in features if _feature_env_key(f) in env}
    for f in overrides:
        if f in features:
            enabled.add(f)
        else:
            logger.warning("ignoring feature %r: not declared by the host manifest", f)
    return tuple(sorted(enabled))


def read_host_manifest(
    start: Optional[Path] = None,
    *,
    env: Optional[Mapping[str, str]] = None,
    feature_overrides: Iterable[str] = (),
) -> HostManifest:
    """Locate and resolve the host package manifest enclosing *start* (default: cwd)."""

    env = os.environ if env is None else env
    manifest_path = find_manifest(Path(start) if start is not None else Path.cwd())
    raw = load_toml(manifest_path)

    package = raw.get("package")
    if not isinstance(package, Mapping):
        raise ManifestParseError(manifest_path, "no [package] table (virtual workspace manifest?)")
    name = package.get("name")
    if not name:
        raise ManifestParseError(manifest_path, "[package] has no `name`")

    ws_root, ws_manifest = find_workspace_root(manifest_path)
    ws_table: Mapping[str, Any] = (ws_manifest or {}).get("workspace") or {}
    ws_package: Mapping[str, Any] = ws_table.get("package") or {}
    ws_deps: Mapping[str, Any] = ws_table.get("dependencies") or {}

    dependencies = _collect_dependencies(
        raw,
        declared_dir=manifest_path.parent,
        ws_deps=ws_deps,
        ws_root=ws_root,
        manifest_path=manifest_path,
    )

    features = {k: tuple(v or ()) for k, v in (raw.get("features") or {}).items()}

    # [patch] and [replace] only take effect at the workspace root.
    root_manifest = ws_manifest if ws_manifest is not None else raw

    lock_path = ws_root / LOCK_NAME
    target_env = env.get("CARGO_TARGET_DIR")
    target_dir = Path(target_env).resolve() if target_env else ws_root / "target"

    host = HostManifest(
        name=str(name),
        version=_inherit_field(package, "version", ws_package, manifest_path, "0.0.0") or "0.0.0",
        edition=_inherit_field(package, "edition", ws_package, manifest_path, "2015") or "2015",
        rust_version=_inherit_field(package, "rust-version", ws_package, manifest_path),
        manifest_path=manifest_path,
        workspace_root=ws_root,
        dependencies=tuple(dependencies),
        features=features,
        active_features=active_features(features, env, feature_overrides),
        patch=_anchor_patch(root_manifest.get("patch") or {}, ws_root),
        replace={k: _anchor(v, ws_root) for k, v in (root_manifest.get("replace") or {}).items()},
        lock_path=lock_path if lock_path.is_file() else None,
        target_dir=target_dir,
    )
    logger.debug(
        "host manifest %s: %d dependencies, features=%s, workspace_root=%s",
        manifest_path,
        len(host.dependencies),
        host.active_features,
        ws_root,
    )
    return host
