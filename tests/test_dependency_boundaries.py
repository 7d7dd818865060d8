import ast
import unittest
from pathlib import Path
from typing import Iterable, List, Tuple


REPO_ROOT = Path(__file__).resolve().parents[1]
PACKAGE_DIR = REPO_ROOT / "cargo_snapshot"

# Dependency rules (kept intentionally small and explicit):
# - only execution/runner.py may spawn processes
# - models/errors are leaves and must not import the rest of the package
SUBPROCESS_ALLOWED = {Path("execution") / "runner.py"}
PROCESS_MODULES = ("subprocess", "multiprocessing")

LEAF_MODULES = {Path("models.py"), Path("errors.py")}


def iter_py_files(package_dir: Path) -> Iterable[Path]:
    for p in package_dir.rglob("*.py"):
        # Skip cache/hidden dirs if present
        if any(part.startswith(".") for part in p.parts):
            continue
        if "__pycache__" in p.parts:
            continue
        yield p


def imported_modules(py_file: Path) -> List[Tuple[int, str]]:
    """Return ``(level, module)`` for every import; level > 0 means relative."""

    src = py_file.read_text(encoding="utf-8", errors="ignore")
    tree = ast.parse(src, filename=str(py_file))

    found: List[Tuple[int, str]] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                found.append((0, alias.name))
        elif isinstance(node, ast.ImportFrom):
            found.append((node.level, node.module or ""))
    return found


def _runtime_imports(py_file: Path) -> List[Tuple[int, str]]:
    """Like :func:`imported_modules` but ignoring ``if TYPE_CHECKING:`` blocks."""

    src = py_file.read_text(encoding="utf-8", errors="ignore")
    tree = ast.parse(src, filename=str(py_file))

    skipped = set()
    for node in ast.walk(tree):
        if isinstance(node, ast.If) and getattr(node.test, "id", None) == "TYPE_CHECKING":
            for child in ast.walk(node):
                skipped.add(id(child))

    found: List[Tuple[int, str]] = []
    for node in ast.walk(tree):
        if id(node) in skipped:
            continue
        if isinstance(node, ast.Import):
            found.extend((0, alias.name) for alias in node.names)
        elif isinstance(node, ast.ImportFrom):
            found.append((node.level, node.module or ""))
    return found


class TestDependencyBoundaries(unittest.TestCase):
    def test_only_the_runner_spawns_processes(self) -> None:
        problems: List[str] = []

        for py_file in iter_py_files(PACKAGE_DIR):
            rel = py_file.relative_to(PACKAGE_DIR)
            if rel in SUBPROCESS_ALLOWED:
                continue
            bad = [
                mod
                for level, mod in imported_modules(py_file)
                if level == 0 and mod.split(".", 1)[0] in PROCESS_MODULES
            ]
            if bad:
                problems.append(f"{rel} imports forbidden modules: {bad}")

        if problems:
            self.fail("Process spawning outside execution/runner.py:\n" + "\n".join(problems))

    def test_leaf_modules_stay_leaves(self) -> None:
        problems: List[str] = []

        for rel in sorted(LEAF_MODULES):
            py_file = PACKAGE_DIR / rel
            bad = [
                mod
                for level, mod in _runtime_imports(py_file)
                if level > 0 or mod.split(".", 1)[0] == "cargo_snapshot"
            ]
            if bad:
                problems.append(f"{rel} imports package modules at runtime: {bad}")

        if problems:
            self.fail("Leaf modules must not depend on the rest of the package:\n" + "\n".join(problems))


if __name__ == "__main__":
    unittest.main()
