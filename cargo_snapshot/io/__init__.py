"""cargo_snapshot.io

Filesystem helpers shared by the synthesizer and the snapshot engine.
"""

from __future__ import annotations

from .fs import read_text_if_exists, remove_tree, write_text_atomic

__all__ = [
    "read_text_if_exists",
    "remove_tree",
    "write_text_atomic",
]
