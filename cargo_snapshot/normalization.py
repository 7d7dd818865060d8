"""cargo_snapshot.normalization

Rewrite raw captured tool output into a canonical, environment-independent
form before it is compared against (or written to) a snapshot.

Normalization rules
-------------------
- Strip ANSI color sequences and convert ``\\r\\n`` to ``\\n``.
- Replace machine-specific values with placeholders:

  ==========================  ==============
  synthesized project dir     ``$PROJECT``
  shared build-output dir     ``$TARGET``
  host package dir            ``$DIR``
  host workspace root         ``$WORKSPACE``
  synthetic bin name          ``<BIN>``
  synthesized package name    ``<CRATE>``
  ==========================  ==============

- Diagnostics: skip cargo status noise up to the first error, drop warning
  blocks and the unstable ``could not compile`` / ``aborting due to`` lines.
  Run and test stderr only loses warnings that carry a rustc source location.
  Bracketed error heads (``error[E0277]:``) are carried through untouched;
  user filters see the rest of the stderr text as one string.
- Test output: ``; finished in 0.02s`` becomes ``; finished in <TIME>``.
- Text artifacts are truncated to ``max_lines`` with a trailing marker.
  Expanded code is never truncated.
- Whitespace-only output normalizes to ``None``; anything else ends with
  exactly one newline.

Normalizing the same raw input twice yields identical text.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from .models import PipelineStage, Stream, SynthesizedProject, TestFile

ANSI_RE = re.compile(r"\x1b\[[0-9;?]*[ -/]*[@-~]")
ERROR_LINE_RE = re.compile(r"^(?P<head>error(?:\[(?P<code>[A-Za-z]+\d+)\])?:)(?P<rest>.*)$")
ERROR_CODE_RE = re.compile(r"\berror\[(?P<code>[A-Za-z]+\d+)\]")
WARNING_LINE_RE = re.compile(r"^warning(?:\[[^\]]+\])?:")
LOCATION_LINE_RE = re.compile(r"^\s*--> ")
CODED_ERROR_HEAD_RE = re.compile(r"^error\[[A-Za-z]+\d+\]:", re.MULTILINE)
# Coded error heads are parked behind private-use placeholders while user filters run.
HEAD_TOKEN_RE = re.compile("\ue000([\ue001-\uf8ff])\ue000")
STATUS_LINE_RE = re.compile(
    r"^\s*(Compiling|Checking|Finished|Running|Blocking|Fresh|Updating|Downloading|"
    r"Downloaded|Locking|Adding|Removing|Documenting|Waiting)\s"
)
OMITTED_LINE_RES = (
    re.compile(r"^error: could not compile `"),
    re.compile(r"^error: aborting due to "),
    re.compile(r"^warning: `[^`]+` \([^)]*\) generated \d+ warnings?"),
    re.compile(r"^warning: build failed, waiting for other jobs"),
)
TEST_TIME_RE = re.compile(r"; finished in .+$")

PRELUDE_LINES = ("#![feature(prelude_import)]",)
PRELUDE_PAIRS = (
    ("#[prelude_import]", "use std::prelude::"),
    ("#[macro_use]", "extern crate std;"),
)

TRUNCATION_MARKER = "... ({count} more lines truncated)"


@dataclass(frozen=True)
class RegexFilter:
    """User-supplied substitution applied to one stream after built-in rules."""

    stream: Stream
    pattern: "re.Pattern[str]"
    replacement: str

    def apply(self, text: str) -> str:
        return self.pattern.sub(self.replacement, text)


# -------------------------
# Line-level helpers
# -------------------------


def strip_ansi(text: str) -> str:
    return ANSI_RE.sub("", text).replace("\r\n", "\n")


def line_is_error(line: str) -> bool:
    return ERROR_LINE_RE.match(line) is not None


def line_is_warning(line: str) -> bool:
    return WARNING_LINE_RE.match(line) is not None


def line_should_be_omitted(line: str) -> bool:
    return any(r.match(line) for r in OMITTED_LINE_RES) or STATUS_LINE_RE.match(line) is not None


def error_codes(text: str) -> List[str]:
    """Return bracketed error codes in first-seen order, e.g. ``["E0277"]``."""

    seen: List[str] = []
    for m in ERROR_CODE_RE.finditer(text):
        code = m.group("code")
        if code not in seen:
            seen.append(code)
    return seen


def strip_warning_blocks(lines: Iterable[str], *, located_only: bool = False) -> List[str]:
    """Drop ``warning:`` diagnostics, each running up to the next blank line.

    An error line or a cargo status line also ends a warning block. With
    ``located_only`` a warning is dropped only when the next line carries a
    rustc ``-->`` source location, so a program's own ``warning:`` output
    survives.
    """

    lines = list(lines)
    out: List[str] = []
    in_warning = False
    for i, line in enumerate(lines):
        if in_warning:
            if line.strip() == "":
                in_warning = False
                continue
            if not (line_is_error(line) or line_should_be_omitted(line)):
                continue
            in_warning = False
        if line_should_be_omitted(line):
            continue
        if line_is_warning(line):
            nxt = lines[i + 1] if i + 1 < len(lines) else ""
            if not located_only or LOCATION_LINE_RE.match(nxt):
                in_warning = True
                continue
        out.append(line)
    return out


def strip_prelude(text: str) -> str:
    """Remove the std prelude injection that ``cargo expand`` prints."""

    lines = text.split("\n")
    out: List[str] = []
    i = 0
    while i < len(lines):
        stripped = lines[i].strip()
        if stripped in PRELUDE_LINES:
            i += 1
            continue
        paired = False
        for first, second in PRELUDE_PAIRS:
            if stripped == first and i + 1 < len(lines) and lines[i + 1].strip().startswith(second):
                i += 2
                paired = True
                break
        if paired:
            continue
        out.append(lines[i])
        i += 1
    return "\n".join(out).lstrip("\n")


def truncate_lines(text: str, max_lines: Optional[int]) -> str:
    if not max_lines:
        return text
    lines = text.rstrip("\n").split("\n")
    if len(lines) <= max_lines:
        return text
    kept = lines[:max_lines]
    kept.append(TRUNCATION_MARKER.format(count=len(lines) - max_lines))
    return "\n".join(kept) + "\n"


def post_process(text: str) -> Optional[str]:
    """``None`` for whitespace-only output, otherwise exactly one trailing newline."""

    if not text.strip():
        return None
    return text.strip("\n").rstrip() + "\n"


def apply_replacements(text: str, replacements: Sequence[Tuple[str, str]]) -> str:
    for literal, placeholder in replacements:
        if literal and literal in text:
            text = text.replace(literal, placeholder)
    return text


# -------------------------
# Normalizer
# -------------------------


class Normalizer:
    """Per-suite normalizer bound to one synthesized project."""

    def __init__(
        self,
        project: SynthesizedProject,
        *,
        max_lines: Optional[int] = 100,
        filters: Sequence[RegexFilter] = (),
    ) -> None:
        self.project = project
        self.max_lines = max_lines
        self.filters = tuple(filters)

    # Placeholders --------------------------------------------------------

    def replacements(self, test: TestFile) -> List[Tuple[str, str]]:
        host = self.project.host
        paths = [
            (str(self.project.dir), "$PROJECT"),
            (str(self.project.target_dir), "$TARGET"),
            (str(host.manifest_dir), "$DIR"),
            (str(host.workspace_root), "$WORKSPACE"),
        ]
        # Longest first: the target dir usually lives below the host dir.
        paths.sort(key=lambda item: len(item[0]), reverse=True)
        names = [(test.bin, "<BIN>"), (self.project.name, "<CRATE>")]
        return paths + names

    def _filter(self, stream: Stream, text: str) -> str:
        for f in self.filters:
            if f.stream is stream:
                text = f.apply(text)
        return text

    def _filter_diagnostics(self, text: str) -> str:
        """Run stderr filters over the whole text, keeping ``error[Exxxx]:`` heads intact."""

        heads: List[str] = []

        def park(m: "re.Match[str]") -> str:
            heads.append(m.group(0))
            return "\ue000" + chr(0xE000 + len(heads)) + "\ue000"

        parked = CODED_ERROR_HEAD_RE.sub(park, text)
        filtered = self._filter(Stream.STDERR, parked)
        return HEAD_TOKEN_RE.sub(lambda m: heads[ord(m.group(1)) - 0xE001], filtered)

    # Streams -------------------------------------------------------------

    def code(self, test: TestFile, raw: str) -> Optional[str]:
        """Expanded source emitted by the expand stage."""

        text = strip_prelude(strip_ansi(raw))
        text = apply_replacements(text, self.replacements(test))
        text = self._filter(Stream.STDOUT, text)
        return post_process(text)

    def stdout(self, stage: PipelineStage, test: TestFile, raw: str) -> Optional[str]:
        if stage is PipelineStage.EXPAND:
            return self.code(test, raw)
        if stage is PipelineStage.CHECK:
            return None

        text = strip_ansi(raw)
        if stage is PipelineStage.RUN_TESTS:
            text = "\n".join(_normalize_test_time(line) for line in text.split("\n"))
        text = apply_replacements(text, self.replacements(test))
        text = self._filter(Stream.STDOUT, text)
        return post_process(truncate_lines(text, self.max_lines))

    def stderr(self, stage: PipelineStage, test: TestFile, raw: str) -> Optional[str]:
        lines = strip_ansi(raw).strip("\n").split("\n")
        compiling = stage in (PipelineStage.EXPAND, PipelineStage.CHECK)
        if compiling:
            lines = _skip_until(lines, line_is_error)
        lines = strip_warning_blocks(lines, located_only=not compiling)

        text = apply_replacements("\n".join(lines), self.replacements(test))
        text = self._filter_diagnostics(text)
        return post_process(truncate_lines(text, self.max_lines))


def _skip_until(lines: List[str], predicate: Callable[[str], bool]) -> List[str]:
    for i, line in enumerate(lines):
        if predicate(line):
            return lines[i:]
    return []


def _normalize_test_time(line: str) -> str:
    if line.strip().startswith("test result:"):
        return TEST_TIME_RE.sub("; finished in <TIME>", line)
    return line
