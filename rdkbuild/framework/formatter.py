"""Formatter gate: file-type scoped, ordered pipelines of textual formatting steps.

`check` only reports; `apply` rewrites each changed file atomically. Regions
delimited by `format:off` / `format:on` marker lines are carried through
byte for byte.
"""

from __future__ import annotations

import fnmatch
import logging
import os
import re
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Sequence

logger = logging.getLogger(__name__)

FORMAT_OFF = "format:off"
FORMAT_ON = "format:on"
DEFAULT_EXCLUDES: tuple[str, ...] = ("**/build/**", "**/.gradle/**", "**/.git/**")

_PLACEHOLDER = "\x00rdkbuild-protected-{index}\x00"
_PLACEHOLDER_RE = re.compile("\x00rdkbuild-protected-(\\d+)\x00\n?")
_FORMAT_OFF_RE = re.compile(rf"\b{FORMAT_OFF}\b")
_FORMAT_ON_RE = re.compile(rf"\b{FORMAT_ON}\b")
_IMPORT_RE = re.compile(r"^import\s+(static\s+)?([\w.]+(?:\.\*)?)\s*;\s*$")


@dataclass(frozen=True)
class StepContext:
    path: Path
    protected: tuple[str, ...] = ()


StepFunction = Callable[[str, StepContext], str]


@dataclass(frozen=True)
class FormatStep:
    name: str
    apply: StepFunction


@dataclass(frozen=True)
class FormatRuleSet:
    name: str
    targets: tuple[str, ...]
    steps: tuple[FormatStep, ...]
    excludes: tuple[str, ...] = DEFAULT_EXCLUDES
    toggle_off_on: bool = True
    encoding: str = "utf-8"


@dataclass(frozen=True)
class Violation:
    path: str
    rule_set: str
    step: str
    line: int
    message: str

    def as_dict(self) -> dict[str, object]:
        return {
            "path": self.path,
            "rule_set": self.rule_set,
            "step": self.step,
            "line": self.line,
            "message": self.message,
        }


# Steps -------------------------------------------------------------------


def normalize_line_endings(text: str, ctx: StepContext) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n")


def trim_trailing_whitespace(text: str, ctx: StepContext) -> str:
    out: list[str] = []
    for line in text.splitlines(keepends=True):
        content = line.rstrip("\r\n")
        out.append(content.rstrip(" \t") + line[len(content) :])
    return "".join(out)


def leading_tabs_to_spaces(width: int = 4) -> StepFunction:
    def _step(text: str, ctx: StepContext) -> str:
        out: list[str] = []
        for line in text.splitlines(keepends=True):
            stripped = line.lstrip("\t ")
            indent = line[: len(line) - len(stripped)]
            out.append(indent.replace("\t", " " * width) + stripped)
        return "".join(out)

    return _step


def end_with_newline(text: str, ctx: StepContext) -> str:
    if not text.strip():
        return ""
    return text.rstrip("\n") + "\n"


def collapse_blank_lines(text: str, ctx: StepContext) -> str:
    out: list[str] = []
    blank_run = 0
    for line in text.splitlines(keepends=True):
        if line.strip():
            blank_run = 0
            out.append(line)
            continue
        blank_run += 1
        if blank_run == 1 and out:
            out.append("\n")
    return "".join(out)


def remove_unused_imports(text: str, ctx: StepContext) -> str:
    lines = text.splitlines(keepends=True)
    body = "".join(line for line in lines if not _IMPORT_RE.match(line.strip()))
    body += "".join(ctx.protected)

    kept: list[str] = []
    for line in lines:
        match = _IMPORT_RE.match(line.strip())
        if match is None:
            kept.append(line)
            continue
        target = match.group(2)
        if target.endswith(".*"):
            kept.append(line)
            continue
        simple = target.rsplit(".", 1)[-1]
        if re.search(rf"\b{re.escape(simple)}\b", body):
            kept.append(line)
    return "".join(kept)


def order_imports(text: str, ctx: StepContext) -> str:
    """Sort the leading import block: static imports first, then the rest."""

    lines = text.splitlines(keepends=True)
    import_idx = [i for i, line in enumerate(lines) if _IMPORT_RE.match(line.strip())]
    if not import_idx:
        return text
    first, last = import_idx[0], import_idx[-1]
    block = lines[first : last + 1]
    if any(line.strip() and not _IMPORT_RE.match(line.strip()) for line in block):
        return text

    statics: set[str] = set()
    regular: set[str] = set()
    for line in block:
        match = _IMPORT_RE.match(line.strip())
        if match is None:
            continue
        statement = f"import {'static ' if match.group(1) else ''}{match.group(2)};\n"
        (statics if match.group(1) else regular).add(statement)

    ordered = sorted(statics)
    if statics and regular:
        ordered.append("\n")
    ordered.extend(sorted(regular))
    return "".join([*lines[:first], *ordered, *lines[last + 1 :]])


def step(name: str, fn: StepFunction) -> FormatStep:
    return FormatStep(name=name, apply=fn)


# Protected regions --------------------------------------------------------


def _extract_protected(text: str) -> tuple[str, tuple[str, ...]]:
    lines = text.splitlines(keepends=True)
    out: list[str] = []
    regions: list[str] = []
    i = 0
    while i < len(lines):
        if not _FORMAT_OFF_RE.search(lines[i]):
            out.append(lines[i])
            i += 1
            continue
        j = i
        while j < len(lines) and not (j > i and _FORMAT_ON_RE.search(lines[j])):
            j += 1
        end = min(j, len(lines) - 1)
        # The region keeps its own terminator; the placeholder line gets a
        # fresh "\n" that restoring consumes again.
        out.append(_PLACEHOLDER.format(index=len(regions)) + "\n")
        regions.append("".join(lines[i : end + 1]))
        i = end + 1
    return "".join(out), tuple(regions)


def _restore_protected(text: str, regions: Sequence[str], *, path: Path) -> str:
    found = [int(m.group(1)) for m in _PLACEHOLDER_RE.finditer(text)]
    if sorted(found) != list(range(len(regions))):
        raise ValueError(f"Formatting of {path} lost a {FORMAT_OFF} region")
    return _PLACEHOLDER_RE.sub(lambda m: regions[int(m.group(1))], text)


# Gate ---------------------------------------------------------------------


def _is_excluded(relative: str, patterns: Iterable[str]) -> bool:
    for pattern in patterns:
        if fnmatch.fnmatch(relative, pattern):
            return True
        if pattern.startswith("**/") and fnmatch.fnmatch(relative, pattern[3:]):
            return True
    return False


def collect_files(base_dir: Path, rules: FormatRuleSet) -> list[Path]:
    found: set[Path] = set()
    for pattern in rules.targets:
        for candidate in base_dir.glob(pattern):
            if not candidate.is_file():
                continue
            relative = candidate.relative_to(base_dir).as_posix()
            if _is_excluded(relative, rules.excludes):
                continue
            found.add(candidate)
    return sorted(found)


def _first_difference(before: str, after: str) -> int:
    before_lines = before.splitlines()
    after_lines = after.splitlines()
    for idx, (a, b) in enumerate(zip(before_lines, after_lines), start=1):
        if a != b:
            return idx
    if len(before_lines) == len(after_lines):
        # only the final line terminator changed
        return max(len(before_lines), 1)
    return min(len(before_lines), len(after_lines)) + 1


def _run_pipeline(text: str, rules: FormatRuleSet, path: Path) -> tuple[str, list[tuple[str, int]]]:
    if rules.toggle_off_on:
        working, regions = _extract_protected(text)
    else:
        working, regions = text, ()
    ctx = StepContext(path=path, protected=regions)

    changed_by: list[tuple[str, int]] = []
    for format_step in rules.steps:
        updated = format_step.apply(working, ctx)
        if updated != working:
            changed_by.append((format_step.name, _first_difference(working, updated)))
        working = updated

    if regions:
        working = _restore_protected(working, regions, path=path)
    return working, changed_by


def format_text(text: str, rules: FormatRuleSet, *, path: Path | None = None) -> str:
    formatted, _ = _run_pipeline(text, rules, path or Path("<text>"))
    return formatted


def check(files: Iterable[Path], rules: FormatRuleSet, *, base_dir: Path | None = None) -> list[Violation]:
    violations: list[Violation] = []
    for path in files:
        label = path.relative_to(base_dir).as_posix() if base_dir else str(path)
        try:
            text = path.read_bytes().decode(rules.encoding)
        except UnicodeDecodeError as exc:
            violations.append(Violation(label, rules.name, "decode", 1, f"not valid {rules.encoding}: {exc}"))
            continue
        _, changed_by = _run_pipeline(text, rules, path)
        for step_name, line in changed_by:
            violations.append(
                Violation(label, rules.name, step_name, line, f"{step_name} would change this file")
            )
    return violations


def _write_atomic(path: Path, payload: bytes) -> None:
    with tempfile.NamedTemporaryFile(
        "wb", dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp", delete=False
    ) as handle:
        handle.write(payload)
        temp_path = handle.name
    try:
        os.replace(temp_path, path)
    except OSError:
        os.unlink(temp_path)
        raise


def apply(files: Iterable[Path], rules: FormatRuleSet) -> list[Path]:
    """Rewrite every file the pipeline changes.

    All files are read and formatted before the first write, so a file that
    cannot be formatted leaves the whole set untouched. Files that do not
    decode are skipped with a warning; `check` reports them as violations.
    """

    pending: list[tuple[Path, bytes]] = []
    for path in files:
        raw = path.read_bytes()
        try:
            text = raw.decode(rules.encoding)
        except UnicodeDecodeError as exc:
            logger.warning("Skipping %s (%s): not valid %s: %s", path, rules.name, rules.encoding, exc)
            continue
        formatted, _ = _run_pipeline(text, rules, path)
        payload = formatted.encode(rules.encoding)
        if payload != raw:
            pending.append((path, payload))

    changed: list[Path] = []
    for path, payload in pending:
        _write_atomic(path, payload)
        logger.debug("Formatted %s (%s)", path, rules.name)
        changed.append(path)
    return changed

