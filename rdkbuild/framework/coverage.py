"""Coverage reports rendered from a suite's execution data.

Execution data is the JSON document a test process leaves at a fixed path:

    {"version": 1, "classes": [{"name": "a.b.C", "source": "a/b/C.java",
                                "lines": {"12": 3, "13": 0}}]}

Each probed line maps to its hit count; 0 means the line was instrumented but
never executed.
"""

from __future__ import annotations

import html
import json
import logging
import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Mapping

import pandas as pd

from rdkbuild.errors import MissingExecutionDataError

logger = logging.getLogger(__name__)

EXECUTION_DATA_VERSION = 1

_COLUMNS = ["package", "class", "source", "line", "hits"]


@dataclass(frozen=True)
class ClassExecution:
    name: str
    source: str
    lines: Mapping[int, int]


@dataclass(frozen=True)
class ExecutionData:
    classes: tuple[ClassExecution, ...] = ()

    @classmethod
    def load(cls, path: Path) -> "ExecutionData":
        with open(path, "r", encoding="utf-8") as handle:
            try:
                payload = json.load(handle)
            except json.JSONDecodeError as exc:
                raise ValueError(f"Invalid execution data in {path}: {exc}") from exc
        return cls.from_dict(payload, origin=str(path))

    @classmethod
    def from_dict(cls, payload: Any, *, origin: str = "<memory>") -> "ExecutionData":
        if not isinstance(payload, Mapping):
            raise ValueError(f"Execution data in {origin} must be a JSON object")
        version = payload.get("version")
        if version != EXECUTION_DATA_VERSION:
            raise ValueError(f"Unsupported execution data version in {origin}: {version!r}")
        classes: list[ClassExecution] = []
        for idx, raw in enumerate(payload.get("classes") or []):
            if not isinstance(raw, Mapping) or not raw.get("name") or not raw.get("source"):
                raise ValueError(f"Execution data {origin} classes[{idx}] needs name and source")
            lines = {int(line): int(hits) for line, hits in (raw.get("lines") or {}).items()}
            classes.append(ClassExecution(name=str(raw["name"]), source=str(raw["source"]), lines=lines))
        return cls(classes=tuple(classes))

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": EXECUTION_DATA_VERSION,
            "classes": [
                {
                    "name": item.name,
                    "source": item.source,
                    "lines": {str(line): hits for line, hits in sorted(item.lines.items())},
                }
                for item in self.classes
            ],
        }

    def write(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = path.with_name(f".{path.name}.tmp")
        temp_path.write_text(json.dumps(self.to_dict(), indent=2, sort_keys=True) + "\n", encoding="utf-8")
        os.replace(temp_path, path)


@dataclass(frozen=True)
class ClassCounter:
    name: str
    package: str
    source: str
    covered: int
    missed: int

    @property
    def ratio(self) -> float | None:
        total = self.covered + self.missed
        return self.covered / total if total else None


@dataclass(frozen=True)
class CoverageReport:
    module: str
    suite_kind: str
    execution_data: Path
    output_dir: Path
    index_html: Path
    classes: tuple[ClassCounter, ...]
    covered: int
    missed: int

    @property
    def ratio(self) -> float | None:
        total = self.covered + self.missed
        return self.covered / total if total else None


def _compiled(name: str, class_dirs: Iterable[Path]) -> bool:
    relative = name.replace(".", "/") + ".class"
    return any((Path(directory) / relative).is_file() for directory in class_dirs)


def _frame(data: ExecutionData, class_dirs: list[Path]) -> pd.DataFrame:
    rows: list[dict[str, Any]] = []
    for item in data.classes:
        if not _compiled(item.name, class_dirs):
            continue
        package = item.name.rsplit(".", 1)[0] if "." in item.name else ""
        for line, hits in item.lines.items():
            rows.append({"package": package, "class": item.name, "source": item.source, "line": line, "hits": hits})
    if not rows:
        return pd.DataFrame(columns=_COLUMNS)
    return pd.DataFrame(rows, columns=_COLUMNS)


def _class_counters(frame: pd.DataFrame) -> tuple[ClassCounter, ...]:
    if frame.empty:
        return ()
    grouped = (
        frame.assign(covered=frame["hits"] > 0)
        .groupby(["package", "class", "source"], sort=True)
        .agg(covered=("covered", "sum"), total=("hits", "size"))
        .reset_index()
    )
    return tuple(
        ClassCounter(
            name=str(row["class"]),
            package=str(row["package"]),
            source=str(row["source"]),
            covered=int(row["covered"]),
            missed=int(row["total"]) - int(row["covered"]),
        )
        for _, row in grouped.iterrows()
    )


def _percent(covered: int, missed: int) -> str:
    total = covered + missed
    if not total:
        return "n/a"
    return f"{100.0 * covered / total:.1f}%"


def _source_page_name(source: str) -> str:
    return source.replace("/", ".").replace("\\", ".") + ".html"


_STYLE = (
    "body{font-family:sans-serif;margin:2em}table{border-collapse:collapse}"
    "th,td{border:1px solid #ccc;padding:4px 8px;text-align:left}"
    "pre{margin:0}.hit{background:#dfd}.miss{background:#fdd}.ln{color:#888;padding-right:1em}"
)


def _render_index(report: CoverageReport, frame: pd.DataFrame) -> str:
    title = html.escape(f"{report.module} - {report.suite_kind} coverage")
    parts = [
        f"<!DOCTYPE html><html><head><meta charset='utf-8'><title>{title}</title>",
        f"<style>{_STYLE}</style></head><body><h1>{title}</h1>",
        f"<p>Execution data: <code>{html.escape(str(report.execution_data))}</code></p>",
    ]
    if not report.classes:
        parts.append("<p>No execution data recorded for compiled classes.</p></body></html>")
        return "".join(parts)

    parts.append(
        f"<p>Lines covered: {report.covered} / {report.covered + report.missed} "
        f"({_percent(report.covered, report.missed)})</p>"
    )

    packages = (
        frame.assign(covered=frame["hits"] > 0)
        .groupby("package", sort=True)
        .agg(covered=("covered", "sum"), total=("hits", "size"))
        .reset_index()
    )
    parts.append("<h2>Packages</h2><table><tr><th>Package</th><th>Covered</th><th>Missed</th><th>Coverage</th></tr>")
    for _, row in packages.iterrows():
        covered = int(row["covered"])
        missed = int(row["total"]) - covered
        parts.append(
            f"<tr><td>{html.escape(str(row['package']) or '(default)')}</td><td>{covered}</td>"
            f"<td>{missed}</td><td>{_percent(covered, missed)}</td></tr>"
        )
    parts.append("</table>")

    parts.append("<h2>Classes</h2><table><tr><th>Class</th><th>Covered</th><th>Missed</th><th>Coverage</th></tr>")
    for counter in report.classes:
        link = f"sources/{html.escape(_source_page_name(counter.source))}"
        parts.append(
            f"<tr><td><a href='{link}'>{html.escape(counter.name)}</a></td><td>{counter.covered}</td>"
            f"<td>{counter.missed}</td><td>{_percent(counter.covered, counter.missed)}</td></tr>"
        )
    parts.append("</table></body></html>")
    return "".join(parts)


def _render_source(source: str, text: str | None, hits: Mapping[int, int]) -> str:
    title = html.escape(source)
    parts = [
        f"<!DOCTYPE html><html><head><meta charset='utf-8'><title>{title}</title>",
        f"<style>{_STYLE}</style></head><body><h1>{title}</h1><p><a href='../index.html'>index</a></p>",
    ]
    if text is None:
        parts.append("<p>Source file not found in the module's source directories.</p></body></html>")
        return "".join(parts)
    parts.append("<table>")
    for number, line in enumerate(text.splitlines(), start=1):
        css = ""
        if number in hits:
            css = " class='hit'" if hits[number] > 0 else " class='miss'"
        parts.append(
            f"<tr{css}><td class='ln'>{number}</td><td><pre>{html.escape(line)}</pre></td></tr>"
        )
    parts.append("</table></body></html>")
    return "".join(parts)


def _find_source(source: str, source_dirs: Iterable[Path]) -> str | None:
    for directory in source_dirs:
        candidate = Path(directory) / source
        if candidate.is_file():
            return candidate.read_text(encoding="utf-8", errors="replace")
    return None


def generate_report(
    suite_kind: str,
    execution_data: Path,
    class_dirs: Iterable[Path],
    source_dirs: Iterable[Path],
    *,
    output_dir: Path,
    module: str,
) -> CoverageReport:
    """Render a browsable HTML report for one suite's execution data.

    Raises MissingExecutionDataError when the suite left no execution data; an
    existing report directory is replaced only once the data has been read.
    """

    execution_data = Path(execution_data)
    if not execution_data.is_file():
        raise MissingExecutionDataError(str(execution_data), suite=suite_kind, module=module)

    data = ExecutionData.load(execution_data)
    class_dir_list = [Path(d) for d in class_dirs]
    source_dir_list = [Path(d) for d in source_dirs]

    frame = _frame(data, class_dir_list)
    counters = _class_counters(frame)
    covered = sum(c.covered for c in counters)
    missed = sum(c.missed for c in counters)

    if output_dir.exists():
        shutil.rmtree(output_dir)
    (output_dir / "sources").mkdir(parents=True)

    report = CoverageReport(
        module=module,
        suite_kind=suite_kind,
        execution_data=execution_data,
        output_dir=output_dir,
        index_html=output_dir / "index.html",
        classes=counters,
        covered=covered,
        missed=missed,
    )
    report.index_html.write_text(_render_index(report, frame), encoding="utf-8")

    if not frame.empty:
        per_line = frame.groupby(["source", "line"])["hits"].sum()
        for source in sorted(frame["source"].unique()):
            hits = {int(line): int(count) for line, count in per_line.loc[source].items()}
            page = output_dir / "sources" / _source_page_name(str(source))
            page.write_text(
                _render_source(str(source), _find_source(str(source), source_dir_list), hits),
                encoding="utf-8",
            )

    logger.info(
        "Coverage report for %s %s: %s lines covered (%s)",
        module,
        suite_kind,
        covered,
        _percent(covered, missed),
    )
    return report
