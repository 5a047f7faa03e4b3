"""Jar writing with zipfile.

Entries are written in sorted order with a fixed timestamp so the same inputs
always produce byte-identical archives.
"""

from __future__ import annotations

import os
import tempfile
import zipfile
from pathlib import Path
from typing import Iterable, Mapping

MANIFEST_PATH = "META-INF/MANIFEST.MF"
AUTOMATIC_MODULE_NAME = "Automatic-Module-Name"

_FIXED_TIMESTAMP = (1980, 2, 1, 0, 0, 0)


def manifest_text(attributes: Mapping[str, str]) -> str:
    lines = ["Manifest-Version: 1.0", "Created-By: rdkbuild"]
    for key in sorted(attributes):
        lines.append(f"{key}: {attributes[key]}")
    return "\r\n".join(lines) + "\r\n\r\n"


def parse_manifest(text: str) -> dict[str, str]:
    attributes: dict[str, str] = {}
    for line in text.splitlines():
        if not line.strip() or ":" not in line:
            continue
        key, value = line.split(":", 1)
        attributes[key.strip()] = value.strip()
    return attributes


def _entries(roots: Iterable[Path]) -> list[tuple[str, Path]]:
    entries: dict[str, Path] = {}
    for root in roots:
        root = Path(root)
        if not root.is_dir():
            continue
        for path in sorted(root.rglob("*")):
            if path.is_file():
                entries.setdefault(path.relative_to(root).as_posix(), path)
    return sorted(entries.items())


def write_jar(destination: Path, roots: Iterable[Path], *, manifest: Mapping[str, str] | None = None) -> Path:
    """Write every file under `roots` into `destination`; the first root wins on clashes."""

    destination.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(
        "wb", dir=str(destination.parent), prefix=f".{destination.name}.", suffix=".tmp", delete=False
    ) as handle:
        temp_path = handle.name
        with zipfile.ZipFile(handle, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            info = zipfile.ZipInfo(MANIFEST_PATH, date_time=_FIXED_TIMESTAMP)
            info.compress_type = zipfile.ZIP_DEFLATED
            archive.writestr(info, manifest_text(manifest or {}))
            for name, path in _entries(roots):
                if name == MANIFEST_PATH:
                    continue
                info = zipfile.ZipInfo(name, date_time=_FIXED_TIMESTAMP)
                info.compress_type = zipfile.ZIP_DEFLATED
                archive.writestr(info, path.read_bytes())
    try:
        os.replace(temp_path, destination)
    except OSError:
        os.unlink(temp_path)
        raise
    return destination


def read_manifest(jar: Path) -> dict[str, str]:
    with zipfile.ZipFile(jar) as archive:
        return parse_manifest(archive.read(MANIFEST_PATH).decode("utf-8"))
