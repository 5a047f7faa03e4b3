from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

SETTINGS_FILE = "settings.yaml"
LOCAL_OVERLAY_FILE = "settings.local.yaml"
SETTINGS_ENV_VAR = "RDKBUILD_SETTINGS"


def find_build_root(start: str | os.PathLike[str] | None = None) -> Path:
    start_path = Path(start or os.getcwd()).resolve()
    if start_path.is_file():
        start_path = start_path.parent

    for candidate in (start_path, *start_path.parents):
        if (candidate / SETTINGS_FILE).is_file():
            return candidate

    raise FileNotFoundError(f"Cannot locate build root: searched from {start_path} for {SETTINGS_FILE}")


def load_yaml_mapping(path: str | os.PathLike[str]) -> dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as handle:
            payload = yaml.safe_load(handle)
    except FileNotFoundError:
        raise
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in {path}: {exc}") from exc

    if payload is None:
        payload = {}
    if not isinstance(payload, Mapping):
        raise ValueError(f"Build file must contain a YAML mapping: {path}")
    return dict(payload)


def deep_merge(base: Any, overlay: Any, *, path: str) -> Any:
    if overlay is None:
        return None
    if base is None:
        return overlay

    if isinstance(base, Mapping):
        if not isinstance(overlay, Mapping):
            raise ValueError(
                f"Invalid settings overlay merge at {path}: base is mapping but overlay is {type(overlay).__name__}"
            )
        merged: dict[str, Any] = dict(base)
        for key, overlay_value in overlay.items():
            next_path = f"{path}.{key}" if path else str(key)
            if key in base:
                merged[key] = deep_merge(base[key], overlay_value, path=next_path)
            else:
                merged[key] = overlay_value
        return merged

    if isinstance(base, (list, tuple)):
        if not isinstance(overlay, (list, tuple)):
            raise ValueError(
                f"Invalid settings overlay merge at {path}: base is list but overlay is {type(overlay).__name__}"
            )
        return list(overlay)

    if isinstance(overlay, (Mapping, list, tuple)):
        raise ValueError(
            f"Invalid settings overlay merge at {path}: base is {type(base).__name__} but overlay is {type(overlay).__name__}"
        )
    return overlay


def load_settings_document(
    project_dir: str | os.PathLike[str] | None = None,
    *,
    env_var: str = SETTINGS_ENV_VAR,
) -> tuple[dict[str, Any], dict[str, Any]]:
    """Load the build settings mapping plus a description of where it came from.

    An explicit file named by `env_var` is loaded alone. Otherwise the build root
    is discovered from `project_dir` and `settings.local.yaml` is merged over
    `settings.yaml` when present.
    """

    explicit = os.environ.get(env_var, "").strip() if env_var else ""
    if explicit:
        settings_path = Path(os.path.expandvars(os.path.expanduser(explicit))).resolve()
        data = load_yaml_mapping(settings_path)
        return data, {"mode": "env", "paths": [str(settings_path)], "root": str(settings_path.parent)}

    root = find_build_root(project_dir)
    settings_path = root / SETTINGS_FILE
    data = load_yaml_mapping(settings_path)
    paths = [str(settings_path)]
    mode = "base"

    overlay_path = root / LOCAL_OVERLAY_FILE
    if overlay_path.is_file():
        data = deep_merge(data, load_yaml_mapping(overlay_path), path="")
        paths.append(str(overlay_path))
        mode = "base+local"

    return data, {"mode": mode, "paths": paths, "root": str(root)}
