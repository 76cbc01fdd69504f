from __future__ import annotations

from importlib import resources
from typing import Any

import yaml

HEURISTICS_PACKAGE = "app.core"
HEURISTICS_RESOURCE = "heuristics.yaml"

_HEURISTICS_CONFIG_CACHE: dict[str, Any] | None = None


def heuristics_resource():
    return resources.files(HEURISTICS_PACKAGE).joinpath(HEURISTICS_RESOURCE)


def get_heuristics_config() -> dict[str, Any]:
    """Load the local-analysis vocabulary shipped inside the package and cache it."""
    global _HEURISTICS_CONFIG_CACHE

    if _HEURISTICS_CONFIG_CACHE is not None:
        return _HEURISTICS_CONFIG_CACHE

    resource = heuristics_resource()
    try:
        raw = resource.read_text(encoding="utf-8")
    except OSError as exc:
        raise RuntimeError(
            f"Failed to read heuristics config '{HEURISTICS_PACKAGE}/{HEURISTICS_RESOURCE}': {exc}"
        ) from exc

    try:
        parsed = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise RuntimeError(
            f"Invalid YAML in heuristics config '{HEURISTICS_PACKAGE}/{HEURISTICS_RESOURCE}': {exc}"
        ) from exc

    if not isinstance(parsed, dict):
        raise RuntimeError(
            f"Invalid heuristics config '{HEURISTICS_PACKAGE}/{HEURISTICS_RESOURCE}': expected a top-level mapping."
        )

    _HEURISTICS_CONFIG_CACHE = parsed
    return _HEURISTICS_CONFIG_CACHE
