"""Packaged resources for taskboard."""

from __future__ import annotations

import json
from functools import lru_cache
from importlib import resources
from typing import Any, Dict

import yaml

__all__ = ["load_default_config", "load_schema"]


@lru_cache(maxsize=1)
def load_default_config() -> Dict[str, Any]:
    """Return the board configuration shipped with the package."""

    raw = (resources.files(__name__) / "default_config.yaml").read_text("utf-8")
    payload = yaml.safe_load(raw) or {}
    return dict(payload)


@lru_cache(maxsize=None)
def load_schema(name: str) -> Dict[str, Any]:
    raw = (resources.files(__name__) / name).read_text("utf-8")
    return json.loads(raw)
