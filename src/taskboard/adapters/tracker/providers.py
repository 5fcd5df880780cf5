"""Factory helpers for tracker providers."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict

from taskboard.ports.tracker.provider import TrackerProvider, TrackerProviderError

from .file_provider import FileTrackerProvider
from .github_provider import GitHubTrackerProvider

SUPPORTED_PROVIDERS = ("file", "github")

_SECRET_KEYS = {"token", "key", "password", "secret"}


@dataclass(frozen=True)
class ProviderBuildResult:
    provider: TrackerProvider
    report_config: Dict[str, Any]


def build_provider_from_config(root: Path, config: Dict[str, Any]) -> ProviderBuildResult:
    if not isinstance(config, dict):
        raise TrackerProviderError("tracker.config_invalid: provider config must be an object")
    if "type" not in config or not isinstance(config["type"], str):
        raise TrackerProviderError("tracker.config_invalid: missing provider type")
    provider_type = config["type"].strip().lower()

    raw_options = config.get("options") or {}
    if not isinstance(raw_options, dict):
        raise TrackerProviderError("tracker.config_invalid: options must be object")
    options: Dict[str, Any] = dict(raw_options)

    _normalise_paths(root, options)

    if provider_type == "file":
        if "path" not in options:
            raise TrackerProviderError(
                "tracker.config_invalid: options.path required for file provider"
            )
        provider: TrackerProvider = FileTrackerProvider(root, options)
    elif provider_type == "github":
        provider = GitHubTrackerProvider(options)
    else:
        raise TrackerProviderError(f"tracker.provider_not_supported: {provider_type}")

    report_config = {
        "type": provider_type,
        "options": _sanitise_options(options),
    }
    return ProviderBuildResult(provider=provider, report_config=report_config)


def _normalise_paths(root: Path, options: Dict[str, Any]) -> None:
    for key in ("path", "snapshot_path"):
        value = options.get(key)
        if not value:
            continue
        candidate = Path(str(value)).expanduser()
        if not candidate.is_absolute():
            candidate = (root / candidate).resolve()
        options[key] = str(candidate)


def _sanitise_options(options: Dict[str, Any]) -> Dict[str, Any]:
    def _mask(value: Any) -> Any:
        if isinstance(value, dict):
            masked: Dict[str, Any] = {}
            for key, item in value.items():
                if key in _SECRET_KEYS and item:
                    masked[key] = "***"
                else:
                    masked[key] = _mask(item)
            return masked
        if isinstance(value, list):
            return [_mask(item) for item in value]
        return value

    return _mask(options)


__all__ = ["ProviderBuildResult", "SUPPORTED_PROVIDERS", "build_provider_from_config"]
