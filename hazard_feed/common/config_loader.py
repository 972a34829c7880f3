"""Configuration loading and validation."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from hazard_feed.common.constants import DEFAULT_FIELD_CANDIDATES, PARTITION_KEYS
from hazard_feed.common.errors import ConfigError, UnknownPartitionError
from hazard_feed.common.fs import read_yaml
from hazard_feed.common.schema import validate_feed_config

FEED_CONFIG_FILENAME = "feed.yml"


@dataclass(frozen=True)
class ConfigBundle:
    feed: dict

    @property
    def partitions(self) -> dict[str, int]:
        return {key: int(value) for key, value in self.feed["partitions"].items()}

    @property
    def field_candidates(self) -> dict[str, list[str]]:
        merged = {key: list(values) for key, values in DEFAULT_FIELD_CANDIDATES.items()}
        merged.update(self.feed.get("fields") or {})
        return merged


def _deep_merge(base: Any, overlay: Any) -> Any:
    if isinstance(base, dict) and isinstance(overlay, dict):
        merged = dict(base)
        for key, value in overlay.items():
            if key in merged:
                merged[key] = _deep_merge(merged[key], value)
            else:
                merged[key] = value
        return merged
    return overlay


def _load_yaml_with_overlay(path: Path, overlay_path: Path | None) -> dict:
    if not path.exists():
        raise ConfigError(f"Missing config file: {path}")
    base = read_yaml(path)
    if overlay_path is None or not overlay_path.exists():
        return base
    overlay = read_yaml(overlay_path)
    if overlay is None:
        return base
    return _deep_merge(base, overlay)


def load_all_configs(
    config_dir: Path,
    *,
    allow_unknown: bool = False,
    overlay_config_dir: Path | None = None,
) -> ConfigBundle:
    overlay_path = None
    if overlay_config_dir is not None:
        overlay_path = overlay_config_dir / FEED_CONFIG_FILENAME
    cfg = _load_yaml_with_overlay(config_dir / FEED_CONFIG_FILENAME, overlay_path)
    return ConfigBundle(feed=validate_feed_config(cfg, allow_unknown=allow_unknown))


def resolve_partitions(target: str, known: dict[str, int] | None = None) -> list[str]:
    keys = list(known or PARTITION_KEYS)
    if target == "all":
        return keys
    if target not in keys:
        raise UnknownPartitionError(f"Unknown partition key: {target}")
    return [target]
