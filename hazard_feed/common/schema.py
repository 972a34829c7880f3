"""Minimal strict schemas for YAML config validation."""

from __future__ import annotations

from hazard_feed.common.errors import ConfigError

FEED_SECTIONS = {
    "upstream": {
        "base_url",
        "page_size",
        "skip_param",
        "limit_param",
        "timeout_seconds",
        "politeness_delay_seconds",
        "max_pages",
    },
    "retry": {
        "max_attempts",
        "forbidden_base_seconds",
        "too_many_requests_step_seconds",
        "transient_delay_seconds",
        "breaker_threshold",
    },
    "source_cache": {"ttl_seconds"},
    "freshness": {"window_seconds"},
    "derive": {"min_major", "max_records", "source_label"},
    "storage": {"database"},
}
OPTIONAL_KEYS = {
    "upstream": {"limit_param", "max_pages"},
}
FIELD_KEYS = {"id", "longitude", "latitude", "is_active", "risk_metric_a", "risk_metric_b", "site_name"}


def _assert_required_keys(obj: dict, required: set[str], ctx: str) -> None:
    if not isinstance(obj, dict):
        raise ConfigError(f"{ctx} must be a mapping")
    missing = required - set(obj)
    if missing:
        missing_str = ", ".join(sorted(missing))
        raise ConfigError(f"Missing keys in {ctx}: {missing_str}")


def _assert_no_unknown_keys(obj: dict, known: set[str], ctx: str, allow_unknown: bool) -> None:
    if allow_unknown:
        return
    unknown = set(obj) - known
    if unknown:
        unknown_str = ", ".join(sorted(unknown))
        raise ConfigError(f"Unknown keys in {ctx}: {unknown_str}")


def _assert_positive(value: object, ctx: str, *, allow_zero: bool = False) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"{ctx} must be a number")
    if value < 0 or (value == 0 and not allow_zero):
        raise ConfigError(f"{ctx} must be {'non-negative' if allow_zero else 'positive'}")


def validate_feed_config(cfg: dict, *, allow_unknown: bool = False) -> dict:
    top_required = set(FEED_SECTIONS) | {"partitions"}
    top_known = top_required | {"fields"}
    _assert_required_keys(cfg, top_required, "feed config")
    _assert_no_unknown_keys(cfg, top_known, "feed config", allow_unknown)

    for section, keys in FEED_SECTIONS.items():
        required = keys - OPTIONAL_KEYS.get(section, set())
        _assert_required_keys(cfg[section], required, section)
        _assert_no_unknown_keys(cfg[section], keys, section, allow_unknown)

    upstream = cfg["upstream"]
    if not str(upstream["base_url"]).startswith(("http://", "https://")):
        raise ConfigError("upstream.base_url must be an http(s) URL")
    _assert_positive(upstream["page_size"], "upstream.page_size")
    _assert_positive(upstream["timeout_seconds"], "upstream.timeout_seconds")
    _assert_positive(upstream["politeness_delay_seconds"], "upstream.politeness_delay_seconds", allow_zero=True)

    for key in sorted(FEED_SECTIONS["retry"]):
        _assert_positive(cfg["retry"][key], f"retry.{key}", allow_zero=key.endswith("_seconds"))

    _assert_positive(cfg["source_cache"]["ttl_seconds"], "source_cache.ttl_seconds")
    _assert_positive(cfg["freshness"]["window_seconds"], "freshness.window_seconds")
    _assert_positive(cfg["derive"]["min_major"], "derive.min_major", allow_zero=True)
    _assert_positive(cfg["derive"]["max_records"], "derive.max_records")

    partitions = cfg["partitions"]
    if not isinstance(partitions, dict) or not partitions:
        raise ConfigError("partitions must be a non-empty mapping")
    for key, window_ms in partitions.items():
        _assert_positive(window_ms, f"partitions.{key}")

    fields = cfg.get("fields") or {}
    if not isinstance(fields, dict):
        raise ConfigError("fields must be a mapping")
    _assert_no_unknown_keys(fields, FIELD_KEYS, "fields", allow_unknown)
    for key, candidates in fields.items():
        if not isinstance(candidates, list) or not candidates:
            raise ConfigError(f"fields.{key} must be a non-empty list")

    return cfg
