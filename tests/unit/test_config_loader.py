from pathlib import Path

import pytest

from hazard_feed.common.config_loader import load_all_configs, resolve_partitions
from hazard_feed.common.errors import ConfigError, UnknownPartitionError


def test_load_all_configs_from_repo_config_dir():
    bundle = load_all_configs(Path("config"))
    assert bundle.partitions == {"hour": 3_600_000, "day": 86_400_000, "week": 604_800_000, "month": 2_592_000_000}
    assert bundle.feed["retry"]["breaker_threshold"] == 10
    assert "stationId" in bundle.field_candidates["id"]


def test_resolve_partitions():
    assert resolve_partitions("all") == ["hour", "day", "week", "month"]
    assert resolve_partitions("day") == ["day"]
    assert resolve_partitions("all", {"hour": 1}) == ["hour"]
    with pytest.raises(UnknownPartitionError):
        resolve_partitions("year")


def _copy_base(tmp_path: Path) -> Path:
    base = tmp_path / "base"
    base.mkdir()
    (base / "feed.yml").write_text(Path("config/feed.yml").read_text(encoding="utf-8"), encoding="utf-8")
    return base


def test_load_all_configs_applies_overlay_values(tmp_path: Path):
    base = _copy_base(tmp_path)
    overlay = tmp_path / "overlay"
    overlay.mkdir()
    (overlay / "feed.yml").write_text(
        """upstream:
  politeness_delay_seconds: 0
storage:
  database: ":memory:"
""",
        encoding="utf-8",
    )

    bundle = load_all_configs(base, overlay_config_dir=overlay)

    assert bundle.feed["upstream"]["politeness_delay_seconds"] == 0
    assert bundle.feed["upstream"]["page_size"] == 10
    assert bundle.feed["storage"]["database"] == ":memory:"


def test_load_all_configs_ignores_empty_overlay_file(tmp_path: Path):
    base = _copy_base(tmp_path)
    overlay = tmp_path / "overlay"
    overlay.mkdir()
    (overlay / "feed.yml").write_text("", encoding="utf-8")

    bundle = load_all_configs(base, overlay_config_dir=overlay)
    assert bundle.feed["upstream"]["politeness_delay_seconds"] == 1


def test_load_all_configs_rejects_non_mapping_overlay(tmp_path: Path):
    base = _copy_base(tmp_path)
    overlay = tmp_path / "overlay"
    overlay.mkdir()
    (overlay / "feed.yml").write_text("- not\n- a\n- mapping\n", encoding="utf-8")

    with pytest.raises(ConfigError):
        load_all_configs(base, overlay_config_dir=overlay)


def test_load_all_configs_missing_file(tmp_path: Path):
    with pytest.raises(ConfigError):
        load_all_configs(tmp_path)


def test_overlay_fields_replace_default_candidates(tmp_path: Path):
    base = _copy_base(tmp_path)
    overlay = tmp_path / "overlay"
    overlay.mkdir()
    (overlay / "feed.yml").write_text("fields:\n  id: [gauge_ref]\n", encoding="utf-8")

    bundle = load_all_configs(base, overlay_config_dir=overlay)

    assert bundle.field_candidates["id"] == ["gauge_ref"]
    assert bundle.field_candidates["latitude"][0] == "latitude"
