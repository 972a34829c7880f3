import copy

import pytest

from hazard_feed.common.errors import ConfigError
from hazard_feed.common.schema import validate_feed_config

BASE_FEED = {
    "upstream": {
        "base_url": "https://example.test/stations",
        "page_size": 10,
        "skip_param": "skip",
        "timeout_seconds": 30,
        "politeness_delay_seconds": 1,
    },
    "retry": {
        "max_attempts": 5,
        "forbidden_base_seconds": 3,
        "too_many_requests_step_seconds": 10,
        "transient_delay_seconds": 2,
        "breaker_threshold": 10,
    },
    "source_cache": {"ttl_seconds": 86400},
    "freshness": {"window_seconds": 300},
    "derive": {"min_major": 10, "max_records": 50, "source_label": "x"},
    "storage": {"database": ":memory:"},
    "partitions": {"hour": 3600000},
}


def _feed() -> dict:
    return copy.deepcopy(BASE_FEED)


def test_validate_feed_config_accepts_valid_shape():
    validated = validate_feed_config(_feed())
    assert validated["partitions"] == {"hour": 3600000}


def test_validate_feed_config_rejects_unknown_key_by_default():
    bad = _feed()
    bad["unexpected"] = True
    with pytest.raises(ConfigError):
        validate_feed_config(bad)


def test_validate_feed_config_allows_unknown_when_enabled():
    okay = _feed()
    okay["extra"] = 1
    okay["upstream"]["proxy"] = "x"
    validate_feed_config(okay, allow_unknown=True)


def test_validate_feed_config_requires_sections_and_keys():
    missing_section = _feed()
    del missing_section["retry"]
    with pytest.raises(ConfigError):
        validate_feed_config(missing_section)

    missing_key = _feed()
    del missing_key["upstream"]["page_size"]
    with pytest.raises(ConfigError):
        validate_feed_config(missing_key)


@pytest.mark.parametrize(
    ("section", "key", "value"),
    [
        ("upstream", "base_url", "ftp://example.test"),
        ("upstream", "page_size", 0),
        ("retry", "max_attempts", 0),
        ("retry", "breaker_threshold", "ten"),
        ("derive", "max_records", -1),
        ("freshness", "window_seconds", True),
    ],
)
def test_validate_feed_config_rejects_bad_values(section: str, key: str, value):
    bad = _feed()
    bad[section][key] = value
    with pytest.raises(ConfigError):
        validate_feed_config(bad)


def test_validate_feed_config_allows_zero_delays():
    okay = _feed()
    okay["upstream"]["politeness_delay_seconds"] = 0
    okay["retry"]["transient_delay_seconds"] = 0
    validate_feed_config(okay)


def test_validate_feed_config_checks_partitions_and_fields():
    empty_partitions = _feed()
    empty_partitions["partitions"] = {}
    with pytest.raises(ConfigError):
        validate_feed_config(empty_partitions)

    bad_fields = _feed()
    bad_fields["fields"] = {"id": []}
    with pytest.raises(ConfigError):
        validate_feed_config(bad_fields)

    unknown_field = _feed()
    unknown_field["fields"] = {"colour": ["c"]}
    with pytest.raises(ConfigError):
        validate_feed_config(unknown_field)
