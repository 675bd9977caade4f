"""
Tests for configuration loading: YAML parsing, validation and the
configuration trace record.
"""

from dataclasses import replace

import pytest
import yaml

from envelope_config import (
    LedgerConfig,
    compute_checksum,
    get_active_config,
    load_yaml_file,
    parse_config,
)

LEDGER_YAML = """\
ledger:
  database_url: postgresql+psycopg2://ledger@localhost/ledger
  archive_retention_days: 365
  max_shared_participants: 4
  access_cache_ttl_seconds: 30
  default_currency: EUR
"""


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "ledger.yaml"
    path.write_text(LEDGER_YAML)
    return path


class TestParseConfig:

    def test_defaults(self):
        config = parse_config({})
        assert config == LedgerConfig()
        assert config.archive_retention_days == 730
        assert config.conflict_retry_attempts == 3

    def test_namespaced_section(self, config_file):
        config = parse_config(load_yaml_file(config_file))
        assert config.database_url.startswith("postgresql+psycopg2://")
        assert config.archive_retention_days == 365
        assert config.max_shared_participants == 4
        assert config.default_currency == "EUR"
        assert config.max_query_limit == 500

    def test_unknown_keys_rejected(self):
        with pytest.raises(ValueError, match="max_sharers"):
            parse_config({"max_sharers": 5})

    @pytest.mark.parametrize(
        "overrides",
        [
            {"archive_retention_days": 0},
            {"max_shared_participants": -1},
            {"conflict_retry_attempts": True},
            {"max_query_limit": "500"},
            {"access_cache_ttl_seconds": -1},
            {"conflict_retry_backoff_seconds": -0.5},
            {"default_currency": "usd"},
            {"default_currency": "DOLLARS"},
            {"log_level": "VERBOSE"},
            {"database_url": ""},
        ],
    )
    def test_invalid_values(self, overrides):
        with pytest.raises(ValueError):
            parse_config(overrides)

    def test_lowercase_log_level_accepted(self):
        assert parse_config({"log_level": "debug"}).log_level == "debug"


class TestLoadYamlFile:

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_yaml_file(tmp_path / "absent.yaml")

    def test_empty_file_is_empty_mapping(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_yaml_file(path) == {}

    def test_non_mapping_root(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ValueError):
            load_yaml_file(path)

    def test_malformed_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("ledger: [unclosed\n")
        with pytest.raises(yaml.YAMLError):
            load_yaml_file(path)


class TestChecksum:

    def test_deterministic(self):
        assert compute_checksum(LedgerConfig()) == compute_checksum(LedgerConfig())
        assert len(compute_checksum(LedgerConfig())) == 64

    def test_changes_with_any_field(self):
        base = LedgerConfig()
        assert compute_checksum(base) != compute_checksum(replace(base, max_shared_participants=11))


class TestGetActiveConfig:

    def test_defaults_trace(self, captured_logs):
        config = get_active_config()
        assert config == LedgerConfig()

        (trace,) = [r for r in captured_logs() if r["message"] == "LEDGER_CONFIG_TRACE"]
        assert trace["config_source"] == "<defaults>"
        assert trace["checksum"] == compute_checksum(config)

    def test_file_trace(self, config_file, captured_logs):
        config = get_active_config(config_file)
        assert config.archive_retention_days == 365

        (trace,) = [r for r in captured_logs() if r["message"] == "LEDGER_CONFIG_TRACE"]
        assert trace["trace_type"] == "LEDGER_CONFIG_TRACE"
        assert trace["config_source"] == str(config_file)
        assert trace["max_shared_participants"] == 4
