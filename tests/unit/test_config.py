"""
Unit tests for reconciliation configuration.
"""

from unittest.mock import Mock

import pytest
from hvac.exceptions import InvalidPath

from src.utils.config import ReconciliationConfig


class TestReconciliationConfig:
    """Test config defaults, validation and derived values."""

    def test_defaults(self):
        config = ReconciliationConfig()

        assert config.bucket_concurrency == 2
        assert config.fetch_retries == 0
        assert config.timeout_seconds is None
        assert config.cursor_options() == {"retries": 0, "max_backoff_seconds": 10.0}

    def test_keys(self):
        config = ReconciliationConfig(stack_name="prod")

        assert config.report_key("r1") == "prod/reconciliation-reports/r1.json"
        assert config.buckets_config_key() == "prod/workflows/buckets.json"
        assert config.distribution_bucket_map_key() == "prod/distribution_bucket_map.json"

    @pytest.mark.parametrize("overrides", [
        {"cmr_page_size": 0},
        {"bucket_concurrency": 0},
        {"fetch_retries": -1},
        {"fetch_max_backoff_seconds": -1},
        {"timeout_seconds": 0},
    ])
    def test_validation(self, overrides):
        with pytest.raises(ValueError):
            ReconciliationConfig(**overrides)


class TestConfigSources:
    """Test loading from the environment and YAML files."""

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("STACK_NAME", "dev")
        monkeypatch.setenv("BUCKET_CONCURRENCY", "4")
        monkeypatch.setenv("FETCH_MAX_BACKOFF_SECONDS", "2.5")
        monkeypatch.setenv("RECONCILIATION_TIMEOUT_SECONDS", "600")
        monkeypatch.setenv("SCYLLA_HOSTS", "node1, node2")

        config = ReconciliationConfig.from_env(fetch_retries=3, cmr_provider=None)

        assert config.stack_name == "dev"
        assert config.bucket_concurrency == 4
        assert config.fetch_max_backoff_seconds == 2.5
        assert config.timeout_seconds == 600.0
        assert config.scylla_hosts == ["node1", "node2"]
        assert config.fetch_retries == 3
        assert config.cmr_provider == ""

    def test_from_yaml(self, tmp_path, monkeypatch):
        monkeypatch.setenv("STACK_NAME", "from-env")
        monkeypatch.setenv("CMR_PROVIDER", "PODAAC")
        path = tmp_path / "config.yaml"
        path.write_text("stack_name: from-file\nbucket_concurrency: 5\n")

        config = ReconciliationConfig.from_yaml(path, bucket_concurrency=6)

        assert config.stack_name == "from-file"
        assert config.cmr_provider == "PODAAC"
        assert config.bucket_concurrency == 6

    def test_from_yaml_unknown_field(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("stack_name: x\nkafka_bootstrap: localhost\n")

        with pytest.raises(ValueError, match="kafka_bootstrap"):
            ReconciliationConfig.from_yaml(path)

    def test_from_yaml_not_a_mapping(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- a\n- b\n")

        with pytest.raises(ValueError, match="mapping"):
            ReconciliationConfig.from_yaml(path)


class TestApplyCredentials:
    """Test credential injection from Vault."""

    def test_apply_credentials(self):
        vault = Mock()
        vault.get_postgres_credentials.return_value = {"username": "pg", "password": "pg-secret"}
        vault.get_scylla_credentials.return_value = {"username": "sc", "password": "sc-secret"}
        vault.get_cmr_credentials.return_value = {"token": "cmr-token"}

        config = ReconciliationConfig()
        config.apply_credentials(vault)

        assert (config.postgres_user, config.postgres_password) == ("pg", "pg-secret")
        assert (config.scylla_user, config.scylla_password) == ("sc", "sc-secret")
        assert config.cmr_token == "cmr-token"

    def test_missing_catalog_credentials(self):
        vault = Mock()
        vault.get_postgres_credentials.return_value = {}
        vault.get_scylla_credentials.return_value = {}
        vault.get_cmr_credentials.side_effect = InvalidPath("missing")

        config = ReconciliationConfig(cmr_token="existing")
        config.apply_credentials(vault)

        assert config.cmr_token == "existing"
        assert config.postgres_user == "postgres"
