import json
import logging

import pytest

from vitalsync.config import ConfigValidator, EngineConfig, configure_logging, load_config
from vitalsync.models import ConfigurationError


class TestLoadConfig:
    """Layering of defaults, file and environment."""

    def test_defaults(self):
        config = load_config(env={})

        assert config == EngineConfig()
        assert config.poll_interval_seconds == 3.0
        assert config.alert_refresh_interval_seconds == 60.0
        assert config.prediction_ttl_seconds == 3600

    def test_yaml_file_overrides_defaults(self, tmp_path):
        path = tmp_path / "engine.yaml"
        path.write_text(
            "api_base_url: https://hospital.example.org\n"
            "poll_interval_seconds: 5\n"
            "prediction_store: redis\n"
        )

        config = load_config(str(path), env={})

        assert config.api_base_url == "https://hospital.example.org"
        assert config.poll_interval_seconds == 5.0
        assert isinstance(config.poll_interval_seconds, float)
        assert config.prediction_store == "redis"

    def test_environment_beats_file(self, tmp_path):
        path = tmp_path / "engine.json"
        path.write_text(json.dumps({"poll_interval_seconds": 10, "log_level": "DEBUG"}))

        config = load_config(str(path), env={
            "VITALSYNC_POLL_INTERVAL_SECONDS": "2.5",
            "VITALSYNC_METRICS_ENABLED": "false",
            "VITALSYNC_PREDICTION_TTL_SECONDS": "600",
        })

        assert config.poll_interval_seconds == 2.5
        assert config.log_level == "DEBUG"
        assert config.metrics_enabled is False
        assert config.prediction_ttl_seconds == 600

    def test_missing_file_falls_back_to_defaults(self, tmp_path):
        config = load_config(str(tmp_path / "absent.yaml"), env={})
        assert config == EngineConfig()

    def test_unknown_file_keys_ignored(self, tmp_path):
        path = tmp_path / "engine.yaml"
        path.write_text("websocket_port: 8765\nlog_level: WARNING\n")

        assert load_config(str(path), env={}).log_level == "WARNING"

    def test_log_level_is_case_insensitive(self, tmp_path):
        assert load_config(env={"VITALSYNC_LOG_LEVEL": "debug"}).log_level == "DEBUG"

        path = tmp_path / "engine.yaml"
        path.write_text("log_level: warning\n")
        assert load_config(str(path), env={}).log_level == "WARNING"

    def test_non_mapping_file_rejected(self, tmp_path):
        path = tmp_path / "engine.yaml"
        path.write_text("- just\n- a list\n")

        with pytest.raises(ConfigurationError):
            load_config(str(path), env={})

    def test_unsupported_extension_rejected(self, tmp_path):
        path = tmp_path / "engine.ini"
        path.write_text("[engine]\n")

        with pytest.raises(ConfigurationError):
            load_config(str(path), env={})

    def test_unparseable_environment_value(self):
        with pytest.raises(ConfigurationError, match="VITALSYNC_PREDICTION_TTL_SECONDS"):
            load_config(env={"VITALSYNC_PREDICTION_TTL_SECONDS": "an hour"})

    @pytest.mark.parametrize("env", [
        {"VITALSYNC_PREDICTION_STORE": "disk"},
        {"VITALSYNC_POLL_INTERVAL_SECONDS": "0"},
        {"VITALSYNC_API_BASE_URL": "ftp://hospital"},
        {"VITALSYNC_LOG_LEVEL": "LOUD"},
    ])
    def test_invalid_values_rejected(self, env):
        with pytest.raises(ConfigurationError):
            load_config(env=env)


class TestConfigValidator:

    def test_valid_default_config(self):
        assert ConfigValidator().validate_config(EngineConfig()) == []

    def test_bool_not_accepted_as_number(self):
        errors = ConfigValidator().validate_config(EngineConfig(prediction_ttl_seconds=True))
        assert any("prediction_ttl_seconds" in e for e in errors)

    def test_range_errors_reported(self):
        errors = ConfigValidator().validate_config(
            EngineConfig(request_timeout_seconds=0.1, alert_refresh_interval_seconds=9999.0)
        )
        assert len(errors) == 2


class TestConfigureLogging:

    def test_level_applied_to_root_logger(self, monkeypatch):
        root = logging.getLogger()
        monkeypatch.setattr(root, "handlers", [])
        monkeypatch.setattr(root, "level", root.level)

        configure_logging("debug")

        assert root.level == logging.DEBUG

    def test_level_applied_when_handlers_exist(self, monkeypatch):
        root = logging.getLogger()
        monkeypatch.setattr(root, "handlers", [logging.NullHandler()])
        monkeypatch.setattr(root, "level", root.level)

        configure_logging("WARNING")

        assert root.level == logging.WARNING
