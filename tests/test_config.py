"""Tests for settings validation and logging setup."""

import json
import logging

import pytest

from docpilot.core.config import ConfigurationError, Environment, Settings
from docpilot.core.logging_config import _JsonFormatter, request_id_var


class TestSettings:

    def test_defaults(self):
        cfg = Settings(_env_file=None)
        assert cfg.max_concurrent_scripts == 3
        assert cfg.kill_grace_seconds == 10
        assert cfg.max_output_bytes == 1024 * 1024
        assert cfg.stale_task_timeout_minutes == 15

    def test_log_level_normalised(self):
        assert Settings(log_level="debug").log_level == "DEBUG"

    def test_invalid_log_level(self):
        with pytest.raises(ValueError):
            Settings(log_level="LOUD")

    def test_wildcard_cors_rejected(self):
        with pytest.raises(ValueError):
            Settings(cors_allowed_origins="*").get_cors_origins()

    def test_cors_origins_split(self):
        cfg = Settings(cors_allowed_origins="https://a.example, https://b.example")
        assert cfg.get_cors_origins() == ["https://a.example", "https://b.example"]

    def test_production_requires_webhook_secret(self):
        cfg = Settings(
            environment=Environment.PRODUCTION,
            github_webhook_secret="",
            cors_allowed_origins="https://docs.example",
        )
        with pytest.raises(ConfigurationError, match="GITHUB_WEBHOOK_SECRET"):
            cfg.validate_production_config()

    def test_production_rejects_localhost_cors(self):
        cfg = Settings(
            environment=Environment.PRODUCTION,
            github_webhook_secret="x",
            cors_allowed_origins="http://localhost:3000",
        )
        with pytest.raises(ConfigurationError):
            cfg.validate_production_config()

    def test_development_is_lenient(self):
        Settings(environment=Environment.DEVELOPMENT, github_webhook_secret="").validate_production_config()


class TestJsonFormatter:

    def test_includes_request_id_and_extra(self):
        record = logging.LogRecord("docpilot.test", logging.INFO, __file__, 1, "hello %s", ("world",), None)
        record.task_id = "abc"
        token = request_id_var.set("req-1")
        try:
            payload = json.loads(_JsonFormatter().format(record))
        finally:
            request_id_var.reset(token)

        assert payload["message"] == "hello world"
        assert payload["level"] == "INFO"
        assert payload["request_id"] == "req-1"
        assert payload["task_id"] == "abc"
