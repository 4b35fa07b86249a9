"""Tests for secret redaction of script output and log records."""

import logging
import re

from docpilot.core.logging_config import _SecretFilter
from docpilot.core.redaction import RedactionRule, Redactor, default_redactor


class TestDefaultRules:

    def test_sensitive_env_var(self):
        assert default_redactor.redact("GITHUB_TOKEN=abcdef123") == "GITHUB_TOKEN=***"

    def test_generic_key_value(self):
        out = default_redactor.redact("api_key: hunter2 and password=letmein")
        assert "hunter2" not in out
        assert "letmein" not in out
        assert "api_key=***" in out

    def test_home_directories(self):
        out = default_redactor.redact("at /home/alice/app.js and /Users/bob/x")
        assert out == "at /home/***/app.js and /Users/***/x"

    def test_connection_string(self):
        out = default_redactor.redact("connecting to postgresql://admin:pw@db:5432/app")
        assert out == "connecting to postgresql://***"

    def test_private_ips(self):
        out = default_redactor.redact("hosts 10.1.2.3 192.168.0.1 172.20.1.1 8.8.8.8")
        assert out == "hosts *** *** *** 8.8.8.8"

    def test_openai_key(self):
        assert default_redactor.redact("using sk-abcdefghijklmnopqrstuvwx") == "using sk-***"

    def test_plain_text_unchanged(self):
        text = "Generated 3 documents in 1.2s"
        assert default_redactor.redact(text) == text

    def test_empty(self):
        assert default_redactor.redact("") == ""
        assert default_redactor.redact(None) == ""


class TestPluggableRules:

    def test_custom_rules_only(self):
        redactor = Redactor([RedactionRule("ticket", re.compile(r"TICKET-\d+"), "TICKET-?")])
        assert redactor.redact("TICKET-123 GITHUB_TOKEN=x") == "TICKET-? GITHUB_TOKEN=x"

    def test_with_rules_extends_defaults(self):
        redactor = default_redactor.with_rules(
            RedactionRule("email", re.compile(r"[\w.]+@example\.com"), "<email>")
        )
        assert redactor.redact("GITHUB_TOKEN=abc ops@example.com") == "GITHUB_TOKEN=*** <email>"
        assert len(default_redactor.rules) == len(redactor.rules) - 1


class TestSecretFilter:

    def test_redacts_message_args(self):
        record = logging.LogRecord("t", logging.INFO, __file__, 1, "env: %s", ("GITHUB_TOKEN=abc",), None)
        assert _SecretFilter().filter(record) is True
        assert record.getMessage() == "env: GITHUB_TOKEN=***"
