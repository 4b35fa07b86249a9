"""Regex-based secret redaction for script output and log messages.

Best-effort display hygiene, not a security boundary: a secret that does not
look like any of the rules below passes through untouched.
"""

import re
from dataclasses import dataclass
from typing import Iterable, Optional


@dataclass(frozen=True)
class RedactionRule:
    """A named pattern and the replacement applied to each match."""
    name: str
    pattern: re.Pattern
    replacement: str


# Env var names whose values must never be echoed back.
SENSITIVE_ENV_NAMES = (
    "GITHUB_TOKEN",
    "GITHUB_WEBHOOK_SECRET",
    "OPENAI_API_KEY",
    "SCHEDULER_API_KEY",
    "DATABASE_URL",
    "REDIS_URL",
    "AUTH_SECRET",
)

DEFAULT_RULES = (
    RedactionRule(
        "home_linux",
        re.compile(r'/home/[a-zA-Z0-9._-]+'),
        "/home/***",
    ),
    RedactionRule(
        "home_macos",
        re.compile(r'/Users/[a-zA-Z0-9._-]+'),
        "/Users/***",
    ),
    # Runs before the generic key=value rule so the variable name survives intact.
    RedactionRule(
        "sensitive_env",
        re.compile(r'\b(' + "|".join(SENSITIVE_ENV_NAMES) + r')=\S+'),
        r"\1=***",
    ),
    RedactionRule(
        "connection_string",
        re.compile(r'\b(mysql|postgresql|postgres|mongodb|redis)://[^\s]+', re.IGNORECASE),
        r"\1://***",
    ),
    RedactionRule(
        "openai_key",
        re.compile(r'\bsk-[a-zA-Z0-9_-]{20,}'),
        "sk-***",
    ),
    RedactionRule(
        "bearer",
        re.compile(r'(?i)\b(bearer\s+)[a-zA-Z0-9._\-]{20,}'),
        r"\1***",
    ),
    RedactionRule(
        "key_value",
        re.compile(
            r'(?i)\b([\w-]*(?:token|key|secret|password|auth|credential)[\w-]*)[=:]\s*(?!\*\*\*)\S+'
        ),
        r"\1=***",
    ),
    RedactionRule(
        "private_ipv4",
        re.compile(
            r'\b(?:10\.\d{1,3}\.\d{1,3}\.\d{1,3}'
            r'|192\.168\.\d{1,3}\.\d{1,3}'
            r'|172\.(?:1[6-9]|2\d|3[01])\.\d{1,3}\.\d{1,3})\b'
        ),
        "***",
    ),
)


class Redactor:
    """Applies an ordered list of redaction rules to text."""

    def __init__(self, rules: Optional[Iterable[RedactionRule]] = None):
        self.rules = tuple(DEFAULT_RULES if rules is None else rules)

    def redact(self, text: Optional[str]) -> str:
        if not text:
            return text or ""
        for rule in self.rules:
            text = rule.pattern.sub(rule.replacement, text)
        return text

    def with_rules(self, *extra: RedactionRule) -> "Redactor":
        """Return a new redactor with *extra* rules appended."""
        return Redactor(self.rules + extra)


default_redactor = Redactor()
