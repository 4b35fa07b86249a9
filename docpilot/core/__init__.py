"""Core configuration, logging, and redaction."""
