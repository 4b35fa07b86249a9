"""docpilot: task pipeline and script runner for an AI-driven documentation portal."""
