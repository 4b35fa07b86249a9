"""Application configuration with validation."""

from enum import Enum
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from typing import List


class Environment(str, Enum):
    """Application environment."""
    DEVELOPMENT = "development"
    PRODUCTION = "production"


class ConfigurationError(Exception):
    """Raised when application configuration is invalid for the environment."""
    pass


class Settings(BaseSettings):
    """
    Application settings with validation.

    Every value can be overridden through an environment variable of the
    same name (case-insensitive) or a ``.env`` file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Application environment (development/production)"
    )

    # CORS Configuration
    cors_allowed_origins: str = Field(
        default="http://localhost:3000",
        description="Allowed CORS origins (comma-separated)"
    )

    # Persistence
    # Both stores are plain JSON documents rewritten in full on every change.
    task_queue_path: str = Field(
        default="public/data/task-queue.json",
        description="Path of the JSON task queue document"
    )
    history_path: str = Field(
        default="data/execution-history.json",
        description="Path of the JSON execution history document"
    )
    history_limit: int = Field(
        default=100,
        description="Number of most recent executions kept in history"
    )

    # Script execution
    # Scripts are resolved relative to scripts_root and run as
    # `<script_interpreter> <scripts_root>/<script>`.
    scripts_root: str = Field(
        default=".",
        description="Directory that script paths in the job registry are relative to"
    )
    script_interpreter: str = Field(
        default="node",
        description="Executable used to run registered scripts"
    )
    script_timeout_seconds: float = Field(
        default=300,
        description="Timeout for admin and webhook scripts (5 minutes)"
    )
    job_timeout_seconds: float = Field(
        default=600,
        description="Timeout for scheduled jobs (10 minutes)"
    )
    kill_grace_seconds: float = Field(
        default=10,
        description="Seconds between SIGTERM and SIGKILL when a process times out"
    )
    max_output_bytes: int = Field(
        default=1024 * 1024,
        description="Per-stream cap on captured stdout/stderr"
    )
    max_concurrent_scripts: int = Field(
        default=3,
        description="Maximum simultaneous dispatcher executions across all jobs"
    )

    # Task queue maintenance
    stale_task_timeout_minutes: int = Field(
        default=15,
        description="in_progress tasks created longer ago than this are failed"
    )

    # Scheduler
    scheduler_enabled: bool = Field(
        default=True,
        description="Run registered interval jobs in the API process"
    )
    scheduler_tick_seconds: float = Field(
        default=30,
        description="Seconds between scheduler checks for due jobs"
    )

    # Webhook Configuration
    # HMAC secret for validating GitHub webhook signatures.
    # Leave empty to skip verification (development only).
    github_webhook_secret: str = Field(
        default="",
        description="GitHub webhook secret for HMAC signature verification"
    )

    # Worker
    worker_poll_interval: float = Field(
        default=10,
        description="Seconds the worker sleeps when no task is available"
    )
    worker_agent_role: str = Field(
        default="",
        description="Only claim tasks assigned to this agent role (empty = any)"
    )
    stale_check_interval_seconds: float = Field(
        default=60,
        description="Seconds between the worker's stale in_progress task sweeps"
    )
    stage_command: str = Field(
        default="node scripts/lib/run-stage.js",
        description="Command that executes one pipeline stage; the task type is appended"
    )
    stage_timeout_seconds: float = Field(
        default=900,
        description="Timeout for a single pipeline stage (15 minutes)"
    )

    # Logging Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    log_format: str = Field(
        default="json",
        description="Log output format: 'json' for structured, 'text' for human-readable"
    )

    def get_cors_origins(self) -> List[str]:
        """
        Get CORS origins as a list.

        Parses comma-separated string and validates no wildcards.
        """
        origins = [origin.strip() for origin in self.cors_allowed_origins.split(',') if origin.strip()]

        # SECURITY: Prevent wildcard CORS
        if "*" in origins:
            raise ValueError(
                "Wildcard CORS (*) not allowed. "
                "Specify explicit origins in CORS_ALLOWED_ORIGINS"
            )

        return origins

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is one of the standard Python logging levels."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v_upper

    @field_validator('max_concurrent_scripts', 'history_limit')
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Must be at least 1")
        return v

    def validate_production_config(self) -> None:
        """Validate configuration for production environment.

        In production, fails startup if security-critical settings use insecure defaults.
        In development, returns silently and main.py logs warnings instead.

        Raises:
            ConfigurationError: If production config is insecure.
        """
        errors: list[str] = []

        if not self.github_webhook_secret:
            errors.append(
                "GITHUB_WEBHOOK_SECRET is empty. "
                "Webhook signature verification must be enabled in production."
            )

        origins = self.get_cors_origins()
        localhost_origins = [o for o in origins if "localhost" in o or "127.0.0.1" in o]
        if localhost_origins:
            errors.append(
                f"CORS allows localhost origins: {localhost_origins}. "
                "Remove localhost origins for production."
            )

        if errors and self.environment == Environment.PRODUCTION:
            raise ConfigurationError(
                "Production configuration is insecure:\n  - " + "\n  - ".join(errors)
            )


# Global settings instance
settings = Settings()
