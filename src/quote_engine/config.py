"""
Configuration for the Quote Workflow Engine service.
"""

import os
from dataclasses import dataclass
from typing import Optional


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Config:
    """Application configuration."""

    # Run registry
    redis_url: str = os.getenv("REDIS_URL", "redis://localhost:6379")
    run_ttl_seconds: int = int(os.getenv("RUN_TTL_SECONDS", "86400"))

    # Automation service
    automation_api_url: str = os.getenv("AUTOMATION_API_URL", "https://mino.ai")
    automation_run_path: str = os.getenv("AUTOMATION_RUN_PATH", "/v1/automation/run-sse")
    automation_api_key: Optional[str] = os.getenv("AUTOMATION_API_KEY")
    automation_browser_profile: str = os.getenv("AUTOMATION_BROWSER_PROFILE", "lite")
    automation_timeout_seconds: float = float(os.getenv("AUTOMATION_TIMEOUT_SECONDS", "600"))

    # Workflow settings
    retry_base_delay_seconds: float = float(os.getenv("RETRY_BASE_DELAY_SECONDS", "2"))
    retry_semantic_failures: bool = _env_bool("RETRY_SEMANTIC_FAILURES", "true")
    workflow_completion_timeout_seconds: float = float(
        os.getenv("WORKFLOW_COMPLETION_TIMEOUT_SECONDS", "1500")
    )
    provider_catalog_path: Optional[str] = os.getenv("PROVIDER_CATALOG_PATH")
    workflow_retention_seconds: float = float(os.getenv("WORKFLOW_RETENTION_SECONDS", "86400"))

    # Streaming
    stream_poll_interval_seconds: float = float(os.getenv("STREAM_POLL_INTERVAL_SECONDS", "0.5"))
    stream_heartbeat_seconds: float = float(os.getenv("STREAM_HEARTBEAT_SECONDS", "5"))

    # OpenTelemetry
    otel_endpoint: str = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", "http://localhost:4317")
    otel_enabled: bool = _env_bool("OTEL_ENABLED", "true")

    # Server
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    host: str = os.getenv("HOST", "0.0.0.0")
    port: int = int(os.getenv("PORT", "8086"))


config = Config()
