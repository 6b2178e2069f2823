from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Mapping


def parse_bool(value) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "t", "yes", "y", "on"}


def _env_int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = (environ.get(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except (TypeError, ValueError):
        return default


def _env_float(environ: Mapping[str, str], name: str, default: float) -> float:
    raw = (environ.get(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except (TypeError, ValueError):
        return default


def load_flask_config() -> dict[str, Any]:
    return {
        "RATELIMIT_STORAGE_URI": os.environ.get("CLOUDSTREAM_RATE_LIMIT_STORAGE_URI", "memory://"),
    }


DEFAULT_PUBLIC_DOMAIN = "https://media.cloudstream.local"
DEFAULT_QUOTA_BYTES = 10 * 1024 * 1024 * 1024  # R2 free tier


@dataclass(frozen=True)
class PipelineConfig:
    public_domain: str = DEFAULT_PUBLIC_DOMAIN
    quota_bytes: int = DEFAULT_QUOTA_BYTES
    compression_ratio: float = 0.20
    tick_interval_ms: int = 200
    progress_step_min: float = 1.0
    progress_step_max: float = 3.0
    notification_timeout_ms: int = 3000
    enrich_url: str = ""
    enrich_timeout_seconds: float = 10.0
    enrich_max_attempts: int = 3
    activity_enabled: bool = True
    activity_db_path: str = "/database/cloudstream-activity.sqlite3"

    @property
    def tick_interval_seconds(self) -> float:
        return self.tick_interval_ms / 1000.0

    @property
    def notification_timeout_seconds(self) -> float:
        return self.notification_timeout_ms / 1000.0

    def validate(self) -> PipelineConfig:
        if not self.public_domain:
            raise ValueError("public_domain must not be empty")
        if self.quota_bytes <= 0:
            raise ValueError("quota_bytes must be positive")
        if not 0 < self.compression_ratio <= 1:
            raise ValueError("compression_ratio must be within (0, 1]")
        if self.tick_interval_ms <= 0:
            raise ValueError("tick_interval_ms must be positive")
        if self.progress_step_min <= 0 or self.progress_step_max < self.progress_step_min:
            raise ValueError("progress step range is invalid")
        if self.notification_timeout_ms <= 0:
            raise ValueError("notification_timeout_ms must be positive")
        if self.enrich_max_attempts < 1:
            raise ValueError("enrich_max_attempts must be at least 1")
        return self


def load_pipeline_config(environ: Mapping[str, str] | None = None) -> PipelineConfig:
    env = os.environ if environ is None else environ
    config = PipelineConfig(
        public_domain=(env.get("CLOUDSTREAM_PUBLIC_DOMAIN") or DEFAULT_PUBLIC_DOMAIN)
        .strip()
        .rstrip("/"),
        quota_bytes=_env_int(env, "CLOUDSTREAM_QUOTA_BYTES", DEFAULT_QUOTA_BYTES),
        compression_ratio=_env_float(env, "CLOUDSTREAM_COMPRESSION_RATIO", 0.20),
        tick_interval_ms=_env_int(env, "CLOUDSTREAM_TICK_INTERVAL_MS", 200),
        progress_step_min=_env_float(env, "CLOUDSTREAM_PROGRESS_STEP_MIN", 1.0),
        progress_step_max=_env_float(env, "CLOUDSTREAM_PROGRESS_STEP_MAX", 3.0),
        notification_timeout_ms=_env_int(env, "CLOUDSTREAM_NOTIFICATION_TIMEOUT_MS", 3000),
        enrich_url=(env.get("CLOUDSTREAM_ENRICH_URL") or "").strip(),
        enrich_timeout_seconds=_env_float(env, "CLOUDSTREAM_ENRICH_TIMEOUT_SECONDS", 10.0),
        enrich_max_attempts=_env_int(env, "CLOUDSTREAM_ENRICH_MAX_ATTEMPTS", 3),
        activity_enabled=parse_bool(env.get("CLOUDSTREAM_ACTIVITY_ENABLED", "true")),
        activity_db_path=env.get(
            "CLOUDSTREAM_ACTIVITY_DB_PATH", "/database/cloudstream-activity.sqlite3"
        ),
    )
    return config.validate()
