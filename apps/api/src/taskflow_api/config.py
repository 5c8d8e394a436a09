from __future__ import annotations

import os
from dataclasses import dataclass

from taskflow_api.schemas import CompletionPolicy

DEFAULT_COORDINATOR_ROLE = "boomerang"
DEFAULT_ENVELOPE_VERSION = "1.0.0"


def _env_or_default(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    trimmed = value.strip()
    return trimmed if trimmed else default


def _parse_csv_env(name: str, default: str = "") -> list[str]:
    value = _env_or_default(name, default)
    return [item.strip() for item in value.split(",") if item.strip()]


def _parse_bool_env(name: str, default: bool) -> bool:
    value = _env_or_default(name, "true" if default else "false")
    return value.lower() in ("1", "true", "yes", "on")


def _parse_int_env(name: str, default: int, *, minimum: int = 1) -> int:
    raw = _env_or_default(name, str(default))
    try:
        parsed = int(raw)
    except ValueError:
        return default
    return max(minimum, parsed)


@dataclass(frozen=True)
class Settings:
    state_file: str | None
    coordinator_role: str
    completion_policy: CompletionPolicy
    envelope_version: str
    cache_ttl_seconds: int
    cache_max_entries: int
    seed_defaults: bool
    log_level: str
    cors_allow_origins: list[str]
    cors_allow_origin_regex: str


def load_settings() -> Settings:
    raw_policy = _env_or_default("WORKFLOW_COMPLETION_POLICY", CompletionPolicy.COORDINATOR_RESET.value)
    try:
        completion_policy = CompletionPolicy(raw_policy)
    except ValueError:
        completion_policy = CompletionPolicy.COORDINATOR_RESET

    return Settings(
        state_file=os.getenv("API_STATE_FILE") or None,
        coordinator_role=_env_or_default("WORKFLOW_COORDINATOR_ROLE", DEFAULT_COORDINATOR_ROLE),
        completion_policy=completion_policy,
        envelope_version=_env_or_default("WORKFLOW_ENVELOPE_VERSION", DEFAULT_ENVELOPE_VERSION),
        cache_ttl_seconds=_parse_int_env("WORKFLOW_CACHE_TTL_SECONDS", 300),
        cache_max_entries=_parse_int_env("WORKFLOW_CACHE_MAX_ENTRIES", 256),
        seed_defaults=_parse_bool_env("WORKFLOW_SEED_DEFAULTS", True),
        log_level=_env_or_default("API_LOG_LEVEL", "INFO").upper(),
        cors_allow_origins=_parse_csv_env("API_CORS_ALLOW_ORIGINS", default="null"),
        cors_allow_origin_regex=_env_or_default(
            "API_CORS_ALLOW_ORIGIN_REGEX",
            r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$",
        ),
    )
