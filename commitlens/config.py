"""Session configuration loaded from environment variables."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

from commitlens.cache import DEFAULT_CONTENT_CACHE_CAPACITY, DEFAULT_DIFF_CACHE_CAPACITY

DEFAULT_PREFETCH_PARALLEL = 5
DEFAULT_TIMEOUT_SECONDS = 20.0
CONTENT_CACHE_CAPACITY_ENV_VAR = "COMMITLENS_CONTENT_CACHE_CAPACITY"
DIFF_CACHE_CAPACITY_ENV_VAR = "COMMITLENS_DIFF_CACHE_CAPACITY"
PREFETCH_PARALLEL_ENV_VAR = "COMMITLENS_PREFETCH_PARALLEL"
TIMEOUT_SECONDS_ENV_VAR = "COMMITLENS_TIMEOUT_SECONDS"

_ENV_FIELDS = {
    "content_cache_capacity": CONTENT_CACHE_CAPACITY_ENV_VAR,
    "diff_cache_capacity": DIFF_CACHE_CAPACITY_ENV_VAR,
    "prefetch_parallel": PREFETCH_PARALLEL_ENV_VAR,
    "timeout_seconds": TIMEOUT_SECONDS_ENV_VAR,
}


class SessionConfig(BaseModel):
    """Tunables for one review session."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    content_cache_capacity: int = Field(default=DEFAULT_CONTENT_CACHE_CAPACITY)
    diff_cache_capacity: int = Field(default=DEFAULT_DIFF_CACHE_CAPACITY)
    prefetch_parallel: int = Field(default=DEFAULT_PREFETCH_PARALLEL, ge=1)
    timeout_seconds: float = Field(default=DEFAULT_TIMEOUT_SECONDS, gt=0)
    trust_env: bool = True


def load_session_config(**overrides: Any) -> SessionConfig:
    """Build session config from ``.env``, environment, and explicit overrides."""
    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)

    values: dict[str, Any] = {}
    for field_name, env_var in _ENV_FIELDS.items():
        raw_value = os.getenv(env_var)
        if raw_value is not None and raw_value.strip():
            values[field_name] = raw_value.strip()

    values.update({key: value for key, value in overrides.items() if value is not None})
    return SessionConfig.model_validate(values)
