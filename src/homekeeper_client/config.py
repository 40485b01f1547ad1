"""Environment-driven defaults for the HomeKeeper clients."""

from __future__ import annotations

import os
from typing import Mapping


PRODUCTION_BASE_URL = "https://homekeeper-api.tomseph.dev"
DEVELOPMENT_BASE_URL = "http://localhost:4000"

BASE_URL_ENV_VAR = "API_BASE_URL"
ENVIRONMENT_ENV_VAR = "HOMEKEEPER_ENV"
EMAIL_ENV_VAR = "HOMEKEEPER_EMAIL"
PASSWORD_ENV_VAR = "HOMEKEEPER_PASSWORD"

DEFAULT_TIMEOUT = 30.0
USER_AGENT = "homekeeper-client/0.1.0"


def is_production(environ: Mapping[str, str] | None = None) -> bool:
    env = os.environ if environ is None else environ
    return env.get(ENVIRONMENT_ENV_VAR, "").strip().lower() in {"production", "prod"}


def resolve_base_url(
    base_url: str | None = None,
    *,
    environ: Mapping[str, str] | None = None,
    base_url_env_var: str = BASE_URL_ENV_VAR,
) -> str:
    """Pick the API base URL: explicit argument, then the environment, then the default."""
    env = os.environ if environ is None else environ
    resolved = base_url or env.get(base_url_env_var)
    if not resolved:
        resolved = PRODUCTION_BASE_URL if is_production(env) else DEVELOPMENT_BASE_URL
    return resolved.rstrip("/")
