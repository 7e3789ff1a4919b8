"""Shared configuration for the pre-authentication bootstrap and UI tests.

Values are resolved in this order:
- explicit keyword arguments to `load_config()`
- process environment
- `.env.defaults` at the repository root
- the constants below

Set CI=true to select the longer per-attempt login timeout.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Mapping, Tuple
from urllib.parse import urljoin

from ui_tests.env_defaults import REPO_ROOT, get_env_default
from ui_tests.identities import IDENTITIES, Identity, with_env_overrides

DEFAULT_API_BASE_URL = "http://localhost:8080/api"
DEFAULT_FRONTEND_URL = "http://localhost:3000"
DEFAULT_COOKIE_DOMAIN = "localhost"
DEFAULT_STATE_DIR = REPO_ROOT / "tmp" / "auth-states"
LOGIN_PATH = "/auth/login"

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY_SECONDS = 2.0
DEFAULT_TIMEOUT_SECONDS = 10.0
DEFAULT_CI_TIMEOUT_SECONDS = 30.0


def _truthy(value: str | None) -> bool:
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class BootstrapConfig:
    """Everything the bootstrap needs, injected rather than read globally."""

    api_base_url: str = DEFAULT_API_BASE_URL
    frontend_url: str = DEFAULT_FRONTEND_URL
    cookie_domain: str = DEFAULT_COOKIE_DOMAIN
    state_dir: Path = DEFAULT_STATE_DIR
    identities: Tuple[Identity, ...] = IDENTITIES
    is_ci: bool = False
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    base_delay: float = DEFAULT_BASE_DELAY_SECONDS
    local_timeout: float = DEFAULT_TIMEOUT_SECONDS
    ci_timeout: float = DEFAULT_CI_TIMEOUT_SECONDS
    headless: bool = True

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay <= 0:
            raise ValueError("base_delay must be > 0")

    @property
    def request_timeout(self) -> float:
        """Per-attempt timeout; CI runners get the longer budget."""
        return self.ci_timeout if self.is_ci else self.local_timeout

    @property
    def login_url(self) -> str:
        return self.api_base_url.rstrip("/") + LOGIN_PATH

    @property
    def frontend_origin(self) -> str:
        return self.frontend_url.rstrip("/")

    def state_path(self, role: str) -> Path:
        """Fixed state-file location for one identity."""
        return Path(self.state_dir) / f"{role}.json"

    def url(self, path: str) -> str:
        """Return an absolute frontend URL for the provided path."""
        return urljoin(self.frontend_origin + "/", path.lstrip("/"))

    def with_overrides(self, **changes: Any) -> "BootstrapConfig":
        return replace(self, **changes)


def _lookup(environ: Mapping[str, str], key: str) -> str | None:
    value = environ.get(key)
    if value is None or not value.strip():
        value = get_env_default(key)
    return value.strip() if value else None


def _float(environ: Mapping[str, str], key: str, default: float) -> float:
    raw = _lookup(environ, key)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def _int(environ: Mapping[str, str], key: str, default: int) -> int:
    raw = _lookup(environ, key)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value >= 1 else default


def load_config(environ: Mapping[str, str] | None = None, **overrides: Any) -> BootstrapConfig:
    """Build a `BootstrapConfig` from the environment.

    Args:
        environ: Mapping to read instead of os.environ (tests pass a dict)
        **overrides: Field values that take precedence over everything else

    Returns:
        Frozen configuration instance
    """
    env = os.environ if environ is None else environ

    state_dir_raw = _lookup(env, "E2E_AUTH_STATE_DIR")
    state_dir = Path(state_dir_raw) if state_dir_raw else DEFAULT_STATE_DIR
    if not state_dir.is_absolute():
        state_dir = REPO_ROOT / state_dir

    headless_raw = _lookup(env, "PLAYWRIGHT_HEADLESS") or "true"

    config = BootstrapConfig(
        api_base_url=(_lookup(env, "E2E_API_BASE_URL") or DEFAULT_API_BASE_URL).rstrip("/"),
        frontend_url=(_lookup(env, "E2E_FRONTEND_URL") or DEFAULT_FRONTEND_URL).rstrip("/"),
        cookie_domain=_lookup(env, "E2E_COOKIE_DOMAIN") or DEFAULT_COOKIE_DOMAIN,
        state_dir=state_dir,
        identities=with_env_overrides(IDENTITIES, env),
        is_ci=_truthy(env.get("CI")),
        max_attempts=_int(env, "E2E_LOGIN_MAX_ATTEMPTS", DEFAULT_MAX_ATTEMPTS),
        base_delay=_float(env, "E2E_LOGIN_BASE_DELAY", DEFAULT_BASE_DELAY_SECONDS),
        local_timeout=_float(env, "E2E_LOGIN_TIMEOUT", DEFAULT_TIMEOUT_SECONDS),
        ci_timeout=_float(env, "E2E_LOGIN_TIMEOUT_CI", DEFAULT_CI_TIMEOUT_SECONDS),
        headless=headless_raw.lower() in {"true", "1"},
    )
    if overrides:
        config = config.with_overrides(**overrides)
    return config


def skip_auth_setup(environ: Mapping[str, str] | None = None) -> bool:
    env = os.environ if environ is None else environ
    return _truthy(env.get("E2E_SKIP_AUTH_SETUP"))


# Singleton instance - initialized on first import
settings = load_config()
