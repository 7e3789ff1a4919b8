"""Authenticate one test identity against the backend login endpoint.

Each identity gets a bounded number of attempts, driven by tenacity. After
failed attempt N the acquirer sleeps `base_delay * N` seconds before trying
again, so the delay preceding each retry grows strictly. Exhausting the
attempts is reported as an `AcquireFailure` value; nothing is raised past
`acquire()` and nothing is written to disk here.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Union

import anyio
import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from ui_tests.config import BootstrapConfig
from ui_tests.identities import Identity

logger = logging.getLogger(__name__)

SleepFunc = Callable[[float], Awaitable[Any]]

RATE_LIMIT_MARKERS = ("too many", "rate limit")


class FailureKind(str, enum.Enum):
    RATE_LIMITED = "rate_limited"
    AUTH_FAILED = "auth_failed"
    NETWORK = "network"


class LoginAttemptError(Exception):
    """Raised inside the acquirer for one failed attempt."""
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


@dataclass
class LoginResponse:
    """Raw successful login response."""
    status_code: int
    set_cookies: List[str]
    body: Dict[str, Any] = field(default_factory=dict)
    attempts: int = 1


@dataclass
class AcquireFailure:
    """All attempts exhausted."""
    kind: FailureKind
    message: str
    attempts: int
    status_code: int | None = None


AcquireResult = Union[LoginResponse, AcquireFailure]


def is_rate_limited(message: str) -> bool:
    lowered = message.lower()
    return any(marker in lowered for marker in RATE_LIMIT_MARKERS)


def classify_failure(error: LoginAttemptError) -> FailureKind:
    """Classify for diagnostics only; retry policy never depends on it."""
    if is_rate_limited(error.message):
        return FailureKind.RATE_LIMITED
    if error.status_code is None:
        return FailureKind.NETWORK
    return FailureKind.AUTH_FAILED


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        data = None
    if isinstance(data, dict):
        message = data.get("error") or data.get("message")
        if isinstance(message, str) and message:
            return message
    text = response.text.strip()
    return text or response.reason_phrase or f"HTTP {response.status_code}"


def _success_body(response: httpx.Response) -> Dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        logger.warning("Login succeeded but response body is not JSON")
        return {}
    if not isinstance(data, dict):
        logger.warning("Login succeeded but response body is not a JSON object")
        return {}
    return data


class SessionAcquirer:
    """Performs the login handshake with retry and increasing backoff.

    Usage:
        async with httpx.AsyncClient() as client:
            acquirer = SessionAcquirer(config, client)
            result = await acquirer.acquire(identity)
    """

    def __init__(
        self,
        config: BootstrapConfig,
        client: httpx.AsyncClient,
        sleep: SleepFunc = anyio.sleep,
    ):
        self.config = config
        self.client = client
        self._sleep = sleep

    async def _attempt(self, identity: Identity) -> LoginResponse:
        try:
            response = await self.client.post(
                self.config.login_url,
                json={"login": identity.login, "password": identity.password},
                headers={"Content-Type": "application/json"},
                timeout=self.config.request_timeout,
            )
        except httpx.TimeoutException as exc:
            raise LoginAttemptError(f"Login request timed out after {self.config.request_timeout}s: {exc}") from exc
        except httpx.HTTPError as exc:
            raise LoginAttemptError(f"Login request failed: {exc}") from exc
        except (httpx.InvalidURL, ValueError) as exc:
            raise LoginAttemptError(f"Invalid login URL {self.config.login_url!r}: {exc}") from exc

        if not response.is_success:
            raise LoginAttemptError(_error_message(response), response.status_code)

        return LoginResponse(
            status_code=response.status_code,
            set_cookies=response.headers.get_list("set-cookie"),
            body=_success_body(response),
        )

    def _retrying(self) -> AsyncRetrying:
        base_delay = self.config.base_delay
        return AsyncRetrying(
            stop=stop_after_attempt(self.config.max_attempts),
            wait=wait_incrementing(start=base_delay, increment=base_delay),
            retry=retry_if_exception_type(LoginAttemptError),
            before_sleep=before_sleep_log(logger, logging.INFO),
            sleep=self._sleep,
            reraise=True,
        )

    async def acquire(self, identity: Identity) -> AcquireResult:
        """Log in `identity`, retrying up to `config.max_attempts` times."""
        max_attempts = self.config.max_attempts
        try:
            async for attempt in self._retrying():
                with attempt:
                    number = attempt.retry_state.attempt_number
                    logger.debug(f"[{identity.role}] login attempt {number}/{max_attempts} -> {self.config.login_url}")
                    response = await self._attempt(identity)
                    response.attempts = number
        except LoginAttemptError as exc:
            return self._failure(identity, exc)

        logger.debug(f"[{identity.role}] login succeeded on attempt {response.attempts} (HTTP {response.status_code})")
        return response

    def _failure(self, identity: Identity, error: LoginAttemptError) -> AcquireFailure:
        max_attempts = self.config.max_attempts
        kind = classify_failure(error)
        if kind is FailureKind.RATE_LIMITED:
            logger.warning(f"[{identity.role}] login rate limited after {max_attempts} attempts: {error.message}")
        else:
            logger.warning(
                f"[{identity.role}] login failed after {max_attempts} attempts ({kind.value}): {error.message}"
            )
        return AcquireFailure(
            kind=kind,
            message=error.message,
            attempts=max_attempts,
            status_code=error.status_code,
        )
