"""Pre-authenticate the fixed test identities once per run.

For each identity the bootstrap logs in against the backend, translates the
session cookies, hydrates an isolated browser context, and writes the
resulting storage state to `<state_dir>/<role>.json`. Identities are
independent and run concurrently.

Every identity ends in exactly one terminal outcome:
- Success: an authenticated state file was written
- Degraded: the sentinel `{"cookies": [], "origins": []}` was written and
  the tests for that role fall back to interactive login

`run_bootstrap()` folds the outcomes into a `BootstrapReport` and never
raises; pre-authentication is an optimisation, not a precondition of the run.

Usage:
    python -m ui_tests.auth_setup
    python -m ui_tests.auth_setup --role admin --ci -v
"""
from __future__ import annotations

import argparse
import asyncio
import enum
import functools
import logging
import sys
from collections import Counter
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncContextManager, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

import anyio
import httpx
from playwright.async_api import BrowserContext, Error as PlaywrightError

from ui_tests.auth_state import (
    capture_state,
    hydrate_context,
    local_storage_entries,
    write_sentinel,
    write_state,
)
from ui_tests.config import BootstrapConfig, load_config
from ui_tests.cookie_translator import translate_set_cookies
from ui_tests.identities import Identity, select_identities
from ui_tests.playwright_client import PlaywrightClient
from ui_tests.session_acquirer import AcquireFailure, FailureKind, SessionAcquirer, SleepFunc

logger = logging.getLogger(__name__)

ContextFactory = Callable[[], AsyncContextManager[BrowserContext]]


class DegradedReason(str, enum.Enum):
    RATE_LIMITED = "rate_limited"
    AUTH_FAILED = "auth_failed"
    NETWORK = "network"
    BROWSER = "browser"
    FILESYSTEM = "filesystem"
    UNEXPECTED = "unexpected"


_FAILURE_REASONS: Dict[FailureKind, DegradedReason] = {
    FailureKind.RATE_LIMITED: DegradedReason.RATE_LIMITED,
    FailureKind.AUTH_FAILED: DegradedReason.AUTH_FAILED,
    FailureKind.NETWORK: DegradedReason.NETWORK,
}


@dataclass(frozen=True)
class Success:
    identity: Identity
    state_path: Path
    cookie_count: int
    local_storage_keys: Tuple[str, ...] = ()
    attempts: int = 1

    ok = True

    def describe(self) -> str:
        return (
            f"{self.identity.role}: ready ({self.cookie_count} cookies, "
            f"attempt {self.attempts}) -> {self.state_path}"
        )


@dataclass(frozen=True)
class Degraded:
    identity: Identity
    state_path: Path
    reason: DegradedReason
    detail: str
    sentinel_written: bool = True

    ok = False

    def describe(self) -> str:
        suffix = "" if self.sentinel_written else " [no state file written]"
        return f"{self.identity.role}: degraded ({self.reason.value}: {self.detail}){suffix}"


IdentityOutcome = Union[Success, Degraded]


@dataclass(frozen=True)
class BootstrapReport:
    """Per-identity outcomes of one bootstrap run, in registry order."""

    outcomes: Tuple[IdentityOutcome, ...] = ()

    def add(self, outcome: IdentityOutcome) -> "BootstrapReport":
        return BootstrapReport(self.outcomes + (outcome,))

    @property
    def succeeded(self) -> List[Success]:
        return [o for o in self.outcomes if isinstance(o, Success)]

    @property
    def degraded(self) -> List[Degraded]:
        return [o for o in self.outcomes if isinstance(o, Degraded)]

    @property
    def by_reason(self) -> Dict[DegradedReason, int]:
        return dict(Counter(o.reason for o in self.degraded))

    @property
    def all_ready(self) -> bool:
        return not self.degraded

    def outcome_for(self, role: str) -> IdentityOutcome:
        for outcome in self.outcomes:
            if outcome.identity.role == role:
                return outcome
        raise KeyError(role)

    def summary(self) -> str:
        line = f"Pre-authentication: {len(self.succeeded)}/{len(self.outcomes)} identities ready"
        if self.degraded:
            roles = ", ".join(f"{o.identity.role} ({o.reason.value})" for o in self.degraded)
            line += f"; degraded: {roles}"
        return line


def fold_outcomes(outcomes: Iterable[IdentityOutcome]) -> BootstrapReport:
    return functools.reduce(BootstrapReport.add, outcomes, BootstrapReport())


def ensure_state_dir(config: BootstrapConfig) -> Path:
    state_dir = Path(config.state_dir)
    state_dir.mkdir(parents=True, exist_ok=True)
    return state_dir


def degrade(identity: Identity, state_file: Path, reason: DegradedReason, detail: str) -> Degraded:
    """Write the sentinel for `identity` and record why."""
    logger.warning(
        f"[{identity.role}] pre-authentication unavailable ({reason.value}): {detail}. "
        f"Tests for {identity.login} will log in interactively."
    )
    try:
        write_sentinel(state_file)
    except OSError as exc:
        logger.error(f"[{identity.role}] could not write sentinel auth state {state_file}: {exc}")
        # never leave a previous run's session behind
        try:
            state_file.unlink(missing_ok=True)
        except OSError as unlink_exc:
            logger.error(f"[{identity.role}] stale auth state left at {state_file}: {unlink_exc}")
        return Degraded(identity, state_file, reason, detail, sentinel_written=False)
    return Degraded(identity, state_file, reason, detail)


def _check_reported_role(identity: Identity, body: dict) -> None:
    if not identity.expected_role:
        return
    user = body.get("user")
    role = user.get("role") if isinstance(user, dict) else None
    if role is not None and role != identity.expected_role:
        logger.warning(
            f"[{identity.role}] backend reports role {role!r} for {identity.login}, "
            f"expected {identity.expected_role!r}"
        )


async def bootstrap_identity(
    identity: Identity,
    config: BootstrapConfig,
    acquirer: SessionAcquirer,
    context_factory: ContextFactory,
) -> IdentityOutcome:
    """Run acquire -> translate -> hydrate -> persist for one identity."""
    state_file = config.state_path(identity.role)

    result = await acquirer.acquire(identity)
    if isinstance(result, AcquireFailure):
        return degrade(identity, state_file, _FAILURE_REASONS[result.kind], result.message)

    _check_reported_role(identity, result.body)
    cookies = translate_set_cookies(result.set_cookies, config.cookie_domain)
    local_storage = local_storage_entries(result.body)
    if not cookies:
        logger.warning(f"[{identity.role}] login succeeded but no Set-Cookie headers were returned")

    try:
        async with context_factory() as context:
            await hydrate_context(context, cookies, local_storage, config.frontend_origin)
            state = await capture_state(context)
    except PlaywrightError as exc:
        return degrade(identity, state_file, DegradedReason.BROWSER, str(exc))
    except ValueError as exc:
        return degrade(identity, state_file, DegradedReason.BROWSER, f"unusable storage state: {exc}")

    try:
        write_state(state_file, state)
    except OSError as exc:
        return degrade(identity, state_file, DegradedReason.FILESYSTEM, str(exc))

    logger.info(f"[{identity.role}] pre-authenticated {identity.login} ({len(state.cookies)} cookies) -> {state_file}")
    return Success(
        identity=identity,
        state_path=state_file,
        cookie_count=len(state.cookies),
        local_storage_keys=tuple(name for name, _ in local_storage),
        attempts=result.attempts,
    )


def _as_outcome(identity: Identity, config: BootstrapConfig, result: object) -> IdentityOutcome:
    if isinstance(result, (Success, Degraded)):
        return result
    if isinstance(result, Exception):
        logger.exception(f"[{identity.role}] unexpected bootstrap error", exc_info=result)
        return degrade(identity, config.state_path(identity.role), DegradedReason.UNEXPECTED, repr(result))
    raise result  # BaseException: interpreter shutdown, KeyboardInterrupt


async def _close_quietly(resource: object, name: str) -> None:
    try:
        if isinstance(resource, httpx.AsyncClient):
            await resource.aclose()
        elif isinstance(resource, PlaywrightClient):
            await resource.close()
    except Exception as e:
        logger.warning(f"Error closing {name}: {e}")


async def run_bootstrap(
    config: Optional[BootstrapConfig] = None,
    *,
    identities: Optional[Sequence[Identity]] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    context_factory: Optional[ContextFactory] = None,
    sleep: SleepFunc = anyio.sleep,
) -> BootstrapReport:
    """Pre-authenticate every identity and return the folded report.

    Args:
        config: Bootstrap configuration (defaults to the environment)
        identities: Identities to process (defaults to config.identities)
        http_client: Client for the login endpoint (one is created if None)
        context_factory: Yields isolated browser contexts (a headless
            browser is launched if None)
        sleep: Backoff sleep, injectable for tests

    Returns:
        BootstrapReport with one outcome per identity
    """
    config = config or load_config()
    identities = tuple(config.identities if identities is None else identities)

    try:
        ensure_state_dir(config)
    except OSError as exc:
        logger.error(f"Cannot create auth state directory {config.state_dir}: {exc}")
        return fold_outcomes(
            Degraded(i, config.state_path(i.role), DegradedReason.FILESYSTEM, str(exc), sentinel_written=False)
            for i in identities
        )

    owned: List[Tuple[object, str]] = []
    try:
        if http_client is None:
            http_client = httpx.AsyncClient(timeout=config.request_timeout)
            owned.append((http_client, "login HTTP client"))

        if context_factory is None:
            browser_client = PlaywrightClient(headless=config.headless)
            try:
                await browser_client.connect()
            except Exception as exc:  # also OSError when the driver is missing
                return fold_outcomes(
                    degrade(i, config.state_path(i.role), DegradedReason.BROWSER, f"browser unavailable: {exc}")
                    for i in identities
                )
            owned.append((browser_client, "browser"))
            context_factory = browser_client.isolated_context

        acquirer = SessionAcquirer(config, http_client, sleep=sleep)
        logger.info(
            f"Pre-authenticating {len(identities)} identities against {config.login_url} "
            f"(timeout={config.request_timeout}s, attempts={config.max_attempts}, ci={config.is_ci})"
        )
        results = await asyncio.gather(
            *(bootstrap_identity(i, config, acquirer, context_factory) for i in identities),
            return_exceptions=True,
        )
    finally:
        for resource, name in reversed(owned):
            await _close_quietly(resource, name)

    report = fold_outcomes(_as_outcome(i, config, r) for i, r in zip(identities, results))
    logger.info(report.summary())
    return report


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="e2e-auth-setup",
        description="Pre-authenticate E2E test identities and persist their browser storage state.",
    )
    parser.add_argument("--role", action="append", dest="roles", metavar="ROLE",
                        help="Only bootstrap this role (repeatable; default: all)")
    parser.add_argument("--state-dir", type=Path, help="Directory for <role>.json state files")
    parser.add_argument("--ci", action="store_true", help="Use the CI login timeout")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """CLI entry point; exit code is 0 even when identities degrade."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    overrides = {}
    if args.state_dir:
        overrides["state_dir"] = args.state_dir
    if args.ci:
        overrides["is_ci"] = True
    config = load_config(**overrides)

    try:
        identities = select_identities(args.roles, config.identities)
    except KeyError as exc:
        parser.error(str(exc))

    report = asyncio.run(run_bootstrap(config, identities=identities))
    for outcome in report.outcomes:
        print(("✓ " if outcome.ok else "⚠️  ") + outcome.describe())
    return 0


if __name__ == "__main__":
    sys.exit(main())
