"""
Authentication state files shared by every UI test in a run.

One JSON file per test identity, in Playwright storage-state format:

    {"cookies": [...], "origins": [{"origin": ..., "localStorage": [...]}]}

A file is always either a hydrated, authenticated state or the sentinel
`{"cookies": [], "origins": []}` meaning "pre-authentication unavailable,
log in interactively". Files are written via a temp file and an atomic
replace, so readers never observe a partial write.
"""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from playwright.async_api import BrowserContext, Route

from ui_tests.config import BootstrapConfig
from ui_tests.cookie_translator import BrowserCookie, build_cookie_header

logger = logging.getLogger(__name__)

BLANK_DOCUMENT = "<!doctype html><html><head><title>auth-setup</title></head><body></body></html>"

SET_LOCAL_STORAGE_JS = """
entries => {
    for (const [name, value] of entries) {
        window.localStorage.setItem(name, value);
    }
}
"""


@dataclass
class SessionState:
    """Serialized browsing context for one identity."""

    cookies: List[Dict[str, Any]] = field(default_factory=list)
    origins: List[Dict[str, Any]] = field(default_factory=list)

    @classmethod
    def sentinel(cls) -> "SessionState":
        return cls()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionState":
        if not isinstance(data, dict):
            raise ValueError("storage state must be a JSON object")
        cookies = data.get("cookies", [])
        origins = data.get("origins", [])
        if not isinstance(cookies, list) or not isinstance(origins, list):
            raise ValueError("storage state 'cookies' and 'origins' must be lists")
        return cls(cookies=list(cookies), origins=list(origins))

    def to_dict(self) -> Dict[str, Any]:
        return {"cookies": self.cookies, "origins": self.origins}

    @property
    def is_sentinel(self) -> bool:
        return not self.cookies and not self.origins

    def local_storage(self, origin: str) -> Dict[str, str]:
        for entry in self.origins:
            if entry.get("origin") == origin:
                return {item["name"]: item["value"] for item in entry.get("localStorage", [])}
        return {}


def local_storage_entries(body: Dict[str, Any]) -> List[Tuple[str, str]]:
    """Page-local entries the frontend expects after a login.

    The SPA keeps the CSRF token, a bearer `token` and a cached user record
    in localStorage. Missing keys are skipped; the order is stable.
    """
    entries: List[Tuple[str, str]] = []
    for key in ("csrfToken", "token"):
        value = body.get(key)
        if isinstance(value, str) and value:
            entries.append((key, value))
    user = body.get("user")
    if user:
        entries.append(("user", json.dumps(user, separators=(",", ":"))))
    return entries


async def _serve_blank(route: Route) -> None:
    await route.fulfill(status=200, content_type="text/html", body=BLANK_DOCUMENT)


async def hydrate_context(
    context: BrowserContext,
    cookies: List[BrowserCookie],
    local_storage: List[Tuple[str, str]],
    origin: str,
) -> None:
    """Load cookies and localStorage entries into a fresh browser context.

    localStorage is origin-scoped, so a page has to be on `origin` to write
    it. Requests to the origin are answered locally with a blank document;
    the frontend does not need to be running.
    """
    if cookies:
        await context.add_cookies(cookies)

    if not local_storage:
        return

    page = await context.new_page()
    try:
        await page.route(f"{origin}/**", _serve_blank)
        await page.goto(f"{origin}/")
        await page.evaluate(SET_LOCAL_STORAGE_JS, [list(entry) for entry in local_storage])
    finally:
        await page.close()


def _write_atomic(state_file: Path, payload: Dict[str, Any]) -> None:
    """Write to a sibling temp file, then rename over the target."""
    temp_file = state_file.with_name(f".{state_file.name}.{os.getpid()}.tmp")
    try:
        with open(temp_file, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2)
            f.flush()
            os.fsync(f.fileno())
        temp_file.replace(state_file)
    except OSError:
        if temp_file.exists():
            temp_file.unlink()
        raise


def write_state(state_file: Path, state: SessionState) -> Path:
    _write_atomic(state_file, state.to_dict())
    logger.debug(f"Saved auth state to: {state_file}")
    return state_file


def write_sentinel(state_file: Path) -> Path:
    """Persist the explicit "authentication unavailable" state."""
    write_state(state_file, SessionState.sentinel())
    logger.debug(f"Wrote sentinel auth state: {state_file}")
    return state_file


async def capture_state(context: BrowserContext) -> SessionState:
    """Serialize a hydrated context (cookies + localStorage per origin)."""
    return SessionState.from_dict(await context.storage_state())


# ---- consumer side ----------------------------------------------------------

def load_session_state(state_file: Path) -> Optional[SessionState]:
    """Load a state file; None when it is missing or unreadable."""
    if not state_file.exists():
        return None
    try:
        with open(state_file, encoding="utf-8") as f:
            return SessionState.from_dict(json.load(f))
    except (OSError, ValueError) as exc:
        logger.warning(f"Ignoring unreadable auth state {state_file}: {exc}")
        return None


def storage_state_for(role: str, config: BootstrapConfig) -> Optional[str]:
    """Path to pass as `storage_state=` for `role`, or None to log in live.

    None covers both "no file" and "sentinel file"; in either case the test
    has to fall back to the interactive login flow.
    """
    state_file = config.state_path(role)
    state = load_session_state(state_file)
    if state is None or state.is_sentinel:
        return None
    return str(state_file)


def clear_auth_state(role: str, config: BootstrapConfig) -> None:
    """Delete the saved state for `role`."""
    state_file = config.state_path(role)
    if state_file.exists():
        state_file.unlink()
        logger.info(f"Cleared auth state: {state_file}")


def cookie_header_for(role: str, config: BootstrapConfig) -> Optional[str]:
    """`Cookie:` header for direct API calls as `role`; None without a session."""
    state = load_session_state(config.state_path(role))
    if state is None or not state.cookies:
        return None
    return build_cookie_header(state.cookies)
