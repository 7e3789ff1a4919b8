"""Interactive login through the frontend, for roles without a usable state.

Used by UI fixtures when the pre-authenticated state file for a role is the
sentinel (or missing). Slower than starting from a storage state and subject
to backend rate limiting, but keeps the tests runnable.
"""
from __future__ import annotations

import logging

from playwright.async_api import Page

from ui_tests.config import BootstrapConfig
from ui_tests.identities import Identity

logger = logging.getLogger(__name__)

LOGIN_BUTTON = 'button:has-text("Login"), button:has-text("Sign In"), [aria-label*="Login"]'
MOBILE_MENU = '[data-testid="mobile-menu"], button[aria-label*="menu"]'
MENU_LOGIN = 'button:has-text("Login"), a:has-text("Login")'
LOGIN_FORM = '[data-testid="login-form"], form'
LOGIN_INPUT = '[data-testid="login-input"], input[name="login"], input[type="email"]'
PASSWORD_INPUT = '[data-testid="password-input"], input[name="password"], input[type="password"]'
SUBMIT_BUTTON = '[data-testid="login-button"], button[type="submit"]'
LOGGED_IN_INDICATORS = (
    '[data-testid="user-menu"], [data-testid="user-avatar"], '
    'button:has-text("Logout"), button:has-text("Dashboard"), .user-menu, .user-avatar'
)


async def _visible(page: Page, selector: str, timeout: int = 3000) -> bool:
    try:
        return await page.locator(selector).first.is_visible(timeout=timeout)
    except Exception:
        return False


async def open_login_form(page: Page, config: BootstrapConfig) -> None:
    """Open the login form: header button, then mobile menu, then /login."""
    await page.goto(config.url("/"))
    await page.wait_for_load_state("domcontentloaded")

    if await _visible(page, LOGIN_BUTTON):
        await page.locator(LOGIN_BUTTON).first.click()
        return

    if await _visible(page, MOBILE_MENU, timeout=2000):
        await page.locator(MOBILE_MENU).first.click()
        if await _visible(page, MENU_LOGIN, timeout=2000):
            await page.locator(MENU_LOGIN).first.click()
            return

    await page.goto(config.url("/login"))
    await page.wait_for_load_state("domcontentloaded")


async def is_logged_in(page: Page) -> bool:
    return await _visible(page, LOGGED_IN_INDICATORS, timeout=5000)


async def interactive_login(page: Page, identity: Identity, config: BootstrapConfig) -> bool:
    """Log `identity` in through the UI.

    Returns:
        True if a logged-in indicator is visible afterwards
    """
    logger.info(f"[{identity.role}] no pre-authenticated state, logging in through the UI")
    await open_login_form(page, config)

    try:
        await page.locator(LOGIN_FORM).first.wait_for(state="visible", timeout=5000)
    except Exception:
        logger.debug(f"[{identity.role}] login form container not found, trying inputs directly")

    if not await _visible(page, LOGIN_INPUT):
        logger.warning(f"[{identity.role}] login input not found at {page.url}")
        return False
    await page.locator(LOGIN_INPUT).first.fill(identity.login)

    if not await _visible(page, PASSWORD_INPUT):
        logger.warning(f"[{identity.role}] password input not found at {page.url}")
        return False
    await page.locator(PASSWORD_INPUT).first.fill(identity.password)

    if not await _visible(page, SUBMIT_BUTTON):
        logger.warning(f"[{identity.role}] submit button not found at {page.url}")
        return False
    await page.locator(SUBMIT_BUTTON).first.click()
    await page.wait_for_load_state("networkidle")

    logged_in = await is_logged_in(page)
    if not logged_in:
        logger.warning(f"[{identity.role}] interactive login did not reach a logged-in page")
    return logged_in
