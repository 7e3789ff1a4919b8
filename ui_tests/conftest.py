import asyncio
import logging
import sys
from pathlib import Path

import httpx
import pytest
import pytest_asyncio
from playwright.async_api import Error as PlaywrightError

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from ui_tests.auth_setup import BootstrapReport, run_bootstrap
from ui_tests.auth_state import cookie_header_for, storage_state_for
from ui_tests.config import BootstrapConfig, settings, skip_auth_setup
from ui_tests.identities import get_identity
from ui_tests.login_flow import interactive_login
from ui_tests.playwright_client import PlaywrightClient

logger = logging.getLogger(__name__)


@pytest.fixture(scope="session")
def bootstrap_config() -> BootstrapConfig:
    """Configuration shared by the bootstrap and every UI fixture."""
    return settings


@pytest.fixture(scope="session", autouse=True)
def preauthenticated_states(bootstrap_config):
    """Pre-authenticate every identity once, before any UI test runs.

    Never fails the session: roles that could not be pre-authenticated get
    the sentinel state and log in interactively instead.

    Set E2E_SKIP_AUTH_SETUP=true to reuse the state files of a previous run.
    """
    if skip_auth_setup():
        logger.info("E2E_SKIP_AUTH_SETUP set, reusing existing auth state files")
        return None

    report: BootstrapReport = asyncio.run(run_bootstrap(bootstrap_config))
    for outcome in report.degraded:
        logger.warning(f"Interactive login fallback for {outcome.identity.role}: {outcome.reason.value}")
    return report


@pytest_asyncio.fixture()
async def playwright_client(bootstrap_config):
    """Create a Playwright client instance."""
    client = PlaywrightClient(headless=bootstrap_config.headless, base_url=bootstrap_config.frontend_origin)
    try:
        await client.connect()
    except PlaywrightError as e:
        pytest.skip(f"Playwright browser not available: {e}")
    try:
        yield client
    finally:
        await client.close()


@pytest_asyncio.fixture()
async def authenticated_page(playwright_client, bootstrap_config):
    """Factory returning a logged-in page for a role.

    Starts from the role's pre-authenticated state file when it holds a
    session; otherwise falls back to logging in through the UI.

    Usage:
        async def test_dashboard(authenticated_page):
            page = await authenticated_page("admin")
    """
    contexts = []

    async def _open(role: str):
        identity = get_identity(role, bootstrap_config.identities)
        state = storage_state_for(role, bootstrap_config)
        context = await playwright_client.new_context(storage_state=state)
        contexts.append(context)
        page = await context.new_page()

        try:
            if state is None:
                logged_in = await interactive_login(page, identity, bootstrap_config)
            else:
                await page.goto(bootstrap_config.url("/"))
                logged_in = True
        except PlaywrightError as e:
            pytest.skip(f"Frontend not reachable at {bootstrap_config.frontend_origin}: {e}")
        if not logged_in:
            pytest.skip(f"Interactive login for {role} failed")
        return page

    yield _open

    for context in contexts:
        try:
            await context.close()
        except PlaywrightError as e:
            logger.warning(f"Error closing context: {e}")


@pytest_asyncio.fixture()
async def api_client(bootstrap_config):
    """Factory returning an httpx client that sends `role`'s session cookies.

    Usage:
        async def test_me(api_client):
            client = await api_client("admin")
            response = await client.get("/auth/me")
    """
    clients = []

    async def _open(role: str) -> httpx.AsyncClient:
        cookie_header = cookie_header_for(role, bootstrap_config)
        if cookie_header is None:
            pytest.skip(f"No pre-authenticated session for {role}")
        client = httpx.AsyncClient(
            base_url=bootstrap_config.api_base_url,
            headers={"Cookie": cookie_header},
            timeout=bootstrap_config.request_timeout,
        )
        clients.append(client)
        return client

    yield _open

    for client in clients:
        await client.aclose()
