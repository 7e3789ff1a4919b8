import sys
import threading
from pathlib import Path
from typing import List

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from ui_tests.config import BootstrapConfig
from ui_tests.identities import IDENTITIES

from fakes import FakeBrowser


@pytest.fixture
def fake_browser():
    return FakeBrowser()


@pytest.fixture
def recorded_sleep():
    """Backoff sleep that records delays instead of waiting."""
    delays: List[float] = []

    async def _sleep(seconds: float) -> None:
        delays.append(seconds)

    _sleep.delays = delays
    return _sleep


@pytest.fixture
def config(tmp_path):
    """Bootstrap config pointing at a temporary state directory."""
    return BootstrapConfig(
        api_base_url="http://backend.test/api",
        frontend_url="http://localhost:3000",
        state_dir=tmp_path / "auth-states",
        identities=IDENTITIES,
    )


# ============================================================================
# Mock auth API server
# ============================================================================

@pytest.fixture(scope='function')
def mock_auth_server():
    """Fixture that provides a running mock authentication API."""
    from werkzeug.serving import make_server
    from ui_tests.mock_auth_api import MOCK_API_PREFIX, create_mock_auth_app, reset_mock_state

    class MockServer:
        def __init__(self, host='127.0.0.1'):
            self.host = host
            self.app = create_mock_auth_app()
            self.server = make_server(self.host, 0, self.app, threaded=True)
            self.port = self.server.server_port
            self.thread = None

        def start(self):
            self.thread = threading.Thread(target=self.server.serve_forever, daemon=True)
            self.thread.start()

        def stop(self):
            self.server.shutdown()
            if self.thread:
                self.thread.join(timeout=5)
            self.server.server_close()

        @property
        def api_base_url(self):
            return f"http://{self.host}:{self.port}{MOCK_API_PREFIX}"

    reset_mock_state()
    server = MockServer()
    server.start()

    yield server

    server.stop()
    reset_mock_state()
