"""Mock authentication API for exercising the pre-auth bootstrap.

Implements the backend login contract the bootstrap relies on:
- POST /api/auth/login  {login, password}
    200 -> {user, csrfToken} with HttpOnly session cookies
    4xx -> {error: "..."}
- GET  /api/auth/me  -> current user for a valid auth-token cookie

Failures can be scripted per login (e.g. three 429 responses in a row) to
reproduce rate limiting and flaky networks without touching a real backend.
"""
from __future__ import annotations

import argparse
import secrets
from typing import Any, Dict, List, Tuple

from flask import Flask, jsonify, request

from ui_tests.identities import IDENTITIES

MOCK_API_PREFIX = "/api"

# login -> {password, user}
ACCOUNTS: Dict[str, Dict[str, Any]] = {}
# auth-token -> login
SESSIONS: Dict[str, str] = {}
# login -> queued (status, body) responses served before normal handling
SCRIPTED_FAILURES: Dict[str, List[Tuple[int, Dict[str, Any]]]] = {}
# login -> (status, body) served on every request
BLOCKED_LOGINS: Dict[str, Tuple[int, Dict[str, Any]]] = {}
# every login attempt, in arrival order
REQUEST_LOG: List[str] = []


def _seed_accounts() -> None:
    for index, identity in enumerate(IDENTITIES, start=1):
        ACCOUNTS[identity.login] = {
            "password": identity.password,
            "user": {
                "id": f"mock-{identity.role}-id-{index:05d}",
                "email": identity.login,
                "pseudonym": f"test{identity.role}",
                "role": identity.expected_role or "user",
            },
        }


def reset_mock_state() -> None:
    """Reset accounts, sessions, scripted failures and the request log."""
    ACCOUNTS.clear()
    SESSIONS.clear()
    SCRIPTED_FAILURES.clear()
    BLOCKED_LOGINS.clear()
    REQUEST_LOG.clear()
    _seed_accounts()


def queue_failure(login: str, status: int = 429, error: str = "Too many requests", times: int = 1) -> None:
    """Fail the next `times` login attempts for `login`."""
    SCRIPTED_FAILURES.setdefault(login, []).extend([(status, {"error": error})] * times)


def block_login(login: str, status: int = 503, error: str = "Service unavailable") -> None:
    """Fail every login attempt for `login`."""
    BLOCKED_LOGINS[login] = (status, {"error": error})


def attempts_for(login: str) -> int:
    return REQUEST_LOG.count(login)


def create_mock_auth_app() -> Flask:
    """Create and configure the mock authentication Flask app."""
    app = Flask(__name__)
    app.config['TESTING'] = True

    if not ACCOUNTS:
        _seed_accounts()

    @app.route(f'{MOCK_API_PREFIX}/auth/login', methods=['POST'])
    def login():
        data = request.get_json(silent=True) or {}
        login_name = data.get('login')
        password = data.get('password')

        if not isinstance(login_name, str) or not isinstance(password, str) or not login_name or not password:
            return jsonify({"error": "Login and password are required"}), 400

        REQUEST_LOG.append(login_name)

        if login_name in BLOCKED_LOGINS:
            status, body = BLOCKED_LOGINS[login_name]
            return jsonify(body), status

        queued = SCRIPTED_FAILURES.get(login_name)
        if queued:
            status, body = queued.pop(0)
            return jsonify(body), status

        account = ACCOUNTS.get(login_name)
        if account is None or account['password'] != password:
            return jsonify({"error": "Invalid credentials"}), 401

        token = secrets.token_hex(16)
        SESSIONS[token] = login_name

        response = jsonify({
            "message": "Login successful",
            "user": account['user'],
            "csrfToken": secrets.token_urlsafe(24),
        })
        response.set_cookie('auth-token', token, httponly=True, samesite='Lax', path='/')
        response.set_cookie('refresh-token', secrets.token_hex(16), httponly=True, samesite='Lax', path='/')
        return response, 200

    @app.route(f'{MOCK_API_PREFIX}/auth/me', methods=['GET'])
    def me():
        login_name = SESSIONS.get(request.cookies.get('auth-token', ''))
        if login_name is None:
            return jsonify({"error": "Not authenticated"}), 401
        return jsonify({"user": ACCOUNTS[login_name]['user']}), 200

    return app


def main() -> None:
    parser = argparse.ArgumentParser(description="Serve the mock authentication API")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8080)
    args = parser.parse_args()

    reset_mock_state()
    app = create_mock_auth_app()
    print(f"Mock auth API running on http://{args.host}:{args.port}{MOCK_API_PREFIX}")
    print("Accounts: " + ", ".join(sorted(ACCOUNTS)))
    app.run(host=args.host, port=args.port, debug=False)


if __name__ == '__main__':
    main()
