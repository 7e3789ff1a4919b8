"""Fixed test identities that are pre-authenticated once per run.

The accounts are provisioned on the backend by the test-account setup
script; only the credentials live here. Each role gets exactly one state
file, named after the role.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import Iterable, Mapping, Tuple

DEFAULT_TEST_PASSWORD = "SecureTestP@ssw0rd2024!"


@dataclass(frozen=True)
class Identity:
    """A named test role with fixed credentials."""

    role: str
    login: str
    password: str
    expected_role: str | None = None

    def __repr__(self) -> str:
        return f"Identity(role={self.role!r}, login={self.login!r})"


IDENTITIES: Tuple[Identity, ...] = (
    Identity(role="admin", login="admin@test.com", password=DEFAULT_TEST_PASSWORD, expected_role="admin"),
    Identity(role="owner", login="owner@test.com", password=DEFAULT_TEST_PASSWORD, expected_role="user"),
)


def with_env_overrides(
    identities: Iterable[Identity],
    environ: Mapping[str, str] | None = None,
) -> Tuple[Identity, ...]:
    """Apply E2E_<ROLE>_LOGIN / E2E_<ROLE>_PASSWORD overrides.

    CI injects real credentials through secrets; locally the registry
    values are used as-is.
    """
    env = os.environ if environ is None else environ
    resolved = []
    for identity in identities:
        prefix = f"E2E_{identity.role.upper()}"
        login = (env.get(f"{prefix}_LOGIN") or "").strip() or identity.login
        password = env.get(f"{prefix}_PASSWORD") or identity.password
        resolved.append(replace(identity, login=login, password=password))
    return tuple(resolved)


def get_identity(role: str, identities: Iterable[Identity] = IDENTITIES) -> Identity:
    for identity in identities:
        if identity.role == role:
            return identity
    known = ", ".join(i.role for i in identities)
    raise KeyError(f"Unknown test identity role: {role!r} (known: {known})")


def select_identities(
    roles: Iterable[str] | None,
    identities: Iterable[Identity] = IDENTITIES,
) -> Tuple[Identity, ...]:
    """Return the identities for `roles` in registry order (all when None)."""
    identities = tuple(identities)
    if not roles:
        return identities
    wanted = list(dict.fromkeys(roles))
    for role in wanted:
        get_identity(role, identities)
    return tuple(i for i in identities if i.role in wanted)
