"""Translate wire-format Set-Cookie headers into Playwright cookie records.

The backend sets its cookies for its own host; the browser under test talks
to the frontend on the local test host, so domain/path/secure/sameSite are
pinned to values the local context accepts. Only the name, value and the
HttpOnly flag come from the header.
"""
from __future__ import annotations

from typing import Iterable, List, Literal, Optional, TypedDict


class BrowserCookie(TypedDict):
    """Cookie shape accepted by BrowserContext.add_cookies()."""
    name: str
    value: str
    domain: str
    path: str
    httpOnly: bool
    secure: bool
    sameSite: Literal["Strict", "Lax", "None"]


def translate_set_cookie(header: str, domain: str = "localhost") -> Optional[BrowserCookie]:
    """Translate one Set-Cookie header; returns None for entries without a name."""
    parts = header.split(";")
    name, _, value = parts[0].partition("=")
    name = name.strip()
    if not name:
        return None

    attributes = {part.strip().lower() for part in parts[1:]}
    return BrowserCookie(
        name=name,
        value=value.strip(),
        domain=domain,
        path="/",
        httpOnly="httponly" in attributes,
        secure=False,
        sameSite="Lax",
    )


def translate_set_cookies(headers: Iterable[str] | None, domain: str = "localhost") -> List[BrowserCookie]:
    """Translate every Set-Cookie header, preserving order."""
    cookies: List[BrowserCookie] = []
    for header in headers or ():
        cookie = translate_set_cookie(header, domain)
        if cookie is not None:
            cookies.append(cookie)
    return cookies


def build_cookie_header(cookies: Iterable[BrowserCookie]) -> str:
    """Render cookies as a `Cookie:` request header for direct API calls."""
    return "; ".join(f"{c['name']}={c['value']}" for c in cookies)
