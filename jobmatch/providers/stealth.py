"""Browser-like request headers for the session scraping provider."""

from __future__ import annotations

import random

USER_AGENTS = [
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.0 Safari/605.1.15",
]

_BASE_HEADERS = {
    "Accept": (
        "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,"
        "image/webp,image/apng,*/*;q=0.8,application/signed-exchange;v=b3;q=0.7"
    ),
    "Accept-Language": "en-US,en;q=0.9",
    "Accept-Encoding": "gzip, deflate, br",
    "DNT": "1",
    "Connection": "keep-alive",
    "Upgrade-Insecure-Requests": "1",
    "Sec-Fetch-Dest": "document",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-User": "?1",
    "Cache-Control": "max-age=0",
    "sec-ch-ua": '"Not_A Brand";v="8", "Chromium";v="120", "Google Chrome";v="120"',
    "sec-ch-ua-mobile": "?0",
    "sec-ch-ua-platform": '"macOS"',
}


def pick_user_agent(rng: random.Random | None = None) -> str:
    return (rng or random).choice(USER_AGENTS)


def browser_headers(
    base_url: str,
    cookie_name: str,
    cookie_value: str,
    user_agent: str,
    url: str | None = None,
    referer: str | None = None,
) -> dict[str, str]:
    """Headers for one navigation. A referer marks the request as same-origin."""
    headers = dict(_BASE_HEADERS)
    headers["Cookie"] = f"{cookie_name}={cookie_value}"
    headers["User-Agent"] = user_agent
    headers["Sec-Fetch-Site"] = "same-origin" if referer else "none"

    if referer:
        headers["Referer"] = referer
    elif url:
        headers["Referer"] = base_url.rstrip("/") + "/"

    if url and url.startswith(base_url):
        headers["Origin"] = base_url.rstrip("/")

    return headers
