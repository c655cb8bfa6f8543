import random
from typing import Dict, List, Optional

_CHROMIUM_BRANDS = '"Chromium";v="125", "Google Chrome";v="125", "Not.A/Brand";v="24"'


def _client_hints(brands: str, platform: str) -> Dict[str, str]:
    return {
        "Sec-CH-UA": brands,
        "Sec-CH-UA-Mobile": "?0",
        "Sec-CH-UA-Platform": f'"{platform}"',
    }


class BrowserProfile:
    """A User-Agent together with the client hints that browser really sends."""

    def __init__(self, user_agent: str, client_hints: Optional[Dict[str, str]] = None):
        self.user_agent = user_agent
        self.client_hints = dict(client_hints or {})


# Realistic desktop browsers; one is picked per outbound call. Firefox and
# Safari do not send Sec-CH-UA at all.
BROWSER_PROFILES: List[BrowserProfile] = [
    # Chrome on Windows
    BrowserProfile(
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/125.0.0.0 Safari/537.36",
        _client_hints(_CHROMIUM_BRANDS, "Windows"),
    ),
    # Chrome on macOS
    BrowserProfile(
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/125.0.0.0 Safari/537.36",
        _client_hints(_CHROMIUM_BRANDS, "macOS"),
    ),
    # Chrome on Linux
    BrowserProfile(
        "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/125.0.0.0 Safari/537.36",
        _client_hints(_CHROMIUM_BRANDS, "Linux"),
    ),
    # Firefox on Windows
    BrowserProfile("Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:126.0) Gecko/20100101 Firefox/126.0"),
    # Safari on macOS
    BrowserProfile(
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.5 Safari/605.1.15"
    ),
    # Edge on Windows
    BrowserProfile(
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/125.0.0.0 Safari/537.36 Edg/125.0.0.0",
        _client_hints('"Microsoft Edge";v="125", "Chromium";v="125", "Not.A/Brand";v="24"', "Windows"),
    ),
]

USER_AGENTS = [p.user_agent for p in BROWSER_PROFILES]

FINGERPRINT_HEADER = "X-Session-Token"
FINGERPRINT_BYTES = 16

STATIC_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "ja-JP,ja;q=0.9,en;q=0.8",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
    "DNT": "1",
    "Sec-Fetch-Dest": "empty",
    "Sec-Fetch-Mode": "cors",
    "Sec-Fetch-Site": "cross-site",
}

_system_random = random.SystemRandom()


def fingerprint_token(rng=None) -> str:
    """Return a random 16-byte token, hex encoded."""
    rng = rng or _system_random
    return format(rng.getrandbits(FINGERPRINT_BYTES * 8), f"0{FINGERPRINT_BYTES * 2}x")


def build_headers(rng=None) -> Dict[str, str]:
    """Build a fresh browser-like header set for a single outbound call.

    ``rng`` only needs ``choice`` and ``getrandbits``; pass a seeded
    ``random.Random`` to make the output reproducible.
    """
    rng = rng or _system_random
    headers = dict(STATIC_HEADERS)
    profile = rng.choice(BROWSER_PROFILES)
    headers.update(profile.client_hints)
    headers["User-Agent"] = profile.user_agent
    headers[FINGERPRINT_HEADER] = fingerprint_token(rng)
    return headers
