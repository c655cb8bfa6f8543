import time
from typing import Any, Callable, Dict, List, Sequence, Tuple
from urllib.parse import quote, urlparse

import requests

from .headers import build_headers
from .logging_utils import log_event


class UpstreamAttemptFailure(Exception):
    """A single candidate failed (bad status, unusable body, ...)."""


class AllEndpointsExhausted(Exception):
    def __init__(self, attempted: List[str]):
        super().__init__(f"all endpoints failed: {', '.join(attempted) or 'none'}")
        self.attempted = attempted


class EndpointCandidate:
    """One upstream URL template in an ordered fallback list.

    Templates may use ``{video_id}`` and ``{watch_url}`` (the URL-quoted
    canonical watch page, for oEmbed style endpoints).
    """

    def __init__(self, name: str, url_template: str, method: str = "GET"):
        self.name = name
        self.url_template = url_template
        self.method = method

    def url_for(self, video_id: str) -> str:
        watch_url = quote(f"https://www.youtube.com/watch?v={video_id}", safe="")
        return self.url_template.format(video_id=video_id, watch_url=watch_url)

    @property
    def host(self) -> str:
        return urlparse(self.url_template).hostname or ""

    def __repr__(self):
        return f"EndpointCandidate({self.name!r}, {self.url_template!r}, method={self.method!r})"


# attempt(candidate, headers, timeout) -> value; raising means "try the next one"
Attempt = Callable[[EndpointCandidate, Dict[str, str], float], Any]

RECOVERABLE_ERRORS = (requests.exceptions.RequestException, UpstreamAttemptFailure, ValueError)


def try_endpoints(candidates: Sequence[EndpointCandidate],
                  attempt: Attempt,
                  timeout: float,
                  header_factory: Callable[[], Dict[str, str]] = build_headers,
                  label: str = "fallback") -> Tuple[EndpointCandidate, Any]:
    """Try each candidate in order and return ``(candidate, value)`` for the first success.

    Calls are strictly sequential with no retries; a failure just moves on to
    the next candidate. Raises AllEndpointsExhausted when nothing succeeded.
    """
    attempted: List[str] = []
    for idx, candidate in enumerate(candidates):
        attempted.append(candidate.name)
        t0 = time.perf_counter()
        try:
            value = attempt(candidate, header_factory(), timeout)
        except RECOVERABLE_ERRORS as e:
            log_event('warning', f'{label}_attempt_failed', endpoint=candidate.name, attempt=idx + 1,
                      error_type=type(e).__name__, error=str(e),
                      duration_ms=int((time.perf_counter() - t0) * 1000))
            continue
        log_event('info', f'{label}_attempt_success', endpoint=candidate.name, attempt=idx + 1,
                  duration_ms=int((time.perf_counter() - t0) * 1000))
        return candidate, value

    log_event('warning', f'{label}_exhausted', attempted=attempted)
    raise AllEndpointsExhausted(attempted)


def expect_success(resp: requests.Response) -> requests.Response:
    """Treat anything outside 2xx as a failed attempt."""
    if not 200 <= resp.status_code < 300:
        raise UpstreamAttemptFailure(f"HTTP {resp.status_code}")
    return resp
