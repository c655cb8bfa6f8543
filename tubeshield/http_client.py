from http.cookiejar import DefaultCookiePolicy

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from . import config


class RejectAllCookies(DefaultCookiePolicy):
    """Upstream cookies are never stored, so nothing leaks between unrelated requests."""

    def set_ok(self, cookie, request):
        return False


def build_http_session() -> requests.Session:
    """Shared outbound session.

    Retries are disabled: the fallback lists already decide what to try next,
    and every call site passes its own timeout.
    """
    session = requests.Session()
    retry = Retry(total=0, raise_on_status=False)
    adapter = HTTPAdapter(
        pool_connections=config.HTTP_POOL_CONNECTIONS,
        pool_maxsize=config.HTTP_POOL_MAXSIZE,
        max_retries=retry,
    )
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    session.max_redirects = config.MAX_REDIRECTS
    session.cookies.set_policy(RejectAllCookies())
    return session
