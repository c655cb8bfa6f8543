"""
Reverse proxy for the YouTube video/image hosts.

Every request under ``/api/proxy/<token>/`` is forwarded to the single
upstream host registered for ``<token>``. Client identity headers are dropped
and replaced with a synthesized browser header set; upstream cookies and
diagnostic headers never reach the client, and a fixed set of privacy headers
is added to every proxied response.
"""
import time
from typing import Dict, Iterable, Optional, Tuple
from urllib.parse import quote

import requests
from flask import Response, stream_with_context

from . import config
from .headers import build_headers
from .logging_utils import log_event

PROXY_ERROR_CODE = "PROXY_ERROR"
PROXY_ERROR_MESSAGE = "プロキシエラーが発生しました"

HOP_BY_HOP = {
    "connection", "keep-alive", "proxy-authenticate", "proxy-authorization",
    "te", "trailers", "transfer-encoding", "upgrade",
}

# Never forwarded upstream
REQUEST_HEADER_DENYLIST = HOP_BY_HOP | {
    "host",
    "content-length",
    "cookie",
    "origin",
    "referer",
    "forwarded",
    "x-forwarded-for",
    "x-real-ip",
    "x-forwarded-proto",
    "x-forwarded-host",
    "x-forwarded-port",
    "x-client-ip",
    "true-client-ip",
    "cf-connecting-ip",
    "cf-ipcountry",
    "cf-ray",
    "cf-visitor",
    "cf-worker",
    "x-replit-user-id",
    "x-replit-user-name",
    "x-replit-user-roles",
    "x-replit-user-teams",
    "x-replit-user-url",
    "x-replit-user-bio",
    "x-replit-user-profile-image",
}

# Never returned to the client. content-encoding/length go too because the
# body is re-streamed already decoded.
RESPONSE_HEADER_DENYLIST = HOP_BY_HOP | {
    "content-encoding",
    "content-length",
    "set-cookie",
    "set-cookie2",
    "x-youtube-ad-signals",
    "x-youtube-identity-token",
    "server",
    "via",
    "x-cache",
    "x-cache-hits",
    "x-served-by",
    "x-timer",
    "alt-svc",
    "report-to",
    "nel",
    "cross-origin-opener-policy-report-only",
    "content-security-policy-report-only",
    "p3p",
}

CONTENT_SECURITY_POLICY = "; ".join([
    "default-src 'self'",
    "script-src 'self' 'unsafe-inline' 'unsafe-eval' https://www.youtube-nocookie.com https://www.youtube.com https://s.ytimg.com https://www.gstatic.com",
    "img-src 'self' data: blob: https://i.ytimg.com https://img.youtube.com https://yt3.ggpht.com",
    "media-src 'self' blob: https://*.googlevideo.com",
    "frame-src 'self' https://www.youtube-nocookie.com",
    "connect-src 'self' https://www.youtube-nocookie.com https://*.googlevideo.com",
    "style-src 'self' 'unsafe-inline'",
    "frame-ancestors 'self'",
])

PRIVACY_HEADERS = {
    "X-Frame-Options": "SAMEORIGIN",
    "X-Content-Type-Options": "nosniff",
    "Referrer-Policy": "no-referrer",
    "Permissions-Policy": "interest-cohort=(), geolocation=(), microphone=(), camera=()",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
    "Content-Security-Policy": CONTENT_SECURITY_POLICY,
    "Cache-Control": "no-store, no-cache, must-revalidate",
}

# Path characters left as-is when re-encoding a decoded request path
PATH_SAFE_CHARS = "/:@!$&'()*+,;="


class ProxyTransportFailure(Exception):
    """Forwarding to the upstream failed at the transport level."""


def rewrite_path(prefix: str, path: str) -> str:
    """Strip the local mount prefix, keeping a leading slash."""
    if path.startswith(prefix):
        path = path[len(prefix):]
    return "/" + path.lstrip("/")


def build_upstream_url(host: str, path: str, query_string: bytes = b"") -> str:
    """``path`` is the decoded request path; it is percent-encoded again here."""
    url = f"https://{host}{quote(path, safe=PATH_SAFE_CHARS)}"
    if query_string:
        url += "?" + query_string.decode("utf-8", "replace")
    return url


def filter_request_headers(incoming: Iterable[Tuple[str, str]], host: str,
                           synthesized: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    headers = {k: v for k, v in incoming
               if k.lower() not in REQUEST_HEADER_DENYLIST and not k.lower().startswith("sec-ch-ua")}
    # Drop whatever the client sent under names the synthesized set owns
    synthesized = synthesized if synthesized is not None else build_headers()
    owned = {name.lower() for name in synthesized}
    headers = {k: v for k, v in headers.items() if k.lower() not in owned}
    headers.update(synthesized)
    headers["Origin"] = f"https://{host}"
    headers["Referer"] = f"https://{host}/"
    return headers


def filter_response_headers(upstream: Iterable[Tuple[str, str]]) -> Dict[str, str]:
    headers = {k: v for k, v in upstream if k.lower() not in RESPONSE_HEADER_DENYLIST}
    owned = {name.lower() for name in PRIVACY_HEADERS}
    headers = {k: v for k, v in headers.items() if k.lower() not in owned}
    headers.update(PRIVACY_HEADERS)
    return headers


def forward(http: requests.Session, method: str, host: str, path: str, query_string: bytes,
            incoming_headers: Iterable[Tuple[str, str]], body: bytes) -> Response:
    """Send one request upstream and stream the answer back.

    Raises ProxyTransportFailure for connection, TLS and timeout errors; the
    upstream status code (including 4xx/5xx) is otherwise passed through.
    """
    target_url = build_upstream_url(host, path, query_string)
    headers = filter_request_headers(incoming_headers, host)
    t0 = time.perf_counter()
    log_event('info', 'proxy_forward_start', method=method, upstream=host, path=path)
    try:
        upstream = http.request(
            method=method,
            url=target_url,
            headers=headers,
            data=body or None,
            stream=True,
            allow_redirects=False,
            timeout=config.PROXY_TIMEOUT,
        )
    except requests.exceptions.RequestException as e:
        log_event('error', 'proxy_forward_failed', method=method, upstream=host, path=path,
                  error_type=type(e).__name__, error=str(e),
                  duration_ms=int((time.perf_counter() - t0) * 1000))
        raise ProxyTransportFailure(str(e)) from e

    log_event('info', 'proxy_forward_response', method=method, upstream=host, path=path,
              status=upstream.status_code, duration_ms=int((time.perf_counter() - t0) * 1000))

    def generate():
        try:
            for chunk in upstream.iter_content(chunk_size=config.PROXY_CHUNK_SIZE):
                if chunk:
                    yield chunk
        except requests.exceptions.RequestException as e:
            # Headers are already sent; all we can do is cut the stream short.
            log_event('error', 'proxy_stream_interrupted', upstream=host, path=path, error=str(e))

    response = Response(
        stream_with_context(generate()),
        status=upstream.status_code,
        headers=filter_response_headers(upstream.headers.items()),
    )
    # HEAD, 204 and 304 bodies are never iterated, so release the connection here
    response.call_on_close(upstream.close)
    return response
