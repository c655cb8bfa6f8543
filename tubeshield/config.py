import os
from typing import List
from urllib.parse import urlparse

from .fallback import EndpointCandidate


class ConfigError(Exception):
    """Raised at startup when an endpoint table is malformed."""


# --- Configuration ---
PORT = int(os.getenv("PORT", "5000"))
CORS_ORIGINS = os.getenv("TUBESHIELD_CORS_ORIGINS", "*")
RATELIMIT_STORAGE_URI = os.getenv("RATELIMIT_STORAGE_URI")  # e.g., redis://localhost:6379/0
MAX_CONTENT_LENGTH = int(os.getenv("MAX_CONTENT_LENGTH_BYTES", str(1024 * 1024)))

# Per-attempt budgets (seconds) for the different call types
ACCESS_PROBE_TIMEOUT = float(os.getenv("ACCESS_PROBE_TIMEOUT", "5"))
METADATA_TIMEOUT = float(os.getenv("METADATA_TIMEOUT", "10"))
THUMBNAIL_PROBE_TIMEOUT = float(os.getenv("THUMBNAIL_PROBE_TIMEOUT", "5"))
PROXY_TIMEOUT = float(os.getenv("PROXY_TIMEOUT", "30"))
MAX_REDIRECTS = int(os.getenv("MAX_REDIRECTS", "5"))

HTTP_POOL_CONNECTIONS = int(os.getenv("HTTP_POOL_CONNECTIONS", "20"))
HTTP_POOL_MAXSIZE = int(os.getenv("HTTP_POOL_MAXSIZE", "20"))
PROXY_CHUNK_SIZE = int(os.getenv("PROXY_CHUNK_SIZE", "8192"))


# --- Upstream endpoint tables (tried strictly in this order) ---
ACCESS_CANDIDATES: List[EndpointCandidate] = [
    EndpointCandidate("nocookie-embed", "https://www.youtube-nocookie.com/embed/{video_id}", method="HEAD"),
    EndpointCandidate("youtube-embed", "https://www.youtube.com/embed/{video_id}", method="HEAD"),
    EndpointCandidate("youtube-watch", "https://www.youtube.com/watch?v={video_id}", method="HEAD"),
]

METADATA_CANDIDATES: List[EndpointCandidate] = [
    EndpointCandidate("youtube-oembed", "https://www.youtube.com/oembed?url={watch_url}&format=json"),
    EndpointCandidate("youtube-oembed-mirror", "https://youtube.com/oembed?url={watch_url}&format=json"),
    EndpointCandidate("noembed", "https://noembed.com/embed?url={watch_url}"),
]

THUMBNAIL_PROBE = EndpointCandidate("ytimg-thumbnail", "https://i.ytimg.com/vi/{video_id}/hqdefault.jpg", method="HEAD")


# Local proxy token -> upstream host
class ProxyTarget:
    """Local proxy token and the single upstream host it forwards to."""

    def __init__(self, token: str, host: str):
        self.token = token
        self.host = host

    def __repr__(self):
        return f"ProxyTarget({self.token!r}, {self.host!r})"


PROXY_TARGETS: List[ProxyTarget] = [
    ProxyTarget("youtube", "www.youtube-nocookie.com"),
    ProxyTarget("thumbnail", "i.ytimg.com"),
    ProxyTarget("image", "img.youtube.com"),
]

# token -> host, for route lookups
PROXY_UPSTREAMS = {t.token: t.host for t in PROXY_TARGETS}

EMBED_BASE_URL = "https://www.youtube-nocookie.com/embed/"
EMBED_PARAMS = {
    "wmode": "transparent",
    "iv_load_policy": "3",
    "autoplay": "0",
    "html5": "1",
    "showinfo": "0",
    "rel": "0",
    "modestbranding": "1",
    "playsinline": "0",
    "theme": "dark",
}

# Sample id used to render every template once during validation
_PROBE_VIDEO_ID = "dQw4w9WgXcQ"


def _check_absolute(url: str, label: str) -> None:
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        raise ConfigError(f"{label}: not an absolute http(s) URL: {url!r}")


def validate_endpoint_config(access_candidates=None, metadata_candidates=None,
                             thumbnail_probe=None, proxy_upstreams=None) -> None:
    """Render every configured endpoint once and fail fast on malformed entries."""
    access_candidates = ACCESS_CANDIDATES if access_candidates is None else access_candidates
    metadata_candidates = METADATA_CANDIDATES if metadata_candidates is None else metadata_candidates
    thumbnail_probe = THUMBNAIL_PROBE if thumbnail_probe is None else thumbnail_probe
    proxy_upstreams = PROXY_UPSTREAMS if proxy_upstreams is None else proxy_upstreams

    for table_name, table in (("access", access_candidates), ("metadata", metadata_candidates)):
        if not table:
            raise ConfigError(f"{table_name} candidate list is empty")
        for candidate in table:
            try:
                url = candidate.url_for(_PROBE_VIDEO_ID)
            except (KeyError, IndexError, ValueError) as e:
                raise ConfigError(f"{candidate.name}: bad template {candidate.url_template!r}") from e
            _check_absolute(url, candidate.name)

    _check_absolute(thumbnail_probe.url_for(_PROBE_VIDEO_ID), thumbnail_probe.name)

    for token, host in proxy_upstreams.items():
        if not token or "/" in token:
            raise ConfigError(f"invalid proxy token {token!r}")
        if not host or "/" in host:
            raise ConfigError(f"proxy:{token}: invalid upstream host {host!r}")
        _check_absolute(f"https://{host}/", f"proxy:{token}")
