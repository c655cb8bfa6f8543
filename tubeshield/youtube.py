import re
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import requests

from . import config
from .errors import ValidationError
from .fallback import AllEndpointsExhausted, EndpointCandidate, UpstreamAttemptFailure, expect_success, try_endpoints
from .headers import build_headers
from .logging_utils import log_event

INVALID_VIDEO_ID_MESSAGE = "無効な動画IDです"
RESTRICTED_MESSAGE = "ブロックされている可能性があります"
ACCESSIBLE_MESSAGE = "アクセス可能です"
PLACEHOLDER_TITLE = "YouTube動画 ({video_id})"

# --- Video ID Validation & Extraction ---
VIDEO_ID_REGEX = re.compile(r'^[A-Za-z0-9_-]{11}$')

_URL_PATTERNS = [
    re.compile(r'youtube\.com/(?:watch\?(?:.*&)?v=|embed/|shorts/|live/|v/|e/)([A-Za-z0-9_-]{11})'),
    re.compile(r'youtube-nocookie\.com/embed/([A-Za-z0-9_-]{11})'),
    re.compile(r'youtu\.be/([A-Za-z0-9_-]{11})'),
]

# /vi/<id>/hqdefault.jpg and friends -> maxresdefault
_LOW_RES_THUMB = re.compile(r'/(?:hq|mq|sd)?default(\.(?:jpg|webp))')


def validate_video_id(video_id: str) -> bool:
    return bool(video_id) and bool(VIDEO_ID_REGEX.fullmatch(video_id))


def require_video_id(video_id: str) -> str:
    if not validate_video_id(video_id):
        raise ValidationError(INVALID_VIDEO_ID_MESSAGE)
    return video_id


def extract_video_id(url_or_id: str) -> Optional[str]:
    """Accept a bare id or any of the usual watch / short / embed URL shapes."""
    url_or_id = (url_or_id or "").strip()
    if validate_video_id(url_or_id):
        return url_or_id
    for pattern in _URL_PATTERNS:
        match = pattern.search(url_or_id)
        if match:
            return match.group(1)
    return None


def embed_url(video_id: str) -> str:
    return f"{config.EMBED_BASE_URL}{video_id}?{urlencode(config.EMBED_PARAMS)}"


def upgrade_thumbnail(url: Optional[str]) -> Optional[str]:
    """Swap a low resolution thumbnail filename for the maxres variant."""
    if not url:
        return url
    return _LOW_RES_THUMB.sub(r'/maxresdefault\1', url, count=1)


class AccessProbeResult:
    def __init__(self, accessible: bool, endpoint: Optional[str] = None, error: Optional[str] = None):
        self.accessible = accessible
        self.endpoint = endpoint
        self.error = error

    def __repr__(self):
        return f"AccessProbeResult(accessible={self.accessible!r}, endpoint={self.endpoint!r}, error={self.error!r})"


class VideoMetadata:
    def __init__(self, title: str, author: Optional[str] = None,
                 thumbnail: Optional[str] = None, duration: Optional[Any] = None):
        self.title = title
        self.author = author
        self.thumbnail = thumbnail
        self.duration = duration

    def to_dict(self) -> Dict[str, Any]:
        out = {"title": self.title}
        for key in ("author", "thumbnail", "duration"):
            value = getattr(self, key)
            if value is not None:
                out[key] = value
        return out

    def __repr__(self):
        return f"VideoMetadata({self.to_dict()!r})"


# ---------------------------------------------------------------------------
# Video Access Checker
def check_access(video_id: str, http: requests.Session, candidates=None) -> AccessProbeResult:
    """Probe the embed/watch endpoints until one answers 2xx.

    Invalid ids raise ValidationError before anything goes out; upstream
    trouble only ever shows up as ``accessible=False``.
    """
    require_video_id(video_id)
    candidates = config.ACCESS_CANDIDATES if candidates is None else candidates

    def probe(candidate: EndpointCandidate, headers: Dict[str, str], timeout: float):
        resp = http.request(candidate.method, candidate.url_for(video_id), headers=headers,
                            timeout=timeout, allow_redirects=True)
        try:
            return expect_success(resp)
        finally:
            resp.close()

    try:
        candidate, _ = try_endpoints(candidates, probe, config.ACCESS_PROBE_TIMEOUT, label="access_probe")
    except AllEndpointsExhausted:
        return AccessProbeResult(accessible=False, error=RESTRICTED_MESSAGE)
    return AccessProbeResult(accessible=True, endpoint=candidate.host)


# ---------------------------------------------------------------------------
# Metadata Fetcher
def parse_oembed(body: Any) -> VideoMetadata:
    if not isinstance(body, dict):
        raise UpstreamAttemptFailure("oEmbed body is not an object")
    title = body.get("title")
    if not isinstance(title, str) or not title.strip():
        raise UpstreamAttemptFailure(body.get("error") or "oEmbed body has no title")
    author = body.get("author_name")
    thumbnail = body.get("thumbnail_url")
    return VideoMetadata(
        title=title,
        author=author if isinstance(author, str) and author else None,
        thumbnail=upgrade_thumbnail(thumbnail) if isinstance(thumbnail, str) and thumbnail else None,
        duration=body.get("duration"),
    )


def _probe_thumbnail(video_id: str, http: requests.Session) -> Optional[VideoMetadata]:
    probe = config.THUMBNAIL_PROBE
    url = probe.url_for(video_id)
    try:
        resp = http.request(probe.method, url, headers=build_headers(),
                            timeout=config.THUMBNAIL_PROBE_TIMEOUT, allow_redirects=True)
        try:
            expect_success(resp)
        finally:
            resp.close()
    except (requests.exceptions.RequestException, UpstreamAttemptFailure) as e:
        log_event('warning', 'thumbnail_probe_failed', video_id=video_id, error=str(e))
        return None
    log_event('info', 'thumbnail_probe_success', video_id=video_id)
    return VideoMetadata(title=PLACEHOLDER_TITLE.format(video_id=video_id), thumbnail=url)


def fetch_metadata(video_id: str, http: requests.Session, candidates=None) -> Optional[VideoMetadata]:
    """Title/author/thumbnail via the oEmbed chain, then a bare thumbnail probe.

    Returns None when nothing answered; callers carry on without metadata.
    """
    require_video_id(video_id)
    candidates = config.METADATA_CANDIDATES if candidates is None else candidates

    def fetch(candidate: EndpointCandidate, headers: Dict[str, str], timeout: float) -> VideoMetadata:
        headers = dict(headers, Accept="application/json")
        resp = http.request(candidate.method, candidate.url_for(video_id), headers=headers, timeout=timeout)
        try:
            expect_success(resp)
            return parse_oembed(resp.json())
        finally:
            resp.close()

    try:
        _, metadata = try_endpoints(candidates, fetch, config.METADATA_TIMEOUT, label="metadata")
        return metadata
    except AllEndpointsExhausted:
        return _probe_thumbnail(video_id, http)
