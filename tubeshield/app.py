import time
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import requests
from flask import Blueprint, Flask, current_app, g, jsonify, make_response, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

from . import config, proxy
from .chat import respond
from .errors import ValidationError
from .http_client import build_http_session
from .logging_utils import log_event, logger, setup_logging
from .storage import MemorySessionStore, SessionStore, new_session_id, session_title
from .youtube import (
    ACCESSIBLE_MESSAGE,
    RESTRICTED_MESSAGE,
    AccessProbeResult,
    check_access,
    embed_url,
    extract_video_id,
    fetch_metadata,
)

PROXY_PREFIX = "/api/proxy"
PROXY_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE"]

MESSAGE_REQUIRED = "メッセージが必要です"
VIDEO_NOT_FOUND = "動画が見つかりません"
VIDEO_FETCH_FAILED = "動画データの取得に失敗しました"
INVALID_URL = "無効なYouTube URLです"
CHAT_FAILED = "AIとの通信に失敗しました"
HISTORY_FAILED = "チャット履歴の取得に失敗しました"
SESSIONS_FAILED = "チャットセッションの取得に失敗しました"
UNKNOWN_PROXY_ENDPOINT = "不明なプロキシエンドポイントです"
NOT_FOUND = "見つかりません"
RATE_LIMITED = "リクエストが多すぎます。しばらくしてから再度お試しください"
INTERNAL_ERROR = "サーバーエラーが発生しました"

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["300 per hour", "60 per minute"],
    headers_enabled=True,
)

api = Blueprint("api", __name__, url_prefix="/api")


def _store() -> SessionStore:
    return current_app.extensions["tubeshield"]["store"]


def _http() -> requests.Session:
    return current_app.extensions["tubeshield"]["http"]


def _error(message: str, status: int, **extra):
    return jsonify({"error": message, **extra}), status


# --- Reverse proxy ---
@api.route("/proxy/<token>/", defaults={"path": ""}, methods=PROXY_METHODS, strict_slashes=False)
@api.route("/proxy/<token>/<path:path>", methods=PROXY_METHODS)
@limiter.exempt
def proxy_endpoint(token: str, path: str):
    host = config.PROXY_UPSTREAMS.get(token)
    if host is None:
        log_event('warning', 'proxy_unknown_token', token=token)
        return _error(UNKNOWN_PROXY_ENDPOINT, 404)

    g.proxied = True
    upstream_path = proxy.rewrite_path(f"{PROXY_PREFIX}/{token}", request.path)
    try:
        return proxy.forward(
            _http(),
            method=request.method,
            host=host,
            path=upstream_path,
            query_string=request.query_string,
            incoming_headers=request.headers.items(),
            body=request.get_data(),
        )
    except proxy.ProxyTransportFailure:
        return _error(proxy.PROXY_ERROR_MESSAGE, 500, code=proxy.PROXY_ERROR_CODE)
    except Exception as e:
        log_event('error', 'proxy_unexpected_error', upstream=host, path=upstream_path,
                  error_type=type(e).__name__, error=str(e))
        return _error(proxy.PROXY_ERROR_MESSAGE, 500, code=proxy.PROXY_ERROR_CODE)


# --- Video metadata / access ---
@api.route("/video/resolve", methods=["GET"])
@limiter.limit("600/hour;120/minute")
def resolve_video():
    video_id = extract_video_id(request.args.get("url", ""))
    if not video_id:
        log_event('warning', 'resolve_invalid_url', raw=request.args.get("url", "")[:200])
        return _error(INVALID_URL, 400)
    return jsonify({"videoId": video_id, "embedUrl": embed_url(video_id)})


@api.route("/video/<video_id>", methods=["GET"])
@limiter.limit("300/hour;60/minute")
def video_metadata(video_id: str):
    try:
        metadata = fetch_metadata(video_id, _http())
    except ValidationError as e:
        log_event('warning', 'video_invalid_id', raw=video_id[:64])
        return _error(e.message, 400)
    except Exception as e:
        log_event('error', 'video_metadata_failed', video_id=video_id, error=str(e))
        return _error(VIDEO_FETCH_FAILED, 500)

    if metadata is None:
        return _error(VIDEO_NOT_FOUND, 404)
    return jsonify(metadata.to_dict())


@api.route("/unblock/check/<video_id>", methods=["GET"])
@limiter.limit("300/hour;60/minute")
def unblock_check(video_id: str):
    try:
        result = check_access(video_id, _http())
    except ValidationError as e:
        log_event('warning', 'unblock_invalid_id', raw=video_id[:64])
        return _error(e.message, 400)
    except Exception as e:
        # Reported as "possibly blocked", never as a crash
        log_event('error', 'unblock_check_failed', video_id=video_id, error_type=type(e).__name__, error=str(e))
        result = AccessProbeResult(accessible=False, error=RESTRICTED_MESSAGE)

    body: Dict[str, Any] = {
        "videoId": video_id,
        "accessible": result.accessible,
        "embedUrl": embed_url(video_id),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if result.accessible:
        body["endpoint"] = result.endpoint
        body["message"] = ACCESSIBLE_MESSAGE
    else:
        body["message"] = result.error
        body["error"] = result.error
    return jsonify(body)


# --- Chat ---
@api.route("/chat/send", methods=["POST"])
@limiter.limit("200/hour;30/minute")
def chat_send():
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return _error(MESSAGE_REQUIRED, 400)
    message = payload.get("message")
    if not isinstance(message, str) or not message:
        return _error(MESSAGE_REQUIRED, 400)
    session_id = payload.get("sessionId")
    if session_id is not None and not isinstance(session_id, str):
        return _error(MESSAGE_REQUIRED, 400)

    store = _store()
    try:
        if not session_id:
            session_id = new_session_id()
            store.create_session(session_id, session_title(message))
            log_event('info', 'chat_session_created', session_id=session_id)
        elif store.get_session(session_id) is None:
            store.create_session(session_id, session_title(message))
            log_event('info', 'chat_session_adopted', session_id=session_id)

        store.append_message(session_id, "user", message)
        reply = respond(message)
        store.append_message(session_id, "assistant", reply)
    except Exception as e:
        log_event('error', 'chat_send_failed', session_id=session_id, error=str(e))
        return _error(CHAT_FAILED, 500)

    return jsonify({"sessionId": session_id, "response": reply})


@api.route("/chat/history/<session_id>", methods=["GET"])
def chat_history(session_id: str):
    try:
        messages = _store().list_messages(session_id)
    except Exception as e:
        log_event('error', 'chat_history_failed', session_id=session_id, error=str(e))
        return _error(HISTORY_FAILED, 500)
    return jsonify([m.to_dict() for m in messages])


@api.route("/chat/sessions", methods=["GET"])
def chat_sessions():
    try:
        sessions = _store().list_sessions()
    except Exception as e:
        log_event('error', 'chat_sessions_failed', error=str(e))
        return _error(SESSIONS_FAILED, 500)
    return jsonify([s.to_dict() for s in sessions])


# --- Application factory ---
def create_app(store: Optional[SessionStore] = None,
               http: Optional[requests.Session] = None,
               config_overrides: Optional[Dict[str, Any]] = None) -> Flask:
    config.validate_endpoint_config()
    setup_logging()

    app = Flask(__name__)
    app.config["MAX_CONTENT_LENGTH"] = config.MAX_CONTENT_LENGTH
    if config.RATELIMIT_STORAGE_URI:
        app.config["RATELIMIT_STORAGE_URI"] = config.RATELIMIT_STORAGE_URI
        logger.info("Rate limiting configured with storage: %s", config.RATELIMIT_STORAGE_URI)
    else:
        logger.warning("Rate limiting using in-memory storage (not recommended for production scale).")
    app.config.update(config_overrides or {})

    cors_origins = [o.strip() for o in config.CORS_ORIGINS.split(",")] if config.CORS_ORIGINS != "*" else "*"
    CORS(app, resources={r"/api/*": {"origins": cors_origins}})
    limiter.init_app(app)

    app.extensions["tubeshield"] = {
        "store": store if store is not None else MemorySessionStore(),
        "http": http if http is not None else build_http_session(),
    }
    app.config["START_TIME"] = time.time()
    app.register_blueprint(api)

    @app.before_request
    def _before_request():
        g.request_id = uuid.uuid4().hex[:12]
        g.started_at = time.perf_counter()
        log_event('info', 'request_start', include_http=True, method=request.method, path=request.path)

    @app.after_request
    def _after_request(response):
        dur_ms = int((time.perf_counter() - getattr(g, 'started_at', time.perf_counter())) * 1000)
        response.headers['X-Request-ID'] = getattr(g, 'request_id', '') or ''
        # Proxied responses carry their own header policy
        if response.mimetype == 'application/json' and not getattr(g, 'proxied', False):
            response.headers['X-Content-Type-Options'] = 'nosniff'
            response.headers['Referrer-Policy'] = 'no-referrer'
            response.headers['Permissions-Policy'] = 'interest-cohort=()'
            response.headers['Content-Security-Policy'] = "default-src 'none'"
        log_event('info', 'request_end', include_http=True, method=request.method, path=request.path,
                  status=response.status_code, duration_ms=dur_ms)
        return response

    @app.errorhandler(404)
    def _not_found(_e):
        return _error(NOT_FOUND, 404)

    @app.errorhandler(500)
    def _internal_error(e):
        original = getattr(e, "original_exception", None)
        log_event('error', 'unhandled_exception', path=request.path,
                  error_type=type(original or e).__name__, error=str(original or e))
        return _error(INTERNAL_ERROR, 500)

    @app.errorhandler(429)
    def _rate_limited(_e):
        log_event('warning', 'rate_limited', path=request.path, ip=get_remote_address())
        return _error(RATE_LIMITED, 429)

    @app.route("/", methods=["GET"])
    def root_ok():
        uptime = round(time.time() - app.config["START_TIME"])
        return jsonify({"status": "ok", "uptime": uptime})

    @app.route("/robots.txt")
    def robots_txt():
        resp = make_response("User-agent: *\nDisallow: /\n", 200)
        resp.headers["Content-Type"] = "text/plain; charset=utf-8"
        resp.headers["Cache-Control"] = "public, max-age=86400"
        return resp

    @app.route("/favicon.ico")
    def favicon():
        return ("", 204)

    log_event('info', 'app_initialized', proxy_tokens=sorted(config.PROXY_UPSTREAMS),
              access_candidates=[c.name for c in config.ACCESS_CANDIDATES],
              metadata_candidates=[c.name for c in config.METADATA_CANDIDATES])
    return app


if __name__ == "__main__":
    application = create_app()
    logger.info(f"Starting tubeshield on port {config.PORT}")
    application.run(host="0.0.0.0", port=config.PORT, threaded=True)
