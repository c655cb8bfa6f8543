import json
import logging
import os

from flask import g, has_request_context, request

APP_NAME = "tubeshield"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        try:
            base = getattr(record, "structured", None)
            if not isinstance(base, dict):
                base = {"message": record.getMessage()}
            base.setdefault("logger", APP_NAME)
            base.setdefault("severity", record.levelname)
            return json.dumps(base, default=str, ensure_ascii=False)
        except (TypeError, ValueError):
            return json.dumps({
                "logger": APP_NAME,
                "severity": record.levelname,
                "message": record.getMessage(),
            }, ensure_ascii=False)


def setup_logging(level: str = LOG_LEVEL) -> logging.Logger:
    """
    Configure a single JSON logger to stdout with no propagation to avoid
    duplicates under Gunicorn. Root stays at WARNING to keep 3rd-party quiet.
    """
    logging.basicConfig(level=logging.WARNING)

    logger = logging.getLogger(APP_NAME)
    logger.setLevel(level)
    logger.propagate = False
    if logger.hasHandlers():
        logger.handlers.clear()

    ch = logging.StreamHandler()
    ch.setLevel(level)
    ch.setFormatter(JsonFormatter())
    logger.addHandler(ch)

    logging.getLogger("urllib3.connectionpool").setLevel(logging.INFO)
    logging.getLogger("werkzeug").setLevel(logging.WARNING)
    return logger


logger = logging.getLogger(APP_NAME)


def _full_url() -> str:
    qs = request.query_string.decode("utf-8", "replace") if request.query_string else ""
    return request.base_url + (f"?{qs}" if qs else "")


def log_event(level: str, event: str, include_http: bool = False, **fields):
    structured = {"event": event, **fields}
    if has_request_context():
        structured.setdefault("request_id", getattr(g, "request_id", None))
        if include_http:
            http = {
                "requestMethod": request.method,
                "requestUrl": _full_url(),
                "remoteIp": request.remote_addr,
                "userAgent": request.headers.get("User-Agent", "")[:120],
            }
            if "status" in fields:
                http["status"] = fields["status"]
            if "duration_ms" in fields:
                http["latency"] = f"{float(fields['duration_ms']) / 1000:.3f}s"
            structured["httpRequest"] = http

    extra = {"structured": structured}
    if level == "debug":
        logger.debug(event, extra=extra)
    elif level == "warning":
        logger.warning(event, extra=extra)
    elif level == "error":
        logger.error(event, extra=extra)
    else:
        logger.info(event, extra=extra)
