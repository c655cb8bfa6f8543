"""In-process stand-ins for the outbound requests.Session."""
import json

import requests
from requests.structures import CaseInsensitiveDict


class FakeResponse:
    def __init__(self, status_code=200, body=b"", headers=None, json_body=None):
        if json_body is not None:
            body = json.dumps(json_body).encode("utf-8")
            headers = dict(headers or {}, **{"Content-Type": "application/json"})
        if isinstance(body, str):
            body = body.encode("utf-8")
        self.status_code = status_code
        self.content = body
        self.headers = CaseInsensitiveDict(headers or {})
        self.closed = False

    def json(self):
        return json.loads(self.content.decode("utf-8"))

    def iter_content(self, chunk_size=1):
        for i in range(0, len(self.content), chunk_size):
            yield self.content[i:i + chunk_size]

    def close(self):
        self.closed = True


class FakeHttp:
    """Records every outbound call and answers from a per-URL script.

    ``routes`` maps a URL prefix to a FakeResponse or an exception instance;
    the first matching prefix wins. Unmatched URLs raise ConnectionError.
    """

    def __init__(self, routes=None):
        self.routes = list((routes or {}).items())
        self.calls = []

    def request(self, method, url, **kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        for prefix, outcome in self.routes:
            if url.startswith(prefix):
                if isinstance(outcome, BaseException):
                    raise outcome
                return outcome
        raise requests.exceptions.ConnectionError(f"no route for {url}")

    @property
    def urls(self):
        return [c["url"] for c in self.calls]
