import unittest
from email.message import Message

import requests
from requests.cookies import MockRequest, MockResponse

from tubeshield import config
from tubeshield.http_client import build_http_session


class TestBuildHttpSession(unittest.TestCase):

    def test_retries_disabled_and_redirects_capped(self):
        session = build_http_session()
        adapter = session.get_adapter("https://www.youtube.com/")
        self.assertEqual(adapter.max_retries.total, 0)
        self.assertEqual(session.max_redirects, config.MAX_REDIRECTS)

    def test_cookies_are_never_stored(self):
        session = build_http_session()
        headers = Message()
        headers["Set-Cookie"] = "YSC=abc; Domain=.youtube.com; Path=/"
        request = MockRequest(requests.Request("GET", "https://www.youtube.com/embed/x").prepare())
        session.cookies.extract_cookies(MockResponse(headers), request)
        self.assertEqual(len(session.cookies), 0)


if __name__ == "__main__":
    unittest.main()
