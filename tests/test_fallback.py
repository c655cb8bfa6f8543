import unittest

import requests

from tubeshield.fallback import (
    AllEndpointsExhausted,
    EndpointCandidate,
    UpstreamAttemptFailure,
    expect_success,
    try_endpoints,
)
from tubeshield.headers import FINGERPRINT_HEADER

from .fakes import FakeResponse


def make_candidates(n):
    return [EndpointCandidate(f"c{i}", f"https://host{i}.example/{{video_id}}") for i in range(n)]


class TestEndpointCandidate(unittest.TestCase):

    def test_url_for_fills_video_id(self):
        c = EndpointCandidate("embed", "https://www.youtube.com/embed/{video_id}")
        self.assertEqual(c.url_for("dQw4w9WgXcQ"), "https://www.youtube.com/embed/dQw4w9WgXcQ")

    def test_url_for_quotes_watch_url(self):
        c = EndpointCandidate("oembed", "https://noembed.com/embed?url={watch_url}")
        self.assertEqual(
            c.url_for("dQw4w9WgXcQ"),
            "https://noembed.com/embed?url=https%3A%2F%2Fwww.youtube.com%2Fwatch%3Fv%3DdQw4w9WgXcQ",
        )

    def test_host(self):
        c = EndpointCandidate("embed", "https://www.youtube-nocookie.com/embed/{video_id}")
        self.assertEqual(c.host, "www.youtube-nocookie.com")


class TestTryEndpoints(unittest.TestCase):

    def test_first_success_short_circuits(self):
        """With N failures before a success, exactly N+1 attempts are made."""
        candidates = make_candidates(5)
        seen = []

        def attempt(candidate, headers, timeout):
            seen.append(candidate.name)
            if candidate.name in ("c0", "c1"):
                raise UpstreamAttemptFailure("nope")
            return candidate.name.upper()

        candidate, value = try_endpoints(candidates, attempt, timeout=5)
        self.assertEqual(seen, ["c0", "c1", "c2"])
        self.assertEqual(candidate.name, "c2")
        self.assertEqual(value, "C2")

    def test_all_failing_tries_every_candidate_once(self):
        candidates = make_candidates(4)
        seen = []

        def attempt(candidate, headers, timeout):
            seen.append(candidate.name)
            raise requests.exceptions.ConnectionError("down")

        with self.assertRaises(AllEndpointsExhausted) as ctx:
            try_endpoints(candidates, attempt, timeout=5)
        self.assertEqual(seen, ["c0", "c1", "c2", "c3"])
        self.assertEqual(ctx.exception.attempted, ["c0", "c1", "c2", "c3"])

    def test_timeouts_and_bad_bodies_fall_through(self):
        candidates = make_candidates(3)
        errors = [requests.exceptions.Timeout("slow"), ValueError("bad json")]

        def attempt(candidate, headers, timeout):
            if errors:
                raise errors.pop(0)
            return "ok"

        candidate, value = try_endpoints(candidates, attempt, timeout=5)
        self.assertEqual((candidate.name, value), ("c2", "ok"))

    def test_unexpected_errors_propagate(self):
        def attempt(candidate, headers, timeout):
            raise KeyError("bug")

        with self.assertRaises(KeyError):
            try_endpoints(make_candidates(2), attempt, timeout=5)

    def test_each_attempt_gets_fresh_headers_and_the_timeout(self):
        received = []

        def attempt(candidate, headers, timeout):
            received.append((headers[FINGERPRINT_HEADER], timeout))
            raise UpstreamAttemptFailure("again")

        with self.assertRaises(AllEndpointsExhausted):
            try_endpoints(make_candidates(3), attempt, timeout=7.5)
        tokens = [r[0] for r in received]
        self.assertEqual(len(set(tokens)), 3)
        self.assertEqual({r[1] for r in received}, {7.5})

    def test_empty_list_is_exhausted(self):
        with self.assertRaises(AllEndpointsExhausted):
            try_endpoints([], lambda c, h, t: "never", timeout=1)


class TestExpectSuccess(unittest.TestCase):

    def test_2xx_passes(self):
        resp = FakeResponse(204)
        self.assertIs(expect_success(resp), resp)

    def test_non_2xx_fails(self):
        for status in (301, 404, 500):
            with self.assertRaises(UpstreamAttemptFailure):
                expect_success(FakeResponse(status))


if __name__ == "__main__":
    unittest.main()
