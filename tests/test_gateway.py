"""Tests for the submission gateway service and its HTTP surface."""
from __future__ import annotations

import dataclasses
import unittest
from unittest.mock import MagicMock

from fastapi.testclient import TestClient

from highscore_node.config.runtime import RuntimeSettings
from highscore_node.infrastructure.memory import InMemoryRateLimitStore
from highscore_node.services.dispatch import DispatchResult
from highscore_node.services.gateway import SubmissionGateway
from highscore_node.services.rate_limiter import RateLimiter
from highscore_node.workers import gateway_worker

ORIGIN = "https://arcade.example.com"


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def _make_gateway(accepted: bool = True):
    clock = FakeClock()
    store = InMemoryRateLimitStore(clock=clock)
    limiter = RateLimiter(store, window_seconds=30, ttl_seconds=60, clock=clock)
    trigger = MagicMock()
    trigger.dispatch_event.return_value = DispatchResult(accepted=accepted, reason=None if accepted else "status 500")
    return SubmissionGateway(rate_limiter=limiter, trigger=trigger), trigger, store, clock


class TestSubmissionGateway(unittest.TestCase):
    def test_accepted_submission_dispatches_once_and_records(self):
        gateway, trigger, store, _ = _make_gateway()

        response = gateway.submit({"score": 500, "player": "bob"}, "1.2.3.4")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.body, {"success": True})
        trigger.dispatch_event.assert_called_once()
        event = trigger.dispatch_event.call_args.args[0]
        self.assertEqual(event.score, 500)
        self.assertEqual(event.player_tag, "BOB")
        self.assertIsNotNone(store.get("ratelimit:1.2.3.4"))

    def test_negative_score_rejected_without_side_effects(self):
        gateway, trigger, store, _ = _make_gateway()

        response = gateway.submit({"score": -1, "player": "BOB"}, "1.2.3.4")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.body, {"error": "Invalid score"})
        trigger.dispatch_event.assert_not_called()
        self.assertIsNone(store.get("ratelimit:1.2.3.4"))

    def test_bad_player_tag_rejected(self):
        gateway, trigger, _, _ = _make_gateway()
        response = gateway.submit({"score": 5, "player": "B0B"}, "1.2.3.4")
        self.assertEqual(response.status_code, 400)
        self.assertIn("3 letters", response.body["error"])
        trigger.dispatch_event.assert_not_called()

    def test_non_object_payload_is_invalid_request(self):
        gateway, _, _, _ = _make_gateway()
        for payload in (None, [], "score", 5):
            with self.subTest(payload=payload):
                response = gateway.submit(payload, "1.2.3.4")
                self.assertEqual(response.status_code, 400)
                self.assertEqual(response.body, {"error": "Invalid request"})

    def test_second_submission_within_window_is_rate_limited(self):
        gateway, trigger, _, clock = _make_gateway()

        first = gateway.submit({"score": 999999, "player": "ZZZ"}, "1.2.3.4")
        clock.now += 5
        second = gateway.submit({"score": 999999, "player": "ZZZ"}, "1.2.3.4")

        self.assertEqual(first.status_code, 200)
        self.assertEqual(second.status_code, 429)
        self.assertEqual(second.body["retryAfter"], 25)
        self.assertEqual(second.headers["Retry-After"], "25")
        self.assertEqual(trigger.dispatch_event.call_count, 1)

    def test_trigger_failure_is_500_and_does_not_consume_window(self):
        gateway, trigger, store, _ = _make_gateway(accepted=False)

        response = gateway.submit({"score": 500, "player": "BOB"}, "1.2.3.4")

        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.body, {"error": "Failed to submit score"})
        self.assertIsNone(store.get("ratelimit:1.2.3.4"))

        trigger.dispatch_event.return_value = DispatchResult(accepted=True)
        retry = gateway.submit({"score": 500, "player": "BOB"}, "1.2.3.4")
        self.assertEqual(retry.status_code, 200)


class TestGatewayHTTP(unittest.TestCase):
    def setUp(self):
        settings = dataclasses.replace(
            RuntimeSettings.from_env(),
            allowed_origin=ORIGIN,
            submit_path="/",
            cors_max_age_seconds=600,
            client_address_headers=("cf-connecting-ip", "x-forwarded-for"),
        )
        self.gateway, self.trigger, self.store, self.clock = _make_gateway()
        self.app = gateway_worker.create_app(settings)
        self.app.dependency_overrides[gateway_worker.get_gateway] = lambda: self.gateway
        self.client = TestClient(self.app)

    def tearDown(self):
        self.app.dependency_overrides.clear()

    def test_preflight(self):
        resp = self.client.options("/", headers={"Origin": ORIGIN, "Access-Control-Request-Method": "POST"})
        self.assertEqual(resp.status_code, 204)
        self.assertEqual(resp.content, b"")
        self.assertEqual(resp.headers["access-control-allow-origin"], ORIGIN)
        self.assertEqual(resp.headers["access-control-allow-methods"], "POST, OPTIONS")
        self.assertEqual(resp.headers["access-control-allow-headers"], "Content-Type")
        self.assertEqual(resp.headers["access-control-max-age"], "600")

    def test_wrong_method_is_405_with_origin(self):
        for method in ("GET", "PUT", "DELETE"):
            with self.subTest(method=method):
                resp = self.client.request(method, "/")
                self.assertEqual(resp.status_code, 405)
                self.assertEqual(resp.json(), {"error": "Method not allowed"})
                self.assertEqual(resp.headers["access-control-allow-origin"], ORIGIN)

    def test_successful_submission(self):
        resp = self.client.post("/", json={"score": 500, "player": "BOB"})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"success": True})
        self.assertEqual(resp.headers["access-control-allow-origin"], ORIGIN)

    def test_malformed_json_is_generic_400(self):
        resp = self.client.post("/", content=b"{not json", headers={"Content-Type": "application/json"})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json(), {"error": "Invalid request"})
        self.assertEqual(resp.headers["access-control-allow-origin"], ORIGIN)

    def test_empty_body_is_generic_400(self):
        resp = self.client.post("/")
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json(), {"error": "Invalid request"})

    def test_validation_error_carries_reason_and_origin(self):
        resp = self.client.post("/", json={"score": 1_000_000, "player": "BOB"})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json(), {"error": "Invalid score"})
        self.assertEqual(resp.headers["access-control-allow-origin"], ORIGIN)

    def test_rate_limit_keyed_by_forwarded_address(self):
        headers = {"CF-Connecting-IP": "203.0.113.7"}
        self.assertEqual(self.client.post("/", json={"score": 1, "player": "ABC"}, headers=headers).status_code, 200)

        resp = self.client.post("/", json={"score": 2, "player": "ABC"}, headers=headers)
        self.assertEqual(resp.status_code, 429)
        self.assertEqual(resp.json()["retryAfter"], 30)
        self.assertEqual(resp.headers["retry-after"], "30")
        self.assertEqual(resp.headers["access-control-allow-origin"], ORIGIN)
        self.assertIsNotNone(self.store.get("ratelimit:203.0.113.7"))

        other = self.client.post(
            "/", json={"score": 3, "player": "ABC"}, headers={"X-Forwarded-For": "198.51.100.1, 10.0.0.1"}
        )
        self.assertEqual(other.status_code, 200)
        self.assertIsNotNone(self.store.get("ratelimit:198.51.100.1"))

    def test_trigger_failure_is_generic_500(self):
        self.trigger.dispatch_event.return_value = DispatchResult(accepted=False, reason="status 401")
        resp = self.client.post("/", json={"score": 500, "player": "BOB"})
        self.assertEqual(resp.status_code, 500)
        self.assertEqual(resp.json(), {"error": "Failed to submit score"})
        self.assertEqual(resp.headers["access-control-allow-origin"], ORIGIN)

    def test_unexpected_error_is_generic_500_with_origin(self):
        broken = MagicMock()
        broken.submit.side_effect = RuntimeError("store exploded")
        self.app.dependency_overrides[gateway_worker.get_gateway] = lambda: broken

        resp = self.client.post("/", json={"score": 500, "player": "BOB"})

        self.assertEqual(resp.status_code, 500)
        self.assertEqual(resp.json(), {"error": "Internal server error"})
        self.assertEqual(resp.headers["access-control-allow-origin"], ORIGIN)
        self.assertNotIn("exploded", resp.text)

    def test_healthz(self):
        resp = self.client.get("/healthz")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"status": "ok"})


if __name__ == "__main__":
    unittest.main()
