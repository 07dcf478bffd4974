"""Submission gateway: validate, rate limit, trigger."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from highscore_node.entities.score import DispatchEvent, SubmissionRequest, now_ms
from highscore_node.services.dispatch import PublicationTrigger
from highscore_node.services.rate_limiter import RateLimiter
from highscore_node.services.validator import normalize_player_tag, validate_submission

INVALID_REQUEST = "Invalid request"
TOO_MANY_REQUESTS = "Too many requests. Please wait before submitting again."
SUBMIT_FAILED = "Failed to submit score"


@dataclass(frozen=True)
class GatewayResponse:
    status_code: int
    body: dict[str, Any]
    headers: dict[str, str] = field(default_factory=dict)


class SubmissionGateway:
    def __init__(self, rate_limiter: RateLimiter, trigger: PublicationTrigger) -> None:
        self.rate_limiter = rate_limiter
        self.trigger = trigger
        self.logger = logging.getLogger(__name__)

    def parse(self, payload: Any, source_address: str) -> SubmissionRequest | None:
        if not isinstance(payload, dict):
            return None
        return SubmissionRequest(
            score=payload.get("score"),
            player_tag=payload.get("player"),
            source_address=source_address,
        )

    def submit(self, payload: Any, source_address: str) -> GatewayResponse:
        request = self.parse(payload, source_address)
        if request is None:
            return invalid_request()

        validation = validate_submission(request.score, request.player_tag)
        if not validation.ok:
            self.logger.debug("rejected submission from %s: %s", source_address, validation.reason)
            return GatewayResponse(400, {"error": validation.reason})

        decision = self.rate_limiter.check(source_address)
        if not decision.allowed:
            self.logger.info(
                "rate limited %s, retry after %ds", source_address, decision.retry_after_seconds
            )
            return GatewayResponse(
                429,
                {"error": TOO_MANY_REQUESTS, "retryAfter": decision.retry_after_seconds},
                headers={"Retry-After": str(decision.retry_after_seconds)},
            )

        event = DispatchEvent(
            score=request.score,
            player_tag=normalize_player_tag(request.player_tag),
            submitted_at=now_ms(),
        )
        result = self.trigger.dispatch_event(event)
        if not result.accepted:
            # The window is only consumed by submissions that were forwarded.
            self.logger.error("trigger failed for %s: %s", source_address, result.reason)
            return GatewayResponse(500, {"error": SUBMIT_FAILED})

        self.rate_limiter.record(source_address)
        return GatewayResponse(200, {"success": True})


def invalid_request() -> GatewayResponse:
    return GatewayResponse(400, {"error": INVALID_REQUEST})
