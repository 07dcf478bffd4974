"""Hands accepted submissions to the automation runner via repository_dispatch."""
from __future__ import annotations

import logging
from dataclasses import dataclass

import requests

from highscore_node.entities.score import DispatchEvent

logger = logging.getLogger(__name__)

DEFAULT_EVENT_TYPE = "update-score"


@dataclass(frozen=True)
class DispatchResult:
    accepted: bool
    reason: str | None = None


class PublicationTrigger:
    """Single outbound call, no retries. Holds the only write credential.

    The token is sent as a bearer header and never logged or echoed back.
    """

    def __init__(
        self,
        *,
        repository: str,
        token: str,
        api_url: str = "https://api.github.com",
        event_type: str = DEFAULT_EVENT_TYPE,
        timeout_seconds: float = 5.0,
        session: requests.Session | None = None,
    ) -> None:
        self.repository = repository
        self._token = token
        self.api_url = api_url.rstrip("/")
        self.event_type = event_type
        self.timeout_seconds = timeout_seconds
        self._session = session or requests.Session()

    @property
    def configured(self) -> bool:
        return bool(self._token and self.repository)

    def dispatch(self, score: int, player_tag: str, timestamp: int) -> DispatchResult:
        return self.dispatch_event(DispatchEvent(score=score, player_tag=player_tag, submitted_at=timestamp))

    def dispatch_event(self, event: DispatchEvent) -> DispatchResult:
        if not self.configured:
            logger.error("publication trigger is not configured (repository or token missing)")
            return DispatchResult(accepted=False, reason="not configured")

        try:
            response = self._session.post(
                f"{self.api_url}/repos/{self.repository}/dispatches",
                headers={
                    "Authorization": f"Bearer {self._token}",
                    "Accept": "application/vnd.github+json",
                    "X-GitHub-Api-Version": "2022-11-28",
                    "User-Agent": "highscore-gateway",
                },
                json={
                    "event_type": self.event_type,
                    "client_payload": event.to_client_payload(),
                },
                timeout=self.timeout_seconds,
            )
        except requests.Timeout:
            logger.error("dispatch to %s timed out after %.1fs", self.repository, self.timeout_seconds)
            return DispatchResult(accepted=False, reason="timeout")
        except requests.RequestException as exc:
            logger.error("dispatch to %s failed: %s", self.repository, type(exc).__name__)
            return DispatchResult(accepted=False, reason="network error")

        if not response.ok:
            logger.error("dispatch to %s rejected with status %d", self.repository, response.status_code)
            return DispatchResult(accepted=False, reason=f"status {response.status_code}")

        logger.info("dispatched %s score=%d player=%s", self.event_type, event.score, event.player_tag)
        return DispatchResult(accepted=True)
