from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


def now_ms() -> int:
    return int(time.time() * 1000)


class CandidateSource(StrEnum):
    PUBLISHED = "PUBLISHED"
    PROPOSAL = "PROPOSAL"
    # Written to the proposal branch, review not opened yet.
    PENDING = "PENDING"


class ArbitrationOutcome(StrEnum):
    REJECTED_NOT_HIGHER = "REJECTED_NOT_HIGHER"
    PROPOSED = "PROPOSED"


@dataclass(frozen=True)
class SubmissionRequest:
    """One inbound submission. Lives only for the duration of the request."""
    score: int
    player_tag: str
    source_address: str


@dataclass(frozen=True)
class RateLimitEntry:
    key: str
    last_accepted_at: int                                        # epoch ms


@dataclass(frozen=True)
class DispatchEvent:
    """Gateway → workflow message. Delivered at least once, in any order."""
    score: int
    player_tag: str
    submitted_at: int = field(default_factory=now_ms)            # epoch ms

    def to_client_payload(self) -> dict[str, Any]:
        return {
            "score": self.score,
            "player": self.player_tag,
            "timestamp": self.submitted_at,
        }


@dataclass(frozen=True)
class ScoreRecord:
    """Content of both the proposal artifact and the published record."""
    score: int
    name: str
    timestamp: int                                               # epoch ms

    @classmethod
    def from_event(cls, event: DispatchEvent) -> "ScoreRecord":
        return cls(score=event.score, name=event.player_tag, timestamp=event.submitted_at)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "ScoreRecord":
        return cls(
            score=int(payload["score"]),
            name=str(payload.get("name", "")),
            timestamp=int(payload.get("timestamp", 0)),
        )

    def to_payload(self) -> dict[str, Any]:
        return {"score": self.score, "name": self.name, "timestamp": self.timestamp}


@dataclass(frozen=True)
class ReviewThread:
    """An open, human-reviewable change request for the slot."""
    number: int
    url: str = ""


@dataclass(frozen=True)
class CandidateRecord:
    """Current best score, resolved fresh from storage on every attempt.

    `revision` is the storage version observed when reading; writes carry it
    back so the repository can detect a concurrent change. `proposal_head`
    is the proposal branch head seen at the same time (None when absent).
    """
    record: ScoreRecord | None
    source: CandidateSource
    revision: str | None = None
    review: ReviewThread | None = None
    proposal_head: str | None = None

    @property
    def score(self) -> int:
        # No record yet: every valid score (>= 0) beats it.
        return self.record.score if self.record is not None else -1


@dataclass
class ArbitrationResult:
    outcome: ArbitrationOutcome
    candidate: CandidateRecord
    applied: ScoreRecord | None = None
    review: ReviewThread | None = None
    attempts: int = 1
