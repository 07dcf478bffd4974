"""Score arbitration: compare a dispatched score with the current best and propose it.

One run handles one dispatch event and ends in one of two states:

- **REJECTED_NOT_HIGHER**: the event does not beat the current candidate.
  Normal outcome; nothing is written. Replayed and out-of-order events end
  here once a higher score has been applied.
- **PROPOSED**: the proposal artifact now holds the event's score and a
  single open review describes the change.

Ties are not displaced: the comparison is strictly greater, so when two
players reach the same score the first one applied keeps the slot.

The candidate is re-read on every attempt. A write that races with another
run raises WriteConflictError and the run starts over from the read after a
short randomized pause. Runs are not serialized; the repository's
conditional writes keep them from overwriting each other.

A candidate written by another run whose review is not open yet (PENDING)
gets its review opened by whichever run sees it first, so a run that
crashed between writing and opening its review is finished by the next one.
"""
from __future__ import annotations

import logging
import random
import time
from typing import Callable

from highscore_node.entities.score import (
    ArbitrationOutcome,
    ArbitrationResult,
    CandidateRecord,
    CandidateSource,
    DispatchEvent,
    ReviewThread,
    ScoreRecord,
)
from highscore_node.errors import (
    ArbitrationConflictError,
    InvalidEventError,
    ReviewExistsError,
    WriteConflictError,
)
from highscore_node.interfaces.score_slot_repository import ScoreSlotRepository
from highscore_node.services.validator import normalize_player_tag, validate_submission

REVIEW_TITLE = "Update high score"


class ArbitrationService:
    def __init__(
        self,
        repository: ScoreSlotRepository,
        max_attempts: int = 5,
        retry_delay_seconds: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.repository = repository
        self.max_attempts = max(1, max_attempts)
        self.retry_delay_seconds = retry_delay_seconds
        self.sleep = sleep
        self.logger = logging.getLogger(__name__)

    def run(self, event: DispatchEvent) -> ArbitrationResult:
        event = self._checked(event)
        record = ScoreRecord.from_event(event)

        for attempt in range(1, self.max_attempts + 1):
            candidate = self.repository.resolve_candidate()

            if event.score <= candidate.score:
                self.logger.info(
                    "score %d by %s is not higher than %d (%s), nothing to do",
                    event.score, event.player_tag, candidate.score, candidate.source,
                )
                review = None
                if candidate.source == CandidateSource.PENDING:
                    review = self._finish_pending(candidate)
                return ArbitrationResult(
                    outcome=ArbitrationOutcome.REJECTED_NOT_HIGHER,
                    candidate=candidate,
                    review=review,
                    attempts=attempt,
                )

            try:
                self.repository.write_proposal(record, candidate)
            except WriteConflictError as exc:
                self.logger.warning("proposal write conflict on attempt %d: %s", attempt, exc)
                if attempt < self.max_attempts:
                    self.sleep(random.uniform(0.5, 1.5) * self.retry_delay_seconds * attempt)
                continue

            review = self._publish_review(candidate, record)
            self.logger.info(
                "proposed score %d by %s (was %d) in review #%d",
                record.score, record.name, candidate.score, review.number,
            )
            return ArbitrationResult(
                outcome=ArbitrationOutcome.PROPOSED,
                candidate=candidate,
                applied=record,
                review=review,
                attempts=attempt,
            )

        raise ArbitrationConflictError(
            f"gave up proposing score {event.score} after {self.max_attempts} conflicting attempts"
        )

    def _checked(self, event: DispatchEvent) -> DispatchEvent:
        result = validate_submission(event.score, event.player_tag)
        if not result.ok:
            raise InvalidEventError(result.reason)
        return DispatchEvent(
            score=event.score,
            player_tag=normalize_player_tag(event.player_tag),
            submitted_at=event.submitted_at,
        )

    def _finish_pending(self, candidate: CandidateRecord) -> ReviewThread | None:
        review = self.repository.find_open_review()
        if review is not None:
            return review
        self.logger.info("opening review for pending score %d", candidate.score)
        try:
            return self.repository.open_review(REVIEW_TITLE, describe_change(None, candidate.record))
        except ReviewExistsError:
            return self.repository.find_open_review()

    def _publish_review(self,candidate: CandidateRecord, record: ScoreRecord) -> ReviewThread:
        review = candidate.review or self.repository.find_open_review()
        if review is None:
            try:
                return self.repository.open_review(REVIEW_TITLE, describe_change(candidate.record, record))
            except ReviewExistsError:
                review = self.repository.find_open_review()
                if review is None:
                    raise

        self.repository.comment_review(review, describe_revision(candidate.record, record))
        return review


def _describe(record: ScoreRecord | None) -> str:
    if record is None:
        return "no record"
    return f"{record.score} by {record.name}"


def describe_change(previous: ScoreRecord | None, record: ScoreRecord) -> str:
    return (
        f"New high score submitted.\n\n"
        f"- Previous: {_describe(previous)}\n"
        f"- New: {record.score} by {record.name}\n"
        f"- Submitted at: {record.timestamp}\n"
    )


def describe_revision(previous: ScoreRecord | None, record: ScoreRecord) -> str:
    return f"Revised: {_describe(previous)} → {record.score} by {record.name} (submitted at {record.timestamp})."
