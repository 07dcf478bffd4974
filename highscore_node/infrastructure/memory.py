import threading
import time
from typing import Callable, Dict, List, Optional, Tuple

from highscore_node.entities.score import CandidateRecord, CandidateSource, ReviewThread, ScoreRecord
from highscore_node.errors import ReviewExistsError, WriteConflictError
from highscore_node.interfaces.rate_limit_store import RateLimitStore
from highscore_node.interfaces.score_slot_repository import ScoreSlotRepository


class InMemoryRateLimitStore(RateLimitStore):
    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        # key -> (value, expires_at)
        self._storage: Dict[str, Tuple[str, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            item = self._storage.get(key)
            if item is None:
                return None
            value, expires_at = item
            if self._clock() >= expires_at:
                del self._storage[key]
                return None
            return value

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        with self._lock:
            self._storage[key] = (value, self._clock() + ttl_seconds)

    def clear(self):
        """Clear all entries (only for testing)."""
        with self._lock:
            self._storage.clear()


class InMemoryScoreSlotRepository(ScoreSlotRepository):
    """Single-slot storage held in process memory.

    Revisions are a counter bumped on every proposal write. `merge_review`
    and `close_review` stand in for the external review step.
    """

    def __init__(self, published: Optional[ScoreRecord] = None):
        self.published = published
        self.proposal: Optional[ScoreRecord] = None
        self.review: Optional[ReviewThread] = None
        self.comments: List[Tuple[int, str]] = []
        self.review_bodies: Dict[int, str] = {}
        self._revision = 0
        self._next_review_number = 1
        self._lock = threading.Lock()

    def resolve_candidate(self) -> CandidateRecord:
        with self._lock:
            if self.review is not None:
                return CandidateRecord(
                    record=self.proposal,
                    source=CandidateSource.PROPOSAL,
                    revision=str(self._revision),
                    review=self.review,
                )
            return CandidateRecord(
                record=self.published,
                source=CandidateSource.PUBLISHED,
                revision=str(self._revision),
            )

    def write_proposal(self, record: ScoreRecord, candidate: CandidateRecord) -> str:
        with self._lock:
            if candidate.revision != str(self._revision):
                raise WriteConflictError(
                    f"proposal revision moved from {candidate.revision} to {self._revision}"
                )
            if candidate.source == CandidateSource.PUBLISHED and self.review is not None:
                raise WriteConflictError("a review was opened since the candidate was read")
            self.proposal = record
            self._revision += 1
            return str(self._revision)

    def find_open_review(self) -> Optional[ReviewThread]:
        return self.review

    def open_review(self, title: str, body: str) -> ReviewThread:
        with self._lock:
            if self.review is not None:
                raise ReviewExistsError(f"review #{self.review.number} is already open")
            self.review = ReviewThread(number=self._next_review_number, url=f"memory://reviews/{self._next_review_number}")
            self.review_bodies[self.review.number] = f"{title}\n\n{body}"
            self._next_review_number += 1
            return self.review

    def comment_review(self, review: ReviewThread, body: str) -> None:
        with self._lock:
            self.comments.append((review.number, body))

    def merge_review(self) -> None:
        with self._lock:
            if self.review is None:
                return
            self.published = self.proposal
            self._close()

    def close_review(self) -> None:
        with self._lock:
            self._close()

    def _close(self) -> None:
        self.review = None
        self.proposal = None
        self._revision += 1
