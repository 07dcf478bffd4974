from abc import ABC, abstractmethod

from highscore_node.entities.score import CandidateRecord, ReviewThread, ScoreRecord


class ScoreSlotRepository(ABC):
    """Storage for the single score slot: published record plus proposal."""

    @abstractmethod
    def resolve_candidate(self) -> CandidateRecord:
        """Open proposal content if a review is open, else the published record."""

    @abstractmethod
    def write_proposal(self, record: ScoreRecord, candidate: CandidateRecord) -> str:
        """Replace the proposal content with `record`.

        Raises WriteConflictError when storage no longer matches `candidate`.
        Returns the new revision.
        """

    @abstractmethod
    def find_open_review(self) -> ReviewThread | None:
        pass

    @abstractmethod
    def open_review(self, title: str, body: str) -> ReviewThread:
        """Raises ReviewExistsError when a review is already open."""

    @abstractmethod
    def comment_review(self, review: ReviewThread, body: str) -> None:
        pass
