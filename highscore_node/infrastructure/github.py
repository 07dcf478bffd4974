"""Score slot stored in a GitHub content repository.

The published record is a JSON file on the base branch. A proposal is the
same file on a shared proposal branch, and it counts as open only while a
pull request from that branch into the base branch is open.

Every write is conditional on what was read:

- With a review open, the file is updated through the contents API with the
  blob sha read beforehand; GitHub answers 409/422 when it changed.
- Without one, a new commit is built on the base tree with the observed
  branch head as a parent, and the branch ref is moved without `force`.
  GitHub only accepts that as a fast-forward, so the update fails if any
  other run moved the branch after it was read. The branch never moves
  backwards, so no earlier write is lost.

Branch content above the published score, with no open review and no
closed review pointing at it, was written by a run that has not opened its
review yet (or crashed before doing so). It counts toward the candidate.
"""
from __future__ import annotations

import base64
import json
import logging
from typing import Any

import requests

from highscore_node.entities.score import CandidateRecord, CandidateSource, ReviewThread, ScoreRecord
from highscore_node.errors import GitHubAPIError, ReviewExistsError, WriteConflictError
from highscore_node.interfaces.score_slot_repository import ScoreSlotRepository

logger = logging.getLogger(__name__)

_CONFLICT_STATUSES = (409, 422)


class GitHubClient:
    """Thin REST wrapper: auth headers, timeout, status checking."""

    def __init__(
        self,
        *,
        repository: str,
        token: str,
        api_url: str = "https://api.github.com",
        timeout_seconds: float = 10.0,
        session: requests.Session | None = None,
    ) -> None:
        self.repository = repository
        self._token = token
        self.api_url = api_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._session = session or requests.Session()

    @property
    def owner(self) -> str:
        return self.repository.split("/", 1)[0]

    def request(self, method: str, path: str, *, allow: tuple[int, ...] = (), **kwargs: Any) -> requests.Response:
        try:
            response = self._session.request(
                method,
                f"{self.api_url}/repos/{self.repository}{path}",
                headers={
                    "Authorization": f"Bearer {self._token}",
                    "Accept": "application/vnd.github+json",
                    "X-GitHub-Api-Version": "2022-11-28",
                    "User-Agent": "highscore-arbitration",
                },
                timeout=self.timeout_seconds,
                **kwargs,
            )
        except requests.RequestException as error:
            raise GitHubAPIError(None, f"{method} {path}: {type(error).__name__}") from error

        if response.ok or response.status_code in allow:
            return response
        raise GitHubAPIError(response.status_code, _error_message(response))


class GitHubScoreSlotRepository(ScoreSlotRepository):
    def __init__(
        self,
        client: GitHubClient,
        *,
        data_path: str = "_data/highscore.json",
        base_branch: str = "main",
        proposal_branch: str = "highscore-update",
    ) -> None:
        self.client = client
        self.data_path = data_path
        self.base_branch = base_branch
        self.proposal_branch = proposal_branch

    # ── reads ──

    def resolve_candidate(self) -> CandidateRecord:
        published, published_sha = self._read_record(self.base_branch)
        review = self.find_open_review()
        proposal_head = self._branch_head(self.proposal_branch)

        if review is not None:
            proposed, proposed_sha = self._read_record(self.proposal_branch)
            return CandidateRecord(
                record=_best(published, proposed),
                source=CandidateSource.PROPOSAL,
                revision=proposed_sha,
                review=review,
                proposal_head=proposal_head,
            )

        if proposal_head is not None and not self._is_closed_head(proposal_head):
            pending, _ = self._read_record(self.proposal_branch)
            if pending is not None and (published is None or pending.score > published.score):
                return CandidateRecord(
                    record=pending,
                    source=CandidateSource.PENDING,
                    revision=published_sha,
                    proposal_head=proposal_head,
                )

        return CandidateRecord(
            record=published,
            source=CandidateSource.PUBLISHED,
            revision=published_sha,
            proposal_head=proposal_head,
        )

    def fetch_published(self) -> ScoreRecord | None:
        record, _ = self._read_record(self.base_branch)
        return record

    def find_open_review(self) -> ReviewThread | None:
        pulls = self._pulls("open")
        if not pulls:
            return None
        if len(pulls) > 1:
            logger.warning("found %d open reviews for %s, using the oldest", len(pulls), self.proposal_branch)
        pull = min(pulls, key=lambda p: p["number"])
        return ReviewThread(number=int(pull["number"]), url=pull.get("html_url", ""))

    # ── writes ──

    def write_proposal(self, record: ScoreRecord, candidate: CandidateRecord) -> str:
        if candidate.source == CandidateSource.PROPOSAL:
            return self._revise_proposal(record, candidate)
        return self._commit_proposal(record, candidate)

    def open_review(self, title: str, body: str) -> ReviewThread:
        response = self.client.request(
            "POST",
            "/pulls",
            json={
                "title": title,
                "head": self.proposal_branch,
                "base": self.base_branch,
                "body": body,
            },
            allow=(422,),
        )
        if response.status_code == 422:
            message = _error_message(response)
            if "already exists" in message:
                raise ReviewExistsError(message)
            raise GitHubAPIError(422, message)
        pull = response.json()
        return ReviewThread(number=int(pull["number"]), url=pull.get("html_url", ""))

    def comment_review(self, review: ReviewThread, body: str) -> None:
        self.client.request("POST", f"/issues/{review.number}/comments", json={"body": body})

    # ── helpers ──

    def _revise_proposal(self, record: ScoreRecord, candidate: CandidateRecord) -> str:
        if self.find_open_review() is None:
            raise WriteConflictError("the open review was closed since the candidate was read")

        body: dict[str, Any] = {
            "message": _commit_message(record),
            "content": base64.b64encode(_serialize(record).encode("utf-8")).decode("ascii"),
            "branch": self.proposal_branch,
        }
        if candidate.revision is not None:
            body["sha"] = candidate.revision

        response = self.client.request(
            "PUT",
            f"/contents/{self.data_path}",
            json=body,
            allow=_CONFLICT_STATUSES,
        )
        if response.status_code in _CONFLICT_STATUSES:
            raise WriteConflictError(
                f"{self.data_path} on {self.proposal_branch} changed: {_error_message(response)}"
            )
        return response.json()["commit"]["sha"]

    def _commit_proposal(self, record: ScoreRecord, candidate: CandidateRecord) -> str:
        """Start (or continue) a proposal with no review open yet."""
        if self.find_open_review() is not None:
            raise WriteConflictError("a review was opened since the candidate was read")

        _, published_sha = self._read_record(self.base_branch)
        if published_sha != candidate.revision:
            raise WriteConflictError(f"{self.data_path} on {self.base_branch} changed since it was read")

        base_head = self._branch_head(self.base_branch)
        base_tree = self.client.request("GET", f"/git/commits/{base_head}").json()["tree"]["sha"]
        tree = self.client.request(
            "POST",
            "/git/trees",
            json={
                "base_tree": base_tree,
                "tree": [{"path": self.data_path, "mode": "100644", "type": "blob", "content": _serialize(record)}],
            },
        ).json()["sha"]

        # The observed head stays a parent so the ref update is a fast-forward
        # from it; the base head keeps the review diff down to the data file.
        parents = [base_head] if candidate.proposal_head is None else [candidate.proposal_head, base_head]
        commit = self.client.request(
            "POST",
            "/git/commits",
            json={"message": _commit_message(record), "tree": tree, "parents": parents},
        ).json()["sha"]

        if candidate.proposal_head is None:
            response = self.client.request(
                "POST",
                "/git/refs",
                json={"ref": f"refs/heads/{self.proposal_branch}", "sha": commit},
                allow=_CONFLICT_STATUSES,
            )
        else:
            response = self.client.request(
                "PATCH",
                f"/git/refs/heads/{self.proposal_branch}",
                json={"sha": commit, "force": False},
                allow=_CONFLICT_STATUSES,
            )
        if response.status_code in _CONFLICT_STATUSES:
            raise WriteConflictError(
                f"{self.proposal_branch} moved since it was read: {_error_message(response)}"
            )
        return commit

    def _branch_head(self, branch: str) -> str | None:
        response = self.client.request("GET", f"/git/ref/heads/{branch}", allow=(404,))
        if response.status_code == 404:
            return None
        return response.json()["object"]["sha"]

    def _pulls(self, state: str) -> list[dict[str, Any]]:
        response = self.client.request(
            "GET",
            "/pulls",
            params={
                "state": state,
                "head": f"{self.client.owner}:{self.proposal_branch}",
                "base": self.base_branch,
                "per_page": 100,
            },
        )
        return response.json()

    def _is_closed_head(self, sha: str) -> bool:
        """True when a merged or discarded review ended at this commit."""
        return any(pull.get("head", {}).get("sha") == sha for pull in self._pulls("closed"))

    def _read_record(self, ref: str) -> tuple[ScoreRecord | None, str | None]:
        response = self.client.request(
            "GET",
            f"/contents/{self.data_path}",
            params={"ref": ref},
            allow=(404,),
        )
        if response.status_code == 404:
            return None, None
        payload = response.json()
        return _decode(payload["content"]), payload["sha"]


def _best(published: ScoreRecord | None, proposed: ScoreRecord | None) -> ScoreRecord | None:
    # The candidate never drops below the published score, even when the
    # base branch moved ahead of the proposal.
    if published is not None and (proposed is None or published.score > proposed.score):
        return published
    return proposed


def _commit_message(record: ScoreRecord) -> str:
    return f"Update high score to {record.score} by {record.name}"


def _serialize(record: ScoreRecord) -> str:
    return json.dumps(record.to_payload(), indent=2) + "\n"


def _decode(content: str) -> ScoreRecord:
    raw = base64.b64decode(content)
    return ScoreRecord.from_payload(json.loads(raw))


def _error_message(response: requests.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text[:200]
    message = payload.get("message", "") if isinstance(payload, dict) else ""
    errors = payload.get("errors") if isinstance(payload, dict) else None
    if errors:
        details = "; ".join(str(e.get("message", e)) if isinstance(e, dict) else str(e) for e in errors)
        message = f"{message} ({details})"
    return message
