"""Automation-runner entry point for one `update-score` dispatch event.

Exit codes: 0 for both normal outcomes (proposed, not higher), 2 for an
event that fails validation, 1 for repository errors or unresolved write
conflicts. Re-running after a failure is safe.
"""
from __future__ import annotations

import argparse
import json
import logging
import os
from pathlib import Path

from pydantic import ValidationError

from highscore_node.config.runtime import RuntimeSettings
from highscore_node.entities.score import DispatchEvent, now_ms
from highscore_node.errors import HighscoreError, InvalidEventError
from highscore_node.infrastructure.github import GitHubClient, GitHubScoreSlotRepository
from highscore_node.infrastructure.memory import InMemoryScoreSlotRepository
from highscore_node.interfaces.score_slot_repository import ScoreSlotRepository
from highscore_node.schemas import RepositoryDispatchPayload
from highscore_node.services.arbitration import ArbitrationService

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        force=True,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="highscore-arbitrate",
        description="Propose a dispatched score if it beats the current record",
    )
    parser.add_argument("--event-path", help="Event JSON file (default: $GITHUB_EVENT_PATH)")
    parser.add_argument("--score", type=int, help="Score to arbitrate instead of reading an event file")
    parser.add_argument("--player", help="3-letter player tag (with --score)")
    parser.add_argument("--timestamp", type=int, help="Submission time in epoch ms (with --score, default: now)")
    parser.add_argument("--dry-run", action="store_true", help="Compare against the published record without writing")
    return parser


def load_event(args: argparse.Namespace) -> DispatchEvent:
    if args.score is not None:
        return DispatchEvent(
            score=args.score,
            player_tag=args.player or "",
            submitted_at=args.timestamp if args.timestamp is not None else now_ms(),
        )

    event_path = args.event_path or os.getenv("GITHUB_EVENT_PATH")
    if not event_path:
        raise InvalidEventError("no event given: pass --event-path, set GITHUB_EVENT_PATH, or use --score")

    try:
        raw = json.loads(Path(event_path).read_text(encoding="utf-8"))
        payload = RepositoryDispatchPayload.model_validate(raw)
    except (OSError, ValueError, ValidationError) as exc:
        raise InvalidEventError(f"could not read event from {event_path}: {exc}") from exc
    return payload.client_payload.to_event()


def build_repository(settings: RuntimeSettings) -> GitHubScoreSlotRepository:
    client = GitHubClient(
        repository=settings.github_repository,
        token=settings.github_token,
        api_url=settings.github_api_url,
        timeout_seconds=settings.github_timeout_seconds,
    )
    return GitHubScoreSlotRepository(
        client,
        data_path=settings.data_path,
        base_branch=settings.base_branch,
        proposal_branch=settings.proposal_branch,
    )


def build_service(settings: RuntimeSettings, dry_run: bool = False) -> ArbitrationService:
    github = build_repository(settings)
    repository: ScoreSlotRepository = github
    if dry_run:
        # Seeded read-only from the published record; nothing is written back.
        repository = InMemoryScoreSlotRepository(published=github.fetch_published())
    return ArbitrationService(repository, max_attempts=settings.arbitration_max_attempts)


def main(argv: list[str] | None = None, settings: RuntimeSettings | None = None) -> int:
    settings = settings or RuntimeSettings.from_env()
    configure_logging(settings.log_level)
    args = build_parser().parse_args(argv)

    try:
        event = load_event(args)
        service = build_service(settings, dry_run=args.dry_run)
        result = service.run(event)
    except InvalidEventError as exc:
        logger.error("invalid event: %s", exc)
        return 2
    except HighscoreError as exc:
        logger.error("arbitration failed: %s", exc)
        return 1

    logger.info(
        "arbitration finished outcome=%s attempts=%d%s",
        result.outcome,
        result.attempts,
        " (dry run)" if args.dry_run else "",
    )
    return 0


def entrypoint() -> None:
    raise SystemExit(main())


if __name__ == "__main__":
    entrypoint()
