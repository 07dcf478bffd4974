"""Shape checks for submitted scores and player tags."""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

MIN_SCORE = 0
MAX_SCORE = 999_999

_PLAYER_TAG = re.compile(r"[A-Za-z]{3}")


@dataclass(frozen=True)
class ValidationResult:
    ok: bool
    reason: str | None = None


ACCEPTED = ValidationResult(ok=True)


def is_valid_score(score: Any) -> bool:
    # bool is an int subclass; a JSON true must not count as 1.
    if isinstance(score, bool) or not isinstance(score, int):
        return False
    return MIN_SCORE <= score <= MAX_SCORE


def is_valid_player_tag(player_tag: Any) -> bool:
    return isinstance(player_tag, str) and _PLAYER_TAG.fullmatch(player_tag) is not None


def validate_submission(score: Any, player_tag: Any) -> ValidationResult:
    if not is_valid_score(score):
        return ValidationResult(ok=False, reason="Invalid score")
    if not is_valid_player_tag(player_tag):
        return ValidationResult(ok=False, reason="Invalid player name (must be 3 letters)")
    return ACCEPTED


def normalize_player_tag(player_tag: str) -> str:
    return player_tag.upper()
