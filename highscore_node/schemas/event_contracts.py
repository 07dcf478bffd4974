from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, StrictInt

from highscore_node.entities.score import DispatchEvent


class DispatchEventEnvelope(BaseModel):
    """`client_payload` of an `update-score` repository_dispatch event.

    Only the shape is checked here; score range and tag format are enforced
    by the validator before arbitration.
    """

    score: StrictInt
    player: str
    timestamp: StrictInt = Field(ge=0)

    model_config = ConfigDict(extra="ignore")

    def to_event(self) -> DispatchEvent:
        return DispatchEvent(score=self.score, player_tag=self.player, submitted_at=self.timestamp)


class RepositoryDispatchPayload(BaseModel):
    """The runner's event file. Everything except the client payload is ignored."""

    action: str | None = None
    client_payload: DispatchEventEnvelope

    model_config = ConfigDict(extra="ignore")
