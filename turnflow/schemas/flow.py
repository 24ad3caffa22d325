from typing import Any

from pydantic import BaseModel, Field


# Serializable continuation of a flow engine.
# Restoring replays `path` against the flow definition; node objects are never stored.
class FlowPosition(BaseModel):
    path: list[int] = []
    iterations: dict[int, int] = Field(
        default_factory=dict, description="Loop iteration counter keyed by stack depth"
    )
    participant_index: int | None = None
    variables: dict[str, Any] = {}
    frame_data: dict[int, dict[str, Any]] = Field(
        default_factory=dict, description="Per-depth frame progress snapshot"
    )


class ParticipantAwaitingState(BaseModel):
    participant_index: int
    available_actions: list[str]
    completed: bool = False


class FlowState(BaseModel):
    """Externally observable snapshot of a flow engine.

    `action_error` and `follow_up` are only populated on the snapshot returned
    by the call that produced them; they are not part of the engine's state.
    """

    position: FlowPosition
    complete: bool = False
    awaiting_input: bool = False
    current_participant: int | None = None
    available_actions: list[str] | None = None
    prompt: str | None = None
    awaiting_participants: list[ParticipantAwaitingState] | None = None
    current_phase: str | None = None
    move_count: int | None = None
    moves_remaining: int | None = None
    moves_required: int | None = None
    timeout: float | None = None
    action_error: str | None = None
    follow_up: dict[str, Any] | None = None
