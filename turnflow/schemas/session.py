from pydantic import BaseModel

from .actions import PendingActionState
from .flow import FlowPosition


class SessionCheckpoint(BaseModel):
    """Everything a session needs to pick a game back up.

    Game state itself (entities, participant attributes) belongs to the game
    and is stored by the caller.
    """

    position: FlowPosition
    pending_actions: dict[int, PendingActionState] = {}
