from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


# Lifecycle of a repeating selection inside a pending action
class RepeatStatus(str, Enum):
    NOT_STARTED = "not_started"
    REPEATING = "repeating"
    COMMITTED = "committed"


class RepeatingState(BaseModel):
    selection_name: str
    accumulated: list[Any] = []
    iteration_count: int = 0


class PendingActionState(BaseModel):
    """Wire state for an action whose selections arrive one at a time.

    `collected_args` holds wire-level values (participant indices, entity ids,
    plain choice values) so the state stays JSON-serializable.
    """

    action_name: str
    participant: int
    collected_args: dict[str, Any] = {}
    current_selection_index: int = 0
    repeating: RepeatingState | None = None
    picked_selections: list[int] = Field(
        default_factory=list,
        description="Selection indices that received at least one accepted pick",
    )

    def repeat_status(self, selection_index: int) -> RepeatStatus:
        if selection_index < self.current_selection_index:
            return RepeatStatus.COMMITTED
        if selection_index == self.current_selection_index and self.repeating is not None:
            return RepeatStatus.REPEATING
        return RepeatStatus.NOT_STARTED


class ConditionDetail(BaseModel):
    label: str
    value: Any = None
    passed: bool
    children: list["ConditionDetail"] | None = None


class SelectionTrace(BaseModel):
    name: str
    kind: str
    choice_count: int = Field(0, description="-1 marks free input (text/number)")
    optional: bool = False
    filter_applied: bool = False
    depends_on: str | None = None
    skipped: bool = False
    error: str | None = None


class ActionTrace(BaseModel):
    action_name: str
    available: bool = False
    condition_result: bool | None = None
    condition_message: str | None = None
    condition_details: list[ConditionDetail] | None = None
    condition_error: str | None = None
    selections: list[SelectionTrace] = []
