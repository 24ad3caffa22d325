"""Flow node types - the declarative graph a flow engine interprets.

Nodes form a closed union discriminated by `node_type`. They are frozen once
built and may be shared by every engine running the same definition. Node
objects are never serialized; a stored position is replayed against the
definition with `child_at`.
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from .errors import FlowRestoreError


class _Node(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str | None = None


class SequenceNode(_Node):
    """Run steps in order."""

    node_type: Literal["sequence"] = "sequence"
    steps: list["FlowNode"] = Field(default_factory=list)


class LoopNode(_Node):
    """Re-run `body` while `condition(ctx)` holds, up to `max_iterations`.

    With no `max_iterations` the engine's default loop ceiling applies.
    """

    node_type: Literal["loop"] = "loop"
    condition: Callable[..., bool] | None = None
    max_iterations: int | None = Field(None, ge=0)
    body: "FlowNode"


class EachParticipantNode(_Node):
    """Run `body` once per participant.

    `name` is the variable the current participant is bound to (default
    `current_participant`). With `start_from`, iteration begins at that
    participant and stops at the end of the list without wrapping around.
    """

    node_type: Literal["each_participant"] = "each_participant"
    filter: Callable[..., bool] | None = None
    direction: Literal["forward", "backward"] = "forward"
    start_from: Callable[..., Any] | None = None
    body: "FlowNode"


class ForEachNode(_Node):
    """Run `body` once per item, binding each item to `variable`."""

    node_type: Literal["for_each"] = "for_each"
    collection: list[Any] | Callable[..., list[Any]]
    variable: str
    body: "FlowNode"


class ActionStepNode(_Node):
    """Decision point: suspend until the acting participant performs an action.

    The step completes after one move unless `min_moves`, `max_moves` or
    `repeat_until` say otherwise. `max_moves` is an absolute cap;
    `repeat_until` only ends the step once `min_moves` is met.
    """

    node_type: Literal["action_step"] = "action_step"
    participant: Callable[..., Any] | None = None
    actions: list[str] | Callable[..., list[str]]
    prompt: str | Callable[..., str] | None = None
    repeat_until: Callable[..., bool] | None = None
    skip_if: Callable[..., bool] | None = None
    timeout: float | None = None
    min_moves: int | None = Field(None, ge=0)
    max_moves: int | None = Field(None, ge=1)


class ConcurrentActionStepNode(_Node):
    """Decision window several participants may act in, in any order.

    `actions` is a list or `fn(ctx, participant)`. The window completes when
    `all_done(ctx)` holds or every tracked participant is done, either by
    `participant_done(ctx, participant)` or by running out of actions.
    """

    node_type: Literal["concurrent_action_step"] = "concurrent_action_step"
    participants: Callable[..., list[Any]] | None = None
    actions: list[str] | Callable[..., list[str]]
    prompt: str | Callable[..., str] | None = None
    participant_done: Callable[..., bool] | None = None
    all_done: Callable[..., bool] | None = None
    skip_participant: Callable[..., bool] | None = None
    timeout: float | None = None


class SwitchNode(_Node):
    """Run the case whose key equals `str(on(ctx))`, else `default`."""

    node_type: Literal["switch"] = "switch"
    on: Callable[..., Any]
    cases: dict[str, "FlowNode"]
    default: "FlowNode | None" = None


class IfNode(_Node):
    node_type: Literal["if"] = "if"
    condition: Callable[..., bool]
    then: "FlowNode"
    otherwise: "FlowNode | None" = None


class ExecuteNode(_Node):
    """Run `fn(ctx)` for its side effects; variable changes are kept."""

    node_type: Literal["execute"] = "execute"
    fn: Callable[..., Any]


class PhaseNode(_Node):
    """Named phase wrapping `body`; enter/exit hooks fire around it."""

    node_type: Literal["phase"] = "phase"
    name: str
    body: "FlowNode"


# Union type for all flow nodes
FlowNode = Annotated[
    SequenceNode
    | LoopNode
    | EachParticipantNode
    | ForEachNode
    | ActionStepNode
    | ConcurrentActionStepNode
    | SwitchNode
    | IfNode
    | ExecuteNode
    | PhaseNode,
    Field(discriminator="node_type"),
]

for _model in (
    SequenceNode,
    LoopNode,
    EachParticipantNode,
    ForEachNode,
    ActionStepNode,
    ConcurrentActionStepNode,
    SwitchNode,
    IfNode,
    ExecuteNode,
    PhaseNode,
):
    _model.model_rebuild()


def child_at(node: Any, index: int) -> Any:
    """Return the child a frame of `node` pushes for `index`.

    Sequence: the step at `index`. Loop, per-participant, for-each and
    phase: 0 is the body. If: 0 is `then`, 1 is `otherwise`. Switch: the
    case at `index` in definition order, `len(cases)` is `default`.

    Raises:
        FlowRestoreError: `index` names no child of `node`.
    """
    if isinstance(node, SequenceNode):
        if 0 <= index < len(node.steps):
            return node.steps[index]
    elif isinstance(node, (LoopNode, EachParticipantNode, ForEachNode, PhaseNode)):
        if index == 0:
            return node.body
    elif isinstance(node, IfNode):
        if index == 0:
            return node.then
        if index == 1 and node.otherwise is not None:
            return node.otherwise
    elif isinstance(node, SwitchNode):
        cases = list(node.cases.values())
        if 0 <= index < len(cases):
            return cases[index]
        if index == len(cases) and node.default is not None:
            return node.default
    else:
        raise FlowRestoreError(f"{node.node_type} node has no children (index {index})")

    raise FlowRestoreError(f"Child index {index} is out of range for {node.node_type} node")


@dataclass
class FlowDefinition:
    """A flow graph plus the game-level hooks around it."""

    root: Any
    setup: Callable[..., Any] | None = None
    is_complete: Callable[..., bool] | None = None
    get_winners: Callable[..., list[Any]] | None = None
    on_enter_phase: Callable[[str, Any], Any] | None = None
    on_exit_phase: Callable[[str, Any], Any] | None = None
