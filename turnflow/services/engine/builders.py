"""Builder functions for flow graphs.

Usage:
    flow = define_flow(
        root=loop(
            each_participant(
                action_step(["draw", "pass"], max_moves=1),
                **TurnOrder.DEFAULT,
            ),
            while_=lambda ctx: not ctx.get("game_over"),
        ),
    )
"""

from collections.abc import Callable
from typing import Any

from .context import FlowContext
from .nodes import (
    ActionStepNode,
    ConcurrentActionStepNode,
    EachParticipantNode,
    ExecuteNode,
    FlowDefinition,
    ForEachNode,
    IfNode,
    LoopNode,
    PhaseNode,
    SequenceNode,
    SwitchNode,
)


def sequence(*steps: Any) -> SequenceNode:
    return SequenceNode(steps=list(steps))


def named_sequence(name: str, *steps: Any) -> SequenceNode:
    return SequenceNode(name=name, steps=list(steps))


def loop(
    do: Any,
    *,
    while_: Callable[[FlowContext], bool] | None = None,
    max_iterations: int | None = None,
    name: str | None = None,
) -> LoopNode:
    return LoopNode(name=name, condition=while_, max_iterations=max_iterations, body=do)


def repeat(times: int, do: Any, name: str | None = None) -> LoopNode:
    """Run `do` exactly `times` times."""
    return LoopNode(name=name, max_iterations=times, body=do)


def each_participant(
    do: Any,
    *,
    name: str | None = None,
    filter: Callable[[Any, FlowContext], bool] | None = None,
    direction: str = "forward",
    start_from: Callable[[FlowContext], Any] | None = None,
) -> EachParticipantNode:
    return EachParticipantNode(
        name=name,
        filter=filter,
        direction=direction,
        start_from=start_from,
        body=do,
    )


def for_each(
    collection: list[Any] | Callable[[FlowContext], list[Any]],
    variable: str,
    do: Any,
    name: str | None = None,
) -> ForEachNode:
    return ForEachNode(name=name, collection=collection, variable=variable, body=do)


def action_step(
    actions: list[str] | Callable[[FlowContext], list[str]],
    *,
    participant: Callable[[FlowContext], Any] | None = None,
    prompt: str | Callable[[FlowContext], str] | None = None,
    repeat_until: Callable[[FlowContext], bool] | None = None,
    skip_if: Callable[[FlowContext], bool] | None = None,
    timeout: float | None = None,
    min_moves: int | None = None,
    max_moves: int | None = None,
    name: str | None = None,
) -> ActionStepNode:
    return ActionStepNode(
        name=name,
        participant=participant,
        actions=actions,
        prompt=prompt,
        repeat_until=repeat_until,
        skip_if=skip_if,
        timeout=timeout,
        min_moves=min_moves,
        max_moves=max_moves,
    )


def participant_actions(
    actions: list[str] | Callable[[FlowContext], list[str]],
    *,
    prompt: str | Callable[[FlowContext], str] | None = None,
    repeat_until: Callable[[FlowContext], bool] | None = None,
    skip_if: Callable[[FlowContext], bool] | None = None,
    name: str | None = None,
) -> ActionStepNode:
    """Decision point for whichever participant is currently acting."""
    return action_step(
        actions,
        prompt=prompt,
        repeat_until=repeat_until,
        skip_if=skip_if,
        name=name,
    )


def concurrent_action_step(
    actions: list[str] | Callable[[FlowContext, Any], list[str]],
    *,
    participants: Callable[[FlowContext], list[Any]] | None = None,
    prompt: str | Callable[[FlowContext], str] | None = None,
    participant_done: Callable[[FlowContext, Any], bool] | None = None,
    all_done: Callable[[FlowContext], bool] | None = None,
    skip_participant: Callable[[FlowContext, Any], bool] | None = None,
    timeout: float | None = None,
    name: str | None = None,
) -> ConcurrentActionStepNode:
    return ConcurrentActionStepNode(
        name=name,
        participants=participants,
        actions=actions,
        prompt=prompt,
        participant_done=participant_done,
        all_done=all_done,
        skip_participant=skip_participant,
        timeout=timeout,
    )


def switch_on(
    on: Callable[[FlowContext], Any],
    cases: dict[str, Any],
    default: Any = None,
    name: str | None = None,
) -> SwitchNode:
    return SwitchNode(name=name, on=on, cases=cases, default=default)


def if_then(
    condition: Callable[[FlowContext], bool],
    then: Any,
    otherwise: Any = None,
    name: str | None = None,
) -> IfNode:
    return IfNode(name=name, condition=condition, then=then, otherwise=otherwise)


def execute(fn: Callable[[FlowContext], Any], name: str | None = None) -> ExecuteNode:
    return ExecuteNode(name=name, fn=fn)


def set_var(name: str, value: Any) -> ExecuteNode:
    """Bind a flow variable; `value` may be a function of the context."""

    def _set(ctx: FlowContext) -> None:
        ctx.set(name, value(ctx) if callable(value) else value)

    return ExecuteNode(name=f"set {name}", fn=_set)


def phase(name: str, do: Any) -> PhaseNode:
    return PhaseNode(name=name, body=do)


def noop() -> SequenceNode:
    return SequenceNode()


def define_flow(
    root: Any,
    *,
    setup: Callable[[FlowContext], Any] | None = None,
    is_complete: Callable[[FlowContext], bool] | None = None,
    get_winners: Callable[[FlowContext], list[Any]] | None = None,
    on_enter_phase: Callable[[str, FlowContext], Any] | None = None,
    on_exit_phase: Callable[[str, FlowContext], Any] | None = None,
) -> FlowDefinition:
    return FlowDefinition(
        root=root,
        setup=setup,
        is_complete=is_complete,
        get_winners=get_winners,
        on_enter_phase=on_enter_phase,
        on_exit_phase=on_exit_phase,
    )


def _start_from(target: int | Callable[[FlowContext], Any]) -> Callable[[FlowContext], Any]:
    def _start(ctx: FlowContext) -> Any:
        if callable(target):
            return target(ctx)
        return ctx.game.participants.get(target)

    return _start


class TurnOrder:
    """Keyword presets for `each_participant(do, **TurnOrder.REVERSE)`.

    None of them wraps around past the end of the participant list.
    """

    DEFAULT: dict[str, Any] = {"direction": "forward"}
    REVERSE: dict[str, Any] = {"direction": "backward"}
    CONTINUE: dict[str, Any] = {
        "direction": "forward",
        "start_from": lambda ctx: ctx.game.participants.current,
    }
    ACTIVE_ONLY: dict[str, Any] = {
        "direction": "forward",
        "filter": lambda participant, ctx: not participant.attributes.get("eliminated", False),
    }

    @staticmethod
    def start_from(target: int | Callable[[FlowContext], Any]) -> dict[str, Any]:
        return {"direction": "forward", "start_from": _start_from(target)}

    @staticmethod
    def only(indices: list[int]) -> dict[str, Any]:
        allowed = set(indices)
        return {
            "direction": "forward",
            "filter": lambda participant, ctx: participant.index in allowed,
        }
