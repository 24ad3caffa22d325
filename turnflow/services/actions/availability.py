"""Availability of actions - can this action be invoked right now?

An action is available when its condition holds and every required selection
can be filled. Only static choice selections that a later selection filters
on are searched value by value; every other selection is checked for a
non-empty choice set at the current partial arguments. That keeps the cost of
expensive dynamic choice functions and entity searches to one evaluation each
while still answering the "pick a category, then an item in that category"
pattern exactly.
"""

import logging
from typing import TYPE_CHECKING, Any

from turnflow.schemas.actions import ActionTrace, SelectionTrace

from .definition import ActionContext, ActionDefinition, ConditionTracer
from .errors import SelectionFilterError
from .selections import ChoiceSelection, NumberSelection, Selection, TextSelection

if TYPE_CHECKING:
    from .executor import ActionExecutor

logger = logging.getLogger(__name__)


def _has_dependent_selection(selections: list[Selection], after: int, name: str) -> bool:
    for selection in selections[after:]:
        if (
            isinstance(selection, ChoiceSelection)
            and selection.filter_by is not None
            and selection.filter_by.selection_name == name
        ):
            return True
    return False


def has_valid_selection_path(
    executor: "ActionExecutor",
    selections: list[Selection],
    participant: Any,
    args: dict[str, Any],
    index: int = 0,
) -> bool:
    """Check that selections[index:] can all be filled given `args`.

    Branches (first fit) only over static choice selections with a dependent
    later selection.
    """
    while index < len(selections):
        selection = selections[index]

        if selection.optional or isinstance(selection, (TextSelection, NumberSelection)):
            index += 1
            continue

        choices = executor.get_choices(selection, participant, args)
        if not choices:
            logger.debug("Selection has no choices: selection=%s", selection.name)
            return False

        if not isinstance(selection, ChoiceSelection) or not selection.has_static_choices:
            index += 1
            continue

        if not _has_dependent_selection(selections, index + 1, selection.name):
            index += 1
            continue

        return any(
            has_valid_selection_path(
                executor, selections, participant, {**args, selection.name: choice}, index + 1
            )
            for choice in choices
        )

    return True


def is_action_available(
    executor: "ActionExecutor", action: ActionDefinition, participant: Any
) -> bool:
    """Decide whether `participant` could perform `action` now.

    Raises:
        SelectionFilterError: A filter crashed reading an earlier selection.
    """
    ctx = ActionContext(game=executor.game, participant=participant, args={})
    if action.condition is not None and not action.condition(ctx):
        logger.debug("Action condition failed: action=%s", action.name)
        return False

    available = has_valid_selection_path(executor, action.selections, participant, {})
    logger.debug("Action availability: action=%s, available=%s", action.name, available)
    return available


def trace_action_availability(
    executor: "ActionExecutor", action: ActionDefinition, participant: Any
) -> ActionTrace:
    """Explain why an action is or is not available, without side effects.

    Selection entries are recorded in order up to the first blocker. The
    `available` verdict is the same one `is_action_available` gives.
    """
    trace = ActionTrace(action_name=action.name)

    if action.condition is not None:
        tracer = ConditionTracer()
        ctx = ActionContext(game=executor.game, participant=participant, args={}, tracer=tracer)
        try:
            trace.condition_result = bool(action.condition(ctx))
        except Exception as e:
            trace.condition_error = str(e)
            return trace
        details = tracer.details
        if details:
            trace.condition_details = details
        if not trace.condition_result:
            message = action.condition_message
            if callable(message):
                message = message(ActionContext(game=executor.game, participant=participant))
            trace.condition_message = message
            return trace
    else:
        trace.condition_result = True

    args: dict[str, Any] = {}
    for selection in action.selections:
        entry = SelectionTrace(
            name=selection.name, kind=selection.kind, optional=selection.optional
        )
        trace.selections.append(entry)

        if isinstance(selection, ChoiceSelection):
            entry.filter_applied = selection.filter_by is not None
            entry.depends_on = selection.depends_on or (
                selection.filter_by.selection_name if selection.filter_by else None
            )
        elif hasattr(selection, "depends_on"):
            entry.depends_on = selection.depends_on

        if isinstance(selection, (TextSelection, NumberSelection)):
            entry.choice_count = -1
            continue

        try:
            choices = executor.get_choices(selection, participant, args)
        except SelectionFilterError as e:
            entry.error = str(e)
            return trace

        entry.choice_count = len(choices)
        if selection.skip_if_only_one and len(choices) == 1:
            entry.skipped = True
            args[selection.name] = choices[0]
            continue
        if selection.optional:
            continue
        if not choices:
            return trace

    try:
        trace.available = has_valid_selection_path(
            executor, action.selections, participant, {}
        )
    except SelectionFilterError as e:
        if trace.selections:
            trace.selections[-1].error = str(e)
    return trace
