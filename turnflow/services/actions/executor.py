"""Action executor - choices, validation, execution and the pending protocol.

The executor is stateless between calls. Wire-level arguments (participant
indices, entity ids) are rehydrated with `resolve_args` before anything reads
them, and every failure crossing the boundary is an `ActionResult` or
`SelectionStepResult`, never an exception.
"""

import logging
import math
import re
from typing import Any

from turnflow.schemas.actions import ActionTrace, PendingActionState, RepeatingState

from .availability import is_action_available, trace_action_availability
from .definition import ActionContext, ActionDefinition
from .errors import SelectionFilterError
from .results import ActionResult, SelectionStepResult, ValidationResult
from .selections import (
    ChoiceSelection,
    EntitiesSelection,
    EntitySelection,
    NumberSelection,
    ParticipantSelection,
    Selection,
    TextSelection,
    resolve_multi_select,
)

logger = logging.getLogger(__name__)

_SCALARS = (str, int, float, bool)


def _is_index(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _lookup(obj: Any, key: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(key)
    return getattr(obj, key, None)


def _wrap_filter(fn, selection_name: str):
    """Turn a filter crash on a not-yet-chosen argument into SelectionFilterError."""

    def _filter(item: Any, ctx: ActionContext) -> bool:
        try:
            return bool(fn(item, ctx))
        except (AttributeError, KeyError, TypeError) as e:
            args = ctx.args or {}
            missing = [k for k, v in args.items() if v is None]
            if isinstance(e, KeyError) and e.args and e.args[0] not in args:
                missing.append(str(e.args[0]))
            if missing or not args:
                raise SelectionFilterError(selection_name, missing, e) from e
            raise

    return _filter


class ActionExecutor:
    """Executes action definitions against one game."""

    def __init__(self, game: Any) -> None:
        self.game = game

    def _context(self, participant: Any, args: dict[str, Any]) -> ActionContext:
        return ActionContext(game=self.game, participant=participant, args=args)

    # ------------------------------------------------------------------
    # Argument resolution and choices
    # ------------------------------------------------------------------

    def resolve_args(self, action: ActionDefinition, args: dict[str, Any]) -> dict[str, Any]:
        """Map participant indices and entity ids to live objects.

        Values that are already objects are left untouched, so resolving twice
        gives the same result.
        """
        resolved = dict(args)
        for selection in action.selections:
            value = args.get(selection.name)
            if value is None:
                continue
            if isinstance(selection, ParticipantSelection):
                if _is_index(value):
                    participant = self.game.participants.get(value)
                    if participant is not None:
                        resolved[selection.name] = participant
            elif isinstance(selection, (EntitySelection, EntitiesSelection)):
                if _is_index(value):
                    entity = self.game.get_entity_by_id(value)
                    if entity is not None:
                        resolved[selection.name] = entity
                elif isinstance(value, list):
                    resolved[selection.name] = [self._resolve_entity(v) for v in value]
        return resolved

    def _resolve_entity(self, value: Any) -> Any:
        if not _is_index(value):
            return value
        entity = self.game.get_entity_by_id(value)
        return value if entity is None else entity

    def get_choices(
        self, selection: Selection, participant: Any, args: dict[str, Any]
    ) -> list[Any]:
        """Compute the current valid choices for a selection.

        Text and number selections have no choice list and return [].
        """
        ctx = self._context(participant, args)

        if isinstance(selection, ChoiceSelection):
            if callable(selection.choices):
                choices = list(selection.choices(ctx))
            else:
                choices = list(selection.choices)

            if selection.filter_by is not None:
                key = selection.filter_by.key
                previous = args.get(selection.filter_by.selection_name)
                if previous is not None:
                    if isinstance(previous, _SCALARS):
                        filter_value = previous
                    else:
                        # entity-shaped values fall back to their id
                        filter_value = _lookup(previous, key)
                        if filter_value is None:
                            filter_value = _lookup(previous, "id")
                    choices = [
                        c
                        for c in choices
                        if (c if isinstance(c, _SCALARS) else _lookup(c, key)) == filter_value
                    ]
            return choices

        if isinstance(selection, ParticipantSelection):
            participants = list(self.game.participants)
            if selection.filter is not None:
                wrapped = _wrap_filter(selection.filter, selection.name)
                participants = [p for p in participants if wrapped(p, ctx)]
            return participants

        if isinstance(selection, (EntitySelection, EntitiesSelection)):
            if selection.elements is not None:
                if callable(selection.elements):
                    entities = list(selection.elements(ctx))
                else:
                    entities = list(selection.elements)
                if selection.entity_type is not None:
                    entities = [e for e in entities if e.entity_type == selection.entity_type]
            else:
                scope = selection.scope
                if callable(scope):
                    scope = scope(ctx)
                if scope is None:
                    scope = self.game.root
                entities = scope.all(selection.entity_type)
            if selection.filter is not None:
                wrapped = _wrap_filter(selection.filter, selection.name)
                entities = [e for e in entities if wrapped(e, ctx)]
            return entities

        return []

    def should_skip(
        self, selection: Selection, participant: Any, args: dict[str, Any]
    ) -> tuple[bool, Any]:
        """Return (True, value) when a skip-if-only-one selection has exactly one choice."""
        if not selection.skip_if_only_one:
            return False, None
        choices = self.get_choices(selection, participant, args)
        if len(choices) == 1:
            return True, choices[0]
        return False, None

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate_selection(
        self,
        selection: Selection,
        value: Any,
        participant: Any,
        args: dict[str, Any],
    ) -> ValidationResult:
        """Validate one value against its selection, given the earlier args."""
        errors: list[str] = []
        ctx = self._context(participant, args)

        if isinstance(
            selection,
            (ChoiceSelection, ParticipantSelection, EntitySelection, EntitiesSelection),
        ):
            choices = self.get_choices(selection, participant, args)
            bounds = None
            if isinstance(selection, (ChoiceSelection, EntitiesSelection)):
                bounds = resolve_multi_select(selection, ctx)

            if isinstance(value, list):
                for v in value:
                    if v not in choices:
                        errors.append(f"Invalid selection for {selection.name}: {v!r}")
                if bounds is not None:
                    if len(value) < bounds.min:
                        errors.append(f"{selection.name} requires at least {bounds.min} selections")
                    if bounds.max is not None and len(value) > bounds.max:
                        errors.append(f"{selection.name} allows at most {bounds.max} selections")
            elif bounds is not None:
                errors.append(f"{selection.name} expects a list of selections")
            elif value not in choices:
                errors.append(f"Invalid selection for {selection.name}")

        elif isinstance(selection, TextSelection):
            if not isinstance(value, str):
                errors.append(f"{selection.name} must be a string")
            else:
                if selection.min_length is not None and len(value) < selection.min_length:
                    errors.append(
                        f"{selection.name} must be at least {selection.min_length} characters"
                    )
                if selection.max_length is not None and len(value) > selection.max_length:
                    errors.append(
                        f"{selection.name} must be at most {selection.max_length} characters"
                    )
                if selection.pattern is not None and not re.search(selection.pattern, value):
                    errors.append(f"{selection.name} does not match required pattern")

        elif isinstance(selection, NumberSelection):
            if (
                not isinstance(value, (int, float))
                or isinstance(value, bool)
                or math.isnan(value)
            ):
                errors.append(f"{selection.name} must be a number")
            else:
                if selection.min is not None and value < selection.min:
                    errors.append(f"{selection.name} must be at least {_fmt(selection.min)}")
                if selection.max is not None and value > selection.max:
                    errors.append(f"{selection.name} must be at most {_fmt(selection.max)}")
                if selection.integer and not float(value).is_integer():
                    errors.append(f"{selection.name} must be an integer")

        if selection.validator is not None and not errors:
            result = selection.validator(value, ctx)
            if result is not True:
                errors.append(result if isinstance(result, str) else f"Invalid {selection.name}")

        if errors:
            return ValidationResult.error(*errors)
        return ValidationResult.ok()

    def validate_action(
        self,
        action: ActionDefinition,
        participant: Any,
        args: dict[str, Any],
    ) -> ValidationResult:
        """Validate a complete argument set; each selection sees only earlier args."""
        if action.condition is not None and not action.condition(self._context(participant, args)):
            return ValidationResult.error("Action is not available")

        errors: list[str] = []
        prior: dict[str, Any] = {}
        for selection in action.selections:
            value = args.get(selection.name)
            if value is None:
                if not selection.optional:
                    errors.append(f"Missing required selection: {selection.name}")
                continue
            result = self.validate_selection(selection, value, participant, prior)
            errors.extend(result.errors)
            prior[selection.name] = value

        if errors:
            return ValidationResult.error(*errors)
        return ValidationResult.ok()

    # ------------------------------------------------------------------
    # Availability
    # ------------------------------------------------------------------

    def is_action_available(self, action: ActionDefinition, participant: Any) -> bool:
        return is_action_available(self, action, participant)

    def trace_action_availability(self, action: ActionDefinition, participant: Any) -> ActionTrace:
        return trace_action_availability(self, action, participant)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def execute_action(
        self,
        action: ActionDefinition,
        participant: Any,
        args: dict[str, Any],
    ) -> ActionResult:
        """Resolve, validate and run an action's effect.

        Returns:
            ActionResult; a failure leaves everything except side effects the
            effect applied before raising untouched.
        """
        resolved = self.resolve_args(action, args)
        try:
            if action.condition is not None and not action.condition(
                self._context(participant, resolved)
            ):
                return ActionResult.failure(
                    "ACTION_NOT_AVAILABLE", f"Action {action.name} is not available"
                )
            validation = self.validate_action(action, participant, resolved)
        except SelectionFilterError as e:
            logger.warning("Selection filter failed: action=%s, error=%s", action.name, e)
            return ActionResult.failure("INVALID_ARGS", str(e))

        if not validation.is_valid:
            logger.warning(
                "Action validation failed: action=%s, errors=%s",
                action.name,
                validation.errors,
            )
            return ActionResult.failure("INVALID_ARGS", *validation.errors)

        return self._run_effect(action, participant, resolved)

    def _run_effect(
        self, action: ActionDefinition, participant: Any, resolved: dict[str, Any]
    ) -> ActionResult:
        if action.effect is None:
            return ActionResult.ok()
        ctx = self._context(participant, resolved)
        try:
            result = action.effect(resolved, ctx)
        except Exception as e:
            logger.error("Action effect raised: action=%s, error=%s", action.name, e)
            return ActionResult.failure("EFFECT_FAILED", str(e))
        if isinstance(result, ActionResult):
            return result
        return ActionResult.ok()

    # ------------------------------------------------------------------
    # Pending (step-by-step) protocol
    # ------------------------------------------------------------------

    def create_pending_action_state(
        self, action_name: str, participant_index: int
    ) -> PendingActionState:
        return PendingActionState(action_name=action_name, participant=participant_index)

    def process_selection_step(
        self,
        action: ActionDefinition,
        participant: Any,
        pending: PendingActionState,
        selection_name: str,
        value: Any,
    ) -> SelectionStepResult:
        """Validate and record one selection of a pending action.

        The value is stored in wire form; it is only resolved for validation.
        Repeating selections are forwarded to `process_repeating_step`.
        """
        index = action.selection_index(selection_name)
        if index == -1:
            return SelectionStepResult.failure(
                "UNKNOWN_SELECTION", f"Selection {selection_name} not found"
            )
        if index != pending.current_selection_index:
            return SelectionStepResult.failure(
                "SELECTION_OUT_OF_ORDER",
                f"Expected selection at index {pending.current_selection_index}, "
                f"got {selection_name} at index {index}",
            )

        selection = action.selections[index]
        if isinstance(selection, ChoiceSelection) and selection.is_repeating:
            return self.process_repeating_step(action, participant, pending, value)

        resolved = self.resolve_args(action, pending.collected_args)
        resolved_value = self.resolve_args(action, {selection_name: value})[selection_name]
        try:
            validation = self.validate_selection(selection, resolved_value, participant, resolved)
        except SelectionFilterError as e:
            return SelectionStepResult.failure("INVALID_ARGS", str(e))
        if not validation.is_valid:
            logger.warning(
                "Selection rejected: action=%s, selection=%s, errors=%s",
                action.name,
                selection_name,
                validation.errors,
            )
            return SelectionStepResult.failure("INVALID_CHOICE", *validation.errors)

        pending.collected_args[selection_name] = value
        pending.current_selection_index += 1
        logger.debug(
            "Selection recorded: action=%s, selection=%s, next_index=%d",
            action.name,
            selection_name,
            pending.current_selection_index,
        )
        return SelectionStepResult.ok(done=True)

    def process_repeating_step(
        self,
        action: ActionDefinition,
        participant: Any,
        pending: PendingActionState,
        value: Any,
    ) -> SelectionStepResult:
        """Accept one pick of a repeating selection.

        Returns done=True once the selection is committed into
        `collected_args`, otherwise done=False with the refreshed choices.
        """
        index = pending.current_selection_index
        if index >= len(action.selections):
            return SelectionStepResult.failure(
                "SELECTION_OUT_OF_ORDER", f"No selection at index {index}", done=True
            )
        selection = action.selections[index]
        if not isinstance(selection, ChoiceSelection) or not selection.is_repeating:
            return SelectionStepResult.failure(
                "INVALID_CHOICE", f"Selection {selection.name} is not repeating", done=True
            )

        if pending.repeating is None:
            pending.repeating = RepeatingState(selection_name=selection.name)
        repeating = pending.repeating

        resolved = self.resolve_args(action, pending.collected_args)
        ctx = self._context(participant, {**resolved, selection.name: list(repeating.accumulated)})
        current = self.get_choices(selection, participant, ctx.args)
        if value not in current:
            return SelectionStepResult.failure(
                "INVALID_CHOICE", f"Invalid choice: {value!r}", next_choices=current
            )

        repeating.accumulated.append(value)
        repeating.iteration_count += 1
        ctx.args[selection.name] = list(repeating.accumulated)

        if selection.repeat is not None and selection.repeat.on_each is not None:
            try:
                selection.repeat.on_each(ctx, value)
            except Exception as e:
                logger.error(
                    "Repeat hook raised: action=%s, selection=%s, error=%s",
                    action.name,
                    selection.name,
                    e,
                )
                repeating.accumulated.pop()
                repeating.iteration_count -= 1
                return SelectionStepResult.failure("EFFECT_FAILED", str(e), next_choices=current)

        done = False
        if selection.repeat_until is not None:
            done = value == selection.repeat_until
        elif selection.repeat is not None and selection.repeat.until is not None:
            try:
                done = bool(selection.repeat.until(ctx, value))
            except Exception as e:
                logger.error(
                    "Repeat predicate raised: action=%s, selection=%s, error=%s",
                    action.name,
                    selection.name,
                    e,
                )
                repeating.accumulated.pop()
                repeating.iteration_count -= 1
                return SelectionStepResult.failure("EFFECT_FAILED", str(e), next_choices=current)

        if index not in pending.picked_selections:
            pending.picked_selections.append(index)

        if done:
            self._commit_repeating(pending)
            return SelectionStepResult.ok(done=True)

        resolved = self.resolve_args(action, pending.collected_args)
        next_choices = self.get_choices(
            selection, participant, {**resolved, selection.name: list(repeating.accumulated)}
        )
        if not next_choices:
            self._commit_repeating(pending)
            return SelectionStepResult.ok(done=True)

        return SelectionStepResult.ok(done=False, next_choices=next_choices)

    def _commit_repeating(self, pending: PendingActionState) -> None:
        repeating = pending.repeating
        pending.collected_args[repeating.selection_name] = list(repeating.accumulated)
        pending.repeating = None
        pending.current_selection_index += 1
        logger.debug(
            "Repeating selection committed: selection=%s, picks=%d",
            repeating.selection_name,
            repeating.iteration_count,
        )

    def is_pending_action_complete(
        self, action: ActionDefinition, pending: PendingActionState
    ) -> bool:
        return (
            pending.current_selection_index >= len(action.selections)
            and pending.repeating is None
        )

    def execute_pending_action(
        self,
        action: ActionDefinition,
        participant: Any,
        pending: PendingActionState,
    ) -> ActionResult:
        if not self.is_pending_action_complete(action, pending):
            return ActionResult.failure("ACTION_INCOMPLETE", "Action is not complete")
        resolved = self.resolve_args(action, pending.collected_args)
        return self._run_effect(action, participant, resolved)

    def cancel_pending_action(
        self,
        action: ActionDefinition,
        participant: Any,
        pending: PendingActionState,
    ) -> ActionResult:
        """Fire cancel hooks for repeating selections that received a pick.

        Each hook fires at most once; the pending state is left with no
        fired hooks and no in-flight repeat.
        """
        errors: list[str] = []
        resolved = self.resolve_args(action, pending.collected_args)
        if pending.repeating is not None:
            resolved[pending.repeating.selection_name] = list(pending.repeating.accumulated)
        ctx = self._context(participant, resolved)

        for index in sorted(pending.picked_selections):
            selection = action.selections[index]
            if not isinstance(selection, ChoiceSelection) or selection.repeat is None:
                continue
            if selection.repeat.on_cancel is None:
                continue
            try:
                selection.repeat.on_cancel(ctx)
            except Exception as e:
                logger.error(
                    "Cancel hook raised: action=%s, selection=%s, error=%s",
                    action.name,
                    selection.name,
                    e,
                )
                errors.append(str(e))

        pending.picked_selections.clear()
        pending.repeating = None
        if errors:
            return ActionResult.failure("EFFECT_FAILED", *errors)
        return ActionResult.ok()


def _fmt(number: float) -> str:
    return str(int(number)) if float(number).is_integer() else str(number)
