"""Action module - participant-facing operations and their selections.

This module provides:
- Selection types (closed union discriminated by `kind`)
- ActionDefinition and the fluent Action builder
- ActionExecutor for choices, validation, availability and execution
- The pending (step-by-step) selection protocol
- Result types replacing exceptions at the action boundary

Usage:
    from turnflow.services.actions import Action, ActionExecutor

    play = (
        Action.create("play")
        .choose_from("color", ["red", "blue"])
        .execute(lambda args, ctx: None)
    )
    executor = ActionExecutor(game)
    if executor.is_action_available(play, participant):
        result = executor.execute_action(play, participant, {"color": "red"})
"""

# Availability
from .availability import (
    has_valid_selection_path,
    is_action_available,
    trace_action_availability,
)

# Definitions
from .definition import Action, ActionContext, ActionDefinition, ConditionTracer

# Errors
from .errors import SelectionFilterError

# Executor
from .executor import ActionExecutor

# Filter helpers
from .helpers import all_of, any_of, dependent_filter, exclude_already_selected, negate

# Result types
from .results import ActionResult, SelectionStepResult, ValidationResult

# Selections
from .selections import (
    ChoiceSelection,
    DependentFilter,
    EntitiesSelection,
    EntitySelection,
    MultiSelectConfig,
    NumberSelection,
    ParticipantSelection,
    RepeatConfig,
    Selection,
    TextSelection,
    resolve_multi_select,
)

__all__ = [
    # Definitions
    "Action",
    "ActionContext",
    "ActionDefinition",
    "ConditionTracer",
    # Selections
    "Selection",
    "ChoiceSelection",
    "ParticipantSelection",
    "EntitySelection",
    "EntitiesSelection",
    "TextSelection",
    "NumberSelection",
    "DependentFilter",
    "MultiSelectConfig",
    "RepeatConfig",
    "resolve_multi_select",
    # Executor
    "ActionExecutor",
    "SelectionFilterError",
    # Availability
    "is_action_available",
    "has_valid_selection_path",
    "trace_action_availability",
    # Helpers
    "dependent_filter",
    "exclude_already_selected",
    "all_of",
    "any_of",
    "negate",
    # Results
    "ActionResult",
    "ValidationResult",
    "SelectionStepResult",
]
