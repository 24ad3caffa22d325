"""Flow engine module - resumable turn sequencing.

This module provides:
- Flow node types and builder functions for declaring a flow graph
- TurnOrder presets for per-participant iteration
- FlowEngine, the stack-based interpreter with position save/restore
- Fatal error types for flow-definition and persisted-data bugs

Usage:
    from turnflow.services.engine import (
        FlowEngine,
        action_step,
        define_flow,
        each_participant,
    )

    engine = FlowEngine(game, define_flow(each_participant(action_step(["draw", "pass"]))))
    state = engine.start()

    if state.awaiting_input:
        state = engine.resume("draw", {})
        if state.action_error:
            print(f"Rejected: {state.action_error}")
"""

# Builders
from .builders import (
    TurnOrder,
    action_step,
    concurrent_action_step,
    define_flow,
    each_participant,
    execute,
    for_each,
    if_then,
    loop,
    named_sequence,
    noop,
    participant_actions,
    phase,
    repeat,
    sequence,
    set_var,
    switch_on,
)

# Context
from .context import FlowContext, Frame

# Errors
from .errors import (
    FlowDefinitionError,
    FlowError,
    FlowIterationLimitError,
    FlowNotAwaitingError,
    FlowRestoreError,
)

# Interpreter
from .flow import FlowEngine

# Nodes
from .nodes import (
    ActionStepNode,
    ConcurrentActionStepNode,
    EachParticipantNode,
    ExecuteNode,
    FlowDefinition,
    FlowNode,
    ForEachNode,
    IfNode,
    LoopNode,
    PhaseNode,
    SequenceNode,
    SwitchNode,
    child_at,
)

__all__ = [
    # Interpreter
    "FlowEngine",
    "FlowContext",
    "Frame",
    # Nodes
    "FlowNode",
    "FlowDefinition",
    "SequenceNode",
    "LoopNode",
    "EachParticipantNode",
    "ForEachNode",
    "ActionStepNode",
    "ConcurrentActionStepNode",
    "SwitchNode",
    "IfNode",
    "ExecuteNode",
    "PhaseNode",
    "child_at",
    # Builders
    "sequence",
    "named_sequence",
    "loop",
    "repeat",
    "each_participant",
    "for_each",
    "action_step",
    "participant_actions",
    "concurrent_action_step",
    "switch_on",
    "if_then",
    "execute",
    "set_var",
    "phase",
    "noop",
    "define_flow",
    "TurnOrder",
    # Errors
    "FlowError",
    "FlowIterationLimitError",
    "FlowRestoreError",
    "FlowNotAwaitingError",
    "FlowDefinitionError",
]
