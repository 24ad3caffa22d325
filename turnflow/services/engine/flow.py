"""Flow engine - a resumable interpreter over an explicit frame stack.

The engine runs nodes until a decision point suspends it, accepts one action
per `resume()` call, and can hand out its exact continuation as a
`FlowPosition`. Callers must serialize calls against one engine; distinct
engines share nothing.
"""

import copy
import logging
from typing import Any

from turnflow.config import Settings, get_settings
from turnflow.schemas.flow import FlowPosition, FlowState, ParticipantAwaitingState
from turnflow.services.actions import ActionResult
from turnflow.services.game import Entity, Game, Participant

from .context import FlowContext, Frame
from .errors import (
    FlowDefinitionError,
    FlowIterationLimitError,
    FlowNotAwaitingError,
    FlowRestoreError,
)
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
    child_at,
)

logger = logging.getLogger(__name__)

DEFAULT_PARTICIPANT_VARIABLE = "current_participant"


class FlowEngine:
    """Interprets one flow definition for one game."""

    def __init__(
        self,
        game: Game,
        definition: FlowDefinition,
        max_iterations: int | None = None,
        loop_max_iterations: int | None = None,
        settings: Settings | None = None,
    ) -> None:
        settings = settings or get_settings()
        self.game = game
        self.definition = definition
        self.max_iterations = max_iterations or settings.FLOW_MAX_ITERATIONS
        self.loop_max_iterations = loop_max_iterations or settings.LOOP_MAX_ITERATIONS
        self.warn_unknown_actions = settings.WARN_UNKNOWN_ACTIONS

        self._stack: list[Frame] = []
        self._variables: dict[str, Any] = {}
        self._current_participant: Participant | None = None
        self._awaiting = False
        self._complete = False
        self._current_phase: str | None = None
        self._last_action_result: ActionResult | None = None
        self._warned_unknown: set[str] = set()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def start(self) -> FlowState:
        """Run setup, seed the stack with the root and run to the first decision."""
        self._current_participant = self.game.participants.current
        self._variables = {}
        self._current_phase = None
        self._last_action_result = None
        self._awaiting = False
        self._complete = False

        if self.definition.setup is not None:
            ctx = self._context()
            self.definition.setup(ctx)
            self._variables = dict(ctx.variables)

        self._stack = [Frame(node=self.definition.root)]
        logger.info("Flow started: participants=%d", len(self.game.participants))
        return self.run()

    def run(self) -> FlowState:
        """Execute nodes until the flow suspends or completes."""
        iterations = 0
        while self._stack and not self._awaiting and not self._complete:
            iterations += 1
            if iterations > self.max_iterations:
                logger.error("Flow iteration ceiling hit: limit=%d", self.max_iterations)
                raise FlowIterationLimitError(
                    self.max_iterations,
                    [f"{depth}: {frame.describe()}" for depth, frame in enumerate(self._stack)],
                )

            frame = self._stack[-1]
            if frame.completed:
                self._stack.pop()
                continue

            self._execute(frame)

            if self._awaiting:
                break

            if frame.completed:
                self._stack.pop()

            if self._check_complete():
                self._complete = True
                break

        if not self._complete and (not self._stack or self._check_complete()):
            self._complete = True
        if self._complete:
            if self._awaiting:
                self._awaiting = False
            logger.info("Flow complete")

        return self.get_state()

    def resume(
        self,
        action_name: str,
        args: dict[str, Any] | None = None,
        participant_index: int | None = None,
    ) -> FlowState:
        """Perform an action at the suspended decision point and continue.

        A rejected or failed action changes nothing; the returned state carries
        the error in `action_error`.

        Raises:
            FlowNotAwaitingError: The flow is not suspended.
        """
        if not self._awaiting:
            raise FlowNotAwaitingError("Flow is not awaiting input")

        args = args or {}
        frame = self._stack[-1]
        if isinstance(frame.node, ConcurrentActionStepNode):
            return self._resume_concurrent(frame, action_name, args, participant_index)

        participant = self._current_participant
        if participant_index is not None and participant_index != participant.index:
            return self._rejected(
                ActionResult.failure(
                    "NOT_YOUR_TURN",
                    f"Participant {participant_index} is not the acting participant",
                )
            )
        allowed = frame.data.get("actions", [])
        if action_name not in allowed and action_name != frame.data.get("follow_up"):
            return self._rejected(
                ActionResult.failure(
                    "ACTION_NOT_AVAILABLE",
                    f"Action {action_name} is not available for participant {participant.index}",
                )
            )

        logger.info(
            "Resuming flow: action=%s, participant=%d",
            action_name,
            participant.index,
        )
        result = self.game.perform_action(action_name, participant, args)
        return self._apply_action_result(frame, result)

    def resume_after_external_action(
        self,
        result: ActionResult,
        participant_index: int | None = None,
    ) -> FlowState:
        """Apply decision-point bookkeeping for an action performed elsewhere.

        Used after the pending-action protocol executed the action itself.

        Raises:
            FlowNotAwaitingError: The flow is not suspended.
        """
        if not self._awaiting:
            raise FlowNotAwaitingError("Flow is not awaiting input")

        frame = self._stack[-1]
        if isinstance(frame.node, ConcurrentActionStepNode):
            if not result.success:
                return self._rejected(result)
            entry = self._concurrent_entry(frame, participant_index)
            if entry is None:
                return self._rejected(
                    ActionResult.failure(
                        "NO_AWAITING_PARTICIPANT", "No participant is awaiting an action"
                    )
                )
            self._last_action_result = result
            participant = self.game.participants.get(entry["index"])
            return self._after_concurrent_action(frame, entry, participant)

        return self._apply_action_result(frame, result)

    def get_state(self) -> FlowState:
        state = FlowState(
            position=self.get_position(),
            complete=self._complete,
            awaiting_input=self._awaiting,
            current_participant=(
                self._current_participant.index if self._current_participant else None
            ),
            current_phase=self._current_phase,
        )
        if not self._awaiting or not self._stack:
            return state

        frame = self._stack[-1]
        node = frame.node
        state.prompt = frame.data.get("prompt")
        state.timeout = node.timeout
        if isinstance(node, ActionStepNode):
            state.available_actions = list(frame.data.get("actions", []))
            follow_up = frame.data.get("follow_up")
            if follow_up is not None and follow_up not in state.available_actions:
                state.available_actions.append(follow_up)
            if node.min_moves is not None or node.max_moves is not None:
                move_count = frame.data.get("move_count", 0)
                state.move_count = move_count
                if node.max_moves is not None:
                    state.moves_remaining = node.max_moves - move_count
                if node.min_moves is not None:
                    state.moves_required = max(0, node.min_moves - move_count)
        elif isinstance(node, ConcurrentActionStepNode):
            state.awaiting_participants = [
                ParticipantAwaitingState(
                    participant_index=entry["index"],
                    available_actions=list(entry["actions"]),
                    completed=entry["completed"],
                )
                for entry in frame.data.get("participants", [])
            ]
        return state

    def get_position(self) -> FlowPosition:
        path: list[int] = []
        iterations: dict[int, int] = {}
        frame_data: dict[int, dict[str, Any]] = {}
        for depth, frame in enumerate(self._stack):
            path.append(frame.child_index)
            data = copy.deepcopy(frame.data)
            if "iteration" in data:
                iterations[depth] = data.pop("iteration")
            if data:
                frame_data[depth] = data

        return FlowPosition(
            path=path,
            iterations=iterations,
            participant_index=(
                self._current_participant.index if self._current_participant else None
            ),
            variables=self._encode(self._variables),
            frame_data=frame_data,
        )

    def restore(self, position: FlowPosition | dict[str, Any]) -> None:
        """Rebuild the frame stack by replaying `position.path` against the definition.

        Raises:
            FlowRestoreError: The path does not fit the current definition.
        """
        if not isinstance(position, FlowPosition):
            position = FlowPosition.model_validate(position)

        stack: list[Frame] = []
        node = self.definition.root
        last = len(position.path) - 1
        for depth, index in enumerate(position.path):
            data = copy.deepcopy(position.frame_data.get(depth, {}))
            if depth in position.iterations:
                data["iteration"] = position.iterations[depth]
            stack.append(Frame(node=node, child_index=index, data=data))
            if depth < last:
                node = child_at(node, index)

        top = stack[-1] if stack else None
        # 0 is also the index of a frame that has not pushed a child yet
        if top is not None and top.child_index != 0:
            child_at(top.node, top.child_index)
        awaiting = bool(top and top.data.get("awaiting"))
        if awaiting and not isinstance(top.node, (ActionStepNode, ConcurrentActionStepNode)):
            raise FlowRestoreError(
                f"Position suspends at a {top.node.node_type} node, which never awaits input"
            )

        participant = None
        if position.participant_index is not None:
            participant = self.game.participants.get(position.participant_index)
            if participant is None:
                raise FlowRestoreError(f"No participant at index {position.participant_index}")

        self._stack = stack
        self._variables = self._decode(position.variables)
        self._current_participant = participant
        self._awaiting = awaiting
        self._last_action_result = None
        self._current_phase = None
        for frame in stack:
            if isinstance(frame.node, PhaseNode) and frame.data.get("entered"):
                self._current_phase = frame.node.name

        self._complete = not stack or self._check_complete()
        if self._complete:
            self._awaiting = False

        logger.info(
            "Flow restored: depth=%d, awaiting=%s, complete=%s",
            len(stack),
            self._awaiting,
            self._complete,
        )

    def is_complete(self) -> bool:
        return self._complete

    def get_winners(self) -> list[Any]:
        if not self._complete or self.definition.get_winners is None:
            return []
        return list(self.definition.get_winners(self._context()))

    # ------------------------------------------------------------------
    # Context and helpers
    # ------------------------------------------------------------------

    def _context(self) -> FlowContext:
        return FlowContext(
            game=self.game,
            participant=self._current_participant,
            variables=dict(self._variables),
            last_action_result=self._last_action_result,
        )

    def _check_complete(self) -> bool:
        if self.definition.is_complete is None:
            return False
        return bool(self.definition.is_complete(self._context()))

    def _push(self, frame: Frame, child_index: int, child: Any) -> None:
        frame.child_index = child_index
        self._stack.append(Frame(node=child))

    def _rejected(self, result: ActionResult) -> FlowState:
        logger.warning(
            "Action rejected: code=%s, error=%s",
            result.error_code,
            result.error,
        )
        return self.get_state().model_copy(update={"action_error": result.error})

    def _filter_available(self, names: list[str], participant: Participant, step: str) -> list[str]:
        """Keep the registered names the game reports available to `participant`."""
        available = {action.name for action in self.game.get_available_actions(participant)}
        result = []
        for name in names:
            if self.game.get_action(name) is None:
                if self.warn_unknown_actions and name not in self._warned_unknown:
                    self._warned_unknown.add(name)
                    logger.warning(
                        "Flow step references unknown action: step=%s, action=%s",
                        step,
                        name,
                    )
                continue
            if name in available:
                result.append(name)
        return result

    def _encode(self, value: Any) -> Any:
        if isinstance(value, Participant):
            return {"$participant": value.index}
        if isinstance(value, Entity):
            return {"$entity": value.id}
        if isinstance(value, dict):
            return {k: self._encode(v) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return [self._encode(v) for v in value]
        return value

    def _decode(self, value: Any) -> Any:
        if isinstance(value, dict):
            if value.keys() == {"$participant"}:
                return self.game.participants.get(value["$participant"])
            if value.keys() == {"$entity"}:
                return self.game.get_entity_by_id(value["$entity"])
            return {k: self._decode(v) for k, v in value.items()}
        if isinstance(value, list):
            return [self._decode(v) for v in value]
        return value

    # ------------------------------------------------------------------
    # Node execution
    # ------------------------------------------------------------------

    def _execute(self, frame: Frame) -> None:
        node = frame.node
        logger.debug("Executing node: %s", frame.describe())

        if isinstance(node, SequenceNode):
            self._execute_sequence(frame, node)
        elif isinstance(node, LoopNode):
            self._execute_loop(frame, node)
        elif isinstance(node, EachParticipantNode):
            self._execute_each_participant(frame, node)
        elif isinstance(node, ForEachNode):
            self._execute_for_each(frame, node)
        elif isinstance(node, ActionStepNode):
            self._execute_action_step(frame, node)
        elif isinstance(node, ConcurrentActionStepNode):
            self._execute_concurrent_step(frame, node)
        elif isinstance(node, SwitchNode):
            self._execute_switch(frame, node)
        elif isinstance(node, IfNode):
            self._execute_if(frame, node)
        elif isinstance(node, ExecuteNode):
            self._execute_fn(frame, node)
        elif isinstance(node, PhaseNode):
            self._execute_phase(frame, node)
        else:
            raise FlowDefinitionError(f"Unknown flow node: {node!r}")

    def _execute_sequence(self, frame: Frame, node: SequenceNode) -> None:
        cursor = frame.data.get("cursor", 0)
        if cursor >= len(node.steps):
            frame.completed = True
            return
        self._push(frame, cursor, node.steps[cursor])
        frame.data["cursor"] = cursor + 1

    def _execute_loop(self, frame: Frame, node: LoopNode) -> None:
        iteration = frame.data.get("iteration", 0)
        limit = node.max_iterations if node.max_iterations is not None else self.loop_max_iterations
        if iteration >= limit:
            frame.completed = True
            return
        if node.condition is not None and not node.condition(self._context()):
            frame.completed = True
            return
        self._push(frame, 0, node.body)
        frame.data["iteration"] = iteration + 1

    def _execute_each_participant(self, frame: Frame, node: EachParticipantNode) -> None:
        if "order" not in frame.data:
            ctx = self._context()
            participants = list(self.game.participants)
            if node.filter is not None:
                participants = [p for p in participants if node.filter(p, ctx)]
            if node.direction == "backward":
                participants.reverse()

            start = 0
            if node.start_from is not None:
                target = node.start_from(ctx)
                target_index = target if isinstance(target, int) else getattr(target, "index", None)
                # no wrap-around: participants before the start are not visited
                start = next(
                    (i for i, p in enumerate(participants) if p.index == target_index), 0
                )
            frame.data["order"] = [p.index for p in participants]
            frame.data["cursor"] = start

        cursor = frame.data["cursor"]
        order = frame.data["order"]
        if cursor >= len(order):
            frame.completed = True
            return

        participant = self.game.participants.get(order[cursor])
        self._current_participant = participant
        self._variables[node.name or DEFAULT_PARTICIPANT_VARIABLE] = participant
        self._push(frame, 0, node.body)
        frame.data["cursor"] = cursor + 1

    def _execute_for_each(self, frame: Frame, node: ForEachNode) -> None:
        if callable(node.collection):
            items = list(node.collection(self._context()))
        else:
            items = node.collection
        cursor = frame.data.get("cursor", 0)
        if cursor >= len(items):
            frame.completed = True
            return
        self._variables[node.variable] = items[cursor]
        self._push(frame, 0, node.body)
        frame.data["cursor"] = cursor + 1

    def _execute_action_step(self, frame: Frame, node: ActionStepNode) -> None:
        if frame.data.get("follow_up") is not None:
            # a requested follow-up keeps the step open regardless of move limits
            frame.data["awaiting"] = True
            self._awaiting = True
            logger.debug("Awaiting follow-up: action=%s", frame.data["follow_up"])
            return

        ctx = self._context()
        if node.skip_if is not None and node.skip_if(ctx):
            frame.completed = True
            return

        move_count = frame.data.setdefault("move_count", 0)
        if node.max_moves is not None and move_count >= node.max_moves:
            frame.completed = True
            return

        participant = (
            node.participant(ctx) if node.participant is not None else self._current_participant
        )
        label = node.name or "action_step"
        if participant is None:
            raise FlowDefinitionError(f"Action step {label!r} has no acting participant")

        names = node.actions(ctx) if callable(node.actions) else list(node.actions)
        available = self._filter_available(names, participant, label)
        min_met = node.min_moves is None or move_count >= node.min_moves

        if not available:
            if min_met:
                logger.debug("Action step skipped, nothing available: step=%s", label)
                frame.completed = True
                return
            raise FlowDefinitionError(
                f"Action step {label!r} requires {node.min_moves} moves "
                f"but only {move_count} were possible"
            )

        prompt = node.prompt(ctx) if callable(node.prompt) else node.prompt
        self._current_participant = participant
        frame.data.update(awaiting=True, actions=available, prompt=prompt)
        self._awaiting = True
        logger.debug(
            "Awaiting input: step=%s, participant=%d, actions=%s",
            label,
            participant.index,
            available,
        )

    def _concurrent_actions(
        self, node: ConcurrentActionStepNode, ctx: FlowContext, participant: Participant
    ) -> list[str]:
        names = node.actions(ctx, participant) if callable(node.actions) else list(node.actions)
        return self._filter_available(names, participant, node.name or "concurrent_action_step")

    def _execute_concurrent_step(self, frame: Frame, node: ConcurrentActionStepNode) -> None:
        if "participants" not in frame.data:
            ctx = self._context()
            if node.participants is not None:
                participants = node.participants(ctx)
            else:
                participants = list(self.game.participants)
            tracked = []
            for participant in participants:
                if node.skip_participant is not None and node.skip_participant(ctx, participant):
                    continue
                if node.participant_done is not None and node.participant_done(ctx, participant):
                    continue
                available = self._concurrent_actions(node, ctx, participant)
                if available:
                    tracked.append(
                        {"index": participant.index, "actions": available, "completed": False}
                    )

            if not tracked or (node.all_done is not None and node.all_done(ctx)):
                frame.completed = True
                return

            prompt = node.prompt(ctx) if callable(node.prompt) else node.prompt
            frame.data.update(participants=tracked, prompt=prompt)

        frame.data["awaiting"] = True
        self._awaiting = True

    def _execute_switch(self, frame: Frame, node: SwitchNode) -> None:
        if frame.data.get("branch_pushed"):
            frame.completed = True
            return
        value = str(node.on(self._context()))
        keys = list(node.cases)
        if value in node.cases:
            self._push(frame, keys.index(value), node.cases[value])
        elif node.default is not None:
            self._push(frame, len(keys), node.default)
        else:
            frame.completed = True
            return
        frame.data["branch_pushed"] = True

    def _execute_if(self, frame: Frame, node: IfNode) -> None:
        if frame.data.get("branch_pushed"):
            frame.completed = True
            return
        if node.condition(self._context()):
            self._push(frame, 0, node.then)
        elif node.otherwise is not None:
            self._push(frame, 1, node.otherwise)
        else:
            frame.completed = True
            return
        frame.data["branch_pushed"] = True

    def _execute_fn(self, frame: Frame, node: ExecuteNode) -> None:
        ctx = self._context()
        node.fn(ctx)
        self._variables = dict(ctx.variables)
        frame.completed = True

    def _execute_phase(self, frame: Frame, node: PhaseNode) -> None:
        if not frame.data.get("entered"):
            frame.data.update(entered=True, previous_phase=self._current_phase)
            self._current_phase = node.name
            logger.info("Entering phase: %s", node.name)
            if self.definition.on_enter_phase is not None:
                self.definition.on_enter_phase(node.name, self._context())
            self._push(frame, 0, node.body)
            return

        logger.info("Exiting phase: %s", node.name)
        if self.definition.on_exit_phase is not None:
            self.definition.on_exit_phase(node.name, self._context())
        self._current_phase = frame.data.get("previous_phase")
        frame.completed = True

    # ------------------------------------------------------------------
    # Resume bookkeeping
    # ------------------------------------------------------------------

    def _apply_action_result(self, frame: Frame, result: ActionResult) -> FlowState:
        if not result.success:
            return self._rejected(result)

        self._last_action_result = result
        self._awaiting = False
        frame.data["awaiting"] = False
        frame.data.pop("follow_up", None)

        if result.follow_up:
            name = result.follow_up.get("action")
            if isinstance(name, str):
                frame.data["follow_up"] = name
            # the chain is counted as one move once the last follow-up lands
            logger.debug("Action requested follow-up: %s", result.follow_up)
            state = self.run()
            return state.model_copy(update={"follow_up": result.follow_up})

        node = frame.node
        move_count = frame.data.get("move_count", 0) + 1
        frame.data["move_count"] = move_count

        if node.max_moves is not None and move_count >= node.max_moves:
            done = True
        elif node.repeat_until is not None:
            min_met = node.min_moves is None or move_count >= node.min_moves
            done = min_met and bool(node.repeat_until(self._context()))
        else:
            done = node.min_moves is None and node.max_moves is None

        if done:
            frame.completed = True
        logger.info("Move applied: moves=%d, step_complete=%s", move_count, done)
        return self.run()

    def _concurrent_entry(self, frame: Frame, participant_index: int | None) -> dict | None:
        entries = frame.data.get("participants", [])
        if participant_index is None:
            return next((e for e in entries if not e["completed"] and e["actions"]), None)
        return next((e for e in entries if e["index"] == participant_index), None)

    def _resume_concurrent(
        self,
        frame: Frame,
        action_name: str,
        args: dict[str, Any],
        participant_index: int | None,
    ) -> FlowState:
        entry = self._concurrent_entry(frame, participant_index)
        if entry is None:
            if participant_index is None:
                return self._rejected(
                    ActionResult.failure(
                        "NO_AWAITING_PARTICIPANT", "No participant is awaiting an action"
                    )
                )
            return self._rejected(
                ActionResult.failure(
                    "NOT_YOUR_TURN",
                    f"Participant {participant_index} is not awaiting an action",
                )
            )
        if entry["completed"]:
            return self._rejected(
                ActionResult.failure(
                    "PARTICIPANT_DONE",
                    f"Participant {entry['index']} has already completed their action",
                )
            )
        if action_name not in entry["actions"]:
            return self._rejected(
                ActionResult.failure(
                    "ACTION_NOT_AVAILABLE",
                    f"Action {action_name} is not available for participant {entry['index']}",
                )
            )

        participant = self.game.participants.get(entry["index"])
        logger.info(
            "Resuming concurrent step: action=%s, participant=%d",
            action_name,
            participant.index,
        )
        result = self.game.perform_action(action_name, participant, args)
        if not result.success:
            return self._rejected(result)
        self._last_action_result = result
        return self._after_concurrent_action(frame, entry, participant)

    def _after_concurrent_action(
        self, frame: Frame, entry: dict[str, Any], participant: Participant
    ) -> FlowState:
        node = frame.node
        ctx = self._context()
        if node.participant_done is not None:
            entry["completed"] = bool(node.participant_done(ctx, participant))
        if not entry["completed"]:
            entry["actions"] = self._concurrent_actions(node, ctx, participant)
            if not entry["actions"]:
                entry["completed"] = True

        entries = frame.data["participants"]
        if node.all_done is not None:
            all_done = bool(node.all_done(ctx))
        else:
            all_done = all(e["completed"] for e in entries)

        if not all_done:
            return self.get_state()

        logger.info("Concurrent step complete: participants=%d", len(entries))
        frame.completed = True
        frame.data["awaiting"] = False
        self._awaiting = False
        return self.run()
