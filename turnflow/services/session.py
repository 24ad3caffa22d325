"""Game session - serializes calls against one game and its flow engine.

The engine itself has no lock; a session owns one engine, its pending
step-by-step actions and a re-entrant lock so concurrent callers (one thread
per participant, say) are applied one at a time.
"""

import logging
import threading
from typing import Any

from turnflow.config import Settings
from turnflow.schemas.actions import PendingActionState
from turnflow.schemas.flow import FlowState
from turnflow.schemas.session import SessionCheckpoint
from turnflow.services.actions import ActionResult, EntitiesSelection, SelectionStepResult
from turnflow.services.engine import FlowDefinition, FlowEngine
from turnflow.services.game import Entity, Game, Participant

logger = logging.getLogger(__name__)


class GameSession:
    def __init__(
        self,
        game: Game,
        definition: FlowDefinition,
        settings: Settings | None = None,
    ) -> None:
        self.game = game
        self.engine = FlowEngine(game, definition, settings=settings)
        self._pending: dict[int, PendingActionState] = {}
        self._lock = threading.RLock()

    def start(self) -> FlowState:
        with self._lock:
            self._pending.clear()
            return self.engine.start()

    def get_state(self) -> FlowState:
        with self._lock:
            return self.engine.get_state()

    def get_pending(self, participant_index: int) -> PendingActionState | None:
        with self._lock:
            return self._pending.get(participant_index)

    def _allowed_actions(self, participant_index: int) -> list[str]:
        state = self.engine.get_state()
        if not state.awaiting_input:
            return []
        if state.awaiting_participants is not None:
            entry = next(
                (
                    p
                    for p in state.awaiting_participants
                    if p.participant_index == participant_index
                ),
                None,
            )
            if entry is None or entry.completed:
                return []
            return entry.available_actions
        if state.current_participant != participant_index:
            return []
        return state.available_actions or []

    def perform(
        self,
        action_name: str,
        args: dict[str, Any] | None = None,
        participant_index: int | None = None,
    ) -> FlowState:
        """Perform a complete action in one call."""
        with self._lock:
            state = self.engine.resume(action_name, args or {}, participant_index)
            if state.action_error is None and participant_index is not None:
                self._pending.pop(participant_index, None)
            return state

    def start_action(self, participant_index: int, action_name: str) -> SelectionStepResult:
        """Begin collecting selections for an action one at a time.

        Returns the choices for the first selection in `next_choices`.
        """
        with self._lock:
            if action_name not in self._allowed_actions(participant_index):
                logger.warning(
                    "Pending action refused: action=%s, participant=%d",
                    action_name,
                    participant_index,
                )
                return SelectionStepResult.failure(
                    "ACTION_NOT_AVAILABLE",
                    f"Action {action_name} is not available for participant {participant_index}",
                )

            action = self.game.get_action(action_name)
            pending = self.game.executor.create_pending_action_state(action_name, participant_index)
            self._pending[participant_index] = pending
            logger.info(
                "Pending action started: action=%s, participant=%d",
                action_name,
                participant_index,
            )
            participant = self.game.participants.get(participant_index)
            failed = self._auto_fill(action, participant, pending)
            if failed is not None:
                return failed
            if self.game.executor.is_pending_action_complete(action, pending):
                return self._finish(participant_index, action, pending)
            return SelectionStepResult.ok(
                done=False,
                next_choices=self._choices_for_next(action, participant_index, pending),
            )

    def submit_selection(
        self, participant_index: int, selection_name: str, value: Any
    ) -> SelectionStepResult:
        """Record one selection; runs the action once every selection is in.

        `done` is True only when the action was executed and the flow
        advanced; read the new state with `get_state()`.
        """
        with self._lock:
            pending = self._pending.get(participant_index)
            if pending is None:
                return SelectionStepResult.failure(
                    "ACTION_INCOMPLETE", f"Participant {participant_index} has no pending action"
                )
            action = self.game.get_action(pending.action_name)
            participant = self.game.participants.get(participant_index)

            step = self.game.executor.process_selection_step(
                action, participant, pending, selection_name, value
            )
            if not step.success:
                return step
            failed = self._auto_fill(action, participant, pending)
            if failed is not None:
                return failed
            if self.game.executor.is_pending_action_complete(action, pending):
                return self._finish(participant_index, action, pending)
            if not step.done:
                return step
            return SelectionStepResult.ok(
                done=False,
                next_choices=self._choices_for_next(action, participant_index, pending),
            )

    def cancel_action(self, participant_index: int) -> ActionResult:
        """Drop a pending action, firing cancel hooks of repeating selections."""
        with self._lock:
            pending = self._pending.pop(participant_index, None)
            if pending is None:
                return ActionResult.ok(message="Nothing to cancel")
            action = self.game.get_action(pending.action_name)
            participant = self.game.participants.get(participant_index)
            logger.info(
                "Pending action cancelled: action=%s, participant=%d",
                pending.action_name,
                participant_index,
            )
            return self.game.executor.cancel_pending_action(action, participant, pending)

    def checkpoint(self) -> str:
        """Serialize the flow position and pending actions to JSON."""
        with self._lock:
            return SessionCheckpoint(
                position=self.engine.get_position(),
                pending_actions=dict(self._pending),
            ).model_dump_json()

    def restore_checkpoint(self, data: str) -> FlowState:
        with self._lock:
            checkpoint = SessionCheckpoint.model_validate_json(data)
            self.engine.restore(checkpoint.position)
            self._pending = dict(checkpoint.pending_actions)
            return self.engine.get_state()

    def _auto_fill(
        self, action: Any, participant: Participant, pending: PendingActionState
    ) -> SelectionStepResult | None:
        """Submit every upcoming skip-if-only-one selection that has a single choice.

        Stops at the first selection that needs input; returns the step that
        failed, if any.
        """
        executor = self.game.executor
        while pending.repeating is None and pending.current_selection_index < len(
            action.selections
        ):
            selection = action.selections[pending.current_selection_index]
            # repeating and multi-select picks stay with the participant
            if (
                getattr(selection, "is_repeating", False)
                or getattr(selection, "multi_select", None) is not None
                or isinstance(selection, EntitiesSelection)
            ):
                return None
            args = executor.resolve_args(action, pending.collected_args)
            skip, value = executor.should_skip(selection, participant, args)
            if not skip:
                return None
            logger.debug(
                "Selection filled automatically: action=%s, selection=%s",
                action.name,
                selection.name,
            )
            step = executor.process_selection_step(
                action, participant, pending, selection.name, _to_wire(value)
            )
            if not step.success:
                return step
        return None

    def _choices_for_next(
        self, action: Any, participant_index: int, pending: PendingActionState
    ) -> list[Any] | None:
        index = pending.current_selection_index
        if index >= len(action.selections):
            return None
        participant = self.game.participants.get(participant_index)
        return self.game.get_selection_choices(
            action.name, action.selections[index].name, participant, pending.collected_args
        )

    def _finish(
        self, participant_index: int, action: Any, pending: PendingActionState
    ) -> SelectionStepResult:
        participant = self.game.participants.get(participant_index)
        result = self.game.executor.execute_pending_action(action, participant, pending)
        del self._pending[participant_index]
        if not result.success:
            logger.warning(
                "Pending action failed: action=%s, participant=%d, error=%s",
                action.name,
                participant_index,
                result.error,
            )
            return SelectionStepResult.failure(
                result.error_code or "EFFECT_FAILED", *result.errors, done=True
            )
        self.engine.resume_after_external_action(result, participant_index)
        return SelectionStepResult.ok(done=True)


def _to_wire(value: Any) -> Any:
    if isinstance(value, Participant):
        return value.index
    if isinstance(value, Entity):
        return value.id
    return value
