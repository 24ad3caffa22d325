"""Minimal game model the flow and action core run against.

Holds the ordered participant collection, a tree of typed entities and the
action registry. Actions and flows only touch a game through the operations
defined here.
"""

import logging
from collections.abc import Callable, Iterable, Iterator
from typing import Any

from turnflow.services.actions import (
    ActionDefinition,
    ActionExecutor,
    ActionResult,
)

logger = logging.getLogger(__name__)


class Participant:
    """A seat in the game. Indices are 0-based and stable for the game's life."""

    def __init__(self, index: int, name: str, **attributes: Any) -> None:
        self.index = index
        self.name = name
        self.attributes: dict[str, Any] = dict(attributes)

    def __repr__(self) -> str:
        return f"Participant({self.index}, {self.name!r})"


class ParticipantCollection:
    """Ordered participants plus a pointer to the current one."""

    def __init__(self, participants: Iterable[Participant]) -> None:
        self._participants = list(participants)
        self._current = 0

    def __iter__(self) -> Iterator[Participant]:
        return iter(self._participants)

    def __len__(self) -> int:
        return len(self._participants)

    def __getitem__(self, index: int) -> Participant:
        return self._participants[index]

    def get(self, index: int) -> Participant | None:
        if 0 <= index < len(self._participants):
            return self._participants[index]
        return None

    @property
    def current(self) -> Participant | None:
        return self.get(self._current)

    def set_current(self, participant: Participant | int) -> None:
        index = participant if isinstance(participant, int) else participant.index
        if self.get(index) is None:
            raise IndexError(f"No participant at index {index}")
        self._current = index


class Entity:
    """A node in the game's entity tree, compared by id."""

    def __init__(
        self,
        entity_id: int,
        name: str,
        entity_type: str = "entity",
        owner: Participant | None = None,
        parent: "Entity | None" = None,
        **attributes: Any,
    ) -> None:
        self.id = entity_id
        self.name = name
        self.entity_type = entity_type
        self.owner = owner
        self.parent = parent
        self.children: list[Entity] = []
        self.attributes: dict[str, Any] = dict(attributes)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Entity) and other.id == self.id

    def __hash__(self) -> int:
        return hash(("entity", self.id))

    def __repr__(self) -> str:
        return f"Entity({self.id}, {self.name!r}, type={self.entity_type!r})"

    def __getattr__(self, name: str) -> Any:
        # expose attributes as fields so filters can read entity.color
        attributes = self.__dict__.get("attributes", {})
        if name in attributes:
            return attributes[name]
        raise AttributeError(name)

    def all(
        self,
        entity_type: str | None = None,
        predicate: Callable[["Entity"], bool] | None = None,
    ) -> list["Entity"]:
        """Depth-first list of descendants, excluding this entity."""
        found: list[Entity] = []
        for child in self.children:
            if (entity_type is None or child.entity_type == entity_type) and (
                predicate is None or predicate(child)
            ):
                found.append(child)
            found.extend(child.all(entity_type, predicate))
        return found

    def move_to(self, parent: "Entity") -> None:
        if self.parent is not None:
            self.parent.children.remove(self)
        self.parent = parent
        parent.children.append(self)


class Game:
    """Game state and action registry for one game instance."""

    def __init__(
        self,
        participant_names: Iterable[str],
        settings: dict[str, Any] | None = None,
    ) -> None:
        self.participants = ParticipantCollection(
            Participant(i, name) for i, name in enumerate(participant_names)
        )
        self.settings: dict[str, Any] = dict(settings or {})
        self._next_id = 0
        self._entities: dict[int, Entity] = {}
        self.root = self._new_entity("game", "game", None, None, {})
        self._actions: dict[str, ActionDefinition] = {}
        self.executor = ActionExecutor(self)

    def _new_entity(
        self,
        name: str,
        entity_type: str,
        parent: Entity | None,
        owner: Participant | None,
        attributes: dict[str, Any],
    ) -> Entity:
        entity = Entity(self._next_id, name, entity_type, owner=owner, parent=parent, **attributes)
        self._next_id += 1
        self._entities[entity.id] = entity
        if parent is not None:
            parent.children.append(entity)
        return entity

    # ------------------------------------------------------------------
    # Entity tree
    # ------------------------------------------------------------------

    def create_entity(
        self,
        name: str,
        entity_type: str = "entity",
        parent: Entity | None = None,
        owner: Participant | None = None,
        **attributes: Any,
    ) -> Entity:
        return self._new_entity(name, entity_type, parent or self.root, owner, attributes)

    def get_entity_by_id(self, entity_id: int) -> Entity | None:
        return self._entities.get(entity_id)

    # ------------------------------------------------------------------
    # Action registry
    # ------------------------------------------------------------------

    def register_action(self, action: ActionDefinition) -> None:
        self._actions[action.name] = action

    def register_actions(self, *actions: ActionDefinition) -> None:
        for action in actions:
            self.register_action(action)

    def get_action(self, name: str) -> ActionDefinition | None:
        return self._actions.get(name)

    def get_action_names(self) -> list[str]:
        return list(self._actions)

    def get_available_actions(self, participant: Participant) -> list[ActionDefinition]:
        return [
            action
            for action in self._actions.values()
            if self.executor.is_action_available(action, participant)
        ]

    def get_selection_choices(
        self,
        action_name: str,
        selection_name: str,
        participant: Participant,
        args: dict[str, Any] | None = None,
    ) -> list[Any]:
        """Current choices for one selection, given wire-level earlier args."""
        action = self.get_action(action_name)
        if action is None:
            return []
        selection = action.get_selection(selection_name)
        if selection is None:
            return []
        resolved = self.executor.resolve_args(action, args or {})
        return self.executor.get_choices(selection, participant, resolved)

    def perform_action(
        self,
        action_name: str,
        participant: Participant,
        args: dict[str, Any],
    ) -> ActionResult:
        action = self.get_action(action_name)
        if action is None:
            logger.warning("Unknown action: action=%s", action_name)
            return ActionResult.failure("UNKNOWN_ACTION", f"Unknown action: {action_name}")

        logger.info(
            "Performing action: action=%s, participant=%d",
            action_name,
            participant.index,
        )
        result = self.executor.execute_action(action, participant, args)
        if not result.success:
            logger.warning(
                "Action failed: action=%s, participant=%d, code=%s, error=%s",
                action_name,
                participant.index,
                result.error_code,
                result.error,
            )
        return result
