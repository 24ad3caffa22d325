"""Action definitions and the fluent builder that assembles them.

Usage:
    from turnflow.services.actions import Action, ActionResult

    draw = (
        Action.create("draw")
        .prompt("Draw a card")
        .condition(lambda ctx: len(ctx.game.settings["deck"]) > 0)
        .execute(lambda args, ctx: ActionResult.ok())
    )
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from turnflow.schemas.actions import ConditionDetail

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
)


class ConditionTracer:
    """Records labelled sub-checks of an availability condition.

    A condition that wants to explain itself reads `ctx.tracer`, which is only
    set during a trace:

        def can_play(ctx):
            if ctx.tracer is None:
                return ctx.participant.attributes["hand"] > 0
            return ctx.tracer.check("has cards", ctx.participant.attributes["hand"] > 0)
    """

    def __init__(self) -> None:
        self._details: list[ConditionDetail] = []

    def check(self, label: str, value: Any) -> bool:
        passed = bool(value)
        self._details.append(ConditionDetail(label=label, value=_plain(value), passed=passed))
        return passed

    def nested(self, label: str, fn: Callable[["ConditionTracer"], bool]) -> bool:
        child = ConditionTracer()
        result = bool(fn(child))
        self._details.append(
            ConditionDetail(label=label, value=result, passed=result, children=child.details)
        )
        return result

    @property
    def details(self) -> list[ConditionDetail]:
        return list(self._details)


def _plain(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    return repr(value)


@dataclass
class ActionContext:
    """What conditions, filters, effects and hooks see."""

    game: Any
    participant: Any
    args: dict[str, Any] = field(default_factory=dict)
    tracer: ConditionTracer | None = None


@dataclass
class ActionDefinition:
    """A named participant-facing operation.

    `condition(ctx)` gates availability; `effect(args, ctx)` performs the action
    and may return an `ActionResult` (None counts as success).
    """

    name: str
    prompt: str | None = None
    selections: list[Selection] = field(default_factory=list)
    condition: Callable[[ActionContext], bool] | None = None
    condition_message: str | Callable[[ActionContext], str] | None = None
    effect: Callable[[dict[str, Any], ActionContext], Any] | None = None
    undoable: bool = True

    def get_selection(self, name: str) -> Selection | None:
        return next((s for s in self.selections if s.name == name), None)

    def selection_index(self, name: str) -> int:
        for i, selection in enumerate(self.selections):
            if selection.name == name:
                return i
        return -1


class Action:
    """Fluent builder for `ActionDefinition`."""

    def __init__(self, name: str) -> None:
        self._definition = ActionDefinition(name=name)

    @classmethod
    def create(cls, name: str) -> "Action":
        return cls(name)

    def prompt(self, prompt: str) -> "Action":
        self._definition.prompt = prompt
        return self

    def condition(
        self,
        fn: Callable[[ActionContext], bool],
        message: str | Callable[[ActionContext], str] | None = None,
    ) -> "Action":
        self._definition.condition = fn
        if message is not None:
            self._definition.condition_message = message
        return self

    def not_undoable(self) -> "Action":
        """Mark the action as revealing information or otherwise irreversible."""
        self._definition.undoable = False
        return self

    def choose_from(
        self,
        name: str,
        choices: list[Any] | Callable[[ActionContext], list[Any]],
        *,
        prompt: str | None = None,
        display: Callable[[Any], str] | None = None,
        filter_by: DependentFilter | dict | None = None,
        depends_on: str | None = None,
        repeat: RepeatConfig | dict | None = None,
        repeat_until: Any = None,
        multi_select: int | MultiSelectConfig | Callable | None = None,
        skip_if_only_one: bool = False,
        optional: bool = False,
        validator: Callable[..., bool | str] | None = None,
    ) -> "Action":
        self._definition.selections.append(
            ChoiceSelection(
                name=name,
                choices=choices,
                prompt=prompt,
                display=display,
                filter_by=filter_by,
                depends_on=depends_on,
                repeat=repeat,
                repeat_until=repeat_until,
                multi_select=multi_select,
                skip_if_only_one=skip_if_only_one,
                optional=optional,
                validator=validator,
            )
        )
        return self

    def choose_participant(
        self,
        name: str,
        *,
        prompt: str | None = None,
        filter: Callable[..., bool] | None = None,
        skip_if_only_one: bool = False,
        optional: bool = False,
        validator: Callable[..., bool | str] | None = None,
    ) -> "Action":
        self._definition.selections.append(
            ParticipantSelection(
                name=name,
                prompt=prompt,
                filter=filter,
                skip_if_only_one=skip_if_only_one,
                optional=optional,
                validator=validator,
            )
        )
        return self

    def choose_entity(
        self,
        name: str,
        *,
        prompt: str | None = None,
        entity_type: str | None = None,
        scope: Any = None,
        filter: Callable[..., bool] | None = None,
        display: Callable[..., str] | None = None,
        skip_if_only_one: bool = False,
        optional: bool = False,
        validator: Callable[..., bool | str] | None = None,
    ) -> "Action":
        self._definition.selections.append(
            EntitySelection(
                name=name,
                prompt=prompt,
                entity_type=entity_type,
                scope=scope,
                filter=filter,
                display=display,
                skip_if_only_one=skip_if_only_one,
                optional=optional,
                validator=validator,
            )
        )
        return self

    def from_entities(
        self,
        name: str,
        elements: list[Any] | Callable[[ActionContext], list[Any]],
        *,
        prompt: str | None = None,
        multi_select: int | MultiSelectConfig | Callable | None = None,
        depends_on: str | None = None,
        display: Callable[..., str] | None = None,
        skip_if_only_one: bool = False,
        optional: bool = False,
        validator: Callable[..., bool | str] | None = None,
    ) -> "Action":
        """Pick from a precomputed entity list; several at once with `multi_select`."""
        if multi_select is None:
            selection = EntitySelection(
                name=name,
                elements=elements,
                prompt=prompt,
                depends_on=depends_on,
                display=display,
                skip_if_only_one=skip_if_only_one,
                optional=optional,
                validator=validator,
            )
        else:
            selection = EntitiesSelection(
                name=name,
                elements=elements,
                prompt=prompt,
                multi_select=multi_select,
                depends_on=depends_on,
                display=display,
                skip_if_only_one=skip_if_only_one,
                optional=optional,
                validator=validator,
            )
        self._definition.selections.append(selection)
        return self

    def enter_text(
        self,
        name: str,
        *,
        prompt: str | None = None,
        pattern: str | None = None,
        min_length: int | None = None,
        max_length: int | None = None,
        optional: bool = False,
        validator: Callable[..., bool | str] | None = None,
    ) -> "Action":
        self._definition.selections.append(
            TextSelection(
                name=name,
                prompt=prompt,
                pattern=pattern,
                min_length=min_length,
                max_length=max_length,
                optional=optional,
                validator=validator,
            )
        )
        return self

    def enter_number(
        self,
        name: str,
        *,
        prompt: str | None = None,
        min: float | None = None,
        max: float | None = None,
        integer: bool = False,
        optional: bool = False,
        validator: Callable[..., bool | str] | None = None,
    ) -> "Action":
        self._definition.selections.append(
            NumberSelection(
                name=name,
                prompt=prompt,
                min=min,
                max=max,
                integer=integer,
                optional=optional,
                validator=validator,
            )
        )
        return self

    def execute(self, fn: Callable[[dict[str, Any], ActionContext], Any]) -> ActionDefinition:
        """Set the effect and return the finished definition."""
        self._definition.effect = fn
        return self._definition

    def build(self) -> ActionDefinition:
        return self._definition
