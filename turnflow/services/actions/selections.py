"""Selection types - typed argument slots of an action.

Selections form a closed union discriminated by `kind`, so every consumer
(choice computation, validation, availability) matches on the kind instead of
dispatching through subclasses.
"""

from collections.abc import Callable
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class DependentFilter(BaseModel):
    """Narrow a choice list to entries whose `key` matches a prior selection."""

    key: str
    selection_name: str


class MultiSelectConfig(BaseModel):
    min: int = Field(1, ge=0)
    max: int | None = Field(None, ge=1)


class RepeatConfig(BaseModel):
    """Pick a choice repeatedly until `until(ctx, last_choice)` holds.

    `on_each(ctx, choice)` runs after every accepted pick and may mutate game
    state. `on_cancel(ctx)` runs once if the pending action is cancelled after
    this selection accepted at least one pick.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    until: Callable[..., bool] | None = None
    on_each: Callable[..., Any] | None = None
    on_cancel: Callable[..., Any] | None = None


class BaseSelection(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    prompt: str | None = None
    optional: bool = False
    skip_if_only_one: bool = False
    # validator(value, ctx) -> True, False or an error message
    validator: Callable[..., bool | str] | None = None


class ChoiceSelection(BaseSelection):
    """Pick from a static list or from a list computed from the context."""

    kind: Literal["choice"] = "choice"
    choices: list[Any] | Callable[..., list[Any]] = Field(default_factory=list)
    display: Callable[[Any], str] | None = None
    filter_by: DependentFilter | None = None
    depends_on: str | None = None
    repeat: RepeatConfig | None = None
    # None means "no shorthand"; a choice equal to this value ends the repeat
    repeat_until: Any = None
    multi_select: int | MultiSelectConfig | Callable[..., Any] | None = None

    @property
    def has_static_choices(self) -> bool:
        return not callable(self.choices)

    @property
    def is_repeating(self) -> bool:
        return self.repeat is not None or self.repeat_until is not None


class ParticipantSelection(BaseSelection):
    kind: Literal["participant"] = "participant"
    filter: Callable[..., bool] | None = None


class EntitySelection(BaseSelection):
    """Pick one entity.

    Candidates come from `elements` when given, otherwise from a depth-first
    search of `scope` (an entity or a context function; defaults to the game
    root), narrowed by `entity_type` and `filter`.
    """

    kind: Literal["entity"] = "entity"
    entity_type: str | None = None
    scope: Any = None
    filter: Callable[..., bool] | None = None
    elements: list[Any] | Callable[..., list[Any]] | None = None
    display: Callable[..., str] | None = None
    depends_on: str | None = None


class EntitiesSelection(BaseSelection):
    """Pick several entities at once, bounded by `multi_select`."""

    kind: Literal["entities"] = "entities"
    entity_type: str | None = None
    scope: Any = None
    filter: Callable[..., bool] | None = None
    elements: list[Any] | Callable[..., list[Any]] | None = None
    display: Callable[..., str] | None = None
    depends_on: str | None = None
    multi_select: int | MultiSelectConfig | Callable[..., Any] | None = None


class TextSelection(BaseSelection):
    kind: Literal["text"] = "text"
    pattern: str | None = None
    min_length: int | None = Field(None, ge=0)
    max_length: int | None = Field(None, ge=0)


class NumberSelection(BaseSelection):
    kind: Literal["number"] = "number"
    min: float | None = None
    max: float | None = None
    integer: bool = False


# Union type for all selections
Selection = Annotated[
    ChoiceSelection
    | ParticipantSelection
    | EntitySelection
    | EntitiesSelection
    | TextSelection
    | NumberSelection,
    Field(discriminator="kind"),
]


def resolve_multi_select(
    selection: ChoiceSelection | EntitiesSelection, ctx: Any
) -> MultiSelectConfig | None:
    """Evaluate a selection's multi-select bounds.

    An int is shorthand for `min=1, max=n`. A function may return either form
    or None for single-select. Entity multi-selection defaults to `min=1`.
    """
    config = selection.multi_select
    if callable(config):
        config = config(ctx)
    if config is None:
        if isinstance(selection, EntitiesSelection):
            return MultiSelectConfig()
        return None
    if isinstance(config, int):
        return MultiSelectConfig(min=1, max=config)
    if isinstance(config, dict):
        return MultiSelectConfig.model_validate(config)
    return config
