"""Filter helpers for participant and entity selections.

Filters run during availability checks, before the participant has picked the
selections they read. These helpers make that case explicit.
"""

from collections.abc import Callable
from typing import Any

Filter = Callable[[Any, Any], bool]


def dependent_filter(
    depends_on: str,
    when_undefined: Filter,
    when_selected: Callable[[Any, Any, Any], bool],
) -> Filter:
    """Build a filter that depends on an earlier selection.

    Args:
        depends_on: Name of the earlier selection.
        when_undefined: `(item, ctx)` used while `depends_on` has no value yet.
            Should return True if the item could be valid for some value.
        when_selected: `(item, previous_value, ctx)` used once it has a value.

    Returns:
        A filter suitable for `choose_entity(filter=...)` or
        `choose_participant(filter=...)`.
    """

    def _filter(item: Any, ctx: Any) -> bool:
        previous = (ctx.args or {}).get(depends_on)
        if previous is None:
            return when_undefined(item, ctx)
        return when_selected(item, previous, ctx)

    return _filter


def exclude_already_selected(selection_name: str) -> Filter:
    """Reject items already picked in a list-valued selection (compares ids)."""

    def _filter(item: Any, ctx: Any) -> bool:
        selected = (ctx.args or {}).get(selection_name)
        if not selected:
            return True
        item_id = getattr(item, "id", item)
        return all(getattr(s, "id", s) != item_id for s in selected)

    return _filter


def all_of(*filters: Filter) -> Filter:
    return lambda item, ctx: all(f(item, ctx) for f in filters)


def any_of(*filters: Filter) -> Filter:
    return lambda item, ctx: any(f(item, ctx) for f in filters)


def negate(fn: Filter) -> Filter:
    return lambda item, ctx: not fn(item, ctx)
