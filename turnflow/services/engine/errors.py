"""Fatal flow errors.

These indicate a bug in a flow definition or in persisted data and are never
returned as results. Rejected participant input is reported through
`ActionResult` instead.
"""


class FlowError(RuntimeError):
    pass


class FlowIterationLimitError(FlowError):
    """A single run() executed more nodes than the configured ceiling."""

    def __init__(self, limit: int, stack_summary: list[str]) -> None:
        self.limit = limit
        self.stack_summary = stack_summary
        frames = "\n".join(f"  {line}" for line in stack_summary) or "  (empty)"
        super().__init__(
            f"Flow exceeded {limit} iterations in one run.\n"
            f"Frame stack (root first):\n{frames}\n"
            "Common causes: a loop whose predicate never turns false, a loop "
            "body that never suspends, or is_complete that never holds."
        )


class FlowRestoreError(FlowError):
    """A stored position does not fit the flow definition."""


class FlowNotAwaitingError(FlowError):
    """resume() was called while the flow was not waiting for input."""


class FlowDefinitionError(FlowError):
    """The flow definition cannot proceed as written."""
