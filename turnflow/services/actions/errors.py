class SelectionFilterError(RuntimeError):
    """A selection filter crashed reading an earlier selection that has no value yet."""

    def __init__(self, selection_name: str, missing: list[str], cause: Exception) -> None:
        self.selection_name = selection_name
        self.missing = missing
        missing_list = ", ".join(missing) if missing else "(no previous selections made yet)"
        super().__init__(
            f"Filter for selection '{selection_name}' crashed: {cause!r}.\n"
            "Filters also run during availability checks, before earlier selections "
            "have been made.\n"
            f"Missing args: {missing_list}\n"
            "Fix: wrap the filter with dependent_filter(depends_on=..., "
            "when_undefined=..., when_selected=...) or return True when the "
            "earlier selection is None."
        )
