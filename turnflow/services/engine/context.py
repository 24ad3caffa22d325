from dataclasses import dataclass, field
from typing import Any


@dataclass
class FlowContext:
    """What flow predicates, hooks and execute steps see."""

    game: Any
    participant: Any = None
    variables: dict[str, Any] = field(default_factory=dict)
    last_action_result: Any = None

    def get(self, name: str, default: Any = None) -> Any:
        return self.variables.get(name, default)

    def set(self, name: str, value: Any) -> None:
        self.variables[name] = value


@dataclass
class Frame:
    """One stack entry: progress through a single node instance.

    `child_index` names the child this frame last pushed. `data` holds the
    node's progress and must stay JSON-serializable.
    """

    node: Any
    child_index: int = 0
    completed: bool = False
    data: dict[str, Any] = field(default_factory=dict)

    def describe(self) -> str:
        label = f"{self.node.node_type}"
        if self.node.name:
            label += f" {self.node.name!r}"
        return f"{label} (child {self.child_index})"
