"""Result types for the action boundary.

Structured results replace exceptions for control flow: a rejected submission
or a failing effect comes back as a failure value the caller can show to the
participant and re-prompt, with no engine state changed.
"""

from dataclasses import dataclass, field
from typing import Any


@dataclass
class ActionResult:
    """Result of executing an action.

    `follow_up` names an action (and args) the same participant must perform
    next before the decision point counts the move.
    """

    success: bool = True
    errors: list[str] = field(default_factory=list)
    error_code: str | None = None
    data: dict[str, Any] = field(default_factory=dict)
    message: str | None = None
    follow_up: dict[str, Any] | None = None

    @property
    def error(self) -> str | None:
        return "; ".join(self.errors) if self.errors else None

    @classmethod
    def ok(
        cls,
        data: dict[str, Any] | None = None,
        message: str | None = None,
        follow_up: dict[str, Any] | None = None,
    ) -> "ActionResult":
        """Create a successful result."""
        return cls(
            success=True,
            data=data or {},
            message=message,
            follow_up=follow_up,
        )

    @classmethod
    def failure(cls, code: str, *messages: str) -> "ActionResult":
        """Create a failure result with error details."""
        return cls(
            success=False,
            errors=list(messages),
            error_code=code,
        )


@dataclass
class ValidationResult:
    """Result of validating a selection value or a full argument set."""

    is_valid: bool = True
    errors: list[str] = field(default_factory=list)

    @property
    def error_message(self) -> str | None:
        return "; ".join(self.errors) if self.errors else None

    @classmethod
    def ok(cls) -> "ValidationResult":
        return cls(is_valid=True)

    @classmethod
    def error(cls, *messages: str) -> "ValidationResult":
        return cls(is_valid=False, errors=list(messages))


@dataclass
class SelectionStepResult:
    """Result of submitting one selection of a pending action."""

    success: bool = True
    errors: list[str] = field(default_factory=list)
    error_code: str | None = None
    done: bool = True
    next_choices: list[Any] | None = None

    @property
    def error(self) -> str | None:
        return "; ".join(self.errors) if self.errors else None

    @classmethod
    def ok(cls, done: bool = True, next_choices: list[Any] | None = None) -> "SelectionStepResult":
        return cls(success=True, done=done, next_choices=next_choices)

    @classmethod
    def failure(
        cls,
        code: str,
        *messages: str,
        done: bool = False,
        next_choices: list[Any] | None = None,
    ) -> "SelectionStepResult":
        return cls(
            success=False,
            errors=list(messages),
            error_code=code,
            done=done,
            next_choices=next_choices,
        )
