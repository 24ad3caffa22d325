"""Tests for selection validation and action execution.

Critical scenarios tested:
- Text, number and multi-select rules
- Custom validators returning False or a message
- Wire values (indices, ids) resolve to live objects
- execute_action error codes
"""

import pytest

from turnflow.services.actions import (
    Action,
    ActionResult,
    MultiSelectConfig,
    all_of,
    any_of,
    exclude_already_selected,
    negate,
    resolve_multi_select,
)


@pytest.fixture
def executor(two_player_game):
    return two_player_game.executor


@pytest.fixture
def alice(two_player_game):
    return two_player_game.participants[0]


class TestFreeInput:
    """Text and number selections."""

    def test_text_rules(self, executor, alice):
        selection = (
            Action.create("rename")
            .enter_text("title", min_length=2, max_length=5, pattern=r"^[a-z]+$")
            .build()
            .selections[0]
        )

        assert executor.validate_selection(selection, "abc", alice, {}).is_valid
        assert executor.validate_selection(selection, "a", alice, {}).errors == [
            "title must be at least 2 characters"
        ]
        assert executor.validate_selection(selection, "abcdef", alice, {}).errors == [
            "title must be at most 5 characters"
        ]
        assert executor.validate_selection(selection, "Ab", alice, {}).errors == [
            "title does not match required pattern"
        ]
        assert executor.validate_selection(selection, 12, alice, {}).errors == [
            "title must be a string"
        ]

    def test_number_rules(self, executor, alice):
        selection = (
            Action.create("bid").enter_number("amount", min=1, max=10, integer=True).build()
        ).selections[0]

        assert executor.validate_selection(selection, 5, alice, {}).is_valid
        assert executor.validate_selection(selection, 0, alice, {}).errors == [
            "amount must be at least 1"
        ]
        assert executor.validate_selection(selection, 11, alice, {}).errors == [
            "amount must be at most 10"
        ]
        assert executor.validate_selection(selection, 2.5, alice, {}).errors == [
            "amount must be an integer"
        ]

    @pytest.mark.parametrize("value", [True, "3", None, float("nan")])
    def test_non_numbers_rejected(self, executor, alice, value):
        selection = Action.create("bid").enter_number("amount").build().selections[0]

        result = executor.validate_selection(selection, value, alice, {})

        assert result.errors == ["amount must be a number"]


class TestChoiceValidation:
    """Choice membership, multi-select bounds and custom validators."""

    def test_membership(self, executor, alice):
        selection = Action.create("play").choose_from("color", ["red"]).build().selections[0]

        assert executor.validate_selection(selection, "red", alice, {}).is_valid
        assert executor.validate_selection(selection, "blue", alice, {}).error_message == (
            "Invalid selection for color"
        )

    def test_multi_select_bounds(self, executor, alice):
        selection = (
            Action.create("discard")
            .choose_from("cards", ["a", "b", "c"], multi_select={"min": 2, "max": 3})
            .build()
            .selections[0]
        )

        assert executor.validate_selection(selection, ["a", "b"], alice, {}).is_valid
        assert executor.validate_selection(selection, ["a"], alice, {}).errors == [
            "cards requires at least 2 selections"
        ]
        assert executor.validate_selection(selection, ["a", "z"], alice, {}).errors == [
            "Invalid selection for cards: 'z'"
        ]
        assert executor.validate_selection(selection, "a", alice, {}).errors == [
            "cards expects a list of selections"
        ]

    def test_multi_select_shorthand(self):
        selection = (
            Action.create("discard").choose_from("cards", ["a"], multi_select=2).build()
        ).selections[0]

        bounds = resolve_multi_select(selection, None)

        assert bounds == MultiSelectConfig(min=1, max=2)

    def test_custom_validator(self, executor, alice):
        def even(value, ctx):
            return value % 2 == 0 or "Pick an even number"

        selection = Action.create("pick").choose_from("n", [1, 2], validator=even).build()
        choice = selection.selections[0]
        number = Action.create("bid").enter_number("n", validator=lambda v, ctx: False).build()

        assert executor.validate_selection(choice, 2, alice, {}).is_valid
        assert executor.validate_selection(choice, 1, alice, {}).errors == ["Pick an even number"]
        assert executor.validate_selection(number.selections[0], 4, alice, {}).errors == [
            "Invalid n"
        ]

    def test_dependent_choice_filter(self, executor, alice):
        action = (
            Action.create("pick")
            .choose_from("color", ["red", "blue"])
            .choose_from(
                "item",
                [{"name": "apple", "color": "red"}, {"name": "plum", "color": "blue"}],
                filter_by={"key": "color", "selection_name": "color"},
            )
            .build()
        )

        choices = executor.get_choices(action.selections[1], alice, {"color": "blue"})

        assert choices == [{"name": "plum", "color": "blue"}]

    def test_missing_required_selection(self, executor, alice):
        action = (
            Action.create("play")
            .choose_from("color", ["red"])
            .enter_text("note", optional=True)
            .build()
        )

        result = executor.validate_action(action, alice, {})

        assert result.errors == ["Missing required selection: color"]


class TestArgumentResolution:
    """Wire values are mapped to live objects."""

    def test_participant_and_entity_ids(self, two_player_game, executor):
        red = two_player_game.create_entity("red", "piece")
        blue = two_player_game.create_entity("blue", "piece")
        action = (
            Action.create("swap")
            .choose_participant("target")
            .choose_entity("piece", entity_type="piece")
            .from_entities("pieces", lambda ctx: [red, blue], multi_select=2)
            .build()
        )

        resolved = executor.resolve_args(
            action, {"target": 1, "piece": red.id, "pieces": [red.id, blue.id]}
        )

        assert resolved["target"] is two_player_game.participants[1]
        assert resolved["piece"] is red
        assert resolved["pieces"] == [red, blue]
        assert executor.resolve_args(action, resolved) == resolved

    def test_exclude_already_selected(self, two_player_game, executor, alice):
        red = two_player_game.create_entity("red", "piece")
        blue = two_player_game.create_entity("blue", "piece")
        action = (
            Action.create("pick")
            .choose_entity("piece", entity_type="piece", filter=exclude_already_selected("taken"))
            .build()
        )

        choices = executor.get_choices(action.selections[0], alice, {"taken": [red]})

        assert choices == [blue]

    def test_filter_combinators(self, two_player_game, executor, alice):
        """all_of, any_of and negate compose participant filters."""
        two_player_game.participants[1].attributes["team"] = "red"

        def is_other(p, ctx):
            return p is not ctx.participant

        def on_red(p, ctx):
            return p.attributes.get("team") == "red"

        action = (
            Action.create("tag")
            .choose_participant("both", filter=all_of(is_other, on_red))
            .choose_participant("either", filter=any_of(is_other, on_red))
            .choose_participant("self", filter=negate(is_other))
            .build()
        )
        both, either, self_only = action.selections

        assert executor.get_choices(both, alice, {}) == [two_player_game.participants[1]]
        assert executor.get_choices(either, alice, {}) == [two_player_game.participants[1]]
        assert executor.get_choices(self_only, alice, {}) == [alice]


class TestExecuteAction:
    """Outcome codes of execute_action."""

    def test_effect_receives_resolved_args(self, two_player_game, executor, alice):
        received = {}
        action = (
            Action.create("give")
            .choose_participant("target", filter=lambda p, ctx: p is not ctx.participant)
            .execute(lambda args, ctx: received.update(args))
        )

        result = executor.execute_action(action, alice, {"target": 1})

        assert result.success
        assert received["target"] is two_player_game.participants[1]

    def test_effect_result_passed_through(self, executor, alice):
        action = Action.create("score").execute(
            lambda args, ctx: ActionResult.ok(data={"points": 3}, message="Scored")
        )

        result = executor.execute_action(action, alice, {})

        assert result.data == {"points": 3}
        assert result.message == "Scored"

    def test_condition_failure(self, executor, alice):
        action = Action.create("win").condition(lambda ctx: False).execute(lambda args, ctx: None)

        result = executor.execute_action(action, alice, {})

        assert result.error_code == "ACTION_NOT_AVAILABLE"

    def test_invalid_args(self, executor, alice):
        action = Action.create("give").choose_participant("target").execute(lambda a, c: None)

        result = executor.execute_action(action, alice, {"target": 7})

        assert result.error_code == "INVALID_ARGS"
        assert result.error == "Invalid selection for target"

    def test_effect_exception(self, executor, alice, caplog):
        def broken(args, ctx):
            raise RuntimeError("table flipped")

        action = Action.create("flip").execute(broken)

        result = executor.execute_action(action, alice, {})

        assert not result.success
        assert result.error_code == "EFFECT_FAILED"
        assert result.error == "table flipped"
        assert "Action effect raised" in caplog.text

    def test_unknown_action(self, two_player_game, alice):
        result = two_player_game.perform_action("fly", alice, {})

        assert result.error_code == "UNKNOWN_ACTION"
