"""Tests for action availability and its trace.

Critical scenarios tested:
- Static choice selections with a dependent later selection are searched
- Dynamic choices, entities and participants only need a non-empty set
- Optional, text and number selections never block
- Condition failures, messages and tracer details
- Filters crashing on unset earlier selections
"""

import pytest

from turnflow.services.actions import (
    Action,
    SelectionFilterError,
    dependent_filter,
)

ITEMS = [
    {"name": "apple", "color": "red"},
    {"name": "plum", "color": "blue"},
]


def _pick(items):
    return (
        Action.create("pick")
        .choose_from("color", ["red", "blue"])
        .choose_from("item", items, filter_by={"key": "color", "selection_name": "color"})
        .execute(lambda args, ctx: None)
    )


class TestSelectionPaths:
    """has_valid_selection_path through the executor."""

    def test_chain_available_when_one_branch_fits(self, two_player_game):
        action = _pick([ITEMS[1]])
        alice = two_player_game.participants[0]

        assert two_player_game.executor.is_action_available(action, alice)

    def test_chain_unavailable_when_every_branch_empty(self, two_player_game):
        action = _pick([{"name": "lime", "color": "green"}])
        alice = two_player_game.participants[0]

        assert not two_player_game.executor.is_action_available(action, alice)

    def test_empty_static_choices_block(self, two_player_game):
        action = Action.create("pick").choose_from("color", []).execute(lambda args, ctx: None)

        assert not two_player_game.executor.is_action_available(
            action, two_player_game.participants[0]
        )

    def test_dynamic_choices_evaluated_once(self, two_player_game):
        """Dynamic choices are not searched value by value."""
        calls = []

        def colors(ctx):
            calls.append(1)
            return ["red", "blue"]

        action = (
            Action.create("pick")
            .choose_from("color", colors)
            .choose_from(
                "item",
                [{"name": "lime", "color": "green"}],
                filter_by={"key": "color", "selection_name": "color"},
            )
            .execute(lambda args, ctx: None)
        )

        assert two_player_game.executor.is_action_available(
            action, two_player_game.participants[0]
        )
        assert calls == [1]

    def test_free_input_and_optional_never_block(self, two_player_game):
        action = (
            Action.create("name_it")
            .choose_from("extra", [], optional=True)
            .enter_text("title", min_length=3)
            .enter_number("bid", min=1)
            .execute(lambda args, ctx: None)
        )

        assert two_player_game.executor.is_action_available(
            action, two_player_game.participants[0]
        )

    def test_participant_filter(self, two_player_game):
        action = (
            Action.create("attack")
            .choose_participant("target", filter=lambda p, ctx: p is not ctx.participant)
            .execute(lambda args, ctx: None)
        )
        choices = two_player_game.get_selection_choices(
            "attack", "target", two_player_game.participants[0]
        )
        assert choices == []  # not registered yet

        two_player_game.register_action(action)
        choices = two_player_game.get_selection_choices(
            "attack", "target", two_player_game.participants[0]
        )
        assert choices == [two_player_game.participants[1]]

    def test_entity_type_and_filter(self, two_player_game):
        two_player_game.create_entity("red pawn", "piece", color="red")
        two_player_game.create_entity("blue pawn", "piece", color="blue")
        two_player_game.create_entity("red card", "card", color="red")
        alice = two_player_game.participants[0]

        red_pieces = (
            Action.create("move")
            .choose_entity("piece", entity_type="piece", filter=lambda e, ctx: e.color == "red")
            .execute(lambda args, ctx: None)
        )
        green_pieces = (
            Action.create("move")
            .choose_entity("piece", entity_type="piece", filter=lambda e, ctx: e.color == "green")
            .execute(lambda args, ctx: None)
        )

        choices = two_player_game.executor.get_choices(red_pieces.selections[0], alice, {})
        assert [e.name for e in choices] == ["red pawn"]
        assert two_player_game.executor.is_action_available(red_pieces, alice)
        assert not two_player_game.executor.is_action_available(green_pieces, alice)

    def test_entity_scope(self, two_player_game):
        hand = two_player_game.create_entity("hand", "zone")
        two_player_game.create_entity("ace", "card", parent=hand)
        two_player_game.create_entity("king", "card")
        action = (
            Action.create("play")
            .choose_entity("card", entity_type="card", scope=lambda ctx: hand)
            .execute(lambda args, ctx: None)
        )

        choices = two_player_game.executor.get_choices(
            action.selections[0], two_player_game.participants[0], {}
        )

        assert [e.name for e in choices] == ["ace"]

    def test_unavailable_actions_left_out_of_listing(self, two_player_game):
        two_player_game.register_action(_pick([]))
        names = [
            a.name for a in two_player_game.get_available_actions(two_player_game.participants[0])
        ]

        assert names == ["draw", "pass"]


class TestConditions:
    """Availability conditions and their explanations."""

    def test_false_condition_blocks(self, two_player_game):
        action = (
            Action.create("win")
            .condition(lambda ctx: False, "Nobody wins yet")
            .execute(lambda args, ctx: None)
        )
        alice = two_player_game.participants[0]

        assert not two_player_game.executor.is_action_available(action, alice)

        trace = two_player_game.executor.trace_action_availability(action, alice)
        assert trace.condition_result is False
        assert trace.condition_message == "Nobody wins yet"
        assert trace.available is False
        assert trace.selections == []

    def test_callable_condition_message(self, two_player_game):
        action = (
            Action.create("win")
            .condition(lambda ctx: False, lambda ctx: f"{ctx.participant.name} cannot win")
            .execute(lambda args, ctx: None)
        )

        trace = two_player_game.executor.trace_action_availability(
            action, two_player_game.participants[1]
        )

        assert trace.condition_message == "bob cannot win"

    def test_tracer_details_recorded(self, two_player_game):
        def can_draw(ctx):
            deck = ctx.game.settings.get("deck", 0)
            if ctx.tracer is None:
                return deck > 0
            return ctx.tracer.check("deck not empty", deck > 0) and ctx.tracer.nested(
                "hand has room", lambda t: t.check("hand size", 3)
            )

        two_player_game.settings["deck"] = 5
        action = Action.create("draw").condition(can_draw).execute(lambda args, ctx: None)

        trace = two_player_game.executor.trace_action_availability(
            action, two_player_game.participants[0]
        )

        assert trace.available
        assert [d.label for d in trace.condition_details] == ["deck not empty", "hand has room"]
        assert trace.condition_details[1].children[0].value == 3

    def test_condition_crash_recorded(self, two_player_game):
        action = (
            Action.create("draw")
            .condition(lambda ctx: ctx.game.settings["missing"])
            .execute(lambda args, ctx: None)
        )

        trace = two_player_game.executor.trace_action_availability(
            action, two_player_game.participants[0]
        )

        assert trace.condition_error == "'missing'"
        assert not trace.available


class TestTrace:
    """Per-selection trace entries."""

    def test_selection_entries(self, two_player_game):
        action = (
            Action.create("bid")
            .choose_from("suit", ["hearts"], skip_if_only_one=True)
            .enter_number("amount", min=1)
            .execute(lambda args, ctx: None)
        )

        trace = two_player_game.executor.trace_action_availability(
            action, two_player_game.participants[0]
        )

        assert trace.available
        suit, amount = trace.selections
        assert suit.kind == "choice"
        assert suit.choice_count == 1
        assert suit.skipped
        assert amount.kind == "number"
        assert amount.choice_count == -1

    def test_dependent_filter_metadata(self, two_player_game):
        trace = two_player_game.executor.trace_action_availability(
            _pick(ITEMS), two_player_game.participants[0]
        )

        assert trace.available
        assert trace.selections[1].filter_applied
        assert trace.selections[1].depends_on == "color"

    def test_trace_stops_at_first_blocker(self, two_player_game):
        action = (
            Action.create("pick")
            .choose_from("first", [])
            .choose_from("second", ["x"])
            .execute(lambda args, ctx: None)
        )

        trace = two_player_game.executor.trace_action_availability(
            action, two_player_game.participants[0]
        )

        assert not trace.available
        assert [s.name for s in trace.selections] == ["first"]


class TestFilterErrors:
    """Filters reading earlier selections during availability checks."""

    @pytest.fixture
    def board(self, two_player_game):
        two_player_game.create_entity("red pawn", "piece", color="red")
        two_player_game.create_entity("red square", "space", color="red")
        two_player_game.create_entity("blue square", "space", color="blue")
        return two_player_game

    def test_crashing_filter_raises_helpful_error(self, board):
        action = (
            Action.create("move")
            .choose_entity("source", entity_type="piece")
            .choose_entity(
                "dest",
                entity_type="space",
                filter=lambda e, ctx: e.color == ctx.args["source"].color,
            )
            .execute(lambda args, ctx: None)
        )

        with pytest.raises(SelectionFilterError) as exc_info:
            board.executor.is_action_available(action, board.participants[0])

        assert exc_info.value.selection_name == "dest"
        assert exc_info.value.missing == ["source"]
        assert "dependent_filter" in str(exc_info.value)

    def test_trace_records_filter_error(self, board):
        action = (
            Action.create("move")
            .choose_entity("source", entity_type="piece")
            .choose_entity(
                "dest",
                entity_type="space",
                filter=lambda e, ctx: e.color == ctx.args["source"].color,
            )
            .execute(lambda args, ctx: None)
        )

        trace = board.executor.trace_action_availability(action, board.participants[0])

        assert not trace.available
        assert "dependent_filter" in trace.selections[1].error

    def test_dependent_filter_handles_unset_selection(self, board):
        action = (
            Action.create("move")
            .choose_entity("source", entity_type="piece")
            .choose_entity(
                "dest",
                entity_type="space",
                filter=dependent_filter(
                    "source",
                    when_undefined=lambda e, ctx: True,
                    when_selected=lambda e, source, ctx: e.color == source.color,
                ),
            )
            .execute(lambda args, ctx: None)
        )
        alice = board.participants[0]
        source = board.root.all("piece")[0]

        assert board.executor.is_action_available(action, alice)
        choices = board.executor.get_choices(action.selections[1], alice, {"source": source})
        assert [e.name for e in choices] == ["red square"]
