"""Shared fixtures for flow engine and action tests."""

import pytest

from turnflow.config import Settings
from turnflow.services.actions import Action
from turnflow.services.engine import FlowEngine, define_flow
from turnflow.services.game import Game


def _record(name: str):
    def _effect(args, ctx):
        ctx.game.settings["log"].append((name, ctx.participant.index))

    return _effect


@pytest.fixture
def settings() -> Settings:
    """Small ceilings so runaway flows fail fast."""
    return Settings(_env_file=None, FLOW_MAX_ITERATIONS=500, LOOP_MAX_ITERATIONS=100)


@pytest.fixture
def two_player_game() -> Game:
    """Two participants with always-available `draw` and `pass` actions."""
    game = Game(["alice", "bob"], settings={"log": []})
    game.register_actions(
        Action.create("draw").prompt("Draw a card").execute(_record("draw")),
        Action.create("pass").execute(_record("pass")),
    )
    return game


@pytest.fixture
def three_player_game() -> Game:
    game = Game(["alice", "bob", "carol"], settings={"log": []})
    game.register_actions(
        Action.create("draw").execute(_record("draw")),
        Action.create("pass").execute(_record("pass")),
    )
    return game


@pytest.fixture
def make_engine(settings: Settings):
    """Build a FlowEngine for a game from a root node and flow hooks."""

    def _make(game: Game, root, **hooks) -> FlowEngine:
        return FlowEngine(game, define_flow(root, **hooks), settings=settings)

    return _make
