"""Tests for settings loading."""

import pytest
from pydantic import ValidationError

from turnflow.config import Settings, get_settings
from turnflow.services.engine import FlowEngine, define_flow, noop


@pytest.fixture
def fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestSettings:
    def test_defaults(self):
        settings = Settings(_env_file=None)

        assert settings.FLOW_MAX_ITERATIONS == 10000
        assert settings.LOOP_MAX_ITERATIONS == 10000
        assert settings.WARN_UNKNOWN_ACTIONS is True
        assert settings.DEBUG is False

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("TURNFLOW_LOOP_MAX_ITERATIONS", "25")
        monkeypatch.setenv("TURNFLOW_WARN_UNKNOWN_ACTIONS", "false")

        settings = Settings(_env_file=None)

        assert settings.LOOP_MAX_ITERATIONS == 25
        assert settings.WARN_UNKNOWN_ACTIONS is False

    @pytest.mark.parametrize("value", [0, -5])
    def test_non_positive_ceiling_rejected(self, value):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, FLOW_MAX_ITERATIONS=value)

    def test_engine_falls_back_to_loaded_settings(
        self, monkeypatch, fresh_settings, two_player_game
    ):
        """An engine built without settings reads them from the environment."""
        monkeypatch.setenv("TURNFLOW_FLOW_MAX_ITERATIONS", "77")

        engine = FlowEngine(two_player_game, define_flow(noop()))

        assert engine.max_iterations == 77
        assert engine.loop_max_iterations == 10000

    def test_explicit_ceilings_win(self, settings, two_player_game):
        engine = FlowEngine(
            two_player_game,
            define_flow(noop()),
            max_iterations=5,
            loop_max_iterations=3,
            settings=settings,
        )

        assert engine.max_iterations == 5
        assert engine.loop_max_iterations == 3
