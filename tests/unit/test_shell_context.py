"""
Unit tests for the entry script's flask shell context.
"""
import importlib
import pytest


@pytest.mark.unit
class TestShellContext:

    def test_shell_context_holds_db_and_models(self, monkeypatch):
        monkeypatch.setenv('FLASK_CONFIG', 'testing')
        squares = importlib.import_module('squares')

        with squares.app.app_context():
            context = squares.make_shell_context()

        assert set(context) == {'db', 'User', 'Pool', 'Square', 'AxisAssignment', 'Score', 'PoolEvent'}
