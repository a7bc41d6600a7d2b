"""
Unit tests for the terminal surface.

Tests cover:
- Auto-confirmation with --yes
- Cascade answers: kept unless cascading is explicitly requested
- Interactive answers read from stdin
"""

import pytest

from marine_console.surface import TerminalSurface

CHOICES = {"units": ["Cato (#1)", "Alaric (#2)"]}


class TestConfirm:
    """Tests for TerminalSurface.confirm."""

    @pytest.mark.asyncio
    async def test_assume_yes(self, capsys):
        assert await TerminalSurface(assume_yes=True).confirm("Delete?", "Confirm delete")
        assert "[auto-confirmed]" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_reads_answer(self, monkeypatch):
        monkeypatch.setattr("builtins.input", lambda prompt: " Yes ")

        assert await TerminalSurface().confirm("Delete?", "Confirm delete")

    @pytest.mark.asyncio
    async def test_default_is_no(self, monkeypatch):
        monkeypatch.setattr("builtins.input", lambda prompt: "")

        assert not await TerminalSurface().confirm("Delete?", "Confirm delete")


class TestChooseCascade:
    """Tests for TerminalSurface.choose_cascade."""

    @pytest.mark.asyncio
    async def test_assume_yes_keeps_dependents(self, capsys):
        """--yes confirms the delete but never cascades on its own."""
        decision = await TerminalSurface(assume_yes=True).choose_cascade("Related objects:", CHOICES)

        assert decision == {"units": False}
        assert "[auto-answered no]" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_assume_yes_with_cascade(self):
        surface = TerminalSurface(assume_yes=True, cascade=True)

        assert await surface.choose_cascade("Related objects:", CHOICES) == {"units": True}

    @pytest.mark.asyncio
    async def test_interactive_answers(self, monkeypatch):
        answers = iter(["y", "y"])
        monkeypatch.setattr("builtins.input", lambda prompt: next(answers))

        assert await TerminalSurface().choose_cascade("Related objects:", CHOICES) == {"units": True}

    @pytest.mark.asyncio
    async def test_declined_delete_cancels(self, monkeypatch):
        answers = iter(["y", "n"])
        monkeypatch.setattr("builtins.input", lambda prompt: next(answers))

        assert await TerminalSurface().choose_cascade("Related objects:", CHOICES) is None
