"""Supported game identifiers."""

from __future__ import annotations

SUPPORTED_GAMES: tuple[str, ...] = ("ME1", "ME2", "ME3", "LE1", "LE2", "LE3")

_BY_FOLDED = {game.casefold(): game for game in SUPPORTED_GAMES}


def normalize_game(value: str) -> str:
    """Return canonical game id for known games, else the stripped input."""
    raw = str(value).strip()
    return _BY_FOLDED.get(raw.casefold(), raw)
