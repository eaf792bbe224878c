"""Pairwise player correlation from sport-specific position tables."""

import logging
from typing import Dict, Iterable, Optional, Sequence

import numpy as np

from .models import Player

logger = logging.getLogger(__name__)


# Teammate correlations by (position, position). Missing pairs use the sport default.
TEAMMATE_TABLES: Dict[str, Dict[str, Dict[str, float]]] = {
    "nfl": {
        "QB": {"QB": 0.0, "RB": 0.10, "WR": 0.50, "TE": 0.40, "DST": -0.20},
        "RB": {"QB": 0.10, "RB": -0.30, "WR": -0.10, "TE": -0.05, "DST": 0.15},
        "WR": {"QB": 0.50, "RB": -0.10, "WR": 0.25, "TE": 0.10, "DST": -0.10},
        "TE": {"QB": 0.40, "RB": -0.05, "WR": 0.10, "TE": 0.0, "DST": -0.05},
        "DST": {"QB": -0.20, "RB": 0.15, "WR": -0.10, "TE": -0.05, "DST": 0.0},
    },
    "nba": {
        "PG": {"PG": 0.0, "SG": 0.35, "SF": 0.25, "PF": 0.20, "C": 0.30},
        "SG": {"PG": 0.35, "SG": 0.0, "SF": 0.20, "PF": 0.15, "C": 0.25},
        "SF": {"PG": 0.25, "SG": 0.20, "SF": 0.0, "PF": 0.20, "C": 0.20},
        "PF": {"PG": 0.20, "SG": 0.15, "SF": 0.20, "PF": 0.0, "C": 0.35},
        "C": {"PG": 0.30, "SG": 0.25, "SF": 0.20, "PF": 0.35, "C": 0.0},
    },
    "mlb": {
        "P": {"P": -0.50, "C": 0.20, "1B": 0.0, "2B": 0.0, "3B": 0.0, "SS": 0.0, "OF": 0.0},
        "C": {"P": 0.20, "C": 0.0, "1B": 0.10, "2B": 0.10, "3B": 0.10, "SS": 0.10, "OF": 0.10},
        "1B": {"P": 0.0, "C": 0.10, "1B": 0.0, "2B": 0.25, "3B": 0.20, "SS": 0.20, "OF": 0.30},
        "2B": {"P": 0.0, "C": 0.10, "1B": 0.25, "2B": 0.0, "3B": 0.25, "SS": 0.30, "OF": 0.25},
        "3B": {"P": 0.0, "C": 0.10, "1B": 0.20, "2B": 0.25, "3B": 0.0, "SS": 0.25, "OF": 0.25},
        "SS": {"P": 0.0, "C": 0.10, "1B": 0.20, "2B": 0.30, "3B": 0.25, "SS": 0.0, "OF": 0.25},
        "OF": {"P": 0.0, "C": 0.10, "1B": 0.30, "2B": 0.25, "3B": 0.25, "SS": 0.25, "OF": 0.35},
    },
    "nhl": {
        "C": {"C": 0.20, "W": 0.45, "D": 0.25, "G": 0.30},
        "W": {"C": 0.45, "W": 0.40, "D": 0.20, "G": 0.30},
        "D": {"C": 0.25, "W": 0.20, "D": 0.35, "G": 0.35},
        "G": {"C": 0.30, "W": 0.30, "D": 0.35, "G": 0.0},
    },
}

TEAMMATE_DEFAULTS = {"nfl": 0.10, "nba": 0.20, "mlb": 0.15, "nhl": 0.20, "golf": 0.10}
GENERIC_TEAMMATE_DEFAULT = 0.20

# Position aliases folded before table lookups.
POSITION_ALIASES = {"D/ST": "DST", "DEF": "DST", "LW": "W", "RW": "W", "SP": "P", "RP": "P"}
# "D" is a defenseman in hockey but a team defense in football.
SPORT_POSITION_ALIASES = {"nfl": {"D": "DST"}}


def _opponent_correlation(sport: str, pos1: str, pos2: str) -> float:
    if sport == "nfl":
        if (pos1 == "QB" and pos2 in ("WR", "TE")) or (pos2 == "QB" and pos1 in ("WR", "TE")):
            return 0.25
        if {pos1, pos2} == {"RB", "DST"}:
            return -0.30
        return 0.10
    if sport == "nba":
        return 0.15
    if sport == "mlb":
        return -0.25 if "P" in (pos1, pos2) else 0.10
    if sport == "nhl":
        return -0.20 if "G" in (pos1, pos2) else 0.15
    if sport == "golf":
        return 0.05
    return 0.0


def _primary_position(player: Player, sport: str) -> str:
    pos = player.positions[0] if player.positions else ""
    pos = SPORT_POSITION_ALIASES.get(sport, {}).get(pos, pos)
    return POSITION_ALIASES.get(pos, pos)


class CorrelationModel:
    """Read-only correlation lookup for one player pool.

    Values are symmetric, lie in ``[-1, 1]``, equal 1 for a player with itself and
    0 for players who share neither a team nor a game.
    """

    def __init__(self, players: Iterable[Player], sport: str = "generic"):
        self.sport = (sport or "generic").lower()
        self._players = {p.player_id: p for p in players}
        self._cache: Dict[tuple, float] = {}

    def _teammate(self, pos1: str, pos2: str) -> float:
        table = TEAMMATE_TABLES.get(self.sport)
        if table is not None:
            value = table.get(pos1, {}).get(pos2)
            if value is not None:
                return value
        return TEAMMATE_DEFAULTS.get(self.sport, GENERIC_TEAMMATE_DEFAULT)

    def correlation(self, a: Player, b: Player) -> float:
        if a.player_id == b.player_id:
            return 1.0
        key = (a.player_id, b.player_id) if a.player_id < b.player_id else (b.player_id, a.player_id)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        pos1, pos2 = _primary_position(a, self.sport), _primary_position(b, self.sport)
        if a.team and a.team == b.team:
            value = self._teammate(pos1, pos2)
        elif (a.opponent and a.opponent == b.team) or (b.opponent and b.opponent == a.team):
            value = _opponent_correlation(self.sport, pos1, pos2)
        else:
            value = 0.0

        value = float(np.clip(value, -1.0, 1.0))
        self._cache[key] = value
        return value

    def pair_sum(self, player: Player, others: Sequence[Player]) -> float:
        """Sum of correlations between ``player`` and each of ``others``."""
        return sum(self.correlation(player, o) for o in others if o.player_id != player.player_id)

    def lineup_correlation(self, players: Sequence[Player]) -> float:
        """Sum of correlations over all unordered pairs."""
        total = 0.0
        for i in range(len(players)):
            for j in range(i + 1, len(players)):
                total += self.correlation(players[i], players[j])
        return total

    def matrix(self, players: Optional[Sequence[Player]] = None) -> np.ndarray:
        if players is None:
            players = list(self._players.values())
        n = len(players)
        result = np.eye(n)
        for i in range(n):
            for j in range(i + 1, n):
                result[i, j] = result[j, i] = self.correlation(players[i], players[j])
        return result

    def group_loadings(self, players: Sequence[Player]) -> np.ndarray:
        """Share of each player's variance driven by their team's common shock.

        The loading is the mean correlation with same-team players in
        ``players``, clipped to ``[0, 1]``; players without teammates get 0.
        """
        loadings = np.zeros(len(players))
        by_team: Dict[str, list] = {}
        for idx, p in enumerate(players):
            by_team.setdefault(p.team, []).append(idx)

        for members in by_team.values():
            if len(members) < 2:
                continue
            for i in members:
                values = [self.correlation(players[i], players[j]) for j in members if j != i]
                loadings[i] = float(np.clip(np.mean(values), 0.0, 1.0))
        return loadings
