"""Exposure and diversity bookkeeping for one lineup batch."""

import logging
import math
import threading
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence

from .models import Lineup, OptimizationConstraints, Player

logger = logging.getLogger(__name__)

# Absorbs float error in products like 0.3 * 10 before rounding up.
_CEIL_TOLERANCE = 1e-9


def ceil_count(fraction: float, n: int) -> int:
    return max(0, math.ceil(fraction * n - _CEIL_TOLERANCE))


@dataclass
class PlayerExposure:
    player_id: str
    name: str
    team: str
    count: int
    exposure: float
    min_exposure: Optional[float] = None
    max_exposure: Optional[float] = None
    below_min: bool = False
    above_max: bool = False


@dataclass
class ExposureReport:
    lineup_count: int
    players: List[PlayerExposure] = field(default_factory=list)
    team_exposure: Dict[str, float] = field(default_factory=dict)
    # Share of lineups using each team, and teams above their max_team_exposure
    team_lineup_share: Dict[str, float] = field(default_factory=dict)
    teams_over_max: List[str] = field(default_factory=list)
    diversity_score: float = 1.0

    @property
    def violations(self) -> List[PlayerExposure]:
        return [p for p in self.players if p.below_min or p.above_max]

    def by_player(self) -> Dict[str, PlayerExposure]:
        return {p.player_id: p for p in self.players}


class ExposureController:
    """Tracks player usage across the lineups accepted so far.

    Max exposure is enforced on every prefix of the batch: after ``M`` accepted
    lineups no player with bound ``b`` appears more than ``ceil(b * M)`` times.
    """

    def __init__(self, roster_size: int, constraints: OptimizationConstraints):
        self.roster_size = roster_size
        self.constraints = constraints
        self.counts: Dict[str, int] = {}
        self.team_counts: Dict[str, int] = {}
        self.accepted = 0
        self._lineups: List[FrozenSet[str]] = []
        self._lock = threading.Lock()

    @property
    def accepted_player_sets(self) -> List[FrozenSet[str]]:
        with self._lock:
            return list(self._lineups)

    def count(self, player_id: str) -> int:
        return self.counts.get(player_id, 0)

    def current_exposure(self, player_id: str) -> float:
        if self.accepted == 0:
            return 0.0
        return self.count(player_id) / self.accepted

    def max_count(self, player_id: str, batch_size: int) -> int:
        bound = self.constraints.max_exposure.get(player_id)
        if bound is None:
            return batch_size
        return ceil_count(bound, batch_size)

    def team_count(self, team: str) -> int:
        """Accepted lineups using at least one player from ``team``."""
        return self.team_counts.get(team, 0)

    def is_team_at_max_exposure(self, team: str) -> bool:
        bound = self.constraints.max_team_exposure.get(team)
        if bound is None:
            return False
        return self.team_count(team) + 1 > ceil_count(bound, self.accepted + 1)

    def is_at_max_exposure(self, player_id: str, team: Optional[str] = None) -> bool:
        """True when one more appearance would exceed the player's (or its team's) max bound."""
        if player_id in self.constraints.excluded:
            return True
        if team is not None and self.is_team_at_max_exposure(team):
            return True
        bound = self.constraints.max_exposure.get(player_id)
        if bound is None:
            return False
        return self.count(player_id) + 1 > ceil_count(bound, self.accepted + 1)

    def min_exposure_need(self, player_id: str, target_n: int) -> int:
        """Appearances still needed to reach the player's min bound over ``target_n``."""
        bound = self.constraints.min_exposure.get(player_id)
        if not bound:
            return 0
        return max(0, ceil_count(bound, target_n) - self.count(player_id))

    def forced_players(self, target_n: int) -> List[str]:
        """Players who must appear in every remaining lineup to reach their min bound."""
        remaining = target_n - self.accepted
        if remaining <= 0:
            return []
        return sorted(
            pid
            for pid in self.constraints.min_exposure
            if self.min_exposure_need(pid, target_n) >= remaining
        )

    def record_acceptance(self, lineup: Lineup) -> None:
        ids = lineup.player_ids
        teams = {p.team for p in lineup.players}
        with self._lock:
            for pid in ids:
                self.counts[pid] = self.counts.get(pid, 0) + 1
            for team in teams:
                self.team_counts[team] = self.team_counts.get(team, 0) + 1
            self._lineups.append(ids)
            self.accepted += 1

    def distinct_player_count(self, a: Iterable[str], b: Iterable[str]) -> int:
        return self.roster_size - len(set(a) & set(b))

    def min_distinct_to_batch(self, player_ids: Iterable[str]) -> int:
        """Fewest distinct players between ``player_ids`` and any accepted lineup."""
        ids = frozenset(player_ids)
        with self._lock:
            lineups = list(self._lineups)
        if not lineups:
            return self.roster_size
        return min(self.distinct_player_count(ids, other) for other in lineups)

    def report(self, players: Sequence[Player]) -> ExposureReport:
        n = self.accepted
        min_bounds = self.constraints.min_exposure
        max_bounds = self.constraints.max_exposure

        entries = []
        team_counts: Dict[str, int] = {}
        for p in players:
            count = self.count(p.player_id)
            if count:
                team_counts[p.team] = team_counts.get(p.team, 0) + count
            lo = min_bounds.get(p.player_id)
            hi = max_bounds.get(p.player_id)
            if count == 0 and lo is None and hi is None:
                continue
            entries.append(
                PlayerExposure(
                    player_id=p.player_id,
                    name=p.name,
                    team=p.team,
                    count=count,
                    exposure=count / n if n else 0.0,
                    min_exposure=lo,
                    max_exposure=hi,
                    below_min=bool(lo) and n > 0 and count < ceil_count(lo, n),
                    above_max=hi is not None and count > ceil_count(hi, n),
                )
            )
        entries.sort(key=lambda e: (-e.count, e.player_id))

        total_slots = n * self.roster_size
        team_exposure = {t: c / total_slots for t, c in team_counts.items()} if total_slots else {}
        team_lineup_share = {t: c / n for t, c in self.team_counts.items()} if n else {}
        teams_over_max = sorted(
            team
            for team, bound in self.constraints.max_team_exposure.items()
            if self.team_count(team) > ceil_count(bound, n)
        )

        return ExposureReport(
            lineup_count=n,
            players=entries,
            team_exposure=team_exposure,
            team_lineup_share=team_lineup_share,
            teams_over_max=teams_over_max,
            diversity_score=self._diversity_score(),
        )

    def _diversity_score(self) -> float:
        """Mean fraction of distinct players over all lineup pairs."""
        lineups = self.accepted_player_sets
        if len(lineups) < 2 or self.roster_size == 0:
            return 1.0
        total = 0.0
        pairs = 0
        for i in range(len(lineups)):
            for j in range(i + 1, len(lineups)):
                total += self.distinct_player_count(lineups[i], lineups[j]) / self.roster_size
                pairs += 1
        return total / pairs
