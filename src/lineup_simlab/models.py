"""Core data types: players, rosters, contests, constraints, lineups and results.

Everything here is an immutable per-request snapshot. Lineups are created by the
generator and only read afterwards.
"""

from __future__ import annotations

import hashlib
import math
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Dict, FrozenSet, Mapping, Optional, Sequence, Tuple

if TYPE_CHECKING:
    from .exposure import ExposureReport


@dataclass(frozen=True)
class Player:
    """A single entrant in the player pool."""

    player_id: str
    name: str
    team: str
    positions: Tuple[str, ...]
    salary: int
    projected_points: float
    floor_points: Optional[float] = None
    ceiling_points: Optional[float] = None
    ownership: float = 0.0  # percent, 0-100
    opponent: Optional[str] = None

    def __post_init__(self):
        if isinstance(self.positions, str):
            object.__setattr__(self, "positions", (self.positions,))
        else:
            object.__setattr__(self, "positions", tuple(self.positions))

    @property
    def ceiling(self) -> float:
        """Ceiling projection, falling back to the median projection."""
        if self.ceiling_points is None:
            return self.projected_points
        return self.ceiling_points

    @property
    def floor(self) -> float:
        """Floor projection, mirroring the ceiling below the median when absent."""
        if self.floor_points is None:
            return max(0.0, 2 * self.projected_points - self.ceiling)
        return self.floor_points

    @property
    def game_key(self) -> str:
        if not self.opponent:
            return self.team
        return "@".join(sorted((self.team, self.opponent)))


def _freeze_flex(flex: Optional[Mapping[str, Sequence[str]]]) -> Mapping[str, FrozenSet[str]]:
    return MappingProxyType({k: frozenset(v) for k, v in (flex or {}).items()})


@dataclass(frozen=True)
class RosterRequirement:
    """Ordered multiset of slot categories a lineup must fill exactly once each.

    ``flex`` maps a slot category to the player positions allowed to fill it,
    e.g. ``{"FLEX": {"RB", "WR", "TE"}}``. A player whose positions include the
    slot category itself is always eligible.
    """

    slots: Tuple[str, ...]
    flex: Mapping[str, FrozenSet[str]] = field(default_factory=dict)
    sport: str = "generic"

    def __post_init__(self):
        object.__setattr__(self, "slots", tuple(self.slots))
        object.__setattr__(self, "flex", _freeze_flex(self.flex))

    @property
    def size(self) -> int:
        return len(self.slots)

    def can_fill(self, player: Player, slot: str) -> bool:
        if slot in player.positions:
            return True
        allowed = self.flex.get(slot)
        return bool(allowed) and any(pos in allowed for pos in player.positions)

    def eligible_slots(self, player: Player) -> FrozenSet[str]:
        return frozenset(s for s in self.slots if self.can_fill(player, s))

    @classmethod
    def uniform(cls, category: str, count: int, sport: str = "generic") -> "RosterRequirement":
        return cls(slots=(category,) * count, sport=sport)

    @classmethod
    def draftkings_nfl(cls) -> "RosterRequirement":
        return cls(
            slots=("QB", "RB", "RB", "WR", "WR", "WR", "TE", "FLEX", "DST"),
            flex={"FLEX": {"RB", "WR", "TE"}, "DST": {"D", "DEF"}},
            sport="nfl",
        )

    @classmethod
    def fanduel_nfl(cls) -> "RosterRequirement":
        return cls(
            slots=("QB", "RB", "RB", "WR", "WR", "WR", "TE", "FLEX", "D/ST"),
            flex={"FLEX": {"RB", "WR", "TE"}, "D/ST": {"DST", "D", "DEF"}},
            sport="nfl",
        )

    @classmethod
    def draftkings_nba(cls) -> "RosterRequirement":
        return cls(
            slots=("PG", "SG", "SF", "PF", "C", "G", "F", "UTIL"),
            flex={
                "G": {"PG", "SG"},
                "F": {"SF", "PF"},
                "UTIL": {"PG", "SG", "SF", "PF", "C"},
            },
            sport="nba",
        )

    @classmethod
    def draftkings_nhl(cls) -> "RosterRequirement":
        return cls(
            slots=("C", "C", "W", "W", "W", "D", "D", "G", "UTIL"),
            flex={"W": {"LW", "RW"}, "UTIL": {"C", "W", "LW", "RW", "D"}},
            sport="nhl",
        )

    @classmethod
    def golf(cls) -> "RosterRequirement":
        return cls.uniform("G", 6, sport="golf")


ROSTER_PRESETS = {
    "draftkings_nfl": RosterRequirement.draftkings_nfl,
    "fanduel_nfl": RosterRequirement.fanduel_nfl,
    "draftkings_nba": RosterRequirement.draftkings_nba,
    "draftkings_nhl": RosterRequirement.draftkings_nhl,
    "golf": RosterRequirement.golf,
}


class ContestFormat(str, Enum):
    HEAD_TO_HEAD = "head_to_head"
    DOUBLE_UP = "double_up"
    FIFTY_FIFTY = "fifty_fifty"
    GPP = "gpp"


class Objective(str, Enum):
    """Per-player score the generator maximises."""

    PROJECTION = "projection"
    CEILING = "ceiling"
    FLOOR = "floor"
    BALANCED = "balanced"
    CONTRARIAN = "contrarian"
    VALUE = "value"


@dataclass(frozen=True)
class PayoutTier:
    """Payout for each finishing rank in ``[min_rank, max_rank]`` (1-based, inclusive)."""

    min_rank: int
    max_rank: int
    payout: float


@dataclass(frozen=True)
class ContestDescriptor:
    salary_cap: int
    roster: RosterRequirement
    entry_fee: float = 0.0
    prize_pool: float = 0.0
    max_entries: int = 100
    contest_format: ContestFormat = ContestFormat.GPP
    payout_tiers: Tuple[PayoutTier, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "contest_format", ContestFormat(self.contest_format))
        object.__setattr__(self, "payout_tiers", tuple(self.payout_tiers))


@dataclass(frozen=True)
class StackingRule:
    """Grouping constraint on a lineup.

    ``kind="team"``: listed teams (or, without ``teams``, at least one team) must
    field between ``min_players`` and ``max_players``; no team may exceed the max.
    ``kind="game"``: at least one game must have ``min_players``; none may exceed
    the max.
    """

    kind: str = "team"
    min_players: int = 2
    max_players: int = 8
    teams: Tuple[str, ...] = ()

    def __post_init__(self):
        if self.kind not in ("team", "game"):
            raise ValueError(f"Unknown stacking rule kind: {self.kind!r}")
        object.__setattr__(self, "teams", tuple(self.teams))

    def deficit(self, players: Sequence[Player]) -> int:
        """Players missing from, or in excess of, the rule's bounds (0 when satisfied)."""
        counts: Dict[str, int] = {}
        for p in players:
            key = p.team if self.kind == "team" else p.game_key
            counts[key] = counts.get(key, 0) + 1

        excess = sum(max(0, c - self.max_players) for c in counts.values())
        if self.kind == "team" and self.teams:
            return excess + sum(max(0, self.min_players - counts.get(t, 0)) for t in self.teams)
        best = max(counts.values(), default=0)
        return excess + max(0, self.min_players - best)

    def is_satisfied(self, players: Sequence[Player]) -> bool:
        return self.deficit(players) == 0


@dataclass(frozen=True)
class OptimizationConstraints:
    num_lineups: int = 1
    locked: FrozenSet[str] = frozenset()
    excluded: FrozenSet[str] = frozenset()
    min_exposure: Mapping[str, float] = field(default_factory=dict)
    max_exposure: Mapping[str, float] = field(default_factory=dict)
    min_distinct_players: int = 1
    stacking_rules: Tuple[StackingRule, ...] = ()
    use_correlation: bool = False
    correlation_weight: float = 1.0
    objective: Objective = Objective.PROJECTION
    # Team -> max share of lineups using at least one of its players
    max_team_exposure: Mapping[str, float] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "locked", frozenset(self.locked))
        object.__setattr__(self, "excluded", frozenset(self.excluded))
        object.__setattr__(self, "min_exposure", MappingProxyType(dict(self.min_exposure)))
        object.__setattr__(self, "max_exposure", MappingProxyType(dict(self.max_exposure)))
        object.__setattr__(self, "stacking_rules", tuple(self.stacking_rules))
        object.__setattr__(self, "objective", Objective(self.objective))
        object.__setattr__(self, "max_team_exposure", MappingProxyType(dict(self.max_team_exposure)))


@dataclass(frozen=True)
class SlotAssignment:
    slot: str
    player: Player


def lineup_signature(player_ids: Sequence[str]) -> str:
    """Stable identifier for a set of players, independent of slot order."""
    digest = hashlib.sha1(",".join(sorted(player_ids)).encode("utf-8")).hexdigest()
    return f"lu_{digest[:12]}"


@dataclass(frozen=True)
class Lineup:
    lineup_id: str
    assignments: Tuple[SlotAssignment, ...]
    total_salary: int
    projected_points: float
    ceiling_points: float
    correlation_score: float = 0.0

    @classmethod
    def from_assignments(
        cls, assignments: Sequence[SlotAssignment], correlation_score: float = 0.0
    ) -> "Lineup":
        assignments = tuple(assignments)
        players = [a.player for a in assignments]
        return cls(
            lineup_id=lineup_signature([p.player_id for p in players]),
            assignments=assignments,
            total_salary=sum(p.salary for p in players),
            projected_points=sum(p.projected_points for p in players),
            ceiling_points=sum(p.ceiling for p in players),
            correlation_score=correlation_score,
        )

    @property
    def players(self) -> Tuple[Player, ...]:
        return tuple(a.player for a in self.assignments)

    @property
    def player_ids(self) -> FrozenSet[str]:
        return frozenset(a.player.player_id for a in self.assignments)

    def __len__(self) -> int:
        return len(self.assignments)


class RunStatus(str, Enum):
    COMPLETE = "complete"
    PARTIAL = "partial"
    CANCELLED = "cancelled"


class ShortfallReason(str, Enum):
    DEADLINE = "deadline"
    ATTEMPTS_EXHAUSTED = "attempts_exhausted"
    CANCELLED = "cancelled"


@dataclass
class GenerationResult:
    lineups: Tuple[Lineup, ...]
    requested_count: int
    status: RunStatus
    reason: Optional[ShortfallReason] = None
    diagnostics: Dict[str, Any] = field(default_factory=dict)
    exposure: Optional["ExposureReport"] = None

    @property
    def produced_count(self) -> int:
        return len(self.lineups)

    @property
    def is_complete(self) -> bool:
        return self.status is RunStatus.COMPLETE


@dataclass
class SimulationResult:
    lineup_id: str
    trials: int = 0
    mean: float = math.nan
    variance: float = math.nan
    std: float = math.nan
    min: float = math.nan
    max: float = math.nan
    median: float = math.nan
    percentiles: Dict[float, float] = field(default_factory=dict)
    cash_probability: float = math.nan
    win_probability: float = math.nan
    expected_payout: float = math.nan
    roi: float = math.nan
    top_finish_rates: Dict[float, float] = field(default_factory=dict)
    mean_cash_line: float = math.nan
    status: RunStatus = RunStatus.COMPLETE
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.trials > 0


@dataclass
class SimulationBatch:
    results: Tuple[SimulationResult, ...]
    requested_trials: int
    status: RunStatus
    reason: Optional[ShortfallReason] = None
    elapsed_seconds: float = 0.0

    @property
    def completed_count(self) -> int:
        return sum(1 for r in self.results if r.trials >= self.requested_trials)

    def by_lineup(self) -> Dict[str, SimulationResult]:
        return {r.lineup_id: r for r in self.results}
