"""Request validation and compilation into a generator-ready context."""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pulp

from .errors import Infeasible, InvalidInput
from .models import ContestDescriptor, OptimizationConstraints, Player
from .objectives import objective_scores

logger = logging.getLogger(__name__)


@dataclass
class CompiledContext:
    """Validated request with precomputed lookups.

    ``players`` holds only the non-excluded pool, and every array is indexed by
    position in ``players`` (rows) and roster slot (columns).
    """

    players: Tuple[Player, ...]
    contest: ContestDescriptor
    constraints: OptimizationConstraints
    eligibility: np.ndarray
    salaries: np.ndarray
    projections: np.ndarray
    ceilings: np.ndarray
    index: Dict[str, int]
    locked_slots: Dict[int, int] = field(default_factory=dict)
    min_roster_salary: int = 0
    # Objective score per player; plain projections unless set
    scores: Optional[np.ndarray] = None

    def __post_init__(self):
        if self.scores is None:
            self.scores = self.projections

    @property
    def roster(self):
        return self.contest.roster

    @property
    def roster_size(self) -> int:
        return self.contest.roster.size

    @property
    def salary_cap(self) -> int:
        return self.contest.salary_cap

    def slot_candidates(self, slot_idx: int) -> np.ndarray:
        return np.flatnonzero(self.eligibility[:, slot_idx])

    @property
    def locked_player_indices(self) -> List[int]:
        return sorted(self.locked_slots.values())


def salary_lower_bound(
    slots: Sequence[int],
    slot_names: Sequence[str],
    slot_cands: Sequence[np.ndarray],
    available: np.ndarray,
    salaries: np.ndarray,
) -> float:
    """Lower bound on the salary needed to fill ``slots`` from available players.

    Slots sharing a category need that many distinct players, so each category
    contributes the sum of its ``count`` cheapest eligible salaries.

    Returns:
        The bound, or ``inf`` if some category cannot be filled
    """
    groups: Dict[str, List[int]] = {}
    for s in slots:
        groups.setdefault(slot_names[s], []).append(s)

    total = 0
    for members in groups.values():
        cands = slot_cands[members[0]]
        cands = cands[available[cands]]
        if len(cands) < len(members):
            return float("inf")
        total += int(np.sort(salaries[cands])[:len(members)].sum())
    return total


def _match_locks(locked: List[int], eligibility: np.ndarray) -> Optional[Dict[int, int]]:
    """Assign each locked player a distinct eligible slot (augmenting paths).

    Returns:
        Mapping of slot index to player index, or None if no assignment exists
    """
    slot_owner: Dict[int, int] = {}

    def assign(p: int, seen: set) -> bool:
        for s in np.flatnonzero(eligibility[p]):
            s = int(s)
            if s in seen:
                continue
            seen.add(s)
            if s not in slot_owner or assign(slot_owner[s], seen):
                slot_owner[s] = p
                return True
        return False

    for p in locked:
        if not assign(p, set()):
            return None
    return slot_owner


def cheapest_roster_salary(
    eligibility: np.ndarray, salaries: np.ndarray, locked: Sequence[int] = ()
) -> Optional[int]:
    """Minimum total salary of a complete roster containing every locked player.

    Solved exactly as a small assignment MILP with PuLP/CBC.

    Returns:
        The minimum salary, or None if no complete roster exists
    """
    n_players, n_slots = eligibility.shape
    prob = pulp.LpProblem("cheapest_roster", pulp.LpMinimize)

    pairs = [(i, s) for i in range(n_players) for s in range(n_slots) if eligibility[i, s]]
    x = {(i, s): pulp.LpVariable(f"x_{i}_{s}", cat="Binary") for i, s in pairs}

    prob += pulp.lpSum(int(salaries[i]) * var for (i, _), var in x.items())

    for s in range(n_slots):
        prob += pulp.lpSum(x[i, t] for i, t in pairs if t == s) == 1, f"slot_{s}"

    by_player: Dict[int, list] = {}
    for (i, s), var in x.items():
        by_player.setdefault(i, []).append(var)
    locked_set = set(locked)
    for i, vars_ in by_player.items():
        if i in locked_set:
            prob += pulp.lpSum(vars_) == 1, f"lock_{i}"
        else:
            prob += pulp.lpSum(vars_) <= 1, f"once_{i}"

    prob.solve(pulp.PULP_CBC_CMD(msg=0))
    if prob.status != pulp.LpStatusOptimal:
        return None
    return int(round(pulp.value(prob.objective) or 0))


def compile_context(
    players: Sequence[Player],
    contest: ContestDescriptor,
    constraints: OptimizationConstraints,
) -> CompiledContext:
    """Validate a generation request and build its lookup tables.

    Checks run cheapest first; nothing is generated or simulated here.

    Args:
        players: Full player pool
        contest: Contest rules (cap, roster, payouts)
        constraints: Locks, exclusions, exposure bounds, diversity and stacking

    Returns:
        CompiledContext ready for LineupGenerator

    Raises:
        InvalidInput: Malformed request
        Infeasible: Well-formed request that no single lineup can satisfy
    """
    if not players:
        raise InvalidInput("Player pool is empty")
    by_id: Dict[str, Player] = {}
    for p in players:
        if p.player_id in by_id:
            raise InvalidInput(f"Duplicate player id: {p.player_id}")
        by_id[p.player_id] = p

    if constraints.num_lineups <= 0:
        raise InvalidInput(f"num_lineups must be positive, got {constraints.num_lineups}")
    if contest.salary_cap <= 0:
        raise InvalidInput(f"salary_cap must be positive, got {contest.salary_cap}")
    roster = contest.roster
    if roster.size == 0:
        raise InvalidInput("Roster has no slots")

    for pid in sorted(constraints.locked):
        player = by_id.get(pid)
        if player is None:
            raise Infeasible(f"Locked player {pid} is not in the pool", "lock_eligibility")
        if not roster.eligible_slots(player):
            raise Infeasible(f"Locked player {pid} cannot fill any roster slot", "lock_eligibility")
    if len(constraints.locked) > roster.size:
        raise Infeasible(
            f"{len(constraints.locked)} locked players exceed roster size {roster.size}", "lock_count"
        )

    both = constraints.locked & constraints.excluded
    if both:
        raise InvalidInput(f"Players both locked and excluded: {sorted(both)}")

    for name, bounds in (("min_exposure", constraints.min_exposure), ("max_exposure", constraints.max_exposure)):
        bad = {pid: b for pid, b in bounds.items() if not (0 <= b <= 1)}
        if bad:
            raise InvalidInput(f"{name} must be in [0, 1]: {bad}")
    for pid, lo in constraints.min_exposure.items():
        hi = constraints.max_exposure.get(pid)
        if hi is not None and lo > hi:
            raise InvalidInput(f"min_exposure {lo} exceeds max_exposure {hi} for {pid}")
        if lo > 0 and pid in constraints.excluded:
            raise InvalidInput(f"Excluded player {pid} has min_exposure {lo}")
    for pid in constraints.locked:
        hi = constraints.max_exposure.get(pid)
        if hi is not None and hi < 1:
            raise InvalidInput(f"Locked player {pid} has max_exposure {hi} < 1")

    bad_teams = {team: b for team, b in constraints.max_team_exposure.items() if not (0 <= b <= 1)}
    if bad_teams:
        raise InvalidInput(f"max_team_exposure must be in [0, 1]: {bad_teams}")
    for pid in sorted(constraints.locked):
        team_bound = constraints.max_team_exposure.get(by_id[pid].team)
        if team_bound is not None and team_bound < 1:
            raise InvalidInput(
                f"Locked player {pid} plays for {by_id[pid].team} with max_team_exposure {team_bound} < 1"
            )

    if not (0 <= constraints.min_distinct_players <= roster.size):
        raise InvalidInput(
            f"min_distinct_players must be in [0, {roster.size}], got {constraints.min_distinct_players}"
        )
    if constraints.correlation_weight < 0:
        raise InvalidInput(f"correlation_weight must be >= 0, got {constraints.correlation_weight}")

    available = tuple(p for p in players if p.player_id not in constraints.excluded)
    eligibility = np.array(
        [[roster.can_fill(p, slot) for slot in roster.slots] for p in available], dtype=bool
    ).reshape(len(available), roster.size)

    for s, slot in enumerate(roster.slots):
        if not eligibility[:, s].any():
            raise Infeasible(f"No eligible player for slot {slot}", f"slot:{slot}")

    index = {p.player_id: i for i, p in enumerate(available)}
    salaries = np.array([p.salary for p in available], dtype=np.int64)
    locked_idx = sorted(index[pid] for pid in constraints.locked)

    matching = _match_locks(locked_idx, eligibility)
    if matching is None:
        raise Infeasible("Locked players cannot be placed in distinct slots", "lock_slots")
    locked_salary = int(salaries[locked_idx].sum()) if locked_idx else 0
    if locked_salary > contest.salary_cap:
        raise Infeasible(
            f"Locked salary {locked_salary} exceeds cap {contest.salary_cap}", "lock_salary"
        )

    min_salary = cheapest_roster_salary(eligibility, salaries, locked_idx)
    if min_salary is None:
        raise Infeasible("No complete roster can be formed from the pool", "salary_cap")
    if min_salary > contest.salary_cap:
        raise Infeasible(
            f"Cheapest valid roster costs {min_salary}, above cap {contest.salary_cap}", "salary_cap"
        )

    logger.debug(
        "Compiled context: %d players, %d slots, %d locked, min salary %d",
        len(available), roster.size, len(locked_idx), min_salary,
    )

    return CompiledContext(
        players=available,
        contest=contest,
        constraints=constraints,
        eligibility=eligibility,
        salaries=salaries,
        projections=np.array([p.projected_points for p in available], dtype=float),
        ceilings=np.array([p.ceiling for p in available], dtype=float),
        index=index,
        locked_slots=matching,
        min_roster_salary=min_salary,
        scores=objective_scores(available, constraints.objective),
    )
