"""Multi-lineup generation: randomised greedy construction plus local search.

Each lineup in a batch gets a bounded number of attempts. An attempt builds
several candidates in parallel, each from its own seeded RNG, keeps the best
one and accepts it if it satisfies the hard constraints and differs enough from
every lineup accepted so far.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import numpy as np

from .config import LabConfig
from .constraints import CompiledContext, salary_lower_bound
from .correlation import CorrelationModel
from .errors import Infeasible, InvalidInput
from .exposure import ExposureController
from .models import GenerationResult, Lineup, RunStatus, ShortfallReason, SlotAssignment
from .progress import CancellationToken, Deadline, ProgressReporter, ProgressSink

logger = logging.getLogger(__name__)

SCORE_FLOOR = 1e-6
MIN_EXPOSURE_FACTOR = 0.05
MIN_BOOST_SCALE = 3.0
_SEED_MASK = 0xFFFFFFFFFFFFFFFF


@dataclass(frozen=True)
class _BatchState:
    """Read-only view of the exposure controller shared by restart workers."""

    blocked: np.ndarray
    factor: np.ndarray
    forced: Tuple[int, ...]
    membership: np.ndarray
    required_distinct: int


@dataclass(frozen=True)
class _Candidate:
    slots: Tuple[int, ...]
    score: float
    ceiling: float
    salary: int
    restart: int


def _restart_rng(base_seed: int, lineup_index: int, attempt: int, restart: int) -> np.random.Generator:
    seq = np.random.SeedSequence([base_seed & _SEED_MASK, lineup_index, attempt, restart])
    return np.random.Generator(np.random.PCG64(seq))


class LineupGenerator:
    """Builds N distinct lineups for a compiled context."""

    def __init__(
        self,
        config: Optional[LabConfig] = None,
        correlation: Optional[CorrelationModel] = None,
    ):
        self.config = config or LabConfig()
        self.correlation = correlation

    def generate(
        self,
        context: CompiledContext,
        n: Optional[int] = None,
        *,
        cancel: Optional[CancellationToken] = None,
        deadline: Optional[Deadline] = None,
        sink: Optional[ProgressSink] = None,
    ) -> GenerationResult:
        """Generate up to ``n`` lineups.

        Args:
            context: Output of ``compile_context``
            n: Lineups requested (defaults to ``constraints.num_lineups``)
            cancel: Token checked at each lineup boundary and between attempts
            deadline: Time budget checked at the same points
            sink: Receives one progress event per accepted lineup

        Returns:
            GenerationResult with status COMPLETE, PARTIAL or CANCELLED

        Raises:
            InvalidInput: If ``n`` is not positive
            Infeasible: If attempts run out before a single lineup is accepted
        """
        n = context.constraints.num_lineups if n is None else n
        if n <= 0:
            raise InvalidInput(f"Number of lineups must be positive, got {n}")

        started = time.monotonic()
        constraints = context.constraints
        controller = ExposureController(context.roster_size, constraints)
        reporter = ProgressReporter(sink, "generation", n)
        corr = self._correlation_matrix(context)
        weight = constraints.correlation_weight if constraints.use_correlation else 0.0
        slot_cands = [context.slot_candidates(s) for s in range(context.roster_size)]

        lineups: List[Lineup] = []
        rejections = {"diversity": 0, "hard_constraint": 0, "incomplete": 0}
        attempts_total = 0
        status, reason = RunStatus.COMPLETE, None

        logger.info(
            "Generating %d lineups from %d players (%d slots, cap %d)",
            n, len(context.players), context.roster_size, context.salary_cap,
        )

        with ThreadPoolExecutor(max_workers=self.config.n_jobs) as pool:
            for idx in range(n):
                interrupted = self._interruption(cancel, deadline)
                if interrupted:
                    status, reason = interrupted
                    break

                state = self._batch_state(context, controller, n)
                accepted: Optional[Lineup] = None
                for attempt in range(self.config.max_attempts_per_lineup):
                    if attempt > 0:
                        interrupted = self._interruption(cancel, deadline)
                        if interrupted:
                            break
                    attempts_total += 1

                    futures = [
                        pool.submit(
                            self._build_candidate,
                            context, state, slot_cands, corr, weight,
                            _restart_rng(self.config.base_seed, idx, attempt, r), r,
                        )
                        for r in range(self.config.restarts_per_attempt)
                    ]
                    candidates = [f.result() for f in futures]

                    best, rejection = self._select(context, controller, state, candidates)
                    if best is None:
                        rejections[rejection] += 1
                        logger.debug("Lineup %d attempt %d rejected: %s", idx, attempt, rejection)
                        continue

                    accepted = self._to_lineup(context, best, corr)
                    break

                if interrupted:
                    status, reason = interrupted
                    break
                if accepted is None:
                    status, reason = RunStatus.PARTIAL, ShortfallReason.ATTEMPTS_EXHAUSTED
                    break

                controller.record_acceptance(accepted)
                lineups.append(accepted)
                reporter.advance(1, label=accepted.lineup_id)

        elapsed = time.monotonic() - started

        if not lineups and reason is ShortfallReason.ATTEMPTS_EXHAUSTED:
            raise Infeasible(
                f"No lineup accepted after {self.config.max_attempts_per_lineup} attempts "
                f"(rejections: {rejections})",
                "generation",
            )

        shortfalls = {}
        for pid in constraints.min_exposure:
            need = controller.min_exposure_need(pid, len(lineups))
            if need > 0:
                shortfalls[pid] = need
        if status is not RunStatus.COMPLETE:
            logger.warning(
                "Generation stopped early (%s): %d of %d lineups", reason.value, len(lineups), n
            )
        if shortfalls:
            logger.warning("Min exposure not reached for %d players", len(shortfalls))
        logger.info("Generated %d/%d lineups in %.2fs", len(lineups), n, elapsed)

        return GenerationResult(
            lineups=tuple(lineups),
            requested_count=n,
            status=status,
            reason=reason,
            diagnostics={
                "attempts": attempts_total,
                "rejections": rejections,
                "elapsed_seconds": elapsed,
                "min_exposure_shortfalls": shortfalls,
            },
            exposure=controller.report(context.players),
        )

    @staticmethod
    def _interruption(cancel, deadline) -> Optional[Tuple[RunStatus, ShortfallReason]]:
        if cancel is not None and cancel.is_cancelled:
            return RunStatus.CANCELLED, ShortfallReason.CANCELLED
        if deadline is not None and deadline.expired():
            return RunStatus.PARTIAL, ShortfallReason.DEADLINE
        return None

    def _correlation_matrix(self, context: CompiledContext) -> Optional[np.ndarray]:
        if not context.constraints.use_correlation and self.correlation is None:
            return None
        model = self.correlation or CorrelationModel(context.players, context.roster.sport)
        return model.matrix(context.players)

    def _batch_state(
        self, context: CompiledContext, controller: ExposureController, n: int
    ) -> _BatchState:
        constraints = context.constraints
        remaining = max(1, n - controller.accepted)
        blocked = np.zeros(len(context.players), dtype=bool)
        factor = np.ones(len(context.players))

        for i, p in enumerate(context.players):
            pid = p.player_id
            if controller.is_at_max_exposure(pid, p.team):
                blocked[i] = True
                factor[i] = 0.0
                continue
            bound = constraints.max_exposure.get(pid)
            if bound is not None and bound > 0:
                usage = controller.current_exposure(pid)
                factor[i] = max(MIN_EXPOSURE_FACTOR, float(np.clip(1.0 - usage / bound, 0.0, 1.0)))
            need = controller.min_exposure_need(pid, n)
            if need:
                factor[i] *= 1.0 + MIN_BOOST_SCALE * need / remaining

        locked = set(context.locked_player_indices)
        forced = tuple(
            context.index[pid]
            for pid in controller.forced_players(n)
            if pid in context.index and context.index[pid] not in locked and not blocked[context.index[pid]]
        )

        sets = controller.accepted_player_sets
        membership = np.zeros((len(sets), len(context.players)), dtype=np.int32)
        for row, ids in enumerate(sets):
            for pid in ids:
                col = context.index.get(pid)
                if col is not None:
                    membership[row, col] = 1

        return _BatchState(
            blocked=blocked,
            factor=factor,
            forced=forced,
            membership=membership,
            required_distinct=max(1, constraints.min_distinct_players),
        )

    @staticmethod
    def _lower_bound(context: CompiledContext, slots, available: np.ndarray, slot_cands) -> float:
        return salary_lower_bound(slots, context.roster.slots, slot_cands, available, context.salaries)

    def _build_candidate(
        self,
        context: CompiledContext,
        state: _BatchState,
        slot_cands: List[np.ndarray],
        corr: Optional[np.ndarray],
        weight: float,
        rng: np.random.Generator,
        restart: int,
    ) -> Optional[_Candidate]:
        size = context.roster_size
        salaries = context.salaries
        chosen = np.full(size, -1, dtype=np.int64)
        available = ~state.blocked.copy()
        pinned = set()

        for s, p in context.locked_slots.items():
            chosen[s] = p
            available[p] = False
            pinned.add(s)
        remaining_cap = context.salary_cap - int(salaries[chosen[chosen >= 0]].sum())

        for p in state.forced:
            if not available[p]:
                continue
            open_slots = [s for s in range(size) if chosen[s] < 0]
            for s in rng.permutation([s for s in open_slots if context.eligibility[p, s]]):
                rest = [o for o in open_slots if o != s]
                available[p] = False
                lb = self._lower_bound(context, rest, available, slot_cands)
                if salaries[p] <= remaining_cap - lb:
                    chosen[s] = p
                    pinned.add(int(s))
                    remaining_cap -= int(salaries[p])
                    break
                available[p] = True

        open_slots = list(rng.permutation([s for s in range(size) if chosen[s] < 0]))
        for i, s in enumerate(open_slots):
            cands = slot_cands[s]
            cands = cands[available[cands]]
            lb = self._lower_bound(context, open_slots[i + 1:], available, slot_cands)
            cands = cands[salaries[cands] <= remaining_cap - lb]
            if len(cands) == 0:
                return None

            score = context.scores[cands].copy()
            selected = chosen[chosen >= 0]
            if corr is not None and weight and len(selected):
                score += weight * corr[np.ix_(cands, selected)].sum(axis=1)
            w = np.power(np.maximum(score, SCORE_FLOOR), self.config.greedy_power) * state.factor[cands]
            total = w.sum()
            if not np.isfinite(total) or total <= 0:
                w = np.ones(len(cands))
                total = float(len(cands))

            pick = int(rng.choice(cands, p=w / total))
            chosen[s] = pick
            available[pick] = False
            remaining_cap -= int(salaries[pick])

        chosen = self._local_search(context, state, slot_cands, corr, weight, chosen, pinned, rng)
        return self._candidate(context, chosen, corr, weight, restart)

    def _score(self, context, chosen: np.ndarray, corr, weight: float) -> float:
        score = float(context.scores[chosen].sum())
        if corr is not None and weight:
            block = corr[np.ix_(chosen, chosen)]
            score += weight * float(block.sum() - np.trace(block)) / 2.0
        return score

    def _candidate(self, context, chosen, corr, weight, restart) -> _Candidate:
        return _Candidate(
            slots=tuple(int(p) for p in chosen),
            score=self._score(context, chosen, corr, weight),
            ceiling=float(context.ceilings[chosen].sum()),
            salary=int(context.salaries[chosen].sum()),
            restart=restart,
        )

    def _stack_deficit(self, context: CompiledContext, chosen) -> int:
        rules = context.constraints.stacking_rules
        if not rules:
            return 0
        players = [context.players[i] for i in chosen]
        return sum(rule.deficit(players) for rule in rules)

    def _min_distinct(self, state: _BatchState, chosen, size: int) -> int:
        if state.membership.shape[0] == 0:
            return size
        return size - int(state.membership[:, chosen].sum(axis=1).max())

    def _local_search(self, context, state, slot_cands, corr, weight, chosen, pinned, rng) -> np.ndarray:
        """Single-player swaps ordered by (stacking deficit, capped distinctness, score, ceiling, -salary)."""
        size = context.roster_size
        salaries = context.salaries
        required = state.required_distinct
        free_slots = [s for s in range(size) if s not in pinned]
        if not free_slots:
            return chosen

        chosen = chosen.copy()
        for _ in range(self.config.local_search_iterations):
            improved = False
            for s in rng.permutation(free_slots):
                current = int(chosen[s])
                others = np.delete(chosen, s)
                in_lineup = np.zeros(len(context.players), dtype=bool)
                in_lineup[chosen] = True

                cands = slot_cands[s]
                cands = cands[~state.blocked[cands] & ~in_lineup[cands]]
                total_salary = int(salaries[chosen].sum())
                cands = cands[total_salary - salaries[current] + salaries[cands] <= context.salary_cap]
                if len(cands) == 0:
                    continue

                base = self._score(context, chosen, corr, weight)
                scores = base - context.scores[current] + context.scores[cands]
                if corr is not None and weight:
                    scores += weight * (corr[cands][:, others].sum(axis=1) - corr[current, others].sum())
                ceilings = float(context.ceilings[chosen].sum()) - context.ceilings[current] + context.ceilings[cands]
                new_salary = total_salary - salaries[current] + salaries[cands]

                if state.membership.shape[0]:
                    overlap = state.membership[:, others].sum(axis=1)
                    distinct = size - (overlap[None, :] + state.membership[:, cands].T).max(axis=1)
                else:
                    distinct = np.full(len(cands), size)
                distinct = np.minimum(distinct, required)

                stack = np.zeros(len(cands), dtype=int)
                if context.constraints.stacking_rules:
                    for k, c in enumerate(cands):
                        trial = np.append(others, c)
                        stack[k] = -self._stack_deficit(context, trial)

                rounded = np.round(scores, 9)
                order = np.lexsort((-new_salary, ceilings, rounded, distinct, stack))
                best = order[-1]

                current_key = (
                    -self._stack_deficit(context, chosen),
                    min(self._min_distinct(state, chosen, size), required),
                    round(base, 9),
                    float(context.ceilings[chosen].sum()),
                    -total_salary,
                )
                best_key = (
                    int(stack[best]), int(distinct[best]), float(rounded[best]),
                    float(ceilings[best]), -int(new_salary[best]),
                )
                if best_key > current_key:
                    chosen[s] = cands[best]
                    improved = True
            if not improved:
                break
        return chosen

    def _rejection(self, context, controller, state, cand: Optional[_Candidate]) -> Optional[str]:
        if cand is None:
            return "incomplete"
        chosen = np.array(cand.slots)
        if (chosen < 0).any() or len(set(cand.slots)) != len(cand.slots):
            return "incomplete"
        if cand.salary > context.salary_cap:
            return "hard_constraint"
        if not all(context.eligibility[p, s] for s, p in enumerate(cand.slots)):
            return "hard_constraint"
        if not set(context.locked_player_indices) <= set(cand.slots):
            return "hard_constraint"
        if any(
            controller.is_at_max_exposure(context.players[p].player_id, context.players[p].team)
            for p in cand.slots
        ):
            return "hard_constraint"
        if self._stack_deficit(context, cand.slots):
            return "hard_constraint"
        if self._min_distinct(state, chosen, context.roster_size) < state.required_distinct:
            return "diversity"
        return None

    def _select(self, context, controller, state, candidates) -> Tuple[Optional[_Candidate], str]:
        """Best valid candidate by score, ceiling, lower salary, then restart index."""
        valid = []
        reasons: Dict[str, int] = {}
        for cand in candidates:
            reason = self._rejection(context, controller, state, cand)
            if reason is None:
                valid.append(cand)
            else:
                reasons[reason] = reasons.get(reason, 0) + 1
        if not valid:
            # Report the failure that got furthest: diversity > hard constraint > incomplete.
            for reason in ("diversity", "hard_constraint", "incomplete"):
                if reasons.get(reason):
                    return None, reason
            return None, "incomplete"
        valid.sort(key=lambda c: (-round(c.score, 9), -c.ceiling, c.salary, c.restart))
        return valid[0], ""

    def _to_lineup(self, context: CompiledContext, cand: _Candidate, corr) -> Lineup:
        roster = context.roster
        assignments = [
            SlotAssignment(slot=roster.slots[s], player=context.players[p])
            for s, p in enumerate(cand.slots)
        ]
        correlation_score = 0.0
        if corr is not None:
            block = corr[np.ix_(cand.slots, cand.slots)]
            correlation_score = float(block.sum() - np.trace(block)) / 2.0
        return Lineup.from_assignments(assignments, correlation_score=correlation_score)
