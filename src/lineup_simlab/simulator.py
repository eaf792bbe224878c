"""Monte Carlo contest simulator for generated lineups."""

import logging
import math
import time
import zlib
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from .config import LabConfig
from .contest import PayoutTable
from .correlation import CorrelationModel
from .errors import InvalidInput
from .field import build_field_pool
from .metrics import percentile_table, summarize
from .models import (
    ContestDescriptor,
    ContestFormat,
    Lineup,
    Player,
    RunStatus,
    ShortfallReason,
    SimulationBatch,
    SimulationResult,
)
from .progress import CancellationToken, Deadline, ProgressReporter, ProgressSink

logger = logging.getLogger(__name__)

FIELD_SEED_TAG = 0xF1E1D
_SEED_MASK = 0xFFFFFFFFFFFFFFFF


def lineup_seed(lineup_id: str, base_seed: int) -> int:
    """Per-lineup RNG seed, independent of batch order and thread count."""
    return (zlib.crc32(lineup_id.encode("utf-8")) ^ base_seed) & _SEED_MASK


@dataclass
class _TrialLog:
    scores: List[np.ndarray]
    ranks: List[np.ndarray]
    finish: List[np.ndarray]
    payouts: List[np.ndarray]
    cash_lines: List[np.ndarray]

    @classmethod
    def empty(cls) -> "_TrialLog":
        return cls([], [], [], [], [])

    @property
    def trials(self) -> int:
        return sum(len(s) for s in self.scores)


class MonteCarloSimulator:
    """Scores lineups against simulated player outcomes and a synthetic field."""

    def __init__(
        self,
        players: Sequence[Player],
        contest: ContestDescriptor,
        config: Optional[LabConfig] = None,
        correlation: Optional[CorrelationModel] = None,
    ):
        """Initialize the simulator.

        Args:
            players: Player pool the field is drawn from
            contest: Contest rules used for ranking and payouts
            config: Simulation options (trials, dispersion, field size, seed)
            correlation: Source of team loadings; built from ``players`` if omitted
        """
        self.players = list(players)
        self.contest = contest
        self.config = config or LabConfig()
        self.correlation = correlation or CorrelationModel(self.players, contest.roster.sport)
        self.payouts = PayoutTable(contest)

    def field_size(self) -> int:
        size = 1 if self.contest.contest_format is ContestFormat.HEAD_TO_HEAD else self.config.field_size
        return max(0, min(size, self.contest.max_entries - 1))

    def simulate(
        self,
        lineups: Sequence[Lineup],
        trial_count: Optional[int] = None,
        *,
        cancel: Optional[CancellationToken] = None,
        deadline: Optional[Deadline] = None,
        sink: Optional[ProgressSink] = None,
    ) -> SimulationBatch:
        """Simulate every lineup for ``trial_count`` trials.

        Args:
            lineups: Lineups to evaluate; results keep this order
            trial_count: Trials per lineup (defaults to ``config.n_trials``)
            cancel: Token checked before each trial batch
            deadline: Time budget checked before each trial batch
            sink: Receives one progress event per completed trial batch

        Returns:
            SimulationBatch with one result per input lineup

        Raises:
            InvalidInput: If ``trial_count`` is not positive
        """
        trial_count = self.config.n_trials if trial_count is None else trial_count
        if trial_count <= 0:
            raise InvalidInput(f"trial_count must be positive, got {trial_count}")

        started = time.monotonic()
        index, model = self._outcome_model(self.players)

        field_rng = np.random.Generator(
            np.random.PCG64(np.random.SeedSequence([self.config.base_seed & _SEED_MASK, FIELD_SEED_TAG]))
        )
        field_pool = build_field_pool(
            self.players, self.contest.roster, self.contest.salary_cap,
            self.config.field_pool_size, field_rng,
        )
        # Field lineups index the pool; the pool is the head of the universe.
        field_size = self.field_size() if len(field_pool) else 0

        batches_per_lineup = math.ceil(trial_count / self.config.trial_batch_size)
        reporter = ProgressReporter(sink, "simulation", batches_per_lineup * len(lineups))

        logger.info(
            "Simulating %d lineups x %d trials (field %d, %d workers)",
            len(lineups), trial_count, field_size, self.config.n_jobs,
        )

        results: List[Optional[SimulationResult]] = [None] * len(lineups)
        stops: List[Optional[ShortfallReason]] = [None] * len(lineups)

        def run(i: int) -> None:
            results[i], stops[i] = self._simulate_one(
                lineups[i], trial_count, index, model, field_pool, field_size,
                cancel, deadline, reporter,
            )

        with ThreadPoolExecutor(max_workers=self.config.n_jobs) as pool:
            for future in [pool.submit(run, i) for i in range(len(lineups))]:
                future.result()

        if ShortfallReason.CANCELLED in stops:
            status, reason = RunStatus.CANCELLED, ShortfallReason.CANCELLED
        elif ShortfallReason.DEADLINE in stops:
            status, reason = RunStatus.PARTIAL, ShortfallReason.DEADLINE
        elif any(r.error for r in results):
            status, reason = RunStatus.PARTIAL, None
        else:
            status, reason = RunStatus.COMPLETE, None

        for result in results:
            if result.error is None and result.trials < trial_count:
                result.status = status

        elapsed = time.monotonic() - started
        if status is RunStatus.COMPLETE:
            logger.info("Simulation finished in %.2fs", elapsed)
        else:
            logger.warning(
                "Simulation ended %s after %.2fs (%s)",
                status.value, elapsed, reason.value if reason else "lineup errors",
            )

        return SimulationBatch(
            results=tuple(results),
            requested_trials=trial_count,
            status=status,
            reason=reason,
            elapsed_seconds=elapsed,
        )

    def _outcome_model(self, universe: Sequence[Player]):
        """Index and outcome parameters for ``universe`` (the pool first, then extras)."""
        index = {p.player_id: i for i, p in enumerate(universe)}
        mu = np.array([max(p.projected_points, 0.0) for p in universe])
        sigma = self.config.dispersion_ratio * mu
        if self.config.simulate_correlation:
            loading = self.correlation.group_loadings(universe)
        else:
            loading = np.zeros(len(universe))
        teams = sorted({p.team for p in universe})
        team_idx = np.array([teams.index(p.team) for p in universe], dtype=np.int64)
        return index, (mu, sigma * np.sqrt(loading), sigma * np.sqrt(1.0 - loading), team_idx, len(teams))

    def _lineup_model(self, lineup: Lineup, index, model):
        """Extend the pool model with the lineup's own off-pool players.

        Draw shapes depend only on the pool and the lineup itself, so a lineup's
        statistics do not change with the rest of the batch.
        """
        extras = []
        for p in lineup.players:
            if p.player_id not in index and all(p.player_id != e.player_id for e in extras):
                extras.append(p)
        if not extras:
            return index, model
        return self._outcome_model(self.players + extras)

    @staticmethod
    def sample_outcomes(rng: np.random.Generator, n_trials: int, model) -> np.ndarray:
        """Draw a (trials, players) matrix of fantasy scores.

        Each player's score is ``mu + Z_team * sigma * sqrt(c) + eps * sigma * sqrt(1 - c)``
        floored at zero, where ``Z_team`` is shared by teammates within a trial.
        """
        mu, shared_scale, own_scale, team_idx, n_teams = model
        shocks = rng.standard_normal((n_trials, n_teams))
        noise = rng.standard_normal((n_trials, len(mu)))
        scores = mu + shocks[:, team_idx] * shared_scale + noise * own_scale
        return np.maximum(scores, 0.0)

    def _simulate_one(
        self, lineup, trial_count, index, model, field_pool, field_size, cancel, deadline, reporter
    ) -> Tuple[SimulationResult, Optional[ShortfallReason]]:
        try:
            if len(lineup) == 0:
                raise ValueError("lineup has no players")
            index, model = self._lineup_model(lineup, index, model)
            members = np.array([index[p.player_id] for p in lineup.players], dtype=np.int64)

            rng = np.random.Generator(np.random.PCG64(lineup_seed(lineup.lineup_id, self.config.base_seed)))
            log = _TrialLog.empty()
            stop = None
            done = 0
            batch_no = 0
            while done < trial_count:
                if cancel is not None and cancel.is_cancelled:
                    stop = ShortfallReason.CANCELLED
                    break
                if deadline is not None and deadline.expired():
                    stop = ShortfallReason.DEADLINE
                    break
                size = min(self.config.trial_batch_size, trial_count - done)
                self._run_batch(rng, size, members, model, field_pool, field_size, log)
                done += size
                batch_no += 1
                reporter.advance(1, label=f"{lineup.lineup_id}#{batch_no}")

            return self._aggregate(lineup.lineup_id, log, trial_count), stop
        except Exception as e:
            logger.error(f"Simulation failed for lineup {lineup.lineup_id}: {e}")
            return SimulationResult(lineup_id=lineup.lineup_id, status=RunStatus.PARTIAL, error=str(e)), None

    def _run_batch(self, rng, size, members, model, field_pool, field_size, log: _TrialLog) -> None:
        outcomes = self.sample_outcomes(rng, size, model)
        scores = outcomes[:, members].sum(axis=1)

        if field_size > 0:
            pool_scores = outcomes[:, field_pool].sum(axis=2)
            picks = rng.integers(0, len(field_pool), size=(size, field_size))
            field_scores = np.take_along_axis(pool_scores, picks, axis=1)
            ranks = 1 + (field_scores > scores[:, None]).sum(axis=1)

            # Opponent score at the last paid position of the simulated contest.
            paid_spots = int(self.payouts.paid_fraction * (field_size + 1))
            k = min(max(paid_spots, 1), field_size)
            ordered = -np.sort(-field_scores, axis=1)
            cash_lines = ordered[:, k - 1]
        else:
            ranks = np.ones(size, dtype=np.int64)
            cash_lines = np.zeros(size)

        finish = ranks / (field_size + 1)
        payouts = self.payouts.lookup(self.payouts.contest_rank(finish))

        log.scores.append(scores)
        log.ranks.append(ranks)
        log.finish.append(finish)
        log.payouts.append(payouts)
        log.cash_lines.append(cash_lines)

    def _aggregate(self, lineup_id: str, log: _TrialLog, requested: int) -> SimulationResult:
        if log.trials == 0:
            return SimulationResult(lineup_id=lineup_id, trials=0)

        scores = np.concatenate(log.scores)
        ranks = np.concatenate(log.ranks)
        finish = np.concatenate(log.finish)
        payouts = np.concatenate(log.payouts)
        stats = summarize(scores, quantiles=[])

        fee = self.contest.entry_fee
        expected_payout = float(payouts.mean())
        roi = (expected_payout - fee) / fee if fee > 0 else 0.0

        top_finish: Dict[float, float] = {
            t: float((finish <= t + 1e-12).mean()) for t in self.config.top_finish_thresholds
        }

        return SimulationResult(
            lineup_id=lineup_id,
            trials=len(scores),
            mean=stats["mean"],
            variance=stats["variance"],
            std=stats["std"],
            min=stats["min"],
            max=stats["max"],
            median=stats["median"],
            percentiles=percentile_table(scores, self.config.percentiles),
            cash_probability=float((payouts > 0).mean()),
            win_probability=float((ranks == 1).mean()),
            expected_payout=expected_payout,
            roi=roi,
            top_finish_rates=top_finish,
            mean_cash_line=float(np.concatenate(log.cash_lines).mean()),
            status=RunStatus.COMPLETE,
        )
