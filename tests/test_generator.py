"""Tests for multi-lineup generation."""

import math
from dataclasses import replace
from itertools import combinations

import pytest

from lineup_simlab.constraints import compile_context
from lineup_simlab.correlation import CorrelationModel
from lineup_simlab.errors import Infeasible, InvalidInput
from lineup_simlab.generator import LineupGenerator
from lineup_simlab.models import Objective, OptimizationConstraints, RunStatus, ShortfallReason, StackingRule
from lineup_simlab.progress import CancellationToken, Deadline, ProgressSink


def _generate(pool, contest, constraints, config, **kwargs):
    context = compile_context(pool, contest, constraints)
    return LineupGenerator(config).generate(context, **kwargs)


class CancelAfter(ProgressSink):
    """Cancels the token once ``after`` lineups have been accepted."""

    def __init__(self, token, after):
        super().__init__()
        self.token = token
        self.after = after

    def publish(self, event):
        super().publish(event)
        if event.stage == "generation" and event.completed >= self.after:
            self.token.cancel()


class TestLineupGenerator:
    def test_ten_diverse_lineups(self, pool, contest, ten_lineups, fast_config):
        """Ten lineups satisfy the cap, roster and distinctness."""
        result = _generate(pool, contest, ten_lineups, fast_config)

        assert result.status is RunStatus.COMPLETE
        assert result.reason is None
        assert result.produced_count == 10
        for lineup in result.lineups:
            assert lineup.total_salary <= contest.salary_cap
            assert len(lineup.player_ids) == 6
            assert all(contest.roster.can_fill(a.player, a.slot) for a in lineup.assignments)
        for a, b in combinations(result.lineups, 2):
            assert 6 - len(a.player_ids & b.player_ids) >= 2
        assert len({lu.lineup_id for lu in result.lineups}) == 10

    def test_deterministic(self, pool, contest, ten_lineups, fast_config):
        """The same seed gives the same lineups regardless of workers."""
        first = _generate(pool, contest, ten_lineups, fast_config)
        second = _generate(pool, contest, ten_lineups, fast_config.replace(n_jobs=2))

        assert [lu.lineup_id for lu in first.lineups] == [lu.lineup_id for lu in second.lineups]

    def test_locks_and_excludes(self, pool, contest, fast_config):
        """Locked players appear everywhere and excluded players nowhere."""
        constraints = OptimizationConstraints(
            num_lineups=8, locked={"P00"}, excluded={"P19", "P18"}, min_distinct_players=2
        )
        result = _generate(pool, contest, constraints, fast_config)

        assert result.produced_count == 8
        assert all("P00" in lu.player_ids for lu in result.lineups)
        assert all(not ({"P18", "P19"} & lu.player_ids) for lu in result.lineups)
        assert result.exposure.by_player()["P00"].exposure == 1.0

    def test_max_exposure_holds_on_every_prefix(self, pool, contest, fast_config):
        """Player caps hold on every prefix of the batch."""
        bounds = {"P19": 0.3, "P18": 0.3, "P17": 0.5}
        constraints = OptimizationConstraints(num_lineups=10, max_exposure=bounds, min_distinct_players=2)
        result = _generate(pool, contest, constraints, fast_config)

        assert result.produced_count == 10
        counts = dict.fromkeys(bounds, 0)
        for m, lineup in enumerate(result.lineups, start=1):
            for pid in bounds:
                counts[pid] += pid in lineup.player_ids
                assert counts[pid] <= math.ceil(bounds[pid] * m - 1e-9)
        assert not result.exposure.violations

    def test_min_exposure_reached(self, pool, contest, fast_config):
        """Minimum exposure is met by the end of the batch."""
        constraints = OptimizationConstraints(num_lineups=10, min_exposure={"P00": 0.5}, min_distinct_players=2)
        result = _generate(pool, contest, constraints, fast_config)

        appearances = sum("P00" in lu.player_ids for lu in result.lineups)
        assert result.produced_count == 10
        assert appearances >= 5
        assert result.diagnostics["min_exposure_shortfalls"] == {}

    def test_team_stack(self, pool, contest, fast_config):
        """A team stack rule puts three T0 players in every lineup."""
        rule = StackingRule(kind="team", min_players=3, max_players=6, teams=("T0",))
        constraints = OptimizationConstraints(num_lineups=3, stacking_rules=(rule,))
        result = _generate(pool, contest, constraints, fast_config)

        assert result.produced_count == 3
        for lineup in result.lineups:
            assert sum(p.team == "T0" for p in lineup.players) >= 3

    def test_impossible_stack_is_infeasible(self, pool, contest, fast_config):
        """A stack no roster can satisfy raises Infeasible."""
        rule = StackingRule(kind="team", min_players=6, max_players=6, teams=("T0",))
        constraints = OptimizationConstraints(num_lineups=2, stacking_rules=(rule,))

        with pytest.raises(Infeasible) as exc:
            _generate(pool, contest, constraints, fast_config.replace(max_attempts_per_lineup=3))
        assert exc.value.constraint == "generation"

    def test_attempts_exhausted_returns_partial(self, pool, contest, fast_config):
        """Running out of attempts returns the lineups found so far."""
        constraints = OptimizationConstraints(num_lineups=5, min_distinct_players=6)
        result = _generate(pool, contest, constraints, fast_config.replace(max_attempts_per_lineup=5))

        assert result.status is RunStatus.PARTIAL
        assert result.reason is ShortfallReason.ATTEMPTS_EXHAUSTED
        assert 1 <= result.produced_count <= 3
        for a, b in combinations(result.lineups, 2):
            assert not (a.player_ids & b.player_ids)
        assert result.diagnostics["attempts"] >= 5

    def test_cancel_after_three_lineups(self, pool, contest, ten_lineups, fast_config):
        """Cancelling keeps the lineups accepted before the cancel."""
        token = CancellationToken()
        result = _generate(pool, contest, ten_lineups, fast_config, cancel=token, sink=CancelAfter(token, 3))

        assert result.status is RunStatus.CANCELLED
        assert result.reason is ShortfallReason.CANCELLED
        assert result.produced_count == 3

    def test_expired_deadline(self, pool, contest, ten_lineups, fast_config):
        """An expired deadline returns an empty partial result."""
        result = _generate(pool, contest, ten_lineups, fast_config, deadline=Deadline(0))

        assert result.status is RunStatus.PARTIAL
        assert result.reason is ShortfallReason.DEADLINE
        assert result.produced_count == 0

    def test_progress_events(self, pool, contest, fast_config):
        """One progress event is published per accepted lineup."""
        sink = ProgressSink()
        _generate(pool, contest, OptimizationConstraints(num_lineups=4), fast_config, sink=sink)

        events = sink.drain()
        assert [e.completed for e in events] == [1, 2, 3, 4]
        assert events[-1].fraction == 1.0

    def test_correlation_score(self, pool, contest, fast_config):
        """Lineups carry their pairwise correlation score."""
        constraints = OptimizationConstraints(num_lineups=2, use_correlation=True, correlation_weight=2.0)
        context = compile_context(pool, contest, constraints)
        model = CorrelationModel(pool, contest.roster.sport)
        result = LineupGenerator(fast_config, correlation=model).generate(context)

        for lineup in result.lineups:
            assert lineup.correlation_score == pytest.approx(model.lineup_correlation(lineup.players))

    def test_invalid_count(self, pool, contest, fast_config):
        """Asking for zero lineups is invalid input."""
        context = compile_context(pool, contest, OptimizationConstraints())
        with pytest.raises(InvalidInput):
            LineupGenerator(fast_config).generate(context, 0)

    def test_team_exposure_holds_on_every_prefix(self, pool, contest, fast_config):
        """A team cap holds on every prefix of the batch."""
        constraints = OptimizationConstraints(
            num_lineups=10, max_team_exposure={"T3": 0.3}, min_distinct_players=2
        )
        result = _generate(pool, contest, constraints, fast_config)

        assert result.produced_count == 10
        used = 0
        for m, lineup in enumerate(result.lineups, start=1):
            used += any(p.team == "T3" for p in lineup.players)
            assert used <= math.ceil(0.3 * m - 1e-9)
        assert result.exposure.teams_over_max == []

    def test_ceiling_objective_changes_lineup(self, pool, contest, fast_config):
        """The ceiling objective prefers cheap high-ceiling players over projection."""
        boom = [replace(p, ceiling_points=100.0) if i < 6 else p for i, p in enumerate(pool)]
        boom_ids = {p.player_id for p in boom[:6]}

        by_ceiling = _generate(
            boom, contest, OptimizationConstraints(objective=Objective.CEILING), fast_config
        )
        by_projection = _generate(boom, contest, OptimizationConstraints(), fast_config)

        assert by_ceiling.lineups[0].player_ids == boom_ids
        assert by_projection.lineups[0].player_ids != boom_ids
        assert by_projection.lineups[0].projected_points > by_ceiling.lineups[0].projected_points
