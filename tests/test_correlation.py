"""Tests for the correlation model."""

import numpy as np
import pytest

from lineup_simlab.correlation import CorrelationModel
from lineup_simlab.models import Player


def _p(pid, pos, team, opponent=None):
    return Player(pid, pid, team, (pos,), 5000, 10.0, opponent=opponent)


@pytest.fixture
def nfl_players():
    return [
        _p("qb", "QB", "KC", "BUF"),
        _p("wr", "WR", "KC", "BUF"),
        _p("te", "TE", "KC", "BUF"),
        _p("rb", "RB", "KC", "BUF"),
        _p("opp_wr", "WR", "BUF", "KC"),
        _p("opp_dst", "DST", "BUF", "KC"),
        _p("other", "WR", "DAL", "NYG"),
    ]


class TestCorrelationModel:
    def test_teammate_table(self, nfl_players):
        """Teammate correlations follow the position table in either order."""
        model = CorrelationModel(nfl_players, "nfl")
        qb, wr, te, rb = nfl_players[:4]

        assert model.correlation(qb, wr) == 0.50
        assert model.correlation(qb, te) == 0.40
        assert model.correlation(wr, qb) == 0.50

    def test_opponents_and_unrelated(self, nfl_players):
        """Opponents, defenses and unrelated players use their own rules."""
        model = CorrelationModel(nfl_players, "nfl")
        qb, rb, opp_wr, opp_dst, other = (nfl_players[i] for i in (0, 3, 4, 5, 6))

        assert model.correlation(qb, opp_wr) == 0.25
        assert model.correlation(rb, opp_dst) == -0.30
        assert model.correlation(qb, other) == 0.0
        assert model.correlation(qb, qb) == 1.0

    def test_matrix_symmetric_and_bounded(self, nfl_players):
        """The pairwise matrix is symmetric with a unit diagonal."""
        m = CorrelationModel(nfl_players, "nfl").matrix(nfl_players)

        np.testing.assert_array_equal(m, m.T)
        assert np.all(m <= 1.0) and np.all(m >= -1.0)
        np.testing.assert_array_equal(np.diag(m), np.ones(len(nfl_players)))

    def test_lineup_correlation_and_pair_sum(self, nfl_players):
        """Lineup correlation sums every distinct pair."""
        model = CorrelationModel(nfl_players, "nfl")
        qb, wr, te = nfl_players[:3]

        assert model.pair_sum(qb, [wr, te]) == pytest.approx(0.90)
        assert model.lineup_correlation([qb, wr, te]) == pytest.approx(0.50 + 0.40 + 0.10)

    def test_group_loadings(self, nfl_players):
        """Shared-factor loadings stay within [0, 1]."""
        model = CorrelationModel(nfl_players, "nfl")
        loadings = model.group_loadings(nfl_players)

        # QB teammates: WR 0.5, TE 0.4, RB 0.1
        assert loadings[0] == pytest.approx(1.0 / 3.0)
        # Lone DAL player has no teammates
        assert loadings[6] == 0.0
        assert np.all((loadings >= 0) & (loadings <= 1))

    def test_generic_sport_default(self):
        """Unknown sports use the generic teammate correlation."""
        a, b = _p("a", "UTIL", "T1"), _p("b", "UTIL", "T1")
        assert CorrelationModel([a, b]).correlation(a, b) == 0.20

    def test_nhl_wing_alias(self):
        """Hockey wings share the winger correlations."""
        c, lw = _p("c", "C", "BOS"), _p("lw", "LW", "BOS")
        assert CorrelationModel([c, lw], "nhl").correlation(c, lw) == 0.45

    def test_d_is_team_defense_only_in_football(self):
        """Football "D" reads as DST; hockey "D" stays a defenseman."""
        rb, d = _p("rb", "RB", "KC", "BUF"), _p("d", "D", "BUF", "KC")
        assert CorrelationModel([rb, d], "nfl").correlation(rb, d) == -0.30

        skater, goalie = _p("skater", "D", "BOS", "TOR"), _p("goalie", "G", "TOR", "BOS")
        assert CorrelationModel([skater, goalie], "nhl").correlation(skater, goalie) == -0.20
