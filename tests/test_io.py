"""Tests for player pool loading and result export."""

import json

import pandas as pd
import pytest

from lineup_simlab.constraints import compile_context
from lineup_simlab.errors import InvalidInput
from lineup_simlab.io import (
    load_player_pool,
    lineups_to_frame,
    normalize_column_names,
    normalize_ownership_values,
    results_to_frame,
    save_outputs,
)
from lineup_simlab.models import (
    ContestDescriptor,
    GenerationResult,
    Lineup,
    OptimizationConstraints,
    RosterRequirement,
    RunStatus,
    SimulationBatch,
    SimulationResult,
    SlotAssignment,
)


@pytest.fixture
def site_frame():
    return pd.DataFrame(
        {
            "Player": ["Patrick Mahomes", "Travis Kelce", "Bills"],
            "Pos": ["QB", "TE/FLEX", "D"],
            "Team": ["kc", "KC", "BUF"],
            "Opp": ["BUF", "BUF", "KC"],
            "Salary": ["$8,000", "7,000", "3000"],
            "Proj": [24.5, 16.0, 8.0],
            "Own%": [0.2, 0.15, 0.05],
        }
    )


class TestNormalization:
    def test_column_aliases(self, site_frame):
        """Site column names map to the canonical names."""
        df = normalize_column_names(site_frame)
        assert {"name", "positions", "team", "opponent", "salary", "projected_points", "ownership"} <= set(df.columns)

    def test_fractional_ownership_becomes_percent(self):
        """Fractional ownership is scaled to percent."""
        df = normalize_ownership_values(pd.DataFrame({"ownership": [0.2, 0.05]}))
        assert df["ownership"].tolist() == pytest.approx([20.0, 5.0])

    def test_percent_ownership_kept(self):
        """Ownership already in percent is left alone."""
        df = normalize_ownership_values(pd.DataFrame({"ownership": [20.0, 0.5]}))
        assert df["ownership"].tolist() == pytest.approx([20.0, 0.5])


class TestLoadPlayerPool:
    def test_load_from_frame(self, site_frame):
        """Frames load with cleaned salaries, teams and positions."""
        players = load_player_pool(site_frame)

        assert len(players) == 3
        qb, te, dst = players
        assert qb.player_id == "KC_PATRICK_MAHOMES"
        assert qb.team == "KC"
        assert qb.salary == 8000
        assert qb.ownership == pytest.approx(20.0)
        assert qb.opponent == "BUF"
        assert te.positions == ("TE", "FLEX")
        assert dst.positions == ("D",)
        assert RosterRequirement.draftkings_nfl().can_fill(dst, "DST")
        assert RosterRequirement.fanduel_nfl().can_fill(dst, "D/ST")

    def test_load_from_csv_with_ids(self, tmp_path):
        """CSV ids and optional ceilings are kept."""
        path = tmp_path / "pool.csv"
        pd.DataFrame(
            {
                "ID": ["a1", "b2"],
                "Name": ["A", "B"],
                "Position": ["PG/SG", "C"],
                "Team": ["BOS", "NYK"],
                "Salary": [9000, 7000],
                "Projection": [45.0, 38.0],
                "Ceiling": [60.0, None],
            }
        ).to_csv(path, index=False)

        players = load_player_pool(path)
        assert [p.player_id for p in players] == ["a1", "b2"]
        assert players[0].positions == ("PG", "SG")
        assert players[0].ceiling_points == 60.0
        assert players[1].ceiling_points is None
        assert players[1].ownership == 0.0

    def test_missing_columns(self):
        """Missing required columns are reported."""
        with pytest.raises(InvalidInput, match="Missing required columns"):
            load_player_pool(pd.DataFrame({"Name": ["x"]}))

    def test_rows_without_salary_dropped(self, site_frame):
        """Rows without a salary are dropped."""
        site_frame.loc[1, "Salary"] = None
        assert len(load_player_pool(site_frame)) == 2

    def test_hockey_defensemen_fill_d_slots(self):
        """Hockey defensemen keep the D position and fill D slots."""
        positions = ["C", "C", "C", "LW", "LW", "RW", "RW", "D", "D", "D", "G", "G"]
        frame = pd.DataFrame(
            {
                "Name": [f"Skater {i}" for i in range(len(positions))],
                "Pos": positions,
                "Team": ["BOS", "TOR"] * 6,
                "Salary": [5000] * len(positions),
                "Proj": [10.0 + i for i in range(len(positions))],
            }
        )

        players = load_player_pool(frame)
        assert [p.positions for p in players if p.positions == ("D",)] == [("D",)] * 3

        contest = ContestDescriptor(salary_cap=50000, roster=RosterRequirement.draftkings_nhl())
        context = compile_context(players, contest, OptimizationConstraints())
        d_slots = [s for s, slot in enumerate(contest.roster.slots) if slot == "D"]
        for s in d_slots:
            assert len(context.slot_candidates(s)) == 3


class TestExport:
    def _generation(self, pool):
        lineup = Lineup.from_assignments([SlotAssignment("UTIL", p) for p in pool[:6]])
        return GenerationResult(
            lineups=(lineup,), requested_count=2, status=RunStatus.PARTIAL, diagnostics={"attempts": 3}
        ), lineup

    def test_lineups_frame(self, pool):
        """Lineups export one column per slot."""
        generation, lineup = self._generation(pool)
        df = lineups_to_frame(generation)

        assert df.loc[0, "lineup_id"] == lineup.lineup_id
        assert df.loc[0, "UTIL"] == pool[0].name
        assert df.loc[0, "UTIL6"] == pool[5].name
        assert df.loc[0, "total_salary"] == lineup.total_salary

    def test_save_outputs(self, pool, tmp_path):
        """Saved outputs include simulation columns and run metadata."""
        generation, lineup = self._generation(pool)
        simulation = SimulationBatch(
            results=(
                SimulationResult(
                    lineup_id=lineup.lineup_id,
                    trials=10,
                    mean=80.0,
                    percentiles={0.5: 79.0, 0.9: 95.0},
                    top_finish_rates={0.1: 0.2},
                ),
            ),
            requested_trials=10,
            status=RunStatus.COMPLETE,
        )

        written = save_outputs(tmp_path / "out", generation, simulation)

        sim_df = pd.read_csv(written["simulation"])
        assert sim_df.loc[0, "p50"] == 79.0
        assert sim_df.loc[0, "top_10pct"] == 0.2
        assert results_to_frame(simulation).loc[0, "status"] == "complete"

        meta = json.loads(written["metadata"].read_text())
        assert meta["generation"]["produced"] == 1
        assert meta["generation"]["status"] == "partial"
        assert meta["simulation"]["completed_lineups"] == 1
