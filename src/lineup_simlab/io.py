"""
Player pool loading and result export.
CSV column names from different sites are normalised before parsing.
"""

import json
import logging
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from .errors import InvalidInput
from .models import GenerationResult, Player, SimulationBatch

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ['name', 'positions', 'team', 'salary', 'projected_points']

COLUMN_ALIASES = {
    # Identifier
    'ID': 'player_id',
    'Id': 'player_id',
    'id': 'player_id',
    'Player ID': 'player_id',
    'PlayerID': 'player_id',

    # Name variations
    'PLAYER': 'name',
    'Player': 'name',
    'player': 'name',
    'NAME': 'name',
    'Name': 'name',

    # Position variations
    'POS': 'positions',
    'Pos': 'positions',
    'pos': 'positions',
    'Position': 'positions',
    'position': 'positions',
    'Roster Position': 'positions',

    # Team variations
    'TEAM': 'team',
    'Team': 'team',
    'Tm': 'team',
    'TM': 'team',
    'TeamAbbrev': 'team',

    # Opponent variations
    'OPP': 'opponent',
    'Opp': 'opponent',
    'opp': 'opponent',
    'Opponent': 'opponent',
    'VS': 'opponent',
    'vs': 'opponent',

    # Salary variations
    'SAL': 'salary',
    'Sal': 'salary',
    'Salary': 'salary',
    'DK Sal': 'salary',
    'FD Sal': 'salary',

    # Projection variations
    'FPTS': 'projected_points',
    'Fpts': 'projected_points',
    'fpts': 'projected_points',
    'Proj': 'projected_points',
    'PROJ': 'projected_points',
    'Projection': 'projected_points',
    'projection': 'projected_points',
    'Fantasy Points': 'projected_points',
    'Floor': 'floor_points',
    'floor': 'floor_points',
    'Ceiling': 'ceiling_points',
    'ceiling': 'ceiling_points',
    'Ceil': 'ceiling_points',

    # Ownership variations
    'OWN': 'ownership',
    'Own': 'ownership',
    'own': 'ownership',
    'Ownership': 'ownership',
    'own%': 'ownership',
    'Own%': 'ownership',
    'OWN%': 'ownership',
    'RST%': 'ownership',
    'rst%': 'ownership',
}

# 'D' is left alone: hockey uses it for defensemen and the NFL presets accept it for DST.
POSITION_ALIASES = {
    'DEF': 'DST',
    'DEFENSE': 'DST',
    'PK': 'K',
}

SALARY_CAPS = {
    'draftkings_nfl': 50000,
    'fanduel_nfl': 60000,
    'draftkings_nba': 50000,
    'draftkings_nhl': 50000,
    'golf': 50000,
}


def get_salary_cap(preset: str) -> int:
    """Get salary cap for a roster preset"""
    return SALARY_CAPS.get(preset, 50000)


def normalize_column_names(df: pd.DataFrame) -> pd.DataFrame:
    """Normalize column names to standard format"""
    return df.rename(columns=COLUMN_ALIASES)


def normalize_ownership_values(df: pd.DataFrame, own_col: str = 'ownership') -> pd.DataFrame:
    """Normalize ownership values (handle both percentage and fraction formats)"""
    if own_col not in df.columns:
        return df

    df_normalized = df.copy()
    df_normalized[own_col] = pd.to_numeric(df_normalized[own_col], errors='coerce').fillna(0.0)

    # If every value is <= 1, treat the column as fractions
    if len(df_normalized) and (df_normalized[own_col] <= 1).all():
        df_normalized[own_col] = df_normalized[own_col] * 100

    df_normalized[own_col] = df_normalized[own_col].clip(0, 100)
    return df_normalized


def coerce_numeric_columns(df: pd.DataFrame, numeric_columns: List[str]) -> pd.DataFrame:
    """Coerce specified columns to numeric, stripping currency symbols and commas"""
    df_coerced = df.copy()

    for col in numeric_columns:
        if col in df_coerced.columns:
            if df_coerced[col].dtype == 'object':
                df_coerced[col] = df_coerced[col].astype(str).str.replace(r'[$,]', '', regex=True)
            df_coerced[col] = pd.to_numeric(df_coerced[col], errors='coerce')

    return df_coerced


def create_player_id(df: pd.DataFrame) -> pd.DataFrame:
    """Fill missing player IDs from team and normalised name"""
    df_with_id = df.copy()
    normalized_names = (df_with_id['name'].astype(str)
                        .str.upper()
                        .str.replace(r'[^\w\s]', '', regex=True)
                        .str.replace(r'\s+', '_', regex=True)
                        .str.replace(r'_(JR|SR|II|III|IV|V)$', '', regex=True))
    generated = df_with_id['team'].astype(str).str.upper() + '_' + normalized_names

    if 'player_id' in df_with_id.columns:
        existing = df_with_id['player_id']
        df_with_id['player_id'] = existing.where(existing.notna() & (existing.astype(str) != ''), generated)
    else:
        df_with_id['player_id'] = generated
    df_with_id['player_id'] = df_with_id['player_id'].astype(str)
    return df_with_id


def _split_positions(value) -> Tuple[str, ...]:
    parts = [part.strip().upper() for part in str(value).split('/') if part.strip()]
    return tuple(POSITION_ALIASES.get(part, part) for part in parts)


def _optional_float(value) -> Optional[float]:
    if value is None or (isinstance(value, float) and np.isnan(value)):
        return None
    return float(value)


def normalize_player_frame(df: pd.DataFrame) -> Tuple[pd.DataFrame, List[str]]:
    """
    Normalization pipeline for a raw player pool
    Returns: (normalized_df, warnings)
    """
    warnings = []
    df_norm = normalize_column_names(df)

    missing = [col for col in REQUIRED_COLUMNS if col not in df_norm.columns]
    if missing:
        raise InvalidInput(f"Missing required columns: {', '.join(missing)}")

    df_norm = coerce_numeric_columns(
        df_norm, ['salary', 'projected_points', 'floor_points', 'ceiling_points', 'ownership']
    )
    df_norm = normalize_ownership_values(df_norm)
    df_norm = create_player_id(df_norm)

    for col in ['salary', 'projected_points']:
        null_count = int(df_norm[col].isnull().sum())
        if null_count > 0:
            warnings.append(f"Column '{col}' has {null_count} missing values; rows dropped")
    df_norm = df_norm.dropna(subset=['salary', 'projected_points'])

    return df_norm, warnings


def load_player_pool(source: Union[str, Path, pd.DataFrame]) -> List[Player]:
    """Load a player pool from a CSV path or an existing DataFrame.

    Args:
        source: CSV file path or DataFrame with site-style columns

    Returns:
        List of Player records in file order

    Raises:
        InvalidInput: If required columns are missing
    """
    df = source if isinstance(source, pd.DataFrame) else pd.read_csv(source)
    df_norm, warnings = normalize_player_frame(df)
    for warning in warnings:
        logger.warning(warning)

    players = []
    for row in df_norm.to_dict(orient='records'):
        opponent = row.get('opponent')
        players.append(
            Player(
                player_id=row['player_id'],
                name=str(row['name']),
                team=str(row['team']).upper(),
                positions=_split_positions(row['positions']),
                salary=int(row['salary']),
                projected_points=float(row['projected_points']),
                floor_points=_optional_float(row.get('floor_points')),
                ceiling_points=_optional_float(row.get('ceiling_points')),
                ownership=float(row.get('ownership', 0.0) or 0.0),
                opponent=str(opponent).upper() if isinstance(opponent, str) and opponent else None,
            )
        )

    logger.info(f"Loaded {len(players)} players")
    return players


def lineups_to_frame(generation: GenerationResult) -> pd.DataFrame:
    """One row per lineup with a column per roster slot"""
    rows = []
    for rank, lineup in enumerate(generation.lineups, start=1):
        row: Dict[str, object] = {'lineup_id': lineup.lineup_id, 'order': rank}
        seen: Dict[str, int] = {}
        for assignment in lineup.assignments:
            seen[assignment.slot] = seen.get(assignment.slot, 0) + 1
            col = assignment.slot if seen[assignment.slot] == 1 else f"{assignment.slot}{seen[assignment.slot]}"
            row[col] = assignment.player.name
        row.update(
            total_salary=lineup.total_salary,
            projected_points=round(lineup.projected_points, 3),
            ceiling_points=round(lineup.ceiling_points, 3),
            correlation_score=round(lineup.correlation_score, 4),
        )
        rows.append(row)
    return pd.DataFrame(rows)


def results_to_frame(simulation: SimulationBatch) -> pd.DataFrame:
    """Flatten simulation results, one row per lineup"""
    rows = []
    for result in simulation.results:
        row = {
            'lineup_id': result.lineup_id,
            'trials': result.trials,
            'mean': result.mean,
            'std': result.std,
            'variance': result.variance,
            'min': result.min,
            'median': result.median,
            'max': result.max,
            'cash_probability': result.cash_probability,
            'win_probability': result.win_probability,
            'expected_payout': result.expected_payout,
            'roi': result.roi,
            'mean_cash_line': result.mean_cash_line,
            'status': result.status.value,
            'error': result.error,
        }
        for q, value in result.percentiles.items():
            row[f"p{int(round(q * 100)):02d}"] = value
        for t, rate in result.top_finish_rates.items():
            row[f"top_{int(round(t * 100))}pct"] = rate
        rows.append(row)
    return pd.DataFrame(rows)


def save_outputs(
    output_dir: Union[str, Path],
    generation: GenerationResult,
    simulation: Optional[SimulationBatch] = None,
    metadata: Optional[Dict[str, object]] = None,
) -> Dict[str, Path]:
    """Write lineups.csv, simulation.csv (when simulated) and metadata.json"""
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    written = {}

    path = output_dir / 'lineups.csv'
    lineups_to_frame(generation).to_csv(path, index=False)
    written['lineups'] = path

    if simulation is not None:
        path = output_dir / 'simulation.csv'
        results_to_frame(simulation).to_csv(path, index=False)
        written['simulation'] = path

    meta = {
        'generation': {
            'requested': generation.requested_count,
            'produced': generation.produced_count,
            'status': generation.status.value,
            'reason': generation.reason.value if generation.reason else None,
            'diagnostics': generation.diagnostics,
        },
        **(metadata or {}),
    }
    if simulation is not None:
        meta['simulation'] = {
            'requested_trials': simulation.requested_trials,
            'status': simulation.status.value,
            'reason': simulation.reason.value if simulation.reason else None,
            'completed_lineups': simulation.completed_count,
            'elapsed_seconds': simulation.elapsed_seconds,
        }
    path = output_dir / 'metadata.json'
    with open(path, 'w') as f:
        json.dump(meta, f, indent=2, default=str)
    written['metadata'] = path

    return written
