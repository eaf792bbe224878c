"""Per-player scores for each generation objective.

Every objective maps a player to a non-negative score that replaces the plain
projection in the generator's greedy weights, local search and restart selection.
Reported lineup projections are unaffected.
"""

import logging
from typing import Sequence

import numpy as np

from .models import Objective, Player

logger = logging.getLogger(__name__)

# Ownership (percent) below which contrarian plays earn a bonus.
CONTRARIAN_OWNERSHIP_THRESHOLD = 15.0
# Ownership (percent) above which a player counts as chalk.
CHALK_OWNERSHIP = 25.0


def objective_scores(players: Sequence[Player], objective: Objective) -> np.ndarray:
    """Score every player under ``objective``.

    Args:
        players: Players in context order
        objective: Scoring mode

    Returns:
        Float array aligned with ``players``, clipped at zero
    """
    objective = Objective(objective)
    proj = np.array([p.projected_points for p in players], dtype=float)
    if objective is Objective.PROJECTION:
        return proj

    ceiling = np.array([p.ceiling for p in players], dtype=float)
    floor = np.array([p.floor for p in players], dtype=float)
    own = np.array([p.ownership for p in players], dtype=float)
    known = own > 0

    if objective is Objective.CEILING:
        penalty = np.where(own > CHALK_OWNERSHIP, (own / 100) ** 1.5 * proj * 0.1, 0.0)
        score = 0.6 * ceiling + 0.4 * proj - penalty
    elif objective is Objective.FLOOR:
        score = 0.5 * floor + 0.5 * proj
    elif objective is Objective.BALANCED:
        adjust = np.where(own > 35.0, -0.05 * proj, np.where(known & (own < 10.0), 0.03 * proj, 0.0))
        score = 0.6 * proj + 0.2 * ceiling + 0.2 * floor + adjust
    elif objective is Objective.CONTRARIAN:
        base = 0.6 * proj
        gap = np.clip(CONTRARIAN_OWNERSHIP_THRESHOLD - own, 0.0, None)
        bonus = np.where(known, base * (np.power(2.0, gap / 5.0) - 1.0) * 0.5, 0.0)
        penalty = np.where(own > CHALK_OWNERSHIP, (own / CHALK_OWNERSHIP) ** 2 * base * 0.4, 0.0)
        score = base + bonus + 0.3 * (ceiling - proj) - penalty
    else:
        salaries = np.array([p.salary for p in players], dtype=float)
        per_k = np.where(salaries > 0, proj / np.maximum(salaries, 1.0) * 1000.0, 0.0)
        typical = float(np.median(per_k)) if len(per_k) else 0.0
        rating = per_k / typical if typical > 0 else np.ones(len(players))
        score = 0.8 * rating * proj + 0.2 * floor + np.clip(rating - 1.0, 0.0, None) * proj * 0.1

    logger.debug("Objective %s: mean score %.2f", objective.value, float(score.mean()) if len(score) else 0.0)
    return np.maximum(score, 0.0)
