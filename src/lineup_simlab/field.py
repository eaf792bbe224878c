"""Synthetic opponent field built from projected ownership."""

import logging
from typing import Sequence

import numpy as np

from .constraints import salary_lower_bound
from .models import Player, RosterRequirement

logger = logging.getLogger(__name__)

# Ownership (percent) assigned to the top projection when none is supplied.
ESTIMATED_TOP_OWNERSHIP = 25.0
MIN_OWNERSHIP = 0.1


def estimate_ownership(players: Sequence[Player]) -> np.ndarray:
    """Ownership percentages, filling zeros from projections.

    Players with no ownership get a share proportional to their projection,
    scaled so the best projection maps to ``ESTIMATED_TOP_OWNERSHIP``.
    """
    own = np.array([p.ownership for p in players], dtype=float)
    proj = np.maximum(np.array([p.projected_points for p in players], dtype=float), 0.0)
    top = proj.max() if len(proj) else 0.0
    estimate = proj / top * ESTIMATED_TOP_OWNERSHIP if top > 0 else np.full(len(players), 1.0)
    own = np.where(own > 0, own, estimate)
    return np.maximum(own, MIN_OWNERSHIP)


def build_field_pool(
    players: Sequence[Player],
    roster: RosterRequirement,
    salary_cap: int,
    size: int,
    rng: np.random.Generator,
    max_tries_per_lineup: int = 5,
) -> np.ndarray:
    """Build up to ``size`` opponent lineups by ownership-weighted random greedy.

    Args:
        players: Universe to draw from
        roster: Slots each opponent lineup fills
        salary_cap: Cap every opponent lineup respects
        size: Lineups wanted
        rng: Seeded generator driving every draw
        max_tries_per_lineup: Construction attempts per wanted lineup

    Returns:
        Integer array of shape (built, roster.size) holding indices into ``players``.
        Failed constructions are skipped, so ``built`` may be below ``size``.
    """
    n_slots = roster.size
    if not players or n_slots == 0 or size <= 0:
        return np.zeros((0, n_slots), dtype=np.int64)

    eligibility = np.array(
        [[roster.can_fill(p, slot) for slot in roster.slots] for p in players], dtype=bool
    )
    salaries = np.array([p.salary for p in players], dtype=np.int64)
    weights = estimate_ownership(players)
    slot_cands = [np.flatnonzero(eligibility[:, s]) for s in range(n_slots)]

    lineups = []
    tries = 0
    while len(lineups) < size and tries < size * max_tries_per_lineup:
        tries += 1
        lineup = _random_greedy(roster.slots, slot_cands, salaries, weights, salary_cap, rng)
        if lineup is not None:
            lineups.append(lineup)

    if len(lineups) < size:
        logger.warning("Field pool: built %d of %d opponent lineups", len(lineups), size)
    if not lineups:
        return np.zeros((0, n_slots), dtype=np.int64)
    return np.array(lineups, dtype=np.int64)


def _random_greedy(slot_names, slot_cands, salaries, weights, salary_cap, rng):
    n_slots = len(slot_cands)
    chosen = [-1] * n_slots
    available = np.ones(len(salaries), dtype=bool)
    remaining_cap = salary_cap
    order = rng.permutation(n_slots)

    for i, s in enumerate(order):
        lb = salary_lower_bound(order[i + 1:], slot_names, slot_cands, available, salaries)
        cands = slot_cands[s][available[slot_cands[s]]]
        cands = cands[salaries[cands] <= remaining_cap - lb]
        if len(cands) == 0:
            return None
        w = weights[cands]
        pick = int(rng.choice(cands, p=w / w.sum()))
        chosen[s] = pick
        available[pick] = False
        remaining_cap -= int(salaries[pick])

    return chosen
