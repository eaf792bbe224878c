"""Contest payout structures."""

import math
from typing import Tuple

import numpy as np

from .models import ContestDescriptor, ContestFormat, PayoutTier

# Payout per winning entry when a cash game has no prize pool: fee less 10% rake.
CASH_GAME_MULTIPLIER = 1.8
# Fraction of entry fees returned as prizes when a GPP has no prize pool.
GPP_PAYBACK = 0.9

_PAID_FRACTION = {
    ContestFormat.DOUBLE_UP: 0.45,
    ContestFormat.FIFTY_FIFTY: 0.50,
    ContestFormat.GPP: 0.20,
}


def contest_entries(contest: ContestDescriptor) -> int:
    """Number of entries the payout table is defined over."""
    if contest.contest_format is ContestFormat.HEAD_TO_HEAD:
        return 2
    return max(1, contest.max_entries)


def default_payout_tiers(contest: ContestDescriptor) -> Tuple[PayoutTier, ...]:
    """Payout tiers implied by the contest format, fee and prize pool."""
    fee = contest.entry_fee
    pool = contest.prize_pool
    entries = contest_entries(contest)

    if contest.contest_format is ContestFormat.HEAD_TO_HEAD:
        return (PayoutTier(1, 1, pool if pool > 0 else CASH_GAME_MULTIPLIER * fee),)

    paid = max(1, int(math.floor(entries * _PAID_FRACTION[contest.contest_format])))

    if contest.contest_format in (ContestFormat.DOUBLE_UP, ContestFormat.FIFTY_FIFTY):
        each = pool / paid if pool > 0 else CASH_GAME_MULTIPLIER * fee
        return (PayoutTier(1, paid, each),)

    if pool <= 0:
        pool = GPP_PAYBACK * fee * entries
    weights = 1.0 / np.arange(1, paid + 1)
    payouts = pool * weights / weights.sum()
    return tuple(PayoutTier(rank, rank, float(payouts[rank - 1])) for rank in range(1, paid + 1))


class PayoutTable:
    """Rank-indexed payout lookup for one contest."""

    def __init__(self, contest: ContestDescriptor):
        self.entries = contest_entries(contest)
        self.tiers = contest.payout_tiers or default_payout_tiers(contest)
        self._by_rank = np.zeros(self.entries + 1)
        for tier in self.tiers:
            lo = max(1, tier.min_rank)
            hi = min(self.entries, tier.max_rank)
            if lo <= hi:
                self._by_rank[lo:hi + 1] = tier.payout

        paid = np.nonzero(self._by_rank > 0)[0]
        self.last_paid_rank = int(paid.max()) if len(paid) else 0

    def payout(self, rank: int) -> float:
        if rank < 1 or rank > self.entries:
            return 0.0
        return float(self._by_rank[rank])

    def lookup(self, ranks: np.ndarray) -> np.ndarray:
        """Vectorised payout for an array of 1-based contest ranks."""
        ranks = np.clip(np.asarray(ranks, dtype=int), 0, self.entries)
        return self._by_rank[ranks]

    def contest_rank(self, finish_fraction: np.ndarray) -> np.ndarray:
        """Map finish fractions in (0, 1] onto ranks in the real contest."""
        ranks = np.ceil(np.asarray(finish_fraction) * self.entries - 1e-9).astype(int)
        return np.clip(ranks, 1, self.entries)

    @property
    def paid_fraction(self) -> float:
        return self.last_paid_rank / self.entries
