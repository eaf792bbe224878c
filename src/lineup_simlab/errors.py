"""Error taxonomy for lineup generation and simulation.

Partial and cancelled runs are not exceptions: they come back as
``RunStatus.PARTIAL`` / ``RunStatus.CANCELLED`` on the returned result.
"""

from typing import Optional


class LabError(Exception):
    """Base class for all lineup_simlab errors."""


class SimulationError(LabError):
    """Malformed simulation input."""


class InvalidInput(SimulationError, ValueError):
    """Request rejected during validation, before any work was done."""


class Infeasible(LabError):
    """No single lineup can satisfy the hard constraints.

    Attributes:
        constraint: Name of the failing constraint (e.g. ``"salary_cap"``,
            ``"slot:QB"``, ``"lock_slots"``)
    """

    def __init__(self, message: str, constraint: Optional[str] = None):
        super().__init__(message)
        self.constraint = constraint

    def __str__(self) -> str:
        base = super().__str__()
        if self.constraint:
            return f"{base} [constraint={self.constraint}]"
        return base
