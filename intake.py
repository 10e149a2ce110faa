"""
Energy Intake Providers

Two interchangeable ways to supply daily energy intake (kcal/day) to the
model, selected once when the model is built:

- TabulatedIntake: a pre-computed (step x individual) matrix, one row per
  integration step
- GeneralizedLogisticIntake: a Richards curve of age shared by the cohort
"""

import logging
from abc import ABC, abstractmethod

import numpy as np

from shared_models import (
    DAYS_PER_YEAR,
    IntakeRangeError,
    InvalidInputError,
    LogisticIntakeParameters,
)

logger = logging.getLogger(__name__)

# Step offsets are snapped to the grid before flooring
GRID_DECIMALS = 6


class IntakeProvider(ABC):
    """Supplies energy intake for every individual at a given age"""

    @abstractmethod
    def intake(self, t: np.ndarray) -> np.ndarray:
        """
        Args:
            t: Current age of each individual (years)

        Returns:
            np.ndarray: Energy intake per individual (kcal/day)
        """

    def required_steps(self, n_steps: int) -> None:
        """Check that a run of n_steps can be served; no-op by default"""
        return None


class TabulatedIntake(IntakeProvider):
    """
    Intake read from a matrix with one row per integration step.

    Row ``floor(365 * (age - age0) / dt)`` is returned. The end point of the
    final step lands on the closing edge of the table (offset == n_rows) and
    evaluates the last row; any other offset outside the table is an error.
    """

    def __init__(self, intake_matrix, start_age, dt: float):
        matrix = np.array(intake_matrix, dtype=float, copy=True)
        start_age = np.asarray(start_age, dtype=float)

        if matrix.ndim == 1:
            matrix = matrix.reshape(-1, 1)
        if matrix.ndim != 2:
            raise InvalidInputError(
                f"Intake matrix must be two-dimensional, got {matrix.ndim} dimensions"
            )
        if matrix.shape[0] == 0:
            raise InvalidInputError("Intake matrix must contain at least one row")
        if matrix.shape[1] != len(start_age):
            raise InvalidInputError(
                f"Intake matrix has {matrix.shape[1]} columns for "
                f"{len(start_age)} individuals"
            )
        if not np.all(np.isfinite(matrix)):
            raise InvalidInputError("Intake matrix must contain only finite values")

        matrix.setflags(write=False)
        self.matrix = matrix
        self.start_age = start_age
        self.dt = float(dt)
        self._columns = np.arange(len(start_age))

        logger.debug(
            f"Tabulated intake covers {matrix.shape[0]} steps of {self.dt} days "
            f"for {matrix.shape[1]} individuals"
        )

    @property
    def n_rows(self) -> int:
        return self.matrix.shape[0]

    def step_offset(self, t) -> np.ndarray:
        """Integer step index of age t relative to each start age"""
        t = np.asarray(t, dtype=float)
        offset = np.round(DAYS_PER_YEAR * (t - self.start_age) / self.dt, GRID_DECIMALS)
        return np.floor(offset).astype(int)

    def intake(self, t) -> np.ndarray:
        offset = self.step_offset(t)
        if np.any(offset < 0) or np.any(offset > self.n_rows):
            raise IntakeRangeError(
                f"Intake requested for step offsets {offset.min()}..{offset.max()} "
                f"but the matrix covers steps 0..{self.n_rows - 1}"
            )
        rows = np.minimum(offset, self.n_rows - 1)
        return self.matrix[rows, self._columns]

    def required_steps(self, n_steps: int) -> None:
        if n_steps > self.n_rows:
            raise InvalidInputError(
                f"Intake matrix covers {self.n_rows} steps but {n_steps} were "
                "requested"
            )


class GeneralizedLogisticIntake(IntakeProvider):
    """
    Intake as a generalized logistic function of age (years):

        A + (K - A) / (C + Q * exp(-B * t)) ** (1 / nu)
    """

    def __init__(self, params: LogisticIntakeParameters, n_individuals: int):
        self.params = params
        self.n_individuals = n_individuals

    def intake(self, t) -> np.ndarray:
        p = self.params
        t = np.asarray(t, dtype=float)
        if t.shape != (self.n_individuals,):
            raise InvalidInputError(
                f"Expected {self.n_individuals} ages, got shape {t.shape}"
            )
        return p.A + (p.K - p.A) / np.power(p.C + p.Q * np.exp(-p.B * t), 1.0 / p.nu)


def constant_intake_matrix(
    kcal_per_day, n_steps: int, n_individuals: int
) -> np.ndarray:
    """
    Build an intake matrix with a constant intake per individual.

    Args:
        kcal_per_day: Scalar or per-individual intake (kcal/day)
        n_steps: Number of rows (integration steps)
        n_individuals: Number of columns
    """
    if n_steps <= 0:
        raise InvalidInputError("Number of steps must be positive")
    kcal = np.broadcast_to(np.asarray(kcal_per_day, dtype=float), (n_individuals,))
    return np.tile(kcal, (n_steps, 1))
