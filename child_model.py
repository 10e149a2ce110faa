"""
Childhood Weight Dynamics Engine

This module contains the simulation engine for the childhood body-composition
model of Hall et al. (2013). It advances a cohort's fat-free mass and fat mass
day by day with a classic fixed-step 4th-order Runge-Kutta scheme.

Key Features:
- Whole-cohort vectorised evaluation (individuals never interact)
- Tabulated or generalized-logistic energy intake, fixed per model
- Mean or median population reference curves, fixed per model
- Early termination with a partial trajectory when the state becomes
  non-physical or, with value checking enabled, implausible
"""

import logging
import math
from typing import Generator, List, Optional, Tuple

import numpy as np

from energy_balance import EnergyBalanceModel
from intake import GeneralizedLogisticIntake, IntakeProvider, TabulatedIntake
from model_parameters import ModelParameters
from reference_curves import ReferenceCurveInterpolator
from shared_models import (
    DAYS_PER_YEAR,
    MODEL_TYPE,
    PLAUSIBILITY_BOUNDS,
    ChildCohort,
    ImplausibleStateError,
    InvalidInputError,
    LogisticIntakeParameters,
    ModelDegeneracyError,
    ReferenceTable,
    SimulationResults,
    SimulationSnapshot,
)

logger = logging.getLogger(__name__)

# Steps between progress messages
PROGRESS_INTERVAL = 365


def validate_time_step(dt) -> float:
    """Return dt as a float, rejecting non-positive or non-finite steps"""
    try:
        dt = float(dt)
    except (TypeError, ValueError):
        raise InvalidInputError(f"Time step must be numeric, got {dt!r}")
    if not math.isfinite(dt) or dt <= 0:
        raise InvalidInputError(f"Time step must be positive, got {dt}")
    return dt


class ChildModel:
    """
    Fixed-step RK4 simulator for a cohort of children.

    Build with ``from_intake_matrix`` (tabulated intake) or
    ``from_logistic_curve`` (parametric intake), then call ``simulate``.
    Everything set at construction stays fixed for every run.
    """

    def __init__(
        self,
        cohort: ChildCohort,
        intake_provider: IntakeProvider,
        dt: float = 1.0,
        check_values: bool = False,
        reference_values=ReferenceTable.MEAN,
    ):
        """Initialize the model from a validated cohort and intake provider"""
        self.cohort = cohort
        self.dt = validate_time_step(dt)
        self.check_values = bool(check_values)
        self.reference_table = ReferenceTable.parse(reference_values)

        self.params = ModelParameters.from_sex(cohort.sex)
        self.reference = ReferenceCurveInterpolator(
            cohort.sex, cohort.bmi_category, self.reference_table
        )
        self.intake_provider = intake_provider
        self.energy = EnergyBalanceModel(
            self.params, self.reference, self.intake_provider
        )

        logger.info(
            f"Initialized child model for {cohort.size} individuals with "
            f"{type(intake_provider).__name__}, "
            f"{self.reference_table.name.lower()} reference values, dt={self.dt}"
        )

    @classmethod
    def from_intake_matrix(
        cls,
        age,
        sex,
        bmi_category,
        fat_free_mass,
        fat_mass,
        intake_matrix,
        dt: float = 1.0,
        check_values: bool = False,
        reference_values=0,
    ) -> "ChildModel":
        """
        Build a model whose intake is read from a (step x individual) matrix.

        Raises:
            InvalidInputError: If any input is invalid
        """
        cohort = ChildCohort(
            age=age,
            sex=sex,
            bmi_category=bmi_category,
            fat_free_mass=fat_free_mass,
            fat_mass=fat_mass,
        )
        dt = validate_time_step(dt)
        provider = TabulatedIntake(intake_matrix, cohort.age, dt)
        return cls(cohort, provider, dt, check_values, reference_values)

    @classmethod
    def from_logistic_curve(
        cls,
        age,
        sex,
        bmi_category,
        fat_free_mass,
        fat_mass,
        K: float,
        Q: float,
        A: float,
        B: float,
        nu: float,
        C: float,
        dt: float = 1.0,
        check_values: bool = False,
        reference_values=0,
    ) -> "ChildModel":
        """
        Build a model whose intake follows a generalized logistic curve of age.

        Raises:
            InvalidInputError: If any input is invalid
        """
        cohort = ChildCohort(
            age=age,
            sex=sex,
            bmi_category=bmi_category,
            fat_free_mass=fat_free_mass,
            fat_mass=fat_mass,
        )
        params = LogisticIntakeParameters(K=K, Q=Q, A=A, B=B, nu=nu, C=C)
        provider = GeneralizedLogisticIntake(params, cohort.size)
        return cls(cohort, provider, dt, check_values, reference_values)

    @property
    def n_individuals(self) -> int:
        return self.cohort.size

    def n_steps(self, total_days) -> int:
        """Number of RK4 steps needed to cover total_days"""
        try:
            total_days = float(total_days)
        except (TypeError, ValueError):
            raise InvalidInputError(f"Days must be numeric, got {total_days!r}")
        if not math.isfinite(total_days) or total_days <= 0:
            raise InvalidInputError(
                f"Days to simulate must be positive, got {total_days}"
            )
        return int(math.floor(total_days / self.dt))

    def mass_derivative(
        self, t, fat_free_mass, fat_mass
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Rates of change of FFM and FM (kg/day) at age t"""
        return self.energy.mass_derivative(t, fat_free_mass, fat_mass)

    def rk4_step(
        self, age: np.ndarray, fat_free_mass: np.ndarray, fat_mass: np.ndarray
    ) -> Tuple[np.ndarray, np.ndarray]:
        """
        Advance FFM and FM by one step of dt days.

        Age is exogenous time: the stages are evaluated at age, age + dt/2
        and age + dt (converted to years) while only the masses are blended.
        """
        dt = self.dt
        half_year = 0.5 * dt / DAYS_PER_YEAR
        full_year = dt / DAYS_PER_YEAR

        k1_ffm, k1_fm = self.mass_derivative(age, fat_free_mass, fat_mass)
        k2_ffm, k2_fm = self.mass_derivative(
            age + half_year,
            fat_free_mass + 0.5 * dt * k1_ffm,
            fat_mass + 0.5 * dt * k1_fm,
        )
        k3_ffm, k3_fm = self.mass_derivative(
            age + half_year,
            fat_free_mass + 0.5 * dt * k2_ffm,
            fat_mass + 0.5 * dt * k2_fm,
        )
        k4_ffm, k4_fm = self.mass_derivative(
            age + full_year,
            fat_free_mass + dt * k3_ffm,
            fat_mass + dt * k3_fm,
        )

        new_ffm = (
            fat_free_mass + dt * (k1_ffm + 2.0 * k2_ffm + 2.0 * k3_ffm + k4_ffm) / 6.0
        )
        new_fm = fat_mass + dt * (k1_fm + 2.0 * k2_fm + 2.0 * k3_fm + k4_fm) / 6.0
        return new_ffm, new_fm

    def _check_plausibility(
        self, previous: SimulationSnapshot, current: SimulationSnapshot
    ) -> None:
        """Raise ImplausibleStateError if the new state violates the bounds"""
        bounds = PLAUSIBILITY_BOUNDS
        if np.any(current.fat_free_mass <= bounds["min_fat_free_mass"]):
            raise ImplausibleStateError(
                f"Fat-free mass dropped to {current.fat_free_mass.min():.3f} kg "
                f"at step {current.step}"
            )
        if np.any(current.fat_mass <= bounds["min_fat_mass"]):
            raise ImplausibleStateError(
                f"Fat mass dropped to {current.fat_mass.min():.3f} kg "
                f"at step {current.step}"
            )
        weight = current.body_weight
        if np.any(weight > bounds["max_body_weight"]):
            raise ImplausibleStateError(
                f"Body weight reached {weight.max():.1f} kg at step {current.step}"
            )
        daily_change = np.abs(weight - previous.body_weight) / self.dt
        if np.any(daily_change > bounds["max_daily_weight_change"]):
            raise ImplausibleStateError(
                f"Body weight changed by {daily_change.max():.3f} kg/day "
                f"at step {current.step}"
            )

    def _integrate(
        self, n_steps: int
    ) -> Generator[SimulationSnapshot, None, Optional[Exception]]:
        """
        Yield the initial state and one snapshot per completed step.

        Returns the error that stopped the run early, or None.
        """
        cohort = self.cohort
        current = SimulationSnapshot(
            step=0,
            time=0.0,
            age=cohort.age.copy(),
            fat_free_mass=cohort.fat_free_mass.copy(),
            fat_mass=cohort.fat_mass.copy(),
        )
        yield current

        for step in range(1, n_steps + 1):
            try:
                new_ffm, new_fm = self.rk4_step(
                    current.age, current.fat_free_mass, current.fat_mass
                )
                candidate = SimulationSnapshot(
                    step=step,
                    time=current.time + self.dt,
                    age=current.age + self.dt / DAYS_PER_YEAR,
                    fat_free_mass=new_ffm,
                    fat_mass=new_fm,
                )
                if not np.all(np.isfinite(new_ffm)) or not np.all(
                    np.isfinite(new_fm)
                ):
                    raise ModelDegeneracyError(f"Non-finite masses at step {step}")
                if self.check_values:
                    self._check_plausibility(current, candidate)
            except (ModelDegeneracyError, ImplausibleStateError) as e:
                logger.warning(
                    f"Simulation stopped after {step - 1}/{n_steps} steps: {e}"
                )
                return e

            current = candidate
            if step % PROGRESS_INTERVAL == 0:
                logger.debug(
                    f"Completed {step}/{n_steps} steps, mean weight "
                    f"{current.body_weight.mean():.2f} kg"
                )
            yield current

        return None

    def iter_snapshots(
        self, total_days
    ) -> Generator[SimulationSnapshot, None, None]:
        """
        Stream one snapshot per step instead of retaining the trajectory.

        Raises:
            InvalidInputError: If total_days is invalid or not covered by intake
            ModelDegeneracyError, ImplausibleStateError: After the last good
                snapshot when the run stops early
        """
        n_steps = self.n_steps(total_days)
        self.intake_provider.required_steps(n_steps)
        failure = yield from self._integrate(n_steps)
        if failure is not None:
            raise failure

    def simulate(self, total_days) -> SimulationResults:
        """
        Run the model for total_days and return the full trajectory.

        The result holds floor(total_days / dt) + 1 entries, or fewer with
        ``correct_values=False`` when the run stopped early.

        Raises:
            InvalidInputError: If total_days is invalid or not covered by intake
            IntakeRangeError: If the intake table is queried off its grid
        """
        n_steps = self.n_steps(total_days)
        self.intake_provider.required_steps(n_steps)
        logger.info(
            f"Starting simulation of {total_days} days ({n_steps} steps) "
            f"for {self.n_individuals} individuals"
        )

        n_points = n_steps + 1
        time = np.empty(n_points)
        age = np.empty((self.n_individuals, n_points))
        ffm = np.empty((self.n_individuals, n_points))
        fm = np.empty((self.n_individuals, n_points))

        messages: List[str] = []
        completed = 0
        snapshots = self._integrate(n_steps)
        while True:
            try:
                snapshot = next(snapshots)
            except StopIteration as stop:
                if stop.value is not None:
                    messages.append(str(stop.value))
                break
            time[completed] = snapshot.time
            age[:, completed] = snapshot.age
            ffm[:, completed] = snapshot.fat_free_mass
            fm[:, completed] = snapshot.fat_mass
            completed += 1

        correct_values = not messages
        results = SimulationResults(
            time=time[:completed],
            age=age[:, :completed],
            fat_free_mass=ffm[:, :completed],
            fat_mass=fm[:, :completed],
            body_weight=ffm[:, :completed] + fm[:, :completed],
            correct_values=correct_values,
            model_type=MODEL_TYPE,
            messages=tuple(messages),
        )

        logger.info(
            f"Simulation finished: {results.n_steps}/{n_steps} steps, "
            f"correct_values={correct_values}"
        )
        return results
