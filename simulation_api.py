"""
Simulation API Layer for the Childhood Weight Model

This module bridges tabular inputs and outputs with the RK4 engine. It turns
a pandas cohort table and an intake specification into a ChildModel, runs it,
and reshapes the result into tables for downstream reporting.

Key Features:
- Cohort tables with flexible sex / BMI category encodings
- Constant, tabulated or generalized-logistic intake specifications
- Per-individual summary of a finished run
- Comprehensive input validation with actionable error messages
"""

import logging
from typing import Mapping, Union

import numpy as np
import pandas as pd

from child_model import ChildModel, validate_time_step
from intake import GeneralizedLogisticIntake, TabulatedIntake, constant_intake_matrix
from shared_models import (
    ChildCohort,
    InvalidInputError,
    SimulationError,
    SimulationResults,
    convert_dict_to_cohort,
    convert_dict_to_logistic,
)

logger = logging.getLogger(__name__)

COHORT_COLUMNS = ["age", "sex", "bmi_category", "ffm", "fm"]

IntakeSpec = Union[float, np.ndarray, pd.DataFrame, Mapping[str, float]]


# ============================================================================
# CORE API FUNCTION
# ============================================================================


def simulate_cohort(
    cohort_df: pd.DataFrame,
    days: float,
    intake: IntakeSpec,
    dt: float = 1.0,
    check_values: bool = False,
    reference_values: Union[int, str] = 0,
) -> SimulationResults:
    """
    Simulate a cohort described by a table.

    Args:
        cohort_df: One row per individual with columns age, sex,
            bmi_category, ffm, fm
        days: Length of the simulation (days)
        intake: One of
            - a scalar or per-individual sequence (constant kcal/day)
            - a 2-D array or DataFrame (steps x individuals, kcal/day)
            - a mapping with the logistic parameters K, Q, A, B, nu, C
        dt: Time step (days)
        check_values: Stop early when the trajectory leaves plausible bounds
        reference_values: 0/'mean' or 1/'median' reference curves

    Returns:
        SimulationResults: Trajectories for every individual

    Raises:
        InvalidInputError: If inputs are invalid
        SimulationError: If the simulation fails unexpectedly
    """
    model = build_model(cohort_df, days, intake, dt, check_values, reference_values)

    try:
        results = model.simulate(days)
    except SimulationError:
        raise
    except Exception as e:
        logger.error(f"Simulation failed: {str(e)}")
        raise SimulationError(f"Simulation execution failed: {str(e)}")

    if not results.correct_values:
        logger.warning(
            f"Simulation returned a partial trajectory: {'; '.join(results.messages)}"
        )
    return results


def build_model(
    cohort_df: pd.DataFrame,
    days: float,
    intake: IntakeSpec,
    dt: float = 1.0,
    check_values: bool = False,
    reference_values: Union[int, str] = 0,
) -> ChildModel:
    """Build a ChildModel from a cohort table and an intake specification"""
    cohort = cohort_from_frame(cohort_df)
    dt = validate_time_step(dt)

    if isinstance(intake, Mapping):
        provider = GeneralizedLogisticIntake(
            convert_dict_to_logistic(intake), cohort.size
        )
        logger.info("Using generalized logistic intake")
    else:
        matrix = _intake_matrix(intake, days, dt, cohort.size)
        provider = TabulatedIntake(matrix, cohort.age, dt)
        logger.info(f"Using tabulated intake with {provider.n_rows} steps")

    return ChildModel(cohort, provider, dt, check_values, reference_values)


# ============================================================================
# RESULT PROCESSING
# ============================================================================


def summarize_results(results: SimulationResults) -> pd.DataFrame:
    """
    Per-individual summary of a run.

    Columns: start and end age, start and end weight, weight/FFM/FM change,
    minimum FFM and FM over the trajectory.
    """
    summary = pd.DataFrame(
        {
            "individual": np.arange(results.n_individuals),
            "start_age_years": results.age[:, 0],
            "end_age_years": results.age[:, -1],
            "start_weight_kg": results.body_weight[:, 0],
            "end_weight_kg": results.body_weight[:, -1],
            "weight_change_kg": results.body_weight[:, -1] - results.body_weight[:, 0],
            "ffm_change_kg": results.fat_free_mass[:, -1] - results.fat_free_mass[:, 0],
            "fm_change_kg": results.fat_mass[:, -1] - results.fat_mass[:, 0],
            "min_ffm_kg": results.fat_free_mass.min(axis=1),
            "min_fm_kg": results.fat_mass.min(axis=1),
        }
    )
    summary["end_body_fat_pct"] = (
        100.0 * results.fat_mass[:, -1] / results.body_weight[:, -1]
    )
    summary.attrs["correct_values"] = results.correct_values
    summary.attrs["model_type"] = results.model_type
    return summary


# ============================================================================
# INPUT VALIDATION
# ============================================================================


def validate_cohort_frame(cohort_df: pd.DataFrame) -> None:
    """Validate the shape and column types of a cohort table"""
    if not isinstance(cohort_df, pd.DataFrame):
        raise InvalidInputError("Cohort must be provided as a pandas DataFrame")

    missing = [col for col in COHORT_COLUMNS if col not in cohort_df.columns]
    if missing:
        raise InvalidInputError(
            f"Cohort table missing required columns: {missing}. "
            f"Available columns: {list(cohort_df.columns)}"
        )
    if cohort_df.empty:
        raise InvalidInputError("Cohort table must contain at least one individual")

    for col in ["age", "ffm", "fm"]:
        if not pd.api.types.is_numeric_dtype(cohort_df[col]):
            raise InvalidInputError(f"Column '{col}' must be numeric")
        if cohort_df[col].isna().any():
            raise InvalidInputError(f"Column '{col}' contains missing values")

    for col in ["sex", "bmi_category"]:
        if cohort_df[col].isna().any():
            raise InvalidInputError(f"Column '{col}' contains missing values")


def cohort_from_frame(cohort_df: pd.DataFrame) -> ChildCohort:
    """Convert a validated cohort table to a ChildCohort"""
    validate_cohort_frame(cohort_df)
    return convert_dict_to_cohort(cohort_df[COHORT_COLUMNS].to_dict("records"))


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================


def _intake_matrix(intake, days: float, dt: float, n_individuals: int) -> np.ndarray:
    """Turn a constant or tabulated intake specification into a matrix"""
    if isinstance(intake, pd.DataFrame):
        try:
            return intake.to_numpy(dtype=float)
        except (TypeError, ValueError):
            raise InvalidInputError("Intake table must contain only numeric values")

    try:
        values = np.asarray(intake, dtype=float)
    except (TypeError, ValueError):
        raise InvalidInputError("Intake must be numeric, a matrix or a parameter map")

    if values.ndim == 2:
        return values
    if values.ndim > 2:
        raise InvalidInputError("Intake matrix must be two-dimensional")
    if values.ndim == 1 and len(values) != n_individuals:
        raise InvalidInputError(
            f"Constant intake has {len(values)} values for {n_individuals} individuals"
        )

    try:
        n_steps = max(int(np.floor(float(days) / dt)), 1)
    except (TypeError, ValueError, OverflowError):
        raise InvalidInputError(f"Days must be numeric, got {days!r}")
    return constant_intake_matrix(values, n_steps, n_individuals)
