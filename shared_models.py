"""
Shared Data Models for the Childhood Weight Simulator

This module contains the shared dataclasses, enums, constants and exceptions
used by the reference curves, the energy-balance kernels, the RK4 engine and
the table/CLI layers.

Unified data models provide:
- A single definition of the cohort and its invariants
- Consistent result structures across the engine, API and CLI
- One home for the error taxonomy so every module raises the same types
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Tuple

import numpy as np
import pandas as pd

# ============================================================================
# CUSTOM EXCEPTIONS
# ============================================================================


class SimulationError(Exception):
    """Base class for simulation-related errors"""

    pass


class InvalidInputError(SimulationError):
    """Raised when construction or run inputs are invalid"""

    pass


class IntakeRangeError(SimulationError):
    """Raised when a tabulated intake is queried outside its step grid"""

    pass


class ModelDegeneracyError(SimulationError):
    """Raised when the model reaches a non-physical state"""

    pass


class ImplausibleStateError(SimulationError):
    """Raised when value checking finds a state outside the plausibility bounds"""

    pass


# ============================================================================
# ENUMS
# ============================================================================


class BMICategory(Enum):
    """Body-mass-index categories used to select reference curves"""

    UNDERWEIGHT = "underweight"
    NORMAL = "normal"
    OVERWEIGHT = "overweight"
    OBESE = "obese"

    @classmethod
    def parse(cls, value) -> "BMICategory":
        """Accept an enum member, a numeric code (1-4) or a category name"""
        if isinstance(value, cls):
            return value
        if isinstance(value, (bool, np.bool_)):
            raise InvalidInputError(f"Unrecognized BMI category: {value!r}")
        if isinstance(value, str):
            key = value.strip().lower()
            if key in BMI_CATEGORY_ALIASES:
                return BMI_CATEGORY_ALIASES[key]
            if key.isdigit():
                value = int(key)
            else:
                raise InvalidInputError(
                    f"Unrecognized BMI category: {value}. Use underweight, "
                    "normal, overweight, obese or codes 1-4."
                )
        try:
            code = int(value)
        except (TypeError, ValueError, OverflowError):
            raise InvalidInputError(f"Unrecognized BMI category: {value!r}")
        if code != value or code not in BMI_CATEGORY_CODES:
            raise InvalidInputError(
                f"BMI category code must be one of 1-4, got {value!r}"
            )
        return BMI_CATEGORY_CODES[code]


class ReferenceTable(Enum):
    """Population reference tables for FFM/FM by age"""

    MEAN = 0
    MEDIAN = 1

    @classmethod
    def parse(cls, value) -> "ReferenceTable":
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls[value.strip().upper()]
            except KeyError:
                raise InvalidInputError(
                    f"Unknown reference table: {value}. Use 'mean' or 'median'."
                )
        if not isinstance(value, (bool, np.bool_)) and value in (0, 1):
            return cls(int(value))
        raise InvalidInputError(
            f"Reference values selector must be 0 (mean) or 1 (median), got {value!r}"
        )


BMI_CATEGORY_CODES = {
    1: BMICategory.UNDERWEIGHT,
    2: BMICategory.NORMAL,
    3: BMICategory.OVERWEIGHT,
    4: BMICategory.OBESE,
}

BMI_CATEGORY_ALIASES = {
    "underweight": BMICategory.UNDERWEIGHT,
    "under": BMICategory.UNDERWEIGHT,
    "normal": BMICategory.NORMAL,
    "overweight": BMICategory.OVERWEIGHT,
    "over": BMICategory.OVERWEIGHT,
    "obese": BMICategory.OBESE,
}


def parse_sex(value) -> int:
    """
    Converts a sex indicator to the numeric code used by the model.

    Args:
        value: 0/1, or a string (m, f, male, female - case insensitive)

    Returns:
        int: 0 for male, 1 for female

    Raises:
        InvalidInputError: If the value is not recognized
    """
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ["m", "male", "0"]:
            return 0
        if lowered in ["f", "female", "1"]:
            return 1
        raise InvalidInputError(
            f"Unrecognized sex: {value}. Use 0, 1, 'm', 'f', 'male', or 'female'."
        )
    if not isinstance(value, (bool, np.bool_)) and value in (0, 1):
        return int(value)
    raise InvalidInputError(f"Sex must be 0 (male) or 1 (female), got {value!r}")


# ============================================================================
# CORE DATA STRUCTURES
# ============================================================================


@dataclass(frozen=True)
class ChildCohort:
    """
    Static per-individual attributes and the initial body composition.

    All fields are parallel arrays of length N. Construction validates every
    invariant so that no simulation step ever runs on a malformed cohort.
    """

    age: np.ndarray  # years
    sex: np.ndarray  # 0 = male, 1 = female
    bmi_category: tuple  # BMICategory per individual
    fat_free_mass: np.ndarray  # kg
    fat_mass: np.ndarray  # kg

    def __post_init__(self):
        """Coerce inputs to arrays and validate cohort invariants"""
        age = _as_float_vector(self.age, "age")
        ffm = _as_float_vector(self.fat_free_mass, "fat_free_mass")
        fm = _as_float_vector(self.fat_mass, "fat_mass")

        sex_values = np.atleast_1d(np.asarray(self.sex, dtype=object))
        if sex_values.ndim != 1:
            raise InvalidInputError("sex must be a one-dimensional sequence")
        sex = np.array([parse_sex(s) for s in sex_values], dtype=float)

        bmi_values = np.atleast_1d(np.asarray(self.bmi_category, dtype=object))
        if bmi_values.ndim != 1:
            raise InvalidInputError("bmi_category must be a one-dimensional sequence")
        categories = tuple(BMICategory.parse(b) for b in bmi_values)

        lengths = {
            "age": len(age),
            "sex": len(sex),
            "bmi_category": len(categories),
            "fat_free_mass": len(ffm),
            "fat_mass": len(fm),
        }
        if len(set(lengths.values())) != 1:
            raise InvalidInputError(
                f"All per-individual inputs must have the same length, got {lengths}"
            )
        if lengths["age"] == 0:
            raise InvalidInputError("Cohort must contain at least one individual")

        if np.any(age < 0):
            raise InvalidInputError("Ages must be non-negative")
        if np.any(ffm <= 0):
            raise InvalidInputError("Fat-free mass must be greater than 0")
        if np.any(fm < 0):
            raise InvalidInputError("Fat mass must be non-negative")

        for arr in (age, sex, ffm, fm):
            arr.setflags(write=False)

        object.__setattr__(self, "age", age)
        object.__setattr__(self, "sex", sex)
        object.__setattr__(self, "bmi_category", categories)
        object.__setattr__(self, "fat_free_mass", ffm)
        object.__setattr__(self, "fat_mass", fm)

    @property
    def size(self) -> int:
        return len(self.age)


@dataclass(frozen=True)
class LogisticIntakeParameters:
    """Generalized logistic (Richards) curve parameters for energy intake"""

    K: float  # upper asymptote (kcal/day)
    Q: float
    A: float  # lower asymptote (kcal/day)
    B: float  # growth rate (1/years)
    nu: float
    C: float

    def __post_init__(self):
        """Validate that the curve can be evaluated"""
        values = {
            "K": self.K,
            "Q": self.Q,
            "A": self.A,
            "B": self.B,
            "nu": self.nu,
            "C": self.C,
        }
        for name, value in values.items():
            try:
                number = float(value)
            except (TypeError, ValueError):
                raise InvalidInputError(f"Logistic parameter {name} must be numeric")
            if not np.isfinite(number):
                raise InvalidInputError(f"Logistic parameter {name} must be finite")
            object.__setattr__(self, name, number)
        if float(self.nu) == 0:
            raise InvalidInputError("Logistic parameter nu must be non-zero")


@dataclass
class SimulationSnapshot:
    """State of the whole cohort at one integration step"""

    step: int
    time: float  # days since start
    age: np.ndarray  # years
    fat_free_mass: np.ndarray
    fat_mass: np.ndarray

    @property
    def body_weight(self) -> np.ndarray:
        return self.fat_free_mass + self.fat_mass


@dataclass(frozen=True)
class SimulationResults:
    """
    Trajectories produced by one RK4 run.

    Per-individual arrays are shaped (N, steps + 1); ``time`` is shaped
    (steps + 1,). When a run terminates early the arrays hold only the
    completed steps and ``correct_values`` is False.
    """

    time: np.ndarray
    age: np.ndarray
    fat_free_mass: np.ndarray
    fat_mass: np.ndarray
    body_weight: np.ndarray
    correct_values: bool
    model_type: str = "Children"
    messages: Tuple[str, ...] = ()

    def __post_init__(self):
        """Freeze the trajectory arrays without copying them"""
        for name in ("time", "age", "fat_free_mass", "fat_mass", "body_weight"):
            frozen = np.asarray(getattr(self, name), dtype=float).view()
            frozen.setflags(write=False)
            object.__setattr__(self, name, frozen)
        object.__setattr__(self, "messages", tuple(self.messages))

    @property
    def n_individuals(self) -> int:
        return self.age.shape[0]

    @property
    def n_steps(self) -> int:
        """Number of completed integration steps (excluding the initial state)"""
        return len(self.time) - 1

    def to_dict(self) -> Dict[str, object]:
        """Return the result with the published field names"""
        return {
            "Time": self.time,
            "Age": self.age,
            "Fat_Free_Mass": self.fat_free_mass,
            "Fat_Mass": self.fat_mass,
            "Body_Weight": self.body_weight,
            "Correct_Values": self.correct_values,
            "Model_Type": self.model_type,
        }

    def to_dataframe(self) -> pd.DataFrame:
        """Long-format table with one row per individual per step"""
        n_ind, n_points = self.age.shape
        return pd.DataFrame(
            {
                "individual": np.repeat(np.arange(n_ind), n_points),
                "step": np.tile(np.arange(n_points), n_ind),
                "time_days": np.tile(self.time, n_ind),
                "age_years": self.age.ravel(),
                "fat_free_mass_kg": self.fat_free_mass.ravel(),
                "fat_mass_kg": self.fat_mass.ravel(),
                "body_weight_kg": self.body_weight.ravel(),
            }
        )

    def final_state(self) -> pd.DataFrame:
        """Per-individual table of the last recorded step"""
        return pd.DataFrame(
            {
                "individual": np.arange(self.n_individuals),
                "age_years": self.age[:, -1],
                "fat_free_mass_kg": self.fat_free_mass[:, -1],
                "fat_mass_kg": self.fat_mass[:, -1],
                "body_weight_kg": self.body_weight[:, -1],
            }
        )


# ============================================================================
# UTILITY FUNCTIONS
# ============================================================================


def _as_float_vector(values, name: str) -> np.ndarray:
    """Copy values into a finite one-dimensional float array"""
    try:
        arr = np.array(values, dtype=float, copy=True, ndmin=1)
    except (TypeError, ValueError):
        raise InvalidInputError(f"{name} must contain only numbers")
    if arr.ndim != 1:
        raise InvalidInputError(f"{name} must be a one-dimensional sequence")
    if not np.all(np.isfinite(arr)):
        raise InvalidInputError(f"{name} must contain only finite values")
    return arr


def convert_dict_to_cohort(individuals: List[dict]) -> ChildCohort:
    """Convert a list of per-individual dicts (JSON config format) to a cohort"""
    return ChildCohort(
        age=[ind["age"] for ind in individuals],
        sex=[ind["sex"] for ind in individuals],
        bmi_category=[ind["bmi_category"] for ind in individuals],
        fat_free_mass=[ind["ffm"] for ind in individuals],
        fat_mass=[ind["fm"] for ind in individuals],
    )


def convert_dict_to_logistic(params: dict) -> LogisticIntakeParameters:
    """Convert a logistic parameter mapping to LogisticIntakeParameters"""
    missing = [k for k in ("K", "Q", "A", "B", "nu", "C") if k not in params]
    if missing:
        raise InvalidInputError(f"Missing logistic parameters: {missing}")
    return LogisticIntakeParameters(
        K=params["K"],
        Q=params["Q"],
        A=params["A"],
        B=params["B"],
        nu=params["nu"],
        C=params["C"],
    )


# ============================================================================
# CONSTANTS AND CONFIGURATIONS
# ============================================================================

DAYS_PER_YEAR = 365.0

MODEL_TYPE = "Children"

# Plausibility bounds applied after every step when value checking is enabled
PLAUSIBILITY_BOUNDS = {
    "min_fat_free_mass": 0.0,  # kg, exclusive
    "min_fat_mass": 0.0,  # kg, exclusive
    "max_body_weight": 350.0,  # kg
    "max_daily_weight_change": 1.0,  # kg/day
}
