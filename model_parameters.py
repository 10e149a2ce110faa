"""
Sex-Specific Parameters for the Childhood Energy-Balance Model

Constants from Hall et al. (2013), "Dynamics of childhood growth and obesity:
development and validation of a quantitative mathematical model", The Lancet
Diabetes & Endocrinology 1(2): 97-105.

Every individual's parameters are a linear blend of the male and female
constants, ``(1 - sex) * male + sex * female``, computed once per cohort and
never modified during a run.
"""

from dataclasses import dataclass, fields

import numpy as np

# General constants shared by both sexes
GENERAL_CONSTANTS = {
    "rho_fm": 9.4 * 1000.0,  # kcal/kg, fat mass energy density
    "deltamin": 10.0,  # kcal/kg/day
    "P": 12.0,  # years, delta logistic scale
    "h": 10.0,  # delta logistic steepness
}

# Curve keys follow the three-term kernel: A*exp(-(t-tA)/tauA) + two Gaussians
MALE_PARAMETERS = {
    "K": 800.0,
    "deltamax": 19.0,
    "growth": {
        "A": 3.2, "B": 9.6, "D": 10.1,
        "tA": 4.7, "tB": 12.5, "tD": 15.0,
        "tauA": 2.5, "tauB": 1.0, "tauD": 1.5,
    },
    "growth_impact": {
        "A": 3.2, "B": 9.6, "D": 10.0,
        "tA": 4.7, "tB": 12.5, "tD": 15.0,
        "tauA": 1.0, "tauB": 0.94, "tauD": 0.69,
    },
    "energy_balance_impact": {
        "A": 7.2, "B": 30.0, "D": 21.0,
        "tA": 5.6, "tB": 9.8, "tD": 15.0,
        "tauA": 15.0, "tauB": 1.5, "tauD": 2.0,
    },
}  # fmt: skip

FEMALE_PARAMETERS = {
    "K": 700.0,
    "deltamax": 17.0,
    "growth": {
        "A": 2.3, "B": 8.4, "D": 1.1,
        "tA": 4.5, "tB": 11.7, "tD": 16.2,
        "tauA": 1.0, "tauB": 0.9, "tauD": 0.7,
    },
    "growth_impact": {
        "A": 2.3, "B": 8.4, "D": 1.1,
        "tA": 4.5, "tB": 11.7, "tD": 16.0,
        "tauA": 1.0, "tauB": 0.94, "tauD": 0.69,
    },
    "energy_balance_impact": {
        "A": 16.5, "B": 47.0, "D": 41.0,
        "tA": 4.8, "tB": 9.1, "tD": 13.5,
        "tauA": 7.0, "tauB": 1.0, "tauD": 1.5,
    },
}  # fmt: skip


def blend_by_sex(male_value, female_value, sex):
    """Linear blend of a male and a female constant for each individual"""
    return (1.0 - sex) * male_value + sex * female_value


@dataclass(frozen=True)
class CurveParameters:
    """Nine per-individual arrays of one three-term kernel"""

    A: np.ndarray
    B: np.ndarray
    D: np.ndarray
    tA: np.ndarray  # years
    tB: np.ndarray  # years
    tD: np.ndarray  # years
    tauA: np.ndarray  # years
    tauB: np.ndarray  # years
    tauD: np.ndarray  # years

    @classmethod
    def from_sex(cls, male: dict, female: dict, sex: np.ndarray) -> "CurveParameters":
        values = {
            f.name: _frozen(blend_by_sex(male[f.name], female[f.name], sex))
            for f in fields(cls)
        }
        return cls(**values)


@dataclass(frozen=True)
class ModelParameters:
    """
    Immutable parameter set for one cohort.

    Produced once from the sex indicator and passed to every kernel
    evaluation. Scalars in GENERAL_CONSTANTS are shared by everyone.
    """

    growth: CurveParameters
    growth_impact: CurveParameters
    energy_balance_impact: CurveParameters
    K: np.ndarray  # kcal/day
    deltamax: np.ndarray  # kcal/kg/day
    deltamin: float = GENERAL_CONSTANTS["deltamin"]
    P: float = GENERAL_CONSTANTS["P"]
    h: float = GENERAL_CONSTANTS["h"]
    rho_fm: float = GENERAL_CONSTANTS["rho_fm"]

    @classmethod
    def from_sex(cls, sex) -> "ModelParameters":
        sex = np.asarray(sex, dtype=float)
        return cls(
            growth=CurveParameters.from_sex(
                MALE_PARAMETERS["growth"], FEMALE_PARAMETERS["growth"], sex
            ),
            growth_impact=CurveParameters.from_sex(
                MALE_PARAMETERS["growth_impact"],
                FEMALE_PARAMETERS["growth_impact"],
                sex,
            ),
            energy_balance_impact=CurveParameters.from_sex(
                MALE_PARAMETERS["energy_balance_impact"],
                FEMALE_PARAMETERS["energy_balance_impact"],
                sex,
            ),
            K=_frozen(blend_by_sex(MALE_PARAMETERS["K"], FEMALE_PARAMETERS["K"], sex)),
            deltamax=_frozen(
                blend_by_sex(
                    MALE_PARAMETERS["deltamax"], FEMALE_PARAMETERS["deltamax"], sex
                )
            ),
        )


def _frozen(values: np.ndarray) -> np.ndarray:
    arr = np.array(values, dtype=float)
    arr.setflags(write=False)
    return arr
