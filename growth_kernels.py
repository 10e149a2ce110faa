"""
Growth and Energy-Balance Kernels

Closed-form, time-dependent terms of the childhood model:

- A generic three-term kernel (one exponential decay plus two Gaussian bumps)
  used for the growth rate, the growth impact and the energy-balance impact
- Fat-free mass energy density (Hall et al., 2013)
- Forbes-type energy partition fraction between FFM and FM
- Age-dependent delta coefficient for physical-activity expenditure

All functions are vectorised over the cohort; ``t`` is age in years.
"""

import numpy as np

from model_parameters import CurveParameters, ModelParameters
from shared_models import ModelDegeneracyError

# Forbes constant (kg) used in the partition fraction C = 10.4 * rho_FFM / rho_FM
FORBES_CONSTANT = 10.4


def three_term_curve(t, curve: CurveParameters) -> np.ndarray:
    """
    Evaluate A*exp(-(t-tA)/tauA) + B*exp(-0.5((t-tB)/tauB)^2)
    + D*exp(-0.5((t-tD)/tauD)^2) for each individual.
    """
    t = np.asarray(t, dtype=float)
    return (
        curve.A * np.exp(-(t - curve.tA) / curve.tauA)
        + curve.B * np.exp(-0.5 * ((t - curve.tB) / curve.tauB) ** 2)
        + curve.D * np.exp(-0.5 * ((t - curve.tD) / curve.tauD) ** 2)
    )


def growth_dynamic(t, params: ModelParameters) -> np.ndarray:
    """Energy deposited as growth (kcal/day)"""
    return three_term_curve(t, params.growth)


def growth_impact(t, params: ModelParameters) -> np.ndarray:
    return three_term_curve(t, params.growth_impact)


def energy_balance_impact(t, params: ModelParameters) -> np.ndarray:
    """Energy-balance driving term of the reference intake (kcal/day)"""
    return three_term_curve(t, params.energy_balance_impact)


def rho_ffm(fat_free_mass) -> np.ndarray:
    """Fat-free mass energy density (kcal/kg)"""
    return 4.3 * np.asarray(fat_free_mass, dtype=float) + 837.0


def partition_fraction(fat_free_mass, fat_mass, rho_fm: float) -> np.ndarray:
    """
    Fraction of an energy imbalance assigned to fat-free mass.

    Raises:
        ModelDegeneracyError: If the FFM energy density or the partition
            denominator C + FM is not positive
    """
    density = rho_ffm(fat_free_mass)
    if np.any(~(density > 0)):
        raise ModelDegeneracyError(
            "Fat-free mass energy density is not positive; "
            f"min FFM = {np.nanmin(fat_free_mass):.3f} kg"
        )
    C = FORBES_CONSTANT * density / rho_fm
    denominator = C + np.asarray(fat_mass, dtype=float)
    if np.any(~(denominator > 0)):
        raise ModelDegeneracyError(
            "Partition fraction denominator C + FM is not positive; "
            f"min FM = {np.nanmin(fat_mass):.3f} kg"
        )
    return C / denominator


def delta_coefficient(t, params: ModelParameters) -> np.ndarray:
    """Logistic blend from deltamax (young) to deltamin (older children)"""
    t = np.asarray(t, dtype=float)
    return params.deltamin + (params.deltamax - params.deltamin) / (
        1.0 + (t / params.P) ** params.h
    )
