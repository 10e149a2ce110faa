"""
Energy Balance for the Childhood Weight Model

Implements the energy-expenditure closure and the right-hand side of the
FFM/FM differential equations of Hall et al. (2013):

    dFFM/dt = (p * (I - E) + G) / rho_FFM
    dFM/dt  = ((1 - p) * (I - E) - G) / rho_FM

where p is the partition fraction, I the intake, E the expenditure and G the
energy deposited as growth. Expenditure depends linearly on itself through
the cost of tissue deposition, so it is isolated algebraically rather than
solved iteratively.
"""

from typing import Tuple

import numpy as np

from growth_kernels import (
    delta_coefficient,
    energy_balance_impact,
    growth_dynamic,
    partition_fraction,
    rho_ffm,
)
from intake import IntakeProvider
from model_parameters import ModelParameters
from reference_curves import ReferenceCurveInterpolator
from shared_models import ModelDegeneracyError

# Resting expenditure per kg of tissue (kcal/kg/day)
FFM_MAINTENANCE = 22.4
FM_MAINTENANCE = 4.5

# Cost of tissue deposition (kcal/kg)
FFM_DEPOSITION_COST = 230.0
FM_DEPOSITION_COST = 180.0

# Thermic effect of feeding / adaptive thermogenesis coefficient
BETA_INTAKE = 0.24


class EnergyBalanceModel:
    """
    Energy-balance kernels bound to one cohort.

    Combines the immutable parameter set, the reference curves and the
    intake provider chosen at construction.
    """

    def __init__(
        self,
        params: ModelParameters,
        reference: ReferenceCurveInterpolator,
        intake_provider: IntakeProvider,
    ):
        self.params = params
        self.reference = reference
        self.intake_provider = intake_provider

    def intake(self, t) -> np.ndarray:
        return self.intake_provider.intake(t)

    def intake_reference(self, t) -> np.ndarray:
        """
        Intake that keeps a child on the reference FFM/FM trajectory (kcal/day).
        """
        params = self.params
        eb = energy_balance_impact(t, params)
        ffm_ref, fm_ref = self.reference.reference(t)
        delta = delta_coefficient(t, params)
        growth = growth_dynamic(t, params)
        p = partition_fraction(ffm_ref, fm_ref, params.rho_fm)
        density = rho_ffm(ffm_ref)
        return (
            eb
            + params.K
            + (FFM_MAINTENANCE + delta) * ffm_ref
            + (FM_MAINTENANCE + delta) * fm_ref
            + FFM_DEPOSITION_COST / density * (p * eb + growth)
            + FM_DEPOSITION_COST / params.rho_fm * ((1.0 - p) * eb - growth)
        )

    def expenditure(self, t, fat_free_mass, fat_mass, intake=None) -> np.ndarray:
        """
        Total energy expenditure (kcal/day) at the current composition.

        Args:
            t: Age of each individual (years)
            fat_free_mass: Current FFM (kg)
            fat_mass: Current FM (kg)
            intake: Intake at t; looked up from the provider when None

        Raises:
            ModelDegeneracyError: If the self-consistency denominator is not
                positive
        """
        params = self.params
        if intake is None:
            intake = self.intake(t)
        delta = delta_coefficient(t, params)
        delta_intake = intake - self.intake_reference(t)
        p = partition_fraction(fat_free_mass, fat_mass, params.rho_fm)
        density = rho_ffm(fat_free_mass)
        growth = growth_dynamic(t, params)

        deposition = (
            FFM_DEPOSITION_COST / density * p
            + FM_DEPOSITION_COST / params.rho_fm * (1.0 - p)
        )
        numerator = (
            params.K
            + (FFM_MAINTENANCE + delta) * fat_free_mass
            + (FM_MAINTENANCE + delta) * fat_mass
            + BETA_INTAKE * delta_intake
            + deposition * intake
            + growth
            * (FFM_DEPOSITION_COST / density - FM_DEPOSITION_COST / params.rho_fm)
        )
        denominator = 1.0 + deposition
        if np.any(~(denominator > 0)):
            raise ModelDegeneracyError("Expenditure denominator is not positive")
        return numerator / denominator

    def mass_derivative(
        self, t, fat_free_mass, fat_mass
    ) -> Tuple[np.ndarray, np.ndarray]:
        """
        Rates of change of FFM and FM (kg/day) for every individual.

        Raises:
            ModelDegeneracyError: If the state is non-physical or the
                derivative is not finite
        """
        fat_free_mass = np.asarray(fat_free_mass, dtype=float)
        fat_mass = np.asarray(fat_mass, dtype=float)
        if not (np.all(np.isfinite(fat_free_mass)) and np.all(np.isfinite(fat_mass))):
            raise ModelDegeneracyError("State contains non-finite masses")

        intake = self.intake(t)
        density = rho_ffm(fat_free_mass)
        p = partition_fraction(fat_free_mass, fat_mass, self.params.rho_fm)
        growth = growth_dynamic(t, self.params)
        imbalance = intake - self.expenditure(t, fat_free_mass, fat_mass, intake=intake)

        d_ffm = (p * imbalance + growth) / density
        d_fm = ((1.0 - p) * imbalance - growth) / self.params.rho_fm
        if not (np.all(np.isfinite(d_ffm)) and np.all(np.isfinite(d_fm))):
            raise ModelDegeneracyError("Mass derivative is not finite")
        return d_ffm, d_fm
