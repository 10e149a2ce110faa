"""
Population Reference Curves for Childhood Body Composition

Reference fat-free mass and fat mass by age (2-18 years), sex and BMI
category. Ages 2-5 come from Fomon et al. (1982) and are BMI independent;
ages 6-18 are category-specific values derived from NHANES body composition
data (Ellis et al., 2000; Haschke, 1989). Two tables are available, the
population mean and the population median.

Each row below holds, for one integer age:
(underweight male, underweight female, normal male, normal female,
 overweight male, overweight female, obese male, obese female)
"""

import logging
from typing import Sequence, Tuple

import numpy as np

from shared_models import BMICategory, InvalidInputError, ReferenceTable

logger = logging.getLogger(__name__)

MIN_REFERENCE_AGE = 2
MAX_REFERENCE_AGE = 18
REFERENCE_AGES = np.arange(MIN_REFERENCE_AGE, MAX_REFERENCE_AGE + 1)

# Column offset of each category inside a category-specific row
CATEGORY_COLUMNS = {
    BMICategory.UNDERWEIGHT: 0,
    BMICategory.NORMAL: 2,
    BMICategory.OVERWEIGHT: 4,
    BMICategory.OBESE: 6,
}

# Ages 2-5: (male, female), identical for all BMI categories
EARLY_FFM = {
    2: (10.134, 9.477),
    3: (12.099, 11.494),
    4: (14.0, 13.2),
    5: (15.72, 14.86),
}

EARLY_FM = {
    2: (2.456, 2.433),
    3: (2.576, 2.606),
    4: (2.7, 2.8),
    5: (3.66, 4.47),
}

MEAN_FFM = {
    6: (12.7942, 13.7957, 17.0238, 15.2337, 19.3070, 17.7866, 22.2248, 21.2170),
    7: (17.8106, 18.4835, 19.0775, 17.5198, 20.3344, 18.9406, 23.1765, 22.2733),
    8: (20.3597, 18.5363, 20.4774, 19.6317, 22.1128, 21.6080, 25.8151, 25.1641),
    9: (19.3668, 17.0314, 22.3768, 21.3680, 26.7714, 26.1791, 31.3143, 30.1484),
    10: (20.3271, 23.7546, 26.2985, 26.4307, 29.6861, 32.5531, 36.6630, 34.1787),
    11: (25.5568, 21.2704, 27.4862, 28.8484, 32.8810, 34.9192, 39.1109, 39.0934),
    12: (27.9345, 27.7570, 31.5756, 33.3547, 36.9403, 39.1253, 44.0610, 43.9033),
    13: (30.1592, 26.9376, 35.7001, 36.2985, 43.5796, 41.3549, 48.3233, 47.0629),
    14: (21.2736, 29.2222, 40.4352, 37.1184, 47.0679, 44.8448, 56.7861, 47.6488),
    15: (36.1157, 34.1242, 43.2381, 40.0629, 50.7450, 45.9011, 58.3804, 50.1206),
    16: (40.5041, 38.1473, 44.8314, 40.0155, 54.5065, 44.8730, 60.6145, 51.3464),
    17: (40.5722, 36.5821, 48.7226, 41.6682, 57.3895, 48.4993, 60.3961, 53.4969),
    18: (42.7400, 31.2639, 49.7806, 41.8400, 58.2319, 47.9007, 61.8395, 51.3603),
}

MEAN_FM = {
    6: (1.7764, 2.5951, 3.4540, 3.8303, 4.8055, 5.7014, 7.9672, 9.3883),
    7: (2.3398, 2.8164, 3.5859, 4.2782, 5.4625, 6.5960, 8.4350, 10.4148),
    8: (3.2767, 3.0828, 4.1138, 5.2226, 5.5455, 7.3667, 9.3266, 12.0550),
    9: (2.3902, 2.6538, 4.1705, 5.0218, 6.6958, 8.6945, 11.5896, 14.1436),
    10: (2.4479, 3.2454, 4.9982, 5.4190, 7.9746, 9.1949, 16.3177, 13.9706),
    11: (3.3203, 2.6392, 5.4113, 6.0374, 8.9515, 10.9333, 16.9403, 18.6393),
    12: (3.4905, 3.7443, 6.3199, 7.1416, 10.7410, 12.6422, 20.7120, 23.3028),
    13: (3.7085, 3.2124, 7.0187, 8.4339, 13.6491, 14.2744, 23.7980, 24.5466),
    14: (1.9970, 3.9076, 8.1211, 8.7344, 15.2322, 16.2757, 30.4881, 28.6411),
    15: (4.2798, 3.8050, 8.5973, 9.8169, 16.8229, 17.9753, 32.0464, 29.0900),
    16: (4.6019, 4.5292, 9.1734, 9.8278, 19.3477, 16.1585, 32.1754, 30.8017),
    17: (4.2804, 4.3746, 10.0719, 9.8915, 20.2305, 18.4581, 30.7093, 35.2589),
    18: (4.9325, 3.3333, 11.1103, 9.3370, 21.0289, 18.4491, 36.5275, 30.2936),
}

# Median tables differ from the mean ones only at ages 6-9 and 16
MEDIAN_FFM = {
    **MEAN_FFM,
    6: (14.4641, 13.8627, 17.1430, 15.1282, 19.2280, 17.6859, 21.9501, 20.4992),
    7: (16.3729, 16.6347, 18.2285, 17.2507, 21.7099, 20.0341, 24.9713, 23.4162),
    8: (18.0019, 17.2583, 19.9148, 19.4286, 24.6404, 22.1758, 27.4774, 26.8346),
    9: (19.2548, 17.5150, 21.9058, 21.2721, 26.5243, 25.6952, 30.8636, 29.2900),
    16: (41.8846, 38.1473, 44.8314, 40.0155, 54.5065, 44.8730, 60.6145, 51.3464),
}

MEDIAN_FM = {
    **MEAN_FM,
    6: (2.0359, 2.5660, 3.4642, 3.7042, 4.6220, 5.6735, 7.1058, 8.7339),
    7: (2.3771, 2.9560, 3.6030, 4.1865, 5.5651, 6.4374, 8.0501, 9.3100),
    8: (2.1231, 3.0917, 3.6729, 4.8531, 5.8971, 7.0172, 8.9372, 11.5469),
    9: (2.4068, 2.9027, 4.0597, 4.8707, 6.5720, 8.7112, 10.8084, 12.7559),
    16: (4.6585, 4.5292, 9.1734, 9.8278, 19.3477, 16.1585, 32.1754, 30.8017),
}

REFERENCE_TABLES = {
    ReferenceTable.MEAN: {"ffm": MEAN_FFM, "fm": MEAN_FM},
    ReferenceTable.MEDIAN: {"ffm": MEDIAN_FFM, "fm": MEDIAN_FM},
}

EARLY_TABLES = {"ffm": EARLY_FFM, "fm": EARLY_FM}


def reference_value(
    age: int, sex: float, category: BMICategory, table: ReferenceTable, tissue: str
) -> float:
    """
    Sex-blended table value for one integer age.

    Args:
        age: Integer age between 2 and 18
        sex: 0 for male, 1 for female
        category: BMI category of the individual
        table: Mean or median reference table
        tissue: 'ffm' or 'fm'
    """
    if age in EARLY_TABLES[tissue]:
        male, female = EARLY_TABLES[tissue][age]
    else:
        row = REFERENCE_TABLES[table][tissue][age]
        column = CATEGORY_COLUMNS[category]
        male, female = row[column], row[column + 1]
    return (1.0 - sex) * male + sex * female


class ReferenceCurveInterpolator:
    """
    Piecewise-linear reference FFM/FM lookup for a fixed cohort.

    The per-individual rows (17 ages x N individuals) are resolved once at
    construction; evaluation is a vectorised index-and-blend over the cohort.
    """

    def __init__(
        self,
        sex: Sequence[float],
        bmi_category: Sequence[BMICategory],
        table: ReferenceTable = ReferenceTable.MEAN,
    ):
        sex = np.asarray(sex, dtype=float)
        if len(sex) != len(bmi_category):
            raise InvalidInputError(
                "sex and bmi_category must have the same length "
                f"({len(sex)} != {len(bmi_category)})"
            )
        self.table = ReferenceTable.parse(table)
        self.n_individuals = len(sex)
        self.ffm_rows = self._build_rows(sex, bmi_category, "ffm")
        self.fm_rows = self._build_rows(sex, bmi_category, "fm")

        logger.debug(
            f"Built {self.table.name.lower()} reference rows for "
            f"{self.n_individuals} individuals"
        )

    def _build_rows(self, sex, bmi_category, tissue: str) -> np.ndarray:
        rows = np.empty((len(REFERENCE_AGES), len(sex)))
        for j, (s, category) in enumerate(zip(sex, bmi_category)):
            for i, age in enumerate(REFERENCE_AGES):
                rows[i, j] = reference_value(int(age), s, category, self.table, tissue)
        rows.setflags(write=False)
        return rows

    def _interpolate(self, rows: np.ndarray, t) -> np.ndarray:
        t = np.asarray(t, dtype=float)
        if t.shape != (self.n_individuals,):
            raise InvalidInputError(
                f"Expected {self.n_individuals} ages, got shape {t.shape}"
            )
        whole = np.floor(t)
        lower = np.clip(whole, MIN_REFERENCE_AGE, MAX_REFERENCE_AGE).astype(int)
        lower -= MIN_REFERENCE_AGE
        upper = np.minimum(lower + 1, len(REFERENCE_AGES) - 1)
        # Flat outside [2, 18]; below 2 the age-2 row is used without extrapolating
        # toward age 3
        fraction = np.where(
            (t < MIN_REFERENCE_AGE) | (t >= MAX_REFERENCE_AGE), 0.0, t - whole
        )
        columns = np.arange(self.n_individuals)
        low_values = rows[lower, columns]
        high_values = rows[upper, columns]
        return low_values + fraction * (high_values - low_values)

    def fat_free_mass(self, t) -> np.ndarray:
        """Reference fat-free mass (kg) at age t (years)"""
        return self._interpolate(self.ffm_rows, t)

    def fat_mass(self, t) -> np.ndarray:
        """Reference fat mass (kg) at age t (years)"""
        return self._interpolate(self.fm_rows, t)

    def reference(self, t) -> Tuple[np.ndarray, np.ndarray]:
        return self.fat_free_mass(t), self.fat_mass(t)
