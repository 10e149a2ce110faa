"""
Unit tests for the shared data models

Covers input parsing (sex, BMI category, reference table), cohort validation,
logistic parameter validation and the result containers.
"""

import unittest

import numpy as np

from shared_models import (
    BMICategory,
    ChildCohort,
    InvalidInputError,
    LogisticIntakeParameters,
    ReferenceTable,
    SimulationResults,
    SimulationSnapshot,
    convert_dict_to_cohort,
    convert_dict_to_logistic,
    parse_sex,
)


class TestParsing(unittest.TestCase):
    """Test the flexible encodings accepted for categorical inputs"""

    def test_parse_sex(self):
        self.assertEqual(parse_sex(0), 0)
        self.assertEqual(parse_sex(1), 1)
        self.assertEqual(parse_sex("Male"), 0)
        self.assertEqual(parse_sex("f"), 1)
        self.assertEqual(parse_sex(np.float64(1.0)), 1)

    def test_parse_sex_rejects_unknown(self):
        for value in [2, 0.5, "x", None, True, False]:
            with self.assertRaises(InvalidInputError):
                parse_sex(value)

    def test_parse_bmi_category(self):
        self.assertEqual(BMICategory.parse(1), BMICategory.UNDERWEIGHT)
        self.assertEqual(BMICategory.parse(4), BMICategory.OBESE)
        self.assertEqual(BMICategory.parse("Normal"), BMICategory.NORMAL)
        self.assertEqual(BMICategory.parse("over"), BMICategory.OVERWEIGHT)
        self.assertEqual(BMICategory.parse("3"), BMICategory.OVERWEIGHT)
        self.assertEqual(
            BMICategory.parse(BMICategory.OBESE), BMICategory.OBESE
        )

    def test_parse_bmi_category_rejects_unknown(self):
        for value in [0, 5, 2.5, "chubby", None, float("inf"), True, np.bool_(True)]:
            with self.assertRaises(InvalidInputError):
                BMICategory.parse(value)

    def test_parse_reference_table(self):
        self.assertEqual(ReferenceTable.parse(0), ReferenceTable.MEAN)
        self.assertEqual(ReferenceTable.parse(1), ReferenceTable.MEDIAN)
        self.assertEqual(ReferenceTable.parse("median"), ReferenceTable.MEDIAN)
        with self.assertRaises(InvalidInputError):
            ReferenceTable.parse(2)
        with self.assertRaises(InvalidInputError):
            ReferenceTable.parse("mode")
        with self.assertRaises(InvalidInputError):
            ReferenceTable.parse(True)


class TestChildCohort(unittest.TestCase):
    """Test cohort construction and validation"""

    def make_cohort(self, **overrides):
        values = {
            "age": [6.0, 9.5],
            "sex": [0, "female"],
            "bmi_category": [2, "obese"],
            "fat_free_mass": [17.0, 30.0],
            "fat_mass": [3.5, 14.0],
        }
        values.update(overrides)
        return ChildCohort(**values)

    def test_valid_cohort_is_normalised(self):
        cohort = self.make_cohort()

        self.assertEqual(cohort.size, 2)
        np.testing.assert_array_equal(cohort.sex, [0.0, 1.0])
        self.assertEqual(
            cohort.bmi_category, (BMICategory.NORMAL, BMICategory.OBESE)
        )
        self.assertEqual(cohort.age.dtype, np.float64)

    def test_cohort_arrays_are_read_only(self):
        cohort = self.make_cohort()
        with self.assertRaises(ValueError):
            cohort.fat_mass[0] = 1.0

    def test_cohort_copies_inputs(self):
        ffm = np.array([17.0, 30.0])
        cohort = self.make_cohort(fat_free_mass=ffm)
        ffm[0] = 99.0
        self.assertEqual(cohort.fat_free_mass[0], 17.0)

    def test_length_mismatch(self):
        with self.assertRaises(InvalidInputError):
            self.make_cohort(age=[6.0])

    def test_empty_cohort(self):
        with self.assertRaises(InvalidInputError):
            self.make_cohort(
                age=[], sex=[], bmi_category=[], fat_free_mass=[], fat_mass=[]
            )

    def test_invalid_values(self):
        invalid = [
            {"age": [-1.0, 9.5]},
            {"age": [np.nan, 9.5]},
            {"fat_free_mass": [0.0, 30.0]},
            {"fat_mass": [-0.1, 14.0]},
            {"fat_mass": [3.5, np.inf]},
            {"sex": [0, 2]},
            {"bmi_category": [2, 7]},
            {"bmi_category": [2, np.inf]},
            {"bmi_category": [True, 2]},
            {"sex": [True, 0]},
        ]
        for overrides in invalid:
            with self.subTest(overrides=overrides):
                with self.assertRaises(InvalidInputError):
                    self.make_cohort(**overrides)

    def test_zero_fat_mass_is_allowed(self):
        cohort = self.make_cohort(fat_mass=[0.0, 14.0])
        self.assertEqual(cohort.fat_mass[0], 0.0)

    def test_convert_dict_to_cohort(self):
        cohort = convert_dict_to_cohort(
            [
                {"age": 6, "sex": "m", "bmi_category": "normal", "ffm": 17, "fm": 3.5},
                {"age": 8, "sex": 1, "bmi_category": 3, "ffm": 21.6, "fm": 7.4},
            ]
        )
        self.assertEqual(cohort.size, 2)
        np.testing.assert_allclose(cohort.fat_free_mass, [17.0, 21.6])


class TestLogisticIntakeParameters(unittest.TestCase):
    """Test logistic parameter validation"""

    def test_values_are_stored_as_floats(self):
        params = LogisticIntakeParameters(K=2000, Q=1, A=1500, B=0.3, nu=1, C=1)
        self.assertIsInstance(params.K, float)
        self.assertEqual(params.A, 1500.0)

    def test_nu_must_be_non_zero(self):
        with self.assertRaises(InvalidInputError):
            LogisticIntakeParameters(K=2000, Q=1, A=1500, B=0.3, nu=0, C=1)

    def test_parameters_must_be_finite_numbers(self):
        with self.assertRaises(InvalidInputError):
            LogisticIntakeParameters(K=np.inf, Q=1, A=1500, B=0.3, nu=1, C=1)
        with self.assertRaises(InvalidInputError):
            LogisticIntakeParameters(K="lots", Q=1, A=1500, B=0.3, nu=1, C=1)

    def test_convert_dict_to_logistic_missing_keys(self):
        with self.assertRaises(InvalidInputError):
            convert_dict_to_logistic({"K": 2000, "A": 1500})


class TestResultContainers(unittest.TestCase):
    """Test snapshot and result helpers"""

    def setUp(self):
        ffm = np.array([[17.0, 17.1, 17.2], [20.0, 20.1, 20.3]])
        fm = np.array([[3.5, 3.6, 3.7], [6.0, 6.0, 5.9]])
        self.results = SimulationResults(
            time=np.array([0.0, 1.0, 2.0]),
            age=np.array([[6.0, 6.0 + 1 / 365, 6.0 + 2 / 365]] * 2),
            fat_free_mass=ffm,
            fat_mass=fm,
            body_weight=ffm + fm,
            correct_values=True,
        )

    def test_snapshot_body_weight(self):
        snapshot = SimulationSnapshot(
            step=0,
            time=0.0,
            age=np.array([6.0]),
            fat_free_mass=np.array([17.0]),
            fat_mass=np.array([3.5]),
        )
        np.testing.assert_allclose(snapshot.body_weight, [20.5])

    def test_counts(self):
        self.assertEqual(self.results.n_individuals, 2)
        self.assertEqual(self.results.n_steps, 2)

    def test_to_dict_uses_published_keys(self):
        result = self.results.to_dict()
        self.assertEqual(
            set(result),
            {
                "Time",
                "Age",
                "Fat_Free_Mass",
                "Fat_Mass",
                "Body_Weight",
                "Correct_Values",
                "Model_Type",
            },
        )
        self.assertEqual(result["Model_Type"], "Children")
        self.assertTrue(result["Correct_Values"])

    def test_to_dataframe_long_format(self):
        df = self.results.to_dataframe()

        self.assertEqual(len(df), 6)
        self.assertEqual(list(df["individual"]), [0, 0, 0, 1, 1, 1])
        self.assertEqual(list(df["step"]), [0, 1, 2, 0, 1, 2])
        row = df[(df["individual"] == 1) & (df["step"] == 2)].iloc[0]
        self.assertAlmostEqual(row["body_weight_kg"], 26.2)
        self.assertAlmostEqual(row["time_days"], 2.0)

    def test_results_are_read_only(self):
        for values in [self.results.time, self.results.fat_mass]:
            with self.assertRaises(ValueError):
                values[0] = 0.0
        self.assertIsInstance(self.results.messages, tuple)

    def test_freezing_leaves_caller_arrays_writable(self):
        time = np.array([0.0, 1.0])
        mass = np.array([[17.0, 17.1]])
        SimulationResults(time, mass, mass, mass, mass, True, messages=["stopped"])
        time[0] = 5.0
        self.assertEqual(time[0], 5.0)

    def test_final_state(self):
        final = self.results.final_state()
        np.testing.assert_allclose(final["fat_mass_kg"], [3.7, 5.9])


if __name__ == "__main__":
    unittest.main()
