"""
Test suite for the childhood weight RK4 engine

Covers construction, the RK4 step, full runs with tabulated and logistic
intake, early termination and the streaming interface.
"""

import unittest
from unittest.mock import patch

import numpy as np

from child_model import ChildModel
from intake import constant_intake_matrix
from shared_models import (
    ImplausibleStateError,
    InvalidInputError,
    ModelDegeneracyError,
)

LOGISTIC = {"K": 2000.0, "Q": 1.0, "A": 1500.0, "B": 0.3, "nu": 1.0, "C": 1.0}


def tabulated_model(days, kcal=1800.0, dt=1.0, **kwargs):
    """Single 6-year-old boy of normal BMI on a constant tabulated intake"""
    n_steps = int(days / dt)
    return ChildModel.from_intake_matrix(
        age=[6.0],
        sex=[0],
        bmi_category=[2],
        fat_free_mass=[17.0],
        fat_mass=[3.5],
        intake_matrix=constant_intake_matrix(kcal, n_steps, 1),
        dt=dt,
        **kwargs,
    )


def logistic_model(dt=1.0, **kwargs):
    return ChildModel.from_logistic_curve(
        age=[6.0, 9.0],
        sex=[0, 1],
        bmi_category=["normal", "overweight"],
        fat_free_mass=[17.0, 26.0],
        fat_mass=[3.5, 8.5],
        dt=dt,
        **LOGISTIC,
        **kwargs,
    )


class TestConstruction(unittest.TestCase):
    """Test model construction and input validation"""

    def test_invalid_time_step(self):
        for dt in [0.0, -1.0, np.nan, "daily"]:
            with self.subTest(dt=dt):
                with self.assertRaises(InvalidInputError):
                    logistic_model(dt=dt)

    def test_invalid_logistic_parameters(self):
        params = dict(LOGISTIC, nu=0.0)
        with self.assertRaises(InvalidInputError):
            ChildModel.from_logistic_curve([6.0], [0], [2], [17.0], [3.5], **params)

    def test_intake_matrix_column_mismatch(self):
        with self.assertRaises(InvalidInputError):
            ChildModel.from_intake_matrix(
                age=[6.0, 7.0],
                sex=[0, 1],
                bmi_category=[2, 2],
                fat_free_mass=[17.0, 18.0],
                fat_mass=[3.5, 4.0],
                intake_matrix=np.full((10, 3), 1800.0),
            )

    def test_unknown_reference_table(self):
        with self.assertRaises(InvalidInputError):
            logistic_model(reference_values=3)

    def test_invalid_total_days(self):
        model = logistic_model()
        for days in [0, -5, np.nan, "a year"]:
            with self.subTest(days=days):
                with self.assertRaises(InvalidInputError):
                    model.simulate(days)

    def test_horizon_longer_than_intake_matrix(self):
        model = tabulated_model(10)
        with self.assertRaises(InvalidInputError):
            model.simulate(11)
        self.assertEqual(model.simulate(10).n_steps, 10)


class TestRK4Step(unittest.TestCase):
    """Test the integration scheme in isolation"""

    def test_constant_derivative_is_integrated_exactly(self):
        model = tabulated_model(10, dt=2.0)
        ones = np.ones(1)
        with patch.object(
            model, "mass_derivative", return_value=(ones, 2.0 * ones)
        ) as derivative:
            ffm, fm = model.rk4_step(np.array([6.0]), np.array([17.0]), np.array([3.5]))

        np.testing.assert_allclose(ffm, [19.0])
        np.testing.assert_allclose(fm, [7.5])

        ages = [call.args[0][0] for call in derivative.call_args_list]
        np.testing.assert_allclose(
            ages, [6.0, 6.0 + 1 / 365, 6.0 + 1 / 365, 6.0 + 2 / 365]
        )

    def test_intermediate_stages_are_scaled_by_dt(self):
        model = tabulated_model(10, dt=2.0)
        states = []

        def derivative(t, ffm, fm):
            states.append(ffm.copy())
            return np.ones(1), np.zeros(1)

        with patch.object(model, "mass_derivative", side_effect=derivative):
            model.rk4_step(np.array([6.0]), np.array([17.0]), np.array([3.5]))

        np.testing.assert_allclose(np.concatenate(states), [17.0, 18.0, 18.0, 19.0])


class TestSimulation(unittest.TestCase):
    """Test complete runs"""

    def test_ten_year_constant_intake(self):
        model = tabulated_model(3650, check_values=True)
        results = model.simulate(3650)

        self.assertTrue(results.correct_values)
        self.assertEqual(results.messages, ())
        self.assertEqual(results.model_type, "Children")
        self.assertEqual(results.time.shape, (3651,))
        self.assertEqual(results.fat_free_mass.shape, (1, 3651))
        self.assertEqual(results.time[-1], 3650.0)
        self.assertAlmostEqual(results.age[0, -1], 16.0, places=6)

        for values in [results.fat_free_mass, results.fat_mass]:
            self.assertTrue(np.all(np.isfinite(values)))
            self.assertTrue(np.all(values > 0))

        daily_change = np.abs(np.diff(results.body_weight[0]))
        self.assertTrue(np.all(daily_change <= 1.0))
        self.assertGreater(results.body_weight[0, -1], results.body_weight[0, 0])

    def test_initial_state_is_recorded(self):
        results = logistic_model().simulate(30)

        self.assertEqual(results.time[0], 0.0)
        np.testing.assert_array_equal(results.age[:, 0], [6.0, 9.0])
        np.testing.assert_array_equal(results.fat_free_mass[:, 0], [17.0, 26.0])
        np.testing.assert_array_equal(results.fat_mass[:, 0], [3.5, 8.5])

    def test_body_weight_is_sum_of_compartments(self):
        results = logistic_model().simulate(100)
        np.testing.assert_array_equal(
            results.body_weight, results.fat_free_mass + results.fat_mass
        )

    def test_returned_trajectories_are_read_only(self):
        results = logistic_model().simulate(10)
        with self.assertRaises(ValueError):
            results.body_weight[0, 0] = 0.0
        self.assertEqual(results.messages, ())

    def test_horizon_shorter_than_one_step(self):
        results = logistic_model(dt=1.0).simulate(0.5)

        self.assertTrue(results.correct_values)
        self.assertEqual(results.n_steps, 0)
        self.assertEqual(results.body_weight.shape, (2, 1))

    def test_partial_final_step_is_dropped(self):
        results = logistic_model(dt=2.0).simulate(9)
        self.assertEqual(results.n_steps, 4)
        self.assertEqual(results.time[-1], 8.0)

    def test_halving_time_step_converges(self):
        coarse = logistic_model(dt=1.0).simulate(365)
        fine = logistic_model(dt=0.5).simulate(365)

        self.assertEqual(fine.n_steps, 730)
        np.testing.assert_allclose(
            coarse.fat_free_mass[:, -1], fine.fat_free_mass[:, -1], atol=1e-3
        )
        np.testing.assert_allclose(
            coarse.fat_mass[:, -1], fine.fat_mass[:, -1], atol=1e-3
        )

    def test_individuals_do_not_interact(self):
        together = logistic_model().simulate(200)
        alone = ChildModel.from_logistic_curve(
            [9.0], [1], ["overweight"], [26.0], [8.5], **LOGISTIC
        ).simulate(200)

        np.testing.assert_allclose(together.fat_mass[1], alone.fat_mass[0])
        np.testing.assert_allclose(
            together.fat_free_mass[1], alone.fat_free_mass[0]
        )

    def test_reference_table_changes_trajectory(self):
        mean = logistic_model(reference_values="mean").simulate(60)
        median = logistic_model(reference_values="median").simulate(60)
        self.assertFalse(np.allclose(mean.fat_mass, median.fat_mass))


class TestEarlyTermination(unittest.TestCase):
    """Test partial trajectories when the run cannot continue"""

    def test_degeneracy_returns_completed_steps(self):
        model = logistic_model()
        real_derivative = model.mass_derivative
        calls = []

        def failing_derivative(t, ffm, fm):
            calls.append(t)
            # Four evaluations per step: fail during the third step
            if len(calls) > 8:
                raise ModelDegeneracyError("partition denominator is not positive")
            return real_derivative(t, ffm, fm)

        with patch.object(model, "mass_derivative", side_effect=failing_derivative):
            with self.assertLogs("child_model", level="WARNING") as logs:
                results = model.simulate(30)

        self.assertFalse(results.correct_values)
        self.assertEqual(results.n_steps, 2)
        self.assertEqual(results.time.tolist(), [0.0, 1.0, 2.0])
        self.assertIn("partition denominator", results.messages[0])
        self.assertTrue(np.all(np.isfinite(results.body_weight)))
        self.assertIn("stopped after 2/30 steps", logs.output[0])

    def test_implausible_change_stops_checked_run(self):
        model = tabulated_model(10, kcal=100000.0, check_values=True)
        results = model.simulate(10)

        self.assertFalse(results.correct_values)
        self.assertEqual(results.n_steps, 0)
        self.assertIn("kg/day", results.messages[0])

    def test_unchecked_run_ignores_plausibility_bounds(self):
        model = tabulated_model(3, kcal=100000.0)
        results = model.simulate(3)

        self.assertTrue(results.correct_values)
        self.assertEqual(results.n_steps, 3)


class TestIterSnapshots(unittest.TestCase):
    """Test the streaming interface"""

    def test_yields_initial_state_and_each_step(self):
        snapshots = list(logistic_model().iter_snapshots(5))

        self.assertEqual([s.step for s in snapshots], [0, 1, 2, 3, 4, 5])
        self.assertEqual(snapshots[-1].time, 5.0)

    def test_matches_simulate(self):
        model = logistic_model()
        results = model.simulate(20)
        last = list(model.iter_snapshots(20))[-1]
        np.testing.assert_allclose(last.body_weight, results.body_weight[:, -1])

    def test_raises_after_last_good_snapshot(self):
        model = tabulated_model(10, kcal=100000.0, check_values=True)
        received = []
        with self.assertRaises(ImplausibleStateError):
            for snapshot in model.iter_snapshots(10):
                received.append(snapshot)
        self.assertEqual(len(received), 1)


if __name__ == "__main__":
    unittest.main()
