"""Tests for the seasonal regression engine."""

import pickle
import unittest
from unittest.mock import patch
from datetime import date

import numpy as np
import pandas as pd

from daily_asmr.core.seasonal_regression import (
    RegressionSettings,
    baseline_points,
    build_lookup,
    candidate_dates,
    expected_series,
    fit_expected,
)
from daily_asmr.utils.validation import (
    DegenerateRegressionError,
    FailureReport,
    DEGENERATE_REGRESSION,
)


def linear_aggregate(start: str, end: str, intercept_day: date, level: float, per_day: float) -> pd.DataFrame:
    days = pd.date_range(start, end, freq="D")
    offsets = np.array([(d.date() - intercept_day).days for d in days], dtype=float)
    return pd.DataFrame({"date": days, "asm": level + per_day * offsets})


class TestCandidateDates(unittest.TestCase):
    """Test cases for season-matched candidate days."""

    def test_cardinality_and_symmetry(self):
        target = date(2020, 7, 1)
        candidates = candidate_dates(target)
        self.assertEqual(len(candidates), 25)

        offsets = [(c - target).days for c in candidates]
        self.assertEqual(offsets, [-o for o in reversed(offsets)])
        self.assertEqual(offsets[12], 0)

    def test_offsets_follow_rounded_quarter_day_step(self):
        offsets = [(c - date(2020, 7, 1)).days for c in candidate_dates(date(2020, 7, 1))]
        self.assertEqual(offsets[13], 365)
        self.assertEqual(offsets[16], 1461)
        self.assertEqual(offsets[24], round(365.25 * 12))

    def test_drift_bounded_over_whole_span(self):
        target = date(2020, 3, 15)
        for candidate in candidate_dates(target):
            same_day = date(candidate.year, 3, 15)
            self.assertLessEqual(abs((candidate - same_day).days), 1)

    def test_accepts_timestamps(self):
        self.assertEqual(candidate_dates(pd.Timestamp("2020-07-01"), anchor_offset_years=1),
                         candidate_dates(date(2020, 7, 1), anchor_offset_years=1))


class TestFitExpected(unittest.TestCase):
    """Test cases for single-day trend fits."""

    def setUp(self):
        self.settings = RegressionSettings()
        self.x1, self.x2, self.x3 = date(2017, 7, 1), date(2018, 7, 1), date(2019, 7, 1)
        self.lookup = {
            self.x1.toordinal(): 1000.0,
            self.x2.toordinal(): 1010.0,
            self.x3.toordinal(): 1020.0,
        }

    def test_colinear_points_give_exact_rate(self):
        record = fit_expected(self.x3, self.lookup, self.settings)
        self.assertEqual(record.n_points, 3)
        self.assertAlmostEqual(record.slope, 10.0 / 365.0, places=12)
        self.assertAlmostEqual(record.expected_value, 1020.0, places=6)

    def test_line_extends_to_future_dates(self):
        record = fit_expected(self.x3, self.lookup, self.settings)
        future = date(2022, 1, 15)
        true_value = 1000.0 + (future - self.x1).days * 10.0 / 365.0
        self.assertAlmostEqual(record.intercept + record.slope * future.toordinal(), true_value, places=5)

    def test_expected_value_is_line_at_target(self):
        target = date(2021, 7, 1)
        record = fit_expected(target, self.lookup, self.settings)
        self.assertAlmostEqual(
            record.expected_value, record.intercept + record.slope * target.toordinal(), places=5
        )

    def test_only_baseline_years_used(self):
        lookup = dict(self.lookup)
        lookup[date(2020, 7, 1).toordinal()] = 5000.0
        x, _ = baseline_points(date(2021, 7, 1), lookup, self.settings)
        self.assertTrue(all(2013 <= date.fromordinal(int(o)).year <= 2019 for o in x))
        self.assertNotIn(float(date(2020, 7, 1).toordinal()), x.tolist())

    def test_baseline_excluding_all_candidates_is_degenerate(self):
        with self.assertRaises(DegenerateRegressionError) as ctx:
            fit_expected(date(1950, 6, 1), self.lookup, self.settings)
        self.assertEqual(ctx.exception.n_points, 0)

    def test_single_point_is_degenerate(self):
        lookup = {self.x1.toordinal(): 1000.0}
        with self.assertRaises(DegenerateRegressionError) as ctx:
            fit_expected(self.x3, lookup, self.settings)
        self.assertEqual(ctx.exception.n_points, 1)

    def test_degenerate_error_survives_pickling(self):
        error = DegenerateRegressionError(date(2020, 1, 1), 1)
        restored = pickle.loads(pickle.dumps(error))
        self.assertEqual(restored.n_points, 1)
        self.assertEqual(str(restored), str(error))


class TestExpectedSeries(unittest.TestCase):
    """Test cases for running the engine over a whole series."""

    def setUp(self):
        self.origin = date(2013, 1, 1)
        self.aggregate = linear_aggregate("2013-01-01", "2021-12-31", self.origin, 500.0, 0.05)

    def _true_values(self, dates):
        return np.array([500.0 + 0.05 * (d.date() - self.origin).days for d in dates])

    def test_linear_series_reproduced_everywhere(self):
        report = FailureReport()
        expected = expected_series(self.aggregate, RegressionSettings(), report)

        self.assertEqual(len(expected), len(self.aggregate))
        self.assertEqual(len(report), 0)
        np.testing.assert_allclose(
            expected["expected_asm"], self._true_values(expected["date"]), rtol=1e-9
        )
        self.assertTrue(expected["baseline_points"].between(2, 8).all())

    def test_degenerate_days_reported_not_dropped(self):
        settings = RegressionSettings(baseline_start_year=1990, baseline_end_year=1995)
        report = FailureReport()
        expected = expected_series(self.aggregate.iloc[:10], settings, report)

        self.assertEqual(len(expected), 10)
        self.assertTrue(expected["expected_asm"].isna().all())
        self.assertEqual(report.count(DEGENERATE_REGRESSION), 10)

    def test_process_pool_matches_sequential(self):
        subset = self.aggregate.iloc[::30].reset_index(drop=True)
        sequential = expected_series(subset, RegressionSettings())
        parallel = expected_series(subset, RegressionSettings(), workers=2, chunk_size=16)
        pd.testing.assert_frame_equal(sequential, parallel)

    def test_pool_receives_lookup_once_per_worker(self):
        calls = {}

        class InlineExecutor:
            def __init__(self, max_workers, initializer, initargs):
                calls["initargs"] = initargs
                initializer(*initargs)

            def __enter__(self):
                return self

            def __exit__(self, *exc):
                return False

            def map(self, fn, batches):
                calls["batches"] = list(batches)
                return [fn(batch) for batch in calls["batches"]]

        subset = self.aggregate.iloc[::30].reset_index(drop=True)
        with patch("daily_asmr.core.seasonal_regression.ProcessPoolExecutor", InlineExecutor):
            parallel = expected_series(subset, RegressionSettings(), workers=2, chunk_size=16)

        lookup, settings = calls["initargs"]
        self.assertEqual(lookup, build_lookup(subset))
        self.assertEqual(settings, RegressionSettings())
        # tasks carry only the target days
        self.assertTrue(all(isinstance(d, date) for batch in calls["batches"] for d in batch))
        pd.testing.assert_frame_equal(parallel, expected_series(subset, RegressionSettings()))

    def test_lookup_skips_missing_values(self):
        aggregate = self.aggregate.iloc[:3].copy()
        aggregate.loc[1, "asm"] = np.nan
        lookup = build_lookup(aggregate)
        self.assertEqual(len(lookup), 2)
        self.assertNotIn(date(2013, 1, 2).toordinal(), lookup)


if __name__ == '__main__':
    unittest.main()
