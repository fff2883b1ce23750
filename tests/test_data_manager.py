import tempfile
import unittest
from pathlib import Path

import numpy as np
import pandas as pd

from daily_asmr.core.pipeline import run_pipeline
from daily_asmr.data_manager import (
    DataManager,
    DeathObservation,
    PopulationObservation,
    observations_to_frame,
)
from daily_asmr.utils.validation import DataValidationError


class TestDataManager(unittest.TestCase):
    """
    Test cases for loading observations and saving results.
    """

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.dir = Path(self.tmp.name)

        self.deaths_path = self.dir / "deaths.csv"
        pd.DataFrame({
            "Week_End": ["2020-01-05", "2020-01-12", "2020-01-05", "2020-01-12"],
            "Age_Group": ["0-64", "0-64", "65+", "65+"],
            "Deaths": [70, 84, 140, 147],
        }).to_csv(self.deaths_path, index=False)

        self.population_path = self.dir / "population.csv"
        pd.DataFrame({
            "year": [2019, 2020, 2019, 2020],
            "quarter": [4, 1, 4, 1],
            "age_group": ["0-64", "0-64", "65+", "65+"],
            "population": [90000, 91000, 10000, 10100],
        }).to_csv(self.population_path, index=False)

        self.manager = DataManager(self.deaths_path, self.population_path)

    def tearDown(self):
        self.tmp.cleanup()

    def test_death_observations_anchor_and_average(self):
        deaths = self.manager.death_observations()
        self.assertEqual(list(deaths.columns), ["date", "category", "value"])
        self.assertEqual(deaths["date"].iloc[0], pd.Timestamp("2020-01-01"))
        np.testing.assert_allclose(deaths["value"], [10.0, 12.0, 20.0, 21.0])

    def test_death_observations_with_midpoints(self):
        path = self.dir / "midpoints.csv"
        pd.DataFrame({
            "week_midpoint": ["2020-01-01"],
            "age_category": ["all"],
            "daily_average_deaths": [12.5],
        }).to_csv(path, index=False)
        deaths = DataManager(path, self.population_path).death_observations()
        self.assertEqual(deaths["date"].iloc[0], pd.Timestamp("2020-01-01"))
        self.assertEqual(deaths["value"].iloc[0], 12.5)

    def test_population_observations_anchor_quarter_end(self):
        population = self.manager.population_observations()
        self.assertEqual(
            sorted(population["date"].drop_duplicates()),
            [pd.Timestamp("2019-12-31"), pd.Timestamp("2020-03-31")],
        )
        self.assertEqual(population["value"].sum(), 201100)

    def test_missing_columns_rejected(self):
        path = self.dir / "bad.csv"
        pd.DataFrame({"when": ["2020-01-05"], "age": ["all"], "deaths": [7]}).to_csv(path, index=False)
        with self.assertRaises(DataValidationError):
            DataManager(path, self.population_path).death_observations()

    def test_unsupported_file_type(self):
        path = self.dir / "deaths.json"
        path.write_text("{}")
        with self.assertRaises(DataValidationError):
            DataManager(path, self.population_path).raw_data

    def test_legacy_excel_format_rejected(self):
        path = self.dir / "deaths.xls"
        path.write_bytes(b"")
        with self.assertRaises(DataValidationError):
            DataManager(path, self.population_path).raw_data

    def test_excel_workbook_with_both_sheets(self):
        path = self.dir / "inputs.xlsx"
        with pd.ExcelWriter(path) as writer:
            pd.read_csv(self.deaths_path).to_excel(writer, sheet_name="Deaths", index=False)
            pd.read_csv(self.population_path).to_excel(writer, sheet_name="Population", index=False)
        manager = DataManager(path, path)
        self.assertEqual(len(manager.death_observations()), 4)
        self.assertEqual(len(manager.population_observations()), 4)

    def test_save_results_csv(self):
        result = run_pipeline(self.manager.death_observations(), self.manager.population_observations())
        paths = self.manager.save_results(result, self.dir / "out", fmt="csv")

        self.assertEqual(set(paths), {"asm_components", "actual_vs_expected", "failures"})
        for path in paths.values():
            self.assertTrue(path.exists())
        saved = pd.read_csv(paths["actual_vs_expected"])
        self.assertEqual(len(saved), len(result.actual_vs_expected))

    def test_save_results_xlsx(self):
        result = run_pipeline(self.manager.death_observations(), self.manager.population_observations())
        paths = self.manager.save_results(result, self.dir / "out", fmt="xlsx")
        workbook = pd.ExcelFile(paths["asm_components"])
        self.assertEqual(workbook.sheet_names, ["asm_components", "actual_vs_expected", "failures"])

    def test_save_results_unknown_format(self):
        result = run_pipeline(self.manager.death_observations(), self.manager.population_observations())
        with self.assertRaises(ValueError):
            self.manager.save_results(result, self.dir / "out", fmt="parquet")


class TestObservationRecords(unittest.TestCase):
    """Typed records convert to canonical frames."""

    def test_records_to_frame(self):
        frame = observations_to_frame([
            DeathObservation(pd.Timestamp("2020-01-01"), "0-64", 10.0),
            DeathObservation(pd.Timestamp("2020-01-08"), "0-64", 12.0),
        ])
        self.assertEqual(list(frame.columns), ["date", "category", "value"])
        self.assertEqual(frame["value"].tolist(), [10.0, 12.0])

        frame = observations_to_frame([PopulationObservation(pd.Timestamp("2019-12-31"), "0-64", 9e4)])
        self.assertEqual(frame["date"].iloc[0], pd.Timestamp("2019-12-31"))


if __name__ == '__main__':
    unittest.main()
