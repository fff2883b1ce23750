import pandas as pd
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union
import logging

from .core.anchors import quarter_anchor, week_midpoint, weekly_total_to_daily
from .core.pipeline import PipelineResult
from .utils.validation import DataValidationError, validate_observations


# Set up logging
logger = logging.getLogger(__name__)

CATEGORY_ALIASES = ["category", "age_category", "age_group", "age"]


@dataclass(frozen=True)
class DeathObservation:
    """Average deaths per day for one age category, anchored at the week midpoint."""
    week_midpoint: pd.Timestamp
    age_category: str
    daily_average_deaths: float


@dataclass(frozen=True)
class PopulationObservation:
    """Population of one age category at a quarter end."""
    quarter_end: pd.Timestamp
    age_category: str
    population_count: float


def observations_to_frame(
    records: Iterable[Union[DeathObservation, PopulationObservation]]
) -> pd.DataFrame:
    """Convert typed observation records to the canonical date/category/value frame."""
    rows = []
    for record in records:
        date_field, category_field, value_field = (f.name for f in fields(record))
        rows.append({
            "date": pd.Timestamp(getattr(record, date_field)).normalize(),
            "category": getattr(record, category_field),
            "value": float(getattr(record, value_field)),
        })
    return pd.DataFrame(rows, columns=["date", "category", "value"])


def _read_table(path: Path, sheet_name: Optional[str] = None) -> pd.DataFrame:
    suffix = path.suffix.lower()
    if suffix == ".csv":
        df = pd.read_csv(path)
    elif suffix == ".xlsx":
        df = pd.read_excel(path, sheet_name=sheet_name or 0)
    else:
        raise DataValidationError(f"Unsupported file type for {path}: expected .csv or .xlsx")
    df.columns = [str(c).strip().lower() for c in df.columns]
    return df


def _pick(df: pd.DataFrame, candidates: List[str], what: str, source: Path) -> str:
    for name in candidates:
        if name in df.columns:
            return name
    raise DataValidationError(
        f"{source}: no {what} column found (expected one of {candidates}, got {df.columns.tolist()})"
    )


class DataManager:
    """
    Loads periodic observations and persists pipeline outputs.

    Deaths files carry one row per week and age category, population files
    one row per quarter and age category. Both are converted to the
    canonical ``date, category, value`` frames the pipeline consumes.
    """

    def __init__(self, deaths_path: Union[str, Path] = "data/deaths.csv",
                 population_path: Union[str, Path] = "data/population.csv"):
        self.__raw_data = None
        self.deaths_path = Path(deaths_path)
        self.population_path = Path(population_path)

    @property
    def raw_data(self) -> Dict[str, pd.DataFrame]:
        """
        Load raw tables if not already loaded.

        Returns:
            Dict containing 'deaths' and 'population' DataFrames
        """
        if self.__raw_data is None:
            # one workbook may hold both tables on separate sheets
            same_workbook = self.deaths_path == self.population_path
            try:
                self.__raw_data = {
                    "deaths": _read_table(self.deaths_path, "Deaths" if same_workbook else None),
                    "population": _read_table(self.population_path, "Population" if same_workbook else None),
                }
                logger.info(f"Loaded deaths from {self.deaths_path} and population from {self.population_path}")
            except (OSError, ValueError) as e:
                logger.error(f"Error loading data: {e}")
                raise
        return self.__raw_data

    def death_observations(self) -> pd.DataFrame:
        """
        Weekly deaths as average deaths per day at the week midpoint.

        Accepts ``week_midpoint`` or ``week_end`` dates and either
        ``daily_average_deaths`` or weekly ``deaths`` totals.
        """
        raw = self.raw_data["deaths"]
        source = self.deaths_path

        category_col = _pick(raw, CATEGORY_ALIASES, "age category", source)
        if "week_midpoint" in raw.columns:
            dates = pd.to_datetime(raw["week_midpoint"]).dt.normalize()
        else:
            dates = week_midpoint(raw[_pick(raw, ["week_end"], "week date", source)])

        if "daily_average_deaths" in raw.columns:
            values = pd.to_numeric(raw["daily_average_deaths"], errors="coerce")
        else:
            values = weekly_total_to_daily(
                pd.to_numeric(raw[_pick(raw, ["deaths"], "deaths", source)], errors="coerce")
            )

        observations = pd.DataFrame({"date": dates, "category": raw[category_col], "value": values})
        validate_observations(observations, name="deaths")
        logger.info(f"Death observations: {len(observations)} rows, "
                    f"{observations['category'].nunique()} categories")
        return observations

    def population_observations(self) -> pd.DataFrame:
        """
        Quarterly population anchored at the quarter end.

        Accepts a ``quarter_end`` date or ``year`` and ``quarter`` columns.
        """
        raw = self.raw_data["population"]
        source = self.population_path

        category_col = _pick(raw, CATEGORY_ALIASES, "age category", source)
        if "quarter_end" in raw.columns:
            dates = pd.to_datetime(raw["quarter_end"]).dt.normalize()
        elif {"year", "quarter"} <= set(raw.columns):
            dates = quarter_anchor(raw["year"], raw["quarter"])
        else:
            raise DataValidationError(f"{source}: need a quarter_end column or year and quarter columns")

        value_col = _pick(raw, ["population_count", "population", "value"], "population", source)
        observations = pd.DataFrame({
            "date": dates,
            "category": raw[category_col],
            "value": pd.to_numeric(raw[value_col], errors="coerce"),
        })
        validate_observations(observations, name="population")
        logger.info(f"Population observations: {len(observations)} rows, "
                    f"{observations['category'].nunique()} categories")
        return observations

    def save_results(self, result: PipelineResult, output_dir: Union[str, Path] = "output",
                     fmt: str = "csv") -> Dict[str, Path]:
        """
        Save the ASM component table, actual-vs-expected table and failures.

        Args:
            result: Pipeline outputs
            output_dir: Directory for the output files
            fmt: 'csv' for one file per table, 'xlsx' for one workbook

        Returns:
            Dictionary mapping table names to the paths written
        """
        output_dir = Path(output_dir)
        output_dir.mkdir(exist_ok=True, parents=True)

        tables = {
            "asm_components": result.components,
            "actual_vs_expected": result.actual_vs_expected,
            "failures": result.failures(),
        }

        try:
            if fmt == "csv":
                paths = {}
                for name, table in tables.items():
                    path = output_dir / f"{name}.csv"
                    table.to_csv(path, index=False)
                    paths[name] = path
            elif fmt == "xlsx":
                path = output_dir / "daily_asmr.xlsx"
                with pd.ExcelWriter(path) as writer:
                    for name, table in tables.items():
                        table.to_excel(writer, sheet_name=name, index=False)
                paths = {name: path for name in tables}
            else:
                raise ValueError(f"Unknown output format: {fmt}")
        except OSError as e:
            logger.error(f"Error saving results to {output_dir}: {e}")
            raise

        for name, path in paths.items():
            logger.info(f"Saved {name} to {path}")
        return paths
