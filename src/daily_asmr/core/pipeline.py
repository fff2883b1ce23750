"""
End-to-end daily mortality pipeline.

Stages are pure functions handing immutable frames to each other:

    periodic observations -> interpolation (per category) -> rates
        -> aggregation -> seasonal regression -> actual/expected table

Failures of individual categories or days are isolated into a
FailureReport instead of aborting the run.
"""

import numpy as np
import pandas as pd
import dataclasses
from dataclasses import dataclass, field
from typing import Any, Dict, Optional
import logging

from .interpolation import interpolate_daily
from .rates import compose_rates, join_daily, latest_snapshot_date, reference_population
from .aggregation import aggregate_daily
from .seasonal_regression import RegressionSettings, expected_series
from ..utils.config import Config
from ..utils.validation import ConfigValidationError, FailureReport, validate_config

logger = logging.getLogger(__name__)

RESULT_COLUMNS = [
    "date", "raw_deaths", "raw_population", "asm", "asmr",
    "intercept", "slope", "expected_asm", "expected_asmr", "excess_asm",
    "baseline_points", "categories", "invalid_categories", "missing_categories",
]


@dataclass(frozen=True)
class PipelineSettings:
    """Run-wide settings, fixed before any stage starts."""
    regression: RegressionSettings = field(default_factory=RegressionSettings)
    reference_population_date: Optional[pd.Timestamp] = None
    workers: int = 1
    progress: bool = False

    def __post_init__(self):
        regression = self.regression
        if regression.baseline_start_year > regression.baseline_end_year:
            raise ConfigValidationError(
                f"Baseline start year {regression.baseline_start_year} is after "
                f"end year {regression.baseline_end_year}"
            )
        if regression.anchor_offset_years < 1:
            raise ConfigValidationError("anchor_offset_years must be at least 1")
        if not np.isfinite(regression.day_step) or regression.day_step <= 0:
            raise ConfigValidationError("day_step must be a positive number of days")
        if not isinstance(self.workers, int) or self.workers < 1:
            raise ConfigValidationError(f"workers must be a positive integer, got {self.workers!r}")

    @classmethod
    def from_config(cls, config: Optional[Config] = None, **overrides: Any) -> "PipelineSettings":
        """Build settings from the configuration, applying keyword overrides."""
        config = config or Config()
        validate_config(config.as_dict())

        regression = RegressionSettings(
            baseline_start_year=int(config.get('baseline.start_year')),
            baseline_end_year=int(config.get('baseline.end_year')),
            anchor_offset_years=int(config.get('baseline.anchor_offset_years')),
            day_step=float(config.get('baseline.day_step')),
        )
        reference_date = config.get('reference.population_date')
        settings = cls(
            regression=regression,
            reference_population_date=pd.Timestamp(reference_date) if reference_date else None,
            workers=int(config.get('runtime.workers', 1)),
        )
        return settings.replace(**overrides) if overrides else settings

    def replace(self, **changes: Any) -> "PipelineSettings":
        """Copy with some fields changed; baseline fields go to ``regression``."""
        regression_fields = {f.name for f in dataclasses.fields(RegressionSettings)}
        baseline = {k: changes.pop(k) for k in list(changes) if k in regression_fields}
        regression = dataclasses.replace(self.regression, **baseline) if baseline else self.regression
        return dataclasses.replace(self, regression=regression, **changes)


@dataclass
class PipelineResult:
    """Container for the outputs of one pipeline run."""
    components: pd.DataFrame
    actual_vs_expected: pd.DataFrame
    standard_population: pd.Series
    reference_date: pd.Timestamp
    report: FailureReport

    @property
    def reference_total(self) -> float:
        return float(self.standard_population.sum())

    def failures(self) -> pd.DataFrame:
        return self.report.to_frame()


def run_pipeline(
    deaths: pd.DataFrame,
    population: pd.DataFrame,
    settings: Optional[PipelineSettings] = None
) -> PipelineResult:
    """
    Compute daily ASM/ASMR and season-matched expected values.

    Args:
        deaths: Observations with date (week midpoint), category, value (deaths per day)
        population: Observations with date (quarter end), category, value (population)
        settings: Run settings; defaults to PipelineSettings()

    Returns:
        PipelineResult with the ASM component table, the actual-vs-expected
        table and the failure report
    """
    settings = settings or PipelineSettings()
    report = FailureReport()

    logger.info("Interpolating weekly deaths to daily values")
    deaths_daily = interpolate_daily(deaths, "deaths", report, stage="deaths")

    logger.info("Interpolating quarterly population to daily values")
    last_death_day = pd.to_datetime(deaths["date"]).max()
    population_daily = interpolate_daily(
        population, "population", report, end=last_death_day, stage="population"
    )

    reference_date = settings.reference_population_date
    if reference_date is None:
        reference_date = latest_snapshot_date(population)
    standard = reference_population(population_daily, reference_date, report)

    daily, missing = join_daily(deaths_daily, population_daily, report)
    components = compose_rates(daily, standard, report)
    aggregate = aggregate_daily(components, standard, missing)

    expected = expected_series(
        aggregate,
        settings.regression,
        report,
        workers=settings.workers,
        progress=settings.progress,
    )

    table = aggregate.merge(expected, on="date", how="left")
    table["expected_asmr"] = table["expected_asm"] / float(standard.sum())
    table["excess_asm"] = table["asm"] - table["expected_asm"]
    table = table[RESULT_COLUMNS]

    report.log_summary()
    logger.info(f"Pipeline finished: {len(table)} days, {len(report)} failure(s)")

    return PipelineResult(
        components=components,
        actual_vs_expected=table,
        standard_population=standard,
        reference_date=pd.Timestamp(reference_date).normalize(),
        report=report,
    )


def summarize_excess(table: pd.DataFrame, start=None, end=None) -> Dict[str, float]:
    """
    Actual, expected and excess ASM summed over an inclusive date window.

    Days without an expected value are left out of every sum and counted
    in ``days_without_baseline``.
    """
    window = table
    if start is not None:
        window = window[window["date"] >= pd.Timestamp(start)]
    if end is not None:
        window = window[window["date"] <= pd.Timestamp(end)]

    has_baseline = window["expected_asm"].notna() & window["asm"].notna()
    covered = window[has_baseline]
    actual = float(covered["asm"].sum())
    expected = float(covered["expected_asm"].sum())

    return {
        "days": int(len(window)),
        "days_without_baseline": int((~has_baseline).sum()),
        "asm": actual,
        "expected_asm": expected,
        "excess_asm": actual - expected,
        "excess_pct": (actual / expected - 1.0) * 100.0 if expected else np.nan,
    }
