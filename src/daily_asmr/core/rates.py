"""
Per-capita mortality and age-standardized contributions.
"""

import numpy as np
import pandas as pd
from typing import Optional, Tuple
import logging

from ..utils.validation import (
    DataValidationError,
    FailureReport,
    MISSING_JOIN,
    ZERO_OR_MISSING_POPULATION,
)

logger = logging.getLogger(__name__)

COMPONENT_COLUMNS = [
    "date", "category", "deaths", "population",
    "percapita", "standard_population", "asm_contribution", "valid",
]


def _date_span(frame: pd.DataFrame) -> Tuple[pd.Timestamp, pd.Timestamp]:
    return frame["date"].min(), frame["date"].max()


def join_daily(
    deaths_daily: pd.DataFrame,
    population_daily: pd.DataFrame,
    report: Optional[FailureReport] = None
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Pair daily deaths with daily population per category.

    Only dates inside both series' ranges are considered. A date/category
    present on one side only is a missing join: it is left out of the daily
    records and returned separately so it can be counted per date.

    Args:
        deaths_daily: Frame with date, category, deaths
        population_daily: Frame with date, category, population
        report: Failure report for missing joins

    Returns:
        Tuple containing:
            - Daily records with date, category, deaths, population
            - Missing pairs with date, category, missing (which side is absent)
    """
    report = report if report is not None else FailureReport()

    deaths = deaths_daily[["date", "category", "deaths"]].dropna(subset=["deaths"])
    population = population_daily[["date", "category", "population"]].dropna(subset=["population"])
    if deaths.empty or population.empty:
        raise DataValidationError("Cannot join daily series: deaths or population is empty")

    d_start, d_end = _date_span(deaths)
    p_start, p_end = _date_span(population)
    start, end = max(d_start, p_start), min(d_end, p_end)
    if start > end:
        raise DataValidationError(
            f"Deaths ({d_start.date()} to {d_end.date()}) and population "
            f"({p_start.date()} to {p_end.date()}) do not overlap"
        )
    logger.info(f"Joining daily deaths and population from {start.date()} to {end.date()}")

    deaths = deaths[deaths["date"].between(start, end)]
    population = population[population["date"].between(start, end)]

    merged = deaths.merge(population, on=["date", "category"], how="outer", indicator=True)
    merged = merged.sort_values(["date", "category"], kind="mergesort").reset_index(drop=True)

    records = merged.loc[merged["_merge"] == "both", ["date", "category", "deaths", "population"]]
    unmatched = merged.loc[merged["_merge"] != "both"].copy()
    unmatched["missing"] = np.where(unmatched["_merge"] == "left_only", "population", "deaths")
    missing = unmatched[["date", "category", "missing"]].reset_index(drop=True)

    for (category, side), group in missing.groupby(["category", "missing"], sort=True):
        first, last = group["date"].min(), group["date"].max()
        message = (
            f"{side} absent for {len(group)} day(s) between "
            f"{first.date()} and {last.date()}"
        )
        logger.warning(f"Missing join for category {category!r}: {message}")
        report.add(MISSING_JOIN, "join", category=category, date=first, message=message)

    return records.reset_index(drop=True), missing


def latest_snapshot_date(population_observations: pd.DataFrame) -> pd.Timestamp:
    """Date of the most recent population observation."""
    observed = population_observations.dropna(subset=["value"])
    if observed.empty:
        raise DataValidationError("No population observations available")
    return pd.Timestamp(observed["date"].max()).normalize()


def reference_population(
    population_daily: pd.DataFrame,
    reference_date,
    report: Optional[FailureReport] = None
) -> pd.Series:
    """
    Fixed standard population per category.

    The snapshot is taken once, on ``reference_date``, and shared by every
    date of the run.

    Returns:
        Series indexed by category named ``standard_population``
    """
    report = report if report is not None else FailureReport()
    reference_date = pd.Timestamp(reference_date).normalize()

    dates = population_daily["date"]
    if reference_date < dates.min() or reference_date > dates.max():
        raise DataValidationError(
            f"Reference population date {reference_date.date()} is outside the population "
            f"range {dates.min().date()} to {dates.max().date()}"
        )

    snapshot = population_daily.loc[dates == reference_date].set_index("category")["population"]
    absent = snapshot[snapshot.isna()].index.tolist()
    for category in absent:
        report.add(
            MISSING_JOIN, "reference", category=category, date=reference_date,
            message="no population on the reference date; category has no standard weight",
        )
    if absent:
        logger.warning(f"Categories without a reference population: {absent}")

    standard = snapshot.dropna().rename("standard_population")
    standard.index.name = "category"
    logger.info(
        f"Reference population fixed at {reference_date.date()}: "
        f"{len(standard)} categories, total {standard.sum():,.0f}"
    )
    return standard


def compose_rates(
    daily: pd.DataFrame,
    standard_population: pd.Series,
    report: Optional[FailureReport] = None
) -> pd.DataFrame:
    """
    Compute per-capita rates and age-standardized contributions.

    A zero, negative or missing population gives NaN ``percapita`` and
    ``asm_contribution`` with ``valid`` set to False, never a silent zero.

    Args:
        daily: Frame with date, category, deaths, population
        standard_population: Fixed reference weights indexed by category
        report: Failure report for invalid populations

    Returns:
        ASM component table
    """
    report = report if report is not None else FailureReport()

    components = daily[["date", "category", "deaths", "population"]].copy()
    population = components["population"].to_numpy(dtype=float)
    deaths = components["deaths"].to_numpy(dtype=float)

    usable = np.isfinite(population) & (population > 0)
    percapita = np.full(len(components), np.nan)
    np.divide(deaths, population, out=percapita, where=usable)

    components["percapita"] = percapita
    components["standard_population"] = components["category"].map(standard_population).astype(float)
    components["asm_contribution"] = components["percapita"] * components["standard_population"]
    components["valid"] = components["asm_contribution"].notna()

    for row in components.loc[~usable, ["date", "category", "population"]].itertuples(index=False):
        report.add(
            ZERO_OR_MISSING_POPULATION, "rates", category=row.category, date=row.date,
            message=f"population is {row.population}; per-capita rate undefined",
        )
    if not usable.all():
        logger.warning(f"{int((~usable).sum())} row(s) with zero or missing population")

    return components[COMPONENT_COLUMNS]
