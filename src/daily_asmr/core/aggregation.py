"""
Category-summed daily series.
"""

import numpy as np
import pandas as pd
from typing import Optional
import logging

logger = logging.getLogger(__name__)

AGGREGATE_COLUMNS = [
    "date", "raw_deaths", "raw_population", "asm", "asmr",
    "categories", "invalid_categories", "missing_categories",
]


def aggregate_daily(
    components: pd.DataFrame,
    standard_population: pd.Series,
    missing: Optional[pd.DataFrame] = None
) -> pd.DataFrame:
    """
    Sum per-category components into one row per date.

    ASMR divides by the total of the fixed reference population, not by the
    raw population of the day, so it stays on a constant population base.
    Invalid contributions are excluded from the ASM sum but leave the
    denominator untouched.

    Args:
        components: ASM component table
        standard_population: Fixed reference weights indexed by category
        missing: Optional missing-join pairs to count per date

    Returns:
        DataFrame with one row per date
    """
    reference_total = float(standard_population.sum())
    if not np.isfinite(reference_total) or reference_total <= 0:
        raise ValueError(f"Reference population total must be positive, got {reference_total}")

    grouped = components.groupby("date", sort=True)
    aggregate = pd.DataFrame({
        "raw_deaths": grouped["deaths"].sum(),
        "raw_population": grouped["population"].sum(),
        "asm": grouped["asm_contribution"].sum(min_count=1),
        "categories": grouped["category"].count(),
        "invalid_categories": (~components["valid"].astype(bool)).groupby(components["date"]).sum(),
    })
    aggregate["asmr"] = aggregate["asm"] / reference_total

    if missing is not None and not missing.empty:
        missing_counts = missing.groupby("date")["category"].nunique()
        aggregate["missing_categories"] = missing_counts.reindex(aggregate.index, fill_value=0)
    else:
        aggregate["missing_categories"] = 0
    aggregate["missing_categories"] = aggregate["missing_categories"].astype(int)

    aggregate = aggregate.reset_index()
    logger.info(
        f"Aggregated {len(aggregate)} days over reference total {reference_total:,.0f}"
    )
    return aggregate[AGGREGATE_COLUMNS]
