"""
Temporal disaggregation of periodic observations to daily frequency.

Each category's observations are turned into an ordered lookup of
``{date, base_value, rate}`` segments. The value on day ``t`` inside segment
``i`` is ``base_value_i + (t - date_i) * rate_i``. The last segment reuses
the rate of the final interval so the series keeps moving past the last
observation at the most recent rate.
"""

import numpy as np
import pandas as pd
from typing import Optional
import logging

from ..utils.validation import (
    DataValidationError,
    FailureReport,
    InsufficientDataError,
    INSUFFICIENT_DATA,
    INVALID_OBSERVATIONS,
    validate_observations,
)

logger = logging.getLogger(__name__)

SEGMENT_COLUMNS = ["date", "base_value", "rate"]


def _day_numbers(dates) -> np.ndarray:
    """Whole days since the epoch for an array of dates."""
    return pd.DatetimeIndex(dates).normalize().values.astype("datetime64[D]").astype(np.int64)


def build_segments(dates, values, category=None) -> pd.DataFrame:
    """
    Build the piecewise-linear lookup for one category.

    Args:
        dates: Observation dates
        values: Observed values, aligned with ``dates``
        category: Label used in error messages

    Returns:
        DataFrame with columns date, base_value, rate ordered by date

    Raises:
        InsufficientDataError: If fewer than two observations remain
        DataValidationError: If a date is observed more than once
    """
    obs = pd.DataFrame({"date": pd.to_datetime(dates), "value": np.asarray(values, dtype=float)})
    obs = obs.dropna(subset=["value"]).sort_values("date", kind="mergesort")
    obs["date"] = obs["date"].dt.normalize()

    if obs["date"].duplicated().any():
        dupes = obs.loc[obs["date"].duplicated(), "date"].dt.date.tolist()
        raise DataValidationError(f"Category {category!r} has duplicate observation dates: {dupes}")

    if len(obs) < 2:
        raise InsufficientDataError(category, len(obs))

    days = _day_numbers(obs["date"])
    vals = obs["value"].to_numpy()
    rates = np.diff(vals) / np.diff(days)
    # the final observation carries the final interval's rate forward
    rates = np.append(rates, rates[-1])

    return pd.DataFrame({
        "date": obs["date"].to_numpy(),
        "base_value": vals,
        "rate": rates,
    })


def evaluate_segments(segments: pd.DataFrame, grid) -> np.ndarray:
    """
    Evaluate a segment lookup on a grid of days.

    Days before the first segment have no defined value and come back as NaN.
    """
    grid_days = _day_numbers(grid)
    seg_days = _day_numbers(segments["date"])

    idx = np.searchsorted(seg_days, grid_days, side="right") - 1
    before_start = idx < 0
    idx = np.clip(idx, 0, len(seg_days) - 1)

    base = segments["base_value"].to_numpy()[idx]
    rate = segments["rate"].to_numpy()[idx]
    values = base + (grid_days - seg_days[idx]) * rate
    values[before_start] = np.nan
    return values


def interpolate_daily(
    observations: pd.DataFrame,
    value_name: str = "value",
    report: Optional[FailureReport] = None,
    end: Optional[pd.Timestamp] = None,
    stage: str = "interpolation"
) -> pd.DataFrame:
    """
    Expand every category of a periodic series onto a dense daily grid.

    The grid covers ``[min, max]`` of the observation dates across all
    categories, extended to ``end`` when that is later. Categories that
    cannot be interpolated are recorded in ``report`` and left out.

    Args:
        observations: Frame with date, category and value columns
        value_name: Name of the value column in the result
        report: Failure report to record per-category failures in
        end: Optional last day of the grid
        stage: Stage label used in failure records

    Returns:
        Long frame with columns date, category and ``value_name``
    """
    validate_observations(observations, name=stage)
    report = report if report is not None else FailureReport()

    dates = pd.to_datetime(observations["date"]).dt.normalize()
    start, stop = dates.min(), dates.max()
    if end is not None and pd.Timestamp(end) > stop:
        stop = pd.Timestamp(end).normalize()
    grid = pd.date_range(start, stop, freq="D")
    logger.debug(f"{stage}: daily grid {start.date()} to {stop.date()} ({len(grid)} days)")

    frames = []
    for category, group in observations.groupby("category", sort=True):
        try:
            segments = build_segments(group["date"], group["value"], category=category)
        except InsufficientDataError as e:
            logger.warning(f"{stage}: {e}")
            report.add(INSUFFICIENT_DATA, stage, category=category, message=str(e))
            continue
        except DataValidationError as e:
            logger.warning(f"{stage}: {e}")
            report.add(INVALID_OBSERVATIONS, stage, category=category, message=str(e))
            continue

        frames.append(pd.DataFrame({
            "date": grid,
            "category": category,
            value_name: evaluate_segments(segments, grid),
        }))

    if not frames:
        return pd.DataFrame(columns=["date", "category", value_name])

    daily = pd.concat(frames, ignore_index=True)
    logger.info(f"{stage}: interpolated {len(frames)} categories over {len(grid)} days")
    return daily
