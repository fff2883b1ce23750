"""
Season-matched linear baselines.

For every target day the engine looks at the same point of the year in the
surrounding years, keeps the ones that fall inside the baseline years, and
fits an ordinary least-squares line through their values against the date
ordinal. The line evaluated at the target day is the expected value.

Candidate days are ``target + round(day_step * k)`` for
``k = -anchor_offset_years .. anchor_offset_years``. With the default
``day_step = 365.25`` leap-year drift stays within one day over the whole
span.
"""

import numpy as np
import pandas as pd
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass
from datetime import date, timedelta
from functools import partial
from typing import Dict, List, Optional, Tuple, Union
import logging

from tqdm import tqdm

from ..utils.validation import (
    DegenerateRegressionError,
    FailureReport,
    DEGENERATE_REGRESSION,
)

logger = logging.getLogger(__name__)

EXPECTED_COLUMNS = ["date", "intercept", "slope", "expected_asm", "baseline_points"]


@dataclass(frozen=True)
class RegressionSettings:
    """Baseline window and candidate spacing for the regression engine."""
    baseline_start_year: int = 2013
    baseline_end_year: int = 2019
    anchor_offset_years: int = 12
    day_step: float = 365.25


@dataclass(frozen=True)
class ExpectedRecord:
    """Fitted trend line for one target day."""
    date: date
    intercept: float
    slope: float
    expected_value: float
    n_points: int


def _as_date(value: Union[date, pd.Timestamp, str]) -> date:
    if isinstance(value, pd.Timestamp):
        return value.date()
    if isinstance(value, date):
        return value
    return pd.Timestamp(value).date()


def candidate_dates(
    target: Union[date, pd.Timestamp, str],
    anchor_offset_years: int = 12,
    day_step: float = 365.25
) -> List[date]:
    """Same-season days in the years around ``target``, ordered by offset."""
    target = _as_date(target)
    return [
        target + timedelta(days=round(day_step * k))
        for k in range(-anchor_offset_years, anchor_offset_years + 1)
    ]


def build_lookup(aggregate: pd.DataFrame, column: str = "asm") -> Dict[int, float]:
    """Map date ordinal to value, skipping missing values."""
    values = aggregate[["date", column]].dropna(subset=[column])
    return {
        ts.toordinal(): float(v)
        for ts, v in zip(pd.to_datetime(values["date"]), values[column])
    }


def baseline_points(
    target: Union[date, pd.Timestamp, str],
    lookup: Dict[int, float],
    settings: RegressionSettings
) -> Tuple[np.ndarray, np.ndarray]:
    """Ordinals and values of the candidates that survive the baseline filter."""
    xs, ys = [], []
    for candidate in candidate_dates(target, settings.anchor_offset_years, settings.day_step):
        if not settings.baseline_start_year <= candidate.year <= settings.baseline_end_year:
            continue
        ordinal = candidate.toordinal()
        if ordinal in lookup:
            xs.append(ordinal)
            ys.append(lookup[ordinal])
    return np.asarray(xs, dtype=float), np.asarray(ys, dtype=float)


def fit_expected(
    target: Union[date, pd.Timestamp, str],
    lookup: Dict[int, float],
    settings: RegressionSettings
) -> ExpectedRecord:
    """
    Fit the seasonal trend line for one target day.

    Args:
        target: Day to produce an expected value for
        lookup: Date ordinal to observed value
        settings: Baseline window and candidate spacing

    Returns:
        ExpectedRecord with intercept and slope against the date ordinal

    Raises:
        DegenerateRegressionError: If fewer than two baseline points exist
    """
    target = _as_date(target)
    x, y = baseline_points(target, lookup, settings)
    if len(x) < 2:
        raise DegenerateRegressionError(target, len(x))

    # centre the ordinals for a well-conditioned design matrix
    x_mean = x.mean()
    design = np.column_stack([np.ones(len(x)), x - x_mean])
    coef, _, _, _ = np.linalg.lstsq(design, y, rcond=None)

    slope = float(coef[1])
    intercept = float(coef[0] - slope * x_mean)
    expected = float(coef[0] + slope * (target.toordinal() - x_mean))
    return ExpectedRecord(target, intercept, slope, expected, len(x))


def _fit_chunk(
    targets: List[date],
    lookup: Dict[int, float],
    settings: RegressionSettings
) -> List[Union[ExpectedRecord, DegenerateRegressionError]]:
    results = []
    for target in targets:
        try:
            results.append(fit_expected(target, lookup, settings))
        except DegenerateRegressionError as e:
            results.append(e)
    return results


# Read-only lookup and settings installed once per worker process
_worker_state: Dict[str, object] = {}


def _init_worker(lookup: Dict[int, float], settings: RegressionSettings) -> None:
    _worker_state["lookup"] = lookup
    _worker_state["settings"] = settings


def _fit_worker_chunk(targets: List[date]) -> List[Union[ExpectedRecord, DegenerateRegressionError]]:
    return _fit_chunk(targets, _worker_state["lookup"], _worker_state["settings"])


def _chunks(items: List[date], size: int) -> List[List[date]]:
    return [items[i:i + size] for i in range(0, len(items), size)]


def expected_series(
    aggregate: pd.DataFrame,
    settings: Optional[RegressionSettings] = None,
    report: Optional[FailureReport] = None,
    workers: int = 1,
    progress: bool = False,
    column: str = "asm",
    chunk_size: int = 256
) -> pd.DataFrame:
    """
    Run the regression engine for every day of an aggregate series.

    Each day is fitted independently from the same read-only lookup. Days
    without enough baseline points get NaN coefficients and a
    DegenerateRegression entry in ``report``; the rest of the batch is
    unaffected.

    Args:
        aggregate: Frame with a date column and ``column`` values
        settings: Regression settings (defaults to RegressionSettings())
        report: Failure report for degenerate days
        workers: Number of worker processes; 1 fits in-process
        progress: Show a tqdm progress bar
        column: Value column to fit
        chunk_size: Days per task when running in a process pool

    Returns:
        DataFrame with date, intercept, slope, expected_asm, baseline_points
    """
    settings = settings or RegressionSettings()
    report = report if report is not None else FailureReport()

    lookup = build_lookup(aggregate, column)
    targets = [ts.date() for ts in pd.to_datetime(aggregate["date"])]
    batches = _chunks(targets, chunk_size)
    fit = partial(_fit_chunk, lookup=lookup, settings=settings)

    logger.info(
        f"Fitting {len(targets)} seasonal baselines "
        f"({settings.baseline_start_year}-{settings.baseline_end_year}, workers={workers})"
    )

    results: List[Union[ExpectedRecord, DegenerateRegressionError]] = []
    with tqdm(total=len(targets), desc="Baselines", disable=not progress) as pbar:
        if workers > 1 and len(batches) > 1:
            with ProcessPoolExecutor(
                max_workers=workers,
                initializer=_init_worker,
                initargs=(lookup, settings),
            ) as executor:
                for batch_result in executor.map(_fit_worker_chunk, batches):
                    results.extend(batch_result)
                    pbar.update(len(batch_result))
        else:
            for batch in batches:
                batch_result = fit(batch)
                results.extend(batch_result)
                pbar.update(len(batch_result))

    rows = []
    for target, result in zip(targets, results):
        if isinstance(result, DegenerateRegressionError):
            report.add(DEGENERATE_REGRESSION, "regression", date=target, message=str(result))
            rows.append((target, np.nan, np.nan, np.nan, result.n_points))
        else:
            rows.append((target, result.intercept, result.slope,
                         result.expected_value, result.n_points))

    n_failed = sum(isinstance(r, DegenerateRegressionError) for r in results)
    if n_failed:
        logger.warning(f"{n_failed} day(s) without enough baseline points for a trend line")

    expected = pd.DataFrame(rows, columns=EXPECTED_COLUMNS)
    expected["date"] = pd.to_datetime(expected["date"])
    expected["baseline_points"] = expected["baseline_points"].astype(int)
    return expected
