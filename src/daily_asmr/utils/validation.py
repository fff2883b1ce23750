"""
Data validation and failure reporting for the daily mortality pipeline.
"""

import pandas as pd
import numpy as np
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any
import logging

logger = logging.getLogger(__name__)

# Failure kinds recorded in a FailureReport
INSUFFICIENT_DATA = "InsufficientData"
MISSING_JOIN = "MissingJoin"
DEGENERATE_REGRESSION = "DegenerateRegression"
ZERO_OR_MISSING_POPULATION = "ZeroOrMissingPopulation"
INVALID_OBSERVATIONS = "InvalidObservations"

FAILURE_COLUMNS = ["kind", "stage", "category", "date", "message"]


class ValidationError(Exception):
    """Base class for validation errors."""
    pass


class DataValidationError(ValidationError):
    """Raised when data validation fails."""
    pass


class ConfigValidationError(ValidationError):
    """Raised when configuration validation fails."""
    pass


class InsufficientDataError(ValidationError):
    """Raised when a category has fewer than two periodic observations."""

    def __init__(self, category: Any, n_observations: int):
        self.category = category
        self.n_observations = n_observations
        super().__init__(
            f"Category {category!r} has {n_observations} observation(s); "
            "at least 2 are needed to derive an interpolation rate"
        )

    def __reduce__(self):
        return (type(self), (self.category, self.n_observations))


class DegenerateRegressionError(ValidationError):
    """Raised when fewer than two baseline points survive for a target date."""

    def __init__(self, target: Any, n_points: int):
        self.target = target
        self.n_points = n_points
        super().__init__(
            f"Only {n_points} baseline point(s) available for {target}; "
            "a linear trend needs at least 2"
        )

    def __reduce__(self):
        return (type(self), (self.target, self.n_points))


@dataclass(frozen=True)
class Failure:
    """One isolated failure of a date or category unit of work."""
    kind: str
    stage: str
    category: Optional[Any] = None
    date: Optional[pd.Timestamp] = None
    message: str = ""


@dataclass
class FailureReport:
    """
    Collects failures from every pipeline stage.

    Failures never abort the batch; they are gathered here so a run can
    report which dates and categories were dropped and why, alongside the
    rows that were computed.
    """
    failures: List[Failure] = field(default_factory=list)

    def add(self, kind: str, stage: str, category: Any = None,
            date: Any = None, message: str = "") -> None:
        if date is not None:
            date = pd.Timestamp(date)
        self.failures.append(Failure(kind, stage, category, date, message))

    def extend(self, failures: List[Failure]) -> None:
        self.failures.extend(failures)

    def __len__(self) -> int:
        return len(self.failures)

    def __bool__(self) -> bool:
        return bool(self.failures)

    def of_kind(self, kind: str) -> List[Failure]:
        return [f for f in self.failures if f.kind == kind]

    def count(self, kind: str) -> int:
        return len(self.of_kind(kind))

    def summary(self) -> Dict[str, int]:
        """Number of failures per kind."""
        counts: Dict[str, int] = {}
        for failure in self.failures:
            counts[failure.kind] = counts.get(failure.kind, 0) + 1
        return counts

    def to_frame(self) -> pd.DataFrame:
        if not self.failures:
            return pd.DataFrame(columns=FAILURE_COLUMNS)
        return pd.DataFrame(
            [(f.kind, f.stage, f.category, f.date, f.message) for f in self.failures],
            columns=FAILURE_COLUMNS,
        )

    def log_summary(self) -> None:
        if not self.failures:
            logger.info("No failures recorded")
            return
        for kind, n in sorted(self.summary().items()):
            logger.warning(f"{kind}: {n} failure(s)")


def validate_observations(
    df: pd.DataFrame,
    required_columns: Optional[List[str]] = None,
    name: str = "observations"
) -> None:
    """
    Validate a canonical observation frame.

    Args:
        df: DataFrame to validate
        required_columns: Columns that must be present (default date/category/value)
        name: Label used in error messages

    Raises:
        DataValidationError: If validation fails
    """
    required_columns = required_columns or ["date", "category", "value"]

    if df.empty:
        raise DataValidationError(f"{name} frame is empty")

    missing_cols = set(required_columns) - set(df.columns)
    if missing_cols:
        raise DataValidationError(f"Missing required columns in {name}: {sorted(missing_cols)}")

    if "date" in required_columns and df["date"].isna().any():
        raise DataValidationError(f"{name} contains rows without a date")

    if "value" in required_columns and not pd.api.types.is_numeric_dtype(df["value"]):
        raise DataValidationError(f"{name} value column must be numeric")

    n_missing = int(df["value"].isna().sum()) if "value" in df.columns else 0
    if n_missing:
        logger.warning(f"{name}: {n_missing} row(s) with missing values will be ignored")

    logger.debug(f"{name} validation passed: {df.shape}")


def validate_config(config: Dict[str, Any]) -> None:
    """
    Validate configuration dictionary.

    Args:
        config: Configuration dictionary to validate

    Raises:
        ConfigValidationError: If validation fails
    """
    required_sections = ['baseline', 'reference', 'runtime', 'logging']

    missing_sections = set(required_sections) - set(config.keys())
    if missing_sections:
        raise ConfigValidationError(f"Missing required config sections: {sorted(missing_sections)}")

    baseline = config['baseline']
    try:
        start_year = int(baseline['start_year'])
        end_year = int(baseline['end_year'])
        offsets = int(baseline['anchor_offset_years'])
        day_step = float(baseline['day_step'])
    except (KeyError, TypeError, ValueError) as e:
        raise ConfigValidationError(f"Invalid baseline configuration: {e}")

    if start_year > end_year:
        raise ConfigValidationError(
            f"Baseline start year {start_year} is after end year {end_year}"
        )
    if offsets < 1:
        raise ConfigValidationError("anchor_offset_years must be at least 1")
    if not np.isfinite(day_step) or day_step <= 0:
        raise ConfigValidationError("day_step must be a positive number of days")

    workers = config['runtime'].get('workers', 1)
    if not isinstance(workers, int) or workers < 1:
        raise ConfigValidationError("runtime.workers must be a positive integer")

    if 'level' not in config['logging']:
        raise ConfigValidationError("Missing logging level configuration")
    if 'format' not in config['logging']:
        raise ConfigValidationError("Missing logging format configuration")

    logger.debug("Configuration validation passed")
