"""
Representative dates for periodic observations.

Weekly and quarterly observations are pinned to a single calendar day so
that every later comparison reduces to a literal count of days. ISO week
numbers and quarter indices are never used for arithmetic.
"""

import pandas as pd
from typing import Union

WEEK_MIDPOINT_OFFSET_DAYS = 4
DAYS_PER_WEEK = 7

DateLike = Union[str, pd.Timestamp, pd.Series]


def week_midpoint(week_end: DateLike) -> Union[pd.Timestamp, pd.Series]:
    """Midpoint of a reporting week given its last day."""
    if isinstance(week_end, pd.Series):
        return pd.to_datetime(week_end).dt.normalize() - pd.Timedelta(days=WEEK_MIDPOINT_OFFSET_DAYS)
    return pd.Timestamp(week_end).normalize() - pd.Timedelta(days=WEEK_MIDPOINT_OFFSET_DAYS)


def quarter_anchor(year, quarter) -> Union[pd.Timestamp, pd.Series]:
    """
    Last calendar day of a quarter.

    Args:
        year: Calendar year (scalar or Series)
        quarter: Quarter number 1-4 (scalar or Series)

    Returns:
        Timestamp, or Series of Timestamps when given Series
    """
    if isinstance(year, pd.Series) or isinstance(quarter, pd.Series):
        year = pd.Series(year).astype(int)
        quarter = pd.Series(quarter).astype(int)
        if ((quarter < 1) | (quarter > 4)).any():
            raise ValueError("Quarter numbers must be between 1 and 4")
        periods = pd.PeriodIndex.from_fields(year=year, quarter=quarter, freq="Q")
        return pd.Series(periods.end_time.normalize(), index=year.index)

    quarter = int(quarter)
    if not 1 <= quarter <= 4:
        raise ValueError(f"Quarter must be between 1 and 4, got {quarter}")
    return pd.Period(year=int(year), quarter=quarter, freq="Q").end_time.normalize()


def weekly_total_to_daily(total):
    """Average deaths per day for a weekly total."""
    return total / DAYS_PER_WEEK
