"""Synthetic observation frames shared by the tests."""

import numpy as np
import pandas as pd
from typing import Dict

from daily_asmr.core.anchors import quarter_anchor


def weekly_deaths(start: str, end: str, base_rates: Dict[str, float],
                  amplitude: float = 0.2) -> pd.DataFrame:
    """Seasonal deaths per day at weekly midpoints for each category."""
    dates = pd.date_range(start, end, freq="7D")
    phase = 2 * np.pi * dates.dayofyear.to_numpy() / 365.25
    frames = []
    for category, base in base_rates.items():
        frames.append(pd.DataFrame({
            "date": dates,
            "category": category,
            "value": base * (1 + amplitude * np.cos(phase)),
        }))
    return pd.concat(frames, ignore_index=True)


def quarterly_population(start_year: int, end_year: int, levels: Dict[str, float],
                         growth_per_quarter: float = 0.001) -> pd.DataFrame:
    """Slowly growing population at quarter ends for each category."""
    years = np.repeat(np.arange(start_year, end_year + 1), 4)
    quarters = np.tile(np.arange(1, 5), end_year - start_year + 1)
    dates = quarter_anchor(pd.Series(years), pd.Series(quarters))
    frames = []
    for category, level in levels.items():
        frames.append(pd.DataFrame({
            "date": dates.to_numpy(),
            "category": category,
            "value": level * (1 + growth_per_quarter) ** np.arange(len(years)),
        }))
    return pd.concat(frames, ignore_index=True)
