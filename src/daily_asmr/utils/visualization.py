"""
Visualization module for the daily mortality pipeline.
"""

import matplotlib.pyplot as plt
import seaborn as sns
import pandas as pd
from pathlib import Path
import logging
from typing import Optional, Dict, Any
from .config import Config

logger = logging.getLogger(__name__)


class Visualization:
    """Class for generating plots of actual and expected mortality."""

    def __init__(self, output_dir: Path, config: Optional[Dict[str, Any]] = None):
        """
        Initialize the visualization class.

        Args:
            output_dir: Directory to save visualizations
            config: Optional configuration dictionary. If not provided, uses default config.
        """
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(exist_ok=True, parents=True)

        self.config = config or Config().get('visualization', {})
        self._configure_matplotlib()

    def _configure_matplotlib(self):
        """Configure matplotlib based on settings."""
        plt.rcParams.update({
            'axes.titlesize': 14,
            'axes.labelsize': 12,
            'xtick.labelsize': 10,
            'ytick.labelsize': 10,
            'legend.fontsize': 11,
            'axes.spines.top': False,
            'axes.spines.right': False,
        })
        sns.set_style(self.config.get('seaborn_style', 'whitegrid'), {
            'grid.linestyle': ':',
            'grid.alpha': 0.3,
        })

    def _figure_size(self, name: str):
        return self.config.get('figure_sizes', {}).get(name, [12, 6])

    def _save(self, fig, filename: str) -> Path:
        output_path = self.output_dir / filename
        fig.tight_layout()
        fig.savefig(output_path, dpi=self.config.get('dpi', 300))
        plt.close(fig)
        logger.info(f"Saved {filename} to {output_path}")
        return output_path

    def plot_actual_vs_expected(self, table: pd.DataFrame,
                                title: str = 'Daily ASMR: actual vs expected') -> Path:
        """Line plot of daily ASMR against the seasonal baseline."""
        fig, ax = plt.subplots(figsize=self._figure_size('actual_vs_expected'))
        ax.plot(table['date'], table['asmr'], label='Actual', linewidth=1.0)
        ax.plot(table['date'], table['expected_asmr'], label='Expected', linewidth=1.0, linestyle='--')
        ax.set_title(title)
        ax.set_xlabel('Date')
        ax.set_ylabel('Deaths per person per day')
        ax.legend(loc='best')
        return self._save(fig, 'actual_vs_expected.png')

    def plot_cumulative_excess(self, table: pd.DataFrame, start=None,
                               title: str = 'Cumulative excess ASM') -> Path:
        """Running sum of excess ASM from ``start`` (default: first day with a baseline)."""
        window = table.dropna(subset=['excess_asm'])
        if start is not None:
            window = window[window['date'] >= pd.Timestamp(start)]

        fig, ax = plt.subplots(figsize=self._figure_size('cumulative_excess'))
        ax.plot(window['date'], window['excess_asm'].cumsum(), color='firebrick')
        ax.axhline(0, color='grey', linewidth=0.8)
        ax.set_title(title)
        ax.set_xlabel('Date')
        ax.set_ylabel('Standardized deaths')
        return self._save(fig, 'cumulative_excess.png')

    def generate_all_plots(self, table: pd.DataFrame, start=None) -> Dict[str, Path]:
        return {
            'actual_vs_expected': self.plot_actual_vs_expected(table),
            'cumulative_excess': self.plot_cumulative_excess(table, start=start),
        }
