import os
from pathlib import Path

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns
from scipy import stats

from bikeshare_report.explore import simple_fit
from bikeshare_report.modeling import TARGET_COL, RegressionResult


class Visualizer:
    """Generates exploration and regression diagnostic figures."""

    def __init__(self, output_dir):
        """Initialize Visualizer with configurable output directory.

        Args:
            output_dir: Directory to save generated plots
        """
        self.output_dir = Path(output_dir)
        os.makedirs(self.output_dir, exist_ok=True)

        # Set consistent style for all plots
        plt.style.use('default')
        sns.set_palette("husl")

    def plot_distribution(self, df: pd.DataFrame, column: str, target: str = TARGET_COL) -> Path:
        """Violin plot of the target grouped by a categorical column, in declared order.

        Raises:
            ValueError: If the column is missing or not categorical
        """
        self._validate_columns(df, [column, target])
        if not isinstance(df[column].dtype, pd.CategoricalDtype):
            raise ValueError(f"Column '{column}' must be categorical")

        fig, ax = plt.subplots(figsize=(10, 6))
        sns.violinplot(
            data=df, x=column, y=target, order=list(df[column].cat.categories),
            inner="quartile", cut=0, ax=ax,
        )
        ax.set_xlabel(column.replace('_', ' ').title(), fontsize=12)
        ax.set_ylabel('Daily Rides', fontsize=12)
        ax.set_title(f'Daily Rides by {column.replace("_", " ").title()}', fontsize=14, fontweight='bold')
        ax.grid(axis='y', alpha=0.3)

        return self._save(fig, f'distribution_{column}.png')

    def plot_relationship(self, df: pd.DataFrame, column: str, target: str = TARGET_COL) -> Path:
        """Scatter of a continuous column against the target with the OLS line overlaid."""
        self._validate_columns(df, [column, target])
        slope, intercept = simple_fit(df, column, target)

        fig, ax = plt.subplots(figsize=(10, 6))
        ax.scatter(df[column], df[target], alpha=0.6, s=20, edgecolors='k', linewidth=0.5)

        x_line = np.linspace(df[column].min(), df[column].max(), 100)
        ax.plot(x_line, intercept + slope * x_line, 'r--', lw=2,
                label=f'y = {intercept:.2f} + {slope:.2f}x')

        ax.set_xlabel(column.replace('_', ' ').title(), fontsize=12)
        ax.set_ylabel('Daily Rides', fontsize=12)
        ax.set_title(f'Daily Rides vs {column.replace("_", " ").title()}', fontsize=14, fontweight='bold')
        ax.legend()
        ax.grid(True, alpha=0.3)

        return self._save(fig, f'relationship_{column}.png')

    def plot_category_frequency(self, frequencies: dict) -> Path:
        """Bar charts of category shares, one panel per column."""
        if not frequencies:
            raise ValueError("Frequency tables cannot be empty")

        n = len(frequencies)
        ncols = min(n, 3)
        nrows = int(np.ceil(n / ncols))
        fig, axes = plt.subplots(nrows, ncols, figsize=(6 * ncols, 4 * nrows), squeeze=False)

        for ax, (col, share) in zip(axes.flat, frequencies.items()):
            ax.bar([str(i) for i in share.index], share.values, alpha=0.8)
            ax.set_title(col.replace('_', ' ').title(), fontsize=12, fontweight='bold')
            ax.set_ylabel('% of days')
            ax.tick_params(axis='x', rotation=45)
            ax.grid(axis='y', alpha=0.3)
        for ax in list(axes.flat)[n:]:
            ax.set_visible(False)

        return self._save(fig, 'category_frequency.png')

    def plot_residuals(self, result: RegressionResult) -> Path:
        """Residuals vs fitted values and normal Q-Q plot."""
        fitted = np.asarray(result.fitted)
        resid = np.asarray(result.residuals)
        if len(resid) == 0:
            raise ValueError("Residuals cannot be empty")

        fig, (ax_left, ax_right) = plt.subplots(1, 2, figsize=(16, 6))
        fig.suptitle(f'Residual Diagnostics: {result.name}', fontsize=16, fontweight='bold')

        ax_left.scatter(fitted, resid, alpha=0.6, s=20, edgecolors='k', linewidth=0.5)
        ax_left.axhline(0, color='r', linestyle='--', lw=2)
        ax_left.set_xlabel('Fitted Values', fontsize=12)
        ax_left.set_ylabel('Residual (fitted - observed)', fontsize=12)
        ax_left.grid(True, alpha=0.3)

        stats.probplot(resid, dist="norm", plot=ax_right)
        ax_right.set_title('Normal Q-Q', fontsize=13, fontweight='bold')
        ax_right.grid(True, alpha=0.3)

        return self._save(fig, f'residuals_{result.name}.png')

    def plot_correlation(self, corr: pd.DataFrame) -> Path:
        """Heatmap of the correlation matrix."""
        if corr.empty:
            raise ValueError("Correlation matrix cannot be empty")

        fig, ax = plt.subplots(figsize=(8, 6))
        sns.heatmap(corr, annot=True, fmt=".2f", cmap="coolwarm", vmin=-1, vmax=1, ax=ax)
        ax.set_title('Correlation Matrix', fontsize=14, fontweight='bold')

        return self._save(fig, 'correlation_matrix.png')

    def _validate_columns(self, df: pd.DataFrame, columns) -> None:
        missing_columns = [col for col in columns if col not in df.columns]
        if missing_columns:
            raise ValueError(f"Missing required columns: {missing_columns}")
        if df.empty:
            raise ValueError("DataFrame cannot be empty")

    def _save(self, fig, filename: str) -> Path:
        fig.tight_layout()
        output_path = self.output_dir / filename
        fig.savefig(output_path, dpi=150, bbox_inches='tight')
        plt.close(fig)
        return output_path
