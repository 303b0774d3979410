"""
Reporte Markdown con la comparación de modelos y la narrativa del modelo final.
"""
import logging
from pathlib import Path

import pandas as pd

from bikeshare_report.modeling import RegressionResult

logger = logging.getLogger(__name__)

SIGNIFICANCE = 0.05


class ReportWriter:
    """Genera el reporte a partir de los resultados ya calculados (no ajusta nada)."""

    def __init__(self, decimals=2, significance=SIGNIFICANCE):
        self.decimals = decimals
        self.significance = significance

    def fmt(self, value):
        return f"{value:.{self.decimals}f}"

    def _split_term(self, term, result: RegressionResult):
        """'season_Summer' -> ('season', 'Summer'); continuos -> (term, None)."""
        for col in result.reference_levels:
            prefix = f"{col}_"
            if term.startswith(prefix):
                return col, term[len(prefix):]
        return term, None

    def describe_coefficients(self, result: RegressionResult):
        """Una oración por coeficiente (sin el intercepto)."""
        statements = []
        for term, row in result.coefficients.iterrows():
            if term == "const":
                continue
            estimate = row["estimate"]
            direction = "more" if estimate >= 0 else "fewer"
            column, level = self._split_term(term, result)

            if level is None:
                sentence = (
                    f"Each one-unit increase in {column.replace('_', ' ')} is associated with "
                    f"{self.fmt(abs(estimate))} {direction} daily rides, holding the other predictors constant."
                )
            else:
                reference = result.reference_levels[column]
                subject = f"{level} days" if column == "weather" else f"Days in {level}"
                sentence = (
                    f"{subject} see {self.fmt(abs(estimate))} {direction} daily rides "
                    f"than {reference} days."
                )

            if row["p_value"] >= self.significance:
                sentence += f" (not statistically significant, p = {row['p_value']:.3f})"
            statements.append(sentence)
        return statements

    def coefficient_table(self, result: RegressionResult):
        lines = [
            "| Term | Estimate | Std. Error | t | p-value |",
            "|------|----------|------------|---|---------|",
        ]
        for term, row in result.coefficients.iterrows():
            lines.append(
                f"| {term} | {self.fmt(row['estimate'])} | {self.fmt(row['std_error'])} "
                f"| {row['t_value']:.2f} | {row['p_value']:.4f} |"
            )
        return lines

    def generate(self, df_records, frequencies, comparison_df: pd.DataFrame,
                 final_result: RegressionResult, diagnostics, report_path, data_checks=None):
        """Generate the markdown ridership report and return its path."""
        lines = ["# Daily Ridership Report\n"]
        lines.append(f"Generated on: {pd.Timestamp.now().strftime('%Y-%m-%d %H:%M:%S')}\n")

        lines.append("## Dataset")
        lines.append(f"- **Days**: {len(df_records)}")
        lines.append(
            f"- **Date range**: {df_records['date'].min():%d-%m-%Y} to {df_records['date'].max():%d-%m-%Y}"
        )
        lines.append(f"- **Mean daily rides**: {self.fmt(df_records['total_rides'].mean())}")
        for name, count in (data_checks or {}).items():
            lines.append(f"- **{name}**: {count}")
        lines.append("")

        lines.append("## Category Frequencies (%)")
        for col, share in frequencies.items():
            values = ", ".join(f"{idx}: {self.fmt(v)}" for idx, v in share.items())
            lines.append(f"- **{col}**: {values}")
        lines.append("")

        lines.append("## Model Comparison")
        lines.append("| Model | Predictors | R² | Adj. R² | F | p(F) |")
        lines.append("|-------|------------|----|---------|---|------|")
        for _, row in comparison_df.iterrows():
            lines.append(
                f"| {row['Model']} | {row['Predictors']} | {row['R2']:.4f} | {row['Adj R2']:.4f} "
                f"| {row['F']:.2f} | {row['p(F)']:.4g} |"
            )
        lines.append("")

        lines.append(f"## Final Model: {' + '.join(final_result.predictors)}")
        lines.append(
            f"The final model explains {final_result.r_squared * 100:.1f}% of the variance in daily rides "
            f"(adjusted R² = {final_result.adj_r_squared:.4f}, n = {final_result.n_obs}).\n"
        )
        lines.extend(self.coefficient_table(final_result))
        lines.append("")
        lines.append(f"Baseline: {self.fmt(final_result.intercept)} daily rides for the reference levels "
                     + ", ".join(f"{k} = {v}" for k, v in final_result.reference_levels.items())
                     + " at zero on the continuous predictors.\n")
        for statement in self.describe_coefficients(final_result):
            lines.append(f"- {statement}")
        lines.append("")

        lines.append("## Residual Diagnostics")
        lines.append(f"- **RMSE**: {self.fmt(diagnostics['rmse'])}")
        lines.append(f"- **MAE**: {self.fmt(diagnostics['mae'])}")
        lines.append(f"- **Residual mean**: {diagnostics['residual_mean']:.4f}")
        lines.append(
            f"- **Shapiro-Wilk**: W = {diagnostics['shapiro_stat']:.4f}, p = {diagnostics['shapiro_pvalue']:.4g}"
        )

        report_path = Path(report_path)
        report_path.parent.mkdir(parents=True, exist_ok=True)
        with open(report_path, "w", encoding="utf-8") as f:
            f.write("\n".join(lines))
        logger.info("Report saved: %s", report_path)
        return report_path
