import os
import json
import logging
import argparse
from contextlib import nullcontext
from pathlib import Path
from typing import Dict, Optional

import pandas as pd
import mlflow

from bikeshare_report.config import ReportConfig
from bikeshare_report.data import DataLoader, NUM_COLS
from bikeshare_report.explore import (
    FREQUENCY_COLS,
    category_frequency,
    check_ride_totals,
    correlation_matrix,
    grouped_summary,
    workday_inconsistencies,
)
from bikeshare_report.modeling import MODEL_SEQUENCE, ModelRunner, RegressionResult, residual_diagnostics
from bikeshare_report.report import ReportWriter
from bikeshare_report.visualize import Visualizer

logger = logging.getLogger(__name__)

DISTRIBUTION_COLS = ["season", "year", "month", "day_of_week", "weather"]
STAGES = ["data", "explore", "model", "report", "all"]


def setup_logging(log_level: str = "INFO", log_file: Optional[str] = "bikeshare_report.log") -> None:
    """Setup logging configuration."""
    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
    )


class Orchestrator:
    """
    Etapas:
    - data: carga y limpia el CSV crudo, guarda la tabla DailyRecord
    - explore: frecuencias, estadísticos por grupo y gráficas
    - model: ajusta la secuencia de modelos OLS y guarda sus estadísticos en .json
    - report: genera el reporte markdown
    - all: las cuatro etapas en secuencia, en memoria
    """

    def __init__(self, config: Optional[ReportConfig] = None, model_specs: Optional[Dict] = None):
        self.config = config or ReportConfig()
        self.model_specs = model_specs or MODEL_SEQUENCE
        self.figures_dir = os.path.join(self.config.reports_dir, "figures")

        os.makedirs(os.path.dirname(self.config.cleaned_csv) or ".", exist_ok=True)
        os.makedirs(self.config.metrics_dir, exist_ok=True)
        os.makedirs(self.figures_dir, exist_ok=True)

        self.loader = DataLoader(
            self.config.raw_csv,
            delimiter=self.config.delimiter,
            decimal=self.config.decimal,
            date_format=self.config.date_format,
        )

    def _start_run(self, run_name: str, nested: bool = False):
        if not self.config.track_mlflow:
            return nullcontext()
        return mlflow.start_run(run_name=run_name, nested=nested)

    def _records(self, df: Optional[pd.DataFrame]) -> pd.DataFrame:
        return df if df is not None else self.loader.load_cleaned(self.config.cleaned_csv)

    # -----------------------
    # Etapa: DATA
    # -----------------------
    def stage_data(self, csv_path: Optional[str] = None) -> pd.DataFrame:
        """Carga y limpia el CSV crudo; guarda el CSV limpio."""
        if csv_path:
            self.loader.data_path = Path(csv_path)

        df = self.loader.clean_dataset()
        out = self.loader.save_cleaned(df, self.config.cleaned_csv)
        logger.info("[DATA] Tabla limpia -> %s", out)

        check_ride_totals(df)
        workday_inconsistencies(df)
        return df

    # -----------------------
    # Etapa: EXPLORE
    # -----------------------
    def stage_explore(self, df: Optional[pd.DataFrame] = None) -> Dict[str, object]:
        """Frecuencias, resúmenes por categoría, correlaciones y gráficas."""
        df = self._records(df)
        visualizer = Visualizer(output_dir=self.figures_dir)

        frequencies = category_frequency(df, FREQUENCY_COLS)
        summaries = {col: grouped_summary(df, col, self.config.target) for col in DISTRIBUTION_COLS}
        corr = correlation_matrix(df, NUM_COLS, self.config.target)

        figures = [visualizer.plot_category_frequency(frequencies), visualizer.plot_correlation(corr)]
        for col in DISTRIBUTION_COLS:
            figures.append(visualizer.plot_distribution(df, col, self.config.target))
        for col in NUM_COLS:
            figures.append(visualizer.plot_relationship(df, col, self.config.target))
        logger.info("[EXPLORE] %d gráficas en %s", len(figures), self.figures_dir)

        return {
            "frequencies": frequencies,
            "summaries": summaries,
            "correlation": corr,
            "figures": figures,
        }

    # -----------------------
    # Etapa: MODEL
    # -----------------------
    def stage_model(self, df: Optional[pd.DataFrame] = None) -> Dict[str, RegressionResult]:
        """Ajusta la secuencia de modelos y escribe <modelo>_fit.json por modelo."""
        df = self._records(df)
        runner = ModelRunner(self.model_specs, target=self.config.target)
        results = runner.run_sequence(df)

        for name, res in results.items():
            out_json = os.path.join(self.config.metrics_dir, f"{name}_fit.json")
            payload = res.to_dict()
            payload["diagnostics"] = residual_diagnostics(res)
            with open(out_json, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2, ensure_ascii=False)

        final = runner.final(results)
        Visualizer(output_dir=self.figures_dir).plot_residuals(final)
        return results

    # -----------------------
    # Etapa: REPORT
    # -----------------------
    def stage_report(
        self,
        df: Optional[pd.DataFrame] = None,
        results: Optional[Dict[str, RegressionResult]] = None,
    ) -> str:
        df = self._records(df)
        runner = ModelRunner(self.model_specs, target=self.config.target)
        if results is None:
            results = runner.run_sequence(df)

        final = runner.final(results)
        data_checks = {
            "Rows where casual + return != total": len(check_ride_totals(df)),
            "Rows where is_workday disagrees with the calendar": len(workday_inconsistencies(df)),
        }
        report_path = os.path.join(self.config.reports_dir, "report.md")
        ReportWriter().generate(
            df,
            category_frequency(df, FREQUENCY_COLS),
            runner.comparison_table(results),
            final,
            residual_diagnostics(final),
            report_path,
            data_checks=data_checks,
        )
        return report_path

    # -----------------------
    # Ejecutar por etapa
    # -----------------------
    def run(self, stage: str, **kwargs):
        stage = stage.lower()
        if stage not in STAGES:
            raise ValueError(f"Etapa desconocida: {stage}")

        df = None
        results = None

        if stage in ("data", "all"):
            with self._start_run("data_stage"):
                df = self.stage_data(csv_path=kwargs.get("csv"))
                if self.config.track_mlflow:
                    mlflow.log_metric("n_records", len(df))

        if stage in ("explore", "all"):
            with self._start_run("explore_stage"):
                self.stage_explore(df)
                if self.config.track_mlflow:
                    mlflow.log_artifacts(self.figures_dir, artifact_path="figures")

        if stage in ("model", "all"):
            with self._start_run("model_stage"):
                results = self.stage_model(df)
                if self.config.track_mlflow:
                    for name, res in results.items():
                        with mlflow.start_run(run_name=f"model_{name}", nested=True):
                            mlflow.log_param("predictors", " + ".join(res.predictors))
                            mlflow.log_metric("r_squared", res.r_squared)
                            mlflow.log_metric("adj_r_squared", res.adj_r_squared)
                            mlflow.log_metric("f_statistic", res.f_statistic)
                            mlflow.log_artifact(os.path.join(self.config.metrics_dir, f"{name}_fit.json"))
                logger.info("[MODEL] Modelos ajustados: %s", list(results))

        if stage in ("report", "all"):
            with self._start_run("report_stage"):
                report_path = self.stage_report(df, results)
                if self.config.track_mlflow:
                    mlflow.log_artifacts(self.config.reports_dir, artifact_path="reports")
                logger.info("[REPORT] Reporte en: %s", report_path)

        return results


def build_argparser():
    p = argparse.ArgumentParser(description="Bike sharing daily ridership report")
    p.add_argument("--stage", required=True, choices=STAGES, help="Etapa a ejecutar")
    p.add_argument("--csv", help="Ruta al CSV crudo (stage=data/all)")
    p.add_argument("--cleaned_csv", help="Ruta al CSV limpio")
    p.add_argument("--metrics_dir", help="Directorio de estadísticos de los modelos")
    p.add_argument("--reports_dir", help="Directorio de reportes y gráficas")
    p.add_argument("--delimiter", help="Separador de campos del CSV crudo")
    p.add_argument("--log_level", help="Nivel de logging")
    p.add_argument("--track", action="store_true", help="Registrar las etapas en MLflow")
    return p


def config_from_args(args) -> ReportConfig:
    config = ReportConfig.from_env()
    for name in ("cleaned_csv", "metrics_dir", "reports_dir", "delimiter", "log_level"):
        value = getattr(args, name)
        if value:
            setattr(config, name, value)
    if args.csv:
        config.raw_csv = args.csv
    if args.track:
        config.track_mlflow = True
    return config


if __name__ == "__main__":
    args = build_argparser().parse_args()
    config = config_from_args(args)
    setup_logging(config.log_level)

    if config.track_mlflow:
        mlflow.set_tracking_uri(config.mlflow_tracking_uri)
        mlflow.set_experiment(config.mlflow_experiment)

    try:
        Orchestrator(config).run(stage=args.stage, csv=args.csv)
    except Exception:
        logger.exception("La etapa '%s' falló", args.stage)
        raise
