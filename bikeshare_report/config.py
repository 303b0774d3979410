import os
from dataclasses import dataclass

from dotenv import load_dotenv

from bikeshare_report.data import DATE_FORMAT


def _env_bool(name, default=False):
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class ReportConfig:
    """Rutas, formato de entrada y seguimiento del reporte."""

    raw_csv: str = "data/raw/day.csv"
    cleaned_csv: str = "data/processed/daily_records_cleaned.csv"
    metrics_dir: str = "metrics"
    reports_dir: str = "reports"

    # Formato del CSV crudo
    delimiter: str = ","
    decimal: str = "."
    date_format: str = DATE_FORMAT

    target: str = "total_rides"
    log_level: str = "INFO"

    # MLflow (desactivado por defecto)
    track_mlflow: bool = False
    mlflow_tracking_uri: str = "http://127.0.0.1:5000"
    mlflow_experiment: str = "bike_sharing_report"

    @classmethod
    def from_env(cls) -> "ReportConfig":
        """Lee variables BIKESHARE_* (y .env si existe); lo no definido queda en su default."""
        load_dotenv()
        defaults = cls()
        return cls(
            raw_csv=os.getenv("BIKESHARE_RAW_CSV", defaults.raw_csv),
            cleaned_csv=os.getenv("BIKESHARE_CLEANED_CSV", defaults.cleaned_csv),
            metrics_dir=os.getenv("BIKESHARE_METRICS_DIR", defaults.metrics_dir),
            reports_dir=os.getenv("BIKESHARE_REPORTS_DIR", defaults.reports_dir),
            delimiter=os.getenv("BIKESHARE_DELIMITER", defaults.delimiter),
            decimal=os.getenv("BIKESHARE_DECIMAL", defaults.decimal),
            date_format=os.getenv("BIKESHARE_DATE_FORMAT", defaults.date_format),
            target=os.getenv("BIKESHARE_TARGET", defaults.target),
            log_level=os.getenv("BIKESHARE_LOG_LEVEL", defaults.log_level),
            track_mlflow=_env_bool("BIKESHARE_TRACK_MLFLOW", defaults.track_mlflow),
            mlflow_tracking_uri=os.getenv("MLFLOW_TRACKING_URI", defaults.mlflow_tracking_uri),
            mlflow_experiment=os.getenv("BIKESHARE_MLFLOW_EXPERIMENT", defaults.mlflow_experiment),
        )
