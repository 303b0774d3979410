import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

import numpy as np
import pandas as pd
import pytest
from unittest.mock import MagicMock, patch

from bikeshare_report.config import ReportConfig
from bikeshare_report.data import DataLoader

RAW_COLUMNS = [
    "instant", "dteday", "season", "yr", "mnth", "holiday", "weekday", "workingday",
    "weathersit", "temp", "atemp", "hum", "windspeed", "casual", "registered", "cnt",
]

SEASON_EFFECT = {1: 0.0, 2: 800.0, 3: 1200.0, 4: 600.0}
WEATHER_EFFECT = {1: 0.0, 2: -500.0, 3: -1800.0}


def make_raw_frame(n_days=730, start="2018-01-01", seed=42):
    """Tabla cruda sintética con el esquema de 16 columnas (números como texto)."""
    rng = np.random.default_rng(seed)
    dates = pd.date_range(start, periods=n_days, freq="D")

    season = ((dates.month % 12) // 3 + 1).to_numpy()
    yr = (dates.year - 2018).to_numpy()
    weathersit = np.arange(n_days) % 3 + 1
    holiday = np.zeros(n_days, dtype=int)
    holiday[::50] = 1
    weekday = ((dates.dayofweek + 1) % 7).to_numpy()  # 0 = domingo
    workingday = ((dates.dayofweek < 5) & (holiday == 0)).astype(int)

    temp = np.clip(0.5 + 0.3 * np.sin(2 * np.pi * (np.arange(n_days) - 100) / 365)
                   + rng.normal(0, 0.05, n_days), 0.05, 0.95)
    atemp = np.clip(temp * 0.9 + rng.normal(0, 0.02, n_days), 0.0, 1.0)
    hum = rng.uniform(0.3, 0.9, n_days)
    windspeed = rng.uniform(0.05, 0.4, n_days)

    cnt = (
        1000
        + 4000 * temp
        + 2000 * yr
        + np.vectorize(SEASON_EFFECT.get)(season)
        + np.vectorize(WEATHER_EFFECT.get)(weathersit)
        + rng.normal(0, 300, n_days)
    ).round().astype(int)
    cnt = np.clip(cnt, 50, None)
    casual = (cnt * 0.2).astype(int)
    registered = cnt - casual

    return pd.DataFrame({
        "instant": np.arange(1, n_days + 1),
        "dteday": dates.strftime("%d-%m-%Y"),
        "season": season,
        "yr": yr,
        "mnth": dates.month.to_numpy(),
        "holiday": holiday,
        "weekday": weekday,
        "workingday": workingday,
        "weathersit": weathersit,
        "temp": [f"{v:.6f}" for v in temp],
        "atemp": [f"{v:.6f}" for v in atemp],
        "hum": [f"{v:.6f}" for v in hum],
        "windspeed": [f"{v:.6f}" for v in windspeed],
        "casual": casual,
        "registered": registered,
        "cnt": cnt,
    })[RAW_COLUMNS]


@pytest.fixture
def raw_dataframe():
    return make_raw_frame()


@pytest.fixture
def raw_csv(tmp_path, raw_dataframe):
    """Escribe la tabla cruda en un CSV temporal y retorna la ruta."""
    csv_path = tmp_path / "day.csv"
    raw_dataframe.to_csv(csv_path, index=False)
    return csv_path


@pytest.fixture
def loader(raw_csv):
    return DataLoader(data_path=raw_csv)


@pytest.fixture
def cleaned_dataframe(loader):
    return loader.clean_dataset()


@pytest.fixture
def scenario_row():
    """Fila única: season=1, yr=0, mnth=1, weathersit=1, temp="0.5", cnt=985."""
    return pd.DataFrame({
        "instant": ["1"],
        "dteday": ["01-01-2018"],
        "season": ["1"],
        "yr": ["0"],
        "mnth": ["1"],
        "holiday": ["0"],
        "weekday": ["6"],
        "workingday": ["0"],
        "weathersit": ["1"],
        "temp": ["0.5"],
        "atemp": ["0.48"],
        "hum": ["0.81"],
        "windspeed": ["0.16"],
        "casual": ["331"],
        "registered": ["654"],
        "cnt": ["985"],
    })


@pytest.fixture
def temperature_dataframe():
    """total_rides = 1500 + 6000 * temperature + ruido N(0, 100)."""
    rng = np.random.default_rng(7)
    temperature = rng.uniform(0.1, 0.9, 500)
    total = 1500 + 6000 * temperature + rng.normal(0, 100, 500)
    return pd.DataFrame({"temperature": temperature, "total_rides": total})


@pytest.fixture
def report_config(tmp_path, raw_csv):
    return ReportConfig(
        raw_csv=str(raw_csv),
        cleaned_csv=str(tmp_path / "data" / "processed" / "cleaned.csv"),
        metrics_dir=str(tmp_path / "metrics"),
        reports_dir=str(tmp_path / "reports"),
    )


@pytest.fixture
def mock_mlflow():
    with patch("bikeshare_report.main.mlflow.start_run") as start_run, patch(
        "bikeshare_report.main.mlflow.log_metric"
    ) as log_metric, patch(
        "bikeshare_report.main.mlflow.log_param"
    ) as log_param, patch(
        "bikeshare_report.main.mlflow.log_artifact"
    ) as log_artifact, patch(
        "bikeshare_report.main.mlflow.log_artifacts"
    ) as log_artifacts:
        start_run.return_value.__enter__.return_value = MagicMock()
        yield {
            "start_run": start_run,
            "log_metric": log_metric,
            "log_param": log_param,
            "log_artifact": log_artifact,
            "log_artifacts": log_artifacts,
        }
