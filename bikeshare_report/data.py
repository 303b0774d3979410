"""
Carga y limpieza del dataset diario de Bike Sharing.
Clases incluidas: DataLoader (lectura CSV + limpieza a DailyRecord).
"""
import logging
from pathlib import Path

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)


class DataCleaningError(ValueError):
    """Fila con fecha, número o código categórico inválido."""


RAW_COLUMN_MAP = {
    "instant": "id",
    "dteday": "date",
    "season": "season",
    "yr": "year",
    "mnth": "month",
    "holiday": "is_holiday",
    "weekday": "weekday_code",
    "workingday": "is_workday",
    "weathersit": "weather",
    "temp": "temperature",
    "atemp": "ambient_temp",
    "hum": "humidity",
    "windspeed": "wind_speed",
    "casual": "casual_rides",
    "registered": "return_rides",
    "cnt": "total_rides",
}

# Lookups código -> etiqueta (el orden de inserción es el orden declarado)
SEASON_LABELS = {1: "Winter", 2: "Spring", 3: "Summer", 4: "Autumn"}
YEAR_LABELS = {0: "2018", 1: "2019"}
WEATHER_LABELS = {1: "Clear", 2: "Overcast", 3: "Storm"}
MONTH_LABELS = {
    1: "January",
    2: "February",
    3: "March",
    4: "April",
    5: "May",
    6: "June",
    7: "July",
    8: "August",
    9: "September",
    10: "October",
    11: "November",
    12: "December",
}
# pandas: dayofweek 0 = lunes
DAY_LABELS = {0: "Mon", 1: "Tue", 2: "Wed", 3: "Thu", 4: "Fri", 5: "Sat", 6: "Sun"}

CATEGORY_ORDER = {
    "season": pd.CategoricalDtype(list(SEASON_LABELS.values()), ordered=True),
    "year": pd.CategoricalDtype(list(YEAR_LABELS.values()), ordered=True),
    "month": pd.CategoricalDtype(list(MONTH_LABELS.values()), ordered=True),
    "day_of_week": pd.CategoricalDtype(list(DAY_LABELS.values()), ordered=True),
    "weather": pd.CategoricalDtype(list(WEATHER_LABELS.values()), ordered=True),
}

CODED_COLUMNS = {
    "season": SEASON_LABELS,
    "year": YEAR_LABELS,
    "month": MONTH_LABELS,
    "weather": WEATHER_LABELS,
}
BOOL_COLS = ["is_holiday", "is_workday"]
NUM_COLS = ["temperature", "ambient_temp", "humidity", "wind_speed"]
COUNT_COLS = ["id", "casual_rides", "return_rides", "total_rides"]

DAILY_RECORD_COLUMNS = [
    "id",
    "date",
    "season",
    "year",
    "month",
    "is_holiday",
    "day_of_week",
    "is_workday",
    "weather",
    "temperature",
    "ambient_temp",
    "humidity",
    "wind_speed",
    "casual_rides",
    "return_rides",
    "total_rides",
]

DATE_FORMAT = "%d-%m-%Y"


def _offending_ids(df, mask, limit=10):
    ids = df.loc[mask, "id"].tolist() if "id" in df.columns else df.index[mask].tolist()
    return ids[:limit]


def format_date(dates, date_format=DATE_FORMAT):
    """Formatea una serie de fechas de vuelta al texto día-mes-año."""
    return pd.to_datetime(dates).dt.strftime(date_format)


def apply_category_order(df):
    """Reaplica los dtypes categóricos ordenados (p.ej. tras releer el CSV limpio)."""
    out = df.copy()
    for col, dtype in CATEGORY_ORDER.items():
        if col not in out.columns:
            continue
        values = out[col].astype(str)
        unknown = ~values.isin(dtype.categories)
        if unknown.any():
            raise DataCleaningError(
                f"Valores fuera de dominio en '{col}': {sorted(values[unknown].unique())}"
            )
        out[col] = values.astype(dtype)
    return out


class DataLoader:
    """Carga el CSV crudo y lo transforma en la tabla DailyRecord.

    Atributos:
        data_path: Ruta al archivo CSV.
        delimiter: Separador de campos.
        decimal: Marca decimal de los campos numéricos guardados como texto.
        date_format: Formato de la columna de fecha.
    """
    def __init__(self, data_path, delimiter=",", decimal=".", date_format=DATE_FORMAT):
        self.data_path = Path(data_path)
        self.delimiter = delimiter
        self.decimal = decimal
        self.date_format = date_format

    def load(self):
        """Lee el CSV tal cual (sin conversiones) y valida el encabezado.
        Returns:
            pd.DataFrame: Datos crudos, una fila por línea.
        """
        if not self.data_path.exists():
            raise FileNotFoundError(f"CSV no encontrado: {self.data_path}")

        df = pd.read_csv(self.data_path, sep=self.delimiter, dtype=str, skipinitialspace=True)
        df.columns = df.columns.str.strip()
        logger.info("Original shape: %s", df.shape)

        missing = [c for c in RAW_COLUMN_MAP if c not in df.columns]
        if missing:
            raise DataCleaningError(f"Faltan columnas en {self.data_path}: {missing}")

        if df.isnull().sum().any():
            logger.warning("Missing values found:\n%s", df.isnull().sum()[df.isnull().sum() > 0])

        return df

    def recode_categories(self, df):
        """Convierte los códigos enteros en categorías ordenadas. Un código sin etiqueta es error."""
        df_clean = df.copy()

        for col, labels in CODED_COLUMNS.items():
            codes = pd.to_numeric(df_clean[col], errors="coerce")
            invalid_mask = codes.isna() | ~codes.isin(list(labels))
            if invalid_mask.any():
                bad = sorted(df_clean.loc[invalid_mask, col].astype(str).unique())
                raise DataCleaningError(
                    f"Código fuera de dominio en '{col}': {bad} "
                    f"(ids {_offending_ids(df_clean, invalid_mask)})"
                )
            df_clean[col] = codes.astype(int).map(labels).astype(CATEGORY_ORDER[col])

        return df_clean

    def parse_dates(self, df):
        """Parsea 'date' y deriva 'day_of_week' desde la fecha (no desde el código crudo)."""
        df_clean = df.copy()

        parsed = pd.to_datetime(df_clean["date"].str.strip(), format=self.date_format, errors="coerce")
        invalid_mask = parsed.isna()
        if invalid_mask.any():
            bad = df_clean.loc[invalid_mask, "date"].tolist()[:10]
            raise DataCleaningError(
                f"Fecha inválida (formato {self.date_format}): {bad} "
                f"(ids {_offending_ids(df_clean, invalid_mask)})"
            )

        df_clean["date"] = parsed.dt.normalize()
        df_clean["day_of_week"] = (
            parsed.dt.dayofweek.map(DAY_LABELS).astype(CATEGORY_ORDER["day_of_week"])
        )
        return df_clean

    def coerce_flags(self, df):
        """Convierte is_holiday / is_workday de 0/1 a booleano."""
        df_clean = df.copy()

        for col in BOOL_COLS:
            codes = pd.to_numeric(df_clean[col], errors="coerce")
            invalid_mask = ~codes.isin([0, 1])
            if invalid_mask.any():
                raise DataCleaningError(
                    f"'{col}' solo admite 0/1 (ids {_offending_ids(df_clean, invalid_mask)})"
                )
            df_clean[col] = codes.astype(int).astype(bool)

        return df_clean

    def coerce_numeric(self, df):
        """Convierte los campos numéricos guardados como texto a float y los conteos a int."""
        df_clean = df.copy()

        for col in NUM_COLS:
            text = df_clean[col].astype(str).str.strip()
            if self.decimal != ".":
                text = text.str.replace(self.decimal, ".", regex=False)
            values = pd.to_numeric(text, errors="coerce")
            invalid_mask = values.isna() | ~np.isfinite(values)
            if invalid_mask.any():
                bad = df_clean.loc[invalid_mask, col].tolist()[:10]
                raise DataCleaningError(
                    f"Valor no numérico en '{col}': {bad} (ids {_offending_ids(df_clean, invalid_mask)})"
                )
            df_clean[col] = values.astype("float64")

        for col in COUNT_COLS:
            values = pd.to_numeric(df_clean[col], errors="coerce")
            invalid_mask = (
                values.isna() | ~np.isfinite(values) | (values != values.round()) | (values < 0)
            )
            if invalid_mask.any():
                bad = df_clean.loc[invalid_mask, col].tolist()[:10]
                raise DataCleaningError(
                    f"Conteo inválido (entero >= 0) en '{col}': {bad} "
                    f"(ids {_offending_ids(df_clean, invalid_mask)})"
                )
            df_clean[col] = values.astype("int64")

        return df_clean

    def clean(self, df):
        """
        Aplica la limpieza secuencial al dataset crudo:
        1) Renombra columnas (RAW_COLUMN_MAP).
        2) Conteos y numéricos en texto -> int / float.
        3) Códigos categóricos -> categorías ordenadas.
        4) Fecha -> datetime y día de la semana derivado.
        5) Banderas 0/1 -> booleano.
        No modifica df; cualquier fila inválida detiene el proceso.
        """
        df_clean = df.rename(columns=RAW_COLUMN_MAP)
        df_clean = self.coerce_numeric(df_clean)
        df_clean = self.recode_categories(df_clean)
        df_clean = self.parse_dates(df_clean)
        df_clean = self.coerce_flags(df_clean)

        df_clean = df_clean[DAILY_RECORD_COLUMNS].reset_index(drop=True)
        logger.info("Cleaned shape: %s", df_clean.shape)
        return df_clean

    def clean_dataset(self):
        """Atajo: load() + clean()."""
        return self.clean(self.load())

    def save_cleaned(self, df, output_path):
        """Guarda la tabla limpia en CSV con la fecha en el formato original."""
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        out = df.copy()
        out["date"] = format_date(out["date"], self.date_format)
        out.to_csv(output_path, index=False)
        return output_path

    def load_cleaned(self, cleaned_path):
        """Relee un CSV limpio (escrito por save_cleaned) restaurando tipos y orden de categorías."""
        cleaned_path = Path(cleaned_path)
        if not cleaned_path.exists():
            raise FileNotFoundError(f"CSV limpio no encontrado: {cleaned_path}")

        df = pd.read_csv(cleaned_path, dtype={"year": str})
        missing = [c for c in DAILY_RECORD_COLUMNS if c not in df.columns]
        if missing:
            raise DataCleaningError(f"Faltan columnas en {cleaned_path}: {missing}")

        df["date"] = pd.to_datetime(df["date"], format=self.date_format)
        df[BOOL_COLS] = df[BOOL_COLS].astype(bool)
        return apply_category_order(df[DAILY_RECORD_COLUMNS])
