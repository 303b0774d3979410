"""
Análisis exploratorio sobre la tabla DailyRecord limpia.
Funciones puras: no modifican el DataFrame recibido.
"""
import logging

import pandas as pd

from bikeshare_report.data import CATEGORY_ORDER, NUM_COLS
from bikeshare_report.modeling import TARGET_COL, fit_ols

logger = logging.getLogger(__name__)

FREQUENCY_COLS = ["season", "year", "month", "day_of_week", "weather", "is_holiday", "is_workday"]
WEEKEND = {"Sat", "Sun"}


def category_frequency(df, columns=None, decimals=2):
    """
    Porcentaje de filas por categoría, en el orden declarado.

    Returns:
        dict: columna -> pd.Series (índice = categoría, valores = % redondeado)
    """
    columns = columns or FREQUENCY_COLS
    tables = {}
    for col in columns:
        if col not in df.columns:
            raise KeyError(f"Columna '{col}' no existe. Columnas: {list(df.columns)}")
        share = df[col].value_counts(normalize=True, sort=False)
        if isinstance(df[col].dtype, pd.CategoricalDtype):
            share = share.reindex(df[col].cat.categories, fill_value=0.0)
        else:
            share = share.sort_index()
        tables[col] = (share * 100).round(decimals).rename("percent")
    return tables


def grouped_summary(df, by, target=TARGET_COL):
    """Estadísticos del target por categoría (base de los gráficos de violín/caja)."""
    grouped = df.groupby(by, observed=False)[target]
    summary = pd.DataFrame({
        "count": grouped.count(),
        "mean": grouped.mean(),
        "min": grouped.min(),
        "q1": grouped.quantile(0.25),
        "median": grouped.median(),
        "q3": grouped.quantile(0.75),
        "max": grouped.max(),
    })
    if by in CATEGORY_ORDER:
        summary = summary.reindex(CATEGORY_ORDER[by].categories)
    return summary


def simple_fit(df, column, target=TARGET_COL):
    """Recta target ~ column para superponer en el scatter. Retorna (slope, intercept)."""
    result = fit_ols(df, [column], target=target)
    return result.coefficient(column), result.intercept


def correlation_matrix(df, columns=None, target=TARGET_COL):
    columns = list(columns or NUM_COLS)
    return df[columns + [target]].corr(method="pearson")


def check_ride_totals(df):
    """Filas donde casual_rides + return_rides != total_rides."""
    mismatch = (df["casual_rides"] + df["return_rides"]) != df["total_rides"]
    if mismatch.any():
        logger.warning("%d filas con casual + return != total", int(mismatch.sum()))
    return df.loc[mismatch]


def workday_inconsistencies(df):
    """
    Filas donde is_workday no coincide con "día entre semana y no feriado",
    calculado desde day_of_week derivado de la fecha. Solo reporta; no corrige.
    """
    expected = ~df["day_of_week"].astype(str).isin(WEEKEND) & ~df["is_holiday"]
    mismatch = df["is_workday"] != expected
    if mismatch.any():
        logger.warning("%d filas con is_workday inconsistente con el calendario", int(mismatch.sum()))
    return df.loc[mismatch]
