"""
Modelos de regresión lineal (OLS) sobre la tabla DailyRecord.
Clases incluidas: DesignMatrixBuilder, RegressionResult, ModelRunner.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np
import pandas as pd
import statsmodels.api as sm
from scipy import stats
from sklearn.compose import ColumnTransformer
from sklearn.metrics import mean_absolute_error, mean_squared_error
from sklearn.preprocessing import FunctionTransformer, OneHotEncoder

logger = logging.getLogger(__name__)

TARGET_COL = "total_rides"

MODEL_SEQUENCE = {
    "season": {
        "predictors": ["season"],
        "description": "Ridership by season (reference: Winter)",
    },
    "weather": {
        "predictors": ["weather"],
        "description": "Ridership by weather situation (reference: Clear)",
    },
    "month": {
        "predictors": ["month"],
        "description": "Ridership by month (reference: January)",
    },
    "temperature": {
        "predictors": ["temperature"],
        "description": "Linear effect of temperature",
    },
    "ambient_temp": {
        "predictors": ["ambient_temp"],
        "description": "Linear effect of feels-like temperature",
    },
    "temperature_year_weather": {
        "predictors": ["temperature", "year", "weather"],
        "description": "Temperature adjusted for year and weather",
    },
    "final": {
        "predictors": ["temperature", "year", "season", "weather"],
        "description": "Final four-predictor model",
    },
}
FINAL_MODEL = "final"


class ModelingError(ValueError):
    """Modelo que no se puede ajustar (matriz de diseño deficiente en rango, columnas faltantes...)."""


def _as_float(X):
    return np.asarray(X, dtype="float64")


class DesignMatrixBuilder:
    """Construye la matriz de diseño con ColumnTransformer.

    Los predictores categóricos se codifican con OneHotEncoder(drop='first') usando
    el orden declarado del dtype, de modo que la referencia es siempre la primera
    categoría. Los continuos y booleanos pasan como float.
    """

    def __init__(self, predictors):
        self.predictors = list(predictors)
        self.categorical_cols = []
        self.numerical_cols = []
        self.reference_levels = {}
        self.column_transformer = None

    def build(self, df):
        duplicated = sorted({p for p in self.predictors if self.predictors.count(p) > 1})
        if duplicated:
            raise ModelingError(f"Predictores duplicados: {duplicated}")
        missing = [p for p in self.predictors if p not in df.columns]
        if missing:
            raise ModelingError(f"Predictores inexistentes: {missing}")

        self.categorical_cols = [p for p in self.predictors if isinstance(df[p].dtype, pd.CategoricalDtype)]
        self.numerical_cols = [p for p in self.predictors if p not in self.categorical_cols]
        self.reference_levels = {c: df[c].cat.categories[0] for c in self.categorical_cols}

        transformers = []
        if self.numerical_cols:
            transformers.append(
                ("num", FunctionTransformer(_as_float, feature_names_out="one-to-one"), self.numerical_cols)
            )
        if self.categorical_cols:
            encoder = OneHotEncoder(
                categories=[list(df[c].cat.categories) for c in self.categorical_cols],
                drop="first",
                sparse_output=False,
            )
            transformers.append(("cat", encoder, self.categorical_cols))

        self.column_transformer = ColumnTransformer(
            transformers=transformers,
            remainder="drop",
            verbose_feature_names_out=False,
        )
        return self.column_transformer

    def transform(self, df):
        """Retorna la matriz de diseño (con constante) como DataFrame alineado al índice de df."""
        if self.column_transformer is None:
            self.build(df)
        matrix = self.column_transformer.fit_transform(df[self.predictors])
        columns = list(self.column_transformer.get_feature_names_out())
        X = pd.DataFrame(matrix, index=df.index, columns=columns)
        return sm.add_constant(X, has_constant="add")


def dependent_columns(X):
    """Columnas de X que son combinación lineal de las anteriores."""
    dependent = []
    kept = []
    for col in X.columns:
        candidate = kept + [col]
        if np.linalg.matrix_rank(X[candidate].to_numpy()) < len(candidate):
            dependent.append(col)
        else:
            kept.append(col)
    return dependent


@dataclass
class RegressionResult:
    """Estadísticos de un ajuste OLS.

    Atributos:
        coefficients: DataFrame con estimate, std_error, t_value, p_value.
        residuals: ajustado - observado, alineado al índice de entrada.
    """
    name: str
    predictors: List[str]
    coefficients: pd.DataFrame
    r_squared: float
    adj_r_squared: float
    f_statistic: float
    f_pvalue: float
    n_obs: int
    fitted: pd.Series
    residuals: pd.Series
    reference_levels: Dict[str, str] = field(default_factory=dict)
    description: str = ""

    @property
    def intercept(self):
        return float(self.coefficients.loc["const", "estimate"])

    def coefficient(self, name):
        return float(self.coefficients.loc[name, "estimate"])

    def to_dict(self):
        return {
            "name": self.name,
            "description": self.description,
            "predictors": self.predictors,
            "reference_levels": self.reference_levels,
            "n_obs": self.n_obs,
            "r_squared": self.r_squared,
            "adj_r_squared": self.adj_r_squared,
            "f_statistic": self.f_statistic,
            "f_pvalue": self.f_pvalue,
            "coefficients": {
                name: {k: float(v) for k, v in row.items()}
                for name, row in self.coefficients.iterrows()
            },
        }


def fit_ols(df, predictors, target=TARGET_COL, name=None, description=""):
    """
    Ajusta target ~ predictors por mínimos cuadrados ordinarios.

    Args:
        df: Tabla DailyRecord limpia.
        predictors: Lista explícita de columnas predictoras.
        target: Variable objetivo.
    Returns:
        RegressionResult
    Raises:
        ModelingError: tabla vacía, valores faltantes o matriz deficiente en rango.
    """
    predictors = list(predictors)
    if not predictors:
        raise ModelingError("Se requiere al menos un predictor")
    if target not in df.columns:
        raise ModelingError(f"Target '{target}' no existe. Columnas: {list(df.columns)}")
    if target in predictors:
        raise ModelingError(f"El target '{target}' no puede ser predictor")
    if df.empty:
        raise ModelingError("No se puede ajustar un modelo sobre una tabla vacía")

    builder = DesignMatrixBuilder(predictors)
    builder.build(df)
    subset = df[predictors + [target]]
    if subset.isnull().any().any():
        raise ModelingError(f"Valores faltantes en {list(subset.columns[subset.isnull().any()])}")

    X = builder.transform(df)
    y = df[target].astype("float64")

    if X.shape[0] <= X.shape[1]:
        raise ModelingError(
            f"Observaciones insuficientes ({X.shape[0]}) para {X.shape[1]} parámetros: {predictors}"
        )
    if np.linalg.matrix_rank(X.to_numpy()) < X.shape[1]:
        raise ModelingError(
            f"Matriz de diseño deficiente en rango para {predictors}; "
            f"columnas dependientes: {dependent_columns(X)}"
        )

    res = sm.OLS(y, X).fit()

    coefficients = pd.DataFrame(
        {
            "estimate": res.params,
            "std_error": res.bse,
            "t_value": res.tvalues,
            "p_value": res.pvalues,
        }
    )
    fitted = pd.Series(res.fittedvalues, index=df.index, name="fitted")

    result = RegressionResult(
        name=name or " + ".join(predictors),
        predictors=predictors,
        coefficients=coefficients,
        r_squared=float(res.rsquared),
        adj_r_squared=float(res.rsquared_adj),
        f_statistic=float(res.fvalue),
        f_pvalue=float(res.f_pvalue),
        n_obs=int(res.nobs),
        fitted=fitted,
        residuals=(fitted - y).rename("residual"),
        reference_levels={k: str(v) for k, v in builder.reference_levels.items()},
        description=description,
    )
    logger.info("[MODEL] %s: R2=%.4f adjR2=%.4f n=%d", result.name, result.r_squared, result.adj_r_squared, result.n_obs)
    return result


def residual_diagnostics(result: RegressionResult) -> dict:
    """RMSE, MAE, media de residuos y prueba de normalidad Shapiro-Wilk."""
    fitted = result.fitted
    observed = fitted - result.residuals
    resid = result.residuals.to_numpy()

    # shapiro está limitado a 5000 muestras
    sample = resid if len(resid) <= 5000 else np.random.default_rng(0).choice(resid, 5000, replace=False)
    if len(sample) >= 3:
        shapiro_stat, shapiro_p = stats.shapiro(sample)
    else:
        shapiro_stat, shapiro_p = np.nan, np.nan

    return {
        "rmse": float(np.sqrt(mean_squared_error(observed, fitted))),
        "mae": float(mean_absolute_error(observed, fitted)),
        "residual_mean": float(np.mean(resid)),
        "shapiro_stat": float(shapiro_stat),
        "shapiro_pvalue": float(shapiro_p),
    }


class ModelRunner:
    """Ajusta la secuencia de modelos declarada en MODEL_SEQUENCE."""

    def __init__(self, model_specs=None, target=TARGET_COL):
        self.model_specs = model_specs or MODEL_SEQUENCE
        self.target = target

    def run_sequence(self, df) -> Dict[str, RegressionResult]:
        results = {}
        for key, spec in self.model_specs.items():
            results[key] = fit_ols(
                df,
                spec["predictors"],
                target=self.target,
                name=key,
                description=spec.get("description", ""),
            )
        return results

    @staticmethod
    def comparison_table(results: Dict[str, RegressionResult]) -> pd.DataFrame:
        rows = []
        for key, res in results.items():
            rows.append({
                "Model": key,
                "Predictors": " + ".join(res.predictors),
                "N Predictors": len(res.predictors),
                "R2": res.r_squared,
                "Adj R2": res.adj_r_squared,
                "F": res.f_statistic,
                "p(F)": res.f_pvalue,
            })
        return pd.DataFrame(rows)

    def final(self, results: Dict[str, RegressionResult], key: Optional[str] = None) -> RegressionResult:
        if not results:
            raise ModelingError("No hay modelos ajustados")
        key = key or (FINAL_MODEL if FINAL_MODEL in results else list(results)[-1])
        if key not in results:
            raise KeyError(f"Modelo '{key}' no ajustado. Disponibles: {list(results)}")
        return results[key]
