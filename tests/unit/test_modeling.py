import numpy as np
import pandas as pd
import pytest

from bikeshare_report.modeling import (
    MODEL_SEQUENCE,
    DesignMatrixBuilder,
    ModelingError,
    ModelRunner,
    fit_ols,
    residual_diagnostics,
)


def test_temperature_model_recovers_known_coefficients(temperature_dataframe):
    print("\nTEST_OLS_SYNTHETIC_TEMPERATURE STARTED")
    result = fit_ols(temperature_dataframe, ["temperature"])

    assert result.coefficient("temperature") == pytest.approx(6000, rel=0.02)
    assert result.intercept == pytest.approx(1500, abs=60)
    assert result.r_squared > 0.95
    assert result.coefficients.loc["temperature", "p_value"] < 1e-6
    print("TEST_OLS_SYNTHETIC_TEMPERATURE PASSED")


def test_residuals_are_fitted_minus_observed(temperature_dataframe):
    result = fit_ols(temperature_dataframe, ["temperature"])
    expected = result.fitted - temperature_dataframe["total_rides"]

    pd.testing.assert_series_equal(result.residuals, expected.rename("residual"))
    assert result.residuals.index.equals(temperature_dataframe.index)


def test_categorical_dummies_drop_first_declared_level(cleaned_dataframe):
    builder = DesignMatrixBuilder(["season", "weather"])
    X = builder.transform(cleaned_dataframe)

    assert list(X.columns) == [
        "const",
        "season_Spring",
        "season_Summer",
        "season_Autumn",
        "weather_Overcast",
        "weather_Storm",
    ]
    assert builder.reference_levels == {"season": "Winter", "weather": "Clear"}


def test_single_categorical_model_matches_group_means(cleaned_dataframe):
    result = fit_ols(cleaned_dataframe, ["weather"])
    means = cleaned_dataframe.groupby("weather", observed=False)["total_rides"].mean()

    assert result.intercept == pytest.approx(means["Clear"])
    assert result.coefficient("weather_Storm") == pytest.approx(means["Storm"] - means["Clear"])


def test_statistics_are_reported(cleaned_dataframe):
    result = fit_ols(cleaned_dataframe, ["temperature", "year", "weather"])

    assert set(result.coefficients.columns) == {"estimate", "std_error", "t_value", "p_value"}
    assert 0 <= result.adj_r_squared <= result.r_squared <= 1
    assert result.f_statistic > 0
    assert 0 <= result.f_pvalue <= 1
    assert result.n_obs == len(cleaned_dataframe)


def test_collinear_predictors_raise(temperature_dataframe):
    df = temperature_dataframe.copy()
    df["temperature_copy"] = 2 * df["temperature"] + 1

    with pytest.raises(ModelingError, match="temperature_copy"):
        fit_ols(df, ["temperature", "temperature_copy"])


def test_duplicated_predictor_raises(temperature_dataframe):
    with pytest.raises(ModelingError, match="duplicados.*temperature"):
        fit_ols(temperature_dataframe, ["temperature", "temperature"])


def test_target_as_predictor_raises(temperature_dataframe):
    with pytest.raises(ModelingError, match="total_rides"):
        fit_ols(temperature_dataframe, ["temperature", "total_rides"])


def test_unused_category_level_is_rank_deficient(cleaned_dataframe):
    subset = cleaned_dataframe[cleaned_dataframe["weather"] != "Storm"]
    with pytest.raises(ModelingError, match="weather_Storm"):
        fit_ols(subset, ["weather"])


def test_unknown_predictor_raises(cleaned_dataframe):
    with pytest.raises(ModelingError):
        fit_ols(cleaned_dataframe, ["rainfall"])


def test_missing_values_raise(temperature_dataframe):
    df = temperature_dataframe.copy()
    df.loc[0, "temperature"] = np.nan
    with pytest.raises(ModelingError, match="faltantes"):
        fit_ols(df, ["temperature"])


def test_run_sequence_fits_every_declared_model(cleaned_dataframe):
    runner = ModelRunner()
    results = runner.run_sequence(cleaned_dataframe)

    assert list(results) == list(MODEL_SEQUENCE)
    assert results["final"].predictors == ["temperature", "year", "season", "weather"]
    assert results["final"].r_squared > results["temperature"].r_squared

    table = runner.comparison_table(results)
    assert list(table["Model"]) == list(MODEL_SEQUENCE)
    assert table.loc[table["Model"] == "final", "N Predictors"].item() == 4


def test_to_dict_is_json_friendly(temperature_dataframe):
    payload = fit_ols(temperature_dataframe, ["temperature"], name="temperature").to_dict()

    assert payload["name"] == "temperature"
    assert set(payload["coefficients"]) == {"const", "temperature"}
    assert isinstance(payload["coefficients"]["temperature"]["estimate"], float)


def test_residual_diagnostics(temperature_dataframe):
    diag = residual_diagnostics(fit_ols(temperature_dataframe, ["temperature"]))

    assert diag["rmse"] == pytest.approx(100, rel=0.15)
    assert abs(diag["residual_mean"]) < 1e-6
    assert 0 <= diag["shapiro_pvalue"] <= 1


def test_final_without_results_raises():
    with pytest.raises(ModelingError, match="No hay modelos"):
        ModelRunner().final({})
