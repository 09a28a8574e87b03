import numpy as np
import pandas as pd
import pytest

from geofeaturekit.modeling import fit_ols, simple_ols, validate_feature_columns

def test_simple_ols_on_distance_feature():

	df = pd.DataFrame({
		"nn_crimes_3": [100.0, 250.0, 400.0, 550.0, 700.0, 850.0, 1000.0],
	})
	df["price"] = 90000 + 25 * df["nn_crimes_3"]

	results = simple_ols(df, "nn_crimes_3", "price")

	assert results["slope"] == pytest.approx(25.0)
	assert results["intercept"] == pytest.approx(90000.0)
	assert results["r2"] == pytest.approx(1.0)

	no_intercept = simple_ols(df, "nn_crimes_3", "price", intercept=False)
	assert no_intercept["intercept"] == 0

	df.loc[2, "nn_crimes_3"] = np.nan
	with pytest.raises(ValueError, match="missing values"):
		simple_ols(df, "nn_crimes_3", "price")
	with pytest.raises(ValueError, match="not found"):
		simple_ols(df, "within_crimes_660", "price")


def test_fit_ols_with_distance_features():

	rng = np.random.default_rng(3)
	n = 200
	df = pd.DataFrame({
		"nn_crimes_3": rng.uniform(100, 2000, n),
		"within_crimes_660": rng.integers(0, 20, n)
	})
	df["price"] = 50000 + 40 * df["nn_crimes_3"] - 1500 * df["within_crimes_660"] + rng.normal(0, 10, n)

	results = fit_ols(df, "price", ["nn_crimes_3", "within_crimes_660"])

	assert results.params["nn_crimes_3"] == pytest.approx(40, abs=0.1)
	assert results.params["within_crimes_660"] == pytest.approx(-1500, abs=5)
	assert results.rsquared > 0.99


def test_validate_feature_columns():

	df = pd.DataFrame({
		"ok": [1.0, 2.0, 3.0],
		"with_na": [1.0, None, 3.0],
		"text": ["a", "b", "c"],
		"flag": [True, False, True]
	})

	validate_feature_columns(df, ["ok"])

	with pytest.raises(ValueError, match="missing values"):
		validate_feature_columns(df, ["with_na"])
	with pytest.raises(ValueError, match="numeric"):
		validate_feature_columns(df, ["text"])
	with pytest.raises(ValueError, match="numeric"):
		validate_feature_columns(df, ["flag"])
	with pytest.raises(ValueError, match="not found"):
		validate_feature_columns(df, ["nope"])
	with pytest.raises(ValueError):
		fit_ols(df, "ok", [])
