import numpy as np
import pandas as pd
import statsmodels.api as sm
from statsmodels.regression.linear_model import RegressionResults


def simple_ols(
    df: pd.DataFrame,
    ind_var: str,
    dep_var: str,
    intercept: bool = True
) -> dict:
  """
  Fit a single-variable ordinary least squares regression.

  :param df: Input DataFrame.
  :type df: pandas.DataFrame
  :param ind_var: Independent variable.
  :type ind_var: str
  :param dep_var: Dependent variable.
  :type dep_var: str
  :param intercept: Whether to fit an intercept.
  :type intercept: bool
  :returns: Dictionary with slope, intercept, r2, adj_r2, pval, mse, rmse and std_err.
  :rtype: dict
  :raises ValueError: If either column is missing, non-numeric, or contains missing values.
  """
  model = fit_ols(df, dep_var, [ind_var], intercept=intercept)

  return {
    "slope": model.params[ind_var],
    "intercept": model.params["const"] if "const" in model.params else 0,
    "r2": model.rsquared,
    "adj_r2": model.rsquared_adj,
    "pval": model.pvalues[ind_var],
    "mse": model.mse_resid,
    "rmse": np.sqrt(model.mse_resid),
    "std_err": model.bse[ind_var]
  }


def fit_ols(df: pd.DataFrame, dep_var: str, ind_vars: list[str], intercept: bool = True) -> RegressionResults:
  """
  Fit an ordinary least squares regression of `dep_var` on `ind_vars`, after checking that every predictor is a
  usable numeric feature column.

  :param df: Input DataFrame.
  :type df: pandas.DataFrame
  :param dep_var: Dependent variable.
  :type dep_var: str
  :param ind_vars: Independent variables.
  :type ind_vars: list[str]
  :param intercept: Whether to fit an intercept.
  :type intercept: bool
  :returns: Fitted statsmodels results.
  :rtype: statsmodels.regression.linear_model.RegressionResults
  """
  if len(ind_vars) == 0:
    raise ValueError("At least one independent variable is required")
  validate_feature_columns(df, [dep_var] + list(ind_vars))
  y = df[dep_var].astype(np.float64)
  X = df[list(ind_vars)].astype(np.float64)
  if intercept:
    X = sm.add_constant(X, has_constant="add")
  return sm.OLS(y, X).fit()


def validate_feature_columns(df: pd.DataFrame, fields: list[str]):
  """
  Check that feature columns can be used directly as regression predictors: present, numeric, and free of missing
  values.

  :param df: Input DataFrame.
  :type df: pandas.DataFrame
  :param fields: Columns to check.
  :type fields: list[str]
  :raises ValueError: If a column is missing, non-numeric, or contains missing values.
  """
  missing = [field for field in fields if field not in df]
  if len(missing) > 0:
    raise ValueError(f"Feature columns not found in dataframe: {missing}")
  for field in fields:
    if pd.api.types.is_bool_dtype(df[field]) or not pd.api.types.is_numeric_dtype(df[field]):
      raise ValueError(f"Feature column '{field}' must be numeric (found: {df[field].dtype})")
    n_na = int(df[field].isna().sum())
    if n_na > 0:
      raise ValueError(f"Feature column '{field}' contains {n_na} missing values")
