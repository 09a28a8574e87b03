import numpy as np
import pandas as pd


def check_unique_keys(df: pd.DataFrame, key: str, label: str = "dataframe"):
  """
  Verify that a key column exists and has no duplicates.

  :param df: Input DataFrame.
  :type df: pandas.DataFrame
  :param key: Name of the key column.
  :type key: str
  :param label: Name used for the DataFrame in error messages.
  :type label: str
  :raises ValueError: If the key column is missing or contains duplicates.
  """
  if key not in df:
    raise ValueError(f"Key field '{key}' not found in {label}.")
  n_dupes = df.duplicated(subset=key).sum()
  if n_dupes > 0:
    raise ValueError(f"Found {n_dupes} duplicate keys for key \"{key}\" in {label}. De-duplicate and try again.")


def attach_column(df: pd.DataFrame, field: str, values: np.ndarray | pd.Series, overwrite: bool = False) -> pd.DataFrame:
  """
  Attach a feature column to a DataFrame, aligned positionally with its rows.

  :param df: DataFrame to modify in place.
  :type df: pandas.DataFrame
  :param field: Name of the new column.
  :type field: str
  :param values: Values in row order, one per row.
  :type values: numpy.ndarray or pandas.Series
  :param overwrite: Allow replacing an existing column.
  :type overwrite: bool
  :returns: The same DataFrame.
  :rtype: pandas.DataFrame
  :raises ValueError: If the column exists and overwrite is False, or if the length does not match.
  """
  if field in df and not overwrite:
    raise ValueError(f"Field '{field}' already exists in base dataframe.")
  values = np.asarray(values)
  if len(values) != len(df):
    raise ValueError(f"Length of values for '{field}' ({len(values)}) does not match dataframe length ({len(df)})")
  df[field] = pd.Series(values, index=df.index)
  return df


def format_radius(radius: float) -> str:
  """Format a radius for use in a column name: 660 -> "660", 0.25 -> "0_25"."""
  if float(radius).is_integer():
    return str(int(radius))
  return f"{radius:g}".replace(".", "_")
