import json
import os


UNIT_FACTORS = {"m": 1, "km": 0.001, "mile": 0.000621371, "ft": 3.28084}

K_POLICIES = ["error", "available"]

NN_METHODS = ["kdtree", "brute"]


def load_settings(path: str) -> dict:
  """
  Load a settings file (JSON) from disk.

  :param path: Path to the settings file.
  :type path: str
  :returns: The settings dictionary.
  :rtype: dict
  :raises FileNotFoundError: If the file does not exist.
  :raises ValueError: If the file does not contain a JSON object.
  """
  if not os.path.exists(path):
    raise FileNotFoundError(f"Settings file not found: {path}")
  with open(path, "r") as file:
    settings = json.load(file)
  if not isinstance(settings, dict):
    raise ValueError(f"Settings file must contain a JSON object, got {type(settings).__name__}")
  return settings


def get_key_field(settings: dict) -> str:
  return settings.get("key", "key")


def get_distance_unit(settings: dict) -> str | None:
  """
  Get the unit that radii are expressed in and that nearest-neighbor distances are reported in. None means native
  units of the working CRS.
  """
  unit = settings.get("unit")
  if unit is not None and unit not in UNIT_FACTORS:
    raise ValueError(f"Unsupported unit '{unit}'. Expected one of {list(UNIT_FACTORS.keys())}")
  return unit


def get_working_crs(settings: dict):
  return settings.get("crs")


def get_feature_entries(settings: dict) -> list[dict]:
  """
  Get the validated list of feature entries from `settings["features"]`.

  Each entry looks like::

    {"id": "crimes", "nn": [1, 2, 3], "radius": [660], "density": 1000, "k_policy": "error", "method": "kdtree"}

  :param settings: Settings dictionary.
  :type settings: dict
  :returns: List of feature entries, each with defaults filled in.
  :rtype: list[dict]
  :raises ValueError: If any entry is malformed.
  """
  entries = settings.get("features", [])
  if not isinstance(entries, list):
    raise ValueError("'features' must be a list of feature entries")
  return [_validate_feature_entry(entry) for entry in entries]


def get_fishnet_settings(settings: dict) -> dict | None:
  s_fishnet = settings.get("fishnet")
  if s_fishnet is None:
    return None
  if not isinstance(s_fishnet, dict):
    raise ValueError("'fishnet' must be a dictionary")
  cell_size = s_fishnet.get("cell_size")
  if cell_size is None:
    raise ValueError("No 'cell_size' found in fishnet settings.")
  if not isinstance(cell_size, (int, float)) or isinstance(cell_size, bool) or cell_size <= 0:
    raise ValueError(f"Fishnet 'cell_size' must be a positive number, got {cell_size!r}")
  return {
    "cell_size": cell_size,
    "clip": s_fishnet.get("clip", True),
    "features": [_validate_feature_entry(entry) for entry in s_fishnet.get("features", [])]
  }


def _validate_feature_entry(entry: dict) -> dict:
  if not isinstance(entry, dict):
    raise ValueError(f"Invalid feature entry: {entry}")
  _id = entry.get("id")
  if _id is None:
    raise ValueError("No 'id' found in feature entry.")

  nn = entry.get("nn", [])
  if isinstance(nn, int) and not isinstance(nn, bool):
    nn = [nn]
  if not isinstance(nn, list) or any(not isinstance(k, int) or isinstance(k, bool) or k < 1 for k in nn):
    raise ValueError(f"'nn' for feature '{_id}' must be a list of positive integers, got {nn!r}")

  radius = entry.get("radius", [])
  if isinstance(radius, (int, float)) and not isinstance(radius, bool):
    radius = [radius]
  if not isinstance(radius, list) or any(not isinstance(r, (int, float)) or isinstance(r, bool) or r <= 0 for r in radius):
    raise ValueError(f"'radius' for feature '{_id}' must be a list of positive numbers, got {radius!r}")

  density = entry.get("density")
  if density is not None and (not isinstance(density, (int, float)) or isinstance(density, bool) or density <= 0):
    raise ValueError(f"'density' bandwidth for feature '{_id}' must be a positive number, got {density!r}")

  k_policy = entry.get("k_policy", "error")
  if k_policy not in K_POLICIES:
    raise ValueError(f"Invalid k_policy '{k_policy}' for feature '{_id}'. Expected one of {K_POLICIES}")

  method = entry.get("method", "kdtree")
  if method not in NN_METHODS:
    raise ValueError(f"Invalid method '{method}' for feature '{_id}'. Expected one of {NN_METHODS}")

  return {
    "id": _id,
    "nn": nn,
    "radius": radius,
    "density": density,
    "count": entry.get("count", True),
    "k_policy": k_policy,
    "method": method
  }
