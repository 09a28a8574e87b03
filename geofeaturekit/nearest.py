import warnings

import numpy as np
import pandas as pd
from scipy.spatial import cKDTree

from geofeaturekit.utilities.geometry import PointSet, as_point_set, check_same_crs


# Number of target rows per block when computing the full distance matrix.
_BRUTE_BLOCK_SIZE = 1024


def nn_distance(
    target,
    reference,
    k: int = 1,
    method: str = "kdtree",
    k_policy: str = "error"
) -> np.ndarray:
  """
  For every target point, compute the mean of the Euclidean distances to its k nearest reference points.

  Distances are measured in the units of the shared projected CRS. Nearest points are selected by ascending
  distance, with ties broken by reference order; the mean does not depend on how ties are broken. Reference points
  coincident with a target point are valid and contribute a distance of zero.

  :param target: Points to compute the feature for (PointSet, GeoDataFrame, GeoSeries, or (n, 2) array).
  :param reference: Points to measure distances to, same accepted types as `target`.
  :param k: Number of nearest reference points to average over. Must be at least 1.
  :type k: int
  :param method: "kdtree" (spatial index) or "brute" (full distance matrix). Both produce the same values.
  :type method: str
  :param k_policy: What to do when k exceeds the number of reference points. "error" raises, "available" averages
    over every reference point and warns.
  :type k_policy: str
  :returns: Array of mean distances, one per target point, in target order.
  :rtype: numpy.ndarray
  :raises ValueError: If either set is empty, k is out of range (under the "error" policy), the coordinate systems
    do not match, or an unknown method/policy is given.
  """
  target = as_point_set(target)
  reference = as_point_set(reference)
  _check_inputs(target, reference)
  k_eff = _resolve_k(k, len(reference), k_policy)
  distances = _knn_distances(target, reference, k_eff, method)
  return distances.mean(axis=1)


def nn_distance_multi(
    target,
    reference,
    ks: list[int],
    method: str = "kdtree",
    k_policy: str = "error",
    prefix: str = "nn"
) -> pd.DataFrame:
  """
  Compute the nearest-neighbor distance feature for several values of k with a single neighbor query.

  :param target: Points to compute the features for.
  :param reference: Points to measure distances to.
  :param ks: Values of k, each at least 1.
  :type ks: list[int]
  :param method: "kdtree" or "brute".
  :type method: str
  :param k_policy: "error" or "available", applied to each k.
  :type k_policy: str
  :param prefix: Column name prefix, columns are named ``{prefix}_{k}``.
  :type prefix: str
  :returns: DataFrame with one column per k, one row per target point in target order.
  :rtype: pandas.DataFrame
  """
  if len(ks) == 0:
    raise ValueError("At least one value of k is required")
  target = as_point_set(target)
  reference = as_point_set(reference)
  _check_inputs(target, reference)

  resolved = {k: _resolve_k(k, len(reference), k_policy) for k in ks}
  distances = _knn_distances(target, reference, max(resolved.values()), method)

  # mean over the first k columns for every k at once
  running_mean = np.cumsum(distances, axis=1) / np.arange(1, distances.shape[1] + 1)

  columns = {}
  for k in ks:
    columns[f"{prefix}_{k}"] = running_mean[:, resolved[k] - 1]
  return pd.DataFrame(columns)


def _check_inputs(target: PointSet, reference: PointSet):
  if len(target) == 0:
    raise ValueError("Target point set is empty")
  if len(reference) == 0:
    raise ValueError("Insufficient reference points: the reference point set is empty")
  check_same_crs(target, reference)


def _resolve_k(k: int, n_reference: int, k_policy: str) -> int:
  if isinstance(k, (bool, np.bool_)) or not isinstance(k, (int, np.integer)):
    raise TypeError(f"k must be an integer, got {type(k).__name__}")
  if k < 1:
    raise ValueError(f"k must be at least 1, got {k}")
  if k_policy not in ("error", "available"):
    raise ValueError(f"Invalid k_policy: {k_policy}. Expected 'error' or 'available'")
  if k > n_reference:
    if k_policy == "error":
      raise ValueError(f"Insufficient reference points: k={k} requested but only {n_reference} available")
    warnings.warn(f"k={k} exceeds the {n_reference} available reference points, averaging over all {n_reference}")
    return n_reference
  return int(k)


def _knn_distances(target: PointSet, reference: PointSet, k: int, method: str) -> np.ndarray:
  """Sorted distances to the k nearest reference points, shape (n_target, k)."""
  if method == "kdtree":
    return _knn_distances_kdtree(target, reference, k)
  elif method == "brute":
    return _knn_distances_brute(target, reference, k)
  raise ValueError(f"Invalid method: {method}. Expected 'kdtree' or 'brute'")


def _knn_distances_kdtree(target: PointSet, reference: PointSet, k: int) -> np.ndarray:
  tree = cKDTree(reference.coords)
  distances, _ = tree.query(target.coords, k=k)

  # query() drops the neighbor axis when k == 1
  if k == 1:
    distances = distances[:, None]
  return distances


def _knn_distances_brute(target: PointSet, reference: PointSet, k: int) -> np.ndarray:
  out = np.empty((len(target), k), dtype=np.float64)
  for start in range(0, len(target), _BRUTE_BLOCK_SIZE):
    block = target.coords[start:start + _BRUTE_BLOCK_SIZE]
    diff = block[:, None, :] - reference.coords[None, :, :]
    dist = np.hypot(diff[..., 0], diff[..., 1])
    order = np.argsort(dist, axis=1, kind="stable")[:, :k]
    out[start:start + len(block)] = np.take_along_axis(dist, order, axis=1)
  return out
