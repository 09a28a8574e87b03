import math

import numpy as np
from scipy.spatial import cKDTree

from geofeaturekit.utilities.geometry import as_point_set, check_same_crs


# Relative padding on the index query radius; candidates are then filtered on exact distance.
_RADIUS_SLACK = 1e-9


def count_within_radius(target, reference, radius: float) -> np.ndarray:
  """
  Count, for every target point, the reference points that lie within a fixed radius of it.

  The buffer is closed: a reference point at exactly `radius` from the target is counted. An empty reference set is
  not an error and yields a count of zero for every target point.

  :param target: Points to count around (PointSet, GeoDataFrame, GeoSeries, or (n, 2) array).
  :param reference: Points to count.
  :param radius: Buffer radius in units of the shared projected CRS. Must be positive.
  :type radius: float
  :returns: Integer counts, one per target point, in target order.
  :rtype: numpy.ndarray
  :raises ValueError: If the radius is not a positive finite number or the coordinate systems do not match.
  """
  if isinstance(radius, bool) or not isinstance(radius, (int, float, np.number)):
    raise TypeError(f"radius must be a number, got {type(radius).__name__}")
  if not math.isfinite(radius) or radius <= 0:
    raise ValueError(f"radius must be a positive finite number, got {radius}")

  target = as_point_set(target)
  reference = as_point_set(reference)
  check_same_crs(target, reference)

  n_target = len(target)
  if n_target == 0 or len(reference) == 0:
    return np.zeros(n_target, dtype=np.int64)

  tree = cKDTree(reference.coords)
  neighbors = tree.query_ball_point(target.coords, r=radius * (1.0 + _RADIUS_SLACK))

  lengths = np.fromiter((len(n) for n in neighbors), dtype=np.int64, count=n_target)
  if lengths.sum() == 0:
    return np.zeros(n_target, dtype=np.int64)

  rows = np.repeat(np.arange(n_target), lengths)
  cols = np.concatenate([np.asarray(n, dtype=np.int64) for n in neighbors])
  diff = target.coords[rows] - reference.coords[cols]
  inside = np.hypot(diff[:, 0], diff[:, 1]) <= radius

  return np.bincount(rows[inside], minlength=n_target).astype(np.int64)
