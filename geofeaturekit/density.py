import math

import numpy as np
from sklearn.neighbors import KernelDensity

from geofeaturekit.utilities.geometry import as_point_set, check_same_crs


def kernel_density(target, reference, bandwidth: float, kernel: str = "gaussian") -> np.ndarray:
  """
  Estimate the density of reference points at every target point.

  :param target: Points to sample the density surface at.
  :param reference: Points the density surface is fitted to.
  :param bandwidth: Kernel bandwidth, in CRS units. Must be positive.
  :type bandwidth: float
  :param kernel: Any kernel accepted by sklearn's KernelDensity.
  :type kernel: str
  :returns: Density (points per squared CRS unit, normalized to integrate to 1) per target point. Zero everywhere
    when the reference set is empty.
  :rtype: numpy.ndarray
  """
  if isinstance(bandwidth, bool) or not isinstance(bandwidth, (int, float, np.number)):
    raise TypeError(f"bandwidth must be a number, got {type(bandwidth).__name__}")
  if not math.isfinite(bandwidth) or bandwidth <= 0:
    raise ValueError(f"bandwidth must be a positive finite number, got {bandwidth}")

  target = as_point_set(target)
  reference = as_point_set(reference)
  check_same_crs(target, reference)

  if len(target) == 0 or len(reference) == 0:
    return np.zeros(len(target), dtype=np.float64)

  kde = KernelDensity(bandwidth=bandwidth, kernel=kernel)
  kde.fit(reference.coords)
  return np.exp(kde.score_samples(target.coords))
