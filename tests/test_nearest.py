import warnings

import numpy as np
import geopandas as gpd
import pytest

from geofeaturekit.nearest import nn_distance, nn_distance_multi
from geofeaturekit.utilities.geometry import PointSet


def _random_points(n, seed):
  rng = np.random.default_rng(seed)
  return rng.uniform(0, 1000, size=(n, 2))


@pytest.mark.parametrize("method", ["kdtree", "brute"])
def test_nn_distance_average_of_two_nearest(method):
  target = [[0, 0]]
  reference = [[1, 0], [2, 0], [10, 0]]
  result = nn_distance(target, reference, k=2, method=method)
  assert result.shape == (1,)
  assert result[0] == pytest.approx(1.5)


@pytest.mark.parametrize("method", ["kdtree", "brute"])
def test_nn_distance_k1_is_closest_distance(method):
  target = _random_points(50, 1)
  reference = _random_points(200, 2)

  result = nn_distance(target, reference, k=1, method=method)

  diff = target[:, None, :] - reference[None, :, :]
  expected = np.sqrt((diff ** 2).sum(axis=2)).min(axis=1)
  assert np.allclose(result, expected)


def test_nn_distance_non_decreasing_in_k():
  target = _random_points(40, 3)
  reference = _random_points(100, 4)
  previous = nn_distance(target, reference, k=1)
  for k in range(2, 11):
    current = nn_distance(target, reference, k=k)
    assert np.all(current >= previous - 1e-9)
    previous = current


def test_nn_distance_is_deterministic():
  target = _random_points(30, 5)
  reference = _random_points(80, 6)
  first = nn_distance(target, reference, k=4)
  second = nn_distance(target, reference, k=4)
  assert np.array_equal(first, second)


def test_nn_distance_methods_agree():
  target = _random_points(1500, 7)
  reference = _random_points(300, 8)
  for k in [1, 3, 7]:
    kdtree = nn_distance(target, reference, k=k, method="kdtree")
    brute = nn_distance(target, reference, k=k, method="brute")
    assert np.allclose(kdtree, brute)


def test_nn_distance_preserves_target_order():
  reference = [[0, 0]]
  target = [[3, 4], [0, 1], [6, 8]]
  result = nn_distance(target, reference, k=1)
  assert np.allclose(result, [5.0, 1.0, 10.0])


def test_nn_distance_coincident_points_count_as_zero():
  result = nn_distance([[5, 5]], [[5, 5], [5, 5], [8, 9]], k=2)
  assert result[0] == 0.0


def test_nn_distance_ties_are_valid():
  result = nn_distance([[0, 0]], [[1, 0], [0, 1], [-1, 0], [0, -1]], k=3)
  assert result[0] == pytest.approx(1.0)


def test_nn_distance_k_exceeds_reference_raises_by_default():
  with pytest.raises(ValueError, match="Insufficient reference points"):
    nn_distance([[0, 0]], [[3, 4], [6, 8]], k=5)


def test_nn_distance_k_exceeds_reference_available_policy():
  with pytest.warns(UserWarning, match="exceeds"):
    result = nn_distance([[0, 0]], [[3, 4], [6, 8]], k=5, k_policy="available")
  assert result[0] == pytest.approx(7.5)


def test_nn_distance_k_equal_to_reference_size_does_not_warn():
  with warnings.catch_warnings():
    warnings.simplefilter("error")
    result = nn_distance([[0, 0]], [[3, 4], [6, 8]], k=2, k_policy="available")
  assert result[0] == pytest.approx(7.5)


def test_nn_distance_empty_reference_raises():
  with pytest.raises(ValueError, match="Insufficient reference points"):
    nn_distance([[0, 0]], np.empty((0, 2)), k=1)
  with pytest.raises(ValueError, match="Insufficient reference points"):
    nn_distance([[0, 0]], np.empty((0, 2)), k=1, k_policy="available")


def test_nn_distance_empty_target_raises():
  with pytest.raises(ValueError, match="Target point set is empty"):
    nn_distance(np.empty((0, 2)), [[0, 0]], k=1)


def test_nn_distance_invalid_k():
  with pytest.raises(ValueError):
    nn_distance([[0, 0]], [[1, 1]], k=0)
  with pytest.raises(ValueError):
    nn_distance([[0, 0]], [[1, 1]], k=-2)
  with pytest.raises(TypeError):
    nn_distance([[0, 0]], [[1, 1]], k=1.5)
  with pytest.raises(TypeError):
    nn_distance([[0, 0]], [[1, 1]], k=True)


def test_nn_distance_invalid_method_and_policy():
  with pytest.raises(ValueError, match="Invalid method"):
    nn_distance([[0, 0]], [[1, 1]], k=1, method="balltree")
  with pytest.raises(ValueError, match="Invalid k_policy"):
    nn_distance([[0, 0]], [[1, 1]], k=1, k_policy="clamp")


def test_nn_distance_rejects_mismatched_crs():
  target = PointSet([[0, 0]], crs="EPSG:32633")
  reference = PointSet([[1, 1]], crs="EPSG:3857")
  with pytest.raises(ValueError, match="different coordinate systems"):
    nn_distance(target, reference, k=1)


def test_nn_distance_rejects_geographic_crs():
  target = PointSet([[10.0, 50.0]], crs="EPSG:4326")
  reference = PointSet([[10.1, 50.1]], crs="EPSG:4326")
  with pytest.raises(ValueError, match="geographic"):
    nn_distance(target, reference, k=1)


def test_nn_distance_accepts_geodataframes():
  target = gpd.GeoDataFrame(geometry=gpd.points_from_xy([0, 10], [0, 0]), crs="EPSG:32633")
  reference = gpd.GeoDataFrame(geometry=gpd.points_from_xy([1, 12, 20], [0, 0, 0]), crs="EPSG:32633")
  result = nn_distance(target, reference, k=1)
  assert np.allclose(result, [1.0, 2.0])


def test_nn_distance_multi_matches_single_calls():
  target = _random_points(25, 9)
  reference = _random_points(60, 10)
  df = nn_distance_multi(target, reference, [1, 3, 5], prefix="nn_crimes")
  assert list(df.columns) == ["nn_crimes_1", "nn_crimes_3", "nn_crimes_5"]
  assert len(df) == 25
  for k in [1, 3, 5]:
    assert np.allclose(df[f"nn_crimes_{k}"].values, nn_distance(target, reference, k=k))


def test_nn_distance_multi_available_policy_clamps_each_k():
  with pytest.warns(UserWarning):
    df = nn_distance_multi([[0, 0]], [[3, 4], [6, 8]], [1, 2, 5], k_policy="available")
  assert df["nn_1"].iloc[0] == pytest.approx(5.0)
  assert df["nn_2"].iloc[0] == pytest.approx(7.5)
  assert df["nn_5"].iloc[0] == pytest.approx(7.5)


def test_nn_distance_multi_requires_ks():
  with pytest.raises(ValueError):
    nn_distance_multi([[0, 0]], [[1, 1]], [])
