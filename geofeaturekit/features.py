import warnings

import geopandas as gpd
import pandas as pd

from geofeaturekit.buffers import count_within_radius
from geofeaturekit.density import kernel_density
from geofeaturekit.fishnet import aggregate_to_fishnet, create_fishnet, fishnet_centroids
from geofeaturekit.nearest import nn_distance_multi
from geofeaturekit.utilities.data import attach_column, check_unique_keys, format_radius
from geofeaturekit.utilities.geometry import PointSet, crs_unit_factor, ensure_projected, \
  is_likely_epsg4326
from geofeaturekit.utilities.settings import UNIT_FACTORS, get_distance_unit, get_feature_entries, \
  get_fishnet_settings, get_key_field, get_working_crs
from geofeaturekit.utilities.timing import TimingData


def enrich_spatial_features(
    gdf_in: gpd.GeoDataFrame,
    dataframes: dict[str, gpd.GeoDataFrame],
    settings: dict,
    verbose: bool = False
) -> gpd.GeoDataFrame:
  """
  Attach the nearest-neighbor, buffer-count and density features listed in `settings["features"]` to every row of
  a GeoDataFrame.

  For each entry with id ``X`` the following columns are added:

  - ``nn_X_{k}`` for every k in ``nn``: mean distance to the k nearest points of layer X
  - ``within_X_{r}`` for every r in ``radius``: number of points of layer X within r
  - ``density_X`` if ``density`` (a bandwidth) is set: kernel density of layer X

  All layers are transformed to one projected CRS first: ``settings["crs"]`` if given, otherwise the base layer's
  own CRS (or its local UTM zone if it is geographic). Radii, bandwidths and output distances use
  ``settings["unit"]`` when set, and native CRS units otherwise.

  :param gdf_in: Base GeoDataFrame, with a unique key column.
  :type gdf_in: geopandas.GeoDataFrame
  :param dataframes: Reference layers by id.
  :type dataframes: dict[str, geopandas.GeoDataFrame]
  :param settings: Settings dictionary.
  :type settings: dict
  :param verbose: Print progress.
  :type verbose: bool
  :returns: Copy of `gdf_in`, in its original CRS, with the feature columns added.
  :rtype: geopandas.GeoDataFrame
  :raises ValueError: If the settings are malformed, a layer is missing, keys are duplicated, or a feature cannot be
    computed.
  """
  key = get_key_field(settings)
  check_unique_keys(gdf_in, key, "base dataframe")
  entries = get_feature_entries(settings)
  unit = get_distance_unit(settings)

  gdf = gdf_in.copy()
  if len(entries) == 0:
    return gdf

  t = TimingData()
  t.start("setup")
  gdf_projected = ensure_projected(gdf, get_working_crs(settings))
  crs = gdf_projected.crs
  target = PointSet.from_geodataframe(gdf_projected)
  t.stop("setup")

  if verbose:
    print(f"Performing spatial feature calculations for {len(target)} rows...")
    if crs is not None:
      print(f"Calculation CRS: {crs.name}")

  for entry in entries:
    _id = entry["id"]
    t.start(_id)
    reference = _get_reference_points(dataframes, _id, crs)
    if verbose:
      print(f"--> {_id} ({len(reference)} points)")
    _add_point_features(gdf, target, reference, entry, unit, verbose)
    t.stop(_id)
    if verbose:
      print(f"--> {_id} done ({t.get(_id):.2f}s)")

  if verbose:
    print(t.print())
  return gdf


def build_fishnet_features(
    gdf_boundary: gpd.GeoDataFrame,
    dataframes: dict[str, gpd.GeoDataFrame],
    settings: dict,
    verbose: bool = False
) -> gpd.GeoDataFrame:
  """
  Build the fishnet described by `settings["fishnet"]` over a boundary layer and attach features to each cell.

  For each entry with id ``X`` in ``settings["fishnet"]["features"]``, the fishnet receives ``count_X`` (points of
  layer X in the cell, zero-filled) unless the entry sets ``"count": false``, plus the same ``nn_X_{k}``,
  ``within_X_{r}`` and ``density_X`` columns as `enrich_spatial_features`, measured from each cell's centroid.

  :param gdf_boundary: Region to tile.
  :type gdf_boundary: geopandas.GeoDataFrame
  :param dataframes: Reference layers by id.
  :type dataframes: dict[str, geopandas.GeoDataFrame]
  :param settings: Settings dictionary, must contain "fishnet".
  :type settings: dict
  :param verbose: Print progress.
  :type verbose: bool
  :returns: Fishnet in the working CRS with the feature columns added.
  :rtype: geopandas.GeoDataFrame
  """
  s_fishnet = get_fishnet_settings(settings)
  if s_fishnet is None:
    raise ValueError("No 'fishnet' entry found in settings.")
  unit = get_distance_unit(settings)

  boundary = ensure_projected(gdf_boundary, get_working_crs(settings))
  crs = boundary.crs
  cell_size = _to_crs_units(s_fishnet["cell_size"], unit, crs)

  fishnet = create_fishnet(boundary, cell_size, clip=s_fishnet["clip"], verbose=verbose)
  centroids = fishnet_centroids(fishnet)

  for entry in s_fishnet["features"]:
    _id = entry["id"]
    reference = _get_reference_points(dataframes, _id, crs)
    if verbose:
      print(f"--> {_id} ({len(reference)} points)")
    if entry["count"]:
      fishnet = aggregate_to_fishnet(fishnet, reference, f"count_{_id}")
    _add_point_features(fishnet, centroids, reference, entry, unit, verbose)

  return fishnet


def _get_reference_points(dataframes: dict, _id: str, crs) -> PointSet:
  if _id not in dataframes:
    raise ValueError(f"Feature layer '{_id}' not found in dataframes.")
  gdf_ref = dataframes[_id]
  if not isinstance(gdf_ref, (gpd.GeoDataFrame, gpd.GeoSeries)):
    raise TypeError(f"Feature layer '{_id}' must be a GeoDataFrame, got {type(gdf_ref).__name__}")
  if gdf_ref.crs is None:
    if crs is not None and is_likely_epsg4326(gdf_ref):
      warnings.warn(f"Feature layer '{_id}' has no CRS but looks like longitude/latitude, assuming EPSG:4326")
      gdf_ref = gdf_ref.set_crs("EPSG:4326").to_crs(crs)
    elif crs is not None:
      raise ValueError(f"Feature layer '{_id}' has no CRS and cannot be aligned with the working CRS ({crs.name})")
  elif crs is None:
    raise ValueError(f"Feature layer '{_id}' has a CRS but the base layer does not")
  else:
    gdf_ref = gdf_ref.to_crs(crs)
  return PointSet.from_geodataframe(gdf_ref)


def _add_point_features(
    df: pd.DataFrame,
    target: PointSet,
    reference: PointSet,
    entry: dict,
    unit: str | None,
    verbose: bool
):
  _id = entry["id"]
  crs = target.crs

  if len(entry["nn"]) > 0:
    df_nn = nn_distance_multi(
      target,
      reference,
      entry["nn"],
      method=entry["method"],
      k_policy=entry["k_policy"],
      prefix=f"nn_{_id}"
    )
    for col in df_nn.columns:
      attach_column(df, col, _from_crs_units(df_nn[col].values, unit, crs))
    if verbose:
      print(f"    nn: k={entry['nn']}")

  for radius in entry["radius"]:
    counts = count_within_radius(target, reference, _to_crs_units(radius, unit, crs))
    attach_column(df, f"within_{_id}_{format_radius(radius)}", counts)
    if verbose:
      print(f"    within {radius}: {int(counts.sum())} total matches")

  if entry["density"] is not None:
    bandwidth = _to_crs_units(entry["density"], unit, crs)
    attach_column(df, f"density_{_id}", kernel_density(target, reference, bandwidth))


def _to_crs_units(value, unit: str | None, crs):
  if unit is None:
    return value
  meters = value / UNIT_FACTORS[unit]
  return meters / crs_unit_factor(crs)


def _from_crs_units(value, unit: str | None, crs):
  if unit is None:
    return value
  meters = value * crs_unit_factor(crs)
  return meters * UNIT_FACTORS[unit]
