import warnings
from dataclasses import dataclass

import numpy as np
import pandas as pd
import geopandas as gpd
import shapely
from pyproj import CRS


@dataclass(frozen=True, eq=False)
class PointSet:
  """
  An immutable, ordered set of 2D points expressed in a single planar coordinate reference system. Target points
  (rows to be enriched) and reference points (crime incidents, service requests, etc.) are both PointSets.

  Attributes:
      coords (np.ndarray): Array of shape (n, 2) holding the x/y coordinates, in order.
      crs (pyproj.CRS | None): The coordinate reference system. None means the caller asserts the coordinates are
        already planar and shared with whatever they are compared against.
  """
  coords: np.ndarray
  crs: CRS | None = None

  def __post_init__(self):
    coords = np.asarray(self.coords, dtype=np.float64)
    if coords.size == 0:
      coords = coords.reshape(0, 2)
    if coords.ndim != 2 or coords.shape[1] != 2:
      raise ValueError(f"PointSet coordinates must have shape (n, 2), got {coords.shape}")
    if not np.isfinite(coords).all():
      raise ValueError("PointSet coordinates must be finite (found NaN or infinite values)")
    coords = coords.copy()
    coords.flags.writeable = False
    object.__setattr__(self, "coords", coords)
    if self.crs is not None:
      object.__setattr__(self, "crs", CRS.from_user_input(self.crs))

  def __len__(self):
    return self.coords.shape[0]

  @property
  def x(self) -> np.ndarray:
    return self.coords[:, 0]

  @property
  def y(self) -> np.ndarray:
    return self.coords[:, 1]

  @classmethod
  def from_xy(cls, x, y, crs=None) -> "PointSet":
    x = np.asarray(x, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)
    if x.shape != y.shape:
      raise ValueError(f"x and y must have the same shape, got {x.shape} and {y.shape}")
    return cls(np.column_stack([x, y]), crs)

  @classmethod
  def from_geodataframe(cls, gdf: gpd.GeoDataFrame | gpd.GeoSeries) -> "PointSet":
    """
    Build a PointSet from the geometry of a GeoDataFrame or GeoSeries. Point geometries are used as-is, any other
    geometry type is represented by its centroid.

    :param gdf: Input GeoDataFrame or GeoSeries.
    :type gdf: geopandas.GeoDataFrame or geopandas.GeoSeries
    :returns: PointSet in the same row order and CRS as the input.
    :rtype: PointSet
    :raises ValueError: If any geometry is missing or empty.
    """
    geoms = gdf.geometry if isinstance(gdf, gpd.GeoDataFrame) else gdf
    if geoms.isna().any() or geoms.is_empty.any():
      n_bad = int(geoms.isna().sum() + geoms.is_empty.sum())
      raise ValueError(f"Found {n_bad} missing or empty geometries. Remove them before computing spatial features.")
    if len(geoms) > 0 and not (geoms.geom_type == "Point").all():
      geoms = geoms.centroid
    return cls(shapely.get_coordinates(geoms.values), geoms.crs)

  def to_geoseries(self, index=None) -> gpd.GeoSeries:
    return gpd.GeoSeries(gpd.points_from_xy(self.x, self.y), index=index, crs=self.crs)


def as_point_set(obj) -> PointSet:
  """Coerce a PointSet, GeoDataFrame, GeoSeries or (n, 2) array-like into a PointSet."""
  if isinstance(obj, PointSet):
    return obj
  if isinstance(obj, (gpd.GeoDataFrame, gpd.GeoSeries)):
    return PointSet.from_geodataframe(obj)
  if isinstance(obj, pd.DataFrame):
    raise TypeError("Plain DataFrames are not accepted, convert to a GeoDataFrame or pass an (n, 2) coordinate array")
  return PointSet(obj)


def is_likely_epsg4326(gdf: gpd.GeoDataFrame | gpd.GeoSeries) -> bool:
  """
  Guess whether a layer without a CRS holds longitude/latitude values.

  :param gdf: Input GeoDataFrame or GeoSeries.
  :returns: True if every coordinate falls within [-180, 180] x [-90, 90].
  :rtype: bool
  """
  if len(gdf) == 0:
    return False
  minx, miny, maxx, maxy = gdf.total_bounds
  return -180 <= minx <= maxx <= 180 and -90 <= miny <= maxy <= 90


def get_crs(gdf: gpd.GeoDataFrame | gpd.GeoSeries, projection_type: str) -> CRS:
  """
  Return a local projected CRS suited to the given measurement purpose, centered on the layer.

  :param gdf: Input GeoDataFrame or GeoSeries, must have a CRS.
  :type gdf: geopandas.GeoDataFrame
  :param projection_type: One of "equal_distance" (UTM zone of the layer) or "equal_area" (Lambert azimuthal
    equal-area centered on the layer).
  :type projection_type: str
  :returns: Projected coordinate reference system.
  :rtype: pyproj.CRS
  :raises ValueError: If the layer has no CRS or the projection type is unknown.
  """
  if gdf.crs is None:
    raise ValueError("Cannot determine a local projection for a layer without a CRS")
  if projection_type == "equal_distance":
    return gdf.estimate_utm_crs()
  elif projection_type == "equal_area":
    lon, lat = _get_center_lonlat(gdf)
    return CRS.from_proj4(f"+proj=laea +lat_0={lat} +lon_0={lon} +x_0=0 +y_0=0 +datum=WGS84 +units=m +no_defs")
  raise ValueError(f"Unknown projection type: {projection_type}")


def _get_center_lonlat(gdf):
  minx, miny, maxx, maxy = gdf.to_crs("EPSG:4326").total_bounds
  return (minx + maxx) / 2, (miny + maxy) / 2


def ensure_projected(gdf: gpd.GeoDataFrame, crs=None) -> gpd.GeoDataFrame:
  """
  Return the layer in a projected CRS. If `crs` is given the layer is transformed to it. Otherwise layers that are
  already projected are returned unchanged and geographic layers are transformed to their local UTM zone.
  """
  if crs is not None:
    if gdf.crs is None:
      raise ValueError("Cannot transform a layer without a CRS")
    return gdf.to_crs(crs)
  if gdf.crs is None:
    if is_likely_epsg4326(gdf):
      warnings.warn("Layer has no CRS but looks like longitude/latitude, assuming EPSG:4326")
      gdf = gdf.set_crs("EPSG:4326")
    else:
      return gdf
  if gdf.crs.is_geographic:
    return gdf.to_crs(get_crs(gdf, "equal_distance"))
  return gdf


def check_planar(crs: CRS | None, label: str = "layer"):
  if crs is None:
    return
  crs = CRS.from_user_input(crs)
  if crs.is_geographic:
    raise ValueError(f"The {label} uses a geographic CRS ({crs.name}). Distances would be in degrees; transform to a "
                     f"projected CRS first.")


def check_same_crs(a: PointSet, b: PointSet):
  """
  Verify that two point sets can be measured against each other.

  :raises ValueError: If either CRS is geographic, or both are set and differ.
  """
  check_planar(a.crs, "target set")
  check_planar(b.crs, "reference set")
  if a.crs is not None and b.crs is not None:
    if a.crs != b.crs:
      raise ValueError(f"Target and reference sets use different coordinate systems: \"{a.crs.name}\" vs "
                       f"\"{b.crs.name}\". Transform both to one projected CRS first.")
  elif (a.crs is None) != (b.crs is None):
    warnings.warn("Only one of the point sets has a CRS, assuming both share it")


def crs_unit_factor(crs: CRS | None) -> float:
  """Meters per unit of the CRS's first axis, or 1.0 when the CRS is unknown."""
  if crs is None:
    return 1.0
  axis_info = CRS.from_user_input(crs).axis_info
  if len(axis_info) == 0:
    return 1.0
  return axis_info[0].unit_conversion_factor
