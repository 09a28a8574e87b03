import math

import numpy as np
import pandas as pd
import geopandas as gpd
import shapely
from shapely.geometry.base import BaseGeometry
from shapely.ops import unary_union

from geofeaturekit.utilities.geometry import PointSet, as_point_set, check_planar


def create_fishnet(boundary, cell_size: float, clip: bool = True, verbose: bool = False) -> gpd.GeoDataFrame:
  """
  Tile a boundary with square cells of a fixed size.

  The grid starts at the south-west corner of the boundary's bounding box. Cells that do not overlap the boundary
  (zero-area intersection) are dropped. Remaining cells receive a sequential `cell_id` in row-major order: rows run
  south to north, columns west to east within each row. Identical inputs always produce the identical grid.

  :param boundary: Region to tile. A GeoDataFrame, GeoSeries, or shapely geometry in a projected CRS.
  :param cell_size: Length of a cell's side, in CRS units. Must be positive.
  :type cell_size: float
  :param clip: If True, each cell's geometry is its intersection with the boundary; otherwise the full square.
  :type clip: bool
  :param verbose: Print progress.
  :type verbose: bool
  :returns: GeoDataFrame with columns `cell_id`, `row`, `col` and `geometry`, in the boundary's CRS.
  :rtype: geopandas.GeoDataFrame
  :raises ValueError: If the cell size is not positive, the boundary is empty, or the CRS is geographic.
  """
  if isinstance(cell_size, bool) or not isinstance(cell_size, (int, float, np.number)):
    raise TypeError(f"cell_size must be a number, got {type(cell_size).__name__}")
  if not math.isfinite(cell_size) or cell_size <= 0:
    raise ValueError(f"cell_size must be a positive finite number, got {cell_size}")

  geom, crs = _resolve_boundary(boundary)
  check_planar(crs, "boundary")

  minx, miny, maxx, maxy = geom.bounds
  n_cols = max(1, math.ceil((maxx - minx) / cell_size))
  n_rows = max(1, math.ceil((maxy - miny) / cell_size))

  # shared edge coordinates, so neighboring cells have bit-identical borders
  xs = minx + np.arange(n_cols + 1) * cell_size
  ys = miny + np.arange(n_rows + 1) * cell_size

  cols, rows = np.meshgrid(np.arange(n_cols), np.arange(n_rows))
  cols = cols.ravel()
  rows = rows.ravel()

  if verbose:
    print(f"Creating fishnet of {n_rows} rows x {n_cols} cols ({n_rows * n_cols} cells) at cell size {cell_size}...")

  cells = shapely.box(xs[cols], ys[rows], xs[cols + 1], ys[rows + 1])
  shapely.prepare(geom)
  clipped = shapely.intersection(cells, geom)
  keep = shapely.area(clipped) > 0

  if verbose:
    print(f"--> kept {keep.sum()} of {len(cells)} cells overlapping the boundary")

  geometry = clipped[keep] if clip else cells[keep]
  return gpd.GeoDataFrame(
    {
      "cell_id": np.arange(int(keep.sum()), dtype=np.int64),
      "row": rows[keep].astype(np.int64),
      "col": cols[keep].astype(np.int64)
    },
    geometry=geometry,
    crs=crs
  )


def fishnet_centroids(fishnet: gpd.GeoDataFrame) -> PointSet:
  """Cell centroids as a PointSet, in fishnet row order."""
  return PointSet.from_geodataframe(fishnet.geometry.centroid)


def count_points_in_polygons(
    polygons: gpd.GeoDataFrame,
    points,
    id_field: str,
    field: str = "count"
) -> gpd.GeoDataFrame:
  """
  Count the points that fall inside each polygon.

  Containment is closed, so a point on a polygon's edge counts. A point covered by more than one polygon (on a shared
  edge or corner) is attributed once, to the polygon with the lowest `id_field` value. Points outside every polygon
  are not counted. Polygons containing no points get an explicit count of zero.

  :param polygons: Non-overlapping polygons, e.g. a fishnet or neighborhoods.
  :type polygons: geopandas.GeoDataFrame
  :param points: Points to count (PointSet, GeoDataFrame, GeoSeries, or (n, 2) array).
  :param id_field: Unique identifier column of `polygons`.
  :type id_field: str
  :param field: Name of the count column to add.
  :type field: str
  :returns: Copy of `polygons` with the integer count column added.
  :rtype: geopandas.GeoDataFrame
  :raises ValueError: If `id_field` is missing or not unique, `field` already exists, or the CRSs differ.
  """
  if id_field not in polygons:
    raise ValueError(f"Field '{id_field}' not found in polygons.")
  if polygons[id_field].duplicated().any():
    raise ValueError(f"Field '{id_field}' must uniquely identify each polygon.")
  if field in polygons:
    raise ValueError(f"Field '{field}' already exists in polygons.")

  points = as_point_set(points)
  if points.crs is not None and polygons.crs is not None and points.crs != polygons.crs:
    raise ValueError(f"Polygons and points use different coordinate systems: \"{polygons.crs.name}\" vs "
                     f"\"{points.crs.name}\". Transform both to one projected CRS first.")

  result = polygons.copy()
  if len(points) == 0 or len(polygons) == 0:
    result[field] = np.zeros(len(result), dtype=np.int64)
    return result

  crs = polygons.crs if polygons.crs is not None else points.crs
  gdf_points = gpd.GeoDataFrame(
    {"__point_id__": np.arange(len(points))},
    geometry=gpd.points_from_xy(points.x, points.y),
    crs=crs
  )
  gdf_polys = gpd.GeoDataFrame(
    {"__poly_id__": polygons[id_field].values},
    geometry=polygons.geometry.values,
    crs=crs
  )

  joined = gpd.sjoin(gdf_points, gdf_polys, how="inner", predicate="intersects")
  joined = joined.drop(columns=["index_right"], errors="ignore")

  # a point on a shared edge matches several polygons; keep the lowest id
  joined = joined.sort_values(by=["__point_id__", "__poly_id__"], kind="stable")
  joined = joined.drop_duplicates(subset="__point_id__", keep="first")

  counts = joined.groupby("__poly_id__").size()
  result[field] = pd.Series(result[id_field].map(counts).fillna(0).astype(np.int64).values, index=result.index)
  return result


def aggregate_to_fishnet(fishnet: gpd.GeoDataFrame, points, field: str = "count") -> gpd.GeoDataFrame:
  """
  Count the points falling in each fishnet cell, with empty cells set to zero.

  :param fishnet: Fishnet produced by `create_fishnet`.
  :type fishnet: geopandas.GeoDataFrame
  :param points: Points to aggregate.
  :param field: Name of the count column to add.
  :type field: str
  :returns: Copy of the fishnet with the count column added.
  :rtype: geopandas.GeoDataFrame
  """
  return count_points_in_polygons(fishnet, points, "cell_id", field)


def _resolve_boundary(boundary) -> tuple[BaseGeometry, object]:
  if isinstance(boundary, (gpd.GeoDataFrame, gpd.GeoSeries)):
    crs = boundary.crs
    geoms = [g for g in boundary.geometry if g is not None and not g.is_empty]
    geom = unary_union(geoms) if len(geoms) > 0 else None
  elif isinstance(boundary, BaseGeometry):
    crs = None
    geom = boundary
  else:
    raise TypeError(f"Unsupported boundary type: {type(boundary).__name__}")

  if geom is None or geom.is_empty or geom.area <= 0:
    raise ValueError("Boundary is empty or has no area, cannot build a fishnet")
  return geom, crs
