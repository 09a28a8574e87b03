import numpy as np
import pandas as pd
import geopandas as gpd
from libpysal.weights import KNN, Queen, Rook, W, lag_spatial
from esda.moran import Moran, Moran_Local

from geofeaturekit.utilities.geometry import PointSet

QUADRANT_LABELS = ["HH", "LL", "HL", "LH"]
NOT_SIGNIFICANT = "Not Significant"
SAC_LABELS = ["Negative SAC", "No SAC", "Positive SAC"]


def get_weights(gdf: gpd.GeoDataFrame, method: str = "queen", k: int = 8, transform: str = "R") -> W:
    """
    Build spatial weights for the rows of a GeoDataFrame.

    Args:
        gdf: Polygons (for contiguity weights) or any geometry (for kNN weights, measured between centroids)
        method: "queen" (shares a border or a vertex), "rook" (shares a border), or "knn"
        k: Number of neighbors for "knn"
        transform: Weights transformation, "R" row-standardizes (each row sums to 1), "B" keeps binary weights

    Returns:
        W: libpysal weights whose ids are the row positions 0..n-1
    """
    if len(gdf) < 2:
        raise ValueError("At least two observations are required to build spatial weights")

    if method == "queen":
        w = Queen.from_dataframe(gdf, use_index=False)
    elif method == "rook":
        w = Rook.from_dataframe(gdf, use_index=False)
    elif method == "knn":
        if k < 1 or k >= len(gdf):
            raise ValueError(f"k must be between 1 and {len(gdf) - 1} for {len(gdf)} observations, got {k}")
        coords = PointSet.from_geodataframe(gdf).coords
        w = KNN.from_array(np.array(coords), k=k)
    else:
        raise ValueError(f"Unknown weights method: {method}")

    w.transform = transform
    return w


def global_morans_i(values, w: W, permutations: int = 999, seed: int | None = None, two_tailed: bool = True) -> dict:
    """
    Global Moran's I for one variable.

    Args:
        values: One value per observation, aligned with the weights
        w: Spatial weights
        permutations: Number of random permutations for the pseudo p-value (0 to skip)
        seed: Random seed for the permutations
        two_tailed: Two-sided alternative for the analytical p-value

    Returns:
        dict: I, expected_I, z, p_norm, and p_sim (None when permutations is 0)
    """
    y = _check_values(values, w)
    if seed is not None:
        np.random.seed(seed)
    # esda resets w.transform to its own default unless told otherwise
    mi = Moran(y, w, transformation=w.transform, permutations=permutations, two_tailed=two_tailed)
    return {
        "I": float(mi.I),
        "expected_I": float(mi.EI),
        "z": float(mi.z_norm),
        "p_norm": float(mi.p_norm),
        "p_sim": float(mi.p_sim) if permutations > 0 else None
    }


def local_morans_i(
    gdf: gpd.GeoDataFrame,
    field: str,
    w: W,
    alpha: float = 0.05,
    permutations: int = 999,
    seed: int | None = None,
    z_threshold: float = 1.96
) -> gpd.GeoDataFrame:
    """
    Local Moran's I (LISA) for one variable, with cluster classification.

    Adds the following columns to a copy of `gdf`:

    - ``lisa_i``: local statistic
    - ``lisa_z``: z-score from the permutation distribution (NaN when every permuted statistic is identical, e.g.
      for a value exactly at the mean)
    - ``lisa_p``: pseudo p-value from the permutations
    - ``lisa_sac``: "Negative SAC" (z <= -z_threshold), "No SAC" (including undefined z), or "Positive SAC"
      (z > z_threshold)
    - ``lisa_quadrant``: "HH", "LL", "HL" or "LH" from the Moran scatterplot (standardized value vs. its spatial
      lag), or "Not Significant" when ``lisa_p > alpha``

    Args:
        gdf: Observations, aligned with the weights
        field: Column holding the variable
        w: Spatial weights
        alpha: Significance level for the quadrant classification
        permutations: Number of random permutations, at least 1
        seed: Random seed for the permutations
        z_threshold: Cutoff for the SAC classification

    Returns:
        gpd.GeoDataFrame: Copy of the input with the LISA columns added
    """
    if field not in gdf:
        raise ValueError(f"Field '{field}' not found in dataframe")
    if permutations < 1:
        raise ValueError("Local Moran's I needs at least one permutation to compute pseudo p-values")
    if not 0 < alpha < 1:
        raise ValueError(f"alpha must be between 0 and 1, got {alpha}")

    y = _check_values(gdf[field], w)
    lisa = Moran_Local(y, w, transformation=w.transform, permutations=permutations, seed=seed)

    df = gdf.copy()
    df["lisa_i"] = lisa.Is
    df["lisa_z"] = lisa.z_sim
    df["lisa_p"] = lisa.p_sim
    df["lisa_sac"] = sac_classes(lisa.z_sim, z_threshold)
    df["lisa_quadrant"] = moran_quadrants(y, w, lisa.p_sim, alpha)
    return df


def sac_classes(z_values, z_threshold: float = 1.96) -> np.ndarray:
    """Label z-scores "Negative SAC", "No SAC" or "Positive SAC". Undefined (non-finite) z-scores are "No SAC"."""
    z = np.asarray(z_values, dtype=np.float64)
    classes = pd.cut(z, bins=[-np.inf, -z_threshold, z_threshold, np.inf], labels=SAC_LABELS).astype(object)
    return np.where(np.isfinite(z), classes, "No SAC").astype(object)


def moran_quadrants(values, w: W, p_values, alpha: float = 0.05) -> np.ndarray:
    """
    Classify each observation by its Moran scatterplot quadrant: its standardized value against the spatial lag of
    the standardized values. Observations with p-value above `alpha` are "Not Significant".
    """
    y = np.asarray(values, dtype=np.float64)
    x = (y - y.mean()) / y.std(ddof=1)
    wx = lag_spatial(w, x)

    # on the axes (x == 0 or wx == 0) several rules match; LH, then HL, then LL take precedence over HH
    conditions = [
        (x <= 0) & (wx >= 0),
        (x >= 0) & (wx <= 0),
        (x <= 0) & (wx <= 0),
        (x >= 0) & (wx >= 0)
    ]
    quadrant = np.select(conditions, ["LH", "HL", "LL", "HH"], default=NOT_SIGNIFICANT).astype(object)
    quadrant[np.asarray(p_values) > alpha] = NOT_SIGNIFICANT
    return quadrant


def _check_values(values, w: W) -> np.ndarray:
    y = np.asarray(values, dtype=np.float64)
    if y.ndim != 1:
        raise ValueError(f"Expected a one-dimensional variable, got shape {y.shape}")
    if len(y) < 2:
        raise ValueError("At least two observations are required for Moran's I")
    if len(y) != w.n:
        raise ValueError(f"Variable has {len(y)} observations but the weights have {w.n}")
    if np.isnan(y).any():
        raise ValueError("Variable contains missing values")
    if np.ptp(y) == 0:
        raise ValueError("Variable is constant, Moran's I is undefined")
    return y
