"""
Geographic context layers: country boundaries (GADM) and bathymetry (NOAA ETOPO).
"""

import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

import geopandas as gpd
import numpy as np
import pandas as pd
import rasterio
import requests
from rasterio.crs import CRS
from rasterio.transform import Affine, from_origin

from .config import BATHYMETRY_RESOLUTION, GEOGRAPHIC_CRS
from .errors import ExternalDataError

logger = logging.getLogger(__name__)

GADM_URL = "https://geodata.ucdavis.edu/gadm/gadm4.1/json/gadm41_{iso}_{level}.json"
ERDDAP_URL = "https://coastwatch.pfeg.noaa.gov/erddap/griddap/etopo180.csv"
ETOPO_CELL_ARCMIN = 1.0
TIMEOUT = 60


def _get(url: str, params: Optional[dict] = None) -> requests.Response:
    try:
        response = requests.get(url, params=params, timeout=TIMEOUT)
        response.raise_for_status()
    except requests.RequestException as exc:
        raise ExternalDataError(f"Request to {url} failed: {exc}") from exc
    return response


def fetch_country_boundaries(
    iso_code: str,
    level: int = 0,
    cache_dir: Optional[Path] = None,
) -> gpd.GeoDataFrame:
    """
    Fetch administrative boundaries for one country from GADM.

    Args:
        iso_code: ISO 3166-1 alpha-3 country code (e.g., "DNK")
        level: Administrative level (0 = national outline)
        cache_dir: Optional directory to save/load the GeoJSON

    Returns:
        GeoDataFrame of boundary polygons in EPSG:4326
    """
    iso_code = iso_code.upper()
    cache_path = Path(cache_dir) / f"gadm41_{iso_code}_{level}.geojson" if cache_dir else None

    if cache_path and cache_path.exists():
        logger.info(f"Loading cached boundaries from {cache_path}")
        return gpd.read_file(cache_path)

    url = GADM_URL.format(iso=iso_code, level=level)
    logger.info(f"Fetching {iso_code} level-{level} boundaries from GADM...")
    response = _get(url)

    try:
        data = response.json()
        boundaries = gpd.GeoDataFrame.from_features(data["features"], crs=GEOGRAPHIC_CRS)
    except (ValueError, KeyError, TypeError) as exc:
        raise ExternalDataError(f"Unexpected boundary data for {iso_code}: {exc}") from exc

    if boundaries.empty:
        raise ExternalDataError(f"No boundary polygons returned for {iso_code} level {level}")

    if cache_path:
        cache_path.parent.mkdir(parents=True, exist_ok=True)
        boundaries.to_file(cache_path, driver="GeoJSON")
        logger.info(f"  Cached boundaries to {cache_path}")

    return boundaries


def fetch_coastlines(
    iso_codes: Iterable[str],
    level: int = 0,
    cache_dir: Optional[Path] = None,
) -> gpd.GeoDataFrame:
    """Fetch and concatenate boundaries for several countries."""
    frames = []
    for iso in iso_codes:
        frame = fetch_country_boundaries(iso, level=level, cache_dir=cache_dir)
        frame["iso"] = iso.upper()
        frames.append(frame)
    if not frames:
        raise ValueError("At least one country code is required")
    return gpd.GeoDataFrame(pd.concat(frames, ignore_index=True), crs=GEOGRAPHIC_CRS)


@dataclass
class Bathymetry:
    """Gridded depth (meters, negative below sea level) on a lon/lat grid."""

    lon: np.ndarray     # (W,) cell centres, ascending
    lat: np.ndarray     # (H,) cell centres, descending
    depth: np.ndarray   # (H, W)
    transform: Affine

    @property
    def bbox(self) -> tuple[float, float, float, float]:
        return (float(self.lon.min()), float(self.lat.min()), float(self.lon.max()), float(self.lat.max()))

    def save(self, path: Path) -> None:
        """Save the depth grid as a GeoTIFF."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with rasterio.open(
            path, "w",
            driver="GTiff",
            height=self.depth.shape[0],
            width=self.depth.shape[1],
            count=1,
            dtype=np.float32,
            crs=CRS.from_epsg(4326),
            transform=self.transform,
            compress="lzw",
        ) as dst:
            dst.write(self.depth.astype(np.float32), 1)
        logger.info(f"  Cached bathymetry to {path}")

    @classmethod
    def load(cls, path: Path) -> "Bathymetry":
        """Load a depth grid saved with ``save``."""
        with rasterio.open(path) as src:
            depth = src.read(1)
            transform = src.transform
        rows, cols = depth.shape
        lon = transform.c + transform.a * (np.arange(cols) + 0.5)
        lat = transform.f + transform.e * (np.arange(rows) + 0.5)
        return cls(lon=lon, lat=lat, depth=depth, transform=transform)


def parse_etopo_csv(text: str) -> Bathymetry:
    """
    Parse an ERDDAP griddap CSV response (latitude, longitude, altitude).

    The second line of the response holds units and is skipped.
    """
    table = pd.read_csv(io.StringIO(text), skiprows=[1])
    if not {"latitude", "longitude", "altitude"} <= set(table.columns):
        raise ExternalDataError(f"Unexpected bathymetry columns: {list(table.columns)}")

    grid = table.pivot_table(index="latitude", columns="longitude", values="altitude")
    grid = grid.sort_index(ascending=False)
    lon = grid.columns.to_numpy(dtype=float)
    lat = grid.index.to_numpy(dtype=float)
    if len(lon) < 2 or len(lat) < 2:
        raise ExternalDataError("Bathymetry response covers fewer than 2x2 cells")

    res_x = float(np.median(np.diff(lon)))
    res_y = float(np.median(-np.diff(lat)))
    transform = from_origin(lon[0] - res_x / 2, lat[0] + res_y / 2, res_x, res_y)
    return Bathymetry(lon=lon, lat=lat, depth=grid.to_numpy(dtype=float), transform=transform)


def fetch_bathymetry(
    bbox: tuple[float, float, float, float],
    resolution: float = BATHYMETRY_RESOLUTION,
    cache_path: Optional[Path] = None,
) -> Bathymetry:
    """
    Fetch ETOPO bathymetry for a bounding box from NOAA ERDDAP.

    Args:
        bbox: (min_lon, min_lat, max_lon, max_lat)
        resolution: Cell size in arc-minutes (multiples of 1)
        cache_path: Optional GeoTIFF path to save/load the grid

    Returns:
        Bathymetry grid
    """
    if cache_path and Path(cache_path).exists():
        logger.info(f"Loading cached bathymetry from {cache_path}")
        return Bathymetry.load(cache_path)

    min_lon, min_lat, max_lon, max_lat = bbox
    if min_lon >= max_lon or min_lat >= max_lat:
        raise ValueError(f"Invalid bounding box: {bbox}")

    stride = max(1, int(round(resolution / ETOPO_CELL_ARCMIN)))
    query = (
        f"altitude%5B({min_lat}):{stride}:({max_lat})%5D"
        f"%5B({min_lon}):{stride}:({max_lon})%5D"
    )
    logger.info(f"Fetching bathymetry from NOAA ERDDAP...")
    logger.info(f"  Bbox: lon [{min_lon:.3f}, {max_lon:.3f}], lat [{min_lat:.3f}, {max_lat:.3f}]")
    response = _get(f"{ERDDAP_URL}?{query}")

    try:
        bathymetry = parse_etopo_csv(response.text)
    except (ValueError, pd.errors.ParserError) as exc:
        raise ExternalDataError(f"Could not parse bathymetry response: {exc}") from exc

    logger.info(f"  Bathymetry grid: {bathymetry.depth.shape[0]} x {bathymetry.depth.shape[1]}")

    if cache_path:
        bathymetry.save(Path(cache_path))

    return bathymetry
