"""
Tests for the boundary and bathymetry fetchers.

HTTP calls are mocked; no network access is needed.
"""

from unittest.mock import Mock, patch

import numpy as np
import pytest
import requests

from marine_sdm.errors import ExternalDataError
from marine_sdm.geodata import (
    Bathymetry,
    fetch_bathymetry,
    fetch_coastlines,
    fetch_country_boundaries,
    parse_etopo_csv,
)

SQUARE = {
    "type": "FeatureCollection",
    "features": [{
        "type": "Feature",
        "properties": {"GID_0": "DNK", "COUNTRY": "Denmark"},
        "geometry": {
            "type": "Polygon",
            "coordinates": [[[10.0, 55.0], [11.0, 55.0], [11.0, 56.0], [10.0, 56.0], [10.0, 55.0]]],
        },
    }],
}

ETOPO_CSV = """latitude,longitude,altitude
degrees_north,degrees_east,m
55.0,10.0,-20.0
55.0,10.5,-35.0
55.0,11.0,-5.0
55.5,10.0,-12.0
55.5,10.5,-60.0
55.5,11.0,3.0
"""


def _response(json_data=None, text=None):
    response = Mock()
    response.json.return_value = json_data
    response.text = text
    response.raise_for_status.return_value = None
    return response


@patch("marine_sdm.geodata.requests.get")
def test_fetch_country_boundaries(mock_get):
    """Test that a GADM response becomes a GeoDataFrame in EPSG:4326."""
    mock_get.return_value = _response(json_data=SQUARE)

    boundaries = fetch_country_boundaries("dnk", level=0)

    assert len(boundaries) == 1
    assert boundaries.crs.to_epsg() == 4326
    assert boundaries.iloc[0]["COUNTRY"] == "Denmark"
    assert "gadm41_DNK_0.json" in mock_get.call_args[0][0]


@patch("marine_sdm.geodata.requests.get")
def test_fetch_country_boundaries_cache(mock_get, tmp_path):
    """Test that a cached GeoJSON is used on the second call."""
    mock_get.return_value = _response(json_data=SQUARE)

    fetch_country_boundaries("DNK", cache_dir=tmp_path)
    cached = fetch_country_boundaries("DNK", cache_dir=tmp_path)

    assert mock_get.call_count == 1
    assert len(cached) == 1
    assert (tmp_path / "gadm41_DNK_0.geojson").exists()


@patch("marine_sdm.geodata.requests.get")
def test_fetch_country_boundaries_http_error(mock_get):
    """Test that request failures surface as ExternalDataError."""
    mock_get.side_effect = requests.ConnectionError("unreachable")

    with pytest.raises(ExternalDataError, match="unreachable"):
        fetch_country_boundaries("DNK")


@patch("marine_sdm.geodata.requests.get")
def test_fetch_country_boundaries_bad_payload(mock_get):
    """Test that a response without features raises ExternalDataError."""
    mock_get.return_value = _response(json_data={"error": "not found"})

    with pytest.raises(ExternalDataError):
        fetch_country_boundaries("XXX")


@patch("marine_sdm.geodata.requests.get")
def test_fetch_coastlines(mock_get):
    """Test that several countries are concatenated and tagged."""
    mock_get.return_value = _response(json_data=SQUARE)

    coastlines = fetch_coastlines(["DNK", "SWE"])

    assert list(coastlines["iso"]) == ["DNK", "SWE"]
    assert mock_get.call_count == 2


def test_parse_etopo_csv():
    """Test the ERDDAP CSV is pivoted north-up with a matching transform."""
    bathymetry = parse_etopo_csv(ETOPO_CSV)

    assert bathymetry.depth.shape == (2, 3)
    np.testing.assert_allclose(bathymetry.lat, [55.5, 55.0])
    np.testing.assert_allclose(bathymetry.lon, [10.0, 10.5, 11.0])
    np.testing.assert_allclose(bathymetry.depth[0], [-12.0, -60.0, 3.0])
    assert bathymetry.transform.c == pytest.approx(9.75)
    assert bathymetry.transform.f == pytest.approx(55.75)


@patch("marine_sdm.geodata.requests.get")
def test_fetch_bathymetry_query(mock_get):
    """Test the griddap query and stride for a 2 arc-minute request."""
    mock_get.return_value = _response(text=ETOPO_CSV)

    bathymetry = fetch_bathymetry((10.0, 55.0, 11.0, 55.5), resolution=2.0)

    url = mock_get.call_args[0][0]
    assert "etopo180.csv" in url
    assert "(55.0):2:(55.5)" in url
    assert "(10.0):2:(11.0)" in url
    assert bathymetry.bbox == (10.0, 55.0, 11.0, 55.5)


@patch("marine_sdm.geodata.requests.get")
def test_fetch_bathymetry_cache_roundtrip(mock_get, tmp_path):
    """Test that the GeoTIFF cache reproduces the fetched grid."""
    mock_get.return_value = _response(text=ETOPO_CSV)
    cache = tmp_path / "bathy.tif"

    fetched = fetch_bathymetry((10.0, 55.0, 11.0, 55.5), cache_path=cache)
    cached = fetch_bathymetry((10.0, 55.0, 11.0, 55.5), cache_path=cache)

    assert mock_get.call_count == 1
    assert isinstance(cached, Bathymetry)
    np.testing.assert_allclose(cached.depth, fetched.depth)
    np.testing.assert_allclose(cached.lon, fetched.lon)
    np.testing.assert_allclose(cached.lat, fetched.lat)


@patch("marine_sdm.geodata.requests.get")
def test_fetch_bathymetry_http_error(mock_get):
    """Test that a server error surfaces as ExternalDataError."""
    response = Mock()
    response.raise_for_status.side_effect = requests.HTTPError("500 Server Error")
    mock_get.return_value = response

    with pytest.raises(ExternalDataError, match="500"):
        fetch_bathymetry((10.0, 55.0, 11.0, 55.5))


@patch("marine_sdm.geodata.requests.get")
def test_fetch_bathymetry_unexpected_columns(mock_get):
    mock_get.return_value = _response(text="a,b\nx,y\n1,2\n")

    with pytest.raises(ExternalDataError, match="columns"):
        fetch_bathymetry((10.0, 55.0, 11.0, 55.5))


def test_fetch_bathymetry_invalid_bbox():
    with pytest.raises(ValueError, match="Invalid bounding box"):
        fetch_bathymetry((11.0, 55.0, 10.0, 55.5))
