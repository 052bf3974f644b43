"""Configuration file for Pytest, with synthetic rasters and polygons shared by tests."""

from __future__ import annotations

import numpy as np
import pytest
import rasterio as rio
from shapely.geometry import box

from polystats import ArrayRasterSource, GeometryRecord, GeometrySource, Grid

# A 10 x 10 grid of 1 m pixels with upper-left corner at (0, 10)
TRANSFORM = rio.transform.from_origin(0, 10, 1, 1)
CRS = "EPSG:32631"
NODATA = -9999


@pytest.fixture()
def grid() -> Grid:
    return Grid(transform=TRANSFORM, shape=(10, 10), crs=CRS)


@pytest.fixture()
def values() -> np.ndarray:
    """Single band of values 1 to 100 in raster scan order, all valid."""
    return np.arange(1, 101, dtype="float32").reshape(10, 10)


@pytest.fixture()
def source(values: np.ndarray) -> ArrayRasterSource:
    return ArrayRasterSource(values, transform=TRANSFORM, crs=CRS, nodata=NODATA)


@pytest.fixture()
def source_nodata_rows(values: np.ndarray) -> ArrayRasterSource:
    """Same as source, with rows 0 and 1 marked as nodata."""
    data = values.copy()
    data[:2, :] = NODATA
    return ArrayRasterSource(data, transform=TRANSFORM, crs=CRS, nodata=NODATA)


@pytest.fixture()
def stripes() -> GeometrySource:
    """Polygon 0 of class 1 covering rows 0 to 4, polygon 1 of class 2 covering rows 5 to 9."""
    records = [
        GeometryRecord(geometry=box(0, 5, 10, 10), fid=0, class_value=1),
        GeometryRecord(geometry=box(0, 0, 10, 5), fid=1, class_value=2),
    ]
    return GeometrySource(records, crs=CRS)
