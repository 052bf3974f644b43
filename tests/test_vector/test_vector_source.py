"""Test geometry sources and burn values."""

from __future__ import annotations

import logging
import os
from typing import Any

import geopandas as gpd
import numpy as np
import pytest
from pyproj import CRS
from shapely.geometry import LineString, MultiPolygon, Polygon, box

from polystats.exceptions import InvalidBurnValueError, MissingAttributeError
from polystats.vector import BurnValue, GeometryRecord, GeometrySource, list_class_fields


class TestBurnValue:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            (3, BurnValue("value", 3)),
            (np.int64(2**40), BurnValue("value", 2**40)),
            (True, BurnValue("value", 1)),
            (4.0, BurnValue("value", 4)),
            ("12", BurnValue("value", 12)),
            (" 7 ", BurnValue("value", 7)),
            (b"5", BurnValue("value", 5)),
            ("forest", BurnValue("default")),
            ("", BurnValue("default")),
        ],
    )  # type: ignore
    def test_resolve(self, raw: Any, expected: BurnValue) -> None:
        assert BurnValue.resolve(raw) == expected

    @pytest.mark.parametrize("raw", [None, np.nan, float("nan")])  # type: ignore
    def test_resolve_missing(self, raw: Any) -> None:
        with pytest.raises(MissingAttributeError, match="Attribute 'class' is missing"):
            BurnValue.resolve(raw)

    @pytest.mark.parametrize("raw", [1.5, [1], {"a": 1}])  # type: ignore
    def test_resolve_invalid(self, raw: Any) -> None:
        with pytest.raises(InvalidBurnValueError):
            BurnValue.resolve(raw)


class TestGeometrySource:

    poly1 = box(0, 0, 10, 10)
    poly2 = box(5, 5, 15, 15)
    gdf = gpd.GeoDataFrame(
        {
            "Class_Name": ["forest", "water"],
            "code": [1, 2],
            "area": [100.0, 100.0],
            "flag": [True, False],
            "id": [10, 20],
            "geometry": [poly1, poly2],
        },
        crs="EPSG:32631",
    )

    def test_list_class_fields(self) -> None:
        """Check only string and integer fields are listed, keyed by their normalized name."""

        fields = list_class_fields(self.gdf)
        assert fields == {"classname": "Class_Name", "code": "code", "id": "id"}

    def test_init(self) -> None:

        records = [GeometryRecord(self.poly1, fid=0, class_value=1), GeometryRecord(self.poly2, fid=1, class_value=2)]
        source = GeometrySource(records, crs=32631)
        assert len(source) == 2
        assert source[1].fid == 1
        assert [r.class_value for r in source] == [1, 2]
        assert source.crs is not None and source.crs.to_epsg() == 32631

        # Multipolygons are supported
        GeometrySource([GeometryRecord(MultiPolygon([self.poly1, box(20, 20, 30, 30)]), fid=0)])

        with pytest.raises(ValueError, match="Only polygon geometries"):
            GeometrySource([GeometryRecord(LineString([(0, 0), (1, 1)]), fid=0)])
        with pytest.raises(ValueError, match="unique"):
            GeometrySource([GeometryRecord(self.poly1, fid=0), GeometryRecord(self.poly2, fid=0)])

    def test_from_geodataframe(self) -> None:

        source = GeometrySource.from_geodataframe(self.gdf, class_field="code")
        assert [r.fid for r in source] == [0, 1]
        assert [r.class_value for r in source] == [1, 2]
        assert source[0].geometry.equals(self.poly1)

        source = GeometrySource.from_geodataframe(self.gdf, class_field="Class_Name", id_field="id")
        assert [r.fid for r in source] == [10, 20]
        assert [r.class_value for r in source] == ["forest", "water"]

        with pytest.raises(MissingAttributeError, match="Field 'klass' not found.*available fields"):
            GeometrySource.from_geodataframe(self.gdf, class_field="klass")

    def test_from_geodataframe_reproject(self) -> None:
        """Check geometries are reprojected to the given CRS."""

        source = GeometrySource.from_geodataframe(self.gdf, class_field="code", crs=32632)
        assert CRS(source.crs).equals(CRS.from_epsg(32632))
        expected = self.gdf.to_crs(32632).geometry.values[0]
        assert source[0].geometry.equals_exact(expected, tolerance=1e-6)

        # No reprojection for the same CRS
        source = GeometrySource.from_geodataframe(self.gdf, class_field="code", crs="EPSG:32631")
        assert source[1].geometry.equals(self.poly2)

        # A GeoDataFrame without CRS is assumed to be in the given CRS
        gdf_no_crs = gpd.GeoDataFrame({"code": [1, 2], "geometry": [self.poly1, self.poly2]})
        source = GeometrySource.from_geodataframe(gdf_no_crs, class_field="code", crs=32631)
        assert source.crs is not None and source.crs.to_epsg() == 32631

    def test_from_geodataframe_empty_geometry(self, caplog: pytest.LogCaptureFixture) -> None:

        gdf = gpd.GeoDataFrame({"code": [1, 2], "geometry": [Polygon(), self.poly2]}, crs="EPSG:32631")
        with caplog.at_level(logging.WARNING):
            source = GeometrySource.from_geodataframe(gdf, class_field="code")
        assert len(source) == 1
        assert source[0].fid == 1
        assert "empty geometry" in caplog.text

    def test_from_file(self, tmp_path: str) -> None:

        path = os.path.join(tmp_path, "polygons.gpkg")
        self.gdf.to_file(path, layer="polygons")

        source = GeometrySource.from_file(path, class_field="code", layer="polygons")
        assert len(source) == 2
        assert [r.class_value for r in source] == [1, 2]
        assert source.crs is not None and source.crs.to_epsg() == 32631
