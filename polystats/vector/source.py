# Copyright (c) 2026 polystats developers
#
# This file is part of the polystats project.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
#
# You may obtain a copy of the License at
#
# http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Geometry sources: polygons in the grid CRS, each carrying a feature identifier and a class value.
"""

from __future__ import annotations

import logging
import math
import os
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from typing import Any, Literal

import geopandas as gpd
import numpy as np
import pandas as pd
from pandas.api.types import is_integer_dtype, is_object_dtype, is_string_dtype
from rasterio.crs import CRS
from shapely.geometry.base import BaseGeometry

from polystats.exceptions import InvalidBurnValueError, MissingAttributeError
from polystats.grid import _cast_crs, compare_proj

_POLYGON_TYPES = ("Polygon", "MultiPolygon")


@dataclass(frozen=True)
class GeometryRecord:
    """
    A polygon with its feature identifier and class value.

    :param geometry: Polygon or multipolygon, in the CRS of the grid it is rasterized on.
    :param fid: Feature identifier, unique in the geometry source.
    :param class_value: Raw class attribute value (string or integer), None if absent.
    """

    geometry: BaseGeometry
    fid: int
    class_value: Any = None


@dataclass(frozen=True)
class BurnValue:
    """
    Burn value of a geometry, resolved once before rasterization.

    Either an integer label ("value"), or a marker that the attribute exists but carries no computable value
    ("default"), in which case the default burn value of the rasterizer is used.
    """

    kind: Literal["value", "default"]
    value: int | None = None

    @classmethod
    def resolve(cls, raw: Any, attribute: str = "class") -> BurnValue:
        """
        Resolve a raw attribute value into a burn value.

        :param raw: Raw attribute value (integer, integral float, or string).
        :param attribute: Name of the attribute, for error messages.

        :raises MissingAttributeError: If the attribute value is absent (None or NaN).
        :raises InvalidBurnValueError: If the value is a non-integral number.
        """
        if raw is None or raw is pd.NA or (isinstance(raw, (float, np.floating)) and math.isnan(raw)):
            raise MissingAttributeError(f"Attribute '{attribute}' is missing.")

        if isinstance(raw, (bool, np.bool_, int, np.integer)):
            return cls(kind="value", value=int(raw))

        if isinstance(raw, (float, np.floating)):
            if not float(raw).is_integer():
                raise InvalidBurnValueError(f"Attribute '{attribute}' has a non-integer value {raw}.")
            return cls(kind="value", value=int(raw))

        if isinstance(raw, (str, bytes)):
            text = raw.decode() if isinstance(raw, bytes) else raw
            try:
                return cls(kind="value", value=int(text.strip()))
            except ValueError:
                return cls(kind="default")

        raise InvalidBurnValueError(f"Attribute '{attribute}' has an unsupported type {type(raw).__name__}.")


def _normalize_field_key(name: str) -> str:
    """Lowercase alphanumeric characters of a field name, to use as key."""
    return "".join(c for c in name if c.isalnum()).lower()


def list_class_fields(gdf: gpd.GeoDataFrame) -> dict[str, str]:
    """
    List the attribute fields that can carry a class: string and integer fields.

    :param gdf: Vector data.

    :returns: Dictionary of normalized field key (lowercase alphanumerics) to field name.
    """
    fields = {}
    for name in gdf.columns:
        if name == gdf.geometry.name:
            continue
        col = gdf[name]
        if is_integer_dtype(col.dtype) and col.dtype != bool:
            fields[_normalize_field_key(str(name))] = str(name)
        elif is_string_dtype(col.dtype) or is_object_dtype(col.dtype):
            # Object columns are kept only if they actually hold strings
            if all(isinstance(v, str) for v in col.dropna()):
                fields[_normalize_field_key(str(name))] = str(name)
    return fields


class GeometrySource:
    """
    Sequence of polygons with their identifier and class value, all in one CRS.

    The record order is the draw order of rasterization.
    """

    def __init__(self, records: Sequence[GeometryRecord], crs: Any = None):
        """
        :param records: Geometry records.
        :param crs: CRS of the geometries.
        """
        for r in records:
            if r.geometry.geom_type not in _POLYGON_TYPES:
                raise ValueError(
                    f"Only polygon geometries are supported, got {r.geometry.geom_type} for feature {r.fid}."
                )
        fids = [r.fid for r in records]
        if len(set(fids)) != len(fids):
            raise ValueError("Feature identifiers of a geometry source must be unique.")

        self._records = list(records)
        self._crs = _cast_crs(crs)

    def __repr__(self) -> str:
        return f"GeometrySource({len(self)} geometries, crs={self.crs})"

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[GeometryRecord]:
        return iter(self._records)

    def __getitem__(self, index: int) -> GeometryRecord:
        return self._records[index]

    @property
    def crs(self) -> CRS | None:
        return self._crs

    @property
    def records(self) -> list[GeometryRecord]:
        return list(self._records)

    @classmethod
    def from_geodataframe(
        cls,
        gdf: gpd.GeoDataFrame,
        class_field: str,
        crs: Any = None,
        id_field: str | None = None,
    ) -> GeometrySource:
        """
        Create a geometry source from a GeoDataFrame, reprojected to a CRS if one is given.

        Empty geometries are skipped.

        :param gdf: Vector data.
        :param class_field: Name of the field carrying the class value.
        :param crs: CRS to reproject the geometries to (typically, that of the raster).
        :param id_field: Name of the field carrying the feature identifier. Defaults to the feature position.

        :raises MissingAttributeError: If the class or identifier field does not exist.
        """
        for field in (class_field, id_field):
            if field is not None and field not in gdf.columns:
                raise MissingAttributeError(
                    f"Field '{field}' not found in vector data, available fields: "
                    f"{sorted(list_class_fields(gdf).values())}."
                )

        if crs is not None and gdf.crs is not None:
            out_crs = _cast_crs(crs)
            if not compare_proj(gdf.crs, out_crs):
                logging.info("Reprojecting %d geometries from %s to %s", len(gdf), gdf.crs, out_crs)
                gdf = gdf.to_crs(out_crs)
        elif crs is not None:
            gdf = gdf.set_crs(_cast_crs(crs))

        if id_field is None:
            fids = np.arange(len(gdf))
        else:
            fids = gdf[id_field].to_numpy()

        records = []
        for fid, geom, value in zip(fids, gdf.geometry.values, gdf[class_field].to_numpy()):
            if geom is None or geom.is_empty:
                logging.warning("Skipping feature %s with an empty geometry", fid)
                continue
            records.append(GeometryRecord(geometry=geom, fid=int(fid), class_value=value))

        return cls(records=records, crs=gdf.crs)

    @classmethod
    def from_file(
        cls,
        filename: str | os.PathLike[str],
        class_field: str,
        crs: Any = None,
        layer: str | int | None = None,
        id_field: str | None = None,
    ) -> GeometrySource:
        """
        Create a geometry source from a vector file.

        :param filename: Path to the vector file.
        :param class_field: Name of the field carrying the class value.
        :param crs: CRS to reproject the geometries to.
        :param layer: Layer to read in a multi-layer file.
        :param id_field: Name of the field carrying the feature identifier. Defaults to the feature position.
        """
        gdf = gpd.read_file(filename, layer=layer) if layer is not None else gpd.read_file(filename)
        return cls.from_geodataframe(gdf, class_field=class_field, crs=crs, id_field=id_field)
