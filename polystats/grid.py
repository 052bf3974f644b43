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

"""Module defining the georeferenced grid shared by rasters, label images and masks."""

from __future__ import annotations

from typing import Any, TypeVar

import numpy as np
import pyproj
import rasterio as rio
from rasterio.crs import CRS

from polystats.exceptions import InvalidCRSError, InvalidGridError, InvalidShapeError

GridType = TypeVar("GridType", bound="Grid")


def compare_proj(proj1: CRS | pyproj.CRS, proj2: CRS | pyproj.CRS) -> bool:
    """
    Compare two projections to see if they are the same, using pyproj.CRS.is_exact_same.

    :param proj1: The first projection to compare.
    :param proj2: The second projection to compare.

    :returns: True if the two projections are the same.
    """
    if not all(isinstance(p, (pyproj.CRS, CRS)) for p in (proj1, proj2)):
        raise InvalidCRSError("Projections to compare must be rasterio.crs.CRS or pyproj.CRS objects.")
    proj1 = pyproj.CRS(proj1.to_wkt())
    proj2 = pyproj.CRS(proj2.to_wkt())

    same: bool = proj1.is_exact_same(proj2)
    return same


def _cast_crs(crs: Any) -> CRS | None:
    """Cast any CRS-like input (EPSG code, string, pyproj or rasterio CRS) into a rasterio CRS."""
    if crs is None:
        return None
    if isinstance(crs, CRS):
        return crs
    try:
        if isinstance(crs, pyproj.CRS):
            return CRS.from_wkt(crs.to_wkt())
        return CRS.from_user_input(crs)
    except rio.errors.CRSError as e:
        raise InvalidCRSError(f"Unrecognized CRS: {crs!r}.") from e


class Grid:
    """
    Georeferenced grid class.

    Describes a georeferenced grid through a geotransform (origin and pixel spacing), shape and CRS. A raster, its
    label images and its validity masks all live on the same grid.
    """

    def __init__(self, transform: rio.Affine, shape: tuple[int, int], crs: Any = None):

        if len(shape) != 2 or any(int(s) < 0 for s in shape):
            raise InvalidShapeError(f"Grid shape must be two positive integers (height, width), got {shape}.")
        if not isinstance(transform, rio.Affine):
            transform = rio.Affine(*list(transform)[:6])

        self._transform = transform
        self._shape = (int(shape[0]), int(shape[1]))
        self._crs = _cast_crs(crs)

    def __repr__(self) -> str:
        return f"Grid(shape={self.shape}, origin={self.origin}, spacing={self.spacing}, crs={self.crs})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Grid):
            return NotImplemented
        return self.same_as(other)

    @property
    def transform(self) -> rio.Affine:
        return self._transform

    @property
    def crs(self) -> CRS | None:
        return self._crs

    @property
    def shape(self) -> tuple[int, int]:
        return self._shape

    @property
    def height(self) -> int:
        return self.shape[0]

    @property
    def width(self) -> int:
        return self.shape[1]

    @property
    def size(self) -> int:
        return self.height * self.width

    @property
    def origin(self) -> tuple[float, float]:
        """Coordinates of the upper-left corner of the grid."""
        return self.transform.c, self.transform.f

    @property
    def spacing(self) -> tuple[float, float]:
        """Signed pixel spacing (sx, sy), sy being negative for north-up grids."""
        return self.transform.a, self.transform.e

    @property
    def res(self) -> tuple[float, float]:
        return self.transform.a, abs(self.transform.e)

    @property
    def bounds(self) -> rio.coords.BoundingBox:
        return rio.coords.BoundingBox(*rio.transform.array_bounds(self.height, self.width, self.transform))

    @classmethod
    def from_dict(cls: type[GridType], dict_meta: dict[str, Any]) -> GridType:
        """Create a Grid from a dictionary containing transform, shape and CRS."""
        return cls(**dict_meta)

    def window_grid(self: GridType, row_off: int, col_off: int, height: int, width: int) -> GridType:
        """
        Get the grid of a window of this grid, with the same spacing and CRS and a shifted origin.

        :param row_off: Row of the upper-left pixel of the window.
        :param col_off: Column of the upper-left pixel of the window.
        :param height: Number of rows of the window.
        :param width: Number of columns of the window.
        """
        if row_off < 0 or col_off < 0 or row_off + height > self.height or col_off + width > self.width:
            raise InvalidShapeError(
                f"Window (row_off={row_off}, col_off={col_off}, height={height}, width={width}) "
                f"is outside of grid of shape {self.shape}."
            )
        window = rio.windows.Window(col_off, row_off, width, height)
        return self.from_dict(
            {"transform": rio.windows.transform(window, self.transform), "shape": (height, width), "crs": self.crs}
        )

    def same_as(self, other: Grid, rtol: float = 1e-9) -> bool:
        """Whether two grids match pixel-for-pixel (shape, transform and CRS)."""
        if self.shape != other.shape:
            return False
        if not np.allclose(list(self.transform)[:6], list(other.transform)[:6], rtol=rtol, atol=0):
            return False
        if self.crs is None or other.crs is None:
            return self.crs is None and other.crs is None
        return compare_proj(self.crs, other.crs)


def check_coregistered(grid: Grid, other: Grid) -> None:
    """
    Check that two grids can be co-registered pixel-for-pixel.

    :raises InvalidCRSError: If only one grid has a CRS, or the two CRSs differ.
    :raises InvalidGridError: If the two grids have a different shape or transform.
    """
    if (grid.crs is None) != (other.crs is None):
        raise InvalidCRSError("Cannot co-register a grid with a CRS and a grid without CRS.")
    if grid.crs is not None and not compare_proj(grid.crs, other.crs):
        raise InvalidCRSError(f"Grids have different CRSs: {grid.crs} and {other.crs}.")
    if grid.shape != other.shape:
        raise InvalidGridError(f"Grids have different shapes: {grid.shape} and {other.shape}.")
    if not np.allclose(list(grid.transform)[:6], list(other.transform)[:6], rtol=1e-9, atol=0):
        raise InvalidGridError(f"Grids have different transforms: {tuple(grid.transform)[:6]} and "
                               f"{tuple(other.transform)[:6]}.")
