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
Raster sources: block-wise read access to a raster of known grid, band count, data type and nodata.
"""

from __future__ import annotations

import os
from typing import Any, Protocol, runtime_checkable

import numpy as np
import rasterio as rio

from polystats._typing import NDArrayNum
from polystats.grid import Grid


@runtime_checkable
class RasterSource(Protocol):
    """
    Block-wise readable raster.

    Blocks are always returned as 3D arrays of shape (count, rows, cols).
    """

    @property
    def grid(self) -> Grid: ...

    @property
    def count(self) -> int: ...

    @property
    def dtype(self) -> np.dtype: ...

    @property
    def nodata(self) -> int | float | None: ...

    def read_block(self, row_off: int, col_off: int, height: int, width: int) -> NDArrayNum: ...


class RioRasterSource:
    """
    Raster source reading windows of a file with rasterio.

    The dataset is re-opened for every block, so that the source holds no file handle and can be shared with worker
    processes.
    """

    def __init__(self, filename: str | os.PathLike[str], bands: int | list[int] | None = None):
        """
        Open the raster metadata.

        :param filename: Path to the raster file.
        :param bands: Band index (starting at 1) or list of band indexes to read. All bands are read if None.
        """
        self.filename = str(filename)

        with rio.open(self.filename) as ds:
            if bands is None:
                indexes = list(ds.indexes)
            elif isinstance(bands, int):
                indexes = [bands]
            else:
                indexes = list(bands)
            for i in indexes:
                if i < 1 or i > ds.count:
                    raise ValueError(f"Band index {i} is out of range for a raster with {ds.count} band(s).")

            self._indexes = indexes
            self._grid = Grid(transform=ds.transform, shape=(ds.height, ds.width), crs=ds.crs)
            self._dtype = np.dtype(ds.dtypes[indexes[0] - 1])
            self._nodata = ds.nodata

    def __repr__(self) -> str:
        return f"RioRasterSource(filename={self.filename!r}, bands={self._indexes})"

    def set_nodata(self, nodata: int | float | None) -> None:
        """Override the nodata value declared in the file metadata, None meaning no nodata."""
        self._nodata = nodata

    @property
    def grid(self) -> Grid:
        return self._grid

    @property
    def count(self) -> int:
        return len(self._indexes)

    @property
    def dtype(self) -> np.dtype:
        return self._dtype

    @property
    def nodata(self) -> int | float | None:
        return self._nodata

    def read_block(self, row_off: int, col_off: int, height: int, width: int) -> NDArrayNum:
        """Read a window of all selected bands, of shape (count, height, width)."""
        window = rio.windows.Window(col_off, row_off, width, height)
        with rio.open(self.filename) as ds:
            return ds.read(indexes=self._indexes, window=window)


class ArrayRasterSource:
    """Raster source over an in-memory array, mostly for small rasters and testing."""

    def __init__(
        self,
        data: NDArrayNum,
        transform: rio.Affine | tuple[float, ...],
        crs: Any = None,
        nodata: int | float | None = None,
    ):
        """
        Wrap an array as a raster source.

        :param data: Array of shape (rows, cols) or (count, rows, cols).
        :param transform: Geotransform of the array.
        :param crs: CRS of the array.
        :param nodata: Declared nodata value.
        """
        data = np.asarray(data)
        if data.ndim == 2:
            data = data[np.newaxis, :, :]
        if data.ndim != 3:
            raise ValueError(f"Array must be 2D or 3D, got {data.ndim}D.")

        self._data = data
        self._grid = Grid(transform=transform, shape=data.shape[1:], crs=crs)
        self._nodata = nodata

    @property
    def grid(self) -> Grid:
        return self._grid

    @property
    def count(self) -> int:
        return int(self._data.shape[0])

    @property
    def dtype(self) -> np.dtype:
        return self._data.dtype

    @property
    def nodata(self) -> int | float | None:
        return self._nodata

    def read_block(self, row_off: int, col_off: int, height: int, width: int) -> NDArrayNum:
        return self._data[:, row_off : row_off + height, col_off : col_off + width]
