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

"""Tiling tools to stream rasters by blocks under a memory budget."""

from __future__ import annotations

import logging
import math
from collections.abc import Iterator

import numpy as np

from polystats._typing import DTypeLike, NDArrayInt


def _generate_tiling_grid(
    row_min: int,
    col_min: int,
    row_max: int,
    col_max: int,
    row_split: int,
    col_split: int,
) -> NDArrayInt:
    """
    Generate a grid of positions by splitting [row_min, row_max] x
    [col_min, col_max] into tiles of size row_split x col_split.

    :param row_min: Minimum row index of the bounding box to split.
    :param col_min: Minimum column index of the bounding box to split.
    :param row_max: Maximum row index of the bounding box to split.
    :param col_max: Maximum column index of the bounding box to split.
    :param row_split: Height of each tile.
    :param col_split: Width of each tile.
    :return: A numpy array grid with splits in two dimensions (0: row, 1: column),
             where each cell contains [row_min, row_max, col_min, col_max].
    """
    if row_split <= 0 or col_split <= 0:
        raise ValueError(f"Tile size must be strictly positive, got ({row_split}, {col_split})")

    # Calculate the total range of rows and columns
    col_range = col_max - col_min
    row_range = row_max - row_min

    # Calculate the number of splits
    nb_col_split = math.ceil(col_range / col_split)
    nb_row_split = math.ceil(row_range / row_split)

    # Initialize the output grid
    tiling_grid = np.zeros(shape=(nb_row_split, nb_col_split, 4), dtype=int)

    for row in range(nb_row_split):
        for col in range(nb_col_split):
            # Calculate the start of the tile
            row_start = row_min + row * row_split
            col_start = col_min + col * col_split

            # Calculate the end of the tile ensuring it doesn't exceed the bounds
            row_end = min(row_max, row_start + row_split)
            col_end = min(col_max, col_start + col_split)

            # Populate the grid with the tile boundaries
            tiling_grid[row, col] = [row_start, row_end, col_start, col_end]

    return tiling_grid


def compute_tiling(
    tile_shape: tuple[int, int],
    raster_shape: tuple[int, int],
    ref_shape: tuple[int, int] | None = None,
) -> NDArrayInt:
    """
    Compute the tiling grid of a raster, to read it block by block.

    :param tile_shape: Shape (rows, cols) of each tile; tiles on the last row and column can be smaller.
    :param raster_shape: Shape of the raster to determine tiling parameters.
    :param ref_shape: The shape of another raster co-registered with the first, used to validate the shape.
    :return: tiling_grid (array of tile boundaries).

    :raises ValueError: if the two shapes differ or if the tile shape is not strictly positive.
    """
    if ref_shape is not None and tuple(raster_shape) != tuple(ref_shape):
        raise ValueError("Reference and secondary rasters do not have the same shape")
    row_max, col_max = raster_shape

    # Tiles never exceed the raster
    row_split = min(tile_shape[0], max(row_max, 1))
    col_split = min(tile_shape[1], max(col_max, 1))

    # Generate tiling
    tiling_grid = _generate_tiling_grid(0, 0, row_max, col_max, row_split, col_split)
    return tiling_grid


def iter_tiles(tiling_grid: NDArrayInt) -> Iterator[NDArrayInt]:
    """Iterate over the tiles of a tiling grid in raster scan order (row by row, then column by column)."""
    for tile in tiling_grid.reshape(-1, 4):
        yield tile


def bytes_per_pixel(count: int, dtype: DTypeLike, label_dtype: DTypeLike = "uint32") -> int:
    """
    Working memory needed per pixel of a tile to fold it into statistics.

    Includes the raster block and its float64 copy for all bands, the geometry index block rasterized for each
    tile, the label block, the validity, coverage and selection masks, and the temporaries of grouping pixels by
    label: the selected labels, their sorted copy, the int64 sort order and inverse index, and the float64 gathered
    means, deviations and squared deviations of the band being folded.

    :param count: Number of raster bands.
    :param dtype: Data type of the raster.
    :param label_dtype: Data type of the label image.
    """
    float_bytes = np.dtype(np.float64).itemsize
    raster_bytes = count * (np.dtype(dtype).itemsize + float_bytes)
    index_bytes = np.dtype(np.int32).itemsize
    label_bytes = np.dtype(label_dtype).itemsize
    mask_bytes = 3 * np.dtype(bool).itemsize
    group_bytes = 2 * label_bytes + 2 * np.dtype(np.int64).itemsize
    band_bytes = 3 * float_bytes
    return int(raster_bytes + index_bytes + label_bytes + mask_bytes + group_bytes + band_bytes)


def tile_shape_from_memory_budget(
    raster_shape: tuple[int, int],
    count: int,
    dtype: DTypeLike,
    ram_bytes: int,
    label_dtype: DTypeLike = "uint32",
) -> tuple[int, int]:
    """
    Get the largest tile shape whose working memory fits under a memory budget.

    Tiles are stripes of full rows whenever a single row fits in the budget. Otherwise, a single row is split along
    columns, down to a single pixel if the budget is very small, so that processing always progresses.

    :param raster_shape: Shape (rows, cols) of the raster.
    :param count: Number of raster bands.
    :param dtype: Data type of the raster.
    :param ram_bytes: Memory budget in bytes.
    :param label_dtype: Data type of the label image.

    :return: Tile shape (rows, cols).
    """
    height, width = raster_shape
    bpp = bytes_per_pixel(count=count, dtype=dtype, label_dtype=label_dtype)
    max_pixels = max(int(ram_bytes) // bpp, 1)

    # Stripes of full rows
    if width == 0 or max_pixels >= width:
        rows = max(min(height, max_pixels // max(width, 1)), 1)
        tile_shape = (rows, max(width, 1))
    # Pieces of a single row
    else:
        tile_shape = (1, max_pixels)

    logging.debug(
        "Tile shape %s for raster of shape %s (%d band(s), %d bytes per pixel, budget of %d bytes)",
        tile_shape,
        raster_shape,
        count,
        bpp,
        ram_bytes,
    )
    return tile_shape
