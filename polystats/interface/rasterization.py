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

"""Rasterization of polygon attributes into label images, tile by tile."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Literal

import numpy as np
from rasterio import features
from shapely.geometry import box as shapely_box
from shapely.strtree import STRtree

from polystats._typing import DTypeLike, NDArrayBool, NDArrayInt
from polystats.exceptions import InvalidBurnValueError, MissingAttributeError
from polystats.grid import Grid
from polystats.vector.source import BurnValue, GeometryRecord, GeometrySource

# Value of the geometry index image where no geometry is burned
_NO_GEOMETRY = -1


@dataclass(frozen=True)
class LabelBlock:
    """
    Tile of a label image.

    :param labels: Label of each pixel, or the background value where no geometry covers the pixel.
    :param covered: Whether a geometry covers each pixel. This is the "no label" marker used by statistics, so that
        coverage never depends on the label value space.
    """

    labels: NDArrayInt
    covered: NDArrayBool

    @property
    def shape(self) -> tuple[int, int]:
        return self.labels.shape  # type: ignore


@dataclass(frozen=True)
class _VectorBurnSpec:
    """
    Normalized rasterization inputs.

    :param geoms: Vector geometries in the grid CRS, in draw order.
    :param labels: Per-geometry burn label.
    """

    geoms: np.ndarray
    labels: NDArrayInt


def _resolve_burn_values(
    records: Sequence[GeometryRecord],
    burn: Literal["class", "fid"],
    default_burn_value: int,
    background_value: int,
    label_dtype: np.dtype,
) -> _VectorBurnSpec:
    """
    Resolve the burn label of every geometry once, before any pixel is rasterized.

    :param records: Geometry records, in draw order.
    :param burn: Attribute to burn, "class" for the class value or "fid" for the feature identifier.
    :param default_burn_value: Label of geometries whose attribute carries no computable value.
    :param background_value: Label of pixels covered by no geometry.
    :param label_dtype: Unsigned integer data type of labels.

    :raises MissingAttributeError: If the attribute is missing on a geometry.
    :raises InvalidBurnValueError: If a label cannot be represented, or collides with the background value.
    """
    max_label = int(np.iinfo(label_dtype).max)

    def _check(value: int, what: str) -> int:
        if value < 0 or value > max_label:
            raise InvalidBurnValueError(f"{what} {value} cannot be represented with label type {label_dtype.name}.")
        if value == background_value:
            raise InvalidBurnValueError(f"{what} {value} is equal to the background label value.")
        return value

    _check(default_burn_value, "Default burn value")

    labels = np.empty(len(records), dtype=label_dtype)
    nb_default = 0
    for i, rec in enumerate(records):
        if burn == "fid":
            bv = BurnValue(kind="value", value=int(rec.fid))
        else:
            try:
                bv = BurnValue.resolve(rec.class_value)
            except MissingAttributeError as e:
                raise MissingAttributeError(f"Class attribute is missing on feature {rec.fid}.") from e
        if bv.kind == "default":
            nb_default += 1
            labels[i] = default_burn_value
        else:
            labels[i] = _check(bv.value, f"Burn value of feature {rec.fid}:")  # type: ignore

    if nb_default > 0:
        logging.warning(
            "%d geometries have a non-numeric %s value, burned with default value %d",
            nb_default,
            burn,
            default_burn_value,
        )

    geoms = np.empty(len(records), dtype=object)
    geoms[:] = [rec.geometry for rec in records]
    return _VectorBurnSpec(geoms=geoms, labels=labels)


def _query_indices(tree: STRtree, query_geom: Any) -> NDArrayInt:
    """
    Query indices of geometries intersecting query geometry, sorted to preserve the draw order.

    :param tree: STRtree instance.
    :param query_geom: Shapely geometry.
    """
    idx = tree.query(query_geom, predicate="intersects")
    return np.sort(np.asarray(idx, dtype=np.int64))


def _rasterio_rasterize_index(
    geoms: np.ndarray,
    indices: NDArrayInt,
    grid: Grid,
    all_touched: bool = False,
) -> NDArrayInt:
    """
    Burn the index of each geometry into an image of the grid, later geometries overwriting earlier ones.

    :param geoms: Geometry array (dtype=object).
    :param indices: Index of each geometry to burn.
    :param grid: Grid of the output image.
    :param all_touched: Rasterio rasterize option.
    """
    shapes = ((geoms[i], int(i)) for i in indices)
    return features.rasterize(
        shapes=shapes,
        out_shape=grid.shape,
        transform=grid.transform,
        fill=_NO_GEOMETRY,
        all_touched=all_touched,
        dtype=np.int32,
    )


class GeometryRasterizer:
    """
    Rasterizer of a polygon attribute into a label image matching a grid, deliverable tile by tile.

    Geometries are drawn in input order, so that a geometry overwrites the earlier ones on shared pixels. For each
    tile, only geometries whose bounding box intersects the tile are rasterized, using a spatial index built once.
    """

    def __init__(
        self,
        grid: Grid,
        geometries: GeometrySource | Sequence[GeometryRecord],
        burn: Literal["class", "fid"] = "class",
        background_value: int | None = None,
        default_burn_value: int = 0,
        label_dtype: DTypeLike = "uint32",
        all_touched: bool = False,
    ):
        """
        :param grid: Target grid.
        :param geometries: Geometries, in the grid CRS.
        :param burn: Attribute to burn, "class" for the class value or "fid" for the feature identifier.
        :param background_value: Label of pixels covered by no geometry. Defaults to the maximum of the label type.
        :param default_burn_value: Label of geometries whose attribute carries no computable value.
        :param label_dtype: Unsigned integer data type of labels.
        :param all_touched: Whether to burn all pixels touched by a geometry, or only those whose center is inside.

        :raises MissingAttributeError: If the class attribute is missing on a geometry.
        :raises InvalidBurnValueError: If a label cannot be represented, or collides with the background value.
        """
        if burn not in ("class", "fid"):
            raise ValueError(f"Argument 'burn' must be 'class' or 'fid', got {burn!r}.")
        label_dtype = np.dtype(label_dtype)
        if not np.issubdtype(label_dtype, np.unsignedinteger):
            raise ValueError(f"Label dtype must be an unsigned integer type, got {label_dtype}.")
        if len(geometries) >= np.iinfo(np.int32).max:
            raise ValueError(f"Cannot rasterize more than {np.iinfo(np.int32).max - 1} geometries.")

        self.grid = grid
        self.burn = burn
        self.label_dtype = label_dtype
        self.background_value = int(np.iinfo(label_dtype).max) if background_value is None else int(background_value)
        if not 0 <= self.background_value <= np.iinfo(label_dtype).max:
            raise InvalidBurnValueError(
                f"Background value {self.background_value} cannot be represented with label type {label_dtype}."
            )
        self.default_burn_value = int(default_burn_value)
        self.all_touched = all_touched

        self._burn = _resolve_burn_values(
            records=list(geometries),
            burn=burn,
            default_burn_value=self.default_burn_value,
            background_value=self.background_value,
            label_dtype=label_dtype,
        )
        self._tree: STRtree | None = None

    def __len__(self) -> int:
        return len(self._burn.geoms)

    def __getstate__(self) -> dict[str, Any]:
        # The spatial index is rebuilt where the rasterizer is used
        state = self.__dict__.copy()
        state["_tree"] = None
        return state

    @property
    def tree(self) -> STRtree:
        """Spatial index of geometry bounding boxes, built on first use."""
        if self._tree is None:
            self._tree = STRtree(list(self._burn.geoms))
        return self._tree

    @property
    def labels(self) -> NDArrayInt:
        """Burn label of each geometry, in draw order."""
        return self._burn.labels.copy()

    def rasterize_tile(self, row_off: int, col_off: int, height: int, width: int) -> LabelBlock:
        """
        Rasterize the label image of a tile of the grid.

        :param row_off: Row of the upper-left pixel of the tile.
        :param col_off: Column of the upper-left pixel of the tile.
        :param height: Number of rows of the tile.
        :param width: Number of columns of the tile.
        """
        tile_grid = self.grid.window_grid(row_off=row_off, col_off=col_off, height=height, width=width)

        # Conservative bbox selection for candidate features
        if len(self) > 0:
            bb = tile_grid.bounds
            idx = _query_indices(self.tree, shapely_box(bb.left, bb.bottom, bb.right, bb.top))
        else:
            idx = np.empty((0,), dtype=np.int64)

        # Early exit if no candidates
        if idx.size == 0:
            return LabelBlock(
                labels=np.full(tile_grid.shape, self.background_value, dtype=self.label_dtype),
                covered=np.zeros(tile_grid.shape, dtype=bool),
            )

        # Rasterize only candidates into the tile, then look their labels up
        index_image = _rasterio_rasterize_index(self._burn.geoms, idx, tile_grid, all_touched=self.all_touched)
        covered = index_image != _NO_GEOMETRY
        labels = np.full(tile_grid.shape, self.background_value, dtype=self.label_dtype)
        labels[covered] = self._burn.labels[index_image[covered]]

        return LabelBlock(labels=labels, covered=covered)

    def rasterize(self) -> LabelBlock:
        """Rasterize the label image of the full grid."""
        return self.rasterize_tile(row_off=0, col_off=0, height=self.grid.height, width=self.grid.width)
