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
Streaming accumulation of per-label pixel statistics over a raster, tile by tile.

For every tile, the raster block, the label block and the validity mask are computed independently, then the valid
and covered pixels of the tile are folded into a population map. Only the population map survives between tiles, so
that peak memory depends on the tile size and the number of labels, not on the size of the raster.

On a cluster, each worker folds a contiguous chunk of tiles into its own population map, and the maps of all
workers are merged as they are retrieved.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

import numpy as np
from tqdm import tqdm

from polystats._config import StreamingConfig
from polystats._typing import NDArrayInt
from polystats.grid import check_coregistered
from polystats.interface.rasterization import GeometryRasterizer
from polystats.multiproc.cluster import MultiprocConfig
from polystats.raster.nodata import NoDataMaskBuilder
from polystats.raster.source import RasterSource
from polystats.stats.population import LabelPopulationMap
from polystats.tiling import compute_tiling, iter_tiles, tile_shape_from_memory_budget


def _fold_tile(
    pop_map: LabelPopulationMap,
    source: RasterSource,
    rasterizer: GeometryRasterizer,
    mask_builder: NoDataMaskBuilder,
    tile: NDArrayInt,
) -> None:
    """
    Fold the valid and covered pixels of a tile into a population map.

    :param pop_map: Population map to update in place.
    :param source: Raster source.
    :param rasterizer: Rasterizer of labels on the grid of the source.
    :param mask_builder: Validity mask builder of the source.
    :param tile: Tile boundaries [row_start, row_end, col_start, col_end].
    """
    row_start, row_end, col_start, col_end = (int(t) for t in tile)
    height, width = row_end - row_start, col_end - col_start

    label_block = rasterizer.rasterize_tile(row_off=row_start, col_off=col_start, height=height, width=width)
    # Skip reading pixels that no geometry covers
    if not label_block.covered.any():
        return

    block = source.read_block(row_off=row_start, col_off=col_start, height=height, width=width)
    selected = mask_builder.build(block) & label_block.covered
    if not selected.any():
        return

    pop_map.fold_block(labels=label_block.labels[selected], values=block[:, selected].T.astype(np.float64))


def _process_tiles(
    source: RasterSource,
    rasterizer: GeometryRasterizer,
    mask_builder: NoDataMaskBuilder,
    tiles: Sequence[NDArrayInt],
) -> LabelPopulationMap:
    """
    Compute the population map of a sequence of tiles, folded one after the other.

    Run as a single task per worker: the rasterizer and its spatial index are shared by all tiles of the sequence.

    :param source: Raster source.
    :param rasterizer: Rasterizer of labels on the grid of the source.
    :param mask_builder: Validity mask builder of the source.
    :param tiles: Tile boundaries [row_start, row_end, col_start, col_end] of each tile.
    """
    pop_map = LabelPopulationMap(nb_bands=source.count)
    for tile in tiles:
        _fold_tile(pop_map, source, rasterizer, mask_builder, tile)
    return pop_map


class StreamingLabelStatisticsAccumulator:
    """
    Accumulator of the count, mean and variance per band of the valid pixels of each label of a label image.

    A pixel contributes to the statistics of its label only if it is valid in the raster and covered by a geometry.
    Labels without any such pixel are absent from the result.
    """

    def __init__(
        self,
        source: RasterSource,
        rasterizer: GeometryRasterizer,
        mask_builder: NoDataMaskBuilder,
        config: StreamingConfig | None = None,
        tiling: NDArrayInt | None = None,
        mp_config: MultiprocConfig | None = None,
    ):
        """
        :param source: Raster source.
        :param rasterizer: Rasterizer of labels on the grid of the source.
        :param mask_builder: Validity mask builder of the source.
        :param config: Configuration of the pass. Defaults to the global configuration.
        :param tiling: Tiling grid to use, computed from the configuration if None.
        :param mp_config: Cluster configuration to compute tiles in parallel. Tiles are processed sequentially if None.

        :raises InvalidCRSError: If the grids of the source and rasterizer have different CRSs.
        :raises InvalidGridError: If the grids of the source and rasterizer do not match pixel-for-pixel.
        """
        check_coregistered(source.grid, rasterizer.grid)
        self.source = source
        self.rasterizer = rasterizer
        self.mask_builder = mask_builder
        self.config = StreamingConfig.from_config() if config is None else config
        self.mp_config = mp_config
        self._tiling = tiling

    def compute_tiling(self) -> NDArrayInt:
        """
        Compute the tiling grid of the pass: tiles of the configured shape, or the largest tiles fitting in the
        memory budget.
        """
        if self.config.tile_shape is not None:
            tile_shape = self.config.tile_shape
        else:
            tile_shape = tile_shape_from_memory_budget(
                raster_shape=self.source.grid.shape,
                count=self.source.count,
                dtype=self.source.dtype,
                ram_bytes=self.config.ram_bytes,
                label_dtype=self.config.label_dtype,
            )
        return compute_tiling(tile_shape=tile_shape, raster_shape=self.source.grid.shape)

    @property
    def tiling(self) -> NDArrayInt:
        if self._tiling is None:
            self._tiling = self.compute_tiling()
        return self._tiling

    def process_tile(self, tile: NDArrayInt) -> LabelPopulationMap:
        """
        Compute the population map of a single tile.

        :param tile: Tile boundaries [row_start, row_end, col_start, col_end].
        """
        return _process_tiles(self.source, self.rasterizer, self.mask_builder, [tile])

    def run(self, progress_desc: str | None = None) -> LabelPopulationMap:
        """
        Traverse all tiles and accumulate the population map of every label.

        :param progress_desc: Description of the progress bar.

        :returns: Population map, which can contain the background label only if it was burned by a geometry.

        :raises RuntimeError: If a tile fails on a multiprocessing cluster.
        """
        tiles = list(iter_tiles(self.tiling))
        logging.info(
            "Accumulating statistics of %d geometries over %d tile(s) of raster of shape %s",
            len(self.rasterizer),
            len(tiles),
            self.source.grid.shape,
        )

        if self.mp_config is None:
            pop_map = LabelPopulationMap(nb_bands=self.source.count)
            for tile in tqdm(tiles, desc=progress_desc, disable=not self.config.progress):
                _fold_tile(pop_map, self.source, self.rasterizer, self.mask_builder, tile)
        else:
            pop_map = self._run_on_cluster(tiles, progress_desc)

        if len(pop_map) == 0:
            logging.info("No valid pixel covered by a geometry, statistics are empty")
        return pop_map

    def _run_on_cluster(self, tiles: list[NDArrayInt], progress_desc: str | None) -> LabelPopulationMap:
        """
        Split tiles into one contiguous chunk per worker of the cluster, and merge the population map of each chunk
        as soon as it is retrieved.
        """
        assert self.mp_config is not None  # for mypy
        cluster = self.mp_config.cluster

        nb_chunks = max(min(cluster.nb_workers, len(tiles)), 1)
        bounds = np.linspace(0, len(tiles), nb_chunks + 1).astype(int)
        chunks = [tiles[start:end] for start, end in zip(bounds[:-1], bounds[1:])]
        logging.debug("Running %d tile(s) as %d task(s) on %s", len(tiles), len(chunks), type(cluster).__name__)

        pop_map = LabelPopulationMap(nb_bands=self.source.count)
        try:
            tasks = [
                cluster.launch_task(
                    fun=_process_tiles, args=[self.source, self.rasterizer, self.mask_builder, chunk]
                )
                for chunk in chunks
            ]
            for task in tqdm(tasks, desc=progress_desc, disable=not self.config.progress):
                pop_map.merge(cluster.get_res(task))
        except Exception as e:
            raise RuntimeError(f"Error retrieving tile statistics from multiprocessing tasks: {e}") from e

        return pop_map
